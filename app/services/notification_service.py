"""Farmer notifications published on per-farmer Redis channels."""

from __future__ import annotations

import json
import uuid

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.messaging.channel import PublishResult, PublishStatus
from app.messaging.topics import notification_channel
from app.models.enums import NotificationPriorityEnum

logger = structlog.get_logger("agriflow.notifications")


class NotificationSink:
	"""Publishes notification envelopes for the delivery service to fan out.

	Redis reports how many subscribers received a message, so ``delivered``
	means at least one consumer was listening and ``attempted`` means none
	was.
	"""

	def __init__(self, redis_client: Redis):
		self.redis_client = redis_client

	async def notify(
		self,
		*,
		farmer_id: uuid.UUID,
		farm_id: uuid.UUID,
		type: str,
		priority: NotificationPriorityEnum,
		title: str,
		message: str,
		channels: list[str] | None = None,
	) -> PublishResult:
		channel = notification_channel(farmer_id)
		payload = {
			"farmerId": str(farmer_id),
			"farmId": str(farm_id),
			"type": type,
			"priority": priority.value,
			"title": title,
			"message": message,
			"channels": channels or ["in_app"],
		}
		try:
			receivers = int(await self.redis_client.publish(channel, json.dumps(payload)))
		except RedisError as exc:
			logger.error("notification_publish_failed", channel=channel, error=str(exc))
			return PublishResult.failure(channel, str(exc))

		status = PublishStatus.delivered if receivers > 0 else PublishStatus.attempted
		logger.info("notification_published", channel=channel, priority=priority.value, status=status.value)
		return PublishResult(status=status, topic=channel)
