"""Outbound device commands and inbound irrigation acknowledgments."""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from pydantic import ValidationError

from app.messaging.channel import MessageChannel, PublishResult, PublishStatus
from app.messaging.topics import command_topic
from app.schemas.telemetry import AckPayload

logger = structlog.get_logger("agriflow.dispatch")


class CommandDispatcher:
	def __init__(self, channel: MessageChannel, namespace: str = "farm"):
		self.channel = channel
		self.namespace = namespace

	async def publish(
		self,
		farm_id: uuid.UUID,
		hardware_id: str,
		command: str,
		params: dict[str, Any] | None = None,
	) -> PublishResult:
		topic = command_topic(self.namespace, str(farm_id), hardware_id)
		result = await self.channel.publish(topic, {"command": command, **(params or {})})
		if result.status == PublishStatus.failed:
			logger.error("command_dispatch_failed", topic=topic, command=command, reason=result.reason)
		else:
			logger.info("command_dispatched", topic=topic, command=command, status=result.status.value)
		return result


def parse_ack(payload: dict[str, Any]) -> AckPayload | None:
	"""Validate an acknowledgment body; ``None`` for anything malformed."""
	try:
		return AckPayload.model_validate(payload)
	except ValidationError as exc:
		logger.warning("ack_dropped", errors=exc.error_count())
		return None
