"""Background consumer for inbound device messages.

One task reads the channel; every message is processed in its own task with
its own database session, so a slow or failing message never blocks or
kills the subscription.
"""

from __future__ import annotations

import asyncio

import aiomqtt
import structlog
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.messaging.channel import MessageChannel
from app.messaging.topics import subscription_filters
from app.schemas.telemetry import IngestOutcome
from app.services.schedule_service import ScheduleService
from app.services.telemetry_service import TelemetryService

logger = structlog.get_logger("agriflow.listener")


class ChannelListener:
	def __init__(
		self,
		channel: MessageChannel,
		session_factory: async_sessionmaker[AsyncSession],
		*,
		namespace: str = "farm",
		redis_client: Redis | None = None,
		retry_delay_seconds: float = 5.0,
	):
		self.channel = channel
		self.session_factory = session_factory
		self.namespace = namespace
		self.redis_client = redis_client
		self.retry_delay_seconds = retry_delay_seconds
		self._stop = asyncio.Event()
		self._tasks: set[asyncio.Task[IngestOutcome | None]] = set()

	@property
	def pending(self) -> int:
		return len(self._tasks)

	async def run(self) -> None:
		"""Consume until ``stop()``.

		A lost broker connection, or any other error escaping the
		subscription, is logged; the channel is reconnected after
		``retry_delay_seconds`` and the subscription resumed.
		"""
		filters = subscription_filters(self.namespace)
		while not self._stop.is_set():
			try:
				await self.channel.connect()
				await self.channel.listen(filters, self.dispatch, self._stop)
			except (aiomqtt.MqttError, OSError) as exc:
				logger.error("listener_subscription_lost", error=str(exc))
				await self._pause()
			except Exception:
				logger.exception("listener_subscription_failed")
				await self._pause()

	async def _pause(self) -> None:
		try:
			await asyncio.wait_for(self._stop.wait(), timeout=self.retry_delay_seconds)
		except TimeoutError:
			pass

	async def stop(self) -> None:
		self._stop.set()
		if self._tasks:
			await asyncio.gather(*self._tasks, return_exceptions=True)

	async def dispatch(self, topic: str, payload: bytes) -> None:
		task = asyncio.create_task(self.process(topic, payload))
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	async def process(self, topic: str, payload: bytes | str) -> IngestOutcome | None:
		"""Handle one message in its own unit of work; never raises."""
		async with self.session_factory() as session:
			schedules = ScheduleService(
				session,
				self.channel,
				namespace=self.namespace,
				redis_client=self.redis_client,
			)
			service = TelemetryService(
				session,
				namespace=self.namespace,
				redis_client=self.redis_client,
				ack_handler=schedules.apply_ack,
			)
			try:
				outcome = await service.handle_message(topic, payload)
				await session.commit()
			except Exception:
				logger.exception("message_processing_failed", topic=topic)
				await session.rollback()
				return None
		logger.debug("message_processed", topic=topic, action=outcome.action)
		return outcome
