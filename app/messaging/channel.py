"""MQTT messaging channel shared by device telemetry and commands.

Field devices talk to an MQTT broker, so the channel wraps one
``aiomqtt.Client``.  It is constructed explicitly by the application
lifespan and handed to the listener and the command dispatcher, so tests can
pass a fake client.  Payloads are handed to the handler as the raw bytes the
device sent; decoding belongs to the consumer.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import aiomqtt
import structlog

from app.config import Settings

logger = structlog.get_logger("agriflow.channel")

MessageHandler = Callable[[str, bytes], Awaitable[None]]


class PublishStatus(StrEnum):
	delivered = "delivered"
	attempted = "attempted"
	failed = "failed"


@dataclass(frozen=True, slots=True)
class PublishResult:
	"""Outcome of a publish.

	``delivered`` means the broker acknowledged the message (QoS 1 or 2),
	``attempted`` means it was handed to the broker without acknowledgment
	(QoS 0), and ``failed`` carries the reason the broker was not reached.
	"""

	status: PublishStatus
	topic: str
	reason: str | None = None

	@property
	def attempted(self) -> bool:
		return self.status != PublishStatus.failed

	@classmethod
	def failure(cls, topic: str, reason: str) -> PublishResult:
		return cls(status=PublishStatus.failed, topic=topic, reason=reason)


class ChannelNotConnectedError(RuntimeError):
	"""Raised when subscribing on a channel that has not been connected."""


def payload_bytes(payload: Any) -> bytes:
	if isinstance(payload, bytes | bytearray):
		return bytes(payload)
	if payload is None:
		return b""
	return str(payload).encode("utf-8")


class MessageChannel:
	def __init__(
		self,
		client: aiomqtt.Client,
		*,
		poll_timeout: float = 1.0,
		subscribe_qos: int = 1,
	) -> None:
		self._client = client
		self._poll_timeout = poll_timeout
		self._subscribe_qos = subscribe_qos
		self._connected = False

	@classmethod
	def from_settings(cls, settings: Settings) -> MessageChannel:
		client = aiomqtt.Client(
			hostname=settings.mqtt_host,
			port=settings.mqtt_port,
			username=settings.mqtt_username or None,
			password=settings.mqtt_password or None,
			identifier=settings.mqtt_client_id or None,
			keepalive=settings.mqtt_keepalive_seconds,
		)
		return cls(client, poll_timeout=settings.messaging_poll_timeout_seconds)

	@property
	def connected(self) -> bool:
		return self._connected

	async def connect(self) -> None:
		if self._connected:
			return
		await self._client.__aenter__()
		self._connected = True
		logger.info("channel_connected")

	async def disconnect(self) -> None:
		if not self._connected:
			return
		await self._release()
		logger.info("channel_disconnected")

	async def _release(self) -> None:
		"""Leave the client context so a later ``connect()`` can enter it again."""
		self._connected = False
		try:
			await self._client.__aexit__(None, None, None)
		except aiomqtt.MqttError as exc:
			logger.warning("channel_close_failed", error=str(exc))

	async def publish(self, topic: str, payload: dict[str, Any], *, qos: int = 1) -> PublishResult:
		if not self._connected:
			logger.error("publish_skipped_disconnected", topic=topic)
			return PublishResult.failure(topic, "channel disconnected")
		body = json.dumps(payload, default=str).encode("utf-8")
		try:
			await self._client.publish(topic, payload=body, qos=qos)
		except aiomqtt.MqttError as exc:
			logger.error("publish_failed", topic=topic, error=str(exc))
			return PublishResult.failure(topic, str(exc))

		status = PublishStatus.delivered if qos > 0 else PublishStatus.attempted
		logger.debug("published", topic=topic, qos=qos)
		return PublishResult(status=status, topic=topic)

	async def listen(
		self,
		filters: Sequence[str],
		handler: MessageHandler,
		stop: asyncio.Event,
	) -> None:
		"""Subscribe to ``filters`` and feed every message to ``handler`` until ``stop`` is set.

		Handler exceptions are logged and swallowed so a single bad message
		cannot end the subscription.  A lost broker connection releases the
		client and propagates ``aiomqtt.MqttError`` to the caller.
		"""
		if not self._connected:
			raise ChannelNotConnectedError("connect() must be awaited before listen()")

		try:
			for topic_filter in filters:
				await self._client.subscribe(topic_filter, qos=self._subscribe_qos)
			logger.info("channel_subscribed", filters=list(filters))

			messages = aiter(self._client.messages)
			while not stop.is_set():
				try:
					message = await asyncio.wait_for(anext(messages), timeout=self._poll_timeout)
				except TimeoutError:
					continue

				topic = message.topic.value
				try:
					await handler(topic, payload_bytes(message.payload))
				except Exception:
					logger.exception("channel_handler_failed", topic=topic)
		except aiomqtt.MqttError:
			await self._release()
			raise

		for topic_filter in filters:
			try:
				await self._client.unsubscribe(topic_filter)
			except aiomqtt.MqttError as exc:
				logger.warning("channel_unsubscribe_failed", filter=topic_filter, error=str(exc))
				break
