"""Device telemetry ingestion: payload normalization and device-state updates."""

from __future__ import annotations

import json
import math
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.messaging.topics import TopicError, live_feed_channel, parse_topic
from app.models.devices import Device
from app.models.enums import DeviceStatusEnum, DeviceTypeEnum
from app.schemas.telemetry import IngestOutcome, NormalizedReading, StatusUpdate
from app.services import recommendation_cache
from app.services.device_registry import DeviceRegistry
from app.services.reading_store import ReadingStore

logger = structlog.get_logger("agriflow.telemetry")

AckHandler = Callable[[str, dict[str, Any]], Awaitable[IngestOutcome]]

# Applied in order; a later key overwrites an earlier one for the same field.
FIELD_KEYS: tuple[tuple[str, str], ...] = (
	("soilMoisture", "soil_moisture"),
	("soil_moisture", "soil_moisture"),
	("soilTemperature", "soil_temperature"),
	("temperature", "*temperature"),
	("airTemperature", "air_temperature"),
	("humidity", "air_humidity"),
	("airHumidity", "air_humidity"),
	("light", "light_intensity"),
	("lightIntensity", "light_intensity"),
	("light_level", "light_intensity"),
)

BATTERY_KEY = "battery"
TIMESTAMP_KEY = "timestamp"
KNOWN_KEYS = frozenset(key for key, _ in FIELD_KEYS) | {BATTERY_KEY, TIMESTAMP_KEY}

STATUS_ALIASES: dict[str, DeviceStatusEnum] = {
	"online": DeviceStatusEnum.active,
	"offline": DeviceStatusEnum.offline,
}


def is_number(value: Any) -> bool:
	return isinstance(value, int | float) and not isinstance(value, bool) and math.isfinite(value)


def decode_payload(payload: bytes | str) -> dict[str, Any] | None:
	"""Decode a message body into a non-empty JSON object, or ``None``."""
	try:
		if isinstance(payload, bytes):
			payload = payload.decode("utf-8")
		decoded = json.loads(payload)
	except (UnicodeDecodeError, json.JSONDecodeError):
		return None
	if not isinstance(decoded, dict) or not decoded:
		return None
	return decoded


def parse_battery(payload: dict[str, Any]) -> int | None:
	value = payload.get(BATTERY_KEY)
	if not is_number(value) or not 0 <= value <= 100:
		return None
	return int(math.floor(value + 0.5))


def parse_timestamp(value: Any) -> datetime | None:
	if not isinstance(value, str):
		return None
	try:
		parsed = datetime.fromisoformat(value)
	except ValueError:
		return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=UTC)
	return parsed


def map_status(value: Any) -> DeviceStatusEnum | None:
	if not isinstance(value, str):
		return None
	token = value.strip().lower()
	if token in STATUS_ALIASES:
		return STATUS_ALIASES[token]
	try:
		return DeviceStatusEnum(token)
	except ValueError:
		return None


def normalize_telemetry(
	payload: dict[str, Any],
	device_type: DeviceTypeEnum | None,
	received_at: datetime,
) -> NormalizedReading:
	"""Map a telemetry payload onto the typed reading fields.

	A bare ``temperature`` key means soil temperature for soil sensors and
	air temperature for every other device type.
	"""
	values: dict[str, float] = {}
	for key, field in FIELD_KEYS:
		value = payload.get(key)
		if not is_number(value):
			continue
		if field == "*temperature":
			field = "soil_temperature" if device_type == DeviceTypeEnum.soil_sensor else "air_temperature"
		values[field] = float(value)

	return NormalizedReading(
		recorded_at=parse_timestamp(payload.get(TIMESTAMP_KEY)) or received_at,
		battery_level=parse_battery(payload),
		extras={key: value for key, value in payload.items() if key not in KNOWN_KEYS},
		raw=payload,
		**values,
	)


def normalize_status(payload: dict[str, Any]) -> StatusUpdate:
	reported = payload.get("status")
	return StatusUpdate(
		reported=reported if isinstance(reported, str) else None,
		status=map_status(reported),
		battery_level=parse_battery(payload),
	)


class TelemetryService:
	"""Turns one inbound channel message into device and reading writes.

	The service commits its own unit of work because it runs outside any
	HTTP request.  Acknowledgment topics are handed to ``ack_handler``.
	"""

	def __init__(
		self,
		db: AsyncSession,
		*,
		namespace: str = "farm",
		redis_client: Redis | None = None,
		ack_handler: AckHandler | None = None,
	):
		self.db = db
		self.namespace = namespace
		self.redis_client = redis_client
		self.ack_handler = ack_handler
		self.registry = DeviceRegistry(db)
		self.store = ReadingStore(db)

	async def handle_message(self, topic: str, payload: bytes | str) -> IngestOutcome:
		try:
			address = parse_topic(topic, self.namespace)
		except TopicError as exc:
			logger.warning("message_dropped", topic=topic, reason=str(exc))
			return IngestOutcome(topic=topic, action="dropped", reason=str(exc))

		if not (address.is_telemetry or address.is_status or address.is_ack):
			return IngestOutcome(topic=topic, action="ignored", reason=f"unhandled category {address.category}")

		body = decode_payload(payload)
		if body is None:
			logger.warning("message_dropped", topic=topic, reason="payload is not a JSON object")
			return IngestOutcome(topic=topic, action="dropped", reason="payload is not a JSON object")

		if address.is_ack:
			if self.ack_handler is None:
				return IngestOutcome(topic=topic, action="ignored", reason="no acknowledgment handler")
			return await self.ack_handler(topic, body)

		device = await self.registry.resolve(address.hardware_id)
		if device is None:
			logger.warning("unknown_device", topic=topic, hardware_id=address.hardware_id)
			return IngestOutcome(topic=topic, action="dropped", reason="unknown device")

		if address.is_status:
			return await self.ingest_status(topic, device, body)
		return await self.ingest_telemetry(topic, device, body)

	async def ingest_telemetry(self, topic: str, device: Device, payload: dict[str, Any]) -> IngestOutcome:
		received_at = datetime.now(UTC)
		reading = normalize_telemetry(payload, device.device_type, received_at)
		row = await self.store.store(device, reading, received_at)
		await self.db.commit()

		reading_id = int(row.id)
		logger.info(
			"reading_stored",
			device_id=str(device.id),
			reading_id=reading_id,
			fields=sorted(reading.typed_fields()),
			extras=sorted(reading.extras),
		)
		await recommendation_cache.invalidate(self.redis_client, device.farm_id)
		await self._publish_live(device, reading_id, reading)
		return IngestOutcome(topic=topic, action="stored", device_id=device.id, reading_id=reading_id)

	async def ingest_status(self, topic: str, device: Device, payload: dict[str, Any]) -> IngestOutcome:
		update = normalize_status(payload)
		if update.reported is not None and update.status is None:
			logger.warning("unknown_device_status", device_id=str(device.id), reported=update.reported)

		self.store.touch(
			device,
			datetime.now(UTC),
			battery_level=update.battery_level,
			status=update.status,
		)
		await self.db.commit()
		logger.info(
			"device_status_updated",
			device_id=str(device.id),
			status=update.status.value if update.status else None,
		)
		return IngestOutcome(topic=topic, action="status_updated", device_id=device.id)

	async def _publish_live(self, device: Device, reading_id: int, reading: NormalizedReading) -> None:
		if self.redis_client is None:
			return
		farm_id: uuid.UUID = device.farm_id
		event = {
			"event_type": "ingest",
			"farm_id": str(farm_id),
			"device_id": str(device.id),
			"hardware_id": device.hardware_id,
			"record_id": reading_id,
			"recorded_at": reading.recorded_at.isoformat(),
			"values": reading.typed_fields(),
		}
		try:
			await self.redis_client.publish(live_feed_channel(farm_id), json.dumps(event))
		except RedisError as exc:
			logger.warning("live_feed_publish_failed", farm_id=str(farm_id), error=str(exc))
