"""Pydantic schemas for messages carried on the device messaging channel."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import DeviceStatusEnum


class NormalizedReading(BaseModel):
	"""Typed view of one telemetry payload.

	``extras`` holds every key the typed fields do not cover; ``raw`` is the
	payload exactly as received and is what gets persisted.
	"""

	recorded_at: datetime
	soil_moisture: float | None = None
	soil_temperature: float | None = None
	air_temperature: float | None = None
	air_humidity: float | None = None
	light_intensity: float | None = None
	battery_level: int | None = None
	extras: dict[str, Any] = Field(default_factory=dict)
	raw: dict[str, Any]

	def typed_fields(self) -> dict[str, float]:
		values = {
			"soil_moisture": self.soil_moisture,
			"soil_temperature": self.soil_temperature,
			"air_temperature": self.air_temperature,
			"air_humidity": self.air_humidity,
			"light_intensity": self.light_intensity,
		}
		return {key: value for key, value in values.items() if value is not None}


class StatusUpdate(BaseModel):
	reported: str | None = None
	status: DeviceStatusEnum | None = None
	battery_level: int | None = None


class AckPayload(BaseModel):
	"""Irrigation acknowledgment published by a device controller."""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	schedule_id: uuid.UUID = Field(alias="scheduleId")
	status: Literal["completed", "failed"]
	actual_volume_liters: float | None = Field(default=None, alias="actualVolumeLiters", ge=0)


class IngestOutcome(BaseModel):
	"""Result of handling one inbound message (for logging and tests)."""

	topic: str
	action: Literal["stored", "status_updated", "acknowledged", "ignored", "dropped"]
	device_id: uuid.UUID | None = None
	reading_id: int | None = None
	reason: str | None = None
