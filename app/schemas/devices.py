"""Pydantic request/response schemas for devices and sensor readings."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.enums import DeviceStatusEnum, DeviceTypeEnum


class DeviceCreate(BaseModel):
	hardware_id: str = Field(min_length=1, max_length=100)
	device_type: DeviceTypeEnum
	name: str | None = Field(default=None, min_length=1, max_length=100)
	latitude: float | None = Field(default=None, ge=-90, le=90)
	longitude: float | None = Field(default=None, ge=-180, le=180)
	firmware_version: str | None = Field(default=None, max_length=20)
	metadata: dict[str, Any] | None = None


class DeviceStatusUpdate(BaseModel):
	status: DeviceStatusEnum


class DeviceRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: uuid.UUID
	farm_id: uuid.UUID
	hardware_id: str
	device_type: DeviceTypeEnum
	name: str
	latitude: float | None = None
	longitude: float | None = None
	status: DeviceStatusEnum
	firmware_version: str | None = None
	last_seen_at: datetime | None = None
	battery_level: int | None = None
	metadata: dict[str, Any] | None = None
	created_at: datetime
	updated_at: datetime


class DeviceListRead(BaseModel):
	items: list[DeviceRead]


class ReadingQuery(BaseModel):
	start: datetime | None = None
	end: datetime | None = None
	limit: int = Field(default=500, ge=1, le=5000)

	@model_validator(mode="after")
	def _validate_range(self) -> "ReadingQuery":
		if self.start is not None and self.end is not None and self.start > self.end:
			raise ValueError("start must not be after end")
		return self


class SensorReadingRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	device_id: uuid.UUID
	recorded_at: datetime
	soil_moisture: float | None = None
	soil_temperature: float | None = None
	air_temperature: float | None = None
	air_humidity: float | None = None
	light_intensity: float | None = None
	raw_data: dict[str, Any]


class SensorReadingListRead(BaseModel):
	device_id: uuid.UUID
	start: datetime | None = None
	end: datetime | None = None
	items: list[SensorReadingRead] = Field(default_factory=list)
