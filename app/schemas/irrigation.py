"""Pydantic schemas for irrigation recommendations and schedules."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import IrrigationTriggerEnum, ScheduleStatusEnum, UrgencyEnum


class WaterRequirement(BaseModel):
	"""Daily crop water demand in liters per hectare."""

	min: float
	optimal: float
	max: float


class Recommendation(BaseModel):
	crop_id: uuid.UUID
	crop_type: str
	recommended_duration: int
	urgency: UrgencyEnum
	reason: str
	weather_forecast: str
	forecast_available: bool = True
	moisture: float | None = None
	moisture_source: str | None = None
	water_requirement: WaterRequirement


class RecommendationsResponse(BaseModel):
	farm_id: uuid.UUID
	generated_at: datetime
	cached: bool = False
	items: list[Recommendation] = Field(default_factory=list)
	skipped_crop_ids: list[uuid.UUID] = Field(default_factory=list)


class ScheduleCreate(BaseModel):
	crop_id: uuid.UUID | None = None
	device_id: uuid.UUID | None = None
	scheduled_time: datetime
	duration_minutes: int = Field(ge=1)
	water_volume_liters: float | None = Field(default=None, ge=0)
	triggered_by: IrrigationTriggerEnum = IrrigationTriggerEnum.manual
	notes: str | None = Field(default=None, max_length=2000)


class ScheduleRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: uuid.UUID
	farm_id: uuid.UUID
	crop_id: uuid.UUID | None = None
	device_id: uuid.UUID | None = None
	scheduled_time: datetime
	duration_minutes: int
	water_volume_liters: float | None = None
	status: ScheduleStatusEnum
	triggered_by: IrrigationTriggerEnum
	executed_at: datetime | None = None
	completed_at: datetime | None = None
	actual_volume_liters: float | None = None
	notes: str | None = None
	weather_condition: dict[str, Any] | None = None
	created_at: datetime
	updated_at: datetime


class ScheduleListRead(BaseModel):
	items: list[ScheduleRead]


class DispatchRead(BaseModel):
	status: str
	topic: str
	reason: str | None = None


class TriggerResponse(BaseModel):
	triggered: bool
	schedule: ScheduleRead
	dispatch: DispatchRead


class CancelRequest(BaseModel):
	reason: str | None = Field(default=None, max_length=500)
