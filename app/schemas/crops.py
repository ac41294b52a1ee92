"""Pydantic schemas for crop health snapshots."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import HealthStatusEnum


class CropHealthRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	crop_id: uuid.UUID
	recorded_at: datetime
	ndvi_value: float
	health_score: int
	health_status: HealthStatusEnum
	moisture_level: float | None = None
	temperature: float | None = None
	humidity: float | None = None
	recommendations: list[str] = Field(default_factory=list)
	data_source: str
