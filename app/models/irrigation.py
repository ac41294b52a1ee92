"""Irrigation schedule ORM model.

Schedules reference but do not own their crop and device: both foreign keys
are ``SET NULL`` so removing hardware never deletes irrigation history.
``weather_condition`` is captured once at creation time and never refreshed.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.enums import IrrigationTriggerEnum, ScheduleStatusEnum


class IrrigationSchedule(Base, UUIDPrimaryKeyMixin, TimestampMixin):
	"""A planned irrigation run and its execution outcome."""

	__tablename__ = "irrigation_schedules"
	__table_args__ = (
		CheckConstraint("duration_minutes >= 1", name="ck_irrigation_schedules_duration_positive"),
		Index("ix_irrigation_schedules_farm_status", "farm_id", "status"),
		Index("ix_irrigation_schedules_scheduled_time", "scheduled_time"),
	)

	farm_id: Mapped[uuid.UUID] = mapped_column(
		UUID(as_uuid=True),
		ForeignKey("farms.id", ondelete="CASCADE"),
		nullable=False,
	)
	crop_id: Mapped[uuid.UUID | None] = mapped_column(
		UUID(as_uuid=True),
		ForeignKey("crops.id", ondelete="SET NULL"),
		nullable=True,
	)
	device_id: Mapped[uuid.UUID | None] = mapped_column(
		UUID(as_uuid=True),
		ForeignKey("iot_devices.id", ondelete="SET NULL"),
		nullable=True,
	)
	scheduled_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
	duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
	water_volume_liters: Mapped[float | None] = mapped_column(Float, nullable=True)
	status: Mapped[ScheduleStatusEnum] = mapped_column(
		Enum(
			ScheduleStatusEnum,
			name="schedule_status",
			create_constraint=False,
			native_enum=True,
		),
		nullable=False,
		default=ScheduleStatusEnum.pending,
		server_default=ScheduleStatusEnum.pending.value,
	)
	triggered_by: Mapped[IrrigationTriggerEnum] = mapped_column(
		Enum(
			IrrigationTriggerEnum,
			name="irrigation_trigger",
			create_constraint=False,
			native_enum=True,
		),
		nullable=False,
	)
	executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	actual_volume_liters: Mapped[float | None] = mapped_column(Float, nullable=True)
	notes: Mapped[str | None] = mapped_column(Text, nullable=True)
	weather_condition: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

	def __repr__(self) -> str:
		return f"<IrrigationSchedule id={self.id} farm={self.farm_id} status={self.status}>"
