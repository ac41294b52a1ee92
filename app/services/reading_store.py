"""Persistence for sensor readings and the device state they touch."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.devices import Device, SensorReading
from app.models.enums import DeviceStatusEnum, DeviceTypeEnum
from app.schemas.telemetry import NormalizedReading


class ReadingStore:
	def __init__(self, db: AsyncSession):
		self.db = db

	async def store(self, device: Device, reading: NormalizedReading, seen_at: datetime) -> SensorReading:
		"""Insert one reading and update the device's liveness in the same unit of work.

		The caller owns the commit.
		"""
		row = SensorReading(
			device_id=device.id,
			recorded_at=reading.recorded_at,
			raw_data=reading.raw,
			**reading.typed_fields(),
		)
		self.db.add(row)
		self.touch(device, seen_at, battery_level=reading.battery_level)
		await self.db.flush()
		return row

	@staticmethod
	def touch(
		device: Device,
		seen_at: datetime,
		*,
		battery_level: int | None = None,
		status: DeviceStatusEnum | None = None,
	) -> None:
		device.last_seen_at = seen_at
		if battery_level is not None:
			device.battery_level = battery_level
		if status is not None:
			device.status = status

	async def list_readings(
		self,
		device_id: uuid.UUID,
		start: datetime | None = None,
		end: datetime | None = None,
		limit: int = 500,
	) -> list[SensorReading]:
		if await self.db.get(Device, device_id) is None:
			raise LookupError(f"device not found: {device_id}")

		stmt = select(SensorReading).where(SensorReading.device_id == device_id)
		if start is not None:
			stmt = stmt.where(SensorReading.recorded_at >= start)
		if end is not None:
			stmt = stmt.where(SensorReading.recorded_at <= end)
		stmt = stmt.order_by(SensorReading.recorded_at.asc(), SensorReading.id.asc()).limit(limit)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def latest_for_farm(self, farm_id: uuid.UUID) -> SensorReading | None:
		"""Latest reading of the farm's first active soil sensor, if any."""
		device_stmt = (
			select(Device.id)
			.where(
				Device.farm_id == farm_id,
				Device.device_type == DeviceTypeEnum.soil_sensor,
				Device.status == DeviceStatusEnum.active,
			)
			.order_by(Device.created_at.asc())
			.limit(1)
		)
		device_id = (await self.db.execute(device_stmt)).scalar_one_or_none()
		if device_id is None:
			return None

		stmt = (
			select(SensorReading)
			.where(SensorReading.device_id == device_id)
			.order_by(SensorReading.recorded_at.desc(), SensorReading.id.desc())
			.limit(1)
		)
		rows = await self.db.execute(stmt)
		return rows.scalars().first()
