"""Device registry: hardware-id resolution, registration and status edits."""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.devices import Device
from app.models.enums import DeviceStatusEnum
from app.schemas.devices import DeviceCreate
from app.services.farm_service import FarmService

logger = structlog.get_logger("agriflow.devices")


class DuplicateDeviceError(ValueError):
	"""Raised when a hardware id is already registered."""


class DeviceRegistry:
	def __init__(self, db: AsyncSession):
		self.db = db

	async def resolve(self, hardware_id: str) -> Device | None:
		"""Look up a device by hardware id; never creates one."""
		stmt = select(Device).where(Device.hardware_id == hardware_id)
		rows = await self.db.execute(stmt)
		return rows.scalars().first()

	async def register(self, farm_id: uuid.UUID, payload: DeviceCreate) -> Device:
		await FarmService(self.db).get_farm(farm_id)

		if await self.resolve(payload.hardware_id) is not None:
			raise DuplicateDeviceError(f"hardware id already registered: {payload.hardware_id}")

		device = Device(
			farm_id=farm_id,
			hardware_id=payload.hardware_id,
			device_type=payload.device_type,
			latitude=payload.latitude,
			longitude=payload.longitude,
			firmware_version=payload.firmware_version,
			metadata_=payload.metadata or {},
		)
		if payload.name is not None:
			device.name = payload.name

		self.db.add(device)
		try:
			await self.db.flush()
		except IntegrityError as exc:
			raise DuplicateDeviceError(f"hardware id already registered: {payload.hardware_id}") from exc
		await self.db.refresh(device)
		logger.info(
			"device_registered",
			device_id=str(device.id),
			farm_id=str(farm_id),
			hardware_id=device.hardware_id,
		)
		return device

	async def get(self, device_id: uuid.UUID) -> Device:
		device = await self.db.get(Device, device_id)
		if device is None:
			raise LookupError(f"device not found: {device_id}")
		return device

	async def list_for_farm(self, farm_id: uuid.UUID) -> list[Device]:
		await FarmService(self.db).get_farm(farm_id)
		stmt = select(Device).where(Device.farm_id == farm_id).order_by(Device.created_at.asc())
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def set_status(self, device_id: uuid.UUID, status: DeviceStatusEnum) -> Device:
		device = await self.get(device_id)
		device.status = status
		await self.db.flush()
		await self.db.refresh(device)
		return device
