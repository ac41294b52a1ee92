"""Device registration, status and sensor reading routes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.devices import (
	DeviceCreate,
	DeviceListRead,
	DeviceRead,
	DeviceStatusUpdate,
	ReadingQuery,
	SensorReadingListRead,
	SensorReadingRead,
)
from app.services.device_registry import DeviceRegistry, DuplicateDeviceError
from app.services.reading_store import ReadingStore

router = APIRouter(tags=["devices"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, DuplicateDeviceError):
		return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(
		status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
		detail="Unexpected device service failure",
	)


def _to_device_read(device: Any) -> DeviceRead:
	return DeviceRead(
		id=device.id,
		farm_id=device.farm_id,
		hardware_id=device.hardware_id,
		device_type=device.device_type,
		name=device.name,
		latitude=device.latitude,
		longitude=device.longitude,
		status=device.status,
		firmware_version=device.firmware_version,
		last_seen_at=device.last_seen_at,
		battery_level=device.battery_level,
		metadata=device.metadata_,
		created_at=device.created_at,
		updated_at=device.updated_at,
	)


@router.post("/farms/{farm_id}/devices", response_model=DeviceRead, status_code=status.HTTP_201_CREATED)
async def register_device(
	farm_id: uuid.UUID,
	payload: DeviceCreate,
	db: AsyncSession = Depends(get_db),
) -> DeviceRead:
	registry = DeviceRegistry(db)
	try:
		device = await registry.register(farm_id, payload)
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_device_read(device)


@router.get("/farms/{farm_id}/devices", response_model=DeviceListRead)
async def list_devices(
	farm_id: uuid.UUID,
	db: AsyncSession = Depends(get_db),
) -> DeviceListRead:
	registry = DeviceRegistry(db)
	try:
		devices = await registry.list_for_farm(farm_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return DeviceListRead(items=[_to_device_read(device) for device in devices])


@router.patch("/devices/{device_id}/status", response_model=DeviceRead)
async def update_device_status(
	device_id: uuid.UUID,
	payload: DeviceStatusUpdate,
	db: AsyncSession = Depends(get_db),
) -> DeviceRead:
	registry = DeviceRegistry(db)
	try:
		device = await registry.set_status(device_id, payload.status)
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_device_read(device)


@router.get("/devices/{device_id}/readings", response_model=SensorReadingListRead)
async def list_readings(
	device_id: uuid.UUID,
	start: datetime | None = Query(default=None),
	end: datetime | None = Query(default=None),
	limit: int = Query(default=500, ge=1, le=5000),
	db: AsyncSession = Depends(get_db),
) -> SensorReadingListRead:
	try:
		query = ReadingQuery(start=start, end=end, limit=limit)
	except ValidationError as exc:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end") from exc

	store = ReadingStore(db)
	try:
		rows = await store.list_readings(device_id, query.start, query.end, query.limit)
	except Exception as exc:
		raise _map_error(exc) from exc
	return SensorReadingListRead(
		device_id=device_id,
		start=query.start,
		end=query.end,
		items=[SensorReadingRead.model_validate(row) for row in rows],
	)
