"""Crop health snapshot routes."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.crops import CropHealthRead
from app.services.health_service import CropHealthService

router = APIRouter(prefix="/crops", tags=["crops"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="crop health failure")


def _to_health_read(record: Any) -> CropHealthRead:
	return CropHealthRead(
		id=record.id,
		crop_id=record.crop_id,
		recorded_at=record.recorded_at,
		ndvi_value=record.ndvi_value,
		health_score=record.health_score,
		health_status=record.health_status,
		moisture_level=record.moisture_level,
		temperature=record.temperature,
		humidity=record.humidity,
		recommendations=list(record.recommendations or []),
		data_source=record.data_source,
	)


def _health_service(request: Request, db: AsyncSession) -> CropHealthService:
	return CropHealthService(
		db,
		getattr(request.app.state, "weather", None),
		getattr(request.app.state, "crop_health", None),
		getattr(request.app.state, "redis", None),
	)


@router.post("/{crop_id}/health/refresh", response_model=CropHealthRead, status_code=status.HTTP_201_CREATED)
async def refresh_crop_health(
	crop_id: uuid.UUID,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> CropHealthRead:
	service = _health_service(request, db)
	try:
		record = await service.refresh(crop_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_health_read(record)


@router.get("/{crop_id}/health", response_model=CropHealthRead)
async def get_crop_health(
	crop_id: uuid.UUID,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> CropHealthRead:
	service = _health_service(request, db)
	try:
		record = await service.latest(crop_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_health_read(record)
