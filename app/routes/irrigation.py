"""Irrigation recommendation and schedule lifecycle routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.models.enums import ScheduleStatusEnum
from app.schemas.irrigation import (
	CancelRequest,
	DispatchRead,
	RecommendationsResponse,
	ScheduleCreate,
	ScheduleListRead,
	ScheduleRead,
	TriggerResponse,
)
from app.services.irrigation_engine import IrrigationEngine
from app.services.schedule_service import ScheduleService, ScheduleTransitionError

router = APIRouter(prefix="/irrigation", tags=["irrigation"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ScheduleTransitionError):
		return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="irrigation failure")


def _schedule_service(request: Request, db: AsyncSession) -> ScheduleService:
	return ScheduleService(
		db,
		getattr(request.app.state, "channel", None),
		namespace=get_settings().messaging_namespace,
		weather=getattr(request.app.state, "weather", None),
		redis_client=getattr(request.app.state, "redis", None),
	)


@router.get("/{farm_id}/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(
	farm_id: uuid.UUID,
	request: Request,
	refresh: bool = Query(default=False),
	db: AsyncSession = Depends(get_db),
) -> RecommendationsResponse:
	engine = IrrigationEngine(
		db,
		getattr(request.app.state, "redis", None),
		getattr(request.app.state, "weather", None),
	)
	try:
		return await engine.recommend(farm_id, use_cache=not refresh)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/{farm_id}/schedules", response_model=ScheduleRead, status_code=status.HTTP_201_CREATED)
async def create_schedule(
	farm_id: uuid.UUID,
	payload: ScheduleCreate,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> ScheduleRead:
	service = _schedule_service(request, db)
	try:
		schedule = await service.create_schedule(farm_id, payload)
	except Exception as exc:
		raise _map_error(exc) from exc
	return ScheduleRead.model_validate(schedule)


@router.get("/{farm_id}/schedules", response_model=ScheduleListRead)
async def list_schedules(
	farm_id: uuid.UUID,
	request: Request,
	schedule_status: ScheduleStatusEnum | None = Query(default=None, alias="status"),
	db: AsyncSession = Depends(get_db),
) -> ScheduleListRead:
	service = _schedule_service(request, db)
	try:
		schedules = await service.list_for_farm(farm_id, schedule_status)
	except Exception as exc:
		raise _map_error(exc) from exc
	return ScheduleListRead(items=[ScheduleRead.model_validate(item) for item in schedules])


@router.get("/schedules/{schedule_id}", response_model=ScheduleRead)
async def get_schedule(
	schedule_id: uuid.UUID,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> ScheduleRead:
	service = _schedule_service(request, db)
	try:
		schedule = await service.get(schedule_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return ScheduleRead.model_validate(schedule)


@router.post("/schedules/{schedule_id}/trigger", response_model=TriggerResponse)
async def trigger_schedule(
	schedule_id: uuid.UUID,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> TriggerResponse:
	service = _schedule_service(request, db)
	try:
		schedule, result = await service.trigger(schedule_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return TriggerResponse(
		triggered=True,
		schedule=ScheduleRead.model_validate(schedule),
		dispatch=DispatchRead(status=result.status.value, topic=result.topic, reason=result.reason),
	)


@router.post("/schedules/{schedule_id}/cancel", response_model=ScheduleRead)
async def cancel_schedule(
	schedule_id: uuid.UUID,
	request: Request,
	payload: CancelRequest | None = Body(default=None),
	db: AsyncSession = Depends(get_db),
) -> ScheduleRead:
	service = _schedule_service(request, db)
	try:
		schedule = await service.cancel(schedule_id, payload.reason if payload else None)
	except Exception as exc:
		raise _map_error(exc) from exc
	return ScheduleRead.model_validate(schedule)
