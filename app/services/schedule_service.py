"""Irrigation schedule lifecycle.

    pending -> scheduled -> in_progress -> completed | failed
    pending | scheduled -> cancelled

Every transition is a single ``UPDATE ... WHERE status IN (...) RETURNING``
so two concurrent callers cannot both apply it.  There is no timeout for
schedules left in ``in_progress``; they are resolved by an acknowledgment
only.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import structlog
from redis.asyncio import Redis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.messaging.channel import MessageChannel, PublishResult, PublishStatus
from app.messaging.topics import TopicAddress, TopicError, parse_topic
from app.models.devices import Device
from app.models.enums import NotificationPriorityEnum, ScheduleStatusEnum
from app.models.irrigation import IrrigationSchedule
from app.schemas.irrigation import ScheduleCreate
from app.schemas.telemetry import IngestOutcome
from app.services.dispatch_service import CommandDispatcher, parse_ack
from app.services.farm_service import FarmService
from app.services.notification_service import NotificationSink
from app.services.providers import OpenMeteoWeatherProvider

logger = structlog.get_logger("agriflow.schedules")

TERMINAL_STATUSES = frozenset(
	{ScheduleStatusEnum.completed, ScheduleStatusEnum.failed, ScheduleStatusEnum.cancelled}
)
CANCELLABLE_STATUSES = (ScheduleStatusEnum.pending, ScheduleStatusEnum.scheduled)
ACK_STATUSES = (ScheduleStatusEnum.completed, ScheduleStatusEnum.failed)


class ScheduleTransitionError(ValueError):
	"""Raised when a schedule is not in a state that allows the requested transition."""


class ScheduleService:
	def __init__(
		self,
		db: AsyncSession,
		channel: MessageChannel | None = None,
		*,
		namespace: str = "farm",
		weather: OpenMeteoWeatherProvider | None = None,
		redis_client: Redis | None = None,
	):
		self.db = db
		self.channel = channel
		self.namespace = namespace
		self.dispatcher = CommandDispatcher(channel, namespace) if channel is not None else None
		self.notifications = NotificationSink(redis_client) if redis_client is not None else None
		self.weather = weather or OpenMeteoWeatherProvider()
		self.farms = FarmService(db)

	async def create_schedule(self, farm_id: uuid.UUID, payload: ScheduleCreate) -> IrrigationSchedule:
		farm = await self.farms.get_farm(farm_id)

		if payload.crop_id is not None:
			crop = await self.farms.get_crop(payload.crop_id)
			if crop.farm_id != farm_id:
				raise ValueError(f"crop {payload.crop_id} does not belong to farm {farm_id}")
		if payload.device_id is not None:
			device = await self.db.get(Device, payload.device_id)
			if device is None:
				raise LookupError(f"device not found: {payload.device_id}")
			if device.farm_id != farm_id:
				raise ValueError(f"device {payload.device_id} does not belong to farm {farm_id}")

		weather = await self.weather.current(farm.latitude, farm.longitude)
		schedule = IrrigationSchedule(
			farm_id=farm_id,
			crop_id=payload.crop_id,
			device_id=payload.device_id,
			scheduled_time=payload.scheduled_time,
			duration_minutes=payload.duration_minutes,
			water_volume_liters=payload.water_volume_liters,
			status=ScheduleStatusEnum.scheduled,
			triggered_by=payload.triggered_by,
			notes=payload.notes,
			weather_condition=weather.as_dict() if weather is not None else None,
		)
		self.db.add(schedule)
		await self.db.flush()
		await self.db.refresh(schedule)
		logger.info(
			"schedule_created",
			schedule_id=str(schedule.id),
			farm_id=str(farm_id),
			triggered_by=schedule.triggered_by.value,
			weather_captured=weather is not None,
		)
		return schedule

	async def get(self, schedule_id: uuid.UUID) -> IrrigationSchedule:
		schedule = await self.db.get(IrrigationSchedule, schedule_id, populate_existing=True)
		if schedule is None:
			raise LookupError(f"schedule not found: {schedule_id}")
		return schedule

	async def list_for_farm(
		self,
		farm_id: uuid.UUID,
		status: ScheduleStatusEnum | None = None,
	) -> list[IrrigationSchedule]:
		await self.farms.get_farm(farm_id)
		stmt = select(IrrigationSchedule).where(IrrigationSchedule.farm_id == farm_id)
		if status is not None:
			stmt = stmt.where(IrrigationSchedule.status == status)
		stmt = stmt.order_by(IrrigationSchedule.scheduled_time.asc())
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def _transition(
		self,
		schedule_id: uuid.UUID,
		expected: Sequence[ScheduleStatusEnum],
		**values: Any,
	) -> IrrigationSchedule | None:
		stmt = (
			update(IrrigationSchedule)
			.where(
				IrrigationSchedule.id == schedule_id,
				IrrigationSchedule.status.in_(list(expected)),
			)
			.values(**values)
			.returning(IrrigationSchedule)
			.execution_options(synchronize_session=False, populate_existing=True)
		)
		rows = await self.db.execute(stmt)
		return rows.scalar_one_or_none()

	async def trigger(self, schedule_id: uuid.UUID) -> tuple[IrrigationSchedule, PublishResult]:
		"""Move a schedule to ``in_progress`` and send ``start`` to its device.

		The transition is committed before publishing; a failed publish is
		returned to the caller and does not undo it.
		"""
		schedule = await self.get(schedule_id)
		if schedule.status != ScheduleStatusEnum.scheduled:
			raise ScheduleTransitionError(f"cannot trigger a schedule that is {schedule.status.value}")
		if schedule.device_id is None:
			raise ScheduleTransitionError("cannot trigger a schedule without a device")
		device = await self.db.get(Device, schedule.device_id)
		if device is None:
			raise ScheduleTransitionError("cannot trigger a schedule whose device no longer exists")

		updated = await self._transition(
			schedule_id,
			(ScheduleStatusEnum.scheduled,),
			status=ScheduleStatusEnum.in_progress,
			executed_at=datetime.now(UTC),
		)
		if updated is None:
			current = await self.get(schedule_id)
			raise ScheduleTransitionError(f"cannot trigger a schedule that is {current.status.value}")
		await self.db.commit()
		logger.info("schedule_triggered", schedule_id=str(schedule_id), device_id=str(device.id))

		if self.dispatcher is None:
			return updated, PublishResult.failure("", "no messaging channel configured")
		result = await self.dispatcher.publish(
			updated.farm_id,
			device.hardware_id,
			"start",
			{"scheduleId": str(updated.id), "durationMinutes": updated.duration_minutes},
		)
		return updated, result

	async def complete(
		self,
		schedule_id: uuid.UUID,
		status: ScheduleStatusEnum,
		actual_volume_liters: float | None = None,
	) -> IrrigationSchedule | None:
		"""Resolve an ``in_progress`` schedule from a device acknowledgment.

		Returns ``None`` without mutating anything when the schedule is
		unknown, already terminal, or not in progress.
		"""
		if status not in ACK_STATUSES:
			raise ValueError(f"acknowledgment status must be completed or failed, got {status.value}")

		values: dict[str, Any] = {"status": status, "completed_at": datetime.now(UTC)}
		if actual_volume_liters is not None:
			values["actual_volume_liters"] = actual_volume_liters

		updated = await self._transition(schedule_id, (ScheduleStatusEnum.in_progress,), **values)
		if updated is None:
			current = await self.db.get(IrrigationSchedule, schedule_id, populate_existing=True)
			if current is None:
				logger.warning("ack_unknown_schedule", schedule_id=str(schedule_id))
			elif current.status in TERMINAL_STATUSES:
				logger.info("ack_duplicate", schedule_id=str(schedule_id), status=current.status.value)
			else:
				logger.warning("ack_not_in_progress", schedule_id=str(schedule_id), status=current.status.value)
			return None

		await self.db.commit()
		logger.info("schedule_completed", schedule_id=str(schedule_id), status=status.value)
		await self._notify_completion(updated)
		return updated

	async def cancel(self, schedule_id: uuid.UUID, reason: str | None = None) -> IrrigationSchedule:
		schedule = await self.get(schedule_id)
		if schedule.status not in CANCELLABLE_STATUSES:
			raise ScheduleTransitionError(f"cannot cancel a schedule that is {schedule.status.value}")

		values: dict[str, Any] = {"status": ScheduleStatusEnum.cancelled}
		if reason:
			values["notes"] = f"{schedule.notes}\nCancelled: {reason}" if schedule.notes else f"Cancelled: {reason}"

		updated = await self._transition(schedule_id, CANCELLABLE_STATUSES, **values)
		if updated is None:
			current = await self.get(schedule_id)
			raise ScheduleTransitionError(f"cannot cancel a schedule that is {current.status.value}")
		logger.info("schedule_cancelled", schedule_id=str(schedule_id))
		return updated

	async def apply_ack(self, topic: str, payload: dict[str, Any]) -> IngestOutcome:
		"""Resolve a schedule from a device acknowledgment.

		The ack must arrive on the topic of the farm that owns the schedule,
		from the hardware id of the schedule's device.
		"""
		ack = parse_ack(payload)
		if ack is None:
			return IngestOutcome(topic=topic, action="dropped", reason="malformed acknowledgment")
		try:
			address = parse_topic(topic, self.namespace)
		except TopicError as exc:
			return IngestOutcome(topic=topic, action="dropped", reason=str(exc))

		mismatch = await self._ack_source_mismatch(ack.schedule_id, address)
		if mismatch is not None:
			logger.warning(
				"ack_rejected",
				schedule_id=str(ack.schedule_id),
				farm_id=address.farm_id,
				hardware_id=address.hardware_id,
				reason=mismatch,
			)
			return IngestOutcome(topic=topic, action="dropped", reason=mismatch)

		updated = await self.complete(
			ack.schedule_id,
			ScheduleStatusEnum(ack.status),
			ack.actual_volume_liters,
		)
		if updated is None:
			return IngestOutcome(topic=topic, action="ignored", reason="schedule not in progress")
		return IngestOutcome(topic=topic, action="acknowledged", device_id=updated.device_id)

	async def _ack_source_mismatch(self, schedule_id: uuid.UUID, address: TopicAddress) -> str | None:
		schedule = await self.db.get(IrrigationSchedule, schedule_id)
		if schedule is None:
			return "unknown schedule"
		if str(schedule.farm_id) != address.farm_id:
			return "schedule belongs to another farm"
		if schedule.device_id is None:
			return "schedule has no device"
		device = await self.db.get(Device, schedule.device_id)
		if device is None or device.hardware_id != address.hardware_id:
			return "acknowledgment from a different device"
		return None

	async def _notify_completion(self, schedule: IrrigationSchedule) -> None:
		if self.notifications is None:
			return
		farm = await self.farms.get_farm(schedule.farm_id)
		failed = schedule.status == ScheduleStatusEnum.failed
		result = await self.notifications.notify(
			farmer_id=farm.farmer_id,
			farm_id=farm.id,
			type="irrigation",
			priority=NotificationPriorityEnum.high if failed else NotificationPriorityEnum.low,
			title="Irrigation Failed" if failed else "Irrigation Completed",
			message=(
				"Irrigation failed. Please check your equipment."
				if failed
				else f"Irrigation completed for {schedule.duration_minutes} minutes"
			),
		)
		if result.status == PublishStatus.failed:
			logger.error("notification_failed", schedule_id=str(schedule.id), reason=result.reason)
