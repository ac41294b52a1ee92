"""PostgreSQL-backed enum types for all ORM models.

Each StrEnum maps 1:1 to a PostgreSQL CREATE TYPE ... AS ENUM, except
``UrgencyEnum`` and ``NotificationPriorityEnum`` which only travel over the
API and the messaging channel.
"""

from enum import StrEnum

# ── Devices ─────────────────────────────────────────────────────────────────


class DeviceTypeEnum(StrEnum):
    """Kinds of field hardware that can be registered."""

    soil_sensor = "soil_sensor"
    water_pump = "water_pump"
    valve = "valve"
    weather_station = "weather_station"
    npk_sensor = "npk_sensor"


class DeviceStatusEnum(StrEnum):
    """Operational status of a registered device."""

    active = "active"
    inactive = "inactive"
    maintenance = "maintenance"
    offline = "offline"


# ── Crops ───────────────────────────────────────────────────────────────────


class CropStatusEnum(StrEnum):
    active = "active"
    harvested = "harvested"
    failed = "failed"


class HealthStatusEnum(StrEnum):
    """Banding of the NDVI-derived health score."""

    excellent = "excellent"
    healthy = "healthy"
    moderate = "moderate"
    stressed = "stressed"
    critical = "critical"


# ── Irrigation ──────────────────────────────────────────────────────────────


class ScheduleStatusEnum(StrEnum):
    """Irrigation schedule lifecycle states."""

    pending = "pending"
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class IrrigationTriggerEnum(StrEnum):
    """What created an irrigation schedule."""

    manual = "manual"
    auto = "auto"
    schedule = "schedule"
    sensor = "sensor"


class UrgencyEnum(StrEnum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class NotificationPriorityEnum(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"
