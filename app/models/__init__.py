"""ORM model registry — importing this module registers every table on Base.metadata.

Alembic ``env.py`` imports ``Base`` from here (not from ``base.py``) so that
autogenerate sees all tables.  Application code can also do::

    from app.models import Device, SensorReading, IrrigationSchedule, ...
"""

# ── Base & Mixins ───────────────────────────────────────────────────────────
from app.models.base import (
    Base,
    TimeSeriesMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

# ── Crops ───────────────────────────────────────────────────────────────────
from app.models.crops import Crop, CropHealth

# ── Devices & telemetry ─────────────────────────────────────────────────────
from app.models.devices import Device, SensorReading

# ── Enums ───────────────────────────────────────────────────────────────────
from app.models.enums import (
    CropStatusEnum,
    DeviceStatusEnum,
    DeviceTypeEnum,
    HealthStatusEnum,
    IrrigationTriggerEnum,
    NotificationPriorityEnum,
    ScheduleStatusEnum,
    UrgencyEnum,
)

# ── Farm ────────────────────────────────────────────────────────────────────
from app.models.farm import Farm

# ── Irrigation ──────────────────────────────────────────────────────────────
from app.models.irrigation import IrrigationSchedule

__all__ = [
    # Base & mixins
    "Base",
    # Crops
    "Crop",
    "CropHealth",
    "CropStatusEnum",
    # Devices
    "Device",
    "DeviceStatusEnum",
    "DeviceTypeEnum",
    # Farm
    "Farm",
    "HealthStatusEnum",
    # Irrigation
    "IrrigationSchedule",
    "IrrigationTriggerEnum",
    "NotificationPriorityEnum",
    "ScheduleStatusEnum",
    "SensorReading",
    "TimeSeriesMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "UrgencyEnum",
]
