"""IoT device registry and sensor reading ORM models.

``Device.hardware_id`` is the identifier the hardware reports on the
messaging channel (MAC address or serial) and is unique across the whole
fleet; ``Device.id`` is the internal key every other table references.

``SensorReading`` uses a BIGSERIAL key (via ``TimeSeriesMixin``) because it
is the highest-volume table in the schema.  ``raw_data`` always holds the
original payload, including keys the typed columns cannot represent.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimeSeriesMixin, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.enums import DeviceStatusEnum, DeviceTypeEnum
from app.models.farm import Farm


class Device(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A registered field device (sensor, pump, valve, weather station)."""

    __tablename__ = "iot_devices"
    __table_args__ = (
        Index("ix_iot_devices_farm_type_status", "farm_id", "device_type", "status"),
    )

    farm_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("farms.id", ondelete="CASCADE"),
        nullable=False,
    )
    hardware_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    device_type: Mapped[DeviceTypeEnum] = mapped_column(
        Enum(
            DeviceTypeEnum,
            name="device_type",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Unnamed Device"
    )
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[DeviceStatusEnum] = mapped_column(
        Enum(
            DeviceStatusEnum,
            name="device_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=DeviceStatusEnum.active,
        server_default=DeviceStatusEnum.active.value,
    )
    firmware_version: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    battery_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True
    )

    # ── Relationships ────────────────────────────────────────────────────
    farm: Mapped[Farm] = relationship(back_populates="devices")

    def __repr__(self) -> str:
        return (
            f"<Device id={self.id} hw={self.hardware_id!r} "
            f"type={self.device_type}>"
        )


class SensorReading(Base, TimeSeriesMixin):
    """One normalized telemetry message from a device."""

    __tablename__ = "sensor_readings"
    __table_args__ = (
        Index("ix_sensor_readings_device_ts", "device_id", "recorded_at"),
    )

    device_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("iot_devices.id", ondelete="CASCADE"),
        nullable=False,
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    soil_moisture: Mapped[float | None] = mapped_column(Float, nullable=True)
    soil_temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    air_temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    air_humidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    light_intensity: Mapped[float | None] = mapped_column(Float, nullable=True)
    raw_data: Mapped[dict] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SensorReading id={self.id} device={self.device_id} "
            f"ts={self.recorded_at}>"
        )
