"""Crop and CropHealth ORM models.

``CropHealth`` is an append-only snapshot series: each refresh inserts a new
row and the decision engine reads only the most recent one per crop.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimeSeriesMixin, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.enums import CropStatusEnum, HealthStatusEnum
from app.models.farm import Farm


class Crop(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A planted crop on a farm."""

    __tablename__ = "crops"
    __table_args__ = (Index("ix_crops_farm_status", "farm_id", "status"),)

    farm_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("farms.id", ondelete="CASCADE"),
        nullable=False,
    )
    crop_type: Mapped[str] = mapped_column(String(100), nullable=False)
    variety: Mapped[str | None] = mapped_column(String(100), nullable=True)
    area_hectares: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[CropStatusEnum] = mapped_column(
        Enum(
            CropStatusEnum,
            name="crop_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=CropStatusEnum.active,
        server_default=CropStatusEnum.active.value,
    )

    # ── Relationships ────────────────────────────────────────────────────
    farm: Mapped[Farm] = relationship(back_populates="crops")

    def __repr__(self) -> str:
        return f"<Crop id={self.id} type={self.crop_type!r} farm={self.farm_id}>"


class CropHealth(Base, TimeSeriesMixin):
    """NDVI-derived health snapshot for one crop."""

    __tablename__ = "crop_health_records"
    __table_args__ = (
        Index("ix_crop_health_records_crop_ts", "crop_id", "recorded_at"),
    )

    crop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("crops.id", ondelete="CASCADE"),
        nullable=False,
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ndvi_value: Mapped[float] = mapped_column(Float, nullable=False)
    health_score: Mapped[int] = mapped_column(nullable=False)
    health_status: Mapped[HealthStatusEnum] = mapped_column(
        Enum(
            HealthStatusEnum,
            name="health_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    moisture_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    humidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    recommendations: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    data_source: Mapped[str] = mapped_column(
        String(64), nullable=False, default="agromonitoring"
    )

    def __repr__(self) -> str:
        return (
            f"<CropHealth id={self.id} crop={self.crop_id} "
            f"score={self.health_score} status={self.health_status}>"
        )
