"""Farm ORM model — the owning root for devices, crops, and schedules.

Farms are created and edited by the farm management service; this service
only reads them.  ``farmer_id`` is the opaque owner identifier issued by the
external identity provider and is forwarded to the notification sink.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Float, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from app.models.crops import Crop
    from app.models.devices import Device


class Farm(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A physical farm with a reference location for weather lookups.

    ``polygon_id`` references the field boundary registered with the
    satellite provider; NULL means no NDVI data can be fetched.
    """

    __tablename__ = "farms"

    farmer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    area_hectares: Mapped[float | None] = mapped_column(Float, nullable=True)
    polygon_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    timezone: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="UTC",
        server_default=text("'UTC'"),
    )

    # ── Relationships ────────────────────────────────────────────────────
    crops: Mapped[list[Crop]] = relationship(
        back_populates="farm",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    devices: Mapped[list[Device]] = relationship(
        back_populates="farm",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Farm id={self.id} name={self.name!r}>"
