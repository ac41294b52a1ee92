"""initial_schema

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the farm, crop, device, sensor reading, crop health and irrigation
schedule tables with their PostgreSQL enum types.  ``gen_random_uuid()`` is
built into PostgreSQL 13+, so no extension is required.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7e2b10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# ── Enum type names (PostgreSQL CREATE TYPE) ────────────────────────────────
ENUM_CROP_STATUS = postgresql.ENUM(
    "active", "harvested", "failed", name="crop_status", create_type=False
)
ENUM_HEALTH_STATUS = postgresql.ENUM(
    "excellent",
    "healthy",
    "moderate",
    "stressed",
    "critical",
    name="health_status",
    create_type=False,
)
ENUM_DEVICE_TYPE = postgresql.ENUM(
    "soil_sensor",
    "water_pump",
    "valve",
    "weather_station",
    "npk_sensor",
    name="device_type",
    create_type=False,
)
ENUM_DEVICE_STATUS = postgresql.ENUM(
    "active", "inactive", "maintenance", "offline", name="device_status", create_type=False
)
ENUM_SCHEDULE_STATUS = postgresql.ENUM(
    "pending",
    "scheduled",
    "in_progress",
    "completed",
    "failed",
    "cancelled",
    name="schedule_status",
    create_type=False,
)
ENUM_IRRIGATION_TRIGGER = postgresql.ENUM(
    "manual", "auto", "schedule", "sensor", name="irrigation_trigger", create_type=False
)

ALL_ENUMS = (
    ENUM_CROP_STATUS,
    ENUM_HEALTH_STATUS,
    ENUM_DEVICE_TYPE,
    ENUM_DEVICE_STATUS,
    ENUM_SCHEDULE_STATUS,
    ENUM_IRRIGATION_TRIGGER,
)


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _series_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column(
            "ingested_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── 1. Create enum types ────────────────────────────────────────────
    for enum in ALL_ENUMS:
        enum.create(op.get_bind(), checkfirst=True)

    # ── 2. Reference tables (owned by the farm service) ────────────────

    # farms
    op.create_table(
        "farms",
        _uuid_pk(),
        sa.Column("farmer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("area_hectares", sa.Float(), nullable=True),
        sa.Column("polygon_id", sa.String(100), nullable=True),
        sa.Column(
            "timezone",
            sa.String(64),
            server_default=sa.text("'UTC'"),
            nullable=False,
        ),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_farms_farmer_id", "farms", ["farmer_id"])

    # crops
    op.create_table(
        "crops",
        _uuid_pk(),
        sa.Column("farm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("crop_type", sa.String(100), nullable=False),
        sa.Column("variety", sa.String(100), nullable=True),
        sa.Column("area_hectares", sa.Float(), nullable=True),
        sa.Column(
            "status",
            ENUM_CROP_STATUS,
            server_default="active",
            nullable=False,
        ),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crops_farm_status", "crops", ["farm_id", "status"])

    # ── 3. Devices ──────────────────────────────────────────────────────

    # iot_devices
    op.create_table(
        "iot_devices",
        _uuid_pk(),
        sa.Column("farm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("hardware_id", sa.String(100), nullable=False),
        sa.Column("device_type", ENUM_DEVICE_TYPE, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column(
            "status",
            ENUM_DEVICE_STATUS,
            server_default="active",
            nullable=False,
        ),
        sa.Column("firmware_version", sa.String(20), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("battery_level", sa.Integer(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("hardware_id", name="uq_iot_devices_hardware_id"),
    )
    op.create_index(
        "ix_iot_devices_farm_type_status",
        "iot_devices",
        ["farm_id", "device_type", "status"],
    )

    # ── 4. Time-series tables ───────────────────────────────────────────

    # sensor_readings
    op.create_table(
        "sensor_readings",
        *_series_columns(),
        sa.Column("device_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("soil_moisture", sa.Float(), nullable=True),
        sa.Column("soil_temperature", sa.Float(), nullable=True),
        sa.Column("air_temperature", sa.Float(), nullable=True),
        sa.Column("air_humidity", sa.Float(), nullable=True),
        sa.Column("light_intensity", sa.Float(), nullable=True),
        sa.Column("raw_data", postgresql.JSONB(), nullable=False),
        sa.ForeignKeyConstraint(
            ["device_id"], ["iot_devices.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sensor_readings_device_ts",
        "sensor_readings",
        ["device_id", "recorded_at"],
    )

    # crop_health_records
    op.create_table(
        "crop_health_records",
        *_series_columns(),
        sa.Column("crop_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ndvi_value", sa.Float(), nullable=False),
        sa.Column("health_score", sa.Integer(), nullable=False),
        sa.Column("health_status", ENUM_HEALTH_STATUS, nullable=False),
        sa.Column("moisture_level", sa.Float(), nullable=True),
        sa.Column("temperature", sa.Float(), nullable=True),
        sa.Column("humidity", sa.Float(), nullable=True),
        sa.Column("recommendations", postgresql.JSONB(), nullable=True),
        sa.Column("data_source", sa.String(64), nullable=False),
        sa.ForeignKeyConstraint(["crop_id"], ["crops.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_crop_health_records_crop_ts",
        "crop_health_records",
        ["crop_id", "recorded_at"],
    )

    # ── 5. Irrigation schedules ─────────────────────────────────────────
    op.create_table(
        "irrigation_schedules",
        _uuid_pk(),
        sa.Column("farm_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("crop_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("device_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("water_volume_liters", sa.Float(), nullable=True),
        sa.Column(
            "status",
            ENUM_SCHEDULE_STATUS,
            server_default="pending",
            nullable=False,
        ),
        sa.Column("triggered_by", ENUM_IRRIGATION_TRIGGER, nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_volume_liters", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("weather_condition", postgresql.JSONB(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint(
            "duration_minutes >= 1",
            name="ck_irrigation_schedules_duration_positive",
        ),
        sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["crop_id"], ["crops.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["device_id"], ["iot_devices.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_irrigation_schedules_farm_status",
        "irrigation_schedules",
        ["farm_id", "status"],
    )
    op.create_index(
        "ix_irrigation_schedules_scheduled_time",
        "irrigation_schedules",
        ["scheduled_time"],
    )


def downgrade() -> None:
    # ── Drop tables in reverse dependency order ─────────────────────────
    op.drop_table("irrigation_schedules")
    op.drop_table("crop_health_records")
    op.drop_table("sensor_readings")
    op.drop_table("iot_devices")
    op.drop_table("crops")
    op.drop_table("farms")

    # ── Drop enum types ─────────────────────────────────────────────────
    for enum in reversed(ALL_ENUMS):
        enum.drop(op.get_bind(), checkfirst=True)
