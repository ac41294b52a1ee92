from __future__ import annotations

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.models.crops import CropHealth
from app.models.enums import HealthStatusEnum
from app.services.farm_service import FarmService
from app.services.health_service import (
    CropHealthService,
    generate_recommendations,
    health_score,
    health_status,
)
from app.services.providers import CurrentWeather, NdviObservation
from tests.conftest import FakeAsyncSession, FakeRedis


@pytest.mark.parametrize(
    ("ndvi", "expected"),
    [(-0.5, 0), (0.1, 10), (0.3, 35), (0.5, 65), (0.8, 90), (0.0, 0), (0.2, 20), (0.4, 50), (0.6, 80)],
)
def test_health_score_reference_values(ndvi: float, expected: int) -> None:
    assert health_score(ndvi) == expected


def test_health_score_is_monotonic_and_unclamped() -> None:
    samples = [x / 100 for x in range(-100, 101)]
    scores = [health_score(x) for x in samples]
    assert scores == sorted(scores)
    assert health_score(1.0) == 100


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (19, HealthStatusEnum.critical),
        (20, HealthStatusEnum.stressed),
        (39, HealthStatusEnum.stressed),
        (40, HealthStatusEnum.moderate),
        (59, HealthStatusEnum.moderate),
        (60, HealthStatusEnum.healthy),
        (79, HealthStatusEnum.healthy),
        (80, HealthStatusEnum.excellent),
    ],
)
def test_health_status_boundaries(score: int, expected: HealthStatusEnum) -> None:
    assert health_status(score) == expected


def test_recommendations_for_stressed_hot_dry_crop() -> None:
    items = generate_recommendations(score=25, ndvi=0.25, moisture=20, temperature=38)
    assert items == [
        "Crop shows signs of stress. Check for pest infestation or disease.",
        "Consider soil testing for nutrient deficiencies.",
        "Soil moisture is low. Schedule irrigation soon.",
        "High temperature detected. Consider increasing irrigation frequency.",
        "Apply mulching to retain soil moisture.",
        "Consider consulting an agricultural expert for detailed assessment.",
    ]


def test_recommendations_for_healthy_crop_are_empty() -> None:
    assert generate_recommendations(score=90, ndvi=0.8, moisture=55, temperature=22) == []
    assert generate_recommendations(score=65, ndvi=0.45, moisture=None, temperature=5) == [
        "Moderate vegetation health. Ensure adequate water and nutrients.",
        "Low temperature detected. Monitor for frost damage.",
    ]


def _providers(observations: list[NdviObservation]) -> tuple[SimpleNamespace, SimpleNamespace]:
    weather = SimpleNamespace(current=AsyncMock(return_value=CurrentWeather(temperature=36.0, humidity=40.0, condition="Clear")))
    crop_health = SimpleNamespace(
        ndvi_history=AsyncMock(return_value=observations),
        soil_moisture=AsyncMock(return_value=25.0),
    )
    return weather, crop_health


@pytest.mark.asyncio
async def test_refresh_stores_snapshot_from_latest_ndvi(
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    crop = SimpleNamespace(id=uuid.uuid4(), farm_id=uuid.uuid4())
    farm = SimpleNamespace(id=crop.farm_id, polygon_id="poly-1", latitude=12.9, longitude=77.6)
    monkeypatch.setattr(FarmService, "get_crop", AsyncMock(return_value=crop))
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=farm))
    weather, crop_health = _providers(
        [
            NdviObservation(timestamp=datetime(2026, 5, 1, tzinfo=UTC), mean=0.7),
            NdviObservation(timestamp=datetime(2026, 5, 4, tzinfo=UTC), mean=0.3),
        ]
    )
    service = CropHealthService(fake_db_session, weather, crop_health)

    record = await service.refresh(crop.id)

    assert isinstance(record, CropHealth)
    assert record.ndvi_value == 0.3
    assert record.health_score == 35
    assert record.health_status == HealthStatusEnum.stressed
    assert record.moisture_level == 25.0
    assert record.temperature == 36.0
    assert "Soil moisture is low. Schedule irrigation soon." in record.recommendations
    fake_db_session.add.assert_called_once_with(record)


@pytest.mark.asyncio
async def test_refresh_commits_then_drops_cached_recommendations(
    fake_db_session: FakeAsyncSession,
    fake_redis: FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    crop = SimpleNamespace(id=uuid.uuid4(), farm_id=uuid.uuid4())
    farm = SimpleNamespace(id=crop.farm_id, polygon_id="poly-1", latitude=12.9, longitude=77.6)
    monkeypatch.setattr(FarmService, "get_crop", AsyncMock(return_value=crop))
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=farm))
    weather, crop_health = _providers([NdviObservation(timestamp=datetime(2026, 5, 4, tzinfo=UTC), mean=0.5)])
    calls: list[str] = []
    fake_db_session.commit.side_effect = lambda: calls.append("commit")
    fake_redis.delete.side_effect = lambda *_keys: calls.append("delete")
    service = CropHealthService(fake_db_session, weather, crop_health, redis_client=fake_redis)

    await service.refresh(crop.id)

    assert calls == ["commit", "delete"]
    fake_redis.delete.assert_awaited_once_with(f"agriflow:recommendations:{crop.farm_id}")


@pytest.mark.asyncio
async def test_refresh_survives_cache_invalidation_error(
    fake_db_session: FakeAsyncSession,
    fake_redis: FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    crop = SimpleNamespace(id=uuid.uuid4(), farm_id=uuid.uuid4())
    farm = SimpleNamespace(id=crop.farm_id, polygon_id="poly-1", latitude=0.0, longitude=0.0)
    monkeypatch.setattr(FarmService, "get_crop", AsyncMock(return_value=crop))
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=farm))
    weather, crop_health = _providers([NdviObservation(timestamp=datetime(2026, 5, 4, tzinfo=UTC), mean=0.5)])
    fake_redis.delete = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    service = CropHealthService(fake_db_session, weather, crop_health, redis_client=fake_redis)

    record = await service.refresh(crop.id)

    assert record.health_score == 65
    fake_db_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_refresh_without_ndvi_is_not_found(
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    crop = SimpleNamespace(id=uuid.uuid4(), farm_id=uuid.uuid4())
    farm = SimpleNamespace(id=crop.farm_id, polygon_id="poly-1", latitude=0.0, longitude=0.0)
    monkeypatch.setattr(FarmService, "get_crop", AsyncMock(return_value=crop))
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=farm))
    weather, crop_health = _providers([])
    service = CropHealthService(fake_db_session, weather, crop_health)

    with pytest.raises(LookupError):
        await service.refresh(crop.id)
    fake_db_session.add.assert_not_called()


@pytest.mark.asyncio
async def test_refresh_requires_polygon(
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    crop = SimpleNamespace(id=uuid.uuid4(), farm_id=uuid.uuid4())
    farm = SimpleNamespace(id=crop.farm_id, polygon_id=None, latitude=0.0, longitude=0.0)
    monkeypatch.setattr(FarmService, "get_crop", AsyncMock(return_value=crop))
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=farm))
    weather, crop_health = _providers([])
    service = CropHealthService(fake_db_session, weather, crop_health)

    with pytest.raises(LookupError):
        await service.refresh(crop.id)
    crop_health.ndvi_history.assert_not_awaited()
