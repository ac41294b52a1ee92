from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.models.enums import HealthStatusEnum, UrgencyEnum
from app.schemas.irrigation import Recommendation, WaterRequirement
from app.services.farm_service import FarmService
from app.services.irrigation_engine import (
    IrrigationEngine,
    NeedAssessment,
    adjust_for_rain,
    calculate_irrigation_need,
    escalate_for_stress,
    rain_expected,
    rank_recommendations,
    water_requirement,
)
from app.services.providers import ForecastEntry
from app.services.reading_store import ReadingStore
from tests.conftest import FakeAsyncSession, FakeRedis

NOW = datetime(2026, 6, 1, 6, 0, tzinfo=UTC)
RAIN = [ForecastEntry(timestamp=NOW + timedelta(hours=6), precipitation_mm=8.0)]
DRY = [ForecastEntry(timestamp=NOW + timedelta(hours=6), precipitation_mm=1.0)]


def _crop(crop_type: str = "wheat") -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), crop_type=crop_type)


def _reading(moisture: float | None) -> SimpleNamespace:
    return SimpleNamespace(soil_moisture=moisture)


def _health(status: HealthStatusEnum | None = None, moisture: float | None = None) -> SimpleNamespace:
    return SimpleNamespace(health_status=status, moisture_level=moisture)


def _need(moisture: float | None, forecast: list[ForecastEntry] | None, health: SimpleNamespace | None = None) -> Recommendation | None:
    return calculate_irrigation_need(_crop(), SimpleNamespace(), health, _reading(moisture), forecast, NOW)


def test_critical_with_rain_is_untouched() -> None:
    result = _need(15, RAIN)
    assert result is not None
    assert result.urgency == UrgencyEnum.critical
    assert result.recommended_duration == 60
    assert result.weather_forecast == "Rain expected in next 24 hours"


def test_high_with_rain_downgrades_and_halves_duration() -> None:
    result = _need(30, RAIN)
    assert result is not None
    assert result.urgency == UrgencyEnum.medium
    assert result.recommended_duration == 23
    assert result.reason == "Soil moisture below optimal level. Rain expected - reduced urgency."


def test_medium_with_rain_becomes_low() -> None:
    result = _need(45, RAIN)
    assert result is not None
    assert result.urgency == UrgencyEnum.low
    assert result.recommended_duration == 15
    assert result.reason.endswith("Consider waiting for rain.")


def test_low_with_rain_is_suppressed() -> None:
    assert _need(60, RAIN, _health(HealthStatusEnum.healthy)) is None


def test_stressed_crop_promotes_low_to_medium() -> None:
    result = _need(60, DRY, _health(HealthStatusEnum.stressed))
    assert result is not None
    assert result.urgency == UrgencyEnum.medium
    assert result.recommended_duration == 30
    assert result.reason == "Crop showing signs of stress."


def test_stress_runs_after_rain_downgrade() -> None:
    result = _need(45, RAIN, _health(HealthStatusEnum.critical))
    assert result is not None
    assert result.urgency == UrgencyEnum.medium
    assert result.recommended_duration == 15
    assert result.reason.endswith("Consider waiting for rain. Crop showing signs of stress.")


@pytest.mark.parametrize("health", [None, _health(HealthStatusEnum.critical)])
def test_wet_soil_returns_nothing(health: SimpleNamespace | None) -> None:
    assert _need(85, DRY, health) is None
    assert _need(85, RAIN, health) is None


def test_default_band_and_unknown_moisture() -> None:
    result = _need(80, DRY)
    assert result is not None
    assert result.urgency == UrgencyEnum.low
    assert result.reason == "Scheduled maintenance irrigation"

    unknown = _need(None, DRY)
    assert unknown is not None
    assert unknown.urgency == UrgencyEnum.low
    assert unknown.moisture is None
    assert unknown.moisture_source is None


def test_sensor_zero_is_a_real_reading() -> None:
    result = calculate_irrigation_need(_crop(), SimpleNamespace(), _health(moisture=90), _reading(0.0), DRY, NOW)
    assert result is not None
    assert result.urgency == UrgencyEnum.critical
    assert result.moisture_source == "sensor"


def test_satellite_moisture_is_the_fallback() -> None:
    result = calculate_irrigation_need(_crop(), SimpleNamespace(), _health(moisture=30), None, DRY, NOW)
    assert result is not None
    assert result.urgency == UrgencyEnum.high
    assert result.moisture_source == "satellite"


def test_missing_forecast_is_reported() -> None:
    result = _need(60, None)
    assert result is not None
    assert result.forecast_available is False
    assert result.weather_forecast == "Forecast unavailable"


def test_rain_window_and_threshold() -> None:
    assert rain_expected(RAIN, NOW)
    assert not rain_expected(DRY, NOW)
    assert not rain_expected(None, NOW)
    assert not rain_expected([ForecastEntry(timestamp=NOW + timedelta(hours=27), precipitation_mm=30.0)], NOW)
    assert not rain_expected([ForecastEntry(timestamp=NOW, precipitation_mm=5.0)], NOW)
    assert rain_expected([ForecastEntry(timestamp=NOW + timedelta(hours=24), precipitation_mm=5.1)], NOW)


def test_steps_are_pure() -> None:
    start = NeedAssessment(
        moisture=30,
        moisture_source="sensor",
        rain_expected=True,
        forecast_available=True,
        health_status=HealthStatusEnum.stressed,
        urgency=UrgencyEnum.high,
        duration=45,
        reason="Soil moisture below optimal level",
    )
    after = escalate_for_stress(adjust_for_rain(start))
    assert start.urgency == UrgencyEnum.high
    assert after.urgency == UrgencyEnum.medium
    assert after.duration == 23


def test_water_requirement_lookup_is_case_insensitive() -> None:
    assert water_requirement("Rice") == WaterRequirement(min=800, optimal=1200, max=1500)
    assert water_requirement("dragonfruit") == WaterRequirement(min=350, optimal=500, max=700)


def test_ranking_is_by_urgency_and_stable() -> None:
    def _rec(urgency: UrgencyEnum, crop_type: str) -> Recommendation:
        return Recommendation(
            crop_id=uuid.uuid4(),
            crop_type=crop_type,
            recommended_duration=30,
            urgency=urgency,
            reason="r",
            weather_forecast="w",
            water_requirement=water_requirement(crop_type),
        )

    items = [
        _rec(UrgencyEnum.low, "a"),
        _rec(UrgencyEnum.critical, "b"),
        _rec(UrgencyEnum.medium, "c"),
        _rec(UrgencyEnum.high, "d"),
        _rec(UrgencyEnum.low, "e"),
    ]
    ranked = rank_recommendations(items)
    assert [item.urgency for item in ranked] == [
        UrgencyEnum.critical,
        UrgencyEnum.high,
        UrgencyEnum.medium,
        UrgencyEnum.low,
        UrgencyEnum.low,
    ]
    assert [item.crop_type for item in ranked][-2:] == ["a", "e"]


@pytest.mark.asyncio
async def test_recommend_skips_failing_crop_and_caches(
    fake_db_session: FakeAsyncSession,
    fake_redis: FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    farm = SimpleNamespace(id=uuid.uuid4(), latitude=10.0, longitude=20.0)
    good, bad, wet = _crop("rice"), _crop("maize"), _crop("cotton")

    async def _latest_health(_self: FarmService, crop_id: uuid.UUID) -> SimpleNamespace | None:
        if crop_id == bad.id:
            raise RuntimeError("snapshot query failed")
        if crop_id == wet.id:
            return _health(HealthStatusEnum.healthy)
        return _health(HealthStatusEnum.stressed)

    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=farm))
    monkeypatch.setattr(FarmService, "list_active_crops", AsyncMock(return_value=[good, bad, wet]))
    monkeypatch.setattr(FarmService, "latest_health", _latest_health)
    monkeypatch.setattr(ReadingStore, "latest_for_farm", AsyncMock(return_value=_reading(30)))
    weather = SimpleNamespace(forecast=AsyncMock(return_value=RAIN))
    engine = IrrigationEngine(fake_db_session, fake_redis, weather)

    response = await engine.recommend(farm.id)

    assert response.cached is False
    assert response.skipped_crop_ids == [bad.id]
    assert [item.crop_id for item in response.items] == [good.id, wet.id]
    assert all(item.urgency == UrgencyEnum.medium for item in response.items)
    assert response.items[0].reason.endswith("Crop showing signs of stress.")
    weather.forecast.assert_awaited_once_with(10.0, 20.0)
    key, body = fake_redis.set.await_args.args
    assert key == f"agriflow:recommendations:{farm.id}"
    assert json.loads(body)["farm_id"] == str(farm.id)


@pytest.mark.asyncio
async def test_recommend_returns_cached_response(
    fake_db_session: FakeAsyncSession,
    fake_redis: FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    farm_id = uuid.uuid4()
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(return_value=SimpleNamespace(id=farm_id)))
    list_crops = AsyncMock(return_value=[])
    monkeypatch.setattr(FarmService, "list_active_crops", list_crops)
    fake_redis.get = AsyncMock(
        return_value=json.dumps({"farm_id": str(farm_id), "generated_at": NOW.isoformat(), "items": []})
    )
    engine = IrrigationEngine(fake_db_session, fake_redis, SimpleNamespace(forecast=AsyncMock()))

    response = await engine.recommend(farm_id)

    assert response.cached is True
    list_crops.assert_not_awaited()


@pytest.mark.asyncio
async def test_recommend_unknown_farm_raises(
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(FarmService, "get_farm", AsyncMock(side_effect=LookupError("farm not found")))
    engine = IrrigationEngine(fake_db_session, None, SimpleNamespace(forecast=AsyncMock()))

    with pytest.raises(LookupError):
        await engine.recommend(uuid.uuid4())
