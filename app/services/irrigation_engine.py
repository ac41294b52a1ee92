"""Irrigation decision engine.

``calculate_irrigation_need`` is pure: the caller fetches the crop, its
latest health snapshot, the latest soil reading and the forecast, and the
function folds them through a fixed sequence of steps over an immutable
``NeedAssessment``.  ``IrrigationEngine.recommend`` does the fetching for a
whole farm and caches the ranked result in Redis.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

import structlog
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.enums import HealthStatusEnum, UrgencyEnum
from app.schemas.irrigation import Recommendation, RecommendationsResponse, WaterRequirement
from app.services.farm_service import FarmService
from app.services import recommendation_cache
from app.services.health_service import round_half_up
from app.services.providers import ForecastEntry, OpenMeteoWeatherProvider
from app.services.reading_store import ReadingStore

logger = structlog.get_logger("agriflow.irrigation")

# Liters per hectare per day.
CROP_WATER_REQUIREMENTS: dict[str, WaterRequirement] = {
	"rice": WaterRequirement(min=800, optimal=1200, max=1500),
	"wheat": WaterRequirement(min=300, optimal=450, max=600),
	"cotton": WaterRequirement(min=400, optimal=600, max=800),
	"sugarcane": WaterRequirement(min=1000, optimal=1500, max=2000),
	"maize": WaterRequirement(min=400, optimal=550, max=700),
	"vegetables": WaterRequirement(min=300, optimal=450, max=600),
	"default": WaterRequirement(min=350, optimal=500, max=700),
}

URGENCY_RANK: dict[UrgencyEnum, int] = {
	UrgencyEnum.critical: 0,
	UrgencyEnum.high: 1,
	UrgencyEnum.medium: 2,
	UrgencyEnum.low: 3,
}

RAIN_WINDOW_HOURS = 24
RAIN_THRESHOLD_MM = 5.0
DEFAULT_DURATION_MINUTES = 30
DEFAULT_REASON = "Scheduled maintenance irrigation"
RAIN_FORECAST = "Rain expected in next 24 hours"
NO_RAIN_FORECAST = "No significant rain expected"
FORECAST_UNAVAILABLE = "Forecast unavailable"
STRESSED_STATUSES = frozenset({HealthStatusEnum.stressed, HealthStatusEnum.critical})


def water_requirement(crop_type: str) -> WaterRequirement:
	return CROP_WATER_REQUIREMENTS.get(crop_type.strip().lower(), CROP_WATER_REQUIREMENTS["default"])


def rain_expected(forecast: Sequence[ForecastEntry] | None, now: datetime) -> bool:
	if not forecast:
		return False
	return any(
		entry.hours_ahead(now) <= RAIN_WINDOW_HOURS and entry.precipitation_mm > RAIN_THRESHOLD_MM
		for entry in forecast
	)


@dataclass(frozen=True, slots=True)
class NeedAssessment:
	"""Recommendation-in-progress; ``urgency is None`` means nothing to recommend."""

	moisture: float | None
	moisture_source: str | None
	rain_expected: bool
	forecast_available: bool
	health_status: HealthStatusEnum | None
	urgency: UrgencyEnum | None = UrgencyEnum.low
	duration: int = DEFAULT_DURATION_MINUTES
	reason: str = ""


Step = Callable[[NeedAssessment], NeedAssessment]


def _append(reason: str, sentence: str) -> str:
	return f"{reason} {sentence}".strip() if reason else sentence


def band_by_moisture(assessment: NeedAssessment) -> NeedAssessment:
	moisture = assessment.moisture
	if moisture is None:
		return assessment
	if moisture < 20:
		return replace(assessment, urgency=UrgencyEnum.critical, duration=60, reason="Soil moisture critically low")
	if moisture < 35:
		return replace(assessment, urgency=UrgencyEnum.high, duration=45, reason="Soil moisture below optimal level")
	if moisture < 50:
		return replace(
			assessment,
			urgency=UrgencyEnum.medium,
			duration=30,
			reason="Soil moisture approaching low threshold",
		)
	if moisture > 80:
		return replace(assessment, urgency=None)
	return assessment


def adjust_for_rain(assessment: NeedAssessment) -> NeedAssessment:
	if not assessment.rain_expected or assessment.urgency in (None, UrgencyEnum.critical):
		return assessment
	if assessment.urgency == UrgencyEnum.high:
		return replace(
			assessment,
			urgency=UrgencyEnum.medium,
			duration=round_half_up(assessment.duration * 0.5),
			reason=assessment.reason + ". Rain expected - reduced urgency.",
		)
	if assessment.urgency == UrgencyEnum.medium:
		return replace(
			assessment,
			urgency=UrgencyEnum.low,
			duration=round_half_up(assessment.duration * 0.5),
			reason=assessment.reason + ". Consider waiting for rain.",
		)
	return replace(assessment, urgency=None)


def escalate_for_stress(assessment: NeedAssessment) -> NeedAssessment:
	if assessment.urgency is None or assessment.health_status not in STRESSED_STATUSES:
		return assessment
	urgency = UrgencyEnum.medium if assessment.urgency == UrgencyEnum.low else assessment.urgency
	return replace(assessment, urgency=urgency, reason=_append(assessment.reason, "Crop showing signs of stress."))


# Rain adjustment must run before stress escalation.
ASSESSMENT_STEPS: tuple[Step, ...] = (band_by_moisture, adjust_for_rain, escalate_for_stress)


def resolve_moisture(latest_health: Any | None, latest_reading: Any | None) -> tuple[float | None, str | None]:
	sensor = getattr(latest_reading, "soil_moisture", None)
	if sensor is not None:
		return float(sensor), "sensor"
	satellite = getattr(latest_health, "moisture_level", None)
	if satellite is not None:
		return float(satellite), "satellite"
	return None, None


def calculate_irrigation_need(
	crop: Any,
	farm: Any,
	latest_health: Any | None,
	latest_reading: Any | None,
	forecast: Sequence[ForecastEntry] | None,
	now: datetime | None = None,
) -> Recommendation | None:
	"""Recommendation for one crop, or ``None`` when no irrigation is needed.

	``farm`` is accepted for parity with the fetch context and is not read.
	``forecast is None`` means the provider was unavailable.
	"""
	now = now or datetime.now(UTC)
	moisture, source = resolve_moisture(latest_health, latest_reading)
	assessment = NeedAssessment(
		moisture=moisture,
		moisture_source=source,
		rain_expected=rain_expected(forecast, now),
		forecast_available=forecast is not None,
		health_status=getattr(latest_health, "health_status", None),
	)
	for step in ASSESSMENT_STEPS:
		assessment = step(assessment)
		if assessment.urgency is None:
			return None

	if not assessment.forecast_available:
		weather_forecast = FORECAST_UNAVAILABLE
	elif assessment.rain_expected:
		weather_forecast = RAIN_FORECAST
	else:
		weather_forecast = NO_RAIN_FORECAST

	return Recommendation(
		crop_id=crop.id,
		crop_type=crop.crop_type,
		recommended_duration=assessment.duration,
		urgency=assessment.urgency,
		reason=assessment.reason or DEFAULT_REASON,
		weather_forecast=weather_forecast,
		forecast_available=assessment.forecast_available,
		moisture=assessment.moisture,
		moisture_source=assessment.moisture_source,
		water_requirement=water_requirement(crop.crop_type),
	)


def rank_recommendations(items: Sequence[Recommendation]) -> list[Recommendation]:
	return sorted(items, key=lambda item: URGENCY_RANK[item.urgency])


class IrrigationEngine:
	def __init__(
		self,
		db: AsyncSession,
		redis_client: Redis | None = None,
		weather: OpenMeteoWeatherProvider | None = None,
	):
		self.db = db
		self.redis_client = redis_client
		self.settings = get_settings()
		self.weather = weather or OpenMeteoWeatherProvider(self.settings)
		self.farms = FarmService(db)
		self.readings = ReadingStore(db)

	async def recommend(self, farm_id: uuid.UUID, *, use_cache: bool = True) -> RecommendationsResponse:
		farm = await self.farms.get_farm(farm_id)

		if use_cache:
			cached = await recommendation_cache.read(self.redis_client, farm_id)
			if cached is not None:
				return cached

		crops = await self.farms.list_active_crops(farm_id)
		latest_reading = await self.readings.latest_for_farm(farm_id)
		forecast = await self.weather.forecast(farm.latitude, farm.longitude)
		now = datetime.now(UTC)

		items: list[Recommendation] = []
		skipped: list[uuid.UUID] = []
		for crop in crops:
			try:
				latest_health = await self.farms.latest_health(crop.id)
				recommendation = calculate_irrigation_need(crop, farm, latest_health, latest_reading, forecast, now)
			except Exception:
				logger.exception("recommendation_failed", farm_id=str(farm_id), crop_id=str(crop.id))
				skipped.append(crop.id)
				continue
			if recommendation is not None:
				items.append(recommendation)

		response = RecommendationsResponse(
			farm_id=farm_id,
			generated_at=now,
			items=rank_recommendations(items),
			skipped_crop_ids=skipped,
		)
		logger.info(
			"recommendations_generated",
			farm_id=str(farm_id),
			crops=len(crops),
			recommendations=len(response.items),
			skipped=len(skipped),
			forecast_available=forecast is not None,
		)
		await recommendation_cache.write(self.redis_client, response, self.settings.recommendation_cache_ttl_seconds)
		return response
