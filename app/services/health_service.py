"""NDVI-based crop health scoring and snapshot refresh."""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime, timedelta

import structlog
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.crops import CropHealth
from app.models.enums import HealthStatusEnum
from app.services import recommendation_cache
from app.services.farm_service import FarmService
from app.services.providers import AgroMonitoringHealthProvider, OpenMeteoWeatherProvider

logger = structlog.get_logger("agriflow.health")


def round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


def health_score(ndvi: float) -> int:
	"""Piecewise-linear NDVI to 0-100 score; slightly above 100 is possible near NDVI 1."""
	if ndvi < 0:
		return 0
	if ndvi < 0.2:
		return round_half_up(ndvi * 100)
	if ndvi < 0.4:
		return round_half_up(20 + (ndvi - 0.2) * 150)
	if ndvi < 0.6:
		return round_half_up(50 + (ndvi - 0.4) * 150)
	return round_half_up(80 + (ndvi - 0.6) * 50)


def health_status(score: float) -> HealthStatusEnum:
	if score >= 80:
		return HealthStatusEnum.excellent
	if score >= 60:
		return HealthStatusEnum.healthy
	if score >= 40:
		return HealthStatusEnum.moderate
	if score >= 20:
		return HealthStatusEnum.stressed
	return HealthStatusEnum.critical


def generate_recommendations(
	score: int,
	ndvi: float,
	moisture: float | None,
	temperature: float | None,
) -> list[str]:
	recommendations: list[str] = []

	if ndvi < 0.3:
		recommendations.append("Crop shows signs of stress. Check for pest infestation or disease.")
		recommendations.append("Consider soil testing for nutrient deficiencies.")
	elif ndvi < 0.5:
		recommendations.append("Moderate vegetation health. Ensure adequate water and nutrients.")

	if moisture is not None:
		if moisture < 30:
			recommendations.append("Soil moisture is low. Schedule irrigation soon.")
		elif moisture > 80:
			recommendations.append("Soil moisture is high. Reduce irrigation to prevent waterlogging.")

	if temperature is not None:
		if temperature > 35:
			recommendations.append("High temperature detected. Consider increasing irrigation frequency.")
			recommendations.append("Apply mulching to retain soil moisture.")
		elif temperature < 10:
			recommendations.append("Low temperature detected. Monitor for frost damage.")

	if score < 40:
		recommendations.append("Consider consulting an agricultural expert for detailed assessment.")

	return recommendations


class CropHealthService:
	def __init__(
		self,
		db: AsyncSession,
		weather: OpenMeteoWeatherProvider | None = None,
		crop_health: AgroMonitoringHealthProvider | None = None,
		redis_client: Redis | None = None,
	):
		self.db = db
		self.settings = get_settings()
		self.weather = weather or OpenMeteoWeatherProvider(self.settings)
		self.crop_health = crop_health or AgroMonitoringHealthProvider(self.settings)
		self.redis_client = redis_client
		self.farms = FarmService(db)

	async def latest(self, crop_id: uuid.UUID) -> CropHealth:
		await self.farms.get_crop(crop_id)
		record = await self.farms.latest_health(crop_id)
		if record is None:
			raise LookupError(f"no health snapshot for crop: {crop_id}")
		return record

	async def refresh(self, crop_id: uuid.UUID) -> CropHealth:
		crop = await self.farms.get_crop(crop_id)
		farm = await self.farms.get_farm(crop.farm_id)
		if not farm.polygon_id:
			raise LookupError(f"farm {farm.id} has no satellite polygon")

		end = datetime.now(UTC)
		start = end - timedelta(days=self.settings.ndvi_lookback_days)
		observations = await self.crop_health.ndvi_history(farm.polygon_id, start, end)
		if not observations:
			raise LookupError(f"no NDVI data for crop: {crop_id}")
		ndvi = observations[-1].mean

		weather = await self.weather.current(farm.latitude, farm.longitude)
		temperature = weather.temperature if weather else None
		humidity = weather.humidity if weather else None
		moisture = await self.crop_health.soil_moisture(farm.polygon_id)

		score = health_score(ndvi)
		record = CropHealth(
			crop_id=crop.id,
			recorded_at=end,
			ndvi_value=ndvi,
			health_score=score,
			health_status=health_status(score),
			moisture_level=moisture,
			temperature=temperature,
			humidity=humidity,
			recommendations=generate_recommendations(score, ndvi, moisture, temperature),
			data_source="agromonitoring",
		)
		self.db.add(record)
		await self.db.flush()
		await self.db.refresh(record)
		await self.db.commit()
		await recommendation_cache.invalidate(self.redis_client, crop.farm_id)
		logger.info(
			"crop_health_refreshed",
			crop_id=str(crop.id),
			ndvi=ndvi,
			health_score=score,
			health_status=record.health_status.value,
		)
		return record
