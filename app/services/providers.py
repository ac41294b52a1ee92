"""HTTP clients for the external weather and crop-health data sources.

Both providers degrade to "no data" instead of raising: the irrigation
engine and the health refresh treat a missing value as unknown.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from app.config import Settings, get_settings

logger = structlog.get_logger("agriflow.providers")

FORECAST_BUCKET_HOURS = 3


@dataclass(frozen=True, slots=True)
class CurrentWeather:
	temperature: float | None
	humidity: float | None
	condition: str

	def as_dict(self) -> dict[str, Any]:
		return asdict(self)


@dataclass(frozen=True, slots=True)
class ForecastEntry:
	"""Precipitation summed over one 3-hour bucket starting at ``timestamp``."""

	timestamp: datetime
	precipitation_mm: float

	def hours_ahead(self, now: datetime) -> float:
		return (self.timestamp - now).total_seconds() / 3600.0


@dataclass(frozen=True, slots=True)
class NdviObservation:
	timestamp: datetime
	mean: float


def _as_float(value: Any) -> float | None:
	if isinstance(value, bool) or not isinstance(value, int | float):
		return None
	return float(value)


def _parse_hour(value: str) -> datetime:
	parsed = datetime.fromisoformat(value)
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=UTC)
	return parsed


def group_precipitation(times: list[str], amounts: list[Any]) -> list[ForecastEntry]:
	"""Fold hourly precipitation into consecutive 3-hour buckets."""
	entries: list[ForecastEntry] = []
	for start in range(0, min(len(times), len(amounts)), FORECAST_BUCKET_HOURS):
		bucket = amounts[start : start + FORECAST_BUCKET_HOURS]
		total = sum(value for value in (_as_float(item) for item in bucket) if value is not None)
		entries.append(ForecastEntry(timestamp=_parse_hour(times[start]), precipitation_mm=round(total, 3)))
	return entries


class OpenMeteoWeatherProvider:
	def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
		self.settings = settings or get_settings()
		self._transport = transport

	async def _get(self, params: dict[str, Any]) -> dict[str, Any]:
		async with httpx.AsyncClient(
			timeout=self.settings.weather_timeout_seconds,
			transport=self._transport,
		) as client:
			response = await client.get(self.settings.weather_base_url, params=params)
			response.raise_for_status()
			payload = response.json()
		if not isinstance(payload, dict):
			raise ValueError("weather provider returned a non-object body")
		return payload

	async def current(self, latitude: float, longitude: float) -> CurrentWeather | None:
		try:
			payload = await self._get(
				{
					"latitude": latitude,
					"longitude": longitude,
					"current": "temperature_2m,relative_humidity_2m,rain",
					"timezone": "UTC",
				}
			)
		except (httpx.HTTPError, ValueError) as exc:
			logger.warning("weather_current_unavailable", error=str(exc))
			return None

		current = payload.get("current") or {}
		rain = _as_float(current.get("rain")) or 0.0
		return CurrentWeather(
			temperature=_as_float(current.get("temperature_2m")),
			humidity=_as_float(current.get("relative_humidity_2m")),
			condition="Rain" if rain > 0 else "Clear",
		)

	async def forecast(self, latitude: float, longitude: float) -> list[ForecastEntry] | None:
		try:
			payload = await self._get(
				{
					"latitude": latitude,
					"longitude": longitude,
					"hourly": "precipitation",
					"forecast_hours": self.settings.weather_forecast_hours,
					"timezone": "UTC",
				}
			)
			hourly = payload.get("hourly") or {}
			return group_precipitation(list(hourly.get("time") or []), list(hourly.get("precipitation") or []))
		except (httpx.HTTPError, ValueError, TypeError) as exc:
			logger.warning("weather_forecast_unavailable", error=str(exc))
			return None


class AgroMonitoringHealthProvider:
	def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
		self.settings = settings or get_settings()
		self._transport = transport

	@property
	def enabled(self) -> bool:
		return bool(self.settings.agromonitoring_api_key)

	async def _get(self, path: str, params: dict[str, Any]) -> Any:
		url = f"{self.settings.agromonitoring_base_url.rstrip('/')}/{path}"
		async with httpx.AsyncClient(
			timeout=self.settings.agromonitoring_timeout_seconds,
			transport=self._transport,
		) as client:
			response = await client.get(url, params={**params, "appid": self.settings.agromonitoring_api_key})
			response.raise_for_status()
			return response.json()

	async def ndvi_history(self, polygon_id: str, start: datetime, end: datetime) -> list[NdviObservation]:
		if not self.enabled:
			return []
		try:
			payload = await self._get(
				"ndvi/history",
				{"polyid": polygon_id, "start": int(start.timestamp()), "end": int(end.timestamp())},
			)
		except (httpx.HTTPError, ValueError) as exc:
			logger.warning("ndvi_unavailable", polygon_id=polygon_id, error=str(exc))
			return []
		if not isinstance(payload, list):
			return []

		observations: list[NdviObservation] = []
		for item in payload:
			if not isinstance(item, dict) or not isinstance(item.get("data"), dict):
				continue
			mean = _as_float(item["data"].get("mean"))
			dt = _as_float(item.get("dt"))
			if mean is None or dt is None:
				continue
			observations.append(NdviObservation(timestamp=datetime.fromtimestamp(dt, tz=UTC), mean=mean))
		observations.sort(key=lambda obs: obs.timestamp)
		return observations

	async def soil_moisture(self, polygon_id: str) -> float | None:
		"""Volumetric soil moisture as a percentage, or ``None``."""
		if not self.enabled:
			return None
		try:
			payload = await self._get("soil", {"polyid": polygon_id})
		except (httpx.HTTPError, ValueError) as exc:
			logger.warning("soil_moisture_unavailable", polygon_id=polygon_id, error=str(exc))
			return None
		if not isinstance(payload, dict):
			return None
		moisture = _as_float(payload.get("moisture"))
		return None if moisture is None else round(moisture * 100.0, 2)
