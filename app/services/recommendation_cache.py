"""Redis cache of ranked irrigation recommendations, one key per farm.

Anything that changes an input of the decision engine (a stored reading, a
new crop health snapshot) drops the farm's key so the next request
recomputes.
"""

from __future__ import annotations

import uuid

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.schemas.irrigation import RecommendationsResponse

logger = structlog.get_logger("agriflow.irrigation.cache")

CACHE_KEY = "agriflow:recommendations:{farm_id}"


def cache_key(farm_id: uuid.UUID | str) -> str:
	return CACHE_KEY.format(farm_id=farm_id)


async def read(redis_client: Redis | None, farm_id: uuid.UUID) -> RecommendationsResponse | None:
	if redis_client is None:
		return None
	try:
		raw = await redis_client.get(cache_key(farm_id))
	except RedisError as exc:
		logger.warning("recommendation_cache_read_failed", farm_id=str(farm_id), error=str(exc))
		return None
	if not raw:
		return None
	response = RecommendationsResponse.model_validate_json(raw)
	return response.model_copy(update={"cached": True})


async def write(redis_client: Redis | None, response: RecommendationsResponse, ttl_seconds: int) -> None:
	if redis_client is None:
		return
	try:
		await redis_client.set(cache_key(response.farm_id), response.model_dump_json(), ex=ttl_seconds)
	except RedisError as exc:
		logger.warning("recommendation_cache_write_failed", farm_id=str(response.farm_id), error=str(exc))


async def invalidate(redis_client: Redis | None, farm_id: uuid.UUID) -> None:
	"""Drop the cached recommendations for ``farm_id``; broker errors are logged."""
	if redis_client is None:
		return
	try:
		await redis_client.delete(cache_key(farm_id))
	except RedisError as exc:
		logger.warning("recommendation_cache_invalidate_failed", farm_id=str(farm_id), error=str(exc))
		return
	logger.debug("recommendation_cache_invalidated", farm_id=str(farm_id))
