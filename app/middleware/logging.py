"""Structured logging setup and the per-request logging middleware."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import LogFormat, get_settings

logger = structlog.get_logger("agriflow.request")

QUIET_PATHS = frozenset({"/health", "/health/ready"})
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")

_configured = False


def configure_structured_logging() -> None:
	"""Route structlog through stdlib logging once per process.

	Every service module logs through ``structlog.get_logger("agriflow.<area>")``;
	the area name is kept in the ``logger`` field of each event.  Noisy
	third-party loggers are held at ``warning``.
	"""
	global _configured
	if _configured:
		return

	settings = get_settings()
	log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

	shared_processors: list[Any] = [
		structlog.contextvars.merge_contextvars,
		structlog.stdlib.add_logger_name,
		structlog.processors.add_log_level,
		structlog.processors.TimeStamper(fmt="iso", utc=True),
	]

	logging.basicConfig(level=log_level, format="%(message)s")
	renderer: Any = (
		structlog.processors.JSONRenderer()
		if settings.log_format == LogFormat.json
		else structlog.dev.ConsoleRenderer()
	)

	for name in NOISY_LOGGERS:
		logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

	structlog.configure(
		processors=[
			*shared_processors,
			structlog.processors.format_exc_info,
			renderer,
		],
		wrapper_class=structlog.make_filtering_bound_logger(log_level),
		logger_factory=structlog.stdlib.LoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Attach request IDs and emit one structured log line per request.

	Server errors log at ``error``, client errors at ``warning`` and requests
	slower than ``slow_request_ms`` are flagged with ``slow=True``.  Liveness
	checks are logged at ``debug`` so they do not drown the request log.
	"""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
		request.state.request_id = request_id

		structlog.contextvars.clear_contextvars()
		structlog.contextvars.bind_contextvars(request_id=request_id)

		start = time.perf_counter()
		try:
			response = await call_next(request)
		except Exception as exc:
			logger.exception(
				"http_request_failed",
				method=request.method,
				path=request.url.path,
				duration_ms=_elapsed_ms(start),
				error=str(exc),
			)
			raise

		duration_ms = _elapsed_ms(start)
		response.headers["x-request-id"] = request_id
		log = getattr(logger, _level_for(request.url.path, response.status_code))
		log(
			"http_request",
			method=request.method,
			path=request.url.path,
			status_code=response.status_code,
			duration_ms=duration_ms,
			slow=duration_ms >= get_settings().slow_request_ms,
		)
		return response


def _elapsed_ms(start: float) -> float:
	return round((time.perf_counter() - start) * 1000.0, 2)


def _level_for(path: str, status_code: int) -> str:
	if status_code >= 500:
		return "error"
	if status_code >= 400:
		return "warning"
	if path in QUIET_PATHS:
		return "debug"
	return "info"
