"""FastAPI application entrypoint — lifespan, routers, middleware."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.config import get_settings
from app.database import async_session_factory, engine
from app.messaging.channel import MessageChannel
from app.messaging.listener import ChannelListener
from app.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from app.routes import crops, devices, irrigation
from app.services.providers import AgroMonitoringHealthProvider, OpenMeteoWeatherProvider

logger = structlog.get_logger("agriflow")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Verify the database connection
      3. Connect to Redis and the MQTT device channel
      4. Build the weather and crop-health providers
      5. Start the channel listener task

    Shutdown:
      1. Stop the listener and drain in-flight messages
      2. Disconnect the channel and close Redis
      3. Dispose SQLAlchemy engine
    """
    configure_structured_logging()
    settings = get_settings()
    logger.info(
        "agriflow_starting",
        log_level=settings.log_level,
        messaging_namespace=settings.messaging_namespace,
    )

    redis: Redis | None = None
    channel: MessageChannel | None = None
    listener: ChannelListener | None = None
    listener_task: asyncio.Task[None] | None = None
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

        redis = Redis.from_url(settings.redis_url, decode_responses=True)
        await redis.ping()
        app.state.redis = redis

        channel = MessageChannel.from_settings(settings)
        await channel.connect()
        app.state.channel = channel

        app.state.weather = OpenMeteoWeatherProvider(settings)
        app.state.crop_health = AgroMonitoringHealthProvider(settings)

        if settings.messaging_listener_enabled:
            listener = ChannelListener(
                channel,
                async_session_factory,
                namespace=settings.messaging_namespace,
                redis_client=redis,
            )
            listener_task = asyncio.create_task(listener.run())
            app.state.listener = listener
    except Exception as exc:
        logger.exception("startup_failure", error=str(exc))
        raise

    yield

    logger.info("agriflow_shutting_down")
    if listener is not None:
        await listener.stop()
    if listener_task is not None:
        listener_task.cancel()
        with suppress(asyncio.CancelledError):
            await listener_task
    if channel is not None:
        await channel.disconnect()
    if redis is not None:
        await redis.aclose()
    await engine.dispose()


async def _run_readiness_checks(app: FastAPI) -> dict[str, dict[str, Any]]:
    checks: dict[str, dict[str, Any]] = {}

    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        checks["database"] = {"ok": True, "message": "ok"}
    except Exception as exc:
        checks["database"] = {"ok": False, "message": str(exc)}

    redis: Redis | None = getattr(app.state, "redis", None)
    if redis is None:
        checks["redis"] = {"ok": False, "message": "not connected"}
    else:
        try:
            await redis.ping()
            checks["redis"] = {"ok": True, "message": "ok"}
        except Exception as exc:
            checks["redis"] = {"ok": False, "message": str(exc)}

    channel: MessageChannel | None = getattr(app.state, "channel", None)
    if channel is not None and channel.connected:
        checks["channel"] = {"ok": True, "message": "ok"}
    else:
        checks["channel"] = {"ok": False, "message": "disconnected"}

    return checks


app = FastAPI(
    title="AgriFlow API",
    description=(
        "Farm IoT telemetry ingestion and irrigation scheduling — device "
        "registry, sensor readings, crop health, irrigation recommendations "
        "and schedule lifecycle with device command dispatch."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Health check ────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check — verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "agriflow",
        "version": "0.1.0",
    }


@app.get("/health/ready", tags=["system"])
async def readiness_check() -> JSONResponse:
    """Dependency readiness — database, Redis and the messaging channel."""
    checks = await _run_readiness_checks(app)
    ready = all(check["ok"] for check in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "degraded", "checks": checks},
    )


# ── Router registration ────────────────────────────────────────────────────
app.include_router(devices.router, prefix="/api/v1")
app.include_router(irrigation.router, prefix="/api/v1")
app.include_router(crops.router, prefix="/api/v1")
