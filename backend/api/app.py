"""
FastAPI application factory for the Hooplog API service.

Creates the app with:
- Cron trigger, public submission, moderation and channel routes
- Middleware stack and error mapping
- Health check endpoints
- Lifespan management (startup/shutdown)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Union

from fastapi import FastAPI
from sqlalchemy import text

from shared.config import RateLimitBackend, get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_db, get_redis, init_dependencies
from api.middleware import setup_middleware
from api.routes.channels import router as channels_router
from api.routes.cron import router as cron_router
from api.routes.moderation import router as moderation_router
from api.routes.submissions import router as submissions_router
from ingest.sources.youtube import YouTubeSource
from intake.rate_limiter import build_rate_limiter

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for tests that call init_dependencies themselves."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect the database (and Redis when the shared limiter is selected), build the source and limiter."""
    settings = get_settings()
    setup_logging("api")
    start_metrics_server(settings.metrics_port)

    db = DatabaseManager(settings)
    await _connect_with_retry(db.connect, "Database")
    if settings.is_sqlite:
        await db.create_schema()

    redis: RedisManager | None = None
    if settings.submission_rate_backend == RateLimitBackend.REDIS:
        redis = RedisManager(settings)
        await _connect_with_retry(redis.connect, "Redis")

    source = YouTubeSource(settings)
    await source.start()

    init_dependencies(db, source, build_rate_limiter(settings, redis), redis)
    logger.info("api_service_started", host=settings.api_host, port=settings.api_port)

    yield

    await source.close()
    if redis is not None:
        await redis.disconnect()
    await db.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing."""
    app = FastAPI(
        title="Hooplog API",
        description="1v1 basketball video catalog: ingestion, submissions and moderation",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app)

    app.include_router(cron_router)
    app.include_router(submissions_router)
    app.include_router(moderation_router)
    app.include_router(channels_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> dict[str, Union[str, bool]]:
        """Readiness probe: checks the database and, when configured, Redis."""
        db_ok = False
        try:
            async with get_db().read_session() as session:
                await session.execute(text("SELECT 1"))
                db_ok = True
        except Exception as exc:
            logger.warning("readiness_db_failed", error=str(exc))

        body: dict[str, Union[str, bool]] = {"database": db_ok}
        redis = get_redis()
        redis_ok = True
        if redis is not None:
            try:
                await redis.client.ping()
            except Exception as exc:
                redis_ok = False
                logger.warning("readiness_redis_failed", error=str(exc))
            body["redis"] = redis_ok

        body["status"] = "ok" if (db_ok and redis_ok) else "degraded"
        return body

    return app


# For running with uvicorn directly
app = create_app()
