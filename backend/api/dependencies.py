"""
Dependency injection for the API service.
Provides the database, video source, rate limiter and service objects to route
handlers, plus the moderator and cron authorization checks.
"""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from shared.config import Settings, get_settings
from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from catalog.registry import ChannelRegistry
from ingest.service import IngestionEngine
from ingest.sources.base import VideoSourceAdapter
from intake.rate_limiter import SubmissionRateLimiter
from intake.service import SubmissionIntake
from moderation.game_commit import GameCommitService
from moderation.service import ModerationService
from scheduler.service import ScrapeScheduler

# Module-level singletons, initialized at startup
_db: DatabaseManager | None = None
_source: VideoSourceAdapter | None = None
_limiter: SubmissionRateLimiter | None = None
_redis: RedisManager | None = None


def init_dependencies(
    db: DatabaseManager,
    source: VideoSourceAdapter,
    limiter: SubmissionRateLimiter,
    redis: RedisManager | None = None,
) -> None:
    """Initialize module-level singletons. Called once at startup (or by tests)."""
    global _db, _source, _limiter, _redis
    _db = db
    _source = source
    _limiter = limiter
    _redis = redis


def get_db() -> DatabaseManager:
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized, call init_dependencies first")
    return _db


def get_redis() -> Optional[RedisManager]:
    """The Redis manager, or None when the in-memory rate limiter is used."""
    return _redis


def get_source() -> VideoSourceAdapter:
    if _source is None:
        raise RuntimeError("Video source not initialized, call init_dependencies first")
    return _source


def get_limiter() -> SubmissionRateLimiter:
    if _limiter is None:
        raise RuntimeError("Rate limiter not initialized, call init_dependencies first")
    return _limiter


# ── Services ────────────────────────────────────────────────────────────

def get_registry(
    db: DatabaseManager = Depends(get_db), source: VideoSourceAdapter = Depends(get_source)
) -> ChannelRegistry:
    return ChannelRegistry(db, source)


def get_scheduler(
    db: DatabaseManager = Depends(get_db),
    source: VideoSourceAdapter = Depends(get_source),
    settings: Settings = Depends(get_settings),
) -> ScrapeScheduler:
    return ScrapeScheduler(ChannelRegistry(db, source), IngestionEngine(db, source, settings))


def get_intake(
    db: DatabaseManager = Depends(get_db), limiter: SubmissionRateLimiter = Depends(get_limiter)
) -> SubmissionIntake:
    return SubmissionIntake(db, limiter)


def get_moderation(db: DatabaseManager = Depends(get_db)) -> ModerationService:
    return ModerationService(db)


def get_game_commit(db: DatabaseManager = Depends(get_db)) -> GameCommitService:
    return GameCommitService(db)


# ── Request helpers ─────────────────────────────────────────────────────

def client_origin(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """
    Address the rate limiter keys on.

    Each trusted proxy appends the peer it saw to X-Forwarded-For, so the
    client is the entry trusted_proxy_hops from the right. Entries further
    left are client-supplied and ignored.
    """
    peer = request.client.host if request.client else "unknown"
    hops = settings.trusted_proxy_hops
    if hops == 0:
        return peer
    parts = [p.strip() for p in request.headers.get("x-forwarded-for", "").split(",") if p.strip()]
    if not parts:
        return peer
    return parts[-hops] if len(parts) >= hops else parts[0]


def require_moderator(
    x_moderator_token: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.moderator_token
    if not expected or not x_moderator_token or not secrets.compare_digest(x_moderator_token, expected):
        raise HTTPException(status_code=401, detail="moderator token required")


def require_cron(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Bearer cron secret, or the platform scheduler header when one is configured."""
    header = settings.cron_platform_header
    if header and request.headers.get(header) is not None:
        return
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if (
        settings.cron_secret
        and scheme.lower() == "bearer"
        and secrets.compare_digest(token.strip(), settings.cron_secret)
    ):
        return
    raise HTTPException(status_code=401, detail="Unauthorized")
