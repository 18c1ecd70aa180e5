"""
Pydantic v2 domain models shared across Hooplog services.
These are the canonical wire/internal representations, NOT ORM models.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import (
    EntryStatus,
    Provenance,
    ScrapeCadence,
    VerificationStatus,
    VideoCategory,
)

MAX_GAME_SCORE = 999
MAX_NOTE_LENGTH = 500
MAX_PLAYER_NAME_LENGTH = 100
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Video source payloads ───────────────────────────────────────────────
class ChannelInfo(DomainModel):
    id: str
    name: str
    description: str = ""
    thumbnail_url: str = ""
    subscriber_count: int = 0


class SourceListing(DomainModel):
    """One video as reported by the external source."""
    external_id: str
    title: str
    source_name: str
    thumbnail_url: Optional[str] = None
    uploaded_at: datetime
    duration_s: int = 0


# ── Channels ────────────────────────────────────────────────────────────
class Channel(DomainModel):
    id: uuid.UUID
    external_id: str
    name: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    subscriber_count: int = 0
    cadence: ScrapeCadence
    whitelisted: bool
    last_scraped_at: Optional[datetime] = None


class ChannelCreate(DomainModel):
    channel: str = Field(min_length=1, description="Channel id (UC...), channel URL or @handle")
    cadence: ScrapeCadence = ScrapeCadence.DAILY


class ChannelUpdate(DomainModel):
    whitelisted: Optional[bool] = None
    cadence: Optional[ScrapeCadence] = None


# ── Catalog ─────────────────────────────────────────────────────────────
class CatalogEntry(DomainModel):
    id: uuid.UUID
    external_id: str
    url: str
    title: str
    source_name: str
    thumbnail_url: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    duration_s: Optional[int] = None
    status: EntryStatus
    verification_status: VerificationStatus
    category: VideoCategory
    is_competitive: bool = False
    provenance: Provenance
    channel_id: Optional[uuid.UUID] = None
    submitter_contact: Optional[str] = None
    submitter_note: Optional[str] = None
    claimed_category: Optional[VideoCategory] = None
    claimed_player1_name: Optional[str] = None
    claimed_player2_name: Optional[str] = None
    claimed_player1_score: Optional[int] = None
    claimed_player2_score: Optional[int] = None
    scraped_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class SelfReportedMatchup(DomainModel):
    """Free-text matchup claimed by a submitter; never resolved against the player directory here."""
    player1_name: str = Field(min_length=1, max_length=MAX_PLAYER_NAME_LENGTH)
    player2_name: str = Field(min_length=1, max_length=MAX_PLAYER_NAME_LENGTH)
    player1_score: int = Field(ge=0, le=MAX_GAME_SCORE)
    player2_score: int = Field(ge=0, le=MAX_GAME_SCORE)


class ContributionRequest(DomainModel):
    submitter_contact: Optional[str] = Field(default=None, max_length=320, pattern=EMAIL_PATTERN)
    submitter_note: Optional[str] = Field(default=None, max_length=MAX_NOTE_LENGTH)
    claimed_category: VideoCategory = VideoCategory.UNCATEGORIZED
    is_competitive: bool = False
    matchup: Optional[SelfReportedMatchup] = None


class SubmissionRequest(ContributionRequest):
    url: str = Field(min_length=1)
    external_id: Optional[str] = None
    title: str = Field(min_length=1, max_length=500)
    source_name: str = Field(min_length=1, max_length=200)
    thumbnail_url: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    duration_s: Optional[int] = Field(default=None, ge=0)


# ── Matches ─────────────────────────────────────────────────────────────
class StatLine(DomainModel):
    points: int = Field(default=0, ge=0)
    field_goals_made: int = Field(default=0, ge=0)
    field_goals_attempted: int = Field(default=0, ge=0)
    three_pointers_made: int = Field(default=0, ge=0)
    three_pointers_attempted: int = Field(default=0, ge=0)
    free_throws_made: int = Field(default=0, ge=0)
    free_throws_attempted: int = Field(default=0, ge=0)
    rebounds: int = Field(default=0, ge=0)
    assists: int = Field(default=0, ge=0)
    steals: int = Field(default=0, ge=0)
    blocks: int = Field(default=0, ge=0)
    turnovers: int = Field(default=0, ge=0)
    fouls: int = Field(default=0, ge=0)


class ParticipantStat(StatLine):
    match_id: uuid.UUID
    player_id: uuid.UUID


class MatchCommitRequest(DomainModel):
    entry_id: uuid.UUID
    player1_id: uuid.UUID
    player2_id: uuid.UUID
    player1_score: int = Field(ge=0, le=MAX_GAME_SCORE)
    player2_score: int = Field(ge=0, le=MAX_GAME_SCORE)
    is_official: bool = False
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    player1_stats: Optional[StatLine] = None
    player2_stats: Optional[StatLine] = None


class MatchUpdateRequest(DomainModel):
    """Partial edit of a recorded match; omitted fields keep their stored value."""

    player1_id: Optional[uuid.UUID] = None
    player2_id: Optional[uuid.UUID] = None
    player1_score: Optional[int] = Field(default=None, ge=0, le=MAX_GAME_SCORE)
    player2_score: Optional[int] = Field(default=None, ge=0, le=MAX_GAME_SCORE)
    is_official: Optional[bool] = None
    game_date: Optional[datetime] = None
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class MatchRecord(DomainModel):
    id: uuid.UUID
    entry_id: uuid.UUID
    player1_id: uuid.UUID
    player2_id: uuid.UUID
    player1_score: int
    player2_score: int
    winner_id: uuid.UUID
    is_official: bool
    game_date: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    source: Provenance
    stats: list[ParticipantStat] = Field(default_factory=list)


# ── Scrape results ──────────────────────────────────────────────────────
class ChannelScrapeResult(DomainModel):
    channel_id: uuid.UUID
    channel_name: str = ""
    videos_found: int = 0
    videos_created: int = 0
    videos_skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class ScrapeRunResult(DomainModel):
    channels_processed: int = 0
    total_videos_created: int = 0
    results: list[ChannelScrapeResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
