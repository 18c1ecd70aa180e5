"""Shared fixtures: a throwaway SQLite database per test and an in-memory video source."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from shared.config import Settings
from shared.errors import ExternalFetchError
from shared.models.domain import ChannelInfo, SourceListing
from shared.models.enums import EntryStatus, Provenance, ScrapeCadence
from shared.models.orm import CatalogEntryORM, ChannelORM, PlayerORM
from shared.utils.database import DatabaseManager

from ingest.sources.base import VideoSourceAdapter
from ingest.sources.urls import parse_channel_reference

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
CHANNEL_EXTERNAL_ID = "UC" + "a" * 22


class FakeSource(VideoSourceAdapter):
    """Scripted video source; records every listing request."""

    def __init__(self) -> None:
        self._name = "fake"
        self.listings: list[SourceListing] = []
        self.channels: dict[str, ChannelInfo] = {}
        self.fail_with: Optional[Exception] = None
        self.calls: list[dict] = []

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def list_recent_listings(self, channel_external_id, since, max_results, max_pages):
        self.calls.append(
            {"channel": channel_external_id, "since": since, "max_results": max_results, "max_pages": max_pages}
        )
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.listings)

    async def get_channel_info(self, channel_external_id):
        if channel_external_id not in self.channels:
            raise ExternalFetchError(f"Channel not found: {channel_external_id}", source="fake")
        return self.channels[channel_external_id]

    async def resolve_channel_id(self, value):
        kind, ref = parse_channel_reference(value)
        return ref if kind == "id" else None


def listing(external_id: str, uploaded_at: datetime = NOW - timedelta(hours=1)) -> SourceListing:
    return SourceListing(
        external_id=external_id,
        title=f"Video {external_id}",
        source_name="Test Channel",
        thumbnail_url=None,
        uploaded_at=uploaded_at,
        duration_s=300,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'hooplog.db'}",
        youtube_api_key="test-key",
        moderator_token="mod-secret",
        cron_secret="cron-secret",
        metrics_enabled=False,
        scrape_create_concurrency=4,
        submission_rate_limit=5,
        submission_rate_window_s=3600,
    )


@pytest_asyncio.fixture
async def db(settings: Settings):
    manager = DatabaseManager(settings)
    await manager.connect()
    await manager.create_schema()
    yield manager
    await manager.disconnect()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def make_channel(db: DatabaseManager):
    async def _make(
        external_id: str = CHANNEL_EXTERNAL_ID,
        cadence: ScrapeCadence = ScrapeCadence.DAILY,
        last_scraped_at: Optional[datetime] = None,
        whitelisted: bool = True,
        name: str = "Test Channel",
    ) -> uuid.UUID:
        row = ChannelORM(
            id=uuid.uuid4(),
            external_id=external_id,
            name=name,
            subscriber_count=0,
            cadence=cadence.value,
            whitelisted=whitelisted,
            last_scraped_at=last_scraped_at,
        )
        async with db.write_session() as session:
            session.add(row)
        return row.id

    return _make


@pytest.fixture
def make_entry(db: DatabaseManager):
    async def _make(
        status: EntryStatus = EntryStatus.PENDING,
        external_id: Optional[str] = None,
        provenance: Provenance = Provenance.SUBMITTED,
        uploaded_at: Optional[datetime] = None,
    ) -> uuid.UUID:
        external_id = external_id or uuid.uuid4().hex[:11]
        row = CatalogEntryORM(
            id=uuid.uuid4(),
            external_id=external_id,
            url=f"https://www.youtube.com/watch?v={external_id}",
            title="Test video",
            source_name="Test Channel",
            status=status.value,
            verification_status="unverified",
            category="uncategorized",
            is_competitive=False,
            provenance=provenance.value,
            uploaded_at=uploaded_at,
        )
        async with db.write_session() as session:
            session.add(row)
        return row.id

    return _make


@pytest.fixture
def make_player(db: DatabaseManager):
    async def _make(name: str) -> uuid.UUID:
        row = PlayerORM(id=uuid.uuid4(), name=name)
        async with db.write_session() as session:
            session.add(row)
        return row.id

    return _make
