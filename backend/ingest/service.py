"""
Ingestion engine.
Scrapes one channel: fetches recent listings, dedups them against the catalog
and creates the new ones as discovered entries.
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from shared.config import Settings, get_settings
from shared.errors import ExternalFetchError
from shared.models.domain import ChannelScrapeResult, SourceListing, ensure_utc, utcnow
from shared.models.enums import (
    EntryStatus,
    Provenance,
    VerificationStatus,
    VideoCategory,
)
from shared.models.orm import CatalogEntryORM, ChannelORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    ENTRIES_CREATED,
    SCRAPE_CHANNEL_DURATION,
    SCRAPE_CHANNELS,
    SCRAPE_ITEM_FAILURES,
    atrack_latency,
)

from ingest.sources.base import VideoSourceAdapter
from ingest.sources.urls import thumbnail_url, watch_url

logger = get_logger(__name__)

# Bound on the size of one IN (...) list when checking known ids.
DEDUP_CHUNK_SIZE = 500


def collapse_duplicates(listings: Iterable[SourceListing]) -> list[SourceListing]:
    """Keep the first listing per external id, preserving order."""
    seen: dict[str, SourceListing] = {}
    for listing in listings:
        seen.setdefault(listing.external_id, listing)
    return list(seen.values())


class IngestionEngine:
    """
    Per-channel scrape.

    The run never raises for per-item problems: each failure is recorded in the
    result and the remaining listings are still processed. A failed fetch leaves
    the channel's marker untouched so the next run retries the same window.
    """

    def __init__(
        self,
        db: DatabaseManager,
        source: VideoSourceAdapter,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._source = source
        self._settings = settings or get_settings()
        self._clock = clock

    async def scrape_channel(self, channel_id: uuid.UUID, full: bool = False) -> ChannelScrapeResult:
        async with atrack_latency(SCRAPE_CHANNEL_DURATION):
            result = await self._scrape(channel_id, full)
        outcome = "ok" if not result.errors else ("partial" if result.videos_created else "failed")
        SCRAPE_CHANNELS.labels(outcome=outcome).inc()
        return result

    async def _scrape(self, channel_id: uuid.UUID, full: bool) -> ChannelScrapeResult:
        result = ChannelScrapeResult(channel_id=channel_id)

        async with self._db.read_session() as session:
            channel = await session.get(ChannelORM, channel_id)
        if channel is None:
            result.errors.append(f"Channel {channel_id} not found")
            return result
        result.channel_name = channel.name
        if not channel.whitelisted:
            logger.warning("channel_not_whitelisted", channel_id=str(channel_id), external_id=channel.external_id)
            result.errors.append(f"Channel {channel.name} is not whitelisted")
            return result

        now = self._clock()
        since: Optional[datetime] = None if full else ensure_utc(channel.last_scraped_at)
        max_pages = (
            self._settings.scrape_max_pages_full if full else self._settings.scrape_max_pages_incremental
        )

        try:
            listings = await self._source.list_recent_listings(
                channel.external_id,
                since=since,
                max_results=self._settings.scrape_page_size,
                max_pages=max_pages,
            )
        except ExternalFetchError as exc:
            logger.warning(
                "channel_fetch_failed",
                channel_id=str(channel_id),
                external_id=channel.external_id,
                error=exc.message,
            )
            result.errors.append(f"Fetch failed for {channel.external_id}: {exc.message}")
            return result

        result.videos_found = len(listings)
        unique = collapse_duplicates(listings)
        known = await self._known_external_ids([listing.external_id for listing in unique])
        fresh = [listing for listing in unique if listing.external_id not in known]
        result.videos_skipped = len(listings) - len(fresh)

        semaphore = asyncio.Semaphore(self._settings.scrape_create_concurrency)

        async def _bounded(listing: SourceListing) -> bool:
            async with semaphore:
                return await self._create_entry(channel.id, listing, now)

        outcomes = await asyncio.gather(*(_bounded(listing) for listing in fresh), return_exceptions=True)
        for listing, outcome in zip(fresh, outcomes):
            if isinstance(outcome, BaseException):
                SCRAPE_ITEM_FAILURES.inc()
                logger.warning(
                    "entry_create_failed",
                    channel_id=str(channel_id),
                    external_id=listing.external_id,
                    error=str(outcome),
                )
                result.errors.append(f"{listing.external_id}: {outcome}")
            elif outcome:
                result.videos_created += 1
            else:
                result.videos_skipped += 1

        await self._advance_marker(channel.id, now)
        if result.videos_created:
            ENTRIES_CREATED.labels(provenance=Provenance.SCRAPED.value).inc(result.videos_created)

        logger.info(
            "channel_scraped",
            channel_id=str(channel_id),
            channel=channel.name,
            full=full,
            found=result.videos_found,
            created=result.videos_created,
            skipped=result.videos_skipped,
            errors=len(result.errors),
        )
        return result

    async def _known_external_ids(self, external_ids: list[str]) -> set[str]:
        known: set[str] = set()
        if not external_ids:
            return known
        async with self._db.read_session() as session:
            for start in range(0, len(external_ids), DEDUP_CHUNK_SIZE):
                chunk = external_ids[start : start + DEDUP_CHUNK_SIZE]
                rows = await session.scalars(
                    select(CatalogEntryORM.external_id).where(CatalogEntryORM.external_id.in_(chunk))
                )
                known.update(rows)
        return known

    async def _create_entry(self, channel_id: uuid.UUID, listing: SourceListing, now: datetime) -> bool:
        """
        Insert one discovered entry in its own transaction.

        Returns False when another writer inserted the same external id first.
        """
        entry = CatalogEntryORM(
            external_id=listing.external_id,
            url=watch_url(listing.external_id),
            title=listing.title,
            source_name=listing.source_name,
            thumbnail_url=listing.thumbnail_url or thumbnail_url(listing.external_id),
            uploaded_at=listing.uploaded_at,
            duration_s=listing.duration_s,
            status=EntryStatus.DISCOVERED.value,
            verification_status=VerificationStatus.UNVERIFIED.value,
            category=VideoCategory.UNCATEGORIZED.value,
            is_competitive=False,
            provenance=Provenance.SCRAPED.value,
            channel_id=channel_id,
            scraped_at=now,
        )
        try:
            async with self._db.write_session() as session:
                session.add(entry)
        except IntegrityError:
            logger.debug("entry_already_present", external_id=listing.external_id)
            return False
        return True

    async def _advance_marker(self, channel_id: uuid.UUID, now: datetime) -> None:
        async with self._db.write_session() as session:
            await session.execute(
                update(ChannelORM).where(ChannelORM.id == channel_id).values(last_scraped_at=now)
            )
