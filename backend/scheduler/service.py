"""
Scrape scheduler for Hooplog.
Selects the channels whose cadence says they are due and scrapes them one at a time.
Triggered by the cron route or by running this module directly.
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Awaitable, Callable

from shared.config import Settings, get_settings
from shared.models.domain import ChannelScrapeResult, ScrapeRunResult, utcnow
from shared.utils.database import DatabaseManager
from shared.utils.logging import bind_run_context, clear_run_context, get_logger, setup_logging

from catalog.registry import ChannelRegistry
from ingest.service import IngestionEngine
from ingest.sources.youtube import YouTubeSource

logger = get_logger(__name__)

# Retry connection on startup (e.g. DB not ready yet in Docker)
CONNECT_RETRY_ATTEMPTS = 5
CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == CONNECT_RETRY_ATTEMPTS:
                raise
            delay = CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


class ScrapeScheduler:
    """
    Runs one scrape pass over all due channels.

    Channels are processed strictly in sequence to stay inside the source's
    quota; an exception from one channel is recorded and the pass moves on.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        engine: IngestionEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._engine = engine
        self._clock = clock

    async def run_due(self) -> ScrapeRunResult:
        run = ScrapeRunResult(started_at=self._clock())
        run_id = uuid.uuid4().hex[:12]
        bind_run_context(run_id=run_id)
        try:
            try:
                due = await self._registry.load_due_channels(run.started_at)
            except Exception as exc:
                logger.error("scrape_run_load_failed", error=str(exc), exc_info=True)
                run.errors.append(f"Failed to load due channels: {exc}")
                run.finished_at = self._clock()
                return run
            logger.info("scrape_run_started", due_channels=len(due))

            for channel in due:
                try:
                    result = await self._engine.scrape_channel(channel.id)
                except Exception as exc:
                    logger.error(
                        "channel_scrape_error",
                        channel_id=str(channel.id),
                        channel=channel.name,
                        error=str(exc),
                        exc_info=True,
                    )
                    run.errors.append(f"{channel.name}: {exc}")
                    result = ChannelScrapeResult(
                        channel_id=channel.id, channel_name=channel.name, errors=[str(exc)]
                    )
                run.results.append(result)
                run.channels_processed += 1
                run.total_videos_created += result.videos_created

            run.finished_at = self._clock()
            logger.info(
                "scrape_run_completed",
                channels_processed=run.channels_processed,
                videos_created=run.total_videos_created,
                errors=len(run.errors),
            )
            return run
        finally:
            clear_run_context("run_id")

    async def scrape_one(self, channel_id: uuid.UUID, full: bool = False) -> ChannelScrapeResult:
        """Scrape a single channel on demand, regardless of cadence (manual channels included)."""
        await self._registry.get_channel(channel_id)
        return await self._engine.scrape_channel(channel_id, full=full)


def build_scheduler(db: DatabaseManager, source: YouTubeSource, settings: Settings) -> ScrapeScheduler:
    registry = ChannelRegistry(db, source)
    engine = IngestionEngine(db, source, settings)
    return ScrapeScheduler(registry, engine)


async def main() -> None:
    """Run a single scrape pass and exit."""
    settings = get_settings()
    setup_logging("scheduler")

    db = DatabaseManager(settings)
    await _connect_with_retry(db.connect, "Database")
    source = YouTubeSource(settings)
    await source.start()

    try:
        run = await build_scheduler(db, source, settings).run_due()
        logger.info(
            "scrape_summary",
            channels_processed=run.channels_processed,
            videos_created=run.total_videos_created,
            errors=run.errors,
        )
    finally:
        await source.close()
        await db.disconnect()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
