"""
Tests for due-channel selection and the scrape run.

Run: pytest backend/tests/test_scheduler.py -v
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from shared.errors import NotFoundError
from shared.models.enums import ScrapeCadence
from catalog.registry import ChannelRegistry
from ingest.service import IngestionEngine
from scheduler.due import is_due, select_due_channels
from scheduler.service import ScrapeScheduler

from conftest import NOW, listing


def _channel(cadence: ScrapeCadence, last: datetime | None, whitelisted: bool = True, name: str = "c"):
    return SimpleNamespace(cadence=cadence.value, last_scraped_at=last, whitelisted=whitelisted, name=name)


# ── is_due ──────────────────────────────────────────────────────────────

def test_daily_channel_scraped_23h_ago_is_not_due() -> None:
    assert not is_due(_channel(ScrapeCadence.DAILY, NOW - timedelta(hours=23)), NOW)


def test_daily_channel_scraped_25h_ago_is_due() -> None:
    assert is_due(_channel(ScrapeCadence.DAILY, NOW - timedelta(hours=25)), NOW)


def test_daily_channel_exactly_one_interval_old_is_due() -> None:
    assert is_due(_channel(ScrapeCadence.DAILY, NOW - timedelta(hours=24)), NOW)


def test_never_scraped_channel_is_due() -> None:
    assert is_due(_channel(ScrapeCadence.WEEKLY, None), NOW)


def test_weekly_channel_waits_seven_days() -> None:
    assert not is_due(_channel(ScrapeCadence.WEEKLY, NOW - timedelta(days=6)), NOW)
    assert is_due(_channel(ScrapeCadence.WEEKLY, NOW - timedelta(days=7, minutes=1)), NOW)


def test_manual_channel_is_never_due() -> None:
    assert not is_due(_channel(ScrapeCadence.MANUAL, None), NOW)
    assert not is_due(_channel(ScrapeCadence.MANUAL, NOW - timedelta(days=365)), NOW)


def test_non_whitelisted_channel_is_never_due() -> None:
    assert not is_due(_channel(ScrapeCadence.DAILY, None, whitelisted=False), NOW)


def test_naive_marker_is_read_as_utc() -> None:
    naive = (NOW - timedelta(hours=25)).replace(tzinfo=None)
    assert is_due(_channel(ScrapeCadence.DAILY, naive), NOW)


def test_select_due_channels_preserves_order() -> None:
    channels = [
        _channel(ScrapeCadence.DAILY, None, name="first"),
        _channel(ScrapeCadence.MANUAL, None, name="manual"),
        _channel(ScrapeCadence.DAILY, NOW - timedelta(hours=1), name="fresh"),
        _channel(ScrapeCadence.WEEKLY, NOW - timedelta(days=8), name="last"),
    ]
    assert [c.name for c in select_due_channels(channels, NOW)] == ["first", "last"]


# ── ScrapeScheduler ─────────────────────────────────────────────────────

@pytest.fixture
def scheduler(db, source, settings) -> ScrapeScheduler:
    engine = IngestionEngine(db, source, settings, clock=lambda: NOW)
    return ScrapeScheduler(ChannelRegistry(db, source), engine, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_run_due_scrapes_only_due_channels(scheduler, source, make_channel) -> None:
    await make_channel(external_id="UC" + "a" * 22, name="due")
    await make_channel(external_id="UC" + "b" * 22, name="manual", cadence=ScrapeCadence.MANUAL)
    await make_channel(external_id="UC" + "c" * 22, name="fresh", last_scraped_at=NOW - timedelta(hours=2))
    source.listings = [listing("vid1"), listing("vid2")]

    run = await scheduler.run_due()

    assert run.channels_processed == 1
    assert run.total_videos_created == 2
    assert [r.channel_name for r in run.results] == ["due"]
    assert [c["channel"] for c in source.calls] == ["UC" + "a" * 22]
    assert run.finished_at is not None


@pytest.mark.asyncio
async def test_run_due_continues_after_a_channel_raises(scheduler, source, make_channel, monkeypatch) -> None:
    broken = await make_channel(external_id="UC" + "a" * 22, name="broken")
    await make_channel(external_id="UC" + "b" * 22, name="healthy")
    source.listings = [listing("vid1")]

    engine = scheduler._engine
    original = engine.scrape_channel

    async def flaky(channel_id, full=False):
        if channel_id == broken:
            raise RuntimeError("database went away")
        return await original(channel_id, full=full)

    monkeypatch.setattr(engine, "scrape_channel", flaky)

    run = await scheduler.run_due()

    assert run.channels_processed == 2
    assert run.total_videos_created == 1
    assert len(run.errors) == 1
    assert "database went away" in run.errors[0]


@pytest.mark.asyncio
async def test_scrape_one_works_for_manual_channel(scheduler, source, make_channel) -> None:
    channel_id = await make_channel(cadence=ScrapeCadence.MANUAL)
    source.listings = [listing("vid1")]

    result = await scheduler.scrape_one(channel_id, full=True)

    assert result.videos_created == 1
    assert source.calls[0]["since"] is None


@pytest.mark.asyncio
async def test_scrape_one_unknown_channel(scheduler) -> None:
    with pytest.raises(NotFoundError):
        await scheduler.scrape_one(uuid.uuid4())


@pytest.mark.asyncio
async def test_run_due_reports_channel_load_failure(scheduler, monkeypatch) -> None:
    async def broken(now):
        raise RuntimeError("db down")

    monkeypatch.setattr(scheduler._registry, "load_due_channels", broken)

    run = await scheduler.run_due()

    assert run.errors == ["Failed to load due channels: db down"]
    assert run.channels_processed == 0
    assert run.results == []
    assert run.finished_at == NOW


@pytest.mark.asyncio
async def test_scrape_one_refuses_unlisted_channel(scheduler, source, make_channel) -> None:
    channel_id = await make_channel(whitelisted=False)
    source.listings = [listing("vid1")]

    result = await scheduler.scrape_one(channel_id)

    assert result.videos_created == 0
    assert result.errors and "not whitelisted" in result.errors[0]
    assert source.calls == []
