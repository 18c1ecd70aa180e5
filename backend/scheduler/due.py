"""
Due-channel selection.
Pure functions over channel snapshots; no I/O so the cadence rules can be tested with a fixed clock.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol, Optional, TypeVar

from shared.models.domain import ensure_utc
from shared.models.enums import ScrapeCadence


class ScrapeTarget(Protocol):
    whitelisted: bool
    cadence: str
    last_scraped_at: Optional[datetime]


T = TypeVar("T", bound=ScrapeTarget)


def is_due(channel: ScrapeTarget, now: datetime) -> bool:
    """
    A channel is due when it is whitelisted, not manual, and either has never
    been scraped or its last scrape is at least one cadence interval old.
    """
    if not channel.whitelisted:
        return False
    interval = ScrapeCadence(channel.cadence).interval
    if interval is None:
        return False
    last = ensure_utc(channel.last_scraped_at)
    if last is None:
        return True
    return ensure_utc(now) - last >= interval


def select_due_channels(channels: Iterable[T], now: datetime) -> list[T]:
    """Filter to due channels, preserving input order."""
    return [c for c in channels if is_due(c, now)]
