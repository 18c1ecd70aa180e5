"""Domain enumerations for the Hooplog platform."""
from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Optional


class ScrapeCadence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MANUAL = "manual"

    @property
    def interval(self) -> Optional[timedelta]:
        """Minimum spacing between automatic scrapes; None means never auto-selected."""
        return _CADENCE_INTERVALS.get(self)


_CADENCE_INTERVALS: dict[ScrapeCadence, timedelta] = {
    ScrapeCadence.DAILY: timedelta(hours=24),
    ScrapeCadence.WEEKLY: timedelta(days=7),
}


class EntryStatus(str, Enum):
    DISCOVERED = "discovered"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ModerationAction(str, Enum):
    PROMOTE = "promote"
    APPROVE = "approve"
    REJECT = "reject"
    REOPEN = "reopen"
    RETRACT = "retract"


class Provenance(str, Enum):
    SCRAPED = "scraped"
    SUBMITTED = "submitted"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class VideoCategory(str, Enum):
    UNCATEGORIZED = "uncategorized"
    ONE_V_ONE = "one_v_one"
    OTHER = "other"
