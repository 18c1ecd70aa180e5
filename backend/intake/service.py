"""
Public submission intake.
Validates self-reported data, applies the per-origin rate limit and creates or
updates catalog entries for moderator review.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from shared.errors import NotFoundError, RateLimitError, ValidationError
from shared.models.domain import (
    CatalogEntry,
    ContributionRequest,
    SelfReportedMatchup,
    SubmissionRequest,
)
from shared.models.enums import (
    EntryStatus,
    ModerationAction,
    Provenance,
    VerificationStatus,
    VideoCategory,
)
from shared.models.orm import CatalogEntryORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import ENTRIES_CREATED, SUBMISSIONS

from ingest.sources.urls import extract_video_id, thumbnail_url
from intake.rate_limiter import SubmissionRateLimiter
from moderation.state_machine import transition_entry

logger = get_logger(__name__)

DUPLICATE_MESSAGE = "This video has already been submitted."


def validate_matchup(category: VideoCategory, matchup: Optional[SelfReportedMatchup]) -> None:
    """Free-text checks only; names are not resolved against the player directory."""
    if matchup is None:
        if category == VideoCategory.ONE_V_ONE:
            raise ValidationError("1v1 submissions require both player names and scores")
        return
    name1 = matchup.player1_name.strip()
    name2 = matchup.player2_name.strip()
    if not name1 or not name2:
        raise ValidationError("player names cannot be blank")
    if name1.casefold() == name2.casefold():
        raise ValidationError("participants must differ")
    if matchup.player1_score == matchup.player2_score:
        raise ValidationError("scores cannot tie")


def resolve_external_id(req: SubmissionRequest) -> str:
    derived = extract_video_id(req.url)
    if req.external_id and derived and req.external_id != derived:
        raise ValidationError(f"external id {req.external_id!r} does not match the URL ({derived!r})")
    external_id = req.external_id or derived
    if not external_id:
        raise ValidationError("URL is not a recognisable YouTube video link")
    return external_id


def _claimed_fields(req: ContributionRequest) -> dict[str, Any]:
    matchup = req.matchup
    return {
        "submitter_contact": req.submitter_contact,
        "submitter_note": req.submitter_note,
        "claimed_category": req.claimed_category.value,
        "is_competitive": req.is_competitive,
        "claimed_player1_name": matchup.player1_name.strip() if matchup else None,
        "claimed_player2_name": matchup.player2_name.strip() if matchup else None,
        "claimed_player1_score": matchup.player1_score if matchup else None,
        "claimed_player2_score": matchup.player2_score if matchup else None,
    }


class SubmissionIntake:
    def __init__(self, db: DatabaseManager, limiter: SubmissionRateLimiter) -> None:
        self._db = db
        self._limiter = limiter

    async def _check_rate(self, origin: str) -> None:
        decision = await self._limiter.hit(origin)
        if not decision.allowed:
            SUBMISSIONS.labels(outcome="rate_limited").inc()
            logger.info("submission_rate_limited", origin=origin, retry_after_s=decision.retry_after_s)
            raise RateLimitError(
                "Rate limit exceeded. Please try again later.",
                retry_after_s=decision.retry_after_s,
            )

    async def submit(self, origin: str, req: SubmissionRequest) -> CatalogEntry:
        """
        Create a pending entry from a public submission.

        Checks run in order: payload validation, rate limit, dedup. A rejected
        duplicate has already consumed a rate-limit slot.

        Raises:
            ValidationError: Bad matchup, unrecognised URL or already-known video.
            RateLimitError: The origin exhausted its window.
        """
        validate_matchup(req.claimed_category, req.matchup)
        external_id = resolve_external_id(req)
        await self._check_rate(origin)

        async with self._db.read_session() as session:
            exists = await session.scalar(
                select(CatalogEntryORM.id).where(CatalogEntryORM.external_id == external_id)
            )
        if exists is not None:
            SUBMISSIONS.labels(outcome="duplicate").inc()
            raise ValidationError(DUPLICATE_MESSAGE)

        entry = CatalogEntryORM(
            external_id=external_id,
            url=req.url,
            title=req.title,
            source_name=req.source_name,
            thumbnail_url=req.thumbnail_url or thumbnail_url(external_id),
            uploaded_at=req.uploaded_at,
            duration_s=req.duration_s,
            status=EntryStatus.PENDING.value,
            verification_status=VerificationStatus.UNVERIFIED.value,
            category=VideoCategory.UNCATEGORIZED.value,
            provenance=Provenance.SUBMITTED.value,
            channel_id=None,
            scraped_at=None,
            processed_at=None,
            **_claimed_fields(req),
        )
        try:
            async with self._db.write_session() as session:
                session.add(entry)
        except IntegrityError as exc:
            SUBMISSIONS.labels(outcome="duplicate").inc()
            raise ValidationError(DUPLICATE_MESSAGE) from exc

        SUBMISSIONS.labels(outcome="accepted").inc()
        ENTRIES_CREATED.labels(provenance=Provenance.SUBMITTED.value).inc()
        logger.info("submission_accepted", entry_id=str(entry.id), external_id=external_id, origin=origin)
        return CatalogEntry.model_validate(entry)

    async def contribute(
        self, origin: str, entry_id: uuid.UUID, req: ContributionRequest
    ) -> CatalogEntry:
        """
        Attach submitter data to a discovered (scraped) entry and queue it for review.

        Raises:
            NotFoundError: No such entry.
            IllegalTransitionError: The entry is not discovered any more.
        """
        validate_matchup(req.claimed_category, req.matchup)
        await self._check_rate(origin)

        async with self._db.write_session() as session:
            entry = await session.get(CatalogEntryORM, entry_id)
            if entry is None:
                raise NotFoundError(f"Entry {entry_id} not found")
            await transition_entry(session, entry, ModerationAction.PROMOTE, **_claimed_fields(req))
            result = CatalogEntry.model_validate(entry)

        SUBMISSIONS.labels(outcome="contributed").inc()
        logger.info("contribution_accepted", entry_id=str(entry_id), origin=origin)
        return result
