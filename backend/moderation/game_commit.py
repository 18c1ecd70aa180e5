"""
Game commit transaction.

Approving an entry and recording its match is one unit of work: the match row,
both participant stat rows and the status change commit together or not at all.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.errors import ConflictError, NotFoundError, TransactionError, ValidationError
from shared.models.domain import (
    MatchCommitRequest,
    MatchRecord,
    MatchUpdateRequest,
    StatLine,
    ensure_utc,
    utcnow,
)
from shared.models.enums import ModerationAction, VideoCategory
from shared.models.orm import CatalogEntryORM, MatchORM, ParticipantStatORM, PlayerORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import GAME_COMMITS

from moderation.state_machine import next_status, transition_entry

logger = get_logger(__name__)


def check_commit_request(req: MatchCommitRequest) -> None:
    """Input checks that need no database access."""
    if req.player1_id == req.player2_id:
        raise ValidationError("participants must differ")
    if req.player1_score == req.player2_score:
        raise ValidationError("scores cannot tie")


def winner_of(req: MatchCommitRequest) -> uuid.UUID:
    return req.player1_id if req.player1_score > req.player2_score else req.player2_id


def _build_stat_rows(match_id: uuid.UUID, req: MatchCommitRequest) -> list[ParticipantStatORM]:
    rows = []
    for player_id, line in (
        (req.player1_id, req.player1_stats),
        (req.player2_id, req.player2_stats),
    ):
        values = (line or StatLine()).model_dump()
        rows.append(ParticipantStatORM(id=uuid.uuid4(), match_id=match_id, player_id=player_id, **values))
    return rows


def _to_record(match: MatchORM, stats: list[ParticipantStatORM]) -> MatchRecord:
    return MatchRecord(
        id=match.id,
        entry_id=match.entry_id,
        player1_id=match.player1_id,
        player2_id=match.player2_id,
        player1_score=match.player1_score,
        player2_score=match.player2_score,
        winner_id=match.winner_id,
        is_official=match.is_official,
        game_date=ensure_utc(match.game_date),
        location=match.location,
        notes=match.notes,
        source=match.source,
        stats=[
            {
                "match_id": s.match_id,
                "player_id": s.player_id,
                **StatLine.model_validate(s).model_dump(),
            }
            for s in stats
        ],
    )


class GameCommitService:
    def __init__(self, db: DatabaseManager, clock: Callable[[], datetime] = utcnow) -> None:
        self._db = db
        self._clock = clock

    async def approve_with_match(self, req: MatchCommitRequest) -> MatchRecord:
        """
        Approve an entry and record its 1v1 result atomically.

        Raises:
            ValidationError: Same player twice or tied scores.
            NotFoundError: Entry or a participant does not exist.
            ConflictError: The entry is already approved, or another commit won the race.
            TransactionError: Persistence failed; nothing was written.
        """
        try:
            check_commit_request(req)
        except ValidationError:
            GAME_COMMITS.labels(outcome="invalid").inc()
            raise

        try:
            record = await self._commit(req)
        except IntegrityError as exc:
            GAME_COMMITS.labels(outcome="conflict").inc()
            logger.warning("game_commit_conflict", entry_id=str(req.entry_id), error=str(exc.orig))
            raise ConflictError("entry already has a match") from exc
        except SQLAlchemyError as exc:
            GAME_COMMITS.labels(outcome="failed").inc()
            logger.error("game_commit_failed", entry_id=str(req.entry_id), error=str(exc), exc_info=True)
            raise TransactionError(f"Could not commit match for entry {req.entry_id}") from exc
        except (NotFoundError, ConflictError):
            GAME_COMMITS.labels(outcome="rejected").inc()
            raise

        GAME_COMMITS.labels(outcome="committed").inc()
        logger.info(
            "game_committed",
            entry_id=str(req.entry_id),
            match_id=str(record.id),
            winner_id=str(record.winner_id),
            score=f"{req.player1_score}-{req.player2_score}",
        )
        return record

    async def _commit(self, req: MatchCommitRequest) -> MatchRecord:
        now = self._clock()
        async with self._db.write_session() as session:
            entry = await session.scalar(
                select(CatalogEntryORM).where(CatalogEntryORM.id == req.entry_id).with_for_update()
            )
            if entry is None:
                raise NotFoundError(f"Entry {req.entry_id} not found")
            next_status(entry.status, ModerationAction.APPROVE)

            found = set(
                await session.scalars(
                    select(PlayerORM.id).where(PlayerORM.id.in_([req.player1_id, req.player2_id]))
                )
            )
            missing = [str(pid) for pid in (req.player1_id, req.player2_id) if pid not in found]
            if missing:
                raise NotFoundError(f"Player(s) not found: {', '.join(missing)}")

            match = MatchORM(
                id=uuid.uuid4(),
                entry_id=entry.id,
                player1_id=req.player1_id,
                player2_id=req.player2_id,
                player1_score=req.player1_score,
                player2_score=req.player2_score,
                winner_id=winner_of(req),
                is_official=req.is_official,
                game_date=entry.uploaded_at or now,
                location=req.location,
                notes=req.notes,
                source=entry.provenance,
            )
            session.add(match)
            await session.flush()

            stats = _build_stat_rows(match.id, req)
            session.add_all(stats)
            await session.flush()

            await transition_entry(
                session,
                entry,
                ModerationAction.APPROVE,
                processed_at=now,
                category=VideoCategory.ONE_V_ONE.value,
                is_competitive=True,
            )

            record = _to_record(match, stats)
        return record

    async def update_match(self, match_id: uuid.UUID, req: MatchUpdateRequest) -> MatchRecord:
        """
        Edit a recorded match. Omitted fields keep their stored value, the
        winner is recomputed from the merged scores, and stat rows follow
        their side when a participant is replaced.

        Raises:
            NotFoundError: Match or a new participant does not exist.
            ValidationError: The merged match would tie or repeat a player.
            ConflictError: The edit collided with a concurrent change.
            TransactionError: Persistence failed; nothing was written.
        """
        changes = req.model_dump(exclude_none=True)
        try:
            record = await self._update(match_id, changes)
        except ValidationError:
            GAME_COMMITS.labels(outcome="invalid").inc()
            raise
        except IntegrityError as exc:
            GAME_COMMITS.labels(outcome="conflict").inc()
            logger.warning("match_update_conflict", match_id=str(match_id), error=str(exc.orig))
            raise ConflictError(f"Match {match_id} changed concurrently") from exc
        except SQLAlchemyError as exc:
            GAME_COMMITS.labels(outcome="failed").inc()
            logger.error("match_update_failed", match_id=str(match_id), error=str(exc), exc_info=True)
            raise TransactionError(f"Could not update match {match_id}") from exc

        GAME_COMMITS.labels(outcome="updated").inc()
        logger.info(
            "match_updated",
            match_id=str(match_id),
            fields=sorted(changes),
            winner_id=str(record.winner_id),
            score=f"{record.player1_score}-{record.player2_score}",
        )
        return record

    async def _update(self, match_id: uuid.UUID, changes: dict) -> MatchRecord:
        async with self._db.write_session() as session:
            match = await session.scalar(
                select(MatchORM).where(MatchORM.id == match_id).with_for_update()
            )
            if match is None:
                raise NotFoundError(f"Match {match_id} not found")

            old_sides = (match.player1_id, match.player2_id)
            player1_id = changes.get("player1_id", match.player1_id)
            player2_id = changes.get("player2_id", match.player2_id)
            player1_score = changes.get("player1_score", match.player1_score)
            player2_score = changes.get("player2_score", match.player2_score)
            if player1_id == player2_id:
                raise ValidationError("participants must differ")
            if player1_score == player2_score:
                raise ValidationError("scores cannot tie")

            new_players = {player1_id, player2_id} - set(old_sides)
            if new_players:
                found = set(
                    await session.scalars(select(PlayerORM.id).where(PlayerORM.id.in_(new_players)))
                )
                missing = sorted(str(pid) for pid in new_players - found)
                if missing:
                    raise NotFoundError(f"Player(s) not found: {', '.join(missing)}")

            for field, value in changes.items():
                setattr(match, field, value)
            match.winner_id = player1_id if player1_score > player2_score else player2_id

            stats = list(
                await session.scalars(
                    select(ParticipantStatORM).where(ParticipantStatORM.match_id == match_id)
                )
            )
            if (player1_id, player2_id) != old_sides:
                side_of = {old_sides[0]: player1_id, old_sides[1]: player2_id}
                moved = [
                    ParticipantStatORM(
                        id=uuid.uuid4(),
                        match_id=match_id,
                        player_id=side_of[s.player_id],
                        **StatLine.model_validate(s).model_dump(),
                    )
                    for s in stats
                    if s.player_id in side_of
                ]
                # Old rows go first so a swap never holds two rows for one player.
                for s in stats:
                    await session.delete(s)
                await session.flush()
                session.add_all(moved)
                stats = moved

            await session.flush()
            record = _to_record(match, stats)
        return record

    async def delete_match(self, match_id: uuid.UUID, delete_entry: bool = False) -> None:
        """
        Remove a match and its stats.

        With delete_entry the catalog entry goes too and its external id can be
        submitted again; otherwise the entry is retracted to rejected so the id
        stays blocked.
        """
        async with self._db.write_session() as session:
            match = await session.get(MatchORM, match_id)
            if match is None:
                raise NotFoundError(f"Match {match_id} not found")
            entry = await session.get(CatalogEntryORM, match.entry_id)

            await session.execute(delete(ParticipantStatORM).where(ParticipantStatORM.match_id == match_id))
            await session.execute(delete(MatchORM).where(MatchORM.id == match_id))

            if entry is not None:
                if delete_entry:
                    await session.execute(delete(CatalogEntryORM).where(CatalogEntryORM.id == entry.id))
                else:
                    await transition_entry(session, entry, ModerationAction.RETRACT)

        logger.info(
            "match_deleted",
            match_id=str(match_id),
            entry_id=str(match.entry_id),
            entry_deleted=delete_entry,
        )
