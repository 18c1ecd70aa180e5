"""
Moderator actions on catalog entries (everything except approval, which goes
through GameCommitService).
"""
from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import delete, func, select

from shared.errors import ConflictError, NotFoundError
from shared.models.domain import CatalogEntry, utcnow
from shared.models.enums import EntryStatus, ModerationAction, Provenance
from shared.models.orm import CatalogEntryORM, MatchORM, ParticipantStatORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from moderation.state_machine import transition_entry

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


class ModerationService:
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def _apply(self, entry_id: uuid.UUID, action: ModerationAction, **values) -> CatalogEntry:
        async with self._db.write_session() as session:
            entry = await session.get(CatalogEntryORM, entry_id)
            if entry is None:
                raise NotFoundError(f"Entry {entry_id} not found")
            await transition_entry(session, entry, action, **values)
            return CatalogEntry.model_validate(entry)

    async def reject(self, entry_id: uuid.UUID) -> CatalogEntry:
        return await self._apply(entry_id, ModerationAction.REJECT, processed_at=utcnow())

    async def reopen(self, entry_id: uuid.UUID) -> CatalogEntry:
        return await self._apply(entry_id, ModerationAction.REOPEN, processed_at=None)

    async def delete_entry(self, entry_id: uuid.UUID, cascade_match: bool = False) -> None:
        """
        Delete an entry. An entry with a match is only deleted together with
        that match (and its stats) when cascade_match is set.
        """
        async with self._db.write_session() as session:
            entry = await session.get(CatalogEntryORM, entry_id)
            if entry is None:
                raise NotFoundError(f"Entry {entry_id} not found")
            match_id = await session.scalar(select(MatchORM.id).where(MatchORM.entry_id == entry_id))
            if match_id is not None:
                if not cascade_match:
                    raise ConflictError(f"Entry {entry_id} has a match; delete it with cascade_match")
                await session.execute(delete(ParticipantStatORM).where(ParticipantStatORM.match_id == match_id))
                await session.execute(delete(MatchORM).where(MatchORM.id == match_id))
            await session.execute(delete(CatalogEntryORM).where(CatalogEntryORM.id == entry_id))
        logger.info(
            "entry_deleted",
            entry_id=str(entry_id),
            match_id=str(match_id) if match_id else None,
        )

    async def get_entry(self, entry_id: uuid.UUID) -> CatalogEntry:
        async with self._db.read_session() as session:
            entry = await session.get(CatalogEntryORM, entry_id)
            if entry is None:
                raise NotFoundError(f"Entry {entry_id} not found")
            return CatalogEntry.model_validate(entry)

    async def list_entries(
        self,
        status: Optional[EntryStatus] = None,
        provenance: Optional[Provenance] = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[CatalogEntry]:
        """Review queue, oldest first so nothing starves."""
        stmt = select(CatalogEntryORM).order_by(CatalogEntryORM.created_at, CatalogEntryORM.id)
        if status is not None:
            stmt = stmt.where(CatalogEntryORM.status == status.value)
        if provenance is not None:
            stmt = stmt.where(CatalogEntryORM.provenance == provenance.value)
        stmt = stmt.limit(max(1, min(limit, MAX_LIST_LIMIT))).offset(max(offset, 0))
        async with self._db.read_session() as session:
            rows = (await session.scalars(stmt)).all()
            return [CatalogEntry.model_validate(r) for r in rows]

    async def status_counts(self) -> dict[str, int]:
        """Entry count per status; every status is present, zero when empty."""
        counts = {s.value: 0 for s in EntryStatus}
        async with self._db.read_session() as session:
            rows = await session.execute(
                select(CatalogEntryORM.status, func.count()).group_by(CatalogEntryORM.status)
            )
            for status, count in rows:
                counts[status] = count
        return counts
