"""
Moderation state machine for catalog entries.

    discovered --promote--> pending
    discovered|pending --approve--> approved     (game commit only)
    discovered|pending --reject--> rejected
    rejected --reopen--> pending
    approved --retract--> rejected               (match deletion only)

Every status write goes through transition_entry(), which re-checks the
current status inside the UPDATE so two racing moderators cannot both win.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from shared.errors import ConflictError, IllegalTransitionError
from shared.models.enums import EntryStatus, ModerationAction
from shared.models.orm import CatalogEntryORM
from shared.utils.logging import get_logger
from shared.utils.metrics import MODERATION_TRANSITIONS

logger = get_logger(__name__)

TRANSITIONS: dict[tuple[EntryStatus, ModerationAction], EntryStatus] = {
    (EntryStatus.DISCOVERED, ModerationAction.PROMOTE): EntryStatus.PENDING,
    (EntryStatus.DISCOVERED, ModerationAction.APPROVE): EntryStatus.APPROVED,
    (EntryStatus.PENDING, ModerationAction.APPROVE): EntryStatus.APPROVED,
    (EntryStatus.DISCOVERED, ModerationAction.REJECT): EntryStatus.REJECTED,
    (EntryStatus.PENDING, ModerationAction.REJECT): EntryStatus.REJECTED,
    (EntryStatus.REJECTED, ModerationAction.REOPEN): EntryStatus.PENDING,
    (EntryStatus.APPROVED, ModerationAction.RETRACT): EntryStatus.REJECTED,
}


def next_status(current: EntryStatus | str, action: ModerationAction) -> EntryStatus:
    """Target status for `action`, or IllegalTransitionError if the table has no such edge."""
    current = EntryStatus(current)
    target = TRANSITIONS.get((current, action))
    if target is not None:
        return target
    if current == EntryStatus.APPROVED and action == ModerationAction.APPROVE:
        message = "entry already has a match"
    else:
        message = f"cannot {action.value} an entry that is {current.value}"
    raise IllegalTransitionError(message, current=current.value, action=action.value)


async def transition_entry(
    session: AsyncSession,
    entry: CatalogEntryORM,
    action: ModerationAction,
    **values: Any,
) -> EntryStatus:
    """
    Apply `action` to `entry` inside the caller's transaction.

    Extra column values are written in the same guarded UPDATE. The in-memory
    row is refreshed to match on success.

    Raises:
        IllegalTransitionError: The table forbids the action from the current status.
        ConflictError: The stored status changed since `entry` was read.
    """
    current = EntryStatus(entry.status)
    target = next_status(current, action)

    result = await session.execute(
        update(CatalogEntryORM)
        .where(CatalogEntryORM.id == entry.id, CatalogEntryORM.status == current.value)
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Entry {entry.id} was modified concurrently; reload and retry")

    set_committed_value(entry, "status", target.value)
    for key, value in values.items():
        set_committed_value(entry, key, value)

    MODERATION_TRANSITIONS.labels(action=action.value, to_status=target.value).inc()
    logger.info(
        "entry_transitioned",
        entry_id=str(entry.id),
        action=action.value,
        from_status=current.value,
        to_status=target.value,
    )
    return target
