"""
Moderator endpoints. All require the X-Moderator-Token header.

GET    /v1/moderation/entries                 : review queue, filterable by status/provenance.
GET    /v1/moderation/stats                   : entry counts per status.
POST   /v1/moderation/entries/{id}/approve    : approve and commit the match atomically.
POST   /v1/moderation/entries/{id}/reject
POST   /v1/moderation/entries/{id}/reopen
DELETE /v1/moderation/entries/{id}            : ?cascade_match=true also removes its match.
PATCH  /v1/moderation/matches/{id}            : edit players, scores or details; winner is recomputed.
DELETE /v1/moderation/matches/{id}            : ?delete_entry=true also removes the entry.
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field

from shared.errors import ValidationError
from shared.models.domain import CatalogEntry, MatchCommitRequest, MatchRecord, MatchUpdateRequest
from shared.models.enums import EntryStatus, Provenance

from api.dependencies import get_game_commit, get_moderation, require_moderator
from moderation.game_commit import GameCommitService
from moderation.service import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, ModerationService

router = APIRouter(prefix="/v1/moderation", tags=["moderation"], dependencies=[Depends(require_moderator)])


class ApproveBody(MatchCommitRequest):
    """Same as MatchCommitRequest; entry_id comes from the path."""

    entry_id: Optional[uuid.UUID] = Field(default=None)


@router.get("/entries")
async def list_entries(
    status: Optional[EntryStatus] = None,
    provenance: Optional[Provenance] = None,
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    offset: int = Query(default=0, ge=0),
    moderation: ModerationService = Depends(get_moderation),
) -> list[CatalogEntry]:
    return await moderation.list_entries(status=status, provenance=provenance, limit=limit, offset=offset)


@router.get("/stats")
async def stats(moderation: ModerationService = Depends(get_moderation)) -> dict[str, int]:
    return await moderation.status_counts()


@router.get("/entries/{entry_id}")
async def get_entry(
    entry_id: uuid.UUID, moderation: ModerationService = Depends(get_moderation)
) -> CatalogEntry:
    return await moderation.get_entry(entry_id)


@router.post("/entries/{entry_id}/approve", status_code=201)
async def approve(
    entry_id: uuid.UUID,
    body: ApproveBody,
    commit: GameCommitService = Depends(get_game_commit),
) -> MatchRecord:
    if body.entry_id is not None and body.entry_id != entry_id:
        raise ValidationError("entry_id in body does not match the path")
    req = MatchCommitRequest.model_validate({**body.model_dump(), "entry_id": entry_id})
    return await commit.approve_with_match(req)


@router.post("/entries/{entry_id}/reject")
async def reject(entry_id: uuid.UUID, moderation: ModerationService = Depends(get_moderation)) -> CatalogEntry:
    return await moderation.reject(entry_id)


@router.post("/entries/{entry_id}/reopen")
async def reopen(entry_id: uuid.UUID, moderation: ModerationService = Depends(get_moderation)) -> CatalogEntry:
    return await moderation.reopen(entry_id)


@router.delete("/entries/{entry_id}", status_code=204)
async def delete_entry(
    entry_id: uuid.UUID,
    cascade_match: bool = False,
    moderation: ModerationService = Depends(get_moderation),
) -> Response:
    await moderation.delete_entry(entry_id, cascade_match=cascade_match)
    return Response(status_code=204)


@router.patch("/matches/{match_id}")
async def update_match(
    match_id: uuid.UUID,
    body: MatchUpdateRequest,
    commit: GameCommitService = Depends(get_game_commit),
) -> MatchRecord:
    return await commit.update_match(match_id, body)


@router.delete("/matches/{match_id}", status_code=204)
async def delete_match(
    match_id: uuid.UUID,
    delete_entry: bool = False,
    commit: GameCommitService = Depends(get_game_commit),
) -> Response:
    await commit.delete_match(match_id, delete_entry=delete_entry)
    return Response(status_code=204)
