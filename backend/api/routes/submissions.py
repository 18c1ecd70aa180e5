"""
Public submission endpoints.

POST /v1/submissions                         : submit a new video for review.
POST /v1/submissions/{entry_id}/contribute   : attach matchup data to a scraped video.
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from shared.models.domain import CatalogEntry, ContributionRequest, SubmissionRequest

from api.dependencies import client_origin, get_intake
from intake.service import SubmissionIntake

router = APIRouter(prefix="/v1/submissions", tags=["submissions"])


@router.post("", status_code=201)
async def submit_video(
    body: SubmissionRequest,
    origin: str = Depends(client_origin),
    intake: SubmissionIntake = Depends(get_intake),
) -> CatalogEntry:
    return await intake.submit(origin, body)


@router.post("/{entry_id}/contribute")
async def contribute(
    entry_id: uuid.UUID,
    body: ContributionRequest,
    origin: str = Depends(client_origin),
    intake: SubmissionIntake = Depends(get_intake),
) -> CatalogEntry:
    return await intake.contribute(origin, entry_id, body)
