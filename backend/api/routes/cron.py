"""
Scheduled scrape trigger.

GET|POST /v1/cron/scrape-channels: run one pass over all due channels.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from shared.models.domain import ScrapeRunResult

from api.dependencies import get_scheduler, require_cron
from scheduler.service import ScrapeScheduler

router = APIRouter(prefix="/v1/cron", tags=["cron"], dependencies=[Depends(require_cron)])


@router.api_route("/scrape-channels", methods=["GET", "POST"])
async def scrape_channels(scheduler: ScrapeScheduler = Depends(get_scheduler)) -> ScrapeRunResult:
    return await scheduler.run_due()
