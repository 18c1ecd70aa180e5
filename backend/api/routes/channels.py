"""
Channel registry endpoints (moderator only).

GET    /v1/channels                : list channels.
POST   /v1/channels                : whitelist a channel by id, URL or @handle.
PATCH  /v1/channels/{id}           : change whitelist flag or cadence.
DELETE /v1/channels/{id}           : remove; its entries are kept and unlinked.
POST   /v1/channels/{id}/scrape    : scrape now (?full=true ignores the marker).
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response

from shared.models.domain import Channel, ChannelCreate, ChannelScrapeResult, ChannelUpdate

from api.dependencies import get_registry, get_scheduler, require_moderator
from catalog.registry import ChannelRegistry
from scheduler.service import ScrapeScheduler

router = APIRouter(prefix="/v1/channels", tags=["channels"], dependencies=[Depends(require_moderator)])


@router.get("")
async def list_channels(
    whitelisted_only: bool = False, registry: ChannelRegistry = Depends(get_registry)
) -> list[Channel]:
    return await registry.list_channels(whitelisted_only=whitelisted_only)


@router.post("", status_code=201)
async def add_channel(body: ChannelCreate, registry: ChannelRegistry = Depends(get_registry)) -> Channel:
    return await registry.add_channel(body)


@router.patch("/{channel_id}")
async def update_channel(
    channel_id: uuid.UUID, body: ChannelUpdate, registry: ChannelRegistry = Depends(get_registry)
) -> Channel:
    return await registry.update_channel(channel_id, body)


@router.delete("/{channel_id}", status_code=204)
async def remove_channel(channel_id: uuid.UUID, registry: ChannelRegistry = Depends(get_registry)) -> Response:
    await registry.remove_channel(channel_id)
    return Response(status_code=204)


@router.post("/{channel_id}/scrape")
async def scrape_channel(
    channel_id: uuid.UUID,
    full: bool = False,
    scheduler: ScrapeScheduler = Depends(get_scheduler),
) -> ChannelScrapeResult:
    return await scheduler.scrape_one(channel_id, full=full)
