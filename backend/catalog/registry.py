"""
Channel registry.
Whitelisted source channels, their scrape cadence and their last-scrape marker.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models.domain import Channel, ChannelCreate, ChannelUpdate
from shared.models.orm import CatalogEntryORM, ChannelORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from ingest.sources.base import VideoSourceAdapter
from scheduler.due import select_due_channels

logger = get_logger(__name__)


class ChannelRegistry:
    """CRUD over channels plus the due-channel query used by the scheduler."""

    def __init__(self, db: DatabaseManager, source: VideoSourceAdapter) -> None:
        self._db = db
        self._source = source

    async def add_channel(self, req: ChannelCreate) -> Channel:
        """
        Resolve and register a channel as whitelisted.

        Raises:
            ValidationError: The reference does not resolve to a channel id.
            ConflictError: The channel is already registered.
            ExternalFetchError: The source lookup failed.
        """
        external_id = await self._source.resolve_channel_id(req.channel)
        if not external_id:
            raise ValidationError(f"Could not resolve a channel from {req.channel!r}")

        async with self._db.read_session() as session:
            existing = await session.scalar(
                select(ChannelORM.id).where(ChannelORM.external_id == external_id)
            )
        if existing is not None:
            raise ConflictError(f"Channel {external_id} is already registered")

        info = await self._source.get_channel_info(external_id)

        row = ChannelORM(
            external_id=info.id,
            name=info.name,
            description=info.description or None,
            thumbnail_url=info.thumbnail_url or None,
            subscriber_count=info.subscriber_count,
            cadence=req.cadence.value,
            whitelisted=True,
            last_scraped_at=None,
        )
        try:
            async with self._db.write_session() as session:
                session.add(row)
        except IntegrityError as exc:
            raise ConflictError(f"Channel {external_id} is already registered") from exc

        logger.info("channel_added", channel_id=str(row.id), external_id=row.external_id, cadence=row.cadence)
        return Channel.model_validate(row)

    async def update_channel(self, channel_id: uuid.UUID, req: ChannelUpdate) -> Channel:
        async with self._db.write_session() as session:
            row = await session.get(ChannelORM, channel_id)
            if row is None:
                raise NotFoundError(f"Channel {channel_id} not found")
            if req.whitelisted is not None:
                row.whitelisted = req.whitelisted
            if req.cadence is not None:
                row.cadence = req.cadence.value
            await session.flush()
            channel = Channel.model_validate(row)
        logger.info(
            "channel_updated",
            channel_id=str(channel_id),
            whitelisted=channel.whitelisted,
            cadence=channel.cadence.value,
        )
        return channel

    async def remove_channel(self, channel_id: uuid.UUID) -> None:
        """Delete a channel; its catalog entries survive with channel_id cleared."""
        async with self._db.write_session() as session:
            row = await session.get(ChannelORM, channel_id)
            if row is None:
                raise NotFoundError(f"Channel {channel_id} not found")
            unlinked = await session.execute(
                update(CatalogEntryORM)
                .where(CatalogEntryORM.channel_id == channel_id)
                .values(channel_id=None)
            )
            await session.delete(row)
        logger.info("channel_removed", channel_id=str(channel_id), entries_unlinked=unlinked.rowcount)

    async def get_channel(self, channel_id: uuid.UUID) -> Channel:
        async with self._db.read_session() as session:
            row = await session.get(ChannelORM, channel_id)
            if row is None:
                raise NotFoundError(f"Channel {channel_id} not found")
            return Channel.model_validate(row)

    async def list_channels(self, whitelisted_only: bool = False) -> list[Channel]:
        stmt = select(ChannelORM).order_by(ChannelORM.name)
        if whitelisted_only:
            stmt = stmt.where(ChannelORM.whitelisted.is_(True))
        async with self._db.read_session() as session:
            rows = (await session.scalars(stmt)).all()
            return [Channel.model_validate(r) for r in rows]

    async def load_due_channels(self, now: datetime) -> list[Channel]:
        """Whitelisted channels read from the DB, filtered by the cadence predicate."""
        channels = await self.list_channels(whitelisted_only=True)
        return select_due_channels(channels, now)
