"""
Abstract base class for video sources.
Defines the contract the ingestion engine and channel registry depend on.
"""
from __future__ import annotations

import abc
from datetime import datetime
from typing import Optional

from shared.models.domain import ChannelInfo, SourceListing
from shared.utils.http_client import SourceHTTPClient


class VideoSourceAdapter(abc.ABC):
    """
    Abstract video source.

    Implementations raise ExternalFetchError for any failure talking to the
    source; callers decide whether that aborts a single-item operation or is
    recorded in a batch result.
    """

    def __init__(self, name: str, http_client: SourceHTTPClient) -> None:
        self._name = name
        self._http = http_client

    @property
    def name(self) -> str:
        return self._name

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    @abc.abstractmethod
    async def list_recent_listings(
        self,
        channel_external_id: str,
        since: Optional[datetime],
        max_results: int,
        max_pages: int,
    ) -> list[SourceListing]:
        """
        List a channel's uploads, newest first.

        With `since` set, paging stops once a page reaches listings older than
        it; listings on that last page may predate `since` and are returned anyway.
        """

    @abc.abstractmethod
    async def get_channel_info(self, channel_external_id: str) -> ChannelInfo:
        """Fetch channel metadata. Missing channels raise ExternalFetchError."""

    @abc.abstractmethod
    async def resolve_channel_id(self, value: str) -> Optional[str]:
        """Turn an id, channel URL, @handle or custom name into a channel id, or None."""
