"""
YouTube Data API v3 source.
Lists channel uploads through the uploads playlist and normalizes them to SourceListing.
"""
from __future__ import annotations

import html
import re
from datetime import datetime
from typing import Any, Optional

from shared.config import Settings, get_settings
from shared.errors import ExternalFetchError
from shared.models.domain import ChannelInfo, SourceListing, ensure_utc
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from ingest.sources.base import VideoSourceAdapter
from ingest.sources.urls import parse_channel_reference, uploads_playlist_id

logger = get_logger(__name__)

SOURCE_NAME = "youtube"
MAX_PAGE_SIZE = 50

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")
_VIDEO_THUMB_ORDER = ("maxres", "standard", "high", "medium", "default")
_CHANNEL_THUMB_ORDER = ("high", "medium", "default")


def parse_iso_duration(value: str) -> int:
    """ISO-8601 duration ("PT1H2M3S") to seconds; unparseable values become 0."""
    match = _DURATION_RE.match(value or "")
    if not match:
        return 0
    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def _parse_published(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _best_thumbnail(thumbnails: dict[str, Any], order: tuple[str, ...]) -> str:
    for key in order:
        url = (thumbnails.get(key) or {}).get("url")
        if url:
            return url
    return ""


class YouTubeSource(VideoSourceAdapter):
    """YouTube Data API v3 connector."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: SourceHTTPClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(
            SOURCE_NAME,
            http_client
            or SourceHTTPClient(
                source_name=SOURCE_NAME,
                base_url=self._settings.youtube_api_base,
                timeout_s=self._settings.source_request_timeout_s,
            ),
        )

    async def _get(self, path: str, **params: Any) -> dict[str, Any]:
        if not self._settings.youtube_api_key:
            raise ExternalFetchError("HL_YOUTUBE_API_KEY is not set", source=SOURCE_NAME)
        return await self._http.get_json(path, params={**params, "key": self._settings.youtube_api_key})

    # ── Listings ────────────────────────────────────────────────────────

    async def list_recent_listings(
        self,
        channel_external_id: str,
        since: Optional[datetime],
        max_results: int,
        max_pages: int,
    ) -> list[SourceListing]:
        try:
            playlist_id = uploads_playlist_id(channel_external_id)
        except ValueError as exc:
            raise ExternalFetchError(str(exc), source=SOURCE_NAME) from exc

        since = ensure_utc(since)
        page_size = max(1, min(max_results, MAX_PAGE_SIZE))
        listings: list[SourceListing] = []
        page_token: Optional[str] = None
        pages = 0

        while pages < max_pages:
            params: dict[str, Any] = {
                "part": "snippet",
                "playlistId": playlist_id,
                "maxResults": page_size,
            }
            if page_token:
                params["pageToken"] = page_token
            data = await self._get("playlistItems", **params)
            items = data.get("items") or []
            if not items:
                break

            durations = await self._fetch_durations(
                [item["snippet"]["resourceId"]["videoId"] for item in items]
            )

            reached_since = False
            for item in items:
                snippet = item["snippet"]
                video_id = snippet["resourceId"]["videoId"]
                published = _parse_published(snippet["publishedAt"])
                if since is not None and published < since:
                    reached_since = True
                listings.append(
                    SourceListing(
                        external_id=video_id,
                        title=html.unescape(snippet.get("title", "")),
                        source_name=html.unescape(snippet.get("channelTitle", "")),
                        thumbnail_url=_best_thumbnail(snippet.get("thumbnails") or {}, _VIDEO_THUMB_ORDER) or None,
                        uploaded_at=published,
                        duration_s=durations.get(video_id, 0),
                    )
                )

            pages += 1
            page_token = data.get("nextPageToken")
            if reached_since or not page_token:
                break

        logger.info(
            "youtube_listings_fetched",
            channel=channel_external_id,
            pages=pages,
            listings=len(listings),
            incremental=since is not None,
        )
        return listings

    async def _fetch_durations(self, video_ids: list[str]) -> dict[str, int]:
        """Batch-fetch durations; a failure here only costs the durations, not the page."""
        if not video_ids:
            return {}
        try:
            data = await self._get("videos", part="contentDetails", id=",".join(video_ids))
        except ExternalFetchError as exc:
            logger.warning("youtube_durations_unavailable", error=exc.message, count=len(video_ids))
            return {}
        return {
            item["id"]: parse_iso_duration((item.get("contentDetails") or {}).get("duration", ""))
            for item in data.get("items") or []
        }

    # ── Channels ────────────────────────────────────────────────────────

    async def get_channel_info(self, channel_external_id: str) -> ChannelInfo:
        data = await self._get("channels", part="snippet,statistics", id=channel_external_id)
        items = data.get("items") or []
        if not items:
            raise ExternalFetchError(f"Channel not found: {channel_external_id}", source=SOURCE_NAME)
        channel = items[0]
        snippet = channel.get("snippet") or {}
        stats = channel.get("statistics") or {}
        try:
            subscribers = int(stats.get("subscriberCount") or 0)
        except (TypeError, ValueError):
            subscribers = 0
        return ChannelInfo(
            id=channel["id"],
            name=html.unescape(snippet.get("title", "")),
            description=html.unescape(snippet.get("description", "")),
            thumbnail_url=_best_thumbnail(snippet.get("thumbnails") or {}, _CHANNEL_THUMB_ORDER),
            subscriber_count=subscribers,
        )

    async def resolve_channel_id(self, value: str) -> Optional[str]:
        kind, ref = parse_channel_reference(value)
        if kind == "id":
            return ref
        if kind == "handle":
            data = await self._get("channels", part="id", forHandle=ref)
            items = data.get("items") or []
            return items[0]["id"] if items else None
        if kind == "custom":
            data = await self._get("search", part="snippet", type="channel", q=ref, maxResults=1)
            items = data.get("items") or []
            return (items[0].get("id") or {}).get("channelId") if items else None
        return None
