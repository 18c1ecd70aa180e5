"""YouTube URL parsing and construction helpers."""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

_YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com"}
_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,20}$")
_CHANNEL_ID_RE = re.compile(r"^UC[A-Za-z0-9_-]{22}$")


def extract_video_id(url: str) -> Optional[str]:
    """
    Extract the video id from a YouTube URL.

    Supports watch?v=, youtu.be/, /embed/, /v/ and /shorts/ forms.
    Returns None for anything that is not a recognisable video URL.
    """
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None

    host = (parsed.hostname or "").lower()
    candidate: Optional[str] = None

    if host == "youtu.be":
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif host in _YOUTUBE_HOSTS:
        v = parse_qs(parsed.query).get("v")
        if v:
            candidate = v[0]
        else:
            parts = [p for p in parsed.path.split("/") if p]
            if len(parts) >= 2 and parts[0] in ("embed", "v", "shorts"):
                candidate = parts[1]

    if candidate and _VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def is_channel_id(value: str) -> bool:
    return bool(_CHANNEL_ID_RE.match(value))


def parse_channel_reference(value: str) -> tuple[str, str]:
    """
    Classify a channel reference typed by a moderator.

    Returns (kind, value) where kind is one of "id", "handle", "custom" or
    "unknown". Raw ids and /channel/UC... URLs resolve locally; handles and
    custom names need a lookup against the source.
    """
    trimmed = value.strip()
    if is_channel_id(trimmed):
        return "id", trimmed
    if trimmed.startswith("@"):
        return "handle", trimmed[1:]

    parsed = urlparse(trimmed)
    host = (parsed.hostname or "").lower()
    if host not in _YOUTUBE_HOSTS:
        return ("custom", trimmed) if trimmed and "/" not in trimmed else ("unknown", trimmed)

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) >= 2 and parts[0] == "channel" and is_channel_id(parts[1]):
        return "id", parts[1]
    if parts and parts[0].startswith("@"):
        return "handle", parts[0][1:]
    if len(parts) >= 2 and parts[0] in ("c", "user"):
        return "custom", parts[1]
    return "unknown", trimmed


def uploads_playlist_id(channel_id: str) -> str:
    """Channel ids start with UC; the matching uploads playlist starts with UU."""
    if not channel_id.startswith("UC"):
        raise ValueError(f"Invalid channel id format: {channel_id}")
    return "UU" + channel_id[2:]


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"
