"""
Lightweight metrics collection for Hooplog.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SOURCE_REQUESTS = Counter(
    "hl_source_requests_total",
    "Total video source HTTP requests",
    ["source", "endpoint", "status"],
)
ENTRIES_CREATED = Counter(
    "hl_catalog_entries_created_total",
    "Catalog entries created",
    ["provenance"],
)
SCRAPE_CHANNELS = Counter(
    "hl_scrape_channels_total",
    "Channels processed by scrape runs",
    ["outcome"],
)
SCRAPE_ITEM_FAILURES = Counter(
    "hl_scrape_item_failures_total",
    "Per-item creation failures during scrape runs",
)
MODERATION_TRANSITIONS = Counter(
    "hl_moderation_transitions_total",
    "Applied moderation status transitions",
    ["action", "to_status"],
)
GAME_COMMITS = Counter(
    "hl_game_commits_total",
    "Game commit attempts by outcome",
    ["outcome"],
)
SUBMISSIONS = Counter(
    "hl_submissions_total",
    "Public submissions by outcome",
    ["outcome"],
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "hl_source_latency_seconds",
    "Video source request latency in seconds",
    ["source"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
SCRAPE_CHANNEL_DURATION = Histogram(
    "hl_scrape_channel_seconds",
    "Time to scrape a single channel",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
