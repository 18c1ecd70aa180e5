"""API route tests. /health runs without any backing services; the rest use a SQLite database."""
from __future__ import annotations

import httpx
import pytest
import pytest_asyncio
from fastapi import Request
from fastapi.testclient import TestClient

from shared.config import get_settings
from shared.models.domain import ChannelInfo
from shared.models.enums import EntryStatus
from api.app import create_app
from api.dependencies import client_origin, init_dependencies
from intake.rate_limiter import InMemorySlidingWindowLimiter

from conftest import CHANNEL_EXTERNAL_ID, listing

MODERATOR = {"X-Moderator-Token": "mod-secret"}


@pytest.fixture
def client() -> TestClient:
    """Test client with lifespan disabled so /health can be tested without a database."""
    app = create_app(use_lifespan=False)
    with TestClient(app) as c:
        yield c


def test_health_returns_ok(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "api"}
    assert r.headers.get("x-request-id")


@pytest.fixture
def app(db, source, settings):
    init_dependencies(db, source, InMemorySlidingWindowLimiter(max_hits=2, window_s=3600))
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest_asyncio.fixture
async def api(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _submission(video_id: str = "dQw4w9WgXcQ", s1: int = 21, s2: int = 18) -> dict:
    return {
        "url": f"https://www.youtube.com/watch?v={video_id}",
        "title": "1v1 to 21",
        "source_name": "Court Kings",
        "claimed_category": "one_v_one",
        "matchup": {"player1_name": "Alice", "player2_name": "Bea", "player1_score": s1, "player2_score": s2},
    }


# ── Readiness / cron ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_ready_reports_database(api) -> None:
    r = await api.get("/ready")
    assert r.status_code == 200
    assert r.json() == {"database": True, "status": "ok"}


@pytest.mark.asyncio
async def test_cron_requires_authorization(api) -> None:
    r = await api.post("/v1/cron/scrape-channels")
    assert r.status_code == 401
    r = await api.get("/v1/cron/scrape-channels", headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_cron_runs_due_channels(api, source, make_channel) -> None:
    await make_channel()
    source.listings = [listing("vid1"), listing("vid2")]

    r = await api.get("/v1/cron/scrape-channels", headers={"Authorization": "Bearer cron-secret"})

    assert r.status_code == 200
    body = r.json()
    assert body["channels_processed"] == 1
    assert body["total_videos_created"] == 2


@pytest.mark.asyncio
async def test_platform_header_ignored_unless_configured(api) -> None:
    r = await api.post("/v1/cron/scrape-channels", headers={"x-vercel-cron": "1"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_cron_accepts_configured_platform_header(api, app, settings) -> None:
    configured = settings.model_copy(update={"cron_platform_header": "x-vercel-cron"})
    app.dependency_overrides[get_settings] = lambda: configured

    r = await api.post("/v1/cron/scrape-channels", headers={"x-vercel-cron": "1"})

    assert r.status_code == 200
    assert r.json()["channels_processed"] == 0


# ── Submissions ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_submission_created(api) -> None:
    r = await api.post("/v1/submissions", json=_submission())
    assert r.status_code == 201
    assert r.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_tied_submission_maps_to_422(api) -> None:
    r = await api.post("/v1/submissions", json=_submission(s1=20, s2=20))
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_malformed_body_uses_error_envelope(api) -> None:
    body = _submission()
    del body["title"]

    r = await api.post("/v1/submissions", json=body, headers={"X-Request-ID": "req-123"})

    assert r.status_code == 422
    payload = r.json()
    assert payload["error"] == "validation_error"
    assert payload["request_id"] == "req-123"
    assert any(d["loc"][-1] == "title" for d in payload["details"])
    assert r.headers["x-request-id"] == "req-123"


@pytest.mark.asyncio
async def test_rate_limited_submission_maps_to_429(api) -> None:
    headers = {"X-Forwarded-For": "9.9.9.9, 10.0.0.1"}
    for video_id in ("video000001", "video000002"):
        assert (await api.post("/v1/submissions", json=_submission(video_id), headers=headers)).status_code == 201

    r = await api.post("/v1/submissions", json=_submission("video000003"), headers=headers)

    assert r.status_code == 429
    assert r.json()["error"] == "rate_limited"
    assert int(r.headers["Retry-After"]) > 0


@pytest.mark.asyncio
async def test_spoofed_forwarded_entries_share_one_bucket(api) -> None:
    for i, video_id in enumerate(("video000001", "video000002")):
        headers = {"X-Forwarded-For": f"1.1.1.{i}, 10.0.0.1"}
        assert (await api.post("/v1/submissions", json=_submission(video_id), headers=headers)).status_code == 201

    r = await api.post(
        "/v1/submissions", json=_submission("video000003"), headers={"X-Forwarded-For": "8.8.8.8, 10.0.0.1"}
    )

    assert r.status_code == 429


def _request_from(forwarded: str | None, peer: str = "172.16.0.9") -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded is not None else []
    return Request({"type": "http", "headers": headers, "client": (peer, 4000)})


@pytest.mark.parametrize(
    "forwarded, hops, expected",
    [
        ("6.6.6.6, 10.0.0.1", 1, "10.0.0.1"),
        ("6.6.6.6, 10.0.0.1, 10.0.0.2", 2, "10.0.0.1"),
        ("10.0.0.1", 3, "10.0.0.1"),
        ("6.6.6.6, 10.0.0.1", 0, "172.16.0.9"),
        (None, 1, "172.16.0.9"),
    ],
)
def test_client_origin_counts_trusted_hops(settings, forwarded, hops, expected) -> None:
    configured = settings.model_copy(update={"trusted_proxy_hops": hops})
    assert client_origin(_request_from(forwarded), configured) == expected


# ── Moderation ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_moderation_requires_token(api) -> None:
    assert (await api.get("/v1/moderation/stats")).status_code == 401
    assert (await api.get("/v1/moderation/stats", headers={"X-Moderator-Token": "nope"})).status_code == 401


@pytest.mark.asyncio
async def test_approve_flow(api, make_entry, make_player) -> None:
    entry_id = await make_entry(status=EntryStatus.PENDING)
    alice, bea = await make_player("Alice"), await make_player("Bea")
    body = {"player1_id": str(alice), "player2_id": str(bea), "player1_score": 11, "player2_score": 7}

    r = await api.post(f"/v1/moderation/entries/{entry_id}/approve", json=body, headers=MODERATOR)
    assert r.status_code == 201
    assert r.json()["winner_id"] == str(alice)

    again = await api.post(f"/v1/moderation/entries/{entry_id}/approve", json=body, headers=MODERATOR)
    assert again.status_code == 409

    stats = await api.get("/v1/moderation/stats", headers=MODERATOR)
    assert stats.json()["approved"] == 1


@pytest.mark.asyncio
async def test_patch_match_recomputes_winner(api, make_entry, make_player) -> None:
    entry_id = await make_entry(status=EntryStatus.PENDING)
    alice, bea = await make_player("Alice"), await make_player("Bea")
    body = {"player1_id": str(alice), "player2_id": str(bea), "player1_score": 11, "player2_score": 7}
    match_id = (await api.post(f"/v1/moderation/entries/{entry_id}/approve", json=body, headers=MODERATOR)).json()["id"]

    r = await api.patch(f"/v1/moderation/matches/{match_id}", json={"player2_score": 15}, headers=MODERATOR)
    assert r.status_code == 200
    assert r.json()["winner_id"] == str(bea)

    tie = await api.patch(f"/v1/moderation/matches/{match_id}", json={"player1_score": 15}, headers=MODERATOR)
    assert tie.status_code == 422
    assert tie.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_reject_missing_entry_maps_to_404(api) -> None:
    r = await api.post(
        "/v1/moderation/entries/00000000-0000-0000-0000-000000000000/reject", headers=MODERATOR
    )
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


# ── Channels ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_add_and_list_channel(api, source) -> None:
    source.channels[CHANNEL_EXTERNAL_ID] = ChannelInfo(id=CHANNEL_EXTERNAL_ID, name="Court Kings")

    r = await api.post(
        "/v1/channels", json={"channel": CHANNEL_EXTERNAL_ID, "cadence": "weekly"}, headers=MODERATOR
    )
    assert r.status_code == 201
    assert r.json()["cadence"] == "weekly"

    dup = await api.post("/v1/channels", json={"channel": CHANNEL_EXTERNAL_ID}, headers=MODERATOR)
    assert dup.status_code == 409

    listed = await api.get("/v1/channels", headers=MODERATOR)
    assert [c["name"] for c in listed.json()] == ["Court Kings"]
