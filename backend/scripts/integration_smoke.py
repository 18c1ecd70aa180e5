#!/usr/bin/env python3
"""
Smoke test against a running Hooplog API.

Checks:
  1. /health returns 200 + status ok
  2. /ready reports the database (and Redis when configured) as up
  3. /v1/moderation/stats returns a count for every status (needs HL_MODERATOR_TOKEN)
  4. /v1/moderation/entries?status=pending returns a list (needs HL_MODERATOR_TOKEN)
  5. /v1/channels returns a list (needs HL_MODERATOR_TOKEN)
  6. /v1/cron/scrape-channels rejects an unauthenticated call

Usage:
  HL_MODERATOR_TOKEN=... python scripts/integration_smoke.py [BASE_URL]

  BASE_URL defaults to http://localhost:8000.
"""
from __future__ import annotations

import json
import os
import sys
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"

BASE = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
MODERATOR_TOKEN = os.environ.get("HL_MODERATOR_TOKEN", "")
STATUSES = ("discovered", "pending", "approved", "rejected")

passed = 0
failed = 0
warnings = 0


def _get_json(url: str, headers: dict | None = None, timeout: int = 15) -> dict | list | None:
    try:
        req = Request(url, headers={"Accept": "application/json", **(headers or {})})
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read())
    except HTTPError as e:
        return {"__http_error__": e.code, "__url__": url}
    except (URLError, TimeoutError, OSError) as e:
        return {"__network_error__": str(e), "__url__": url}


def ok(msg: str) -> None:
    global passed
    passed += 1
    print(f"  {GREEN}PASS{RESET}  {msg}")


def fail(msg: str) -> None:
    global failed
    failed += 1
    print(f"  {RED}FAIL{RESET}  {msg}")


def warn(msg: str) -> None:
    global warnings
    warnings += 1
    print(f"  {YELLOW}WARN{RESET}  {msg}")


def main() -> None:
    print("\n=== Hooplog Smoke Test ===")
    print(f"Backend: {BASE}\n")

    print("[1] Health check")
    data = _get_json(f"{BASE}/health")
    if isinstance(data, dict) and data.get("status") == "ok":
        ok("/health returns status=ok")
    else:
        fail(f"/health unexpected: {data}")

    print("[2] Readiness")
    data = _get_json(f"{BASE}/ready")
    if isinstance(data, dict) and data.get("status") == "ok":
        ok(f"/ready: database={data.get('database')} redis={data.get('redis', 'n/a')}")
    else:
        fail(f"/ready unexpected: {data}")

    moderator = {"X-Moderator-Token": MODERATOR_TOKEN}
    if not MODERATOR_TOKEN:
        warn("HL_MODERATOR_TOKEN not set; skipping moderator checks")
    else:
        print("[3] Moderation stats")
        data = _get_json(f"{BASE}/v1/moderation/stats", moderator)
        if isinstance(data, dict) and all(s in data for s in STATUSES):
            ok("/v1/moderation/stats: " + ", ".join(f"{s}={data[s]}" for s in STATUSES))
        else:
            fail(f"/v1/moderation/stats unexpected: {data}")

        print("[4] Review queue")
        data = _get_json(f"{BASE}/v1/moderation/entries?status=pending&limit=5", moderator)
        if isinstance(data, list):
            ok(f"/v1/moderation/entries: {len(data)} pending (first page)")
        else:
            fail(f"/v1/moderation/entries unexpected: {data}")

        print("[5] Channels")
        data = _get_json(f"{BASE}/v1/channels", moderator)
        if isinstance(data, list):
            ok(f"/v1/channels: {len(data)} channels")
            if not data:
                warn("No channels registered; scheduled scrapes will do nothing")
        else:
            fail(f"/v1/channels unexpected: {data}")

    print("[6] Cron trigger authorization")
    data = _get_json(f"{BASE}/v1/cron/scrape-channels")
    if isinstance(data, dict) and data.get("__http_error__") == 401:
        ok("/v1/cron/scrape-channels rejects unauthenticated calls")
    else:
        fail(f"/v1/cron/scrape-channels should return 401 without credentials: {data}")

    print(f"\n=== Results: {GREEN}{passed} passed{RESET}, {RED}{failed} failed{RESET}, {YELLOW}{warnings} warnings{RESET} ===\n")
    sys.exit(1 if failed > 0 else 0)


if __name__ == "__main__":
    main()
