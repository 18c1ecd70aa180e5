"""
Async HTTP client wrapper for video source requests.
Includes retry logic, timeout management, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.errors import ExternalFetchError
from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_LATENCY, SOURCE_REQUESTS

logger = get_logger(__name__)


class SourceHTTPClient:
    """
    Async HTTP client for external video source APIs.
    Retries 429/5xx/timeouts with backoff, records metrics per attempt and
    surfaces every terminal failure as ExternalFetchError.
    """

    def __init__(
        self,
        source_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._source = source_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.source_request_timeout_s
        self._max_retries = max_retries
        self._default_headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Perform a GET request with retry and metrics, returning the decoded JSON body.

        Raises:
            ExternalFetchError: On non-retryable HTTP errors, exhausted retries
                or a body that is not a JSON object.
        """
        if not self._client:
            raise RuntimeError("SourceHTTPClient not started. Call start() first.")

        endpoint = path.strip("/").split("/")[0] or "root"
        last_error = "no attempt made"
        last_status: Optional[int] = None

        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            status = "error"
            try:
                resp = await self._client.get(path, params=params)
                status = str(resp.status_code)
                last_status = resp.status_code

                if resp.status_code == 429 or resp.status_code >= 500:
                    last_error = f"{self._source} returned {resp.status_code}"
                    logger.warning(
                        "source_retryable_status",
                        source=self._source,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    if attempt < self._max_retries:
                        retry_after = float(resp.headers.get("Retry-After", str(attempt)))
                        await asyncio.sleep(min(retry_after, 10.0))
                        continue
                    break

                if resp.status_code >= 400:
                    raise ExternalFetchError(
                        f"{self._source} returned {resp.status_code}: {resp.text[:200]}",
                        source=self._source,
                        status_code=resp.status_code,
                    )

                body = resp.json()
                if not isinstance(body, dict):
                    raise ExternalFetchError(
                        f"{self._source} returned a non-object JSON body",
                        source=self._source,
                        status_code=resp.status_code,
                    )
                logger.debug(
                    "source_request_success",
                    source=self._source,
                    path=path,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return body

            except httpx.TimeoutException:
                status = "timeout"
                last_error = f"{self._source} timed out"
                logger.warning("source_timeout", source=self._source, path=path, attempt=attempt)
                if attempt < self._max_retries:
                    await asyncio.sleep(1.0 * attempt)
                    continue

            except httpx.HTTPError as exc:
                last_error = f"{self._source} request failed: {exc}"
                logger.error(
                    "source_request_error",
                    source=self._source,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )

            except ValueError as exc:
                raise ExternalFetchError(
                    f"{self._source} returned invalid JSON: {exc}",
                    source=self._source,
                    status_code=last_status,
                ) from exc

            finally:
                SOURCE_REQUESTS.labels(source=self._source, endpoint=endpoint, status=status).inc()
                SOURCE_LATENCY.labels(source=self._source).observe(time.perf_counter() - start_time)

        raise ExternalFetchError(last_error, source=self._source, status_code=last_status)
