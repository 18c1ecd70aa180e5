"""
Error taxonomy shared by every Hooplog service.

Single-item operations (submit, approve, reject, ...) raise these directly.
Batch operations (a scrape run) catch them per item and report them as strings
in their result objects instead.
"""
from __future__ import annotations

from typing import Optional


class HooplogError(Exception):
    """Base class; `code` is the stable machine-readable identifier sent to clients."""

    code = "error"
    http_status = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(HooplogError):
    """Malformed or contradictory input: duplicate external id, tied scores, same player twice."""

    code = "validation_error"
    http_status = 422


class NotFoundError(HooplogError):
    code = "not_found"
    http_status = 404


class ConflictError(HooplogError):
    """The target's current state forbids the operation; re-fetch before retrying."""

    code = "conflict"
    http_status = 409


class IllegalTransitionError(ConflictError):
    code = "illegal_transition"

    def __init__(self, message: str, current: str, action: str) -> None:
        self.current = current
        self.action = action
        super().__init__(message)


class RateLimitError(HooplogError):
    code = "rate_limited"
    http_status = 429

    def __init__(self, message: str, retry_after_s: float) -> None:
        self.retry_after_s = retry_after_s
        super().__init__(message)


class ExternalFetchError(HooplogError):
    """A call to the video source failed (network, quota, non-2xx, unparseable body)."""

    code = "external_fetch_failed"
    http_status = 502

    def __init__(self, message: str, source: str = "", status_code: Optional[int] = None) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(message)


class TransactionError(HooplogError):
    """Persistence failed mid-commit; the whole unit was rolled back."""

    code = "transaction_failed"
    http_status = 500
