"""Map raw HTTP responses to the action the connector must take."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"
RATE_LIMIT_RESET = "X-RateLimit-Reset"


class Outcome(Enum):
    SUCCESS = "success"
    REDIRECT = "redirect"
    UNAUTHORIZED = "unauthorized"  # token revoked or mistyped
    TOO_MANY_REQUESTS = "too_many_requests"  # 429
    QUOTA_EXHAUSTED = "quota_exhausted"  # 403, no calls left on this token
    EXPENSIVE_QUERY = "expensive_query"  # 403 with quota left
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    PROTOCOL_CHANGE = "protocol_change"  # 403 without the remaining header

    @property
    def is_terminal(self) -> bool:
        """Whether the call ends here, with a result or an error."""
        return self not in _RETRIED

    @property
    def is_result(self) -> bool:
        """Whether the call ends with a value handed back to the caller."""
        return self in _RESULTS


_RETRIED = frozenset({Outcome.UNAUTHORIZED, Outcome.TOO_MANY_REQUESTS, Outcome.QUOTA_EXHAUSTED})
_RESULTS = frozenset({Outcome.SUCCESS, Outcome.REDIRECT, Outcome.EXPENSIVE_QUERY})


@dataclass(frozen=True)
class ClassifiedResponse:
    outcome: Outcome
    status: int
    headers: httpx.Headers
    body: Any = None
    message: str | None = None

    @property
    def link(self) -> str | None:
        return self.headers.get("link")

    @property
    def remaining(self) -> int | None:
        return _parse_int(self.headers.get(RATE_LIMIT_REMAINING))

    @property
    def reset_at(self) -> float | None:
        value = _parse_int(self.headers.get(RATE_LIMIT_RESET))
        return float(value) if value is not None else None


def classify(status: int, headers: Mapping[str, str] | None, body: Any = None) -> ClassifiedResponse:
    """Label a response.

    Rules are checked in order: 2xx, 1xx/3xx, 401, 429, 403 (split on the
    remaining-quota header), other 4xx, 5xx.
    """
    headers = httpx.Headers(headers or {})

    def result(outcome: Outcome, payload: Any = None, message: str | None = None):
        return ClassifiedResponse(outcome, status, headers, payload, message)

    if 200 <= status < 300:
        return result(Outcome.SUCCESS, body)
    if 100 <= status < 200 or 300 <= status < 400:
        return result(Outcome.REDIRECT)

    message = error_message(body)
    if status == 401:
        return result(Outcome.UNAUTHORIZED, body, message)
    if status == 429:
        return result(Outcome.TOO_MANY_REQUESTS, body, message)
    if status == 403:
        # Quota exhaustion and "too expensive to compute" share the status code;
        # the remaining-quota header is the only way to tell them apart.
        remaining = _parse_int(headers.get(RATE_LIMIT_REMAINING))
        if remaining is None:
            return result(
                Outcome.PROTOCOL_CHANGE,
                body,
                f"The '{RATE_LIMIT_REMAINING}' header could not be found, "
                "application logic needs an update",
            )
        if remaining == 0:
            return result(Outcome.QUOTA_EXHAUSTED, body, message)
        return result(Outcome.EXPENSIVE_QUERY, body, message)
    if 400 <= status < 500:
        return result(Outcome.CLIENT_ERROR, body, message)
    return result(Outcome.SERVER_ERROR, body, message)


def error_message(body: Any) -> str | None:
    """Extract the ``message`` field of a GitHub error body."""
    if isinstance(body, dict):
        message = body.get("message")
        return str(message) if message is not None else None
    if isinstance(body, str) and body:
        return body
    return None


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None
