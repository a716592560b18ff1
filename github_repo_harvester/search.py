"""Search query construction for the repository search endpoint.

The query grammar (``key:value`` pairs joined by ``+``, ranges written as
``lo..hi``) is GitHub's, so the output must match it character for character.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import quote_plus


class UnsplittableRangeError(ValueError):
    """Raised when a range cannot be divided any further."""


@dataclass(frozen=True)
class Range:
    """Inclusive interval; a missing bound means unbounded on that side."""

    lower: Any = None
    upper: Any = None

    def __post_init__(self):
        if self.lower is not None and self.upper is not None and self.lower > self.upper:
            raise ValueError(f"Invalid range: {self.lower!r} > {self.upper!r}")

    @property
    def bounded(self) -> bool:
        return self.lower is not None and self.upper is not None


def format_date(value: date | datetime) -> str:
    """Format a bound the way the search endpoint accepts it.

    Datetimes are sent in UTC; naive ones are assumed to be UTC already.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return value.isoformat()


def format_range(interval: Range, formatter: Callable[[Any], str] = str) -> str:
    """Render ``lo..hi``, ``lo..``, ``..hi`` or an empty string."""
    if interval.lower is None and interval.upper is None:
        return ""
    lower = formatter(interval.lower) if interval.lower is not None else ""
    upper = formatter(interval.upper) if interval.upper is not None else ""
    return f"{lower}..{upper}"


def build_search_query(language: str, pushed: Range | None = None, minimum_stars: int = 0) -> str:
    """Compose the ``q`` parameter, already URL-encoded.

    >>> build_search_query("C++", Range(date(2022, 1, 1), None), 10)
    'language:C%2B%2B+pushed:2022-01-01..+stars:>=10+fork:true+is:public'
    """
    query = {
        "language": quote_plus(language),
        "pushed": format_range(pushed or Range(), format_date),
        "stars": f">={minimum_stars}",
        "fork": "true",
        "is": "public",
    }
    return "+".join(f"{key}:{value}" for key, value in query.items())


def split_range(interval: Range, midpoint: Callable[[Any, Any], Any]) -> tuple[Range, Range]:
    """Split a bounded range in two halves sharing the midpoint."""
    if not interval.bounded:
        raise UnsplittableRangeError(f"Cannot split unbounded range {interval}")
    if interval.lower == interval.upper:
        raise UnsplittableRangeError(f"Cannot split single-point range {interval}")
    mid = midpoint(interval.lower, interval.upper)
    if mid == interval.lower or mid == interval.upper:
        raise UnsplittableRangeError(f"Range {interval} is too narrow to split")
    return Range(interval.lower, mid), Range(mid, interval.upper)


def date_midpoint(lower: date | datetime, upper: date | datetime) -> date | datetime:
    """Middle of two dates, truncated to whole seconds for datetimes."""
    mid = lower + (upper - lower) / 2
    if isinstance(mid, datetime):
        return mid.replace(microsecond=0)
    return mid
