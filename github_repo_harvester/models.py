"""Data models and constants for repository harvesting."""

from dataclasses import dataclass
from datetime import datetime

GITHUB_SEARCH_RESULT_LIMIT = 1000  # Search API hard limit per query
SEARCH_PAGE_SIZE = 100
SEARCH_MAX_PAGES = GITHUB_SEARCH_RESULT_LIMIT // SEARCH_PAGE_SIZE


@dataclass
class ApiResponse:
    """Terminal result of a connector call.

    ``status`` 403 only ever reaches callers for queries GitHub refused to
    compute; ``body`` then holds the error payload.
    """

    status: int
    body: dict | list | None
    link: str | None = None

    @property
    def expensive(self) -> bool:
        return self.status == 403


@dataclass(frozen=True)
class GitCommit:
    sha: str | None
    date: datetime | None

    @property
    def is_null(self) -> bool:
        return self.sha is None

    @classmethod
    def from_json(cls, data: dict) -> "GitCommit":
        """Build from an item of the commits endpoint."""
        commit = data.get("commit") or {}
        # Prefer committer date; author date survives rebases unchanged
        signature = commit.get("committer") or commit.get("author") or {}
        return cls(sha=data.get("sha"), date=parse_timestamp(signature.get("date")))

    def to_dict(self) -> dict:
        return {"sha": self.sha, "date": self.date.isoformat() if self.date else None}


NULL_COMMIT = GitCommit(sha=None, date=None)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO 8601 timestamp such as ``2024-01-02T03:04:05Z``."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
