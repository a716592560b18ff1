"""REST endpoint templates used by the connector."""

from enum import Enum

API_BASE = "https://api.github.com"


class Endpoint(str, Enum):
    SEARCH_REPOSITORIES = "/search/repositories"
    RATE_LIMIT = "/rate_limit"
    REPOSITORY = "/repos/{owner}/{name}"
    REPOSITORY_COMMITS = "/repos/{owner}/{name}/commits"
    REPOSITORY_BRANCHES = "/repos/{owner}/{name}/branches"
    REPOSITORY_RELEASES = "/repos/{owner}/{name}/releases"
    REPOSITORY_CONTRIBUTORS = "/repos/{owner}/{name}/contributors"
    REPOSITORY_ISSUES = "/repos/{owner}/{name}/issues"
    REPOSITORY_PULLS = "/repos/{owner}/{name}/pulls"
    REPOSITORY_LABELS = "/repos/{owner}/{name}/labels"
    REPOSITORY_LANGUAGES = "/repos/{owner}/{name}/languages"
    REPOSITORY_TOPICS = "/repos/{owner}/{name}/topics"

    @property
    def needs_repository(self) -> bool:
        return "{owner}" in self.value

    def url(self, base: str = API_BASE, name: str | None = None) -> str:
        """Build the URL for this endpoint.

        Repository endpoints take ``name`` as ``owner/name``.
        """
        base = base.rstrip("/")
        if not self.needs_repository:
            return f"{base}{self.value}"
        owner, repo = split_full_name(name)
        return f"{base}{self.value.format(owner=owner, name=repo)}"


def split_full_name(name: str | None) -> tuple[str, str]:
    """Split ``owner/name`` into its two parts."""
    parts = (name or "").split("/")
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise ValueError(f"Repository must be given as owner/name, got {name!r}")
    return parts[0].strip(), parts[1].strip()
