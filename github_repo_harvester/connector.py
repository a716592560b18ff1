"""GitHub REST connector: authenticated GETs with rate limit aware retries.

Every call runs through ``GitHubConnector.execute``, which keeps retrying as
long as the API only says "not now" (429, exhausted quota, revoked token) and
gives up immediately on anything else.
"""

import hashlib
import json
import sys
import threading
import time
from datetime import timedelta
from pathlib import Path

import httpx
from cachetta import Cachetta
from github import BadCredentialsException, GithubException

from .classifier import ClassifiedResponse, Outcome, classify
from .credentials import Credential, CredentialPool, Rotation
from .endpoints import Endpoint
from .exceptions import (
    GitHubAPIError,
    InterruptedDuringWait,
    UnexpectedProtocolChange,
    UpstreamClientError,
    UpstreamServerError,
)
from .models import NULL_COMMIT, SEARCH_PAGE_SIZE, ApiResponse, GitCommit
from .pagination import count_items
from .rate_limit import QuotaProbe
from .search import Range, build_search_query
from .settings import Settings, get_settings

ACCEPT = "application/vnd.github+json"
BACKOFF_FACTOR = 2
DEFAULT_DURATION = timedelta(days=7)

_TRANSPORT_ERRORS = (
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.ReadError,
    httpx.TimeoutException,
)


def _cache_key(url, params=None):
    raw = f"{url}|{json.dumps(params or {}, sort_keys=True)}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


def _log(msg: str):
    """Log a message above the progress line."""
    sys.stderr.write(f"\033[2K\r[connector] {msg}\n")
    sys.stderr.flush()


class GitHubConnector:
    """Shared by all workers of a crawl; the credential pool is its only mutable state."""

    def __init__(
        self,
        pool: CredentialPool | None = None,
        settings: Settings | None = None,
        cache_dir: Path | None = None,
        skip_cache: bool = False,
        quota_probe: QuotaProbe | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.settings = settings or get_settings()
        self.pool = pool or CredentialPool(self.settings.tokens)
        self.base_url = self.settings.github_api_url.rstrip("/")
        self.quota_probe = quota_probe or QuotaProbe(self.base_url, self.settings.request_timeout)
        self._stop = stop_event or threading.Event()
        self._client = httpx.Client(
            headers={"Accept": ACCEPT},
            timeout=self.settings.request_timeout,
        )
        self._stats_lock = threading.Lock()
        self.requests = 0
        self.rate_limit_hits = 0
        self.rotations = 0

        cache_dir = cache_dir or self.settings.cache_dir
        self._skip_cache = skip_cache

        def _do_fetch(url, params=None):
            return self._fetch(url, params)

        if cache_dir is None:
            self._cached_fetch = self._skip_read_fetch = _do_fetch
        else:
            def _path(url, params=None):
                return Path(cache_dir) / f"{_cache_key(url, params)}.json"

            cache = Cachetta(path=_path, duration=DEFAULT_DURATION)
            # Only returned results are written; exceptions propagate uncached.
            self._cached_fetch = cache(_do_fetch)
            self._skip_read_fetch = cache.copy(read=False)(_do_fetch)

    # -- lifecycle -----------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self):
        """Abort pending waits; in-flight requests finish normally."""
        self._stop.set()

    def close(self):
        self._client.close()

    def _increment(self, counter: str):
        with self._stats_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def _sleep(self, seconds: float):
        if seconds <= 0:
            return
        if self._stop.wait(seconds):
            raise InterruptedDuringWait("API call has been interrupted")

    # -- retry loop ----------------------------------------------------------

    def execute(self, url: str, params: dict | None = None, skip_cache: bool = False) -> ApiResponse:
        """GET ``url`` until it yields a result.

        Returns the response for 2xx, 1xx/3xx (empty body) and for queries
        GitHub declined as too expensive (status 403, error body). Raises
        UpstreamClientError/UpstreamServerError for other error statuses and a
        GitHubFatalError when the crawl cannot continue.
        """
        if skip_cache or self._skip_cache:
            data = self._skip_read_fetch(url, params)
        else:
            data = self._cached_fetch(url, params)
        return ApiResponse(status=data["status"], body=data["body"], link=data.get("link"))

    def _fetch(self, url, params=None):
        while True:
            if self.cancelled:
                raise InterruptedDuringWait("API call has been interrupted")
            credential = self.pool.current()
            response = self._send(url, params, credential)
            self.pool.observe(credential, response.remaining, response.reset_at)
            outcome = response.outcome

            if outcome.is_result:
                self._sleep(self.settings.request_delay)
                return {
                    "status": response.status,
                    "body": response.body,
                    "link": response.link,
                }

            if outcome is Outcome.UNAUTHORIZED:
                # Never probe the quota here: the probe would fail with the same token.
                _log(f"Token {credential.label} rejected (401), removing it from the pool")
                self.pool.invalidate(credential)
            elif outcome is Outcome.TOO_MANY_REQUESTS:
                self._increment("rate_limit_hits")
                wait = self.settings.rate_limit_sleep
                _log(f"HTTP 429 on {url}, waiting {wait:.0f}s")
                self._sleep(wait)
            elif outcome is Outcome.QUOTA_EXHAUSTED:
                self._increment("rate_limit_hits")
                self._replace_if_exhausted(credential, response)
            elif outcome is Outcome.PROTOCOL_CHANGE:
                raise UnexpectedProtocolChange(response.message)
            elif outcome is Outcome.CLIENT_ERROR:
                raise UpstreamClientError(response.status, response.message, url)
            else:
                raise UpstreamServerError(response.status, response.message, url)

    def _send(self, url, params, credential: Credential) -> ClassifiedResponse:
        for attempt in range(self.settings.max_transport_retries + 1):
            try:
                resp = self._client.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {credential.value}"},
                )
            except _TRANSPORT_ERRORS as exc:
                if attempt >= self.settings.max_transport_retries:
                    raise GitHubAPIError(f"Request to {url} failed: {exc}") from exc
                wait = BACKOFF_FACTOR**attempt
                _log(f"{type(exc).__name__}: {exc}, retry {attempt + 1} (wait {wait}s)")
                self._sleep(wait)
                continue
            self._increment("requests")
            return classify(resp.status_code, resp.headers, _parse_body(resp))
        raise GitHubAPIError(f"Request to {url} failed")

    def _replace_if_exhausted(self, credential: Credential, response: ClassifiedResponse):
        """Rotate away from ``credential`` if its quota is really used up."""
        try:
            status = self.quota_probe.check(credential.value)
        except BadCredentialsException:
            _log(f"Token {credential.label} rejected by the rate limit endpoint")
            self.pool.invalidate(credential)
            return
        except GithubException as exc:
            _log(f"Rate limit probe failed for {credential.label}: {exc}, rotating")
        else:
            self.pool.observe(credential, status.remaining, status.reset_at)
            if not status.exhausted:
                # A secondary bucket (e.g. search) ran out, not the token's core quota
                wait = self._seconds_until(response.reset_at) or self.settings.request_delay
                wait = min(wait, self.settings.rate_limit_sleep)
                _log(
                    f"Token {credential.label} has {status.remaining} calls left, "
                    f"retrying in {wait:.0f}s"
                )
                self._sleep(wait)
                return

        rotation = self.pool.rotate(expected=credential)
        if rotation is Rotation.WRAPPED:
            # Every token is spent: wait for the first one to refill
            wait = self._seconds_until(self.pool.earliest_reset()) or self.settings.rate_limit_sleep
            _log(f"All {self.pool.valid_count} tokens exhausted, waiting {wait:.0f}s")
            self._sleep(wait)
        elif rotation is Rotation.ADVANCED:
            self._increment("rotations")
            _log(f"Token {credential.label} exhausted, switched to {self.pool.current().label}")

    @staticmethod
    def _seconds_until(timestamp: float | None) -> float | None:
        if timestamp is None:
            return None
        return max(timestamp - time.time() + 1, 1)

    # -- operations ----------------------------------------------------------

    def fetch_json(self, url: str, params: dict | None = None):
        return self.execute(url, params).body

    def count(self, url: str, **params) -> int | None:
        """Size of a collection, or None if GitHub refuses to compute it."""
        response = self.execute(url, {**params, "page": 1, "per_page": 1})
        return count_items(response)

    def search_repositories(self, language: str, pushed: Range | None = None, page: int = 1) -> dict:
        query = build_search_query(language, pushed, self.settings.minimum_stars)
        # q is pre-encoded; passing it through params would re-encode + and :
        url = (
            f"{Endpoint.SEARCH_REPOSITORIES.url(self.base_url)}"
            f"?q={query}&page={page}&per_page={SEARCH_PAGE_SIZE}"
        )
        return _payload(self.execute(url), dict, {"total_count": 0, "items": []})

    def fetch_repo_info(self, name: str) -> dict:
        """Repository details; empty for a redirect or a refused query."""
        return _payload(self.execute(Endpoint.REPOSITORY.url(self.base_url, name)), dict, {})

    def fetch_last_commit(self, name: str) -> GitCommit:
        """Latest commit, or NULL_COMMIT when there is none or it cannot be listed."""
        url = Endpoint.REPOSITORY_COMMITS.url(self.base_url, name)
        try:
            response = self.execute(url, {"page": 1, "per_page": 1})
        except UpstreamClientError as exc:
            # 409 Conflict: "Git Repository is empty."
            if exc.status == 409:
                return NULL_COMMIT
            raise
        commits = _payload(response, list, [])
        if not commits:
            return NULL_COMMIT
        return GitCommit.from_json(commits[0])

    def _count(self, endpoint: Endpoint, name: str, **params) -> int | None:
        return self.count(endpoint.url(self.base_url, name), **params)

    def fetch_number_of_commits(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_COMMITS, name)

    def fetch_number_of_branches(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_BRANCHES, name)

    def fetch_number_of_releases(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_RELEASES, name)

    def fetch_number_of_contributors(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_CONTRIBUTORS, name)

    def fetch_number_of_open_issues_and_pulls(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_ISSUES, name, state="open")

    def fetch_number_of_all_issues_and_pulls(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_ISSUES, name, state="all")

    def fetch_number_of_open_pulls(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_PULLS, name, state="open")

    def fetch_number_of_all_pulls(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_PULLS, name, state="all")

    def fetch_number_of_labels(self, name: str) -> int | None:
        return self._count(Endpoint.REPOSITORY_LABELS, name)

    def fetch_number_of_languages(self, name: str) -> int | None:
        # Returns a {language: bytes} object, counted by keys
        return self._count(Endpoint.REPOSITORY_LANGUAGES, name)

    def fetch_number_of_topics(self, name: str) -> int | None:
        response = self.execute(Endpoint.REPOSITORY_TOPICS.url(self.base_url, name))
        if response.expensive:
            return None
        return len(_payload(response, dict, {}).get("names", []))

    def fetch_repo_labels(self, name: str, page: int = 1) -> list:
        url = Endpoint.REPOSITORY_LABELS.url(self.base_url, name)
        return _payload(self.execute(url, {"page": page, "per_page": 100}), list, [])

    def fetch_repo_languages(self, name: str, page: int = 1) -> dict:
        url = Endpoint.REPOSITORY_LANGUAGES.url(self.base_url, name)
        return _payload(self.execute(url, {"page": page, "per_page": 100}), dict, {})

    def fetch_repo_topics(self, name: str, page: int = 1) -> dict:
        url = Endpoint.REPOSITORY_TOPICS.url(self.base_url, name)
        return _payload(self.execute(url, {"page": page, "per_page": 100}), dict, {})


def _payload(response: ApiResponse, kind: type, default):
    # Redirects carry no body and refused queries carry an error body
    if response.expensive or not isinstance(response.body, kind):
        return default
    return response.body


def _parse_body(resp: httpx.Response):
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


# Connector instances keyed by config
_connectors: dict[tuple, GitHubConnector] = {}


def get_connector(cache_dir=None, skip_cache=False) -> GitHubConnector:
    """Get or create a GitHubConnector with the given configuration."""
    key = (str(cache_dir) if cache_dir else None, skip_cache)
    if key not in _connectors:
        _connectors[key] = GitHubConnector(cache_dir=cache_dir, skip_cache=skip_cache)
    return _connectors[key]
