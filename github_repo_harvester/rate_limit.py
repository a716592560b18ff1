"""Ask GitHub how much quota a token has left, using PyGithub."""

import threading
from dataclasses import dataclass

from github import Auth, Github

from .endpoints import API_BASE


@dataclass
class QuotaStatus:
    remaining: int
    limit: int
    reset_at: float  # unix timestamp

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0


class QuotaProbe:
    """Queries the rate limit endpoint for a given token.

    The rate limit endpoint does not count against the quota, so probing an
    exhausted token is safe. Raises ``github.BadCredentialsException`` for a
    revoked token.
    """

    def __init__(self, base_url: str = API_BASE, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._clients: dict[str, Github] = {}
        self._lock = threading.Lock()

    def _github(self, token: str) -> Github:
        with self._lock:
            client = self._clients.get(token)
            if client is None:
                client = Github(
                    auth=Auth.Token(token),
                    base_url=self.base_url,
                    timeout=int(self.timeout),
                    retry=None,
                )
                self._clients[token] = client
            return client

    def check(self, token: str) -> QuotaStatus:
        github = self._github(token)
        # Refreshes the rate limit headers PyGithub keeps for this client
        github.get_rate_limit()
        remaining, limit = github.rate_limiting
        return QuotaStatus(
            remaining=remaining,
            limit=limit,
            reset_at=float(github.rate_limiting_resettime),
        )
