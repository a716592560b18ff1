"""Errors surfaced by the GitHub connector.

Quota exhaustion and revoked tokens are handled inside the connector and never
reach callers. Everything here either ends a single call or, for the fatal
subclasses, the whole crawl.
"""


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails."""


class UpstreamError(GitHubAPIError):
    """Non-retryable error status returned by the API."""

    def __init__(self, status: int, message: str | None, url: str | None = None):
        self.status = status
        self.message = message
        self.url = url
        text = f"GitHub API error {status}"
        if message:
            text += f": {message}"
        if url:
            text += f" ({url})"
        super().__init__(text)


class UpstreamClientError(UpstreamError):
    """4xx other than the rate limit and credential cases."""


class UpstreamServerError(UpstreamError):
    """5xx response."""


class GitHubFatalError(GitHubAPIError):
    """The crawl cannot continue."""


class UnexpectedProtocolChange(GitHubFatalError):
    """A response lacks a header the rate limit handling depends on."""


class NoValidCredentialsError(GitHubFatalError):
    """Every configured token has been rejected by the API."""


class InterruptedDuringWait(GitHubAPIError):
    """The connector was cancelled while sleeping before a retry."""
