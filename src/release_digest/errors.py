"""Exception hierarchy for release-digest.

Only ConfigError is allowed to escape the aggregation entrypoint. Upstream
failures are recovered inside the fetchers and show up as missing releases
plus a log line, never as an exception seen by API callers.
"""

from __future__ import annotations


class ReleaseDigestError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(ReleaseDigestError):
    """The source configuration or settings are malformed."""


class UpstreamError(ReleaseDigestError):
    """An external API call failed (network error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(UpstreamError):
    """GitHub refused the call because the rate limit is exhausted."""

    def __init__(self, url: str, reset_at: str) -> None:
        super().__init__(
            f"GitHub API rate limit exceeded for {url}. Resets at: {reset_at}",
            status_code=403,
        )
        self.url = url
        self.reset_at = reset_at
