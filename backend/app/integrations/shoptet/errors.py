from __future__ import annotations


"""
Storefront integration errors.
List failures abort a sync run; a detail fetch failure only degrades one order to its summary payload.
"""


class RemoteError(Exception):
    """Base for all storefront API errors."""


class RemoteFetchFailure(RemoteError):
    """Fetching a single order detail failed."""


class RemoteListFailure(RemoteError):
    """Listing orders failed after retries (network, 4xx/5xx)."""


class RemoteRateLimited(RemoteListFailure):
    """429 Too Many Requests not resolved after retries."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RemoteAuthExpired(RemoteListFailure):
    """401/403: the shop's API token is missing, expired or revoked."""


class RemotePayloadError(RemoteListFailure):
    """Unexpected/invalid response payload shape or content."""
