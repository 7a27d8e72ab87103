"""
Exceptions raised by the search-and-score pipeline.
"""
from typing import Optional


class DiscoveryError(Exception):
    """Base class for pipeline errors."""


class ValidationError(DiscoveryError):
    """The request is malformed (e.g. blank query)."""


class RateLimitExceeded(DiscoveryError):
    """The caller has used up its request quota for the current window."""

    def __init__(self, remaining: int, reset_time: float):
        super().__init__("Rate limit exceeded. Please try again later.")
        self.remaining = remaining
        self.reset_time = reset_time


class UpstreamAPIError(DiscoveryError):
    """A YouTube API call failed or timed out."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"YouTube API error {self.status_code} ({self.code or 'unknown'}): {self.message}"
        return f"YouTube API error: {self.message}"


class InternalError(DiscoveryError):
    """Unexpected failure while scoring, filtering or sorting."""
