"""
Search-and-score pipeline: rate limiting, YouTube search, viral scoring
and background persistence.
"""
from .errors import (
    DiscoveryError,
    InternalError,
    RateLimitExceeded,
    UpstreamAPIError,
    ValidationError,
)
from .pipeline import SearchOrchestrator
from .rate_limiter import InMemoryRateLimitStore, RateLimiter
from .scoring import ScoreEngine
from .youtube_search import CatalogGateway, parse_duration

__all__ = [
    "DiscoveryError",
    "InternalError",
    "RateLimitExceeded",
    "UpstreamAPIError",
    "ValidationError",
    "SearchOrchestrator",
    "InMemoryRateLimitStore",
    "RateLimiter",
    "ScoreEngine",
    "CatalogGateway",
    "parse_duration",
]
