"""
Data models for the search-and-score pipeline.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SortKey(str, Enum):
    """Result ordering requested by the caller."""
    RELEVANCE = "relevance"
    DATE = "date"
    VIEW_COUNT = "viewCount"
    RATING = "rating"
    VIRAL_SCORE = "viralScore"


class DurationBucket(str, Enum):
    """YouTube `videoDuration` search hint."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


@dataclass(frozen=True)
class Thumbnail:
    url: str
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class Video:
    """A YouTube video with its statistics at fetch time."""
    id: str
    title: str
    description: str
    channel_id: str
    channel_title: str
    published_at: datetime
    thumbnail: Thumbnail
    view_count: int
    like_count: int
    comment_count: int
    duration_seconds: Optional[int] = None


@dataclass(frozen=True)
class Channel:
    """A YouTube channel with its statistics at fetch time."""
    id: str
    title: str
    description: str
    published_at: Optional[datetime]
    thumbnail: Thumbnail
    view_count: int
    subscriber_count: int
    video_count: int
    custom_url: Optional[str] = None


@dataclass(frozen=True)
class ScoreExplanation:
    """Human-readable context for a score breakdown (display only)."""
    subscriber_ratio: str
    views_per_day: str
    engagement_rate: str
    age_in_days: int
    note: Optional[str] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    """The four weighted sub-scores behind a viral score."""
    subscriber_impact: int
    view_velocity: int
    engagement_score: int
    freshness_bonus: int
    total_score: int
    explanation: ScoreExplanation


@dataclass(frozen=True)
class ViralVideo:
    """A video scored against its channel."""
    video: Video
    channel: Channel
    viral_score: int
    multiplier: float  # views / subscribers
    engagement_rate: float  # percent
    breakdown: ScoreBreakdown
    potential: str


@dataclass(frozen=True)
class SearchOptions:
    """Hints forwarded to the upstream search call."""
    order: Optional[SortKey] = None
    published_after: Optional[datetime] = None
    video_duration: Optional[DurationBucket] = None


@dataclass(frozen=True)
class SearchFilters:
    """Caller-supplied bounds, sort key and upstream hints for one search."""
    min_subscribers: Optional[int] = None
    max_subscribers: Optional[int] = None
    min_views: Optional[int] = None
    max_views: Optional[int] = None
    sort_by: Optional[SortKey] = None
    published_after: Optional[datetime] = None
    video_duration: Optional[DurationBucket] = None

    def accepts(self, item: ViralVideo) -> bool:
        """Return True if the item satisfies every bound that was supplied."""
        subscribers = item.channel.subscriber_count
        views = item.video.view_count
        if self.min_subscribers is not None and subscribers < self.min_subscribers:
            return False
        if self.max_subscribers is not None and subscribers > self.max_subscribers:
            return False
        if self.min_views is not None and views < self.min_views:
            return False
        if self.max_views is not None and views > self.max_views:
            return False
        return True


@dataclass
class SearchPage:
    """One page of upstream search results, normalized."""
    videos: list[Video]
    next_page_token: Optional[str]
    total_results: int


@dataclass
class SearchResult:
    """A filtered, sorted page of scored videos."""
    items: list[ViralVideo]
    next_page_token: Optional[str]
    total_results: int


@dataclass
class PersistenceJob:
    """Background write batch produced by one search."""
    channels: list[Channel]
    videos: list[Video]
    scores: list[ViralVideo]
    query: str
    identity: Optional[str] = None
    result_count: int = 0
