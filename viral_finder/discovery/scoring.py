"""
Viral score engine.

A video's score is a weighted blend of four table-driven sub-scores, each
in [0, 100]:

    subscriber_impact  0.4   views relative to channel size
    view_velocity      0.3   views per day since publishing
    engagement_score   0.2   (likes + comments) / views
    freshness_bonus    0.1   linear decay across the 30-day window

Videos older than 30 days fall outside the window and score 0 everywhere.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import Channel, ScoreBreakdown, ScoreExplanation, Video, ViralVideo

logger = logging.getLogger(__name__)

WINDOW_DAYS = 30

# Weights in tenths so the total can be computed without float drift
SUBSCRIBER_WEIGHT = 4
VELOCITY_WEIGHT = 3
ENGAGEMENT_WEIGHT = 2
FRESHNESS_WEIGHT = 1

# (threshold, score) pairs, highest threshold first
SUBSCRIBER_RATIO_BUCKETS = [
    (100, 100), (50, 95), (20, 90), (10, 85), (5, 75), (2, 60), (1, 40), (0.5, 20),
]
SUBSCRIBER_RATIO_FLOOR = 10

VIEWS_PER_DAY_BUCKETS = [
    (100_000, 100), (50_000, 95), (20_000, 90), (10_000, 80), (5_000, 70),
    (2_000, 60), (1_000, 50), (500, 40), (100, 30),
]
VIEWS_PER_DAY_FLOOR = 20

ENGAGEMENT_BUCKETS = [
    (15, 100), (10, 90), (7, 80), (5, 70), (3, 60), (2, 50), (1, 40), (0.5, 30),
]
ENGAGEMENT_FLOOR = 20

POTENTIAL_OUTSIDE_WINDOW = "Low - outside the 30-day window"
POTENTIAL_VERY_HIGH = "Very High - massive overperformance"
POTENTIAL_HIGH = "High - strong early performance"
POTENTIAL_MEDIUM = "Medium - engagement-driven"
POTENTIAL_LOW = "Low - normal performance"


def _bucket(value: float, buckets: list[tuple[float, int]], floor: int) -> int:
    for threshold, score in buckets:
        if value >= threshold:
            return score
    return floor


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def engagement_rate(video: Video) -> float:
    """(likes + comments) / views as a percentage, 0 when there are no views."""
    if video.view_count <= 0:
        return 0.0
    return (video.like_count + video.comment_count) * 100 / video.view_count


def multiplier(video: Video, channel: Channel) -> float:
    """Raw views / subscribers ratio, 0 when the channel has no subscribers."""
    if channel.subscriber_count <= 0:
        return 0.0
    return video.view_count / channel.subscriber_count


def subscriber_impact(view_count: int, subscriber_count: int) -> int:
    ratio = view_count / max(1, subscriber_count)
    return _bucket(ratio, SUBSCRIBER_RATIO_BUCKETS, SUBSCRIBER_RATIO_FLOOR)


def view_velocity(view_count: int, age_in_days: int) -> int:
    per_day = view_count / max(1, age_in_days)
    return _bucket(per_day, VIEWS_PER_DAY_BUCKETS, VIEWS_PER_DAY_FLOOR)


def engagement_score(video: Video) -> int:
    if video.view_count <= 0:
        return 0
    return _bucket(engagement_rate(video), ENGAGEMENT_BUCKETS, ENGAGEMENT_FLOOR)


def freshness_bonus(age_in_days: int) -> int:
    if age_in_days <= 1:
        return 100
    if age_in_days >= WINDOW_DAYS:
        return 0
    # round-half-up of 100 * (1 - age / 30) in integer arithmetic
    return (200 * (WINDOW_DAYS - age_in_days) + WINDOW_DAYS) // (2 * WINDOW_DAYS)


def weighted_total(s1: int, s2: int, s3: int, s4: int) -> int:
    """round(0.4*s1 + 0.3*s2 + 0.2*s3 + 0.1*s4), halves rounded up."""
    tenths = (
        SUBSCRIBER_WEIGHT * s1
        + VELOCITY_WEIGHT * s2
        + ENGAGEMENT_WEIGHT * s3
        + FRESHNESS_WEIGHT * s4
    )
    return (tenths + 5) // 10


class ScoreEngine:
    """Scores videos against their channels at the clock's current time."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now

    def age_in_days(self, video: Video) -> int:
        """Whole days since publishing, rounded up."""
        published = video.published_at
        if published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)
        delta = abs((self._clock() - published).total_seconds())
        return math.ceil(delta / 86400)

    def score(self, video: Video, channel: Channel) -> ScoreBreakdown:
        age = self.age_in_days(video)
        rate = engagement_rate(video)
        ratio = multiplier(video, channel)
        per_day = video.view_count / max(1, age)

        if age > WINDOW_DAYS:
            explanation = ScoreExplanation(
                subscriber_ratio=f"{ratio:.1f}x the subscriber count",
                views_per_day=f"{per_day:,.0f} views/day",
                engagement_rate=f"{rate:.2f}%",
                age_in_days=age,
                note=f"Published more than {WINDOW_DAYS} days ago; outside the scoring window",
            )
            return ScoreBreakdown(
                subscriber_impact=0,
                view_velocity=0,
                engagement_score=0,
                freshness_bonus=0,
                total_score=0,
                explanation=explanation,
            )

        s1 = subscriber_impact(video.view_count, channel.subscriber_count)
        s2 = view_velocity(video.view_count, age)
        s3 = engagement_score(video)
        s4 = freshness_bonus(age)

        return ScoreBreakdown(
            subscriber_impact=s1,
            view_velocity=s2,
            engagement_score=s3,
            freshness_bonus=s4,
            total_score=weighted_total(s1, s2, s3, s4),
            explanation=ScoreExplanation(
                subscriber_ratio=f"{ratio:.1f}x the subscriber count",
                views_per_day=f"{per_day:,.0f} views/day",
                engagement_rate=f"{rate:.2f}%",
                age_in_days=age,
            ),
        )

    def classify(self, video: Video, channel: Channel) -> str:
        """Human-readable potential label. Display only."""
        age = self.age_in_days(video)
        if age > WINDOW_DAYS:
            return POTENTIAL_OUTSIDE_WINDOW
        ratio = multiplier(video, channel)
        if ratio >= 10:
            return POTENTIAL_VERY_HIGH
        if ratio >= 3 and age <= 7:
            return POTENTIAL_HIGH
        if engagement_rate(video) >= 5:
            return POTENTIAL_MEDIUM
        return POTENTIAL_LOW

    def create_viral_video(self, video: Video, channel: Channel) -> ViralVideo:
        breakdown = self.score(video, channel)
        return ViralVideo(
            video=video,
            channel=channel,
            viral_score=breakdown.total_score,
            multiplier=multiplier(video, channel),
            engagement_rate=engagement_rate(video),
            breakdown=breakdown,
            potential=self.classify(video, channel),
        )
