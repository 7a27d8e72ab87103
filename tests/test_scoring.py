"""
Tests for the viral score engine.
"""
from datetime import datetime, timedelta, timezone

import pytest

from viral_finder.discovery.models import Channel, Thumbnail, Video
from viral_finder.discovery.scoring import (
    POTENTIAL_HIGH,
    POTENTIAL_LOW,
    POTENTIAL_MEDIUM,
    POTENTIAL_OUTSIDE_WINDOW,
    POTENTIAL_VERY_HIGH,
    ScoreEngine,
    engagement_rate,
    freshness_bonus,
    multiplier,
    subscriber_impact,
    view_velocity,
    weighted_total,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_video(views=10000, likes=500, comments=100, age_days=3, video_id="v1"):
    return Video(
        id=video_id,
        title="Test Video",
        description="desc",
        channel_id="c1",
        channel_title="TestChannel",
        published_at=NOW - timedelta(days=age_days),
        thumbnail=Thumbnail(url="https://i.ytimg.com/vi/v1/mqdefault.jpg", width=320, height=180),
        view_count=views,
        like_count=likes,
        comment_count=comments,
        duration_seconds=600,
    )


def _make_channel(subscribers=1000, channel_id="c1"):
    return Channel(
        id=channel_id,
        title="TestChannel",
        description="",
        published_at=NOW - timedelta(days=1000),
        thumbnail=Thumbnail(url=""),
        view_count=1_000_000,
        subscriber_count=subscribers,
        video_count=50,
    )


@pytest.fixture
def engine():
    return ScoreEngine(clock=lambda: NOW)


# ── Sub-scores ────────────────────────────────────────────────────────


class TestSubscriberImpact:
    @pytest.mark.parametrize("views,subs,expected", [
        (100_000, 1000, 100),
        (50_000, 1000, 95),
        (20_000, 1000, 90),
        (10_000, 1000, 85),
        (5_000, 1000, 75),
        (2_000, 1000, 60),
        (1_000, 1000, 40),
        (500, 1000, 20),
        (499, 1000, 10),
    ])
    def test_buckets(self, views, subs, expected):
        assert subscriber_impact(views, subs) == expected

    def test_zero_subscribers_treated_as_one(self):
        assert subscriber_impact(100, 0) == 100
        assert subscriber_impact(0, 0) == 10

    def test_non_increasing_as_subscribers_grow(self):
        views = 50_000
        scores = [subscriber_impact(views, subs) for subs in range(0, 500_000, 250)]
        assert all(a >= b for a, b in zip(scores, scores[1:]))


class TestViewVelocity:
    @pytest.mark.parametrize("views,age,expected", [
        (100_000, 1, 100),
        (100_000, 2, 95),
        (20_000, 1, 90),
        (10_000, 1, 80),
        (5_000, 1, 70),
        (2_000, 1, 60),
        (1_000, 1, 50),
        (500, 1, 40),
        (100, 1, 30),
        (99, 1, 20),
    ])
    def test_buckets(self, views, age, expected):
        assert view_velocity(views, age) == expected

    def test_age_zero_treated_as_one_day(self):
        assert view_velocity(1_000, 0) == view_velocity(1_000, 1)


class TestEngagement:
    def test_engagement_rate_is_exact(self):
        video = _make_video(views=10000, likes=500, comments=100)
        assert engagement_rate(video) == 6.0

    def test_engagement_rate_zero_views(self):
        assert engagement_rate(_make_video(views=0, likes=5, comments=5)) == 0.0

    @pytest.mark.parametrize("likes,expected", [
        (1500, 100),
        (1000, 90),
        (700, 80),
        (500, 70),
        (300, 60),
        (200, 50),
        (100, 40),
        (50, 30),
        (10, 20),
    ])
    def test_engagement_buckets(self, engine, likes, expected):
        video = _make_video(views=10000, likes=likes, comments=0)
        assert engine.score(video, _make_channel()).engagement_score == expected

    def test_zero_views_scores_zero(self, engine):
        video = _make_video(views=0, likes=0, comments=0)
        assert engine.score(video, _make_channel()).engagement_score == 0


class TestFreshnessBonus:
    @pytest.mark.parametrize("age,expected", [
        (0, 100),
        (1, 100),
        (2, 93),
        (10, 67),
        (15, 50),
        (29, 3),
        (30, 0),
        (45, 0),
    ])
    def test_linear_decay(self, age, expected):
        assert freshness_bonus(age) == expected


# ── Totals ────────────────────────────────────────────────────────────


class TestWeightedTotal:
    def test_weights(self):
        assert weighted_total(100, 100, 100, 100) == 100
        assert weighted_total(0, 0, 0, 0) == 0
        assert weighted_total(85, 80, 70, 93) == 81  # 34 + 24 + 14 + 9.3

    def test_halves_round_up(self):
        assert weighted_total(0, 0, 0, 5) == 1
        assert weighted_total(0, 0, 0, 15) == 2

    def test_total_matches_breakdown(self, engine):
        for views in (0, 100, 5_000, 80_000, 2_000_000):
            for subs in (0, 10, 1_000, 100_000):
                for age in (0, 1, 5, 17, 30):
                    b = engine.score(_make_video(views=views, likes=views // 20, age_days=age), _make_channel(subs))
                    expected = weighted_total(
                        b.subscriber_impact, b.view_velocity, b.engagement_score, b.freshness_bonus
                    )
                    assert b.total_score == expected
                    assert 0 <= b.total_score <= 100


# ── Engine ────────────────────────────────────────────────────────────


class TestScoreEngine:
    def test_age_rounds_up(self, engine):
        video = _make_video(age_days=1.5)
        assert engine.age_in_days(video) == 2

    def test_age_of_future_timestamp_uses_absolute_difference(self, engine):
        video = _make_video(age_days=-2)
        assert engine.age_in_days(video) == 2

    def test_naive_timestamp_treated_as_utc(self, engine):
        video = _make_video()
        naive = Video(**{**vars(video), "published_at": (NOW - timedelta(days=4)).replace(tzinfo=None)})
        assert engine.age_in_days(naive) == 4

    def test_older_than_window_scores_zero(self, engine):
        b = engine.score(_make_video(views=5_000_000, age_days=31), _make_channel(10))
        assert (b.subscriber_impact, b.view_velocity, b.engagement_score, b.freshness_bonus) == (0, 0, 0, 0)
        assert b.total_score == 0
        assert "30 days" in b.explanation.note
        assert b.explanation.age_in_days == 31

    def test_exactly_thirty_days_is_still_scored(self, engine):
        b = engine.score(_make_video(views=100_000, age_days=30), _make_channel(1000))
        assert b.subscriber_impact == 100
        assert b.freshness_bonus == 0
        assert b.total_score > 0

    def test_breakdown_values(self, engine):
        # ratio 10 -> 85, 10000/3 per day -> 60, 6% -> 70, 3 days -> 90
        b = engine.score(_make_video(views=10000, likes=500, comments=100, age_days=3), _make_channel(1000))
        assert b.subscriber_impact == 85
        assert b.view_velocity == 60
        assert b.engagement_score == 70
        assert b.freshness_bonus == 90
        assert b.total_score == 75  # 34 + 18 + 14 + 9
        assert b.explanation.engagement_rate == "6.00%"
        assert b.explanation.subscriber_ratio == "10.0x the subscriber count"
        assert b.explanation.views_per_day == "3,333 views/day"
        assert b.explanation.note is None

    def test_score_is_time_dependent(self):
        video = _make_video(age_days=2)
        channel = _make_channel()
        early = ScoreEngine(clock=lambda: NOW).score(video, channel)
        later = ScoreEngine(clock=lambda: NOW + timedelta(days=20)).score(video, channel)
        assert later.freshness_bonus < early.freshness_bonus


class TestMultiplier:
    def test_raw_ratio(self):
        assert multiplier(_make_video(views=25_000), _make_channel(1000)) == 25.0

    def test_zero_subscribers(self):
        assert multiplier(_make_video(views=25_000), _make_channel(0)) == 0.0


class TestClassify:
    def test_outside_window(self, engine):
        assert engine.classify(_make_video(views=10**7, age_days=40), _make_channel(10)) == POTENTIAL_OUTSIDE_WINDOW

    def test_very_high(self, engine):
        assert engine.classify(_make_video(views=10_000, age_days=20), _make_channel(1000)) == POTENTIAL_VERY_HIGH

    def test_high_requires_recent(self, engine):
        video = _make_video(views=3_000, likes=0, comments=0, age_days=7)
        assert engine.classify(video, _make_channel(1000)) == POTENTIAL_HIGH
        old = _make_video(views=3_000, likes=0, comments=0, age_days=8)
        assert engine.classify(old, _make_channel(1000)) == POTENTIAL_LOW

    def test_medium_engagement(self, engine):
        video = _make_video(views=1_000, likes=50, comments=0, age_days=20)
        assert engine.classify(video, _make_channel(1000)) == POTENTIAL_MEDIUM

    def test_low(self, engine):
        video = _make_video(views=1_000, likes=10, comments=0, age_days=20)
        assert engine.classify(video, _make_channel(1000)) == POTENTIAL_LOW


class TestCreateViralVideo:
    def test_fields(self, engine):
        video = _make_video(views=10000, likes=500, comments=100, age_days=3)
        channel = _make_channel(1000)
        item = engine.create_viral_video(video, channel)
        assert item.video is video
        assert item.channel is channel
        assert item.viral_score == item.breakdown.total_score == 75
        assert item.multiplier == 10.0
        assert item.engagement_rate == 6.0
        assert item.potential == POTENTIAL_VERY_HIGH
