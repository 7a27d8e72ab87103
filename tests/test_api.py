"""
Tests for the HTTP API.
"""
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from viral_finder.api import API_RESPONSE_CACHE, create_app
from viral_finder.config import Settings
from viral_finder.db.database import Database
from viral_finder.discovery.errors import (
    InternalError,
    RateLimitExceeded,
    UpstreamAPIError,
    ValidationError,
)
from viral_finder.discovery.models import (
    Channel,
    DurationBucket,
    SearchResult,
    SortKey,
    Thumbnail,
    Video,
)
from viral_finder.discovery.scoring import ScoreEngine

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_settings(db_path, api_key="test-key"):
    return Settings(
        youtube_api_key=api_key,
        db_path=db_path,
        rate_limit_max_requests=50,
        rate_limit_window_ms=3_600_000,
        rate_limit_max_keys=100,
        request_timeout=5,
        default_max_results=20,
        persist_queue_size=10,
        log_level="INFO",
    )


def _make_item():
    video = Video(
        id="v1",
        title="Test Video",
        description="desc",
        channel_id="UC1",
        channel_title="TestCh",
        published_at=NOW - timedelta(days=3),
        thumbnail=Thumbnail(url="https://example.com/v.jpg", width=320, height=180),
        view_count=10000,
        like_count=500,
        comment_count=100,
        duration_seconds=330,
    )
    channel = Channel(
        id="UC1",
        title="TestCh",
        description="about",
        published_at=NOW - timedelta(days=800),
        thumbnail=Thumbnail(url="https://example.com/ch.jpg"),
        view_count=1_000_000,
        subscriber_count=1000,
        video_count=42,
        custom_url="@testch",
    )
    return ScoreEngine(clock=lambda: NOW).create_viral_video(video, channel)


@pytest.fixture
def orchestrator():
    orch = MagicMock()
    orch.search.return_value = SearchResult(items=[_make_item()], next_page_token="NEXT", total_results=321)
    return orch


@pytest.fixture
def client(db_path, orchestrator):
    app = create_app(settings=_make_settings(db_path), orchestrator=orchestrator)
    with TestClient(app) as c:
        yield c


# ── Search ────────────────────────────────────────────────────────────


class TestSearchEndpoint:
    def test_success_shape(self, client):
        resp = client.get("/api/youtube/search", params={"q": "cats"})

        assert resp.status_code == 200
        assert resp.headers["cache-control"] == API_RESPONSE_CACHE
        body = resp.json()
        assert body["nextPageToken"] == "NEXT"
        assert body["totalResults"] == 321
        item = body["items"][0]
        assert item["id"] == "v1"
        assert item["channelId"] == "UC1"
        assert item["statistics"] == {"viewCount": 10000, "likeCount": 500, "commentCount": 100}
        assert item["durationSeconds"] == 330
        assert item["viralScore"] == 75
        assert item["multiplier"] == 10.0
        assert item["engagementRate"] == 6.0
        assert item["viralPotential"] == "Very High - massive overperformance"
        assert item["channel"]["customUrl"] == "@testch"
        assert item["channel"]["statistics"]["subscriberCount"] == 1000
        breakdown = item["scoreBreakdown"]
        assert breakdown["subscriberImpact"] == 85
        assert breakdown["totalScore"] == 75
        assert breakdown["explanation"]["ageInDays"] == 3

    def test_parameters_forwarded(self, client, orchestrator):
        resp = client.get(
            "/api/youtube/search",
            params={
                "q": "cats",
                "pageToken": "P2",
                "maxResults": 10,
                "sortBy": "viewCount",
                "publishedAfter": "2025-05-01T00:00:00Z",
                "videoDuration": "short",
                "minSubscribers": 100,
                "maxSubscribers": 5000,
                "minViews": 10,
                "maxViews": 99999,
            },
            headers={"X-User-Id": "alice", "X-Forwarded-For": "9.9.9.9, 10.0.0.1"},
        )

        assert resp.status_code == 200
        args, kwargs = orchestrator.search.call_args
        assert args[0] == "cats"
        assert kwargs["page_token"] == "P2"
        assert kwargs["max_results"] == 10
        assert kwargs["client_key"] == "9.9.9.9"
        assert kwargs["identity"] == "alice"
        filters = kwargs["filters"]
        assert filters.sort_by == SortKey.VIEW_COUNT
        assert filters.video_duration == DurationBucket.SHORT
        assert filters.published_after == datetime(2025, 5, 1, tzinfo=timezone.utc)
        assert (filters.min_subscribers, filters.max_subscribers) == (100, 5000)
        assert (filters.min_views, filters.max_views) == (10, 99999)

    def test_defaults(self, client, orchestrator):
        client.get("/api/youtube/search", params={"q": "cats"})
        kwargs = orchestrator.search.call_args.kwargs
        assert kwargs["max_results"] == 20
        assert kwargs["identity"] is None
        assert kwargs["filters"].sort_by is None
        assert kwargs["client_key"]  # socket peer of the test client

    def test_any_duration_is_no_hint(self, client, orchestrator):
        client.get("/api/youtube/search", params={"q": "cats", "videoDuration": "any"})
        assert orchestrator.search.call_args.kwargs["filters"].video_duration is None

    @pytest.mark.parametrize("params", [{}, {"q": ""}, {"q": "   "}])
    def test_missing_query(self, client, orchestrator, params):
        resp = client.get("/api/youtube/search", params=params)
        assert resp.status_code == 400
        assert resp.json() == {"error": "query is required"}
        orchestrator.search.assert_not_called()

    def test_validation_error_from_pipeline(self, client, orchestrator):
        orchestrator.search.side_effect = ValidationError("query is required")
        resp = client.get("/api/youtube/search", params={"q": "x"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "query is required"}

    def test_bad_parameters(self, client):
        assert client.get("/api/youtube/search", params={"q": "x", "maxResults": 500}).status_code == 400
        assert client.get("/api/youtube/search", params={"q": "x", "sortBy": "best"}).status_code == 400
        assert client.get("/api/youtube/search", params={"q": "x", "videoDuration": "epic"}).status_code == 400

    def test_rate_limited(self, client, orchestrator):
        reset = time.time() * 1000 + 90_000
        orchestrator.search.side_effect = RateLimitExceeded(remaining=0, reset_time=reset)

        resp = client.get("/api/youtube/search", params={"q": "cats"})

        assert resp.status_code == 429
        body = resp.json()
        assert body["error"] == "Rate limit exceeded. Please try again later."
        assert body["remainingRequests"] == 0
        assert body["resetTime"] == reset
        assert 85 <= int(resp.headers["retry-after"]) <= 91

    @pytest.mark.parametrize("error", [
        UpstreamAPIError("quota", status_code=403, code="quotaExceeded"),
        InternalError("bad math"),
        RuntimeError("surprise"),
    ])
    def test_failures_are_generic(self, client, orchestrator, error):
        orchestrator.search.side_effect = error
        resp = client.get("/api/youtube/search", params={"q": "cats"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to search videos"}

    def test_no_api_key(self, db_path):
        app = create_app(settings=_make_settings(db_path, api_key=None))
        with TestClient(app) as c:
            resp = c.get("/api/youtube/search", params={"q": "cats"})
            assert resp.status_code == 500
            assert c.get("/health").json()["youtube_configured"] is False


# ── History endpoints ─────────────────────────────────────────────────


class TestHistoryEndpoints:
    def test_search_history_requires_identity(self, client):
        resp = client.get("/api/search-history")
        assert resp.status_code == 401

    def test_search_history(self, client, db_path):
        with Database(db_path) as db:
            db.ensure_tables()
            db.save_search("alice", "cats", 3)
            db.save_search("alice", "dogs", 5)
            db.save_search("bob", "birds", 1)

        resp = client.get("/api/search-history", headers={"X-User-Id": "alice"})

        assert resp.status_code == 200
        assert resp.headers["cache-control"].startswith("private")
        items = resp.json()["items"]
        assert [i["query"] for i in items] == ["dogs", "cats"]
        assert items[0]["resultsCount"] == 5

    def test_score_history(self, client, db_path):
        item = _make_item()
        with Database(db_path) as db:
            db.ensure_tables()
            db.save_viral_scores([item])

        resp = client.get("/api/videos/v1/scores")

        assert resp.status_code == 200
        body = resp.json()
        assert body["videoId"] == "v1"
        assert body["items"][0]["viralScore"] == 75
        assert body["items"][0]["subscriberCount"] == 1000

    def test_score_history_empty(self, client):
        resp = client.get("/api/videos/unknown/scores")
        assert resp.status_code == 200
        assert resp.json()["items"] == []


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.headers["cache-control"] == "no-store"
