"""
HTTP API for viral video search.

Endpoints:
    GET /api/youtube/search           search, score, filter and sort
    GET /api/search-history           the caller's saved searches (X-User-Id)
    GET /api/videos/{video_id}/scores score snapshots for one video
    GET /health
"""
import logging
import math
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .config import Settings, load_settings
from .db.database import Database
from .discovery.errors import DiscoveryError, RateLimitExceeded, ValidationError
from .discovery.models import DurationBucket, SearchFilters, SortKey, ViralVideo
from .discovery.persistence import PersistenceWorker
from .discovery.pipeline import SearchOrchestrator
from .discovery.rate_limiter import (
    ANONYMOUS_KEY,
    InMemoryRateLimitStore,
    RateLimiter,
)
from .discovery.youtube_search import CatalogGateway

logger = logging.getLogger(__name__)

API_RESPONSE_CACHE = "public, max-age=120, s-maxage=300, stale-while-revalidate=3600"
USER_DATA_CACHE = "private, max-age=60, must-revalidate"
NO_CACHE = "no-store"


# ── Response models ──────────────────────────────────────────────────


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ThumbnailOut(CamelModel):
    url: str
    width: int
    height: int


class VideoStatisticsOut(CamelModel):
    view_count: int
    like_count: int
    comment_count: int


class ChannelStatisticsOut(CamelModel):
    view_count: int
    subscriber_count: int
    video_count: int


class ChannelOut(CamelModel):
    id: str
    title: str
    description: str
    custom_url: Optional[str] = None
    published_at: Optional[datetime] = None
    thumbnail: ThumbnailOut
    statistics: ChannelStatisticsOut


class ExplanationOut(CamelModel):
    subscriber_ratio: str
    views_per_day: str
    engagement_rate: str
    age_in_days: int
    note: Optional[str] = None


class ScoreBreakdownOut(CamelModel):
    subscriber_impact: int
    view_velocity: int
    engagement_score: int
    freshness_bonus: int
    total_score: int
    explanation: ExplanationOut


class ViralVideoOut(CamelModel):
    id: str
    title: str
    description: str
    channel_id: str
    channel_title: str
    published_at: datetime
    thumbnail: ThumbnailOut
    statistics: VideoStatisticsOut
    duration_seconds: Optional[int] = None
    channel: ChannelOut
    viral_score: int
    multiplier: float
    engagement_rate: float
    score_breakdown: ScoreBreakdownOut
    viral_potential: str


class SearchResponse(CamelModel):
    items: List[ViralVideoOut]
    next_page_token: Optional[str] = None
    total_results: int


def to_viral_video_out(item: ViralVideo) -> ViralVideoOut:
    video, channel, breakdown = item.video, item.channel, item.breakdown
    return ViralVideoOut(
        id=video.id,
        title=video.title,
        description=video.description,
        channel_id=video.channel_id,
        channel_title=video.channel_title,
        published_at=video.published_at,
        thumbnail=ThumbnailOut(**vars(video.thumbnail)),
        statistics=VideoStatisticsOut(
            view_count=video.view_count,
            like_count=video.like_count,
            comment_count=video.comment_count,
        ),
        duration_seconds=video.duration_seconds,
        channel=ChannelOut(
            id=channel.id,
            title=channel.title,
            description=channel.description,
            custom_url=channel.custom_url,
            published_at=channel.published_at,
            thumbnail=ThumbnailOut(**vars(channel.thumbnail)),
            statistics=ChannelStatisticsOut(
                view_count=channel.view_count,
                subscriber_count=channel.subscriber_count,
                video_count=channel.video_count,
            ),
        ),
        viral_score=item.viral_score,
        multiplier=item.multiplier,
        engagement_rate=item.engagement_rate,
        score_breakdown=ScoreBreakdownOut(
            subscriber_impact=breakdown.subscriber_impact,
            view_velocity=breakdown.view_velocity,
            engagement_score=breakdown.engagement_score,
            freshness_bonus=breakdown.freshness_bonus,
            total_score=breakdown.total_score,
            explanation=ExplanationOut(**vars(breakdown.explanation)),
        ),
        viral_potential=item.potential,
    )


# ── Helpers ──────────────────────────────────────────────────────────


def client_key_from_request(request: Request) -> str:
    """First X-Forwarded-For hop, then the socket peer, then the anonymous bucket."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return ANONYMOUS_KEY


def _error(status_code: int, message: str, headers: Optional[dict] = None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, **extra},
        headers=headers,
    )


def _retry_after_seconds(reset_time_ms: float) -> int:
    if not reset_time_ms:
        return 1
    return max(1, math.ceil((reset_time_ms - time.time() * 1000) / 1000))


def build_orchestrator(settings: Settings, writer: Optional[PersistenceWorker]) -> Optional[SearchOrchestrator]:
    if not settings.youtube_api_key:
        logger.warning("YOUTUBE_API_KEY is not set; search requests will fail")
        return None
    gateway = CatalogGateway(settings.youtube_api_key, timeout=settings.request_timeout)
    limiter = RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_ms=settings.rate_limit_window_ms,
        store=InMemoryRateLimitStore(max_keys=settings.rate_limit_max_keys),
    )
    return SearchOrchestrator(gateway, limiter, writer=writer)


# ── App ──────────────────────────────────────────────────────────────


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[SearchOrchestrator] = None,
    worker: Optional[PersistenceWorker] = None,
) -> FastAPI:
    """Build the FastAPI app.

    Pass an orchestrator to skip building one from settings; the background
    worker is only created when neither is supplied.
    """
    settings = settings or load_settings()
    if orchestrator is None:
        if worker is None:
            worker = PersistenceWorker(settings.db_path, max_queue_size=settings.persist_queue_size)
        orchestrator = build_orchestrator(settings, worker)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if worker is not None:
            worker.start()
        yield
        if worker is not None:
            worker.stop()

    app = FastAPI(title="Viral Finder", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.worker = worker

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(400, "invalid request parameters", details=jsonable_errors(exc))

    @app.get("/health")
    def health(response: Response):
        response.headers["Cache-Control"] = NO_CACHE
        return {
            "status": "healthy",
            "youtube_configured": app.state.orchestrator is not None,
            "persistence": app.state.worker.stats() if app.state.worker else None,
        }

    @app.get("/api/youtube/search", response_model=SearchResponse)
    def search_videos(
        request: Request,
        response: Response,
        q: str = Query(""),
        page_token: Optional[str] = Query(None, alias="pageToken"),
        max_results: Optional[int] = Query(None, alias="maxResults", ge=1, le=50),
        sort_by: Optional[SortKey] = Query(None, alias="sortBy"),
        published_after: Optional[datetime] = Query(None, alias="publishedAfter"),
        video_duration: Optional[str] = Query(None, alias="videoDuration"),
        min_subscribers: Optional[int] = Query(None, alias="minSubscribers", ge=0),
        max_subscribers: Optional[int] = Query(None, alias="maxSubscribers", ge=0),
        min_views: Optional[int] = Query(None, alias="minViews", ge=0),
        max_views: Optional[int] = Query(None, alias="maxViews", ge=0),
        x_user_id: Optional[str] = Header(None),
    ):
        if not q.strip():
            return _error(400, "query is required")

        orchestrator = app.state.orchestrator
        if orchestrator is None:
            logger.error("Search requested but YouTube API key is not configured")
            return _error(500, "Failed to search videos")

        duration = None
        if video_duration and video_duration != "any":
            try:
                duration = DurationBucket(video_duration)
            except ValueError:
                return _error(400, f"invalid videoDuration: {video_duration}")

        filters = SearchFilters(
            min_subscribers=min_subscribers,
            max_subscribers=max_subscribers,
            min_views=min_views,
            max_views=max_views,
            sort_by=sort_by,
            published_after=published_after,
            video_duration=duration,
        )

        try:
            result = orchestrator.search(
                q,
                filters=filters,
                page_token=page_token,
                max_results=max_results or app.state.settings.default_max_results,
                client_key=client_key_from_request(request),
                identity=x_user_id or None,
            )
        except ValidationError as e:
            return _error(400, str(e))
        except RateLimitExceeded as e:
            return _error(
                429,
                str(e),
                headers={"Retry-After": str(_retry_after_seconds(e.reset_time))},
                remainingRequests=e.remaining,
                resetTime=e.reset_time,
            )
        except DiscoveryError as e:
            logger.error("YouTube search error: %s", e)
            return _error(500, "Failed to search videos")
        except Exception:
            logger.exception("YouTube search error")
            return _error(500, "Failed to search videos")

        response.headers["Cache-Control"] = API_RESPONSE_CACHE
        return SearchResponse(
            items=[to_viral_video_out(item) for item in result.items],
            next_page_token=result.next_page_token,
            total_results=result.total_results,
        )

    @app.get("/api/search-history")
    def search_history(
        response: Response,
        limit: int = Query(10, ge=1, le=100),
        x_user_id: Optional[str] = Header(None),
    ):
        if not x_user_id:
            return _error(401, "Unauthorized")

        with Database(app.state.settings.db_path) as db:
            db.ensure_tables()
            history = db.get_search_history(x_user_id, limit=limit)

        response.headers["Cache-Control"] = USER_DATA_CACHE
        return {
            "items": [
                {
                    "id": h.id,
                    "query": h.query,
                    "resultsCount": h.results_count,
                    "createdAt": h.created_at.isoformat() if isinstance(h.created_at, datetime) else h.created_at,
                }
                for h in history
            ]
        }

    @app.get("/api/videos/{video_id}/scores")
    def score_history(
        video_id: str,
        response: Response,
        limit: int = Query(30, ge=1, le=365),
    ):
        with Database(app.state.settings.db_path) as db:
            db.ensure_tables()
            snapshots = db.get_score_history(video_id, limit=limit)

        response.headers["Cache-Control"] = API_RESPONSE_CACHE
        return {
            "videoId": video_id,
            "items": [
                {
                    "viralScore": s.viral_score,
                    "multiplier": s.multiplier,
                    "engagementRate": s.engagement_rate,
                    "viewCount": s.view_count,
                    "subscriberCount": s.subscriber_count,
                    "potential": s.potential,
                    "recordedAt": s.recorded_at.isoformat() if isinstance(s.recorded_at, datetime) else s.recorded_at,
                }
                for s in snapshots
            ],
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
