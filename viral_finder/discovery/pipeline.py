"""
Search-and-score orchestrator.

Validates the request, applies the rate limit, runs the YouTube search,
scores every video against its channel, filters and sorts the page, and
hands the results to the background writer.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from .errors import (
    DiscoveryError,
    InternalError,
    RateLimitExceeded,
    ValidationError,
)
from .models import (
    PersistenceJob,
    SearchFilters,
    SearchOptions,
    SearchResult,
    SortKey,
    ViralVideo,
)
from .rate_limiter import RateLimiter, normalize_key
from .scoring import WINDOW_DAYS, ScoreEngine
from .youtube_search import CatalogGateway

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 20


class JobWriter(Protocol):
    def submit(self, job: PersistenceJob) -> bool: ...


_SORT_KEYS: dict[SortKey, Callable[[ViralVideo], object]] = {
    SortKey.VIRAL_SCORE: lambda item: item.viral_score,
    SortKey.VIEW_COUNT: lambda item: item.video.view_count,
    SortKey.DATE: lambda item: item.video.published_at,
    SortKey.RATING: lambda item: item.engagement_rate,
}


def sort_items(items: list[ViralVideo], sort_by: Optional[SortKey]) -> list[ViralVideo]:
    """Stable descending sort; relevance keeps the upstream order."""
    sort_by = sort_by or SortKey.VIRAL_SCORE
    if sort_by == SortKey.RELEVANCE:
        return list(items)
    return sorted(items, key=_SORT_KEYS[sort_by], reverse=True)


class SearchOrchestrator:
    """Entry point for one search request."""

    def __init__(
        self,
        gateway: CatalogGateway,
        limiter: RateLimiter,
        engine: Optional[ScoreEngine] = None,
        writer: Optional[JobWriter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.limiter = limiter
        self.engine = engine or ScoreEngine(clock=clock)
        self.writer = writer
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def search(
        self,
        query: Optional[str],
        filters: Optional[SearchFilters] = None,
        page_token: Optional[str] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        client_key: Optional[str] = None,
        identity: Optional[str] = None,
    ) -> SearchResult:
        """Run one search.

        Raises:
            ValidationError: blank query; the limiter is not consulted.
            RateLimitExceeded: the client has no quota left.
            UpstreamAPIError: a YouTube call failed.
            InternalError: anything else went wrong while scoring.
        """
        if query is None or not query.strip():
            raise ValidationError("query is required")
        query = query.strip()
        filters = filters or SearchFilters()

        key = normalize_key(client_key)
        if not self.limiter.check_limit(key):
            logger.warning("Rate limit hit for %s", key)
            raise RateLimitExceeded(
                remaining=self.limiter.remaining(key),
                reset_time=self.limiter.reset_time(key),
            )

        published_after = filters.published_after
        if published_after is None:
            published_after = self._clock() - timedelta(days=WINDOW_DAYS)
        options = SearchOptions(
            order=filters.sort_by or SortKey.VIRAL_SCORE,
            published_after=published_after,
            video_duration=filters.video_duration,
        )

        page = self.gateway.search(
            query, max_results=max_results, page_token=page_token, options=options,
        )
        if not page.videos:
            return SearchResult(items=[], next_page_token=page.next_page_token, total_results=0)

        try:
            channels = self.gateway.get_channels([v.channel_id for v in page.videos])
            by_id = {ch.id: ch for ch in channels}

            resolved = [v for v in page.videos if v.channel_id in by_id]
            missing = len(page.videos) - len(resolved)
            if missing:
                logger.info("Dropped %d videos with unresolved channels for %r", missing, query)

            scored = [self.engine.create_viral_video(v, by_id[v.channel_id]) for v in resolved]
            items = sort_items([s for s in scored if filters.accepts(s)], filters.sort_by)
        except DiscoveryError:
            raise
        except Exception as e:
            logger.exception("Failed to score results for %r", query)
            raise InternalError(str(e)) from e

        logger.info(
            "Search %r: %d fetched, %d scored, %d returned",
            query, len(page.videos), len(scored), len(items),
        )

        self._persist(PersistenceJob(
            channels=channels,
            videos=resolved,
            scores=scored,
            query=query,
            identity=identity,
            result_count=len(items),
        ))

        return SearchResult(
            items=items,
            next_page_token=page.next_page_token,
            total_results=page.total_results,
        )

    def _persist(self, job: PersistenceJob) -> None:
        if self.writer is None:
            return
        try:
            if not self.writer.submit(job):
                logger.info("Persistence job for %r was not queued", job.query)
        except Exception as e:
            logger.error("Failed to submit persistence job for %r: %s", job.query, e)
