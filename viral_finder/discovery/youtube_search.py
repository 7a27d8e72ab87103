"""
YouTube Data API gateway: keyword search with full stats enrichment,
plus batched channel lookups.

search.list costs 100 quota units per call; videos.list and channels.list
cost 1 unit per call of up to 50 ids, so every lookup is batched.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

import httpx

from .errors import UpstreamAPIError
from .models import (
    Channel,
    SearchOptions,
    SearchPage,
    SortKey,
    Thumbnail,
    Video,
)

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE_URL = "https://www.googleapis.com/youtube/v3"
BATCH_SIZE = 50  # YouTube API allows up to 50 IDs per request
MAX_RESULTS_LIMIT = 50

_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_duration(duration_str: Optional[str]) -> Optional[int]:
    """Parse ISO 8601 duration (PT1H2M3S) to seconds.

    Returns None when the field is missing or unparseable; "PT0S" is a
    real zero-length duration and yields 0.
    """
    if not duration_str:
        return None
    match = _DURATION_RE.match(duration_str)
    if not match:
        logger.debug("Unrecognized duration token: %s", duration_str)
        return None
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    seconds = int(match.group(3) or 0)
    return hours * 3600 + minutes * 60 + seconds


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unrecognized timestamp: %s", value)
        return None


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _pick_thumbnail(snippet: dict) -> Thumbnail:
    thumbnails = snippet.get("thumbnails", {})
    for size in ("medium", "high", "default"):
        thumb = thumbnails.get(size)
        if thumb and thumb.get("url"):
            return Thumbnail(
                url=thumb["url"],
                width=int(thumb.get("width", 0)),
                height=int(thumb.get("height", 0)),
            )
    return Thumbnail(url="")


def _upstream_order(order: Optional[SortKey]) -> Optional[str]:
    """Map a caller sort key onto a search.list `order` value.

    The API has no notion of viral score; raw view count is the closest proxy.
    The real reordering happens after scoring.
    """
    if order is None:
        return None
    if order == SortKey.VIRAL_SCORE:
        return SortKey.VIEW_COUNT.value
    return order.value


def _chunks(ids: list[str], size: int = BATCH_SIZE):
    for i in range(0, len(ids), size):
        yield ids[i:i + size]


class CatalogGateway:
    """Thin client over the YouTube Data API v3 returning normalized records."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30,
        client: Optional[httpx.Client] = None,
        base_url: str = YOUTUBE_API_BASE_URL,
    ):
        if not api_key:
            raise ValueError("YouTube API key is not configured")
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _get(self, endpoint: str, params: dict) -> dict:
        """GET an API endpoint, raising UpstreamAPIError on any failure."""
        try:
            resp = self._client.get(
                f"{self.base_url}/{endpoint}",
                params={**params, "key": self.api_key},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error("YouTube %s request timed out after %ss", endpoint, self.timeout)
            raise UpstreamAPIError(f"{endpoint} request timed out") from e
        except httpx.HTTPError as e:
            logger.error("YouTube %s request failed: %s", endpoint, e)
            raise UpstreamAPIError(f"{endpoint} request failed: {e}") from e

        if resp.status_code != 200:
            raise self._error_from_response(endpoint, resp)
        return resp.json()

    @staticmethod
    def _error_from_response(endpoint: str, resp) -> UpstreamAPIError:
        message = "YouTube API request failed"
        code = None
        try:
            error = resp.json().get("error", {})
            message = error.get("message") or message
            reasons = error.get("errors") or []
            if reasons:
                code = reasons[0].get("reason")
        except ValueError:
            pass
        if resp.status_code == 403 and code == "quotaExceeded":
            logger.error("YouTube API quota exceeded")
        else:
            logger.error("YouTube %s error %s: %s", endpoint, resp.status_code, message)
        return UpstreamAPIError(message, status_code=resp.status_code, code=code)

    def search(
        self,
        query: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchPage:
        """Search YouTube for videos matching a query and fetch their stats.

        Args:
            query: Search query string.
            max_results: Page size, clamped to 1-50.
            page_token: Opaque upstream page token.
            options: Upstream order / publishedAfter / videoDuration hints.

        Returns:
            SearchPage whose videos follow the upstream hit order.
        """
        options = options or SearchOptions()
        params = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": max(1, min(max_results, MAX_RESULTS_LIMIT)),
        }
        order = _upstream_order(options.order)
        if order:
            params["order"] = order
        if options.published_after:
            params["publishedAfter"] = _format_timestamp(options.published_after)
        if options.video_duration:
            params["videoDuration"] = options.video_duration.value
        if page_token:
            params["pageToken"] = page_token

        # Step 1: Search for video IDs
        search_data = self._get("search", params)
        next_page_token = search_data.get("nextPageToken")

        video_ids: list[str] = []
        for item in search_data.get("items", []):
            video_id = item.get("id", {}).get("videoId")
            if video_id and video_id not in video_ids:
                video_ids.append(video_id)

        if not video_ids:
            logger.info("No YouTube results for query: %s", query)
            return SearchPage(videos=[], next_page_token=next_page_token, total_results=0)

        # Step 2: Fetch full stats for all found videos
        videos = self.get_videos(video_ids)
        total = int(search_data.get("pageInfo", {}).get("totalResults", len(videos)))

        logger.info("Found %d YouTube videos for query: %s", len(videos), query)
        return SearchPage(videos=videos, next_page_token=next_page_token, total_results=total)

    def get_videos(self, video_ids: list[str]) -> list[Video]:
        """Fetch snippet, statistics and duration for the given ids, keeping their order."""
        by_id: dict[str, Video] = {}
        for batch in _chunks(video_ids):
            video_data = self._get("videos", {
                "part": "snippet,statistics,contentDetails",
                "id": ",".join(batch),
            })
            for item in video_data.get("items", []):
                video = self._video_from_item(item)
                if video is None:
                    logger.warning("Skipping video %s with no publish time", item.get("id"))
                    continue
                by_id[video.id] = video
        return [by_id[vid] for vid in video_ids if vid in by_id]

    def get_channels(self, channel_ids: list[str]) -> list[Channel]:
        """Fetch channel metadata for the given ids.

        Ids are deduplicated first; an empty list never hits the network.
        Ids the API does not recognize are silently left out of the result.
        """
        unique_ids = list(dict.fromkeys(cid for cid in channel_ids if cid))
        if not unique_ids:
            return []

        channels = []
        for batch in _chunks(unique_ids):
            channel_data = self._get("channels", {
                "part": "snippet,statistics",
                "id": ",".join(batch),
            })
            for item in channel_data.get("items", []):
                channels.append(self._channel_from_item(item))

        missing = len(unique_ids) - len(channels)
        if missing > 0:
            logger.info("%d of %d channels not returned by YouTube", missing, len(unique_ids))
        return channels

    @staticmethod
    def _video_from_item(item: dict) -> Optional[Video]:
        snippet = item.get("snippet", {})
        stats = item.get("statistics", {})
        content = item.get("contentDetails", {})
        published_at = _parse_timestamp(snippet.get("publishedAt"))
        if published_at is None:
            return None
        return Video(
            id=item["id"],
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            channel_id=snippet.get("channelId", ""),
            channel_title=snippet.get("channelTitle", ""),
            published_at=published_at,
            thumbnail=_pick_thumbnail(snippet),
            view_count=int(stats.get("viewCount", 0)),
            like_count=int(stats.get("likeCount", 0)),
            comment_count=int(stats.get("commentCount", 0)),
            duration_seconds=parse_duration(content.get("duration")),
        )

    @staticmethod
    def _channel_from_item(item: dict) -> Channel:
        snippet = item.get("snippet", {})
        stats = item.get("statistics", {})
        return Channel(
            id=item["id"],
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            custom_url=snippet.get("customUrl"),
            published_at=_parse_timestamp(snippet.get("publishedAt")),
            thumbnail=_pick_thumbnail(snippet),
            view_count=int(stats.get("viewCount", 0)),
            subscriber_count=int(stats.get("subscriberCount", 0)),
            video_count=int(stats.get("videoCount", 0)),
        )
