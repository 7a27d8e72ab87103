#!/usr/bin/env python3
"""
CLI for viral video search

Usage:
    python -m viral_finder.cli --db-path data.db search "minecraft speedrun"
    python -m viral_finder.cli --db-path data.db search "lofi" --sort-by viewCount --min-views 10000
    python -m viral_finder.cli --db-path data.db history --user alice
    python -m viral_finder.cli --db-path data.db scores VIDEO_ID
    python -m viral_finder.cli --db-path data.db serve --port 8000
"""
import argparse
import json
import logging
import sys
from datetime import datetime

from .config import load_settings
from .db.database import Database
from .discovery.errors import DiscoveryError
from .discovery.models import DurationBucket, SearchFilters, SortKey
from .discovery.persistence import PersistenceWorker
from .discovery.pipeline import SearchOrchestrator
from .discovery.rate_limiter import RateLimiter
from .discovery.youtube_search import CatalogGateway

logger = logging.getLogger(__name__)

CLI_CLIENT_KEY = "cli"


def _timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 timestamp: {value}")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Viral video finder CLI"
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help="Path to SQLite database (default: $VIRAL_FINDER_DB_PATH or data.db)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search YouTube and rank results by viral score"
    )
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Results per page, 1-50 (default: 20)"
    )
    search_parser.add_argument(
        "--page-token",
        default=None,
        help="Page token from a previous search"
    )
    search_parser.add_argument(
        "--sort-by",
        choices=[k.value for k in SortKey],
        default=SortKey.VIRAL_SCORE.value,
        help="Sort order (default: viralScore)"
    )
    search_parser.add_argument(
        "--published-after",
        type=_timestamp,
        default=None,
        help="Only videos published after this ISO 8601 time (default: last 30 days)"
    )
    search_parser.add_argument(
        "--duration",
        choices=[d.value for d in DurationBucket],
        default=None,
        help="YouTube duration bucket hint"
    )
    search_parser.add_argument("--min-subscribers", type=int, default=None)
    search_parser.add_argument("--max-subscribers", type=int, default=None)
    search_parser.add_argument("--min-views", type=int, default=None)
    search_parser.add_argument("--max-views", type=int, default=None)
    search_parser.add_argument(
        "--user",
        default=None,
        help="User ID to record the search under"
    )

    # History command
    history_parser = subparsers.add_parser(
        "history",
        help="Show recent searches for a user"
    )
    history_parser.add_argument("--user", required=True, help="User ID")
    history_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of searches to show (default: 10)"
    )

    # Scores command
    scores_parser = subparsers.add_parser(
        "scores",
        help="Show recorded viral score history for a video"
    )
    scores_parser.add_argument("video_id", help="YouTube video ID")
    scores_parser.add_argument(
        "--limit",
        type=int,
        default=30,
        help="Number of snapshots to show (default: 30)"
    )

    # Serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP API"
    )
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def cmd_search(args, settings) -> dict:
    """Execute the search command and wait for its results to be saved."""
    worker = PersistenceWorker(settings.db_path, max_queue_size=settings.persist_queue_size)
    worker.start()
    try:
        with CatalogGateway(settings.youtube_api_key, timeout=settings.request_timeout) as gateway:
            orchestrator = SearchOrchestrator(
                gateway,
                RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_ms),
                writer=worker,
            )
            filters = SearchFilters(
                min_subscribers=args.min_subscribers,
                max_subscribers=args.max_subscribers,
                min_views=args.min_views,
                max_views=args.max_views,
                sort_by=SortKey(args.sort_by),
                published_after=args.published_after,
                video_duration=DurationBucket(args.duration) if args.duration else None,
            )
            result = orchestrator.search(
                args.query,
                filters=filters,
                page_token=args.page_token,
                max_results=args.max_results or settings.default_max_results,
                client_key=CLI_CLIENT_KEY,
                identity=args.user,
            )
        worker.flush()
    finally:
        worker.stop()

    return {
        "command": "search",
        "query": args.query,
        "total_results": result.total_results,
        "next_page_token": result.next_page_token,
        "count": len(result.items),
        "items": [
            {
                "video_id": item.video.id,
                "title": item.video.title,
                "channel": item.channel.title,
                "subscribers": item.channel.subscriber_count,
                "views": item.video.view_count,
                "published_at": item.video.published_at.isoformat(),
                "viral_score": item.viral_score,
                "multiplier": round(item.multiplier, 2),
                "engagement_rate": round(item.engagement_rate, 2),
                "potential": item.potential,
                "breakdown": {
                    "subscriber_impact": item.breakdown.subscriber_impact,
                    "view_velocity": item.breakdown.view_velocity,
                    "engagement_score": item.breakdown.engagement_score,
                    "freshness_bonus": item.breakdown.freshness_bonus,
                },
            }
            for item in result.items
        ],
    }


def cmd_history(db: Database, args) -> dict:
    """Execute the history command."""
    db.ensure_tables()
    history = db.get_search_history(args.user, limit=args.limit)
    return {
        "command": "history",
        "user": args.user,
        "searches": [
            {
                "query": h.query,
                "results_count": h.results_count,
                "created_at": h.created_at.isoformat() if isinstance(h.created_at, datetime) else h.created_at,
            }
            for h in history
        ],
    }


def cmd_scores(db: Database, args) -> dict:
    """Execute the scores command."""
    db.ensure_tables()
    snapshots = db.get_score_history(args.video_id, limit=args.limit)
    video = db.get_video(args.video_id)
    channel = db.get_channel(video["channel_id"]) if video else None
    return {
        "command": "scores",
        "video_id": args.video_id,
        "title": video["title"] if video else None,
        "channel": channel["title"] if channel else None,
        "snapshots": [
            {
                "viral_score": s.viral_score,
                "views": s.view_count,
                "subscribers": s.subscriber_count,
                "multiplier": round(s.multiplier, 2),
                "engagement_rate": round(s.engagement_rate, 2),
                "potential": s.potential,
                "recorded_at": s.recorded_at.isoformat() if isinstance(s.recorded_at, datetime) else s.recorded_at,
            }
            for s in snapshots
        ],
    }


def cmd_serve(args, settings) -> None:
    """Execute the serve command (blocks until interrupted)."""
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)


def print_result(result: dict) -> None:
    print(f"\n{'=' * 50}")
    print(f"Command: {result['command']}")
    print(f"{'=' * 50}")

    if result["command"] == "search":
        print(f"Query: {result['query']}")
        print(f"Showing {result['count']} of ~{result['total_results']:,} results")
        for i, item in enumerate(result["items"], 1):
            print(f"\n  #{i} [{item['viral_score']:>3}] {item['title'][:60]}")
            print(f"     Channel: {item['channel']} ({item['subscribers']:,} subs)")
            print(f"     Views: {item['views']:,} | {item['multiplier']}x subs | "
                  f"Engagement: {item['engagement_rate']}%")
            print(f"     Potential: {item['potential']}")
        if result.get("next_page_token"):
            print(f"\nNext page: --page-token {result['next_page_token']}")

    elif result["command"] == "history":
        searches = result["searches"]
        if not searches:
            print(f"No searches found for {result['user']}.")
        for s in searches:
            print(f"  {s['created_at']}  {s['query']} ({s['results_count']} results)")

    elif result["command"] == "scores":
        if result["title"]:
            print(f"Video: {result['title']} ({result['channel'] or 'unknown channel'})")
        snapshots = result["snapshots"]
        if not snapshots:
            print(f"No score history for {result['video_id']}.")
        for s in snapshots:
            print(f"  {s['recorded_at']}  score={s['viral_score']:>3}  "
                  f"views={s['views']:,}  {s['potential']}")

    print(f"{'=' * 50}\n")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = load_settings()
    if args.db_path:
        settings.db_path = args.db_path

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command == "serve":
        cmd_serve(args, settings)
        return 0

    try:
        if args.command == "search":
            if not settings.youtube_api_key:
                logger.error("YOUTUBE_API_KEY is not set")
                return 1
            result = cmd_search(args, settings)
        else:
            with Database(settings.db_path) as db:
                if args.command == "history":
                    result = cmd_history(db, args)
                elif args.command == "scores":
                    result = cmd_scores(db, args)
                else:
                    logger.error(f"Unknown command: {args.command}")
                    return 1
    except DiscoveryError as e:
        logger.error("Search failed: %s", e)
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
