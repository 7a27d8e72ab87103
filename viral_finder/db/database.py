"""
SQLite adapter for channels, videos, score snapshots and search history.
"""
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..discovery.models import Channel, Video, ViralVideo


@dataclass
class SearchRecord:
    """A saved search made by an identified caller."""
    id: int
    user_id: str
    query: str
    results_count: int
    created_at: datetime


@dataclass
class ScoreSnapshot:
    """One scoring of a video, as recorded after a search."""
    id: int
    video_id: str
    channel_id: str
    viral_score: int
    multiplier: float
    engagement_rate: float
    view_count: int
    subscriber_count: int
    potential: Optional[str]
    recorded_at: datetime


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Any) -> Any:
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value


class Database:
    """Database adapter for search results and history."""

    def __init__(self, connection_string: str):
        """
        Initialize database adapter.

        Args:
            connection_string: Path to the SQLite .db file (":memory:" works too).
        """
        self.connection_string = connection_string
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Establish database connection."""
        self._conn = sqlite3.connect(self.connection_string)
        self._conn.row_factory = sqlite3.Row

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def ensure_tables(self) -> None:
        """Create tables if they don't exist."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS channels (
                id TEXT PRIMARY KEY,
                title TEXT,
                description TEXT,
                custom_url TEXT,
                subscriber_count INTEGER DEFAULT 0,
                video_count INTEGER DEFAULT 0,
                view_count INTEGER DEFAULT 0,
                thumbnail_url TEXT,
                published_at TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS videos (
                id TEXT PRIMARY KEY,
                title TEXT,
                description TEXT,
                channel_id TEXT NOT NULL,
                thumbnail_url TEXT,
                published_at TIMESTAMP,
                view_count INTEGER DEFAULT 0,
                like_count INTEGER DEFAULT 0,
                comment_count INTEGER DEFAULT 0,
                duration_seconds INTEGER,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (channel_id) REFERENCES channels(id)
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS viral_scores (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                video_id TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                viral_score INTEGER NOT NULL,
                multiplier REAL DEFAULT 0,
                engagement_rate REAL DEFAULT 0,
                view_count INTEGER DEFAULT 0,
                subscriber_count INTEGER DEFAULT 0,
                potential TEXT,
                recorded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (video_id) REFERENCES videos(id)
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS searches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                query TEXT NOT NULL,
                results_count INTEGER DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_videos_channel
            ON videos(channel_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_viral_scores_video
            ON viral_scores(video_id, recorded_at)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_searches_user
            ON searches(user_id, created_at)
        """)
        self._conn.commit()

    def save_channels(self, channels: List[Channel]) -> int:
        """
        Insert or refresh channel rows.

        Args:
            channels: Channels as fetched from YouTube.

        Returns:
            Number of rows written.
        """
        if not self._conn:
            raise RuntimeError("Database not connected")
        if not channels:
            return 0

        now = _utc_now_iso()
        self._conn.executemany("""
            INSERT INTO channels
                (id, title, description, custom_url, subscriber_count, video_count,
                 view_count, thumbnail_url, published_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                custom_url = COALESCE(excluded.custom_url, channels.custom_url),
                subscriber_count = excluded.subscriber_count,
                video_count = excluded.video_count,
                view_count = excluded.view_count,
                thumbnail_url = excluded.thumbnail_url,
                published_at = COALESCE(excluded.published_at, channels.published_at),
                updated_at = excluded.updated_at
        """, [
            (
                ch.id, ch.title, ch.description, ch.custom_url, ch.subscriber_count,
                ch.video_count, ch.view_count, ch.thumbnail.url,
                _to_iso(ch.published_at), now,
            )
            for ch in channels
        ])
        self._conn.commit()
        return len(channels)

    def save_videos(self, videos: List[Video]) -> int:
        """Insert or refresh video rows. Returns the number written."""
        if not self._conn:
            raise RuntimeError("Database not connected")
        if not videos:
            return 0

        now = _utc_now_iso()
        self._conn.executemany("""
            INSERT INTO videos
                (id, title, description, channel_id, thumbnail_url, published_at,
                 view_count, like_count, comment_count, duration_seconds, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                channel_id = excluded.channel_id,
                thumbnail_url = excluded.thumbnail_url,
                published_at = excluded.published_at,
                view_count = excluded.view_count,
                like_count = excluded.like_count,
                comment_count = excluded.comment_count,
                duration_seconds = COALESCE(excluded.duration_seconds, videos.duration_seconds),
                updated_at = excluded.updated_at
        """, [
            (
                v.id, v.title, v.description, v.channel_id, v.thumbnail.url,
                _to_iso(v.published_at), v.view_count, v.like_count,
                v.comment_count, v.duration_seconds, now,
            )
            for v in videos
        ])
        self._conn.commit()
        return len(videos)

    def save_viral_scores(self, scores: List[ViralVideo]) -> int:
        """Append one score snapshot per scored video. Returns the number written."""
        if not self._conn:
            raise RuntimeError("Database not connected")
        if not scores:
            return 0

        now = _utc_now_iso()
        self._conn.executemany("""
            INSERT INTO viral_scores
                (video_id, channel_id, viral_score, multiplier, engagement_rate,
                 view_count, subscriber_count, potential, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            (
                s.video.id, s.channel.id, s.viral_score, s.multiplier,
                s.engagement_rate, s.video.view_count, s.channel.subscriber_count,
                s.potential, now,
            )
            for s in scores
        ])
        self._conn.commit()
        return len(scores)

    def save_search(self, user_id: str, query: str, results_count: int) -> int:
        """
        Record a search made by an identified caller.

        Returns:
            The new search row ID.
        """
        if not self._conn:
            raise RuntimeError("Database not connected")

        cursor = self._conn.execute("""
            INSERT INTO searches (user_id, query, results_count, created_at)
            VALUES (?, ?, ?, ?)
        """, (user_id, query, results_count, _utc_now_iso()))
        self._conn.commit()
        return cursor.lastrowid

    def get_search_history(self, user_id: str, limit: int = 10) -> List[SearchRecord]:
        """Get a caller's most recent searches, newest first."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        cursor = self._conn.execute("""
            SELECT id, user_id, query, results_count, created_at
            FROM searches
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """, (user_id, limit))

        return [
            SearchRecord(
                id=row["id"],
                user_id=row["user_id"],
                query=row["query"],
                results_count=row["results_count"] or 0,
                created_at=_from_iso(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]

    def get_score_history(self, video_id: str, limit: int = 30) -> List[ScoreSnapshot]:
        """Get the most recent score snapshots for a video, newest first."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        cursor = self._conn.execute("""
            SELECT id, video_id, channel_id, viral_score, multiplier, engagement_rate,
                   view_count, subscriber_count, potential, recorded_at
            FROM viral_scores
            WHERE video_id = ?
            ORDER BY recorded_at DESC, id DESC
            LIMIT ?
        """, (video_id, limit))

        return [
            ScoreSnapshot(
                id=row["id"],
                video_id=row["video_id"],
                channel_id=row["channel_id"],
                viral_score=row["viral_score"],
                multiplier=row["multiplier"] or 0.0,
                engagement_rate=row["engagement_rate"] or 0.0,
                view_count=row["view_count"] or 0,
                subscriber_count=row["subscriber_count"] or 0,
                potential=row["potential"],
                recorded_at=_from_iso(row["recorded_at"]),
            )
            for row in cursor.fetchall()
        ]

    def get_video(self, video_id: str) -> Optional[Dict[str, Any]]:
        """Get a stored video row as a dict."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        row = self._conn.execute(
            "SELECT * FROM videos WHERE id = ?", (video_id,)
        ).fetchone()
        return dict(row) if row else None

    def get_channel(self, channel_id: str) -> Optional[Dict[str, Any]]:
        """Get a stored channel row as a dict."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        row = self._conn.execute(
            "SELECT * FROM channels WHERE id = ?", (channel_id,)
        ).fetchone()
        return dict(row) if row else None
