"""
Background writer for search results.

Jobs are queued by the request path and drained by a single daemon thread,
so writes never delay a response. Each job is written channels first, then
videos, then score snapshots; a failed step skips the steps that depend on
it. The history entry is independent of that chain.
"""
import logging
import queue
import threading
from typing import Optional

from ..db.database import Database
from .models import PersistenceJob

logger = logging.getLogger(__name__)

_STOP = object()


class PersistenceWorker:
    """Drains PersistenceJobs into the database on its own thread."""

    def __init__(self, db_path: str, max_queue_size: int = 1000):
        self.db_path = db_path
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._thread: Optional[threading.Thread] = None
        self._stats_lock = threading.Lock()
        self._processed = 0
        self._failed = 0
        self._dropped = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(
            target=self._run, name="persistence-worker", daemon=True
        )
        self._thread.start()
        logger.info("Persistence worker started (db=%s)", self.db_path)

    def submit(self, job: PersistenceJob) -> bool:
        """Queue a job without blocking. Returns False if it was dropped."""
        if not self.is_running:
            logger.warning("Persistence worker not running; dropping job for %r", job.query)
            self._count(dropped=1)
            return False
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            logger.warning("Persistence queue full; dropping job for %r", job.query)
            self._count(dropped=1)
            return False
        return True

    def flush(self) -> None:
        """Block until every queued job has been handled."""
        if self.is_running:
            self._queue.join()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Finish queued jobs, then stop the thread."""
        if not self.is_running:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Persistence worker did not stop within %ss", timeout)
        else:
            self._thread = None
            logger.info("Persistence worker stopped: %s", self.stats())

    def stats(self) -> dict:
        with self._stats_lock:
            return {
                "processed": self._processed,
                "failed": self._failed,
                "dropped": self._dropped,
                "queued": self._queue.qsize(),
            }

    def _count(self, processed: int = 0, failed: int = 0, dropped: int = 0) -> None:
        with self._stats_lock:
            self._processed += processed
            self._failed += failed
            self._dropped += dropped

    def _run(self) -> None:
        # SQLite connections are bound to the thread that opened them
        db: Optional[Database] = Database(self.db_path)
        try:
            db.connect()
            db.ensure_tables()
        except Exception:
            logger.exception("Persistence worker could not open %s", self.db_path)
            db.close()
            db = None

        try:
            while True:
                job = self._queue.get()
                try:
                    if job is _STOP:
                        return
                    if db is None:
                        self._count(processed=1, failed=1)
                        continue
                    ok = write_job(db, job)
                    self._count(processed=1, failed=0 if ok else 1)
                except Exception:
                    logger.exception("Unexpected error persisting search %r", job.query)
                    self._count(processed=1, failed=1)
                finally:
                    self._queue.task_done()
        finally:
            if db is not None:
                db.close()


def write_job(db: Database, job: PersistenceJob) -> bool:
    """Write one job in dependency order. Returns True if every step succeeded."""
    ok = True
    steps = [
        ("channels", db.save_channels, job.channels),
        ("videos", db.save_videos, job.videos),
        ("viral scores", db.save_viral_scores, job.scores),
    ]
    for name, save, records in steps:
        try:
            save(records)
        except Exception as e:
            logger.error(
                "Failed to save %s for %r: %s; skipping dependent writes",
                name, job.query, e,
            )
            ok = False
            break

    if job.identity:
        try:
            db.save_search(job.identity, job.query, job.result_count)
        except Exception as e:
            logger.error("Failed to save search history for %s: %s", job.identity, e)
            ok = False

    if ok:
        logger.debug(
            "Persisted %d channels, %d videos, %d scores for %r",
            len(job.channels), len(job.videos), len(job.scores), job.query,
        )
    return ok
