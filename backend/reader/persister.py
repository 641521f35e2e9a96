from typing import Callable, Optional, Set
from dataclasses import dataclass
import asyncio
import logging
import time

from models.reading import ProgressWrite, ReadingProgress
from utils import utcnow

from .store import ChapterKey, DataStore

logger = logging.getLogger(__name__)

COMPLETION_THRESHOLD = 90


@dataclass(frozen=True)
class ProgressSnapshot:
    percentage: int
    seconds: int


class ProgressPersister:
    """Throttled, best-effort writer of one reader's chapter progress.

    ``update`` records the latest values; ``maybe_flush`` writes them at most
    once per ``min_interval`` seconds; ``flush`` writes unconditionally and is
    used on teardown. Every write is an upsert on the chapter key, so racing
    writes converge on one row. Failures are logged and never raised.
    """

    def __init__(
        self,
        store: DataStore,
        key: ChapterKey,
        initial: ProgressSnapshot = ProgressSnapshot(0, 0),
        min_interval: float = 5.0,
        completion_threshold: int = COMPLETION_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.key = key
        self.min_interval = min_interval
        self.completion_threshold = completion_threshold
        self.clock = clock
        self.latest = initial
        self.last_written: Optional[ProgressSnapshot] = None
        self.last_write_at = clock()
        self.writes = 0
        self._pending: Set[asyncio.Task] = set()

    @property
    def dirty(self) -> bool:
        return self.latest != self.last_written

    def update(self, percentage: int, seconds: int) -> None:
        self.latest = ProgressSnapshot(percentage, seconds)

    def build_write(self, snapshot: ProgressSnapshot) -> ProgressWrite:
        now = utcnow()
        completed = snapshot.percentage >= self.completion_threshold
        return ProgressWrite(
            book_id=self.key.book_id,
            chapter_slug=self.key.chapter_slug,
            user_id=self.key.user_id,
            scroll_pct=snapshot.percentage,
            time_spent_seconds=snapshot.seconds,
            last_read_at=now,
            completed_at=now if completed else None,
        )

    def maybe_flush(self) -> Optional[asyncio.Task]:
        """Schedule a background write if values changed and the window has passed."""
        if not self.dirty or self.clock() - self.last_write_at < self.min_interval:
            return None
        snapshot = self.latest
        self._mark_written(snapshot)
        task = asyncio.get_running_loop().create_task(self._write(snapshot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self) -> Optional[ReadingProgress]:
        # Let in-flight background writes land first so the final value wins
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        snapshot = self.latest
        self._mark_written(snapshot)
        return await self._write(snapshot)

    def _mark_written(self, snapshot: ProgressSnapshot) -> None:
        self.last_written = snapshot
        self.last_write_at = self.clock()

    async def _write(self, snapshot: ProgressSnapshot) -> Optional[ReadingProgress]:
        try:
            saved = await self.store.upsert_progress(self.build_write(snapshot))
        except Exception as exc:
            logger.warning(f"Failed to save reading progress for {self.key.chapter_slug}: {exc}")
            return None
        self.writes += 1
        return saved
