"""One reader's visit to one chapter.

``ChapterView`` is an async context manager: entering loads the chapter,
opens the reading session and starts the timers; leaving cancels the
timers, writes the final progress and closes the session, on every exit path.
"""
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol
from dataclasses import dataclass, field
from enum import Enum
import asyncio
import logging
import time

import config
from models.reading import Comment, ReadingProgress

from .activity import ActivityTracker, TimeAccumulator
from .comments import CommentEngine, RenderedPage, Selection, render_page
from .content import ContentLoader
from .persister import ProgressPersister, ProgressSnapshot
from .scroll import ScrollEvent, ScrollProgress
from .session import ClientInfo, SessionLifecycle
from .store import ChapterKey, DataStore

logger = logging.getLogger(__name__)


class Viewport(Protocol):
    """The host window the rendered chapter lives in."""
    width: int
    height: int
    user_agent: str

    def document_height(self) -> float: ...

    def scroll_to(self, offset: float) -> None: ...

    def get_selection(self) -> Optional[Selection]: ...


@dataclass(frozen=True)
class ReaderTimings:
    idle_timeout: float = config.READER_IDLE_TIMEOUT_SECONDS
    activity_poll: float = config.READER_ACTIVITY_POLL_SECONDS
    tick: float = config.READER_TICK_SECONDS
    save_interval: float = config.READER_SAVE_INTERVAL_SECONDS
    selection_settle: float = config.READER_SELECTION_SETTLE_SECONDS
    completion_threshold: int = config.READER_COMPLETION_THRESHOLD


@dataclass
class ChapterContext:
    """What the host mounts a chapter view with."""
    book_id: str
    book_slug: str
    chapter_slug: str
    user_id: str
    initial_progress: Optional[ReadingProgress] = None
    initial_comments: Optional[List[Comment]] = None

    @property
    def key(self) -> ChapterKey:
        return ChapterKey(self.book_id, self.chapter_slug, self.user_id)


class ViewStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class ChapterView:
    def __init__(
        self,
        context: ChapterContext,
        store: DataStore,
        loader: ContentLoader,
        viewport: Viewport,
        timings: Optional[ReaderTimings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.context = context
        self.store = store
        self.loader = loader
        self.viewport = viewport
        self.timings = timings or ReaderTimings()
        self.clock = clock
        self.status = ViewStatus.LOADING
        self.error: Optional[str] = None
        self.html = ""
        self.page: Optional[RenderedPage] = None

        progress = context.initial_progress
        self.tracker = ActivityTracker(self.timings.idle_timeout, clock=clock)
        self.timer = TimeAccumulator(self.tracker, progress.time_spent_seconds if progress else 0)
        self.scroll = ScrollProgress(progress.scroll_pct if progress else 0)
        self.persister = ProgressPersister(
            store,
            context.key,
            initial=ProgressSnapshot(self.scroll.percentage, self.timer.seconds),
            min_interval=self.timings.save_interval,
            completion_threshold=self.timings.completion_threshold,
            clock=clock,
        )
        self.session = SessionLifecycle(
            store,
            context.key,
            ClientInfo(viewport.width, viewport.height, viewport.user_agent),
        )
        self.comments: Optional[CommentEngine] = None
        self._tasks: List[asyncio.Task] = []
        self._finished = False

    async def __aenter__(self) -> "ChapterView":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def ready(self) -> bool:
        return self.status is ViewStatus.READY

    async def open(self) -> None:
        result = await self.loader.load(self.context.book_slug, self.context.chapter_slug)
        if not result.ok:
            self.status = ViewStatus.ERROR
            self.error = result.error
            return
        self.html = result.html
        self.page = render_page(result.html)
        self.comments = CommentEngine(
            self.store,
            self.context.key,
            self.page.region,
            self.viewport.get_selection,
            initial_comments=self.context.initial_comments or (),
            settle_delay=self.timings.selection_settle,
        )
        self.status = ViewStatus.READY

        self.session.open()
        if self.context.initial_comments is None:
            self._spawn(self._load_comments())
        self._spawn(self._restore_scroll())
        self._spawn(self._every(self.timings.tick, self.timer.tick))
        self._spawn(self._every(self.timings.activity_poll, self.tracker.poll))
        self._spawn(self._every(self.timings.save_interval, self._save_tick))
        logger.info(f"Reading {self.context.book_slug}/{self.context.chapter_slug}")

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.append(task)
        return task

    async def _every(self, interval: float, callback: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval)
            callback()

    async def _restore_scroll(self) -> None:
        # Give the host a turn to lay out the content first
        await asyncio.sleep(0)
        progress = self.context.initial_progress
        self.scroll.restore(self.viewport, progress.scroll_pct if progress else None)

    async def _load_comments(self) -> None:
        try:
            await self.comments.refresh()
        except Exception as exc:
            logger.warning(f"Could not load comments for {self.context.chapter_slug}: {exc}")

    def _save_tick(self) -> None:
        self.persister.update(self.scroll.percentage, self.timer.seconds)
        self.persister.maybe_flush()

    # -------------------- Events from the host --------------------
    # Events only reach a mounted, loaded chapter; after an error or teardown they are dropped.

    def on_activity(self, event_type: str) -> None:
        if not self.ready:
            return
        self.tracker.record(event_type)

    def on_scroll(self, offset: float) -> Optional[int]:
        if not self.ready:
            return None
        self.tracker.record("scroll")
        pct = self.scroll.update(ScrollEvent(offset, self.viewport.document_height(), self.viewport.height))
        self.persister.update(pct, self.timer.seconds)
        self.persister.maybe_flush()
        return pct

    def on_pointer_down(self) -> None:
        if self.ready:
            self.comments.pointer_down()

    def on_pointer_up(self) -> Optional[asyncio.Task]:
        if not self.ready:
            return None
        self.tracker.record("click")
        return self.comments.pointer_up()

    async def page_hidden(self) -> None:
        """Best-effort final save when the page is being hidden or unloaded."""
        await self._finish()

    # -------------------- Teardown --------------------

    async def close(self) -> None:
        if self.status is ViewStatus.CLOSED:
            return
        try:
            await self._stop_tasks()
            if self.comments is not None:
                self.comments.close()
            await self._finish()
        finally:
            if self.status is ViewStatus.READY:
                self.status = ViewStatus.CLOSED

    async def _stop_tasks(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.warning(f"Reader task {task.get_coro().__qualname__} failed: {result!r}")

    async def _finish(self) -> None:
        if self._finished or self.status is not ViewStatus.READY:
            return
        self._finished = True
        self.persister.update(self.scroll.percentage, self.timer.seconds)
        await self.persister.flush()
        await self.session.close(self.scroll.max_percentage)
