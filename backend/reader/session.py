from typing import Optional
from dataclasses import dataclass
import asyncio
import logging

from models.reading import ReadingSession, SessionOpenWrite
from utils import utcnow

from .store import ChapterKey, DataStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    user_agent: Optional[str] = None


class SessionLifecycle:
    """Brackets one chapter visit with exactly one session open and one close.

    The close needs the id returned by the open, so if the open failed or has
    not finished when the view goes away, no close is written.
    """

    def __init__(self, store: DataStore, key: ChapterKey, client: ClientInfo):
        self.store = store
        self.key = key
        self.client = client
        self.session_id: Optional[str] = None
        self.closed = False
        self._open_task: Optional[asyncio.Task] = None

    def open(self) -> asyncio.Task:
        if self._open_task is not None:
            raise RuntimeError("Reading session already opened for this view")
        self._open_task = asyncio.get_running_loop().create_task(self._open())
        return self._open_task

    async def wait_open(self) -> Optional[ReadingSession]:
        if self._open_task is None:
            return None
        return await asyncio.shield(self._open_task)

    async def _open(self) -> Optional[ReadingSession]:
        request = SessionOpenWrite(
            book_id=self.key.book_id,
            chapter_slug=self.key.chapter_slug,
            user_id=self.key.user_id,
            started_at=utcnow(),
            viewport_width=self.client.viewport_width,
            viewport_height=self.client.viewport_height,
            user_agent=self.client.user_agent,
        )
        try:
            session = await self.store.open_session(request)
        except Exception as exc:
            logger.warning(f"Could not open reading session for {self.key.chapter_slug}: {exc}")
            return None
        if self.closed:
            # View already gone; the row stays open
            logger.debug(f"Discarding late session {session.id}")
            return session
        self.session_id = session.id
        logger.debug(f"Opened reading session {session.id}")
        return session

    async def close(self, max_scroll_pct: float) -> Optional[ReadingSession]:
        if self.closed:
            return None
        self.closed = True
        if self.session_id is None:
            logger.debug(f"No open session to close for {self.key.chapter_slug}")
            return None
        try:
            session = await self.store.close_session(
                self.session_id, self.key.user_id, utcnow(), max_scroll_pct
            )
        except Exception as exc:
            logger.warning(f"Could not close reading session {self.session_id}: {exc}")
            return None
        logger.debug(f"Closed reading session {session.id} at {max_scroll_pct}%")
        return session
