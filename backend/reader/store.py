"""Data-access capability handed to the reader components.

Nothing here is global: each chapter view receives the store it writes to.
"""
from typing import Callable, List, Optional, Protocol, TypeVar
from dataclasses import dataclass
from datetime import datetime
import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
from models.reading import (
    Comment,
    CommentWrite,
    ProgressWrite,
    ReadingProgress,
    ReadingSession,
    SessionOpenWrite,
)

from .errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ChapterKey:
    """Identifies one reader's view of one chapter."""
    book_id: str
    chapter_slug: str
    user_id: str


class DataStore(Protocol):
    async def get_progress(self, book_id: str, chapter_slug: str, user_id: str) -> Optional[ReadingProgress]: ...

    async def upsert_progress(self, write: ProgressWrite) -> ReadingProgress: ...

    async def open_session(self, request: SessionOpenWrite) -> ReadingSession: ...

    async def close_session(
        self, session_id: str, user_id: str, ended_at: datetime, max_scroll_pct: float
    ) -> ReadingSession: ...

    async def insert_comment(self, write: CommentWrite) -> Comment: ...

    async def set_comment_resolved(self, comment_id: str, resolved: bool) -> Comment: ...

    async def list_comments(self, book_id: str, chapter_slug: str) -> List[Comment]: ...


class SqlStore:
    """DataStore over a SQLAlchemy session factory.

    Each call opens its own session in a worker thread so the event loop
    never blocks on the database.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _run(self, operation: Callable[[Session], T]) -> T:
        db = self.session_factory()
        try:
            return operation(db)
        except (SQLAlchemyError, LookupError, ValueError) as exc:
            db.rollback()
            raise PersistenceError(str(exc)) from exc
        finally:
            db.close()

    async def _call(self, operation: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run, operation)

    async def get_progress(self, book_id: str, chapter_slug: str, user_id: str) -> Optional[ReadingProgress]:
        return await self._call(lambda db: crud.get_progress(db, book_id, chapter_slug, user_id))

    async def upsert_progress(self, write: ProgressWrite) -> ReadingProgress:
        return await self._call(lambda db: crud.upsert_progress(db, write))

    async def open_session(self, request: SessionOpenWrite) -> ReadingSession:
        return await self._call(lambda db: crud.create_session(db, request))

    async def close_session(
        self, session_id: str, user_id: str, ended_at: datetime, max_scroll_pct: float
    ) -> ReadingSession:
        return await self._call(
            lambda db: crud.close_session(db, session_id, user_id, ended_at, max_scroll_pct)
        )

    async def insert_comment(self, write: CommentWrite) -> Comment:
        return await self._call(lambda db: crud.create_comment(db, write))

    async def set_comment_resolved(self, comment_id: str, resolved: bool) -> Comment:
        return await self._call(lambda db: crud.set_comment_resolved(db, comment_id, resolved))

    async def list_comments(self, book_id: str, chapter_slug: str) -> List[Comment]:
        return await self._call(lambda db: crud.list_comments(db, book_id, chapter_slug))
