from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
import logging

import requests

from models.reading import (
    Comment,
    CommentCreate,
    CommentWrite,
    ProgressUpsert,
    ProgressWrite,
    ReadingProgress,
    ReadingSession,
    SessionClose,
    SessionOpen,
    SessionOpenWrite,
)

from .errors import PersistenceError

logger = logging.getLogger(__name__)


class ApiStore:
    """DataStore backed by the HTTP API in ``main.py``.

    The server takes the user from the bearer token, so ``user_id`` fields
    of writes are not sent.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {access_token}"
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise PersistenceError(f"{method} {path} failed: {exc}") from exc
        if not response.ok:
            raise PersistenceError(f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}")
        return response.json()

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def get_progress(self, book_id: str, chapter_slug: str, user_id: str) -> Optional[ReadingProgress]:
        payload = await self._call("GET", f"/api/progress/{book_id}/{chapter_slug}")
        return ReadingProgress.model_validate(payload) if payload else None

    async def upsert_progress(self, write: ProgressWrite) -> ReadingProgress:
        body = ProgressUpsert(**write.model_dump(exclude={"user_id"}))
        payload = await self._call("PUT", "/api/progress", json=body.model_dump(mode="json"))
        return ReadingProgress.model_validate(payload)

    async def open_session(self, request: SessionOpenWrite) -> ReadingSession:
        body = SessionOpen(**request.model_dump(exclude={"user_id"}))
        payload = await self._call("POST", "/api/sessions", json=body.model_dump(mode="json"))
        return ReadingSession.model_validate(payload)

    async def close_session(
        self, session_id: str, user_id: str, ended_at: datetime, max_scroll_pct: float
    ) -> ReadingSession:
        body = SessionClose(ended_at=ended_at, max_scroll_pct=max_scroll_pct)
        payload = await self._call("PATCH", f"/api/sessions/{session_id}", json=body.model_dump(mode="json"))
        return ReadingSession.model_validate(payload)

    async def insert_comment(self, write: CommentWrite) -> Comment:
        body = CommentCreate(**write.model_dump(exclude={"user_id"}))
        payload = await self._call("POST", "/api/comments", json=body.model_dump(mode="json"))
        return Comment.model_validate(payload)

    async def set_comment_resolved(self, comment_id: str, resolved: bool) -> Comment:
        payload = await self._call("PATCH", f"/api/comments/{comment_id}", json={"is_resolved": resolved})
        return Comment.model_validate(payload)

    async def list_comments(self, book_id: str, chapter_slug: str) -> List[Comment]:
        params: Dict[str, str] = {"book_id": book_id, "chapter_slug": chapter_slug}
        payload = await self._call("GET", "/api/comments", params=params)
        return [Comment.model_validate(item) for item in payload]
