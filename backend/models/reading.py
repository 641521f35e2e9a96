from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime, timezone


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Row(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ReadingProgress(Row):
    id: str
    book_id: str
    chapter_slug: str
    user_id: str
    scroll_pct: int = 0  # 0-100%
    time_spent_seconds: int = 0
    last_read_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("last_read_at", "completed_at")
    @classmethod
    def ensure_utc(cls, value):
        return _as_utc(value)


class ProgressUpsert(BaseModel):
    """Body of a progress write; the user comes from the caller's identity."""
    book_id: str
    chapter_slug: str
    scroll_pct: int = Field(0, ge=0, le=100)
    time_spent_seconds: int = Field(0, ge=0)
    last_read_at: datetime
    completed_at: Optional[datetime] = None


class ProgressWrite(ProgressUpsert):
    user_id: str


class ReadingSession(Row):
    id: str
    book_id: str
    chapter_slug: str
    user_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    max_scroll_pct: float = 0
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    user_agent: Optional[str] = None

    @field_validator("started_at", "ended_at")
    @classmethod
    def ensure_utc(cls, value):
        return _as_utc(value)


class SessionOpen(BaseModel):
    book_id: str
    chapter_slug: str
    started_at: datetime
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    user_agent: Optional[str] = None


class SessionOpenWrite(SessionOpen):
    user_id: str


class SessionClose(BaseModel):
    ended_at: datetime
    max_scroll_pct: float = Field(0, ge=0, le=100)


class Comment(Row):
    id: str
    book_id: str
    chapter_slug: str
    user_id: str
    anchor_text: str
    anchor_paragraph: str = ""
    content: str
    parent_id: Optional[str] = None
    is_resolved: bool = False
    created_at: datetime
    author_name: str = ""

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value):
        return _as_utc(value)

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


class CommentCreate(BaseModel):
    book_id: str
    chapter_slug: str
    anchor_text: str = Field(..., min_length=1)
    anchor_paragraph: str = ""
    content: str = Field(..., min_length=1)
    parent_id: Optional[str] = None


class CommentWrite(CommentCreate):
    user_id: str


class CommentResolve(BaseModel):
    is_resolved: bool


class ChapterSummary(Row):
    id: str
    slug: str
    number: int
    title: str
    status: str = "ready"


class BookOverview(BaseModel):
    """A book's chapters with the caller's progress and comment counts, keyed by chapter slug."""
    book_id: str
    slug: str
    title: str
    chapters: List[ChapterSummary] = []
    progress: Dict[str, ReadingProgress] = {}
    comment_counts: Dict[str, int] = {}
