"""Row-scoped operations over progress, sessions and comments.

Every write touches exactly one row: progress by its composite key
(book_id, chapter_slug, user_id), sessions and comments by id. The HTTP
surface and the in-process store both go through these functions.
"""
from typing import List, Optional
from datetime import datetime
import logging

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from models import schema
from models.reading import (
    BookOverview,
    ChapterSummary,
    Comment,
    CommentWrite,
    ProgressWrite,
    ReadingProgress,
    ReadingSession,
    SessionOpenWrite,
)
from utils import display_name

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class RowNotFound(LookupError):
    """The addressed row does not exist or is not visible to the caller."""


def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    try:
        return _INSERTS[name]
    except KeyError:
        raise ValueError(f"Progress upsert is not supported on {name}") from None


# -------------------- Progress --------------------

def get_progress(db: Session, book_id: str, chapter_slug: str, user_id: str) -> Optional[ReadingProgress]:
    row = db.execute(
        select(schema.ReadingProgress).where(
            schema.ReadingProgress.book_id == book_id,
            schema.ReadingProgress.chapter_slug == chapter_slug,
            schema.ReadingProgress.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    return ReadingProgress.model_validate(row) if row else None


def upsert_progress(db: Session, write: ProgressWrite) -> ReadingProgress:
    """Insert or replace the progress row for (book, chapter, user).

    Once a chapter has a completion timestamp it keeps it, even if a later
    write reports a lower percentage.
    """
    table = schema.ReadingProgress.__table__
    insert = _dialect_insert(db)
    stmt = insert(table).values(
        id=schema.new_id(),
        book_id=write.book_id,
        chapter_slug=write.chapter_slug,
        user_id=write.user_id,
        scroll_pct=write.scroll_pct,
        time_spent_seconds=write.time_spent_seconds,
        last_read_at=write.last_read_at,
        completed_at=write.completed_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.book_id, table.c.chapter_slug, table.c.user_id],
        set_={
            "scroll_pct": stmt.excluded.scroll_pct,
            "time_spent_seconds": stmt.excluded.time_spent_seconds,
            "last_read_at": stmt.excluded.last_read_at,
            "completed_at": func.coalesce(table.c.completed_at, stmt.excluded.completed_at),
        },
    )
    db.execute(stmt)
    db.commit()
    progress = get_progress(db, write.book_id, write.chapter_slug, write.user_id)
    logger.debug(f"Progress saved for {write.user_id} on {write.chapter_slug}: {write.scroll_pct}%")
    return progress


# -------------------- Sessions --------------------

def create_session(db: Session, request: SessionOpenWrite) -> ReadingSession:
    row = schema.ReadingSession(**request.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return ReadingSession.model_validate(row)


def close_session(
    db: Session,
    session_id: str,
    user_id: str,
    ended_at: datetime,
    max_scroll_pct: float,
) -> ReadingSession:
    row = db.get(schema.ReadingSession, session_id)
    if row is None or row.user_id != user_id:
        raise RowNotFound(f"Reading session {session_id} not found")
    row.ended_at = ended_at
    row.max_scroll_pct = max_scroll_pct
    db.commit()
    db.refresh(row)
    return ReadingSession.model_validate(row)


def list_sessions(db: Session, book_id: str, chapter_slug: Optional[str] = None) -> List[ReadingSession]:
    query = select(schema.ReadingSession).where(schema.ReadingSession.book_id == book_id)
    if chapter_slug is not None:
        query = query.where(schema.ReadingSession.chapter_slug == chapter_slug)
    rows = db.execute(query.order_by(schema.ReadingSession.started_at)).scalars()
    return [ReadingSession.model_validate(row) for row in rows]


# -------------------- Comments --------------------

def _to_comment(row: schema.Comment) -> Comment:
    comment = Comment.model_validate(row)
    author = row.author
    if author is not None:
        comment.author_name = author.display_name or display_name(author.email)
    else:
        comment.author_name = display_name(None)
    return comment


def get_comment(db: Session, comment_id: str) -> Comment:
    row = db.get(schema.Comment, comment_id)
    if row is None:
        raise RowNotFound(f"Comment {comment_id} not found")
    return _to_comment(row)


def create_comment(db: Session, write: CommentWrite) -> Comment:
    """Insert a comment; a reply takes its anchor from its parent."""
    values = write.model_dump()
    if write.parent_id is not None:
        parent = db.get(schema.Comment, write.parent_id)
        if parent is None or parent.book_id != write.book_id or parent.chapter_slug != write.chapter_slug:
            raise RowNotFound(f"Parent comment {write.parent_id} not found")
        if parent.parent_id is not None:
            raise ValueError("Replies cannot be replied to")
        values["anchor_text"] = parent.anchor_text
        values["anchor_paragraph"] = parent.anchor_paragraph
    row = schema.Comment(**values)
    db.add(row)
    db.commit()
    db.refresh(row)
    return _to_comment(row)


def set_comment_resolved(db: Session, comment_id: str, resolved: bool) -> Comment:
    row = db.get(schema.Comment, comment_id)
    if row is None:
        raise RowNotFound(f"Comment {comment_id} not found")
    row.is_resolved = resolved
    db.commit()
    db.refresh(row)
    return _to_comment(row)


def list_comments(
    db: Session,
    book_id: str,
    chapter_slug: Optional[str] = None,
    resolved: Optional[bool] = None,
) -> List[Comment]:
    query = select(schema.Comment).where(schema.Comment.book_id == book_id)
    if chapter_slug is not None:
        query = query.where(schema.Comment.chapter_slug == chapter_slug)
    if resolved is not None:
        query = query.where(schema.Comment.is_resolved == resolved)
    rows = db.execute(query.order_by(schema.Comment.created_at)).scalars()
    return [_to_comment(row) for row in rows]


# -------------------- Access --------------------

def get_book(db: Session, book_id: str) -> Optional[schema.Book]:
    return db.get(schema.Book, book_id)


def get_book_by_slug(db: Session, slug: str) -> Optional[schema.Book]:
    return db.execute(select(schema.Book).where(schema.Book.slug == slug)).scalar_one_or_none()


def has_book_access(db: Session, user_id: str, book_id: str) -> bool:
    access = db.execute(
        select(schema.BookAccess.id).where(
            schema.BookAccess.book_id == book_id,
            schema.BookAccess.user_id == user_id,
        )
    ).first()
    return access is not None


def is_admin(db: Session, user_id: str) -> bool:
    user = db.get(schema.User, user_id)
    return bool(user and user.is_admin)


# -------------------- Books --------------------

def get_book_overview(db: Session, book: schema.Book, user_id: str) -> BookOverview:
    """Chapters in reading order, the caller's progress on each, and comment counts."""
    chapters = db.execute(
        select(schema.Chapter).where(schema.Chapter.book_id == book.id).order_by(schema.Chapter.number)
    ).scalars()
    progress = db.execute(
        select(schema.ReadingProgress).where(
            schema.ReadingProgress.book_id == book.id,
            schema.ReadingProgress.user_id == user_id,
        )
    ).scalars()
    counts = db.execute(
        select(schema.Comment.chapter_slug, func.count(schema.Comment.id))
        .where(schema.Comment.book_id == book.id)
        .group_by(schema.Comment.chapter_slug)
    ).all()
    return BookOverview(
        book_id=book.id,
        slug=book.slug,
        title=book.title,
        chapters=[ChapterSummary.model_validate(row) for row in chapters],
        progress={row.chapter_slug: ReadingProgress.model_validate(row) for row in progress},
        comment_counts={slug: count for slug, count in counts},
    )
