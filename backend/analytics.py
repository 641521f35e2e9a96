from typing import Dict, Any, List, Iterable
from dataclasses import dataclass, asdict
from sqlalchemy import select
from sqlalchemy.orm import Session

import crud
from models import schema
from models.reading import Comment, ReadingProgress, ReadingSession
from utils import format_reading_time, minutes_between


@dataclass
class ChapterStats:
    slug: str
    title: str
    number: int
    total_readers: int = 0
    completed_readers: int = 0
    avg_scroll_pct: int = 0
    total_time_minutes: int = 0
    session_count: int = 0
    avg_session_minutes: int = 0
    comment_count: int = 0
    unresolved_comments: int = 0

    @property
    def completion_rate(self) -> float:
        if self.total_readers == 0:
            return 0.0
        return self.completed_readers / self.total_readers * 100


def chapter_stats(
    chapter: schema.Chapter,
    progress: List[ReadingProgress],
    sessions: List[ReadingSession],
    comments: List[Comment],
) -> ChapterStats:
    """Engagement numbers for one chapter"""
    readers = len(progress)
    stats = ChapterStats(slug=chapter.slug, title=chapter.title, number=chapter.number)
    stats.total_readers = readers
    stats.completed_readers = sum(1 for p in progress if p.completed_at)
    if readers:
        stats.avg_scroll_pct = round(sum(p.scroll_pct for p in progress) / readers)
    stats.total_time_minutes = round(sum(p.time_spent_seconds for p in progress) / 60)

    stats.session_count = len(sessions)
    if sessions:
        # Sessions that never closed count towards the average with zero length
        total_minutes = sum(minutes_between(s.started_at, s.ended_at) for s in sessions)
        stats.avg_session_minutes = round(total_minutes / len(sessions))

    stats.comment_count = len(comments)
    stats.unresolved_comments = sum(1 for c in comments if not c.is_resolved)
    return stats


def _by_chapter(rows: Iterable, slug: str) -> list:
    return [row for row in rows if row.chapter_slug == slug]


def build_analytics(
    chapters: List[schema.Chapter],
    progress: List[ReadingProgress],
    sessions: List[ReadingSession],
    comments: List[Comment],
) -> Dict[str, Any]:
    per_chapter = [
        chapter_stats(
            chapter,
            _by_chapter(progress, chapter.slug),
            _by_chapter(sessions, chapter.slug),
            _by_chapter(comments, chapter.slug),
        )
        for chapter in chapters
    ]
    total_reading_seconds = sum(p.time_spent_seconds for p in progress)
    avg_completion_rate = 0
    if per_chapter:
        avg_completion_rate = round(sum(c.completion_rate for c in per_chapter) / len(per_chapter))

    return {
        "total_sessions": len(sessions),
        "total_reading_seconds": total_reading_seconds,
        "total_reading_time": format_reading_time(total_reading_seconds),
        "avg_completion_rate": avg_completion_rate,
        "chapters": [asdict(c) for c in per_chapter],
    }


def collect_analytics(db: Session, book_id: str) -> Dict[str, Any]:
    """Load every row for a book and aggregate it"""
    chapters = db.execute(
        select(schema.Chapter).where(schema.Chapter.book_id == book_id).order_by(schema.Chapter.number)
    ).scalars().all()
    progress = [
        ReadingProgress.model_validate(row)
        for row in db.execute(
            select(schema.ReadingProgress).where(schema.ReadingProgress.book_id == book_id)
        ).scalars()
    ]
    sessions = crud.list_sessions(db, book_id)
    comments = crud.list_comments(db, book_id)
    return build_analytics(list(chapters), progress, sessions, comments)
