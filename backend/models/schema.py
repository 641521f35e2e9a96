from sqlalchemy import Column, String, Integer, DateTime, Float, Boolean, Text, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime, timezone
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True)
    display_name = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    book_access = relationship("BookAccess", back_populates="user")


class Book(Base):
    __tablename__ = "books"

    id = Column(String, primary_key=True, default=new_id)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    chapters = relationship("Chapter", back_populates="book", order_by="Chapter.number")
    access = relationship("BookAccess", back_populates="book")


class BookAccess(Base):
    __tablename__ = "book_access"
    __table_args__ = (UniqueConstraint("book_id", "user_id", name="uq_book_access_book_user"),)

    id = Column(String, primary_key=True, default=new_id)
    book_id = Column(String, ForeignKey("books.id"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    role = Column(String, default="reader", nullable=False)

    book = relationship("Book", back_populates="access")
    user = relationship("User", back_populates="book_access")


class Chapter(Base):
    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("book_id", "slug", name="uq_chapters_book_slug"),)

    id = Column(String, primary_key=True, default=new_id)
    book_id = Column(String, ForeignKey("books.id"), nullable=False)
    slug = Column(String, nullable=False)
    number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    status = Column(String, default="ready", nullable=False)  # ready | draft | coming_soon

    book = relationship("Book", back_populates="chapters")


class ReadingProgress(Base):
    __tablename__ = "reading_progress"
    # The upsert key: concurrent writers for one reader/chapter converge on a single row
    __table_args__ = (
        UniqueConstraint("book_id", "chapter_slug", "user_id", name="uq_reading_progress_key"),
    )

    id = Column(String, primary_key=True, default=new_id)
    book_id = Column(String, ForeignKey("books.id"), nullable=False)
    chapter_slug = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    scroll_pct = Column(Integer, default=0, nullable=False)
    time_spent_seconds = Column(Integer, default=0, nullable=False)
    last_read_at = Column(DateTime(timezone=True), default=_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class ReadingSession(Base):
    __tablename__ = "reading_sessions"
    __table_args__ = (Index("idx_reading_sessions_chapter", "book_id", "chapter_slug"),)

    id = Column(String, primary_key=True, default=new_id)
    book_id = Column(String, ForeignKey("books.id"), nullable=False)
    chapter_slug = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    started_at = Column(DateTime(timezone=True), default=_now)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    max_scroll_pct = Column(Float, default=0, nullable=False)
    viewport_width = Column(Integer, nullable=True)
    viewport_height = Column(Integer, nullable=True)
    user_agent = Column(String, nullable=True)


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (Index("idx_comments_chapter", "book_id", "chapter_slug"),)

    id = Column(String, primary_key=True, default=new_id)
    book_id = Column(String, ForeignKey("books.id"), nullable=False)
    chapter_slug = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    anchor_text = Column(Text, nullable=False)
    anchor_paragraph = Column(String, default="", nullable=False)
    content = Column(Text, nullable=False)
    parent_id = Column(String, ForeignKey("comments.id"), nullable=True)
    is_resolved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    replies = relationship("Comment", back_populates="parent")
    parent = relationship("Comment", back_populates="replies", remote_side=[id])
    author = relationship("User")
