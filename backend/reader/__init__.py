"""Client-side reading engine: progress, sessions and anchored comments."""

from .activity import ActivityState, ActivityTracker, TimeAccumulator
from .api_store import ApiStore
from .comments import CommentEngine, Selection, Thread, build_threads, locate_anchor, render_page
from .content import ContentLoader, DirectorySource, HttpSource, Manifest, parse_manifest
from .errors import (
    CommentError,
    CommentSubmitError,
    ContentLoadFailed,
    ContentNotFound,
    ContentUnavailable,
    InvalidReplyTarget,
    PersistenceError,
    ReaderError,
    ResolveToggleError,
)
from .persister import ProgressPersister, ProgressSnapshot
from .scroll import ScrollEvent, ScrollProgress, scroll_percentage
from .session import ClientInfo, SessionLifecycle
from .store import ChapterKey, DataStore, SqlStore
from .view import ChapterContext, ChapterView, ReaderTimings, ViewStatus, Viewport

__all__ = [
    "ActivityState",
    "ActivityTracker",
    "ApiStore",
    "ChapterContext",
    "ChapterKey",
    "ChapterView",
    "ClientInfo",
    "CommentEngine",
    "CommentError",
    "CommentSubmitError",
    "ContentLoadFailed",
    "ContentLoader",
    "ContentNotFound",
    "ContentUnavailable",
    "DataStore",
    "DirectorySource",
    "HttpSource",
    "InvalidReplyTarget",
    "Manifest",
    "PersistenceError",
    "ProgressPersister",
    "ProgressSnapshot",
    "ReaderError",
    "ReaderTimings",
    "ResolveToggleError",
    "ScrollEvent",
    "ScrollProgress",
    "Selection",
    "SessionLifecycle",
    "SqlStore",
    "Thread",
    "TimeAccumulator",
    "ViewStatus",
    "Viewport",
    "build_threads",
    "locate_anchor",
    "parse_manifest",
    "render_page",
    "scroll_percentage",
]
