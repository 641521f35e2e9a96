"""Anchored, threaded comments on rendered chapter text.

A reader selects text inside the content region, a composer opens bound to
that text, and submitting creates a top-level comment anchored to it.
Replies hang off a top-level comment, inherit its anchor, and cannot be
replied to themselves.
"""
from typing import Callable, Iterable, List, Optional
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
import asyncio
import logging

from bs4 import BeautifulSoup, Tag
from bs4.element import PageElement

from models.reading import Comment, CommentWrite

from .errors import CommentError, CommentSubmitError, InvalidReplyTarget, ResolveToggleError
from .store import ChapterKey, DataStore

logger = logging.getLogger(__name__)

CONTENT_CLASS = "book-content"
SIDEBAR_CLASS = "comments-sidebar"

BLOCK_TAGS = ["p", "li", "blockquote", "h1", "h2", "h3", "h4", "h5", "h6", "pre", "figcaption", "dd", "dt", "td"]


@dataclass
class RenderedPage:
    soup: BeautifulSoup
    region: Tag
    sidebar: Tag


def render_page(html: str) -> RenderedPage:
    """Place trusted chapter markup in the content region, next to an empty sidebar."""
    soup = BeautifulSoup(
        f'<div class="{CONTENT_CLASS}">{html}</div><aside class="{SIDEBAR_CLASS}"></aside>',
        "html.parser",
    )
    return RenderedPage(
        soup=soup,
        region=soup.find("div", class_=CONTENT_CLASS),
        sidebar=soup.find("aside", class_=SIDEBAR_CLASS),
    )


@dataclass(frozen=True)
class Selection:
    """Selected text and the closest node containing the whole selection."""
    text: str
    anchor: Optional[PageElement] = None


def _normalize(text: str) -> str:
    return " ".join(text.split())


def is_within(node: Optional[PageElement], region: Tag) -> bool:
    if node is None:
        return False
    if node is region:
        return True
    return any(parent is region for parent in node.parents)


def enclosing_block(node: PageElement, region: Tag) -> Optional[Tag]:
    """Innermost block-level element around ``node`` inside ``region``."""
    candidates = [node, *node.parents]
    for candidate in candidates:
        if candidate is region:
            return None
        if isinstance(candidate, Tag) and candidate.name in BLOCK_TAGS:
            return candidate
    return None


def paragraph_id(block: Tag, region: Tag) -> str:
    """The block's own id, or its tag and position among the region's blocks."""
    if block.get("id"):
        return str(block["id"])
    for index, candidate in enumerate(region.find_all(BLOCK_TAGS)):
        if candidate is block:
            return f"{block.name}-{index}"
    return ""


def locate_anchor(region: Tag, anchor_text: str, anchor_paragraph: str = "") -> Optional[Tag]:
    """Find the block a comment is attached to.

    The recorded paragraph wins when it still contains the anchor text;
    otherwise the innermost block containing the text is used.
    """
    needle = _normalize(anchor_text)
    if not needle:
        return None
    blocks = region.find_all(BLOCK_TAGS)
    if anchor_paragraph:
        for index, block in enumerate(blocks):
            if anchor_paragraph in (block.get("id"), f"{block.name}-{index}"):
                if needle in _normalize(block.get_text()):
                    return block
                break
    matches = [block for block in blocks if needle in _normalize(block.get_text())]
    if not matches:
        return None
    deepest = matches[0]
    for candidate in matches[1:]:
        if any(parent is deepest for parent in candidate.parents):
            deepest = candidate
    return deepest


@dataclass
class Thread:
    root: Comment
    replies: List[Comment] = field(default_factory=list)


def build_threads(comments: Iterable[Comment], show_resolved: bool = False) -> List[Thread]:
    """Group comments into one-level threads in creation order.

    Resolved roots are hidden unless ``show_resolved``; a shown root always
    carries all of its replies.
    """
    ordered = sorted(comments, key=lambda c: c.created_at)
    replies = defaultdict(list)
    for comment in ordered:
        if comment.parent_id is not None:
            replies[comment.parent_id].append(comment)
    return [
        Thread(root=comment, replies=replies.get(comment.id, []))
        for comment in ordered
        if comment.parent_id is None and (show_resolved or not comment.is_resolved)
    ]


class SelectionPhase(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    STABLE = "stable"


@dataclass
class Composer:
    visible: bool = False
    anchor_text: str = ""
    anchor_paragraph: str = ""
    reply_to: Optional[Comment] = None


class CommentEngine:
    """Selection capture, comment composer and the local comment cache for one chapter.

    The cache only changes after the store confirms a write.
    """

    def __init__(
        self,
        store: DataStore,
        key: ChapterKey,
        region: Tag,
        read_selection: Callable[[], Optional[Selection]],
        initial_comments: Iterable[Comment] = (),
        settle_delay: float = 0.2,
    ):
        self.store = store
        self.key = key
        self.region = region
        self.read_selection = read_selection
        self.settle_delay = settle_delay
        self.comments: List[Comment] = list(initial_comments)
        self.phase = SelectionPhase.IDLE
        self.composer = Composer()
        self.show_resolved = False
        self.error: Optional[str] = None
        self._settle_task: Optional[asyncio.Task] = None

    # -------------------- Selection --------------------

    def pointer_down(self) -> None:
        self._cancel_settle()
        self.phase = SelectionPhase.SELECTING

    def pointer_up(self) -> asyncio.Task:
        """Let the selection settle before reading it."""
        self._cancel_settle()
        self._settle_task = asyncio.get_running_loop().create_task(self._settle())
        return self._settle_task

    async def _settle(self) -> bool:
        await asyncio.sleep(self.settle_delay)
        return self.capture()

    def capture(self, selection: Optional[Selection] = None) -> bool:
        """Open the composer for a non-empty selection inside the content region."""
        if selection is None:
            selection = self.read_selection()
        text = selection.text.strip() if selection else ""
        if not text or not is_within(selection.anchor, self.region):
            self.phase = SelectionPhase.IDLE
            return False
        block = enclosing_block(selection.anchor, self.region)
        self.phase = SelectionPhase.STABLE
        self.composer = Composer(
            visible=True,
            anchor_text=text,
            anchor_paragraph=paragraph_id(block, self.region) if block is not None else "",
        )
        logger.debug(f"Composer opened on {len(text)} selected characters")
        return True

    def _cancel_settle(self) -> None:
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None

    # -------------------- Composer --------------------

    def start_reply(self, parent: Comment) -> Composer:
        root = self.find(parent.id) or parent
        if root.parent_id is not None:
            raise InvalidReplyTarget("Replies cannot be replied to")
        self._cancel_settle()
        self.phase = SelectionPhase.IDLE
        self.composer = Composer(
            visible=True,
            anchor_text=root.anchor_text,
            anchor_paragraph=root.anchor_paragraph,
            reply_to=root,
        )
        return self.composer

    def cancel(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._cancel_settle()
        self.phase = SelectionPhase.IDLE
        self.composer = Composer()

    async def submit(self, body: str) -> Comment:
        composer = self.composer
        content = body.strip()
        if not composer.visible or not (composer.anchor_text or composer.reply_to):
            self.error = "Select some text or choose a comment to reply to"
            raise CommentSubmitError(self.error)
        if not content:
            self.error = "Comment cannot be empty"
            raise CommentSubmitError(self.error)

        parent = composer.reply_to
        write = CommentWrite(
            book_id=self.key.book_id,
            chapter_slug=self.key.chapter_slug,
            user_id=self.key.user_id,
            anchor_text=parent.anchor_text if parent else composer.anchor_text,
            anchor_paragraph=parent.anchor_paragraph if parent else composer.anchor_paragraph,
            content=content,
            parent_id=parent.id if parent else None,
        )
        try:
            created = await self.store.insert_comment(write)
        except Exception as exc:
            self.error = "Failed to save comment"
            logger.error(f"Failed to save comment on {self.key.chapter_slug}: {exc}")
            raise CommentSubmitError(self.error) from exc
        finally:
            self._reset()

        self.error = None
        self.comments.append(created)
        return created

    # -------------------- Cache --------------------

    def find(self, comment_id: str) -> Optional[Comment]:
        return next((c for c in self.comments if c.id == comment_id), None)

    async def toggle_resolved(self, comment_id: str) -> Comment:
        current = self.find(comment_id)
        if current is None:
            raise CommentError(f"Unknown comment {comment_id}")
        try:
            updated = await self.store.set_comment_resolved(comment_id, not current.is_resolved)
        except Exception as exc:
            self.error = "Failed to update comment"
            logger.error(f"Failed to toggle resolution of comment {comment_id}: {exc}")
            raise ResolveToggleError(self.error) from exc
        self.error = None
        self.comments = [updated if c.id == comment_id else c for c in self.comments]
        return updated

    async def refresh(self) -> List[Comment]:
        self.comments = await self.store.list_comments(self.key.book_id, self.key.chapter_slug)
        return self.comments

    def threads(self, show_resolved: Optional[bool] = None) -> List[Thread]:
        if show_resolved is None:
            show_resolved = self.show_resolved
        return build_threads(self.comments, show_resolved)

    @property
    def unresolved_count(self) -> int:
        return sum(1 for c in self.comments if c.parent_id is None and not c.is_resolved)

    def close(self) -> None:
        self._cancel_settle()
