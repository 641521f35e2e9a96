import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models.reading import Comment
from reader.comments import (
    CommentEngine,
    Selection,
    SelectionPhase,
    build_threads,
    locate_anchor,
    render_page,
)
from reader.errors import CommentError, CommentSubmitError, InvalidReplyTarget, ResolveToggleError
from reader.store import ChapterKey

from conftest import CHAPTER_HTML, RecordingStore

T0 = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def _comment(id: str, minutes: int, parent_id: str = None, resolved: bool = False, anchor: str = "fox") -> Comment:
    return Comment(
        id=id,
        book_id="book",
        chapter_slug="chapter-1",
        user_id="someone",
        anchor_text=anchor,
        content=f"comment {id}",
        parent_id=parent_id,
        is_resolved=resolved,
        created_at=T0 + timedelta(minutes=minutes),
    )


@pytest.fixture
def page():
    return render_page(CHAPTER_HTML)


def _engine(store, library, page, viewport, user=None) -> CommentEngine:
    key = ChapterKey(library.book_id, "chapter-1", user or library.alice)
    return CommentEngine(store, key, page.region, viewport.get_selection, settle_delay=0)


def test_selection_inside_content_opens_composer(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    fox = page.region.find(id="fox")
    assert engine.capture(Selection("  the quick fox ", fox.string)) is True
    assert engine.phase is SelectionPhase.STABLE
    assert engine.composer.visible
    assert engine.composer.anchor_text == "the quick fox"
    assert engine.composer.anchor_paragraph == "fox"


def test_anchor_paragraph_falls_back_to_position(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    first = page.region.find("p")
    engine.capture(Selection("bright cold day", first))
    assert engine.composer.anchor_paragraph == "p-1"


def test_selection_in_sidebar_is_ignored(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    assert engine.capture(Selection("the quick fox", page.sidebar)) is False
    assert engine.phase is SelectionPhase.IDLE
    assert not engine.composer.visible


def test_blank_selection_is_ignored(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    assert engine.capture(Selection("   \n", page.region.find("p"))) is False
    assert engine.capture(None) is False
    assert not engine.composer.visible


def test_pointer_up_reads_selection_after_settling(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    viewport.selection = Selection("lazy dog", page.region.find(id="fox"))

    async def scenario():
        engine.pointer_down()
        assert engine.phase is SelectionPhase.SELECTING
        return await engine.pointer_up()

    assert asyncio.run(scenario()) is True
    assert engine.composer.anchor_text == "lazy dog"


def test_new_pointer_down_cancels_pending_capture(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    engine.settle_delay = 10
    viewport.selection = Selection("lazy dog", page.region.find(id="fox"))

    async def scenario():
        task = engine.pointer_up()
        await asyncio.sleep(0)
        engine.pointer_down()
        await asyncio.gather(task, return_exceptions=True)
        return task.cancelled()

    assert asyncio.run(scenario()) is True
    assert not engine.composer.visible


def test_submit_top_level_comment(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    engine.capture(Selection("the quick fox", page.region.find(id="fox")))
    created = asyncio.run(engine.submit("  typo? "))
    assert created.anchor_text == "the quick fox"
    assert created.content == "typo?"
    assert created.parent_id is None
    assert created.is_resolved is False
    assert created.user_id == library.alice
    assert engine.comments == [created]
    assert engine.phase is SelectionPhase.IDLE
    assert not engine.composer.visible


def test_reply_inherits_anchor_from_parent(store, library, page, viewport) -> None:
    alice = _engine(store, library, page, viewport)
    alice.capture(Selection("the quick fox", page.region.find(id="fox")))
    parent = asyncio.run(alice.submit("typo?"))

    bob = _engine(store, library, page, viewport, user=library.bob)
    bob.comments = [parent]
    bob.start_reply(parent)
    reply = asyncio.run(bob.submit("agreed"))
    assert reply.parent_id == parent.id
    assert reply.anchor_text == "the quick fox"
    assert reply.anchor_paragraph == parent.anchor_paragraph
    assert reply.user_id == library.bob
    assert [t.replies for t in bob.threads()] == [[reply]]


def test_replies_cannot_be_replied_to(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    engine.comments = [_comment("root", 0), _comment("reply", 1, parent_id="root")]
    with pytest.raises(InvalidReplyTarget):
        engine.start_reply(engine.find("reply"))


def test_submit_requires_body_and_target(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    with pytest.raises(CommentSubmitError):
        asyncio.run(engine.submit("no selection"))
    engine.capture(Selection("the quick fox", page.region.find(id="fox")))
    with pytest.raises(CommentSubmitError):
        asyncio.run(engine.submit("   "))
    assert engine.composer.visible
    assert engine.error == "Comment cannot be empty"


def test_failed_submit_surfaces_error_and_leaves_cache(store, library, page, viewport) -> None:
    offline = RecordingStore(store, fail={"insert_comment"})
    engine = _engine(offline, library, page, viewport)
    engine.capture(Selection("the quick fox", page.region.find(id="fox")))
    with pytest.raises(CommentSubmitError):
        asyncio.run(engine.submit("typo?"))
    assert engine.error == "Failed to save comment"
    assert engine.comments == []
    assert engine.phase is SelectionPhase.IDLE
    assert not engine.composer.visible


def test_cancel_discards_selection(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    engine.capture(Selection("the quick fox", page.region.find(id="fox")))
    engine.cancel()
    assert engine.composer.anchor_text == ""
    assert engine.phase is SelectionPhase.IDLE


def test_toggle_resolved_twice_restores_state(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    engine.capture(Selection("the quick fox", page.region.find(id="fox")))
    created = asyncio.run(engine.submit("typo?"))

    resolved = asyncio.run(engine.toggle_resolved(created.id))
    assert resolved.is_resolved is True
    assert engine.threads() == []
    assert engine.unresolved_count == 0

    restored = asyncio.run(engine.toggle_resolved(created.id))
    assert restored.is_resolved is False
    assert engine.find(created.id).is_resolved is False


def test_failed_toggle_keeps_local_state(store, library, page, viewport) -> None:
    engine = _engine(store, library, page, viewport)
    engine.capture(Selection("the quick fox", page.region.find(id="fox")))
    created = asyncio.run(engine.submit("typo?"))

    engine.store = RecordingStore(store, fail={"set_comment_resolved"})
    with pytest.raises(ResolveToggleError):
        asyncio.run(engine.toggle_resolved(created.id))
    assert engine.find(created.id).is_resolved is False
    assert engine.error == "Failed to update comment"

    with pytest.raises(CommentError):
        asyncio.run(engine.toggle_resolved("missing"))


def test_threads_hide_resolved_roots_but_keep_replies() -> None:
    comments = [
        _comment("late-root", 30),
        _comment("reply-b", 20, parent_id="open-root"),
        _comment("open-root", 0),
        _comment("done-root", 5, resolved=True),
        _comment("reply-a", 10, parent_id="open-root", resolved=True),
        _comment("done-reply", 6, parent_id="done-root"),
    ]
    threads = build_threads(comments)
    assert [t.root.id for t in threads] == ["open-root", "late-root"]
    assert [r.id for r in threads[0].replies] == ["reply-a", "reply-b"]

    everything = build_threads(comments, show_resolved=True)
    assert [t.root.id for t in everything] == ["open-root", "done-root", "late-root"]
    assert [r.id for r in everything[1].replies] == ["done-reply"]


def test_locate_anchor(page) -> None:
    assert locate_anchor(page.region, "quick fox", "fox")["id"] == "fox"
    assert locate_anchor(page.region, "bright cold", "p-1").name == "p"
    # Stale paragraph id falls back to a text search
    assert locate_anchor(page.region, "quick fox", "p-1")["id"] == "fox"
    nested = locate_anchor(page.region, "nested list")
    assert nested.name == "p"
    assert nested.parent.name == "li"
    assert locate_anchor(page.region, "not in the chapter") is None
