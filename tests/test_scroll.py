import pytest

from reader.scroll import ScrollEvent, ScrollProgress, offset_for, scroll_percentage


@pytest.mark.parametrize(
    "offset, document_height, viewport_height",
    [(0, 800, 800), (120, 600, 800), (0, 0, 0), (500, 799, 800)],
)
def test_percentage_is_zero_when_document_fits(offset, document_height, viewport_height) -> None:
    assert scroll_percentage(offset, document_height, viewport_height) == 0


def test_percentage_of_scrollable_distance() -> None:
    assert scroll_percentage(1000, 4800, 800) == 25
    assert scroll_percentage(4000, 4800, 800) == 100


def test_halves_round_up() -> None:
    assert scroll_percentage(25, 400, 200) == 13


def test_overscroll_is_clamped() -> None:
    assert scroll_percentage(-40, 4800, 800) == 0
    assert scroll_percentage(4200, 4800, 800) == 100


def test_progress_keeps_session_maximum() -> None:
    progress = ScrollProgress(initial_percentage=40)
    assert progress.max_percentage == 0
    progress.update(ScrollEvent(2000, 4800, 800))
    progress.update(ScrollEvent(800, 4800, 800))
    assert progress.percentage == 20
    assert progress.max_percentage == 50


def test_restore_scrolls_once_to_saved_offset(viewport) -> None:
    progress = ScrollProgress(initial_percentage=50)
    offset = progress.restore(viewport, 50)
    assert offset == offset_for(50, viewport.doc_height, viewport.height) == 2000
    assert viewport.scrolled_to == [2000]


def test_restore_skips_without_prior_progress_or_scroll_room(viewport) -> None:
    progress = ScrollProgress()
    assert progress.restore(viewport, None) is None
    viewport.doc_height = 700
    assert progress.restore(viewport, 80) is None
    assert viewport.scrolled_to == []
