from typing import Optional, Protocol
from dataclasses import dataclass
import logging
import math

logger = logging.getLogger(__name__)


class Scrollable(Protocol):
    height: int

    def document_height(self) -> float: ...

    def scroll_to(self, offset: float) -> None: ...


@dataclass(frozen=True)
class ScrollEvent:
    offset: float
    document_height: float
    viewport_height: float


def scroll_percentage(offset: float, document_height: float, viewport_height: float) -> int:
    """Whole-number percentage of the scrollable distance covered, 0-100.

    A document that fits in the viewport has nothing to scroll and reads as 0.
    """
    scrollable = document_height - viewport_height
    if scrollable <= 0:
        return 0
    pct = math.floor(offset / scrollable * 100 + 0.5)
    return max(0, min(100, pct))


def offset_for(percentage: float, document_height: float, viewport_height: float) -> float:
    scrollable = document_height - viewport_height
    if scrollable <= 0:
        return 0.0
    return scrollable * percentage / 100


class ScrollProgress:
    """Current scroll percentage plus the maximum reached during this visit."""

    def __init__(self, initial_percentage: int = 0):
        self.percentage = initial_percentage
        self.max_percentage = 0

    def update(self, event: ScrollEvent) -> int:
        self.percentage = scroll_percentage(event.offset, event.document_height, event.viewport_height)
        self.max_percentage = max(self.max_percentage, self.percentage)
        return self.percentage

    def restore(self, viewport: Scrollable, percentage: Optional[int]) -> Optional[float]:
        """Scroll back to a saved percentage once; no retry if layout is still settling."""
        if not percentage:
            return None
        document_height = viewport.document_height()
        if document_height - viewport.height <= 0:
            logger.debug("Skipping scroll restore: document fits in viewport")
            return None
        offset = offset_for(percentage, document_height, viewport.height)
        viewport.scroll_to(offset)
        return offset
