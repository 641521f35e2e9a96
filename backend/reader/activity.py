from typing import Callable
from enum import Enum
import logging
import time

logger = logging.getLogger(__name__)

# Interactions that count as the reader being present
ACTIVITY_EVENTS = frozenset({"scroll", "pointermove", "keydown", "click"})


class ActivityState(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"


class ActivityTracker:
    """Two-state ACTIVE/IDLE machine driven by interaction events and a periodic poll.

    Any tracked event makes the reader ACTIVE immediately; only ``poll`` can
    move to IDLE, once ``idle_timeout`` seconds have passed since the last event.
    """

    def __init__(self, idle_timeout: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.last_activity = clock()
        self.state = ActivityState.ACTIVE

    @property
    def active(self) -> bool:
        return self.state is ActivityState.ACTIVE

    def record(self, event_type: str) -> bool:
        if event_type not in ACTIVITY_EVENTS:
            return False
        self.last_activity = self.clock()
        if self.state is ActivityState.IDLE:
            logger.debug(f"Reader active again after {event_type}")
        self.state = ActivityState.ACTIVE
        return True

    def idle_for(self) -> float:
        return self.clock() - self.last_activity

    def poll(self) -> ActivityState:
        if self.state is ActivityState.ACTIVE and self.idle_for() >= self.idle_timeout:
            self.state = ActivityState.IDLE
            logger.debug(f"Reader idle after {self.idle_timeout:.0f}s without interaction")
        return self.state


class TimeAccumulator:
    """Counts active seconds, resuming from the previously saved total."""

    def __init__(self, tracker: ActivityTracker, initial_seconds: int = 0):
        self.tracker = tracker
        self.seconds = max(0, int(initial_seconds))

    def tick(self) -> int:
        if self.tracker.active:
            self.seconds += 1
        return self.seconds
