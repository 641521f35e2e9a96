import asyncio

from reader.persister import ProgressPersister, ProgressSnapshot
from reader.store import ChapterKey

from conftest import RecordingStore


def _persister(store, library, clock, **kwargs) -> ProgressPersister:
    key = ChapterKey(library.book_id, "chapter-1", library.alice)
    return ProgressPersister(store, key, min_interval=5.0, clock=clock, **kwargs)


def test_scroll_writes_are_throttled_to_one_per_window(store, library, clock) -> None:
    recording = RecordingStore(store)
    persister = _persister(recording, library, clock)

    async def scenario():
        tasks = []
        for second in range(1, 12):
            clock.advance(1)
            persister.update(second * 5, second)
            task = persister.maybe_flush()
            if task is not None:
                tasks.append(task)
                await task
        return tasks

    tasks = asyncio.run(scenario())
    # Writes at t=5 and t=10 only
    assert len(tasks) == 2
    assert recording.count("upsert_progress") == 2
    saved = asyncio.run(store.get_progress(library.book_id, "chapter-1", library.alice))
    assert saved.scroll_pct == 50
    assert saved.time_spent_seconds == 10


def test_unchanged_values_are_not_rewritten(store, library, clock) -> None:
    recording = RecordingStore(store)
    persister = _persister(recording, library, clock, initial=ProgressSnapshot(20, 100))

    async def scenario():
        clock.advance(6)
        first = persister.maybe_flush()
        await first
        clock.advance(6)
        return persister.maybe_flush()

    assert asyncio.run(scenario()) is None
    assert recording.count("upsert_progress") == 1


def test_flush_ignores_window_and_sets_completion(store, library, clock) -> None:
    persister = _persister(store, library, clock)
    persister.update(95, 42)
    saved = asyncio.run(persister.flush())
    assert saved.scroll_pct == 95
    assert saved.time_spent_seconds == 42
    assert saved.completed_at is not None
    assert persister.writes == 1


def test_write_below_threshold_has_no_completion(library, clock, store) -> None:
    persister = _persister(store, library, clock)
    write = persister.build_write(ProgressSnapshot(89, 0))
    assert write.completed_at is None
    assert persister.build_write(ProgressSnapshot(90, 0)).completed_at is not None


def test_failed_write_is_swallowed(store, library, clock) -> None:
    offline = RecordingStore(store, fail={"upsert_progress"})
    persister = _persister(offline, library, clock)
    persister.update(60, 5)
    assert asyncio.run(persister.flush()) is None
    assert persister.writes == 0
    assert offline.count("upsert_progress") == 1
