"""Unit tests for the in-memory counter store."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from gatekeeper.adapters.counter_store.base import window_start_for
from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore

NOW = 1_000_020.0
WINDOW = 60


def test_counts_increase_by_one_within_window() -> None:
    store = InMemoryCounterStore()

    counts = [
        store.increment_and_get("u1", "create_post", NOW + offset, window_seconds=WINDOW).count
        for offset in (0, 5, 10, 59)
    ]

    assert counts == [1, 2, 3, 4]


def test_snapshot_reports_aligned_window_start() -> None:
    store = InMemoryCounterStore()

    snapshot = store.increment_and_get("u1", "create_post", NOW + 17.5, window_seconds=WINDOW)

    assert snapshot.window_start == 1_000_020
    assert snapshot.window_start == window_start_for(NOW + 17.5, WINDOW)


def test_call_at_window_end_starts_fresh_record() -> None:
    store = InMemoryCounterStore()

    for _ in range(4):
        first = store.increment_and_get("u1", "create_post", NOW, window_seconds=WINDOW)
    assert first.count == 4

    rolled = store.increment_and_get(
        "u1", "create_post", first.window_start + WINDOW, window_seconds=WINDOW
    )

    assert rolled.count == 1
    assert rolled.window_start == first.window_start + WINDOW


def test_isolated_by_subject_and_action() -> None:
    store = InMemoryCounterStore()

    store.increment_and_get("u1", "create_post", NOW, window_seconds=WINDOW)
    store.increment_and_get("u1", "create_post", NOW, window_seconds=WINDOW)

    assert store.increment_and_get("u2", "create_post", NOW, window_seconds=WINDOW).count == 1
    assert store.increment_and_get("u1", "send_message", NOW, window_seconds=WINDOW).count == 1
    assert store.increment_and_get("u1", "create_post", NOW, window_seconds=WINDOW).count == 3


def test_concurrent_increments_never_lose_updates() -> None:
    store = InMemoryCounterStore()
    n = 500
    barrier = threading.Barrier(16)

    def hit(i: int) -> int:
        if i < 16:
            barrier.wait()
        return store.increment_and_get("u1", "send_message", NOW, window_seconds=WINDOW).count

    with ThreadPoolExecutor(max_workers=16) as pool:
        counts = list(pool.map(hit, range(n)))

    assert sorted(counts) == list(range(1, n + 1))
    assert store.peek("u1", "send_message", NOW, window_seconds=WINDOW).count == n


def test_concurrent_increments_on_many_keys() -> None:
    store = InMemoryCounterStore()
    subjects = [f"user-{i}" for i in range(20)]
    per_subject = 50

    def hit(subject_id: str) -> None:
        for _ in range(per_subject):
            store.increment_and_get(subject_id, "create_post", NOW, window_seconds=WINDOW)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(hit, subjects * 2))

    for subject_id in subjects:
        assert store.peek(subject_id, "create_post", NOW, window_seconds=WINDOW).count == per_subject * 2


def test_peek_does_not_increment() -> None:
    store = InMemoryCounterStore()
    store.increment_and_get("u1", "create_post", NOW, window_seconds=WINDOW)

    assert store.peek("u1", "create_post", NOW, window_seconds=WINDOW).count == 1
    assert store.peek("u1", "create_post", NOW, window_seconds=WINDOW).count == 1
    assert store.peek("u1", "create_post", NOW + WINDOW, window_seconds=WINDOW).count == 0


def test_evict_stale_drops_finished_windows_only() -> None:
    store = InMemoryCounterStore()
    store.increment_and_get("old", "create_post", NOW, window_seconds=WINDOW)
    store.increment_and_get("long", "create_reel", NOW, window_seconds=3600)

    removed = store.evict_stale(NOW + WINDOW)

    assert removed == 1
    assert len(store) == 1
    assert store.peek("long", "create_reel", NOW + WINDOW, window_seconds=3600).count == 1


def test_increment_evicts_expired_records_on_its_stripe() -> None:
    store = InMemoryCounterStore(lock_stripes=1, sweep_batch=8)
    store.increment_and_get("old", "create_post", NOW, window_seconds=WINDOW)
    later = NOW + 10 * WINDOW

    store.increment_and_get("new", "create_post", later, window_seconds=WINDOW)

    assert len(store) == 1
    assert store.peek("old", "create_post", NOW, window_seconds=WINDOW).count == 0


def test_single_increment_evicts_at_most_one_batch() -> None:
    store = InMemoryCounterStore(lock_stripes=1, sweep_batch=5)
    for i in range(1000):
        store.increment_and_get(f"user-{i}", "create_post", NOW, window_seconds=WINDOW)
    assert len(store) == 1000

    store.increment_and_get("late", "create_post", NOW + WINDOW, window_seconds=WINDOW)

    assert len(store) == 1000 + 1 - 5
    assert store.evict_stale(NOW + WINDOW) == 1000 - 5
    assert len(store) == 1


def test_locks_and_records_stay_bounded_across_many_subjects() -> None:
    store = InMemoryCounterStore(lock_stripes=8, sweep_batch=2)

    for i in range(10_000):
        store.increment_and_get(f"user-{i}", "create_post", NOW + i * WINDOW, window_seconds=WINDOW)

    assert store.lock_count == 8
    assert len(store) <= 8


def test_expired_entry_for_replaced_window_keeps_live_record() -> None:
    store = InMemoryCounterStore(lock_stripes=1, sweep_batch=1)
    store.increment_and_get("a", "create_post", NOW, window_seconds=WINDOW)
    store.increment_and_get("u1", "create_post", NOW, window_seconds=WINDOW)
    # Evicts only "a"; u1's old-window entry stays queued behind the new record.
    store.increment_and_get("u1", "create_post", NOW + WINDOW, window_seconds=WINDOW)

    assert store.evict_stale(NOW + WINDOW) == 0
    assert store.peek("u1", "create_post", NOW + WINDOW, window_seconds=WINDOW).count == 1
    assert len(store) == 1


@pytest.mark.parametrize(
    "args",
    [
        ("", "create_post", WINDOW),
        ("u1", "", WINDOW),
        ("u1", "create_post", 0),
    ],
)
def test_invalid_increment_args(args: tuple) -> None:
    subject_id, action_type, window = args
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        store.increment_and_get(subject_id, action_type, NOW, window_seconds=window)


def test_peek_rejects_invalid_window() -> None:
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        store.peek("u1", "create_post", NOW, window_seconds=0)


@pytest.mark.parametrize("kwargs", [{"lock_stripes": 0}, {"sweep_batch": 0}])
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryCounterStore(**kwargs)
