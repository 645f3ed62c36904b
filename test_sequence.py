import pytest

from truststore_tester.errors import PersistenceError
from truststore_tester.sequence import (
    INITIAL_SEQUENCE_NUMBER,
    FileSequenceNumberStore,
    InMemorySequenceNumberStore,
    SequenceNumberTracker,
)


def _tracker(store, logs=None):
    return SequenceNumberTracker(store, (logs if logs is not None else []).append).initialize_from_persisted()


def test_fresh_store_starts_at_initial_number():
    store = InMemorySequenceNumberStore()
    tracker = _tracker(store)
    state = tracker.snapshot()
    assert state.last_offered == INITIAL_SEQUENCE_NUMBER
    assert state.expected_in_sut == INITIAL_SEQUENCE_NUMBER
    assert store.read() == INITIAL_SEQUENCE_NUMBER


def test_allocation_is_strictly_increasing_and_persisted():
    store = InMemorySequenceNumberStore(41)
    tracker = _tracker(store)
    numbers = [tracker.next_sequence_number() for _ in range(5)]
    assert numbers == [42, 43, 44, 45, 46]
    assert store.read() == 46
    assert tracker.peek_next_sequence_number() == 47


def test_restart_continues_after_persisted_number(tmp_path):
    path = str(tmp_path / "out" / "tsl_seq_nr.txt")
    first = _tracker(FileSequenceNumberStore(path))
    first.next_sequence_number()
    last = first.next_sequence_number()

    second = _tracker(FileSequenceNumberStore(path))
    assert second.snapshot().last_offered == last
    assert second.next_sequence_number() == last + 1


def test_two_trackers_on_one_store_never_hand_out_the_same_number(tmp_path):
    path = str(tmp_path / "seq.txt")
    a = _tracker(FileSequenceNumberStore(path))
    b = _tracker(FileSequenceNumberStore(path))
    seen = [a.next_sequence_number(), b.next_sequence_number(), a.next_sequence_number(), b.next_sequence_number()]
    assert len(set(seen)) == len(seen)
    assert seen == sorted(seen)


def test_corrupt_file_raises_persistence_error(tmp_path):
    path = tmp_path / "seq.txt"
    path.write_text("not a number", encoding="utf-8")
    with pytest.raises(PersistenceError):
        _tracker(FileSequenceNumberStore(str(path)))


def test_unwritable_location_raises_persistence_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = FileSequenceNumberStore(str(blocker / "seq.txt"))
    with pytest.raises(PersistenceError):
        store.write(5)


def test_reoffer_requires_same_number_and_content():
    tracker = _tracker(InMemorySequenceNumberStore(10))
    tracker.record_offered(11, "abc")
    assert tracker.is_reoffer(11, "abc")
    assert not tracker.is_reoffer(11, "def")
    assert not tracker.is_reoffer(12, "abc")


def test_offering_an_older_number_keeps_last_offered():
    logs = []
    store = InMemorySequenceNumberStore(10)
    tracker = _tracker(store, logs)
    tracker.record_offered(8, "old")
    assert tracker.snapshot().last_offered == 10
    assert store.read() == 10
    assert any(line.startswith("[WARN]") for line in logs)


def test_expected_and_current_are_tracked_separately():
    tracker = _tracker(InMemorySequenceNumberStore(3))
    tracker.record_offered(4, "x")
    tracker.record_expected(4)
    state = tracker.snapshot()
    assert (state.last_offered, state.expected_in_sut, state.current_in_sut) == (4, 4, 3)

    tracker.record_observed_current(4)
    assert tracker.snapshot().current_in_sut == 4
    assert "current_in_sut=4" in str(tracker)
