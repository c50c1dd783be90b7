from transition_analyzer.progress import ProgressTracker
from transition_analyzer.state import RunPhase, RunStatus


def test_second_acquire_is_refused_until_release():
    tracker = ProgressTracker()
    assert tracker.try_acquire(42) is True
    assert tracker.try_acquire(42) is False
    tracker.release(42)
    assert tracker.try_acquire(42) is True


def test_forced_acquire_takes_over():
    tracker = ProgressTracker()
    assert tracker.try_acquire(7)
    assert tracker.try_acquire(7, force_refresh=True) is True
    assert tracker.snapshot(7).state == RunStatus.IN_PROGRESS


def test_distinct_ids_do_not_block_each_other():
    tracker = ProgressTracker()
    assert tracker.try_acquire(1)
    assert tracker.try_acquire(2)


def test_release_without_terminal_state_marks_failed():
    tracker = ProgressTracker()
    tracker.try_acquire(3)
    tracker.release(3)
    snap = tracker.snapshot(3)
    assert snap.state == RunStatus.FAILED
    assert snap.phase == RunPhase.FAILED


def test_release_keeps_complete():
    tracker = ProgressTracker()
    tracker.try_acquire(4)
    tracker.update(4, state=RunStatus.COMPLETE, phase=RunPhase.COMPLETE)
    tracker.release(4)
    assert tracker.snapshot(4).state == RunStatus.COMPLETE
    assert tracker.try_acquire(4)


def test_update_replaces_top_level_keys():
    tracker = ProgressTracker()
    tracker.try_acquire(5)
    tracker.update(5, data={"errors": ["a"], "research": {"stories": [1]}})
    tracker.update(5, data={"research": {"stories": []}}, phase=RunPhase.RESEARCHING)
    snap = tracker.snapshot(5)
    assert snap.data == {"errors": ["a"], "research": {"stories": []}}
    assert snap.phase == RunPhase.RESEARCHING


def test_snapshot_is_a_copy():
    tracker = ProgressTracker()
    tracker.try_acquire(6)
    tracker.update(6, data={"errors": ["first"]})
    snap = tracker.snapshot(6)
    snap.data["errors"].append("mutated")
    snap.state = RunStatus.COMPLETE
    fresh = tracker.snapshot(6)
    assert fresh.data["errors"] == ["first"]
    assert fresh.state == RunStatus.IN_PROGRESS


def test_snapshot_of_unknown_id():
    assert ProgressTracker().snapshot(99) is None


def test_superseded_run_cannot_finish_its_successor():
    tracker = ProgressTracker()
    first = tracker.admit(8)
    second = tracker.admit(8, force_refresh=True)
    assert second != first

    tracker.update(8, data={"errors": ["from first"]}, state=RunStatus.COMPLETE, token=first)
    tracker.release(8, token=first)

    snap = tracker.snapshot(8)
    assert snap.state == RunStatus.IN_PROGRESS
    assert "errors" not in snap.data
    assert tracker.try_acquire(8) is False

    tracker.update(8, state=RunStatus.COMPLETE, token=second)
    tracker.release(8, token=second)
    assert tracker.try_acquire(8) is True


def test_admit_returns_none_while_in_flight():
    tracker = ProgressTracker()
    assert tracker.admit(9) == 1
    assert tracker.admit(9) is None
