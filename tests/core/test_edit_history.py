"""Tests for the linear undo/redo history."""

import pytest

from stillbytes.core.history import EditHistory
from stillbytes.core.operations import ExposureParameters, OperationSet


def _exposure(value: float) -> OperationSet:
    return OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(value))


def test_initial_state():
    history = EditHistory()

    assert len(history) == 1
    assert history.cursor == 0
    assert history.current().is_empty
    assert not history.can_undo
    assert not history.can_redo
    assert not history.has_edits


def test_undo_redo_walk_the_snapshots():
    history = EditHistory()
    a, b = _exposure(0.5), _exposure(1.0)
    history.commit(a)
    history.commit(b)

    assert history.undo() is a
    assert history.undo().is_empty
    assert history.undo().is_empty  # boundary no-op
    assert history.redo() is a
    assert history.redo() is b
    assert history.redo() is b
    assert history.cursor == 2


def test_commit_after_undo_discards_redo_branch():
    history = EditHistory()
    a, b, c = _exposure(0.5), _exposure(1.0), _exposure(2.0)
    history.commit(a)
    history.commit(b)
    history.undo()
    history.commit(c)

    assert history.snapshots == (OperationSet.EMPTY, a, c)
    assert not history.can_redo


def test_restore_to_commits_a_copy_of_the_snapshot():
    history = EditHistory()
    a, b = _exposure(0.5), _exposure(1.0)
    history.commit(a)
    history.commit(b)

    restored = history.restore_to(1)

    assert restored is a
    assert history.snapshots == (OperationSet.EMPTY, a, a)
    assert history.cursor == 2
    assert history.undo() is a
    assert history.undo().is_empty


def test_restore_to_rejects_out_of_range_index():
    history = EditHistory()
    with pytest.raises(IndexError):
        history.restore_to(3)


def test_reset_commits_empty_set_and_is_undoable():
    initial = _exposure(1.0)
    history = EditHistory(initial)

    history.reset()

    assert not history.has_edits
    assert history.undo() is initial


def test_history_drops_oldest_snapshots_beyond_capacity():
    history = EditHistory(max_length=3)
    sets = [_exposure(v / 10) for v in range(1, 6)]
    for ops in sets:
        history.commit(ops)

    assert history.snapshots == tuple(sets[-3:])
    assert history.cursor == 2
    assert not history.can_redo


def test_commit_after_restore_leaves_old_future_unreachable():
    history = EditHistory()
    a, b, c, d = _exposure(0.5), _exposure(1.0), _exposure(1.5), _exposure(2.0)
    for ops in (a, b, c):
        history.commit(ops)

    history.restore_to(1)
    history.commit(d)

    assert history.snapshots == (OperationSet.EMPTY, a, a, d)
    assert not history.can_redo
    assert history.redo() is d
    seen = [history.undo() for _ in range(len(history))]
    assert b not in seen and c not in seen
