"""Linear undo/redo log over immutable operation-set snapshots."""

from __future__ import annotations

from ..config import HISTORY_MAX_LENGTH
from .operations import OperationSet


class EditHistory:
    """Snapshot arena indexed by a cursor.

    Committing truncates every snapshot after the cursor before appending, so
    an abandoned redo branch is discarded rather than merged.  Undo and redo
    are silent no-ops at the boundaries.
    """

    def __init__(
        self,
        initial: OperationSet | None = None,
        *,
        max_length: int = HISTORY_MAX_LENGTH,
    ) -> None:
        if max_length < 1:
            raise ValueError("max_length must be at least 1")
        self._snapshots: list[OperationSet] = [initial if initial is not None else OperationSet.EMPTY]
        self._cursor = 0
        self._max_length = max_length

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def snapshots(self) -> tuple[OperationSet, ...]:
        """Return every retained snapshot, oldest first."""

        return tuple(self._snapshots)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._snapshots) - 1

    @property
    def has_edits(self) -> bool:
        """Return ``True`` when the current snapshot contains any operation."""

        return not self.current().is_empty

    def current(self) -> OperationSet:
        return self._snapshots[self._cursor]

    def commit(self, operations: OperationSet) -> OperationSet:
        """Append *operations* after the cursor and make it current."""

        del self._snapshots[self._cursor + 1 :]
        self._snapshots.append(operations)
        overflow = len(self._snapshots) - self._max_length
        if overflow > 0:
            del self._snapshots[:overflow]
        self._cursor = len(self._snapshots) - 1
        return operations

    def undo(self) -> OperationSet:
        if self._cursor > 0:
            self._cursor -= 1
        return self.current()

    def redo(self) -> OperationSet:
        if self._cursor < len(self._snapshots) - 1:
            self._cursor += 1
        return self.current()

    def restore_to(self, snapshot_index: int) -> OperationSet:
        """Jump to a historical snapshot by committing its contents.

        The commit happens from *snapshot_index*, so every snapshot after it
        (including ones that existed before the jump) leaves the log and can
        no longer be reached through redo.  The jump itself stays undoable.
        """

        if not 0 <= snapshot_index < len(self._snapshots):
            raise IndexError(f"snapshot index {snapshot_index} out of range")
        self._cursor = snapshot_index
        return self.commit(self._snapshots[snapshot_index])

    def reset(self) -> OperationSet:
        """Return to the original photo by committing the empty set."""

        return self.commit(OperationSet.EMPTY)


__all__ = ["EditHistory"]
