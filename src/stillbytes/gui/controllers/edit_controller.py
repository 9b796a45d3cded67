"""Controller that binds the edit history to a render session."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Iterable, Mapping, Optional, Sequence

from PySide6.QtCore import QObject, QThreadPool, QTimer, Signal, Slot

from ...config import DEFAULT_EXPORT_QUALITY
from ...core.bitmap import Bitmap, PixelBuffer
from ...core.history import EditHistory
from ...core.operations import OperationKind, OperationParameters, OperationSet
from ...core.render_backends import RenderBackend
from ...core.render_session import RenderSession
from ..tasks.render_worker import RenderWorker

_LOGGER = logging.getLogger(__name__)


class EditController(QObject):
    """Own the edit state of the photo currently open in the editor.

    Every mutation commits a new snapshot to :class:`EditHistory` and asks for
    a render.  Requests are coalesced to the next event-loop turn, so a burst
    of slider moves produces one frame.  Realtime backends evaluate inline on
    the GUI thread; the CPU backend evaluates on a :class:`QThreadPool` and
    results that were superseded while in flight are dropped.
    """

    frameReady = Signal(object)
    """Emitted with the committed :class:`PixelBuffer`."""

    operationsChanged = Signal(object)
    """Emitted with the current :class:`OperationSet` after every mutation."""

    historyChanged = Signal()
    backendWarning = Signal(str)
    renderFailed = Signal(str)

    def __init__(
        self,
        parent: Optional[QObject] = None,
        *,
        backend_types: Sequence[type[RenderBackend]] | None = None,
        thread_pool: QThreadPool | None = None,
    ) -> None:
        super().__init__(parent)
        self._backend_types = backend_types
        self._thread_pool = thread_pool or QThreadPool.globalInstance()
        self._session: RenderSession | None = None
        self._history: EditHistory | None = None
        self._comparing = False
        self._dirty = False
        self._active_workers: list[RenderWorker] = []

        self._render_timer = QTimer(self)
        self._render_timer.setSingleShot(True)
        self._render_timer.setInterval(0)
        self._render_timer.timeout.connect(self._render_pending)

    # ------------------------------------------------------------------
    # Session lifetime
    # ------------------------------------------------------------------
    @property
    def session(self) -> RenderSession | None:
        return self._session

    @property
    def history(self) -> EditHistory | None:
        return self._history

    def is_open(self) -> bool:
        return self._session is not None

    def open_photo(self, source: Bitmap, operations: OperationSet | None = None) -> None:
        """Start editing *source* with *operations* as the initial snapshot."""

        self.close_photo()
        self._history = EditHistory(operations)
        self._comparing = False
        self._session = RenderSession(
            source,
            backend_types=self._backend_types,
            on_warning=self.backendWarning.emit,
        )
        _LOGGER.info(
            "Opened %dx%d photo on %s backend",
            source.width,
            source.height,
            self._session.backend.tier_name,
        )
        self.historyChanged.emit()
        self.operationsChanged.emit(self._history.current())
        self.schedule_render()

    def open_records(self, source: Bitmap, records: Iterable[Mapping[str, Any]]) -> None:
        """Open *source* with operations decoded from persisted records."""

        self.open_photo(source, OperationSet.from_records(records))

    def close_photo(self) -> None:
        """Dispose the render session; in-flight renders are discarded."""

        self._render_timer.stop()
        session = self._session
        self._session = None
        self._history = None
        self._dirty = False
        if session is not None:
            session.close()

    # ------------------------------------------------------------------
    # Edit state
    # ------------------------------------------------------------------
    def _require_history(self) -> EditHistory:
        if self._history is None:
            raise RuntimeError("no photo is open")
        return self._history

    def operations(self) -> OperationSet:
        return self._require_history().current()

    def records(self) -> list[dict[str, Any]]:
        """Return the current operation set in its persisted form."""

        return self.operations().to_records()

    def set_operations(self, operations: OperationSet) -> None:
        self._require_history().commit(operations)
        self._on_state_changed()

    def apply_parameters(self, kind: OperationKind | str, parameters: OperationParameters) -> None:
        """Replace (or add) the operation of *kind* with *parameters*."""

        self.set_operations(self.operations().with_parameters(kind, parameters))

    def remove_operation(self, kind: OperationKind | str) -> None:
        current = self.operations()
        updated = current.without(kind)
        if updated is not current:
            self.set_operations(updated)

    def undo(self) -> None:
        history = self._require_history()
        if history.can_undo:
            history.undo()
            self._on_state_changed()

    def redo(self) -> None:
        history = self._require_history()
        if history.can_redo:
            history.redo()
            self._on_state_changed()

    def restore_to(self, snapshot_index: int) -> None:
        self._require_history().restore_to(snapshot_index)
        self._on_state_changed()

    def reset(self) -> None:
        """Return to the unedited photo; the reset itself can be undone."""

        self._require_history().reset()
        self._on_state_changed()

    def _on_state_changed(self) -> None:
        self.historyChanged.emit()
        self.operationsChanged.emit(self.operations())
        self.schedule_render()

    # ------------------------------------------------------------------
    # Compare mode
    # ------------------------------------------------------------------
    def is_comparing(self) -> bool:
        return self._comparing

    def set_comparing(self, comparing: bool) -> None:
        """Show the unedited photo while *comparing* without touching history."""

        comparing = bool(comparing)
        if comparing == self._comparing:
            return
        self._comparing = comparing
        if self._session is not None:
            self.schedule_render()

    def _display_operations(self) -> OperationSet:
        if self._comparing:
            return OperationSet.EMPTY
        return self.operations()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def schedule_render(self) -> None:
        """Render the displayed state at the next event-loop turn."""

        if self._session is None:
            return
        self._dirty = True
        if not self._render_timer.isActive():
            self._render_timer.start()

    def flush(self) -> PixelBuffer | None:
        """Render the displayed state synchronously if a frame is outstanding."""

        session = self._session
        if session is None:
            return None
        if not self._dirty and session.has_output:
            return session.output_buffer
        self._render_timer.stop()
        token = session.request()
        buffer = session.evaluate(self._display_operations())
        self._publish(token, buffer)
        return buffer

    def _render_pending(self) -> None:
        session = self._session
        if session is None or session.closed:
            return
        token = session.request()
        operations = self._display_operations()
        if session.backend.supports_realtime:
            try:
                buffer = session.evaluate(operations)
            except Exception as exc:  # noqa: BLE001 - surfaced through renderFailed
                _LOGGER.exception("Render %d failed", token)
                self.renderFailed.emit(str(exc))
                return
            self._publish(token, buffer)
            return

        worker = RenderWorker(session, operations, token)
        worker.signals.rendered.connect(partial(self._on_worker_rendered, worker))
        worker.signals.error.connect(partial(self._on_worker_error, worker))
        worker.signals.finished.connect(partial(self._on_worker_finished, worker))
        self._active_workers.append(worker)
        self._thread_pool.start(worker)

    @Slot(object, int)
    def _on_worker_rendered(self, worker: RenderWorker, buffer: PixelBuffer, token: int) -> None:
        # Tokens restart with every session, so results must come from this one.
        if worker.session is self._session:
            self._publish(token, buffer)

    @Slot(str, int)
    def _on_worker_error(self, worker: RenderWorker, message: str, token: int) -> None:
        if worker.session is self._session and worker.session.is_current(token):
            self.renderFailed.emit(message)

    @Slot(int)
    def _on_worker_finished(self, worker: RenderWorker, token: int) -> None:
        """Drop finished workers so repeated renders do not leak references."""

        del token
        try:
            self._active_workers.remove(worker)
        except ValueError:
            pass

    def _publish(self, token: int, buffer: PixelBuffer) -> None:
        session = self._session
        if session is None or not session.commit(token, buffer):
            return
        self._dirty = False
        self.frameReady.emit(buffer)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def export(self, quality: float = DEFAULT_EXPORT_QUALITY) -> bytes:
        """Encode the frame currently shown, rendering it first if needed."""

        session = self._session
        if session is None:
            raise RuntimeError("no photo is open")
        self.flush()
        return session.export(quality)


__all__ = ["EditController"]
