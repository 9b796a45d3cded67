"""Worker that evaluates renders on a background thread."""

from __future__ import annotations

import logging

from PySide6.QtCore import QObject, QRunnable, Signal

from ...core.operations import OperationSet
from ...core.render_session import RenderSession

_LOGGER = logging.getLogger(__name__)


class RenderWorkerSignals(QObject):
    """Signals emitted by :class:`RenderWorker`."""

    rendered = Signal(object, int)
    """Emitted with the rendered :class:`PixelBuffer` and the request token."""

    error = Signal(str, int)
    """Emitted with an error message when evaluation raised."""

    finished = Signal(int)
    """Emitted last, whether the job rendered, failed or was skipped."""


class RenderWorker(QRunnable):
    """Evaluate an operation set through ``RenderSession.evaluate``.

    The worker never commits; the receiver decides whether the token is still
    current once the result is back on the GUI thread.
    """

    def __init__(self, session: RenderSession, operations: OperationSet, token: int) -> None:
        super().__init__()
        self._session = session
        self._operations = operations
        self._token = token
        self.signals = RenderWorkerSignals()

    @property
    def session(self) -> RenderSession:
        return self._session

    @property
    def token(self) -> int:
        return self._token

    def run(self) -> None:  # type: ignore[override]
        """Render the frame and notify listeners when done."""

        try:
            if not self._session.is_current(self._token):
                _LOGGER.debug("Skipping superseded render %d", self._token)
                return
            try:
                buffer = self._session.evaluate(self._operations)
            except Exception as exc:  # noqa: BLE001 - reported through the error signal
                if self._session.closed:
                    _LOGGER.debug("Session closed during render %d: %s", self._token, exc)
                else:
                    _LOGGER.exception("Render %d failed", self._token)
                self.signals.error.emit(str(exc), self._token)
                return
            self.signals.rendered.emit(buffer, self._token)
        finally:
            self.signals.finished.emit(self._token)


__all__ = ["RenderWorker", "RenderWorkerSignals"]
