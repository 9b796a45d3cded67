"""Per-photo render session owning the backend and the output surface."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Sequence

from ..config import DEFAULT_EXPORT_QUALITY
from ..errors import BackendInitializationError, UnrenderedSurfaceError
from .bitmap import Bitmap, PixelBuffer
from .exporter import export
from .geometry import resolve_transform
from .operations import OperationSet
from .render_backends import CpuRenderBackend, RenderBackend, preferred_backend_types
from .stage_resolver import resolve_stage_parameters

_LOGGER = logging.getLogger(__name__)

WarningCallback = Callable[[str], None]


class RenderSession:
    """Render an operation set against one source bitmap.

    The session is created when a photo opens and closed when it is left.
    GPU initialisation is attempted once, on construction; any GPU failure
    (at start-up or mid-session) switches the session to the CPU backend for
    the rest of its lifetime and reports a non-fatal warning.

    Requests are ordered by token.  :meth:`commit` only accepts the buffer of
    the most recently requested render, so a late completion can never
    overwrite a newer frame.
    """

    def __init__(
        self,
        source: Bitmap,
        *,
        backend_types: Sequence[type[RenderBackend]] | None = None,
        on_warning: WarningCallback | None = None,
    ) -> None:
        self._source = source
        self._on_warning = on_warning
        self._lock = threading.Lock()
        self._latest_token = 0
        self._output: PixelBuffer | None = None
        self._closed = False
        self._fell_back = False
        self._backend = self._open_backend(
            list(backend_types) if backend_types is not None else preferred_backend_types()
        )

    # ------------------------------------------------------------------
    def __enter__(self) -> RenderSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def source(self) -> Bitmap:
        return self._source

    @property
    def backend(self) -> RenderBackend:
        return self._backend

    @property
    def fell_back(self) -> bool:
        """Return ``True`` once a GPU failure moved the session to the CPU."""

        return self._fell_back

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_output(self) -> bool:
        return self._output is not None

    @property
    def output_buffer(self) -> PixelBuffer:
        """Return the most recently committed frame."""

        output = self._output
        if output is None:
            raise UnrenderedSurfaceError("output surface read before any render completed")
        return output

    # ------------------------------------------------------------------
    def _open_backend(self, candidates: list[type[RenderBackend]]) -> RenderBackend:
        for backend_type in candidates:
            if backend_type is CpuRenderBackend:
                break
            backend = backend_type()
            try:
                backend.initialize(self._source)
            except BackendInitializationError as exc:
                self._warn(f"{backend.tier_name} backend unavailable, using CPU: {exc}")
                self._fell_back = True
                continue
            _LOGGER.info("Using %s render backend", backend.tier_name)
            return backend

        backend = CpuRenderBackend()
        backend.initialize(self._source)
        _LOGGER.info("Using %s render backend", backend.tier_name)
        return backend

    def _warn(self, message: str) -> None:
        _LOGGER.warning(message)
        if self._on_warning is not None:
            self._on_warning(message)

    def _fall_back(self, failed: RenderBackend, exc: Exception) -> RenderBackend:
        with self._lock:
            if self._backend is not failed:
                return self._backend
            failed.dispose()
            backend = CpuRenderBackend()
            backend.initialize(self._source)
            self._backend = backend
            self._fell_back = True
        self._warn(f"{failed.tier_name} backend failed, continuing on CPU: {exc}")
        return backend

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("render session is closed")

    # ------------------------------------------------------------------
    def request(self) -> int:
        """Register a new render request and return its token."""

        self._ensure_open()
        with self._lock:
            self._latest_token += 1
            return self._latest_token

    @property
    def latest_token(self) -> int:
        return self._latest_token

    def is_current(self, token: int) -> bool:
        return not self._closed and token == self._latest_token

    def evaluate(self, operations: OperationSet) -> PixelBuffer:
        """Render *operations* into a new buffer without committing it."""

        self._ensure_open()
        transform = resolve_transform(operations, self._source.width, self._source.height)
        stages = resolve_stage_parameters(operations)
        backend = self._backend
        try:
            return backend.evaluate(stages, transform)
        except BackendInitializationError as exc:
            if type(backend) is CpuRenderBackend:
                raise
            return self._fall_back(backend, exc).evaluate(stages, transform)

    def commit(self, token: int, buffer: PixelBuffer) -> bool:
        """Publish *buffer* if *token* is the latest request; drop it otherwise."""

        with self._lock:
            if self._closed or token != self._latest_token:
                _LOGGER.debug("Dropping stale render %d (latest %d)", token, self._latest_token)
                return False
            self._output = buffer
            return True

    def render(self, operations: OperationSet) -> PixelBuffer:
        """Request, evaluate and commit a frame for *operations* synchronously."""

        token = self.request()
        buffer = self.evaluate(operations)
        self.commit(token, buffer)
        return buffer

    def export(self, quality: float = DEFAULT_EXPORT_QUALITY) -> bytes:
        """Encode the committed frame; fails with ``EncodingError`` if none exists."""

        return export(self._output, quality)

    def close(self) -> None:
        """Dispose backend resources and drop the output surface."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._output = None
            backend = self._backend
        backend.dispose()


def render(
    operations: OperationSet,
    source: Bitmap,
    *,
    backend_types: Sequence[type[RenderBackend]] | None = None,
) -> PixelBuffer:
    """Render *operations* against *source* in a throwaway session."""

    with RenderSession(source, backend_types=backend_types) as session:
        return session.render(operations)


__all__ = ["RenderSession", "render"]
