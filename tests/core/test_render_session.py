"""Tests for session lifetime, fallback and supersession."""

import numpy as np
import pytest

from stillbytes.core.bitmap import Bitmap, PixelBuffer
from stillbytes.core.operations import (
    CropRect,
    CropRotateParameters,
    ExposureParameters,
    OperationSet,
)
from stillbytes.core.render_backends import CpuRenderBackend, RenderBackend
from stillbytes.core.render_session import RenderSession, render
from stillbytes.errors import BackendInitializationError, EncodingError, UnrenderedSurfaceError


class _BrokenGpuBackend(RenderBackend):
    tier_name = "BrokenGPU"
    supports_realtime = True

    def initialize(self, source):
        raise BackendInitializationError("no context")

    def evaluate(self, stages, transform):  # pragma: no cover - never initialised
        raise AssertionError("evaluate on an uninitialised backend")


class _FlakyGpuBackend(CpuRenderBackend):
    """Initialises fine, then loses its context on the first render."""

    tier_name = "FlakyGPU"
    supports_realtime = True
    disposed = False

    def evaluate(self, stages, transform):
        raise BackendInitializationError("context lost")

    def dispose(self):
        type(self).disposed = True
        super().dispose()


EXPOSED = OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(1.0))


def test_init_failure_falls_back_to_cpu_with_warning(gray_bitmap):
    warnings = []

    with RenderSession(
        gray_bitmap,
        backend_types=[_BrokenGpuBackend, CpuRenderBackend],
        on_warning=warnings.append,
    ) as session:
        buffer = session.render(EXPOSED)

        assert isinstance(session.backend, CpuRenderBackend)
        assert session.fell_back
        assert len(warnings) == 1
        assert "BrokenGPU" in warnings[0]
        assert (buffer.rgb() == 255).all()


def test_mid_session_failure_switches_permanently(gray_bitmap):
    warnings = []
    session = RenderSession(
        gray_bitmap,
        backend_types=[_FlakyGpuBackend, CpuRenderBackend],
        on_warning=warnings.append,
    )
    assert isinstance(session.backend, _FlakyGpuBackend)

    session.render(EXPOSED)
    session.render(OperationSet.EMPTY)

    assert type(session.backend) is CpuRenderBackend
    assert _FlakyGpuBackend.disposed
    assert len(warnings) == 1
    session.close()


def test_output_read_before_render_raises(gray_bitmap):
    session = RenderSession(gray_bitmap, backend_types=[CpuRenderBackend])

    assert not session.has_output
    with pytest.raises(UnrenderedSurfaceError):
        session.output_buffer
    with pytest.raises(EncodingError):
        session.export()


def test_stale_commit_is_dropped(gray_bitmap):
    session = RenderSession(gray_bitmap, backend_types=[CpuRenderBackend])
    first = session.request()
    second = session.request()
    newer = session.evaluate(EXPOSED)
    older = session.evaluate(OperationSet.EMPTY)

    assert session.commit(second, newer)
    assert not session.commit(first, older)
    assert session.output_buffer is newer
    assert not session.is_current(first)


def test_close_drops_output_and_late_results(gray_bitmap):
    session = RenderSession(gray_bitmap, backend_types=[CpuRenderBackend])
    session.render(EXPOSED)
    token = session.request()
    late = session.evaluate(OperationSet.EMPTY)

    session.close()

    assert session.closed
    assert not session.commit(token, late)
    with pytest.raises(UnrenderedSurfaceError):
        session.output_buffer
    with pytest.raises(RuntimeError):
        session.request()
    session.close()


def test_each_render_produces_a_new_buffer(gray_bitmap):
    with RenderSession(gray_bitmap, backend_types=[CpuRenderBackend]) as session:
        first = session.render(OperationSet.EMPTY)
        second = session.render(OperationSet.EMPTY)

    assert first is not second
    assert not np.shares_memory(first.pixels, gray_bitmap.pixels)
    np.testing.assert_array_equal(first.pixels, gray_bitmap.pixels)


def test_module_level_render_uses_throwaway_session():
    source = Bitmap.filled(2, 3, (10, 20, 30, 255))

    buffer = render(OperationSet.EMPTY, source, backend_types=[CpuRenderBackend])

    assert isinstance(buffer, PixelBuffer)
    assert (buffer.width, buffer.height) == (2, 3)


def test_nan_crop_renders_full_frame(gradient_bitmap):
    ops = OperationSet.EMPTY.with_parameters(
        "crop_rotate", CropRotateParameters(CropRect(float("nan"), 0.0, 1.0, 1.0))
    )

    buffer = render(ops, gradient_bitmap, backend_types=[CpuRenderBackend])

    np.testing.assert_array_equal(buffer.pixels, gradient_bitmap.pixels)
