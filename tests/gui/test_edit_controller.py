"""Tests for the Qt edit controller."""

import io

import numpy as np
import pytest
from PIL import Image

from stillbytes.core.operations import ExposureParameters, HslParameters, OperationSet
from stillbytes.core.render_backends import CpuRenderBackend
from stillbytes.gui.controllers.edit_controller import EditController

RENDER_TIMEOUT_MS = 20000


class _InlineBackend(CpuRenderBackend):
    """CPU renderer that claims realtime support so it runs on the GUI thread."""

    tier_name = "Inline"
    supports_realtime = True


@pytest.fixture
def controller(qtbot):
    ctrl = EditController(backend_types=[_InlineBackend, CpuRenderBackend])
    yield ctrl
    ctrl.close_photo()


@pytest.fixture
def threaded_controller(qtbot):
    ctrl = EditController(backend_types=[CpuRenderBackend])
    yield ctrl
    ctrl.close_photo()


def test_open_photo_renders_first_frame(qtbot, controller, gray_bitmap):
    with qtbot.waitSignal(controller.frameReady, timeout=RENDER_TIMEOUT_MS) as blocker:
        controller.open_photo(gray_bitmap)

    np.testing.assert_array_equal(blocker.args[0].pixels, gray_bitmap.pixels)
    assert controller.session.backend.tier_name == "Inline"


def test_bursts_of_edits_are_coalesced(qtbot, controller, gray_bitmap):
    with qtbot.waitSignal(controller.frameReady, timeout=RENDER_TIMEOUT_MS):
        controller.open_photo(gray_bitmap)

    frames = []
    controller.frameReady.connect(frames.append)
    controller.apply_parameters("exposure", ExposureParameters(0.2))
    controller.apply_parameters("exposure", ExposureParameters(0.5))
    controller.apply_parameters("exposure", ExposureParameters(1.0))
    qtbot.waitUntil(lambda: len(frames) >= 1, timeout=RENDER_TIMEOUT_MS)
    qtbot.wait(50)

    assert len(frames) == 1
    assert (frames[0].rgb() == 255).all()
    assert len(controller.history) == 4


def test_undo_redo_restore_and_reset(qtbot, controller, gray_bitmap):
    controller.open_photo(gray_bitmap)
    controller.apply_parameters("exposure", ExposureParameters(1.0))
    controller.apply_parameters("hsl_adjust", HslParameters(saturation=-100))
    history_events = []
    controller.historyChanged.connect(lambda: history_events.append(True))

    controller.undo()
    assert controller.operations().kinds == ("exposure",)
    controller.redo()
    assert "hsl_adjust" in controller.operations()

    controller.restore_to(1)
    assert controller.operations().kinds == ("exposure",)
    assert not controller.history.can_redo

    controller.reset()
    assert controller.operations().is_empty
    controller.undo()
    assert controller.operations().kinds == ("exposure",)
    assert len(history_events) == 5


def test_compare_mode_shows_original_without_touching_history(qtbot, controller, gray_bitmap):
    controller.open_photo(gray_bitmap)
    with qtbot.waitSignal(controller.frameReady, timeout=RENDER_TIMEOUT_MS):
        controller.apply_parameters("exposure", ExposureParameters(1.0))
    snapshots = controller.history.snapshots

    with qtbot.waitSignal(controller.frameReady, timeout=RENDER_TIMEOUT_MS) as blocker:
        controller.set_comparing(True)
    np.testing.assert_array_equal(blocker.args[0].pixels, gray_bitmap.pixels)
    assert controller.history.snapshots == snapshots

    with qtbot.waitSignal(controller.frameReady, timeout=RENDER_TIMEOUT_MS) as blocker:
        controller.set_comparing(False)
    assert (blocker.args[0].rgb() == 255).all()


def test_background_render_delivers_latest_state(qtbot, threaded_controller, gray_bitmap):
    with qtbot.waitSignal(threaded_controller.frameReady, timeout=RENDER_TIMEOUT_MS):
        threaded_controller.open_photo(gray_bitmap)

    frames = []
    threaded_controller.frameReady.connect(frames.append)
    threaded_controller.apply_parameters("exposure", ExposureParameters(-1.0))
    qtbot.wait(0)
    threaded_controller.apply_parameters("exposure", ExposureParameters(1.0))
    qtbot.waitUntil(
        lambda: bool(frames) and bool((frames[-1].rgb() == 255).all()),
        timeout=RENDER_TIMEOUT_MS,
    )

    assert (threaded_controller.session.output_buffer.rgb() == 255).all()


def test_export_renders_pending_state(qtbot, controller, gray_bitmap):
    controller.open_photo(gray_bitmap)
    controller.apply_parameters("exposure", ExposureParameters(1.0))

    data = controller.export(0.9)

    decoded = np.asarray(Image.open(io.BytesIO(data)).convert("RGB"), dtype=int)
    assert decoded.min() >= 250


def test_open_records_and_close(qtbot, controller, gray_bitmap):
    records = OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(1.0)).to_records()
    records.append({"id": "x", "kind": "unknown_kind", "parameters": {}})

    controller.open_records(gray_bitmap, records)
    session = controller.session

    assert controller.operations().kinds == ("exposure",)
    assert controller.records()[0]["kind"] == "exposure"
    controller.close_photo()
    assert session.closed
    assert not controller.is_open()
    with pytest.raises(RuntimeError):
        controller.operations()
