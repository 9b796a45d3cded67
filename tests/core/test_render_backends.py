"""Contract tests run against every available render backend."""

import numpy as np
import pytest

from stillbytes.core.bitmap import Bitmap
from stillbytes.core.geometry import GeometricTransform, resolve_transform
from stillbytes.core.operations import (
    BrightnessContrastParameters,
    CropRect,
    CropRotateParameters,
    ExposureParameters,
    HslParameters,
    OperationSet,
)
from stillbytes.core.render_backends import (
    CpuRenderBackend,
    OpenGlRenderBackend,
    preferred_backend_types,
)
from stillbytes.core.stage_resolver import IDENTITY_STAGES, resolve_stage_parameters


def _evaluate(backend_type, source: Bitmap, operations: OperationSet) -> np.ndarray:
    backend = backend_type()
    backend.initialize(source)
    try:
        buffer = backend.evaluate(
            resolve_stage_parameters(operations),
            resolve_transform(operations, source.width, source.height),
        )
    finally:
        backend.dispose()
    return buffer.pixels


def test_identity_reproduces_source(backend_type, gradient_bitmap):
    pixels = _evaluate(backend_type, gradient_bitmap, OperationSet.EMPTY)

    np.testing.assert_array_equal(pixels, gradient_bitmap.pixels)


def test_exposure_plus_one_saturates_mid_grey(backend_type, gray_bitmap):
    ops = OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(1.0))

    pixels = _evaluate(backend_type, gray_bitmap, ops)

    assert pixels.shape == (4, 4, 4)
    assert (pixels[..., :3] == 255).all()
    assert (pixels[..., 3] == 255).all()


def test_hue_rotation_turns_red_into_cyan(backend_type):
    red = Bitmap.filled(2, 2, (255, 0, 0, 255))
    ops = OperationSet.EMPTY.with_parameters("hsl_adjust", HslParameters(hue=180))

    pixels = _evaluate(backend_type, red, ops)

    assert np.abs(pixels[0, 0, :3].astype(int) - (0, 255, 255)).max() <= 1


def test_quarter_turn_swaps_output_dimensions(backend_type, gradient_bitmap):
    ops = OperationSet.EMPTY.with_parameters("crop_rotate", CropRotateParameters(rotation=90))

    pixels = _evaluate(backend_type, gradient_bitmap, ops)

    assert pixels.shape == (5, 3, 4)
    np.testing.assert_array_equal(pixels[0, 0], gradient_bitmap.pixels[2, 0])
    np.testing.assert_array_equal(pixels[4, 2], gradient_bitmap.pixels[0, 4])


def test_crop_selects_source_window(backend_type, gradient_bitmap):
    crop = CropRect(0.2, 1 / 3, 0.6, 2 / 3)
    ops = OperationSet.EMPTY.with_parameters("crop_rotate", CropRotateParameters(crop=crop))

    pixels = _evaluate(backend_type, gradient_bitmap, ops)

    np.testing.assert_array_equal(pixels, gradient_bitmap.pixels[1:3, 1:4])


def test_alpha_is_preserved(backend_type):
    source = Bitmap.filled(3, 3, (100, 150, 200, 77))
    ops = OperationSet.EMPTY.with_parameters(
        "brightness_contrast", BrightnessContrastParameters(brightness=30, contrast=20)
    )

    pixels = _evaluate(backend_type, source, ops)

    assert (pixels[..., 3] == 77).all()


def test_evaluate_rejects_mismatched_transform(backend_type, gray_bitmap):
    backend = backend_type()
    backend.initialize(gray_bitmap)
    try:
        with pytest.raises(ValueError):
            backend.evaluate(IDENTITY_STAGES, GeometricTransform.identity(8, 8))
    finally:
        backend.dispose()


def test_gpu_matches_cpu_within_one_level(opengl_available, gradient_bitmap):
    if not opengl_available:
        pytest.skip("OpenGL 3.3 context unavailable")
    ops = (
        OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(0.4))
        .with_parameters("brightness_contrast", BrightnessContrastParameters(-12, 35))
        .with_parameters("hsl_adjust", HslParameters(40, 25, -10))
        .with_parameters(
            "crop_rotate",
            CropRotateParameters(CropRect(0.2, 0.0, 0.8, 1.0), 270, flip_vertical=True),
        )
    )

    cpu = _evaluate(CpuRenderBackend, gradient_bitmap, ops).astype(int)
    gpu = _evaluate(OpenGlRenderBackend, gradient_bitmap, ops).astype(int)

    assert cpu.shape == gpu.shape
    assert np.abs(cpu - gpu).max() <= 1


def test_cpu_preference_skips_opengl():
    assert preferred_backend_types("cpu") == [CpuRenderBackend]
    assert preferred_backend_types("auto")[-1] is CpuRenderBackend


@pytest.mark.parametrize("rotation", [360, -360, 720])
def test_full_turn_is_pixel_identical_to_source(backend_type, gradient_bitmap, rotation):
    ops = OperationSet.EMPTY.with_parameters(
        "crop_rotate", CropRotateParameters(rotation=rotation)
    )

    pixels = _evaluate(backend_type, gradient_bitmap, ops)

    np.testing.assert_array_equal(pixels, gradient_bitmap.pixels)
