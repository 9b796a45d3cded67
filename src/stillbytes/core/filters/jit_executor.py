"""JIT-compiled per-pixel executor for the CPU render backend.

The kernel walks every output pixel, maps it back into the crop window of the
source through :func:`~stillbytes.core.geometry.map_output_to_crop` and runs
the scalar colour stages from :mod:`.algorithms`.
"""

from __future__ import annotations

import numpy as np
from numba import jit

from ..geometry import GeometricTransform, map_output_to_crop
from ..stage_resolver import StageParameters
from .algorithms import _float_to_uint8, apply_pipeline


def render_pixels(
    source: np.ndarray,
    stages: StageParameters,
    transform: GeometricTransform,
) -> np.ndarray:
    """Return a freshly allocated RGBA8 array holding the rendered frame."""

    if source.ndim != 3 or source.shape[2] != 4:
        raise ValueError(f"source must be an RGBA array, got shape {source.shape}")

    output = np.empty((transform.output_height, transform.output_width, 4), dtype=np.uint8)
    _render_kernel(
        source,
        output,
        transform.left,
        transform.top,
        transform.crop_width,
        transform.crop_height,
        transform.rotation_steps,
        transform.flip_horizontal,
        transform.flip_vertical,
        stages.apply_exposure,
        stages.exposure_gain,
        stages.apply_brightness_contrast,
        stages.brightness_offset,
        stages.contrast_factor,
        stages.apply_hsl,
        stages.hue_shift,
        stages.saturation_scale,
        stages.lightness_shift,
    )
    return output


@jit(nopython=True, cache=True)
def _render_kernel(
    source: np.ndarray,
    output: np.ndarray,
    left: int,
    top: int,
    crop_width: int,
    crop_height: int,
    steps: int,
    flip_horizontal: bool,
    flip_vertical: bool,
    use_exposure: bool,
    exposure_gain: float,
    use_brightness_contrast: bool,
    brightness_offset: float,
    contrast_factor: float,
    use_hsl: bool,
    hue_shift: float,
    saturation_scale: float,
    lightness_shift: float,
) -> None:
    """JIT-compiled pixel processing kernel."""

    height = output.shape[0]
    width = output.shape[1]
    apply_color = use_exposure or use_brightness_contrast or use_hsl

    for y in range(height):
        for x in range(width):
            cx, cy = map_output_to_crop(
                x, y, crop_width, crop_height, steps, flip_horizontal, flip_vertical
            )
            sy = top + cy
            sx = left + cx

            if not apply_color:
                for channel in range(4):
                    output[y, x, channel] = source[sy, sx, channel]
                continue

            r = source[sy, sx, 0] / 255.0
            g = source[sy, sx, 1] / 255.0
            b = source[sy, sx, 2] / 255.0

            r, g, b = apply_pipeline(
                r,
                g,
                b,
                use_exposure,
                exposure_gain,
                use_brightness_contrast,
                brightness_offset,
                contrast_factor,
                use_hsl,
                hue_shift,
                saturation_scale,
                lightness_shift,
            )

            output[y, x, 0] = _float_to_uint8(r)
            output[y, x, 1] = _float_to_uint8(g)
            output[y, x, 2] = _float_to_uint8(b)
            output[y, x, 3] = source[sy, sx, 3]
