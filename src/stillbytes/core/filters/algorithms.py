"""Scalar colour-pipeline stages shared by the CPU kernel.

Every helper works on normalised ``0..1`` channels and clamps its own output,
so a stage never hands an out-of-range value to the next one.  The GLSL in
:mod:`stillbytes.core.render_backends` mirrors these functions line for line.
"""

from __future__ import annotations

from numba import jit


@jit(nopython=True, cache=True)
def _clamp01(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


@jit(nopython=True, cache=True)
def _float_to_uint8(value: float) -> int:
    """Round a normalised channel to the nearest 8-bit level."""

    scaled = int(_clamp01(value) * 255.0 + 0.5)
    if scaled > 255:
        return 255
    return scaled


@jit(nopython=True, cache=True)
def apply_exposure(r: float, g: float, b: float, gain: float) -> tuple[float, float, float]:
    """Scale the channels by ``2 ** exposure`` (pre-computed as *gain*)."""

    return _clamp01(r * gain), _clamp01(g * gain), _clamp01(b * gain)


@jit(nopython=True, cache=True)
def apply_brightness_contrast(
    r: float,
    g: float,
    b: float,
    offset: float,
    factor: float,
) -> tuple[float, float, float]:
    """Add the brightness *offset*, then stretch around mid-grey by *factor*."""

    r = _clamp01(factor * (r + offset - 0.5) + 0.5)
    g = _clamp01(factor * (g + offset - 0.5) + 0.5)
    b = _clamp01(factor * (b + offset - 0.5) + 0.5)
    return r, g, b


@jit(nopython=True, cache=True)
def rgb_to_hsl(r: float, g: float, b: float) -> tuple[float, float, float]:
    """Convert RGB to HSL with hue expressed in turns ``[0, 1)``."""

    max_val = max(r, max(g, b))
    min_val = min(r, min(g, b))
    lightness = (max_val + min_val) / 2.0
    if max_val == min_val:
        return 0.0, 0.0, lightness

    delta = max_val - min_val
    if lightness > 0.5:
        saturation = delta / (2.0 - max_val - min_val)
    else:
        saturation = delta / (max_val + min_val)

    if max_val == r:
        hue = (g - b) / delta
        if g < b:
            hue += 6.0
    elif max_val == g:
        hue = (b - r) / delta + 2.0
    else:
        hue = (r - g) / delta + 4.0
    return hue / 6.0, saturation, lightness


@jit(nopython=True, cache=True)
def _hue_to_rgb(p: float, q: float, t: float) -> float:
    if t < 0.0:
        t += 1.0
    if t > 1.0:
        t -= 1.0
    if t < 1.0 / 6.0:
        return p + (q - p) * 6.0 * t
    if t < 1.0 / 2.0:
        return q
    if t < 2.0 / 3.0:
        return p + (q - p) * (2.0 / 3.0 - t) * 6.0
    return p


@jit(nopython=True, cache=True)
def hsl_to_rgb(hue: float, saturation: float, lightness: float) -> tuple[float, float, float]:
    """Convert HSL (hue in turns) back to RGB."""

    if saturation == 0.0:
        return lightness, lightness, lightness
    if lightness < 0.5:
        q = lightness * (1.0 + saturation)
    else:
        q = lightness + saturation - lightness * saturation
    p = 2.0 * lightness - q
    r = _hue_to_rgb(p, q, hue + 1.0 / 3.0)
    g = _hue_to_rgb(p, q, hue)
    b = _hue_to_rgb(p, q, hue - 1.0 / 3.0)
    return r, g, b


@jit(nopython=True, cache=True)
def apply_hsl(
    r: float,
    g: float,
    b: float,
    hue_shift: float,
    saturation_scale: float,
    lightness_shift: float,
) -> tuple[float, float, float]:
    """Rotate hue by *hue_shift* turns and rescale saturation and lightness."""

    hue, saturation, lightness = rgb_to_hsl(r, g, b)
    hue = (hue + hue_shift) % 1.0
    saturation = _clamp01(saturation * saturation_scale)
    lightness = _clamp01(lightness + lightness_shift)
    r, g, b = hsl_to_rgb(hue, saturation, lightness)
    return _clamp01(r), _clamp01(g), _clamp01(b)


@jit(nopython=True, cache=True)
def apply_pipeline(
    r: float,
    g: float,
    b: float,
    use_exposure: bool,
    exposure_gain: float,
    use_brightness_contrast: bool,
    brightness_offset: float,
    contrast_factor: float,
    use_hsl: bool,
    hue_shift: float,
    saturation_scale: float,
    lightness_shift: float,
) -> tuple[float, float, float]:
    """Run the exposure, brightness/contrast and HSL stages in fixed order."""

    if use_exposure:
        r, g, b = apply_exposure(r, g, b, exposure_gain)
    if use_brightness_contrast:
        r, g, b = apply_brightness_contrast(r, g, b, brightness_offset, contrast_factor)
    if use_hsl:
        r, g, b = apply_hsl(r, g, b, hue_shift, saturation_scale, lightness_shift)
    return r, g, b
