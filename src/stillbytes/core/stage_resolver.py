"""Resolve an operation set into clamped colour-pipeline stage parameters."""

from __future__ import annotations

from dataclasses import dataclass

from .operations import (
    BrightnessContrastParameters,
    ExposureParameters,
    HslParameters,
    OperationKind,
    OperationSet,
)

EXPOSURE_RANGE = (-3.0, 3.0)
BRIGHTNESS_RANGE = (-100.0, 100.0)
CONTRAST_RANGE = (-100.0, 100.0)
HUE_RANGE = (-180.0, 180.0)
SATURATION_RANGE = (-100.0, 100.0)
LIGHTNESS_RANGE = (-100.0, 100.0)

# Stages run on normalised 0..1 channels; brightness and contrast keep their
# 8-bit semantics through this scale.
CHANNEL_SCALE = 255.0
PIVOT = 0.5

_EPSILON = 1e-6


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    """Return *value* limited to the inclusive *bounds*."""

    minimum, maximum = bounds
    if value != value:  # NaN
        return 0.0
    if value < minimum:
        return minimum
    if value > maximum:
        return maximum
    return value


@dataclass(frozen=True)
class StageParameters:
    """Clamped inputs for the exposure, brightness/contrast and HSL stages."""

    exposure: float = 0.0
    brightness: float = 0.0
    contrast: float = 0.0
    hue: float = 0.0
    saturation: float = 0.0
    lightness: float = 0.0

    @property
    def exposure_gain(self) -> float:
        return 2.0 ** self.exposure

    @property
    def brightness_offset(self) -> float:
        return self.brightness / CHANNEL_SCALE

    @property
    def contrast_factor(self) -> float:
        contrast = self.contrast
        return (259.0 * (contrast + 255.0)) / (255.0 * (259.0 - contrast))

    @property
    def hue_shift(self) -> float:
        """Hue rotation in turns."""

        return self.hue / 360.0

    @property
    def saturation_scale(self) -> float:
        return 1.0 + self.saturation / 100.0

    @property
    def lightness_shift(self) -> float:
        return self.lightness / 100.0

    @property
    def apply_exposure(self) -> bool:
        return abs(self.exposure) > _EPSILON

    @property
    def apply_brightness_contrast(self) -> bool:
        return abs(self.brightness) > _EPSILON or abs(self.contrast) > _EPSILON

    @property
    def apply_hsl(self) -> bool:
        return (
            abs(self.hue) > _EPSILON
            or abs(self.saturation) > _EPSILON
            or abs(self.lightness) > _EPSILON
        )

    @property
    def is_identity(self) -> bool:
        return not (self.apply_exposure or self.apply_brightness_contrast or self.apply_hsl)


IDENTITY_STAGES = StageParameters()


def resolve_stage_parameters(operations: OperationSet) -> StageParameters:
    """Return the stage inputs for *operations*, clamping out-of-range values.

    Absent kinds resolve to their identity values.  Range violations are never
    reported; the clamp at this boundary is the recovery.
    """

    exposure = operations.parameters(OperationKind.EXPOSURE)
    brightness_contrast = operations.parameters(OperationKind.BRIGHTNESS_CONTRAST)
    hsl = operations.parameters(OperationKind.HSL_ADJUST)

    if not isinstance(exposure, ExposureParameters):
        exposure = ExposureParameters()
    if not isinstance(brightness_contrast, BrightnessContrastParameters):
        brightness_contrast = BrightnessContrastParameters()
    if not isinstance(hsl, HslParameters):
        hsl = HslParameters()

    return StageParameters(
        exposure=_clamp(exposure.exposure, EXPOSURE_RANGE),
        brightness=_clamp(brightness_contrast.brightness, BRIGHTNESS_RANGE),
        contrast=_clamp(brightness_contrast.contrast, CONTRAST_RANGE),
        hue=_clamp(hsl.hue, HUE_RANGE),
        saturation=_clamp(hsl.saturation, SATURATION_RANGE),
        lightness=_clamp(hsl.lightness, LIGHTNESS_RANGE),
    )


__all__ = [
    "IDENTITY_STAGES",
    "StageParameters",
    "resolve_stage_parameters",
]
