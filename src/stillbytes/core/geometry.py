"""Crop, quarter-turn rotation and mirroring of the render output.

The transform is resolved before any colour evaluation: it fixes the output
dimensions and maps each output pixel back to exactly one source pixel, so no
resampling is involved.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from numba import jit

from .operations import CropRotateParameters, OperationKind, OperationSet


def rotation_steps(degrees: float) -> int:
    """Return the clockwise quarter turns for *degrees*.

    Angles are reduced modulo 360 and snapped to the nearest multiple of 90.
    """

    if degrees != degrees or math.isinf(degrees):
        return 0
    reduced = math.fmod(degrees, 360.0)
    return int(round(reduced / 90.0)) % 4


def _floor_extent(fraction: float, extent: int) -> int:
    # The epsilon absorbs binary noise such as 0.29 * 100 == 28.999999999999996.
    return int(math.floor(fraction * extent + 1e-9))


@jit(nopython=True, cache=True)
def map_output_to_crop(
    x: int,
    y: int,
    crop_width: int,
    crop_height: int,
    steps: int,
    flip_horizontal: bool,
    flip_vertical: bool,
) -> tuple[int, int]:
    """Return crop-local ``(x, y)`` for output pixel ``(x, y)``.

    *steps* counts clockwise quarter turns.  Mirroring applies to the crop
    before rotation, which is why it is undone last here.
    """

    if steps == 1:
        cx = y
        cy = crop_height - 1 - x
    elif steps == 2:
        cx = crop_width - 1 - x
        cy = crop_height - 1 - y
    elif steps == 3:
        cx = crop_width - 1 - y
        cy = x
    else:
        cx = x
        cy = y
    if flip_horizontal:
        cx = crop_width - 1 - cx
    if flip_vertical:
        cy = crop_height - 1 - cy
    return cx, cy


@dataclass(frozen=True)
class GeometricTransform:
    """Pixel-space crop window plus orientation for one render."""

    source_width: int
    source_height: int
    left: int
    top: int
    crop_width: int
    crop_height: int
    rotation_steps: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @property
    def swaps_axes(self) -> bool:
        return self.rotation_steps % 2 == 1

    @property
    def output_width(self) -> int:
        return self.crop_height if self.swaps_axes else self.crop_width

    @property
    def output_height(self) -> int:
        return self.crop_width if self.swaps_axes else self.crop_height

    @property
    def output_size(self) -> tuple[int, int]:
        return self.output_width, self.output_height

    @property
    def is_identity(self) -> bool:
        return (
            self.left == 0
            and self.top == 0
            and self.crop_width == self.source_width
            and self.crop_height == self.source_height
            and self.rotation_steps == 0
            and not self.flip_horizontal
            and not self.flip_vertical
        )

    def map_to_source(self, x: int, y: int) -> tuple[int, int]:
        """Return the source pixel sampled for output pixel ``(x, y)``."""

        if not (0 <= x < self.output_width and 0 <= y < self.output_height):
            raise IndexError(f"output pixel {(x, y)} outside {self.output_size}")
        cx, cy = map_output_to_crop(
            x,
            y,
            self.crop_width,
            self.crop_height,
            self.rotation_steps,
            self.flip_horizontal,
            self.flip_vertical,
        )
        return self.left + cx, self.top + cy

    @classmethod
    def identity(cls, width: int, height: int) -> GeometricTransform:
        return cls(width, height, 0, 0, width, height)


def resolve_transform(operations: OperationSet, width: int, height: int) -> GeometricTransform:
    """Build the transform for a *width* x *height* source from *operations*."""

    if width < 1 or height < 1:
        raise ValueError(f"source must be at least 1x1, got {width}x{height}")

    params = operations.parameters(OperationKind.CROP_ROTATE)
    if not isinstance(params, CropRotateParameters):
        return GeometricTransform.identity(width, height)

    crop = params.crop.clamped()
    left = min(_floor_extent(crop.x, width), width - 1)
    top = min(_floor_extent(crop.y, height), height - 1)
    crop_width = max(1, min(_floor_extent(crop.width, width), width - left))
    crop_height = max(1, min(_floor_extent(crop.height, height), height - top))

    return GeometricTransform(
        source_width=width,
        source_height=height,
        left=left,
        top=top,
        crop_width=crop_width,
        crop_height=crop_height,
        rotation_steps=rotation_steps(params.rotation),
        flip_horizontal=params.flip_horizontal,
        flip_vertical=params.flip_vertical,
    )


__all__ = [
    "GeometricTransform",
    "map_output_to_crop",
    "resolve_transform",
    "rotation_steps",
]
