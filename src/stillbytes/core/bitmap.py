"""Pixel containers exchanged between the decoder, renderer and exporter."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


def _as_rgba(pixels: np.ndarray) -> np.ndarray:
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ValueError(f"expected an (height, width, 3|4) array, got shape {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"expected uint8 channels, got {pixels.dtype}")
    if pixels.shape[2] == 4:
        return np.ascontiguousarray(pixels)
    alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.ascontiguousarray(np.concatenate([pixels, alpha], axis=2))


@dataclass(frozen=True, eq=False)
class Bitmap:
    """Immutable decoded source image stored as RGBA8 rows, top row first.

    A session shares one instance across every render; the pixel array is
    flagged read-only so no backend can modify it in place.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        rgba = _as_rgba(self.pixels)
        if rgba.shape[0] < 1 or rgba.shape[1] < 1:
            raise ValueError("bitmap must be at least 1x1")
        if rgba is self.pixels:
            rgba = rgba.copy()
        rgba.flags.writeable = False
        object.__setattr__(self, "pixels", rgba)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_buffer(
        cls,
        width: int,
        height: int,
        data: bytes | bytearray | memoryview,
        *,
        channels: int = 4,
    ) -> Bitmap:
        """Wrap a raw interleaved 8-bit RGB or RGBA buffer from the decoder."""

        if channels not in (3, 4):
            raise ValueError(f"channels must be 3 or 4, got {channels}")
        expected = width * height * channels
        raw = np.frombuffer(data, dtype=np.uint8)
        if raw.size != expected:
            raise ValueError(f"buffer holds {raw.size} bytes, expected {expected}")
        return cls(raw.reshape((height, width, channels)))

    @classmethod
    def filled(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> Bitmap:
        """Return a flat-colour bitmap."""

        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = np.asarray(rgba, dtype=np.uint8)
        return cls(pixels)


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """Rendered RGBA8 output owned by a render session."""

    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim == 3 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim == 3 else 0

    @property
    def is_empty(self) -> bool:
        return self.pixels.size == 0

    def rgb(self) -> np.ndarray:
        """Return the colour channels without alpha."""

        return self.pixels[..., :3]


__all__ = ["Bitmap", "PixelBuffer"]
