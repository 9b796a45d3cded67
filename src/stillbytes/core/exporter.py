"""JPEG encoding of committed render output."""

from __future__ import annotations

import io
import logging
from pathlib import PurePath

import numpy as np
from PIL import Image

from ..config import DEFAULT_EXPORT_QUALITY, EXPORT_FILENAME_PREFIX
from ..errors import EncodingError
from .bitmap import PixelBuffer

_LOGGER = logging.getLogger(__name__)


def _pillow_quality(quality: float) -> int:
    if not (0.0 < quality <= 1.0):
        raise ValueError(f"export quality must be in (0, 1], got {quality}")
    return max(1, min(100, int(round(quality * 100))))


def export(buffer: PixelBuffer | None, quality: float = DEFAULT_EXPORT_QUALITY) -> bytes:
    """Encode *buffer* as a JPEG byte stream.

    Alpha is discarded because JPEG carries no transparency.  A missing or
    empty buffer raises :class:`~stillbytes.errors.EncodingError`.
    """

    pillow_quality = _pillow_quality(quality)
    if buffer is None:
        raise EncodingError("nothing has been rendered yet")
    if buffer.is_empty:
        raise EncodingError("rendered buffer is empty")

    try:
        image = Image.fromarray(np.ascontiguousarray(buffer.rgb()))
        stream = io.BytesIO()
        image.save(stream, format="JPEG", quality=pillow_quality)
    except (OSError, ValueError) as exc:
        raise EncodingError(f"JPEG encoding failed: {exc}") from exc

    data = stream.getvalue()
    if not data:
        raise EncodingError("JPEG encoder produced no data")
    _LOGGER.debug(
        "Encoded %dx%d frame at quality %d (%d bytes)",
        buffer.width,
        buffer.height,
        pillow_quality,
        len(data),
    )
    return data


def export_filename(photo_name: str) -> str:
    """Return the download file name for an exported copy of *photo_name*."""

    name = PurePath(photo_name).name or "photo"
    return f"{EXPORT_FILENAME_PREFIX}{name}.jpg"


__all__ = ["export", "export_filename"]
