import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from stillbytes.core.bitmap import Bitmap  # noqa: E402
from stillbytes.core.render_backends import (  # noqa: E402
    CpuRenderBackend,
    OpenGlRenderBackend,
)


@pytest.fixture
def gray_bitmap() -> Bitmap:
    return Bitmap.filled(4, 4, (128, 128, 128, 255))


@pytest.fixture
def gradient_bitmap() -> Bitmap:
    """A 5x3 bitmap whose red/green channels encode each pixel's position."""

    import numpy as np

    pixels = np.zeros((3, 5, 4), dtype=np.uint8)
    for y in range(3):
        for x in range(5):
            pixels[y, x] = (x * 40, y * 60, 200, 255)
    return Bitmap(pixels)


@pytest.fixture
def opengl_available(qapp) -> bool:
    return OpenGlRenderBackend.is_available()


@pytest.fixture(params=[CpuRenderBackend, OpenGlRenderBackend], ids=["cpu", "opengl"])
def backend_type(request, qapp):
    """Parametrize a test over every render backend that works here."""

    backend_cls = request.param
    if backend_cls is OpenGlRenderBackend and not OpenGlRenderBackend.is_available():
        pytest.skip("OpenGL 3.3 context unavailable")
    return backend_cls
