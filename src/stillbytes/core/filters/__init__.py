"""Colour-pipeline kernels used by the CPU render backend.

- algorithms: scalar stage functions (exposure, brightness/contrast, HSL)
- jit_executor: per-pixel loop combining the geometric mapping and the stages
"""

from __future__ import annotations

from .algorithms import apply_pipeline
from .jit_executor import render_pixels

__all__ = ["apply_pipeline", "render_pixels"]
