"""Non-destructive photo editing core for Stillbytes."""

from __future__ import annotations

from .utils.logging import get_logger

__all__ = ["__version__", "get_logger"]

__version__ = "0.1.0"

get_logger()
