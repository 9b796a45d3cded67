"""Runtime configuration for the edit pipeline."""

from __future__ import annotations

import os

HISTORY_MAX_LENGTH = 50
"""Maximum number of snapshots retained by :class:`~stillbytes.core.history.EditHistory`."""

DEFAULT_EXPORT_QUALITY = 0.9
"""JPEG quality used when callers do not provide one."""

EXPORT_FILENAME_PREFIX = "stillbytes_"

OPERATION_SCHEMA_VERSION = 1
"""Schema version stamped on newly created edit operations."""

EDIT_SIDECAR_SUFFIX = ".edits.json"

RENDER_BACKEND_CHOICES = ("auto", "cpu", "opengl")


def render_backend_preference() -> str:
    """Return the configured backend preference, defaulting to ``"auto"``."""

    value = os.environ.get("STILLBYTES_RENDER_BACKEND", "auto").strip().lower()
    if value not in RENDER_BACKEND_CHOICES:
        return "auto"
    return value


def log_level() -> str:
    """Return the log level name requested through the environment."""

    return os.environ.get("STILLBYTES_LOG_LEVEL", "INFO").strip().upper() or "INFO"
