"""Package logger setup driven by ``STILLBYTES_LOG_LEVEL``."""

from __future__ import annotations

import logging
from typing import Optional

from ..config import log_level

_LOGGER: Optional[logging.Logger] = None


def get_logger() -> logging.Logger:
    """Return the package logger, configuring it on first use."""

    global _LOGGER
    if _LOGGER is None:
        _LOGGER = logging.getLogger("stillbytes")
        if not _LOGGER.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            handler.setFormatter(formatter)
            _LOGGER.addHandler(handler)
        _LOGGER.setLevel(getattr(logging, log_level(), logging.INFO))
    return _LOGGER


logger = get_logger()
