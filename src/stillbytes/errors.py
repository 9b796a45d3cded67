"""Exception hierarchy shared across the edit pipeline."""

from __future__ import annotations


class StillbytesError(Exception):
    """Base class for user-facing failures raised by the edit pipeline."""


class EncodingError(StillbytesError):
    """Raised when a rendered buffer cannot be encoded for export."""


class BackendInitializationError(StillbytesError):
    """Raised when a render backend cannot prepare or evaluate a frame.

    Render sessions catch this error and fall back to the CPU backend, so it
    only escapes to callers that drive a backend directly.
    """


class OperationRecordError(StillbytesError):
    """Raised when a persisted operation record is malformed."""


class UnrenderedSurfaceError(RuntimeError):
    """Raised when the output surface is read before any render completed.

    This signals a programming error rather than a user-facing failure, which
    is why it does not derive from :class:`StillbytesError`.
    """
