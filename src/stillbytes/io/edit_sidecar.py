"""Read and write a photo's operation set as a JSON sidecar file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..config import EDIT_SIDECAR_SUFFIX, OPERATION_SCHEMA_VERSION
from ..core.operations import OperationSet
from ..errors import OperationRecordError
from ..utils.jsonio import read_json, write_json

_LOGGER = logging.getLogger(__name__)


def sidecar_path(photo_path: Path) -> Path:
    """Return the sidecar location for *photo_path*."""

    return photo_path.with_name(photo_path.name + EDIT_SIDECAR_SUFFIX)


def _records_from_payload(payload: Any, path: Path) -> list[Any]:
    # Older sidecars stored the bare record list.
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        records = payload.get("operations", [])
        if isinstance(records, list):
            return records
    raise OperationRecordError(f"{path} does not contain an operation list")


def load_operations(path: Path) -> OperationSet:
    """Return the operation set stored at *path*.

    A missing sidecar means the photo has never been edited and yields the
    empty set.  Malformed files raise :class:`OperationRecordError`.
    """

    if not path.exists():
        return OperationSet.EMPTY
    payload = read_json(path)
    operations = OperationSet.from_records(_records_from_payload(payload, path))
    _LOGGER.debug("Loaded %d operation(s) from %s", len(operations), path)
    return operations


def save_operations(path: Path, operations: OperationSet) -> None:
    """Persist *operations* to *path* atomically.

    Saving the empty set removes the sidecar so an unedited photo carries no
    stale file.
    """

    if operations.is_empty:
        if path.exists():
            path.unlink()
            _LOGGER.debug("Removed empty edit sidecar %s", path)
        return
    write_json(
        path,
        {"schema_version": OPERATION_SCHEMA_VERSION, "operations": operations.to_records()},
    )
    _LOGGER.debug("Saved %d operation(s) to %s", len(operations), path)


__all__ = ["load_operations", "save_operations", "sidecar_path"]
