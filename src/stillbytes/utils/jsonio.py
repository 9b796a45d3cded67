"""JSON reading and crash-safe writing for edit sidecars."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any

from ..errors import OperationRecordError


def read_json(path: Path) -> Any:
    """Decode *path*, reporting missing or corrupt files as record errors."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise OperationRecordError(f"JSON file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise OperationRecordError(f"Invalid JSON data in {path}") from exc


def atomic_write_text(path: Path, data: str) -> None:
    """Replace *path* with *data* so readers never see a half-written sidecar."""

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    with tmp_path.open("w", encoding="utf-8") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
    # A photo viewer or sync client may still hold the previous sidecar open,
    # which makes the rename fail on Windows until it lets go.
    for attempt in range(5):
        try:
            tmp_path.replace(path)
            return
        except PermissionError:
            if attempt == 4:
                tmp_path.unlink(missing_ok=True)
                raise
            time.sleep(0.05 * (attempt + 1))


def write_json(path: Path, data: Any) -> None:
    """Write *data* into *path* atomically."""

    payload = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
    atomic_write_text(path, payload)
