"""Persistence helpers for edit state stored next to photos."""

from .edit_sidecar import load_operations, save_operations, sidecar_path

__all__ = ["load_operations", "save_operations", "sidecar_path"]
