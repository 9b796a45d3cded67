"""Controllers coordinating edit state and rendering."""

from .edit_controller import EditController

__all__ = ["EditController"]
