"""Background worker helpers for GUI tasks."""

from .render_worker import RenderWorker, RenderWorkerSignals

__all__ = ["RenderWorker", "RenderWorkerSignals"]
