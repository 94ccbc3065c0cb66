import time
from typing import Callable, Optional

import numpy as np
from PySide6.QtCore import QCoreApplication, QObject, QRunnable, QThreadPool, Signal, Slot
from loguru import logger

from cinegrade import core, utils
from cinegrade.pipeline.request import EditState, RenderRequest
from cinegrade.pipeline.state import (
    EditSubmitted, Invalidated, Phase, PreviewCleared, PreviewPublished,
    RenderFinished, SchedulerState, StaleDiscarded, StartRender, transition,
)

RenderFunc = Callable[[np.ndarray, EditState], Optional[np.ndarray]]


def render_preview(source: np.ndarray, edit_state: EditState) -> Optional[np.ndarray]:
    """Default preview render: filter graph, then rasterized to the 0..1 display range."""
    out = core.build(source, edit_state)
    if utils.is_degenerate(out):
        return None
    return utils.rasterize(out)


class RenderSignals(QObject):
    finished = Signal(object, object)  # request, image or None


class RenderWorker(QRunnable):
    """Runs one RenderRequest off the main thread."""

    def __init__(self, request: RenderRequest, signals: RenderSignals, render_func: RenderFunc):
        super().__init__()
        self.request = request
        self.signals = signals
        self.render_func = render_func

    def run(self):
        result = None
        try:
            result = self.render_func(self.request.source, self.request.edit_state)
        except Exception as e:
            logger.error(f"[Preview] Render #{self.request.request_id} failed: {e}")
            result = None
        self.signals.finished.emit(self.request, result)


class PreviewRenderer(QObject):
    """
    Preview render scheduler. Uses the pending-request pattern: edits coalesce into a
    single pending slot, one render runs at a time, and results from an invalidated
    generation are dropped instead of displayed.
    """
    preview_ready = Signal(object, int)  # image (H, W, 4) float32, request_id
    preview_cleared = Signal()
    idle_changed = Signal(bool)

    def __init__(self, parent: Optional[QObject] = None, render_func: RenderFunc = render_preview):
        super().__init__(parent)
        self.render_func = render_func
        self._state = SchedulerState()

        # Single worker thread keeps renders strictly sequential
        self._pool = QThreadPool(self)
        self._pool.setMaxThreadCount(1)

        self._signals = RenderSignals()
        self._signals.finished.connect(self._on_render_finished)

    # ----------------- Public API -----------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def preview(self) -> Optional[np.ndarray]:
        return self._state.preview

    @property
    def is_idle(self) -> bool:
        return self._state.phase is Phase.IDLE

    def submit(self, source: np.ndarray, edit_state: EditState):
        """Queue a render of `source` with a snapshot of `edit_state`."""
        self._dispatch(EditSubmitted(source, edit_state))

    def invalidate(self, clear_preview: bool = True):
        """Drop pending work and make any in-flight result stale."""
        self._dispatch(Invalidated(clear_preview))

    def wait_until_idle(self, timeout: float = 10.0) -> bool:
        """Pump the event loop until no render is pending or running."""
        app = QCoreApplication.instance()
        deadline = time.monotonic() + timeout
        while not self.is_idle:
            if time.monotonic() > deadline:
                return False
            self._pool.waitForDone(10)
            if app is not None:
                app.processEvents()
        return True

    def shutdown(self):
        self.invalidate(clear_preview=False)
        self._pool.waitForDone()

    # ----------------- Internals -----------------

    @Slot(object, object)
    def _on_render_finished(self, request: RenderRequest, result):
        self._dispatch(RenderFinished(request, result))

    def _dispatch(self, event):
        was_idle = self.is_idle
        self._state, effects = transition(self._state, event)

        for effect in effects:
            if isinstance(effect, StartRender):
                logger.debug(f"[Preview] Start render #{effect.request.request_id} "
                             f"(gen {effect.request.generation})")
                self._pool.start(RenderWorker(effect.request, self._signals, self.render_func))
            elif isinstance(effect, PreviewPublished):
                self.preview_ready.emit(effect.image, effect.request.request_id)
            elif isinstance(effect, PreviewCleared):
                self.preview_cleared.emit()
            elif isinstance(effect, StaleDiscarded):
                logger.debug(f"[Preview] Discarded stale render #{effect.request.request_id}")

        if was_idle != self.is_idle:
            self.idle_changed.emit(self.is_idle)
