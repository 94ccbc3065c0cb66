import time
from dataclasses import replace
from typing import Callable, Optional, Union

import numpy as np
from PySide6.QtCore import QCoreApplication, QThreadPool
from loguru import logger

from cinegrade.errors import PresetLockedError
from cinegrade.pipeline.export import ExportRenderer, ExportResult
from cinegrade.pipeline.processor import PreviewRenderer
from cinegrade.pipeline.request import CropMode, EditState, SourceAsset
from cinegrade.presets import PresetId, can_select
from cinegrade.workers.export_worker import ExportWorker


class EditSession:
    """
    Owns the current SourceAsset and EditState.

    Every mutator produces a new clamped EditState and submits one preview render;
    a change that leaves the state equal submits nothing. Loading a source and
    restarting invalidate the renderer before touching the state.
    """

    def __init__(self, renderer: Optional[PreviewRenderer] = None,
                 exporter: Optional[ExportRenderer] = None):
        self.renderer = renderer if renderer is not None else PreviewRenderer()
        self.exporter = exporter if exporter is not None else ExportRenderer()
        self._asset: Optional[SourceAsset] = None
        self._edit_state = EditState()

        self._export_pool = QThreadPool()
        self._exports = set()

    @property
    def asset(self) -> Optional[SourceAsset]:
        return self._asset

    @property
    def edit_state(self) -> EditState:
        return self._edit_state

    @property
    def preview(self) -> Optional[np.ndarray]:
        return self.renderer.preview

    # ----------------- Source lifecycle -----------------

    def load_source(self, asset: SourceAsset):
        self.renderer.invalidate()
        if self._asset is not None:
            self.exporter.cache.discard(self._asset.asset_id)
        self._asset = asset
        self._edit_state = replace(self._edit_state, crop_offset=(0.0, 0.0))
        logger.info(f"[Session] Loaded {asset.name}")
        self._submit()

    def restart(self):
        self.renderer.invalidate()
        if self._asset is not None:
            self.exporter.cache.discard(self._asset.asset_id)
        self._asset = None
        self._edit_state = EditState()
        logger.info("[Session] Restarted")

    # ----------------- Mutators -----------------

    def select_preset(self, preset: Union[PresetId, str], premium_unlocked: bool = False):
        preset_id = PresetId.parse(preset)
        if not can_select(preset_id, premium_unlocked):
            raise PresetLockedError(preset_id.value)
        self._update(preset=preset_id)

    def set_apply_preset(self, enabled: bool):
        self._update(apply_preset=bool(enabled))

    def enter_preset_preview(self):
        """Back to the preset browser: grading on, manual adjustments cleared."""
        self._apply(replace(self._edit_state.with_adjustments_reset(), apply_preset=True))

    def set_exposure(self, value: float):
        self._update(exposure=float(value))

    def set_contrast(self, value: float):
        self._update(contrast=float(value))

    def set_shadows(self, value: float):
        self._update(shadows=float(value))

    def set_highlights(self, value: float):
        self._update(highlights=float(value))

    def set_crop_mode(self, mode: Union[CropMode, str]):
        if isinstance(mode, str):
            mode = CropMode.from_name(mode)
        self._update(crop=mode, crop_offset=(0.0, 0.0))

    def set_crop_offset(self, x: float, y: float):
        self._update(crop_offset=(float(x), float(y)))

    # ----------------- Export -----------------

    def export(self, export_from_raw: bool = True) -> ExportResult:
        return self.exporter.render(self._asset, self._edit_state,
                                    export_from_raw=export_from_raw,
                                    last_preview=self.renderer.preview)

    def export_async(self, callback: Callable[[ExportResult], None],
                     export_from_raw: bool = True) -> ExportWorker:
        """
        Render the export on a background thread. The asset, edit state and last
        preview are captured now; later edits do not affect this export.
        """
        worker = ExportWorker(self.exporter, self._asset, self._edit_state,
                              export_from_raw=export_from_raw,
                              last_preview=self.renderer.preview)
        worker.setAutoDelete(False)
        self._exports.add(worker)

        def on_finished(result: ExportResult):
            self._exports.discard(worker)
            callback(result)

        worker.signals.finished.connect(on_finished)
        self._export_pool.start(worker)
        return worker

    @property
    def exports_running(self) -> int:
        return len(self._exports)

    def wait_for_exports(self, timeout: float = 30.0) -> bool:
        """Pump the event loop until every started export has reported back."""
        app = QCoreApplication.instance()
        deadline = time.monotonic() + timeout
        while self._exports:
            if time.monotonic() > deadline:
                return False
            self._export_pool.waitForDone(10)
            if app is not None:
                app.processEvents()
        return True

    # ----------------- Internals -----------------

    def _update(self, **changes):
        self._apply(replace(self._edit_state, **changes))

    def _apply(self, new_state: EditState):
        new_state = new_state.clamped()
        if new_state == self._edit_state:
            return
        self._edit_state = new_state
        self._submit()

    def _submit(self):
        if self._asset is None or self._asset.preview is None:
            return
        self.renderer.submit(self._asset.preview, self._edit_state)
