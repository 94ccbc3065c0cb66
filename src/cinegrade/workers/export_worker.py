"""Worker that renders a full-resolution export on a background thread."""

from typing import Optional

import numpy as np
from PySide6.QtCore import QObject, QRunnable, Signal

from cinegrade.pipeline.export import ExportRenderer
from cinegrade.pipeline.request import EditState, SourceAsset


class ExportSignals(QObject):
    finished = Signal(object)  # ExportResult


class ExportWorker(QRunnable):
    def __init__(self, renderer: ExportRenderer, asset: Optional[SourceAsset], edit_state: EditState,
                 export_from_raw: bool = True, last_preview: Optional[np.ndarray] = None):
        super().__init__()
        self.renderer = renderer
        self.asset = asset
        self.edit_state = edit_state
        self.export_from_raw = export_from_raw
        self.last_preview = last_preview
        self.signals = ExportSignals()

    def run(self):
        result = self.renderer.render(self.asset, self.edit_state,
                                      export_from_raw=self.export_from_raw,
                                      last_preview=self.last_preview)
        self.signals.finished.emit(result)
