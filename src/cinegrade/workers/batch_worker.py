import os
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from PySide6.QtCore import QThread, Signal
from loguru import logger

from cinegrade import config, file_io
from cinegrade.logger import create_logger
from cinegrade.pipeline.export import ExportRenderer
from cinegrade.pipeline.request import EditState
from cinegrade.presets import PresetId, can_select

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class BatchSummary:
    processed: int
    failed: int
    message: str
    started: bool = True


def summary_message(processed: int, failed: int) -> str:
    if processed > 0 and failed == 0:
        return f"Saved {processed} photos."
    if processed > 0:
        return f"Saved {processed} photos, {failed} failed."
    if failed > 0:
        return "No photos were saved."
    return "Batch canceled."


class BatchExporter:
    """
    Applies one preset to many files: identity adjustments, original framing,
    JPEG output. Per-file failures are counted, never raised.
    """

    def __init__(self, preset, output_dir: str, quality: Optional[int] = None,
                 premium_unlocked: bool = False, export_from_raw: Optional[bool] = None,
                 exporter: Optional[ExportRenderer] = None):
        self.preset = PresetId.parse(preset)
        self.output_dir = output_dir
        prefs = config.load_preferences()
        if quality is None:
            quality = prefs["export_jpeg_quality"]
        if export_from_raw is None:
            export_from_raw = prefs["export_from_raw"]
        self.export_from_raw = bool(export_from_raw)
        self.quality = file_io.normalize_jpeg_quality(quality)
        self.premium_unlocked = premium_unlocked
        self.exporter = exporter if exporter is not None else ExportRenderer()
        self._cancel = threading.Event()

    def cancel(self):
        self._cancel.set()

    @property
    def edit_state(self) -> EditState:
        return EditState(preset=self.preset, apply_preset=True)

    def output_path_for(self, input_path: str) -> str:
        stem = os.path.splitext(os.path.basename(input_path))[0]
        return os.path.join(self.output_dir, f"{stem}_{self.preset.value}.jpg")

    def process_one(self, input_path: str) -> bool:
        file_logger = create_logger(os.path.basename(input_path))
        try:
            asset = file_io.load_source(input_path, logger=file_logger)
        except Exception as e:
            file_logger.error(f"Load failed: {e}")
            return False

        result = self.exporter.render(asset, self.edit_state, export_from_raw=self.export_from_raw)
        # One developed raw buffer per file is enough
        self.exporter.cache.discard(asset.asset_id)
        if not result.ok:
            file_logger.error("Render produced no image")
            return False
        return file_io.save_image(result.image, self.output_path_for(input_path),
                                  quality=self.quality, logger=file_logger)

    def run(self, paths: List[str], progress: Optional[ProgressCallback] = None) -> BatchSummary:
        if not paths:
            return BatchSummary(0, 0, "Select at least one photo.", started=False)
        if not can_select(self.preset, self.premium_unlocked):
            return BatchSummary(0, 0, "Selected preset requires Pro.", started=False)

        os.makedirs(self.output_dir, exist_ok=True)
        logger.info(f"[Batch] {len(paths)} files with {self.preset.value} -> {self.output_dir}")

        processed = 0
        failed = 0
        total = len(paths)
        for index, path in enumerate(paths):
            if self._cancel.is_set():
                break
            if self.process_one(path):
                processed += 1
            else:
                failed += 1
            if progress is not None:
                progress(index + 1, total)

        summary = BatchSummary(processed, failed, summary_message(processed, failed))
        logger.info(f"[Batch] {summary.message}")
        return summary


class BatchWorker(QThread):
    """
    Runs a BatchExporter off the UI thread
    """
    progress_update = Signal(int, int)
    finished_batch = Signal(object)  # BatchSummary

    def __init__(self, exporter: BatchExporter, paths: List[str]):
        super().__init__()
        self.exporter = exporter
        self.paths = list(paths)
        self.summary: Optional[BatchSummary] = None

    def stop(self):
        self.exporter.cancel()

    def run(self):
        self.summary = self.exporter.run(self.paths, progress=self.progress_update.emit)
        self.finished_batch.emit(self.summary)
