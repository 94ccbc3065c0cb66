"""
Full-resolution export rendering.

Source priority: developed raw (when enabled and present) > full-res buffer > preview buffer.
If the graph yields nothing, the ungraded full-res buffer is returned instead, and with
no source at all the last published preview stands in.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from loguru import logger

from cinegrade import core, file_io, utils
from cinegrade.pipeline.cache_manager import CachedImage, ImageCacheManager
from cinegrade.pipeline.request import EditState, SourceAsset


@dataclass(frozen=True)
class ExportResult:
    image: Optional[np.ndarray]
    source: str  # raw | full | preview | last_preview | fallback | none

    @property
    def ok(self) -> bool:
        return self.image is not None


class ExportRenderer:
    def __init__(self, cache: Optional[ImageCacheManager] = None,
                 render_func: Callable[[np.ndarray, EditState], np.ndarray] = core.build):
        self.cache = cache if cache is not None else ImageCacheManager()
        self.render_func = render_func

    def developed_raw(self, asset: SourceAsset) -> Optional[np.ndarray]:
        """Developed raw buffer for `asset`, cached by asset id. None if development fails."""
        if not asset.has_raw:
            return None
        cached = self.cache.get(asset.asset_id)
        if cached is not None:
            return cached.data
        try:
            data = file_io.develop_raw(asset.raw_payload)
        except Exception as e:
            logger.warning(f"[Export] Raw development failed for {asset.name}: {e}")
            return None
        data.setflags(write=False)
        self.cache.put(asset.asset_id, CachedImage(asset.asset_id, data))
        return data

    def select_source(self, asset: SourceAsset, export_from_raw: bool = True) -> Tuple[Optional[np.ndarray], str]:
        if export_from_raw and asset.has_raw:
            developed = self.developed_raw(asset)
            if developed is not None:
                return developed, "raw"
        if asset.full_res is not None:
            return asset.full_res, "full"
        if asset.preview is not None:
            return asset.preview, "preview"
        return None, "none"

    def render(self, asset: Optional[SourceAsset], edit_state: EditState,
               export_from_raw: bool = True,
               last_preview: Optional[np.ndarray] = None) -> ExportResult:
        source, label = (None, "none") if asset is None else self.select_source(asset, export_from_raw)

        if source is None:
            if last_preview is not None:
                logger.info("[Export] No source buffers, using last preview")
                return ExportResult(utils.rasterize(last_preview), "last_preview")
            logger.error("[Export] Nothing to export")
            return ExportResult(None, "none")

        try:
            out = self.render_func(source, edit_state)
        except Exception as e:
            logger.error(f"[Export] Render failed: {e}")
            out = None

        if not utils.is_degenerate(out):
            logger.info(f"[Export] Rendered {out.shape[1]}x{out.shape[0]} from {label}")
            return ExportResult(utils.rasterize(out), label)

        fallback = asset.full_res if asset.full_res is not None else source
        if utils.is_degenerate(fallback):
            logger.error("[Export] Source has no pixels")
            return ExportResult(None, "none")
        logger.warning("[Export] Graph produced no image, exporting ungraded buffer")
        return ExportResult(utils.rasterize(fallback), "fallback")
