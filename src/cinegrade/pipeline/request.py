import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

import numpy as np

from cinegrade import config
from cinegrade.presets import PresetId


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    return float(min(max(value, bounds[0]), bounds[1]))


@dataclass(frozen=True)
class CropMode:
    """Target aspect ratio (width / height), or None for the original framing."""
    ratio: Optional[float] = None
    force_horizontal: bool = False

    @property
    def is_original(self) -> bool:
        return self.ratio is None

    @classmethod
    def from_name(cls, name: str) -> 'CropMode':
        try:
            ratio, force_horizontal = config.CROP_OPTIONS[name]
        except KeyError:
            raise ValueError(f"Unknown crop option: {name!r}") from None
        return cls(ratio, force_horizontal)


@dataclass(frozen=True)
class EditState:
    """Everything the filter graph needs besides the source pixels."""
    preset: PresetId = PresetId.MATRIX
    apply_preset: bool = True
    exposure: float = 0.0
    contrast: float = 0.0
    shadows: float = 0.0
    highlights: float = 0.0
    crop: CropMode = CropMode()
    crop_offset: Tuple[float, float] = (0.0, 0.0)

    def clamped(self) -> 'EditState':
        return replace(
            self,
            preset=PresetId.parse(self.preset),
            exposure=_clamp(self.exposure, config.EXPOSURE_RANGE),
            contrast=_clamp(self.contrast, config.ADJUSTMENT_RANGE),
            shadows=_clamp(self.shadows, config.ADJUSTMENT_RANGE),
            highlights=_clamp(self.highlights, config.ADJUSTMENT_RANGE),
            crop_offset=(
                _clamp(self.crop_offset[0], config.CROP_OFFSET_RANGE),
                _clamp(self.crop_offset[1], config.CROP_OFFSET_RANGE),
            ),
        )

    def with_adjustments_reset(self) -> 'EditState':
        return replace(self, exposure=0.0, contrast=0.0, shadows=0.0, highlights=0.0)


def _freeze(buffer: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if buffer is None:
        return None
    buffer = np.array(buffer, dtype=np.float32, order='C')
    buffer.setflags(write=False)
    return buffer


@dataclass
class SourceAsset:
    """
    Decoded source image. Buffers are upright and read-only, so they can be
    handed to background renders without copying.
    """
    preview: Optional[np.ndarray] = None
    full_res: Optional[np.ndarray] = None
    raw_payload: Optional[bytes] = None
    name: str = "untitled"
    asset_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        self.preview = _freeze(self.preview)
        self.full_res = _freeze(self.full_res)

    @property
    def has_raw(self) -> bool:
        return bool(self.raw_payload)


@dataclass(frozen=True)
class RenderRequest:
    """Immutable render snapshot: generation tag, source pixels and a full EditState copy."""
    request_id: int
    generation: int
    source: np.ndarray
    edit_state: EditState
