"""
Filter graph builder: maps (input image, edit state) to the graded output.

Stage order is fixed:
    1. preset grade + flat baseline   (when grading is applied)
    2. exposure
    3. contrast
    4. shadows / highlights
    5. crop
    6. finishing effects              (when grading is applied)

Finishing sees the cropped frame.
"""
from typing import Tuple

import numpy as np
from loguru import logger

from cinegrade import config, utils
from cinegrade.pipeline.request import EditState
from cinegrade.presets import apply_finishing, apply_preset, get_preset


def offset_crop(img: np.ndarray, target_ratio: float, force_horizontal: bool,
                offset: Tuple[float, float] = (0.0, 0.0)) -> np.ndarray:
    """
    Crop to the largest centered window at `target_ratio`, panned by `offset`.

    The ratio is swapped (1 / ratio) when that is closer to the image's own
    orientation, unless `force_horizontal` pins the wide variant. `offset` is
    normalized to -1..1 of half the slack on the unconstrained axis; buffers are
    top-down, so positive y moves the window toward the bottom of the picture.
    """
    if utils.is_degenerate(img) or target_ratio is None or target_ratio <= 0:
        return img
    h, w = utils.extent_of(img)
    current_ratio = w / h

    if force_horizontal:
        desired_ratio = max(target_ratio, 1.0 / target_ratio)
    else:
        swapped = 1.0 / target_ratio
        if abs(current_ratio - target_ratio) <= abs(current_ratio - swapped):
            desired_ratio = target_ratio
        else:
            desired_ratio = swapped

    # Already at the ratio up to pixel rounding
    if abs(w - h * desired_ratio) <= 0.5 or abs(h - w / desired_ratio) <= 0.5:
        return img

    off_x = float(np.clip(offset[0], *config.CROP_OFFSET_RANGE))
    off_y = float(np.clip(offset[1], *config.CROP_OFFSET_RANGE))

    if current_ratio > desired_ratio:
        new_w = max(1, int(round(h * desired_ratio)))
        center = (w - new_w) / 2.0
        left = int(round(center + off_x * center))
        left = min(max(left, 0), w - new_w)
        return img[:, left:left + new_w]

    new_h = max(1, int(round(w / desired_ratio)))
    center = (h - new_h) / 2.0
    top = int(round(center + off_y * center))
    top = min(max(top, 0), h - new_h)
    return img[top:top + new_h, :]


def build(image: np.ndarray, edit_state: EditState) -> np.ndarray:
    """Run the full filter graph. Stages that fail pass their input through."""
    if utils.is_degenerate(image):
        return image
    state = edit_state.clamped()
    eps = config.EPSILON
    out = utils.ensure_rgba(image)

    preset = get_preset(state.preset) if state.apply_preset else None
    if preset is not None:
        out = utils.run_stage("preset", apply_preset, out, preset.id)

    if abs(state.exposure) > eps:
        out = utils.run_stage("exposure", utils.exposure_adjust, out, state.exposure)

    if abs(state.contrast) > eps:
        out = utils.run_stage("contrast", utils.color_controls, out,
                              1.0, 1.0 + state.contrast * 0.5, 0.0)

    if abs(state.shadows) > eps or abs(state.highlights) > eps:
        out = utils.run_stage("shadows/highlights", utils.shadow_highlight_adjust, out,
                              state.shadows, 1.0 + state.highlights)

    if not state.crop.is_original:
        out = utils.run_stage("crop", offset_crop, out,
                              state.crop.ratio, state.crop.force_horizontal, state.crop_offset)

    if preset is not None:
        out = apply_finishing(out, preset.finish)

    logger.debug(f"[Graph] {image.shape[1]}x{image.shape[0]} -> {out.shape[1]}x{out.shape[0]}")
    return out
