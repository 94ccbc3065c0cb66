"""
Color transform library.

Pure operations on float32 RGBA buffers of shape (H, W, 4). Every function
returns a new buffer (or the input object itself when there is nothing to do)
and never writes into its argument. Zero-area inputs are returned unchanged.
"""
import math
from functools import lru_cache
from typing import Sequence, Tuple

import colour
import numpy as np
from loguru import logger
from scipy import ndimage
from scipy.interpolate import PchipInterpolator

from cinegrade import config
from cinegrade.math_ops import (
    apply_affine_matrix_inplace,
    apply_color_controls_inplace,
    apply_channel_gain_inplace,
    apply_highlight_shadow_inplace,
    apply_gain_inplace,
    apply_overlay_blend_inplace,
    apply_mask_mix_inplace,
)

WhitePoint = Tuple[float, float]  # (temperature in K, tint)


# =========================================================
# Buffer helpers
# =========================================================

def is_degenerate(img) -> bool:
    """True for missing buffers and zero-area extents."""
    return img is None or img.ndim < 2 or img.shape[0] == 0 or img.shape[1] == 0


def extent_of(img) -> Tuple[int, int]:
    return int(img.shape[0]), int(img.shape[1])


def _working_copy(img: np.ndarray) -> np.ndarray:
    # np.array always copies; kernels need C order float32
    return np.array(img, dtype=np.float32, order='C', copy=True)


def ensure_rgba(img: np.ndarray) -> np.ndarray:
    """Promote gray / RGB input to float32 RGBA with opaque alpha."""
    arr = np.asarray(img, dtype=np.float32)
    if arr.ndim == 2:
        arr = np.repeat(arr[:, :, None], 3, axis=2)
    if arr.shape[2] == 3:
        alpha = np.ones(arr.shape[:2] + (1,), dtype=np.float32)
        arr = np.concatenate([arr, alpha], axis=2)
    return np.ascontiguousarray(arr)


def crop_to_extent(img: np.ndarray, height: int, width: int) -> np.ndarray:
    """Take the centered (height, width) window of a symmetrically padded canvas."""
    if is_degenerate(img):
        return img
    h, w = extent_of(img)
    if (h, w) == (height, width):
        return img
    top = max(0, (h - height) // 2)
    left = max(0, (w - width) // 2)
    return img[top:top + height, left:left + width]


def rasterize(img: np.ndarray) -> np.ndarray:
    """Final pixel buffer: finite values clipped to [0, 1], contiguous float32."""
    out = np.nan_to_num(np.asarray(img, dtype=np.float32), nan=0.0, posinf=1.0, neginf=0.0)
    return np.ascontiguousarray(np.clip(out, 0.0, 1.0))


def to_uint8(img: np.ndarray) -> np.ndarray:
    return (rasterize(img) * 255.0 + 0.5).astype(np.uint8)


def run_stage(name: str, func, img: np.ndarray, *args, **kwargs) -> np.ndarray:
    """
    Run one pipeline stage, passing the input through if the stage cannot produce output.
    A dropped stage is logged, never raised: previews are best effort.
    """
    try:
        result = func(img, *args, **kwargs)
    except Exception as e:
        logger.warning(f"[Stage] {name} failed, passing input through: {e}")
        return img
    if result is None or is_degenerate(result):
        logger.debug(f"[Stage] {name} produced no output, passing input through")
        return img
    return result


@lru_cache(maxsize=1)
def get_luminance_coeffs() -> np.ndarray:
    """RGB -> Y coefficients of the sRGB colourspace (second row of RGB_to_XYZ)."""
    coeffs = colour.RGB_COLOURSPACES['sRGB'].matrix_RGB_to_XYZ[1, :].astype(np.float32)
    coeffs.setflags(write=False)
    return coeffs


def luminance(img: np.ndarray) -> np.ndarray:
    return img[:, :, :3] @ get_luminance_coeffs()


# =========================================================
# Color operations
# =========================================================

def affine_color_matrix(img: np.ndarray, matrix) -> np.ndarray:
    """
    Per-pixel channel recombination plus a constant bias.

    Args:
        matrix: 3x4 coefficients, row i produces output channel i from (r, g, b, 1)
    """
    if is_degenerate(img):
        return img
    m = np.asarray(matrix, dtype=np.float64)
    if m.shape == (3, 3):
        m = np.hstack([m, np.zeros((3, 1))])
    if m.shape != (3, 4):
        raise ValueError(f"color matrix must be 3x4, got {m.shape}")
    out = _working_copy(img)
    apply_affine_matrix_inplace(out, np.ascontiguousarray(m))
    return out


def color_controls(img: np.ndarray, saturation: float = 1.0, contrast: float = 1.0,
                   brightness: float = 0.0) -> np.ndarray:
    """Saturation around luma, contrast around 0.5, then a constant brightness offset."""
    if is_degenerate(img):
        return img
    out = _working_copy(img)
    apply_color_controls_inplace(
        out, float(saturation), float(contrast), float(brightness), 0.5, get_luminance_coeffs()
    )
    return out


@lru_cache(maxsize=64)
def _tone_curve_table(points: Tuple[Tuple[float, float], ...], size: int = 1024) -> np.ndarray:
    xs = np.array([p[0] for p in points], dtype=np.float64)
    ys = np.array([p[1] for p in points], dtype=np.float64)
    if np.any(np.diff(xs) <= 0):
        raise ValueError("tone curve x coordinates must be strictly increasing")
    if np.any(np.diff(ys) < 0):
        raise ValueError("tone curve must be monotonic")
    # PCHIP preserves monotonicity, so no overshoot between control points
    curve = PchipInterpolator(xs, ys)
    table = curve(np.linspace(0.0, 1.0, size)).astype(np.float32)
    table.setflags(write=False)
    return table


def tone_curve(img: np.ndarray, points: Sequence[Tuple[float, float]]) -> np.ndarray:
    """
    Monotonic remap of RGB through 5 control points at x = 0, 0.25, 0.5, 0.75, 1.

    Args:
        points: five (x, y) pairs
    """
    if is_degenerate(img):
        return img
    key = tuple((float(x), float(y)) for x, y in points)
    if len(key) != 5:
        raise ValueError("tone curve takes exactly 5 control points")
    table = _tone_curve_table(key)
    grid = np.linspace(0.0, 1.0, table.shape[0], dtype=np.float32)

    out = _working_copy(img)
    rgb = out[:, :, :3]
    mapped = np.interp(rgb, grid, table)
    # Above white the curve continues at unit slope
    out[:, :, :3] = np.where(rgb > 1.0, rgb - 1.0 + table[-1], mapped).astype(np.float32)
    return out


def _white_rgb(temperature: float, tint: float) -> np.ndarray:
    """Linear sRGB of a white at the given CCT, tint expressed as Duv * 3000."""
    uv = colour.temperature.CCT_to_uv_Ohno2013(np.array([temperature, tint / 3000.0]))
    xy = colour.UCS_uv_to_xy(uv)
    XYZ = colour.xy_to_XYZ(xy)
    rgb = colour.RGB_COLOURSPACES['sRGB'].matrix_XYZ_to_RGB @ XYZ
    return np.maximum(rgb, 1e-4)


@lru_cache(maxsize=64)
def white_point_gains(source: WhitePoint, target: WhitePoint) -> Tuple[float, float, float]:
    """
    Per-channel gains that re-balance `source` white as `target`.

    A target hotter than the source warms the image; a positive target tint pushes magenta.
    Gains are normalized on green so overall brightness is roughly kept.
    """
    gains = _white_rgb(*source) / _white_rgb(*target)
    gains = gains / gains[1]
    return float(gains[0]), float(gains[1]), float(gains[2])


def temperature_tint(img: np.ndarray, source_white: WhitePoint, target_white: WhitePoint) -> np.ndarray:
    if is_degenerate(img):
        return img
    r_gain, g_gain, b_gain = white_point_gains(
        (float(source_white[0]), float(source_white[1])),
        (float(target_white[0]), float(target_white[1])),
    )
    out = _working_copy(img)
    apply_channel_gain_inplace(out, r_gain, g_gain, b_gain)
    return out


def shadow_highlight_adjust(img: np.ndarray, shadow_amount: float = 0.0,
                            highlight_amount: float = 1.0) -> np.ndarray:
    """
    Global shadow lift and highlight compression.

    Args:
        shadow_amount: -1 .. 2, 0 is neutral, positive lifts the shadows
        highlight_amount: 0 .. 2, 1 is neutral, below 1 compresses the highlights
    """
    if is_degenerate(img):
        return img
    shadow = float(np.clip(shadow_amount, *config.SHADOW_AMOUNT_RANGE))
    highlight = float(np.clip(highlight_amount, *config.HIGHLIGHT_AMOUNT_RANGE))
    if abs(shadow) < config.EPSILON and abs(highlight - 1.0) < config.EPSILON:
        return img
    out = _working_copy(img)
    apply_highlight_shadow_inplace(out, (highlight - 1.0) * 0.5, shadow, get_luminance_coeffs())
    return out


def exposure_adjust(img: np.ndarray, stops: float) -> np.ndarray:
    """Multiply RGB by 2^stops."""
    if is_degenerate(img):
        return img
    out = _working_copy(img)
    apply_gain_inplace(out, float(2.0 ** stops))
    return out


# =========================================================
# Spatial generators and finishing effects
# =========================================================

def radial_mask(extent: Tuple[int, int], radius0: float, radius1: float,
                inner_luma: float = 1.0, outer_luma: float = 0.0,
                scale: Tuple[float, float] = (1.0, 1.0)) -> np.ndarray:
    """
    Soft radial gradient centered on the extent.

    `inner_luma` inside radius0, `outer_luma` beyond radius1, smoothstep in between.
    `scale` stretches the x / y axes independently to make the falloff elliptical.
    """
    h, w = int(extent[0]), int(extent[1])
    if h <= 0 or w <= 0:
        return np.zeros((max(h, 0), max(w, 0)), dtype=np.float32)

    cy, cx = (h - 1) / 2.0, (w - 1) / 2.0
    yy, xx = np.ogrid[:h, :w]
    dx = (xx - cx) / max(scale[0], 1e-6)
    dy = (yy - cy) / max(scale[1], 1e-6)
    dist = np.sqrt(dx * dx + dy * dy)

    t = np.clip((dist - radius0) / max(radius1 - radius0, 1e-6), 0.0, 1.0)
    t = t * t * (3.0 - 2.0 * t)
    return (inner_luma + (outer_luma - inner_luma) * t).astype(np.float32)


def vignette(img: np.ndarray, strength: float, softness: float) -> np.ndarray:
    """Darken toward the frame edges along an ellipse matching the frame aspect."""
    if is_degenerate(img) or strength <= config.EPSILON:
        return img
    h, w = extent_of(img)
    short = float(min(h, w))
    scale = (w / short, h / short)
    radius1 = 0.5 * short * math.sqrt(2.0)
    radius0 = radius1 * max(0.05, 0.9 - 0.7 * float(np.clip(softness, 0.0, 1.0)))
    mask = radial_mask((h, w), radius0, radius1, 1.0, max(0.0, 1.0 - strength), scale)

    out = _working_copy(img)
    out[:, :, :3] *= mask[:, :, None]
    return out


def bloom(img: np.ndarray, intensity: float, radius: float) -> np.ndarray:
    """
    Glow around bright areas.

    The result is a canvas padded by ceil(3 * radius) on every side, since the
    blurred glow spills past the original frame. Callers crop back to the extent.
    """
    if is_degenerate(img) or intensity <= config.EPSILON or radius <= config.EPSILON:
        return img
    h, w = extent_of(img)
    pad = int(math.ceil(3.0 * radius))
    threshold = config.BLOOM_THRESHOLD

    weight = np.clip((luminance(img) - threshold) / (1.0 - threshold), 0.0, 1.0)
    bright = img[:, :, :3] * weight[:, :, None]

    glow = np.zeros((h + 2 * pad, w + 2 * pad, 3), dtype=np.float32)
    glow[pad:pad + h, pad:pad + w] = bright
    glow = ndimage.gaussian_filter(glow, sigma=(radius, radius, 0), mode='constant')

    canvas = np.zeros((h + 2 * pad, w + 2 * pad, img.shape[2]), dtype=np.float32)
    canvas[pad:pad + h, pad:pad + w] = img
    canvas[:, :, :3] += glow * float(intensity)
    return canvas


def _scale_channel(channel: np.ndarray, factor: float, out_shape: Tuple[int, int]) -> np.ndarray:
    """Scale a plane about its center onto a larger canvas sharing the same center."""
    h, w = channel.shape
    in_center = np.array([(h - 1) / 2.0, (w - 1) / 2.0])
    out_center = np.array([(out_shape[0] - 1) / 2.0, (out_shape[1] - 1) / 2.0])
    inv = 1.0 / factor
    offset = in_center - out_center * inv
    return ndimage.affine_transform(
        channel, np.array([inv, inv]), offset=offset, output_shape=out_shape,
        order=1, mode='nearest'
    )


def chromatic_aberration(img: np.ndarray, amount: float) -> np.ndarray:
    """
    Lateral color fringing: red scaled outward, blue inward, green untouched.

    Scale factors are 1 +/- 0.0015 * amount around the image center. The enlarged
    red plane needs a padded canvas; callers crop back to the extent.
    """
    if is_degenerate(img) or abs(amount) <= config.EPSILON:
        return img
    h, w = extent_of(img)
    delta = config.CHROMATIC_ABERRATION_SCALE * float(amount)
    pad = int(math.ceil(0.5 * max(h, w) * abs(delta))) + 1
    canvas_shape = (h + 2 * pad, w + 2 * pad)

    # Each channel is isolated on its own canvas, then the planes are summed
    red = np.zeros(canvas_shape + (img.shape[2],), dtype=np.float32)
    red[:, :, 0] = _scale_channel(img[:, :, 0], 1.0 + delta, canvas_shape)
    green = np.zeros_like(red)
    green[pad:pad + h, pad:pad + w, 1] = img[:, :, 1]
    blue = np.zeros_like(red)
    blue[:, :, 2] = _scale_channel(img[:, :, 2], 1.0 - delta, canvas_shape)

    out = red + green + blue
    if img.shape[2] > 3:
        out[pad:pad + h, pad:pad + w, 3] = img[:, :, 3]
    return out


def film_grain(img: np.ndarray, amount: float, size: float) -> np.ndarray:
    """
    Monochrome overlay grain.

    Args:
        amount: 0 .. 0.45, used as the overlay alpha
        size: 0.7 .. 2.4, grain cell size in pixels
    """
    amount = float(np.clip(amount, *config.GRAIN_AMOUNT_RANGE))
    size = float(np.clip(size, *config.GRAIN_SIZE_RANGE))
    if is_degenerate(img) or amount <= config.EPSILON:
        return img
    h, w = extent_of(img)

    # Fixed seed: the same frame always gets the same grain
    gh, gw = max(1, int(math.ceil(h / size))), max(1, int(math.ceil(w / size)))
    rng = np.random.default_rng(config.GRAIN_SEED)
    coarse = rng.random((gh, gw), dtype=np.float32)

    rows = np.minimum((np.arange(h) * gh) // h, gh - 1)
    cols = np.minimum((np.arange(w) * gw) // w, gw - 1)
    noise = coarse[rows][:, cols]
    if size > 1.0:
        noise = ndimage.gaussian_filter(noise, sigma=0.35 * size)

    std = float(noise.std())
    if std > 1e-6:
        noise = (noise - noise.mean()) / std * 0.18 + 0.5
    noise = np.clip(noise, 0.0, 1.0).astype(np.float32)

    out = _working_copy(img)
    apply_overlay_blend_inplace(out, np.ascontiguousarray(noise), amount)
    return out


# =========================================================
# Selective color
# =========================================================

@lru_cache(maxsize=2)
def hsv_cube(levels: int = config.HUE_MASK_LEVELS) -> np.ndarray:
    """(levels, levels, levels, 4) table of hue (deg), saturation, value, chroma per RGB cell."""
    axis = np.linspace(0.0, 1.0, levels, dtype=np.float32)
    r, g, b = np.meshgrid(axis, axis, axis, indexing='ij')
    maxc = np.maximum(np.maximum(r, g), b)
    minc = np.minimum(np.minimum(r, g), b)
    delta = maxc - minc

    safe = np.where(delta > 0, delta, 1.0)
    hue = np.where(
        maxc == r, ((g - b) / safe) % 6.0,
        np.where(maxc == g, (b - r) / safe + 2.0, (r - g) / safe + 4.0)
    ) * 60.0
    hue = np.where(delta > 0, hue, 0.0)
    sat = np.where(maxc > 0, delta / np.where(maxc > 0, maxc, 1.0), 0.0)

    cube = np.stack([hue, sat, maxc, delta], axis=-1).astype(np.float32)
    cube.setflags(write=False)
    return cube


@lru_cache(maxsize=16)
def _hue_mask_table(hue_center: float, hue_tolerance: float, min_saturation: float,
                    min_value: float, levels: int) -> np.ndarray:
    cube = hsv_cube(levels)
    hue, sat, val, chroma = cube[..., 0], cube[..., 1], cube[..., 2], cube[..., 3]
    distance = np.abs((hue - hue_center + 180.0) % 360.0 - 180.0)
    table = (chroma > 0) & (distance <= hue_tolerance) & (sat >= min_saturation) & (val >= min_value)
    table = table.astype(np.float32)
    table.setflags(write=False)
    return table


def hue_saturation_mask(img: np.ndarray, hue_center: float, hue_tolerance: float,
                        min_saturation: float, min_value: float) -> np.ndarray:
    """Binary (H, W) mask of pixels inside the hue band and above the saturation / value floors."""
    if is_degenerate(img):
        return np.zeros(img.shape[:2] if img is not None else (0, 0), dtype=np.float32)
    levels = config.HUE_MASK_LEVELS
    table = _hue_mask_table(float(hue_center) % 360.0, float(hue_tolerance),
                            float(min_saturation), float(min_value), levels)
    idx = np.clip(np.rint(img[:, :, :3] * (levels - 1)), 0, levels - 1).astype(np.intp)
    return table[idx[:, :, 0], idx[:, :, 1], idx[:, :, 2]]


def blend_with_mask(background: np.ndarray, foreground: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """foreground where mask is 1, background where mask is 0."""
    if is_degenerate(background):
        return background
    out = _working_copy(background)
    apply_mask_mix_inplace(
        out, np.ascontiguousarray(foreground, dtype=np.float32),
        np.ascontiguousarray(mask, dtype=np.float32)
    )
    return out
