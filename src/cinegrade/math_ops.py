from numba import njit
import numpy as np

# =========================================================
# Numba JIT kernels (in-place, no allocation)
# =========================================================

# All kernels operate on a contiguous float32 (H, W, C) buffer with C >= 3.
# Channel 3 (alpha), when present, is never touched.
# Callers own the buffer: the public wrappers in utils.py always pass a private copy.


@njit(cache=True)
def apply_affine_matrix_inplace(img, matrix):
    rows, cols, channels = img.shape
    n_pixels = rows * cols

    flat_img = img.reshape(n_pixels, channels)

    # Preload the 3x4 coefficients (last column is the constant bias)
    m00, m01, m02, b0 = matrix[0, 0], matrix[0, 1], matrix[0, 2], matrix[0, 3]
    m10, m11, m12, b1 = matrix[1, 0], matrix[1, 1], matrix[1, 2], matrix[1, 3]
    m20, m21, m22, b2 = matrix[2, 0], matrix[2, 1], matrix[2, 2], matrix[2, 3]

    for i in range(n_pixels):
        r = flat_img[i, 0]
        g = flat_img[i, 1]
        b = flat_img[i, 2]

        flat_img[i, 0] = r * m00 + g * m01 + b * m02 + b0
        flat_img[i, 1] = r * m10 + g * m11 + b * m12 + b1
        flat_img[i, 2] = r * m20 + g * m21 + b * m22 + b2


@njit(cache=True)
def apply_color_controls_inplace(img, saturation, contrast, brightness, pivot, luma_coeffs):
    rows, cols, _ = img.shape
    cr, cg, cb = luma_coeffs[0], luma_coeffs[1], luma_coeffs[2]

    for r in range(rows):
        for c in range(cols):
            r_val = img[r, c, 0]
            g_val = img[r, c, 1]
            b_val = img[r, c, 2]

            lum = r_val * cr + g_val * cg + b_val * cb

            r_sat = lum + (r_val - lum) * saturation
            g_sat = lum + (g_val - lum) * saturation
            b_sat = lum + (b_val - lum) * saturation

            r_fin = (r_sat - pivot) * contrast + pivot + brightness
            g_fin = (g_sat - pivot) * contrast + pivot + brightness
            b_fin = (b_sat - pivot) * contrast + pivot + brightness

            if r_fin < 0.0: r_fin = 0.0
            if g_fin < 0.0: g_fin = 0.0
            if b_fin < 0.0: b_fin = 0.0

            img[r, c, 0] = r_fin
            img[r, c, 1] = g_fin
            img[r, c, 2] = b_fin


@njit(cache=True)
def apply_channel_gain_inplace(img, r_gain, g_gain, b_gain):
    rows, cols, _ = img.shape
    for r in range(rows):
        for c in range(cols):
            img[r, c, 0] *= r_gain
            img[r, c, 1] *= g_gain
            img[r, c, 2] *= b_gain


@njit(cache=True)
def apply_highlight_shadow_inplace(img, highlight, shadow, luma_coeffs):
    rows, cols, _ = img.shape
    cr, cg, cb = luma_coeffs[0], luma_coeffs[1], luma_coeffs[2]

    for r in range(rows):
        for c in range(cols):
            r_v = img[r, c, 0]
            g_v = img[r, c, 1]
            b_v = img[r, c, 2]

            lum = r_v * cr + g_v * cg + b_v * cb
            if lum < 0.0:
                lum = 0.0
            elif lum > 1.0:
                lum = 1.0

            if shadow != 0.0:
                mask = 1.0 - lum
                factor = 1.0 + shadow * (mask * mask * mask)
                if factor < 0.0:
                    factor = 0.0
                r_v *= factor
                g_v *= factor
                b_v *= factor

            if highlight != 0.0:
                # Weight concentrates near white: (1 - lum)^3 roll-off keeps the darks untouched
                t = 1.0 - lum
                factor = 1.0 + highlight * (1.0 - t * t * t)
                if factor < 0.0:
                    factor = 0.0
                r_v *= factor
                g_v *= factor
                b_v *= factor

            if r_v < 0.0: r_v = 0.0
            if g_v < 0.0: g_v = 0.0
            if b_v < 0.0: b_v = 0.0

            img[r, c, 0] = r_v
            img[r, c, 1] = g_v
            img[r, c, 2] = b_v


@njit(cache=True)
def apply_gain_inplace(img, gain):
    rows, cols, _ = img.shape
    for r in range(rows):
        for c in range(cols):
            img[r, c, 0] *= gain
            img[r, c, 1] *= gain
            img[r, c, 2] *= gain


@njit(cache=True)
def apply_overlay_blend_inplace(img, layer, alpha):
    """Overlay a single-channel layer onto RGB, mixed in with constant alpha."""
    rows, cols, _ = img.shape
    for r in range(rows):
        for c in range(cols):
            n = layer[r, c]
            for ch in range(3):
                base = img[r, c, ch]
                if base < 0.5:
                    blended = 2.0 * base * n
                else:
                    blended = 1.0 - 2.0 * (1.0 - base) * (1.0 - n)
                img[r, c, ch] = base + (blended - base) * alpha


@njit(cache=True)
def apply_mask_mix_inplace(img, other, mask):
    """img = other where mask == 1, img where mask == 0, linear in between."""
    rows, cols, _ = img.shape
    for r in range(rows):
        for c in range(cols):
            m = mask[r, c]
            if m == 0.0:
                continue
            for ch in range(3):
                img[r, c, ch] = img[r, c, ch] + (other[r, c, ch] - img[r, c, ch]) * m


def warmup():
    """Compile every kernel once on a tiny buffer so the first interactive render is not stalled."""
    img = np.full((2, 2, 4), 0.5, dtype=np.float32)
    luma = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)
    layer = np.full((2, 2), 0.5, dtype=np.float32)

    apply_affine_matrix_inplace(img, np.eye(3, 4, dtype=np.float64))
    apply_color_controls_inplace(img, 1.0, 1.0, 0.0, 0.5, luma)
    apply_channel_gain_inplace(img, 1.0, 1.0, 1.0)
    apply_highlight_shadow_inplace(img, 0.0, 0.0, luma)
    apply_gain_inplace(img, 1.0)
    apply_overlay_blend_inplace(img, layer, 0.0)
    apply_mask_mix_inplace(img, img.copy(), np.zeros((2, 2), dtype=np.float32))
