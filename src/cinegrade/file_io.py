"""
Image input/output.
Decodes sources into SourceAsset buffers and saves graded images by extension.
"""
import io
import math
import os
from typing import Optional

import numpy as np
import pillow_heif
import rawpy
import tifffile
from PIL import Image, ImageOps

from cinegrade import config, utils
from cinegrade.errors import SourceLoadError
from cinegrade.logger import Logger
from cinegrade.pipeline.request import SourceAsset

pillow_heif.register_heif_opener()


# =========================================================
# Decoding
# =========================================================

def downscale(img: np.ndarray, max_dimension: int) -> np.ndarray:
    """Lanczos-resize so the longest edge is at most `max_dimension`."""
    h, w = utils.extent_of(img)
    longest = max(h, w)
    if longest <= max_dimension or longest == 0:
        return img
    scale = max_dimension / longest
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))

    channels = []
    for c in range(img.shape[2]):
        plane = Image.fromarray(np.ascontiguousarray(img[..., c], dtype=np.float32))
        plane = plane.resize((new_w, new_h), Image.Resampling.LANCZOS)
        channels.append(np.asarray(plane, dtype=np.float32))
    return np.clip(np.stack(channels, axis=-1), 0.0, 1.0)


def asset_from_array(img: np.ndarray, name: str = "untitled",
                     raw_payload: Optional[bytes] = None) -> SourceAsset:
    """
    Build a SourceAsset from an upright, display-referred buffer.
    Produces the capped full-resolution buffer and the smaller preview buffer.
    """
    if utils.is_degenerate(img):
        raise SourceLoadError(f"{name}: image has no pixels")
    rgba = utils.ensure_rgba(np.asarray(img, dtype=np.float32))
    full_res = downscale(rgba, config.FULL_RES_MAX_DIMENSION)
    preview = downscale(full_res, config.PREVIEW_MAX_DIMENSION)
    return SourceAsset(preview=preview, full_res=full_res, raw_payload=raw_payload, name=name)


def _pil_to_array(pil_img: Image.Image) -> np.ndarray:
    pil_img = ImageOps.exif_transpose(pil_img)
    if pil_img.mode in ('I;16', 'I;16B', 'I;16L', 'I'):
        mono = np.asarray(pil_img, dtype=np.float32) / 65535.0
        rgba = np.ones(mono.shape + (4,), dtype=np.float32)
        rgba[..., :3] = mono[..., None]
        return np.clip(rgba, 0.0, 1.0)
    return np.asarray(pil_img.convert('RGBA'), dtype=np.float32) / 255.0


def develop_raw(payload: bytes, half_size: bool = False) -> np.ndarray:
    """
    Develop raw sensor data into an upright, display-referred RGBA buffer.
    Orientation comes from the raw metadata (user_flip=None).
    """
    with rawpy.imread(io.BytesIO(payload)) as raw:
        rgb = raw.postprocess(
            use_camera_wb=True,
            use_auto_wb=False,
            no_auto_bright=False,
            output_bps=16,
            output_color=rawpy.ColorSpace.sRGB,
            highlight_mode=2,
            half_size=half_size,
            user_flip=None,
        )
    img = (rgb / 65535.0).astype(np.float32)
    del rgb
    return utils.ensure_rgba(img)


def load_source(path: str, logger: Optional[Logger] = None) -> SourceAsset:
    """
    Decode the file at `path`.
    Raw files keep their payload so exports can be developed from sensor data.
    """
    if logger is None:
        from cinegrade.logger import create_logger
        logger = create_logger(os.path.basename(path))

    name = os.path.basename(path)
    ext = os.path.splitext(path)[1].lower()
    try:
        if ext in config.SUPPORTED_RAW_EXTENSIONS:
            with open(path, 'rb') as f:
                payload = f.read()
            # Display buffers come from a half-size develop; exports re-develop at full size
            img = develop_raw(payload, half_size=True)
            logger.info(f"Loaded raw {img.shape[1]}x{img.shape[0]} (half size)")
            return asset_from_array(img, name=name, raw_payload=payload)

        with Image.open(path) as pil_img:
            img = _pil_to_array(pil_img)
        logger.info(f"Loaded {img.shape[1]}x{img.shape[0]}")
        return asset_from_array(img, name=name)
    except SourceLoadError:
        raise
    except Exception as e:
        raise SourceLoadError(f"Failed to load {path}: {e}") from e


# =========================================================
# Encoding
# =========================================================

def normalize_jpeg_quality(value) -> int:
    """Clamp to the supported range and snap to the slider step (83 -> 85)."""
    low, high = config.JPEG_QUALITY_RANGE
    step = config.JPEG_QUALITY_STEP
    value = min(max(float(value), low), high)
    return int(math.floor(value / step + 0.5) * step)


def save_image(
    img: np.ndarray,
    output_path: str,
    quality: int = config.DEFAULT_JPEG_QUALITY,
    logger: Optional[Logger] = None,
) -> bool:
    """
    Save to `output_path`, picking the format from the extension.

    Args:
        img: (H, W, 3|4) float32 in 0..1; alpha is dropped
        output_path: destination path
        quality: JPEG/HEIF quality, normalized to the supported range
        logger: log handler

    Returns:
        bool: whether the file was written
    """
    if logger is None:
        from cinegrade.logger import create_logger
        logger = create_logger()

    if utils.is_degenerate(img):
        logger.error(f"Nothing to save for {output_path}")
        return False

    rgb = np.ascontiguousarray(utils.rasterize(img)[..., :3])
    file_ext = os.path.splitext(output_path)[1].lower()
    quality = normalize_jpeg_quality(quality)

    try:
        if file_ext in ['.tif', '.tiff']:
            _save_tiff(rgb, output_path, logger)
        elif file_ext in ['.heic', '.heif']:
            _save_heif(rgb, output_path, quality, logger)
        else:
            _save_jpeg_or_other(rgb, output_path, file_ext, quality, logger)

        logger.info(f"Saved: {output_path}")
        return True

    except Exception as e:
        logger.error(f"Failed to save file: {e}")
        return False


def _save_tiff(img: np.ndarray, output_path: str, logger: Logger):
    """16-bit TIFF"""
    logger.debug("Format: TIFF (16-bit, ZLIB)")
    output_image_uint16 = np.round(img * 65535).astype(np.uint16)

    tifffile.imwrite(
        output_path,
        output_image_uint16,
        photometric='rgb',
        compression='zlib',
        predictor=2,
        compressionargs={'level': 8}
    )


def _save_heif(img: np.ndarray, output_path: str, quality: int, logger: Logger):
    """10-bit HEIF"""
    logger.debug("Format: HEIF (10-bit)")
    output_image_uint16 = np.round(img * 65535).astype(np.uint16)

    heif_file = pillow_heif.from_bytes(
        mode='RGB;16',
        size=(output_image_uint16.shape[1], output_image_uint16.shape[0]),
        data=output_image_uint16.tobytes()
    )
    heif_file.save(output_path, quality=quality, bit_depth=10)


def _save_jpeg_or_other(img: np.ndarray, output_path: str, file_ext: str, quality: int, logger: Logger):
    """8-bit JPEG, PNG, WebP..."""
    logger.debug(f"Format: {file_ext.upper()} (8-bit)")
    output_image_uint8 = utils.to_uint8(img)

    save_params = {}
    if file_ext in ['.jpg', '.jpeg']:
        save_params = {
            'quality': quality,
            'subsampling': 0 if quality >= 90 else 2,
            'optimize': True
        }
    elif file_ext == '.webp':
        save_params = {'quality': quality}

    Image.fromarray(output_image_uint8).save(output_path, **save_params)
