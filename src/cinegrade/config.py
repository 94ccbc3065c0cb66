"""
Static configuration tables and user preferences.
"""
import json
import os
from pathlib import Path
from typing import Optional

from loguru import logger

# =========================================================
# Numeric contracts
# =========================================================

EPSILON = 1e-4

EXPOSURE_RANGE = (-2.0, 2.0)
ADJUSTMENT_RANGE = (-1.0, 1.0)     # contrast / shadows / highlights
CROP_OFFSET_RANGE = (-1.0, 1.0)

SHADOW_AMOUNT_RANGE = (-1.0, 2.0)
HIGHLIGHT_AMOUNT_RANGE = (0.0, 2.0)

GRAIN_AMOUNT_RANGE = (0.0, 0.45)
GRAIN_SIZE_RANGE = (0.7, 2.4)
GRAIN_SEED = 20490

# Displacement per unit of aberration amount, as a fraction of half the extent
CHROMATIC_ABERRATION_SCALE = 0.0015

BLOOM_THRESHOLD = 0.6

HUE_MASK_LEVELS = 64

# Longest edge caps for ingested buffers
PREVIEW_MAX_DIMENSION = 1800
FULL_RES_MAX_DIMENSION = 4032

JPEG_QUALITY_RANGE = (70, 100)
JPEG_QUALITY_STEP = 5
DEFAULT_JPEG_QUALITY = 95

SUPPORTED_RAW_EXTENSIONS = {
    '.dng', '.cr2', '.cr3', '.nef', '.arw', '.raf', '.orf', '.rw2', '.pef', '.srw',
}
SUPPORTED_IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.tif', '.tiff', '.heic', '.heif', '.webp'}

# =========================================================
# Crop options: name -> (ratio, force_horizontal)
# =========================================================

CROP_OPTIONS = {
    'original': (None, False),
    '4:5': (4.0 / 5.0, False),
    '21:9': (21.0 / 9.0, True),
}

# =========================================================
# Flat baseline buckets
# =========================================================
# Hand-tuned membership, kept as data. Presets not listed fall into 'default'.

BASELINE_BUCKETS = {
    'dark': ('sinCity', 'theBatman', 'seven', 'orderOfPhoenix', 'revenant'),
    'dramatic': ('matrix', 'bladeRunner2049', 'strangerThings', 'dune', 'drive', 'madMax', 'hero', 'vertigo'),
}

# bucket -> (shadow_lift, highlight_rolloff, black_lift, contrast)
BASELINE_SETTINGS = {
    'dark': (0.45, 0.82, 0.050, 0.90),
    'dramatic': (0.35, 0.88, 0.035, 0.93),
    'default': (0.25, 0.94, 0.025, 0.96),
}

# =========================================================
# User preferences (~/.cinegrade/config.json)
# =========================================================

DEFAULT_PREFERENCES = {
    'export_jpeg_quality': DEFAULT_JPEG_QUALITY,
    'export_from_raw': True,
}


def get_app_dir() -> Path:
    """Application data directory, overridable with CINEGRADE_HOME."""
    override = os.environ.get('CINEGRADE_HOME')
    if override:
        return Path(override)
    return Path.home() / ".cinegrade"


def get_config_path() -> Path:
    return get_app_dir() / "config.json"


def load_preferences(path: Optional[Path] = None) -> dict:
    """Load preferences, falling back to defaults for missing keys or an unreadable file."""
    path = Path(path) if path else get_config_path()
    prefs = dict(DEFAULT_PREFERENCES)
    if not path.exists():
        return prefs
    try:
        with open(path, 'r', encoding='utf-8') as f:
            stored = json.load(f)
        if isinstance(stored, dict):
            prefs.update({k: v for k, v in stored.items() if k in DEFAULT_PREFERENCES})
    except (OSError, ValueError) as e:
        logger.warning(f"[Config] Could not read preferences {path}: {e}")
    return prefs


def save_preferences(prefs: dict, path: Optional[Path] = None) -> None:
    path = Path(path) if path else get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    merged = dict(DEFAULT_PREFERENCES)
    merged.update({k: v for k, v in prefs.items() if k in DEFAULT_PREFERENCES})
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(merged, f, indent=2)
