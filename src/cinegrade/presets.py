"""
Preset catalog.

Each preset is data: an immutable PresetDefinition holding the coefficients of
its creative grade and, optionally, finishing settings. Applying a preset is
always the creative grade followed by the flat baseline stage.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from loguru import logger

from cinegrade import config, utils
from cinegrade.errors import UnknownPresetError

Matrix3x4 = Tuple[Tuple[float, float, float, float], ...]
WhiteShift = Tuple[Tuple[float, float], Tuple[float, float]]


class PresetId(str, Enum):
    MATRIX = 'matrix'
    BLADE_RUNNER_2049 = 'bladeRunner2049'
    STUDIO_CLEAN = 'studioClean'
    DAYLIGHT_RUN = 'daylightRun'
    SIN_CITY = 'sinCity'
    THE_BATMAN = 'theBatman'
    STRANGER_THINGS = 'strangerThings'
    DUNE = 'dune'
    DRIVE = 'drive'
    MAD_MAX = 'madMax'
    REVENANT = 'revenant'
    IN_THE_MOOD_FOR_LOVE = 'inTheMoodForLove'
    SEVEN = 'seven'
    VERTIGO = 'vertigo'
    ORDER_OF_PHOENIX = 'orderOfPhoenix'
    HERO = 'hero'
    LA_LA_LAND = 'laLaLand'

    @classmethod
    def parse(cls, text) -> 'PresetId':
        """Accept a PresetId, its raw value or its display title (case-insensitive)."""
        if isinstance(text, cls):
            return text
        needle = str(text).strip().lower()
        for preset_id in cls:
            if preset_id.value.lower() == needle or CATALOG[preset_id].title.lower() == needle:
                return preset_id
        raise UnknownPresetError(f"Unknown preset: {text!r}")


@dataclass(frozen=True)
class FinishSettings:
    grain_amount: float = 0.0
    grain_size: float = 1.0
    vignette_strength: float = 0.0
    vignette_softness: float = 0.5
    chromatic_aberration: float = 0.0
    bloom_intensity: float = 0.0
    bloom_radius: float = 0.0       # pixels at a 1000px long edge


@dataclass(frozen=True)
class SelectiveColor:
    """Keep one hue band in color, render everything else as hard monochrome."""
    hue_center: float
    hue_tolerance: float
    min_saturation: float
    min_value: float
    color_saturation: float = 1.35
    color_contrast: float = 1.25
    mono_contrast: float = 1.6
    mono_brightness: float = -0.05


@dataclass(frozen=True)
class PresetDefinition:
    id: PresetId
    title: str
    subtitle: str
    pro_locked: bool
    matrix: Optional[Matrix3x4] = None
    saturation: float = 1.0
    contrast: float = 1.0
    brightness: float = 0.0
    white_shift: Optional[WhiteShift] = None
    shadow_amount: float = 0.0
    highlight_amount: float = 1.0
    finish: Optional[FinishSettings] = None
    selective: Optional[SelectiveColor] = None


@dataclass(frozen=True)
class FlatBaselineSettings:
    shadow_lift: float
    highlight_rolloff: float
    black_lift: float
    contrast: float

    @classmethod
    def bucket_for(cls, preset_id: PresetId) -> str:
        for bucket, members in config.BASELINE_BUCKETS.items():
            if preset_id.value in members:
                return bucket
        return 'default'

    @classmethod
    def for_preset(cls, preset_id: PresetId) -> 'FlatBaselineSettings':
        return cls(*config.BASELINE_SETTINGS[cls.bucket_for(preset_id)])


_NEUTRAL = (6500.0, 0.0)


def _preset(preset_id, title, subtitle, locked=True, **params) -> PresetDefinition:
    return PresetDefinition(id=preset_id, title=title, subtitle=subtitle, pro_locked=locked, **params)


CATALOG = {p.id: p for p in (
    _preset(
        PresetId.MATRIX, "MathX", "Green cast, cool mids, high contrast", locked=False,
        matrix=((0.92, 0.05, 0.0, 0.0),
                (0.08, 1.05, 0.04, 0.0),
                (0.0, 0.08, 0.75, 0.0)),
        saturation=0.82, contrast=1.18, brightness=-0.01,
        white_shift=(_NEUTRAL, (5600.0, -15.0)),
    ),
    _preset(
        PresetId.BLADE_RUNNER_2049, "Runner 2094", "Orange highs, teal-purple shadows, wide range", locked=False,
        matrix=((1.08, 0.06, 0.0, 0.0),
                (0.02, 0.95, 0.08, 0.0),
                (0.0, 0.10, 0.88, 0.0)),
        saturation=1.1, contrast=1.20, brightness=0.03,
        white_shift=(_NEUTRAL, (7600.0, 22.0)),
    ),
    _preset(
        PresetId.STUDIO_CLEAN, "Studio Clean", "Neutral true color, lifted blacks, clean detail",
        saturation=1.02, contrast=1.04, brightness=0.01,
        shadow_amount=0.15, highlight_amount=0.95,
    ),
    _preset(
        PresetId.DAYLIGHT_RUN, "Daylight Run", "Film-inspired daylight pop, rich but natural color",
        matrix=((1.04, 0.0, -0.02, 0.0),
                (0.02, 1.02, 0.02, 0.0),
                (-0.02, 0.0, 0.98, 0.0)),
        saturation=1.12, contrast=1.08, brightness=0.02,
        white_shift=(_NEUTRAL, (6900.0, 4.0)),
        finish=FinishSettings(grain_amount=0.08, grain_size=1.1),
    ),
    _preset(
        PresetId.SIN_CITY, "Hell City", "Noir B&W, crushed shadows, hard contrast",
        contrast=1.1, brightness=-0.02,
        selective=SelectiveColor(hue_center=0.0, hue_tolerance=18.0, min_saturation=0.35, min_value=0.2),
        finish=FinishSettings(grain_amount=0.12, grain_size=1.4, vignette_strength=0.45, vignette_softness=0.5),
    ),
    _preset(
        PresetId.THE_BATMAN, "Darkman", "Dark desaturated tone, teal shadows, deep blacks",
        matrix=((0.90, 0.02, 0.0, -0.01),
                (0.05, 0.95, 0.10, 0.0),
                (0.0, 0.05, 1.02, 0.02)),
        saturation=0.72, contrast=1.22, brightness=-0.05,
        shadow_amount=-0.25, highlight_amount=0.9,
        finish=FinishSettings(grain_amount=0.06, grain_size=1.4, vignette_strength=0.35, vignette_softness=0.6),
    ),
    _preset(
        PresetId.STRANGER_THINGS, "Weird Things", "Amber highlights, teal shadows, vivid 80s tone",
        matrix=((1.10, 0.0, -0.02, 0.01),
                (0.04, 1.0, 0.10, 0.0),
                (0.0, 0.06, 0.92, 0.03)),
        saturation=1.18, contrast=1.15, brightness=0.01,
        white_shift=(_NEUTRAL, (7200.0, 6.0)),
        finish=FinishSettings(grain_amount=0.10, grain_size=1.6, vignette_strength=0.25,
                              vignette_softness=0.7, bloom_intensity=0.15, bloom_radius=6.0),
    ),
    _preset(
        PresetId.DUNE, "Arrakis Dust", "Dusty amber desert, cool shadows, soft haze",
        matrix=((1.06, 0.03, 0.0, 0.02),
                (0.08, 0.98, 0.04, 0.01),
                (0.0, 0.0, 0.82, 0.0)),
        saturation=0.86, contrast=1.06, brightness=0.03,
        white_shift=(_NEUTRAL, (8000.0, 10.0)),
        finish=FinishSettings(grain_amount=0.05, grain_size=1.2, bloom_intensity=0.12, bloom_radius=8.0),
    ),
    _preset(
        PresetId.DRIVE, "Night Drive", "Magenta-cyan neon, glossy blacks, night contrast",
        matrix=((1.05, 0.0, 0.06, 0.01),
                (0.0, 0.92, 0.08, 0.0),
                (0.10, 0.06, 1.06, 0.02)),
        saturation=1.2, contrast=1.25, brightness=-0.03,
        white_shift=(_NEUTRAL, (6000.0, 24.0)),
        finish=FinishSettings(vignette_strength=0.3, vignette_softness=0.6, chromatic_aberration=1.5,
                              bloom_intensity=0.25, bloom_radius=10.0),
    ),
    _preset(
        PresetId.MAD_MAX, "Fury Heat", "Aggressive orange-teal, gritty heat contrast",
        matrix=((1.14, 0.0, -0.04, 0.0),
                (0.06, 0.98, 0.12, 0.0),
                (0.0, 0.04, 0.86, 0.02)),
        saturation=1.25, contrast=1.3,
        white_shift=(_NEUTRAL, (8200.0, 8.0)),
        finish=FinishSettings(grain_amount=0.14, grain_size=1.8, vignette_strength=0.3, vignette_softness=0.5),
    ),
    _preset(
        PresetId.REVENANT, "Risen One", "Cold desaturated earth tones, natural drama",
        matrix=((0.94, 0.02, 0.0, 0.0),
                (0.04, 0.98, 0.04, 0.0),
                (0.02, 0.02, 1.04, 0.01)),
        saturation=0.7, contrast=1.1, brightness=-0.01,
        white_shift=(_NEUTRAL, (5600.0, -4.0)),
        finish=FinishSettings(vignette_strength=0.2, vignette_softness=0.7),
    ),
    _preset(
        PresetId.IN_THE_MOOD_FOR_LOVE, "Mood for Love", "Rich tungsten reds, jade greens, soft glow",
        matrix=((1.08, 0.0, 0.0, 0.02),
                (0.02, 1.02, 0.02, 0.0),
                (0.0, 0.04, 0.88, 0.0)),
        saturation=1.15, contrast=1.05, brightness=0.01,
        white_shift=(_NEUTRAL, (7400.0, 12.0)),
        finish=FinishSettings(grain_amount=0.06, grain_size=1.3, vignette_strength=0.3,
                              vignette_softness=0.8, bloom_intensity=0.2, bloom_radius=12.0),
    ),
    _preset(
        PresetId.SEVEN, "Seven Sins", "Bleach-bypass grit, cyan shadows, heavy grain",
        matrix=((0.92, 0.03, 0.02, 0.0),
                (0.06, 0.97, 0.08, 0.0),
                (0.02, 0.04, 0.98, 0.02)),
        saturation=0.55, contrast=1.35, brightness=-0.04,
        white_shift=(_NEUTRAL, (6100.0, -10.0)),
        finish=FinishSettings(grain_amount=0.30, grain_size=2.0, vignette_strength=0.4,
                              vignette_softness=0.5, chromatic_aberration=1.0),
    ),
    _preset(
        PresetId.VERTIGO, "Spiral", "Technicolor reds, eerie greens, dreamy fog",
        matrix=((1.12, 0.02, 0.0, 0.0),
                (0.0, 1.06, 0.04, 0.0),
                (0.0, 0.0, 0.94, 0.02)),
        saturation=1.3, contrast=1.08, brightness=0.02,
        white_shift=(_NEUTRAL, (6800.0, -12.0)),
        finish=FinishSettings(vignette_strength=0.25, vignette_softness=0.9, bloom_intensity=0.3, bloom_radius=14.0),
    ),
    _preset(
        PresetId.ORDER_OF_PHOENIX, "Dark Order", "Blue-teal cast, crushed shadows, dark desat",
        matrix=((0.86, 0.02, 0.02, -0.01),
                (0.04, 0.96, 0.10, 0.0),
                (0.04, 0.06, 1.08, 0.03)),
        saturation=0.62, contrast=1.2, brightness=-0.05,
        white_shift=(_NEUTRAL, (5400.0, -6.0)),
        shadow_amount=-0.2,
        finish=FinishSettings(grain_amount=0.05, grain_size=1.2, vignette_strength=0.35, vignette_softness=0.6),
    ),
    _preset(
        PresetId.HERO, "Ying Xiong", "Vivid saturated primaries, epic color contrast",
        matrix=((1.12, -0.03, -0.02, 0.0),
                (-0.04, 1.10, -0.04, 0.0),
                (-0.02, -0.03, 1.12, 0.0)),
        saturation=1.4, contrast=1.15,
    ),
    _preset(
        PresetId.LA_LA_LAND, "La La", "Pastel dreamscape, warm magic hour, soft grain",
        matrix=((1.04, 0.02, 0.04, 0.02),
                (0.04, 1.0, 0.04, 0.02),
                (0.02, 0.04, 0.98, 0.03)),
        saturation=1.05, contrast=0.94, brightness=0.03,
        white_shift=(_NEUTRAL, (7000.0, 14.0)),
        finish=FinishSettings(grain_amount=0.10, grain_size=1.2, vignette_strength=0.15,
                              vignette_softness=0.9, bloom_intensity=0.18, bloom_radius=10.0),
    ),
)}

FREE_PRESETS = tuple(p for p, d in CATALOG.items() if not d.pro_locked)


def get_preset(preset_id) -> PresetDefinition:
    return CATALOG[PresetId.parse(preset_id)]


def can_select(preset_id, premium_unlocked: bool) -> bool:
    """Entitlement check used at selection time only; rendering never consults it."""
    return premium_unlocked or not get_preset(preset_id).pro_locked


# =========================================================
# Grade stages
# =========================================================

def apply_selective_color(img: np.ndarray, selective: SelectiveColor) -> np.ndarray:
    """
    Composite a narrow hue band in color over a hard monochrome version.
    Both the mask and the two copies are derived from the same (pre-grade) input.
    """
    mask = utils.hue_saturation_mask(
        img, selective.hue_center, selective.hue_tolerance,
        selective.min_saturation, selective.min_value
    )
    color = utils.color_controls(img, saturation=selective.color_saturation,
                                 contrast=selective.color_contrast)
    mono = utils.color_controls(img, saturation=0.0, contrast=selective.mono_contrast,
                                brightness=selective.mono_brightness)
    return utils.blend_with_mask(mono, color, mask)


def apply_creative_grade(img: np.ndarray, preset: PresetDefinition) -> np.ndarray:
    """The preset's literal composition of color operations."""
    out = img
    if preset.selective is not None:
        out = utils.run_stage("selective color", apply_selective_color, out, preset.selective)
    if preset.matrix is not None:
        out = utils.run_stage("color matrix", utils.affine_color_matrix, out, preset.matrix)
    out = utils.run_stage("color controls", utils.color_controls, out,
                          preset.saturation, preset.contrast, preset.brightness)
    if preset.white_shift is not None:
        source, target = preset.white_shift
        out = utils.run_stage("temperature/tint", utils.temperature_tint, out, source, target)
    if abs(preset.shadow_amount) > config.EPSILON or abs(preset.highlight_amount - 1.0) > config.EPSILON:
        out = utils.run_stage("shadow/highlight", utils.shadow_highlight_adjust, out,
                              preset.shadow_amount, preset.highlight_amount)
    return out


def baseline_curve_points(black_lift: float):
    # The second point moves with the black point so the toe stays proportional
    return (
        (0.0, black_lift),
        (0.25, black_lift + 0.25 * (1.0 - black_lift)),
        (0.5, 0.5),
        (0.75, 0.75),
        (1.0, 1.0),
    )


def apply_flat_baseline(img: np.ndarray, settings: FlatBaselineSettings) -> np.ndarray:
    """Flatten an aggressive grade back toward an editable baseline."""
    out = utils.run_stage("baseline shadow/highlight", utils.shadow_highlight_adjust, img,
                          settings.shadow_lift, settings.highlight_rolloff)
    out = utils.run_stage("baseline tone curve", utils.tone_curve, out,
                          baseline_curve_points(settings.black_lift))
    out = utils.run_stage("baseline controls", utils.color_controls, out,
                          1.0, settings.contrast, -0.25 * settings.black_lift)
    return out


def apply_preset(img: np.ndarray, preset_id) -> np.ndarray:
    """Creative grade followed by the flat baseline for the preset's bucket."""
    preset = get_preset(preset_id)
    logger.debug(f"[Preset] Applying {preset.id.value}")
    out = apply_creative_grade(img, preset)
    return apply_flat_baseline(out, FlatBaselineSettings.for_preset(preset.id))


def apply_finishing(img: np.ndarray, finish: Optional[FinishSettings]) -> np.ndarray:
    """
    Bloom -> vignette -> chromatic aberration -> grain.

    Each effect is skipped below EPSILON. The frame is cropped back to the
    pre-finish extent after each step that can grow it.
    """
    if finish is None or utils.is_degenerate(img):
        return img
    height, width = utils.extent_of(img)
    eps = config.EPSILON
    out = img

    if finish.bloom_intensity > eps and finish.bloom_radius > eps:
        radius = finish.bloom_radius * max(height, width) / 1000.0
        out = utils.run_stage("bloom", utils.bloom, out, finish.bloom_intensity, radius)
        out = utils.crop_to_extent(out, height, width)

    if finish.vignette_strength > eps:
        out = utils.run_stage("vignette", utils.vignette, out,
                              finish.vignette_strength, finish.vignette_softness)

    if abs(finish.chromatic_aberration) > eps:
        out = utils.run_stage("chromatic aberration", utils.chromatic_aberration, out,
                              finish.chromatic_aberration)
        out = utils.crop_to_extent(out, height, width)

    if finish.grain_amount > eps:
        out = utils.run_stage("grain", utils.film_grain, out, finish.grain_amount, finish.grain_size)

    return out
