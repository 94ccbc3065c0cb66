import numpy as np
import pytest

from cinegrade import core, utils
from cinegrade.pipeline.request import CropMode, EditState
from cinegrade.presets import PresetId
from conftest import make_flat, make_gradient


def test_identity_state_without_preset_returns_input_pixels():
    img = make_gradient()
    out = core.build(img, EditState(apply_preset=False))
    np.testing.assert_array_equal(out, img)


def test_graded_output_differs_and_keeps_size():
    img = make_flat(100, 100)
    state = EditState(preset=PresetId.MATRIX, apply_preset=True, exposure=0.5)
    out = core.build(img, state)
    assert out.shape == (100, 100, 4)
    assert not np.allclose(out[..., :3], img[..., :3])


def test_preset_off_matches_manual_stages():
    img = make_gradient()
    state = EditState(preset=PresetId.DUNE, apply_preset=False,
                      exposure=0.4, contrast=0.3, shadows=0.2, highlights=-0.3)
    expected = utils.exposure_adjust(img, 0.4)
    expected = utils.color_controls(expected, 1.0, 1.15, 0.0)
    expected = utils.shadow_highlight_adjust(expected, 0.2, 0.7)
    np.testing.assert_allclose(core.build(img, state), expected, atol=1e-6)


def test_out_of_range_sliders_are_clamped():
    img = make_gradient()
    wild = core.build(img, EditState(apply_preset=False, exposure=9.0, contrast=-4.0))
    tame = core.build(img, EditState(apply_preset=False, exposure=2.0, contrast=-1.0))
    np.testing.assert_array_equal(wild, tame)


def test_zero_area_source_passes_through():
    empty = np.zeros((0, 0, 4), dtype=np.float32)
    assert core.build(empty, EditState()) is empty


def test_four_by_five_crop_on_square():
    out = core.build(make_flat(1000, 1000), EditState(apply_preset=False, crop=CropMode.from_name('4:5')))
    assert out.shape[:2] == (1000, 800)


def test_build_crops_before_finishing():
    state = EditState(preset=PresetId.SIN_CITY, crop=CropMode.from_name('4:5'))
    out = core.build(make_gradient(120, 120), state)
    assert out.shape[:2] == (120, 96)


@pytest.mark.parametrize("shape", [(400, 600), (600, 400), (333, 777)])
@pytest.mark.parametrize("ratio,force", [(0.8, False), (21 / 9, True), (1.0, False)])
def test_offset_crop_is_idempotent(shape, ratio, force):
    img = make_flat(*shape)
    once = core.offset_crop(img, ratio, force, (0.3, -0.6))
    twice = core.offset_crop(once, ratio, force, (0.3, -0.6))
    assert twice.shape == once.shape


def test_force_horizontal_keeps_wide_crop_on_portrait():
    out = core.offset_crop(make_flat(900, 600), 21 / 9, True)
    h, w = out.shape[:2]
    assert w == 600
    assert w > h
    assert w / h == pytest.approx(21 / 9, abs=0.02)


@pytest.mark.parametrize("shape", [(900, 600), (600, 900), (500, 500)])
def test_force_horizontal_with_tall_ratio_stays_wide(shape):
    out = core.offset_crop(make_flat(*shape), 0.8, True)
    h, w = out.shape[:2]
    assert w >= h
    assert w / h == pytest.approx(1.25, abs=0.01)


def test_crop_ratio_follows_orientation():
    # 4:5 on a landscape frame becomes 5:4
    landscape = core.offset_crop(make_flat(800, 1200), 0.8, False)
    assert landscape.shape[:2] == (800, 1000)
    portrait = core.offset_crop(make_flat(1000, 600), 0.8, False)
    assert portrait.shape[:2] == (750, 600)


def test_crop_offset_pans_the_window():
    img = make_gradient(100, 200)  # red ramps left to right
    left = core.offset_crop(img, 1.0, False, (-1.0, 0.0))
    center = core.offset_crop(img, 1.0, False, (0.0, 0.0))
    right = core.offset_crop(img, 1.0, False, (1.0, 0.0))
    assert left[0, 0, 0] == img[0, 0, 0]
    assert center[0, 0, 0] == img[0, 50, 0]
    assert right[0, -1, 0] == img[0, -1, 0]


def test_vertical_offset_moves_window_down():
    img = make_gradient(200, 100)  # green ramps top to bottom
    up = core.offset_crop(img, 1.0, False, (0.0, -1.0))
    down = core.offset_crop(img, 1.0, False, (0.0, 1.0))
    assert up.shape[:2] == down.shape[:2] == (100, 100)
    assert up[0, 0, 1] == img[0, 0, 1]
    assert down[0, 0, 1] == img[100, 0, 1]
    assert down[-1, 0, 1] == img[-1, 0, 1]
    assert down[0, 0, 1] > up[0, 0, 1]


def test_crop_offset_out_of_range_is_clamped():
    img = make_gradient(100, 200)
    np.testing.assert_array_equal(core.offset_crop(img, 1.0, False, (5.0, 0.0)),
                                  core.offset_crop(img, 1.0, False, (1.0, 0.0)))


def test_crop_of_degenerate_input_is_identity():
    empty = np.zeros((0, 10, 4), dtype=np.float32)
    assert core.offset_crop(empty, 0.8, False) is empty
