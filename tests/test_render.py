from __future__ import annotations

import numpy as np

from blockcal.acquire import raw_grid_from_array
from blockcal.calibrate import CalibratedGrid, CalibrationConfig, calibrate
from blockcal.render import render_normalized, render_thickness, thickness_map


def _grid() -> CalibratedGrid:
    values = np.array([[0.0, 0.5, 1.0], [np.nan, -0.2, 0.25]])
    calibrated = np.array([[False, False, False], [False, False, True]])
    return CalibratedGrid(values=values, calibrated=calibrated)


def test_normalized_grayscale_and_red_latch() -> None:
    pixels = render_normalized(_grid())

    assert pixels.shape == (2, 3, 3)
    assert pixels.dtype == np.uint8
    np.testing.assert_array_equal(pixels[0, :, 0], [0, 128, 255])
    np.testing.assert_array_equal(pixels[0, 1], [128, 128, 128])
    # NaN and negative values clamp to black.
    np.testing.assert_array_equal(pixels[1, 0], [0, 0, 0])
    np.testing.assert_array_equal(pixels[1, 1], [0, 0, 0])
    np.testing.assert_array_equal(pixels[1, 2], [255, 0, 0])


def test_thickness_ignores_latch_and_uses_sentinel() -> None:
    grid = _grid()
    t = thickness_map(grid)

    assert t[0, 0] == 10.0
    assert t[0, 2] == 0.0
    assert t[1, 0] == 10.0
    assert t[1, 1] == 10.0
    assert np.isclose(t[1, 2], np.log(4.0))

    pixels = render_thickness(grid)
    np.testing.assert_array_equal(pixels[..., 0], [[250, 17, 0], [250, 250, 35]])
    assert (pixels[..., 0] == pixels[..., 1]).all()
    assert (pixels[..., 1] == pixels[..., 2]).all()


def test_thickness_saturates_to_byte_range() -> None:
    grid = CalibratedGrid(values=np.array([[1e-9, 0.9]]), calibrated=np.zeros((1, 2), dtype=bool))
    pixels = render_thickness(grid, CalibrationConfig(thickness_scale=25.0))
    assert pixels[0, 0, 0] == 255
    assert pixels[0, 1, 0] == 3


def test_all_pixels_are_bytes_for_random_input() -> None:
    rng = np.random.default_rng(11)
    raw = raw_grid_from_array(rng.integers(0, 2**20, size=(30, 64)))
    for policy in ("zero", "propagate"):
        grid = calibrate(raw, zero_policy=policy).grid
        for pixels in (render_normalized(grid), render_thickness(grid)):
            assert pixels.dtype == np.uint8
            assert pixels.shape == (30, 64, 3)


def test_all_background_block_renders_red() -> None:
    grid = calibrate(raw_grid_from_array(np.full((15, 50), 2048))).grid
    pixels = render_normalized(grid)

    assert (pixels[..., 0] == 255).all()
    assert (pixels[..., 1:] == 0).all()
