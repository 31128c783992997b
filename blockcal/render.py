"""Rendering of calibrated grids into RGB pixel buffers."""

from __future__ import annotations

from typing import Optional

import numpy as np

from .calibrate import CalibratedGrid, CalibrationConfig

CALIBRATED_RGB = (255, 0, 0)


def _to_u8(intensity: np.ndarray) -> np.ndarray:
    """Clip to [0, 255], round half up and cast; NaN maps to 0."""
    clipped = np.clip(np.nan_to_num(intensity, nan=0.0, posinf=255.0, neginf=0.0), 0.0, 255.0)
    return np.floor(clipped + 0.5).astype(np.uint8)


def _gray_to_rgb(gray_u8: np.ndarray) -> np.ndarray:
    return np.repeat(gray_u8[:, :, None], 3, axis=2)


def render_normalized(grid: CalibratedGrid) -> np.ndarray:
    """Map calibrated values to an HxWx3 RGB buffer.

    Cells latched as calibrated are painted pure red, the rest as
    grayscale ``round(value * 255)``.
    """
    pixels = _gray_to_rgb(_to_u8(grid.values * 255.0))
    pixels[grid.calibrated] = CALIBRATED_RGB
    return pixels


def thickness_map(grid: CalibratedGrid, config: Optional[CalibrationConfig] = None) -> np.ndarray:
    """``-ln(value)`` where value > 0, the sentinel thickness elsewhere.

    The calibrated flag is ignored.
    """
    config = config or CalibrationConfig()
    values = grid.values
    positive = values > 0
    thickness = np.full(values.shape, config.thickness_sentinel, dtype=np.float64)
    thickness[positive] = -np.log(values[positive])
    return thickness


def render_thickness(grid: CalibratedGrid, config: Optional[CalibrationConfig] = None) -> np.ndarray:
    """Grayscale rendering of the thickness map, ``round(t * scale)`` clipped to a byte."""
    config = config or CalibrationConfig()
    thickness = thickness_map(grid, config)
    return _gray_to_rgb(_to_u8(thickness * config.thickness_scale))
