"""Three-stage radiometric calibration of a raw detector block.

Stage A subtracts the fixed background level, stage B normalizes column
drift against the trailing reference rows and stage C normalizes each row
against the trailing detector columns. A per-cell ``calibrated`` latch
records which cells a band reduction has already consumed; later stages
leave those cells alone (except for the final clamp).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .acquire import RawGrid
from .errors import InsufficientColumnsError, InsufficientRowsError, ProfileError

SIGNAL_THRESHOLD = 2048
BETA_THORNE_ROWS_COUNT = 15
MEDIAN_DETECTOR_COUNT = 50

ZERO_POLICY_ZERO = "zero"
ZERO_POLICY_PROPAGATE = "propagate"
ZERO_POLICIES = (ZERO_POLICY_ZERO, ZERO_POLICY_PROPAGATE)


@dataclass(frozen=True)
class CalibrationConfig:
    """Recipe constants. Defaults are the production block recipe."""

    signal_threshold: int = SIGNAL_THRESHOLD
    row_band_rows: int = BETA_THORNE_ROWS_COUNT
    detector_band_columns: int = MEDIAN_DETECTOR_COUNT
    thickness_scale: float = 25.0
    thickness_sentinel: float = 10.0


@dataclass(frozen=True)
class CalibratedGrid:
    """Calibrated values plus the per-cell calibrated latch.

    Both arrays are read-only; every stage builds a new grid.
    """

    values: np.ndarray
    calibrated: np.ndarray

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width


@dataclass
class CalibrationStats:
    row_band: np.ndarray
    overall_median: float
    detector_band: np.ndarray
    zero_detector_rows: List[int]
    calibrated_count: int


@dataclass
class CalibrationResult:
    grid: CalibratedGrid
    stats: CalibrationStats


def _freeze(values: np.ndarray, calibrated: np.ndarray) -> CalibratedGrid:
    values.setflags(write=False)
    calibrated.setflags(write=False)
    return CalibratedGrid(values=values, calibrated=calibrated)


def load_profile(path: Path, base: Optional[CalibrationConfig] = None) -> CalibrationConfig:
    """Load a JSON calibration profile overriding recipe constants."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            profile = json.load(f)
    except OSError as e:
        raise ProfileError(f"Could not read calibration profile {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ProfileError(f"Calibration profile {path} is not valid JSON: {e}") from e
    return config_from_mapping(profile, base)


def config_from_mapping(profile: Dict[str, Any], base: Optional[CalibrationConfig] = None) -> CalibrationConfig:
    if not isinstance(profile, dict):
        raise ProfileError("Calibration profile must be a JSON object.")

    base = base or CalibrationConfig()
    known = {f.name for f in fields(CalibrationConfig)}
    # Free-form descriptive keys, same as scanner profiles carry.
    ignored = {"name", "timestamp", "notes"}
    unknown = sorted(set(profile) - set(known) - ignored)
    if unknown:
        raise ProfileError(f"Unknown calibration profile keys: {', '.join(unknown)}")

    overrides: Dict[str, Any] = {}
    for key in ("signal_threshold", "row_band_rows", "detector_band_columns"):
        if key in profile:
            value = profile[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ProfileError(f"'{key}' must be an integer, got {value!r}")
            if value < 0 or (key != "signal_threshold" and value == 0):
                raise ProfileError(f"'{key}' out of range: {value}")
            overrides[key] = value
    for key in ("thickness_scale", "thickness_sentinel"):
        if key in profile:
            value = profile[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ProfileError(f"'{key}' must be a number, got {value!r}")
            overrides[key] = float(value)
    return replace(base, **overrides)


def subtract_background(raw: RawGrid, config: Optional[CalibrationConfig] = None) -> CalibratedGrid:
    """Stage A: ``max(0, raw - threshold)`` for every cell, nothing calibrated yet."""
    config = config or CalibrationConfig()
    counts = np.asarray(raw.data, dtype=np.int64)
    values = np.maximum(counts - config.signal_threshold, 0).astype(np.float64)
    calibrated = np.zeros(counts.shape, dtype=bool)
    return _freeze(values, calibrated)


def calibrate_row_band(
    grid: CalibratedGrid,
    config: Optional[CalibrationConfig] = None,
) -> Tuple[CalibratedGrid, np.ndarray, float]:
    """Stage B: drift normalization against the trailing reference rows.

    The reference rows are latched as calibrated and keep their stage A
    values. Returns the new grid, the per-column band averages and their
    arithmetic mean (historically named the "overall median").
    """
    config = config or CalibrationConfig()
    n_rows = config.row_band_rows
    height, width = grid.shape
    if height < n_rows:
        raise InsufficientRowsError(
            f"Error: Not enough rows for beta-thorne calibration ({height} < {n_rows})."
        )

    values = grid.values.copy()
    calibrated = grid.calibrated.copy()

    row_band = values[height - n_rows:, :].sum(axis=0) / n_rows
    calibrated[height - n_rows:, :] = True
    overall_median = float(row_band.sum() / width)

    nonzero = row_band != 0
    proportion = np.zeros(width, dtype=np.float64)
    np.divide(overall_median, row_band, out=proportion, where=nonzero)
    rescaled = np.where(nonzero[None, :], values * proportion[None, :], 0.0)

    pending = ~calibrated
    values[pending] = rescaled[pending]
    return _freeze(values, calibrated), row_band, overall_median


def calibrate_column_band(
    grid: CalibratedGrid,
    config: Optional[CalibrationConfig] = None,
    zero_policy: str = ZERO_POLICY_ZERO,
) -> Tuple[CalibratedGrid, np.ndarray]:
    """Stage C: per-row detector normalization against the trailing columns.

    Only cells not yet calibrated contribute to a row's band sum, but the
    divisor is always the band width. Contributing cells are latched. The
    remaining cells are divided by their row's band average; a zero average
    yields 0 under ``zero_policy="zero"`` or the IEEE result (inf/NaN) under
    ``"propagate"``. Finally every value above 1.0 is clamped to 1.0.
    """
    if zero_policy not in ZERO_POLICIES:
        raise ValueError(f"Unknown zero policy {zero_policy!r}; expected one of {ZERO_POLICIES}")
    config = config or CalibrationConfig()
    n_cols = config.detector_band_columns
    height, width = grid.shape
    if width < n_cols:
        raise InsufficientColumnsError(
            f"Error: Not enough columns for detector calibration ({width} < {n_cols})."
        )

    values = grid.values.copy()
    calibrated = grid.calibrated.copy()

    band = np.s_[:, width - n_cols:]
    included = ~calibrated[band]
    detector_band = np.where(included, values[band], 0.0).sum(axis=1) / n_cols
    calibrated[band] = True

    pending = ~calibrated
    if zero_policy == ZERO_POLICY_ZERO:
        nonzero = detector_band != 0
        divided = np.zeros_like(values)
        np.divide(values, detector_band[:, None], out=divided, where=nonzero[:, None])
    else:
        with np.errstate(divide="ignore", invalid="ignore"):
            divided = values / detector_band[:, None]
    values[pending] = divided[pending]

    # NaN compares false and is left as is.
    values[values > 1.0] = 1.0
    return _freeze(values, calibrated), detector_band


def calibrate(
    raw: RawGrid,
    config: Optional[CalibrationConfig] = None,
    zero_policy: str = ZERO_POLICY_ZERO,
    progress_fn: Optional[Callable[[str], None]] = None,
) -> CalibrationResult:
    """Run stages A, B and C over a raw grid."""
    config = config or CalibrationConfig()

    def _progress(msg: str) -> None:
        if progress_fn is not None:
            progress_fn(msg)

    _progress(f"Stage A: background subtraction (threshold {config.signal_threshold})")
    grid = subtract_background(raw, config)

    _progress(f"Stage B: row-band calibration (last {config.row_band_rows} rows)")
    grid, row_band, overall_median = calibrate_row_band(grid, config)

    _progress(f"Stage C: detector calibration (last {config.detector_band_columns} columns)")
    pending_before_c = ~grid.calibrated
    grid, detector_band = calibrate_column_band(grid, config, zero_policy)

    # Rows that still had cells to divide after the detector band was latched.
    divided_rows = (pending_before_c & ~grid.calibrated).any(axis=1)
    zero_rows = np.flatnonzero(divided_rows & (detector_band == 0))
    if zero_rows.size:
        _progress(f"Detector band averaged 0 on {zero_rows.size} row(s); policy '{zero_policy}'")

    stats = CalibrationStats(
        row_band=row_band,
        overall_median=overall_median,
        detector_band=detector_band,
        zero_detector_rows=[int(i) for i in zero_rows],
        calibrated_count=int(np.count_nonzero(grid.calibrated)),
    )
    return CalibrationResult(grid=grid, stats=stats)
