"""Utility helpers for blockcal."""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import cv2
import numpy as np


def ensure_dir(path: Path) -> Path:
    """Create a directory if it does not exist and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def timestamp_iso() -> str:
    """Return local timestamp in ISO format."""
    return datetime.now().isoformat(timespec="seconds")


def save_png_preview(path: Path, pixels_rgb: np.ndarray) -> None:
    """Save an RGB pixel buffer as PNG, handling unicode paths on Windows."""
    bgr = cv2.cvtColor(np.ascontiguousarray(pixels_rgb, dtype=np.uint8), cv2.COLOR_RGB2BGR)
    ok, encoded = cv2.imencode(".png", bgr)
    if not ok:
        raise ValueError(f"Could not encode PNG preview for {path}")
    encoded.tofile(str(path))


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses/numpy objects to JSON-compatible structures."""
    if is_dataclass(value):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating,)):
        value = float(value)
    if isinstance(value, np.ndarray):
        return to_jsonable(value.tolist())
    if isinstance(value, float) and not np.isfinite(value):
        # JSON has no NaN/inf literals.
        return None
    return value


def save_json(path: Path, data: Dict[str, Any]) -> None:
    """Write JSON with UTF-8 and pretty formatting."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(to_jsonable(data), f, ensure_ascii=False, indent=2)
