"""Raw block acquisition: reading and writing ``block.int`` grids.

Layout (little-endian 32-bit words)::

    [width][height][14 reserved words][height * width data words, row-major]
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from .errors import GridIOError, InvalidDimensionsError, TruncatedInputError
from .utils import ensure_dir

WORD = np.dtype("<u4")
RESERVED_WORDS = 14
HEADER_WORDS = 2 + RESERVED_WORDS


@dataclass(frozen=True)
class RawGrid:
    """Detector counts as loaded from disk (read-only array)."""

    data: np.ndarray

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])


def raw_grid_from_array(values) -> RawGrid:
    """Wrap a 2D array of counts as an immutable RawGrid."""
    data = np.array(values, dtype=np.int64, copy=True)
    if data.ndim != 2:
        raise InvalidDimensionsError(f"Raw grid must be 2D, got shape {data.shape}")
    if data.shape[0] == 0 or data.shape[1] == 0:
        raise InvalidDimensionsError("Error: image dimensions cannot be zero.")
    data.setflags(write=False)
    return RawGrid(data=data)


def load_raw_grid(path: Path) -> RawGrid:
    """Load a raw block file into a RawGrid.

    Raises:
        GridIOError: If the file cannot be opened or the header is incomplete.
        InvalidDimensionsError: If width or height is zero.
        TruncatedInputError: If fewer than height*width data words follow the header.
    """
    path = Path(path)
    try:
        buf = path.read_bytes()
    except OSError as e:
        raise GridIOError(f"Error: could not open file {path} ({e.strerror or e})") from e

    if len(buf) < HEADER_WORDS * WORD.itemsize:
        raise GridIOError(f"Error: could not read header from {path} ({len(buf)} bytes)")

    width, height = (int(v) for v in np.frombuffer(buf, dtype=WORD, count=2))
    if height == 0 or width == 0:
        raise InvalidDimensionsError("Error: image dimensions cannot be zero.")

    expected = height * width
    available = (len(buf) - HEADER_WORDS * WORD.itemsize) // WORD.itemsize
    if available < expected:
        raise TruncatedInputError(
            f"Error: {path} holds {available} data words, expected {expected} ({height}x{width})."
        )

    words = np.frombuffer(buf, dtype=WORD, count=expected, offset=HEADER_WORDS * WORD.itemsize)
    data = words.astype(np.int64).reshape(height, width)
    data.setflags(write=False)
    return RawGrid(data=data)


def write_raw_grid(path: Path, data, reserved: Optional[Sequence[int]] = None) -> Path:
    """Write counts in the raw block layout; reserved words default to zero."""
    path = Path(path)
    counts = np.asarray(data)
    if counts.ndim != 2:
        raise InvalidDimensionsError(f"Raw grid must be 2D, got shape {counts.shape}")
    if counts.size and (counts.min() < 0 or counts.max() > np.iinfo(WORD).max):
        raise ValueError("Raw counts must fit in an unsigned 32-bit word.")

    height, width = counts.shape
    header = np.zeros(HEADER_WORDS, dtype=WORD)
    header[0] = width
    header[1] = height
    if reserved is not None:
        if len(reserved) != RESERVED_WORDS:
            raise ValueError(f"Expected {RESERVED_WORDS} reserved words, got {len(reserved)}")
        header[2:] = np.asarray(reserved, dtype=WORD)

    ensure_dir(path.parent)
    with path.open("wb") as f:
        f.write(header.tobytes())
        f.write(counts.astype(WORD).tobytes())
    return path


def synthesize_block(
    height: int,
    width: int,
    seed: Optional[int] = None,
    open_rows: int = 15,
    open_columns: int = 50,
) -> np.ndarray:
    """Build a plausible detector block for demos.

    Rows carry a slow drift ramp, columns a per-channel gain, and the middle
    of the field holds an attenuating disc. The last rows and columns are
    left open (unattenuated) so they can serve as reference bands.
    """
    if height <= 0 or width <= 0:
        raise InvalidDimensionsError("Error: image dimensions cannot be zero.")
    rng = np.random.default_rng(seed)

    open_beam = 30000.0
    drift = 1.0 + 0.05 * np.linspace(-1.0, 1.0, height)[:, None]
    gain = rng.normal(1.0, 0.03, size=width)[None, :]

    yy, xx = np.mgrid[0:height, 0:width]
    cy, cx = height * 0.4, width * 0.45
    radius = 0.3 * min(height, width)
    dist2 = ((yy - cy) ** 2 + (xx - cx) ** 2) / max(radius * radius, 1.0)
    thickness = np.clip(1.0 - dist2, 0.0, None) * 1.5
    thickness[max(0, height - open_rows):, :] = 0.0
    thickness[:, max(0, width - open_columns):] = 0.0

    signal = open_beam * drift * gain * np.exp(-thickness)
    noisy = signal + rng.normal(0.0, 40.0, size=signal.shape) + 2048.0
    return np.clip(np.rint(noisy), 0, np.iinfo(WORD).max).astype(np.int64)
