"""Error types raised by the loader and the calibration stages."""

from __future__ import annotations


class BlockCalError(Exception):
    """Base class for every fatal blockcal failure."""

    kind = "error"


class GridIOError(BlockCalError, OSError):
    """Input file could not be opened or read."""

    kind = "io"


class InvalidDimensionsError(BlockCalError, ValueError):
    """Header declared a zero height or width."""

    kind = "invalid_dimensions"


class TruncatedInputError(BlockCalError, ValueError):
    """File ended before the declared matrix was complete."""

    kind = "truncated"


class InsufficientRowsError(BlockCalError, ValueError):
    kind = "insufficient_rows"


class InsufficientColumnsError(BlockCalError, ValueError):
    kind = "insufficient_columns"


class ProfileError(BlockCalError, ValueError):
    """Calibration profile is malformed."""

    kind = "profile"
