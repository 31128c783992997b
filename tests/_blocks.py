from __future__ import annotations

import numpy as np


def flat_block(height: int = 20, width: int = 60, level: int = 2148) -> np.ndarray:
    """Uniform block; values are ``level - 2048`` after background subtraction."""
    return np.full((height, width), level, dtype=np.int64)
