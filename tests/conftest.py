from __future__ import annotations

from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from blockcal.acquire import write_raw_grid


@pytest.fixture
def block_file(tmp_path: Path) -> Callable[..., Path]:
    def _write(data, name: str = "block.int") -> Path:
        return write_raw_grid(tmp_path / name, np.asarray(data))

    return _write
