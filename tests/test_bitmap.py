from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from blockcal.bitmap import encode_bitmap, row_stride, write_bitmap


def _pixels() -> np.ndarray:
    return np.arange(1, 13, dtype=np.uint8).reshape(2, 2, 3)


def test_headers() -> None:
    data = encode_bitmap(_pixels())

    assert len(data) == 14 + 40 + 2 * 8
    assert data[:2] == b"BM"
    assert int.from_bytes(data[2:6], "little") == len(data)
    assert data[6:10] == b"\x00" * 4
    assert int.from_bytes(data[10:14], "little") == 54
    info = data[14:54]
    assert int.from_bytes(info[0:4], "little") == 40
    assert int.from_bytes(info[4:8], "little") == 2
    assert int.from_bytes(info[8:12], "little") == 2
    assert int.from_bytes(info[12:14], "little") == 1
    assert int.from_bytes(info[14:16], "little") == 24
    assert info[16:] == b"\x00" * 24


def test_rows_are_bgr_padded_and_in_input_order() -> None:
    data = encode_bitmap(_pixels())
    body = data[54:]

    assert body[:8] == bytes([3, 2, 1, 6, 5, 4, 0, 0])
    assert body[8:] == bytes([9, 8, 7, 12, 11, 10, 0, 0])


@pytest.mark.parametrize("width,stride", [(1, 4), (2, 8), (3, 12), (4, 12), (5, 16)])
def test_row_stride(width: int, stride: int) -> None:
    assert row_stride(width) == stride


def test_standard_reader_sees_flipped_image(tmp_path: Path) -> None:
    rng = np.random.default_rng(5)
    pixels = rng.integers(0, 256, size=(7, 5, 3), dtype=np.uint8)
    path = write_bitmap(tmp_path / "out.bmp", pixels)

    with Image.open(path) as img:
        assert img.size == (5, 7)
        decoded = np.asarray(img.convert("RGB"))
    np.testing.assert_array_equal(decoded[::-1], pixels)


def test_rejects_bad_buffers() -> None:
    with pytest.raises(ValueError):
        encode_bitmap(np.zeros((2, 2), dtype=np.uint8))
    with pytest.raises(ValueError):
        encode_bitmap(np.zeros((2, 2, 3), dtype=np.float64))
    with pytest.raises(ValueError):
        encode_bitmap(np.zeros((0, 2, 3), dtype=np.uint8))
