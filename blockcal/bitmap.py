"""Uncompressed 24-bit BMP writer.

Rows are written in buffer order (top row first) with a positive height
field, the layout existing block viewers expect. Standard
readers therefore show the image vertically flipped.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np

BYTES_PER_PIXEL = 3
FILE_HEADER_SIZE = 14
INFO_HEADER_SIZE = 40

_FILE_HEADER = np.dtype(
    [
        ("signature", "S2"),
        ("file_size", "<u4"),
        ("reserved", "<u4"),
        ("pixel_offset", "<u4"),
    ]
)

_INFO_HEADER = np.dtype(
    [
        ("header_size", "<u4"),
        ("width", "<i4"),
        ("height", "<i4"),
        ("planes", "<u2"),
        ("bits_per_pixel", "<u2"),
        ("compression", "<u4"),
        ("image_size", "<u4"),
        ("x_pixels_per_meter", "<i4"),
        ("y_pixels_per_meter", "<i4"),
        ("colors_used", "<u4"),
        ("colors_important", "<u4"),
    ]
)


def row_stride(width: int) -> int:
    """Bytes per stored row, padded to a multiple of 4."""
    width_bytes = width * BYTES_PER_PIXEL
    return width_bytes + (4 - width_bytes % 4) % 4


def _file_header(height: int, stride: int) -> bytes:
    header = np.zeros(1, dtype=_FILE_HEADER)
    header["signature"] = b"BM"
    header["file_size"] = FILE_HEADER_SIZE + INFO_HEADER_SIZE + stride * height
    header["pixel_offset"] = FILE_HEADER_SIZE + INFO_HEADER_SIZE
    return header.tobytes()


def _info_header(height: int, width: int) -> bytes:
    # Image size and resolution stay zero, which BI_RGB permits.
    header = np.zeros(1, dtype=_INFO_HEADER)
    header["header_size"] = INFO_HEADER_SIZE
    header["width"] = width
    header["height"] = height
    header["planes"] = 1
    header["bits_per_pixel"] = BYTES_PER_PIXEL * 8
    return header.tobytes()


def encode_bitmap(pixels_rgb: np.ndarray) -> bytes:
    """Encode an HxWx3 RGB uint8 buffer as BMP bytes (B,G,R on disk)."""
    pixels = np.asarray(pixels_rgb)
    if pixels.ndim != 3 or pixels.shape[2] != BYTES_PER_PIXEL:
        raise ValueError(f"Expected an HxWx3 pixel buffer, got shape {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
    height, width = pixels.shape[:2]
    if height == 0 or width == 0:
        raise ValueError("Cannot encode an empty image.")

    stride = row_stride(width)
    rows = np.zeros((height, stride), dtype=np.uint8)
    rows[:, : width * BYTES_PER_PIXEL] = pixels[:, :, ::-1].reshape(height, width * BYTES_PER_PIXEL)

    return _file_header(height, stride) + _info_header(height, width) + rows.tobytes()


def write_bitmap(path: Path, pixels_rgb: np.ndarray) -> Path:
    """Encode and write a BMP file."""
    path = Path(path)
    data = encode_bitmap(pixels_rgb)
    with path.open("wb") as f:
        f.write(data)
    return path
