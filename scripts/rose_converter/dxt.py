"""
dxt.py
======

DDS container parsing and DXT1/DXT3/DXT5 block decompression.

Blocks are decoded with numpy, all blocks of an image at once, into a
row-major ``(height, width, 4)`` uint8 array in BGRA order. Uncompressed
DDS payloads are accepted for 32-bit BGRA and 24-bit BGR; every other pixel
format raises ``UnsupportedVariantError``.

Colour endpoints are expanded from RGB565 by bit replication
(``r = (v >> 8 & 0xF8) | (v >> 13)``), identical for all three formats.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import BadMagicError, PathLike, TruncatedError, UnsupportedVariantError

DDS_MAGIC = b"DDS "
DDS_HEADER_SIZE = 128

FOURCC_DXT1 = 0x31545844
FOURCC_DXT3 = 0x33545844
FOURCC_DXT5 = 0x35545844

BLOCK_BYTES = {
    FOURCC_DXT1: 8,
    FOURCC_DXT3: 16,
    FOURCC_DXT5: 16,
}

FORMAT_NAMES = {
    FOURCC_DXT1: "DXT1",
    FOURCC_DXT3: "DXT3",
    FOURCC_DXT5: "DXT5",
}


@dataclass(frozen=True)
class DdsHeader:
    width: int
    height: int
    pixel_flags: int
    fourcc: int
    bit_count: int

    @property
    def format_name(self) -> str:
        if self.fourcc == 0:
            return f"BGR{'A' if self.bit_count == 32 else ''}{self.bit_count}"
        return FORMAT_NAMES.get(self.fourcc, f"0x{self.fourcc:08X}")


def parse_dds_header(data: bytes, file: Optional[PathLike] = None) -> DdsHeader:
    if len(data) < DDS_HEADER_SIZE:
        raise TruncatedError(
            f"DDS header needs {DDS_HEADER_SIZE} bytes, got {len(data)}", file, 0
        )
    if data[:4] != DDS_MAGIC:
        raise BadMagicError(f"not a DDS file (magic {data[:4]!r})", file, 0)
    height, width = struct.unpack_from("<ii", data, 12)
    pixel_flags, fourcc, bit_count = struct.unpack_from("<III", data, 80)
    if width <= 0 or height <= 0:
        raise UnsupportedVariantError(f"invalid DDS size {width}x{height}", file, 12)
    return DdsHeader(
        width=width,
        height=height,
        pixel_flags=pixel_flags,
        fourcc=fourcc,
        bit_count=bit_count,
    )


# ---------------------------------------------------------------------------
# Block decoding
# ---------------------------------------------------------------------------

def expand_565(values: np.ndarray) -> np.ndarray:
    """Expand packed RGB565 values to an ``(n, 3)`` int32 array of 8-bit R, G, B."""
    v = values.astype(np.int32)
    r = ((v & 0xF800) >> 8) | ((v & 0xF800) >> 13)
    g = ((v & 0x07E0) >> 3) | ((v & 0x07E0) >> 9)
    b = ((v & 0x001F) << 3) | ((v & 0x001F) >> 2)
    return np.stack([r, g, b], axis=1)


def _le_uint(columns: np.ndarray) -> np.ndarray:
    """Combine little-endian byte columns ``(n, k)`` into int64 values."""
    out = np.zeros(columns.shape[0], dtype=np.int64)
    for k in range(columns.shape[1]):
        out |= columns[:, k].astype(np.int64) << (8 * k)
    return out


def decode_color_blocks(blocks: np.ndarray, force_four_color: bool) -> np.ndarray:
    """Decode ``(n, 8)`` DXT colour blocks into ``(n, 16, 4)`` BGRA pixels."""
    count = blocks.shape[0]
    c0 = _le_uint(blocks[:, 0:2])
    c1 = _le_uint(blocks[:, 2:4])
    p0 = expand_565(c0)
    p1 = expand_565(c1)

    if force_four_color:
        four = np.ones(count, dtype=bool)
    else:
        four = c0 > c1
    four_col = four[:, None]
    p2 = np.where(four_col, (2 * p0 + p1) // 3, (p0 + p1) // 2)
    p3 = np.where(four_col, (p0 + 2 * p1) // 3, 0)

    palette = np.empty((count, 4, 4), dtype=np.uint8)
    for slot, rgb in enumerate((p0, p1, p2, p3)):
        palette[:, slot, 0:3] = rgb[:, ::-1]
    palette[:, :, 3] = 255
    palette[:, 3, 3] = np.where(four, 255, 0)

    bits = _le_uint(blocks[:, 4:8])
    shifts = np.arange(16, dtype=np.int64) * 2
    indices = (bits[:, None] >> shifts) & 0x03
    return palette[np.arange(count)[:, None], indices]


def decode_explicit_alpha(blocks: np.ndarray) -> np.ndarray:
    """DXT3: 4 bits per pixel, low nibble first, scaled by 17."""
    low = blocks[:, 0:8] & 0x0F
    high = blocks[:, 0:8] >> 4
    nibbles = np.stack([low, high], axis=2).reshape(blocks.shape[0], 16)
    return (nibbles.astype(np.int32) * 17).astype(np.uint8)


def decode_interpolated_alpha(blocks: np.ndarray) -> np.ndarray:
    """DXT5: two endpoints and a 48-bit table of 3-bit indices."""
    count = blocks.shape[0]
    a0 = blocks[:, 0].astype(np.int32)
    a1 = blocks[:, 1].astype(np.int32)
    eight = (a0 > a1)[:, None]

    palette = np.zeros((count, 8), dtype=np.int32)
    palette[:, 0] = a0
    palette[:, 1] = a1
    for i in range(6):
        eight_value = ((6 - i) * a0 + (1 + i) * a1) // 7
        if i < 4:
            six_value = ((4 - i) * a0 + (1 + i) * a1) // 5
        else:
            six_value = np.full(count, 0 if i == 4 else 255, dtype=np.int32)
        palette[:, 2 + i] = np.where(eight[:, 0], eight_value, six_value)

    table = _le_uint(blocks[:, 2:8])
    shifts = np.arange(16, dtype=np.int64) * 3
    indices = (table[:, None] >> shifts) & 0x07
    return palette[np.arange(count)[:, None], indices].astype(np.uint8)


def _blocks_to_image(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    blocks_x = (width + 3) // 4
    blocks_y = (height + 3) // 4
    grid = pixels.reshape(blocks_y, blocks_x, 4, 4, 4)
    image = grid.transpose(0, 2, 1, 3, 4).reshape(blocks_y * 4, blocks_x * 4, 4)
    return np.ascontiguousarray(image[:height, :width])


def decompress(
    payload: bytes,
    width: int,
    height: int,
    fourcc: int,
    file: Optional[PathLike] = None,
    offset: int = 0,
) -> np.ndarray:
    """Decompress a DXT payload (no container) into a ``(height, width, 4)`` BGRA array."""
    block_bytes = BLOCK_BYTES.get(fourcc)
    if block_bytes is None:
        raise UnsupportedVariantError(f"unsupported FourCC 0x{fourcc:08X}", file, offset)

    block_count = ((width + 3) // 4) * ((height + 3) // 4)
    needed = block_count * block_bytes
    if len(payload) < needed:
        raise TruncatedError(
            f"{FORMAT_NAMES[fourcc]} payload needs {needed} bytes, got {len(payload)}",
            file,
            offset + len(payload),
        )
    blocks = np.frombuffer(payload, dtype=np.uint8, count=needed).reshape(block_count, block_bytes)

    if fourcc == FOURCC_DXT1:
        pixels = decode_color_blocks(blocks, force_four_color=False)
    elif fourcc == FOURCC_DXT3:
        pixels = decode_color_blocks(blocks[:, 8:16], force_four_color=True)
        pixels[:, :, 3] = decode_explicit_alpha(blocks)
    else:
        pixels = decode_color_blocks(blocks[:, 8:16], force_four_color=False)
        pixels[:, :, 3] = decode_interpolated_alpha(blocks)
    return _blocks_to_image(pixels, width, height)


def _decode_uncompressed(header: DdsHeader, data: bytes, file: Optional[PathLike]) -> np.ndarray:
    pixel_count = header.width * header.height
    if header.bit_count == 32:
        needed = pixel_count * 4
    elif header.bit_count == 24:
        needed = pixel_count * 3
    else:
        raise UnsupportedVariantError(
            f"unsupported uncompressed bit count {header.bit_count}", file, 88
        )
    if len(data) < DDS_HEADER_SIZE + needed:
        raise TruncatedError(
            f"{header.format_name} payload needs {needed} bytes, got {len(data) - DDS_HEADER_SIZE}",
            file,
            len(data),
        )
    raw = np.frombuffer(data, dtype=np.uint8, count=needed, offset=DDS_HEADER_SIZE)
    if header.bit_count == 32:
        return raw.reshape(header.height, header.width, 4).copy()
    bgr = raw.reshape(header.height, header.width, 3)
    out = np.full((header.height, header.width, 4), 255, dtype=np.uint8)
    out[:, :, 0:3] = bgr
    return out


def decode_dds(data: bytes, file: Optional[PathLike] = None) -> np.ndarray:
    """Decode the top mip level of a DDS file into a BGRA ``(height, width, 4)`` array."""
    header = parse_dds_header(data, file)
    if header.fourcc == 0:
        return _decode_uncompressed(header, data, file)
    return decompress(
        data[DDS_HEADER_SIZE:],
        header.width,
        header.height,
        header.fourcc,
        file=file,
        offset=DDS_HEADER_SIZE,
    )


def bgra_to_rgba(pixels: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(pixels[:, :, [2, 1, 0, 3]])
