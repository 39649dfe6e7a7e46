"""
stb.py
======

String tables (``STB1``): the spreadsheet-like data files the client uses for
its zone index, zone-type catalog and brush palettes.

Layout::

    "STB1"  i32 data_offset  i32 row_count  i32 column_count  i32 row_size
    (column_count + 1) x i16 column widths
    (column_count + 1) x (i16 length, bytes) column names
    (row_count - 1)    x (i16 length, bytes) row names (column 0)
    (row_count - 1) x (column_count - 1) x (i16 length, bytes) cells

Row 0 of the file is the header row and is not part of ``rows``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .errors import BadMagicError, PathLike, TruncatedError
from .reader import ByteReader

STB_MAGIC = b"STB1"


@dataclass
class StringTable:
    row_size: int = 0
    column_widths: List[int] = field(default_factory=list)
    column_names: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    def cell(self, row: int, column: int) -> str:
        """Cell text, or ``""`` when either index is out of range."""
        if 0 <= row < len(self.rows):
            cells = self.rows[row]
            if 0 <= column < len(cells):
                return cells[column]
        return ""

    def cell_int(self, row: int, column: int, default: int = 0) -> int:
        """Leading integer of a cell, ``atoi`` style (``"12abc"`` -> 12)."""
        return parse_leading_int(self.cell(row, column), default)

    def row_name(self, row: int) -> str:
        return self.cell(row, 0)


def parse_leading_int(text: str, default: int = 0) -> int:
    text = text.strip()
    end = 0
    if text[:1] in ("-", "+"):
        end = 1
    while end < len(text) and text[end].isdigit():
        end += 1
    digits = text[:end]
    if digits in ("", "-", "+"):
        return default
    return int(digits)


def parse_stb(data: bytes, file: Optional[PathLike] = None) -> StringTable:
    reader = ByteReader(data, file)
    magic = reader.read_bytes(4) if len(data) >= 4 else data
    if magic != STB_MAGIC:
        raise BadMagicError(f"expected {STB_MAGIC!r}, found {magic!r}", file, 0)

    reader.read_i32()  # data offset, unused
    row_count = reader.read_i32()
    column_count = reader.read_i32()
    row_size = reader.read_i32()
    if row_count < 0 or column_count < 0:
        raise TruncatedError(
            f"negative table size {row_count}x{column_count}", file, 8
        )

    widths = [reader.read_i16() for _ in range(column_count + 1)]
    names = [reader.read_i16_string() for _ in range(column_count + 1)]

    data_rows = max(0, row_count - 1)
    rows: List[List[str]] = [[""] * column_count for _ in range(data_rows)]
    for row in rows:
        name = reader.read_i16_string()
        if row:
            row[0] = name
    for row in rows:
        for column in range(1, column_count):
            row[column] = reader.read_i16_string()

    return StringTable(
        row_size=row_size,
        column_widths=widths,
        column_names=names,
        rows=rows,
    )


def load_stb(path: Union[str, Path]) -> StringTable:
    path = Path(path)
    return parse_stb(path.read_bytes(), path)
