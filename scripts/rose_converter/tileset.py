"""
tileset.py
==========

Brush palettes. A zone type selects a palette file through the zone-type
catalog (column 6 of ``ZONETYPEINFO.STB``); the palette is itself a string
table:

* data row 0, column 2: brush count (at most 255)
* rows ``1..count``: one brush per row, columns 2..10
* row ``count + 1``, column 2: chain matrix size ``n``, followed by ``n``
  rows of ``n`` chain values starting at column 2
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import DIAG_BAD_FILE, DIAG_MISSING_FILE, Diagnostics, RoseError
from .resolver import PathResolver
from .stb import StringTable, load_stb

ZONE_TYPE_PALETTE_COLUMN = 6
MAX_BRUSHES = 255
BRUSH_FIRST_COLUMN = 2
ATLAS_COLUMNS = 4


@dataclass(frozen=True)
class TileBrush:
    minimum_brush: int
    maximum_brush: int
    tile_number0: int
    tile_count0: int
    tile_number_f: int
    tile_count_f: int
    tile_number: int
    tile_count: int
    direction: int

    def ranges(self) -> Tuple[Tuple[int, int], ...]:
        """``(base, count)`` pairs in lookup order."""
        return (
            (self.tile_number, self.tile_count),
            (self.tile_number0, self.tile_count0),
            (self.tile_number_f, self.tile_count_f),
        )

    def offset_of(self, tile_id: int) -> Optional[int]:
        for base, count in self.ranges():
            if base <= tile_id < base + count:
                return tile_id - base
        return None


@dataclass
class TileSet:
    brushes: List[TileBrush] = field(default_factory=list)
    chains: List[List[int]] = field(default_factory=list)

    @classmethod
    def from_stb(cls, table: StringTable) -> "TileSet":
        count = min(table.cell_int(0, BRUSH_FIRST_COLUMN), MAX_BRUSHES)
        if count <= 0:
            logging.warning("Brush palette declares %d brushes", count)
            return cls()

        brushes = []
        for index in range(count):
            row = index + 1
            values = [
                table.cell_int(row, column)
                for column in range(BRUSH_FIRST_COLUMN, BRUSH_FIRST_COLUMN + 9)
            ]
            brushes.append(TileBrush(*values))

        chains: List[List[int]] = []
        chain_row = count + 1
        if chain_row < table.row_count:
            size = table.cell_int(chain_row, BRUSH_FIRST_COLUMN)
            for i in range(max(0, size)):
                row = chain_row + 1 + i
                chains.append([
                    table.cell_int(row, j + BRUSH_FIRST_COLUMN)
                    if j + BRUSH_FIRST_COLUMN < table.column_count
                    else 0
                    for j in range(size)
                ])

        logging.info("Loaded brush palette: %d brushes, %d chain rows", len(brushes), len(chains))
        return cls(brushes=brushes, chains=chains)

    def find_brush(self, tile_id: int) -> Optional[Tuple[int, int]]:
        """``(brush index, offset inside its range)`` of the first brush holding ``tile_id``."""
        for index, brush in enumerate(self.brushes):
            offset = brush.offset_of(tile_id)
            if offset is not None:
                return index, offset
        return None

    def brush_uv_offset(self, tile_id: int) -> Optional[Tuple[int, int]]:
        """Atlas cell ``(u, v)`` of ``tile_id`` on a 4x4 brush atlas."""
        found = self.find_brush(tile_id)
        if found is None:
            return None
        offset = found[1]
        return offset % ATLAS_COLUMNS, offset // ATLAS_COLUMNS


def palette_file_for_zone_type(table: StringTable, zone_type: int) -> str:
    if zone_type < 0 or zone_type >= table.row_count:
        return ""
    return table.cell(zone_type, ZONE_TYPE_PALETTE_COLUMN).strip()


def load_tileset_for_zone(
    resolver: PathResolver,
    zone_type: int,
    diagnostics: Diagnostics,
) -> Optional[TileSet]:
    """Palette for ``zone_type``; missing or unreadable files become diagnostics."""
    info_path = resolver.zone_type_info_path
    if info_path is None:
        diagnostics.add(DIAG_MISSING_FILE, "zone-type catalog not found", resolver.root)
        return None
    try:
        info = load_stb(info_path)
    except RoseError as exc:
        diagnostics.add(DIAG_BAD_FILE, str(exc), info_path)
        return None

    palette_file = palette_file_for_zone_type(info, zone_type)
    if not palette_file:
        diagnostics.add(DIAG_MISSING_FILE, f"no brush palette for zone type {zone_type}", info_path)
        return None

    palette_path = resolver.palette_path(palette_file)
    if palette_path is None:
        diagnostics.add(DIAG_MISSING_FILE, f"brush palette {palette_file} not found", info_path)
        return None
    try:
        return TileSet.from_stb(load_stb(palette_path))
    except RoseError as exc:
        diagnostics.add(DIAG_BAD_FILE, str(exc), palette_path)
        return None
