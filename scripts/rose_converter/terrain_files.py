"""
terrain_files.py
================

Decoders for the per-zone terrain files:

  * ``.HIM`` - heightmap tile, ``W x H`` floats (canonically 65 x 65)
  * ``.TIL`` - tile map, ``W x H`` patches (canonically 16 x 16)
  * ``.ZON`` - zone descriptor, block-indexed (info, textures, tile catalog)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from .errors import (
    DIAG_UNKNOWN_BLOCK,
    Diagnostics,
    PathLike,
    TruncatedError,
)
from .reader import ByteReader

HIM_MAX_SIZE = 256
TIL_MAX_SIZE = 128

ZON_BLOCK_INFO = 0
ZON_BLOCK_SPAWN_POINTS = 1
ZON_BLOCK_TEXTURES = 2
ZON_BLOCK_TILES = 3
ZON_BLOCK_ECONOMY = 4

ZON_BLOCK_NAMES = {
    ZON_BLOCK_INFO: "info",
    ZON_BLOCK_SPAWN_POINTS: "spawn-points",
    ZON_BLOCK_TEXTURES: "textures",
    ZON_BLOCK_TILES: "tiles",
    ZON_BLOCK_ECONOMY: "economy",
}


# ---------------------------------------------------------------------------
# HIM
# ---------------------------------------------------------------------------

@dataclass
class Heightmap:
    width: int
    height: int
    grid_count: int
    grid_size: float
    # (height, width) float32; empty (0, 0) when the header sizes are invalid.
    heights: np.ndarray

    @property
    def is_valid(self) -> bool:
        return self.heights.size > 0


def parse_him(data: bytes, file: Optional[PathLike] = None) -> Heightmap:
    reader = ByteReader(data, file)
    width = reader.read_i32()
    height = reader.read_i32()
    grid_count = reader.read_i32()
    grid_size = reader.read_f32()

    if not (0 < width <= HIM_MAX_SIZE and 0 < height <= HIM_MAX_SIZE):
        logging.warning("HIM %s has invalid size %dx%d; no heights read", file, width, height)
        return Heightmap(width, height, grid_count, grid_size, np.zeros((0, 0), dtype=np.float32))

    raw = reader.read_bytes(width * height * 4)
    heights = np.frombuffer(raw, dtype="<f4").reshape(height, width).astype(np.float32)
    return Heightmap(width, height, grid_count, grid_size, heights)


def load_him(path: Union[str, Path]) -> Heightmap:
    path = Path(path)
    return parse_him(path.read_bytes(), path)


# ---------------------------------------------------------------------------
# TIL
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TilePatch:
    brush: int
    tile_index: int
    tile_set: int
    tile: int


@dataclass
class TileMap:
    width: int
    height: int
    patches: List[TilePatch] = field(default_factory=list)

    def patch(self, x: int, y: int) -> Optional[TilePatch]:
        if 0 <= x < self.width and 0 <= y < self.height:
            index = y * self.width + x
            if index < len(self.patches):
                return self.patches[index]
        return None


def parse_til(data: bytes, file: Optional[PathLike] = None) -> TileMap:
    reader = ByteReader(data, file)
    width = reader.read_i32()
    height = reader.read_i32()
    if not (0 < width <= TIL_MAX_SIZE and 0 < height <= TIL_MAX_SIZE):
        logging.warning("TIL %s has invalid size %dx%d; no patches read", file, width, height)
        return TileMap(width=width, height=height)

    patches: List[TilePatch] = []
    for _ in range(width * height):
        brush = reader.read_u8()
        tile_index = reader.read_u8()
        tile_set = reader.read_u8()
        tile = reader.read_i32()
        patches.append(TilePatch(brush, tile_index, tile_set, tile))
    return TileMap(width=width, height=height, patches=patches)


def load_til(path: Union[str, Path]) -> TileMap:
    path = Path(path)
    return parse_til(path.read_bytes(), path)


# ---------------------------------------------------------------------------
# ZON
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ZoneTile:
    """Tile catalog entry. Effective texture ids are ``layer + offset``."""

    layer1: int
    layer2: int
    offset1: int
    offset2: int
    blending: int
    rotation: int
    tile_type: int

    @property
    def texture_id1(self) -> int:
        return self.layer1 + self.offset1

    @property
    def texture_id2(self) -> int:
        return self.layer2 + self.offset2

    @property
    def is_blending(self) -> bool:
        return self.blending > 0


@dataclass
class Zone:
    zone_type: int = 0
    width: int = 0
    height: int = 0
    grid_count: int = 0
    grid_size: float = 0.0
    start_position: Tuple[int, int] = (0, 0)
    textures: List[str] = field(default_factory=list)
    tiles: List[ZoneTile] = field(default_factory=list)
    # Block types visited, in file order; unknown types included.
    blocks_seen: List[int] = field(default_factory=list)

    def texture_path(self, texture_id: int) -> Optional[str]:
        if 0 <= texture_id < len(self.textures):
            return self.textures[texture_id]
        return None


def parse_zon(
    data: bytes,
    file: Optional[PathLike] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> Zone:
    reader = ByteReader(data, file)
    zone = Zone()

    for block_type, offset in reader.read_block_table():
        reader.seek(offset)
        zone.blocks_seen.append(block_type)

        if block_type == ZON_BLOCK_INFO:
            zone.zone_type = reader.read_i32()
            zone.width = reader.read_i32()
            zone.height = reader.read_i32()
            zone.grid_count = reader.read_i32()
            zone.grid_size = reader.read_f32()
            start_x = reader.read_i32()
            start_y = reader.read_i32()
            zone.start_position = (start_x, start_y)
        elif block_type == ZON_BLOCK_TEXTURES:
            count = reader.read_i32()
            if count < 0:
                raise TruncatedError(f"negative texture count {count}", file, offset)
            zone.textures = [reader.read_byte_string() for _ in range(count)]
        elif block_type == ZON_BLOCK_TILES:
            count = reader.read_i32()
            if count < 0:
                raise TruncatedError(f"negative tile count {count}", file, offset)
            tiles: List[ZoneTile] = []
            for _ in range(count):
                values = reader.read_array("i", 7)
                tiles.append(ZoneTile(*values))
            zone.tiles = tiles
        elif block_type in ZON_BLOCK_NAMES:
            logging.debug("ZON %s: skipping %s block", file, ZON_BLOCK_NAMES[block_type])
        elif diagnostics is not None:
            diagnostics.add(DIAG_UNKNOWN_BLOCK, f"ZON block type {block_type} skipped", file)

    return zone


def load_zon(path: Union[str, Path], diagnostics: Optional[Diagnostics] = None) -> Zone:
    path = Path(path)
    return parse_zon(path.read_bytes(), path, diagnostics)
