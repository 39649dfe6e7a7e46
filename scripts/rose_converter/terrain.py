"""
terrain.py
==========

Stitches per-tile heightmaps and tile maps into one terrain.

Tiles sit on a grid of 64-quad steps; each tile's 65x65 heights overlap
the neighbour's by one row/column. Texture weights are painted per patch
(16x16 patches per tile, 4x4 weight pixels per patch) into the most used
textures of the zone.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import OutOfRangeError
from .scene import Terrain, TerrainLayer
from .terrain_files import Heightmap, TileMap, Zone
from .tileset import TileSet

TILE_QUADS = 64
TILE_VERTICES = TILE_QUADS + 1
TILE_PATCHES = 16
PATCH_PIXELS = TILE_QUADS // TILE_PATCHES

HEIGHT_MIN = -25600.0
HEIGHT_RANGE = 51200.0
HEIGHT_MAX_U16 = 65535

DEFAULT_MAX_LAYERS = 64
WORLD_ORIGIN_TILE = 32
TILE_WORLD_SIZE = 16000
TILE_WORLD_OFFSET = 8000
TERRAIN_SCALE = (250.0, 250.0, 100.0)

BRUSH_ATLAS_STEP = 64


@dataclass
class LoadedTile:
    x: int
    y: int
    heightmap: Heightmap
    tile_map: TileMap
    name: str = ""


def tile_bounds(tiles: Sequence[LoadedTile]) -> Tuple[int, int, int, int]:
    """``(min_x, min_y, max_x, max_y)`` of the tile grid."""
    if not tiles:
        raise OutOfRangeError("zone has no terrain tiles")
    xs = [tile.x for tile in tiles]
    ys = [tile.y for tile in tiles]
    return min(xs), min(ys), max(xs), max(ys)


def merged_size(bounds: Tuple[int, int, int, int]) -> Tuple[int, int]:
    min_x, min_y, max_x, max_y = bounds
    return (max_x - min_x + 1) * TILE_QUADS + 1, (max_y - min_y + 1) * TILE_QUADS + 1


def terrain_anchor(bounds: Tuple[int, int, int, int]) -> Tuple[float, float]:
    min_x, min_y = bounds[0], bounds[1]
    return (
        float((min_x - WORLD_ORIGIN_TILE) * TILE_WORLD_SIZE - TILE_WORLD_OFFSET),
        float((min_y - WORLD_ORIGIN_TILE) * TILE_WORLD_SIZE - TILE_WORLD_OFFSET),
    )


def quantize_heights(heights: np.ndarray) -> np.ndarray:
    """Map ``[-25600, 25600]`` onto ``[0, 65535]``; values outside are clamped."""
    shifted = np.clip(heights.astype(np.float64) - HEIGHT_MIN, 0.0, HEIGHT_RANGE)
    return (shifted / HEIGHT_RANGE * HEIGHT_MAX_U16).astype(np.uint16)


def merge_heights(tiles: Sequence[LoadedTile], bounds: Tuple[int, int, int, int]) -> np.ndarray:
    width, height = merged_size(bounds)
    merged = np.zeros((height, width), dtype=np.float32)
    min_x, min_y = bounds[0], bounds[1]
    for tile in tiles:
        source = tile.heightmap.heights
        if source.size == 0:
            logging.warning("Tile %s has no heights; left flat", tile.name)
            continue
        ox = (tile.x - min_x) * TILE_QUADS
        oy = (tile.y - min_y) * TILE_QUADS
        rows = min(source.shape[0], height - oy)
        cols = min(source.shape[1], width - ox)
        merged[oy:oy + rows, ox:ox + cols] = source[:rows, :cols]
    return merged


def _patch_tiles(tile: LoadedTile, zone: Zone):
    """Yield ``(px, py, ZoneTile)`` for each patch with an in-range tile id."""
    patches = tile.tile_map.patches
    for py in range(TILE_PATCHES):
        for px in range(TILE_PATCHES):
            index = py * TILE_PATCHES + px
            if index >= len(patches):
                continue
            tile_id = patches[index].tile
            if 0 <= tile_id < len(zone.tiles):
                yield px, py, zone.tiles[tile_id]


def texture_frequencies(tiles: Sequence[LoadedTile], zone: Zone) -> Counter:
    counts: Counter = Counter()
    for tile in tiles:
        for _, _, entry in _patch_tiles(tile, zone):
            if entry.texture_id1 >= 0:
                counts[entry.texture_id1] += 1
            if entry.texture_id2 >= 0:
                counts[entry.texture_id2] += 1
    return counts


def select_layers(counts: Counter, max_layers: int = DEFAULT_MAX_LAYERS) -> List[int]:
    """Most frequent texture ids first; ties go to the lower id."""
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [texture_id for texture_id, _ in ranked[:max(0, max_layers)]]


def paint_layers(
    tiles: Sequence[LoadedTile],
    zone: Zone,
    bounds: Tuple[int, int, int, int],
    selected: Sequence[int],
) -> Dict[int, np.ndarray]:
    width, height = merged_size(bounds)
    weights = {texture_id: np.zeros((height, width), dtype=np.uint8) for texture_id in selected}
    if not selected:
        return weights
    base = weights[selected[0]]
    min_x, min_y = bounds[0], bounds[1]

    for tile in tiles:
        ox = (tile.x - min_x) * TILE_QUADS
        oy = (tile.y - min_y) * TILE_QUADS
        for px, py, entry in _patch_tiles(tile, zone):
            y0 = oy + py * PATCH_PIXELS
            x0 = ox + px * PATCH_PIXELS
            block = (slice(y0, y0 + PATCH_PIXELS), slice(x0, x0 + PATCH_PIXELS))
            weights.get(entry.texture_id1, base)[block] = 255
            if entry.texture_id2 >= 0 and entry.texture_id2 in weights:
                weights[entry.texture_id2][block] = 255
    return weights


def build_tile_brush_data(tile_map: TileMap, tileset: TileSet) -> np.ndarray:
    """16x16 RGBA8 atlas offsets: R = u * 64, G = v * 64, B = 0, A = 255."""
    data = np.zeros((TILE_PATCHES, TILE_PATCHES, 4), dtype=np.uint8)
    data[:, :, 3] = 255
    patches = tile_map.patches
    for y in range(TILE_PATCHES):
        for x in range(TILE_PATCHES):
            index = y * TILE_PATCHES + x
            tile_id = patches[index].tile if index < len(patches) else -1
            if tile_id < 0:
                continue
            uv = tileset.brush_uv_offset(tile_id)
            if uv is not None:
                data[y, x, 0] = uv[0] * BRUSH_ATLAS_STEP
                data[y, x, 1] = uv[1] * BRUSH_ATLAS_STEP
    return data


def layer_name(texture_id: int) -> str:
    return f"T{texture_id}"


def assemble_terrain(
    zone: Zone,
    tiles: Sequence[LoadedTile],
    max_layers: int = DEFAULT_MAX_LAYERS,
    tileset: Optional[TileSet] = None,
) -> Terrain:
    bounds = tile_bounds(tiles)
    width, height = merged_size(bounds)
    heights = quantize_heights(merge_heights(tiles, bounds))

    counts = texture_frequencies(tiles, zone)
    selected = select_layers(counts, max_layers)
    painted = paint_layers(tiles, zone, bounds, selected)
    layers = [
        TerrainLayer(
            texture_id=texture_id,
            name=layer_name(texture_id),
            texture_path=zone.texture_path(texture_id),
            weights=painted[texture_id],
        )
        for texture_id in selected
    ]

    brush_data: Dict[str, np.ndarray] = {}
    if tileset is not None:
        for tile in tiles:
            brush_data[tile.name or f"{tile.x}_{tile.y}"] = build_tile_brush_data(tile.tile_map, tileset)

    logging.info(
        "Terrain %dx%d from %d tiles, %d of %d textures painted",
        width,
        height,
        len(tiles),
        len(selected),
        len(counts),
    )
    return Terrain(
        width=width,
        height=height,
        anchor_xy=terrain_anchor(bounds),
        axis_scale=TERRAIN_SCALE,
        heights=heights,
        layers=layers,
        tile_bounds=bounds,
        brush_data=brush_data,
    )
