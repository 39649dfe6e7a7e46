"""
ifo.py
======

Map-objects files (``.IFO``): one per terrain tile, block-indexed. Object,
building and animated-object blocks carry a count followed by object
records that reference a scene catalog entry by id.

Values are kept in source space; ``placement`` converts them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .coords import Quat, Vec3
from .errors import DIAG_UNKNOWN_BLOCK, Diagnostics, PathLike, TruncatedError
from .reader import ByteReader

IFO_BLOCK_MAP_INFO = 0
IFO_BLOCK_OBJECT = 1
IFO_BLOCK_NPC = 2
IFO_BLOCK_BUILDING = 3
IFO_BLOCK_SOUND = 4
IFO_BLOCK_EFFECT = 5
IFO_BLOCK_ANIMATION = 6
IFO_BLOCK_MONSTER_SPAWN = 7
IFO_BLOCK_WATER_PLANE = 8
IFO_BLOCK_WARP_POINT = 9
IFO_BLOCK_COLLISION = 10
IFO_BLOCK_EVENT_OBJECT = 11
IFO_BLOCK_WATER_PATCH = 12

IFO_BLOCK_NAMES: Dict[int, str] = {
    IFO_BLOCK_MAP_INFO: "map-info",
    IFO_BLOCK_OBJECT: "object",
    IFO_BLOCK_NPC: "npc",
    IFO_BLOCK_BUILDING: "building",
    IFO_BLOCK_SOUND: "sound",
    IFO_BLOCK_EFFECT: "effect",
    IFO_BLOCK_ANIMATION: "animation",
    IFO_BLOCK_MONSTER_SPAWN: "monster-spawn",
    IFO_BLOCK_WATER_PLANE: "water-plane",
    IFO_BLOCK_WARP_POINT: "warp-point",
    IFO_BLOCK_COLLISION: "collision",
    IFO_BLOCK_EVENT_OBJECT: "event-object",
    IFO_BLOCK_WATER_PATCH: "water-patch",
}

MAP_INFO_MATRIX_BYTES = 16 * 4


@dataclass(frozen=True)
class MapObject:
    name: str
    warp_id: int
    event_id: int
    object_type: int
    object_id: int
    map_position: Tuple[int, int]
    # Stored (x, y, z, w), not yet normalised or flipped.
    rotation: Quat
    position: Vec3
    scale: Vec3


@dataclass
class MapObjects:
    map_position: Tuple[int, int] = (0, 0)
    zone_position: Tuple[int, int] = (0, 0)
    zone_name: str = ""
    objects: List[MapObject] = field(default_factory=list)
    buildings: List[MapObject] = field(default_factory=list)
    animations: List[MapObject] = field(default_factory=list)
    blocks_seen: List[int] = field(default_factory=list)


def _read_object(reader: ByteReader) -> MapObject:
    name = reader.read_token_string()
    warp_id = reader.read_i16()
    event_id = reader.read_i16()
    object_type = reader.read_i32()
    object_id = reader.read_i32()
    map_x = reader.read_i32()
    map_y = reader.read_i32()
    rotation = reader.read_vec4()
    position = reader.read_vec3()
    scale = reader.read_vec3()
    return MapObject(
        name=name,
        warp_id=warp_id,
        event_id=event_id,
        object_type=object_type,
        object_id=object_id,
        map_position=(map_x, map_y),
        rotation=rotation,
        position=position,
        scale=scale,
    )


def parse_ifo(
    data: bytes,
    file: Optional[PathLike] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> MapObjects:
    reader = ByteReader(data, file)
    result = MapObjects()
    targets = {
        IFO_BLOCK_OBJECT: result.objects,
        IFO_BLOCK_BUILDING: result.buildings,
        IFO_BLOCK_ANIMATION: result.animations,
    }

    for block_type, offset in reader.read_block_table():
        reader.seek(offset)
        result.blocks_seen.append(block_type)

        if block_type == IFO_BLOCK_MAP_INFO:
            map_x, map_y, zone_x, zone_y = reader.read_array("i", 4)
            result.map_position = (map_x, map_y)
            result.zone_position = (zone_x, zone_y)
            reader.skip(MAP_INFO_MATRIX_BYTES)
            result.zone_name = reader.read_token_string()
        elif block_type in targets:
            count = reader.read_i32()
            if count < 0:
                raise TruncatedError(f"negative object count {count}", file, offset)
            bucket = targets[block_type]
            for _ in range(count):
                bucket.append(_read_object(reader))
        elif block_type in IFO_BLOCK_NAMES:
            logging.debug("IFO %s: skipping %s block", file, IFO_BLOCK_NAMES[block_type])
        elif diagnostics is not None:
            diagnostics.add(DIAG_UNKNOWN_BLOCK, f"IFO block type {block_type} skipped", file)

    return result


def load_ifo(path: Union[str, Path], diagnostics: Optional[Diagnostics] = None) -> MapObjects:
    path = Path(path)
    return parse_ifo(path.read_bytes(), path, diagnostics)
