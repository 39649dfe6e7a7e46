"""
placement.py
============

Turns the per-tile map-objects lists into world placements.

Each map object references an object of one scene catalog; every part of
that object becomes one placement with

    final = part_local * object_world

(``part_local`` applied first). Decoration objects resolve against the
decoration catalog, buildings against the construction catalog and
animated objects against the animation catalog when the zone has one.
Placements are grouped for instancing by ``(catalog, mesh path, material)``.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .coords import Transform, flip_position, flip_quat, trs
from .errors import (
    DIAG_DROPPED,
    DIAG_EMPTY_OBJECT,
    DIAG_OUT_OF_RANGE,
    Diagnostics,
    OutOfRangeError,
)
from .ifo import MapObject, MapObjects
from .scene import FLAG_CAST_SHADOW_TWO_SIDED, FLAG_NO_COLLISION, FLAG_NO_SHADOW
from .zsc import SceneCatalog, ZscMaterial, ZscPart

CATALOG_DECORATION = "deco"
CATALOG_CONSTRUCTION = "cnst"
CATALOG_ANIMATION = "anim"
CATALOG_ORDER = (CATALOG_DECORATION, CATALOG_CONSTRUCTION, CATALOG_ANIMATION)

NO_COLLISION_MARKER = "grass"

BucketKey = Tuple[str, str, int]


@dataclass(frozen=True)
class Placement:
    catalog: str
    tile: str
    object_id: int
    mesh_index: int
    mesh_path: str
    material_index: Optional[int]
    material: Optional[ZscMaterial]
    transform: Transform
    flags: Tuple[str, ...]
    animation_path: str = ""

    @property
    def key(self) -> BucketKey:
        material = self.material_index if self.material_index is not None else -1
        return (self.catalog, self.mesh_path, material)

    @property
    def is_animated(self) -> bool:
        return bool(self.animation_path)


def placement_flags(mesh_path: str, material: Optional[ZscMaterial]) -> Tuple[str, ...]:
    flags = [FLAG_CAST_SHADOW_TWO_SIDED]
    if material is not None and material.is_translucent_without_alpha_test:
        flags.append(FLAG_NO_SHADOW)
    if NO_COLLISION_MARKER in mesh_path.lower():
        flags.append(FLAG_NO_COLLISION)
    return tuple(flags)


def part_transform(part: ZscPart) -> Transform:
    return trs(flip_position(part.position), flip_quat(part.rotation), part.scale)


def object_transform(obj: MapObject) -> Transform:
    return trs(flip_position(obj.position), flip_quat(obj.rotation), obj.scale)


def _out_of_range(
    message: str,
    file: str,
    diagnostics: Diagnostics,
    strict: bool,
) -> None:
    if strict:
        raise OutOfRangeError(message, file)
    diagnostics.add(DIAG_OUT_OF_RANGE, message, file)


def source_lists(map_objects: MapObjects, catalogs: Mapping[str, SceneCatalog]) -> List[Tuple[str, List[MapObject]]]:
    """``(catalog name, objects)`` pairs to place for one tile."""
    pairs = [
        (CATALOG_DECORATION, map_objects.objects),
        (CATALOG_CONSTRUCTION, map_objects.buildings),
    ]
    animation_catalog = catalogs.get(CATALOG_ANIMATION)
    if animation_catalog is not None and not animation_catalog.is_empty:
        pairs.append((CATALOG_ANIMATION, map_objects.animations))
    elif map_objects.animations:
        logging.debug("No animation catalog; %d animated objects skipped", len(map_objects.animations))
    return pairs


def place_tile(
    tile: str,
    map_objects: MapObjects,
    catalogs: Mapping[str, SceneCatalog],
    diagnostics: Diagnostics,
    strict: bool = False,
) -> List[Placement]:
    placements: List[Placement] = []
    dropped = 0

    for catalog_name, objects in source_lists(map_objects, catalogs):
        catalog = catalogs.get(catalog_name)
        if catalog is None or catalog.is_empty:
            continue

        for obj in objects:
            if not 0 <= obj.object_id < len(catalog.objects):
                _out_of_range(
                    f"{catalog_name} object id {obj.object_id} outside {len(catalog.objects)} objects",
                    tile,
                    diagnostics,
                    strict,
                )
                continue
            entry = catalog.objects[obj.object_id]
            if entry.is_empty:
                diagnostics.add(DIAG_EMPTY_OBJECT, f"{catalog_name} object {obj.object_id} has no parts", tile)
                continue

            world = object_transform(obj)
            for part in entry.parts:
                if not 0 <= part.mesh_index < len(catalog.meshes):
                    _out_of_range(
                        f"{catalog_name} mesh index {part.mesh_index} outside {len(catalog.meshes)} meshes",
                        tile,
                        diagnostics,
                        strict,
                    )
                    continue
                material_index: Optional[int] = part.material_index
                material: Optional[ZscMaterial] = None
                if 0 <= part.material_index < len(catalog.materials):
                    material = catalog.materials[part.material_index]
                else:
                    if strict:
                        raise OutOfRangeError(
                            f"{catalog_name} material index {part.material_index} "
                            f"outside {len(catalog.materials)} materials",
                            tile,
                        )
                    material_index = None

                final = part_transform(part) * world
                if not final.is_placeable():
                    dropped += 1
                    continue

                mesh_path = catalog.meshes[part.mesh_index]
                placements.append(
                    Placement(
                        catalog=catalog_name,
                        tile=tile,
                        object_id=obj.object_id,
                        mesh_index=part.mesh_index,
                        mesh_path=mesh_path,
                        material_index=material_index,
                        material=material,
                        transform=final,
                        flags=placement_flags(mesh_path, material),
                        animation_path=part.animation_path,
                    )
                )

    if dropped:
        diagnostics.add(DIAG_DROPPED, f"{dropped} placement(s) with degenerate transforms dropped", tile)
    return placements


def place_objects(
    tiles: Sequence[Tuple[str, MapObjects]],
    catalogs: Mapping[str, SceneCatalog],
    diagnostics: Diagnostics,
    strict: bool = False,
) -> List[Placement]:
    placements: List[Placement] = []
    for tile, map_objects in tiles:
        placements.extend(place_tile(tile, map_objects, catalogs, diagnostics, strict))
    logging.info(
        "Placed %d parts (%d animated) from %d tiles",
        len(placements),
        sum(1 for placement in placements if placement.is_animated),
        len(tiles),
    )
    return placements


def group_buckets(placements: Sequence[Placement]) -> "OrderedDict[BucketKey, List[Placement]]":
    """Static placements grouped by bucket key, in first-seen order."""
    buckets: "OrderedDict[BucketKey, List[Placement]]" = OrderedDict()
    for placement in placements:
        if placement.is_animated:
            continue
        buckets.setdefault(placement.key, []).append(placement)
    return buckets


def catalogs_by_name(
    deco: Optional[SceneCatalog],
    cnst: Optional[SceneCatalog],
    anim: Optional[SceneCatalog],
) -> Dict[str, SceneCatalog]:
    named = {}
    for name, catalog in zip(CATALOG_ORDER, (deco, cnst, anim)):
        if catalog is not None:
            named[name] = catalog
    return named
