"""
importer.py
===========

Import orchestration.

``import_zone`` takes the path of one ``.ZON`` file and returns a complete
``Scene``: merged terrain, weight layers, instanced decoration and
construction objects, animated props, and the meshes, materials and
textures they use. ``import_character`` and ``import_default_character``
build a skeleton, a skeletal mesh and its animations.

An import either returns a whole scene (possibly with diagnostics) or
raises the first structural ``RoseError``. Progress is reported through an
optional callback in four phases: ``loading``, ``terrain``, ``placing`` and
``finalizing``. Cancellation is checked at every phase boundary and at the
top of every per-tile step.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .animation import rebase_animation, root_motion
from .character import assemble_skeletal_mesh, find_default_character_parts
from .dxt import bgra_to_rgba, decode_dds
from .errors import (
    DIAG_BAD_FILE,
    DIAG_DROPPED,
    DIAG_MISSING_FILE,
    CancelledError,
    Diagnostics,
    OutOfRangeError,
    PathLike,
    PathNotFoundError,
    RoseError,
)
from .ifo import MapObjects, load_ifo
from .placement import (
    CATALOG_ANIMATION,
    CATALOG_CONSTRUCTION,
    CATALOG_DECORATION,
    Placement,
    group_buckets,
    place_tile,
)
from .resolver import (
    PathResolver,
    ZoneCatalogs,
    find_case_insensitive_file,
    find_data_root,
    lookup_zone,
    zone_name_candidates,
)
from .scene import (
    Animated,
    Instance,
    InstanceBucket,
    MaterialDesc,
    MeshAsset,
    Scene,
    TextureAsset,
)
from .skeleton import build_skeleton
from .stb import load_stb
from .terrain import DEFAULT_MAX_LAYERS, LoadedTile, assemble_terrain
from .terrain_files import TileMap, load_him, load_til, load_zon
from .tileset import TileSet, load_tileset_for_zone
from .zmd import load_zmd
from .zmo import load_zmo
from .zms import load_zms
from .zsc import SceneCatalog, load_zsc

PHASE_LOADING = "loading"
PHASE_TERRAIN = "terrain"
PHASE_PLACING = "placing"
PHASE_FINALIZING = "finalizing"

HEIGHTMAP_SUFFIX = ".him"
TILEMAP_SUFFIX = ".til"
OBJECTS_SUFFIX = ".ifo"

# Returning False asks the import to stop.
ProgressCallback = Callable[[str, float], Optional[bool]]


@dataclass
class ImportOptions:
    max_layers: int = DEFAULT_MAX_LAYERS
    strict: bool = False
    decode_textures: bool = True
    load_tileset: bool = True


class CancelToken:
    """Shared flag a caller sets to stop a running import."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ImportContext:
    """State owned by one import: options, diagnostics and per-import caches."""

    resolver: PathResolver
    options: ImportOptions = field(default_factory=ImportOptions)
    progress: Optional[ProgressCallback] = None
    cancel_token: Optional[CancelToken] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    scene: Scene = field(default_factory=Scene)
    mesh_ids: Dict[str, Optional[int]] = field(default_factory=dict)
    material_ids: Dict[Tuple[str, int], int] = field(default_factory=dict)
    texture_ids: Dict[str, Optional[int]] = field(default_factory=dict)
    resolved_texture_ids: Dict[str, Optional[int]] = field(default_factory=dict)
    animation_ids: Dict[str, Optional[int]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.scene.diagnostics = self.diagnostics

    def check(self) -> None:
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise CancelledError("import cancelled")

    def report(self, phase: str, fraction: float) -> None:
        if self.progress is not None:
            if self.progress(phase, max(0.0, min(1.0, fraction))) is False:
                if self.cancel_token is None:
                    self.cancel_token = CancelToken()
                self.cancel_token.cancel()
        self.check()

    def missing(self, message: str, file: Optional[PathLike] = None) -> None:
        """A referenced file is absent: an error in strict mode, else a diagnostic."""
        if self.options.strict:
            raise PathNotFoundError(message, file)
        self.diagnostics.add(DIAG_MISSING_FILE, message, file)


# ---------------------------------------------------------------------------
# Shared asset loading
# ---------------------------------------------------------------------------

def load_texture(ctx: ImportContext, reference: str, resolved: Optional[Path] = None) -> Optional[int]:
    """Texture id for ``reference``; decoded once per import."""
    if not reference:
        return None
    if reference in ctx.texture_ids:
        return ctx.texture_ids[reference]

    texture_id: Optional[int] = None
    if resolved is None:
        resolved = ctx.resolver.resolve(reference)
    if resolved is None:
        ctx.missing(f"texture {reference} not found", ctx.resolver.root)
    elif str(resolved) in ctx.resolved_texture_ids:
        texture_id = ctx.resolved_texture_ids[str(resolved)]
    else:
        try:
            pixels = bgra_to_rgba(decode_dds(resolved.read_bytes(), resolved))
        except RoseError as exc:
            ctx.diagnostics.add(DIAG_BAD_FILE, str(exc), resolved)
        else:
            texture_id = len(ctx.scene.textures)
            ctx.scene.textures.append(TextureAsset(reference, str(resolved), pixels))
            logging.debug("Texture %s decoded from %s", reference, resolved)
        ctx.resolved_texture_ids[str(resolved)] = texture_id
    ctx.texture_ids[reference] = texture_id
    return texture_id


def load_mesh(ctx: ImportContext, reference: str) -> Optional[int]:
    if reference in ctx.mesh_ids:
        return ctx.mesh_ids[reference]
    mesh_id: Optional[int] = None
    resolved = ctx.resolver.resolve(reference)
    if resolved is None:
        ctx.missing(f"mesh {reference} not found", ctx.resolver.root)
    else:
        mesh_id = len(ctx.scene.meshes)
        ctx.scene.meshes.append(MeshAsset.from_zms(load_zms(resolved), reference))
    ctx.mesh_ids[reference] = mesh_id
    return mesh_id


def register_material(ctx: ImportContext, placement: Placement) -> Optional[int]:
    if placement.material is None or placement.material_index is None:
        return None
    key = (placement.catalog, placement.material_index)
    if key not in ctx.material_ids:
        texture_id = None
        if ctx.options.decode_textures:
            texture_id = load_texture(ctx, placement.material.texture_path)
        ctx.material_ids[key] = len(ctx.scene.materials)
        ctx.scene.materials.append(MaterialDesc.from_zsc(placement.material, texture_id))
    return ctx.material_ids[key]


# ---------------------------------------------------------------------------
# Zone import
# ---------------------------------------------------------------------------

@dataclass
class ZoneTileFiles:
    name: str
    x: int
    y: int
    heightmap: Path
    tile_map: Optional[Path]
    objects: Optional[Path]


def parse_tile_name(stem: str) -> Optional[Tuple[int, int]]:
    parts = stem.split("_")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        return None
    return int(parts[0]), int(parts[1])


def discover_tiles(zone_dir: Path) -> List[ZoneTileFiles]:
    """Every ``X_Y.HIM`` in ``zone_dir`` with its sibling tile map and objects file."""
    found: List[ZoneTileFiles] = []
    for child in sorted(zone_dir.iterdir(), key=lambda path: path.name.lower()):
        if not child.is_file() or child.suffix.lower() != HEIGHTMAP_SUFFIX:
            continue
        coords = parse_tile_name(child.stem)
        if coords is None:
            logging.debug("Skipping heightmap with non-grid name %s", child.name)
            continue
        found.append(
            ZoneTileFiles(
                name=child.stem,
                x=coords[0],
                y=coords[1],
                heightmap=child,
                tile_map=find_case_insensitive_file(zone_dir, child.stem + TILEMAP_SUFFIX),
                objects=find_case_insensitive_file(zone_dir, child.stem + OBJECTS_SUFFIX),
            )
        )
    return found


def load_zone_catalogs(ctx: ImportContext, zone_path: Path) -> Dict[str, SceneCatalog]:
    list_zone = ctx.resolver.list_zone_path
    if list_zone is None:
        ctx.diagnostics.add(DIAG_MISSING_FILE, "master zone index not found; no objects placed", ctx.resolver.root)
        return {}

    entry: Optional[ZoneCatalogs] = lookup_zone(load_stb(list_zone), zone_name_candidates(zone_path))
    if entry is None:
        ctx.diagnostics.add(DIAG_MISSING_FILE, f"zone {zone_path.stem} not listed in master index", list_zone)
        return {}

    catalogs: Dict[str, SceneCatalog] = {}
    for name, reference in (
        (CATALOG_DECORATION, entry.deco_zsc),
        (CATALOG_CONSTRUCTION, entry.cnst_zsc),
        (CATALOG_ANIMATION, entry.anim_zsc),
    ):
        if not reference:
            continue
        resolved = ctx.resolver.resolve_data(reference)
        if resolved is None:
            if name == CATALOG_ANIMATION:
                ctx.diagnostics.add(DIAG_MISSING_FILE, f"animation catalog {reference} not found", list_zone)
            else:
                ctx.missing(f"{name} catalog {reference} not found", list_zone)
            continue
        catalogs[name] = load_zsc(resolved, ctx.diagnostics)
        logging.info("Loaded %s catalog %s", name, resolved)
    return catalogs


def load_tiles(ctx: ImportContext, zone_path: Path) -> Tuple[List[LoadedTile], List[Tuple[str, MapObjects]]]:
    files = discover_tiles(zone_path.parent)
    if not files:
        raise OutOfRangeError("zone has no terrain tiles", zone_path.parent)

    tiles: List[LoadedTile] = []
    objects: List[Tuple[str, MapObjects]] = []
    for index, tile_files in enumerate(files):
        ctx.report(PHASE_LOADING, index / len(files))
        if tile_files.tile_map is not None:
            tile_map = load_til(tile_files.tile_map)
        else:
            ctx.diagnostics.add(DIAG_MISSING_FILE, f"tile {tile_files.name} has no tile map", tile_files.heightmap)
            tile_map = TileMap(width=0, height=0)
        tiles.append(
            LoadedTile(
                x=tile_files.x,
                y=tile_files.y,
                heightmap=load_him(tile_files.heightmap),
                tile_map=tile_map,
                name=tile_files.name,
            )
        )
        if tile_files.objects is not None:
            objects.append((tile_files.name, load_ifo(tile_files.objects, ctx.diagnostics)))
    logging.info("Loaded %d tiles (%d with objects)", len(tiles), len(objects))
    return tiles, objects


def emit_instances(ctx: ImportContext, placements: Sequence[Placement]) -> None:
    for (catalog, mesh_path, material_index), group in group_buckets(placements).items():
        mesh_id = load_mesh(ctx, mesh_path)
        if mesh_id is None:
            continue
        material_id = register_material(ctx, group[0])
        bucket = InstanceBucket(
            catalog=catalog,
            mesh_path=mesh_path,
            material_index=material_index,
            mesh_id=mesh_id,
            material_id=material_id,
            flags=group[0].flags,
        )
        for placement in group:
            bucket.instance_ids.append(len(ctx.scene.instances))
            ctx.scene.instances.append(
                Instance(mesh_id, material_id, placement.transform, placement.flags)
            )
        ctx.scene.buckets.append(bucket)


def load_prop_animation(ctx: ImportContext, reference: str) -> Tuple[bool, Optional[int]]:
    """``(loaded, anim_id)``; ``loaded`` is False when the file is missing or unreadable."""
    if reference in ctx.animation_ids:
        return True, ctx.animation_ids[reference]
    resolved = ctx.resolver.resolve(reference)
    if resolved is None:
        ctx.missing(f"animation {reference} not found; placed static", ctx.resolver.root)
        return False, None
    try:
        decoded = load_zmo(resolved)
    except RoseError as exc:
        ctx.diagnostics.add(DIAG_BAD_FILE, f"{exc}; placed static", resolved)
        return False, None

    anim_id: Optional[int] = None
    if decoded.frame_count <= 0 or decoded.fps <= 0:
        ctx.diagnostics.add(
            DIAG_DROPPED,
            f"animation has {decoded.frame_count} frames at {decoded.fps} fps",
            resolved,
        )
    else:
        anim_id = len(ctx.scene.animations)
        ctx.scene.animations.append(root_motion(decoded, resolved.stem))
    ctx.animation_ids[reference] = anim_id
    return True, anim_id


def emit_animated(ctx: ImportContext, placements: Sequence[Placement]) -> List[Placement]:
    """Animated records; returns placements that fall back to static instances."""
    fallback: List[Placement] = []
    for placement in placements:
        if not placement.is_animated:
            continue
        loaded, anim_id = load_prop_animation(ctx, placement.animation_path)
        if not loaded:
            fallback.append(dataclasses.replace(placement, animation_path=""))
            continue
        if anim_id is None:
            continue
        mesh_id = load_mesh(ctx, placement.mesh_path)
        if mesh_id is None:
            continue
        ctx.scene.animated.append(
            Animated(
                mesh_id=mesh_id,
                material_id=register_material(ctx, placement),
                transform=placement.transform,
                anim_id=anim_id,
                animation_path=placement.animation_path,
            )
        )
    return fallback


def import_zone(
    zone_path: PathLike,
    options: Optional[ImportOptions] = None,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> Scene:
    zone_path = Path(zone_path)
    ctx = ImportContext(
        resolver=PathResolver.for_zone(zone_path),
        options=options or ImportOptions(),
        progress=progress,
        cancel_token=cancel,
    )
    logging.info("Importing zone %s (root %s)", zone_path, ctx.resolver.root)

    ctx.report(PHASE_LOADING, 0.0)
    zone = load_zon(zone_path, ctx.diagnostics)
    catalogs = load_zone_catalogs(ctx, zone_path)
    tileset: Optional[TileSet] = None
    if ctx.options.load_tileset:
        tileset = load_tileset_for_zone(ctx.resolver, zone.zone_type, ctx.diagnostics)
    tiles, tile_objects = load_tiles(ctx, zone_path)

    ctx.report(PHASE_TERRAIN, 0.0)
    terrain = assemble_terrain(zone, tiles, ctx.options.max_layers, tileset)
    ctx.scene.terrain = terrain

    ctx.report(PHASE_PLACING, 0.0)
    placements: List[Placement] = []
    for index, (tile_name, map_objects) in enumerate(tile_objects):
        ctx.report(PHASE_PLACING, index / max(1, len(tile_objects)))
        placements.extend(
            place_tile(tile_name, map_objects, catalogs, ctx.diagnostics, ctx.options.strict)
        )
    fallback = emit_animated(ctx, placements)
    emit_instances(ctx, [placement for placement in placements if not placement.is_animated] + fallback)

    ctx.report(PHASE_FINALIZING, 0.0)
    if ctx.options.decode_textures:
        for layer in terrain.layers:
            if layer.texture_path:
                layer.texture_asset_id = load_texture(ctx, layer.texture_path)
    ctx.report(PHASE_FINALIZING, 1.0)

    logging.info(
        "Zone %s: %d instances in %d buckets, %d animated, %d meshes, %d textures, %d diagnostics",
        zone_path.stem,
        len(ctx.scene.instances),
        len(ctx.scene.buckets),
        len(ctx.scene.animated),
        len(ctx.scene.meshes),
        len(ctx.scene.textures),
        len(ctx.diagnostics),
    )
    return ctx.scene


# ---------------------------------------------------------------------------
# Character import
# ---------------------------------------------------------------------------

def part_texture_reference(ctx: ImportContext, texture_path: str) -> Optional[int]:
    """Texture beside the part, else the bare file name through the search prefixes."""
    candidate = Path(texture_path)
    beside = find_case_insensitive_file(candidate.parent, candidate.name)
    if beside is not None:
        return load_texture(ctx, beside.as_posix(), beside)
    return load_texture(ctx, candidate.name)


def import_character(
    skeleton_path: PathLike,
    part_paths: Sequence[PathLike],
    animation_paths: Sequence[PathLike] = (),
    options: Optional[ImportOptions] = None,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> Scene:
    skeleton_path = Path(skeleton_path)
    ctx = ImportContext(
        resolver=PathResolver(find_data_root(skeleton_path)),
        options=options or ImportOptions(),
        progress=progress,
        cancel_token=cancel,
    )

    ctx.report(PHASE_LOADING, 0.0)
    skeleton = build_skeleton(load_zmd(skeleton_path), skeleton_path.stem)
    ctx.scene.skeletons.append(skeleton)

    parts = []
    for index, part in enumerate(part_paths):
        ctx.report(PHASE_LOADING, (index + 1) / (len(part_paths) + 1))
        part = Path(part)
        if not part.is_file():
            raise PathNotFoundError("character part not found", part)
        parts.append((str(part), load_zms(part)))

    ctx.report(PHASE_PLACING, 0.0)
    ctx.scene.skeletal_meshes.append(
        assemble_skeletal_mesh(skeleton_path.stem, skeleton, 0, parts)
    )

    for index, animation_path in enumerate(animation_paths):
        ctx.report(PHASE_PLACING, index / max(1, len(animation_paths)))
        animation_path = Path(animation_path)
        ctx.scene.animations.append(
            rebase_animation(load_zmo(animation_path), skeleton, animation_path.stem, skeleton_id=0)
        )

    ctx.report(PHASE_FINALIZING, 0.0)
    if ctx.options.decode_textures:
        for section in ctx.scene.skeletal_meshes[0].sections:
            section.texture_id = part_texture_reference(ctx, section.texture_path)
    ctx.report(PHASE_FINALIZING, 1.0)
    logging.info(
        "Character %s: %d bones, %d parts, %d animations",
        skeleton_path.stem,
        skeleton.bone_count,
        len(parts),
        len(ctx.scene.animations),
    )
    return ctx.scene


def import_default_character(
    skeleton_path: PathLike,
    options: Optional[ImportOptions] = None,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> Scene:
    layout = find_default_character_parts(Path(skeleton_path))
    return import_character(
        layout.skeleton,
        layout.parts,
        layout.animations,
        options=options,
        progress=progress,
        cancel=cancel,
    )
