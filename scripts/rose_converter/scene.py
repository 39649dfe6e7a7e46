"""
scene.py
========

The engine-agnostic scene produced by an import. Everything here is in
scene space: left-handed, centimetres, quaternions ``(x, y, z, w)``.

Records refer to each other by list index (``mesh_id``, ``material_id``,
``anim_id``); ``Scene.to_dict`` gives a JSON-safe summary without the bulk
arrays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from .coords import UNIT_SCALE, Transform, convert_normals, convert_positions
from .errors import Diagnostics
from .zms import StaticMesh
from .zsc import ZscMaterial

FLAG_CAST_SHADOW_TWO_SIDED = "cast-shadow-two-sided"
FLAG_NO_SHADOW = "no-shadow"
FLAG_NO_COLLISION = "no-collision"

SMART_UV_FLAT_EXTENT = 0.001
SMART_UV_USED_EXTENT = 0.01


def _uv_extent(uv: Optional[np.ndarray]) -> float:
    if uv is None or uv.shape[0] == 0:
        return 0.0
    span = uv.max(axis=0) - uv.min(axis=0)
    return float(np.sqrt(np.sum(span.astype(np.float64) ** 2)))


# ---------------------------------------------------------------------------
# Meshes, materials, textures
# ---------------------------------------------------------------------------

@dataclass
class MeshAsset:
    path: str
    positions: np.ndarray
    normals: np.ndarray
    colors: np.ndarray
    tangents: np.ndarray
    # Output channel order; channel 0 is the texture channel.
    uvs: List[Optional[np.ndarray]]
    indices: np.ndarray
    material_id: int = 0
    bone_table: List[int] = field(default_factory=list)
    blend_weights: Optional[np.ndarray] = None
    blend_indices: Optional[np.ndarray] = None
    bounds_min: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    bounds_max: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    uv_swapped: bool = False

    @classmethod
    def from_zms(cls, mesh: StaticMesh, path: str) -> "MeshAsset":
        uvs = list(mesh.uvs)
        swapped = (
            _uv_extent(uvs[0]) < SMART_UV_FLAT_EXTENT
            and _uv_extent(uvs[1]) > SMART_UV_USED_EXTENT
        )
        if swapped:
            logging.debug("Using UV2 as the texture channel of %s", path)
            uvs[0], uvs[1] = uvs[1], uvs[0]

        corners = convert_positions(np.array([mesh.bounds_min, mesh.bounds_max]), UNIT_SCALE)
        return cls(
            path=path,
            positions=convert_positions(mesh.positions, UNIT_SCALE),
            normals=convert_normals(mesh.normals),
            colors=mesh.colors.copy(),
            tangents=convert_normals(mesh.tangents),
            uvs=uvs,
            indices=mesh.indices.copy(),
            material_id=mesh.material_id,
            bone_table=list(mesh.bone_table),
            blend_weights=mesh.blend_weights if mesh.blend_weights.size else None,
            blend_indices=mesh.blend_indices if mesh.blend_indices.size else None,
            bounds_min=tuple(float(v) for v in corners.min(axis=0)),  # type: ignore[arg-type]
            bounds_max=tuple(float(v) for v in corners.max(axis=0)),  # type: ignore[arg-type]
            uv_swapped=swapped,
        )

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def face_count(self) -> int:
        return int(self.indices.shape[0])

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "vertices": self.vertex_count,
            "faces": self.face_count,
            "uv_channels": sum(1 for uv in self.uvs if uv is not None),
            "uv_swapped": self.uv_swapped,
            "bounds": [list(self.bounds_min), list(self.bounds_max)],
        }


@dataclass(frozen=True)
class MaterialDesc:
    texture_path: str
    two_sided: bool
    alpha_enabled: bool
    alpha_test: int
    alpha_ref: int
    blend_type: int
    z_test: int
    z_write: int
    specular: int
    alpha_value: float
    glow_type: int
    glow_color: Tuple[float, float, float]
    texture_id: Optional[int] = None

    @classmethod
    def from_zsc(cls, material: ZscMaterial, texture_id: Optional[int] = None) -> "MaterialDesc":
        return cls(
            texture_path=material.texture_path,
            two_sided=material.two_sided,
            alpha_enabled=material.alpha_enabled,
            alpha_test=material.alpha_test,
            alpha_ref=material.alpha_ref,
            blend_type=material.blend_type,
            z_test=material.z_test,
            z_write=material.z_write,
            specular=material.specular,
            alpha_value=material.alpha_value,
            glow_type=material.glow_type,
            glow_color=material.glow_color,
            texture_id=texture_id,
        )

    def to_dict(self) -> dict:
        return {
            "texture_path": self.texture_path,
            "texture_id": self.texture_id,
            "two_sided": self.two_sided,
            "alpha_enabled": self.alpha_enabled,
            "alpha_test": self.alpha_test,
            "blend_type": self.blend_type,
            "glow_type": self.glow_type,
        }


@dataclass
class TextureAsset:
    path: str
    resolved_path: str
    # (height, width, 4) uint8 RGBA
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "resolved_path": self.resolved_path,
            "width": self.width,
            "height": self.height,
        }


# ---------------------------------------------------------------------------
# Terrain
# ---------------------------------------------------------------------------

@dataclass
class TerrainLayer:
    name: str
    texture_id: int
    texture_path: Optional[str]
    # (height, width) uint8
    weights: np.ndarray
    texture_asset_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "texture_id": self.texture_id,
            "texture_path": self.texture_path,
            "texture_asset_id": self.texture_asset_id,
            "painted_pixels": int(np.count_nonzero(self.weights)),
        }


@dataclass
class Terrain:
    width: int
    height: int
    anchor_xy: Tuple[float, float]
    axis_scale: Tuple[float, float, float]
    # (height, width) uint16
    heights: np.ndarray
    layers: List[TerrainLayer] = field(default_factory=list)
    tile_bounds: Tuple[int, int, int, int] = (0, 0, 0, 0)
    brush_data: Dict[str, np.ndarray] = field(default_factory=dict)

    def heightmap_image(self) -> Image.Image:
        """16-bit greyscale image of the quantised heights."""
        return Image.fromarray(np.ascontiguousarray(self.heights, dtype=np.uint16))

    def layer_image(self, index: int) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.layers[index].weights))

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "anchor_xy": list(self.anchor_xy),
            "axis_scale": list(self.axis_scale),
            "tile_bounds": list(self.tile_bounds),
            "height_range": [int(self.heights.min()), int(self.heights.max())]
            if self.heights.size
            else [0, 0],
            "layers": [layer.to_dict() for layer in self.layers],
            "brush_tiles": sorted(self.brush_data),
        }


# ---------------------------------------------------------------------------
# Placements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Instance:
    mesh_id: int
    material_id: Optional[int]
    transform: Transform
    flags: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "mesh_id": self.mesh_id,
            "material_id": self.material_id,
            "transform": self.transform.to_dict(),
            "flags": list(self.flags),
        }


@dataclass
class InstanceBucket:
    catalog: str
    mesh_path: str
    material_index: int
    mesh_id: int
    material_id: Optional[int]
    flags: Tuple[str, ...]
    instance_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "catalog": self.catalog,
            "mesh_path": self.mesh_path,
            "material_index": self.material_index,
            "mesh_id": self.mesh_id,
            "material_id": self.material_id,
            "flags": list(self.flags),
            "instances": len(self.instance_ids),
        }


@dataclass(frozen=True)
class Animated:
    mesh_id: int
    material_id: Optional[int]
    transform: Transform
    anim_id: int
    animation_path: str

    def to_dict(self) -> dict:
        return {
            "mesh_id": self.mesh_id,
            "material_id": self.material_id,
            "transform": self.transform.to_dict(),
            "anim_id": self.anim_id,
            "animation_path": self.animation_path,
        }


# ---------------------------------------------------------------------------
# Skeletons and animation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Bone:
    name: str
    parent: int
    local: Transform
    is_dummy: bool = False


@dataclass
class SkeletonAsset:
    name: str
    bones: List[Bone] = field(default_factory=list)
    # original bone index (dummies: bone count + dummy index) -> emitted index
    remap: List[Optional[int]] = field(default_factory=list)
    # world transform per original bone index, before any unit scale
    world: List[Transform] = field(default_factory=list)
    # component-space rest transform per emitted bone
    component: List[Transform] = field(default_factory=list)

    @property
    def bone_count(self) -> int:
        return len(self.bones)

    def index_of(self, name: str) -> Optional[int]:
        for index, bone in enumerate(self.bones):
            if bone.name == name:
                return index
        return None

    def world_of(self, index: int) -> Transform:
        """Cached world transform of the bone emitted at ``index``."""
        for original, emitted in enumerate(self.remap):
            if emitted == index:
                return self.world[original]
        return Transform()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "bones": [
                {"name": bone.name, "parent": bone.parent, "dummy": bone.is_dummy}
                for bone in self.bones
            ],
            "remap": list(self.remap),
        }


@dataclass
class BoneTrack:
    bone: int
    # (frames, 3), (frames, 4) xyzw, (frames, 3)
    positions: np.ndarray
    rotations: np.ndarray
    scales: np.ndarray


@dataclass
class AnimationAsset:
    name: str
    fps: int
    frame_count: int
    tracks: List[BoneTrack] = field(default_factory=list)
    skeleton_id: Optional[int] = None

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps if self.fps > 0 else 0.0

    def track_for(self, bone: int) -> Optional[BoneTrack]:
        for track in self.tracks:
            if track.bone == bone:
                return track
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "fps": self.fps,
            "frames": self.frame_count,
            "skeleton_id": self.skeleton_id,
            "tracks": [track.bone for track in self.tracks],
        }


@dataclass
class SkinnedSection:
    source_path: str
    material_slot: str
    texture_path: str
    rigid: bool
    positions: np.ndarray
    normals: np.ndarray
    uvs: List[Optional[np.ndarray]]
    indices: np.ndarray
    # One list of (bone, weight) pairs per vertex, bones in emitted index space.
    influences: List[List[Tuple[int, float]]] = field(default_factory=list)
    texture_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "source_path": self.source_path,
            "material_slot": self.material_slot,
            "texture_path": self.texture_path,
            "texture_id": self.texture_id,
            "rigid": self.rigid,
            "vertices": int(self.positions.shape[0]),
            "faces": int(self.indices.shape[0]),
        }


@dataclass
class SkeletalMeshAsset:
    name: str
    skeleton_id: int
    sections: List[SkinnedSection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "skeleton_id": self.skeleton_id,
            "sections": [section.to_dict() for section in self.sections],
        }


# ---------------------------------------------------------------------------
# Scene
# ---------------------------------------------------------------------------

@dataclass
class Scene:
    terrain: Optional[Terrain] = None
    instances: List[Instance] = field(default_factory=list)
    buckets: List[InstanceBucket] = field(default_factory=list)
    animated: List[Animated] = field(default_factory=list)
    meshes: List[MeshAsset] = field(default_factory=list)
    materials: List[MaterialDesc] = field(default_factory=list)
    skeletons: List[SkeletonAsset] = field(default_factory=list)
    skeletal_meshes: List[SkeletalMeshAsset] = field(default_factory=list)
    animations: List[AnimationAsset] = field(default_factory=list)
    textures: List[TextureAsset] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    def to_dict(self) -> dict:
        return {
            "terrain": self.terrain.to_dict() if self.terrain is not None else None,
            "instances": [instance.to_dict() for instance in self.instances],
            "buckets": [bucket.to_dict() for bucket in self.buckets],
            "animated": [record.to_dict() for record in self.animated],
            "meshes": [mesh.to_dict() for mesh in self.meshes],
            "materials": [material.to_dict() for material in self.materials],
            "skeletons": [skeleton.to_dict() for skeleton in self.skeletons],
            "skeletal_meshes": [mesh.to_dict() for mesh in self.skeletal_meshes],
            "animations": [animation.to_dict() for animation in self.animations],
            "textures": [texture.to_dict() for texture in self.textures],
            "diagnostics": [entry.to_dict() for entry in self.diagnostics],
        }
