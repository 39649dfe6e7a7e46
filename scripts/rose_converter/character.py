"""
character.py
============

Skeletal-mesh assembly: several ``.ZMS`` parts bound to one skeleton.

A part is *rigid* when it has no bone table or when its path names a face
or hair mesh; every vertex of a rigid part is moved by the anchor bone's
cached world transform and bound to it with weight 1.0. Other parts keep
their per-vertex weights, with mesh-local bone indices mapped through the
part's bone table and then through the skeleton remap.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import List, Sequence, Tuple

import numpy as np

from .coords import UNIT_SCALE, convert_normals, convert_positions
from .resolver import find_case_insensitive_child_dir
from .scene import SkeletalMeshAsset, SkeletonAsset, SkinnedSection
from .zms import StaticMesh

RIGID_PATH_MARKERS = ("FACE", "HAIR")
ANCHOR_BONES = ("b1_head", "b1_neck")
MAX_INFLUENCES = 4

# (slot folder, file pattern, take every match)
DEFAULT_PART_PATTERNS: Tuple[Tuple[str, str, bool], ...] = (
    ("BODY", "BODY1_001*.ZMS", True),
    ("ARMS", "ARM1_001*.ZMS", False),
    ("FACE", "FACE1_001*.ZMS", False),
    ("FOOT", "FOOT1_001*.ZMS", False),
    ("HAIR", "HAIR1_001*.ZMS", False),
)
MOTION_DIR = "MOTION"
MOTION_PATTERN = "*.ZMO"


def is_rigid_part(path: str, mesh: StaticMesh) -> bool:
    """Parts without a bone table, or under a FACE/HAIR folder or file name, bind rigidly."""
    if not mesh.bone_table:
        return True
    components = path.replace("\\", "/").upper().split("/")
    return any(part.startswith(marker) for part in components for marker in RIGID_PATH_MARKERS)


def anchor_bone(skeleton: SkeletonAsset) -> int:
    for name in ANCHOR_BONES:
        index = skeleton.index_of(name)
        if index is not None:
            return index
    logging.warning("Skeleton %s has neither b1_head nor b1_neck; binding to the root", skeleton.name)
    return 0


def material_slot_name(path: str) -> str:
    stem = PurePath(path.replace("\\", "/")).stem
    return f"M_{stem}"


def part_texture_path(path: str) -> str:
    return str(PurePath(path).with_suffix(".DDS"))


def skin_influences(mesh: StaticMesh, skeleton: SkeletonAsset) -> List[List[Tuple[int, float]]]:
    influences: List[List[Tuple[int, float]]] = []
    count = mesh.vertex_count
    has_streams = mesh.blend_weights.shape[0] == count and mesh.blend_indices.shape[0] == count
    for vertex in range(count):
        pairs: List[Tuple[int, float]] = []
        if has_streams:
            for slot in range(MAX_INFLUENCES):
                weight = float(mesh.blend_weights[vertex, slot])
                local = int(mesh.blend_indices[vertex, slot])
                if weight <= 0.0 or not 0 <= local < len(mesh.bone_table):
                    continue
                original = mesh.bone_table[local]
                emitted = skeleton.remap[original] if 0 <= original < len(skeleton.remap) else None
                if emitted is None:
                    continue
                pairs.append((emitted, weight))
        influences.append(pairs)
    return influences


def build_section(path: str, mesh: StaticMesh, skeleton: SkeletonAsset) -> SkinnedSection:
    positions = convert_positions(mesh.positions, UNIT_SCALE)
    normals = convert_normals(mesh.normals)
    rigid = is_rigid_part(path, mesh)

    if rigid:
        bone = anchor_bone(skeleton)
        world = skeleton.world_of(bone)
        positions = np.array(
            [world.transform_position(point) for point in positions.tolist()],
            dtype=np.float32,
        ).reshape(-1, 3)
        influences = [[(bone, 1.0)] for _ in range(mesh.vertex_count)]
        logging.debug("Part %s bound rigidly to bone %d", path, bone)
    else:
        influences = skin_influences(mesh, skeleton)

    return SkinnedSection(
        source_path=path,
        material_slot=material_slot_name(path),
        texture_path=part_texture_path(path),
        rigid=rigid,
        positions=positions,
        normals=normals,
        uvs=list(mesh.uvs),
        indices=mesh.indices.copy(),
        influences=influences,
    )


def assemble_skeletal_mesh(
    name: str,
    skeleton: SkeletonAsset,
    skeleton_id: int,
    parts: Sequence[Tuple[str, StaticMesh]],
) -> SkeletalMeshAsset:
    asset = SkeletalMeshAsset(name=name, skeleton_id=skeleton_id)
    for path, mesh in parts:
        asset.sections.append(build_section(path, mesh, skeleton))
    logging.info(
        "Skeletal mesh %s: %d parts (%d rigid)",
        name,
        len(asset.sections),
        sum(1 for section in asset.sections if section.rigid),
    )
    return asset


# ---------------------------------------------------------------------------
# Default character layout
# ---------------------------------------------------------------------------

@dataclass
class CharacterLayout:
    skeleton: Path
    parts: List[Path] = field(default_factory=list)
    animations: List[Path] = field(default_factory=list)


def _matching_files(directory: Path, pattern: str) -> List[Path]:
    if not directory.is_dir():
        return []
    needle = pattern.lower()
    return sorted(
        (child for child in directory.iterdir() if child.is_file() and fnmatch.fnmatch(child.name.lower(), needle)),
        key=lambda child: child.name,
    )


def find_default_character_parts(skeleton_path: Path) -> CharacterLayout:
    """Default avatar parts and motions next to ``skeleton_path``."""
    avatar_dir = skeleton_path.parent
    layout = CharacterLayout(skeleton=skeleton_path)

    for slot, pattern, take_all in DEFAULT_PART_PATTERNS:
        found = _matching_files(avatar_dir, pattern)
        if not found:
            slot_dir = find_case_insensitive_child_dir(avatar_dir, slot)
            if slot_dir is not None:
                found = _matching_files(slot_dir, pattern)
        if not found:
            logging.debug("No %s part matching %s", slot, pattern)
            continue
        layout.parts.extend(found if take_all else found[:1])

    motion_dir = find_case_insensitive_child_dir(avatar_dir, MOTION_DIR)
    if motion_dir is not None:
        layout.animations = _matching_files(motion_dir, MOTION_PATTERN)
    logging.info(
        "Default character: %d parts, %d motions below %s",
        len(layout.parts),
        len(layout.animations),
        avatar_dir,
    )
    return layout
