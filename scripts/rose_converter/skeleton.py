"""
skeleton.py
===========

Builds a ``SkeletonAsset`` from a decoded ``.ZMD``.

Bones are emitted so that every parent precedes its children. The file
order is kept wherever possible: each pass walks the unprocessed bones in
file order and emits every bone whose parent has already been emitted,
so a child can follow its parent within the same pass. ``remap`` maps the
original index to the emitted one and is what meshes and animations use.

Bone transforms are local and already in scene units; dummies are stored
in world space and in metres, so they are made parent-relative and then
scaled by 100.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .coords import IDENTITY, UNIT_SCALE, Transform, flip_position, flip_quat, vec_scale
from .errors import CyclicDependencyError, OutOfRangeError
from .scene import Bone, SkeletonAsset
from .zmd import RawBone, SkeletonFile


def bone_local(bone: RawBone) -> Transform:
    return Transform(flip_quat(bone.rotation), flip_position(bone.position))


def _unique_name(name: str, taken: set, index: int) -> str:
    if name not in taken:
        return name
    renamed = f"{name}_{index}"
    while renamed in taken:
        renamed += "_"
    logging.warning("Duplicate bone name %s renamed to %s", name, renamed)
    return renamed


def sort_bones(bones: List[RawBone]) -> List[int]:
    """Original indices in emission order. Raises on cycles."""
    count = len(bones)
    emitted: List[int] = []
    done = [False] * count
    passes = 0
    while len(emitted) < count:
        passes += 1
        if passes > count + 2:
            raise CyclicDependencyError(f"bone sort did not settle after {passes - 1} passes")
        progress = False
        for index, bone in enumerate(bones):
            if done[index]:
                continue
            parent = bone.parent
            if 0 <= parent < count and parent != index and not done[parent]:
                continue
            done[index] = True
            emitted.append(index)
            progress = True
        # A full pass emitting nothing means every pending bone waits on another pending bone.
        if not progress:
            pending = [index for index in range(count) if not done[index]]
            raise CyclicDependencyError(
                f"{len(pending)} bone(s) never reach a root: {pending[:8]}"
            )
    return emitted


def build_skeleton(skeleton: SkeletonFile, name: str = "") -> SkeletonAsset:
    bones = skeleton.bones
    count = len(bones)
    if count == 0:
        raise OutOfRangeError("skeleton has no bones", name or None)

    order = sort_bones(bones)
    remap: List[Optional[int]] = [None] * (count + len(skeleton.dummies))
    world: List[Transform] = [IDENTITY] * (count + len(skeleton.dummies))
    emitted: List[Bone] = []
    taken: set = set()
    root: Optional[int] = None

    for original in order:
        raw = bones[original]
        parent = raw.parent
        is_root = parent < 0 or parent == original or parent >= count
        if parent >= count:
            logging.warning("Bone %d has invalid parent %d; attached to the root", original, parent)

        if is_root:
            if root is None:
                root = len(emitted)
                new_parent = -1
            else:
                new_parent = root
        else:
            new_parent = remap[parent]  # type: ignore[assignment]

        local = bone_local(raw)
        parent_world = world[parent] if 0 <= parent < count and parent != original else IDENTITY
        world[original] = local * parent_world

        bone_name = _unique_name(raw.name, taken, original)
        taken.add(bone_name)
        remap[original] = len(emitted)
        emitted.append(Bone(name=bone_name, parent=new_parent, local=local))

    for index, dummy in enumerate(skeleton.dummies):
        parent = dummy.parent
        valid_parent = 0 <= parent < count and remap[parent] is not None
        new_parent = remap[parent] if valid_parent else root

        dummy_world = Transform(flip_quat(dummy.rotation), flip_position(dummy.position))
        world[count + index] = dummy_world
        relative = dummy_world.relative_to(world[parent]) if valid_parent else dummy_world
        local = Transform(relative.rotation, vec_scale(relative.translation, UNIT_SCALE))

        dummy_name = _unique_name(dummy.name, taken, count + index)
        taken.add(dummy_name)
        remap[count + index] = len(emitted)
        emitted.append(Bone(name=dummy_name, parent=new_parent, local=local, is_dummy=True))  # type: ignore[arg-type]

    component: List[Transform] = []
    for bone in emitted:
        parent_component = component[bone.parent] if bone.parent >= 0 else IDENTITY
        component.append(bone.local * parent_component)

    logging.info(
        "Skeleton %s: %d bones, %d dummies", name or "<memory>", count, len(skeleton.dummies)
    )
    return SkeletonAsset(name=name, bones=emitted, remap=remap, world=world, component=component)
