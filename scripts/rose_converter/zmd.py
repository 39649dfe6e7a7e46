"""
zmd.py
======

Skeleton files (``.ZMD``).

Layout::

    token format string ("ZMD0003")
    u32 bone count  x (i32 parent, token name, 3f position, 4f rotation w, x, y, z)
    u32 dummy count x (token name, i32 parent, 3f position, 4f rotation w, x, y, z)

Rotations are reordered to (x, y, z, w); handedness is left to ``skeleton``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .coords import Quat, Vec3, wxyz_to_xyzw
from .errors import BadMagicError, PathLike
from .reader import ByteReader

ZMD_MAGIC_PREFIX = "ZMD"


@dataclass(frozen=True)
class RawBone:
    parent: int
    name: str
    position: Vec3
    rotation: Quat


@dataclass
class SkeletonFile:
    format_string: str
    bones: List[RawBone] = field(default_factory=list)
    dummies: List[RawBone] = field(default_factory=list)


def parse_zmd(data: bytes, file: Optional[PathLike] = None) -> SkeletonFile:
    reader = ByteReader(data, file)
    format_string = reader.read_token_string()
    if not format_string.upper().startswith(ZMD_MAGIC_PREFIX):
        raise BadMagicError(f"expected ZMD format string, found {format_string!r}", file, 0)

    skeleton = SkeletonFile(format_string=format_string)
    for _ in range(reader.read_u32()):
        parent = reader.read_i32()
        name = reader.read_token_string()
        position = reader.read_vec3()
        rotation = wxyz_to_xyzw(reader.read_vec4())
        skeleton.bones.append(RawBone(parent, name, position, rotation))

    for _ in range(reader.read_u32()):
        name = reader.read_token_string()
        parent = reader.read_i32()
        position = reader.read_vec3()
        rotation = wxyz_to_xyzw(reader.read_vec4())
        skeleton.dummies.append(RawBone(parent, name, position, rotation))
    return skeleton


def load_zmd(path: Union[str, Path]) -> SkeletonFile:
    path = Path(path)
    return parse_zmd(path.read_bytes(), path)
