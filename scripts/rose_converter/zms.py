"""
zms.py
======

Static / skinned mesh files (``.ZMS``).

Layout::

    token format string ("ZMS0008")
    i32 vertex format flags
    6 x f32 bounding box
    u16 bone count, bone count x u16 skeleton bone indices
    u16 vertex count
    vertex streams, present per flag bit, each vertex-count long:
        bit 1 position (3f)      bit 2 normal (3f)     bit 3 colour (4f a, r, g, b)
        bit 4 blend weights (4f) bit 5 blend indices (4 x u16)
        bit 6 tangent (3f)       bits 7..10 UV1..UV4 (2f each)
    u16 face count, face count x 3 x u16 indices
    u16 material id

Arrays stay in source space; ``scene.MeshAsset.from_zms`` converts them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from .coords import Vec3
from .errors import BadMagicError, PathLike
from .reader import ByteReader

ZMS_MAGIC_PREFIX = "ZMS"

FLAG_POSITION = 1 << 1
FLAG_NORMAL = 1 << 2
FLAG_COLOR = 1 << 3
FLAG_BLEND_WEIGHT = 1 << 4
FLAG_BLEND_INDEX = 1 << 5
FLAG_TANGENT = 1 << 6
FLAG_UV1 = 1 << 7
FLAG_UV2 = 1 << 8
FLAG_UV3 = 1 << 9
FLAG_UV4 = 1 << 10
UV_FLAGS = (FLAG_UV1, FLAG_UV2, FLAG_UV3, FLAG_UV4)


def _empty(columns: int, dtype=np.float32) -> np.ndarray:
    return np.zeros((0, columns), dtype=dtype)


@dataclass
class StaticMesh:
    format_string: str
    format_flags: int
    bounds_min: Vec3
    bounds_max: Vec3
    bone_table: List[int] = field(default_factory=list)
    positions: np.ndarray = field(default_factory=lambda: _empty(3))
    normals: np.ndarray = field(default_factory=lambda: _empty(3))
    # (n, 4) float32 in r, g, b, a order.
    colors: np.ndarray = field(default_factory=lambda: _empty(4))
    blend_weights: np.ndarray = field(default_factory=lambda: _empty(4))
    blend_indices: np.ndarray = field(default_factory=lambda: _empty(4, np.int32))
    tangents: np.ndarray = field(default_factory=lambda: _empty(3))
    # UV1..UV4; None where the stream is absent.
    uvs: List[Optional[np.ndarray]] = field(default_factory=lambda: [None] * 4)
    # (faces, 3) int32
    indices: np.ndarray = field(default_factory=lambda: _empty(3, np.int32))
    material_id: int = 0

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def face_count(self) -> int:
        return int(self.indices.shape[0])

    @property
    def has_skin(self) -> bool:
        return bool(self.bone_table)

    def uv(self, channel: int) -> Optional[np.ndarray]:
        if 0 <= channel < len(self.uvs):
            return self.uvs[channel]
        return None


def _read_floats(reader: ByteReader, count: int, columns: int) -> np.ndarray:
    raw = reader.read_bytes(count * columns * 4)
    return np.frombuffer(raw, dtype="<f4").reshape(count, columns).astype(np.float32)


def _read_u16s(reader: ByteReader, count: int, columns: int) -> np.ndarray:
    raw = reader.read_bytes(count * columns * 2)
    return np.frombuffer(raw, dtype="<u2").reshape(count, columns).astype(np.int32)


def parse_zms(data: bytes, file: Optional[PathLike] = None) -> StaticMesh:
    reader = ByteReader(data, file)
    format_string = reader.read_token_string()
    if not format_string.upper().startswith(ZMS_MAGIC_PREFIX):
        raise BadMagicError(f"expected ZMS format string, found {format_string!r}", file, 0)

    flags = reader.read_i32()
    bounds_min = reader.read_vec3()
    bounds_max = reader.read_vec3()
    mesh = StaticMesh(
        format_string=format_string,
        format_flags=flags,
        bounds_min=bounds_min,
        bounds_max=bounds_max,
    )

    bone_count = reader.read_u16()
    mesh.bone_table = [reader.read_u16() for _ in range(bone_count)]

    count = reader.read_u16()
    if flags & FLAG_POSITION:
        mesh.positions = _read_floats(reader, count, 3)
    else:
        mesh.positions = np.zeros((count, 3), dtype=np.float32)
    if flags & FLAG_NORMAL:
        mesh.normals = _read_floats(reader, count, 3)
    if flags & FLAG_COLOR:
        argb = _read_floats(reader, count, 4)
        mesh.colors = np.ascontiguousarray(argb[:, [1, 2, 3, 0]])
    if flags & FLAG_BLEND_WEIGHT:
        mesh.blend_weights = _read_floats(reader, count, 4)
    if flags & FLAG_BLEND_INDEX:
        mesh.blend_indices = _read_u16s(reader, count, 4)
    if flags & FLAG_TANGENT:
        mesh.tangents = _read_floats(reader, count, 3)
    mesh.uvs = [
        _read_floats(reader, count, 2) if flags & uv_flag else None
        for uv_flag in UV_FLAGS
    ]

    face_count = reader.read_u16()
    mesh.indices = _read_u16s(reader, face_count, 3)
    mesh.material_id = reader.read_u16()
    return mesh


def load_zms(path: Union[str, Path]) -> StaticMesh:
    path = Path(path)
    return parse_zms(path.read_bytes(), path)
