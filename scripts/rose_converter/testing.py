"""
testing.py
==========

Byte builders for the client file formats, used by the unit tests to make
small synthetic files. Each builder writes the same layout the matching
decoder reads.
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .ifo import MapObject
from .zmd import RawBone
from .zsc import SkippedProperty, ZscMaterial, ZscObject, ZscPart

ENCODING = "latin-1"


def token(text: str) -> bytes:
    return text.encode(ENCODING) + b"\x00"


def write_file(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def block_file(blocks: Sequence[Tuple[int, bytes]]) -> bytes:
    """``i32 count``, ``(type, offset)`` pairs, then the payloads in table order."""
    header_size = 4 + 8 * len(blocks)
    table = struct.pack("<i", len(blocks))
    body = b""
    for block_type, payload in blocks:
        table += struct.pack("<ii", block_type, header_size + len(body))
        body += payload
    return table + body


# ---------------------------------------------------------------------------
# STB
# ---------------------------------------------------------------------------

def _i16_string(text: str) -> bytes:
    raw = text.encode(ENCODING)
    return struct.pack("<h", len(raw)) + raw


def build_stb(rows: Sequence[Sequence[str]], column_names: Optional[Sequence[str]] = None) -> bytes:
    """String table whose data rows are ``rows``; column 0 is the row name."""
    column_count = max([len(row) for row in rows] + [len(column_names or [])] + [1])
    names = list(column_names or [])
    names += [""] * (column_count + 1 - len(names))

    out = b"STB1" + struct.pack("<iiii", 0, len(rows) + 1, column_count, 0)
    out += struct.pack("<" + "h" * (column_count + 1), *([16] * (column_count + 1)))
    out += b"".join(_i16_string(name) for name in names)
    padded = [list(row) + [""] * (column_count - len(row)) for row in rows]
    out += b"".join(_i16_string(row[0]) for row in padded)
    for row in padded:
        out += b"".join(_i16_string(cell) for cell in row[1:])
    return out


# ---------------------------------------------------------------------------
# Terrain files
# ---------------------------------------------------------------------------

def build_him(heights: np.ndarray, grid_count: int = 4, grid_size: float = 250.0) -> bytes:
    heights = np.asarray(heights, dtype="<f4")
    rows, cols = heights.shape
    return struct.pack("<iiif", cols, rows, grid_count, grid_size) + heights.tobytes()


def flat_him(value: float = 0.0, size: int = 65) -> bytes:
    return build_him(np.full((size, size), value, dtype=np.float32))


def build_til(tiles: Sequence[int], width: int = 16, height: int = 16) -> bytes:
    """Tile map whose patches reference ``tiles`` (row-major, padded with 0)."""
    values = list(tiles) + [0] * (width * height - len(tiles))
    out = struct.pack("<ii", width, height)
    for tile in values[:width * height]:
        out += struct.pack("<BBBi", 0, 0, 0, tile)
    return out


def zon_info_block(zone_type: int = 0, width: int = 64, height: int = 64) -> bytes:
    return struct.pack("<iiiifii", zone_type, width, height, 4, 250.0, 0, 0)


def zon_textures_block(textures: Sequence[str]) -> bytes:
    out = struct.pack("<i", len(textures))
    for texture in textures:
        raw = texture.encode(ENCODING)
        out += struct.pack("<B", len(raw)) + raw
    return out


def zon_tiles_block(tiles: Sequence[Tuple[int, int, int, int, int, int, int]]) -> bytes:
    """Tiles as ``(layer1, layer2, offset1, offset2, blending, rotation, type)``."""
    out = struct.pack("<i", len(tiles))
    for tile in tiles:
        out += struct.pack("<7i", *tile)
    return out


def build_zon(
    zone_type: int = 0,
    textures: Sequence[str] = (),
    tiles: Sequence[Tuple[int, int, int, int, int, int, int]] = (),
    extra_blocks: Sequence[Tuple[int, bytes]] = (),
) -> bytes:
    return block_file(
        [
            (0, zon_info_block(zone_type)),
            (2, zon_textures_block(textures)),
            (3, zon_tiles_block(tiles)),
        ]
        + list(extra_blocks)
    )


# ---------------------------------------------------------------------------
# IFO
# ---------------------------------------------------------------------------

def map_object(
    object_id: int,
    position=(0.0, 0.0, 0.0),
    rotation=(0.0, 0.0, 0.0, 1.0),
    scale=(1.0, 1.0, 1.0),
    name: str = "",
) -> MapObject:
    return MapObject(
        name=name,
        warp_id=0,
        event_id=0,
        object_type=1,
        object_id=object_id,
        map_position=(0, 0),
        rotation=tuple(rotation),
        position=tuple(position),
        scale=tuple(scale),
    )


def encode_map_object(obj: MapObject) -> bytes:
    return (
        token(obj.name)
        + struct.pack("<hhii", obj.warp_id, obj.event_id, obj.object_type, obj.object_id)
        + struct.pack("<ii", *obj.map_position)
        + struct.pack("<4f", *obj.rotation)
        + struct.pack("<3f", *obj.position)
        + struct.pack("<3f", *obj.scale)
    )


def _object_block(objects: Sequence[MapObject]) -> bytes:
    return struct.pack("<i", len(objects)) + b"".join(encode_map_object(obj) for obj in objects)


def build_ifo(
    objects: Sequence[MapObject] = (),
    buildings: Sequence[MapObject] = (),
    animations: Sequence[MapObject] = (),
    extra_blocks: Sequence[Tuple[int, bytes]] = (),
) -> bytes:
    map_info = struct.pack("<4i", 31, 31, 0, 0) + b"\x00" * 64 + token("ZONE")
    return block_file(
        [
            (0, map_info),
            (1, _object_block(objects)),
            (3, _object_block(buildings)),
            (6, _object_block(animations)),
        ]
        + list(extra_blocks)
    )


# ---------------------------------------------------------------------------
# ZSC
# ---------------------------------------------------------------------------

def material(
    texture_path: str,
    alpha_enabled: bool = False,
    two_sided: bool = False,
    alpha_test: int = 0,
    blend_type: int = 0,
) -> ZscMaterial:
    return ZscMaterial(
        texture_path=texture_path,
        is_skin=False,
        alpha_enabled=alpha_enabled,
        two_sided=two_sided,
        alpha_test=alpha_test,
        alpha_ref=128,
        z_test=1,
        z_write=1,
        blend_type=blend_type,
        specular=0,
        alpha_value=1.0,
        glow_type=0,
        glow_color=(1.0, 1.0, 1.0),
    )


def encode_material(mat: ZscMaterial) -> bytes:
    return (
        token(mat.texture_path)
        + struct.pack(
            "<9h",
            int(mat.is_skin),
            int(mat.alpha_enabled),
            int(mat.two_sided),
            mat.alpha_test,
            mat.alpha_ref,
            mat.z_test,
            mat.z_write,
            mat.blend_type,
            mat.specular,
        )
        + struct.pack("<f", mat.alpha_value)
        + struct.pack("<h", mat.glow_type)
        + struct.pack("<3f", *mat.glow_color)
    )


def _property(tag: int, payload: bytes) -> bytes:
    return struct.pack("<BB", tag, len(payload)) + payload


def encode_part(part: ZscPart) -> bytes:
    x, y, z, w = part.rotation
    out = struct.pack("<HH", part.mesh_index & 0xFFFF, part.material_index & 0xFFFF)
    out += _property(1, struct.pack("<3f", *part.position))
    out += _property(2, struct.pack("<4f", w, x, y, z))
    out += _property(3, struct.pack("<3f", *part.scale))
    if part.animation_path:
        out += _property(30, token(part.animation_path))
    for prop in part.properties:
        if isinstance(prop, SkippedProperty):
            out += _property(prop.tag, prop.payload)
    return out + b"\x00"


def encode_object(obj: ZscObject) -> bytes:
    out = struct.pack("<iiiH", obj.radius, obj.center[0], obj.center[1], len(obj.parts))
    if not obj.parts:
        return out
    out += b"".join(encode_part(part) for part in obj.parts)
    out += struct.pack("<H", 0)
    out += struct.pack("<3f", *obj.bounds_min) + struct.pack("<3f", *obj.bounds_max)
    return out


def build_zsc(
    meshes: Sequence[str] = (),
    materials: Sequence[ZscMaterial] = (),
    objects: Sequence[ZscObject] = (),
    effects: Sequence[str] = (),
    header: bool = True,
) -> bytes:
    out = b"ZSC1" if header else b""
    out += struct.pack("<H", len(meshes)) + b"".join(token(mesh) for mesh in meshes)
    out += struct.pack("<H", len(materials)) + b"".join(encode_material(mat) for mat in materials)
    out += struct.pack("<H", len(effects)) + b"".join(token(effect) for effect in effects)
    out += struct.pack("<H", len(objects)) + b"".join(encode_object(obj) for obj in objects)
    return out


def single_part_object(mesh_index: int = 0, material_index: int = 0, **fields) -> ZscObject:
    return ZscObject(parts=[ZscPart(mesh_index=mesh_index, material_index=material_index, **fields)])


# ---------------------------------------------------------------------------
# ZMS / ZMD / ZMO
# ---------------------------------------------------------------------------

def build_zms(
    positions: Sequence[Sequence[float]],
    faces: Sequence[Sequence[int]] = (),
    normals: Optional[Sequence[Sequence[float]]] = None,
    uvs: Sequence[Optional[Sequence[Sequence[float]]]] = (),
    bone_table: Sequence[int] = (),
    blend_weights: Optional[Sequence[Sequence[float]]] = None,
    blend_indices: Optional[Sequence[Sequence[int]]] = None,
    material_id: int = 0,
    format_string: str = "ZMS0008",
) -> bytes:
    count = len(positions)
    flags = 1 << 1
    streams = [np.asarray(positions, dtype="<f4").tobytes()]
    if normals is not None:
        flags |= 1 << 2
        streams.append(np.asarray(normals, dtype="<f4").tobytes())
    if blend_weights is not None:
        flags |= 1 << 4
        streams.append(np.asarray(blend_weights, dtype="<f4").tobytes())
    if blend_indices is not None:
        flags |= 1 << 5
        streams.append(np.asarray(blend_indices, dtype="<u2").tobytes())
    for channel, uv in enumerate(list(uvs)[:4]):
        if uv is not None:
            flags |= 1 << (7 + channel)
            streams.append(np.asarray(uv, dtype="<f4").tobytes())

    points = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    lo = points.min(axis=0) if count else np.zeros(3)
    hi = points.max(axis=0) if count else np.zeros(3)
    out = token(format_string) + struct.pack("<i", flags)
    out += struct.pack("<3f", *lo) + struct.pack("<3f", *hi)
    out += struct.pack("<H", len(bone_table)) + struct.pack("<" + "H" * len(bone_table), *bone_table)
    out += struct.pack("<H", count) + b"".join(streams)
    out += struct.pack("<H", len(faces)) + np.asarray(faces, dtype="<u2").reshape(-1, 3).tobytes()
    out += struct.pack("<H", material_id)
    return out


def _encode_raw_bone(bone: RawBone) -> bytes:
    x, y, z, w = bone.rotation
    return struct.pack("<3f", *bone.position) + struct.pack("<4f", w, x, y, z)


def build_zmd(bones: Sequence[RawBone], dummies: Sequence[RawBone] = ()) -> bytes:
    out = token("ZMD0003") + struct.pack("<I", len(bones))
    for bone in bones:
        out += struct.pack("<i", bone.parent) + token(bone.name) + _encode_raw_bone(bone)
    out += struct.pack("<I", len(dummies))
    for dummy in dummies:
        out += token(dummy.name) + struct.pack("<i", dummy.parent) + _encode_raw_bone(dummy)
    return out


def raw_bone(name: str, parent: int, position=(0.0, 0.0, 0.0), rotation=(0.0, 0.0, 0.0, 1.0)) -> RawBone:
    return RawBone(parent=parent, name=name, position=tuple(position), rotation=tuple(rotation))


def build_zmo(
    fps: int,
    frame_count: int,
    channels: Iterable[Tuple[int, int, Sequence[Sequence[float]]]],
) -> bytes:
    """Channels are ``(type, bone, keys)``; rotation keys are given ``(x, y, z, w)``."""
    channels = list(channels)
    out = token("ZMO0002") + struct.pack("<iii", fps, frame_count, len(channels))
    columns: List[np.ndarray] = []
    for channel_type, bone, keys in channels:
        out += struct.pack("<ii", channel_type, bone)
        values = np.asarray(keys, dtype=np.float32).reshape(frame_count, -1)
        if channel_type == 1 << 2:
            values = values[:, [3, 0, 1, 2]]
        columns.append(values)
    if columns and frame_count > 0:
        out += np.concatenate(columns, axis=1).astype("<f4").tobytes()
    return out


# ---------------------------------------------------------------------------
# DDS
# ---------------------------------------------------------------------------

def dds_header(width: int, height: int, fourcc: bytes = b"\x00\x00\x00\x00", bit_count: int = 0) -> bytes:
    header = bytearray(128)
    header[0:4] = b"DDS "
    struct.pack_into("<I", header, 4, 124)
    struct.pack_into("<ii", header, 12, height, width)
    struct.pack_into("<I", header, 76, 32)
    pixel_flags = 0x4 if fourcc != b"\x00\x00\x00\x00" else 0x41
    struct.pack_into("<I", header, 80, pixel_flags)
    header[84:88] = fourcc
    struct.pack_into("<I", header, 88, bit_count)
    return bytes(header)


def build_dds_bgra(pixels: np.ndarray) -> bytes:
    """Uncompressed 32-bit DDS from a ``(height, width, 4)`` BGRA array."""
    pixels = np.asarray(pixels, dtype=np.uint8)
    height, width = pixels.shape[:2]
    return dds_header(width, height, bit_count=32) + pixels.tobytes()


def build_dds_dxt1(width: int, height: int, block: bytes) -> bytes:
    """DXT1 DDS whose every block is ``block``."""
    count = ((width + 3) // 4) * ((height + 3) // 4)
    return dds_header(width, height, fourcc=b"DXT1") + block * count
