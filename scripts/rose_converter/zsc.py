"""
zsc.py
======

Scene catalogs (``.ZSC``): the mesh list, material list, effect list and
object trees that map-objects files reference by object id.

Layout (little-endian)::

    ["ZSC1"]                                  optional, probed then rewound
    u16 mesh count      x token string
    u16 material count  x (token texture, 9 x i16, f32 alpha, i16 glow, 3 x f32 glow colour)
    u16 effect count    x token string
    u16 object count    x object

    object: i32 radius, i32 cx, i32 cy, u16 part count
            part count == 0 ends the object here (no dummies, no bounding box)
            parts  : u16 mesh, u16 material, property bag
            u16 dummy count x (u16 effect index, u16 effect type, property bag)
            6 x f32 bounding box

    property bag: repeated (u8 tag, u8 len, len bytes), terminated by tag 0

Property payloads decode into a closed set of variants; any tag without a
fixed layout becomes ``SkippedProperty``. Rotations are stored W, X, Y, Z and
are reordered to (x, y, z, w) here but left in source handedness.
"""

from __future__ import annotations

import logging
import struct
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from .coords import IDENTITY_QUAT, ONE_VEC, ZERO_VEC, Quat, Vec3, wxyz_to_xyzw
from .errors import DIAG_UNKNOWN_TAG, Diagnostics, PathLike, TruncatedError
from .reader import ByteReader, decode_string

ZSC_MAGIC = b"ZSC1"
PART_PROPERTY_CAP = 2000
DUMMY_PROPERTY_CAP = 100

TAG_END = 0
TAG_POSITION = 1
TAG_ROTATION = 2
TAG_SCALE = 3
TAG_AXIS_ROTATION = 4
TAG_BONE_INDEX = 5
TAG_DUMMY_INDEX = 6
TAG_PARENT = 7
TAG_ANIMATION = 8
TAG_COLLISION = 29
TAG_ANIMATION_PATH = 30
TAG_VISIBLE_RANGE = 31
TAG_USE_LIGHTMAP = 32

# Tags understood but carrying nothing the importer uses.
IGNORED_TAGS = frozenset((TAG_ANIMATION, TAG_VISIBLE_RANGE, TAG_USE_LIGHTMAP))


# ---------------------------------------------------------------------------
# Property variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositionProperty:
    value: Vec3


@dataclass(frozen=True)
class RotationProperty:
    value: Quat


@dataclass(frozen=True)
class ScaleProperty:
    value: Vec3


@dataclass(frozen=True)
class AxisRotationProperty:
    value: Quat


@dataclass(frozen=True)
class BoneIndexProperty:
    value: int


@dataclass(frozen=True)
class DummyIndexProperty:
    value: int


@dataclass(frozen=True)
class ParentProperty:
    value: int


@dataclass(frozen=True)
class CollisionProperty:
    value: int


@dataclass(frozen=True)
class AnimationPathProperty:
    value: str


@dataclass(frozen=True)
class SkippedProperty:
    tag: int
    payload: bytes


PartProperty = Union[
    PositionProperty,
    RotationProperty,
    ScaleProperty,
    AxisRotationProperty,
    BoneIndexProperty,
    DummyIndexProperty,
    ParentProperty,
    CollisionProperty,
    AnimationPathProperty,
    SkippedProperty,
]


def _fixed(fmt: str, build: Callable) -> Callable[[bytes], PartProperty]:
    layout = struct.Struct("<" + fmt)

    def decode(payload: bytes) -> PartProperty:
        if len(payload) < layout.size:
            raise ValueError(f"needs {layout.size} bytes, has {len(payload)}")
        return build(layout.unpack_from(payload, 0))

    return decode


def _animation_path(payload: bytes) -> PartProperty:
    return AnimationPathProperty(decode_string(payload.split(b"\x00", 1)[0]))


_PROPERTY_DECODERS: Dict[int, Callable[[bytes], PartProperty]] = {
    TAG_POSITION: _fixed("3f", lambda v: PositionProperty(v)),
    TAG_ROTATION: _fixed("4f", lambda v: RotationProperty(wxyz_to_xyzw(v))),
    TAG_SCALE: _fixed("3f", lambda v: ScaleProperty(v)),
    TAG_AXIS_ROTATION: _fixed("4f", lambda v: AxisRotationProperty(wxyz_to_xyzw(v))),
    TAG_BONE_INDEX: _fixed("h", lambda v: BoneIndexProperty(v[0])),
    TAG_DUMMY_INDEX: _fixed("h", lambda v: DummyIndexProperty(v[0])),
    TAG_PARENT: _fixed("h", lambda v: ParentProperty(v[0])),
    TAG_COLLISION: _fixed("h", lambda v: CollisionProperty(v[0])),
    TAG_ANIMATION_PATH: _animation_path,
}


def decode_property(
    tag: int,
    payload: bytes,
    file: Optional[PathLike] = None,
    offset: Optional[int] = None,
) -> PartProperty:
    decoder = _PROPERTY_DECODERS.get(tag)
    if decoder is None:
        return SkippedProperty(tag, payload)
    try:
        return decoder(payload)
    except ValueError as exc:
        raise TruncatedError(f"property tag {tag}: {exc}", file, offset) from exc


def read_property_bag(
    reader: ByteReader, cap: int, unknown_tags: Optional[Counter] = None
) -> List[PartProperty]:
    properties: List[PartProperty] = []
    tag = reader.read_u8()
    while tag != TAG_END and len(properties) < cap:
        length = reader.read_u8()
        offset = reader.tell()
        payload = reader.read_bytes(length)
        prop = decode_property(tag, payload, reader.file, offset)
        if (
            isinstance(prop, SkippedProperty)
            and tag not in IGNORED_TAGS
            and unknown_tags is not None
        ):
            unknown_tags[tag] += 1
        properties.append(prop)
        tag = reader.read_u8()
    return properties


# ---------------------------------------------------------------------------
# Catalog records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ZscMaterial:
    texture_path: str
    is_skin: bool
    alpha_enabled: bool
    two_sided: bool
    alpha_test: int
    alpha_ref: int
    z_test: int
    z_write: int
    blend_type: int
    specular: int
    alpha_value: float
    glow_type: int
    glow_color: Vec3

    @property
    def is_translucent_without_alpha_test(self) -> bool:
        return self.alpha_enabled and self.blend_type != 0 and self.alpha_test == 0


@dataclass
class ZscPart:
    mesh_index: int
    material_index: int
    position: Vec3 = ZERO_VEC
    rotation: Quat = IDENTITY_QUAT
    scale: Vec3 = ONE_VEC
    axis_rotation: Quat = IDENTITY_QUAT
    bone_index: int = 0
    dummy_index: int = 0
    parent: int = -1
    collision: int = 0
    animation_path: str = ""
    properties: List[PartProperty] = field(default_factory=list)

    def apply(self, prop: PartProperty) -> None:
        if isinstance(prop, PositionProperty):
            self.position = prop.value
        elif isinstance(prop, RotationProperty):
            self.rotation = prop.value
        elif isinstance(prop, ScaleProperty):
            self.scale = prop.value
        elif isinstance(prop, AxisRotationProperty):
            self.axis_rotation = prop.value
        elif isinstance(prop, BoneIndexProperty):
            self.bone_index = prop.value
        elif isinstance(prop, DummyIndexProperty):
            self.dummy_index = prop.value
        elif isinstance(prop, ParentProperty):
            self.parent = prop.value
        elif isinstance(prop, CollisionProperty):
            self.collision = prop.value
        elif isinstance(prop, AnimationPathProperty):
            self.animation_path = prop.value


@dataclass
class ZscDummy:
    effect_index: int
    effect_type: int
    position: Vec3 = ZERO_VEC
    rotation: Quat = IDENTITY_QUAT
    scale: Vec3 = ONE_VEC
    parent: int = -1


@dataclass
class ZscObject:
    radius: int = 0
    center: Tuple[int, int] = (0, 0)
    parts: List[ZscPart] = field(default_factory=list)
    dummies: List[ZscDummy] = field(default_factory=list)
    bounds_min: Vec3 = ZERO_VEC
    bounds_max: Vec3 = ZERO_VEC

    @property
    def is_empty(self) -> bool:
        return not self.parts


@dataclass
class SceneCatalog:
    has_header: bool = False
    meshes: List[str] = field(default_factory=list)
    materials: List[ZscMaterial] = field(default_factory=list)
    effects: List[str] = field(default_factory=list)
    objects: List[ZscObject] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.meshes and not self.objects


def _to_i16(value: int) -> int:
    return value - 0x10000 if value >= 0x8000 else value


def _read_material(reader: ByteReader) -> ZscMaterial:
    texture_path = reader.read_token_string()
    (
        is_skin,
        is_alpha,
        two_sided,
        alpha_test,
        alpha_ref,
        z_test,
        z_write,
        blend_type,
        specular,
    ) = reader.read_array("h", 9)
    alpha_value = reader.read_f32()
    glow_type = reader.read_i16()
    glow_color = reader.read_vec3()
    return ZscMaterial(
        texture_path=texture_path,
        is_skin=is_skin != 0,
        alpha_enabled=is_alpha != 0,
        two_sided=two_sided != 0,
        alpha_test=alpha_test,
        alpha_ref=alpha_ref,
        z_test=z_test,
        z_write=z_write,
        blend_type=blend_type,
        specular=specular,
        alpha_value=alpha_value,
        glow_type=glow_type,
        glow_color=glow_color,
    )


def _read_dummy(reader: ByteReader, unknown_tags: Counter) -> ZscDummy:
    dummy = ZscDummy(effect_index=reader.read_u16(), effect_type=reader.read_u16())
    for prop in read_property_bag(reader, DUMMY_PROPERTY_CAP, unknown_tags):
        if isinstance(prop, PositionProperty):
            dummy.position = prop.value
        elif isinstance(prop, RotationProperty):
            dummy.rotation = prop.value
        elif isinstance(prop, ScaleProperty):
            dummy.scale = prop.value
        elif isinstance(prop, ParentProperty):
            dummy.parent = prop.value
    return dummy


def _read_object(reader: ByteReader, unknown_tags: Counter) -> ZscObject:
    radius = reader.read_i32()
    cx = reader.read_i32()
    cy = reader.read_i32()
    obj = ZscObject(radius=radius, center=(cx, cy))

    part_count = reader.read_u16()
    if part_count == 0:
        return obj

    for _ in range(part_count):
        part = ZscPart(
            mesh_index=_to_i16(reader.read_u16()),
            material_index=_to_i16(reader.read_u16()),
        )
        part.properties = read_property_bag(reader, PART_PROPERTY_CAP, unknown_tags)
        for prop in part.properties:
            part.apply(prop)
        obj.parts.append(part)

    dummy_count = reader.read_u16()
    obj.dummies = [_read_dummy(reader, unknown_tags) for _ in range(dummy_count)]
    obj.bounds_min = reader.read_vec3()
    obj.bounds_max = reader.read_vec3()
    return obj


def parse_zsc(
    data: bytes,
    file: Optional[PathLike] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> SceneCatalog:
    reader = ByteReader(data, file)
    catalog = SceneCatalog()

    if len(data) >= 4 and data[:4] == ZSC_MAGIC:
        catalog.has_header = True
        reader.seek(4)
    else:
        logging.debug("ZSC %s has no ZSC1 header; reading headerless", file)

    mesh_count = reader.read_u16()
    catalog.meshes = [reader.read_token_string() for _ in range(mesh_count)]

    material_count = reader.read_u16()
    catalog.materials = [_read_material(reader) for _ in range(material_count)]

    effect_count = reader.read_u16()
    catalog.effects = [reader.read_token_string() for _ in range(effect_count)]

    unknown_tags: Counter = Counter()
    object_count = reader.read_u16()
    for _ in range(object_count):
        catalog.objects.append(_read_object(reader, unknown_tags))

    if diagnostics is not None:
        for tag, count in sorted(unknown_tags.items()):
            diagnostics.add(DIAG_UNKNOWN_TAG, f"property tag {tag} skipped {count} time(s)", file)

    logging.debug(
        "ZSC %s: %d meshes, %d materials, %d effects, %d objects",
        file,
        len(catalog.meshes),
        len(catalog.materials),
        len(catalog.effects),
        len(catalog.objects),
    )
    return catalog


def load_zsc(path: Union[str, Path], diagnostics: Optional[Diagnostics] = None) -> SceneCatalog:
    path = Path(path)
    return parse_zsc(path.read_bytes(), path, diagnostics)
