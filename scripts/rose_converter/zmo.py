"""
zmo.py
======

Animation files (``.ZMO``).

Layout::

    token format string ("ZMO0002")
    i32 fps, i32 frame count, i32 channel count
    channel count x (i32 type, i32 bone)
    frame count x channel count samples, interleaved by frame then channel

Channel types are single bits. Position (``1<<1``), rotation (``1<<2``,
stored W, X, Y, Z) and scale (``1<<10``) are kept; the remaining
per-vertex channel types used by morph animations are read past by size.
Samples stay in source space; ``animation`` converts them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from .errors import BadMagicError, PathLike, TruncatedError, UnsupportedVariantError
from .reader import ByteReader

ZMO_MAGIC_PREFIX = "ZMO"

CHANNEL_POSITION = 1 << 1
CHANNEL_ROTATION = 1 << 2
CHANNEL_NORMAL = 1 << 3
CHANNEL_ALPHA = 1 << 4
CHANNEL_UV1 = 1 << 5
CHANNEL_UV2 = 1 << 6
CHANNEL_UV3 = 1 << 7
CHANNEL_UV4 = 1 << 8
CHANNEL_TEXTURE_ANIM = 1 << 9
CHANNEL_SCALE = 1 << 10

# Floats per sample for every channel type.
CHANNEL_WIDTHS: Dict[int, int] = {
    CHANNEL_POSITION: 3,
    CHANNEL_ROTATION: 4,
    CHANNEL_NORMAL: 3,
    CHANNEL_ALPHA: 1,
    CHANNEL_UV1: 2,
    CHANNEL_UV2: 2,
    CHANNEL_UV3: 2,
    CHANNEL_UV4: 2,
    CHANNEL_TEXTURE_ANIM: 1,
    CHANNEL_SCALE: 3,
}

TRANSFORM_CHANNELS = (CHANNEL_POSITION, CHANNEL_ROTATION, CHANNEL_SCALE)


@dataclass
class AnimationChannel:
    channel_type: int
    bone: int
    # (frames, width) float32. Rotation samples are (x, y, z, w), unnormalised.
    keys: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.float32))

    @property
    def is_transform(self) -> bool:
        return self.channel_type in TRANSFORM_CHANNELS


@dataclass
class AnimationFile:
    format_string: str
    fps: int
    frame_count: int
    channels: List[AnimationChannel] = field(default_factory=list)

    def channels_for_bone(self, bone: int) -> List[AnimationChannel]:
        return [channel for channel in self.channels if channel.bone == bone]


def parse_zmo(data: bytes, file: Optional[PathLike] = None) -> AnimationFile:
    reader = ByteReader(data, file)
    format_string = reader.read_token_string()
    if not format_string.upper().startswith(ZMO_MAGIC_PREFIX):
        raise BadMagicError(f"expected ZMO format string, found {format_string!r}", file, 0)

    fps = reader.read_i32()
    frame_count = reader.read_i32()
    channel_count = reader.read_i32()
    if channel_count < 0:
        raise TruncatedError(f"negative channel count {channel_count}", file, reader.tell() - 4)

    channels: List[AnimationChannel] = []
    for _ in range(channel_count):
        offset = reader.tell()
        channel_type = reader.read_i32()
        bone = reader.read_i32()
        if channel_type not in CHANNEL_WIDTHS:
            raise UnsupportedVariantError(f"unknown channel type {channel_type}", file, offset)
        channels.append(AnimationChannel(channel_type, bone))

    frames = max(0, frame_count)
    widths = [CHANNEL_WIDTHS[channel.channel_type] for channel in channels]
    row_floats = sum(widths)
    raw = reader.read_bytes(frames * row_floats * 4)
    samples = np.frombuffer(raw, dtype="<f4").reshape(frames, row_floats)

    column = 0
    for channel, width in zip(channels, widths):
        keys = samples[:, column:column + width].astype(np.float32)
        column += width
        if channel.channel_type == CHANNEL_ROTATION:
            keys = np.ascontiguousarray(keys[:, [1, 2, 3, 0]])
        channel.keys = keys

    logging.debug(
        "ZMO %s: %d fps, %d frames, %d channels", file, fps, frame_count, len(channels)
    )
    return AnimationFile(
        format_string=format_string,
        fps=fps,
        frame_count=frame_count,
        channels=channels,
    )


def load_zmo(path: Union[str, Path]) -> AnimationFile:
    path = Path(path)
    return parse_zmo(path.read_bytes(), path)
