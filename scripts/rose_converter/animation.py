"""
animation.py
============

Converts decoded ``.ZMO`` files into scene-space animations.

``rebase_animation`` targets a built skeleton: channel bones go through the
skeleton remap, every track is dense (one key per frame), absent streams
fall back to the bone's rest pose, and each world-space sample is made
relative to the parent's rest component-space transform.

``root_motion`` serves animated props, which only follow the channels of
bone 0.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from .coords import (
    IDENTITY,
    UNIT_SCALE,
    Transform,
    convert_positions,
    convert_quats,
    flip_position,
    flip_quat,
    vec_scale,
)
from .scene import AnimationAsset, BoneTrack, SkeletonAsset
from .zmo import CHANNEL_POSITION, CHANNEL_ROTATION, CHANNEL_SCALE, AnimationChannel, AnimationFile

ROOT_BONE = 0


def _remap_bone(channel: AnimationChannel, skeleton: SkeletonAsset) -> Optional[int]:
    if not 0 <= channel.bone < len(skeleton.remap):
        return None
    emitted = skeleton.remap[channel.bone]
    if emitted is None or not 0 <= emitted < skeleton.bone_count:
        return None
    return emitted


def _dense(channel: AnimationChannel, frames: int) -> Optional[np.ndarray]:
    if channel.keys.shape[0] != frames:
        logging.debug(
            "Channel %d of bone %d has %d keys for %d frames; ignored",
            channel.channel_type,
            channel.bone,
            channel.keys.shape[0],
            frames,
        )
        return None
    return channel.keys


def rebase_track(
    bone: int,
    skeleton: SkeletonAsset,
    frames: int,
    positions: Optional[np.ndarray],
    rotations: Optional[np.ndarray],
    scales: Optional[np.ndarray],
) -> BoneTrack:
    rest = skeleton.bones[bone].local
    parent = skeleton.bones[bone].parent
    parent_rest = skeleton.component[parent] if parent >= 0 else IDENTITY

    # Source-space defaults that convert back to the rest pose.
    default_position = vec_scale(flip_position(rest.translation), 1.0 / UNIT_SCALE)
    default_rotation = flip_quat(rest.rotation)

    out_positions = np.zeros((frames, 3), dtype=np.float32)
    out_rotations = np.zeros((frames, 4), dtype=np.float32)
    for frame in range(frames):
        position = positions[frame] if positions is not None else default_position
        rotation = rotations[frame] if rotations is not None else default_rotation
        world = Transform(
            flip_quat(rotation),
            vec_scale(flip_position(position), UNIT_SCALE),
        )
        local = world.relative_to(parent_rest)
        out_positions[frame] = local.translation
        out_rotations[frame] = local.rotation

    if scales is not None:
        out_scales = np.array(scales, dtype=np.float32).reshape(frames, 3)
    else:
        out_scales = np.ones((frames, 3), dtype=np.float32)
    return BoneTrack(bone=bone, positions=out_positions, rotations=out_rotations, scales=out_scales)


def rebase_animation(
    animation: AnimationFile,
    skeleton: SkeletonAsset,
    name: str = "",
    skeleton_id: Optional[int] = None,
) -> AnimationAsset:
    frames = max(0, animation.frame_count)
    streams: Dict[int, Dict[int, np.ndarray]] = {}
    dropped = 0

    for channel in animation.channels:
        if not channel.is_transform:
            continue
        bone = _remap_bone(channel, skeleton)
        if bone is None:
            dropped += 1
            continue
        bone_streams = streams.setdefault(bone, {})
        keys = _dense(channel, frames)
        if keys is not None:
            bone_streams[channel.channel_type] = keys

    tracks: List[BoneTrack] = [
        rebase_track(
            bone,
            skeleton,
            frames,
            bone_streams.get(CHANNEL_POSITION),
            bone_streams.get(CHANNEL_ROTATION),
            bone_streams.get(CHANNEL_SCALE),
        )
        for bone, bone_streams in sorted(streams.items())
    ]
    if dropped:
        logging.info("Animation %s: %d channel(s) target bones outside the skeleton", name, dropped)
    return AnimationAsset(
        name=name,
        fps=animation.fps,
        frame_count=frames,
        tracks=tracks,
        skeleton_id=skeleton_id,
    )


def root_motion(animation: AnimationFile, name: str = "") -> AnimationAsset:
    """Bone-0 keys in scene space, without rest-pose defaults or unit scaling."""
    frames = max(0, animation.frame_count)
    positions = np.zeros((0, 3), dtype=np.float32)
    rotations = np.zeros((0, 4), dtype=np.float32)
    scales = np.zeros((0, 3), dtype=np.float32)
    for channel in animation.channels_for_bone(ROOT_BONE):
        if channel.keys.shape[0] == 0:
            continue
        if channel.channel_type == CHANNEL_POSITION:
            positions = convert_positions(channel.keys)
        elif channel.channel_type == CHANNEL_ROTATION:
            rotations = convert_quats(channel.keys)
        elif channel.channel_type == CHANNEL_SCALE:
            scales = channel.keys.astype(np.float32)

    tracks = []
    if positions.size or rotations.size or scales.size:
        tracks.append(BoneTrack(bone=ROOT_BONE, positions=positions, rotations=rotations, scales=scales))
    return AnimationAsset(name=name, fps=animation.fps, frame_count=frames, tracks=tracks)
