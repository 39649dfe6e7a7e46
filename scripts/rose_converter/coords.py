"""
coords.py
=========

Quaternion / transform maths and the coordinate-conversion boundary.

Source files are right-handed; the produced scene is left-handed. Every piece
of geometry crosses into scene space through the helpers in the
"Handedness" section below, exactly once:

    position    (x, y, z)    -> (x, -y, z)
    quaternion  (x, y, z, w) -> (-x, y, -z, w)   (normalised first)

Quaternions are plain ``(x, y, z, w)`` tuples. ``Transform`` composes like the
target engine's transforms: ``a * b`` applies ``a`` first, then ``b``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]
Quat = Tuple[float, float, float, float]

IDENTITY_QUAT: Quat = (0.0, 0.0, 0.0, 1.0)
ZERO_VEC: Vec3 = (0.0, 0.0, 0.0)
ONE_VEC: Vec3 = (1.0, 1.0, 1.0)

# Meshes, skeleton dummies and animation samples are stored in metres x 0.01.
UNIT_SCALE = 100.0

SMALL_NUMBER = 1e-8
KINDA_SMALL_NUMBER = 1e-4
MAX_PLACEMENT_DISTANCE = 1e7


# ---------------------------------------------------------------------------
# Vector / quaternion helpers
# ---------------------------------------------------------------------------

def vec_add(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def vec_sub(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def vec_mul(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (a[0] * b[0], a[1] * b[1], a[2] * b[2])


def vec_scale(a: Sequence[float], s: float) -> Vec3:
    return (a[0] * s, a[1] * s, a[2] * s)


def vec_cross(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def vec_length(a: Sequence[float]) -> float:
    return math.sqrt(a[0] * a[0] + a[1] * a[1] + a[2] * a[2])


def _safe_reciprocal(value: float) -> float:
    if abs(value) <= SMALL_NUMBER:
        return 0.0
    return 1.0 / value


def quat_normalize(q: Sequence[float]) -> Quat:
    square = q[0] * q[0] + q[1] * q[1] + q[2] * q[2] + q[3] * q[3]
    if square < SMALL_NUMBER:
        return IDENTITY_QUAT
    inv = 1.0 / math.sqrt(square)
    return (q[0] * inv, q[1] * inv, q[2] * inv, q[3] * inv)


def quat_multiply(a: Sequence[float], b: Sequence[float]) -> Quat:
    """Hamilton product ``a * b``: rotating by the result applies ``b`` then ``a``."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def quat_inverse(q: Sequence[float]) -> Quat:
    """Inverse of a unit quaternion."""
    return (-q[0], -q[1], -q[2], q[3])


def quat_rotate(q: Sequence[float], v: Sequence[float]) -> Vec3:
    axis = (q[0], q[1], q[2])
    t = vec_scale(vec_cross(axis, v), 2.0)
    return vec_add(vec_add(v, vec_scale(t, q[3])), vec_cross(axis, t))


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Transform:
    rotation: Quat = IDENTITY_QUAT
    translation: Vec3 = ZERO_VEC
    scale: Vec3 = ONE_VEC

    def __mul__(self, other: "Transform") -> "Transform":
        """Apply ``self``, then ``other``."""
        return Transform(
            rotation=quat_multiply(other.rotation, self.rotation),
            translation=vec_add(
                quat_rotate(other.rotation, vec_mul(other.scale, self.translation)),
                other.translation,
            ),
            scale=vec_mul(self.scale, other.scale),
        )

    def relative_to(self, other: "Transform") -> "Transform":
        """``self`` expressed in the space of ``other`` (``self * other^-1``)."""
        recip = (
            _safe_reciprocal(other.scale[0]),
            _safe_reciprocal(other.scale[1]),
            _safe_reciprocal(other.scale[2]),
        )
        inverse_rotation = quat_inverse(other.rotation)
        return Transform(
            rotation=quat_multiply(inverse_rotation, self.rotation),
            translation=vec_mul(
                quat_rotate(inverse_rotation, vec_sub(self.translation, other.translation)),
                recip,
            ),
            scale=vec_mul(self.scale, recip),
        )

    def transform_position(self, v: Sequence[float]) -> Vec3:
        return vec_add(quat_rotate(self.rotation, vec_mul(self.scale, v)), self.translation)

    def transform_vector(self, v: Sequence[float]) -> Vec3:
        return quat_rotate(self.rotation, vec_mul(self.scale, v))

    def with_translation(self, translation: Sequence[float]) -> "Transform":
        return Transform(self.rotation, tuple(translation), self.scale)  # type: ignore[arg-type]

    def with_scale(self, scale: Sequence[float]) -> "Transform":
        return Transform(self.rotation, self.translation, tuple(scale))  # type: ignore[arg-type]

    def is_finite(self) -> bool:
        return all(
            math.isfinite(value)
            for value in (*self.rotation, *self.translation, *self.scale)
        )

    def has_zero_scale(self) -> bool:
        if any(value == 0.0 for value in self.scale):
            return True
        return all(abs(value) <= KINDA_SMALL_NUMBER for value in self.scale)

    def is_placeable(self) -> bool:
        """Finite, within placement range and with a non-degenerate scale."""
        return (
            self.is_finite()
            and vec_length(self.translation) <= MAX_PLACEMENT_DISTANCE
            and not self.has_zero_scale()
        )

    def to_dict(self) -> dict:
        return {
            "rotation": list(self.rotation),
            "translation": list(self.translation),
            "scale": list(self.scale),
        }


IDENTITY = Transform()


def trs(position: Sequence[float], rotation: Sequence[float], scale: Sequence[float]) -> Transform:
    """``T(position) . R(rotation) . S(scale)``."""
    return Transform(
        rotation=tuple(rotation),  # type: ignore[arg-type]
        translation=tuple(position),  # type: ignore[arg-type]
        scale=tuple(scale),  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Handedness
# ---------------------------------------------------------------------------

def wxyz_to_xyzw(values: Sequence[float]) -> Quat:
    """Reorder a quaternion stored as ``(W, X, Y, Z)``."""
    return (values[1], values[2], values[3], values[0])


def flip_position(v: Sequence[float]) -> Vec3:
    return (v[0], -v[1], v[2])


def flip_quat(q: Sequence[float]) -> Quat:
    n = quat_normalize(q)
    return (-n[0], n[1], -n[2], n[3])


def flip_transform(t: Transform) -> Transform:
    return Transform(flip_quat(t.rotation), flip_position(t.translation), t.scale)


def convert_position(v: Sequence[float], unit_scale: float = 1.0) -> Vec3:
    """Flip handedness, then scale (``UNIT_SCALE`` for mesh / skeleton units)."""
    return vec_scale(flip_position(v), unit_scale)


def convert_normal(v: Sequence[float]) -> Vec3:
    return flip_position(v)


def convert_quat_wxyz(values: Sequence[float]) -> Quat:
    return flip_quat(wxyz_to_xyzw(values))


def convert_positions(points: np.ndarray, unit_scale: float = 1.0) -> np.ndarray:
    """Array form of ``convert_position`` for ``(n, 3)`` streams."""
    out = np.array(points, dtype=np.float32, copy=True).reshape(-1, 3)
    out[:, 1] *= -1.0
    if unit_scale != 1.0:
        out *= unit_scale
    return out


def convert_normals(normals: np.ndarray) -> np.ndarray:
    return convert_positions(normals)


def convert_quats(quats: np.ndarray) -> np.ndarray:
    """Array form of ``flip_quat`` for ``(n, 4)`` xyzw rows."""
    out = np.array(quats, dtype=np.float64, copy=True).reshape(-1, 4)
    norms = np.sqrt(np.sum(out * out, axis=1))
    degenerate = norms * norms < SMALL_NUMBER
    out[degenerate] = IDENTITY_QUAT
    norms[degenerate] = 1.0
    out /= norms[:, None]
    out[:, 0] *= -1.0
    out[:, 2] *= -1.0
    return out.astype(np.float32)
