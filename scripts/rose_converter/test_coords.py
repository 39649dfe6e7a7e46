#!/usr/bin/env python3
import math
import unittest

import numpy as np

from rose_converter.coords import (
    IDENTITY,
    Transform,
    convert_positions,
    convert_quats,
    flip_position,
    flip_quat,
    quat_normalize,
    trs,
    wxyz_to_xyzw,
)

QUARTER_TURN_Z = (0.0, 0.0, math.sqrt(0.5), math.sqrt(0.5))


def assert_vec_almost_equal(case: unittest.TestCase, a, b, places: int = 5) -> None:
    case.assertEqual(len(a), len(b))
    for x, y in zip(a, b):
        case.assertAlmostEqual(x, y, places=places)


class HandednessTests(unittest.TestCase):
    def test_position_flip_is_an_involution(self) -> None:
        point = (1.5, -2.0, 3.25)
        self.assertEqual(flip_position(flip_position(point)), point)
        self.assertEqual(flip_position(point), (1.5, 2.0, 3.25))

    def test_quaternion_flip_negates_x_and_z(self) -> None:
        q = quat_normalize((0.1, 0.2, 0.3, 0.9))
        flipped = flip_quat(q)
        assert_vec_almost_equal(self, flipped, (-q[0], q[1], -q[2], q[3]))
        assert_vec_almost_equal(self, flip_quat(flipped), q)

    def test_quaternion_flip_normalizes_first(self) -> None:
        flipped = flip_quat((0.0, 0.0, 0.0, 2.0))
        assert_vec_almost_equal(self, flipped, (0.0, 0.0, 0.0, 1.0))

    def test_wxyz_reorder(self) -> None:
        self.assertEqual(wxyz_to_xyzw((4.0, 1.0, 2.0, 3.0)), (1.0, 2.0, 3.0, 4.0))

    def test_array_forms_match_scalar_forms(self) -> None:
        points = np.array([[1.0, 2.0, 3.0], [-4.0, -5.0, 6.0]], dtype=np.float32)
        np.testing.assert_allclose(convert_positions(points, 100.0), [[100.0, -200.0, 300.0], [-400.0, 500.0, 600.0]])
        quats = np.array([[0.1, 0.2, 0.3, 0.9], [0.0, 0.0, 0.0, 0.0]], dtype=np.float32)
        converted = convert_quats(quats)
        np.testing.assert_allclose(converted[0], flip_quat(quats[0].tolist()), rtol=1e-5)
        np.testing.assert_allclose(converted[1], [0.0, 0.0, 0.0, 1.0])


class TransformTests(unittest.TestCase):
    def test_composition_applies_left_operand_first(self) -> None:
        move = Transform(translation=(1.0, 0.0, 0.0))
        turn = Transform(rotation=QUARTER_TURN_Z)
        # Move to (1, 0, 0), then rotate 90 degrees about Z -> (0, 1, 0).
        assert_vec_almost_equal(self, (move * turn).transform_position((0.0, 0.0, 0.0)), (0.0, 1.0, 0.0))
        # Rotate first: the origin stays put, then moves to (1, 0, 0).
        assert_vec_almost_equal(self, (turn * move).transform_position((0.0, 0.0, 0.0)), (1.0, 0.0, 0.0))

    def test_scale_composes(self) -> None:
        parent = trs((10.0, 0.0, 0.0), (0.0, 0.0, 0.0, 1.0), (2.0, 2.0, 2.0))
        child = Transform(translation=(1.0, 0.0, 0.0))
        combined = child * parent
        assert_vec_almost_equal(self, combined.translation, (12.0, 0.0, 0.0))
        assert_vec_almost_equal(self, combined.scale, (2.0, 2.0, 2.0))

    def test_relative_to_inverts_composition(self) -> None:
        parent = trs((3.0, -1.0, 2.0), QUARTER_TURN_Z, (1.0, 1.0, 1.0))
        child = Transform(rotation=quat_normalize((0.1, 0.0, 0.0, 1.0)), translation=(0.5, 0.25, 0.0))
        world = child * parent
        local = world.relative_to(parent)
        assert_vec_almost_equal(self, local.translation, child.translation)
        assert_vec_almost_equal(self, local.rotation, child.rotation)

    def test_placeability(self) -> None:
        self.assertTrue(IDENTITY.is_placeable())
        self.assertFalse(Transform(translation=(float("nan"), 0.0, 0.0)).is_placeable())
        self.assertFalse(Transform(translation=(2e7, 0.0, 0.0)).is_placeable())
        self.assertFalse(Transform(scale=(1.0, 0.0, 1.0)).is_placeable())
        self.assertFalse(Transform(scale=(1e-5, 1e-5, 1e-5)).is_placeable())


if __name__ == "__main__":
    unittest.main()
