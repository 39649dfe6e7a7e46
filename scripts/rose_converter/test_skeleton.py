#!/usr/bin/env python3
import unittest

from rose_converter.errors import BadMagicError, CyclicDependencyError, OutOfRangeError
from rose_converter.skeleton import build_skeleton, sort_bones
from rose_converter.testing import build_zmd, raw_bone
from rose_converter.zmd import SkeletonFile, parse_zmd


def skeleton_file(parents, dummies=()) -> SkeletonFile:
    bones = [raw_bone(f"bone{index}", parent, position=(0.0, 0.0, 0.1 * index)) for index, parent in enumerate(parents)]
    return SkeletonFile(format_string="ZMD0003", bones=bones, dummies=list(dummies))


class ZmdTests(unittest.TestCase):
    def test_bones_and_dummies(self) -> None:
        data = build_zmd(
            [raw_bone("b1_pelvis", -1), raw_bone("b1_head", 0, (0.0, 0.0, 1.5), (0.0, 0.0, 0.6, 0.8))],
            [raw_bone("p_00", 1, (0.0, 0.1, 1.6))],
        )
        skeleton = parse_zmd(data)
        self.assertEqual([bone.name for bone in skeleton.bones], ["b1_pelvis", "b1_head"])
        self.assertEqual(skeleton.bones[1].parent, 0)
        self.assertAlmostEqual(skeleton.bones[1].rotation[2], 0.6, places=6)
        self.assertAlmostEqual(skeleton.bones[1].rotation[3], 0.8, places=6)
        self.assertEqual(skeleton.dummies[0].name, "p_00")
        self.assertEqual(skeleton.dummies[0].parent, 1)

    def test_bad_magic(self) -> None:
        with self.assertRaises(BadMagicError):
            parse_zmd(b"ZMS0003\x00")


class SortTests(unittest.TestCase):
    def test_parent_before_child_keeping_file_order(self) -> None:
        self.assertEqual(sort_bones(skeleton_file([-1, 3, 0, 2]).bones), [0, 2, 3, 1])

    def test_cycle_raises(self) -> None:
        with self.assertRaises(CyclicDependencyError) as caught:
            sort_bones(skeleton_file([-1, 2, 1]).bones)
        self.assertIn("2 bone(s) never reach a root: [1, 2]", str(caught.exception))

    def test_self_and_out_of_range_parents_sort_as_roots(self) -> None:
        self.assertEqual(sort_bones(skeleton_file([0, 5, 1]).bones), [0, 1, 2])


class BuildSkeletonTests(unittest.TestCase):
    def test_emission_order_and_remap(self) -> None:
        skeleton = build_skeleton(skeleton_file([-1, 3, 0, 2]), "ORDER")
        self.assertEqual([bone.name for bone in skeleton.bones], ["bone0", "bone2", "bone3", "bone1"])
        self.assertEqual(skeleton.remap, [0, 3, 1, 2])
        self.assertEqual([bone.parent for bone in skeleton.bones], [-1, 0, 1, 2])

    def test_parents_precede_children(self) -> None:
        skeleton = build_skeleton(skeleton_file([-1, 4, 0, 1, 2, 2, 0]))
        for index, bone in enumerate(skeleton.bones):
            if index > 0:
                self.assertLess(bone.parent, index)

    def test_extra_roots_attach_to_first_root(self) -> None:
        skeleton = build_skeleton(skeleton_file([-1, 0, -1, 2]))
        self.assertEqual(skeleton.bones[0].parent, -1)
        self.assertEqual(skeleton.bones[skeleton.remap[2]].parent, 0)

    def test_self_parent_and_out_of_range_parent_are_roots(self) -> None:
        skeleton = build_skeleton(skeleton_file([-1, 1, 9]))
        self.assertEqual([bone.parent for bone in skeleton.bones], [-1, 0, 0])

    def test_duplicate_names_are_made_unique(self) -> None:
        source = SkeletonFile(
            format_string="ZMD0003",
            bones=[raw_bone("root", -1), raw_bone("arm", 0), raw_bone("arm", 0)],
        )
        names = [bone.name for bone in build_skeleton(source).bones]
        self.assertEqual(len(set(names)), 3)
        self.assertEqual(names[:2], ["root", "arm"])

    def test_world_and_component_transforms(self) -> None:
        source = SkeletonFile(
            format_string="ZMD0003",
            bones=[raw_bone("root", -1, (1.0, 2.0, 0.0)), raw_bone("child", 0, (0.0, 1.0, 0.0))],
        )
        skeleton = build_skeleton(source)
        # Y is flipped on the way in.
        self.assertEqual(skeleton.bones[1].local.translation, (0.0, -1.0, 0.0))
        for value, expected in zip(skeleton.world[1].translation, (1.0, -3.0, 0.0)):
            self.assertAlmostEqual(value, expected)
        for value, expected in zip(skeleton.component[1].translation, (1.0, -3.0, 0.0)):
            self.assertAlmostEqual(value, expected)

    def test_dummies_are_relative_and_scaled(self) -> None:
        source = SkeletonFile(
            format_string="ZMD0003",
            bones=[raw_bone("root", -1), raw_bone("head", 0, (0.0, 0.0, 1.0))],
            dummies=[raw_bone("p_00", 1, (0.0, 0.0, 1.5)), raw_bone("p_01", 42, (0.0, 0.0, 0.25))],
        )
        skeleton = build_skeleton(source)
        self.assertEqual(skeleton.bone_count, 4)
        self.assertEqual(skeleton.remap[2:], [2, 3])
        near = skeleton.bones[2]
        self.assertTrue(near.is_dummy)
        self.assertEqual(near.parent, 1)
        self.assertAlmostEqual(near.local.translation[2], 50.0, places=4)
        orphan = skeleton.bones[3]
        self.assertEqual(orphan.parent, 0)
        self.assertAlmostEqual(orphan.local.translation[2], 25.0, places=4)

    def test_empty_skeleton_is_rejected(self) -> None:
        with self.assertRaises(OutOfRangeError):
            build_skeleton(SkeletonFile(format_string="ZMD0003"))


if __name__ == "__main__":
    unittest.main()
