#!/usr/bin/env python3
import tempfile
import unittest
from pathlib import Path

import numpy as np

from rose_converter.character import (
    anchor_bone,
    assemble_skeletal_mesh,
    find_default_character_parts,
    is_rigid_part,
    material_slot_name,
    part_texture_path,
)
from rose_converter.skeleton import build_skeleton
from rose_converter.testing import build_zms, raw_bone, write_file
from rose_converter.zmd import SkeletonFile
from rose_converter.zms import parse_zms

TRIANGLE = [(0.01, 0.02, 0.03), (0.0, 0.0, 0.0), (0.01, 0.0, 0.0)]


def avatar_skeleton():
    source = SkeletonFile(
        format_string="ZMD0003",
        bones=[
            raw_bone("b1_pelvis", -1),
            raw_bone("b1_spine", 0, (0.0, 0.0, 0.5)),
            raw_bone("b1_head", 1, (0.0, 0.0, 1.0)),
        ],
    )
    return build_skeleton(source, "MALE")


class RigidBindTests(unittest.TestCase):
    def test_hair_part_binds_to_head(self) -> None:
        skeleton = avatar_skeleton()
        mesh = parse_zms(build_zms(TRIANGLE, faces=[(0, 1, 2)], bone_table=[0]))
        asset = assemble_skeletal_mesh("MALE", skeleton, 0, [("AVATAR/HAIR/HAIR1_001.ZMS", mesh)])
        section = asset.sections[0]
        head = skeleton.index_of("b1_head")
        self.assertTrue(section.rigid)
        self.assertEqual(section.influences, [[(head, 1.0)]] * 3)
        # (1, -2, 3) in scene units, moved by the head's world offset (0, 0, 1.5).
        np.testing.assert_allclose(section.positions[0], [1.0, -2.0, 4.5], atol=1e-4)
        np.testing.assert_allclose(section.positions[1], [0.0, 0.0, 1.5], atol=1e-6)

    def test_part_without_bone_table_is_rigid(self) -> None:
        mesh = parse_zms(build_zms(TRIANGLE, faces=[(0, 1, 2)]))
        self.assertTrue(is_rigid_part("BODY1_001.ZMS", mesh))

    def test_rigid_markers_match_whole_path_components(self) -> None:
        mesh = parse_zms(build_zms(TRIANGLE, faces=[(0, 1, 2)], bone_table=[0]))
        self.assertTrue(is_rigid_part("AVATAR\\HAIR\\HAIR1_001.ZMS", mesh))
        self.assertTrue(is_rigid_part("avatar/face/face1_001.zms", mesh))
        self.assertTrue(is_rigid_part("HAIR1_002.ZMS", mesh))
        self.assertFalse(is_rigid_part("AVATAR/BODY/CHAIR01.ZMS", mesh))
        self.assertFalse(is_rigid_part("AVATAR/SURFACE/BODY1_001.ZMS", mesh))
        self.assertFalse(is_rigid_part("AVATAR/BODY/BODY1_001.ZMS", mesh))

    def test_anchor_falls_back_to_neck_then_root(self) -> None:
        neck_only = build_skeleton(
            SkeletonFile(format_string="ZMD0003", bones=[raw_bone("root", -1), raw_bone("b1_neck", 0)])
        )
        self.assertEqual(anchor_bone(neck_only), 1)
        bare = build_skeleton(SkeletonFile(format_string="ZMD0003", bones=[raw_bone("root", -1)]))
        self.assertEqual(anchor_bone(bare), 0)


class SkinTests(unittest.TestCase):
    def test_weights_follow_bone_table_and_remap(self) -> None:
        source = SkeletonFile(
            format_string="ZMD0003",
            bones=[raw_bone("root", -1), raw_bone("late", 2), raw_bone("mid", 0)],
        )
        skeleton = build_skeleton(source)
        self.assertEqual(skeleton.remap, [0, 2, 1])
        mesh = parse_zms(
            build_zms(
                TRIANGLE,
                faces=[(0, 1, 2)],
                bone_table=[1, 2],
                blend_weights=[(1.0, 0.0, 0.0, 0.0), (0.25, 0.75, 0.0, 0.0), (0.5, 0.5, 0.0, 0.0)],
                blend_indices=[(0, 0, 0, 0), (0, 1, 0, 0), (1, 7, 0, 0)],
            )
        )
        section = assemble_skeletal_mesh("BODY", skeleton, 0, [("AVATAR/BODY/BODY1_001.ZMS", mesh)]).sections[0]
        self.assertFalse(section.rigid)
        self.assertEqual(section.influences[0], [(2, 1.0)])
        self.assertEqual(section.influences[1], [(2, 0.25), (1, 0.75)])
        # Local index 7 is outside the two-entry bone table.
        self.assertEqual(section.influences[2], [(1, 0.5)])
        np.testing.assert_allclose(section.positions[0], [1.0, -2.0, 3.0], atol=1e-4)

    def test_slot_and_texture_names(self) -> None:
        self.assertEqual(material_slot_name("AVATAR\\BODY\\BODY1_001.ZMS"), "M_BODY1_001")
        self.assertEqual(part_texture_path("AVATAR/BODY/BODY1_001.ZMS"), "AVATAR/BODY/BODY1_001.DDS")


class DefaultLayoutTests(unittest.TestCase):
    def test_parts_and_motions_are_found(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            avatar = Path(temp_dir) / "AVATAR"
            skeleton = write_file(avatar / "MALE.ZMD", b"")
            write_file(avatar / "BODY" / "body1_001a.zms", b"")
            write_file(avatar / "BODY" / "BODY1_001B.ZMS", b"")
            write_file(avatar / "FACE1_001.ZMS", b"")
            write_file(avatar / "FACE" / "FACE1_001.ZMS", b"")
            write_file(avatar / "HAIR" / "HAIR1_001.ZMS", b"")
            write_file(avatar / "HAIR" / "HAIR1_001_OLD.ZMS", b"")
            write_file(avatar / "motion" / "WALK.ZMO", b"")
            write_file(avatar / "motion" / "readme.txt", b"")
            layout = find_default_character_parts(skeleton)
            names = [part.name for part in layout.parts]
            motions = [motion.name for motion in layout.animations]
        self.assertEqual(names, ["BODY1_001B.ZMS", "body1_001a.zms", "FACE1_001.ZMS", "HAIR1_001.ZMS"])
        self.assertEqual(layout.parts[2].parent.name, "AVATAR")
        self.assertEqual(motions, ["WALK.ZMO"])


if __name__ == "__main__":
    unittest.main()
