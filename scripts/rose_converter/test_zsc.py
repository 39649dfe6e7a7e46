#!/usr/bin/env python3
import struct
import unittest

from rose_converter.errors import DIAG_UNKNOWN_TAG, Diagnostics, TruncatedError
from rose_converter.zsc import (
    AnimationPathProperty,
    PositionProperty,
    RotationProperty,
    SkippedProperty,
    ZscObject,
    ZscPart,
    decode_property,
    parse_zsc,
)
from rose_converter.testing import build_zsc, material, single_part_object


def _catalog_bytes(header: bool = True) -> bytes:
    return build_zsc(
        meshes=["3DDATA/DECO/TREE01.ZMS", "3DDATA/DECO/ROCK01.ZMS"],
        materials=[
            material("3DDATA/DECO/TREE01.DDS", alpha_enabled=True, blend_type=1),
            material("3DDATA/DECO/ROCK01.DDS", two_sided=True),
        ],
        objects=[
            single_part_object(0, 0, position=(1.0, 2.0, 3.0), rotation=(0.0, 0.0, 1.0, 0.0)),
            single_part_object(1, 1, animation_path="3DDATA/MOTION/SWAY.ZMO"),
        ],
        effects=["3DDATA/EFFECT/SMOKE.EFT"],
        header=header,
    )


class SceneCatalogTests(unittest.TestCase):
    def test_catalog_sections(self) -> None:
        catalog = parse_zsc(_catalog_bytes())
        self.assertTrue(catalog.has_header)
        self.assertEqual(catalog.meshes[1], "3DDATA/DECO/ROCK01.ZMS")
        self.assertEqual(catalog.effects, ["3DDATA/EFFECT/SMOKE.EFT"])
        self.assertTrue(catalog.materials[0].is_translucent_without_alpha_test)
        self.assertFalse(catalog.materials[1].is_translucent_without_alpha_test)
        self.assertTrue(catalog.materials[1].two_sided)

        first = catalog.objects[0].parts[0]
        self.assertEqual(first.position, (1.0, 2.0, 3.0))
        self.assertEqual(first.rotation, (0.0, 0.0, 1.0, 0.0))
        self.assertEqual(catalog.objects[1].parts[0].animation_path, "3DDATA/MOTION/SWAY.ZMO")

    def test_header_presence_does_not_change_content(self) -> None:
        with_header = parse_zsc(_catalog_bytes(header=True))
        without_header = parse_zsc(_catalog_bytes(header=False))
        self.assertFalse(without_header.has_header)
        self.assertEqual(with_header.meshes, without_header.meshes)
        self.assertEqual(with_header.materials, without_header.materials)
        self.assertEqual(with_header.objects, without_header.objects)

    def test_empty_object_stops_after_part_count(self) -> None:
        catalog = parse_zsc(
            build_zsc(
                meshes=["A.ZMS", "B.ZMS"],
                materials=[material("A.DDS")],
                objects=[ZscObject(radius=5), single_part_object(1, 0, position=(7.0, 8.0, 9.0))],
            )
        )
        self.assertEqual(len(catalog.objects), 2)
        self.assertTrue(catalog.objects[0].is_empty)
        self.assertEqual(catalog.objects[0].radius, 5)
        self.assertEqual(catalog.objects[1].parts[0].mesh_index, 1)
        self.assertEqual(catalog.objects[1].parts[0].position, (7.0, 8.0, 9.0))

    def test_unknown_tags_are_skipped_and_reported(self) -> None:
        part = ZscPart(mesh_index=0, material_index=0, properties=[SkippedProperty(99, b"\x01\x02\x03")])
        diagnostics = Diagnostics()
        catalog = parse_zsc(
            build_zsc(meshes=["A.ZMS"], materials=[material("A.DDS")], objects=[ZscObject(parts=[part])]),
            "X.ZSC",
            diagnostics,
        )
        skipped = [prop for prop in catalog.objects[0].parts[0].properties if isinstance(prop, SkippedProperty)]
        self.assertEqual(skipped, [SkippedProperty(99, b"\x01\x02\x03")])
        self.assertEqual(diagnostics.count(DIAG_UNKNOWN_TAG), 1)

    def test_truncated_catalog(self) -> None:
        data = _catalog_bytes()
        with self.assertRaises(TruncatedError):
            parse_zsc(data[:-3])


class PropertyTests(unittest.TestCase):
    def test_rotation_is_reordered_from_wxyz(self) -> None:
        prop = decode_property(2, struct.pack("<4f", 1.0, 0.1, 0.2, 0.3))
        self.assertIsInstance(prop, RotationProperty)
        self.assertAlmostEqual(prop.value[0], 0.1, places=6)
        self.assertEqual(prop.value[3], 1.0)

    def test_payload_bounded_by_length(self) -> None:
        with self.assertRaises(TruncatedError):
            decode_property(1, struct.pack("<2f", 1.0, 2.0))

    def test_longer_payload_is_accepted(self) -> None:
        prop = decode_property(1, struct.pack("<4f", 1.0, 2.0, 3.0, 4.0))
        self.assertEqual(prop, PositionProperty((1.0, 2.0, 3.0)))

    def test_animation_path_stops_at_nul(self) -> None:
        prop = decode_property(30, b"A.ZMO\x00garbage")
        self.assertEqual(prop, AnimationPathProperty("A.ZMO"))


if __name__ == "__main__":
    unittest.main()
