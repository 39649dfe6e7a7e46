#!/usr/bin/env python3
import unittest

from rose_converter.errors import (
    DIAG_DROPPED,
    DIAG_EMPTY_OBJECT,
    DIAG_OUT_OF_RANGE,
    Diagnostics,
    OutOfRangeError,
)
from rose_converter.ifo import MapObjects
from rose_converter.placement import (
    CATALOG_ANIMATION,
    CATALOG_CONSTRUCTION,
    CATALOG_DECORATION,
    catalogs_by_name,
    group_buckets,
    place_objects,
    place_tile,
)
from rose_converter.scene import FLAG_CAST_SHADOW_TWO_SIDED, FLAG_NO_COLLISION, FLAG_NO_SHADOW
from rose_converter.testing import map_object, material, single_part_object
from rose_converter.zsc import SceneCatalog, ZscObject, ZscPart


def catalog(meshes=("TREE.ZMS",), objects=None, materials=None) -> SceneCatalog:
    return SceneCatalog(
        meshes=list(meshes),
        materials=list(materials if materials is not None else [material("TREE.DDS")]),
        objects=list(objects if objects is not None else [single_part_object(0, 0)]),
    )


class PlaceTileTests(unittest.TestCase):
    def test_part_then_object_transform(self) -> None:
        deco = catalog(objects=[single_part_object(0, 0, position=(1.0, 2.0, 0.0))])
        objects = MapObjects(objects=[map_object(0, position=(100.0, 200.0, 5.0))])
        placements = place_tile("31_31", objects, catalogs_by_name(deco, None, None), Diagnostics())
        self.assertEqual(len(placements), 1)
        placement = placements[0]
        self.assertEqual(placement.catalog, CATALOG_DECORATION)
        self.assertEqual(placement.mesh_path, "TREE.ZMS")
        # Both positions cross the handedness flip: (1, -2, 0) + (100, -200, 5).
        for value, expected in zip(placement.transform.translation, (101.0, -202.0, 5.0)):
            self.assertAlmostEqual(value, expected, places=4)
        self.assertIn(FLAG_CAST_SHADOW_TWO_SIDED, placement.flags)

    def test_buildings_use_construction_catalog(self) -> None:
        cnst = catalog(meshes=("HOUSE.ZMS",))
        objects = MapObjects(buildings=[map_object(0)])
        placements = place_tile("t", objects, catalogs_by_name(catalog(), cnst, None), Diagnostics())
        self.assertEqual([(p.catalog, p.mesh_path) for p in placements], [(CATALOG_CONSTRUCTION, "HOUSE.ZMS")])

    def test_animated_objects_need_non_empty_catalog(self) -> None:
        objects = MapObjects(animations=[map_object(0)])
        self.assertEqual(place_tile("t", objects, catalogs_by_name(catalog(), None, SceneCatalog()), Diagnostics()), [])
        anim = catalog(objects=[single_part_object(0, 0, animation_path="SWING.ZMO")])
        placements = place_tile("t", objects, catalogs_by_name(None, None, anim), Diagnostics())
        self.assertEqual(placements[0].catalog, CATALOG_ANIMATION)
        self.assertTrue(placements[0].is_animated)

    def test_out_of_range_object_is_a_diagnostic(self) -> None:
        diagnostics = Diagnostics()
        objects = MapObjects(objects=[map_object(5), map_object(0)])
        placements = place_tile("t", objects, catalogs_by_name(catalog(), None, None), diagnostics)
        self.assertEqual(len(placements), 1)
        self.assertEqual(diagnostics.count(DIAG_OUT_OF_RANGE), 1)

    def test_out_of_range_raises_in_strict_mode(self) -> None:
        objects = MapObjects(objects=[map_object(5)])
        with self.assertRaises(OutOfRangeError):
            place_tile("t", objects, catalogs_by_name(catalog(), None, None), Diagnostics(), strict=True)

    def test_bad_material_index_places_without_material(self) -> None:
        deco = catalog(objects=[single_part_object(0, 7)])
        placements = place_tile("t", MapObjects(objects=[map_object(0)]), catalogs_by_name(deco, None, None), Diagnostics())
        self.assertIsNone(placements[0].material)
        self.assertEqual(placements[0].key, (CATALOG_DECORATION, "TREE.ZMS", -1))

    def test_empty_object_is_skipped(self) -> None:
        diagnostics = Diagnostics()
        deco = catalog(objects=[ZscObject()])
        self.assertEqual(place_tile("t", MapObjects(objects=[map_object(0)]), catalogs_by_name(deco, None, None), diagnostics), [])
        self.assertEqual(diagnostics.count(DIAG_EMPTY_OBJECT), 1)

    def test_degenerate_transforms_are_dropped(self) -> None:
        diagnostics = Diagnostics()
        objects = MapObjects(objects=[map_object(0, scale=(0.0, 0.0, 0.0)), map_object(0, position=(3e7, 0.0, 0.0)), map_object(0)])
        placements = place_tile("t", objects, catalogs_by_name(catalog(), None, None), diagnostics)
        self.assertEqual(len(placements), 1)
        self.assertEqual(diagnostics.count(DIAG_DROPPED), 1)
        for placement in placements:
            self.assertTrue(placement.transform.is_placeable())

    def test_flags(self) -> None:
        deco = catalog(
            meshes=("DECO/GRASS01.ZMS",),
            materials=[material("GRASS.DDS", alpha_enabled=True, blend_type=1)],
        )
        placement = place_tile("t", MapObjects(objects=[map_object(0)]), catalogs_by_name(deco, None, None), Diagnostics())[0]
        self.assertIn(FLAG_NO_SHADOW, placement.flags)
        self.assertIn(FLAG_NO_COLLISION, placement.flags)


class BucketTests(unittest.TestCase):
    def test_grouping_by_catalog_mesh_and_material(self) -> None:
        deco = catalog(
            meshes=("A.ZMS", "B.ZMS"),
            materials=[material("A.DDS"), material("B.DDS")],
            objects=[
                single_part_object(0, 0),
                single_part_object(1, 0),
                ZscObject(parts=[ZscPart(0, 0), ZscPart(0, 1)]),
            ],
        )
        objects = MapObjects(objects=[map_object(0), map_object(1), map_object(2), map_object(0)])
        placements = place_objects([("a", objects)], catalogs_by_name(deco, None, None), Diagnostics())
        buckets = group_buckets(placements)
        self.assertEqual(
            list(buckets),
            [
                (CATALOG_DECORATION, "A.ZMS", 0),
                (CATALOG_DECORATION, "B.ZMS", 0),
                (CATALOG_DECORATION, "A.ZMS", 1),
            ],
        )
        self.assertEqual(len(buckets[(CATALOG_DECORATION, "A.ZMS", 0)]), 3)

    def test_animated_placements_are_not_bucketed(self) -> None:
        anim = catalog(objects=[single_part_object(0, 0, animation_path="X.ZMO")])
        placements = place_tile("t", MapObjects(animations=[map_object(0)]), catalogs_by_name(None, None, anim), Diagnostics())
        self.assertEqual(len(placements), 1)
        self.assertEqual(group_buckets(placements), {})


if __name__ == "__main__":
    unittest.main()
