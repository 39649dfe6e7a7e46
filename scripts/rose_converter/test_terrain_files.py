#!/usr/bin/env python3
import itertools
import struct
import unittest

import numpy as np

from rose_converter.errors import DIAG_UNKNOWN_BLOCK, Diagnostics, TruncatedError
from rose_converter.terrain_files import parse_him, parse_til, parse_zon
from rose_converter.testing import (
    block_file,
    build_him,
    build_til,
    build_zon,
    zon_info_block,
    zon_textures_block,
    zon_tiles_block,
)


class HeightmapTests(unittest.TestCase):
    def test_heights_are_row_major(self) -> None:
        source = np.arange(65 * 65, dtype=np.float32).reshape(65, 65)
        heightmap = parse_him(build_him(source))
        self.assertTrue(heightmap.is_valid)
        self.assertEqual(heightmap.heights.shape, (65, 65))
        self.assertEqual(heightmap.heights[1, 0], 65.0)
        self.assertEqual(heightmap.grid_size, 250.0)

    def test_invalid_size_gives_empty_heights(self) -> None:
        heightmap = parse_him(struct.pack("<iiif", 0, 65, 4, 250.0))
        self.assertFalse(heightmap.is_valid)
        self.assertEqual(heightmap.heights.shape, (0, 0))

    def test_truncated_heights(self) -> None:
        data = build_him(np.zeros((65, 65), dtype=np.float32))
        with self.assertRaises(TruncatedError):
            parse_him(data[:-4])


class TileMapTests(unittest.TestCase):
    def test_patches_row_major(self) -> None:
        tile_map = parse_til(build_til(list(range(256))))
        self.assertEqual((tile_map.width, tile_map.height), (16, 16))
        self.assertEqual(tile_map.patch(3, 2).tile, 2 * 16 + 3)
        self.assertIsNone(tile_map.patch(16, 0))

    def test_invalid_size_reads_no_patches(self) -> None:
        tile_map = parse_til(struct.pack("<ii", -1, 16))
        self.assertEqual(tile_map.patches, [])


class ZoneTests(unittest.TestCase):
    def test_blocks_decode(self) -> None:
        zone = parse_zon(
            build_zon(
                zone_type=3,
                textures=["3DDATA/TERRAIN/A.DDS", "3DDATA/TERRAIN/B.DDS"],
                tiles=[(0, 1, 0, 0, 0, 0, 0), (1, 0, 0, 1, 1, 0, 0)],
            )
        )
        self.assertEqual(zone.zone_type, 3)
        self.assertEqual(zone.textures[1], "3DDATA/TERRAIN/B.DDS")
        self.assertEqual(zone.tiles[1].texture_id1, 1)
        self.assertEqual(zone.tiles[1].texture_id2, 1)
        self.assertTrue(zone.tiles[1].is_blending)
        self.assertEqual(zone.texture_path(1), "3DDATA/TERRAIN/B.DDS")
        self.assertIsNone(zone.texture_path(2))

    def test_every_block_visited_once_in_any_table_order(self) -> None:
        blocks = [
            (0, zon_info_block(5)),
            (1, b"\x00" * 4),
            (2, zon_textures_block(["T.DDS"])),
            (3, zon_tiles_block([(0, 0, 0, 0, 0, 0, 0)])),
            (4, b""),
        ]
        for ordering in itertools.permutations(blocks):
            zone = parse_zon(block_file(list(ordering)))
            self.assertEqual(sorted(zone.blocks_seen), [0, 1, 2, 3, 4])
            self.assertEqual(zone.zone_type, 5)
            self.assertEqual(zone.textures, ["T.DDS"])
            self.assertEqual(len(zone.tiles), 1)

    def test_unknown_block_becomes_diagnostic(self) -> None:
        diagnostics = Diagnostics()
        zone = parse_zon(build_zon(extra_blocks=[(42, b"junk")]), "Z.ZON", diagnostics)
        self.assertIn(42, zone.blocks_seen)
        self.assertEqual(diagnostics.count(DIAG_UNKNOWN_BLOCK), 1)

    def test_offset_outside_file_is_truncation(self) -> None:
        data = struct.pack("<iii", 1, 0, 9999)
        with self.assertRaises(TruncatedError):
            parse_zon(data)


if __name__ == "__main__":
    unittest.main()
