#!/usr/bin/env python3
import tempfile
import unittest
from pathlib import Path

from rose_converter.errors import DIAG_MISSING_FILE, Diagnostics
from rose_converter.resolver import PathResolver
from rose_converter.stb import parse_stb
from rose_converter.testing import build_stb, write_file
from rose_converter.tileset import TileSet, load_tileset_for_zone, palette_file_for_zone_type


def palette_rows():
    # Brush columns 2..10: min, max, base0, count0, baseF, countF, base, count, direction.
    return [
        ["count", "", "2"],
        ["grass", "", "0", "0", "100", "4", "200", "4", "10", "16", "0"],
        ["rock", "", "0", "0", "300", "2", "400", "2", "30", "8", "0"],
        ["chain", "", "2"],
        ["c0", "", "0", "1"],
        ["c1", "", "1", "0"],
    ]


class TileSetTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tileset = TileSet.from_stb(parse_stb(build_stb(palette_rows())))

    def test_brushes_and_chains(self) -> None:
        self.assertEqual(len(self.tileset.brushes), 2)
        self.assertEqual(self.tileset.brushes[0].tile_number, 10)
        self.assertEqual(self.tileset.brushes[1].tile_count_f, 2)
        self.assertEqual(self.tileset.chains, [[0, 1], [1, 0]])

    def test_lookup_returns_first_brush_and_offset(self) -> None:
        self.assertEqual(self.tileset.find_brush(15), (0, 5))
        self.assertEqual(self.tileset.find_brush(102), (0, 2))
        self.assertEqual(self.tileset.find_brush(401), (1, 1))
        self.assertIsNone(self.tileset.find_brush(999))

    def test_brush_uv_offset(self) -> None:
        self.assertEqual(self.tileset.brush_uv_offset(10 + 6), (2, 1))
        self.assertIsNone(self.tileset.brush_uv_offset(-1))

    def test_empty_palette(self) -> None:
        self.assertEqual(TileSet.from_stb(parse_stb(build_stb([["count", "", "0"]]))).brushes, [])


class ZoneTypeTests(unittest.TestCase):
    def test_palette_file_column(self) -> None:
        table = parse_stb(build_stb([["0", "", "", "", "", "", "JUNON.STB"], ["1", "", "", "", "", "", "ELDEON.STB"]]))
        self.assertEqual(palette_file_for_zone_type(table, 1), "ELDEON.STB")
        self.assertEqual(palette_file_for_zone_type(table, 7), "")

    def test_load_for_zone(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write_file(
                root / "3DData" / "TERRAIN" / "TILES" / "ZONETYPEINFO.STB",
                build_stb([["0", "", "", "", "", "", "JUNON.STB"]]),
            )
            write_file(root / "3DData" / "ESTB" / "JUNON.STB", build_stb(palette_rows()))
            diagnostics = Diagnostics()
            tileset = load_tileset_for_zone(PathResolver(root), 0, diagnostics)
        self.assertIsNotNone(tileset)
        self.assertEqual(len(tileset.brushes), 2)
        self.assertEqual(len(diagnostics), 0)

    def test_missing_catalog_is_a_diagnostic(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            diagnostics = Diagnostics()
            self.assertIsNone(load_tileset_for_zone(PathResolver(temp_dir), 0, diagnostics))
        self.assertEqual(diagnostics.count(DIAG_MISSING_FILE), 1)


if __name__ == "__main__":
    unittest.main()
