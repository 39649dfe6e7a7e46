#!/usr/bin/env python3
"""
cli.py
======

Command-line front end for the importer.

Subcommands:

    zone               import one .ZON and its tiles
    character          import a skeleton with explicit parts and motions
    default-character  import a skeleton with the default avatar parts
    list-zones         print the zones named by the master zone index

Every import prints a summary; ``--output`` writes the full JSON report and
``--png-dir`` writes the heightmap, weight layers and decoded textures.
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Iterable, Optional

from .errors import RoseError
from .importer import (
    ImportOptions,
    import_character,
    import_default_character,
    import_zone,
)
from .resolver import PathResolver, find_data_root, list_zones
from .scene import Scene
from .stb import load_stb
from .terrain import DEFAULT_MAX_LAYERS

UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert ROSE Online zones and characters into an engine-agnostic scene.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_import_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--strict",
            action="store_true",
            help="Fail on out-of-range references and missing files instead of reporting them.",
        )
        sub.add_argument(
            "--no-textures",
            dest="decode_textures",
            action="store_false",
            help="Do not decode DDS textures.",
        )
        sub.add_argument(
            "--output",
            type=Path,
            help="Write the scene report as JSON to this file.",
        )
        sub.add_argument(
            "--png-dir",
            type=Path,
            help="Write heightmap, weight layers and textures as PNG files to this directory.",
        )

    zone = subparsers.add_parser("zone", help="Import one zone.")
    zone.add_argument("zone_path", type=Path, help="Path to the zone's .ZON file.")
    zone.add_argument(
        "--max-layers",
        type=int,
        default=DEFAULT_MAX_LAYERS,
        help=f"Maximum number of terrain weight layers (default: {DEFAULT_MAX_LAYERS}).",
    )
    zone.add_argument(
        "--no-tileset",
        dest="load_tileset",
        action="store_false",
        help="Skip the tile palette and brush data.",
    )
    add_import_options(zone)

    character = subparsers.add_parser("character", help="Import a skeleton with explicit parts.")
    character.add_argument("skeleton_path", type=Path, help="Path to the .ZMD skeleton.")
    character.add_argument(
        "--part",
        dest="parts",
        type=Path,
        action="append",
        default=[],
        help="Mesh part (.ZMS); may be repeated.",
    )
    character.add_argument(
        "--motion",
        dest="motions",
        type=Path,
        action="append",
        default=[],
        help="Animation (.ZMO); may be repeated.",
    )
    add_import_options(character)

    default_character = subparsers.add_parser(
        "default-character",
        help="Import a skeleton with the default avatar parts found next to it.",
    )
    default_character.add_argument("skeleton_path", type=Path, help="Path to the .ZMD skeleton.")
    add_import_options(default_character)

    zones = subparsers.add_parser("list-zones", help="List the zones of a client data tree.")
    zones.add_argument("root", type=Path, help="Client root or any path below it.")

    args = parser.parse_args(list(argv))
    if getattr(args, "max_layers", 1) < 0:
        parser.error("--max-layers must be >= 0")
    return args


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    logging.getLogger("PIL").setLevel(logging.WARNING)


def import_options(args: argparse.Namespace) -> ImportOptions:
    return ImportOptions(
        max_layers=getattr(args, "max_layers", DEFAULT_MAX_LAYERS),
        strict=args.strict,
        decode_textures=args.decode_textures,
        load_tileset=getattr(args, "load_tileset", True),
    )


def log_progress(phase: str, fraction: float) -> None:
    logging.debug("%s %3.0f%%", phase, fraction * 100.0)


def safe_name(reference: str) -> str:
    return UNSAFE_NAME_CHARS.sub("_", reference.replace("\\", "/").strip("/")) or "texture"


def write_pngs(scene: Scene, out_dir: Path) -> int:
    out_dir.mkdir(parents=True, exist_ok=True)
    written = 0
    if scene.terrain is not None:
        scene.terrain.heightmap_image().save(out_dir / "heightmap.png")
        written += 1
        for index, layer in enumerate(scene.terrain.layers):
            scene.terrain.layer_image(index).save(out_dir / f"layer_{index:02d}_{layer.name}.png")
            written += 1
    for index, texture in enumerate(scene.textures):
        stem = Path(safe_name(texture.path)).stem
        texture.to_image().save(out_dir / f"texture_{index:03d}_{stem}.png")
        written += 1
    logging.info("Wrote %d PNG file(s) to %s", written, out_dir)
    return written


def summarize(scene: Scene) -> None:
    if scene.terrain is not None:
        logging.info(
            "Terrain: %dx%d, %d layer(s)",
            scene.terrain.width,
            scene.terrain.height,
            len(scene.terrain.layers),
        )
    logging.info(
        "Scene: %d instance(s), %d bucket(s), %d animated, %d mesh(es), %d material(s), %d texture(s)",
        len(scene.instances),
        len(scene.buckets),
        len(scene.animated),
        len(scene.meshes),
        len(scene.materials),
        len(scene.textures),
    )
    if scene.skeletons:
        logging.info(
            "Characters: %d skeleton(s), %d skeletal mesh(es), %d animation(s)",
            len(scene.skeletons),
            len(scene.skeletal_meshes),
            len(scene.animations),
        )
    if len(scene.diagnostics):
        logging.warning("%d diagnostic(s) recorded", len(scene.diagnostics))


def run_import(args: argparse.Namespace) -> Scene:
    options = import_options(args)
    if args.command == "zone":
        return import_zone(args.zone_path, options, progress=log_progress)
    if args.command == "character":
        return import_character(
            args.skeleton_path,
            args.parts,
            args.motions,
            options,
            progress=log_progress,
        )
    return import_default_character(args.skeleton_path, options, progress=log_progress)


def run_list_zones(root: Path) -> int:
    resolver = PathResolver(root)
    if resolver.data_dir is None:
        resolver = PathResolver(find_data_root(root / "_"))
    list_zone = resolver.list_zone_path
    if list_zone is None:
        logging.error("No master zone index below %s", root)
        return 2
    entries = list_zones(load_stb(list_zone))
    print(json.dumps([entry.to_dict() for entry in entries], indent=2))
    logging.info("%d zone(s) listed in %s", len(entries), list_zone)
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)

    try:
        if args.command == "list-zones":
            return run_list_zones(args.root.resolve())
        scene = run_import(args)
    except RoseError as exc:
        logging.error("%s", exc)
        return 1

    summarize(scene)
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(scene.to_dict(), indent=2), encoding="utf-8")
        logging.info("Report written to %s", args.output)
    if args.png_dir is not None:
        write_pngs(scene, args.png_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
