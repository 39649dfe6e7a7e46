"""
resolver.py
===========

Reference resolution for a client data tree.

* ``find_data_root`` walks up from a zone file to the directory that holds
  ``3DData`` (any case).
* ``PathResolver`` probes relative references case-insensitively through a
  fixed list of search prefixes, with a ``.dds`` fallback for textures.
* The master zone index (``3DData/STB/LIST_ZONE.STB``) maps a zone name to
  its decoration, construction and animated-object scene catalogs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import PathLike, PathNotFoundError
from .stb import StringTable

DATA_DIR_NAME = "3DData"
LIST_ZONE_PATH = "STB/LIST_ZONE.STB"
ZONE_TYPE_INFO_PATH = "TERRAIN/TILES/ZONETYPEINFO.STB"
PALETTE_DIR = "ESTB"

# Tried in order for every relative reference.
SEARCH_PREFIXES: Tuple[str, ...] = (
    "",
    "3DData/TERRAIN/TEXTURES/",
    "3DData/AVATAR/",
    "3DData/AVATAR/TEXTURES/",
    "3DData/JUNON/TEXTURES/",
    "3DData/LUNAR/TEXTURES/",
    "3DData/ELDEON/TEXTURES/",
    "3DData/ORO/TEXTURES/",
    "3DData/MAPS/PCT/",
)

# Master zone index columns.
LIST_ZONE_NAME_COLUMNS = (1, 2)
LIST_ZONE_DEFAULT_ZON_COLUMN = 3
LIST_ZONE_DECO_COLUMN = 12
LIST_ZONE_CNST_COLUMN = 13
ANIMATION_CATALOG_MARKERS = ("EVENT_OBJECT", "DECO_SPECIAL")
ZON_COLUMN_PROBE_ROWS = 9


# ---------------------------------------------------------------------------
# Case-insensitive probing
# ---------------------------------------------------------------------------

def find_case_insensitive_child_dir(root: Path, child_name: str) -> Optional[Path]:
    direct = root / child_name
    if direct.exists() and direct.is_dir():
        return direct

    needle = child_name.lower()
    try:
        for child in root.iterdir():
            if child.is_dir() and child.name.lower() == needle:
                return child
    except OSError:
        return None
    return None


def find_case_insensitive_file(directory: Path, file_name: str) -> Optional[Path]:
    direct = directory / file_name
    if direct.exists() and direct.is_file():
        return direct

    needle = file_name.lower()
    try:
        for child in directory.iterdir():
            if child.is_file() and child.name.lower() == needle:
                return child
    except OSError:
        return None
    return None


def split_reference(reference: str) -> List[str]:
    """Split a stored path (either slash direction) into its non-empty parts."""
    normalized = reference.replace("\\", "/")
    return [part for part in normalized.split("/") if part and part != "."]


def resolve_case_insensitive(root: Path, reference: str) -> Optional[Path]:
    """Walk ``reference`` below ``root`` matching each component in any case."""
    parts = split_reference(reference)
    if not parts:
        return None
    current = root
    for part in parts[:-1]:
        found = find_case_insensitive_child_dir(current, part)
        if found is None:
            return None
        current = found
    return find_case_insensitive_file(current, parts[-1])


def clean_index_path(value: str) -> str:
    """Normalise a path stored in an index table and drop a leading ``3DData/``."""
    cleaned = value.strip().replace("\\", "/")
    if cleaned.lower().startswith(DATA_DIR_NAME.lower() + "/"):
        cleaned = cleaned[len(DATA_DIR_NAME) + 1:]
    return cleaned


# ---------------------------------------------------------------------------
# Data root
# ---------------------------------------------------------------------------

def find_data_dir(zone_path: PathLike) -> Optional[Path]:
    """First ancestor of ``zone_path`` named ``3DData`` (any case)."""
    path = Path(zone_path).absolute()
    for ancestor in path.parents:
        if ancestor.name.lower() == DATA_DIR_NAME.lower():
            return ancestor
    return None


def find_data_root(zone_path: PathLike) -> Path:
    """Parent of the ``3DData`` ancestor, else the zone file's own folder."""
    data_dir = find_data_dir(zone_path)
    if data_dir is not None:
        return data_dir.parent
    logging.warning("No %s ancestor above %s; using its folder as root", DATA_DIR_NAME, zone_path)
    return Path(zone_path).absolute().parent


class PathResolver:
    """Resolves references below one data root. Lookups are memoised per instance."""

    def __init__(self, root: PathLike, prefixes: Sequence[str] = SEARCH_PREFIXES) -> None:
        self.root = Path(root)
        self.prefixes = tuple(prefixes)
        self.data_dir = find_case_insensitive_child_dir(self.root, DATA_DIR_NAME)
        self._cache: Dict[str, Optional[Path]] = {}

    @classmethod
    def for_zone(cls, zone_path: PathLike) -> "PathResolver":
        return cls(find_data_root(zone_path))

    def _candidates(self, reference: str) -> Iterable[str]:
        parts = split_reference(reference)
        if not parts:
            return
        full = "/".join(parts)
        bare = parts[-1]
        for prefix in self.prefixes:
            yield prefix + full
            if bare != full:
                yield prefix + bare
            yield prefix + str(PurePosixPath(full).with_suffix(".dds"))

    def resolve(self, reference: str) -> Optional[Path]:
        """First existing candidate for ``reference``, or ``None``."""
        if reference in self._cache:
            return self._cache[reference]
        found: Optional[Path] = None
        for candidate in self._candidates(reference):
            found = resolve_case_insensitive(self.root, candidate)
            if found is not None:
                break
        self._cache[reference] = found
        if found is None:
            logging.debug("Unresolved reference %s below %s", reference, self.root)
        return found

    def require(self, reference: str) -> Path:
        found = self.resolve(reference)
        if found is None:
            raise PathNotFoundError(f"no candidate found for {reference!r}", self.root)
        return found

    def resolve_data(self, reference: str) -> Optional[Path]:
        """Resolve a path relative to the ``3DData`` directory."""
        if self.data_dir is None:
            return None
        return resolve_case_insensitive(self.data_dir, clean_index_path(reference))

    @property
    def list_zone_path(self) -> Optional[Path]:
        return self.resolve_data(LIST_ZONE_PATH)

    @property
    def zone_type_info_path(self) -> Optional[Path]:
        return self.resolve_data(ZONE_TYPE_INFO_PATH)

    def palette_path(self, file_name: str) -> Optional[Path]:
        return self.resolve_data(f"{PALETTE_DIR}/{clean_index_path(file_name)}")


# ---------------------------------------------------------------------------
# Master zone index
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ZoneCatalogs:
    """Scene catalog references of one master-index row, relative to ``3DData``."""

    row: int
    name: str
    deco_zsc: str
    cnst_zsc: str
    anim_zsc: str


@dataclass(frozen=True)
class ZoneEntry:
    row: int
    name: str
    zon_path: str
    deco_zsc: str
    cnst_zsc: str

    def to_dict(self) -> dict:
        return {
            "row": self.row,
            "name": self.name,
            "zon_path": self.zon_path,
            "deco_zsc": self.deco_zsc,
            "cnst_zsc": self.cnst_zsc,
        }


def _stem_upper(value: str) -> str:
    parts = split_reference(value)
    if not parts:
        return ""
    return PurePosixPath(parts[-1]).stem.upper()


def find_zon_column(table: StringTable) -> int:
    """Column headed ``ZON`` (any case), else the default column."""
    for index, name in enumerate(table.column_names):
        if name.strip().upper() == "ZON":
            return index
    if table.rows:
        for index, value in enumerate(table.rows[0]):
            if value.strip().upper() == "ZON":
                return index
    return LIST_ZONE_DEFAULT_ZON_COLUMN


def detect_zon_column(table: StringTable) -> int:
    """First column whose leading rows name a ``.zon`` file, else ``find_zon_column``."""
    probe = range(1, min(table.row_count, ZON_COLUMN_PROBE_ROWS + 1))
    for column in range(table.column_count):
        if any(table.cell(row, column).strip().lower().endswith(".zon") for row in probe):
            return column
    return find_zon_column(table)


def zone_name_candidates(zone_path: PathLike) -> List[str]:
    path = Path(zone_path)
    candidates = [path.parent.name, path.stem]
    return [name for index, name in enumerate(candidates) if name and name not in candidates[:index]]


def find_zone_row(table: StringTable, candidates: Sequence[str]) -> Optional[int]:
    zon_column = find_zon_column(table)
    for candidate in candidates:
        needle = candidate.upper()
        for row in range(table.row_count):
            names = [_stem_upper(table.cell(row, column)) for column in LIST_ZONE_NAME_COLUMNS]
            names.append(_stem_upper(table.cell(row, zon_column)))
            if needle in names:
                logging.info("Zone %s found in master index at row %d", candidate, row)
                return row
    return None


def find_animation_catalog(table: StringTable, row: int) -> str:
    skipped = (LIST_ZONE_DECO_COLUMN, LIST_ZONE_CNST_COLUMN)
    values = [
        clean_index_path(table.cell(row, column))
        for column in range(table.column_count)
        if column not in skipped
    ]
    for value in values:
        upper = value.upper()
        if any(marker in upper for marker in ANIMATION_CATALOG_MARKERS):
            return value
    for value in values:
        if value.upper().endswith(".ZSC"):
            return value
    return ""


def lookup_zone(table: StringTable, candidates: Sequence[str]) -> Optional[ZoneCatalogs]:
    row = find_zone_row(table, candidates)
    if row is None:
        logging.warning("Zone candidates %s not found in master index", ", ".join(candidates))
        return None
    return ZoneCatalogs(
        row=row,
        name=table.cell(row, LIST_ZONE_NAME_COLUMNS[0]),
        deco_zsc=clean_index_path(table.cell(row, LIST_ZONE_DECO_COLUMN)),
        cnst_zsc=clean_index_path(table.cell(row, LIST_ZONE_CNST_COLUMN)),
        anim_zsc=find_animation_catalog(table, row),
    )


def list_zones(table: StringTable) -> List[ZoneEntry]:
    """Every master-index row that names a zone file."""
    zon_column = detect_zon_column(table)
    entries: List[ZoneEntry] = []
    for row in range(table.row_count):
        zon_path = clean_index_path(table.cell(row, zon_column))
        if not zon_path.lower().endswith(".zon"):
            continue
        name = table.cell(row, LIST_ZONE_NAME_COLUMNS[0]).strip()
        override = table.cell(row, LIST_ZONE_NAME_COLUMNS[1]).strip()
        if override:
            name = override
        entries.append(
            ZoneEntry(
                row=row,
                name=name or _stem_upper(zon_path),
                zon_path=zon_path,
                deco_zsc=clean_index_path(table.cell(row, LIST_ZONE_DECO_COLUMN)),
                cnst_zsc=clean_index_path(table.cell(row, LIST_ZONE_CNST_COLUMN)),
            )
        )
    return entries
