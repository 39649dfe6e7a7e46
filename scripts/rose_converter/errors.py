"""
errors.py
=========

Error taxonomy and the diagnostic channel shared by every decoder.

Structural problems (truncation, bad magic, a root that cannot be found)
raise one of the ``RoseError`` subclasses below and abort the import.
Skippable problems (unknown block types, missing sibling files, indices
that point outside a sibling table) are recorded on a ``Diagnostics``
collector instead and the import carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Union

PathLike = Union[str, Path]


class RoseError(Exception):
    """Base error. Names the failing file, byte offset and error kind."""

    kind = "RoseError"

    def __init__(
        self,
        message: str,
        file: Optional[PathLike] = None,
        offset: Optional[int] = None,
    ) -> None:
        self.message = message
        self.file = str(file) if file is not None else None
        self.offset = offset
        super().__init__(self._format())

    def _format(self) -> str:
        where = self.file or "<memory>"
        if self.offset is not None:
            where = f"{where}@{self.offset}"
        return f"{self.kind}: {self.message} ({where})"


class TruncatedError(RoseError):
    kind = "Truncated"


class BadMagicError(RoseError):
    kind = "BadMagic"


class UnsupportedVariantError(RoseError):
    kind = "UnsupportedVariant"


class OutOfRangeError(RoseError):
    kind = "OutOfRange"


class PathNotFoundError(RoseError):
    kind = "PathNotFound"


class CyclicDependencyError(RoseError):
    kind = "CyclicDependency"


class CancelledError(RoseError):
    kind = "Cancelled"


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

# Diagnostic kinds for skippable problems.
DIAG_UNKNOWN_BLOCK = "unknown-block"
DIAG_UNKNOWN_TAG = "unknown-tag"
DIAG_EMPTY_OBJECT = "empty-object"
DIAG_OUT_OF_RANGE = "out-of-range"
DIAG_MISSING_FILE = "missing-file"
DIAG_BAD_FILE = "bad-file"
DIAG_DROPPED = "dropped"


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    message: str
    file: Optional[str] = None

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "file": self.file}


@dataclass
class Diagnostics:
    """Collects skippable problems for one import operation."""

    entries: List[Diagnostic] = field(default_factory=list)

    def add(self, kind: str, message: str, file: Optional[PathLike] = None) -> None:
        file_str = str(file) if file is not None else None
        self.entries.append(Diagnostic(kind=kind, message=message, file=file_str))
        if file_str:
            logging.warning("%s: %s (%s)", kind, message, file_str)
        else:
            logging.warning("%s: %s", kind, message)

    def count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return len(self.entries)
        return sum(1 for entry in self.entries if entry.kind == kind)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)
