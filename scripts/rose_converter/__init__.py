"""ROSE Online zone and character converter."""

from .errors import (
    BadMagicError,
    CancelledError,
    CyclicDependencyError,
    Diagnostic,
    Diagnostics,
    OutOfRangeError,
    PathNotFoundError,
    RoseError,
    TruncatedError,
    UnsupportedVariantError,
)
from .importer import (
    CancelToken,
    ImportOptions,
    import_character,
    import_default_character,
    import_zone,
)
from .scene import Scene

__all__ = [
    "BadMagicError",
    "CancelToken",
    "CancelledError",
    "CyclicDependencyError",
    "Diagnostic",
    "Diagnostics",
    "ImportOptions",
    "OutOfRangeError",
    "PathNotFoundError",
    "RoseError",
    "Scene",
    "TruncatedError",
    "UnsupportedVariantError",
    "import_character",
    "import_default_character",
    "import_zone",
]
