"""gcgit: git-backed version control for platform configuration objects."""
from .modules import ModuleRegistry
from .object_store import logically_equal, parse_object, serialize_object
from .pull_engine import CanonicalObject, PullEngine, normalize_object

__version__ = "0.1.0"

__all__ = [
    "CanonicalObject",
    "ModuleRegistry",
    "PullEngine",
    "logically_equal",
    "normalize_object",
    "parse_object",
    "serialize_object",
]
