"""Object files, drift detection, git and locking for instance directories."""
from .drift import DriftItem, DriftReport, compare_collections, field_differences, find_remote_match
from .git_manager import GitError, GitManager
from .lock import InstanceLock, LockError
from .serializer import (
    ObjectParseError,
    load_object_file,
    load_yaml,
    logically_equal,
    parse_object,
    serialize_content,
    serialize_object,
)
from .store import InstanceStore, sanitize_filename

__all__ = [
    "DriftItem",
    "DriftReport",
    "GitError",
    "GitManager",
    "InstanceLock",
    "InstanceStore",
    "LockError",
    "ObjectParseError",
    "compare_collections",
    "field_differences",
    "find_remote_match",
    "load_object_file",
    "load_yaml",
    "logically_equal",
    "parse_object",
    "sanitize_filename",
    "serialize_content",
    "serialize_object",
]
