"""Retrieval and normalization of remote configuration objects."""
from .archive import (
    ArchiveError,
    ArchiveFormatError,
    ArchiveLimits,
    ArchiveSafetyError,
    extract_text_payload,
)
from .client import ApiError, ClientError, Credentials, DecodeError, ModuleClient, TransportError
from .engine import PaginationLimitError, PullEngine, PullError, extract_items
from .normalizer import NormalizationError, coerce_timestamp, normalize_object
from .objects import CanonicalObject, ObjectMetadata
from .response_path import ResponsePathError, resolve_path

__all__ = [
    "ApiError",
    "ArchiveError",
    "ArchiveFormatError",
    "ArchiveLimits",
    "ArchiveSafetyError",
    "CanonicalObject",
    "ClientError",
    "Credentials",
    "DecodeError",
    "ModuleClient",
    "NormalizationError",
    "ObjectMetadata",
    "PaginationLimitError",
    "PullEngine",
    "PullError",
    "ResponsePathError",
    "TransportError",
    "coerce_timestamp",
    "extract_items",
    "extract_text_payload",
    "normalize_object",
    "resolve_path",
]
