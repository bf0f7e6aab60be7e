"""Turn raw API records into canonical objects.

Identity and name extraction are table-driven: each content type lists the
fields to try, in order, and the first usable value wins. Records without a
natural key get a synthesized id that is unique within the process.
"""
import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import Any, Optional

from .objects import (
    DEFAULT_CREATED_BY,
    DEFAULT_VERSION,
    RESERVED_KEYS,
    CanonicalObject,
    ObjectMetadata,
)

logger = logging.getLogger(__name__)

# Integers above this are epoch milliseconds (2286-11-20 in seconds).
MILLISECONDS_THRESHOLD = 10_000_000_000

# (field, accepted kind). "int" excludes bools, "str" is a string,
# "scalar" accepts either.
IDENTITY_RULES: dict[str, tuple[tuple[str, str], ...]] = {
    "biocs": (("rule_id", "int"), ("id", "str")),
    "correlation_searches": (("rule_id", "int"), ("id", "str")),
    "widgets": (
        ("creation_time", "int"),
        ("global_id", "scalar"),
        ("widget_id", "scalar"),
        ("id", "str"),
    ),
    "dashboards": (
        ("global_id", "str"),
        ("default_dashboard_id", "int"),
        ("dashboard_id", "scalar"),
        ("id", "str"),
    ),
    "authentication_settings": (("name", "str"), ("setting_name", "str"), ("type", "str")),
}
DEFAULT_IDENTITY_RULE = (("id", "scalar"),)

FALLBACK_PREFIXES = {
    "widgets": "widget",
    "dashboards": "dashboard",
    "authentication_settings": "auth_setting",
    "biocs": "rule",
    "correlation_searches": "rule",
}
DEFAULT_FALLBACK_PREFIX = "object"

NAME_RULES: dict[str, tuple[str, ...]] = {
    "widgets": ("title", "name", "widget_name"),
    "authentication_settings": ("name", "setting_name", "type"),
}
DEFAULT_NAME_RULE = ("name",)

# Content types whose records carry a tenant field hoisted to the top level.
TENANT_SCOPED = frozenset({"authentication_settings"})

CREATED_AT_FIELDS = (
    "creation_time", "created_time", "created_at", "createdTime",
    "date_created", "dateCreated",
)
UPDATED_AT_FIELDS = (
    "modification_time", "modified_time", "updated_at", "updatedTime",
    "last_modified", "lastModified", "date_modified", "dateModified",
    "modification_date",
)
VERSION_FIELDS = ("version", "rule_version", "object_version", "schema_version")
DERIVED_VERSION_DEFAULT = "1.0"

FALLBACK_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%d/%m/%Y %H:%M:%S",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%b %d, %Y %H:%M:%S",
)
_NUMERIC_RE = re.compile(r"-?\d+(\.\d+)?")

_fallback_lock = threading.Lock()
_last_fallback = 0


class NormalizationError(ValueError):
    """Raised when a raw record cannot be turned into an object."""
    pass


def _next_fallback_number() -> int:
    """Microseconds since the epoch, strictly increasing per process."""
    global _last_fallback
    with _fallback_lock:
        candidate = time.time_ns() // 1000
        if candidate <= _last_fallback:
            candidate = _last_fallback + 1
        _last_fallback = candidate
        return candidate


def fallback_id(content_type: str) -> str:
    prefix = FALLBACK_PREFIXES.get(content_type, DEFAULT_FALLBACK_PREFIX)
    return f"{prefix}_{_next_fallback_number()}"


def _accept(value: Any, kind: str) -> Optional[str]:
    is_int = isinstance(value, int) and not isinstance(value, bool)
    is_str = isinstance(value, str) and value != ""
    if kind == "int" and is_int:
        return str(value)
    if kind == "str" and is_str:
        return value
    if kind == "scalar" and (is_int or is_str):
        return str(value)
    return None


def extract_id(raw: dict[str, Any], content_type: str, id_field: Optional[str] = None) -> str:
    """Resolve the identity of a record, synthesizing one when needed."""
    rules = IDENTITY_RULES.get(content_type, DEFAULT_IDENTITY_RULE)
    if content_type not in IDENTITY_RULES and id_field and id_field != "id":
        rules = rules + ((id_field, "scalar"),)
    for field_name, kind in rules:
        found = _accept(raw.get(field_name), kind)
        if found is not None:
            return found

    generated = fallback_id(content_type)
    logger.debug(f"No identity field on {content_type} record, using {generated}")
    return generated


def extract_name(raw: dict[str, Any], content_type: str) -> Optional[str]:
    for field_name in NAME_RULES.get(content_type, DEFAULT_NAME_RULE):
        value = raw.get(field_name)
        if isinstance(value, str):
            return value
    return None


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """Convert a raw timestamp to an aware UTC datetime.

    Numbers above ``MILLISECONDS_THRESHOLD`` are milliseconds, smaller ones
    seconds. Strings are read as RFC 3339 first, then against a list of
    common layouts, then as a number. Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if value > MILLISECONDS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = _parse_time_string(text)
        if parsed is None:
            if _NUMERIC_RE.fullmatch(text):
                number = float(text) if "." in text else int(text)
                return coerce_timestamp(number)
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_time_string(text: str) -> Optional[datetime]:
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        pass
    for layout in FALLBACK_TIME_FORMATS:
        try:
            return datetime.strptime(text, layout)
        except ValueError:
            continue
    return None


def _first_timestamp(raw: dict[str, Any], fields: tuple[str, ...]) -> Optional[datetime]:
    for field_name in fields:
        if field_name in raw:
            parsed = coerce_timestamp(raw[field_name])
            if parsed is not None:
                return parsed
    return None


def metadata_from_mapping(data: dict[str, Any]) -> ObjectMetadata:
    known = {"created_by", "version", "created_at", "updated_at"}
    created_by = data.get("created_by")
    version = data.get("version")
    return ObjectMetadata(
        created_by=created_by if isinstance(created_by, str) else DEFAULT_CREATED_BY,
        version=str(version) if version is not None else DEFAULT_VERSION,
        created_at=coerce_timestamp(data.get("created_at")),
        updated_at=coerce_timestamp(data.get("updated_at")),
        additional={k: v for k, v in data.items() if k not in known},
    )


def extract_metadata(raw: dict[str, Any]) -> ObjectMetadata:
    """Build metadata from an explicit block or from the record's own fields."""
    explicit = raw.get("metadata")
    if isinstance(explicit, dict):
        return metadata_from_mapping(explicit)

    version = DERIVED_VERSION_DEFAULT
    for field_name in VERSION_FIELDS:
        if raw.get(field_name) is not None:
            version = str(raw[field_name])
            break

    created_by = raw.get("created_by")
    additional = {"metadata": explicit} if explicit is not None else {}
    return ObjectMetadata(
        created_by=created_by if isinstance(created_by, str) and created_by else DEFAULT_CREATED_BY,
        version=version,
        created_at=_first_timestamp(raw, CREATED_AT_FIELDS),
        updated_at=_first_timestamp(raw, UPDATED_AT_FIELDS),
        additional=additional,
    )


def normalize_object(
    raw: Any,
    content_type: str,
    *,
    id_field: Optional[str] = None,
    object_id: Optional[str] = None,
) -> CanonicalObject:
    """Normalize one raw record.

    Args:
        raw: Decoded JSON object
        content_type: Content type the record belongs to
        id_field: The content type's natural key field, used as a last resort
        object_id: Identity already resolved by the caller; skips extraction

    Returns:
        The canonical object. ``content`` holds every raw field except the
        reserved ones (and the tenant field for tenant-scoped types).

    Raises:
        NormalizationError: If ``raw`` is not a JSON object
    """
    if not isinstance(raw, dict):
        raise NormalizationError(
            f"Expected a JSON object for {content_type}, got {type(raw).__name__}"
        )

    resolved_id = object_id or extract_id(raw, content_type, id_field)
    description = raw.get("description")

    excluded = set(RESERVED_KEYS)
    tenant_id = None
    if content_type in TENANT_SCOPED:
        excluded.add("tenant_id")
        tenant = raw.get("tenant_id")
        if isinstance(tenant, (str, int)) and not isinstance(tenant, bool):
            tenant_id = str(tenant)

    return CanonicalObject(
        id=resolved_id,
        content_type=content_type,
        name=extract_name(raw, content_type),
        description=description if isinstance(description, str) else "",
        metadata=extract_metadata(raw),
        tenant_id=tenant_id,
        content={k: v for k, v in raw.items() if k not in excluded},
    )
