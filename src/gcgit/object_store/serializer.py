"""Deterministic YAML rendering of canonical objects.

Layout of an object file::

    id: ...
    name: ...            # omitted when the object has no name
    description: ...
    content_type: ...
    metadata: {created_by, version, created_at, updated_at, ...}
    tenant_id: ...       # only when set
    <content keys, lexicographic order>

Mappings nested inside content are key-sorted as well, so the bytes of a
file depend only on the object's values, never on the order an API
returned its fields in.
"""
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from ..pull_engine.normalizer import TENANT_SCOPED, metadata_from_mapping
from ..pull_engine.objects import CanonicalObject, ObjectMetadata

logger = logging.getLogger(__name__)

HEADER_KEYS = ("id", "name", "description", "content_type", "metadata", "tenant_id")

# Content keys that would collide with a header key are nested here.
SHADOWED_KEY = "_shadowed"

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class ObjectParseError(ValueError):
    """Raised when an object file cannot be read back."""
    pass


class _ObjectDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_ObjectDumper.add_representer(str, _represent_str)


class _ObjectLoader(yaml.SafeLoader):
    """SafeLoader that keeps date-like scalars as strings."""


_ObjectLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml(text: str) -> Any:
    """Parse YAML text the way object files are read, dates kept as strings."""
    return yaml.load(text, Loader=_ObjectLoader)


def _sorted_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _sorted_value(value[key]) for key in sorted(value, key=str)}
    if isinstance(value, list):
        return [_sorted_value(item) for item in value]
    return value


def _dump(document: Any) -> str:
    return yaml.dump(
        document,
        Dumper=_ObjectDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def _metadata_document(metadata: ObjectMetadata) -> dict[str, Any]:
    document: dict[str, Any] = {
        "created_by": metadata.created_by,
        "version": metadata.version,
        "created_at": metadata.created_at.isoformat() if metadata.created_at else None,
        "updated_at": metadata.updated_at.isoformat() if metadata.updated_at else None,
    }
    for key in sorted(metadata.additional, key=str):
        if key not in document:
            document[key] = _sorted_value(metadata.additional[key])
    return document


def object_document(obj: CanonicalObject) -> dict[str, Any]:
    """Build the ordered mapping that ``serialize_object`` renders."""
    document: dict[str, Any] = {"id": obj.id}
    if obj.name is not None:
        document["name"] = obj.name
    document["description"] = obj.description
    document["content_type"] = obj.content_type
    document["metadata"] = _metadata_document(obj.metadata)
    if obj.tenant_id is not None:
        document["tenant_id"] = obj.tenant_id

    shadowed = {}
    for key in sorted(obj.content, key=str):
        value = _sorted_value(obj.content[key])
        if key in HEADER_KEYS or key == SHADOWED_KEY:
            shadowed[key] = value
        else:
            document[key] = value
    if shadowed:
        document[SHADOWED_KEY] = shadowed
    return document


def serialize_object(obj: CanonicalObject) -> str:
    """Render an object as YAML with a fixed field order."""
    return _dump(object_document(obj))


def serialize_content(content: dict[str, Any]) -> str:
    """Render only the content mapping, keys sorted at every level."""
    return _dump(_sorted_value(content))


def logically_equal(a: CanonicalObject, b: CanonicalObject) -> bool:
    """Compare two objects ignoring metadata.

    Identity, name, description and content type must match exactly; the
    content mappings are compared through their sorted rendering.
    """
    if (a.id, a.name, a.description, a.content_type) != (b.id, b.name, b.description, b.content_type):
        return False
    return serialize_content(a.content) == serialize_content(b.content)


def parse_object(text: str, content_type: Optional[str] = None) -> CanonicalObject:
    """Read an object back from its YAML rendering.

    Args:
        text: File contents
        content_type: Used when the file itself has no content_type key

    Returns:
        The object the text describes

    Raises:
        ObjectParseError: On invalid YAML or a missing id or content type
    """
    try:
        data = load_yaml(text)
    except yaml.YAMLError as e:
        raise ObjectParseError(f"Invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ObjectParseError("Object file must contain a YAML mapping")

    object_id = data.pop("id", None)
    if object_id is None or str(object_id) == "":
        raise ObjectParseError("Object ID cannot be empty")

    resolved_type = data.pop("content_type", None) or content_type
    if not resolved_type:
        raise ObjectParseError("Content type cannot be empty")

    name = data.pop("name", None)
    description = data.pop("description", "")
    raw_metadata = data.pop("metadata", None)
    metadata = metadata_from_mapping(raw_metadata) if isinstance(raw_metadata, dict) else ObjectMetadata()

    tenant_id = None
    if resolved_type in TENANT_SCOPED:
        tenant = data.pop("tenant_id", None)
        tenant_id = str(tenant) if tenant is not None else None

    shadowed = data.pop(SHADOWED_KEY, None)
    if isinstance(shadowed, dict):
        data.update(shadowed)

    try:
        return CanonicalObject(
            id=str(object_id),
            content_type=str(resolved_type),
            name=str(name) if name is not None else None,
            description=str(description) if description is not None else "",
            metadata=metadata,
            tenant_id=tenant_id,
            content=data,
        )
    except ValueError as e:
        raise ObjectParseError(str(e)) from e


def load_object_file(path: Path) -> CanonicalObject:
    """Parse an object file, inferring its content type from the parent directory."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ObjectParseError(f"Cannot read {path}: {e}") from e
    try:
        return parse_object(text, content_type=path.parent.name)
    except ObjectParseError as e:
        raise ObjectParseError(f"{path}: {e}") from e
