"""Drift detection between local object files and the remote platform."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from ..pull_engine.objects import CanonicalObject
from .serializer import logically_equal, serialize_content

# How many field names a difference line lists before truncating.
MAX_LISTED_FIELDS = 3


@dataclass
class DriftItem:
    """A single object that differs between local and remote state."""
    content_type: str
    object_id: str
    drift_type: str  # 'modified', 'local_only', 'remote_only'
    name: Optional[str] = None
    details: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.name or self.object_id


@dataclass
class DriftReport:
    """Drift report for one module of one instance."""
    instance: str
    module: str
    checked_at: datetime
    items: list[DriftItem] = field(default_factory=list)
    compared: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def in_sync(self) -> bool:
        return not self.items and not self.failed

    @property
    def drift_count(self) -> int:
        return len(self.items)

    def by_type(self, drift_type: str) -> list[DriftItem]:
        return [item for item in self.items if item.drift_type == drift_type]

    def summary(self) -> str:
        """Human-readable summary."""
        header = f"{self.instance}/{self.module}"
        if self.in_sync:
            return f"{header}: IN SYNC ({sum(self.compared.values())} objects compared)"

        lines = [f"{header}: DRIFT ({self.drift_count} objects)"]
        markers = {"modified": "DIFF", "remote_only": "NEW", "local_only": "GONE"}
        for item in self.items:
            lines.append(f"  {markers.get(item.drift_type, '?'):4s} {item.content_type}/{item.label}")
            for detail in item.details:
                lines.append(f"       {detail}")
        for content_type, reason in sorted(self.failed.items()):
            lines.append(f"  FAIL {content_type}: {reason}")
        return "\n".join(lines)


def _list_fields(verb: str, keys: list[str]) -> str:
    if len(keys) == 1:
        return f"{verb} field: {keys[0]}"
    if len(keys) <= MAX_LISTED_FIELDS:
        return f"{verb} {len(keys)} fields: {', '.join(keys)}"
    shown = ", ".join(keys[:MAX_LISTED_FIELDS])
    return f"{verb} {len(keys)} fields: {shown}, ..."


def field_differences(local: CanonicalObject, remote: CanonicalObject) -> list[str]:
    """Describe what changed between the local and the remote version.

    "Added" fields exist remotely but not in the local file, "Removed"
    fields the other way round.
    """
    lines = []
    for label, before, after in (
        ("ID", local.id, remote.id),
        ("Name", local.name, remote.name),
        ("Description", local.description, remote.description),
        ("Type", local.content_type, remote.content_type),
    ):
        if before != after:
            lines.append(f"{label}: {before!r} -> {after!r}")

    local_keys = set(local.content)
    remote_keys = set(remote.content)
    added = sorted(remote_keys - local_keys, key=str)
    removed = sorted(local_keys - remote_keys, key=str)
    modified = sorted(
        (key for key in local_keys & remote_keys if _value_text(local.content[key]) != _value_text(remote.content[key])),
        key=str,
    )
    if added:
        lines.append(_list_fields("Added", added))
    if removed:
        lines.append(_list_fields("Removed", removed))
    if modified:
        lines.append(_list_fields("Modified", modified))

    if not lines:
        lines.append("No functional differences detected (metadata-only changes)")
    return lines


def _value_text(value: Any) -> str:
    return serialize_content({"value": value})


def find_remote_match(
    objects: Iterable[CanonicalObject], object_id: str, id_field: Optional[str] = None
) -> Optional[CanonicalObject]:
    """Find an object by its id, or by the value of its natural key field."""
    for obj in objects:
        if obj.id == object_id:
            return obj
        if id_field and id_field in obj.content and str(obj.content[id_field]) == object_id:
            return obj
    return None


def compare_collections(
    content_type: str,
    local: list[CanonicalObject],
    remote: list[CanonicalObject],
    id_field: Optional[str] = None,
) -> list[DriftItem]:
    """Compare the local and remote objects of one content type.

    Args:
        content_type: Content type both lists belong to
        local: Objects read from disk
        remote: Objects freshly pulled
        id_field: Natural key field, used as a secondary match

    Returns:
        Drift items; empty when both sides are logically equal
    """
    items = []
    matched_remote: set[int] = set()

    for local_obj in local:
        remote_obj = find_remote_match(remote, local_obj.id, id_field)
        if remote_obj is None:
            items.append(DriftItem(content_type, local_obj.id, "local_only", name=local_obj.name))
            continue
        matched_remote.add(id(remote_obj))
        if not logically_equal(local_obj, remote_obj):
            items.append(DriftItem(
                content_type,
                local_obj.id,
                "modified",
                name=local_obj.name,
                details=field_differences(local_obj, remote_obj),
            ))

    for remote_obj in remote:
        if id(remote_obj) not in matched_remote:
            items.append(DriftItem(content_type, remote_obj.id, "remote_only", name=remote_obj.name))

    return items
