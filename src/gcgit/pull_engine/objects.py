"""Canonical object model shared by the pull engine and the object store."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

DEFAULT_CREATED_BY = "gcgit"
DEFAULT_VERSION = "unknown"

# Keys hoisted out of the raw record; never present in ``content``.
RESERVED_KEYS = frozenset({"id", "name", "description", "metadata"})


@dataclass(frozen=True)
class ObjectMetadata:
    """Bookkeeping fields, ignored by logical equality."""
    created_by: str = DEFAULT_CREATED_BY
    version: str = DEFAULT_VERSION
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    additional: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CanonicalObject:
    """One remote configuration item in normalized form.

    Attributes:
        id: Non-empty identifier, synthesized when the source has none
        content_type: Name of the content type the object belongs to
        name: Display name, when the source has one
        description: Free text, empty when absent
        metadata: Bookkeeping fields
        tenant_id: Only populated for authentication settings
        content: Every remaining source field, keyed by its original name
    """
    id: str
    content_type: str
    name: Optional[str] = None
    description: str = ""
    metadata: ObjectMetadata = field(default_factory=ObjectMetadata)
    tenant_id: Optional[str] = None
    content: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValueError("CanonicalObject id must not be empty")
        if not self.content_type:
            raise ValueError("CanonicalObject content_type must not be empty")
        clash = RESERVED_KEYS.intersection(self.content)
        if clash:
            raise ValueError(f"Reserved keys in content: {', '.join(sorted(clash))}")

    @property
    def display_name(self) -> str:
        return self.name or self.id
