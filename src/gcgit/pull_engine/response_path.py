"""Dotted-path navigation into parsed JSON responses.

Paths are ``.``-separated field names, each optionally followed by one or
more ``[index]`` suffixes: ``objects[0].dashboards_data``, ``reply.DATA``,
``[0]``. Every hop is exact; there are no wildcards.
"""
import re
from typing import Any

_SEGMENT_RE = re.compile(r"^(?P<field>[^\[\]]*)(?P<indexes>(?:\[[^\[\]]*\])*)$")
_INDEX_RE = re.compile(r"\[([^\[\]]*)\]")


class ResponsePathError(LookupError):
    """Raised when a path cannot be followed through a document."""

    def __init__(self, path: str, segment: str, message: str):
        self.path = path
        self.segment = segment
        super().__init__(message)


def _parse_index(path: str, segment: str, raw: str) -> int:
    if not (raw.isascii() and raw.isdigit()):
        raise ResponsePathError(path, segment, f"Invalid array index '{raw}' in segment '{segment}'")
    return int(raw)


def resolve_path(document: Any, path: str) -> Any:
    """Return the value found at ``path`` inside ``document``.

    Args:
        document: Parsed JSON value (dicts, lists, scalars)
        path: Path expression such as ``objects[0].widgets_data``

    Returns:
        The value at the path. A key mapped to null resolves to None.

    Raises:
        ResponsePathError: Naming the segment that could not be followed
    """
    if not path:
        return document

    current = document
    for segment in path.split("."):
        match = _SEGMENT_RE.match(segment)
        if match is None or (not match.group("field") and not match.group("indexes")):
            raise ResponsePathError(path, segment, f"Invalid path segment '{segment}'")

        field_name = match.group("field")
        if field_name:
            if not isinstance(current, dict) or field_name not in current:
                raise ResponsePathError(path, segment, f"Path segment '{field_name}' not found")
            current = current[field_name]

        for raw_index in _INDEX_RE.findall(match.group("indexes")):
            index = _parse_index(path, segment, raw_index)
            if not isinstance(current, list) or index >= len(current):
                raise ResponsePathError(path, segment, f"Array index {index} not found")
            current = current[index]

    return current
