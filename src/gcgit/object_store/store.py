"""On-disk layout of an instance's object files.

Handles:
- Mapping objects to ``{module}/{content_type}/{name}.yaml`` paths
- Writing serialized objects
- Listing and loading the files of a content type
"""
import logging
from pathlib import Path
from typing import Iterable, Optional

from ..pull_engine.objects import CanonicalObject
from .serializer import ObjectParseError, load_object_file, serialize_object

logger = logging.getLogger(__name__)

OBJECT_SUFFIXES = (".yaml", ".yml")

_UNSAFE_FILENAME_CHARS = (" ", "/", "\\")


def sanitize_filename(name: str) -> str:
    """Replace spaces and path separators with underscores."""
    for char in _UNSAFE_FILENAME_CHARS:
        name = name.replace(char, "_")
    return name


def singular(content_type: str) -> str:
    return content_type[:-1] if content_type.endswith("s") else content_type


def file_stem(obj: CanonicalObject) -> str:
    """File name (without suffix) for an object: its name, else its id."""
    if obj.name and obj.name.strip():
        return sanitize_filename(obj.name)
    return f"{singular(obj.content_type)}_id_{sanitize_filename(obj.id)}"


class InstanceStore:
    """Reads and writes the object files of one instance directory."""

    def __init__(self, instance_dir: Path):
        self.instance_dir = instance_dir

    def content_type_dir(self, module_id: str, content_type: str) -> Path:
        return self.instance_dir / module_id / content_type

    def object_path(self, module_id: str, obj: CanonicalObject) -> Path:
        return self.content_type_dir(module_id, obj.content_type) / f"{file_stem(obj)}.yaml"

    def relative(self, path: Path) -> str:
        """Path relative to the instance directory, with forward slashes."""
        return path.relative_to(self.instance_dir).as_posix()

    def write_object(self, module_id: str, obj: CanonicalObject, path: Optional[Path] = None) -> Path:
        path = path or self.object_path(module_id, obj)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(serialize_object(obj), encoding="utf-8")
        logger.debug(f"Wrote {self.relative(path)}")
        return path

    def write_objects(self, module_id: str, objects: Iterable[CanonicalObject]) -> list[Path]:
        """Write a batch of objects of one pull.

        Two objects mapping to the same file name are kept apart by
        suffixing the later one with its id.

        Returns:
            Paths written, in input order
        """
        written: list[Path] = []
        claimed: set[Path] = set()
        for obj in objects:
            path = self.object_path(module_id, obj)
            if path in claimed:
                path = path.with_name(f"{path.stem}_{sanitize_filename(obj.id)}{path.suffix}")
                logger.warning(
                    f"{obj.content_type}: duplicate name '{obj.display_name}', writing {path.name}"
                )
            claimed.add(path)
            written.append(self.write_object(module_id, obj, path))
        return written

    def list_object_files(self, module_id: str, content_types: Iterable[str]) -> list[Path]:
        """List the object files of the given content types, sorted."""
        files: list[Path] = []
        for content_type in content_types:
            directory = self.content_type_dir(module_id, content_type)
            if not directory.is_dir():
                continue
            files.extend(
                path for path in directory.iterdir()
                if path.is_file() and path.suffix in OBJECT_SUFFIXES
            )
        return sorted(files)

    def load_objects(self, module_id: str, content_type: str) -> list[CanonicalObject]:
        """Load every parseable object file of one content type.

        Files that cannot be parsed are skipped with a warning.
        """
        objects = []
        for path in self.list_object_files(module_id, [content_type]):
            try:
                objects.append(load_object_file(path))
            except ObjectParseError as e:
                logger.warning(f"Skipping unreadable object file: {e}")
        return objects
