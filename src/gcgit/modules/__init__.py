"""Module registry.

The registry is built once at startup and handed to whatever needs it.
It never changes after construction.
"""
import logging
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .appsec import APPSEC_MODULE
from .schema import (
    ContentTypeDefinition,
    DescriptorError,
    JsonCollection,
    Module,
    OffsetPaginated,
    Paginated,
    PullStrategy,
    ScriptCode,
    ZipArtifact,
)
from .xsiam import XSIAM_MODULE

logger = logging.getLogger(__name__)

BUILTIN_MODULES = (XSIAM_MODULE, APPSEC_MODULE)


class UnknownModuleError(KeyError):
    """Raised when a module id is not registered."""
    pass


class UnknownContentTypeError(ValueError):
    """Raised when a content type name is not part of a module."""
    pass


class ModuleRegistry:
    """Read-only lookup table of modules and their content types."""

    def __init__(self, modules: Iterable[Module]):
        table: dict[str, Module] = {}
        for module in modules:
            if module.id in table:
                raise DescriptorError(f"Duplicate module id: {module.id}")
            names = module.content_type_names
            if len(names) != len(set(names)):
                raise DescriptorError(f"Duplicate content type in module {module.id}")
            table[module.id] = module
        self._modules: Mapping[str, Module] = MappingProxyType(table)

    @classmethod
    def load(cls) -> "ModuleRegistry":
        """Build the registry of built-in modules."""
        registry = cls(BUILTIN_MODULES)
        logger.debug(f"Loaded modules: {', '.join(registry.module_ids())}")
        return registry

    def get(self, module_id: str) -> Module:
        try:
            return self._modules[module_id]
        except KeyError:
            raise UnknownModuleError(module_id) from None

    def module_ids(self) -> list[str]:
        return list(self._modules)

    def all_modules(self) -> list[Module]:
        return list(self._modules.values())

    def find_content_type(self, module_id: str, name: str) -> Optional[ContentTypeDefinition]:
        return self.get(module_id).content_type(name)

    def validate_content_type(self, module_id: str, name: str) -> ContentTypeDefinition:
        """Resolve a content type name, accepting its singular spelling.

        Args:
            module_id: Module to look in
            name: Content type name, e.g. "dashboards" or "dashboard"

        Returns:
            The matching definition

        Raises:
            UnknownContentTypeError: If neither spelling matches
        """
        module = self.get(module_id)
        for definition in module.content_types:
            if name in (definition.name, definition.singular_name):
                return definition
        raise UnknownContentTypeError(
            f"Unknown content type '{name}' for module '{module_id}'. "
            f"Valid types: {', '.join(module.content_type_names)}"
        )


__all__ = [
    "ContentTypeDefinition",
    "DescriptorError",
    "JsonCollection",
    "Module",
    "ModuleRegistry",
    "OffsetPaginated",
    "Paginated",
    "PullStrategy",
    "ScriptCode",
    "UnknownContentTypeError",
    "UnknownModuleError",
    "ZipArtifact",
]
