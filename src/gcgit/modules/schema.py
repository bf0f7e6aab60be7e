"""Content type descriptors and pull strategies.

A module (``xsiam``, ``appsec``) is a fixed table of content types. Each
content type names its read endpoint, the field that identifies its objects,
and exactly one pull strategy. Strategies are a closed set of frozen
dataclasses; the pull engine dispatches on their type.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class JsonCollection:
    """One call returns the whole collection."""


@dataclass(frozen=True)
class Paginated:
    """Page-number pagination, pages counted from 1."""
    page_param: str = "page"
    page_size_param: str = "pageSize"
    page_size: int = 100
    max_pages: int = 1000


@dataclass(frozen=True)
class OffsetPaginated:
    """Offset/limit pagination, offsets counted from 0."""
    offset_param: str = "offset"
    limit_param: str = "limit"
    page_size: int = 100
    max_pages: int = 1000


@dataclass(frozen=True)
class ZipArtifact:
    """List metadata records, then download one archive per record."""
    metadata_endpoint: str
    download_endpoint: str
    metadata_response_path: Optional[str] = None
    download_filter_field: str = "name"


@dataclass(frozen=True)
class ScriptCode:
    """List script records, then fetch the code of each one."""
    list_endpoint: str
    code_endpoint: str
    list_response_path: Optional[str] = None
    uid_field: str = "script_uid"


PullStrategy = Union[JsonCollection, Paginated, OffsetPaginated, ZipArtifact, ScriptCode]

PAGED_STRATEGIES = (Paginated, OffsetPaginated)
TWO_PHASE_STRATEGIES = (ZipArtifact, ScriptCode)


class DescriptorError(ValueError):
    """Raised when a content type descriptor combines incompatible fields."""
    pass


@dataclass(frozen=True)
class ContentTypeDefinition:
    """Describes how one category of remote objects is read.

    Attributes:
        name: Content type name, also the directory objects are stored in
        get_endpoint: Read endpoint relative to the module base path
        id_field: Field carrying the natural key of an object
        strategy: How the collection is retrieved
        request_body: JSON body template; POST when set, GET otherwise
        response_path: Where the item array sits inside the response
        insert_endpoint: Write endpoint (informational, push is not supported)
        delete_endpoint: Delete endpoint (informational)
    """
    name: str
    get_endpoint: str
    id_field: str = "id"
    strategy: PullStrategy = field(default_factory=JsonCollection)
    request_body: Optional[dict[str, Any]] = None
    response_path: Optional[str] = None
    insert_endpoint: Optional[str] = None
    delete_endpoint: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise DescriptorError("Content type name must not be empty")
        if not self.id_field:
            raise DescriptorError(f"{self.name}: id_field must not be empty")
        if not isinstance(self.strategy, (JsonCollection, *PAGED_STRATEGIES, *TWO_PHASE_STRATEGIES)):
            raise DescriptorError(f"{self.name}: unknown strategy {self.strategy!r}")
        if isinstance(self.strategy, PAGED_STRATEGIES):
            if self.strategy.page_size <= 0:
                raise DescriptorError(f"{self.name}: page_size must be positive")
            if self.strategy.max_pages <= 0:
                raise DescriptorError(f"{self.name}: max_pages must be positive")
            if self.request_body is not None:
                raise DescriptorError(f"{self.name}: paginated reads are GET requests and take no body")
        if isinstance(self.strategy, TWO_PHASE_STRATEGIES) and self.response_path is not None:
            raise DescriptorError(
                f"{self.name}: two-phase strategies locate records with their own response path"
            )

    @property
    def strategy_name(self) -> str:
        return type(self.strategy).__name__

    @property
    def singular_name(self) -> str:
        """Singular spelling accepted on the command line."""
        if self.name.endswith("ies"):
            return self.name[:-3] + "y"
        if self.name.endswith("ches"):
            return self.name[:-2]
        if self.name.endswith("s"):
            return self.name[:-1]
        return self.name


@dataclass(frozen=True)
class Module:
    """A platform product area with its own API base path."""
    id: str
    name: str
    base_api_path: str
    content_types: tuple[ContentTypeDefinition, ...]

    def content_type(self, name: str) -> Optional[ContentTypeDefinition]:
        for definition in self.content_types:
            if definition.name == name:
                return definition
        return None

    @property
    def content_type_names(self) -> list[str]:
        return [definition.name for definition in self.content_types]
