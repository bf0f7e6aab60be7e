"""Pull strategy engine.

Given a content type definition, drive the HTTP call sequence its strategy
calls for and return the normalized objects. Dispatch is a single
``isinstance`` chain over the closed set of strategies.

Failure policy:
- the controlling call of a strategy fails -> ``PullError`` for the whole
  content type
- the response envelope does not have the expected shape -> WARNING and
  an empty result
- one item of a two-phase strategy fails -> WARNING, the item is dropped
- a paginated endpoint never returns an empty page -> ``PaginationLimitError``
"""
import logging
from typing import Any, Optional

import yaml

from ..modules.schema import (
    ContentTypeDefinition,
    JsonCollection,
    OffsetPaginated,
    Paginated,
    ScriptCode,
    ZipArtifact,
)
from ..object_store.serializer import load_yaml
from ..utils.logging_config import timed_section
from .archive import ArchiveError, extract_text_payload
from .client import ClientError, DecodeError, ModuleClient
from .normalizer import NormalizationError, normalize_object
from .objects import CanonicalObject
from .response_path import ResponsePathError, resolve_path

logger = logging.getLogger(__name__)

EMPTY_REQUEST = {"request_data": {}}


class PullError(Exception):
    """Raised when a content type cannot be pulled."""

    def __init__(self, content_type: str, reason: str):
        self.content_type = content_type
        self.reason = reason
        super().__init__(f"Failed to pull {content_type}: {reason}")


class PaginationLimitError(PullError):
    """Raised when a paginated endpoint is still returning data at the page ceiling."""
    pass


def extract_items(document: Any, path: Optional[str], context: str) -> list[Any]:
    """Locate the item array inside a response envelope.

    Shape mismatches are not errors: an empty remote collection is a normal
    state, so they are logged and treated as no items.

    Args:
        document: Decoded response body
        path: Response path, or None when the root itself is the array
        context: Label for log messages

    Returns:
        The items found, possibly empty
    """
    if path is None:
        if isinstance(document, list):
            return document
        logger.warning(
            f"{context}: expected a JSON array at the response root, got "
            f"{type(document).__name__}; the endpoint shape may have changed"
        )
        return []

    try:
        found = resolve_path(document, path)
    except ResponsePathError as e:
        logger.warning(
            f"{context}: response path '{path}' not found ({e}). "
            f"This could mean no data or that the response structure changed"
        )
        return []

    if found is None:
        logger.info(f"{context}: '{path}' is null, treating as no data")
        return []
    if not isinstance(found, list):
        logger.warning(
            f"{context}: expected an array at '{path}', got {type(found).__name__}; "
            f"the endpoint shape may have changed"
        )
        return []
    return found


class PullEngine:
    """Fetches every object of a content type through one module client."""

    def __init__(self, client: ModuleClient):
        self.client = client

    async def pull(self, definition: ContentTypeDefinition) -> list[CanonicalObject]:
        """Pull all objects of one content type.

        Args:
            definition: Content type to pull

        Returns:
            Normalized objects in the order the API returned them

        Raises:
            PullError: If the controlling call fails or pagination does not end
        """
        strategy = definition.strategy
        async with timed_section("pull", subject=definition.name, strategy=definition.strategy_name):
            try:
                if isinstance(strategy, JsonCollection):
                    objects = await self._pull_collection(definition)
                elif isinstance(strategy, Paginated):
                    objects = await self._pull_paginated(definition, strategy)
                elif isinstance(strategy, OffsetPaginated):
                    objects = await self._pull_offset_paginated(definition, strategy)
                elif isinstance(strategy, ZipArtifact):
                    objects = await self._pull_zip_artifacts(definition, strategy)
                elif isinstance(strategy, ScriptCode):
                    objects = await self._pull_script_code(definition, strategy)
                else:
                    raise PullError(definition.name, f"unsupported strategy {definition.strategy_name}")
            except ClientError as e:
                raise PullError(definition.name, str(e)) from e

        logger.info(f"Pulled {len(objects)} {definition.name}")
        return objects

    def _normalize_all(self, definition: ContentTypeDefinition, items: list[Any]) -> list[CanonicalObject]:
        objects = []
        for index, item in enumerate(items):
            try:
                objects.append(normalize_object(item, definition.name, id_field=definition.id_field))
            except (NormalizationError, ValueError) as e:
                logger.warning(f"{definition.name}: skipping item {index}: {e}")
        return objects

    async def _pull_collection(self, definition: ContentTypeDefinition) -> list[CanonicalObject]:
        if definition.request_body is not None:
            document = await self.client.post_json(definition.get_endpoint, definition.request_body)
        else:
            document = await self.client.get_json(definition.get_endpoint)
        items = extract_items(document, definition.response_path, definition.name)
        return self._normalize_all(definition, items)

    async def _pull_pages(self, definition: ContentTypeDefinition, max_pages: int, params_for) -> list[Any]:
        """Request pages until one comes back empty.

        ``params_for(n)`` builds the query for the n-th request (0-based).
        """
        collected: list[Any] = []
        for round_number in range(max_pages):
            params = params_for(round_number)
            document = await self.client.get_json(definition.get_endpoint, params=params)
            items = extract_items(document, definition.response_path, definition.name)
            if not items:
                logger.debug(f"{definition.name}: empty page at {params}, {len(collected)} items total")
                return collected
            collected.extend(items)

        raise PaginationLimitError(
            definition.name,
            f"still receiving data after {max_pages} pages; refusing to continue",
        )

    async def _pull_paginated(self, definition: ContentTypeDefinition, strategy: Paginated) -> list[CanonicalObject]:
        items = await self._pull_pages(
            definition,
            strategy.max_pages,
            lambda n: {strategy.page_param: n + 1, strategy.page_size_param: strategy.page_size},
        )
        return self._normalize_all(definition, items)

    async def _pull_offset_paginated(
        self, definition: ContentTypeDefinition, strategy: OffsetPaginated
    ) -> list[CanonicalObject]:
        items = await self._pull_pages(
            definition,
            strategy.max_pages,
            lambda n: {strategy.offset_param: n * strategy.page_size, strategy.limit_param: strategy.page_size},
        )
        return self._normalize_all(definition, items)

    async def _pull_zip_artifacts(self, definition: ContentTypeDefinition, strategy: ZipArtifact) -> list[CanonicalObject]:
        document = await self.client.post_json(strategy.metadata_endpoint, definition.request_body or EMPTY_REQUEST)
        records = extract_items(document, strategy.metadata_response_path, definition.name)

        objects = []
        for record in records:
            try:
                objects.append(await self._fetch_artifact(definition, strategy, record))
            except (ClientError, ArchiveError, NormalizationError, ValueError) as e:
                label = record.get("name", "?") if isinstance(record, dict) else "?"
                logger.warning(f"{definition.name}: failed to download '{label}': {e}")
        return objects

    async def _fetch_artifact(
        self, definition: ContentTypeDefinition, strategy: ZipArtifact, record: Any
    ) -> CanonicalObject:
        if not isinstance(record, dict) or not isinstance(record.get("name"), str):
            raise NormalizationError("metadata record has no name")
        name = record["name"]
        object_id = record.get(definition.id_field)
        object_id = str(object_id) if object_id not in (None, "") else name

        body = {"request_data": {"filters": [{"field": strategy.download_filter_field, "value": name}]}}
        data = await self.client.post_bytes(strategy.download_endpoint, body)
        text = extract_text_payload(data)
        try:
            payload = load_yaml(text)
        except yaml.YAMLError as e:
            raise DecodeError(f"artifact '{name}' is not valid YAML: {e}") from e
        if not isinstance(payload, dict):
            raise DecodeError(f"artifact '{name}' does not hold a YAML mapping")

        merged = {**payload, **record, definition.id_field: object_id}
        return normalize_object(merged, definition.name, id_field=definition.id_field, object_id=object_id)

    async def _pull_script_code(self, definition: ContentTypeDefinition, strategy: ScriptCode) -> list[CanonicalObject]:
        document = await self.client.post_json(strategy.list_endpoint, definition.request_body or EMPTY_REQUEST)
        records = extract_items(document, strategy.list_response_path, definition.name)

        objects = []
        for record in records:
            try:
                objects.append(await self._fetch_script(definition, strategy, record))
            except (ClientError, NormalizationError, ValueError) as e:
                label = record.get(strategy.uid_field, "?") if isinstance(record, dict) else "?"
                logger.warning(f"{definition.name}: failed to fetch code for '{label}': {e}")
        return objects

    async def _fetch_script(self, definition: ContentTypeDefinition, strategy: ScriptCode, record: Any) -> CanonicalObject:
        if not isinstance(record, dict):
            raise NormalizationError("script record is not an object")
        uid = record.get(strategy.uid_field)
        if uid in (None, ""):
            raise NormalizationError(f"script record has no {strategy.uid_field}")
        uid = str(uid)

        document = await self.client.post_json(strategy.code_endpoint, {"request_data": {strategy.uid_field: uid}})
        code = document.get("reply") if isinstance(document, dict) else None
        if not isinstance(code, str):
            raise DecodeError(f"no code string in reply for script {uid}")

        raw = {k: v for k, v in record.items() if k != strategy.uid_field}
        raw.setdefault("name", uid)
        raw["code"] = code.replace("\\n", "\n")
        return normalize_object(raw, definition.name, id_field=definition.id_field, object_id=uid)
