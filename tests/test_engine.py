"""Tests for the pull strategy engine against a mocked platform API."""
import io
import json
import logging
import zipfile

import httpx
import pytest

from gcgit.modules import (
    ContentTypeDefinition,
    ModuleRegistry,
    OffsetPaginated,
    Paginated,
    ScriptCode,
    ZipArtifact,
)
from gcgit.object_store.serializer import logically_equal, parse_object, serialize_object
from gcgit.pull_engine.client import ApiError, Credentials, ModuleClient, TransportError
from gcgit.pull_engine.engine import PaginationLimitError, PullEngine, PullError, extract_items

CREDENTIALS = Credentials(fqdn="tenant.example.com", api_key="secret", api_key_id="17", timeout=5)


class RecordingHandler:
    """Mock transport handler that records requests and answers from a callable."""

    def __init__(self, respond):
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


def make_client(handler, base_api_path="/public_api/v1") -> ModuleClient:
    return ModuleClient(CREDENTIALS, base_api_path, transport=httpx.MockTransport(handler))


def body_of(request: httpx.Request):
    return json.loads(request.content) if request.content else None


def zip_bytes(name: str, text: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(name, text)
    return buffer.getvalue()


class TestJsonCollection:
    """Single-call collections."""

    @pytest.mark.asyncio
    async def test_reply_envelope_end_to_end(self):
        """A reply envelope yields one object that survives a file round trip."""
        handler = RecordingHandler(lambda r: httpx.Response(200, json={"reply": [{"rule_id": 5, "name": "x"}]}))
        definition = ContentTypeDefinition(
            name="correlation_searches",
            get_endpoint="correlations/get",
            id_field="rule_id",
            request_body={"request_data": {}},
            response_path="reply",
        )
        async with make_client(handler) as client:
            objects = await PullEngine(client).pull(definition)

        assert len(objects) == 1
        obj = objects[0]
        assert obj.id == "5"
        assert obj.name == "x"
        assert obj.content == {"rule_id": 5}
        assert parse_object(serialize_object(obj)) == obj

    @pytest.mark.asyncio
    async def test_post_with_body_and_auth_headers(self):
        handler = RecordingHandler(lambda r: httpx.Response(200, json={"objects": []}))
        definition = ModuleRegistry.load().find_content_type("xsiam", "biocs")
        async with make_client(handler) as client:
            await PullEngine(client).pull(definition)

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://tenant.example.com/public_api/v1/bioc/get"
        assert request.headers["x-xdr-auth-id"] == "17"
        assert request.headers["Authorization"] == "secret"
        assert body_of(request) == {"request_data": {"extended_view": True}}

    @pytest.mark.asyncio
    async def test_get_without_body(self):
        handler = RecordingHandler(lambda r: httpx.Response(200, json=[{"id": "p1", "name": "Policy"}]))
        definition = ModuleRegistry.load().find_content_type("appsec", "policies")
        async with make_client(handler, "/public_api") as client:
            objects = await PullEngine(client).pull(definition)

        assert handler.requests[0].method == "GET"
        assert handler.requests[0].url.path == "/public_api/appsec/v1/policies"
        assert [o.id for o in objects] == ["p1"]

    @pytest.mark.asyncio
    async def test_nested_wrapper_path(self):
        payload = {"objects": [{"dashboards_data": [{"global_id": "d1", "name": "Main"}]}]}
        handler = RecordingHandler(lambda r: httpx.Response(200, json=payload))
        definition = ModuleRegistry.load().find_content_type("xsiam", "dashboards")
        async with make_client(handler) as client:
            objects = await PullEngine(client).pull(definition)
        assert [(o.id, o.name) for o in objects] == [("d1", "Main")]

    @pytest.mark.asyncio
    async def test_relative_endpoint_leaves_version_prefix(self):
        handler = RecordingHandler(lambda r: httpx.Response(200, json={"reply": {"xql_queries": []}}))
        definition = ModuleRegistry.load().find_content_type("xsiam", "xql_library")
        async with make_client(handler) as client:
            await PullEngine(client).pull(definition)
        assert handler.requests[0].url.path == "/public_api/xql_library/get"

    @pytest.mark.asyncio
    async def test_missing_path_is_empty_with_warning(self, caplog):
        handler = RecordingHandler(lambda r: httpx.Response(200, json={"objects": []}))
        definition = ModuleRegistry.load().find_content_type("xsiam", "dashboards")
        with caplog.at_level(logging.WARNING, logger="gcgit.pull_engine.engine"):
            async with make_client(handler) as client:
                objects = await PullEngine(client).pull(definition)
        assert objects == []
        assert "could mean no data" in caplog.text

    @pytest.mark.asyncio
    async def test_non_array_root_is_empty_with_warning(self, caplog):
        handler = RecordingHandler(lambda r: httpx.Response(200, json={"unexpected": True}))
        definition = ModuleRegistry.load().find_content_type("appsec", "integrations")
        with caplog.at_level(logging.WARNING, logger="gcgit.pull_engine.engine"):
            async with make_client(handler, "/public_api") as client:
                objects = await PullEngine(client).pull(definition)
        assert objects == []
        assert "response root" in caplog.text

    @pytest.mark.asyncio
    async def test_http_error_becomes_pull_error(self):
        handler = RecordingHandler(lambda r: httpx.Response(500, text="boom"))
        definition = ModuleRegistry.load().find_content_type("xsiam", "biocs")
        async with make_client(handler) as client:
            with pytest.raises(PullError) as excinfo:
                await PullEngine(client).pull(definition)
        assert excinfo.value.content_type == "biocs"
        assert isinstance(excinfo.value.__cause__, ApiError)
        assert excinfo.value.__cause__.status_code == 500

    @pytest.mark.asyncio
    async def test_invalid_url_becomes_pull_error(self):
        def respond(request):
            raise httpx.InvalidURL("Invalid port: 'notaport'")

        definition = ModuleRegistry.load().find_content_type("xsiam", "biocs")
        async with make_client(RecordingHandler(respond)) as client:
            with pytest.raises(PullError) as excinfo:
                await PullEngine(client).pull(definition)
        assert isinstance(excinfo.value.__cause__, TransportError)

    @pytest.mark.asyncio
    async def test_invalid_json_becomes_pull_error(self):
        handler = RecordingHandler(lambda r: httpx.Response(200, text="<html>login</html>"))
        definition = ModuleRegistry.load().find_content_type("xsiam", "biocs")
        async with make_client(handler) as client:
            with pytest.raises(PullError, match="not valid JSON"):
                await PullEngine(client).pull(definition)

    @pytest.mark.asyncio
    async def test_non_object_items_skipped(self):
        handler = RecordingHandler(lambda r: httpx.Response(200, json=[{"id": "a"}, "junk", {"id": "b"}]))
        definition = ModuleRegistry.load().find_content_type("appsec", "policies")
        async with make_client(handler, "/public_api") as client:
            objects = await PullEngine(client).pull(definition)
        assert [o.id for o in objects] == ["a", "b"]


class TestPagination:
    """Page and offset pagination."""

    @pytest.mark.asyncio
    async def test_stops_at_first_empty_page(self):
        pages = {1: [{"id": "a"}, {"id": "b"}], 2: [{"id": "c"}, {"id": "d"}]}

        def respond(request):
            page = int(request.url.params["page"])
            return httpx.Response(200, json={"data": pages.get(page, [])})

        handler = RecordingHandler(respond)
        definition = ContentTypeDefinition(
            name="applications",
            get_endpoint="appsec/v1/application",
            response_path="data",
            strategy=Paginated(page_param="page", page_size_param="pageSize", page_size=2),
        )
        async with make_client(handler, "/public_api") as client:
            objects = await PullEngine(client).pull(definition)

        assert len(handler.requests) == 3
        assert [o.id for o in objects] == ["a", "b", "c", "d"]
        assert [r.url.params["page"] for r in handler.requests] == ["1", "2", "3"]
        assert all(r.url.params["pageSize"] == "2" for r in handler.requests)
        assert all(r.method == "GET" for r in handler.requests)

    @pytest.mark.asyncio
    async def test_offset_pagination(self):
        records = [{"id": f"r{i}"} for i in range(5)]

        def respond(request):
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            return httpx.Response(200, json={"rules": records[offset:offset + limit], "offset": offset})

        handler = RecordingHandler(respond)
        definition = ContentTypeDefinition(
            name="rules",
            get_endpoint="appsec/v1/rules",
            response_path="rules",
            strategy=OffsetPaginated(page_size=2),
        )
        async with make_client(handler, "/public_api") as client:
            objects = await PullEngine(client).pull(definition)

        assert [r.url.params["offset"] for r in handler.requests] == ["0", "2", "4", "6"]
        assert [o.id for o in objects] == [f"r{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_page_ceiling_fails_instead_of_looping(self):
        handler = RecordingHandler(lambda r: httpx.Response(200, json={"data": [{"id": "same"}]}))
        definition = ContentTypeDefinition(
            name="applications",
            get_endpoint="appsec/v1/application",
            response_path="data",
            strategy=Paginated(page_size=1, max_pages=5),
        )
        async with make_client(handler, "/public_api") as client:
            with pytest.raises(PaginationLimitError):
                await PullEngine(client).pull(definition)
        assert len(handler.requests) == 5

    @pytest.mark.asyncio
    async def test_failure_mid_pagination_aborts(self):
        def respond(request):
            if request.url.params["page"] == "2":
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"data": [{"id": "a"}]})

        definition = ContentTypeDefinition(
            name="applications",
            get_endpoint="appsec/v1/application",
            response_path="data",
            strategy=Paginated(),
        )
        async with make_client(RecordingHandler(respond), "/public_api") as client:
            with pytest.raises(PullError):
                await PullEngine(client).pull(definition)


class TestScriptCode:
    """List-then-fetch script code."""

    @pytest.fixture
    def definition(self):
        return ModuleRegistry.load().find_content_type("xsiam", "scripts")

    @pytest.mark.asyncio
    async def test_code_fetched_per_script(self, definition):
        def respond(request):
            if request.url.path.endswith("get_scripts"):
                return httpx.Response(200, json={"reply": {"scripts": [
                    {"script_uid": "u1", "name": "Enrich", "description": "adds context", "timeout": 60},
                    {"script_uid": "u2"},
                ]}})
            uid = body_of(request)["request_data"]["script_uid"]
            return httpx.Response(200, json={"reply": f"def main():\\n    return '{uid}'"})

        handler = RecordingHandler(respond)
        async with make_client(handler) as client:
            objects = await PullEngine(client).pull(definition)

        assert len(handler.requests) == 3
        first, second = objects
        assert first.id == "u1"
        assert first.name == "Enrich"
        assert first.description == "adds context"
        assert first.content == {"code": "def main():\n    return 'u1'", "timeout": 60}
        assert second.name == "u2"

    @pytest.mark.asyncio
    async def test_failed_item_is_dropped(self, definition, caplog):
        def respond(request):
            if request.url.path.endswith("get_scripts"):
                return httpx.Response(200, json={"reply": {"scripts": [
                    {"script_uid": "ok"}, {"script_uid": "broken"}, {"name": "no uid"},
                ]}})
            uid = body_of(request)["request_data"]["script_uid"]
            if uid == "broken":
                return httpx.Response(500, text="error")
            return httpx.Response(200, json={"reply": "print(1)"})

        with caplog.at_level(logging.WARNING, logger="gcgit.pull_engine.engine"):
            async with make_client(RecordingHandler(respond)) as client:
                objects = await PullEngine(client).pull(definition)

        assert [o.id for o in objects] == ["ok"]
        assert "broken" in caplog.text

    @pytest.mark.asyncio
    async def test_list_failure_fails_content_type(self, definition):
        handler = RecordingHandler(lambda r: httpx.Response(401, text="unauthorized"))
        async with make_client(handler) as client:
            with pytest.raises(PullError):
                await PullEngine(client).pull(definition)


class TestZipArtifact:
    """List-then-download archived artifacts."""

    @pytest.fixture
    def definition(self):
        return ContentTypeDefinition(
            name="reports",
            get_endpoint="reports/get_metadata",
            id_field="report_id",
            strategy=ZipArtifact(
                metadata_endpoint="reports/get_metadata",
                download_endpoint="reports/download",
                metadata_response_path="reply",
                download_filter_field="name",
            ),
        )

    @pytest.mark.asyncio
    async def test_artifacts_merged_with_metadata(self, definition):
        def respond(request):
            if request.url.path.endswith("get_metadata"):
                return httpx.Response(200, json={"reply": [
                    {"name": "Weekly", "report_id": 11, "modification_date": 1700000000000, "owner": "soc"},
                ]})
            return httpx.Response(200, content=zip_bytes("weekly.yaml", "name: ignored\nowner: yaml\nschedule: weekly\n"))

        handler = RecordingHandler(respond)
        async with make_client(handler) as client:
            objects = await PullEngine(client).pull(definition)

        download = handler.requests[1]
        assert body_of(download) == {"request_data": {"filters": [{"field": "name", "value": "Weekly"}]}}
        obj = objects[0]
        assert obj.id == "11"
        assert obj.name == "Weekly"
        assert obj.content["owner"] == "soc"
        assert obj.content["schedule"] == "weekly"
        assert obj.content["report_id"] == "11"
        assert obj.metadata.updated_at is not None

    @pytest.mark.asyncio
    async def test_dates_in_payload_survive_file_round_trip(self, definition):
        def respond(request):
            if request.url.path.endswith("get_metadata"):
                return httpx.Response(200, json={"reply": [{"name": "Weekly", "report_id": 11}]})
            return httpx.Response(
                200, content=zip_bytes("weekly.yaml", "released: 2024-01-01\nfrom_date: 2024-01-01 10:00:00\n")
            )

        async with make_client(RecordingHandler(respond)) as client:
            objects = await PullEngine(client).pull(definition)

        remote = objects[0]
        assert remote.content["released"] == "2024-01-01"
        assert remote.content["from_date"] == "2024-01-01 10:00:00"
        local = parse_object(serialize_object(remote))
        assert logically_equal(local, remote)

    @pytest.mark.asyncio
    async def test_unsafe_archive_drops_only_that_item(self, definition, caplog):
        def respond(request):
            if request.url.path.endswith("get_metadata"):
                return httpx.Response(200, json={"reply": [{"name": "Good"}, {"name": "Evil"}]})
            name = body_of(request)["request_data"]["filters"][0]["value"]
            if name == "Evil":
                return httpx.Response(200, content=zip_bytes("../../etc/passwd", "x"))
            return httpx.Response(200, content=zip_bytes("good.yml", "a: 1\n"))

        with caplog.at_level(logging.WARNING, logger="gcgit.pull_engine.engine"):
            async with make_client(RecordingHandler(respond)) as client:
                objects = await PullEngine(client).pull(definition)

        assert [o.id for o in objects] == ["Good"]
        assert "Evil" in caplog.text

    @pytest.mark.asyncio
    async def test_non_mapping_payload_dropped(self, definition):
        def respond(request):
            if request.url.path.endswith("get_metadata"):
                return httpx.Response(200, json={"reply": [{"name": "List"}]})
            return httpx.Response(200, content=zip_bytes("list.yaml", "- a\n- b\n"))

        async with make_client(RecordingHandler(respond)) as client:
            assert await PullEngine(client).pull(definition) == []


class TestExtractItems:
    """Tests for extract_items."""

    def test_null_at_path_is_empty(self):
        assert extract_items({"reply": None}, "reply", "ctx") == []

    def test_non_array_at_path(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert extract_items({"reply": {"a": 1}}, "reply", "ctx") == []
        assert "expected an array" in caplog.text


class TestConnectivity:
    """Tests for ModuleClient.test_connectivity."""

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        async with make_client(lambda r: httpx.Response(401)) as client:
            ok, message = await client.test_connectivity()
        assert not ok
        assert "Authentication failed" in message

    @pytest.mark.asyncio
    async def test_reachable(self):
        async with make_client(lambda r: httpx.Response(404)) as client:
            ok, _ = await client.test_connectivity()
        assert ok
