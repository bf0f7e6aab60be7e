"""Tests for the module registry and content type descriptors."""
import pytest

from gcgit.modules import (
    ContentTypeDefinition,
    DescriptorError,
    JsonCollection,
    Module,
    ModuleRegistry,
    OffsetPaginated,
    Paginated,
    ScriptCode,
    UnknownContentTypeError,
    UnknownModuleError,
    ZipArtifact,
)


@pytest.fixture
def registry():
    return ModuleRegistry.load()


class TestBuiltinModules:
    """Tests for the shipped module tables."""

    def test_module_ids(self, registry):
        assert registry.module_ids() == ["xsiam", "appsec"]

    def test_xsiam_content_types(self, registry):
        module = registry.get("xsiam")
        assert module.base_api_path == "/public_api/v1"
        assert module.content_type_names == [
            "dashboards",
            "biocs",
            "correlation_searches",
            "widgets",
            "authentication_settings",
            "scripts",
            "scheduled_queries",
            "xql_library",
            "rbac_users",
        ]

    def test_dashboards_descriptor(self, registry):
        dashboards = registry.find_content_type("xsiam", "dashboards")
        assert dashboards.get_endpoint == "dashboards/get"
        assert dashboards.id_field == "global_id"
        assert dashboards.response_path == "objects[0].dashboards_data"
        assert dashboards.request_body == {"request_data": {}}
        assert isinstance(dashboards.strategy, JsonCollection)
        assert dashboards.insert_endpoint == "dashboards/insert"

    def test_scripts_use_two_phase_strategy(self, registry):
        scripts = registry.find_content_type("xsiam", "scripts")
        assert isinstance(scripts.strategy, ScriptCode)
        assert scripts.strategy.code_endpoint == "scripts/get_script_code"
        assert scripts.strategy.list_response_path == "reply.scripts"
        assert scripts.response_path is None

    def test_appsec_pagination(self, registry):
        applications = registry.find_content_type("appsec", "applications")
        rules = registry.find_content_type("appsec", "rules")
        assert applications.strategy == Paginated(page_param="page", page_size_param="pageSize", page_size=100)
        assert isinstance(rules.strategy, OffsetPaginated)
        assert rules.response_path == "rules"

    def test_every_descriptor_has_endpoint_and_id_field(self, registry):
        for module in registry.all_modules():
            for definition in module.content_types:
                assert definition.get_endpoint
                assert definition.id_field


class TestLookup:
    """Tests for registry lookups."""

    def test_unknown_module(self, registry):
        with pytest.raises(UnknownModuleError):
            registry.get("nope")

    def test_find_missing_content_type_returns_none(self, registry):
        assert registry.find_content_type("xsiam", "nonexistent") is None

    @pytest.mark.parametrize("alias,expected", [
        ("dashboards", "dashboards"),
        ("dashboard", "dashboards"),
        ("bioc", "biocs"),
        ("correlation_search", "correlation_searches"),
        ("widget", "widgets"),
        ("authentication_setting", "authentication_settings"),
        ("scheduled_query", "scheduled_queries"),
    ])
    def test_validate_accepts_singular_spelling(self, registry, alias, expected):
        assert registry.validate_content_type("xsiam", alias).name == expected

    def test_validate_rejects_unknown_name(self, registry):
        with pytest.raises(UnknownContentTypeError, match="Valid types"):
            registry.validate_content_type("appsec", "dashboards")


class TestDescriptorValidation:
    """Descriptors refuse incompatible field combinations."""

    def test_two_phase_strategy_rejects_response_path(self):
        with pytest.raises(DescriptorError):
            ContentTypeDefinition(
                name="artifacts",
                get_endpoint="artifacts/list",
                response_path="reply",
                strategy=ZipArtifact(metadata_endpoint="a/list", download_endpoint="a/get"),
            )

    def test_paginated_rejects_request_body(self):
        with pytest.raises(DescriptorError):
            ContentTypeDefinition(
                name="apps",
                get_endpoint="apps",
                request_body={"request_data": {}},
                strategy=Paginated(),
            )

    def test_page_size_must_be_positive(self):
        with pytest.raises(DescriptorError):
            ContentTypeDefinition(name="apps", get_endpoint="apps", strategy=OffsetPaginated(page_size=0))

    def test_empty_name_rejected(self):
        with pytest.raises(DescriptorError):
            ContentTypeDefinition(name="", get_endpoint="x")

    def test_duplicate_module_ids_rejected(self):
        module = Module(id="m", name="M", base_api_path="/api", content_types=())
        with pytest.raises(DescriptorError):
            ModuleRegistry([module, module])

    def test_descriptors_are_immutable(self, registry):
        dashboards = registry.find_content_type("xsiam", "dashboards")
        with pytest.raises(AttributeError):
            dashboards.name = "other"
