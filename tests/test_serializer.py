"""Tests for deterministic serialization and logical equality."""
from datetime import datetime, timezone

import pytest
import yaml

from gcgit.object_store.serializer import (
    ObjectParseError,
    load_object_file,
    logically_equal,
    parse_object,
    serialize_content,
    serialize_object,
)
from gcgit.pull_engine.normalizer import normalize_object
from gcgit.pull_engine.objects import CanonicalObject, ObjectMetadata


def make_object(**overrides) -> CanonicalObject:
    values = dict(
        id="42",
        content_type="biocs",
        name="Suspicious login",
        description="Detects odd logins",
        metadata=ObjectMetadata(
            created_by="gcgit",
            version="1.0",
            updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
        content={"severity": "high", "rule_id": 42, "filter": {"b": 2, "a": 1}},
    )
    values.update(overrides)
    return CanonicalObject(**values)


class TestSerializeObject:
    """Tests for serialize_object."""

    def test_repeated_calls_identical(self):
        obj = make_object()
        assert serialize_object(obj) == serialize_object(obj)

    def test_field_order(self):
        text = serialize_object(make_object())
        top_level = [line.split(":")[0] for line in text.splitlines() if line and not line.startswith(" ")]
        assert top_level == [
            "id", "name", "description", "content_type", "metadata",
            "filter", "rule_id", "severity",
        ]

    def test_independent_of_content_insertion_order(self):
        first = make_object(content={"z": 1, "a": {"y": 2, "x": 1}, "m": [{"k2": 1, "k1": 2}]})
        second = make_object(content={"m": [{"k1": 2, "k2": 1}], "a": {"x": 1, "y": 2}, "z": 1})
        assert serialize_object(first) == serialize_object(second)

    def test_name_omitted_when_absent(self):
        text = serialize_object(make_object(name=None))
        assert "\nname:" not in text
        assert not text.startswith("name:")

    def test_metadata_block(self):
        data = yaml.safe_load(serialize_object(make_object()))
        assert list(data["metadata"]) == ["created_by", "version", "created_at", "updated_at"]
        assert data["metadata"]["version"] == "1.0"
        assert data["metadata"]["created_at"] is None

    def test_tenant_id_only_when_set(self):
        assert "tenant_id" not in serialize_object(make_object())
        obj = make_object(content_type="authentication_settings", tenant_id="t-1", content={})
        assert "tenant_id: t-1" in serialize_object(obj)

    def test_multiline_strings_use_literal_blocks(self):
        obj = make_object(content={"code": "def main():\n    return 1\n"})
        assert "code: |" in serialize_object(obj)

    def test_colliding_content_keys_preserved(self):
        obj = make_object(content={"content_type": "raw-type", "tenant_id": "t"})
        parsed = parse_object(serialize_object(obj))
        assert parsed.content_type == "biocs"
        assert parsed.content == {"content_type": "raw-type", "tenant_id": "t"}


class TestParseObject:
    """Tests for parse_object and load_object_file."""

    def test_round_trip(self):
        obj = make_object()
        assert parse_object(serialize_object(obj)) == obj

    def test_round_trip_keeps_date_like_strings(self):
        obj = make_object(content={"last_seen": "2024-01-01", "version_label": "1.10"})
        assert parse_object(serialize_object(obj)).content == {"last_seen": "2024-01-01", "version_label": "1.10"}

    def test_round_trip_tenant(self):
        obj = make_object(content_type="authentication_settings", tenant_id="99", content={"type": "SAML"})
        assert parse_object(serialize_object(obj)) == obj

    def test_missing_id(self):
        with pytest.raises(ObjectParseError, match="ID"):
            parse_object("name: x\ncontent_type: biocs\n")

    def test_missing_content_type(self):
        with pytest.raises(ObjectParseError, match="Content type"):
            parse_object("id: '1'\n")

    def test_content_type_from_argument(self):
        assert parse_object("id: '1'\n", content_type="policies").content_type == "policies"

    def test_invalid_yaml(self):
        with pytest.raises(ObjectParseError):
            parse_object("id: [unclosed\n")

    def test_non_mapping(self):
        with pytest.raises(ObjectParseError):
            parse_object("- just\n- a list\n")

    def test_load_infers_content_type_from_directory(self, tmp_path):
        directory = tmp_path / "xsiam" / "widgets"
        directory.mkdir(parents=True)
        path = directory / "w.yaml"
        path.write_text("id: '7'\nname: W\ncolor: red\n")
        obj = load_object_file(path)
        assert obj.content_type == "widgets"
        assert obj.content == {"color": "red"}

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ObjectParseError):
            load_object_file(tmp_path / "missing.yaml")


class TestLogicalEquality:
    """Tests for logically_equal."""

    def test_reflexive(self):
        obj = make_object()
        assert logically_equal(obj, obj)

    def test_symmetric(self):
        a = make_object()
        b = make_object(content={"severity": "low"})
        assert logically_equal(a, b) == logically_equal(b, a) is False

    def test_metadata_blind(self):
        a = make_object()
        b = make_object(metadata=ObjectMetadata(
            created_by="someone",
            version="9",
            updated_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
        ))
        assert logically_equal(a, b)
        assert serialize_object(a) != serialize_object(b)

    def test_content_order_ignored(self):
        a = make_object(content={"a": 1, "b": {"c": 1, "d": 2}})
        b = make_object(content={"b": {"d": 2, "c": 1}, "a": 1})
        assert logically_equal(a, b)

    @pytest.mark.parametrize("field,value", [
        ("id", "43"),
        ("name", "Renamed"),
        ("description", "changed"),
        ("content_type", "correlation_searches"),
    ])
    def test_header_fields_compared(self, field, value):
        assert not logically_equal(make_object(), make_object(**{field: value}))

    def test_serialize_content_sorted(self):
        assert serialize_content({"b": 1, "a": 2}) == "a: 2\nb: 1\n"


class TestEndToEndNormalization:
    """Normalize, serialize, parse back."""

    def test_rule_record_round_trip(self):
        obj = normalize_object({"rule_id": 5, "name": "x"}, "biocs")
        assert obj.id == "5"
        assert obj.name == "x"
        assert obj.content == {"rule_id": 5}

        assert parse_object(serialize_object(obj)) == obj

    def test_timestamped_record_round_trip(self):
        raw = {
            "id": "p-1",
            "name": "Policy",
            "created_at": "2024-02-03T04:05:06.789Z",
            "lastModified": 1706933106000,
            "rules": [{"b": 1, "a": 2}],
        }
        obj = normalize_object(raw, "policies")
        assert parse_object(serialize_object(obj)) == obj
