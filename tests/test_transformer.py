"""
Tests for hookrelay/services/transformer.py - field mapping engine.
"""
import pytest

from hookrelay.exceptions import TransformationError
from hookrelay.schemas.client_config import ClientConfig, TransformationRule
from hookrelay.services.transformer import (
    PROPERTY_SYSTEM_A,
    get_nested,
    property_system_rules,
    resolve_rules,
    set_nested,
    transform,
    transform_event,
    _MISSING,
)

PROPERTY_PAYLOAD = {
    "unit_id": "bldg-123-unit-45",
    "tenant_name": "John Smith",
    "lease_start": "2024-01-01",
    "monthly_rent": 2500,
}


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


class TestPaths:
    def test_get_nested_dict(self):
        assert get_nested({"a": {"b": {"c": 1}}}, "a.b.c") == 1

    def test_get_nested_missing(self):
        assert get_nested({"a": {}}, "a.b") is _MISSING

    def test_get_nested_through_scalar(self):
        assert get_nested({"a": 5}, "a.b") is _MISSING

    def test_get_nested_list_index(self):
        assert get_nested({"items": [{"id": 1}, {"id": 2}]}, "items.1.id") == 2
        assert get_nested({"items": []}, "items.0") is _MISSING

    def test_get_nested_explicit_null_is_present(self):
        assert get_nested({"a": None}, "a") is None

    def test_set_nested_creates_intermediates(self):
        target = {}
        set_nested(target, "x.y.z", 3)
        assert target == {"x": {"y": {"z": 3}}}

    def test_set_nested_replaces_scalar_intermediate(self):
        target = {"x": 1}
        set_nested(target, "x.y", 2)
        assert target == {"x": {"y": 2}}


# ---------------------------------------------------------------------------
# transform
# ---------------------------------------------------------------------------


class TestTransform:
    def test_property_system_example(self):
        result = transform(PROPERTY_PAYLOAD, property_system_rules())
        assert result == {
            "unitNumber": "45",
            "buildingId": "123",
            "resident": {
                "fullName": "John Smith",
                "leaseStartDate": "2024-01-01T00:00:00.000Z",
                "rentAmount": 2500.0,
            },
        }

    def test_missing_source_leaves_target_absent(self):
        result = transform({"unit_id": "bldg-1-unit-2"}, property_system_rules())
        assert result == {"unitNumber": "2", "buildingId": "1"}
        assert "resident" not in result

    def test_nested_target_created(self):
        rules = [TransformationRule(source="value", target="nested.value")]
        assert transform({"value": 100}, rules) == {"nested": {"value": 100}}

    def test_unmapped_fields_dropped(self):
        rules = [TransformationRule(source="a", target="b")]
        assert transform({"a": 1, "extra": 2}, rules) == {"b": 1}

    def test_later_rule_wins_on_same_target(self):
        rules = [
            TransformationRule(source="a", target="out"),
            TransformationRule(source="b", target="out"),
        ]
        assert transform({"a": 1, "b": 2}, rules) == {"out": 2}

    def test_input_not_mutated(self):
        payload = {"a": {"b": [1, 2]}}
        result = transform(payload, [TransformationRule(source="a", target="c")])
        result["c"]["b"].append(3)
        assert payload == {"a": {"b": [1, 2]}}

    def test_transform_error_wrapped(self):
        rules = [TransformationRule(source="lease_start", target="d", transform="iso_datetime")]
        with pytest.raises(TransformationError) as exc_info:
            transform({"lease_start": "garbage"}, rules)
        assert exc_info.value.source == "lease_start"
        assert exc_info.value.target == "d"


# ---------------------------------------------------------------------------
# Rule resolution
# ---------------------------------------------------------------------------


class TestResolveRules:
    def test_configured_rules_win(self):
        client = ClientConfig(
            id="c", transformations=[{"source": "x", "target": "y"}],
        )
        rules = resolve_rules(client, PROPERTY_SYSTEM_A)
        assert [(r.source, r.target) for r in rules] == [("x", "y")]

    def test_default_rules_for_property_system(self):
        rules = resolve_rules(ClientConfig(id="c"), PROPERTY_SYSTEM_A)
        assert len(rules) == 5

    def test_unknown_client_uses_defaults(self):
        assert len(resolve_rules(None, PROPERTY_SYSTEM_A)) == 5

    def test_other_source_passes_through(self):
        assert resolve_rules(None, "crm") is None

    def test_transform_event_passthrough_copies(self):
        payload = {"a": {"b": 1}}
        result = transform_event(payload, None, "crm")
        assert result == payload
        assert result is not payload
        assert result["a"] is not payload["a"]

    def test_transform_event_default_rules(self):
        result = transform_event(PROPERTY_PAYLOAD, None, PROPERTY_SYSTEM_A)
        assert result["resident"]["rentAmount"] == 2500.0
