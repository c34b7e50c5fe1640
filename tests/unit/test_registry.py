"""Tests for policy scopes and the check definition registry."""

import json
from datetime import time

import pytest

from compliance_engine.checks.states import CheckType
from compliance_engine.common.exceptions import UnknownPolicyScopeError, ValidationError
from compliance_engine.policy.registry import (
    CheckDefinition,
    CheckDefinitionRegistry,
    PolicyScope,
    load_policy_file,
    parse_policy,
)


@pytest.fixture
def registry():
    return CheckDefinitionRegistry()


class TestBuiltinScopes:
    def test_scopes_listed(self, registry):
        assert registry.scopes() == ["default", "medical", "strict"]

    def test_default_has_six_checks_in_order(self, registry):
        checks = registry.required_checks("default")
        assert [d.check_type for d in checks] == list(CheckType)

    def test_default_customer_status_is_advisory(self, registry):
        blocks = {d.check_type: d.blocks_delivery for d in registry.required_checks("default")}
        assert blocks[CheckType.CUSTOMER_STATUS] is False
        assert all(v for t, v in blocks.items() if t is not CheckType.CUSTOMER_STATUS)

    def test_strict_everything_blocks(self, registry):
        assert all(d.blocks_delivery for d in registry.required_checks("strict"))
        assert registry.get_policy("strict").delivery_start_time == time(10, 0)

    def test_medical_thresholds(self, registry):
        policy = registry.get_policy("medical")
        assert policy.minimum_age == 18
        assert policy.max_thc_mg_per_order == 1000.0

    def test_unknown_scope(self, registry):
        with pytest.raises(UnknownPolicyScopeError) as exc_info:
            registry.required_checks("lunar")
        assert exc_info.value.scope == "lunar"
        assert exc_info.value.code == "UNKNOWN_POLICY_SCOPE"
        assert exc_info.value.status_code == 404

    def test_required_checks_returns_copy(self, registry):
        registry.required_checks("default").clear()
        assert len(registry.required_checks("default")) == 6


class TestRegister:
    def test_register_custom_scope(self, registry):
        registry.register(PolicyScope(
            name="pickup",
            checks=(CheckDefinition(CheckType.ID_ON_FILE),),
        ))
        assert "pickup" in registry.scopes()

    def test_duplicate_check_type_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.register(PolicyScope(
                name="twice",
                checks=(
                    CheckDefinition(CheckType.ID_ON_FILE),
                    CheckDefinition(CheckType.ID_ON_FILE, blocks_delivery=False),
                ),
            ))

    def test_empty_registry(self):
        registry = CheckDefinitionRegistry(scopes={})
        assert registry.scopes() == []


class TestPolicyFile:
    def test_parse_policy(self):
        scope = parse_policy("night", {
            "description": "Late deliveries",
            "checks": [
                "age_verification",
                {"check_type": "customer_status", "blocks_delivery": False},
            ],
            "settings": {
                "minimum_age": 19,
                "delivery_start_time": "18:00",
                "delivery_end_time": "02:00",
                "allowed_days": ["friday", "saturday"],
            },
        })
        assert scope.description == "Late deliveries"
        assert [d.blocks_delivery for d in scope.checks] == [True, False]
        assert scope.settings.minimum_age == 19
        assert scope.settings.delivery_end_time == time(2, 0)
        assert scope.settings.allowed_days == ("Friday", "Saturday")
        # untouched settings keep their defaults
        assert scope.settings.max_weight_g_per_order == 28.0

    def test_no_checks_rejected(self):
        with pytest.raises(ValidationError, match="defines no checks"):
            parse_policy("empty", {"checks": []})

    def test_unknown_check_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_policy("bad", {"checks": ["retina_scan"]})

    def test_bad_time_rejected(self):
        with pytest.raises(ValidationError, match="HH:MM"):
            parse_policy("bad", {
                "checks": ["age_verification"],
                "settings": {"delivery_start_time": "noon"},
            })

    def test_unknown_weekday_rejected(self):
        with pytest.raises(ValidationError, match="weekday"):
            parse_policy("bad", {
                "checks": ["age_verification"],
                "settings": {"allowed_days": ["Funday"]},
            })

    def test_unknown_setting_rejected(self):
        with pytest.raises(ValidationError):
            parse_policy("bad", {
                "checks": ["age_verification"],
                "settings": {"max_speed": 3},
            })

    @pytest.mark.parametrize("entry", [5, None, ["age_verification"], {"blocks_delivery": True}])
    def test_malformed_check_entry_rejected(self, entry):
        with pytest.raises(ValidationError):
            parse_policy("bad", {"checks": [entry]})

    def test_non_boolean_blocks_delivery_rejected(self):
        with pytest.raises(ValidationError, match="true or false"):
            parse_policy("bad", {
                "checks": [{"check_type": "age_verification", "blocks_delivery": "false"}],
            })

    @pytest.mark.parametrize("settings", [
        {"minimum_age": "twenty-one"},
        {"max_thc_mg_per_order": "lots"},
        {"allowed_days": "Monday"},
    ])
    def test_mistyped_setting_rejected_at_load(self, settings):
        with pytest.raises(ValidationError):
            parse_policy("bad", {"checks": ["age_verification"], "settings": settings})

    def test_numeric_strings_coerced(self):
        scope = parse_policy("ok", {
            "checks": ["age_verification"],
            "settings": {"minimum_age": "19", "max_weight_g_per_order": 14},
        })
        assert scope.settings.minimum_age == 19
        assert scope.settings.max_weight_g_per_order == 14.0

    def test_offset_on_window_dropped(self):
        scope = parse_policy("ok", {
            "checks": ["time_restriction"],
            "settings": {"delivery_start_time": "08:00+02:00"},
        })
        assert scope.settings.delivery_start_time == time(8, 0)
        assert scope.settings.delivery_start_time.tzinfo is None

    def test_non_object_scope_rejected(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({"pickup": ["id_on_file"]}))
        with pytest.raises(ValidationError, match="JSON object"):
            load_policy_file(path)

    def test_from_file_keeps_builtins(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({
            "pickup": {"checks": ["id_on_file", "age_verification"]},
        }))
        registry = CheckDefinitionRegistry.from_file(path)
        assert registry.scopes() == ["default", "medical", "pickup", "strict"]
        assert [d.check_type for d in registry.required_checks("pickup")] == [
            CheckType.ID_ON_FILE, CheckType.AGE_VERIFICATION,
        ]

    def test_file_can_replace_builtin(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({"default": {"checks": ["licensed_zone"]}}))
        registry = CheckDefinitionRegistry.from_file(path)
        assert len(registry.required_checks("default")) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="Cannot read"):
            load_policy_file(tmp_path / "nope.json")

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValidationError, match="JSON object"):
            load_policy_file(path)
