"""Tests for settings, keyring parsing and production guards."""

import warnings

import pytest

from compliance_engine.common.config import ComplianceSettings


class TestKeyring:
    def test_scalar_key_is_version_zero(self):
        settings = ComplianceSettings(hmac_key="k0")
        assert settings.hmac_keyring == {0: "k0"}
        assert settings.current_hmac_key == "k0"

    def test_keyring_uses_highest_version(self):
        settings = ComplianceSettings(hmac_keys='{"0": "old", "2": "newest", "1": "mid"}')
        assert settings.current_hmac_key == "newest"

    def test_bad_keyring_json(self):
        settings = ComplianceSettings(hmac_keys="not-json")
        with pytest.raises(ValueError, match="COMPLIANCE_HMAC_KEYS"):
            settings.hmac_keyring


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("COMPLIANCE_DEFAULT_POLICY_SCOPE", "strict")
        monkeypatch.setenv("COMPLIANCE_MIN_OVERRIDE_REASON_LENGTH", "20")
        settings = ComplianceSettings()
        assert settings.default_policy_scope == "strict"
        assert settings.min_override_reason_length == 20


class TestProductionGuard:
    def test_insecure_defaults_refused_outside_development(self):
        settings = ComplianceSettings(
            environment="production",
            hmac_key="insecure-hmac-key-change-me",
            api_key="real-key",
        )
        with pytest.raises(RuntimeError, match="COMPLIANCE_HMAC_KEY"):
            settings.validate_for_production()

    def test_insecure_defaults_warn_in_development(self):
        settings = ComplianceSettings(
            environment="development",
            hmac_key="insecure-hmac-key-change-me",
            api_key="insecure-admin-key-change-me",
        )
        with pytest.warns(UserWarning):
            settings.validate_for_production()

    def test_secure_settings_pass_quietly(self):
        settings = ComplianceSettings(environment="production", hmac_key="a", api_key="b")
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            settings.validate_for_production()
