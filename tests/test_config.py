"""Tests for settings loading and credential handling."""

import logging

import pytest
import yaml
from keyring.errors import KeyringError

from reactorai.config import settings as settings_module
from reactorai.config.settings import Settings, create_default_config, get_settings
from reactorai.security import credentials
from reactorai.security.credentials import CredentialManager, SensitiveDataFilter


class TestSettings:
    """Environment, config file and defaults."""

    def test_defaults(self):
        """Fresh settings carry the documented defaults."""
        settings = Settings()
        assert settings.conversation.idle_timeout_seconds == 1800
        assert settings.ledger.min_liquidity_usd == 10000.0
        assert settings.deployment.coefficient == 1000

    def test_demo_mode_from_env(self):
        """REACTORAI_DEMO_MODE enables demo mode."""
        assert get_settings().demo_mode is True

    def test_nested_env_override(self, monkeypatch):
        """Nested values use a double underscore."""
        monkeypatch.setenv("REACTORAI_LEDGER__MIN_LIQUIDITY_USD", "500")
        assert Settings().ledger.min_liquidity_usd == 500.0

    def test_config_file_values(self, isolated_config):
        """Values from the YAML file are applied."""
        isolated_config.write_text(yaml.safe_dump({"llm": {"model": "local-model"}}))
        assert Settings().llm.model == "local-model"

    def test_env_beats_config_file(self, isolated_config, monkeypatch):
        """Environment variables take precedence over the file."""
        isolated_config.write_text(yaml.safe_dump({"demo_mode": False, "llm": {"model": "file-model"}}))
        monkeypatch.setenv("REACTORAI_LLM__MODEL", "env-model")

        settings = Settings()

        assert settings.demo_mode is True
        assert settings.llm.model == "env-model"

    def test_create_default_config(self, isolated_config):
        """The default file is written once and leaves demo mode to the environment."""
        create_default_config()
        written = yaml.safe_load(isolated_config.read_text())

        assert "demo_mode" not in written
        assert written["conversation"]["history_limit"] == 20

        isolated_config.write_text(yaml.safe_dump({"llm": {"model": "kept"}}))
        create_default_config()
        assert yaml.safe_load(isolated_config.read_text()) == {"llm": {"model": "kept"}}

    def test_settings_cached(self):
        """get_settings returns one instance until the cache is reset."""
        first = get_settings()
        assert get_settings() is first
        settings_module.reset_settings_cache()
        assert get_settings() is not first

    def test_funding_per_chain(self):
        """Destination funding follows the chain, with a default for others."""
        deployment = Settings().deployment
        assert deployment.funding_for(43114) == "0.01"
        assert deployment.funding_for(11155111) == "0.03"
        assert deployment.funding_for(999) == deployment.default_destination_funding


class TestCredentials:
    """Keyring storage and its fallbacks."""

    @pytest.fixture(autouse=True)
    def fallback_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(credentials, "_FALLBACK_DIR", tmp_path)
        monkeypatch.setattr(credentials, "_FALLBACK_FILE", tmp_path / ".credentials")
        monkeypatch.setattr(CredentialManager, "_keyring_broken", False)
        monkeypatch.delenv("REACTORAI_LLM_API_KEY", raising=False)
        return tmp_path / ".credentials"

    def test_keyring_roundtrip(self, monkeypatch):
        """Keys go to and come from the system keyring."""
        vault = {}
        monkeypatch.setattr(credentials.keyring, "set_password", lambda s, k, v: vault.__setitem__((s, k), v))
        monkeypatch.setattr(credentials.keyring, "get_password", lambda s, k: vault.get((s, k)))

        assert CredentialManager.set_ledger_key("ledger-123") is True
        assert CredentialManager.get_ledger_key() == "ledger-123"
        assert ("reactorai", "ledger_api_key") in vault

    def test_broken_keyring_uses_file(self, monkeypatch, fallback_file):
        """A failing keyring falls back to a private file."""

        def broken(*args):
            raise KeyringError("no backend")

        monkeypatch.setattr(credentials.keyring, "set_password", broken)
        monkeypatch.setattr(credentials.keyring, "get_password", broken)

        assert CredentialManager.set_llm_key("sk-file") is True
        assert CredentialManager.get_llm_key() == "sk-file"
        assert "llm_api_key=sk-file" in fallback_file.read_text()

    def test_env_fallback(self, monkeypatch):
        """Missing keyring entries are read from the environment."""
        monkeypatch.setattr(credentials.keyring, "get_password", lambda s, k: None)
        monkeypatch.setenv("REACTORAI_LLM_API_KEY", "sk-env")

        assert CredentialManager.get_llm_key() == "sk-env"


class TestSensitiveDataFilter:
    """Log redaction."""

    def _record(self, msg, args=None):
        return logging.LogRecord("reactorai", logging.INFO, __file__, 1, msg, args, None)

    def test_redacts_secrets(self):
        """Records mentioning secrets are replaced."""
        record = self._record("Using api_key %s", ("sk-123",))
        assert SensitiveDataFilter().filter(record) is True
        assert record.msg == "[REDACTED - sensitive data]"
        assert record.args is None

    def test_passes_other_records(self):
        """Ordinary records are left alone."""
        record = self._record("Pair cache hit for ETH/USDC")
        SensitiveDataFilter().filter(record)
        assert record.msg == "Pair cache hit for ETH/USDC"
