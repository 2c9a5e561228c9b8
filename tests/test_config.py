"""
Tests for environment-based configuration
"""

import pytest

from console_banking import config as config_module
from console_banking.config import BankConfig, get_config, reload_config


class TestBankConfig:
    def test_defaults(self, monkeypatch):
        for name in ("BANK_DATABASE_URL", "BANK_LOG_LEVEL", "BANK_STATEMENT_LIMIT"):
            monkeypatch.delenv(name, raising=False)
        config = BankConfig(_env_file=None)

        assert config.database_url == "sqlite:///console_bank.db"
        assert config.log_format == "text"
        assert config.password_min_length == 6
        assert config.currency_symbol == "R$"
        assert config.encryption_enabled is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BANK_DATABASE_URL", "memory://")
        monkeypatch.setenv("bank_statement_limit", "10")
        monkeypatch.setenv("BANK_ENCRYPTION_ENABLED", "true")

        config = BankConfig(_env_file=None)

        assert config.database_url == "memory://"
        assert config.statement_limit == 10
        assert config.encryption_enabled is True

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("BANK_STATEMENT_LIMIT", "many")
        with pytest.raises(ValueError):
            BankConfig(_env_file=None)

    def test_reload_config(self, monkeypatch):
        original = config_module.config
        try:
            monkeypatch.setenv("BANK_CURRENCY_SYMBOL", "$")
            reloaded = reload_config()
            assert reloaded.currency_symbol == "$"
            assert get_config() is reloaded
        finally:
            config_module.config = original
