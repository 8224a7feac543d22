"""Unit tests for configuration loading.

Tests defaults, environment overrides, and error handling.
"""

import os
from decimal import Decimal

import pytest

from src.services.config import load_config

CONFIG_VARS = (
    "DATABASE_URL",
    "LOG_FILE",
    "LOG_LEVEL",
    "ALLOCATION_TOLERANCE",
    "DEFAULT_CURRENCY",
    "ALLOWED_ORIGINS",
    "LEDGER_ADMIN_EMAILS",
    "HOST",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No config variables and no .env file in the working directory."""
    for name in CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults(self, clean_env):
        config = load_config()

        assert config.database_url == "sqlite+aiosqlite:///./ledger.db"
        assert config.log_file == "logs/server.log"
        assert config.log_level == "INFO"
        assert config.allocation_tolerance == Decimal("0.05")
        assert config.default_currency == "USD"
        assert config.allowed_origins == ["http://localhost:5173"]
        assert config.ledger_admin_emails == []
        assert config.port == 8000

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("ALLOCATION_TOLERANCE", "0.01")
        clean_env.setenv("DEFAULT_CURRENCY", "eur")
        clean_env.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example")
        clean_env.setenv("LEDGER_ADMIN_EMAILS", " Treasurer@Example.org ,ops@example.org,")
        clean_env.setenv("PORT", "9000")

        config = load_config()

        assert config.allocation_tolerance == Decimal("0.01")
        assert config.default_currency == "EUR"
        assert config.allowed_origins == ["https://a.example", "https://b.example"]
        assert config.ledger_admin_emails == ["treasurer@example.org", "ops@example.org"]
        assert config.port == 9000

    def test_dotenv_file_loaded(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("DEFAULT_CURRENCY=GBP\n")

        try:
            assert load_config().default_currency == "GBP"
        finally:
            # load_dotenv writes straight into os.environ
            os.environ.pop("DEFAULT_CURRENCY", None)

    def test_invalid_tolerance(self, clean_env):
        clean_env.setenv("ALLOCATION_TOLERANCE", "a lot")

        with pytest.raises(ValueError, match="ALLOCATION_TOLERANCE must be a decimal"):
            load_config()

    def test_negative_tolerance(self, clean_env):
        clean_env.setenv("ALLOCATION_TOLERANCE", "-0.01")

        with pytest.raises(ValueError, match="zero or positive"):
            load_config()

    def test_invalid_currency(self, clean_env):
        clean_env.setenv("DEFAULT_CURRENCY", "EURO")

        with pytest.raises(ValueError, match="three-letter code"):
            load_config()

    def test_invalid_port(self, clean_env):
        clean_env.setenv("PORT", "http")

        with pytest.raises(ValueError, match="PORT must be an integer"):
            load_config()

    def test_log_level_override(self, clean_env):
        clean_env.setenv("LOG_LEVEL", " debug ")

        assert load_config().log_level == "DEBUG"

    def test_invalid_log_level(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "chatty")

        with pytest.raises(ValueError, match="LOG_LEVEL must be one of"):
            load_config()
