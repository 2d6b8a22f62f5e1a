"""Tests for catalog_sync.config: env-var config loading and validation.

NOT to be confused with test_config_loader.py (YAML config file)
or test_config_schema.py (Pydantic models). This tests the transport
bootstrap path: validate_config() and load_config().
"""

import logging

import pytest

from catalog_sync.config import (
    DEFAULT_API_URL,
    DEFAULT_AUTH_URL,
    DEFAULT_TIMEOUT,
    Config,
    load_config,
    validate_config,
)

ENV_VARS = (
    "CATALOG_API_URL",
    "CATALOG_AUTH_URL",
    "CATALOG_LOGIN",
    "CATALOG_SECURITY_KEY",
    "CATALOG_INSECURE",
    "CATALOG_DEBUG",
    "CATALOG_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _config(**kwargs):
    values = {"login": "bot@example.com", "security_key": "key"}
    values.update(kwargs)
    return Config(**values)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config(): URL format and credential checks."""

    def test_defaults_are_valid(self):
        validate_config(_config())

    def test_http_url_valid(self):
        validate_config(_config(api_url="http://localhost:8080/v4"))

    def test_invalid_url_no_scheme(self):
        with pytest.raises(
            ValueError, match="must start with http:// or https://"
        ):
            validate_config(_config(api_url="api.example.com"))

    def test_invalid_auth_url(self):
        with pytest.raises(ValueError, match="catalog auth URL"):
            validate_config(_config(auth_url="ftp://accounts.example.com"))

    def test_empty_host(self):
        with pytest.raises(ValueError, match="must include a hostname"):
            validate_config(_config(api_url="https://"))

    def test_trailing_slash_and_whitespace_stripped(self):
        config = _config(api_url="  https://api.example.com/v4/  ")
        validate_config(config)
        assert config.api_url == "https://api.example.com/v4"

    def test_empty_login(self):
        with pytest.raises(ValueError, match="login cannot be empty"):
            validate_config(_config(login="  "))

    def test_empty_security_key(self):
        with pytest.raises(ValueError, match="security key cannot be empty"):
            validate_config(_config(security_key=""))

    def test_non_positive_timeout(self):
        with pytest.raises(ValueError, match="Invalid timeout"):
            validate_config(_config(timeout=0))

    def test_insecure_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="catalog_sync.config"):
            validate_config(_config(insecure=True))
        assert "SSL verification disabled" in caplog.text

    def test_secure_no_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="catalog_sync.config"):
            validate_config(_config())
        assert "SSL verification disabled" not in caplog.text


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config(): env vars, CLI overrides, YAML fallbacks."""

    def test_load_from_env_vars(self, monkeypatch):
        monkeypatch.setenv("CATALOG_LOGIN", "bot@example.com")
        monkeypatch.setenv("CATALOG_SECURITY_KEY", "secret")

        config = load_config()

        assert config.login == "bot@example.com"
        assert config.security_key == "secret"
        assert config.api_url == DEFAULT_API_URL
        assert config.auth_url == DEFAULT_AUTH_URL
        assert config.timeout == DEFAULT_TIMEOUT
        assert not config.insecure

    def test_cli_args_override_env(self, monkeypatch):
        monkeypatch.setenv("CATALOG_API_URL", "https://env.example.com/v4")
        monkeypatch.setenv("CATALOG_LOGIN", "env@example.com")
        monkeypatch.setenv("CATALOG_SECURITY_KEY", "env-key")

        config = load_config(
            api_url="https://cli.example.com/v4",
            login="cli@example.com",
            security_key="cli-key",
        )

        assert config.api_url == "https://cli.example.com/v4"
        assert config.login == "cli@example.com"
        assert config.security_key == "cli-key"

    def test_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("CATALOG_LOGIN", "env@example.com")

        config = load_config(
            yaml_fallbacks={"login": "yaml@example.com", "security_key": "k"}
        )

        assert config.login == "env@example.com"
        assert config.security_key == "k"

    def test_yaml_fallbacks(self):
        config = load_config(
            yaml_fallbacks={
                "login": "yaml@example.com",
                "security_key": "yaml-key",
                "api_url": "https://yaml.example.com/v4",
                "auth_url": "https://auth.example.com/token",
                "insecure": True,
                "timeout": 15,
            }
        )

        assert config.api_url == "https://yaml.example.com/v4"
        assert config.auth_url == "https://auth.example.com/token"
        assert config.insecure
        assert config.timeout == 15.0

    def test_missing_login(self, monkeypatch):
        monkeypatch.setenv("CATALOG_SECURITY_KEY", "secret")
        with pytest.raises(ValueError, match="Catalog login not found"):
            load_config()

    def test_missing_security_key(self, monkeypatch):
        monkeypatch.setenv("CATALOG_LOGIN", "bot@example.com")
        with pytest.raises(ValueError, match="security key not found"):
            load_config()

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("1", True), ("YES", True), ("off", False), ("0", False)],
    )
    def test_insecure_env_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv("CATALOG_INSECURE", raw)

        config = load_config(login="bot", security_key="key")

        assert config.insecure is expected

    def test_env_false_beats_yaml_true(self, monkeypatch):
        monkeypatch.setenv("CATALOG_DEBUG", "false")

        config = load_config(
            login="bot", security_key="key", yaml_fallbacks={"debug": True}
        )

        assert not config.debug

    def test_cli_flag_beats_env_false(self, monkeypatch):
        monkeypatch.setenv("CATALOG_INSECURE", "false")

        config = load_config(login="bot", security_key="key", insecure=True)

        assert config.insecure

    def test_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("CATALOG_TIMEOUT", "12.5")

        config = load_config(login="bot", security_key="key")

        assert config.timeout == 12.5

    def test_invalid_timeout_env(self, monkeypatch):
        monkeypatch.setenv("CATALOG_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="Invalid CATALOG_TIMEOUT"):
            load_config(login="bot", security_key="key")

    def test_credentials_are_stripped(self):
        config = load_config(login=" bot ", security_key=" key ")

        assert config.login == "bot"
        assert config.security_key == "key"
