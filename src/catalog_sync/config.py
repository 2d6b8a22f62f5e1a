"""Catalog connection configuration.

Reads catalog service settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CATALOG_API_URL: Catalog API base URL (optional, default: Pyrus v4 API)
    CATALOG_AUTH_URL: Token endpoint (optional, default: Pyrus v4 auth)
    CATALOG_LOGIN: Service account login (required)
    CATALOG_SECURITY_KEY: Service account security key (required)
    CATALOG_INSECURE: Skip SSL verification (optional, default: false)
    CATALOG_DEBUG: Enable debug logging (optional, default: false)
    CATALOG_TIMEOUT: Per-request timeout in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.pyrus.com/v4"
DEFAULT_AUTH_URL = "https://accounts.pyrus.com/api/v4/auth"
DEFAULT_TIMEOUT = 60.0


@dataclass
class Config:
    login: str
    security_key: str
    api_url: str = DEFAULT_API_URL
    auth_url: str = DEFAULT_AUTH_URL
    insecure: bool = False
    debug: bool = False
    timeout: float = DEFAULT_TIMEOUT


def _validate_url(name: str, value: str) -> str:
    value = value.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid {name} '{value}': must start with http:// or https://"
        )
    if not urlparse(value).hostname:
        raise ValueError(
            f"Invalid {name} '{value}': URL must include a hostname"
        )
    return value.removesuffix("/")


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a URL is malformed, credentials are empty, or the
            timeout is not positive.
    """
    config.api_url = _validate_url("catalog API URL", config.api_url)
    config.auth_url = _validate_url("catalog auth URL", config.auth_url)

    if not config.login.strip():
        raise ValueError(
            "Catalog login cannot be empty. Set CATALOG_LOGIN environment variable."
        )

    if not config.security_key.strip():
        raise ValueError(
            "Catalog security key cannot be empty. "
            "Set CATALOG_SECURITY_KEY environment variable."
        )

    if config.timeout <= 0:
        raise ValueError(
            f"Invalid timeout '{config.timeout}': must be a positive number of seconds"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def load_config(
    api_url: str | None = None,
    login: str | None = None,
    security_key: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override API base URL.
        login: Override service account login.
        security_key: Override service account security key.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``catalog``
            section. Used as fallback when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If credentials are missing after checking all sources,
            or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default/error ---

    final_api_url = (
        api_url or os.getenv("CATALOG_API_URL") or fb.get("api_url")
        or DEFAULT_API_URL
    )
    final_auth_url = (
        os.getenv("CATALOG_AUTH_URL") or fb.get("auth_url") or DEFAULT_AUTH_URL
    )

    final_login = login or os.getenv("CATALOG_LOGIN") or fb.get("login")
    if not final_login:
        raise ValueError(
            "Catalog login not found. Set CATALOG_LOGIN environment variable, "
            "pass --login CLI argument, or add 'login' to config.yml."
        )

    final_key = (
        security_key
        or os.getenv("CATALOG_SECURITY_KEY")
        or fb.get("security_key")
    )
    if not final_key:
        raise ValueError(
            "Catalog security key not found. Set CATALOG_SECURITY_KEY "
            "environment variable or add 'security_key' to config.yml."
        )

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if insecure:
        final_insecure = True
    else:
        env_insecure = get_bool_env("CATALOG_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("CATALOG_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("CATALOG_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid CATALOG_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout" in fb:
        final_timeout = float(fb["timeout"])
    else:
        final_timeout = DEFAULT_TIMEOUT

    config = Config(
        login=final_login.strip(),
        security_key=final_key.strip(),
        api_url=final_api_url,
        auth_url=final_auth_url,
        insecure=final_insecure,
        debug=final_debug,
        timeout=final_timeout,
    )

    validate_config(config)

    return config
