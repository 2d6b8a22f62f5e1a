"""Unified configuration schema for catalog_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the catalog connection, sync behaviour, and logging.
Includes an adapter to the ``Config`` dataclass used by the transport.

Usage:
    from catalog_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_config_file()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"debug": True})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class CatalogConfig(BaseModel):
    """Catalog service connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    api_url: str | None = Field(
        default=None, description="Catalog API base URL"
    )
    auth_url: str | None = Field(
        default=None, description="Token endpoint URL"
    )
    login: str | None = Field(
        default=None, description="Service account login"
    )
    security_key: str | None = Field(
        default=None, description="Service account security key"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    timeout: float = Field(
        default=60.0,
        gt=0,
        description="Per-request timeout in seconds",
    )

    model_config = {"frozen": True}


class EntityKindConfig(BaseModel):
    """Remote catalog that holds one local entity kind.

    Attributes:
        catalog_id: Identifier of the remote catalog.
        description: Optional human-readable description.
    """

    catalog_id: str
    description: str | None = None

    model_config = {"frozen": True}

    @field_validator("catalog_id", mode="before")
    @classmethod
    def coerce_catalog_id(cls, value: object) -> object:
        """Accept numeric YAML values (``62235``) as well as strings."""
        if isinstance(value, int):
            return str(value)
        return value


def _default_kinds() -> dict[str, EntityKindConfig]:
    return {
        "room": EntityKindConfig(
            catalog_id="62235", description="Rooms and venues"
        ),
        "event_type": EntityKindConfig(
            catalog_id="134275", description="Event type labels"
        ),
    }


class SyncConfig(BaseModel):
    """Reconciliation settings.

    Attributes:
        duplicate_threshold: Similarity at or above which an unmatched
            name is reported as a potential duplicate instead of created.
        store_path: JSON file used by the bundled local store.
        kinds: Entity kind name to catalog mapping.
    """

    duplicate_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    store_path: str = ".catalog_sync/records.json"
    kinds: dict[str, EntityKindConfig] = Field(default_factory=_default_kinds)

    model_config = {"frozen": True}

    def catalog_for(self, entity_kind: str) -> str:
        """Return the catalog id configured for *entity_kind*.

        Raises:
            ValueError: If the kind is not configured.
        """
        try:
            return self.kinds[entity_kind].catalog_id
        except KeyError:
            known = ", ".join(sorted(self.kinds)) or "(none)"
            raise ValueError(
                f"Unknown entity kind '{entity_kind}'. Configured kinds: {known}"
            ) from None


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_config_file()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > built-in default

    CLI overrides dict keys: api_url, login, security_key, insecure, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    from .config import DEFAULT_API_URL, DEFAULT_AUTH_URL, Config

    overrides = cli_overrides or {}
    catalog = unified.catalog

    return Config(
        login=overrides.get("login") or catalog.login or "",
        security_key=overrides.get("security_key")
        or catalog.security_key
        or "",
        api_url=overrides.get("api_url") or catalog.api_url or DEFAULT_API_URL,
        auth_url=catalog.auth_url or DEFAULT_AUTH_URL,
        insecure=overrides.get("insecure", False) or catalog.insecure,
        debug=overrides.get("debug", False) or catalog.debug,
        timeout=catalog.timeout,
    )
