"""
Config file discovery and loading for catalog_sync.

Finds the single YAML file that configures a run, loads it, and checks the
``sync`` section before the pydantic schema sees it: every configured
entity kind must name a numeric catalog id.

Usage:
    from catalog_sync.config_loader import load_config_file

    raw = load_config_file()            # discovered file, or {}
    raw = load_config_file(Path("x.yml"))  # --config
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .validators import validate_catalog_id

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CATALOG_SYNC_CONFIG"

# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def default_config_path() -> Path:
    """Project-level config path, created by ``catalog-sync init``."""
    return Path.cwd() / ".catalog_sync" / "config.yml"


def find_config_file(explicit_path: Path | None = None) -> Path | None:
    """Return the config file a run should use, or ``None``.

    Search order (first hit wins, files are never merged):
        1. *explicit_path* (the ``--config`` option)
        2. ``CATALOG_SYNC_CONFIG`` env var
        3. ``.catalog_sync/config.yml`` or ``config.yaml`` in CWD
        4. ``~/.config/catalog_sync/config.yml``

    Raises:
        FileNotFoundError: If an explicitly named file (option or env var)
            does not exist.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    named = explicit_path or (Path(env_path).expanduser() if env_path else None)
    if named is not None:
        if not named.exists():
            raise FileNotFoundError(f"Config file not found: {named}")
        return named

    project = default_config_path()
    for candidate in (
        project,
        project.with_suffix(".yaml"),
        Path.home() / ".config" / "catalog_sync" / "config.yml",
    ):
        if candidate.exists():
            return candidate
    return None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_config_file(explicit_path: Path | None = None) -> dict[str, Any]:
    """Load the config file chosen by ``find_config_file()``.

    Returns an empty dict when there is no file (zero-config) or the file
    is empty.  A ``sync.kinds`` mapping is returned with every catalog id
    as a checked string; the shorthand ``room: 62235`` is expanded to
    ``room: {catalog_id: "62235"}``.

    Raises:
        FileNotFoundError: If an explicitly named file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the root is not a mapping or an entity kind is
            misconfigured.
    """
    path = find_config_file(explicit_path)
    if path is None:
        logger.debug("No config file found, using zero-config defaults")
        return {}

    logger.debug("Loading config: %s", path)
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"{path}: expected a mapping at the top level, "
            f"got {type(data).__name__}"
        )

    sync = data.get("sync")
    if sync is not None:
        data["sync"] = _check_sync_section(sync, path)
    return data


def _check_sync_section(sync: Any, source: Path) -> dict[str, Any]:
    if not isinstance(sync, dict):
        raise ValueError(f"{source}: 'sync' must be a mapping")

    sync = dict(sync)
    if sync.get("kinds") is None:
        sync.pop("kinds", None)
    else:
        sync["kinds"] = _check_kinds(sync["kinds"], source)

    store_path = sync.get("store_path")
    if isinstance(store_path, str):
        sync["store_path"] = str(Path(store_path).expanduser())
    return sync


def _check_kinds(kinds: Any, source: Path) -> dict[str, dict[str, Any]]:
    if not isinstance(kinds, dict):
        raise ValueError(
            f"{source}: 'sync.kinds' must map entity kinds to catalogs"
        )

    checked: dict[str, dict[str, Any]] = {}
    for kind, entry in kinds.items():
        if not isinstance(kind, str) or not kind.strip():
            raise ValueError(
                f"{source}: entity kind names must be non-empty strings, "
                f"got {kind!r}"
            )
        if not isinstance(entry, dict):
            entry = {"catalog_id": entry}
        if entry.get("catalog_id") is None:
            raise ValueError(f"{source}: entity kind '{kind}' has no catalog_id")

        catalog_id = str(entry["catalog_id"]).strip()
        is_valid, error_msg = validate_catalog_id(catalog_id)
        if not is_valid:
            raise ValueError(f"{source}: entity kind '{kind}': {error_msg}")
        checked[kind] = {**entry, "catalog_id": catalog_id}

    logger.debug("Configured entity kinds: %s", ", ".join(sorted(checked)))
    return checked


# ---------------------------------------------------------------------------
# Bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# catalog-sync configuration
#
# Credentials are read from the environment (or a .env file):
#   CATALOG_LOGIN, CATALOG_SECURITY_KEY
# Optional: CATALOG_API_URL, CATALOG_AUTH_URL, CATALOG_INSECURE,
#   CATALOG_TIMEOUT
#
# catalog:
#   api_url: https://api.pyrus.com/v4
#   timeout: 60
#
# Entity kinds and the remote catalog that holds each of them.
# "room: 62235" is short for "room: {catalog_id: 62235}".
#
# sync:
#   duplicate_threshold: 0.75
#   store_path: .catalog_sync/records.json
#   kinds:
#     room:
#       catalog_id: 62235
#       description: Rooms and venues
#     event_type: 134275
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config() -> Path:
    """Return the active config file, writing a starter one if none exists.

    The starter goes to ``CATALOG_SYNC_CONFIG`` when that is set, else to
    the project-level path.  It is fully commented out, so it loads as
    zero-config.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        config_path = Path(env_path).expanduser()
    else:
        config_path = find_config_file() or default_config_path()

    if config_path.exists():
        logger.debug("Config file already exists: %s", config_path)
        return config_path

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path
