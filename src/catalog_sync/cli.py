"""Command-line entry point for catalog-sync.

Every command works on one entity kind; its catalog id comes from
``--catalog-id`` or the ``sync.kinds`` section of the config file.

Configuration precedence:
    CLI args > env vars (.env loaded first) > YAML config > defaults
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config import load_config
from .config_loader import ensure_config, load_config_file
from .config_schema import UnifiedConfig, build_config
from .core.client import CatalogClient
from .errors import CatalogTransportError, LocalStoreError, format_error
from .logger import setup_logging
from .store import JsonLocalStore
from .sync import (
    ConflictDecision,
    SyncEngine,
    format_bidirectional_outcome,
    format_conflicts,
    format_preview,
    format_resolution_outcome,
    format_sync_outcome,
    outcome_to_json,
)
from .validators import validate_catalog_id

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_TRANSPORT = 2

KIND_COMMANDS = ("preview", "pull", "push", "sync", "conflicts")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-sync",
        description="Two-way reconciliation of local records with a remote catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # See what a sync of rooms would do
  catalog-sync preview room

  # Push local rooms, then pull catalog changes
  catalog-sync sync room

  # Export pending conflicts, edit the resolutions, apply them
  catalog-sync conflicts room --output decisions.json
  catalog-sync resolve --decisions decisions.json

  # Unattended run with JSON logs
  catalog-sync --scheduled --log-format json sync event_type
        """,
    )
    parser.add_argument("--config", help="Config file (skips discovery)")
    parser.add_argument(
        "--store",
        help="Local store JSON file (default: sync.store_path from config)",
    )
    parser.add_argument(
        "--api-url",
        help="Override catalog API URL (takes precedence over CATALOG_API_URL)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        help="Log line format (default: logging.format from config)",
    )
    parser.add_argument(
        "--scheduled",
        action="store_true",
        help="Log to file only (LOG_FILE or --log-file), for cron jobs",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"catalog-sync version {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    helps = {
        "preview": "Show what a sync would do, without writing",
        "pull": "Bring catalog changes into the local store",
        "push": "Send local records to the catalog",
        "sync": "Push, then pull",
        "conflicts": "List pairs that need an operator decision",
    }
    for name in KIND_COMMANDS:
        sub = commands.add_parser(name, help=helps[name])
        sub.add_argument("kind", help="Entity kind, e.g. room or event_type")
        sub.add_argument(
            "--catalog-id", help="Remote catalog id (default: from config)"
        )
        sub.add_argument(
            "--json", action="store_true", help="Print JSON instead of text"
        )
        if name == "conflicts":
            sub.add_argument(
                "--output",
                help="Write the decisions to this file for editing",
            )

    resolve = commands.add_parser(
        "resolve", help="Apply operator decisions from a JSON file"
    )
    resolve.add_argument(
        "--decisions",
        required=True,
        help="JSON list of decisions, as written by 'conflicts --output'",
    )
    resolve.add_argument(
        "--json", action="store_true", help="Print JSON instead of text"
    )

    commands.add_parser("check", help="Verify catalog credentials")
    commands.add_parser("init", help="Create a starter config file")

    return parser


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def load_unified(args: argparse.Namespace) -> UnifiedConfig:
    explicit = Path(args.config) if args.config else None
    return build_config(load_config_file(explicit))


def build_engine(
    args: argparse.Namespace, unified: UnifiedConfig
) -> tuple[SyncEngine, CatalogClient]:
    yaml_fallbacks = {
        k: v
        for k, v in unified.catalog.model_dump().items()
        if v is not None
    }
    config = load_config(
        api_url=args.api_url,
        insecure=args.insecure,
        debug=args.debug,
        yaml_fallbacks=yaml_fallbacks,
    )
    client = CatalogClient(config)
    store = JsonLocalStore(args.store or unified.sync.store_path)
    engine = SyncEngine(
        store,
        client,
        duplicate_threshold=unified.sync.duplicate_threshold,
    )
    return engine, client


def resolve_catalog_id(
    args: argparse.Namespace, unified: UnifiedConfig
) -> str:
    catalog_id = args.catalog_id or unified.sync.catalog_for(args.kind)
    is_valid, error_msg = validate_catalog_id(catalog_id)
    if not is_valid:
        raise ValueError(error_msg)
    return catalog_id


def read_decisions(path: str) -> list[ConflictDecision]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of decisions")
    return [ConflictDecision.model_validate(entry) for entry in data]


def _emit(data: Any, as_json: bool, text: str) -> None:
    if as_json:
        print(json.dumps(outcome_to_json(data), indent=2, ensure_ascii=False))
    else:
        print(text)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def run_command(
    args: argparse.Namespace,
    engine: SyncEngine,
    client: CatalogClient,
    unified: UnifiedConfig,
) -> int:
    if args.command == "check":
        print(f"Connected to {client.validate_connection()}")
        return EXIT_OK

    if args.command == "resolve":
        decisions = read_decisions(args.decisions)
        outcome = engine.resolve_conflicts(decisions)
        _emit(outcome, args.json, format_resolution_outcome(outcome))
        return EXIT_OK

    catalog_id = resolve_catalog_id(args, unified)

    if args.command == "preview":
        preview = engine.preview_sync(args.kind, catalog_id)
        _emit(preview, args.json, format_preview(preview))
    elif args.command == "pull":
        outcome = engine.pull_sync(args.kind, catalog_id)
        _emit(outcome, args.json, format_sync_outcome(outcome))
    elif args.command == "push":
        outcome = engine.push_sync(args.kind, catalog_id)
        _emit(outcome, args.json, format_sync_outcome(outcome))
    elif args.command == "sync":
        both = engine.bidirectional_sync(args.kind, catalog_id)
        _emit(both, args.json, format_bidirectional_outcome(both))
    elif args.command == "conflicts":
        decisions = engine.detect_conflicts(args.kind, catalog_id)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as fh:
                json.dump(
                    outcome_to_json(decisions), fh, indent=2, ensure_ascii=False
                )
            print(f"Wrote {len(decisions)} decision(s) to {args.output}")
        else:
            _emit(decisions, args.json, format_conflicts(decisions))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run one command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # .env first so its values count as environment variables
    load_dotenv()

    if args.command == "init":
        setup_logging(debug=args.debug)
        path = ensure_config()
        print(f"Config file: {path}")
        return EXIT_OK

    try:
        unified = load_unified(args)
        setup_logging(
            mode="scheduled" if args.scheduled else "cli",
            debug=args.debug or unified.catalog.debug,
            log_file=args.log_file or unified.logging.file,
            log_format=args.log_format or unified.logging.format,
        )
        engine, client = build_engine(args, unified)
        return run_command(args, engine, client, unified)
    except CatalogTransportError as e:
        logger.error("Transport error: %s", e)
        print(
            format_error(
                "transport_error",
                str(e),
                "Check network access, CATALOG_API_URL and the catalog "
                "credentials, then retry.",
            ),
            file=sys.stderr,
        )
        return EXIT_TRANSPORT
    except LocalStoreError as e:
        print(
            format_error(
                "store_error",
                str(e),
                "Check the --store path and that the file is valid JSON.",
            ),
            file=sys.stderr,
        )
        return EXIT_CONFIG
    except (ValidationError, ValueError, yaml.YAMLError, OSError) as e:
        print(
            format_error(
                "configuration_error",
                str(e),
                "Set CATALOG_LOGIN and CATALOG_SECURITY_KEY, check the "
                "config file, or run 'catalog-sync init'.",
            ),
            file=sys.stderr,
        )
        return EXIT_CONFIG


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
