"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_outcome`` -- summary of one pull or push pass.
- ``format_bidirectional_outcome`` -- push and pull summaries together.
- ``format_preview`` -- what a sync would do, grouped by action.
- ``format_conflicts`` -- pending decisions for operator review.
- ``format_resolution_outcome`` -- summary of applied decisions.
- ``outcome_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from .models import ConflictReason

if TYPE_CHECKING:
    from .models import (
        BidirectionalOutcome,
        ConflictDecision,
        PotentialDuplicate,
        ResolutionOutcome,
        SyncOutcome,
        SyncPreview,
    )

# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_sync_outcome(outcome: SyncOutcome) -> str:
    """Format one sync pass as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        outcome: The completed pass.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [outcome.summary()]
    lines.append(f"  Started:        {outcome.started_at.isoformat()}")
    if outcome.completed_at:
        lines.append(f"  Completed:      {outcome.completed_at.isoformat()}")
    lines.append("")

    if outcome.pending_conflicts:
        lines.append("Conflicts (resolve with 'catalog-sync resolve'):")
        for c in outcome.pending_conflicts:
            lines.append(
                f"  {c.local_name!r} <-> {c.remote_name!r} (item {c.external_id})"
            )
        lines.append("")

    if outcome.potential_duplicates:
        lines.append("Potential duplicates (not created):")
        lines.extend(_duplicate_lines(outcome.potential_duplicates))
        lines.append("")

    if outcome.errors:
        lines.append("Errors:")
        for error in outcome.errors:
            lines.append(f"  {error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_bidirectional_outcome(outcome: BidirectionalOutcome) -> str:
    """Format the push and pull passes of a bidirectional sync."""
    return "\n\n".join(
        [format_sync_outcome(outcome.push), format_sync_outcome(outcome.pull)]
    )


def format_preview(preview: SyncPreview) -> str:
    """Format a sync preview grouped by action.

    Args:
        preview: Result of ``SyncEngine.preview_sync``.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("PREVIEW -- No changes will be made")
    lines.append(
        f"Entity kind: {preview.entity_kind} (catalog {preview.catalog_id})"
    )
    lines.append("")

    groups = [
        ("CREATE REMOTE", preview.to_create_remote),
        ("CREATE LOCAL", preview.to_create_local),
        ("CONFLICT", preview.conflicts),
    ]
    for label, names in groups:
        if not names:
            continue
        lines.append(f"[{label}]")
        for name in names:
            lines.append(f"  {name}")
        lines.append("")

    if preview.potential_duplicates:
        lines.append("[POTENTIAL DUPLICATE]")
        lines.extend(_duplicate_lines(preview.potential_duplicates))
        lines.append("")

    if not any(names for _, names in groups) and not preview.potential_duplicates:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflicts(decisions: list[ConflictDecision]) -> str:
    """Format pending decisions for review.

    Each entry shows both names, the watermark and, for a potential
    duplicate, the catalog item to pass as ``manual_override_id``.
    """
    if not decisions:
        return "No conflicts."

    lines: list[str] = [f"{len(decisions)} pending decision(s):", ""]
    for d in decisions:
        c = d.conflict
        if c is None:
            lines.append(f"  {d.target_id}")
            continue
        if c.reason == ConflictReason.POTENTIAL_DUPLICATE:
            lines.append(
                f"  [{d.target_id}] {c.local_name!r} looks like catalog item "
                f"{c.external_id} {c.remote_name!r} ({c.score:.2f})"
            )
        else:
            synced = (
                c.last_synced_at.isoformat() if c.last_synced_at else "never"
            )
            lines.append(
                f"  [{d.target_id}] local {c.local_name!r} vs catalog "
                f"{c.remote_name!r} (item {c.external_id}, last synced "
                f"{synced})"
            )
    return "\n".join(lines)


def format_resolution_outcome(outcome: ResolutionOutcome) -> str:
    """Format the result of applying decisions."""
    lines = [
        "Resolution applied",
        f"  Updated: {outcome.updated}",
        f"  Created: {outcome.created}",
        f"  Skipped: {outcome.skipped}",
        f"  Errors:  {len(outcome.errors)}",
    ]
    if outcome.errors:
        lines.append("")
        lines.append("Errors:")
        for error in outcome.errors:
            lines.append(f"  {error}")
    return "\n".join(lines)


def _duplicate_lines(duplicates: list[PotentialDuplicate]) -> list[str]:
    return [
        f"  {d.side}: {d.name!r} ~ {d.similar_to!r} ({d.score:.2f})"
        for d in duplicates
    ]


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def outcome_to_json(outcome: BaseModel | list[BaseModel]) -> Any:
    """Convert a report (or a list of decisions) to JSON-ready data.

    Sync outcomes gain a ``counts`` block with the derived totals.

    Args:
        outcome: Any report model returned by ``SyncEngine``.

    Returns:
        Dict (or list of dicts) of JSON-serialisable values.
    """
    if isinstance(outcome, list):
        return [outcome_to_json(item) for item in outcome]

    data = outcome.model_dump(mode="json")
    if hasattr(outcome, "created_local"):
        data["counts"] = {
            "created": outcome.created,
            "updated": outcome.updated,
            "in_agreement": outcome.in_agreement,
            "skipped": outcome.skipped,
            "conflicts": len(outcome.pending_conflicts),
            "duplicates": len(outcome.potential_duplicates),
            "errors": len(outcome.errors),
        }
    elif hasattr(outcome, "push") and hasattr(outcome, "pull"):
        data["push"] = outcome_to_json(outcome.push)
        data["pull"] = outcome_to_json(outcome.pull)
    return data
