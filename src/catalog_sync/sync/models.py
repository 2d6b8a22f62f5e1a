"""Pydantic models for the catalog reconciliation engine.

Defines the data contracts shared by every sync module:

- ``LocalRecord`` / ``RemoteRecord``: the two sides being reconciled.
- ``MatchResult``: how a local record was paired with a remote row.
- ``Classification``: agreement, auto-update or conflict for a pair.
- ``PendingConflict`` / ``PotentialDuplicate``: items needing an operator.
- ``ConflictDecision``: an operator's answer for one pending item.
- ``SyncOutcome``, ``BidirectionalOutcome``, ``SyncPreview``,
  ``ResolutionOutcome``: reports returned by the exposed operations.

Records and reports are frozen (immutable); the engine accumulates counts
in a private mutable builder and freezes them once a pass completes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class MatchKind(str, Enum):
    """How a local record was paired with a remote row."""

    EXACT_ID = "exact_id"
    EXACT_NAME = "exact_name"
    FUZZY_NAME = "fuzzy_name"
    NO_MATCH = "no_match"


class ClassificationKind(str, Enum):
    """Outcome of comparing a matched pair against the watermark."""

    AGREEMENT = "agreement"
    AUTO_UPDATE = "auto_update"
    CONFLICT = "conflict"


class UpdateDirection(str, Enum):
    """Which side an auto-update overwrites."""

    PULL_FROM_REMOTE = "pull_from_remote"


class SyncDirection(str, Enum):
    """Writes enabled for one executor pass."""

    PULL = "pull"
    PUSH = "push"


class Resolution(str, Enum):
    """Operator decision for one pending conflict."""

    USE_LOCAL = "use_local"
    USE_REMOTE = "use_remote"
    SKIP = "skip"


class ConflictReason(str, Enum):
    """Why an item was queued for an operator."""

    DIVERGED = "diverged"
    POTENTIAL_DUPLICATE = "potential_duplicate"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class LocalRecord(BaseModel):
    """A business entity in the local store.

    Attributes:
        id: Local identity, never changed by the engine.
        display_name: The only field compared against the remote side.
        external_ref: Remote ``external_id`` once the record is linked.
        updated_at: Last write to the record, owned by the local store.
        last_synced_at: Watermark of the last confirmed agreement, owned
            by the engine.
    """

    id: str
    display_name: str
    external_ref: str | None = None
    updated_at: datetime
    last_synced_at: datetime | None = None

    model_config = {"frozen": True}


class RemoteRecord(BaseModel):
    """A row of the remote catalog snapshot.

    Attributes:
        external_id: Identifier assigned by the catalog service.
        values: Column values; position 0 is the display name.
        deleted: Tombstone flag. Deleted rows never match.
    """

    external_id: str | None = None
    values: list[str] = []
    deleted: bool = False

    model_config = {"frozen": True}

    @property
    def display_name(self) -> str:
        """The name column, or an empty string for a row without values."""
        return self.values[0] if self.values else ""


# ---------------------------------------------------------------------------
# Matching and classification
# ---------------------------------------------------------------------------


class MatchResult(BaseModel):
    """Result of matching one local record against the remote index."""

    kind: MatchKind
    remote: RemoteRecord | None = None
    score: float = 0.0

    model_config = {"frozen": True}

    @property
    def is_link(self) -> bool:
        """True for matches that may be written as a link."""
        return self.kind in (MatchKind.EXACT_ID, MatchKind.EXACT_NAME)


class Classification(BaseModel):
    """Agreement, one-sided update or conflict for a matched pair."""

    kind: ClassificationKind
    direction: UpdateDirection | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Operator-facing items
# ---------------------------------------------------------------------------


class PendingConflict(BaseModel):
    """Both sides of a pair awaiting a ``ConflictDecision``.

    Attributes:
        local_id: Id of the local record.
        local_name: Current local display name.
        local_updated_at: Last local write.
        external_id: Remote row the record was matched (or is similar) to.
        remote_name: Current remote display name.
        last_synced_at: Prior watermark, ``None`` if never synced.
        reason: Diverged names or a potential duplicate.
        score: Name similarity of the pair.
    """

    local_id: str
    local_name: str
    local_updated_at: datetime
    external_id: str | None = None
    remote_name: str
    last_synced_at: datetime | None = None
    reason: ConflictReason = ConflictReason.DIVERGED
    score: float = 1.0

    model_config = {"frozen": True}


class PotentialDuplicate(BaseModel):
    """An unmatched record whose name is close to one on the other side.

    Attributes:
        name: Display name of the unmatched record.
        similar_to: Name of the closest record on the other side.
        score: Similarity of the two names.
        side: ``"local"`` when *name* is a local record, ``"remote"``
            when it is a catalog row.
    """

    name: str
    similar_to: str
    score: float
    side: str

    model_config = {"frozen": True}


class ConflictDecision(BaseModel):
    """Operator decision for one local record.

    ``resolution`` is ``None`` in decisions produced by conflict
    detection; the operator fills it in before resolving.

    Attributes:
        target_id: Id of the local record the decision applies to.
        entity_kind: Entity kind of the local record.
        catalog_id: Remote catalog holding the counterpart.
        resolution: ``USE_LOCAL``, ``USE_REMOTE`` or ``SKIP``.
        manual_override_id: Attach the record to this remote row instead
            of the automatically matched one.
        conflict: Both sides as seen at detection time, for display.
    """

    target_id: str
    entity_kind: str
    catalog_id: str
    resolution: Resolution | None = None
    manual_override_id: str | None = None
    conflict: PendingConflict | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class SyncOutcome(BaseModel):
    """Report of one executor pass.

    Attributes:
        direction: Pass direction (pull or push).
        entity_kind: Entity kind that was synced.
        catalog_id: Remote catalog that was synced.
        created_local: Local records created from catalog rows.
        updated_local: Local names overwritten from the catalog.
        created_remote: Catalog rows created from local records.
        updated_remote: Catalog names overwritten from local records.
        in_agreement: Pairs already holding the same name (watermark
            refreshed, not counted as updates).
        skipped: Records left untouched because this direction does not
            write them.
        errors: Per-record failures, ``"<name>: <message>"``.
        pending_conflicts: Pairs that need a ``ConflictDecision``.
        potential_duplicates: Fuzzy matches that blocked a creation.
        cancelled: True if the caller aborted the run.
        started_at: When the pass started.
        completed_at: When the pass finished.
    """

    direction: SyncDirection
    entity_kind: str
    catalog_id: str
    created_local: int = 0
    updated_local: int = 0
    created_remote: int = 0
    updated_remote: int = 0
    in_agreement: int = 0
    skipped: int = 0
    errors: list[str] = []
    pending_conflicts: list[PendingConflict] = []
    potential_duplicates: list[PotentialDuplicate] = []
    cancelled: bool = False
    started_at: datetime
    completed_at: datetime | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> int:
        """Creations on either side."""
        return self.created_local + self.created_remote

    @property
    def updated(self) -> int:
        """Name overwrites on either side."""
        return self.updated_local + self.updated_remote

    def summary(self) -> str:
        """Format a short human-readable summary of the pass.

        Returns:
            Multi-line summary string with counts.
        """
        lines = [
            f"{self.direction.value.capitalize()} sync of "
            f"'{self.entity_kind}' (catalog {self.catalog_id})"
            + (" (cancelled)" if self.cancelled else ""),
            f"  Created local:  {self.created_local}",
            f"  Created remote: {self.created_remote}",
            f"  Updated local:  {self.updated_local}",
            f"  Updated remote: {self.updated_remote}",
            f"  In agreement:   {self.in_agreement}",
            f"  Skipped:        {self.skipped}",
            f"  Conflicts:      {len(self.pending_conflicts)}",
            f"  Duplicates:     {len(self.potential_duplicates)}",
            f"  Errors:         {len(self.errors)}",
        ]
        return "\n".join(lines)


class BidirectionalOutcome(BaseModel):
    """Reports of the push pass and the pull pass that followed it."""

    push: SyncOutcome
    pull: SyncOutcome

    model_config = {"frozen": True}


class SyncPreview(BaseModel):
    """What a sync would do, computed without writing anything."""

    entity_kind: str
    catalog_id: str
    to_create_remote: list[str] = []
    to_create_local: list[str] = []
    conflicts: list[str] = []
    potential_duplicates: list[PotentialDuplicate] = []

    model_config = {"frozen": True}


class ResolutionOutcome(BaseModel):
    """Report of applying a batch of ``ConflictDecision`` objects."""

    updated: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[str] = []

    model_config = {"frozen": True}
