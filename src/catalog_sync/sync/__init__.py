"""Two-way catalog reconciliation engine.

Public API for keeping local records (rooms, event types, ...) consistent
with the items of a remote catalog service.

Architecture
------------
Neither side is the source of truth.  Each run fetches one catalog
snapshot, pairs local records with catalog rows (by linked id, then by
normalised name, then by similarity) and classifies every linked pair
against the record's ``last_synced_at`` watermark.  One-sided changes are
applied silently, diverged names are queued for an operator, and names
that are merely *similar* are reported as potential duplicates instead of
being created a second time.

Modules:

- ``similarity`` -- ``score``: name similarity in ``[0, 1]``.
- ``index``      -- ``build_index``: snapshot lookups by id and name.
- ``matcher``    -- ``match``, ``match_all``, ``find_similar``.
- ``classifier`` -- ``classify``: agreement, auto-update or conflict.
- ``engine``     -- ``SyncEngine``: preview, pull, push, bidirectional,
  conflict detection and resolution.
- ``resolver``   -- ``ResolutionApplier``: applies operator decisions.
- ``ports``      -- ``LocalStore`` and ``RemoteCatalog`` protocols.
- ``models``     -- records, decisions and reports.
- ``reporter``   -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from catalog_sync.core.client import CatalogClient
    from catalog_sync.store import JsonLocalStore
    from catalog_sync.sync import SyncEngine, format_bidirectional_outcome

    engine = SyncEngine(
        local_store=JsonLocalStore("records.json"),
        catalog=CatalogClient(config),
    )

    # Preview first
    print(engine.preview_sync("room", "62235"))

    # Push then pull
    outcome = engine.bidirectional_sync("room", "62235")
    print(format_bidirectional_outcome(outcome))

    # Hand conflicts to an operator, then apply their answers
    decisions = engine.detect_conflicts("room", "62235")
"""

from .engine import SyncEngine
from .matcher import DUPLICATE_THRESHOLD, find_similar, match, match_all
from .models import (
    BidirectionalOutcome,
    ConflictDecision,
    LocalRecord,
    PendingConflict,
    PotentialDuplicate,
    RemoteRecord,
    Resolution,
    ResolutionOutcome,
    SyncOutcome,
    SyncPreview,
)
from .reporter import (
    format_bidirectional_outcome,
    format_conflicts,
    format_preview,
    format_resolution_outcome,
    format_sync_outcome,
    outcome_to_json,
)
from .resolver import ResolutionApplier
from .similarity import score

__all__ = [
    "BidirectionalOutcome",
    "ConflictDecision",
    "DUPLICATE_THRESHOLD",
    "LocalRecord",
    "PendingConflict",
    "PotentialDuplicate",
    "RemoteRecord",
    "Resolution",
    "ResolutionApplier",
    "ResolutionOutcome",
    "SyncEngine",
    "SyncOutcome",
    "SyncPreview",
    "find_similar",
    "format_bidirectional_outcome",
    "format_conflicts",
    "format_preview",
    "format_resolution_outcome",
    "format_sync_outcome",
    "match",
    "match_all",
    "outcome_to_json",
    "score",
]
