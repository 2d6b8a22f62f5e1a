"""Sync engine that reconciles one entity kind with one remote catalog.

The ``SyncEngine`` ties together the index, matcher, classifier and
resolver into complete runs.  A run:

1. Fetches the catalog snapshot once and indexes it.
2. Lists the local records of the entity kind.
3. Matches every record (exact matches first, then fuzzy).
4. Classifies each exact pair against its watermark.
5. Applies what the pass direction allows (pull writes local records,
   push writes catalog items) and queues conflicts for an operator.
6. On pull, walks the catalog rows no record links to and creates the
   ones that do not name, or nearly name, an existing local record.
7. Returns a frozen ``SyncOutcome``.

Error handling is per-record: one failing write does not abort the run.
Only a failure to fetch the snapshot propagates, since nothing can be
matched without it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, fields
from datetime import datetime

from catalog_sync.errors import CatalogTransportError
from catalog_sync.validators import validate_display_name

from .classifier import classify
from .index import RemoteIndex, build_index
from .matcher import (
    DUPLICATE_THRESHOLD,
    MatchPlan,
    find_similar,
    match_all,
    match_exact,
)
from .models import (
    BidirectionalOutcome,
    ClassificationKind,
    ConflictDecision,
    ConflictReason,
    LocalRecord,
    MatchKind,
    MatchResult,
    PendingConflict,
    PotentialDuplicate,
    RemoteRecord,
    ResolutionOutcome,
    SyncDirection,
    SyncOutcome,
    SyncPreview,
    utcnow,
)
from .ports import LocalStore, RemoteCatalog
from .resolver import (
    ResolutionApplier,
    attach_reference,
    ensure_unlinked_elsewhere,
    replace_row,
)
from .similarity import normalize_name

logger = logging.getLogger(__name__)


@dataclass
class _PassTally:
    """Mutable counters for one pass, frozen into a ``SyncOutcome``."""

    direction: SyncDirection
    entity_kind: str
    catalog_id: str
    started_at: datetime
    created_local: int = 0
    updated_local: int = 0
    created_remote: int = 0
    updated_remote: int = 0
    in_agreement: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    pending_conflicts: list[PendingConflict] = field(default_factory=list)
    potential_duplicates: list[PotentialDuplicate] = field(
        default_factory=list
    )
    cancelled: bool = False

    def freeze(self, completed_at: datetime) -> SyncOutcome:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        return SyncOutcome(**values, completed_at=completed_at)


class SyncEngine:
    """Reconcile local records with a remote catalog.

    One engine serves every entity kind; the kind and catalog are passed
    to each operation.  Mutating runs are serialised by an internal lock.

    Args:
        local_store: The local side (see ``ports.LocalStore``).
        catalog: The remote side (see ``ports.RemoteCatalog``).
        duplicate_threshold: Similarity at or above which an unmatched
            name counts as a potential duplicate.
        clock: Returns the current aware datetime; used for watermarks.
    """

    def __init__(
        self,
        local_store: LocalStore,
        catalog: RemoteCatalog,
        duplicate_threshold: float = DUPLICATE_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.local_store = local_store
        self.catalog = catalog
        self.duplicate_threshold = duplicate_threshold
        self.clock = clock

        self.resolver = ResolutionApplier(local_store, catalog, clock)
        self._run_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    def preview_sync(self, entity_kind: str, catalog_id: str) -> SyncPreview:
        """Report what a bidirectional sync would do, without writing.

        Raises:
            CatalogTransportError: If the snapshot cannot be fetched.
        """
        index = self._load_index(entity_kind, catalog_id)
        plan = match_all(
            self.local_store.list_all(entity_kind),
            index,
            self.duplicate_threshold,
        )

        to_create_remote: list[str] = []
        conflicts: list[str] = []
        duplicates: list[PotentialDuplicate] = []
        seen: set[str] = set()

        for local, result in plan.pairs:
            if result.kind == MatchKind.FUZZY_NAME:
                duplicates.append(_local_duplicate(local, result))
            elif result.kind == MatchKind.NO_MATCH:
                key = normalize_name(local.display_name)
                if key not in seen:
                    seen.add(key)
                    to_create_remote.append(local.display_name)
            elif (
                classify(local, result.remote).kind
                == ClassificationKind.CONFLICT
            ):
                conflicts.append(local.display_name)

        to_create_local: list[str] = []
        for remote, duplicate in _reverse_candidates(
            index, plan, self.duplicate_threshold
        ):
            if duplicate is not None:
                duplicates.append(duplicate)
            else:
                to_create_local.append(remote.display_name)

        return SyncPreview(
            entity_kind=entity_kind,
            catalog_id=catalog_id,
            to_create_remote=to_create_remote,
            to_create_local=to_create_local,
            conflicts=conflicts,
            potential_duplicates=duplicates,
        )

    def detect_conflicts(
        self, entity_kind: str, catalog_id: str
    ) -> list[ConflictDecision]:
        """List the pairs that need an operator decision.

        Returns one undecided ``ConflictDecision`` per diverged pair and
        per potential duplicate.  For a potential duplicate the attached
        ``PendingConflict`` names the similar catalog item, which the
        operator can pass back as ``manual_override_id``.

        Raises:
            CatalogTransportError: If the snapshot cannot be fetched.
        """
        index = self._load_index(entity_kind, catalog_id)
        plan = match_all(
            self.local_store.list_all(entity_kind),
            index,
            self.duplicate_threshold,
        )

        decisions: list[ConflictDecision] = []
        for local, result in plan.pairs:
            if result.kind == MatchKind.FUZZY_NAME:
                conflict = _pending(
                    local,
                    result.remote,
                    ConflictReason.POTENTIAL_DUPLICATE,
                    result.score,
                )
            elif (
                result.is_link
                and classify(local, result.remote).kind
                == ClassificationKind.CONFLICT
            ):
                conflict = _pending(
                    local, result.remote, ConflictReason.DIVERGED, 1.0
                )
            else:
                continue
            decisions.append(
                ConflictDecision(
                    target_id=local.id,
                    entity_kind=entity_kind,
                    catalog_id=catalog_id,
                    conflict=conflict,
                )
            )
        return decisions

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def pull_sync(
        self,
        entity_kind: str,
        catalog_id: str,
        cancel: threading.Event | None = None,
    ) -> SyncOutcome:
        """Bring catalog changes into the local store.

        Never writes to the catalog.

        Raises:
            CatalogTransportError: If the snapshot cannot be fetched.
        """
        with self._run_lock:
            index = self._load_index(entity_kind, catalog_id)
            return self._run_pass(
                SyncDirection.PULL, entity_kind, catalog_id, index, cancel
            )

    def push_sync(
        self,
        entity_kind: str,
        catalog_id: str,
        cancel: threading.Event | None = None,
    ) -> SyncOutcome:
        """Send local records to the catalog.

        Never creates local records.

        Raises:
            CatalogTransportError: If the snapshot cannot be fetched.
        """
        with self._run_lock:
            index = self._load_index(entity_kind, catalog_id)
            return self._run_pass(
                SyncDirection.PUSH, entity_kind, catalog_id, index, cancel
            )

    def bidirectional_sync(
        self,
        entity_kind: str,
        catalog_id: str,
        cancel: threading.Event | None = None,
    ) -> BidirectionalOutcome:
        """Push, then pull, over one snapshot.

        Items created or renamed by the push pass are folded into the
        working index and the local store is re-read, so the pull pass
        links them instead of importing them back as new records.

        Raises:
            CatalogTransportError: If the snapshot cannot be fetched.
        """
        with self._run_lock:
            index = self._load_index(entity_kind, catalog_id)
            push = self._run_pass(
                SyncDirection.PUSH, entity_kind, catalog_id, index, cancel
            )
            pull = self._run_pass(
                SyncDirection.PULL, entity_kind, catalog_id, index, cancel
            )
        return BidirectionalOutcome(push=push, pull=pull)

    def resolve_conflicts(
        self,
        decisions: Iterable[ConflictDecision],
        cancel: threading.Event | None = None,
    ) -> ResolutionOutcome:
        """Apply operator decisions (see ``ResolutionApplier``)."""
        decisions = list(decisions)
        with self._run_lock:
            outcome = self.resolver.apply(decisions, cancel)
        logger.info(
            "Resolved %d decisions: %d updated, %d created, %d skipped, "
            "%d errors",
            len(decisions),
            outcome.updated,
            outcome.created,
            outcome.skipped,
            len(outcome.errors),
        )
        return outcome

    # ------------------------------------------------------------------
    # Pass execution
    # ------------------------------------------------------------------

    def _load_index(self, entity_kind: str, catalog_id: str) -> RemoteIndex:
        extra = {"entity_kind": entity_kind, "catalog_id": catalog_id}
        try:
            snapshot = self.catalog.fetch_snapshot(catalog_id)
        except CatalogTransportError as exc:
            logger.error(
                "Failed to fetch catalog %s: %s", catalog_id, exc, extra=extra
            )
            raise
        index = build_index(snapshot)
        logger.info(
            "Fetched catalog %s: %d items, %d live",
            catalog_id,
            len(snapshot),
            len(index.records),
            extra=extra,
        )
        return index

    def _run_pass(
        self,
        direction: SyncDirection,
        entity_kind: str,
        catalog_id: str,
        index: RemoteIndex,
        cancel: threading.Event | None,
    ) -> SyncOutcome:
        extra = {"entity_kind": entity_kind, "catalog_id": catalog_id}
        tally = _PassTally(
            direction=direction,
            entity_kind=entity_kind,
            catalog_id=catalog_id,
            started_at=self.clock(),
        )

        records = self.local_store.list_all(entity_kind)
        plan = match_all(records, index, self.duplicate_threshold)
        holders = {
            record.external_ref: record
            for record in records
            if record.external_ref
        }
        logger.info(
            "Starting %s sync of %d %s records",
            direction.value,
            len(records),
            entity_kind,
            extra=extra,
        )

        for local, result in plan.pairs:
            if _is_cancelled(cancel):
                tally.cancelled = True
                break
            try:
                self._sync_record(tally, local, result, index, plan, holders)
            except Exception as exc:
                logger.error(
                    "Error syncing %s: %s", local.display_name, exc, extra=extra
                )
                tally.errors.append(f"{local.display_name}: {exc}")

        if direction == SyncDirection.PULL and not tally.cancelled:
            for remote, duplicate in _reverse_candidates(
                index, plan, self.duplicate_threshold
            ):
                if _is_cancelled(cancel):
                    tally.cancelled = True
                    break
                if duplicate is not None:
                    self._report_duplicate(tally, duplicate)
                    continue
                try:
                    self._create_local(tally, remote, holders)
                except Exception as exc:
                    logger.error(
                        "Error importing %s: %s",
                        remote.display_name,
                        exc,
                        extra=extra,
                    )
                    tally.errors.append(f"{remote.display_name}: {exc}")

        outcome = tally.freeze(self.clock())
        logger.info(
            "Finished %s sync of %s: %d created, %d updated, %d in agreement, "
            "%d conflicts, %d duplicates, %d errors%s",
            direction.value,
            entity_kind,
            outcome.created,
            outcome.updated,
            outcome.in_agreement,
            len(outcome.pending_conflicts),
            len(outcome.potential_duplicates),
            len(outcome.errors),
            " (cancelled)" if outcome.cancelled else "",
            extra=extra,
        )
        return outcome

    def _sync_record(
        self,
        tally: _PassTally,
        local: LocalRecord,
        result: MatchResult,
        index: RemoteIndex,
        plan: MatchPlan,
        holders: dict[str, LocalRecord],
    ) -> None:
        """Apply the pass direction to one matched local record."""
        if result.kind == MatchKind.FUZZY_NAME:
            self._report_duplicate(tally, _local_duplicate(local, result))
            return

        if result.kind == MatchKind.NO_MATCH:
            if tally.direction == SyncDirection.PUSH:
                self._create_remote(tally, local, index, plan, holders)
            else:
                tally.skipped += 1
            return

        remote = result.remote
        classification = classify(local, remote)

        if classification.kind == ClassificationKind.AGREEMENT:
            self._agree(tally, local, remote, index, holders)
        elif classification.kind == ClassificationKind.AUTO_UPDATE:
            if tally.direction == SyncDirection.PULL:
                self._pull_name(tally, local, remote, holders)
            else:
                logger.debug(
                    "%r is stale; leaving it for the pull pass",
                    local.display_name,
                )
                tally.skipped += 1
        else:
            logger.warning(
                "Conflict: local %r vs catalog %r (item %s)",
                local.display_name,
                remote.display_name,
                remote.external_id,
            )
            tally.pending_conflicts.append(
                _pending(local, remote, ConflictReason.DIVERGED, 1.0)
            )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _agree(
        self,
        tally: _PassTally,
        local: LocalRecord,
        remote: RemoteRecord,
        index: RemoteIndex,
        holders: dict[str, LocalRecord],
    ) -> None:
        """Refresh the watermark of a pair holding the same name.

        On push, a catalog name that differs only in case or surrounding
        whitespace is rewritten to the local form first.
        """
        ensure_unlinked_elsewhere(holders, local, remote.external_id)

        rewrite = (
            tally.direction == SyncDirection.PUSH
            and remote.external_id
            and local.display_name != remote.display_name
        )
        if rewrite:
            values = [local.display_name] + list(remote.values[1:])
            self.catalog.update_item(
                tally.catalog_id, remote.external_id, values
            )
            replace_row(index, remote, values)
            logger.info(
                "Catalog item %s renamed %r -> %r",
                remote.external_id,
                remote.display_name,
                local.display_name,
            )

        attach_reference(
            self.local_store, holders, local, remote.external_id, self.clock()
        )
        if rewrite:
            tally.updated_remote += 1
        else:
            tally.in_agreement += 1

    def _pull_name(
        self,
        tally: _PassTally,
        local: LocalRecord,
        remote: RemoteRecord,
        holders: dict[str, LocalRecord],
    ) -> None:
        ensure_unlinked_elsewhere(holders, local, remote.external_id)
        self.local_store.update_name(local.id, remote.display_name)
        attach_reference(
            self.local_store, holders, local, remote.external_id, self.clock()
        )
        tally.updated_local += 1
        logger.info(
            "Updated %s %r -> %r from catalog",
            tally.entity_kind,
            local.display_name,
            remote.display_name,
        )

    def _create_remote(
        self,
        tally: _PassTally,
        local: LocalRecord,
        index: RemoteIndex,
        plan: MatchPlan,
        holders: dict[str, LocalRecord],
    ) -> None:
        # An item created earlier in this pass may now carry the same name.
        existing = match_exact(local, index)
        if existing is not None:
            self._agree(tally, local, existing.remote, index, holders)
            return

        is_valid, message = validate_display_name(local.display_name)
        if not is_valid:
            raise ValueError(message)

        values = [local.display_name]
        external_id = self.catalog.create_item(tally.catalog_id, values)
        index.add(RemoteRecord(external_id=external_id, values=values))
        plan.claimed.add(external_id)
        tally.created_remote += 1
        logger.info(
            "Created catalog item %s for %s %r",
            external_id,
            tally.entity_kind,
            local.display_name,
        )

        attach_reference(
            self.local_store, holders, local, external_id, self.clock()
        )

    def _create_local(
        self,
        tally: _PassTally,
        remote: RemoteRecord,
        holders: dict[str, LocalRecord],
    ) -> None:
        is_valid, message = validate_display_name(remote.display_name)
        if not is_valid:
            raise ValueError(message)

        record = self.local_store.create(tally.entity_kind, remote.display_name)
        tally.created_local += 1
        logger.info(
            "Created %s %r from catalog item %s",
            tally.entity_kind,
            remote.display_name,
            remote.external_id,
        )

        attach_reference(
            self.local_store, holders, record, remote.external_id, self.clock()
        )

    def _report_duplicate(
        self, tally: _PassTally, duplicate: PotentialDuplicate
    ) -> None:
        logger.warning(
            "Potential duplicate: %s %r is similar to %r (%.2f); not creating",
            duplicate.side,
            duplicate.name,
            duplicate.similar_to,
            duplicate.score,
        )
        tally.potential_duplicates.append(duplicate)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


def _pending(
    local: LocalRecord,
    remote: RemoteRecord,
    reason: ConflictReason,
    score: float,
) -> PendingConflict:
    return PendingConflict(
        local_id=local.id,
        local_name=local.display_name,
        local_updated_at=local.updated_at,
        external_id=remote.external_id,
        remote_name=remote.display_name,
        last_synced_at=local.last_synced_at,
        reason=reason,
        score=score,
    )


def _local_duplicate(
    local: LocalRecord, result: MatchResult
) -> PotentialDuplicate:
    return PotentialDuplicate(
        name=local.display_name,
        similar_to=result.remote.display_name,
        score=result.score,
        side="local",
    )


def _reverse_candidates(
    index: RemoteIndex, plan: MatchPlan, threshold: float
) -> Iterator[tuple[RemoteRecord, PotentialDuplicate | None]]:
    """Yield catalog rows that no local record is matched to.

    Each row comes with a ``PotentialDuplicate`` when it must not be
    imported: its name is shadowed by another row, it names an existing
    local record (linked or not), or it is similar to a local record or to
    a row already yielded for import.
    """
    taken = {
        id(result.remote)
        for _, result in plan.pairs
        if result.remote is not None
    }
    local_names = {
        normalize_name(local.display_name): local.display_name
        for local, _ in plan.pairs
    }
    names = [local.display_name for local, _ in plan.pairs]

    for remote in list(index.records):
        if id(remote) in taken:
            continue
        if remote.external_id and (
            remote.external_id in plan.claimed
            or remote.external_id in plan.flagged
        ):
            continue
        key = normalize_name(remote.display_name)
        if not key:
            continue

        shadow = index.by_name.get(key)
        if shadow is not None and shadow is not remote:
            yield remote, PotentialDuplicate(
                name=remote.display_name,
                similar_to=shadow.display_name,
                score=1.0,
                side="remote",
            )
            continue

        existing = local_names.get(key)
        if existing is not None:
            yield remote, PotentialDuplicate(
                name=remote.display_name,
                similar_to=existing,
                score=1.0,
                side="remote",
            )
            continue

        similar = find_similar(remote.display_name, names, threshold)
        if similar is not None:
            yield remote, PotentialDuplicate(
                name=remote.display_name,
                similar_to=similar[0],
                score=similar[1],
                side="remote",
            )
            continue

        names.append(remote.display_name)
        yield remote, None
