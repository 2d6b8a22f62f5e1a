"""Apply operator decisions to pending conflicts.

A ``ConflictDecision`` names a local record and says which side's name
wins.  Decisions are grouped by ``(entity_kind, catalog_id)``; each group
reads one catalog snapshot and one local listing, then applies its
decisions in order.  A failing decision is reported and the rest of the
batch continues.

Linking goes through :func:`attach_reference`, which refuses to give a
catalog row to a second local record of the same kind.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from catalog_sync.errors import DuplicateReferenceError
from catalog_sync.validators import validate_display_name

from .index import RemoteIndex, build_index
from .matcher import match_exact
from .models import (
    ConflictDecision,
    LocalRecord,
    RemoteRecord,
    Resolution,
    ResolutionOutcome,
    utcnow,
)
from .ports import LocalStore, RemoteCatalog

logger = logging.getLogger(__name__)


def attach_reference(
    store: LocalStore,
    holders: dict[str, LocalRecord],
    local: LocalRecord,
    external_id: str | None,
    synced_at: datetime,
) -> None:
    """Link *local* to *external_id* and stamp its watermark.

    Args:
        store: Local store to write to.
        holders: ``external_ref -> record`` for every record of the kind;
            updated in place.
        local: Record being linked.
        external_id: Catalog row id, or ``None`` to only stamp the
            watermark.
        synced_at: New ``last_synced_at``.

    Raises:
        DuplicateReferenceError: If another record already holds
            *external_id*. Nothing is written in that case.
    """
    ensure_unlinked_elsewhere(holders, local, external_id)

    new_ref = None
    if external_id and external_id != local.external_ref:
        new_ref = external_id
    store.update_sync_meta(
        local.id, external_ref=new_ref, last_synced_at=synced_at
    )

    if new_ref:
        if local.external_ref and holders.get(local.external_ref) is local:
            del holders[local.external_ref]
        holders[new_ref] = local


def ensure_unlinked_elsewhere(
    holders: dict[str, LocalRecord], local: LocalRecord, external_id: str | None
) -> None:
    """Raise ``DuplicateReferenceError`` if *external_id* belongs to another record."""
    if not external_id:
        return
    holder = holders.get(external_id)
    if holder is not None and holder.id != local.id:
        raise DuplicateReferenceError(external_id, holder.display_name)


def replace_row(
    index: RemoteIndex, remote: RemoteRecord, values: list[str]
) -> RemoteRecord:
    """Swap *remote* for a copy with *values* in the working index."""
    updated = remote.model_copy(update={"values": list(values)})
    index.discard(remote)
    index.add(updated)
    return updated


class ResolutionApplier:
    """Apply ``ConflictDecision`` batches against both stores.

    Args:
        local_store: The local side.
        catalog: The remote side.
        clock: Returns the current aware datetime; used for watermarks.
    """

    def __init__(
        self,
        local_store: LocalStore,
        catalog: RemoteCatalog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.local_store = local_store
        self.catalog = catalog
        self.clock = clock

    def apply(
        self,
        decisions: Iterable[ConflictDecision],
        cancel: threading.Event | None = None,
    ) -> ResolutionOutcome:
        """Apply *decisions* and report what was written.

        Raises:
            CatalogTransportError: If a group's catalog snapshot cannot
                be fetched.
        """
        groups: dict[tuple[str, str], list[ConflictDecision]] = {}
        for decision in decisions:
            key = (decision.entity_kind, decision.catalog_id)
            groups.setdefault(key, []).append(decision)

        counts = {"updated": 0, "created": 0, "skipped": 0}
        errors: list[str] = []

        for (entity_kind, catalog_id), batch in groups.items():
            if cancel is not None and cancel.is_set():
                logger.info("Resolution cancelled before %s", entity_kind)
                break

            index = build_index(self.catalog.fetch_snapshot(catalog_id))
            records = self.local_store.list_all(entity_kind)
            by_id = {record.id: record for record in records}
            holders = {
                record.external_ref: record
                for record in records
                if record.external_ref
            }

            for decision in batch:
                if cancel is not None and cancel.is_set():
                    logger.info("Resolution cancelled at %s", decision.target_id)
                    break
                local = by_id.get(decision.target_id)
                label = local.display_name if local else decision.target_id
                try:
                    if local is None:
                        raise ValueError(
                            f"no {entity_kind} record with id {decision.target_id}"
                        )
                    result = self._apply_one(
                        decision, local, index, holders, catalog_id
                    )
                    counts[result] += 1
                except Exception as exc:
                    logger.error("Failed to resolve %s: %s", label, exc)
                    errors.append(f"{label}: {exc}")

        return ResolutionOutcome(
            updated=counts["updated"],
            created=counts["created"],
            skipped=counts["skipped"],
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Per-decision application
    # ------------------------------------------------------------------

    def _apply_one(
        self,
        decision: ConflictDecision,
        local: LocalRecord,
        index: RemoteIndex,
        holders: dict[str, LocalRecord],
        catalog_id: str,
    ) -> str:
        """Apply one decision; return the counter it contributes to."""
        if decision.resolution is None or decision.resolution == Resolution.SKIP:
            logger.debug("Skipping %s", local.display_name)
            return "skipped"

        remote = self._counterpart(decision, local, index)

        if decision.resolution == Resolution.USE_LOCAL:
            return self._use_local(local, remote, index, holders, catalog_id)
        return self._use_remote(local, remote, holders)

    def _counterpart(
        self,
        decision: ConflictDecision,
        local: LocalRecord,
        index: RemoteIndex,
    ) -> RemoteRecord | None:
        if decision.manual_override_id:
            remote = index.by_id.get(decision.manual_override_id)
            if remote is None:
                raise ValueError(
                    f"catalog item {decision.manual_override_id} "
                    "does not exist or is deleted"
                )
            return remote
        exact = match_exact(local, index)
        return exact.remote if exact is not None else None

    def _use_local(
        self,
        local: LocalRecord,
        remote: RemoteRecord | None,
        index: RemoteIndex,
        holders: dict[str, LocalRecord],
        catalog_id: str,
    ) -> str:
        if remote is not None:
            ensure_unlinked_elsewhere(holders, local, remote.external_id)
            if local.display_name != remote.display_name:
                values = [local.display_name] + list(remote.values[1:])
                self.catalog.update_item(catalog_id, remote.external_id, values)
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
            return "updated"

        is_valid, message = validate_display_name(local.display_name)
        if not is_valid:
            raise ValueError(message)
        values = [local.display_name]
        external_id = self.catalog.create_item(catalog_id, values)
        index.add(RemoteRecord(external_id=external_id, values=values))
        logger.info(
            "Created catalog item %s for %r", external_id, local.display_name
        )
        attach_reference(
            self.local_store, holders, local, external_id, self.clock()
        )
        return "created"

    def _use_remote(
        self,
        local: LocalRecord,
        remote: RemoteRecord | None,
        holders: dict[str, LocalRecord],
    ) -> str:
        if remote is None:
            raise ValueError("no catalog item to take the name from")
        ensure_unlinked_elsewhere(holders, local, remote.external_id)
        if local.display_name != remote.display_name:
            self.local_store.update_name(local.id, remote.display_name)
            logger.info(
                "Renamed %s %r -> %r",
                local.id,
                local.display_name,
                remote.display_name,
            )
        attach_reference(
            self.local_store, holders, local, remote.external_id, self.clock()
        )
        return "updated"
