"""Local store implementations.

``InMemoryLocalStore`` is the reference implementation of the
``LocalStore`` protocol: records of every entity kind live in one dict,
``updated_at`` is bumped by name writes only, and an ``external_ref`` can
be held by at most one record per kind.

``JsonLocalStore`` keeps the same semantics and persists every record to a
single JSON file after each write.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Injected clock** -- timestamps come from the same clock as the
  engine's watermarks, so tests can order them deterministically.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from catalog_sync.errors import (
    DuplicateReferenceError,
    LocalStoreError,
    RecordNotFoundError,
)
from catalog_sync.sync.models import LocalRecord, utcnow
from catalog_sync.validators import validate_display_name

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class InMemoryLocalStore:
    """Local records held in memory.

    Args:
        clock: Returns the current aware datetime; used for ``updated_at``.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock
        self._records: dict[str, LocalRecord] = {}
        self._kinds: dict[str, str] = {}
        self._next_id = 1

    # ------------------------------------------------------------------
    # LocalStore protocol
    # ------------------------------------------------------------------

    def list_all(self, entity_kind: str) -> list[LocalRecord]:
        return [
            record
            for record_id, record in self._records.items()
            if self._kinds[record_id] == entity_kind
        ]

    def create(self, entity_kind: str, display_name: str) -> LocalRecord:
        is_valid, message = validate_display_name(display_name)
        if not is_valid:
            raise LocalStoreError(message)
        return self.add_record(entity_kind, display_name)

    def update_name(self, record_id: str, display_name: str) -> None:
        is_valid, message = validate_display_name(display_name)
        if not is_valid:
            raise LocalStoreError(message)
        record = self.get(record_id)
        self._put(
            record_id,
            record.model_copy(
                update={"display_name": display_name, "updated_at": self.clock()}
            ),
        )

    def update_sync_meta(
        self,
        record_id: str,
        external_ref: str | None = None,
        last_synced_at: datetime | None = None,
    ) -> None:
        record = self.get(record_id)
        changes: dict = {}
        if external_ref is not None:
            self._check_reference(
                self._kinds[record_id], record_id, external_ref
            )
            changes["external_ref"] = external_ref
        if last_synced_at is not None:
            changes["last_synced_at"] = last_synced_at
        if changes:
            self._put(record_id, record.model_copy(update=changes))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> LocalRecord:
        """Return the record with *record_id*.

        Raises:
            RecordNotFoundError: If no such record exists.
        """
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFoundError(record_id) from None

    def add_record(
        self,
        entity_kind: str,
        display_name: str,
        external_ref: str | None = None,
        updated_at: datetime | None = None,
        last_synced_at: datetime | None = None,
        record_id: str | None = None,
    ) -> LocalRecord:
        """Insert a record as-is, for seeding and loading.

        Unlike ``create`` every field can be given, including a watermark.
        """
        if record_id is None:
            record_id = self._new_id(entity_kind)
        if record_id in self._records:
            raise LocalStoreError(f"Local record '{record_id}' already exists")
        if external_ref is not None:
            self._check_reference(entity_kind, record_id, external_ref)
        self._kinds[record_id] = entity_kind
        record = LocalRecord(
            id=record_id,
            display_name=display_name,
            external_ref=external_ref,
            updated_at=updated_at or self.clock(),
            last_synced_at=last_synced_at,
        )
        self._put(record_id, record)
        return record

    def _new_id(self, entity_kind: str) -> str:
        while f"{entity_kind}-{self._next_id}" in self._records:
            self._next_id += 1
        record_id = f"{entity_kind}-{self._next_id}"
        self._next_id += 1
        return record_id

    def _check_reference(
        self, kind: str, record_id: str, external_ref: str
    ) -> None:
        for other_id, other in self._records.items():
            if (
                other_id != record_id
                and self._kinds[other_id] == kind
                and other.external_ref == external_ref
            ):
                raise DuplicateReferenceError(external_ref, other.display_name)

    def _put(self, record_id: str, record: LocalRecord) -> None:
        self._records[record_id] = record


class JsonLocalStore(InMemoryLocalStore):
    """Local records persisted to one JSON file.

    The file is read once on construction and rewritten after every
    successful write.

    Args:
        path: JSON file; created on the first write if it does not exist.
        clock: Returns the current aware datetime; used for ``updated_at``.
    """

    def __init__(
        self, path: str | Path, clock: Callable[[], datetime] = utcnow
    ) -> None:
        super().__init__(clock)
        self.path = Path(path)
        self._loading = False
        self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Read every record from ``path``; a missing file means no records."""
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise LocalStoreError(
                f"Cannot read local store {self.path}: {exc}"
            ) from exc

        self._loading = True
        try:
            for entry in data.get("records", []):
                self.add_record(
                    entry["kind"],
                    entry["display_name"],
                    external_ref=entry.get("external_ref"),
                    updated_at=_parse_time(entry.get("updated_at")),
                    last_synced_at=_parse_time(entry.get("last_synced_at")),
                    record_id=entry["id"],
                )
        finally:
            self._loading = False
        logger.debug("Loaded %d records from %s", len(self._records), self.path)

    def save(self) -> None:
        """Persist every record atomically.

        Writes to a temporary file in the same directory then atomically
        replaces the target.  Creates the parent directory if needed.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": STORE_VERSION,
            "records": [
                {
                    "id": record.id,
                    "kind": self._kinds[record.id],
                    "display_name": record.display_name,
                    "external_ref": record.external_ref,
                    "updated_at": record.updated_at.isoformat(),
                    "last_synced_at": (
                        record.last_synced_at.isoformat()
                        if record.last_synced_at
                        else None
                    ),
                }
                for record in self._records.values()
            ],
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _put(self, record_id: str, record: LocalRecord) -> None:
        super()._put(record_id, record)
        if not self._loading:
            self.save()


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
