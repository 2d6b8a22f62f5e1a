"""Collaborator protocols consumed by the sync engine.

The engine is generic over entity kinds: anything that can list records
of a kind, create one by name, rename one and store its sync metadata can
take part.  ``catalog_sync.store`` and ``catalog_sync.core.client``
provide the bundled implementations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import LocalRecord, RemoteRecord


class LocalStore(Protocol):
    """Read/write access to local records of every entity kind."""

    def list_all(self, entity_kind: str) -> list[LocalRecord]:
        """Return every record of *entity_kind*."""
        ...  # pragma: no cover

    def create(self, entity_kind: str, display_name: str) -> LocalRecord:
        """Create a record of *entity_kind* and return it."""
        ...  # pragma: no cover

    def update_name(self, record_id: str, display_name: str) -> None:
        """Rename a record. Bumps its ``updated_at``."""
        ...  # pragma: no cover

    def update_sync_meta(
        self,
        record_id: str,
        external_ref: str | None = None,
        last_synced_at: datetime | None = None,
    ) -> None:
        """Store sync metadata. ``None`` leaves a field unchanged.

        Must not bump ``updated_at``.

        Raises:
            DuplicateReferenceError: If another record of the same kind
                already holds *external_ref*.
        """
        ...  # pragma: no cover


class RemoteCatalog(Protocol):
    """Access to the external catalog service."""

    def fetch_snapshot(self, catalog_id: str) -> list[RemoteRecord]:
        """Return every row of the catalog, tombstones included.

        Raises:
            CatalogTransportError: If the catalog cannot be read.
        """
        ...  # pragma: no cover

    def create_item(self, catalog_id: str, values: list[str]) -> str:
        """Create a row and return its ``external_id``."""
        ...  # pragma: no cover

    def update_item(
        self, catalog_id: str, external_id: str, values: list[str]
    ) -> None:
        """Replace the values of an existing row."""
        ...  # pragma: no cover
