"""Lookup structures over one catalog snapshot.

The index is built once per run from the snapshot fetched at the start of
the run; every match decision in that run is made against it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .models import RemoteRecord
from .similarity import normalize_name

logger = logging.getLogger(__name__)


@dataclass
class RemoteIndex:
    """Non-deleted catalog rows keyed by external id and by normalised name.

    Attributes:
        by_id: Rows keyed by ``external_id``.
        by_name: Rows keyed by normalised display name. When two rows
            share a name the later one in snapshot order wins.
        records: Non-deleted rows in snapshot order.
    """

    by_id: dict[str, RemoteRecord] = field(default_factory=dict)
    by_name: dict[str, RemoteRecord] = field(default_factory=dict)
    records: list[RemoteRecord] = field(default_factory=list)

    def add(self, record: RemoteRecord) -> None:
        """Insert *record*; deleted rows are ignored."""
        if record.deleted:
            return
        self.records.append(record)
        if record.external_id:
            self.by_id[record.external_id] = record
        key = normalize_name(record.display_name)
        if key:
            previous = self.by_name.get(key)
            if previous is not None and previous is not record:
                logger.warning(
                    "Catalog rows %s and %s share the name %r; using %s",
                    previous.external_id,
                    record.external_id,
                    record.display_name,
                    record.external_id,
                )
            self.by_name[key] = record

    def discard(self, record: RemoteRecord) -> None:
        """Remove *record* from every lookup it currently occupies."""
        self.records = [r for r in self.records if r is not record]
        if record.external_id and self.by_id.get(record.external_id) is record:
            del self.by_id[record.external_id]
        key = normalize_name(record.display_name)
        if self.by_name.get(key) is record:
            del self.by_name[key]


def build_index(snapshot: list[RemoteRecord]) -> RemoteIndex:
    """Build a ``RemoteIndex`` from a catalog snapshot.

    Args:
        snapshot: All rows of the catalog, tombstones included.

    Returns:
        Index of the non-deleted rows.
    """
    index = RemoteIndex()
    for record in snapshot:
        index.add(record)
    return index
