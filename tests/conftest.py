"""Shared pytest fixtures for catalog-sync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from catalog_sync.config import Config
from catalog_sync.errors import CatalogTransportError
from catalog_sync.store import InMemoryLocalStore
from catalog_sync.sync.engine import SyncEngine
from catalog_sync.sync.models import RemoteRecord

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
# Seeded records use times around T0; the clock runs a day later.
CLOCK_START = T0 + timedelta(days=1)


class TickingClock:
    """Clock that advances one second per call from *start*."""

    def __init__(self, start: datetime = CLOCK_START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FakeCatalog:
    """In-memory ``RemoteCatalog`` that records every write."""

    def __init__(self) -> None:
        self.rows: dict[str, RemoteRecord] = {}
        self.created: list[tuple[str, list[str]]] = []
        self.updated: list[tuple[str, str, list[str]]] = []
        self.fetches = 0
        self.fetch_error: Exception | None = None
        self.failing_names: set[str] = set()
        self._next_id = 1000

    def add(
        self,
        name: str,
        external_id: str | None = None,
        deleted: bool = False,
        extra: tuple[str, ...] = (),
    ) -> RemoteRecord:
        if external_id is None:
            external_id = str(self._next_id)
            self._next_id += 1
        row = RemoteRecord(
            external_id=external_id,
            values=[name, *extra],
            deleted=deleted,
        )
        self.rows[external_id] = row
        return row

    @property
    def writes(self) -> int:
        return len(self.created) + len(self.updated)

    def live_names(self) -> list[str]:
        return [r.display_name for r in self.rows.values() if not r.deleted]

    # RemoteCatalog protocol

    def fetch_snapshot(self, catalog_id: str) -> list[RemoteRecord]:
        self.fetches += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.rows.values())

    def create_item(self, catalog_id: str, values: list[str]) -> str:
        if values[0] in self.failing_names:
            raise CatalogTransportError("HTTP 500 from catalog", 500)
        row = self.add(values[0], extra=tuple(values[1:]))
        self.created.append((catalog_id, list(values)))
        return row.external_id

    def update_item(
        self, catalog_id: str, external_id: str, values: list[str]
    ) -> None:
        if values[0] in self.failing_names:
            raise CatalogTransportError("HTTP 500 from catalog", 500)
        self.rows[external_id] = RemoteRecord(
            external_id=external_id, values=list(values)
        )
        self.updated.append((catalog_id, external_id, list(values)))


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    return InMemoryLocalStore(clock=clock)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def engine(store, catalog, clock):
    return SyncEngine(store, catalog, clock=clock)


@pytest.fixture
def mock_config():
    """Create a Config instance for transport tests."""
    return Config(
        login="bot@example.com",
        security_key="secret-key",
        api_url="https://api.example.com/v4",
        auth_url="https://accounts.example.com/api/v4/auth",
        timeout=5.0,
    )
