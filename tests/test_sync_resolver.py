"""Tests for applying operator decisions to pending conflicts."""

from __future__ import annotations

import threading

from catalog_sync.sync.models import ConflictDecision, Resolution
from catalog_sync.sync.resolver import ResolutionApplier

KIND = "room"
CATALOG = "62235"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decision(
    target_id: str,
    resolution: Resolution | None,
    override: str | None = None,
    catalog_id: str = CATALOG,
) -> ConflictDecision:
    return ConflictDecision(
        target_id=target_id,
        entity_kind=KIND,
        catalog_id=catalog_id,
        resolution=resolution,
        manual_override_id=override,
    )


def _applier(store, catalog, clock) -> ResolutionApplier:
    return ResolutionApplier(store, catalog, clock)


# ---------------------------------------------------------------------------
# Resolutions
# ---------------------------------------------------------------------------


class TestUseRemote:
    def test_overwrites_local_name_and_stamps(self, store, catalog, clock):
        local = store.add_record(KIND, "Library", external_ref="1")
        catalog.add("Main Library", "1")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_REMOTE)]
        )

        record = store.get(local.id)
        assert outcome.updated == 1
        assert outcome.errors == []
        assert record.display_name == "Main Library"
        assert record.last_synced_at >= record.updated_at
        assert catalog.writes == 0

    def test_without_counterpart_is_an_error(self, store, catalog, clock):
        local = store.add_record(KIND, "Kitchen")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_REMOTE)]
        )

        assert outcome.updated == 0
        assert outcome.errors == [
            "Kitchen: no catalog item to take the name from"
        ]


class TestUseLocal:
    def test_overwrites_catalog_name(self, store, catalog, clock):
        local = store.add_record(KIND, "Library", external_ref="1")
        catalog.add("Main Library", "1", extra=("Building B",))

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_LOCAL)]
        )

        assert outcome.updated == 1
        assert catalog.updated == [(CATALOG, "1", ["Library", "Building B"])]
        record = store.get(local.id)
        assert record.display_name == "Library"
        assert record.last_synced_at is not None

    def test_creates_item_when_no_counterpart(self, store, catalog, clock):
        local = store.add_record(KIND, "Kitchen")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_LOCAL)]
        )

        assert outcome.created == 1
        assert catalog.created == [(CATALOG, ["Kitchen"])]
        record = store.get(local.id)
        assert catalog.rows[record.external_ref].display_name == "Kitchen"

    def test_equal_names_only_refresh_watermark(self, store, catalog, clock):
        local = store.add_record(KIND, "Library", external_ref="1")
        catalog.add("Library", "1")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_LOCAL)]
        )

        assert outcome.updated == 1
        assert catalog.writes == 0
        assert store.get(local.id).last_synced_at is not None


class TestSkip:
    def test_skip_and_undecided_leave_record_untouched(
        self, store, catalog, clock
    ):
        first = store.add_record(KIND, "Library", external_ref="1")
        second = store.add_record(KIND, "Hall 1")
        catalog.add("Main Library", "1")

        outcome = _applier(store, catalog, clock).apply(
            [
                _decision(first.id, Resolution.SKIP),
                _decision(second.id, None),
            ]
        )

        assert outcome.skipped == 2
        assert store.get(first.id) == first
        assert store.get(second.id) == second
        assert catalog.writes == 0


class TestManualOverride:
    def test_attaches_to_given_item(self, store, catalog, clock):
        local = store.add_record(KIND, "Hall 1")
        catalog.add("Hall  1", "2")
        catalog.add("Hall 1 annex", "3")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_REMOTE, override="3")]
        )

        record = store.get(local.id)
        assert outcome.updated == 1
        assert record.external_ref == "3"
        assert record.display_name == "Hall 1 annex"

    def test_unknown_item_is_an_error(self, store, catalog, clock):
        local = store.add_record(KIND, "Library")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_LOCAL, override="99")]
        )

        assert outcome.errors == [
            "Library: catalog item 99 does not exist or is deleted"
        ]
        assert catalog.writes == 0

    def test_deleted_item_is_an_error(self, store, catalog, clock):
        local = store.add_record(KIND, "Library")
        catalog.add("Library", "4", deleted=True)

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_REMOTE, override="4")]
        )

        assert len(outcome.errors) == 1
        assert "does not exist or is deleted" in outcome.errors[0]

    def test_item_linked_elsewhere_is_refused(self, store, catalog, clock):
        store.add_record(KIND, "Library", external_ref="1")
        other = store.add_record(KIND, "Hall")
        catalog.add("Library", "1")

        outcome = _applier(store, catalog, clock).apply(
            [_decision(other.id, Resolution.USE_REMOTE, override="1")]
        )

        assert outcome.errors == [
            "Hall: external reference 1 is already linked to 'Library'"
        ]
        record = store.get(other.id)
        assert record.display_name == "Hall"
        assert record.external_ref is None


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


class TestBatching:
    def test_empty_batch_reads_nothing(self, store, catalog, clock):
        outcome = _applier(store, catalog, clock).apply([])

        assert catalog.fetches == 0
        assert outcome.updated == outcome.created == outcome.skipped == 0

    def test_one_snapshot_per_catalog(self, store, catalog, clock):
        first = store.add_record(KIND, "Library")
        second = store.add_record(KIND, "Kitchen")

        _applier(store, catalog, clock).apply(
            [
                _decision(first.id, Resolution.SKIP),
                _decision(second.id, Resolution.SKIP),
                _decision(first.id, Resolution.SKIP, catalog_id="134275"),
            ]
        )

        assert catalog.fetches == 2

    def test_unknown_target_does_not_stop_batch(self, store, catalog, clock):
        local = store.add_record(KIND, "Kitchen")

        outcome = _applier(store, catalog, clock).apply(
            [
                _decision("room-404", Resolution.USE_LOCAL),
                _decision(local.id, Resolution.USE_LOCAL),
            ]
        )

        assert outcome.errors == ["room-404: no room record with id room-404"]
        assert outcome.created == 1

    def test_cancelled_batch_writes_nothing(self, store, catalog, clock):
        local = store.add_record(KIND, "Kitchen")
        cancel = threading.Event()
        cancel.set()

        outcome = _applier(store, catalog, clock).apply(
            [_decision(local.id, Resolution.USE_LOCAL)], cancel
        )

        assert outcome.created == 0
        assert catalog.writes == 0


class TestEngineResolution:
    def test_detected_conflicts_can_be_resolved(self, engine, store, catalog):
        store.add_record(KIND, "Library", external_ref="1")
        catalog.add("Main Library", "1")

        decisions = engine.detect_conflicts(KIND, CATALOG)
        decided = [
            d.model_copy(update={"resolution": Resolution.USE_REMOTE})
            for d in decisions
        ]
        outcome = engine.resolve_conflicts(decided)

        assert outcome.updated == 1
        assert engine.detect_conflicts(KIND, CATALOG) == []
        pull = engine.pull_sync(KIND, CATALOG)
        assert pull.in_agreement == 1
        assert pull.pending_conflicts == []
