"""Pair local records with catalog rows.

Precedence for one local record:

1. ``EXACT_ID``   -- its ``external_ref`` is a live row id.
2. ``EXACT_NAME`` -- a live row has the same normalised name.
3. ``FUZZY_NAME`` -- the most similar unclaimed row scores at or above the
   duplicate threshold.
4. ``NO_MATCH``.

Only exact matches are links.  A fuzzy match is a *potential duplicate*:
it is reported, and it blocks creation on both sides for the current run,
because a near-identical name may still denote a different entity.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .index import RemoteIndex
from .models import LocalRecord, MatchKind, MatchResult, RemoteRecord
from .similarity import normalize_name, score

DUPLICATE_THRESHOLD = 0.75


def match(
    local: LocalRecord,
    index: RemoteIndex,
    claimed: frozenset[str] | set[str] = frozenset(),
    threshold: float = DUPLICATE_THRESHOLD,
) -> MatchResult:
    """Match one local record against the remote index.

    Args:
        local: The record to match.
        index: Index of the run's catalog snapshot.
        claimed: External ids already taken by an exact match in this
            pass. Claimed rows are not fuzzy candidates.
        threshold: Minimum similarity for a ``FUZZY_NAME`` result.

    Returns:
        The highest-precedence ``MatchResult``.
    """
    exact = match_exact(local, index)
    if exact is not None:
        return exact
    return _match_fuzzy(local, index, claimed, threshold)


@dataclass
class MatchPlan:
    """Match results for every local record of one pass.

    Attributes:
        pairs: ``(local, result)`` in local-store order.
        claimed: External ids linked by an exact match.
        flagged: External ids that are the fuzzy counterpart of some local
            record; they must not be auto-created on the local side.
    """

    pairs: list[tuple[LocalRecord, MatchResult]] = field(default_factory=list)
    claimed: set[str] = field(default_factory=set)
    flagged: set[str] = field(default_factory=set)

    @property
    def unmatched_locals(self) -> list[LocalRecord]:
        """Local records without an exact link."""
        return [local for local, result in self.pairs if not result.is_link]


def match_all(
    records: list[LocalRecord],
    index: RemoteIndex,
    threshold: float = DUPLICATE_THRESHOLD,
) -> MatchPlan:
    """Match every local record, exact matches first.

    The exact sweep runs over all records before any fuzzy comparison, so
    a row claimed by an exact match is never offered as a fuzzy candidate
    to another record, whatever the local ordering.

    Args:
        records: Local records of one entity kind.
        index: Index of the run's catalog snapshot.
        threshold: Minimum similarity for a ``FUZZY_NAME`` result.

    Returns:
        A ``MatchPlan`` with one result per record, in input order.
    """
    results: list[MatchResult | None] = []
    plan = MatchPlan()
    for local in records:
        exact = match_exact(local, index)
        if exact is not None and exact.remote is not None:
            if exact.remote.external_id:
                plan.claimed.add(exact.remote.external_id)
        results.append(exact)

    for local, result in zip(records, results):
        if result is None:
            result = _match_fuzzy(local, index, plan.claimed, threshold)
            if (
                result.kind == MatchKind.FUZZY_NAME
                and result.remote is not None
                and result.remote.external_id
            ):
                plan.flagged.add(result.remote.external_id)
        plan.pairs.append((local, result))
    return plan


def find_similar(
    name: str,
    candidates: Iterable[str],
    threshold: float = DUPLICATE_THRESHOLD,
) -> tuple[str, float] | None:
    """Return the candidate most similar to *name*, if any reaches *threshold*.

    Used in the reverse direction: an unclaimed catalog row against the
    names of the local records.
    """
    best: tuple[str, float] | None = None
    for candidate in candidates:
        similarity = score(name, candidate)
        if similarity >= threshold and (best is None or similarity > best[1]):
            best = (candidate, similarity)
    return best


def match_exact(
    local: LocalRecord, index: RemoteIndex
) -> MatchResult | None:
    """Return an ``EXACT_ID`` or ``EXACT_NAME`` match, or ``None``."""
    if local.external_ref and local.external_ref in index.by_id:
        return MatchResult(
            kind=MatchKind.EXACT_ID,
            remote=index.by_id[local.external_ref],
            score=1.0,
        )
    remote = index.by_name.get(normalize_name(local.display_name))
    if remote is not None:
        return MatchResult(kind=MatchKind.EXACT_NAME, remote=remote, score=1.0)
    return None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _match_fuzzy(
    local: LocalRecord,
    index: RemoteIndex,
    claimed: frozenset[str] | set[str],
    threshold: float,
) -> MatchResult:
    best: RemoteRecord | None = None
    best_score = 0.0
    for remote in index.records:
        if remote.external_id and remote.external_id in claimed:
            continue
        similarity = score(local.display_name, remote.display_name)
        if similarity > best_score:
            best, best_score = remote, similarity

    if best is not None and best_score >= threshold:
        return MatchResult(
            kind=MatchKind.FUZZY_NAME, remote=best, score=best_score
        )
    return MatchResult(kind=MatchKind.NO_MATCH)
