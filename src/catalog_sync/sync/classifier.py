"""Decide what to do with a linked local/remote pair.

Only the display name is compared.  The watermark (``last_synced_at``) is
the single source of truth for which side changed: a record that has not
been written since the last confirmed agreement is stale, so the remote
name wins.  Without a watermark there is no way to order the two edits and
the pair is always a conflict.
"""

from __future__ import annotations

from .models import (
    Classification,
    ClassificationKind,
    LocalRecord,
    RemoteRecord,
    UpdateDirection,
)
from .similarity import normalize_name

AGREEMENT = Classification(kind=ClassificationKind.AGREEMENT)
PULL_FROM_REMOTE = Classification(
    kind=ClassificationKind.AUTO_UPDATE,
    direction=UpdateDirection.PULL_FROM_REMOTE,
)
CONFLICT = Classification(kind=ClassificationKind.CONFLICT)


def local_untouched_since_sync(local: LocalRecord) -> bool:
    """True if *local* has a watermark and no write after it."""
    return (
        local.last_synced_at is not None
        and local.updated_at <= local.last_synced_at
    )


def classify(local: LocalRecord, remote: RemoteRecord) -> Classification:
    """Classify a matched pair.

    Args:
        local: The local record.
        remote: Its exact-matched catalog row.

    Returns:
        ``AGREEMENT`` when the normalised names are equal,
        ``AUTO_UPDATE(PULL_FROM_REMOTE)`` when the names differ but the
        local record is untouched since its watermark, ``CONFLICT``
        otherwise.
    """
    if normalize_name(local.display_name) == normalize_name(
        remote.display_name
    ):
        return AGREEMENT
    if local_untouched_since_sync(local):
        return PULL_FROM_REMOTE
    return CONFLICT
