"""Display-name similarity used for duplicate detection.

Names are compared after ``normalize_name`` (trim + lowercase).  The
score is 1.0 for equal names, 0.0 when either side is empty, a flat 0.8
when one name contains the other (abbreviation/expansion such as
``"Studio"`` / ``"Studio 1"``), and otherwise the Levenshtein ratio
``1 - distance / max(len(a), len(b))``.
"""

from __future__ import annotations

SUBSTRING_SCORE = 0.8


def normalize_name(name: str) -> str:
    """Return the comparison form of a display name."""
    return name.strip().lower()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert, delete and substitute costs."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def score(a: str, b: str) -> float:
    """Score how close two display names are, in ``[0, 1]``.

    Args:
        a: First display name.
        b: Second display name.

    Returns:
        1.0 for names equal after normalisation, 0.0 if either is empty,
        0.8 if one contains the other, else the edit-distance ratio.
    """
    s1 = normalize_name(a)
    s2 = normalize_name(b)

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    # Substring shortcut takes precedence over the edit-distance ratio
    if s1 in s2 or s2 in s1:
        return SUBSTRING_SCORE

    return 1 - edit_distance(s1, s2) / max(len(s1), len(s2))
