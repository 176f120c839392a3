"""Edit-distance helpers for typo-tolerant matching.

The caller always supplies the edit budget (``fuzz``); there are no implicit
length-based defaults. ``max_distance`` lets the DP bail out early once a
candidate can no longer fit in the budget.
"""

from __future__ import annotations

from collections.abc import Iterable


def levenshtein_distance(s1: str, s2: str, max_distance: int | None = None) -> int:
    """Calculate the Levenshtein (edit) distance between two strings.

    Uses dynamic programming for O(m*n) time complexity, with optional
    early termination when distance exceeds max_distance.

    Args:
        s1: First string.
        s2: Second string.
        max_distance: If provided, return max_distance+1 early when
            distance is guaranteed to exceed this threshold.

    Returns:
        The minimum number of single-character edits (insertions,
        deletions, substitutions) needed to change s1 into s2.
        If max_distance is set and exceeded, returns max_distance+1.

    Examples:
        >>> levenshtein_distance("kitten", "sitting")
        3
        >>> levenshtein_distance("apple", "aple")
        1
        >>> levenshtein_distance("", "abc")
        3
    """
    if max_distance is not None and abs(len(s1) - len(s2)) > max_distance:
        return max_distance + 1
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    # Shorter string as columns: two rows of len(shorter)+1
    if len(s1) > len(s2):
        s1, s2 = s2, s1

    m, n = len(s1), len(s2)
    prev_row = list(range(m + 1))
    curr_row = [0] * (m + 1)

    for j in range(1, n + 1):
        curr_row[0] = j
        row_min = curr_row[0]
        for i in range(1, m + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            curr_row[i] = min(
                prev_row[i] + 1,  # deletion
                curr_row[i - 1] + 1,  # insertion
                prev_row[i - 1] + cost,  # substitution
            )
            row_min = min(row_min, curr_row[i])

        if max_distance is not None and row_min > max_distance:
            return max_distance + 1

        prev_row, curr_row = curr_row, prev_row

    return prev_row[m]


def closest_distance(term: str, vocabulary: Iterable[str], max_distance: int) -> int | None:
    """Smallest edit distance from ``term`` to any vocabulary entry within budget.

    Returns ``None`` when nothing is within ``max_distance``.
    """
    best: int | None = None
    for candidate in vocabulary:
        budget = max_distance if best is None else min(max_distance, best - 1)
        if budget < 0:
            break
        distance = levenshtein_distance(term, candidate, budget)
        if distance <= budget:
            best = distance
            if best == 0:
                break
    return best
