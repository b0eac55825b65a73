"""Fuzzy text matching for anchor resolution.

Provides whitespace normalization, Levenshtein edit distance, and a sliding
window matcher that locates the closest window of a document to a target
string. All algorithms are pure Python and deterministic.
"""

import re
from typing import NamedTuple

_WHITESPACE_RUN = re.compile(r"\s+")


class FuzzyMatch(NamedTuple):
    """A window of text matched within an edit-distance budget."""

    offset: int  # Start of the window
    length: int  # Window length in characters
    distance: int  # Levenshtein distance between needle and window


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and trim both ends.

    Args:
        text: Raw text (may contain newlines, tabs, repeated spaces)

    Returns:
        Normalized text; empty string for empty or all-whitespace input
    """
    return _WHITESPACE_RUN.sub(" ", text).strip()


def levenshtein_distance(s1: str, s2: str) -> int:
    """Compute the Levenshtein edit distance between two strings.

    Uses the Wagner-Fischer dynamic programming algorithm with two rolling
    rows. Time complexity: O(m*n). Space complexity: O(min(m,n)).

    Args:
        s1: First string
        s2: Second string

    Returns:
        Minimum number of single-character insertions, deletions or
        substitutions turning s1 into s2
    """
    if s1 == s2:
        return 0
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    # Ensure s1 is the shorter string (optimize memory)
    if len(s1) > len(s2):
        s1, s2 = s2, s1

    prev_row = list(range(len(s1) + 1))
    curr_row = [0] * (len(s1) + 1)

    for i, c2 in enumerate(s2, start=1):
        curr_row[0] = i
        for j, c1 in enumerate(s1, start=1):
            if c1 == c2:
                curr_row[j] = prev_row[j - 1]
            else:
                curr_row[j] = 1 + min(
                    prev_row[j],  # deletion
                    curr_row[j - 1],  # insertion
                    prev_row[j - 1],  # substitution
                )
        prev_row, curr_row = curr_row, prev_row

    return prev_row[len(s1)]


def max_edit_distance(needle: str, threshold: float) -> int:
    """Edit-distance budget for a needle at the given threshold.

    Args:
        needle: Target text (normalized by the caller)
        threshold: Allowed distance as a fraction of the needle length

    Returns:
        floor(len(needle) * threshold)
    """
    return int(len(needle) * threshold)


def fuzzy_find(needle: str, haystack: str, threshold: float) -> FuzzyMatch | None:
    """Find the window of haystack closest to needle, in normalized space.

    Both strings are whitespace-normalized first. Every window length from
    ``max(1, n - max_distance)`` to ``n + max_distance`` is tried at every
    start position. Windows further than ``max_distance`` edits away are
    rejected. Window lengths are scanned shortest first and, within a
    length, by start position; on equal distance the first window in that
    order wins, so a shorter window beats an earlier start. Scanning stops
    at the first exact (zero-distance) window.

    Args:
        needle: Text to search for
        haystack: Text to search in
        threshold: Allowed distance as a fraction of the normalized needle length

    Returns:
        FuzzyMatch with offset/length into the *normalized* haystack, or None
    """
    needle = normalize_whitespace(needle)
    haystack = normalize_whitespace(haystack)

    if not needle:
        return None

    max_distance = max_edit_distance(needle, threshold)
    min_window = max(1, len(needle) - max_distance)
    max_window = min(len(needle) + max_distance, len(haystack))

    best: FuzzyMatch | None = None

    for window_len in range(min_window, max_window + 1):
        for start in range(len(haystack) - window_len + 1):
            distance = levenshtein_distance(needle, haystack[start : start + window_len])
            if distance > max_distance:
                continue

            # Strict comparison: the first window in scan order wins ties
            if best is None or distance < best.distance:
                best = FuzzyMatch(offset=start, length=window_len, distance=distance)
                if distance == 0:
                    return best

    return best


def map_normalized_span(text: str, start: int, end: int) -> tuple[int, int] | None:
    """Map a span of ``normalize_whitespace(text)`` back onto ``text``.

    Walks the original text once, counting the characters the normalized
    stream would have emitted: leading whitespace emits nothing, and each
    whitespace run emits a single position at its first character.

    When the normalized span ends on a space, the mapped end stops before
    that whitespace run; when it starts on a space, the mapped start is the
    first character of the run. Either way ``normalize_whitespace`` of the
    mapped slice equals the stripped normalized span.

    Args:
        text: Original, unnormalized text
        start: Span start in normalized coordinates
        end: Span end (exclusive) in normalized coordinates

    Returns:
        (start, end) offsets into text, or None if the span start is never
        reached (empty span or start past the end of the text) or the span
        maps to no non-whitespace character
    """
    if end <= start:
        return None

    original_start: int | None = None
    original_end: int | None = None
    emitted = 0
    prev_was_space = False
    idx = len(text) - len(text.lstrip())

    while idx < len(text) and emitted < end:
        is_space = text[idx].isspace()

        if is_space:
            # Only the first character of a run is emitted
            if not prev_was_space:
                if emitted == start:
                    original_start = idx
                emitted += 1
            prev_was_space = True
        else:
            if emitted == start:
                original_start = idx
            emitted += 1
            prev_was_space = False

        if emitted == end and original_end is None:
            original_end = idx if is_space else idx + 1

        idx += 1

    if original_start is None:
        return None
    if original_end is None:
        original_end = idx
    if original_end <= original_start:
        # Span covered nothing but a single collapsed whitespace run
        return None

    return original_start, original_end


def fuzzy_find_in_original(needle: str, text: str, threshold: float) -> FuzzyMatch | None:
    """Fuzzy-find needle in text and report the match in original offsets.

    Args:
        needle: Text to search for
        text: Original document text
        threshold: Allowed distance as a fraction of the normalized needle length

    Returns:
        FuzzyMatch whose offset/length index into ``text`` (distance is
        measured in normalized space), or None if no window qualifies
    """
    match = fuzzy_find(needle, text, threshold)
    if match is None:
        return None

    span = map_normalized_span(text, match.offset, match.offset + match.length)
    if span is None:
        return None

    original_start, original_end = span
    return FuzzyMatch(
        offset=original_start,
        length=original_end - original_start,
        distance=match.distance,
    )
