"""Anchor resolution: relocating a commented text span in an edited document.

Resolution runs a three-stage cascade and returns the first confident result:
1. Line hint: literal search within +/-20 lines of the cached line hint
2. Global exact: every literal occurrence, ranked by context score
3. Fuzzy: whitespace-normalized sliding-window match, validated by context

Resolution is pure; updating comment status and line hints is the job of
``marginalia.reconcile``.
"""

import re

from marginalia.fuzzy import fuzzy_find_in_original, normalize_whitespace
from marginalia.models import CommentTarget, ResolvedAnchor
from marginalia.utils.logging import get_logger

LINE_HINT_WINDOW = 20
CONTEXT_LENGTH = 50
EXACT_CONTEXT_SCORE = 2.0
HEADING_BONUS = 2.0
CONTEXT_MISMATCH_PENALTY = -1.0

_HEADING_LINE = re.compile(r"^(#{1,6}[ \t]+.*)$", re.MULTILINE)


def compute_line_number(text: str, offset: int) -> int:
    """Zero-based line number containing ``offset``."""
    return text.count("\n", 0, max(0, offset))


def extract_context(text: str, offset: int, length: int) -> str:
    """Slice ``length`` characters from ``offset``, clamped to the text bounds."""
    start = max(0, offset)
    end = min(len(text), offset + length)
    if end <= start:
        return ""
    return text[start:end]


def find_heading_context(text: str, offset: int) -> str | None:
    """Return the last Markdown ATX heading line starting before ``offset``."""
    headings = _HEADING_LINE.findall(text[:offset])
    return headings[-1] if headings else None


def _overlap_score(expected: str, actual: str, *, at_end: bool) -> float:
    """Score agreement between recorded and actual context.

    Identical normalized strings score EXACT_CONTEXT_SCORE. Otherwise the
    score is the length of the common run at the join point divided by the
    shorter normalized length: trailing characters for a prefix
    (``at_end=True``), leading characters for a suffix. The result is never
    negative.
    """
    if not expected or not actual:
        return 0.0

    norm_expected = normalize_whitespace(expected)
    norm_actual = normalize_whitespace(actual)

    if norm_expected == norm_actual:
        return EXACT_CONTEXT_SCORE

    min_len = min(len(norm_expected), len(norm_actual))
    if min_len == 0:
        return 0.0

    if at_end:
        norm_expected = norm_expected[::-1]
        norm_actual = norm_actual[::-1]

    matching = 0
    for c1, c2 in zip(norm_expected[:min_len], norm_actual[:min_len]):
        if c1 != c2:
            break
        matching += 1

    return matching / min_len


def _contradicts(expected: str, actual: str, score: float) -> bool:
    # Both sides have text, yet not even the character at the join agrees
    return score == 0.0 and bool(expected.strip()) and bool(actual.strip())


def score_context(target: CommentTarget, doc_text: str, start: int, end: int) -> float:
    """Score how well a candidate span's surroundings agree with the anchor.

    Components (summed; a context the anchor did not record contributes 0):
    - prefix vs. the same number of characters before ``start``
    - suffix vs. the same number of characters after ``end``
    - HEADING_BONUS if the nearest heading before ``start`` normalizes to the
      recorded heading_context

    A candidate whose surroundings contradict both the recorded prefix and
    the recorded suffix (no common character at either join point) also
    gets CONTEXT_MISMATCH_PENALTY. A single contradicting side scores 0.

    Args:
        target: Anchor descriptor
        doc_text: Current document text
        start: Candidate span start
        end: Candidate span end (exclusive)

    Returns:
        Context score; higher is better, negative means contradicted
    """
    score = 0.0
    prefix_contradicted = suffix_contradicted = False

    if target.prefix:
        actual_prefix = doc_text[max(0, start - len(target.prefix)) : start]
        prefix_score = _overlap_score(target.prefix, actual_prefix, at_end=True)
        prefix_contradicted = _contradicts(target.prefix, actual_prefix, prefix_score)
        score += prefix_score

    if target.suffix:
        actual_suffix = doc_text[end : end + len(target.suffix)]
        suffix_score = _overlap_score(target.suffix, actual_suffix, at_end=False)
        suffix_contradicted = _contradicts(target.suffix, actual_suffix, suffix_score)
        score += suffix_score

    if prefix_contradicted and suffix_contradicted:
        score += CONTEXT_MISMATCH_PENALTY

    if target.heading_context:
        heading = find_heading_context(doc_text, start)
        if heading and normalize_whitespace(heading) == normalize_whitespace(
            target.heading_context
        ):
            score += HEADING_BONUS

    return score


def _resolve_by_line_hint(target: CommentTarget, doc_text: str) -> ResolvedAnchor | None:
    if target.line_hint is None:
        return None

    lines = doc_text.split("\n")
    start_line = max(0, target.line_hint - LINE_HINT_WINDOW)
    end_line = min(len(lines), target.line_hint + LINE_HINT_WINDOW + 1)
    if start_line >= end_line:
        return None

    # +1 for each newline consumed by split()
    region_start = sum(len(line) + 1 for line in lines[:start_line])
    region_end = region_start + sum(len(line) + 1 for line in lines[start_line:end_line])
    region_end = min(region_end, len(doc_text))

    idx = doc_text.find(target.exact, region_start, region_end)
    if idx == -1:
        return None

    return ResolvedAnchor(
        start=idx,
        end=idx + len(target.exact),
        line=compute_line_number(doc_text, idx),
        stage=1,
    )


def _resolve_by_exact_search(target: CommentTarget, doc_text: str) -> ResolvedAnchor | None:
    best_start = -1
    best_score = 0.0

    idx = doc_text.find(target.exact)
    while idx != -1:
        score = score_context(target, doc_text, idx, idx + len(target.exact))
        # Strict comparison keeps the first occurrence on ties
        if best_start == -1 or score > best_score:
            best_start, best_score = idx, score
        idx = doc_text.find(target.exact, idx + 1)

    if best_start == -1:
        return None

    return ResolvedAnchor(
        start=best_start,
        end=best_start + len(target.exact),
        line=compute_line_number(doc_text, best_start),
        stage=2,
    )


def _resolve_by_fuzzy_match(
    target: CommentTarget, doc_text: str, threshold: float
) -> ResolvedAnchor | None:
    match = fuzzy_find_in_original(target.exact, doc_text, threshold)
    if match is None:
        return None

    start = match.offset
    end = start + match.length

    if score_context(target, doc_text, start, end) < 0:
        get_logger().debug("Rejected fuzzy candidate with contradicting context", start=start)
        return None

    return ResolvedAnchor(
        start=start,
        end=end,
        line=compute_line_number(doc_text, start),
        stage=3,
    )


def resolve_anchor(
    target: CommentTarget, doc_text: str, threshold: float = 0.3
) -> ResolvedAnchor | None:
    """Locate an anchor's text span in the current document.

    Stages are tried in order and the first hit wins:

    1. If ``line_hint`` is set, the first literal occurrence of ``exact``
       within +/-LINE_HINT_WINDOW lines of it.
    2. Every literal occurrence in the document, ranked by
       ``score_context`` (first occurrence wins ties).
    3. Whitespace-insensitive fuzzy match within
       ``floor(len(exact) * threshold)`` edits, rejected if its context
       score is negative.

    Args:
        target: Anchor descriptor
        doc_text: Full current document text
        threshold: Fuzziness in [0, 1]; values outside are clamped

    Returns:
        ResolvedAnchor tagged with the stage that found it, or None if the
        span cannot be located (including an empty ``exact``)
    """
    if not target.exact:
        return None

    threshold = min(max(threshold, 0.0), 1.0)

    resolved = (
        _resolve_by_line_hint(target, doc_text)
        or _resolve_by_exact_search(target, doc_text)
        or _resolve_by_fuzzy_match(target, doc_text, threshold)
    )

    if resolved is not None:
        get_logger().debug(
            "Resolved anchor", stage=resolved.stage, start=resolved.start, line=resolved.line
        )
    return resolved


def create_target(
    doc_text: str,
    offset: int,
    selected_text: str,
    context_length: int = CONTEXT_LENGTH,
) -> CommentTarget:
    """Build the anchor descriptor for a selection in the document.

    Args:
        doc_text: Full document text at creation time
        offset: Offset where the selection starts
        selected_text: The selected text
        context_length: Characters of prefix/suffix context to record

    Returns:
        CommentTarget with prefix, suffix, heading context and line hint

    Raises:
        ValueError: If the selection is empty or does not match the document at offset
    """
    if not selected_text:
        raise ValueError("Cannot anchor a comment to an empty selection")
    if offset < 0 or doc_text[offset : offset + len(selected_text)] != selected_text:
        raise ValueError(f"Selected text does not occur at offset {offset}")

    end = offset + len(selected_text)
    return CommentTarget(
        exact=selected_text,
        prefix=extract_context(doc_text, offset - context_length, context_length),
        suffix=extract_context(doc_text, end, context_length),
        heading_context=find_heading_context(doc_text, offset),
        line_hint=compute_line_number(doc_text, offset),
    )
