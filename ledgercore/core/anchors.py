"""
Anchor finding in extracted statement text.

Extraction sometimes collapses whitespace ("TransactionDebitCreditBalance") and
sometimes fragments a header across lines, so anchors are compared in a
compacted form and keywords are searched within a sliding window of lines.
"""
import re
from typing import Iterable, List, Optional
import logging

from rapidfuzz import fuzz

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r'[^a-z0-9]')


class AnchorMatch:
    """Represents a found anchor with its line position and confidence."""
    def __init__(self, line_index: int, confidence: float, target: str):
        self.line_index = line_index
        self.confidence = confidence
        self.target = target

    def __repr__(self):
        return f"AnchorMatch('{self.target}', line={self.line_index}, confidence={self.confidence:.1f})"


def compact_alnum(text: str) -> str:
    """Lower-case and keep only ASCII letters and digits."""
    return _NON_ALNUM.sub('', (text or '').lower())


def split_lines(text: str) -> List[str]:
    """Split text into lines after normalizing line endings."""
    return (text or '').replace('\r\n', '\n').replace('\r', '\n').split('\n')


def compact_anchors(anchors: Iterable[str]) -> List[str]:
    """Compact anchors, dropping any that compact to nothing."""
    return [c for c in (compact_alnum(a) for a in anchors) if c]


def line_matches_anchor(line: str, compacted_anchors: List[str]) -> Optional[str]:
    """Return the first compacted anchor contained in the line, if any."""
    compact = compact_alnum(line)
    if not compact:
        return None
    for anchor in compacted_anchors:
        if anchor in compact:
            return anchor
    return None


def find_anchor_line(lines: List[str], anchors: Iterable[str], start: int = 0) -> Optional[AnchorMatch]:
    """
    Find the first line containing any anchor.

    Args:
        lines: Lines to search through
        anchors: Anchor strings (compared in compacted form)
        start: First line index to search

    Returns:
        AnchorMatch if found, None otherwise
    """
    compacted = compact_anchors(anchors)
    for i in range(start, len(lines)):
        anchor = line_matches_anchor(lines[i], compacted)
        if anchor:
            return AnchorMatch(i, 100.0, anchor)
    return None


def text_contains_anchor(text: str, anchors: Iterable[str]) -> Optional[str]:
    """Check anchor containment against the whole compacted text."""
    compact = compact_alnum(text)
    for anchor in compact_anchors(anchors):
        if anchor in compact:
            return anchor
    return None


def term_in_text(term: str, text: str, fuzzy_threshold: float = 100) -> bool:
    """Exact containment first, then partial-ratio fuzzy matching."""
    if term in text:
        return True
    if fuzzy_threshold >= 100 or not text:
        return False
    return fuzz.partial_ratio(term, text) >= fuzzy_threshold


def find_terms_window(lines: List[str], terms: Iterable[str], window_size: int = 6,
                      fuzzy_threshold: float = 100) -> Optional[AnchorMatch]:
    """
    Find a window of consecutive lines that contains every term.

    Args:
        lines: Raw lines to search
        terms: Keywords that must all appear inside the same window (case-insensitive)
        window_size: Number of lines per window
        fuzzy_threshold: Minimum partial-ratio score (0-100) for a non-exact hit

    Returns:
        AnchorMatch for the first window start, None if no window has all terms
    """
    lowered_terms = [t.lower() for t in terms if t and t.strip()]
    if not lowered_terms:
        return None

    for i in range(len(lines)):
        window_text = ' '.join(lines[i:i + window_size]).lower()
        if all(term_in_text(term, window_text, fuzzy_threshold) for term in lowered_terms):
            logger.debug(f"All terms {lowered_terms} found in window starting at line {i + 1}")
            return AnchorMatch(i, float(fuzzy_threshold), ' '.join(lowered_terms))

    return None
