"""
Transaction section segmentation.

Pure function of the input text and template: no I/O, same output for the
same input.
"""
import re
from typing import List, Optional
import logging

from .anchors import compact_anchors, find_anchor_line, line_matches_anchor, split_lines
from .registry import get_template
from ..models.schema import SegmentDebug, SegmentResult
from ..models.template import TemplateConfig

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = "commbank_manual_amount_balance"


def _stop_reason(anchor: str) -> str:
    return re.sub(r'[^A-Z0-9]+', '_', anchor.upper()).strip('_')


def segment_transaction_section(text: str, template: Optional[TemplateConfig] = None) -> SegmentResult:
    """
    Locate the transaction table and strip repeated header and page noise.

    Args:
        text: Raw extracted statement text
        template: Template whose segment rules apply (defaults to the
            transaction summary layout)

    Returns:
        SegmentResult with the kept lines and debug counters
    """
    if template is None:
        template = get_template(DEFAULT_TEMPLATE_ID)

    lines = split_lines(text)
    header_anchors = compact_anchors(template.header_anchors)
    stop_anchors = [(a, c) for a, c in zip(template.segment.stop_anchors,
                                            compact_anchors(template.segment.stop_anchors))]
    remove_patterns = [re.compile(p, re.IGNORECASE) for p in template.segment.remove_line_patterns]

    header = find_anchor_line(lines, template.header_anchors)
    if header and template.segment.start_after_header:
        start_index = header.line_index + 1
    else:
        start_index = 0

    if not header:
        logger.warning(f"Header anchor not found for {template.id}, using full text")

    kept: List[str] = []
    removed_lines = 0
    end_line = None
    stop_reason = None

    for i in range(start_index, len(lines)):
        line = lines[i]

        stop = line_matches_anchor(line, [c for _, c in stop_anchors])
        if stop:
            end_line = i + 1
            stop_reason = _stop_reason(next(a for a, c in stop_anchors if c == stop))
            break

        # Page-break repetition of the table header
        if line_matches_anchor(line, header_anchors):
            removed_lines += 1
            continue

        if any(p.search(line) for p in remove_patterns):
            removed_lines += 1
            continue

        kept.append(line)

    debug = SegmentDebug(
        start_line=header.line_index + 1 if header else None,
        end_line=end_line,
        removed_lines=removed_lines,
        header_found=header is not None,
        stop_reason=stop_reason,
    )
    logger.debug(f"Segmented {template.id}: kept={len(kept)} removed={removed_lines} end_line={end_line}")

    return SegmentResult(section_text='\n'.join(kept).strip(), debug=debug)


def segment(text: str, template_id: str = DEFAULT_TEMPLATE_ID) -> SegmentResult:
    """Segment using a registered template id."""
    return segment_transaction_section(text, get_template(template_id))
