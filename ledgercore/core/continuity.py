"""
Running-balance continuity check for parsed statements.
"""
from collections import Counter
from decimal import Decimal
from typing import List, Optional, Sequence
import logging

from ..models.schema import ContinuityQuality, ContinuityResult, ContinuityStatus, ParsedTransaction
from ..models.template import QualityConfig, TemplateConfig

logger = logging.getLogger(__name__)

EPSILON = Decimal('0.01')

PREV_BALANCE_MISSING = "PREV_BALANCE_MISSING"
CURR_BALANCE_MISSING = "CURR_BALANCE_MISSING"


def chronological(transactions: Sequence[ParsedTransaction]) -> List[ParsedTransaction]:
    """
    Order rows oldest first.

    Newest-first statements are reversed before the stable date sort so
    same-day rows keep their running-balance order.
    """
    rows = list(transactions)
    if len(rows) > 1 and rows[0].date > rows[-1].date:
        rows.reverse()
    return sorted(rows, key=lambda t: t.date)


def check_continuity(transactions: Sequence[ParsedTransaction],
                     template: Optional[TemplateConfig] = None,
                     quality: Optional[QualityConfig] = None) -> ContinuityResult:
    """
    Check that ``balance[i-1] + amount[i] == balance[i]`` for adjacent rows.

    Args:
        transactions: Parsed rows of one statement
        template: Template whose quality settings apply
        quality: Explicit quality settings, overriding the template's

    Returns:
        ContinuityResult. ``needs_review`` is only raised when enough pairs
        were checked and the pass ratio is below the threshold.
    """
    config = quality or (template.quality if template else QualityConfig())

    if not config.enable_continuity_gate:
        return ContinuityResult(
            needs_review=False,
            quality=ContinuityQuality(
                status=ContinuityStatus.DISABLED,
                threshold=config.continuity_threshold,
                min_checked=config.min_continuity_checked,
            ),
        )

    rows = chronological(transactions)
    checked = 0
    consistent = 0
    skipped = Counter()

    for prev, curr in zip(rows, rows[1:]):
        if prev.balance is None:
            skipped[PREV_BALANCE_MISSING] += 1
            continue
        if curr.balance is None:
            skipped[CURR_BALANCE_MISSING] += 1
            continue

        checked += 1
        if abs(prev.balance + curr.amount - curr.balance) <= EPSILON:
            consistent += 1
        else:
            logger.debug(
                f"Continuity break at row {curr.source.row_index}: "
                f"{prev.balance} + {curr.amount} != {curr.balance}"
            )

    pass_ratio = consistent / checked if checked else None

    if checked == 0 or checked < config.min_continuity_checked:
        status = ContinuityStatus.UNTESTED
        needs_review = False
    elif pass_ratio < config.continuity_threshold:
        status = ContinuityStatus.FAILED
        needs_review = True
    else:
        status = ContinuityStatus.PASSED
        needs_review = False

    if needs_review:
        logger.warning(f"Balance continuity low: {consistent}/{checked} pairs consistent")

    return ContinuityResult(
        needs_review=needs_review,
        quality=ContinuityQuality(
            status=status,
            checked=checked,
            consistent=consistent,
            total_pairs=max(len(rows) - 1, 0),
            skipped=sum(skipped.values()),
            skipped_reasons=dict(skipped),
            pass_ratio=pass_ratio,
            threshold=config.continuity_threshold,
            min_checked=config.min_continuity_checked,
        ),
    )
