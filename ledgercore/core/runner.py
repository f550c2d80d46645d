"""
End-to-end parsing orchestration.
"""
from pathlib import Path
from typing import List, Optional
import logging

from .account import DEFAULT_ACCOUNT_ID, extract_account_meta, resolve_account_id
from .continuity import check_continuity
from .detectors import TemplateDetector
from .ledger import NormalizationContext, normalize_transactions
from .registry import UNKNOWN_TEMPLATE
from .segment import segment_transaction_section
from .tables import WarningReason, parse_transactions
from ..models.schema import (
    ContinuityQuality,
    ContinuityStatus,
    ParsedStatement,
    ParseWarning,
    StatementQuality,
)

logger = logging.getLogger(__name__)

MIN_TRANSACTIONS = 5
LOW_COVERAGE_RATIO = 0.10
PREVIEW_CHARS = 500

TEXT_MISSING = "TEXT_MISSING"
TEMPLATE_UNKNOWN = "TEMPLATE_UNKNOWN"
HEADER_NOT_FOUND = "HEADER_NOT_FOUND"
TRANSACTIONS_TOO_FEW = "TRANSACTIONS_TOO_FEW"
BALANCE_CONTINUITY_LOW = "BALANCE_CONTINUITY_LOW"
PARSE_LOW_COVERAGE = "PARSE_LOW_COVERAGE"

# Always send the file to review
BLOCKING_WARNINGS = {WarningReason.PERIOD_NOT_FOUND}
# Send the file to review unless balance continuity confirmed the rows
SIGN_WARNINGS = {WarningReason.AMOUNT_SIGN_UNCERTAIN, WarningReason.AMBIGUOUS_AMOUNT}
# Always send the file to review on debit/credit layouts
DEBIT_CREDIT_BLOCKING_WARNINGS = {WarningReason.DEBIT_CREDIT_BOTH_PRESENT}
# Reasons that mark a debit/credit parse as degraded; outliers then block too
DEGRADED_REASONS = {
    WarningReason.AMOUNT_SIGN_UNCERTAIN,
    WarningReason.AMBIGUOUS_AMOUNT,
    BALANCE_CONTINUITY_LOW,
    PARSE_LOW_COVERAGE,
}


def load_text(path: Path) -> Optional[str]:
    """
    Read extracted statement text.

    Returns:
        The text, or None when the file does not exist ("no data")
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Statement text not found: {path}")
        return None
    return path.read_text(encoding='utf-8', errors='replace')


def _unique(items: List[str]) -> List[str]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


class StatementPipeline:
    """Runs detection, segmentation, parsing, gating and normalization for one file."""

    def __init__(self, template_id: Optional[str] = None, detector: TemplateDetector = None,
                 verbose: bool = False):
        self.detector = detector or TemplateDetector()
        self.template = None
        if template_id:
            # Unknown explicit ids fail loudly
            self.template = self.detector.registry.get(template_id)

        if verbose:
            logging.basicConfig(level=logging.DEBUG)

    def _empty(self, file_id: str, file_hash: Optional[str], account_id: Optional[str],
               reason: str, template_id: str = UNKNOWN_TEMPLATE, bank_id: str = "unknown") -> ParsedStatement:
        return ParsedStatement(
            file_id=file_id,
            file_hash=file_hash,
            template_id=template_id,
            bank_id=bank_id,
            account_id=account_id or DEFAULT_ACCOUNT_ID,
            needs_review=True,
            quality=StatementQuality(
                header_found=False,
                continuity=ContinuityQuality(status=ContinuityStatus.UNTESTED),
                needs_review_reasons=[reason],
            ),
        )

    def parse(self, text: Optional[str], file_id: str, file_hash: Optional[str] = None,
              account_id: Optional[str] = None) -> ParsedStatement:
        """
        Parse statement text into a ParsedStatement.

        Args:
            text: Extracted statement text, None when unavailable
            file_id: Identifier of the source file
            file_hash: Content hash of the source file
            account_id: Account id hint used when the header has no identity

        Returns:
            ParsedStatement. Data problems surface as review reasons, never as exceptions.
        """
        if text is None or not text.strip():
            logger.warning(f"{file_id}: no statement text")
            return self._empty(file_id, file_hash, account_id, TEXT_MISSING)

        template = self.template
        if template is None:
            template_id = self.detector.detect_template(text)
            if template_id == UNKNOWN_TEMPLATE:
                return self._empty(file_id, file_hash, account_id, TEMPLATE_UNKNOWN)
            template = self.detector.registry.get(template_id)

        segment = segment_transaction_section(text, template)
        parsed = parse_transactions(segment.section_text, template, full_text=text)
        continuity = check_continuity(parsed.transactions, template)

        meta = extract_account_meta(text, template.bank, template.id, account_id or DEFAULT_ACCOUNT_ID)
        resolved_account = resolve_account_id(template.bank, meta, account_id)
        meta = meta.model_copy(update={"account_id": resolved_account})

        context = NormalizationContext(
            file_id=file_id,
            bank_id=template.bank,
            account_id=resolved_account,
            template_id=template.id,
            file_hash=file_hash,
        )
        transactions = normalize_transactions(parsed.transactions, parsed.warnings, context)

        reasons, non_blocking = self._review_reasons(
            segment.debug.header_found, len(parsed.transactions), parsed.warnings, continuity.quality,
            dropped_blocks=parsed.dropped_blocks,
            debit_credit_columns=template.parse.has_debit_credit_columns,
        )

        statement = ParsedStatement(
            file_id=file_id,
            file_hash=file_hash,
            template_id=template.id,
            bank_id=template.bank,
            account_id=resolved_account,
            account_meta=meta,
            period=parsed.period,
            transactions=transactions,
            warnings=parsed.warnings,
            needs_review=bool(reasons),
            quality=StatementQuality(
                header_found=segment.debug.header_found,
                continuity=continuity.quality,
                needs_review_reasons=reasons,
                non_blocking_warnings=non_blocking,
            ),
            debug=segment.debug,
            section_text_preview=segment.section_text[:PREVIEW_CHARS],
        )
        logger.info(
            f"{file_id}: template={template.id} account={resolved_account} "
            f"transactions={len(transactions)} needs_review={statement.needs_review}"
        )
        return statement

    def _review_reasons(self, header_found: bool, row_count: int, warnings: List[ParseWarning],
                        continuity: ContinuityQuality, dropped_blocks: int = 0,
                        debit_credit_columns: bool = False):
        reasons = []
        if not header_found:
            reasons.append(HEADER_NOT_FOUND)
        if row_count < MIN_TRANSACTIONS:
            reasons.append(TRANSACTIONS_TOO_FEW)
        if continuity.status == ContinuityStatus.FAILED:
            reasons.append(BALANCE_CONTINUITY_LOW)

        if dropped_blocks and dropped_blocks / (row_count + dropped_blocks) > LOW_COVERAGE_RATIO:
            reasons.append(PARSE_LOW_COVERAGE)

        non_blocking = []
        outlier = False
        for warning in warnings:
            if warning.reason in BLOCKING_WARNINGS:
                reasons.append(warning.reason)
            elif debit_credit_columns and warning.reason in DEBIT_CREDIT_BLOCKING_WARNINGS:
                reasons.append(warning.reason)
            elif debit_credit_columns and warning.reason == WarningReason.AMOUNT_OUTLIER:
                outlier = True
            elif warning.reason in SIGN_WARNINGS and continuity.status != ContinuityStatus.PASSED:
                reasons.append(warning.reason)
            else:
                non_blocking.append(warning.reason)

        if outlier:
            if DEGRADED_REASONS.intersection(reasons):
                reasons.append(WarningReason.AMOUNT_OUTLIER)
            else:
                non_blocking.append(WarningReason.AMOUNT_OUTLIER)

        return _unique(reasons), sorted(set(non_blocking))


def parse_statement(text: Optional[str], file_id: str, file_hash: Optional[str] = None,
                    template_id: Optional[str] = None, account_id: Optional[str] = None,
                    verbose: bool = False) -> ParsedStatement:
    """
    Parse extracted statement text.

    Args:
        text: Extracted statement text, None when unavailable
        file_id: Identifier of the source file
        file_hash: Content hash of the source file
        template_id: Template ID to use; detected when omitted
        account_id: Account id hint
        verbose: Enable verbose logging

    Returns:
        ParsedStatement object

    Raises:
        TemplateNotFoundError: If an explicit template id is not registered
    """
    pipeline = StatementPipeline(template_id, verbose=verbose)
    return pipeline.parse(text, file_id, file_hash, account_id)
