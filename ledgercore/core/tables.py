"""
Transaction table parsing from segmented statement text.

A line matching the template's date pattern opens a transaction block; the
following non-date lines belong to the same block when the layout wraps
descriptions. Each closed block is resolved into amount and balance by the
template's amount/balance strategy.
"""
import re
from decimal import Decimal
from typing import Callable, Dict, List, Optional
import logging

from .anchors import compact_alnum, split_lines
from .normalize import (
    MONEY_TOKEN_RE,
    MoneyToken,
    date_token_has_year,
    determine_direction,
    find_money_tokens,
    infer_date_from_period,
    normalize_date,
    normalize_money,
    normalize_text,
    parse_statement_period,
    quantize_money,
)
from .registry import UnknownStrategyError
from ..models.schema import (
    PARSER_VERSION,
    AmountSource,
    ParsedTransaction,
    ParseResult,
    ParseWarning,
    RowSource,
    StatementPeriod,
)
from ..models.template import AmountBalanceStrategy, TemplateConfig, YearInference

logger = logging.getLogger(__name__)

SINGLE_LINE_CONFIDENCE = 0.95
MULTI_LINE_CONFIDENCE = 0.88
DEGRADED_CONFIDENCE = 0.42
SIGN_UNCERTAIN_PENALTY = 0.22
MAX_MONEY_ABS = Decimal('1000000')
BALANCE_EPSILON = Decimal('0.01')

VALUE_DATE_GLUE_RE = re.compile(r'(Value Date:\s*\d{2}/\d{2}/\d{4})(?=\d)', re.IGNORECASE)
OPENING_BLOCK_ANCHORS = ("openingbalance", "balancebroughtforward")
CLOSING_BLOCK_ANCHORS = ("closingbalance",)


class WarningReason:
    AMBIGUOUS_AMOUNT = "AMBIGUOUS_AMOUNT"
    MISSING_DATE = "MISSING_DATE"
    UNPARSEABLE_BLOCK = "UNPARSEABLE_BLOCK"
    AMOUNT_SIGN_UNCERTAIN = "AMOUNT_SIGN_UNCERTAIN"
    AMOUNT_OUTLIER = "AMOUNT_OUTLIER"
    AMOUNT_INFERRED_FROM_BALANCE = "AMOUNT_INFERRED_FROM_BALANCE"
    BALANCE_NOT_FOUND = "BALANCE_NOT_FOUND"
    DEBIT_CREDIT_BOTH_PRESENT = "DEBIT_CREDIT_BOTH_PRESENT"
    PERIOD_NOT_FOUND = "PERIOD_NOT_FOUND"
    CONTINUATION_IGNORED = "CONTINUATION_IGNORED"


class TransactionBlock:
    """Contiguous source lines that make up one transaction."""
    def __init__(self, date_token: str, first_remainder: str, line_index: int, first_line: str):
        self.date_token = date_token
        self.first_remainder = first_remainder
        self.line_index = line_index
        self.lines = [first_line]
        self.pending_warnings: List[ParseWarning] = []

    @property
    def raw_text(self) -> str:
        return '\n'.join(self.lines)

    def __repr__(self):
        return f"TransactionBlock('{self.date_token}', line={self.line_index}, lines={len(self.lines)})"


class AmountResolution:
    """Outcome of applying an amount/balance strategy to one block."""
    def __init__(self, amount: Decimal, balance: Optional[Decimal] = None,
                 debit: Optional[Decimal] = None, credit: Optional[Decimal] = None,
                 amount_source: AmountSource = AmountSource.PARSED_TOKEN,
                 penalty: float = 0.0, degraded: bool = False):
        self.amount = amount
        self.balance = balance
        self.debit = debit
        self.credit = credit
        self.amount_source = amount_source
        self.penalty = penalty
        self.degraded = degraded


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def is_reference_only_line(line: str) -> bool:
    """Pure number/symbol rows (references) are description metadata, never money."""
    trimmed = line.strip()
    if not trimmed:
        return False
    if '$' in trimmed or ',' in trimmed or '(' in trimmed or ')' in trimmed:
        return False
    if re.search(r'\b(?:CR|DR)\b', trimmed, re.IGNORECASE):
        return False
    if re.search(r'\d+\.\d{2}', trimmed):
        return False
    return bool(re.fullmatch(r'[0-9\-/.]+', re.sub(r'\s+', '', trimmed)))


def _is_financial_line(line: str) -> bool:
    upper = line.upper()
    return any(marker in upper for marker in ("$", "CR", "DR", "VALUE DATE", "CREDIT TO ACCOUNT", "TRANSFER"))


def _split_by_side(token: MoneyToken, side: str):
    """Map an amount token to (amount, debit, credit) for a known side."""
    if side == "debit":
        return -token.abs_value, token.abs_value, None
    return token.abs_value, None, token.abs_value


class TransactionTableParser:
    """Parses segmented transaction text using one template's conventions."""

    def __init__(self, template: TemplateConfig, full_text: Optional[str] = None):
        self.template = template
        self.full_text = full_text
        self.parser_version = template.parser_version or PARSER_VERSION

        strategy = template.parse.amount_balance_strategy
        handler_name = _STRATEGY_HANDLERS.get(strategy)
        if handler_name is None:
            raise UnknownStrategyError(f"Unknown amount/balance strategy for {template.id}: {strategy!r}")
        self._resolve: Callable = getattr(self, handler_name)

        self.date_re = re.compile(template.parse.date_pattern, re.IGNORECASE)
        self.transactions: List[ParsedTransaction] = []
        self.warnings: List[ParseWarning] = []
        self.previous_balance: Optional[Decimal] = None
        self.dropped_blocks = 0
        self.period_start = None
        self.period_end = None

    def parse(self, section_text: str) -> ParseResult:
        """
        Parse transaction rows from segmented text.

        Args:
            section_text: Output of the segmenter

        Returns:
            ParseResult with rows, warnings and the detected statement period
        """
        self.transactions = []
        self.warnings = []
        self.previous_balance = None
        self.dropped_blocks = 0

        if self.template.parse.year_inference == YearInference.FROM_PERIOD:
            self.period_start, self.period_end = parse_statement_period(self.full_text or section_text)
            if not self.period_end:
                self._warn(WarningReason.PERIOD_NOT_FOUND, "", 0.3)
                logger.warning(f"{self.template.id}: statement period heading not found")

        block: Optional[TransactionBlock] = None
        for line_index, raw in enumerate(split_lines(section_text), 1):
            line = raw.strip()
            if not line:
                continue

            match = self.date_re.match(line)
            if match:
                if block:
                    self._finalize_block(block)
                block = TransactionBlock(match.group(0).strip(), line[match.end():].strip(), line_index, raw)
                continue

            if block is None:
                # Residual text before the first row is ignored unless it carries money
                if any(True for _ in find_money_tokens(line)):
                    self._warn(WarningReason.MISSING_DATE, raw, 0.2)
                continue

            if self.template.parse.multiline_block:
                block.lines.append(raw)
            else:
                block.pending_warnings.append(
                    ParseWarning(reason=WarningReason.CONTINUATION_IGNORED, raw_line=raw, confidence=0.5)
                )

        if block:
            self._finalize_block(block)

        logger.info(
            f"{self.template.id}: parsed {len(self.transactions)} rows, {len(self.warnings)} warnings"
        )
        return ParseResult(
            transactions=self.transactions,
            warnings=self.warnings,
            period=StatementPeriod(
                start=self.period_start.isoformat() if self.period_start else None,
                end=self.period_end.isoformat() if self.period_end else None,
            ),
            dropped_blocks=self.dropped_blocks,
        )

    def _warn(self, reason: str, raw_line: str, confidence: float, row_index: Optional[int] = None):
        self.warnings.append(
            ParseWarning(reason=reason, raw_line=raw_line, confidence=_clamp01(confidence), row_index=row_index)
        )

    def _resolve_date(self, token: str):
        if date_token_has_year(token):
            return normalize_date(token)
        if self.template.parse.year_inference == YearInference.FROM_PERIOD:
            return infer_date_from_period(token, self.period_start, self.period_end)
        return None

    def _extract_money_tokens(self, block: TransactionBlock, local: List[ParseWarning]) -> List[MoneyToken]:
        candidates = []
        for line in block.lines:
            if is_reference_only_line(line):
                continue
            normalized = VALUE_DATE_GLUE_RE.sub(r'\1 ', line)
            for token in find_money_tokens(normalized):
                candidates.append((token, normalized))

        preferred = [c for c in candidates if _is_financial_line(c[1])]
        chosen = preferred if len(preferred) >= 2 else candidates

        tokens = []
        for raw_token, _ in chosen:
            token = normalize_money(raw_token)
            if token is None:
                continue
            if token.abs_value > MAX_MONEY_ABS:
                local.append(ParseWarning(reason=WarningReason.AMOUNT_OUTLIER, raw_line=block.raw_text, confidence=0.3))
                continue
            tokens.append(token)
        return tokens

    def _build_description(self, block: TransactionBlock) -> str:
        parts = []
        first = normalize_text(_strip_money(block.first_remainder))
        if first:
            parts.append(first)
        for line in block.lines[1:]:
            stripped = line.strip()
            if not stripped:
                continue
            if is_reference_only_line(stripped):
                parts.append(f"REF: {stripped}")
                continue
            cleaned = normalize_text(_strip_money(stripped))
            if cleaned:
                parts.append(cleaned)
        return ' | '.join(parts)

    def _finalize_block(self, block: TransactionBlock):
        raw_block = block.raw_text
        first_compact = compact_alnum(block.lines[0])

        if any(a in first_compact for a in CLOSING_BLOCK_ANCHORS):
            return
        if any(a in first_compact for a in OPENING_BLOCK_ANCHORS):
            tokens = [t for t in (normalize_money(r) for r in find_money_tokens(raw_block)) if t]
            if tokens:
                self.previous_balance = tokens[-1].value
            logger.debug(f"Opening balance block at line {block.line_index}: {self.previous_balance}")
            return

        local = list(block.pending_warnings)
        resolved_date = self._resolve_date(block.date_token)
        if resolved_date is None:
            local.append(ParseWarning(reason=WarningReason.MISSING_DATE, raw_line=raw_block, confidence=0.3))
            self.dropped_blocks += 1
            self._flush(local, None)
            return

        tokens = self._extract_money_tokens(block, local)
        if not tokens:
            local.append(ParseWarning(reason=WarningReason.UNPARSEABLE_BLOCK, raw_line=raw_block, confidence=0.3))
            self.dropped_blocks += 1
            self._flush(local, None)
            return

        resolution = self._resolve(tokens, raw_block.upper(), raw_block, local)

        base = SINGLE_LINE_CONFIDENCE if len(block.lines) == 1 else MULTI_LINE_CONFIDENCE
        confidence = DEGRADED_CONFIDENCE if resolution.degraded else _clamp01(base - resolution.penalty)

        row_index = len(self.transactions) + 1
        self.transactions.append(ParsedTransaction(
            date=resolved_date.isoformat(),
            date_raw=block.date_token,
            description=self._build_description(block) or "(no description)",
            amount=quantize_money(resolution.amount),
            balance=quantize_money(resolution.balance),
            debit=quantize_money(resolution.debit),
            credit=quantize_money(resolution.credit),
            amount_source=resolution.amount_source,
            raw_line=raw_block,
            confidence=confidence,
            source=RowSource(row_index=row_index, line_index=block.line_index, parser_version=self.parser_version),
        ))
        if resolution.balance is not None:
            self.previous_balance = resolution.balance
        self._flush(local, row_index)

    def _flush(self, local: List[ParseWarning], row_index: Optional[int]):
        for warning in local:
            self.warnings.append(warning.model_copy(update={"row_index": row_index}))

    def _side_for(self, token: MoneyToken, block_upper: str) -> Optional[str]:
        if token.is_debit_marked:
            return "debit"
        if token.is_credit_marked:
            return "credit"
        return determine_direction(block_upper)

    def _resolve_amount_balance(self, tokens, block_upper, raw_block, local) -> AmountResolution:
        """Last two numbers are (amount, balance); amount is a signed column."""
        if len(tokens) == 1:
            local.append(ParseWarning(reason=WarningReason.AMBIGUOUS_AMOUNT, raw_line=raw_block, confidence=0.35))
            local.append(ParseWarning(reason=WarningReason.BALANCE_NOT_FOUND, raw_line=raw_block, confidence=0.35))
            side = self._side_for(tokens[0], block_upper) or "credit"
            amount, debit, credit = _split_by_side(tokens[0], side)
            return AmountResolution(amount, None, debit, credit, degraded=True)

        amount_token, balance_token = tokens[-2], tokens[-1]
        penalty = 0.0
        if amount_token.has_sign_marker:
            side = "debit" if amount_token.value < 0 else "credit"
        else:
            # Unsigned values in a signed column are credits unless a keyword says otherwise
            side = determine_direction(block_upper) or "credit"
            penalty = 0.05
        amount, debit, credit = _split_by_side(amount_token, side)
        return AmountResolution(amount, balance_token.value, debit, credit, penalty=penalty)

    def _resolve_debit_credit_balance(self, tokens, block_upper, raw_block, local) -> AmountResolution:
        """Three columns (debit, credit, balance); amount = credit - debit."""
        balance = tokens[-1].value

        if len(tokens) >= 3:
            debit = tokens[-3].abs_value
            credit = tokens[-2].abs_value
            penalty = 0.0
            if debit and credit:
                local.append(ParseWarning(reason=WarningReason.DEBIT_CREDIT_BOTH_PRESENT, raw_line=raw_block, confidence=0.35))
                penalty = 0.2
            return AmountResolution(credit - debit, balance, debit or None, credit or None, penalty=penalty)

        if len(tokens) == 2:
            # One column left empty by extraction
            side = self._side_for(tokens[0], block_upper)
            penalty = 0.0
            if side is None:
                local.append(ParseWarning(reason=WarningReason.AMOUNT_SIGN_UNCERTAIN, raw_line=raw_block, confidence=0.45))
                side = "debit"
                penalty = SIGN_UNCERTAIN_PENALTY
            amount, debit, credit = _split_by_side(tokens[0], side)
            return AmountResolution(amount, balance, debit, credit, penalty=penalty)

        local.append(ParseWarning(reason=WarningReason.AMBIGUOUS_AMOUNT, raw_line=raw_block, confidence=0.35))
        return AmountResolution(Decimal('0'), balance, degraded=True)

    def _resolve_infer_from_last_numbers(self, tokens, block_upper, raw_block, local) -> AmountResolution:
        """Last number is the balance; the amount comes from the balance delta when possible."""
        balance = tokens[-1].value
        candidates = tokens[:-1]
        previous = self.previous_balance

        if not candidates:
            if previous is not None:
                local.append(ParseWarning(reason=WarningReason.AMOUNT_INFERRED_FROM_BALANCE, raw_line=raw_block, confidence=0.6))
                delta = balance - previous
                side = "debit" if delta < 0 else "credit"
                return AmountResolution(
                    delta, balance,
                    abs(delta) if side == "debit" else None,
                    abs(delta) if side == "credit" else None,
                    amount_source=AmountSource.BALANCE_DIFF_INFERRED, penalty=0.25,
                )
            local.append(ParseWarning(reason=WarningReason.AMBIGUOUS_AMOUNT, raw_line=raw_block, confidence=0.35))
            return AmountResolution(Decimal('0'), balance, degraded=True)

        if any(c.is_debit_marked for c in candidates) and any(c.is_credit_marked for c in candidates):
            local.append(ParseWarning(reason=WarningReason.DEBIT_CREDIT_BOTH_PRESENT, raw_line=raw_block, confidence=0.35))

        candidate = candidates[-1]
        penalty = 0.0

        if previous is not None:
            delta = balance - previous
            if abs(abs(delta) - candidate.abs_value) <= BALANCE_EPSILON:
                side = "debit" if delta < 0 else "credit"
                amount, debit, credit = _split_by_side(candidate, side)
                return AmountResolution(amount, balance, debit, credit,
                                        amount_source=AmountSource.BALANCE_DIFF_INFERRED)
            local.append(ParseWarning(reason=WarningReason.AMBIGUOUS_AMOUNT, raw_line=raw_block, confidence=0.4))
            penalty += 0.1

        side = self._side_for(candidate, block_upper)
        if side is None:
            local.append(ParseWarning(reason=WarningReason.AMOUNT_SIGN_UNCERTAIN, raw_line=raw_block, confidence=0.45))
            side = "debit"
            penalty += SIGN_UNCERTAIN_PENALTY

        amount, debit, credit = _split_by_side(candidate, side)
        return AmountResolution(amount, balance, debit, credit, penalty=penalty)


_STRATEGY_HANDLERS: Dict[AmountBalanceStrategy, str] = {
    AmountBalanceStrategy.AMOUNT_BALANCE: "_resolve_amount_balance",
    AmountBalanceStrategy.DEBIT_CREDIT_BALANCE: "_resolve_debit_credit_balance",
    AmountBalanceStrategy.INFER_FROM_LAST_NUMBERS: "_resolve_infer_from_last_numbers",
}

_unhandled = set(AmountBalanceStrategy) - set(_STRATEGY_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Amount/balance strategies without a handler: {sorted(s.value for s in _unhandled)}")


def _strip_money(text: str) -> str:
    return MONEY_TOKEN_RE.sub(' ', text or '')


def parse_transactions(section_text: str, template: TemplateConfig,
                       full_text: Optional[str] = None) -> ParseResult:
    """
    Parse segmented statement text with a template.

    Args:
        section_text: Segmented transaction text
        template: Template configuration
        full_text: Whole statement text, used to find the statement period

    Returns:
        ParseResult

    Raises:
        UnknownStrategyError: If the template's strategy has no handler
    """
    parser = TransactionTableParser(template, full_text)
    return parser.parse(section_text)
