"""
Data normalization and cleaning functions.
"""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

# Strict money candidates: two decimal places, optional $ / commas /
# parentheses / sign and CR or DR suffix. Never matches a slice of a longer
# numeric fragment such as 1363.10645.
MONEY_TOKEN_RE = re.compile(
    r'(?<![\d.])'
    r'(?:\(\$?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}\)'
    r'|[-+]?\$?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2})'
    r'(?:\s?(?:CR|DR)\b)?'
    r'(?![\d.])',
    re.IGNORECASE,
)

MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
PERIOD_RE = re.compile(
    rf'Period\s*(\d{{1,2}}\s+(?:{MONTHS})\w*\s+\d{{4}})\s*[-–]\s*(\d{{1,2}}\s+(?:{MONTHS})\w*\s+\d{{4}})',
    re.IGNORECASE,
)

_YEAR_FORMATS = ["%d %b %Y", "%d %B %Y", "%d/%m/%Y", "%d/%m/%y", "%Y-%m-%d", "%d-%m-%Y", "%d.%m.%Y"]
_YEARLESS_FORMATS = ["%d %b", "%d %B", "%d/%m"]

CREDIT_HINTS = [
    "CREDIT TO ACCOUNT",
    "FAST TRANSFER FROM",
    "TRANSFER FROM",
    "PAYMENT RECEIVED",
    "DIRECT CREDIT",
    "SALARY",
    "INTEREST",
    "REFUND",
]
DEBIT_HINTS = [
    "TRANSFER TO",
    "OVERDRAW FEE",
    "FEE",
    "DIRECT DEBIT",
    "DEBIT",
    "CARD",
    "EFTPOS",
    "PURCHASE",
    "WITHDRAWAL",
    "PAYMENT TO",
]

TRANSFER_HINT_RE = re.compile(r'TRANSFER|OSKO|NPP|PAYMENT TO|PAYMENT FROM|NETBANK TRANSFER', re.IGNORECASE)

MERCHANT_NOISE_TOKENS = {
    "CARD",
    "POS",
    "EFTPOS",
    "DEBIT",
    "CREDIT",
    "VALUE",
    "DATE",
    "COMMBANK",
}

UNKNOWN_MERCHANT = "UNKNOWN_MERCHANT"


def _hint_pattern(hints):
    return re.compile(r'\b(?:' + '|'.join(re.escape(h) for h in hints) + r')\b')


_CREDIT_HINT_RE = _hint_pattern(CREDIT_HINTS)
_DEBIT_HINT_RE = _hint_pattern(DEBIT_HINTS)


class MoneyToken:
    """A parsed money token with its sign markers."""
    def __init__(self, raw: str, abs_value: Decimal, suffix: Optional[str],
                 has_minus: bool, has_parens: bool, has_plus: bool):
        self.raw = raw
        self.abs_value = abs_value
        self.suffix = suffix
        self.has_minus = has_minus
        self.has_parens = has_parens
        self.has_plus = has_plus

    @property
    def is_debit_marked(self) -> bool:
        return self.has_minus or self.has_parens or self.suffix == "DR"

    @property
    def is_credit_marked(self) -> bool:
        return self.suffix == "CR" or self.has_plus

    @property
    def has_sign_marker(self) -> bool:
        return self.is_debit_marked or self.is_credit_marked

    @property
    def value(self) -> Decimal:
        """Signed value: CR or + is positive, -, () or DR is negative, unsigned is positive."""
        if self.suffix == "CR":
            return self.abs_value
        if self.is_debit_marked:
            return -self.abs_value
        return self.abs_value

    def __repr__(self):
        return f"MoneyToken('{self.raw}', value={self.value})"


def normalize_money(value: str) -> Optional[MoneyToken]:
    """
    Normalize a money token by removing $, commas and spaces and reading its sign markers.

    Args:
        value: Raw money string (e.g. "-45.00", "1,234.56", "(12.34)", "20.00 CR")

    Returns:
        MoneyToken, or None when no numeric value can be read
    """
    if not value or not value.strip():
        return None

    condensed = re.sub(r'\s+', '', value.strip().upper())
    has_parens = condensed.startswith('(') and condensed.endswith(')')
    has_minus = '-' in condensed
    has_plus = condensed.startswith('+')
    suffix = None
    if condensed.endswith('CR'):
        suffix = "CR"
    elif condensed.endswith('DR'):
        suffix = "DR"

    numeric = re.sub(r'CR$|DR$', '', condensed)
    numeric = re.sub(r'[()$,+\-]', '', numeric)
    try:
        amount = Decimal(numeric)
    except InvalidOperation:
        logger.warning(f"Could not extract numeric value from: {value}")
        return None

    return MoneyToken(value.strip(), abs(amount), suffix, has_minus, has_parens, has_plus)


def find_money_tokens(line: str):
    """Yield raw money token strings in a line, left to right."""
    for match in MONEY_TOKEN_RE.finditer(line or ''):
        yield match.group(0)


def quantize_money(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(TWO_PLACES)


def format_money(value: Optional[Decimal]) -> str:
    """Fixed two-decimal form, empty for missing values."""
    if value is None:
        return ""
    return f"{quantize_money(value):.2f}"


def _clean_date_token(value: str) -> str:
    cleaned = re.sub(r'\s+', ' ', value.strip())
    # "01 Jan2024" -> "01 Jan 2024"
    return re.sub(r'([A-Za-z]{3,})(\d{4})$', r'\1 \2', cleaned)


def date_token_has_year(value: str) -> bool:
    cleaned = _clean_date_token(value)
    return bool(re.search(r'\d{4}', cleaned) or re.fullmatch(r'\d{1,2}/\d{1,2}/\d{2}', cleaned))


def normalize_date(value: str, year: Optional[int] = None) -> Optional[date]:
    """
    Normalize date tokens with or without a year.

    Args:
        value: Raw date string (e.g. "03 Jan 2024", "03 Jan", "03/01/2024")
        year: Year to use when the token has none

    Returns:
        Date object or None if parsing fails
    """
    if not value or not value.strip():
        return None

    cleaned = _clean_date_token(value)

    for fmt in _YEAR_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue

    if year is not None:
        # Append the year before parsing so 29 Feb resolves in leap years
        for fmt in _YEARLESS_FORMATS:
            try:
                return datetime.strptime(f"{cleaned} {year}", f"{fmt} %Y").date()
            except ValueError:
                continue

    logger.debug(f"Could not parse date: {value}")
    return None


def parse_statement_period(text: str) -> Tuple[Optional[date], Optional[date]]:
    """Find the "Period <start> - <end>" heading of a statement."""
    match = PERIOD_RE.search(text or '')
    if not match:
        return None, None
    return normalize_date(match.group(1)), normalize_date(match.group(2))


def infer_date_from_period(value: str, start: Optional[date], end: Optional[date]) -> Optional[date]:
    """
    Resolve a yearless date token against a statement period.

    A year from the period is chosen so the date falls inside it; otherwise
    the period end year is used.
    """
    candidate_years = []
    for bound in (start, end):
        if bound and bound.year not in candidate_years:
            candidate_years.append(bound.year)

    if start and end:
        for year in candidate_years:
            resolved = normalize_date(value, year)
            if resolved and start <= resolved <= end:
                return resolved

    if end:
        return normalize_date(value, end.year)
    return None


def normalize_text(value: str) -> str:
    """
    Normalize text by trimming and collapsing whitespace.

    Args:
        value: Raw text string

    Returns:
        Cleaned text string
    """
    if not value:
        return ""

    return re.sub(r'\s+', ' ', value.strip())


def determine_direction(text: str) -> Optional[str]:
    """
    Determine transaction direction from credit/debit keywords.

    Returns:
        "credit" or "debit" when exactly one side has a hint, None otherwise
    """
    upper = (text or '').upper()
    has_credit = bool(_CREDIT_HINT_RE.search(upper))
    has_debit = bool(_DEBIT_HINT_RE.search(upper))
    if has_credit and not has_debit:
        return "credit"
    if has_debit and not has_credit:
        return "debit"
    return None


def is_transfer_candidate(description: str) -> bool:
    return bool(TRANSFER_HINT_RE.search(description or ''))


def normalize_description(text: str) -> str:
    """Upper-case, keep letters/numbers/basic separators, collapse whitespace."""
    upper = (text or '').upper()
    cleaned = re.sub(r'[^A-Z0-9|/&\-\s]', ' ', upper)
    return normalize_text(cleaned)


def clean_merchant_name(description_norm: str) -> str:
    """
    Derive a stable merchant key from a normalized description.

    Args:
        description_norm: Output of ``normalize_description``

    Returns:
        Merchant key, or ``UNKNOWN_MERCHANT`` when nothing usable is left
    """
    primary = (description_norm.split('|')[0] or description_norm).strip()
    # Trailing long reference fragments; short meaningful numbers stay
    cleaned = normalize_text(re.sub(r'(?:\s+[A-Z]*\d{6,})+\s*$', ' ', primary))

    if re.search(r'\bFAST\s+TRANSFER\s+FROM\b', cleaned):
        return "FAST_TRANSFER_FROM"
    if re.search(r'\bTRANSFER\s+TO\b', cleaned):
        return "TRANSFER_TO"
    if re.search(r'\bTRANSFER\s+FROM\b', cleaned):
        return "TRANSFER_FROM"
    if re.search(r'\bDIRECT\s+DEBIT\b', cleaned):
        return "DIRECT_DEBIT"

    cleaned = re.sub(r'\bCOMM\s+BANK\b', ' ', cleaned)
    tokens = [t for t in cleaned.split(' ') if t and t not in MERCHANT_NOISE_TOKENS]
    merchant = ' '.join(tokens)
    merchant = normalize_text(re.sub(r'\b(?:XX\d+|\d{6,})\b', '', merchant))

    return merchant or UNKNOWN_MERCHANT


def normalize_merchant(description_raw: str) -> Tuple[str, str]:
    """Return ``(description_norm, merchant_norm)`` for a raw description."""
    description_norm = normalize_description(description_raw)
    return description_norm, clean_merchant_name(description_norm)
