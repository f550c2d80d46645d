"""
Account identity recovered from the statement header.
"""
import re
from typing import List, Optional, Tuple
import logging

from .anchors import split_lines
from ..models.schema import AccountMeta

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_ID = "default"

_PAGE_TWO_RE = re.compile(r'\bPage\s*2\s*of\b', re.IGNORECASE)
_NOISE_LABEL_RE = re.compile(r'^(?:BSB|Account number|Account type|Date opened|Date|Transaction|Page\b|Created\b)', re.IGNORECASE)

_ACCOUNT_NAME_RES = [
    re.compile(r"^\s*Account name\s+([A-Za-z][A-Za-z0-9 '&.-]{1,})\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*Name\s*:\s*([A-Za-z][A-Za-z0-9 '&.-]{1,})\s*$", re.IGNORECASE | re.MULTILINE),
]
_BSB_RE = re.compile(r'^\s*BSB\s*:?\s+([0-9][0-9 \-]{4,10})\s*$', re.IGNORECASE | re.MULTILINE)
_ACCOUNT_NUMBER_RE = re.compile(r'^\s*Account number\s*:?\s+([0-9][0-9 \-]{5,20})\s*$', re.IGNORECASE | re.MULTILINE)
_SPLIT_HEADER_RE = re.compile(r'^\s*Account Number\s+(\d{3}\s?\d{3})\s+(\d{6,12})\b', re.IGNORECASE | re.MULTILINE)
_HEADER_IDENTITY_RES = [
    re.compile(r'^\s*Account Number\s+(\d{2}\s?\d{4}\s?\d{6,12})\b', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*Account Number\s+(\d{12,18})\b', re.IGNORECASE | re.MULTILINE),
]


def digits_only(value: Optional[str]) -> str:
    return re.sub(r'\D', '', value or '')


def normalize_bsb(value: Optional[str]) -> Optional[str]:
    digits = digits_only(value)
    return digits[:6] if len(digits) >= 6 else None


def normalize_account_number(value: Optional[str]) -> Optional[str]:
    digits = digits_only(value)
    return digits if len(digits) >= 6 else None


def build_account_key(bsb: Optional[str], account_number: Optional[str]) -> Optional[str]:
    bsb = normalize_bsb(bsb)
    account_number = normalize_account_number(account_number)
    if not bsb or not account_number:
        return None
    return f"{bsb}-{account_number}"


def slugify(value: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', value.lower()).strip('-')[:48]


def _first_page(text: str) -> str:
    match = _PAGE_TWO_RE.search(text)
    return text[:match.start()] if match and match.start() else text


def _clean_account_name(value: Optional[str]) -> Optional[str]:
    candidate = re.sub(r'\s{2,}', ' ', value or '').strip()
    if not candidate:
        return None
    if re.search(r'\bBSB\b', candidate, re.IGNORECASE) or re.match(r'^Account\b', candidate, re.IGNORECASE):
        return None
    if re.match(r'^[+\-]?\s*\$', candidate):
        return None
    return candidate


def _labeled_value(lines: List[str], label_re: re.Pattern) -> Optional[str]:
    """Value on the label's own line, else the next non-label line within three."""
    for i, line in enumerate(lines):
        match = label_re.search(line)
        if not match:
            continue
        if match.group(1) and match.group(1).strip():
            return match.group(1).strip()
        for candidate in lines[i + 1:i + 4]:
            candidate = candidate.strip()
            if candidate and not _NOISE_LABEL_RE.match(candidate):
                return candidate
    return None


def _header_identity(text: str) -> Tuple[Optional[str], Optional[str]]:
    """``Account Number 06 2000 12345678`` style header holding BSB and number together."""
    for pattern in _HEADER_IDENTITY_RES:
        match = pattern.search(text)
        if match:
            digits = digits_only(match.group(1))
            if len(digits) >= 12:
                return normalize_bsb(digits[:6]), normalize_account_number(digits[6:])
    return None, None


def sanitize_account_number(bsb: Optional[str], account_number: Optional[str]) -> Tuple[Optional[str], List[str]]:
    """Strip a BSB prefix glued onto the account number."""
    bsb = normalize_bsb(bsb)
    account_number = normalize_account_number(account_number)
    if not account_number or not bsb or not account_number.startswith(bsb):
        return account_number, []
    remainder = account_number[6:]
    if 6 <= len(remainder) <= 12:
        return remainder, ["ACCOUNT_NUMBER_HAS_BSB_PREFIX_STRIPPED"]
    return account_number, []


def extract_account_meta(text: str, bank_id: str, template_id: str,
                         account_id: str = DEFAULT_ACCOUNT_ID) -> AccountMeta:
    """
    Recover account name, BSB and account number from statement text.

    Explicit label rows win over the combined ``Account Number`` header;
    the first page is searched before the whole document.

    Args:
        text: Raw statement text
        bank_id: Bank of the detected template
        template_id: Detected template id
        account_id: Caller-supplied account id hint

    Returns:
        AccountMeta with ``account_key`` when BSB and number are both known
    """
    text = (text or '').replace('\r\n', '\n')
    page_one = _first_page(text)

    account_name = bsb = account_number = None
    header_fallback = False
    meta_warnings = []

    for window in (page_one, text):
        lines = [line.strip() for line in split_lines(window)]

        if not account_name:
            for pattern in _ACCOUNT_NAME_RES:
                match = pattern.search(window)
                account_name = _clean_account_name(match.group(1) if match else None)
                if account_name:
                    break
        if not bsb:
            match = _BSB_RE.search(window)
            bsb = normalize_bsb(match.group(1) if match else None)
        if not account_number:
            match = _ACCOUNT_NUMBER_RE.search(window)
            account_number = normalize_account_number(match.group(1) if match else None)

        if not bsb or not account_number:
            match = _SPLIT_HEADER_RE.search(window)
            if match:
                bsb = bsb or normalize_bsb(match.group(1))
                account_number = account_number or normalize_account_number(match.group(2))

        if not account_name:
            account_name = _clean_account_name(
                _labeled_value(lines, re.compile(r"Account name\s*[:\s]*([A-Za-z0-9 '&.-]{2,})?", re.IGNORECASE))
            )
        if not bsb:
            bsb = normalize_bsb(_labeled_value(lines, re.compile(r'\bBSB\b\s*[:\s]*([0-9][0-9 \-]{4,10})?', re.IGNORECASE)))

    if not bsb or not account_number:
        header_bsb, header_number = _header_identity(page_one)
        if not bsb and header_bsb:
            bsb = header_bsb
            header_fallback = True
        if not account_number and header_number:
            account_number = header_number
            header_fallback = True

    if (not bsb or not account_number) and re.fullmatch(r'\d{6}-\d{6,}', account_id or ''):
        hint_bsb, hint_number = account_id.split('-', 1)
        bsb = bsb or normalize_bsb(hint_bsb)
        account_number = account_number or normalize_account_number(hint_number)

    if not account_number:
        meta_warnings.append("IDENTITY_MISSING")
    elif header_fallback and not account_name:
        meta_warnings.append("IDENTITY_HEADER_ONLY")

    if not bsb and account_number and len(account_number) >= 12:
        bsb, account_number = normalize_bsb(account_number[:6]), normalize_account_number(account_number[6:])

    account_number, sanitize_warnings = sanitize_account_number(bsb, account_number)
    meta_warnings.extend(w for w in sanitize_warnings if w not in meta_warnings)

    meta = AccountMeta(
        bank_id=bank_id,
        account_id=account_id or DEFAULT_ACCOUNT_ID,
        template_id=template_id,
        account_name=account_name,
        bsb=bsb,
        account_number=account_number,
        account_key=build_account_key(bsb, account_number),
        meta_warnings=meta_warnings,
    )
    logger.debug(f"Account meta: key={meta.account_key} name={meta.account_name} warnings={meta_warnings}")
    return meta


def resolve_account_id(bank_id: str, meta: Optional[AccountMeta] = None,
                       existing_account_id: Optional[str] = None) -> str:
    """
    Pick the account id: ``bsb-number`` key, then a name slug, then the caller's hint.
    """
    if meta and meta.account_key:
        return meta.account_key

    if meta and meta.account_name:
        slug = slugify(meta.account_name)
        if slug:
            return f"{bank_id}-{slug}"

    existing = (existing_account_id or '').strip()
    if existing and existing != DEFAULT_ACCOUNT_ID:
        return existing
    return DEFAULT_ACCOUNT_ID
