"""
Normalization of parsed rows into identity-stable ledger transactions.
"""
import hashlib
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from pydantic import BaseModel

from .normalize import format_money, is_transfer_candidate, normalize_merchant
from ..models.schema import (
    NormalizedTransaction,
    ParsedTransaction,
    ParseWarning,
    TransactionFlags,
    TransactionQuality,
    TransactionSource,
)

logger = logging.getLogger(__name__)

ID_LENGTH = 16


class NormalizationContext(BaseModel):
    """File-level identity shared by every row of one statement."""
    file_id: str
    bank_id: str
    account_id: str
    template_id: str
    file_hash: Optional[str] = None
    currency: str = "AUD"


def _digest(parts) -> str:
    joined = '|'.join('' if p is None else str(p) for p in parts)
    return hashlib.sha1(joined.encode('utf-8')).hexdigest()[:ID_LENGTH]


def transaction_id(context: NormalizationContext, row_index: int, date: str,
                   description_norm: str, amount, balance) -> str:
    """Content-derived id; the per-file row index keeps identical rows distinct."""
    return _digest([
        context.file_id,
        context.bank_id,
        context.account_id,
        context.template_id,
        row_index,
        date,
        description_norm,
        format_money(amount),
        format_money(balance),
    ])


def dedupe_key(bank_id: str, account_id: str, template_id: str, date: str,
               merchant_norm: str, amount, description_norm: str) -> str:
    """Cross-file duplicate key: excludes file identity and row position."""
    return _digest([
        bank_id,
        account_id,
        template_id,
        (date or '')[:10],
        merchant_norm,
        format_money(amount),
        description_norm,
    ])


def _warnings_by_row(warnings: Sequence[ParseWarning]) -> Dict[int, List[str]]:
    by_row = defaultdict(list)
    for warning in warnings:
        if warning.row_index is None:
            continue
        reasons = by_row[warning.row_index]
        if warning.reason not in reasons:
            reasons.append(warning.reason)
    return by_row


def normalize_transaction(row: ParsedTransaction, context: NormalizationContext,
                          warning_reasons: Optional[List[str]] = None) -> NormalizedTransaction:
    description_norm, merchant_norm = normalize_merchant(row.description)
    row_index = row.source.row_index

    return NormalizedTransaction(
        id=transaction_id(context, row_index, row.date, description_norm, row.amount, row.balance),
        dedupe_key=dedupe_key(
            context.bank_id, context.account_id, context.template_id,
            row.date, merchant_norm, row.amount, description_norm,
        ),
        bank_id=context.bank_id,
        account_id=context.account_id,
        template_id=context.template_id,
        date=row.date,
        description_raw=row.description,
        description_norm=description_norm,
        merchant_norm=merchant_norm,
        amount=row.amount,
        balance=row.balance,
        currency=context.currency,
        source=TransactionSource(
            file_id=context.file_id,
            file_hash=context.file_hash,
            line_index=row.source.line_index,
            row_index=row_index,
            parser_version=row.source.parser_version,
        ),
        quality=TransactionQuality(
            warnings=list(warning_reasons or []),
            confidence=row.confidence,
            raw_line=row.raw_line.split('\n')[0].strip(),
            raw_text=row.raw_line,
        ),
        flags=TransactionFlags(transfer_candidate=is_transfer_candidate(row.description)),
    )


def normalize_transactions(rows: Sequence[ParsedTransaction], warnings: Sequence[ParseWarning],
                           context: NormalizationContext) -> List[NormalizedTransaction]:
    """
    Normalize parsed rows of one file.

    Each row is handled independently; warnings are attached through their
    ``row_index``, never by matching raw text.

    Args:
        rows: Parser output rows
        warnings: Parser warnings for the same file
        context: File-level identity

    Returns:
        Normalized transactions in row order
    """
    by_row = _warnings_by_row(warnings)
    normalized = [normalize_transaction(row, context, by_row.get(row.source.row_index)) for row in rows]
    logger.debug(f"Normalized {len(normalized)} rows for file {context.file_id}")
    return normalized


def dedupe_transactions(transactions: Sequence[NormalizedTransaction]) -> Tuple[List[NormalizedTransaction], List[NormalizedTransaction]]:
    """
    Collapse transactions sharing a dedupe key, keeping the first occurrence.

    Returns:
        ``(kept, duplicates)``
    """
    seen = set()
    kept = []
    duplicates = []
    for tx in transactions:
        if tx.dedupe_key in seen:
            duplicates.append(tx)
            continue
        seen.add(tx.dedupe_key)
        kept.append(tx)

    if duplicates:
        logger.info(f"Dropped {len(duplicates)} duplicate transactions")
    return kept, duplicates
