"""
Review inbox: anomalies recomputed from normalized transactions and parsed files.
"""
import hashlib
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import logging

from .normalize import UNKNOWN_MERCHANT
from .rules import filter_suppressed
from ..models.schema import (
    InboxItem,
    InboxKind,
    InboxOverrides,
    InboxResult,
    InboxTotals,
    NormalizedTransaction,
    ParsedStatement,
    ReviewState,
)

logger = logging.getLogger(__name__)

TRANSFER_CONFIDENCE_FLOOR = 0.6


def _sha1(value: str) -> str:
    return hashlib.sha1(value.encode('utf-8')).hexdigest()


def _day(value: Optional[str]) -> str:
    return (value or '')[:10]


def transfer_signature(tx: NormalizedTransaction) -> str:
    """Amount and merchant fingerprint shared by repeats of the same transfer."""
    cents = int((abs(tx.amount) * 100).to_integral_value())
    return f"TXFER:{cents}:{_sha1(tx.merchant_norm)[:8]}"


def warning_severity(reason: str) -> str:
    upper = (reason or '').upper()
    if any(marker in upper for marker in ("LOW", "MISSING", "FAIL", "NOT_FOUND", "UNKNOWN")):
        return "high"
    if "UNCERTAIN" in upper or "OUTLIER" in upper or "AMBIGUOUS" in upper:
        return "medium"
    return "low"


def unknown_merchant_items(transactions: Iterable[NormalizedTransaction]) -> List[InboxItem]:
    items = []
    for tx in transactions:
        if tx.category_source != "default" and tx.merchant_norm != UNKNOWN_MERCHANT:
            continue
        items.append(InboxItem(
            id=f"{InboxKind.UNKNOWN_MERCHANT.value}:{tx.id}",
            kind=InboxKind.UNKNOWN_MERCHANT,
            reason="UNCLASSIFIED_MERCHANT",
            title="Unknown merchant/category",
            summary=f"{_day(tx.date)} · {tx.merchant_norm} · {tx.description_raw[:120]}",
            severity="medium",
            created_at=_day(tx.date),
            bank_id=tx.bank_id,
            account_id=tx.account_id,
            file_id=tx.source.file_id,
            transaction_id=tx.id,
            metadata={
                "merchantNorm": tx.merchant_norm,
                "category": tx.category,
                "categorySource": tx.category_source,
                "amount": f"{tx.amount:.2f}",
            },
        ))
    return items


def _transfer_is_uncertain(tx: NormalizedTransaction) -> bool:
    transfer = tx.transfer
    if transfer is None:
        return tx.flags.transfer_candidate
    if transfer.state == "ignored":
        return False
    if transfer.state == "uncertain" or (transfer.decision or '').upper().startswith("UNCERTAIN"):
        return True
    return tx.flags.transfer_candidate and transfer.confidence < TRANSFER_CONFIDENCE_FLOOR


def uncertain_transfer_items(transactions: Sequence[NormalizedTransaction]) -> List[InboxItem]:
    """One item per transfer pair; the second leg of a pair is folded into the first."""
    by_id = {tx.id: tx for tx in transactions}
    seen = set()
    items = []

    for tx in transactions:
        if not _transfer_is_uncertain(tx):
            continue

        transfer = tx.transfer
        other_id = transfer.counterparty_transaction_id if transfer else None
        match_id = transfer.match_id if transfer else None
        pair_key = match_id or '::'.join(sorted({tx.id, other_id} - {None, ''})) or tx.id
        if pair_key in seen:
            continue
        seen.add(pair_key)

        other = by_id.get(other_id) if other_id else None
        penalties = list(transfer.penalties) if transfer else []
        reason = penalties[0] if penalties else ("UNCERTAIN_NO_OFFSET" if transfer else "TRANSFER_UNMATCHED")
        counterparty = other.description_raw[:80] if other else "counterparty unavailable"

        metadata = {
            "transferSignature": transfer_signature(tx),
            "pairKey": pair_key,
            "penalties": penalties,
        }
        if match_id:
            metadata["matchId"] = match_id
        if transfer:
            metadata["confidence"] = transfer.confidence
            metadata["decision"] = transfer.decision
        if other_id:
            metadata["counterpartyTransactionId"] = other_id

        items.append(InboxItem(
            id=f"{InboxKind.UNCERTAIN_TRANSFER.value}:{pair_key}",
            kind=InboxKind.UNCERTAIN_TRANSFER,
            reason=reason,
            title="Uncertain transfer match",
            summary=f"{_day(tx.date)} · {tx.description_raw[:80]} · {counterparty}",
            severity="medium",
            created_at=_day(tx.date),
            bank_id=tx.bank_id,
            account_id=tx.account_id,
            file_id=tx.source.file_id,
            transaction_id=tx.id,
            metadata=metadata,
        ))
    return items


def parse_issue_items(parsed_files: Iterable[ParsedStatement]) -> List[InboxItem]:
    """
    One item per distinct review reason of each parsed file.

    ``created_at`` is the latest transaction day of the file so the item
    list is a pure function of its inputs.
    """
    items = []
    for parsed in parsed_files:
        reasons = []
        for reason in parsed.quality.needs_review_reasons:
            if reason not in reasons:
                reasons.append(reason)
        if not reasons:
            continue

        days = [_day(tx.date) for tx in parsed.transactions if tx.date]
        created_at = max(days) if days else (parsed.period.end or "")

        for reason in reasons:
            sample = next((w for w in parsed.warnings if w.reason.startswith(reason)), None)
            raw_line = sample.raw_line if sample else ""
            digest = _sha1(f"{parsed.file_id}:{reason}:{raw_line}")[:10]

            metadata = {
                "parseRuleKey": f"{reason}::{parsed.template_id or 'unknown'}",
                "templateType": parsed.template_id,
                "needsReview": parsed.needs_review,
            }
            if sample:
                metadata["warningRawLine"] = raw_line
                metadata["warningConfidence"] = sample.confidence
                metadata["warningReason"] = sample.reason

            items.append(InboxItem(
                id=f"{InboxKind.PARSE_ISSUE.value}:{parsed.file_id}:{reason}:{digest}",
                kind=InboxKind.PARSE_ISSUE,
                reason=reason,
                title="Parser quality issue",
                summary=f"{parsed.file_id} · {parsed.template_id} · {reason}",
                severity=warning_severity(reason),
                created_at=created_at,
                bank_id=parsed.bank_id,
                account_id=parsed.account_id,
                file_id=parsed.file_id,
                metadata=metadata,
            ))
    return items


def _count_by_kind(items: Iterable[InboxItem]) -> Dict[InboxKind, int]:
    counts = {kind: 0 for kind in InboxKind}
    for item in items:
        counts[item.kind] += 1
    return counts


def classify(transactions: Sequence[NormalizedTransaction],
             parsed_files: Sequence[ParsedStatement] = (),
             resolved_ids: Optional[Mapping[str, object]] = None) -> InboxResult:
    """
    Build inbox items from transactions and parsed files.

    Args:
        transactions: Normalized (and possibly annotated) transactions
        parsed_files: Parsed statement records in scope
        resolved_ids: Item ids already resolved by the user

    Returns:
        InboxResult with unresolved items newest first; resolved items
        count toward ``totals.all`` only
    """
    all_items = (
        unknown_merchant_items(transactions)
        + uncertain_transfer_items(transactions)
        + parse_issue_items(parsed_files)
    )
    resolved_ids = resolved_ids or {}
    unresolved = [item for item in all_items if item.id not in resolved_ids]
    unresolved = sorted(unresolved, key=lambda item: item.created_at, reverse=True)

    return InboxResult(
        items=unresolved,
        counts=_count_by_kind(unresolved),
        totals=InboxTotals(
            all=len(all_items),
            unresolved=len(unresolved),
            resolved=len(all_items) - len(unresolved),
        ),
    )


def build_inbox(transactions: Sequence[NormalizedTransaction],
                parsed_files: Sequence[ParsedStatement] = (),
                review_state: Optional[ReviewState] = None,
                overrides: Optional[InboxOverrides] = None) -> InboxResult:
    """
    Classify, then hide items matched by a suppression rule.

    Rule-suppressed items are reported through ``suppressed_by_rule`` and
    counted as resolved.
    """
    review_state = review_state or ReviewState()
    overrides = overrides or InboxOverrides()

    result = classify(transactions, parsed_files, review_state.resolved)
    visible, suppressed = filter_suppressed(result.items, overrides)
    if suppressed:
        logger.debug(f"{suppressed} inbox items suppressed by rule")

    return InboxResult(
        items=visible,
        counts=_count_by_kind(visible),
        totals=InboxTotals(
            all=result.totals.all,
            unresolved=len(visible),
            resolved=result.totals.resolved + suppressed,
        ),
        suppressed_by_rule=suppressed,
    )
