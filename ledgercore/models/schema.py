"""
Pydantic models for parsed statement data, normalized transactions and the review inbox.
"""
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator


PARSER_VERSION = "ledgercore_v1"


class AmountSource(str, Enum):
    PARSED_TOKEN = "parsed_token"
    BALANCE_DIFF_INFERRED = "balance_diff_inferred"


class SegmentDebug(BaseModel):
    """Where the transaction table was found and what was removed."""
    start_line: Optional[int] = None  # 1-based header line
    end_line: Optional[int] = None  # 1-based stop-anchor line
    removed_lines: int = 0
    header_found: bool = False
    stop_reason: Optional[str] = None


class SegmentResult(BaseModel):
    """Transaction section extracted from raw statement text."""
    section_text: str
    debug: SegmentDebug


class RowSource(BaseModel):
    row_index: int
    line_index: int
    parser_version: str = PARSER_VERSION


class ParsedTransaction(BaseModel):
    """Raw transaction row, before normalization."""
    date: str
    date_raw: str
    description: str
    amount: Decimal
    balance: Optional[Decimal] = None
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None
    amount_source: AmountSource = AmountSource.PARSED_TOKEN
    raw_line: str
    confidence: float = Field(ge=0, le=1)
    source: RowSource


class ParseWarning(BaseModel):
    """Data-shape issue found while parsing.

    ``row_index`` points at the emitted row the warning belongs to. It is
    ``None`` for skipped blocks and document-level issues.
    """
    reason: str
    raw_line: str = ""
    confidence: float = 0.3
    row_index: Optional[int] = None


class StatementPeriod(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None


class ParseResult(BaseModel):
    transactions: List[ParsedTransaction] = Field(default_factory=list)
    warnings: List[ParseWarning] = Field(default_factory=list)
    period: StatementPeriod = Field(default_factory=StatementPeriod)
    dropped_blocks: int = 0


class ContinuityStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    UNTESTED = "untested"
    DISABLED = "disabled"


class ContinuityQuality(BaseModel):
    status: ContinuityStatus
    checked: int = 0
    consistent: int = 0
    total_pairs: int = 0
    skipped: int = 0
    skipped_reasons: Dict[str, int] = Field(default_factory=dict)
    pass_ratio: Optional[float] = None
    threshold: float = 0.0
    min_checked: int = 0


class ContinuityResult(BaseModel):
    needs_review: bool
    quality: ContinuityQuality


class AccountMeta(BaseModel):
    """Account identity recovered from the statement header."""
    bank_id: str
    account_id: str
    template_id: str
    account_name: Optional[str] = None
    bsb: Optional[str] = None
    account_number: Optional[str] = None
    account_key: Optional[str] = None
    meta_warnings: List[str] = Field(default_factory=list)


class TransferAnnotation(BaseModel):
    """Transfer-matching result written by an external collaborator."""
    match_id: Optional[str] = None
    state: Optional[str] = None  # "matched", "uncertain" or "ignored"
    decision: Optional[str] = None
    confidence: float = 0.0
    role: Optional[str] = None  # "out" or "in"
    counterparty_transaction_id: Optional[str] = None
    penalties: List[str] = Field(default_factory=list)


class TransactionSource(BaseModel):
    file_id: str
    file_hash: Optional[str] = None
    line_index: int
    row_index: int
    parser_version: Optional[str] = None


class TransactionQuality(BaseModel):
    warnings: List[str] = Field(default_factory=list)
    confidence: float
    raw_line: str
    raw_text: str


class TransactionFlags(BaseModel):
    transfer_candidate: bool = False


class NormalizedTransaction(BaseModel):
    """Identity-stable ledger transaction."""
    id: str
    dedupe_key: str
    bank_id: str
    account_id: str
    template_id: str
    date: str
    description_raw: str
    description_norm: str
    merchant_norm: str
    amount: Decimal
    balance: Optional[Decimal] = None
    currency: str = "AUD"
    source: TransactionSource
    quality: TransactionQuality
    category: str = "Other"
    category_source: str = "default"  # "rule", "manual" or "default"
    flags: TransactionFlags = Field(default_factory=TransactionFlags)
    transfer: Optional[TransferAnnotation] = None


class StatementQuality(BaseModel):
    header_found: bool
    continuity: ContinuityQuality
    needs_review_reasons: List[str] = Field(default_factory=list)
    non_blocking_warnings: List[str] = Field(default_factory=list)


class ParsedStatement(BaseModel):
    """Everything known about one parsed statement file."""
    file_id: str
    file_hash: Optional[str] = None
    template_id: str
    bank_id: str
    account_id: str
    account_meta: Optional[AccountMeta] = None
    period: StatementPeriod = Field(default_factory=StatementPeriod)
    transactions: List[NormalizedTransaction] = Field(default_factory=list)
    warnings: List[ParseWarning] = Field(default_factory=list)
    needs_review: bool = False
    quality: StatementQuality
    debug: SegmentDebug = Field(default_factory=SegmentDebug)
    section_text_preview: str = ""


class InboxKind(str, Enum):
    UNKNOWN_MERCHANT = "UNKNOWN_MERCHANT"
    UNCERTAIN_TRANSFER = "UNCERTAIN_TRANSFER"
    PARSE_ISSUE = "PARSE_ISSUE"


class InboxItem(BaseModel):
    """Reviewable anomaly. Recomputed on every request, never persisted."""
    id: str
    kind: InboxKind
    reason: str = ""
    title: str = ""
    summary: str = ""
    severity: str = "medium"  # "high", "medium" or "low"
    created_at: str = ""
    bank_id: Optional[str] = None
    account_id: Optional[str] = None
    file_id: Optional[str] = None
    transaction_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class InboxTotals(BaseModel):
    all: int = 0
    unresolved: int = 0
    resolved: int = 0


class InboxResult(BaseModel):
    items: List[InboxItem] = Field(default_factory=list)
    counts: Dict[InboxKind, int] = Field(default_factory=dict)
    totals: InboxTotals = Field(default_factory=InboxTotals)
    suppressed_by_rule: int = 0


class InboxOverrides(BaseModel):
    """Persisted suppression rules, keyed by rule key per inbox kind."""
    version: int = 1
    merchant_rules: Dict[str, Any] = Field(default_factory=dict)
    transfer_rules: Dict[str, Any] = Field(default_factory=dict)
    parse_rules: Dict[str, Any] = Field(default_factory=dict)
    updated_at: Optional[str] = None


class InboxOverridesUpdate(BaseModel):
    """Partial overrides payload.

    Categories left out of the payload are absent from ``model_fields_set``
    and keep their stored rules; an explicit ``{}`` clears a category.
    """
    merchant_rules: Optional[Dict[str, Any]] = None
    transfer_rules: Optional[Dict[str, Any]] = None
    parse_rules: Optional[Dict[str, Any]] = None


class ResolvedEntry(BaseModel):
    resolved_at: str
    note: Optional[str] = None

    @field_validator('resolved_at')
    @classmethod
    def validate_resolved_at(cls, v):
        if not v.strip():
            raise ValueError("resolved_at must not be empty")
        return v


class ReviewState(BaseModel):
    version: int = 1
    resolved: Dict[str, ResolvedEntry] = Field(default_factory=dict)
    updated_at: Optional[str] = None
