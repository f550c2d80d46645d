"""
Pydantic models for statement template configurations.
"""
import re
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AmountBalanceStrategy(str, Enum):
    """How the numeric tail of a transaction block maps to amount/balance."""
    AMOUNT_BALANCE = "amount_balance"
    DEBIT_CREDIT_BALANCE = "debit_credit_balance"
    INFER_FROM_LAST_NUMBERS = "infer_from_last_numbers"


class YearInference(str, Enum):
    """Where the year comes from when a date token has none."""
    NONE = "none"
    FROM_PERIOD = "from_period"


class DetectConfig(BaseModel):
    """Keyword proximity settings used by the template detector."""
    model_config = ConfigDict(frozen=True)

    keywords: List[str] = Field(default_factory=list)
    window_size: int = Field(default=6, ge=1)
    fuzzy_threshold: float = Field(default=100, ge=0, le=100)


class SegmentConfig(BaseModel):
    """Boundaries and noise filters for the transaction table."""
    model_config = ConfigDict(frozen=True)

    start_after_header: bool = True
    stop_anchors: List[str] = Field(default_factory=list)
    remove_line_patterns: List[str] = Field(default_factory=list)

    @field_validator('remove_line_patterns')
    @classmethod
    def validate_patterns(cls, v):
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid remove_line_pattern {pattern!r}: {e}")
        return v


class ParseConfig(BaseModel):
    """Row parsing conventions of one statement layout."""
    model_config = ConfigDict(frozen=True)

    date_pattern: str
    has_debit_credit_columns: bool = False
    amount_balance_strategy: AmountBalanceStrategy
    year_inference: YearInference = YearInference.NONE
    multiline_block: bool = True

    @field_validator('date_pattern')
    @classmethod
    def validate_date_pattern(cls, v):
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid date_pattern {v!r}: {e}")
        return v


class QualityConfig(BaseModel):
    """Continuity gate thresholds."""
    model_config = ConfigDict(frozen=True)

    enable_continuity_gate: bool = True
    continuity_threshold: float = Field(default=0.85, ge=0, le=1)
    min_continuity_checked: int = Field(default=5, ge=0)


class TemplateConfig(BaseModel):
    """One (bank, layout) statement template. Immutable once registered."""
    model_config = ConfigDict(frozen=True)

    id: str
    bank: str
    name: str = ""
    version: int = 1
    priority: int = 100
    parser_version: str = ""
    header_anchors: List[str]
    detect: DetectConfig = Field(default_factory=DetectConfig)
    segment: SegmentConfig = Field(default_factory=SegmentConfig)
    parse: ParseConfig
    quality: QualityConfig = Field(default_factory=QualityConfig)

    @field_validator('header_anchors')
    @classmethod
    def validate_header_anchors(cls, v):
        if not v:
            raise ValueError("Template must declare at least one header anchor")
        return v
