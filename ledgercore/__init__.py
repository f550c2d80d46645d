"""
Statement ledger core

A deterministic parser for text-extracted bank statements: template
detection, transaction table segmentation and parsing, balance continuity
checks, identity-stable normalization and a rule-suppressible review inbox.
"""

__version__ = "1.0.0"

from .core.runner import parse_statement, load_text
from .core.detectors import detect_template
from .core.segment import segment_transaction_section
from .core.tables import parse_transactions
from .core.continuity import check_continuity
from .core.ledger import NormalizationContext, normalize_transactions, dedupe_transactions
from .core.inbox import classify, build_inbox
from .core.rules import filter_suppressed, is_suppressed, rule_key_for_item
from .core.store import InboxStore
from .models.schema import ParsedStatement, ParsedTransaction, NormalizedTransaction, InboxItem, InboxOverrides
from .models.template import TemplateConfig

__all__ = [
    "parse_statement",
    "load_text",
    "detect_template",
    "segment_transaction_section",
    "parse_transactions",
    "check_continuity",
    "NormalizationContext",
    "normalize_transactions",
    "dedupe_transactions",
    "classify",
    "build_inbox",
    "filter_suppressed",
    "is_suppressed",
    "rule_key_for_item",
    "InboxStore",
    "ParsedStatement",
    "ParsedTransaction",
    "NormalizedTransaction",
    "InboxItem",
    "InboxOverrides",
    "TemplateConfig",
]
