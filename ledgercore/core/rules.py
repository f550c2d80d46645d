"""
Suppression rules for inbox items.

Each inbox kind derives one rule key from its metadata; an item is hidden
when that key is present and truthy in the matching overrides mapping.
"""
from typing import Any, Dict, Iterable, List, Tuple

from ..models.schema import InboxItem, InboxKind, InboxOverrides

RULE_KEY_FIELDS = {
    InboxKind.UNKNOWN_MERCHANT: ("merchantRuleKey", "merchantNorm"),
    InboxKind.UNCERTAIN_TRANSFER: ("transferSignature", "pairKey", "matchId"),
    InboxKind.PARSE_ISSUE: ("parseRuleKey",),
}


def _read_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def rule_key_for_item(item: InboxItem) -> str:
    """Derive the suppression key; empty when the item has no usable key."""
    for field in RULE_KEY_FIELDS.get(item.kind, ()):
        key = _read_string(item.metadata.get(field))
        if key:
            return key
    if item.kind == InboxKind.PARSE_ISSUE:
        return _read_string(item.reason)
    return ""


def rules_for_kind(overrides: InboxOverrides, kind: InboxKind) -> Dict[str, Any]:
    if kind == InboxKind.UNKNOWN_MERCHANT:
        return overrides.merchant_rules
    if kind == InboxKind.UNCERTAIN_TRANSFER:
        return overrides.transfer_rules
    return overrides.parse_rules


def is_suppressed(item: InboxItem, overrides: InboxOverrides) -> bool:
    key = rule_key_for_item(item)
    if not key:
        return False
    return bool(rules_for_kind(overrides, item.kind).get(key))


def filter_suppressed(items: Iterable[InboxItem], overrides: InboxOverrides) -> Tuple[List[InboxItem], int]:
    """
    Split items into visible ones and a count of rule-suppressed ones.

    Returns:
        ``(visible, suppressed_by_rule)``
    """
    visible = []
    suppressed = 0
    for item in items:
        if is_suppressed(item, overrides):
            suppressed += 1
        else:
            visible.append(item)
    return visible, suppressed
