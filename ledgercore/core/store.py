"""
JSON file persistence for inbox overrides and review state.

Every write is read-merge-write under a per-file lock and lands through an
atomic rename, so concurrent partial updates never erase each other's
untouched rule categories.
"""
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Type, TypeVar
import logging

from pydantic import BaseModel

from ..models.schema import (
    InboxKind,
    InboxOverrides,
    InboxOverridesUpdate,
    ResolvedEntry,
    ReviewState,
)

logger = logging.getLogger(__name__)

OVERRIDES_FILE = "overrides.json"
REVIEW_STATE_FILE = "review_state.json"

RULE_FIELDS = {
    InboxKind.UNKNOWN_MERCHANT: "merchant_rules",
    InboxKind.UNCERTAIN_TRANSFER: "transfer_rules",
    InboxKind.PARSE_ISSUE: "parse_rules",
}

ModelT = TypeVar("ModelT", bound=BaseModel)

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def read_model(path: Path, model: Type[ModelT]) -> ModelT:
    """Read a JSON model; a missing or empty file yields the defaults."""
    if not path.exists():
        return model()
    raw = path.read_text(encoding='utf-8')
    if not raw.strip():
        return model()
    return model.model_validate_json(raw)


def write_model(path: Path, value: BaseModel):
    """Write through a temporary file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = tempfile.NamedTemporaryFile('w', dir=path.parent, prefix=f".{path.name}.", suffix='.tmp',
                                           delete=False, encoding='utf-8')
    try:
        with tmp_file:
            tmp_file.write(value.model_dump_json(indent=2))
        os.replace(tmp_file.name, path)
    except Exception:
        os.unlink(tmp_file.name)
        raise


class InboxStore:
    """Overrides and review state stored as two JSON files in one directory."""

    def __init__(self, state_dir: Path, clock: Callable[[], str] = _utc_now):
        self.state_dir = Path(state_dir)
        self.overrides_path = self.state_dir / OVERRIDES_FILE
        self.review_state_path = self.state_dir / REVIEW_STATE_FILE
        self.clock = clock

    def get_overrides(self) -> InboxOverrides:
        return read_model(self.overrides_path, InboxOverrides)

    def get_review_state(self) -> ReviewState:
        return read_model(self.review_state_path, ReviewState)

    def update_overrides(self, update: InboxOverridesUpdate) -> InboxOverrides:
        """
        Merge a partial overrides payload into the stored overrides.

        Only categories present in the payload are replaced; an explicit
        ``None`` or ``{}`` clears that category.

        Args:
            update: Partial payload

        Returns:
            The merged overrides as written
        """
        with _lock_for(self.overrides_path):
            current = read_model(self.overrides_path, InboxOverrides)
            changes = {
                field: dict(getattr(update, field) or {})
                for field in update.model_fields_set
                if field in RULE_FIELDS.values()
            }
            merged = current.model_copy(update={**changes, "updated_at": self.clock()})
            write_model(self.overrides_path, merged)

        logger.info(f"Updated overrides: {sorted(changes) or 'no categories'}")
        return merged

    def add_rule(self, kind: InboxKind, key: str, item_id: Optional[str] = None,
                 note: Optional[str] = None) -> InboxOverrides:
        """
        Add one suppression rule without touching any other rule.

        When ``item_id`` is given the item is also marked resolved.
        """
        key = (key or '').strip()
        if not key:
            raise ValueError("Rule key must not be empty")

        field = RULE_FIELDS[InboxKind(kind)]
        now = self.clock()
        with _lock_for(self.overrides_path):
            current = read_model(self.overrides_path, InboxOverrides)
            rules = dict(getattr(current, field))
            rules[key] = {"created_at": now, "note": note} if note else {"created_at": now}
            merged = current.model_copy(update={field: rules, "updated_at": now})
            write_model(self.overrides_path, merged)

        logger.info(f"Added {field} rule: {key}")
        if item_id:
            self.resolve_item(item_id, note)
        return merged

    def resolve_item(self, item_id: str, note: Optional[str] = None) -> ReviewState:
        """Mark an inbox item resolved."""
        if not (item_id or '').strip():
            raise ValueError("Item id must not be empty")

        now = self.clock()
        with _lock_for(self.review_state_path):
            current = read_model(self.review_state_path, ReviewState)
            resolved = dict(current.resolved)
            resolved[item_id] = ResolvedEntry(resolved_at=now, note=note or None)
            merged = current.model_copy(update={"resolved": resolved, "updated_at": now})
            write_model(self.review_state_path, merged)

        logger.debug(f"Resolved inbox item: {item_id}")
        return merged

    def reopen_item(self, item_id: str) -> ReviewState:
        """Remove an item from the resolved set."""
        with _lock_for(self.review_state_path):
            current = read_model(self.review_state_path, ReviewState)
            resolved = {k: v for k, v in current.resolved.items() if k != item_id}
            merged = current.model_copy(update={"resolved": resolved, "updated_at": self.clock()})
            write_model(self.review_state_path, merged)
        return merged
