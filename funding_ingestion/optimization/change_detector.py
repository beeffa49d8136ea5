"""Material change detection for existing opportunities.

Upstream sources return near-identical data on every poll; an update is only
written when a monitored field changes materially.
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Record = Union[Mapping[str, Any], BaseModel]

DATE_FIELDS = ("open_date", "close_date")
AMOUNT_FIELDS = ("minimum_award", "maximum_award", "total_funding_available")
TEXT_FIELDS = ("status",)
MONITORED_FIELDS = DATE_FIELDS + TEXT_FIELDS + AMOUNT_FIELDS

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def get_field(record: Optional[Record], name: str) -> Any:
    """Read a field from a model or from a snake_case/camelCase mapping."""
    if record is None:
        return None
    if isinstance(record, BaseModel):
        return getattr(record, name, None)
    if name in record:
        return record[name]
    return record.get(_camel(name))


def normalize_date(value: Any) -> Optional[str]:
    """Calendar day (YYYY-MM-DD) as written, ignoring time and zone."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return text


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)
    return amount if amount.is_finite() else Decimal(0)


def normalize_text(text: str) -> str:
    """Lower-case, punctuation replaced by spaces, whitespace collapsed."""
    lowered = _PUNCTUATION_RE.sub(" ", text.lower())
    return _WHITESPACE_RE.sub(" ", lowered).strip()


class ChangeDetector:
    """Decides whether an incoming record differs materially from a stored one."""

    def __init__(
        self,
        amount_threshold: float = 0.05,
        description_similarity: float = 0.8,
        min_word_length: int = 3,
    ) -> None:
        self.amount_threshold = Decimal(str(amount_threshold))
        self.description_similarity = description_similarity
        self.min_word_length = min_word_length

    def is_material_change(self, existing: Record, incoming: Record) -> bool:
        """True if any monitored field changed materially."""
        changed = [f for f in MONITORED_FIELDS if self.has_field_changed(existing, incoming, f)]
        if self.has_description_changed(
            get_field(existing, "description"), get_field(incoming, "description")
        ):
            changed.append("description")
        if changed:
            logger.info("material_change fields=%s", ",".join(changed))
        return bool(changed)

    def describe_changes(self, existing: Record, incoming: Record) -> dict[str, dict[str, Any]]:
        """Map of changed field -> {"from": old, "to": new} for audit logs."""
        changes: dict[str, dict[str, Any]] = {}
        for name in MONITORED_FIELDS:
            if self.has_field_changed(existing, incoming, name):
                changes[name] = {"from": get_field(existing, name), "to": get_field(incoming, name)}

        old_desc = get_field(existing, "description")
        new_desc = get_field(incoming, "description")
        if self.has_description_changed(old_desc, new_desc):
            changes["description"] = {"from": _preview(old_desc), "to": _preview(new_desc)}
        return changes

    def has_field_changed(self, existing: Record, incoming: Record, name: str) -> bool:
        old = get_field(existing, name)
        new = get_field(incoming, name)
        if name in AMOUNT_FIELDS:
            return self.has_amount_changed(old, new)
        if name in DATE_FIELDS:
            return self.has_date_changed(old, new)
        return self.has_value_changed(old, new)

    def has_amount_changed(self, old: Any, new: Any) -> bool:
        """Material when the relative difference is strictly over the threshold."""
        if old is None and new is None:
            return False
        if old is None or new is None:
            return True

        old_amount = _to_decimal(old)
        new_amount = _to_decimal(new)
        if old_amount == 0 and new_amount == 0:
            return False
        if old_amount == 0 or new_amount == 0:
            return True
        return abs(new_amount - old_amount) / abs(old_amount) > self.amount_threshold

    def has_date_changed(self, old: Any, new: Any) -> bool:
        return normalize_date(old) != normalize_date(new)

    @staticmethod
    def has_value_changed(old: Any, new: Any) -> bool:
        if old is None and new is None:
            return False
        if old is None or new is None:
            return True
        return str(old).strip().lower() != str(new).strip().lower()

    def has_description_changed(self, old: Optional[str], new: Optional[str]) -> bool:
        if not old and not new:
            return False
        if not old or not new:
            return True

        old_norm = normalize_text(old)
        new_norm = normalize_text(new)
        if old_norm == new_norm:
            return False

        old_words = {w for w in old_norm.split(" ") if len(w) > self.min_word_length}
        new_words = {w for w in new_norm.split(" ") if len(w) > self.min_word_length}
        if not old_words and not new_words:
            return False
        if not old_words or not new_words:
            return True

        jaccard = len(old_words & new_words) / len(old_words | new_words)
        return jaccard < self.description_similarity


def _preview(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return f"{text[:100]}..." if len(text) > 100 else text


DEFAULT_DETECTOR = ChangeDetector()


def is_material_change(existing: Record, incoming: Record) -> bool:
    return DEFAULT_DETECTOR.is_material_change(existing, incoming)


def describe_changes(existing: Record, incoming: Record) -> dict[str, dict[str, Any]]:
    return DEFAULT_DETECTOR.describe_changes(existing, incoming)
