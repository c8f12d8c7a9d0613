"""
Audit trail codec and change-diff formatting.

History is stored as TransactionHistory rows. This module renders those
rows into the single-text-field layout used for export, and parses that
layout back when importing legacy notes:

    <notes>

    --- HISTORY ---
    [APPROVAL - 2025-03-01 14:02:11] Dana (manager): Payment authorized
    [MODIFICATION - 2025-03-02 09:15:40] Dana (manager): Amount: "$ 100.00" → "$ 120.00"

Bare notes are stored when there is no history. Each log line reads
``[<ACTION> - <timestamp>] <actor>: <details>``.

It also builds the human-readable MODIFICATION line for field updates:
values are normalized before comparison (numbers within 0.001, dates by
calendar day, booleans coerced, empty values treated as missing) and
formatted per field (currency, date, enum label, Yes/No).

Usage:
    from finance.audit import HistoryLine, append, decode, encode

    line = HistoryLine.create("APPROVAL", "Dana (manager)", "Payment authorized")
    raw = append("Paid at the front desk", line)

    decoded = decode(raw)
    decoded.notes    # "Paid at the front desk"
    decoded.history  # [line]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.utils import timezone

from finance.states import Category, Direction, HistoryAction, PaymentMethod

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from typing import Any

HISTORY_MARKER = "--- HISTORY ---"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Authorship stamps appended to notes by older clients
_STAMP_PATTERN = re.compile(r"--- (?:Created|Modified) by:.*?---", re.DOTALL)

_LINE_PATTERN = re.compile(
    r"^\[(?P<action>"
    + "|".join(HistoryAction.values)
    + r") - (?P<timestamp>[^\]]+)\] (?P<rest>.*)$"
)


# =============================================================================
# History Lines
# =============================================================================


@dataclass(frozen=True)
class HistoryLine:
    """
    One entry of a transaction's audit history.

    The timestamp is kept as display text so that imported lines render
    back exactly as they were read.

    Attributes:
        action: One of HistoryAction
        timestamp: Display timestamp (TIMESTAMP_FORMAT for new lines)
        actor: Actor label, e.g. "Dana (manager)"
        details: Free-text description of what happened
    """

    action: str
    timestamp: str
    actor: str
    details: str

    @classmethod
    def create(
        cls,
        action: str,
        actor: str,
        details: str,
        at: datetime | None = None,
    ) -> HistoryLine:
        """
        Build a new line stamped with ``at`` (default: now, local time).

        The first ": " of a rendered line ends the actor, so any inside the
        actor label are written as " - ".
        """
        moment = timezone.localtime(at or timezone.now())
        return cls(
            action=HistoryAction(action).value,
            timestamp=moment.strftime(TIMESTAMP_FORMAT),
            actor=_single_line(actor).replace(": ", " - "),
            details=_single_line(details),
        )

    @classmethod
    def parse(cls, text: str) -> HistoryLine | None:
        """Parse one log line, returning None when it is not a history line."""
        match = _LINE_PATTERN.match(text.strip())
        if match is None:
            return None
        actor, separator, details = match.group("rest").partition(": ")
        if not separator:
            actor, details = match.group("rest").rstrip(":"), ""
        return cls(
            action=match.group("action"),
            timestamp=match.group("timestamp").strip(),
            actor=actor.strip(),
            details=details.strip(),
        )

    def render(self) -> str:
        return f"[{self.action} - {self.timestamp}] {self.actor}: {self.details}"

    def recorded_at(self) -> datetime | None:
        """Timestamp as an aware datetime, or None for unrecognized formats."""
        try:
            naive = datetime.strptime(self.timestamp, TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return timezone.make_aware(naive)

    def __str__(self) -> str:
        return self.render()


def _single_line(text: str) -> str:
    return " ".join(str(text).split())


# =============================================================================
# Codec
# =============================================================================


@dataclass
class DecodedNotes:
    """Human notes and ordered history lines extracted from one text field."""

    notes: str = ""
    history: list[HistoryLine] = field(default_factory=list)


def strip_stamps(notes: str) -> str:
    """Remove authorship stamps and surrounding whitespace from notes."""
    return _STAMP_PATTERN.sub("", notes or "").strip()


def decode(raw: str | None) -> DecodedNotes:
    """
    Split raw text into notes and history.

    Everything before the first marker is notes (authorship stamps
    removed). Lines after it that look like history lines are parsed in
    order; anything else in that section is ignored.
    """
    if not raw:
        return DecodedNotes()

    notes_part, marker, history_part = raw.partition(HISTORY_MARKER)
    history: list[HistoryLine] = []
    if marker:
        for text in history_part.splitlines():
            line = HistoryLine.parse(text)
            if line is not None:
                history.append(line)
    return DecodedNotes(notes=strip_stamps(notes_part), history=history)


def encode(notes: str | None, history: Iterable[HistoryLine]) -> str:
    """
    Inverse of decode. Omits the marker block when there is no history.

    Notes are stored trimmed, as decode returns them, so
    ``decode(encode(notes, lines)) == (notes.strip(), lines)``.
    """
    notes = (notes or "").strip()
    lines = [line.render() for line in history]
    if not lines:
        return notes
    block = HISTORY_MARKER + "\n" + "\n".join(lines)
    return f"{notes}\n\n{block}" if notes else block


def append(raw: str | None, line: HistoryLine) -> str:
    """Add one history line to the end of an encoded text field."""
    decoded = decode(raw)
    return encode(decoded.notes, [*decoded.history, line])


# =============================================================================
# Change Diffs
# =============================================================================

FIELD_LABELS = {
    "direction": "Type",
    "category": "Category",
    "title": "Title",
    "description": "Description",
    "amount": "Amount",
    "due_date": "Due date",
    "payment_method": "Payment method",
    "reference_month": "Reference month",
    "reference_year": "Reference year",
    "invoice_number": "Invoice number",
    "receipt_url": "Receipt URL",
    "late_fee": "Late fee",
    "discount": "Discount",
    "pix_key": "PIX key",
    "pix_recipient_name": "PIX recipient name",
    "mixed_payment": "Mixed payment",
    "pix_amount": "PIX amount",
    "cash_amount": "Cash amount",
    "is_private": "Private expense",
    "unit_id": "Unit",
    "payer_id": "Payer",
}

MONEY_FIELDS = frozenset({"amount", "late_fee", "discount", "pix_amount", "cash_amount"})
INTEGER_FIELDS = frozenset({"reference_month", "reference_year"})
DATE_FIELDS = frozenset({"due_date"})
BOOLEAN_FIELDS = frozenset({"mixed_payment", "is_private"})
ENUM_LABELS = {
    "direction": dict(Direction.choices),
    "category": dict(Category.choices),
    "payment_method": dict(PaymentMethod.choices),
}

NUMERIC_TOLERANCE = Decimal("0.001")
NOT_PROVIDED = "Not provided"

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return timezone.localtime(value).date() if timezone.is_aware(value) else value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def normalize_value(field_name: str, value: Any) -> Any:
    """
    Normalize a field value for comparison.

    Empty strings and None both normalize to None. Money and integer
    fields become Decimal, dates become calendar days, booleans are
    coerced. Anything else is compared as text.
    """
    if value is None or value == "":
        return None
    if field_name in DATE_FIELDS:
        return _to_date(value)
    if field_name in MONEY_FIELDS or field_name in INTEGER_FIELDS:
        return _to_decimal(value)
    if field_name in BOOLEAN_FIELDS:
        return _to_bool(value)
    return str(value)


def values_differ(field_name: str, old: Any, new: Any) -> bool:
    """True when the normalized values of a field actually differ."""
    old_normalized = normalize_value(field_name, old)
    new_normalized = normalize_value(field_name, new)
    if old_normalized is None or new_normalized is None:
        return old_normalized is not new_normalized
    if isinstance(old_normalized, Decimal) and isinstance(new_normalized, Decimal):
        return abs(old_normalized - new_normalized) > NUMERIC_TOLERANCE
    return old_normalized != new_normalized


def format_value(field_name: str, value: Any, currency_symbol: str = "$") -> str:
    """Render a field value for a history line."""
    if value is None or value == "":
        return NOT_PROVIDED
    if field_name in MONEY_FIELDS:
        return f"{currency_symbol} {_to_decimal(value):,.2f}"
    if field_name in DATE_FIELDS:
        day = _to_date(value)
        return day.isoformat() if day else str(value)
    if field_name in BOOLEAN_FIELDS:
        return "Yes" if _to_bool(value) else "No"
    if field_name in ENUM_LABELS:
        return str(ENUM_LABELS[field_name].get(value, value))
    return str(value)


def diff_fields(
    current: Mapping[str, Any],
    updates: Mapping[str, Any],
    currency_symbol: str = "$",
) -> list[str]:
    """
    Describe every recognized field whose value changes.

    Args:
        current: Field values as currently persisted
        updates: Incoming field values (notes and unknown fields are ignored)
        currency_symbol: Symbol used for money fields

    Returns:
        Change descriptions like ``Amount: "$ 100.00" → "$ 120.00"``,
        in FIELD_LABELS order
    """
    changes = []
    for field_name, label in FIELD_LABELS.items():
        if field_name not in updates:
            continue
        old, new = current.get(field_name), updates[field_name]
        if values_differ(field_name, old, new):
            changes.append(
                f'{label}: "{format_value(field_name, old, currency_symbol)}"'
                f' → "{format_value(field_name, new, currency_symbol)}"'
            )
    return changes


def build_modification_details(changes: Iterable[str]) -> str:
    return "; ".join(changes)
