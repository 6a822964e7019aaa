"""Daily session rollups.

Every aggregate on a daily session is derived from its entries by
``compute_rollups``. The model layer calls it before each flush, so stored
totals never drift from the entries they summarize.
"""

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional, Protocol, Sequence


class EntryLike(Protocol):
    check_out_time: object
    checkout_reason: Optional[str]
    duration_minutes: Optional[float]
    sales_during_session: Optional[Decimal]
    transactions_during_session: Optional[int]


@dataclass(frozen=True)
class SessionRollups:
    total_check_ins: int = 0
    total_check_outs: int = 0
    total_duration_minutes: float = 0.0
    total_sales: Decimal = Decimal("0")
    total_transactions: int = 0
    checkout_reason_counts: Dict[str, int] = field(default_factory=dict)
    currently_active: bool = False
    active_entry_index: Optional[int] = None
    open_entries: int = 0


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_rollups(entries: Sequence[EntryLike]) -> SessionRollups:
    """Summarize a day's entries. Pure; never touches the database."""
    open_indexes = [i for i, entry in enumerate(entries) if entry.check_out_time is None]
    closed = [entry for entry in entries if entry.check_out_time is not None]

    reasons = Counter(entry.checkout_reason for entry in closed if entry.checkout_reason)

    return SessionRollups(
        total_check_ins=len(entries),
        total_check_outs=len(closed),
        total_duration_minutes=round(sum(entry.duration_minutes or 0.0 for entry in closed), 2),
        total_sales=sum((_as_decimal(entry.sales_during_session) for entry in closed), Decimal("0")),
        total_transactions=sum(entry.transactions_during_session or 0 for entry in closed),
        checkout_reason_counts=dict(sorted(reasons.items())),
        currently_active=bool(open_indexes),
        active_entry_index=open_indexes[-1] if open_indexes else None,
        open_entries=len(open_indexes),
    )


def merge_reason_counts(counts: Iterable[Dict[str, int]]) -> Dict[str, int]:
    """Sum several ``checkout_reason_counts`` maps (e.g. across days)."""
    total: Counter = Counter()
    for item in counts:
        total.update(item or {})
    return dict(sorted(total.items()))
