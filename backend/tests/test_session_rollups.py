"""Tests for daily session rollup computation."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from cashdesk.services.session_rollups import compute_rollups, merge_reason_counts


@dataclass
class Entry:
    check_out_time: Optional[datetime] = None
    checkout_reason: Optional[str] = None
    duration_minutes: Optional[float] = None
    sales_during_session: Optional[Decimal] = None
    transactions_during_session: Optional[int] = None


def _closed(reason="manual", minutes=30.0, sales="100.00", transactions=2):
    return Entry(
        check_out_time=datetime(2024, 5, 14, 12, 0),
        checkout_reason=reason,
        duration_minutes=minutes,
        sales_during_session=Decimal(sales),
        transactions_during_session=transactions,
    )


class TestComputeRollups:
    def test_empty_day(self):
        rollups = compute_rollups([])
        assert rollups.total_check_ins == 0
        assert rollups.total_check_outs == 0
        assert rollups.total_sales == Decimal("0")
        assert rollups.currently_active is False
        assert rollups.active_entry_index is None
        assert rollups.checkout_reason_counts == {}

    def test_counts_follow_entries(self):
        entries = [_closed(), _closed(reason="break"), Entry()]
        rollups = compute_rollups(entries)
        assert rollups.total_check_ins == len(entries)
        assert rollups.total_check_outs == 2
        assert rollups.currently_active is True
        assert rollups.active_entry_index == 2

    def test_totals_only_include_closed_entries(self):
        open_entry = Entry(sales_during_session=Decimal("999"), transactions_during_session=9)
        rollups = compute_rollups([_closed(sales="100.50", minutes=15.5), open_entry, _closed(sales="49.50", minutes=10)])
        assert rollups.total_sales == Decimal("150.00")
        assert rollups.total_transactions == 4
        assert rollups.total_duration_minutes == 25.5

    def test_reason_counts(self):
        rollups = compute_rollups([_closed("manual"), _closed("tab-switch"), _closed("manual")])
        assert rollups.checkout_reason_counts == {"manual": 2, "tab-switch": 1}

    def test_order_independent(self):
        entries = [_closed("manual", 10, "5"), _closed("break", 20, "7"), _closed("logout", 30, "11")]
        forward = compute_rollups(entries)
        backward = compute_rollups(list(reversed(entries)))
        assert forward.total_sales == backward.total_sales
        assert forward.total_duration_minutes == backward.total_duration_minutes
        assert forward.checkout_reason_counts == backward.checkout_reason_counts

    def test_idempotent(self):
        entries = [_closed(), Entry()]
        assert compute_rollups(entries) == compute_rollups(entries)

    def test_active_index_points_at_last_open_entry(self):
        rollups = compute_rollups([Entry(), _closed(), Entry()])
        assert rollups.open_entries == 2
        assert rollups.active_entry_index == 2

    def test_float_sales_are_accepted(self):
        entry = _closed()
        entry.sales_during_session = 12.25
        assert compute_rollups([entry]).total_sales == Decimal("12.25")


class TestMergeReasonCounts:
    def test_merges_days(self):
        merged = merge_reason_counts([{"manual": 1}, {"manual": 2, "break": 1}, None, {}])
        assert merged == {"break": 1, "manual": 3}
