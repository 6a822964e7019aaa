"""Cashier daily session models.

One ``CashierDailySession`` row exists per cashier per business day. Each
check-in appends a ``CashierSessionEntry``; check-out closes it. Rollup
columns on the daily row are recomputed from the entries before every
flush.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, Numeric,
    String, Text, UniqueConstraint, event,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from cashdesk.db.base import Base, TimestampMixin
from cashdesk.services.session_rollups import compute_rollups


class CheckoutReason(str, enum.Enum):
    MANUAL = "manual"
    TAB_SWITCH = "tab-switch"
    WINDOW_MINIMIZE = "window-minimize"
    BROWSER_CLOSE = "browser-close"
    LOGOUT = "logout"
    SYSTEM_TIMEOUT = "system-timeout"
    END_OF_SHIFT = "end-of-shift"
    BREAK = "break"
    EMERGENCY = "emergency"
    SYSTEM_ISSUE = "system-issue"
    OTHER = "other"


class CashierDailySession(Base, TimestampMixin):
    """A cashier's activity for one business day."""

    __tablename__ = "cashier_daily_sessions"
    __table_args__ = (
        UniqueConstraint("cashier_id", "session_date", name="uq_cashier_daily_session"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    cashier_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    cashier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)

    currently_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active_entry_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Rollups (derived, see compute_rollups)
    total_check_ins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_check_outs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_duration_minutes: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_sales: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checkout_reason_counts: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    admin_reviewed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    admin_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    admin_reviewed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    last_activity_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    entries: Mapped[List["CashierSessionEntry"]] = relationship(
        back_populates="daily_session",
        order_by="CashierSessionEntry.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def open_entry(self) -> Optional["CashierSessionEntry"]:
        if self.active_entry_index is None:
            return None
        if self.active_entry_index >= len(self.entries):
            return None
        entry = self.entries[self.active_entry_index]
        return entry if entry.is_open else None

    def refresh_rollups(self) -> None:
        rollups = compute_rollups(self.entries)
        self.total_check_ins = rollups.total_check_ins
        self.total_check_outs = rollups.total_check_outs
        self.total_duration_minutes = rollups.total_duration_minutes
        self.total_sales = rollups.total_sales
        self.total_transactions = rollups.total_transactions
        self.checkout_reason_counts = rollups.checkout_reason_counts
        self.currently_active = rollups.currently_active
        self.active_entry_index = rollups.active_entry_index


class CashierSessionEntry(Base):
    """One check-in/check-out interval within a daily session."""

    __tablename__ = "cashier_session_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    daily_session_id: Mapped[int] = mapped_column(
        ForeignKey("cashier_daily_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    check_in_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    checkout_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    checkout_reason_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    duration_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sales_during_session: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    transactions_during_session: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    screen_share_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    peer_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_screen_share_update: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_activity_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    long_session_notified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    daily_session: Mapped[CashierDailySession] = relationship(back_populates="entries")

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None


@event.listens_for(Session, "before_flush")
def _refresh_daily_rollups(session, flush_context, instances):
    """Recompute rollups for every daily session touched by this flush."""
    touched = {}
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, CashierDailySession):
            touched[id(obj)] = obj
        elif isinstance(obj, CashierSessionEntry) and obj.daily_session is not None:
            touched[id(obj.daily_session)] = obj.daily_session
    for daily in touched.values():
        if daily in session.deleted:
            continue
        daily.refresh_rollups()
