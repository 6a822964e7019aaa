"""Cashier session lifecycle.

Enforces one open entry per cashier per business day, computes checkout
statistics from the Sales Store and answers status/history queries.
Operations return the affected rows together with the ``CashierEvent`` the
caller should publish; announcing presence on the realtime channel is the
client's job.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cashdesk.core.clock import Clock, business_date, minutes_between, utcnow
from cashdesk.core.config import settings
from cashdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from cashdesk.models.cashier_session import CashierDailySession, CashierSessionEntry, CheckoutReason
from cashdesk.services.directory_service import DirectoryService
from cashdesk.services.notification_service import CashierEvent, CashierEventType
from cashdesk.services.sales_store import SalesStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============== Serialization ==============

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def entry_to_dict(entry: CashierSessionEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "position": entry.position,
        "checkInTime": _iso(entry.check_in_time),
        "checkOutTime": _iso(entry.check_out_time),
        "checkoutReason": entry.checkout_reason,
        "checkoutReasonDetails": entry.checkout_reason_details,
        "closedBy": entry.closed_by,
        "durationMinutes": entry.duration_minutes,
        "salesDuringSession": float(entry.sales_during_session or 0),
        "transactionsDuringSession": entry.transactions_during_session or 0,
        "isActive": entry.is_open,
        "screenShareEnabled": entry.screen_share_enabled,
        "peerId": entry.peer_id,
        "lastScreenShareUpdate": _iso(entry.last_screen_share_update),
        "lastActivityTime": _iso(entry.last_activity_time),
    }


def daily_session_to_dict(daily: CashierDailySession, include_entries: bool = True) -> Dict[str, Any]:
    data = {
        "id": daily.id,
        "cashierId": daily.cashier_id,
        "cashierName": daily.cashier_name,
        "sessionDate": daily.session_date.isoformat(),
        "currentlyActive": daily.currently_active,
        "activeEntryIndex": daily.active_entry_index,
        "totalCheckIns": daily.total_check_ins,
        "totalCheckOuts": daily.total_check_outs,
        "totalDurationMinutes": daily.total_duration_minutes,
        "totalSales": float(daily.total_sales or 0),
        "totalTransactions": daily.total_transactions,
        "checkoutReasonCounts": daily.checkout_reason_counts or {},
        "adminReviewed": daily.admin_reviewed,
        "adminReviewedAt": _iso(daily.admin_reviewed_at),
        "adminReviewedBy": daily.admin_reviewed_by,
        "lastActivityTime": _iso(daily.last_activity_time),
    }
    if include_entries:
        data["entries"] = [entry_to_dict(e) for e in daily.entries]
    return data


def performance_summary(daily: CashierDailySession) -> Dict[str, Any]:
    return {
        "sales": float(daily.total_sales or 0),
        "transactions": daily.total_transactions,
        "totalCheckIns": daily.total_check_ins,
        "totalCheckOuts": daily.total_check_outs,
        "totalSessionDuration": daily.total_duration_minutes,
        "checkoutReasonsSummary": daily.checkout_reason_counts or {},
    }


# ============== Results ==============

@dataclass
class CheckInResult:
    daily_session: CashierDailySession
    entry: CashierSessionEntry
    created: bool
    event: Optional[CashierEvent] = None


@dataclass
class SessionStats:
    duration_minutes: float
    sales: Decimal
    transactions: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration": self.duration_minutes,
            "sales": float(self.sales),
            "transactions": self.transactions,
            "reason": self.reason,
        }


@dataclass
class CheckOutResult:
    daily_session: CashierDailySession
    entry: CashierSessionEntry
    stats: SessionStats
    event: CashierEvent


@dataclass
class ScreenShareUpdate:
    daily_session: Optional[CashierDailySession]
    entry: Optional[CashierSessionEntry]
    is_sharing: bool
    event: Optional[CashierEvent] = None


def _parse_reason(reason: Optional[str], default: CheckoutReason) -> CheckoutReason:
    if not reason:
        return default
    try:
        return CheckoutReason(reason)
    except ValueError:
        allowed = ", ".join(r.value for r in CheckoutReason)
        raise ValidationError(f"Invalid checkout reason '{reason}'. Allowed: {allowed}")


class CashierSessionService:
    """Session lifecycle operations for a single request/unit of work."""

    def __init__(
        self,
        db: Session,
        directory: Optional[DirectoryService] = None,
        sales: Optional[SalesStore] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.directory = directory or DirectoryService(db)
        self.sales = sales or SalesStore(db)
        self.clock = clock

    # ---------------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------------

    def _load_day(self, cashier_id: int, day: date, lock: bool = False) -> Optional[CashierDailySession]:
        query = self.db.query(CashierDailySession).filter(
            CashierDailySession.cashier_id == cashier_id,
            CashierDailySession.session_date == day,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def _retry_once(self, operation: Callable[[], T]) -> T:
        """Run ``operation``; replay it once if a concurrent writer won the race.

        A duplicate first check-in trips the unique constraint and a lost
        update trips the version check. Replaying against fresh state makes
        check-in idempotent and turns a losing checkout into NotFound.
        """
        try:
            return operation()
        except (IntegrityError, StaleDataError) as e:
            self.db.rollback()
            logger.info(f"Concurrent cashier session write detected, retrying: {e.__class__.__name__}")
            return operation()

    @staticmethod
    def _require_cashier_id(cashier_id) -> None:
        if cashier_id is None or cashier_id == "":
            raise ValidationError("Cashier ID is required")

    # ---------------------------------------------------------------------
    # check-in / check-out
    # ---------------------------------------------------------------------

    def check_in(self, cashier_id: Optional[int]) -> CheckInResult:
        """Open an entry for today, or return the one already open."""
        self._require_cashier_id(cashier_id)
        cashier = self.directory.find_by_id(cashier_id)
        cashier_name = cashier.display_name
        return self._retry_once(lambda: self._check_in(cashier_id, cashier_name))

    def _check_in(self, cashier_id: int, cashier_name: str) -> CheckInResult:
        now = self.clock()
        daily = self._load_day(cashier_id, business_date(now), lock=True)

        if daily is not None and daily.open_entry is not None:
            entry = daily.open_entry
            entry.last_activity_time = now
            daily.last_activity_time = now
            self.db.commit()
            logger.debug(f"Cashier {cashier_id} already checked in (daily session {daily.id})")
            return CheckInResult(daily_session=daily, entry=entry, created=False)

        if daily is None:
            daily = CashierDailySession(
                cashier_id=cashier_id,
                cashier_name=cashier_name,
                session_date=business_date(now),
                checkout_reason_counts={},
            )
            self.db.add(daily)

        entry = CashierSessionEntry(
            check_in_time=now,
            last_activity_time=now,
            screen_share_enabled=False,
            sales_during_session=Decimal("0"),
            transactions_during_session=0,
        )
        daily.entries.append(entry)
        daily.last_activity_time = now
        self.db.commit()

        logger.info(f"Cashier {cashier_id} checked in (daily session {daily.id}, entry #{entry.position})")
        event = CashierEvent(
            type=CashierEventType.CHECK_IN,
            cashier_id=cashier_id,
            cashier_name=daily.cashier_name,
            session_id=daily.id,
            metadata={"checkInTime": _iso(now)},
        )
        return CheckInResult(daily_session=daily, entry=entry, created=True, event=event)

    def check_out(self, cashier_id: Optional[int], reason: Optional[str] = None,
                  reason_details: Optional[str] = None) -> CheckOutResult:
        """Close today's open entry with sales stats for its window."""
        self._require_cashier_id(cashier_id)
        parsed = _parse_reason(reason, CheckoutReason.MANUAL)
        return self._retry_once(
            lambda: self._check_out_today(cashier_id, parsed, reason_details, CashierEventType.CHECK_OUT)
        )

    def auto_check_out(self, cashier_id: Optional[int], reason: Optional[str] = None,
                       reason_details: Optional[str] = None) -> CheckOutResult:
        """Checkout triggered by the client (tab switch, browser close, idle timeout)."""
        self._require_cashier_id(cashier_id)
        parsed = _parse_reason(reason, CheckoutReason.SYSTEM_TIMEOUT)
        return self._retry_once(
            lambda: self._check_out_today(cashier_id, parsed, reason_details, CashierEventType.AUTO_CHECKOUT)
        )

    def force_check_out(self, daily_session_id: int, supervisor_id: int,
                        reason: Optional[str] = None,
                        reason_details: Optional[str] = None) -> CheckOutResult:
        """Supervisor closes whatever entry is open on a daily session."""
        parsed = _parse_reason(reason, CheckoutReason.OTHER)
        details = reason_details or f"Checked out by supervisor {supervisor_id}"

        def operation() -> CheckOutResult:
            daily = (
                self.db.query(CashierDailySession)
                .filter(CashierDailySession.id == daily_session_id)
                .with_for_update()
                .first()
            )
            if daily is None:
                raise NotFoundError("Daily session not found")
            entry = daily.open_entry
            if entry is None:
                raise NotFoundError("No active session to check out")
            return self._close_entry(
                daily, entry, self.clock(), parsed, details,
                CashierEventType.FORCE_CHECKOUT, closed_by=supervisor_id,
            )

        return self._retry_once(operation)

    def _check_out_today(self, cashier_id: int, reason: CheckoutReason,
                         reason_details: Optional[str], event_type: CashierEventType) -> CheckOutResult:
        now = self.clock()
        daily = self._load_day(cashier_id, business_date(now), lock=True)
        entry = daily.open_entry if daily is not None else None
        if entry is None:
            raise NotFoundError("No active session found for today")
        return self._close_entry(daily, entry, now, reason, reason_details, event_type)

    def _close_entry(
        self,
        daily: CashierDailySession,
        entry: CashierSessionEntry,
        now: datetime,
        reason: CheckoutReason,
        reason_details: Optional[str],
        event_type: CashierEventType,
        closed_by: Optional[int] = None,
    ) -> CheckOutResult:
        # The window is [check_in_time, check_out_time]; now is captured once.
        try:
            summary = self.sales.summarize(daily.cashier_id, entry.check_in_time, now)
        except Exception:
            self.db.rollback()
            logger.error(f"Sales lookup failed, checkout of cashier {daily.cashier_id} aborted")
            raise

        duration = round(minutes_between(entry.check_in_time, now), 2)
        entry.check_out_time = now
        entry.checkout_reason = reason.value
        entry.checkout_reason_details = reason_details
        entry.closed_by = closed_by
        entry.duration_minutes = duration
        entry.sales_during_session = summary.total_sales
        entry.transactions_during_session = summary.transaction_count
        entry.screen_share_enabled = False
        entry.last_activity_time = now
        daily.last_activity_time = now
        check_in_time = entry.check_in_time
        self.db.commit()

        logger.info(
            f"Cashier {daily.cashier_id} checked out ({reason.value}): "
            f"{duration} min, {summary.transaction_count} transactions, {summary.total_sales} sales"
        )
        stats = SessionStats(
            duration_minutes=duration,
            sales=summary.total_sales,
            transactions=summary.transaction_count,
            reason=reason.value,
        )
        metadata = {
            "checkInTime": _iso(check_in_time),
            "checkOutTime": _iso(now),
            "sessionDuration": duration,
            "salesAmount": float(summary.total_sales),
            "transactionCount": summary.transaction_count,
            "reason": reason.value,
            "reasonDetails": reason_details,
        }
        if closed_by is not None:
            metadata["closedBy"] = closed_by
        event = CashierEvent(
            type=event_type,
            cashier_id=daily.cashier_id,
            cashier_name=daily.cashier_name,
            session_id=daily.id,
            metadata=metadata,
        )
        return CheckOutResult(daily_session=daily, entry=entry, stats=stats, event=event)

    # ---------------------------------------------------------------------
    # queries
    # ---------------------------------------------------------------------

    def get_status(self, cashier_id: int) -> Dict[str, Any]:
        daily = self._load_day(cashier_id, business_date(self.clock()))
        entry = daily.open_entry if daily is not None else None
        return {
            "hasActiveSession": entry is not None,
            "session": daily_session_to_dict(daily) if daily is not None else None,
            "entry": entry_to_dict(entry) if entry is not None else None,
            "todaysPerformance": performance_summary(daily) if daily is not None else None,
            "screenShareEnabled": bool(entry is not None and entry.screen_share_enabled),
        }

    def get_history(self, cashier_id: int, page: int = 1, limit: Optional[int] = None) -> Dict[str, Any]:
        limit = settings.history_default_limit if limit is None else limit
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if limit < 1:
            raise ValidationError("limit must be 1 or greater")
        limit = min(limit, settings.history_max_limit)

        query = self.db.query(CashierDailySession).filter(CashierDailySession.cashier_id == cashier_id)
        total = query.count()
        sessions = (
            query.order_by(CashierDailySession.session_date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "sessions": [daily_session_to_dict(s) for s in sessions],
            "totalPages": math.ceil(total / limit) if total else 0,
            "currentPage": page,
            "total": total,
        }

    def list_daily_sessions(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        cashier_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("startDate must not be after endDate")
        limit = max(1, min(limit, settings.history_max_limit))
        page = max(page, 1)

        query = self.db.query(CashierDailySession)
        if start_date:
            query = query.filter(CashierDailySession.session_date >= start_date)
        if end_date:
            query = query.filter(CashierDailySession.session_date <= end_date)
        if cashier_id is not None:
            query = query.filter(CashierDailySession.cashier_id == cashier_id)

        total = query.count()
        sessions = (
            query.order_by(CashierDailySession.session_date.desc(), CashierDailySession.cashier_name)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "sessions": [daily_session_to_dict(s) for s in sessions],
            "totalPages": math.ceil(total / limit) if total else 0,
            "currentPage": page,
            "total": total,
        }

    def get_daily_session(self, daily_session_id: int) -> CashierDailySession:
        daily = self.db.query(CashierDailySession).filter(CashierDailySession.id == daily_session_id).first()
        if daily is None:
            raise NotFoundError("Daily session not found")
        return daily

    def open_entry_today(self, cashier_id: int) -> Optional[CashierSessionEntry]:
        daily = self._load_day(cashier_id, business_date(self.clock()))
        return daily.open_entry if daily is not None else None

    def todays_sessions(self) -> List[CashierDailySession]:
        day = business_date(self.clock())
        return (
            self.db.query(CashierDailySession)
            .filter(CashierDailySession.session_date == day)
            .order_by(CashierDailySession.cashier_name)
            .all()
        )

    # ---------------------------------------------------------------------
    # activity and screen share flags
    # ---------------------------------------------------------------------

    def record_activity(self, cashier_id: int) -> bool:
        """Touch the open entry's activity time. Returns False with nothing open."""
        now = self.clock()
        daily = self._load_day(cashier_id, business_date(now))
        entry = daily.open_entry if daily is not None else None
        if entry is None:
            return False
        entry.last_activity_time = now
        daily.last_activity_time = now
        self.db.commit()
        return True

    def update_screen_share(self, cashier_id: int, is_sharing: bool,
                            peer_id: Optional[str] = None) -> ScreenShareUpdate:
        now = self.clock()
        daily = self._load_day(cashier_id, business_date(now))
        entry = daily.open_entry if daily is not None else None
        if entry is None:
            return ScreenShareUpdate(daily_session=daily, entry=None, is_sharing=is_sharing)

        was_sharing = entry.screen_share_enabled
        entry.screen_share_enabled = is_sharing
        entry.peer_id = peer_id
        entry.last_screen_share_update = now
        entry.last_activity_time = now
        daily.last_activity_time = now
        self.db.commit()

        event = None
        if was_sharing and not is_sharing:
            event = CashierEvent(
                type=CashierEventType.SCREEN_SHARE_DISCONNECTED,
                cashier_id=cashier_id,
                cashier_name=daily.cashier_name,
                session_id=daily.id,
                metadata={"lastScreenShareUpdate": _iso(now)},
            )
        return ScreenShareUpdate(daily_session=daily, entry=entry, is_sharing=is_sharing, event=event)

    # ---------------------------------------------------------------------
    # supervisor review
    # ---------------------------------------------------------------------

    def mark_reviewed(self, daily_session_id: int, reviewer_id: int) -> CashierDailySession:
        daily = self.get_daily_session(daily_session_id)
        if daily.currently_active:
            raise ConflictError("Cannot review a session that is still active")
        daily.admin_reviewed = True
        daily.admin_reviewed_at = self.clock()
        daily.admin_reviewed_by = reviewer_id
        self.db.commit()
        return daily

    def list_unreviewed(self, limit: int = 50) -> List[CashierDailySession]:
        return (
            self.db.query(CashierDailySession)
            .filter(
                CashierDailySession.admin_reviewed.is_(False),
                CashierDailySession.currently_active.is_(False),
                CashierDailySession.total_check_outs > 0,
            )
            .order_by(CashierDailySession.session_date.desc())
            .limit(limit)
            .all()
        )

    # ---------------------------------------------------------------------
    # long sessions
    # ---------------------------------------------------------------------

    def find_long_running(self, threshold_minutes: Optional[int] = None) -> List[CashierEvent]:
        """Flag open entries older than the threshold; one event per entry."""
        threshold_minutes = threshold_minutes or settings.long_session_minutes
        now = self.clock()
        cutoff = now - timedelta(minutes=threshold_minutes)
        entries = (
            self.db.query(CashierSessionEntry)
            .filter(
                CashierSessionEntry.check_out_time.is_(None),
                CashierSessionEntry.long_session_notified.is_(False),
                CashierSessionEntry.check_in_time <= cutoff,
            )
            .all()
        )
        events = []
        for entry in entries:
            entry.long_session_notified = True
            daily = entry.daily_session
            events.append(CashierEvent(
                type=CashierEventType.LONG_SESSION,
                cashier_id=daily.cashier_id,
                cashier_name=daily.cashier_name,
                session_id=daily.id,
                metadata={
                    "checkInTime": _iso(entry.check_in_time),
                    "sessionDuration": round(minutes_between(entry.check_in_time, now), 2),
                    "sessionDate": daily.session_date.isoformat(),
                },
            ))
        if events:
            self.db.commit()
            logger.info(f"Flagged {len(events)} long-running cashier session(s)")
        return events
