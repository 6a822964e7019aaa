"""Read-only supervisor dashboards built from sessions, sales and presence."""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from cashdesk.core.clock import Clock, business_date, business_day_bounds, minutes_between, utcnow
from cashdesk.models.notification import Notification
from cashdesk.services.cashier_session_service import (
    CashierSessionService,
    daily_session_to_dict,
    entry_to_dict,
)
from cashdesk.services.directory_service import DirectoryService
from cashdesk.services.monitoring_hub import MonitoringHub, hub
from cashdesk.services.sales_store import SalesStore
from cashdesk.services.session_rollups import merge_reason_counts

logger = logging.getLogger(__name__)


def _money(value: Decimal) -> float:
    return float(Decimal(value).quantize(Decimal("0.01")))


class MonitoringService:
    def __init__(self, db: Session, monitoring_hub: Optional[MonitoringHub] = None,
                 sales: Optional[SalesStore] = None, clock: Clock = utcnow):
        self.db = db
        self.hub = monitoring_hub or hub
        self.sales = sales or SalesStore(db)
        self.clock = clock
        self.sessions = CashierSessionService(db, sales=self.sales, clock=clock)

    def active_cashiers(self) -> Dict[str, Any]:
        """Cashiers with an open entry today, merged with live presence."""
        now = self.clock()
        day_start, _ = business_day_bounds(business_date(now))
        cashiers = []
        for daily in self.sessions.todays_sessions():
            entry = daily.open_entry
            if entry is None:
                continue
            summary = self.sales.summarize(daily.cashier_id, day_start, now)
            presence = self.hub.cashier_presence(daily.cashier_id)
            cashiers.append({
                "cashierId": daily.cashier_id,
                "cashierName": daily.cashier_name,
                "dailySessionId": daily.id,
                "checkInTime": entry.check_in_time.isoformat(),
                "minutesOnShift": round(minutes_between(entry.check_in_time, now), 1),
                "lastActivityTime": entry.last_activity_time.isoformat() if entry.last_activity_time else None,
                "todaySales": _money(summary.total_sales),
                "todayTransactions": summary.transaction_count,
                "connected": presence is not None,
                "presence": presence,
            })
        return {"cashiers": cashiers, "count": len(cashiers)}

    def cashier_monitoring(self, cashier_id: int) -> Dict[str, Any]:
        cashier = DirectoryService(self.db).find_by_id(cashier_id)
        now = self.clock()
        day_start, _ = business_day_bounds(business_date(now))

        summary = self.sales.summarize(cashier_id, day_start, now)
        recent = self.sales.recent(cashier_id, day_start, now, limit=10)
        status = self.sessions.get_status(cashier_id)

        sales_per_hour = 0.0
        open_entry = self.sessions.open_entry_today(cashier_id)
        if open_entry is not None:
            shift = self.sales.summarize(cashier_id, open_entry.check_in_time, now)
            hours = minutes_between(open_entry.check_in_time, now) / 60.0
            if hours > 0:
                sales_per_hour = round(float(shift.total_sales) / hours, 2)

        items_per_transaction = 0.0
        if summary.transaction_count:
            items_per_transaction = round(summary.items_sold / summary.transaction_count, 2)

        return {
            "cashier": {
                "id": cashier.id,
                "name": cashier.display_name,
                "email": cashier.email,
            },
            "todayStats": {
                "sales": _money(summary.total_sales),
                "transactions": summary.transaction_count,
                "itemsSold": summary.items_sold,
                "averageSale": _money(summary.average_sale),
            },
            "recentTransactions": [
                {
                    "orderId": r.order_id,
                    "orderNumber": r.order_number,
                    "amount": _money(r.amount),
                    "itemsCount": r.items_count,
                    "timestamp": r.timestamp.isoformat(),
                }
                for r in recent
            ],
            "currentSession": status["session"],
            "activeEntry": status["entry"],
            "performanceMetrics": {
                "avgTransactionValue": _money(summary.average_sale),
                "itemsPerTransaction": items_per_transaction,
                "salesPerHour": sales_per_hour,
            },
            "presence": self.hub.cashier_presence(cashier_id),
        }

    def dashboard_stats(self) -> Dict[str, Any]:
        today = self.sessions.todays_sessions()
        hub_status = self.hub.get_status()
        unread = self.db.query(Notification).filter(Notification.is_read.is_(False)).count()
        return {
            "date": business_date(self.clock()).isoformat(),
            "activeCashiers": sum(1 for d in today if d.currently_active),
            "connectedCashiers": hub_status["connectedCashiers"],
            "sharingCashiers": hub_status["sharingCashiers"],
            "connectedSupervisors": hub_status["connectedSupervisors"],
            "cashiersWorkedToday": len(today),
            "totalCheckIns": sum(d.total_check_ins for d in today),
            "totalCheckOuts": sum(d.total_check_outs for d in today),
            "totalSales": _money(sum((d.total_sales or Decimal("0") for d in today), Decimal("0"))),
            "totalTransactions": sum(d.total_transactions for d in today),
            "totalSessionMinutes": round(sum(d.total_duration_minutes for d in today), 2),
            "checkoutReasons": merge_reason_counts(d.checkout_reason_counts for d in today),
            "unreadNotifications": unread,
        }

    def session_detail(self, daily_session_id: int) -> Dict[str, Any]:
        daily = self.sessions.get_daily_session(daily_session_id)
        return {
            "session": daily_session_to_dict(daily),
            "activeEntry": entry_to_dict(daily.open_entry) if daily.open_entry else None,
            "presence": self.hub.cashier_presence(daily.cashier_id),
        }
