"""SQLAlchemy models."""

from cashdesk.models.user import User
from cashdesk.models.sales import SaleOrder
from cashdesk.models.cashier_session import (
    CashierDailySession,
    CashierSessionEntry,
    CheckoutReason,
)
from cashdesk.models.notification import Notification

__all__ = [
    "User",
    "SaleOrder",
    "CashierDailySession",
    "CashierSessionEntry",
    "CheckoutReason",
    "Notification",
]
