"""Sales Store queries scoped to a cashier and a time window."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from cashdesk.models.sales import SaleOrder


@dataclass(frozen=True)
class SaleRecord:
    order_id: int
    order_number: str
    amount: Decimal
    items_count: int
    timestamp: datetime


@dataclass(frozen=True)
class SalesSummary:
    total_sales: Decimal
    transaction_count: int
    items_sold: int

    @property
    def average_sale(self) -> Decimal:
        if not self.transaction_count:
            return Decimal("0")
        return (self.total_sales / self.transaction_count).quantize(Decimal("0.01"))


class SalesStore:
    """Orders rung up by cashiers. Windows are inclusive on both ends."""

    def __init__(self, db: Session):
        self.db = db

    def _window(self, cashier_id: int, start: datetime, end: datetime):
        return self.db.query(SaleOrder).filter(
            SaleOrder.cashier_id == cashier_id,
            SaleOrder.created_at >= start,
            SaleOrder.created_at <= end,
        )

    @staticmethod
    def _records(orders) -> List[SaleRecord]:
        return [
            SaleRecord(
                order_id=o.id,
                order_number=o.order_number,
                amount=Decimal(str(o.total_price)),
                items_count=o.items_count or 0,
                timestamp=o.created_at,
            )
            for o in orders
        ]

    def query(self, cashier_id: int, start: datetime, end: datetime) -> List[SaleRecord]:
        """Every sale in the window, oldest first."""
        orders = self._window(cashier_id, start, end).order_by(SaleOrder.created_at).all()
        return self._records(orders)

    def summarize(self, cashier_id: int, start: datetime, end: datetime) -> SalesSummary:
        total, count, items = self._window(cashier_id, start, end).with_entities(
            func.coalesce(func.sum(SaleOrder.total_price), 0),
            func.count(SaleOrder.id),
            func.coalesce(func.sum(SaleOrder.items_count), 0),
        ).one()
        return SalesSummary(
            total_sales=Decimal(str(total)).quantize(Decimal("0.01")),
            transaction_count=int(count or 0),
            items_sold=int(items or 0),
        )

    def recent(self, cashier_id: int, start: datetime, end: datetime, limit: int = 10) -> List[SaleRecord]:
        orders = (
            self._window(cashier_id, start, end)
            .order_by(SaleOrder.created_at.desc())
            .limit(limit)
            .all()
        )
        return self._records(orders)
