"""Sales order records read by the session lifecycle."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from cashdesk.db.base import Base


class SaleOrder(Base):
    """A completed sale rung up by a cashier.

    Orders are written by the POS checkout flow; this subsystem only reads
    them to attribute sales to cashier sessions.
    """

    __tablename__ = "sales_orders"
    __table_args__ = (
        Index("ix_sales_orders_cashier_created", "cashier_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    cashier_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    items_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
