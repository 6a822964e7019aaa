"""Persisted supervisor notifications."""

from datetime import datetime, timedelta

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from cashdesk.core.clock import utcnow
from cashdesk.core.config import settings
from cashdesk.db.base import Base


def _default_expiry() -> datetime:
    return utcnow() + timedelta(days=settings.notification_retention_days)


class Notification(Base):
    """A cashier session event kept for the supervisor inbox."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), default="medium", nullable=False)  # low, medium, high, critical
    recipient_role = Column(String(20), default="supervisor", nullable=False)
    cashier_id = Column(Integer, nullable=True, index=True)
    cashier_name = Column(String(255), nullable=True)
    session_id = Column(Integer, nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    source = Column(String(20), default="system", nullable=False)  # system, manual, automatic
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)
    read_by = Column(Integer, nullable=True)
    expires_at = Column(DateTime, default=_default_expiry, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
