"""Cashier session events and the supervisor notification inbox.

Lifecycle operations and the monitoring hub describe what happened as a
``CashierEvent``. ``NotificationService`` persists each event for the
supervisor inbox; the API layer additionally pushes the payload to
connected supervisors.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cashdesk.core.clock import utcnow
from cashdesk.core.exceptions import NotFoundError
from cashdesk.models.notification import Notification

logger = logging.getLogger(__name__)


class CashierEventType(str, Enum):
    CHECK_IN = "check-in"
    CHECK_OUT = "check-out"
    AUTO_CHECKOUT = "auto-checkout"
    FORCE_CHECKOUT = "force-checkout"
    LONG_SESSION = "long-session"
    SCREEN_SHARE_DISCONNECTED = "screen-share-disconnected"


@dataclass
class CashierEvent:
    """A domain event about a cashier's session."""
    type: CashierEventType
    cashier_id: int
    cashier_name: str
    session_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "cashierId": self.cashier_id,
            "cashierName": self.cashier_name,
            "sessionId": self.session_id,
            "metadata": dict(self.metadata),
        }


# type -> (title, priority)
_EVENT_PRESENTATION = {
    CashierEventType.CHECK_IN: ("Cashier Check-in", "low"),
    CashierEventType.CHECK_OUT: ("Cashier Check-out", "low"),
    CashierEventType.AUTO_CHECKOUT: ("Automatic Check-out", "medium"),
    CashierEventType.FORCE_CHECKOUT: ("Forced Check-out", "high"),
    CashierEventType.LONG_SESSION: ("Long Session", "high"),
    CashierEventType.SCREEN_SHARE_DISCONNECTED: ("Screen Share Disconnected", "high"),
}


def _describe(event: CashierEvent) -> str:
    name = event.cashier_name
    meta = event.metadata
    if event.type == CashierEventType.CHECK_IN:
        return f"{name} has checked in"
    if event.type == CashierEventType.CHECK_OUT:
        return f"{name} has checked out ({meta.get('reason', 'manual')})"
    if event.type == CashierEventType.AUTO_CHECKOUT:
        return f"{name} was automatically checked out ({meta.get('reason', 'system-timeout')})"
    if event.type == CashierEventType.FORCE_CHECKOUT:
        return f"{name} was checked out by a supervisor"
    if event.type == CashierEventType.LONG_SESSION:
        minutes = int(meta.get("sessionDuration", 0))
        return f"{name} has been checked in for {minutes // 60}h {minutes % 60}m"
    return f"{name} stopped sharing their screen unexpectedly"


def notification_to_dict(n: Notification) -> Dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "priority": n.priority,
        "recipientRole": n.recipient_role,
        "cashierId": n.cashier_id,
        "cashierName": n.cashier_name,
        "sessionId": n.session_id,
        "metadata": n.event_metadata or {},
        "isRead": n.is_read,
        "readAt": n.read_at.isoformat() if n.read_at else None,
        "readBy": n.read_by,
        "createdAt": n.created_at.isoformat() if n.created_at else None,
    }


class NotificationService:
    """Persists cashier events and serves the supervisor inbox."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, event: CashierEvent) -> Optional[Notification]:
        """Store an event. Failures are logged and reported as ``None``.

        A lost notification must never undo the session change that caused
        it, so storage errors stop here.
        """
        title, priority = _EVENT_PRESENTATION[event.type]
        notification = Notification(
            type=event.type.value,
            title=title,
            message=_describe(event),
            priority=priority,
            cashier_id=event.cashier_id,
            cashier_name=event.cashier_name,
            session_id=event.session_id,
            event_metadata=dict(event.metadata),
            source="system",
        )
        try:
            self.db.add(notification)
            self.db.commit()
            self.db.refresh(notification)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store {event.type.value} notification for cashier {event.cashier_id}: {e}")
            return None
        return notification

    def list(self, unread_only: bool = False, cashier_id: Optional[int] = None,
             skip: int = 0, limit: int = 50) -> tuple[List[Notification], int]:
        query = self.db.query(Notification)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        if cashier_id is not None:
            query = query.filter(Notification.cashier_id == cashier_id)
        total = query.count()
        items = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total

    def unread_count(self) -> int:
        return self.db.query(Notification).filter(Notification.is_read.is_(False)).count()

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if notification is None:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            notification.read_by = user_id
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        """Mark every unread notification as read by ``user_id``. Returns how many changed."""
        updated = (
            self.db.query(Notification)
            .filter(Notification.is_read.is_(False))
            .update(
                {
                    Notification.is_read: True,
                    Notification.read_at: utcnow(),
                    Notification.read_by: user_id,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated

    def delete(self, notification_id: int) -> None:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if notification is None:
            raise NotFoundError("Notification not found")
        self.db.delete(notification)
        self.db.commit()
        logger.info(f"Notification {notification_id} deleted")

    def purge_expired(self) -> int:
        deleted = (
            self.db.query(Notification)
            .filter(Notification.expires_at.isnot(None), Notification.expires_at < utcnow())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
