"""Publishing of cashier events: inbox row plus a push to supervisors."""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from cashdesk.core.metrics import metrics
from cashdesk.db.session import SessionLocal, session_scope
from cashdesk.models.notification import Notification
from cashdesk.services.monitoring_hub import HubEvent, MonitoringHub, hub
from cashdesk.services.notification_service import CashierEvent, NotificationService

logger = logging.getLogger(__name__)


async def publish_event(db: Session, event: CashierEvent,
                        target_hub: Optional[MonitoringHub] = None) -> Optional[Notification]:
    """Store ``event`` and push it to connected supervisors.

    Never raises for storage problems; the session change that produced the
    event is already committed.
    """
    metrics.record_session_event(event.type.value)
    notification = NotificationService(db).record(event)
    payload = event.to_payload()
    if notification is not None:
        payload.update({
            "notificationId": notification.id,
            "title": notification.title,
            "message": notification.message,
            "priority": notification.priority,
        })
    await (target_hub or hub).broadcast_to_supervisors(HubEvent.NOTIFICATION_CREATED, payload)
    return notification


class HubEventSink:
    """Event sink for the hub; opens its own database session per event."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal,
                 target_hub: Optional[MonitoringHub] = None):
        self.session_factory = session_factory
        self.target_hub = target_hub

    async def __call__(self, event: CashierEvent) -> None:
        with session_scope(self.session_factory) as db:
            await publish_event(db, event, target_hub=self.target_hub)


event_sink = HubEventSink()
