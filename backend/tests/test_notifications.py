"""Tests for cashier event notifications (service, publishing and inbox API)."""

import json
from datetime import timedelta

import pytest

from cashdesk.core.clock import utcnow
from cashdesk.core.exceptions import NotFoundError
from cashdesk.models.notification import Notification
from cashdesk.services.event_publisher import HubEventSink, publish_event
from cashdesk.services.monitoring_hub import HubRole, MonitoringHub
from cashdesk.services.notification_service import CashierEvent, CashierEventType, NotificationService

API = "/api/v1/notifications"


class RecordingSocket:
    def __init__(self):
        self.sent = []

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))


def _event(cashier_id=1, event_type=CashierEventType.CHECK_IN, **metadata):
    return CashierEvent(type=event_type, cashier_id=cashier_id, cashier_name="Alice", session_id=7, metadata=metadata)


class TestNotificationService:
    def test_record(self, db_session):
        notification = NotificationService(db_session).record(_event(event_type=CashierEventType.FORCE_CHECKOUT))
        assert notification.id is not None
        assert notification.title == "Forced Check-out"
        assert notification.priority == "high"
        assert notification.recipient_role == "supervisor"
        assert notification.expires_at > utcnow()

    def test_long_session_message(self, db_session):
        notification = NotificationService(db_session).record(
            _event(event_type=CashierEventType.LONG_SESSION, sessionDuration=615)
        )
        assert notification.message == "Alice has been checked in for 10h 15m"

    def test_list_unread_and_mark_read(self, db_session, supervisor):
        service = NotificationService(db_session)
        first = service.record(_event(cashier_id=1))
        service.record(_event(cashier_id=2))

        assert service.unread_count() == 2
        service.mark_read(first.id, supervisor.id)
        assert service.unread_count() == 1

        items, total = service.list(unread_only=True)
        assert total == 1
        assert items[0].cashier_id == 2

        items, total = service.list(cashier_id=1)
        assert total == 1
        assert items[0].read_by == supervisor.id

    def test_mark_read_unknown(self, db_session, supervisor):
        with pytest.raises(NotFoundError):
            NotificationService(db_session).mark_read(999, supervisor.id)

    def test_mark_all_read(self, db_session, supervisor):
        service = NotificationService(db_session)
        already = service.record(_event(cashier_id=1))
        service.mark_read(already.id, supervisor.id)
        service.record(_event(cashier_id=2))
        service.record(_event(cashier_id=3))

        assert service.mark_all_read(supervisor.id) == 2
        assert service.unread_count() == 0
        items, _ = service.list()
        assert {n.read_by for n in items} == {supervisor.id}
        assert service.mark_all_read(supervisor.id) == 0

    def test_delete(self, db_session):
        service = NotificationService(db_session)
        doomed_id = service.record(_event(cashier_id=1)).id
        kept = service.record(_event(cashier_id=2))

        service.delete(doomed_id)

        items, total = service.list()
        assert total == 1
        assert items[0].id == kept.id
        with pytest.raises(NotFoundError):
            service.delete(doomed_id)

    def test_purge_expired(self, db_session):
        service = NotificationService(db_session)
        stale = service.record(_event())
        service.record(_event())
        stale.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert service.purge_expired() == 1
        assert db_session.query(Notification).count() == 1


class TestPublishing:
    @pytest.mark.asyncio
    async def test_publish_pushes_to_supervisors(self, db_session):
        local_hub = MonitoringHub()
        supervisor_socket = RecordingSocket()
        cashier_socket = RecordingSocket()
        await local_hub.connect("sup", supervisor_socket, 10, HubRole.SUPERVISOR, "Sam")
        await local_hub.connect("cash", cashier_socket, 1, HubRole.CASHIER, "Alice")
        supervisor_socket.sent.clear()
        cashier_socket.sent.clear()

        notification = await publish_event(db_session, _event(), target_hub=local_hub)

        assert [m["event"] for m in supervisor_socket.sent] == ["notification-created"]
        data = supervisor_socket.sent[0]["data"]
        assert data["type"] == "check-in"
        assert data["cashierId"] == 1
        assert data["sessionId"] == 7
        assert data["notificationId"] == notification.id
        assert cashier_socket.sent == []

    @pytest.mark.asyncio
    async def test_hub_sink_uses_own_session(self, session_factory, db_session):
        local_hub = MonitoringHub()
        sink = HubEventSink(session_factory=session_factory, target_hub=local_hub)
        await sink(_event(event_type=CashierEventType.SCREEN_SHARE_DISCONNECTED))
        assert db_session.query(Notification).filter(
            Notification.type == "screen-share-disconnected"
        ).count() == 1


class TestNotificationEndpoints:
    def test_inbox(self, client, db_session, supervisor_headers):
        service = NotificationService(db_session)
        first = service.record(_event(cashier_id=1))
        service.record(_event(cashier_id=2))

        listing = client.get(API, headers=supervisor_headers)
        assert listing.status_code == 200
        assert listing.json()["total"] == 2
        assert listing.json()["hasMore"] is False

        assert client.get(f"{API}/unread-count", headers=supervisor_headers).json() == {"unreadCount": 2}

        read = client.patch(f"{API}/{first.id}/read", headers=supervisor_headers)
        assert read.status_code == 200
        assert read.json()["isRead"] is True

        unread = client.get(f"{API}?unreadOnly=true", headers=supervisor_headers).json()
        assert [n["cashierId"] for n in unread["items"]] == [2]

    def test_mark_unknown(self, client, supervisor_headers):
        assert client.patch(f"{API}/123/read", headers=supervisor_headers).status_code == 404

    def test_read_all(self, client, db_session, supervisor, supervisor_headers):
        service = NotificationService(db_session)
        service.record(_event(cashier_id=1))
        service.record(_event(cashier_id=2))

        response = client.patch(f"{API}/read-all", headers=supervisor_headers)

        assert response.status_code == 200
        assert response.json()["updated"] == 2
        assert client.get(f"{API}/unread-count", headers=supervisor_headers).json() == {"unreadCount": 0}
        items = client.get(API, headers=supervisor_headers).json()["items"]
        assert all(n["isRead"] for n in items)

    def test_delete_notification(self, client, db_session, supervisor_headers):
        notification = NotificationService(db_session).record(_event())
        notification_id = notification.id

        assert client.delete(f"{API}/{notification_id}", headers=supervisor_headers).status_code == 200
        assert client.get(API, headers=supervisor_headers).json()["total"] == 0
        assert client.delete(f"{API}/{notification_id}", headers=supervisor_headers).status_code == 404

    def test_cashier_cannot_clear_inbox(self, client, db_session, cashier_headers):
        notification = NotificationService(db_session).record(_event())
        assert client.patch(f"{API}/read-all", headers=cashier_headers).status_code == 403
        assert client.delete(f"{API}/{notification.id}", headers=cashier_headers).status_code == 403

    def test_cashier_cannot_read_inbox(self, client, cashier_headers):
        assert client.get(API, headers=cashier_headers).status_code == 403
