"""Supervisor notification inbox API routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from cashdesk.core.rate_limit import limiter
from cashdesk.core.rbac import RequireSupervisor
from cashdesk.core.responses import paginated_response
from cashdesk.db.session import DbSession
from cashdesk.services.notification_service import NotificationService, notification_to_dict

router = APIRouter()


@router.get("")
def list_notifications(
    db: DbSession,
    current_user: RequireSupervisor,
    unread_only: bool = Query(False, alias="unreadOnly"),
    cashier_id: Optional[int] = Query(None, alias="cashierId"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """Newest first."""
    items, total = NotificationService(db).list(
        unread_only=unread_only, cashier_id=cashier_id, skip=skip, limit=limit,
    )
    return paginated_response([notification_to_dict(n) for n in items], total, skip=skip, limit=limit)


@router.get("/unread-count")
def get_unread_count(db: DbSession, current_user: RequireSupervisor):
    return {"unreadCount": NotificationService(db).unread_count()}


@router.patch("/read-all")
@limiter.limit("30/minute")
def mark_all_notifications_read(request: Request, db: DbSession, current_user: RequireSupervisor):
    """Mark the whole inbox as read."""
    updated = NotificationService(db).mark_all_read(current_user.user_id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read")
@limiter.limit("60/minute")
def mark_notification_read(request: Request, notification_id: int, db: DbSession, current_user: RequireSupervisor):
    notification = NotificationService(db).mark_read(notification_id, current_user.user_id)
    return notification_to_dict(notification)


@router.delete("/{notification_id}")
@limiter.limit("30/minute")
def delete_notification(request: Request, notification_id: int, db: DbSession, current_user: RequireSupervisor):
    NotificationService(db).delete(notification_id)
    return {"message": "Notification deleted"}
