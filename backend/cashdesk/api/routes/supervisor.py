"""Supervisor monitoring API routes."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Request

from cashdesk.core.exceptions import NotFoundError
from cashdesk.core.rate_limit import limiter
from cashdesk.core.rbac import RequireSupervisor
from cashdesk.core.responses import list_response
from cashdesk.db.session import DbSession
from cashdesk.schemas.cashier_session import ForceCheckoutRequest
from cashdesk.services.cashier_session_service import CashierSessionService, daily_session_to_dict, entry_to_dict
from cashdesk.services.event_publisher import publish_event
from cashdesk.services.monitoring_hub import hub
from cashdesk.services.monitoring_service import MonitoringService

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== Live monitoring ====================

@router.get("/active-cashiers")
def get_active_cashiers(db: DbSession, current_user: RequireSupervisor):
    """Cashiers checked in today, with sales so far and live presence."""
    return MonitoringService(db).active_cashiers()


@router.get("/cashier-monitoring/{cashier_id}")
def get_cashier_monitoring(cashier_id: int, db: DbSession, current_user: RequireSupervisor):
    return MonitoringService(db).cashier_monitoring(cashier_id)


@router.get("/dashboard-stats")
def get_dashboard_stats(db: DbSession, current_user: RequireSupervisor):
    return MonitoringService(db).dashboard_stats()


@router.get("/hub-status")
def get_hub_status(current_user: RequireSupervisor):
    """Snapshot of realtime presence held by this process."""
    return hub.get_status()


# ==================== Daily sessions ====================

@router.get("/daily-sessions")
def list_daily_sessions(
    db: DbSession,
    current_user: RequireSupervisor,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    cashier_id: Optional[int] = Query(None, alias="cashierId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return CashierSessionService(db).list_daily_sessions(
        start_date=start_date, end_date=end_date, cashier_id=cashier_id, page=page, limit=limit,
    )


@router.get("/daily-sessions/{session_id}")
def get_daily_session(session_id: int, db: DbSession, current_user: RequireSupervisor):
    return MonitoringService(db).session_detail(session_id)


@router.get("/unreviewed-sessions")
def list_unreviewed_sessions(
    db: DbSession,
    current_user: RequireSupervisor,
    limit: int = Query(50, ge=1, le=200),
):
    """Closed daily sessions nobody has signed off yet."""
    sessions = CashierSessionService(db).list_unreviewed(limit=limit)
    return list_response([daily_session_to_dict(s, include_entries=False) for s in sessions])


@router.patch("/daily-sessions/{session_id}/review")
@limiter.limit("30/minute")
def mark_session_reviewed(request: Request, session_id: int, db: DbSession, current_user: RequireSupervisor):
    daily = CashierSessionService(db).mark_reviewed(session_id, current_user.user_id)
    return {
        "message": "Daily session marked as reviewed",
        "session": daily_session_to_dict(daily, include_entries=False),
    }


# ==================== Interventions ====================

@router.patch("/force-checkout/{session_id}")
@limiter.limit("30/minute")
async def force_checkout(
    request: Request,
    session_id: int,
    db: DbSession,
    current_user: RequireSupervisor,
    body: Optional[ForceCheckoutRequest] = None,
):
    """Close a cashier's open entry and drop their live presence to idle."""
    body = body or ForceCheckoutRequest()
    result = CashierSessionService(db).force_check_out(
        session_id, current_user.user_id, body.reason, body.reason_details,
    )
    await publish_event(db, result.event)
    notified = await hub.remote_check_out(
        result.daily_session.cashier_id,
        reason=result.stats.reason,
        details={"closedBy": current_user.user_id},
    )
    logger.info(f"Supervisor {current_user.user_id} force checked out cashier {result.daily_session.cashier_id}")
    return {
        "message": "Cashier checked out by supervisor",
        "session": daily_session_to_dict(result.daily_session),
        "entry": entry_to_dict(result.entry),
        "sessionStats": result.stats.to_dict(),
        "cashierNotified": notified,
    }


@router.post("/screen-share/{cashier_id}/stop")
@limiter.limit("30/minute")
async def stop_screen_share(request: Request, cashier_id: int, current_user: RequireSupervisor):
    """End a cashier's screen share and release every viewer."""
    if not await hub.force_stop_screen_share(cashier_id):
        raise NotFoundError("No active screen share for this cashier")
    return {"message": "Screen share stopped", "cashierId": cashier_id}
