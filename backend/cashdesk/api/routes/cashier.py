"""Cashier session API routes (check-in, check-out, status, history)."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response, status

from cashdesk.core.rate_limit import limiter
from cashdesk.core.rbac import CurrentUser, ensure_can_act_for
from cashdesk.db.session import DbSession
from cashdesk.schemas.cashier_session import CheckInRequest, CheckOutRequest, ScreenShareStatusUpdate
from cashdesk.services.cashier_session_service import (
    CashierSessionService,
    CheckOutResult,
    daily_session_to_dict,
    entry_to_dict,
)
from cashdesk.services.event_publisher import publish_event

logger = logging.getLogger(__name__)

router = APIRouter()


def _checkout_response(result: CheckOutResult, message: str) -> dict:
    return {
        "message": message,
        "session": daily_session_to_dict(result.daily_session),
        "entry": entry_to_dict(result.entry),
        "sessionStats": result.stats.to_dict(),
    }


@router.post("/checkin")
@limiter.limit("30/minute")
async def check_in(
    request: Request,
    response: Response,
    body: CheckInRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Open today's entry; returns 200 with the open entry if already checked in."""
    if body.cashier_id is not None:
        ensure_can_act_for(current_user, body.cashier_id)

    result = CashierSessionService(db).check_in(body.cashier_id)
    if result.event is not None:
        await publish_event(db, result.event)

    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return {
        "message": "Checked in successfully" if result.created else "Already checked in",
        "created": result.created,
        "session": daily_session_to_dict(result.daily_session),
        "entry": entry_to_dict(result.entry),
    }


@router.post("/checkout")
@limiter.limit("30/minute")
async def check_out(
    request: Request,
    body: CheckOutRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Close today's entry and compute its sales stats."""
    if body.cashier_id is not None:
        ensure_can_act_for(current_user, body.cashier_id)

    result = CashierSessionService(db).check_out(body.cashier_id, body.reason, body.reason_details)
    await publish_event(db, result.event)
    return _checkout_response(result, f"Checked out successfully. Reason: {result.stats.reason}")


@router.post("/auto-checkout")
@limiter.limit("30/minute")
async def auto_check_out(
    request: Request,
    body: CheckOutRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Checkout raised by the cashier's client (tab switch, browser close, idle)."""
    if body.cashier_id is not None:
        ensure_can_act_for(current_user, body.cashier_id)

    result = CashierSessionService(db).auto_check_out(body.cashier_id, body.reason, body.reason_details)
    await publish_event(db, result.event)
    return _checkout_response(result, f"Auto checked out. Reason: {result.stats.reason}")


@router.get("/session-status/{cashier_id}")
def get_session_status(cashier_id: int, db: DbSession, current_user: CurrentUser):
    ensure_can_act_for(current_user, cashier_id)
    return CashierSessionService(db).get_status(cashier_id)


@router.get("/session-history/{cashier_id}")
def get_session_history(
    cashier_id: int,
    db: DbSession,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
):
    """Daily sessions for one cashier, newest first."""
    ensure_can_act_for(current_user, cashier_id)
    return CashierSessionService(db).get_history(cashier_id, page=page, limit=limit)


@router.put("/screen-share/{cashier_id}")
@limiter.limit("60/minute")
async def update_screen_share_status(
    request: Request,
    cashier_id: int,
    body: ScreenShareStatusUpdate,
    db: DbSession,
    current_user: CurrentUser,
):
    """Persist the screen-share flag on the open entry."""
    ensure_can_act_for(current_user, cashier_id)
    update = CashierSessionService(db).update_screen_share(cashier_id, body.is_sharing, body.peer_id)
    if update.event is not None:
        await publish_event(db, update.event)
    return {
        "updated": update.entry is not None,
        "screenShareEnabled": update.is_sharing if update.entry is not None else False,
        "entry": entry_to_dict(update.entry) if update.entry is not None else None,
    }


@router.put("/activity/{cashier_id}")
@limiter.limit("120/minute")
def record_activity(request: Request, cashier_id: int, db: DbSession, current_user: CurrentUser):
    ensure_can_act_for(current_user, cashier_id)
    return {"updated": CashierSessionService(db).record_activity(cashier_id)}
