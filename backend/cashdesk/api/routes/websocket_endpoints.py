"""
WebSocket endpoint for the monitoring hub.

Auth: the client proves who it is before any hub handler runs, either
  1. Query-string: ``/ws/monitor?token=<jwt>&userId=<id>``, or
  2. First message: ``{"event":"auth","token":"<jwt>","userId":<id>}``.
The token subject must equal ``userId``. Failures close with 4001; an
authenticated user whose role cannot join the hub is closed with 4003.
"""
import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from cashdesk.core.config import settings
from cashdesk.core.exceptions import NotFoundError
from cashdesk.core.rbac import MONITORING_ROLES, UserRole
from cashdesk.core.security import decode_access_token, token_subject
from cashdesk.db.session import DbSession
from cashdesk.services.directory_service import DirectoryService
from cashdesk.services.monitoring_hub import HubRole, hub

logger = logging.getLogger(__name__)

router = APIRouter()

WS_AUTH_FAILED = 4001
WS_ROLE_FORBIDDEN = 4003


def validate_ws_token(token: Optional[str], user_id: Any) -> Optional[Dict[str, Any]]:
    """Return the token payload if it is valid and issued to ``user_id``."""
    if not token or user_id is None or user_id == "":
        return None
    payload = decode_access_token(token)
    subject = token_subject(payload)
    if subject is None:
        return None
    try:
        if subject != int(user_id):
            return None
    except (TypeError, ValueError):
        return None
    return payload


async def _close(websocket: WebSocket, code: int, reason: str) -> None:
    try:
        await websocket.close(code=code, reason=reason)
    except RuntimeError as e:
        logger.debug(f"WebSocket close failed: {e}")


async def authenticate_ws(
    websocket: WebSocket,
    query_token: Optional[str] = None,
    query_user_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Accept the socket and authenticate it.

    Returns the token payload on success, or ``None`` after closing the
    socket with 4001.
    """
    await websocket.accept()

    if query_token:
        payload = validate_ws_token(query_token, query_user_id)
        if payload is None:
            await _close(websocket, WS_AUTH_FAILED, "Invalid token")
        return payload

    try:
        raw = await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_auth_timeout_seconds)
        message = json.loads(raw)
    except asyncio.TimeoutError:
        await _close(websocket, WS_AUTH_FAILED, "Authentication timeout")
        return None
    except (json.JSONDecodeError, WebSocketDisconnect):
        await _close(websocket, WS_AUTH_FAILED, "Invalid auth message")
        return None

    if not isinstance(message, dict) or message.get("event") != "auth":
        await _close(websocket, WS_AUTH_FAILED, 'First message must be {"event":"auth","token":"...","userId":...}')
        return None

    payload = validate_ws_token(message.get("token"), message.get("userId"))
    if payload is None:
        await _close(websocket, WS_AUTH_FAILED, "Invalid token")
    return payload


def _hub_role(role: UserRole) -> Optional[HubRole]:
    if role == UserRole.CASHIER:
        return HubRole.CASHIER
    if role in MONITORING_ROLES:
        return HubRole.SUPERVISOR
    return None


@router.websocket("/monitor")
async def monitor_websocket(
    websocket: WebSocket,
    db: DbSession,
    token: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
):
    """
    Realtime channel for cashiers and supervisors.

    Messages in both directions are ``{"event": ..., "data": {...}}``.
    """
    payload = await authenticate_ws(websocket, query_token=token, query_user_id=user_id)
    if payload is None:
        return

    try:
        user = DirectoryService(db).find_by_id(token_subject(payload))
    except NotFoundError:
        user = None
    finally:
        db.close()
    if user is None or not user.is_active:
        await _close(websocket, WS_AUTH_FAILED, "Unknown or disabled user")
        return

    role = _hub_role(UserRole(user.role))
    if role is None:
        await _close(websocket, WS_ROLE_FORBIDDEN, "Role cannot join the monitoring hub")
        return

    socket_id = uuid.uuid4().hex
    await hub.connect(socket_id, websocket, user.id, role, user.display_name)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received on socket {socket_id}: {data[:100]}")
                continue
            if not isinstance(message, dict):
                continue
            await hub.dispatch(socket_id, str(message.get("event")), message.get("data"))
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: user={user.id} socket={socket_id}")
    finally:
        await hub.disconnect(socket_id)
