"""
Realtime Presence & Relay Hub
Cashier/supervisor presence, screen-share signaling and supervisor messaging.

Every socket event is handled under one hub-wide lock, so a handler runs to
completion before the next one starts. The only awaits inside a handler
are socket sends. Presence lives in this process only; a deployment with
several workers needs sticky routing per cashier.
"""
import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import timedelta
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from cashdesk.core.clock import Clock, utcnow
from cashdesk.core.config import settings
from cashdesk.core.metrics import metrics
from cashdesk.services.notification_service import CashierEvent, CashierEventType
from cashdesk.services.presence import (
    ActiveConnection,
    CashierPresence,
    CashierState,
    ScreenShareSession,
    SupervisorPresence,
    ViewRequest,
)

logger = logging.getLogger(__name__)


class HubEvent(str, Enum):
    """Realtime event names"""
    # Client -> hub
    AUTH = "auth"
    PING = "ping"
    CASHIER_CHECKED_IN = "cashier-checked-in"
    CASHIER_CHECKED_OUT = "cashier-checked-out"
    CASHIER_AUTO_CHECKED_OUT = "cashier-auto-checked-out"
    CASHIER_LOGGED_OUT = "cashier-logged-out"
    START_SCREEN_SHARING = "start-screen-sharing"
    STOP_SCREEN_SHARING = "stop-screen-sharing"
    SCREEN_SHARE_READY = "screen-share-ready"
    REQUEST_SCREEN_VIEW = "request-screen-view"
    STOP_SCREEN_VIEW = "stop-screen-view"
    SEND_MESSAGE = "send-message"

    # Hub -> client
    PONG = "pong"
    ERROR = "error"
    CONNECTION_CONFIRMED = "connection-confirmed"
    CASHIER_LIST_UPDATED = "cashier-list-updated"
    CASHIER_DISCONNECTED = "cashier-disconnected"
    SCREEN_SHARE_START_REQUEST = "screen-share-start-request"
    SCREEN_SHARE_STARTED = "screen-share-started"
    SCREEN_SHARE_STOP_REQUEST = "screen-share-stop-request"
    SCREEN_SHARE_ENDED = "screen-share-ended"
    SCREEN_SHARE_FAILED = "screen-share-failed"
    SCREEN_VIEW_READY = "screen-view-ready"
    SCREEN_VIEW_FAILED = "screen-view-failed"
    SCREEN_VIEW_REQUEST = "screen-view-request"
    SCREEN_VIEW_STOP = "screen-view-stop"
    MESSAGE_RECEIVED = "message-received"
    MESSAGE_FAILED = "message-failed"
    NOTIFICATION_CREATED = "notification-created"


class HubRole(str, Enum):
    CASHIER = "cashier"
    SUPERVISOR = "supervisor"


@dataclass
class WebSocketMessage:
    """Standard realtime message envelope"""
    event: str
    data: Dict[str, Any]
    timestamp: str = None

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = utcnow().isoformat()

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


class SocketLike(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass
class SocketHandle:
    socket_id: str
    websocket: SocketLike
    user_id: int
    role: HubRole
    name: str


EventSink = Callable[[CashierEvent], Awaitable[None]]

SHARE_UNAVAILABLE = "Screen sharing is not available for this cashier"


class MonitoringHub:
    """Owns every presence map; all mutation goes through its methods."""

    def __init__(self, clock: Clock = utcnow, event_sink: Optional[EventSink] = None):
        self.clock = clock
        self.event_sink = event_sink
        self._lock: Optional[asyncio.Lock] = None
        self._sockets: Dict[str, SocketHandle] = {}
        self._cashiers: Dict[int, CashierPresence] = {}
        self._supervisors: Dict[int, SupervisorPresence] = {}
        self._screen_shares: Dict[int, ScreenShareSession] = {}
        self._view_requests: Dict[Tuple[int, int], ViewRequest] = {}
        self._connections: Dict[Tuple[int, int], ActiveConnection] = {}
        self._outbox: List[CashierEvent] = []
        self._handlers = {
            HubEvent.PING: self._on_ping,
            HubEvent.CASHIER_CHECKED_IN: self._on_cashier_checked_in,
            HubEvent.CASHIER_CHECKED_OUT: partial(self._on_cashier_session_end, HubEvent.CASHIER_CHECKED_OUT),
            HubEvent.CASHIER_AUTO_CHECKED_OUT: partial(self._on_cashier_session_end, HubEvent.CASHIER_AUTO_CHECKED_OUT),
            HubEvent.CASHIER_LOGGED_OUT: partial(self._on_cashier_session_end, HubEvent.CASHIER_LOGGED_OUT),
            HubEvent.START_SCREEN_SHARING: self._on_start_screen_sharing,
            HubEvent.STOP_SCREEN_SHARING: self._on_stop_screen_sharing,
            HubEvent.SCREEN_SHARE_READY: self._on_screen_share_ready,
            HubEvent.REQUEST_SCREEN_VIEW: self._on_request_screen_view,
            HubEvent.STOP_SCREEN_VIEW: self._on_stop_screen_view,
            HubEvent.SEND_MESSAGE: self._on_send_message,
        }

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def reset(self) -> None:
        """Drop all presence state (process restart semantics)."""
        self._lock = None
        self._sockets.clear()
        self._cashiers.clear()
        self._supervisors.clear()
        self._screen_shares.clear()
        self._view_requests.clear()
        self._connections.clear()
        self._outbox.clear()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, socket_id: str, websocket: SocketLike, user_id: int,
                      role: HubRole, name: str = "") -> None:
        """Register an authenticated socket."""
        async with self.lock:
            handle = SocketHandle(socket_id, websocket, user_id, role, name or f"User {user_id}")
            self._sockets[socket_id] = handle
            now = self.clock()

            if role == HubRole.CASHIER:
                previous = self._cashiers.get(user_id)
                if previous is not None:
                    logger.info(f"Cashier {user_id} reconnected, replacing socket {previous.socket_id}")
                    await self._teardown_screen_share(user_id, reason="replaced")
                presence = CashierPresence(
                    cashier_id=user_id, socket_id=socket_id, connect_time=now, name=handle.name,
                )
                presence.transition(CashierState.CONNECTED_IDLE)
                self._cashiers[user_id] = presence
            else:
                self._supervisors[user_id] = SupervisorPresence(
                    supervisor_id=user_id, socket_id=socket_id, connect_time=now, name=handle.name,
                )

            await self._send(socket_id, HubEvent.CONNECTION_CONFIRMED, {
                "socketId": socket_id,
                "userId": user_id,
                "role": role.value,
                "connectedAt": now.isoformat(),
            })
            if role == HubRole.SUPERVISOR:
                await self._send(socket_id, HubEvent.CASHIER_LIST_UPDATED, self._cashier_list_payload())
            else:
                await self._broadcast_cashier_list()
            logger.info(f"{role.value.capitalize()} {user_id} connected on socket {socket_id}")
        await self._flush_outbox()

    async def disconnect(self, socket_id: str) -> None:
        """Full teardown for a closed socket. Safe to call more than once."""
        async with self.lock:
            handle = self._sockets.pop(socket_id, None)
            if handle is None:
                return
            if handle.role == HubRole.CASHIER:
                await self._disconnect_cashier(handle)
            else:
                await self._disconnect_supervisor(handle)
        await self._flush_outbox()

    async def _disconnect_cashier(self, handle: SocketHandle) -> None:
        presence = self._cashiers.get(handle.user_id)
        if presence is None or presence.socket_id != handle.socket_id:
            # superseded socket; the newer connection owns the presence
            return
        await self._teardown_screen_share(handle.user_id, reason="disconnected")
        self._purge_cashier_records(handle.user_id)
        presence.transition(CashierState.DISCONNECTED)
        del self._cashiers[handle.user_id]
        await self._broadcast_to_supervisors(HubEvent.CASHIER_DISCONNECTED, {
            "cashierId": handle.user_id,
            "cashierName": presence.name,
            "timestamp": self.clock().isoformat(),
        })
        await self._broadcast_cashier_list()
        logger.info(f"Cashier {handle.user_id} disconnected")

    async def _disconnect_supervisor(self, handle: SocketHandle) -> None:
        presence = self._supervisors.get(handle.user_id)
        if presence is None or presence.socket_id != handle.socket_id:
            return
        del self._supervisors[handle.user_id]
        await self._drop_viewer_everywhere(handle.user_id)
        logger.info(f"Supervisor {handle.user_id} disconnected")

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(self, socket_id: str, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Route one client event to its handler."""
        try:
            hub_event = HubEvent(event)
        except ValueError:
            hub_event = None
        handler = self._handlers.get(hub_event)

        async with self.lock:
            handle = self._sockets.get(socket_id)
            if handle is None:
                return
            if handler is None:
                await self._send(socket_id, HubEvent.ERROR, {"message": f"Unknown event: {event}"})
                return
            metrics.record_hub_event(hub_event.value)
            try:
                await handler(handle, data if isinstance(data, dict) else {})
            except Exception as e:
                logger.exception(f"Handler for '{event}' failed on socket {socket_id}: {e}")
                await self._send(socket_id, HubEvent.ERROR, {"message": f"Could not process {event}"})
        await self._flush_outbox()

    async def _flush_outbox(self) -> None:
        """Hand queued domain events to the sink outside the hub lock."""
        if not self._outbox:
            return
        events, self._outbox = self._outbox, []
        if self.event_sink is None:
            return
        for event in events:
            try:
                await self.event_sink(event)
            except Exception as e:
                logger.error(f"Event sink failed for {event.type.value} (cashier {event.cashier_id}): {e}")

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_ping(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        await self._send(handle.socket_id, HubEvent.PONG, {"timestamp": self.clock().isoformat()})

    def _own_presence(self, handle: SocketHandle) -> Optional[CashierPresence]:
        if handle.role != HubRole.CASHIER:
            return None
        presence = self._cashiers.get(handle.user_id)
        if presence is None or presence.socket_id != handle.socket_id:
            return None
        return presence

    async def _on_cashier_checked_in(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        presence = self._own_presence(handle)
        if presence is None:
            await self._send(handle.socket_id, HubEvent.ERROR, {"message": "Only a connected cashier can announce a check-in"})
            return
        session_data = data.get("sessionData")
        if session_data is None:
            session_data = {k: v for k, v in data.items() if k != "sessionData"}
        if not isinstance(session_data, dict):
            await self._send(handle.socket_id, HubEvent.ERROR, {"message": "sessionData must be an object"})
            return
        if presence.state == CashierState.CONNECTED_IDLE:
            presence.transition(CashierState.CHECKED_IN)
        presence.session_data = dict(session_data)

        await self._broadcast_to_supervisors(HubEvent.CASHIER_CHECKED_IN, {
            "cashierId": presence.cashier_id,
            "cashierName": presence.name,
            "sessionData": presence.session_data,
            "timestamp": self.clock().isoformat(),
        })
        await self._broadcast_cashier_list()

    async def _on_cashier_session_end(self, announced: HubEvent, handle: SocketHandle,
                                      data: Dict[str, Any]) -> None:
        presence = self._own_presence(handle)
        if presence is None:
            await self._send(handle.socket_id, HubEvent.ERROR, {"message": "Only a connected cashier can announce a check-out"})
            return
        default_reason = "logout" if announced == HubEvent.CASHIER_LOGGED_OUT else None
        reason = data.get("reason") or default_reason
        await self._end_presence_session(presence, announced, reason=reason, details=data)

    async def _end_presence_session(self, presence: CashierPresence, announced: HubEvent,
                                    reason: Optional[str], details: Dict[str, Any],
                                    notify_cashier: bool = False) -> None:
        await self._teardown_screen_share(presence.cashier_id, reason=reason or "checkout",
                                          notify_cashier=notify_cashier)
        if presence.active:
            presence.transition(CashierState.CONNECTED_IDLE)
        presence.session_data = {}

        payload = {
            "cashierId": presence.cashier_id,
            "cashierName": presence.name,
            "reason": reason,
            "timestamp": self.clock().isoformat(),
        }
        payload.update({k: v for k, v in details.items() if not k.startswith("_") and k not in payload})
        await self._broadcast_to_supervisors(announced, payload)
        await self._broadcast_cashier_list()

    async def _on_start_screen_sharing(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        if handle.role == HubRole.CASHIER:
            cashier_id = handle.user_id
        else:
            cashier_id = _as_int(data.get("cashierId"))
            if cashier_id is None:
                await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {"reason": "cashierId is required"})
                return

        presence = self._cashiers.get(cashier_id)
        if presence is None:
            await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {
                "cashierId": cashier_id, "reason": "Cashier is not connected",
            })
            return
        if handle.role == HubRole.CASHIER and presence.socket_id != handle.socket_id:
            await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {
                "cashierId": cashier_id, "reason": "Connection was replaced by a newer one",
            })
            return

        existing = self._screen_shares.get(cashier_id)
        if existing is not None:
            await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_STARTED, self._share_payload(existing))
            return
        if presence.state != CashierState.CHECKED_IN:
            await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {
                "cashierId": cashier_id, "reason": "Cashier must be checked in to share their screen",
            })
            return

        share = ScreenShareSession(
            cashier_id=cashier_id, owner_socket=presence.socket_id, started_at=self.clock(),
        )
        self._screen_shares[cashier_id] = share
        presence.transition(CashierState.SHARING)

        await self._send(presence.socket_id, HubEvent.SCREEN_SHARE_START_REQUEST, {
            "cashierId": cashier_id,
            "requestedBy": handle.user_id,
        })
        await self._broadcast_to_supervisors(HubEvent.SCREEN_SHARE_STARTED, self._share_payload(share))
        await self._broadcast_cashier_list()
        logger.info(f"Screen share started for cashier {cashier_id}")

    async def _on_stop_screen_sharing(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        if handle.role == HubRole.CASHIER:
            if self._own_presence(handle) is None:
                return
            await self._teardown_screen_share(handle.user_id, reason="stopped")
        else:
            cashier_id = _as_int(data.get("cashierId"))
            if cashier_id is None:
                await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {"reason": "cashierId is required"})
                return
            await self._teardown_screen_share(cashier_id, reason="stopped-by-supervisor", notify_cashier=True)

    async def _on_screen_share_ready(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        presence = self._own_presence(handle)
        share = self._screen_shares.get(handle.user_id) if presence is not None else None
        peer_id = data.get("peerId")
        if share is None or not share.active:
            await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {
                "cashierId": handle.user_id, "reason": "No screen share in progress",
            })
            return
        if not peer_id:
            await self._send(handle.socket_id, HubEvent.SCREEN_SHARE_FAILED, {
                "cashierId": handle.user_id, "reason": "peerId is required",
            })
            return

        previous_peer_id = share.peer_id if share.ready else None
        share.peer_id = str(peer_id)
        share.ready = True
        await self._broadcast_to_supervisors(HubEvent.SCREEN_SHARE_READY, {
            "cashierId": share.cashier_id,
            "cashierName": presence.name,
            "peerId": share.peer_id,
        })
        if previous_peer_id is not None and previous_peer_id != share.peer_id:
            await self._reconnect_viewers(share)
        await self._notify_pending_viewers(share)

    async def _on_request_screen_view(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        cashier_id = _as_int(data.get("cashierId"))
        if handle.role != HubRole.SUPERVISOR:
            await self._send(handle.socket_id, HubEvent.SCREEN_VIEW_FAILED, {
                "cashierId": cashier_id, "reason": "Only supervisors can view cashier screens",
            })
            return
        viewer_id = _as_int(data.get("viewerId"), default=handle.user_id)
        if viewer_id != handle.user_id:
            await self._send(handle.socket_id, HubEvent.SCREEN_VIEW_FAILED, {
                "cashierId": cashier_id, "reason": "viewerId does not match the authenticated user",
            })
            return

        share = self._screen_shares.get(cashier_id) if cashier_id is not None else None
        presence = self._cashiers.get(cashier_id) if cashier_id is not None else None
        if share is None or not share.active or presence is None or presence.socket_id != share.owner_socket:
            await self._send(handle.socket_id, HubEvent.SCREEN_VIEW_FAILED, {
                "cashierId": cashier_id, "reason": SHARE_UNAVAILABLE,
            })
            return

        viewer_peer_id = data.get("viewerPeerId")
        now = self.clock()
        share.viewers.add(viewer_id)
        self._view_requests[(viewer_id, cashier_id)] = ViewRequest(
            viewer_id=viewer_id, cashier_id=cashier_id,
            viewer_peer_id=viewer_peer_id, requested_at=now,
        )
        await self._send(presence.socket_id, HubEvent.SCREEN_VIEW_REQUEST, {
            "viewerId": viewer_id,
            "viewerName": handle.name,
            "viewerPeerId": viewer_peer_id,
        })

        if share.ready:
            await self._answer_viewer(share, viewer_id, viewer_peer_id)
        else:
            share.pending_viewers[viewer_id] = viewer_peer_id

    async def _on_stop_screen_view(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        cashier_id = _as_int(data.get("cashierId"))
        if handle.role != HubRole.SUPERVISOR or cashier_id is None:
            return
        viewer_id = handle.user_id
        self._view_requests.pop((viewer_id, cashier_id), None)
        self._connections.pop((viewer_id, cashier_id), None)
        share = self._screen_shares.get(cashier_id)
        if share is None or viewer_id not in share.viewers:
            return
        share.viewers.discard(viewer_id)
        share.pending_viewers.pop(viewer_id, None)
        await self._send_to_cashier(cashier_id, HubEvent.SCREEN_VIEW_STOP, {"viewerId": viewer_id})

    async def _on_send_message(self, handle: SocketHandle, data: Dict[str, Any]) -> None:
        target_id = _as_int(data.get("targetUserId"))
        target_socket = self._socket_for_user(target_id) if target_id is not None else None
        if target_socket is None:
            await self._send(handle.socket_id, HubEvent.MESSAGE_FAILED, {
                "targetUserId": data.get("targetUserId"),
                "reason": "Recipient is not connected",
            })
            return
        payload = {k: v for k, v in data.items() if k != "targetUserId"}
        payload.update({
            "fromUserId": handle.user_id,
            "fromName": handle.name,
            "fromRole": handle.role.value,
            "timestamp": self.clock().isoformat(),
        })
        await self._send(target_socket, HubEvent.MESSAGE_RECEIVED, payload)

    # =========================================================================
    # Screen share plumbing
    # =========================================================================

    async def _answer_viewer(self, share: ScreenShareSession, viewer_id: int,
                             viewer_peer_id: Optional[str]) -> bool:
        presence = self._supervisors.get(viewer_id)
        if presence is None:
            return False
        cashier = self._cashiers.get(share.cashier_id)
        self._view_requests.pop((viewer_id, share.cashier_id), None)
        self._connections[(viewer_id, share.cashier_id)] = ActiveConnection(
            viewer_id=viewer_id,
            cashier_id=share.cashier_id,
            viewer_peer_id=viewer_peer_id,
            cashier_peer_id=share.peer_id,
            established_at=self.clock(),
        )
        await self._send(presence.socket_id, HubEvent.SCREEN_VIEW_READY, {
            "cashierId": share.cashier_id,
            "cashierName": cashier.name if cashier else "",
            "peerId": share.peer_id,
        })
        return True

    async def _reconnect_viewers(self, share: ScreenShareSession) -> None:
        """Point answered viewers at the cashier's new peer id."""
        for viewer_id in sorted(share.viewers - set(share.pending_viewers)):
            connection = self._connections.get((viewer_id, share.cashier_id))
            viewer_peer_id = connection.viewer_peer_id if connection else None
            if not await self._answer_viewer(share, viewer_id, viewer_peer_id):
                share.viewers.discard(viewer_id)

    async def _notify_pending_viewers(self, share: ScreenShareSession) -> None:
        """Answer every viewer that asked before the cashier was ready."""
        pending, share.pending_viewers = share.pending_viewers, {}
        for viewer_id, viewer_peer_id in pending.items():
            if not await self._answer_viewer(share, viewer_id, viewer_peer_id):
                share.viewers.discard(viewer_id)

    async def _teardown_screen_share(self, cashier_id: int, reason: str,
                                     notify_cashier: bool = False) -> bool:
        """Stop a cashier's share and release its viewers.

        Every exit path (explicit stop, checkout, logout, disconnect,
        supervisor stop) lands here. A second call finds nothing to do.
        """
        share = self._screen_shares.pop(cashier_id, None)
        if share is None:
            return False
        share.active = False

        for viewer_id in sorted(share.viewers | set(share.pending_viewers)):
            await self._send_to_supervisor(viewer_id, HubEvent.SCREEN_SHARE_STOP_REQUEST, {
                "cashierId": cashier_id,
                "reason": reason,
            })
        share.viewers.clear()
        share.pending_viewers.clear()
        self._purge_cashier_records(cashier_id)

        presence = self._cashiers.get(cashier_id)
        if presence is not None and presence.state == CashierState.SHARING:
            presence.transition(CashierState.CHECKED_IN)
        if notify_cashier and presence is not None:
            await self._send(presence.socket_id, HubEvent.SCREEN_SHARE_STOP_REQUEST, {
                "cashierId": cashier_id,
                "reason": reason,
            })

        await self._broadcast_to_supervisors(HubEvent.SCREEN_SHARE_ENDED, {
            "cashierId": cashier_id,
            "reason": reason,
            "timestamp": self.clock().isoformat(),
        })
        if reason == "disconnected":
            self._outbox.append(CashierEvent(
                type=CashierEventType.SCREEN_SHARE_DISCONNECTED,
                cashier_id=cashier_id,
                cashier_name=presence.name if presence else f"User {cashier_id}",
                metadata={"startedAt": share.started_at.isoformat(), "reason": reason},
            ))
        logger.info(f"Screen share for cashier {cashier_id} ended ({reason})")
        return True

    def _purge_cashier_records(self, cashier_id: int) -> None:
        for key in [k for k in self._view_requests if k[1] == cashier_id]:
            del self._view_requests[key]
        for key in [k for k in self._connections if k[1] == cashier_id]:
            del self._connections[key]

    async def _drop_viewer_everywhere(self, viewer_id: int) -> None:
        for share in self._screen_shares.values():
            if viewer_id in share.viewers or viewer_id in share.pending_viewers:
                share.viewers.discard(viewer_id)
                share.pending_viewers.pop(viewer_id, None)
                await self._send_to_cashier(share.cashier_id, HubEvent.SCREEN_VIEW_STOP, {"viewerId": viewer_id})
        for key in [k for k in self._view_requests if k[0] == viewer_id]:
            del self._view_requests[key]
        for key in [k for k in self._connections if k[0] == viewer_id]:
            del self._connections[key]

    # =========================================================================
    # Operations used by the HTTP layer and the scheduler
    # =========================================================================

    async def force_stop_screen_share(self, cashier_id: int) -> bool:
        async with self.lock:
            stopped = await self._teardown_screen_share(
                cashier_id, reason="stopped-by-supervisor", notify_cashier=True,
            )
        await self._flush_outbox()
        return stopped

    async def remote_check_out(self, cashier_id: int, reason: Optional[str] = None,
                               details: Optional[Dict[str, Any]] = None) -> bool:
        """Reflect a checkout the cashier's own client did not initiate."""
        async with self.lock:
            presence = self._cashiers.get(cashier_id)
            if presence is None:
                return False
            await self._send(presence.socket_id, HubEvent.CASHIER_CHECKED_OUT, {
                "cashierId": cashier_id,
                "forced": True,
                "reason": reason,
            })
            await self._end_presence_session(
                presence, HubEvent.CASHIER_CHECKED_OUT, reason=reason,
                details=dict(details or {}, forced=True), notify_cashier=True,
            )
        await self._flush_outbox()
        return True

    async def broadcast_to_supervisors(self, event: HubEvent, data: Dict[str, Any]) -> int:
        async with self.lock:
            return await self._broadcast_to_supervisors(event, data)

    async def broadcast_to_cashiers(self, event: HubEvent, data: Dict[str, Any]) -> int:
        async with self.lock:
            return await self._broadcast_to_cashiers(event, data)

    async def sweep_stale(self, now=None) -> int:
        """Discard view requests and connection records past their TTL.

        A request swept while still pending also releases that viewer from
        the share, so it is not answered long after it gave up.
        """
        async with self.lock:
            now = now or self.clock()
            cutoff = now - timedelta(seconds=settings.view_request_ttl_seconds)
            removed = 0
            for key, request in list(self._view_requests.items()):
                if request.requested_at < cutoff:
                    del self._view_requests[key]
                    removed += 1
                    share = self._screen_shares.get(request.cashier_id)
                    if share is not None and request.viewer_id in share.pending_viewers:
                        share.pending_viewers.pop(request.viewer_id, None)
                        share.viewers.discard(request.viewer_id)
            for key, connection in list(self._connections.items()):
                if connection.established_at < cutoff:
                    del self._connections[key]
                    removed += 1
        if removed:
            logger.info(f"Swept {removed} stale view request/connection record(s)")
        return removed

    # =========================================================================
    # Read-only views
    # =========================================================================

    def is_connected(self, cashier_id: int) -> bool:
        return cashier_id in self._cashiers

    def cashier_presence(self, cashier_id: int) -> Optional[Dict[str, Any]]:
        presence = self._cashiers.get(cashier_id)
        return self._presence_payload(presence) if presence is not None else None

    def get_status(self) -> Dict[str, Any]:
        return {
            "connectedCashiers": len(self._cashiers),
            "checkedInCashiers": sum(1 for p in self._cashiers.values() if p.active),
            "sharingCashiers": sum(1 for p in self._cashiers.values() if p.has_screen_share),
            "connectedSupervisors": len(self._supervisors),
            "openSockets": len(self._sockets),
            "pendingViewRequests": len(self._view_requests),
            "activeConnections": len(self._connections),
            "screenShares": [self._share_payload(s) for s in self._screen_shares.values()],
            "cashiers": self._cashier_list_payload()["cashiers"],
        }

    def counts(self) -> Dict[str, int]:
        return {
            "cashiers": len(self._cashiers),
            "supervisors": len(self._supervisors),
            "screen_shares": len(self._screen_shares),
            "sockets": len(self._sockets),
        }

    def _presence_payload(self, presence: CashierPresence) -> Dict[str, Any]:
        share = self._screen_shares.get(presence.cashier_id)
        return {
            "cashierId": presence.cashier_id,
            "cashierName": presence.name,
            "state": presence.state.value,
            "active": presence.active,
            "hasScreenShare": presence.has_screen_share,
            "screenShareReady": bool(share and share.ready),
            "viewerCount": len(share.viewers) if share else 0,
            "connectTime": presence.connect_time.isoformat(),
            "sessionData": presence.session_data,
        }

    def _cashier_list_payload(self) -> Dict[str, Any]:
        cashiers = [self._presence_payload(p) for p in sorted(self._cashiers.values(), key=lambda p: p.cashier_id)]
        return {"cashiers": cashiers, "count": len(cashiers)}

    def _share_payload(self, share: ScreenShareSession) -> Dict[str, Any]:
        presence = self._cashiers.get(share.cashier_id)
        return {
            "cashierId": share.cashier_id,
            "cashierName": presence.name if presence else "",
            "ready": share.ready,
            "peerId": share.peer_id,
            "viewers": sorted(share.viewers),
            "pendingViewers": sorted(share.pending_viewers),
            "startedAt": share.started_at.isoformat(),
        }

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _send(self, socket_id: str, event: HubEvent, data: Dict[str, Any]) -> bool:
        handle = self._sockets.get(socket_id)
        if handle is None:
            return False
        try:
            await handle.websocket.send_text(WebSocketMessage(event=event.value, data=data).to_json())
            return True
        except Exception as e:
            # unreachable sockets are cleaned up by their own disconnect
            logger.debug(f"Send of {event.value} to socket {socket_id} failed: {e}")
            return False

    async def _send_to_cashier(self, cashier_id: int, event: HubEvent, data: Dict[str, Any]) -> bool:
        presence = self._cashiers.get(cashier_id)
        if presence is None:
            return False
        return await self._send(presence.socket_id, event, data)

    async def _send_to_supervisor(self, supervisor_id: int, event: HubEvent, data: Dict[str, Any]) -> bool:
        presence = self._supervisors.get(supervisor_id)
        if presence is None:
            return False
        return await self._send(presence.socket_id, event, data)

    def _socket_for_user(self, user_id: int) -> Optional[str]:
        if user_id in self._cashiers:
            return self._cashiers[user_id].socket_id
        if user_id in self._supervisors:
            return self._supervisors[user_id].socket_id
        return None

    async def _broadcast_to_supervisors(self, event: HubEvent, data: Dict[str, Any]) -> int:
        delivered = 0
        for presence in list(self._supervisors.values()):
            if await self._send(presence.socket_id, event, data):
                delivered += 1
        return delivered

    async def _broadcast_to_cashiers(self, event: HubEvent, data: Dict[str, Any]) -> int:
        delivered = 0
        for presence in list(self._cashiers.values()):
            if await self._send(presence.socket_id, event, data):
                delivered += 1
        return delivered

    async def _broadcast_cashier_list(self) -> None:
        await self._broadcast_to_supervisors(HubEvent.CASHIER_LIST_UPDATED, self._cashier_list_payload())


def _as_int(value, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# Global hub instance
hub = MonitoringHub()
