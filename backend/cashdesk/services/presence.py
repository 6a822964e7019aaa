"""Hub-local presence records.

Nothing here is persisted. After a restart every map starts empty and is
rebuilt as clients reconnect and re-announce themselves.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set


class CashierState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED_IDLE = "connected-idle"
    CHECKED_IN = "checked-in"
    SHARING = "sharing"


# source state -> states it may move to
_LEGAL_TRANSITIONS = {
    CashierState.DISCONNECTED: {CashierState.CONNECTED_IDLE},
    CashierState.CONNECTED_IDLE: {CashierState.CHECKED_IN, CashierState.DISCONNECTED},
    CashierState.CHECKED_IN: {
        CashierState.CHECKED_IN,
        CashierState.SHARING,
        CashierState.CONNECTED_IDLE,
        CashierState.DISCONNECTED,
    },
    CashierState.SHARING: {CashierState.CHECKED_IN, CashierState.DISCONNECTED},
}


class IllegalTransition(Exception):
    def __init__(self, cashier_id: int, source: CashierState, target: CashierState):
        super().__init__(f"Cashier {cashier_id}: illegal transition {source.value} -> {target.value}")
        self.cashier_id = cashier_id
        self.source = source
        self.target = target


@dataclass
class CashierPresence:
    cashier_id: int
    socket_id: str
    connect_time: datetime
    name: str = ""
    state: CashierState = CashierState.DISCONNECTED
    session_data: Dict[str, Any] = field(default_factory=dict)

    def transition(self, target: CashierState) -> None:
        if target not in _LEGAL_TRANSITIONS[self.state]:
            raise IllegalTransition(self.cashier_id, self.state, target)
        self.state = target

    @property
    def active(self) -> bool:
        return self.state in (CashierState.CHECKED_IN, CashierState.SHARING)

    @property
    def has_screen_share(self) -> bool:
        return self.state == CashierState.SHARING


@dataclass
class SupervisorPresence:
    supervisor_id: int
    socket_id: str
    connect_time: datetime
    name: str = ""


@dataclass
class ScreenShareSession:
    """One cashier's live stream and the supervisors watching it.

    ``viewers`` holds every supervisor registered for the stream, answered
    or not. ``pending_viewers`` maps the ones still waiting for the cashier's
    peer id to their own signaling address.
    """
    cashier_id: int
    owner_socket: str
    started_at: datetime
    active: bool = True
    ready: bool = False
    peer_id: Optional[str] = None
    viewers: Set[int] = field(default_factory=set)
    pending_viewers: Dict[int, Optional[str]] = field(default_factory=dict)


@dataclass
class ViewRequest:
    viewer_id: int
    cashier_id: int
    viewer_peer_id: Optional[str]
    requested_at: datetime


@dataclass
class ActiveConnection:
    viewer_id: int
    cashier_id: int
    viewer_peer_id: Optional[str]
    cashier_peer_id: Optional[str]
    established_at: datetime
