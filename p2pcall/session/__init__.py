"""Call negotiation state machine."""

__all__ = [
    "ACTIVE_STATUSES",
    "CallSession",
    "CallSnapshot",
    "CallStatus",
    "EventKind",
    "Notification",
    "NotificationKind",
    "SessionEvent",
    "VALID_TRANSITIONS",
]

from p2pcall.session.call_session import CallSession
from p2pcall.session.state import (
    ACTIVE_STATUSES,
    VALID_TRANSITIONS,
    CallSnapshot,
    CallStatus,
    EventKind,
    Notification,
    NotificationKind,
    SessionEvent,
)
