"""Call status, transition table, and the events that drive a session."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional

from p2pcall.signaling.messages import SignalMessage


class CallStatus(Enum):
    """Externally visible call lifecycle.

    State Transitions:
    - IDLE → CALLING (local start call, offer sent)
    - IDLE → IN_CALL (inbound offer accepted, answer sent)
    - CALLING → IN_CALL (answer applied, or glare deferral)
    - CALLING → IDLE (negotiation failure)
    - CALLING/IN_CALL → ENDED (local end, remote call-ended, transport loss)
    - ENDED → IDLE (cooldown elapsed)
    """

    IDLE = "idle"
    CALLING = "calling"
    IN_CALL = "in_call"
    ENDED = "ended"


VALID_TRANSITIONS: dict[CallStatus, set[CallStatus]] = {
    CallStatus.IDLE: {CallStatus.CALLING, CallStatus.IN_CALL},
    CallStatus.CALLING: {CallStatus.IN_CALL, CallStatus.ENDED, CallStatus.IDLE},
    CallStatus.IN_CALL: {CallStatus.ENDED},
    CallStatus.ENDED: {CallStatus.IDLE},
}

# Statuses in which a call is in progress and can be ended
ACTIVE_STATUSES = frozenset({CallStatus.CALLING, CallStatus.IN_CALL})


class EventKind(Enum):
    """Inputs to the state machine."""

    START_CALL = auto()
    END_CALL = auto()
    TOGGLE_MUTE = auto()
    TOGGLE_SPEAKER = auto()
    SIGNAL = auto()
    LOCAL_CANDIDATE = auto()
    REMOTE_TRACK = auto()
    TRANSPORT_LOST = auto()
    COOLDOWN_ELAPSED = auto()


@dataclass
class SessionEvent:
    """One unit of work for the session's consumer task."""

    kind: EventKind
    signal: Optional[SignalMessage] = None
    payload: Any = None


class NotificationKind(Enum):
    """User-visible side-channel notifications."""

    SETUP_FAILED = "setup_failed"
    NEGOTIATION_FAILED = "negotiation_failed"
    NO_REMOTE = "no_remote"
    REMOTE_ENDED = "remote_ended"
    TRANSPORT_LOST = "transport_lost"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    message: str


@dataclass(frozen=True)
class CallSnapshot:
    """Read-only view of a session handed to the presentation layer."""

    status: CallStatus
    local_identity: str
    remote_identity: Optional[str]
    muted: bool
    speaker_enabled: bool
    local_stream: Any
    remote_stream: Any
    ready: bool
