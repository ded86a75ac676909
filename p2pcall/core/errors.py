"""Exception taxonomy for call setup and negotiation.

These are raised by collaborators (media sources, peer links, signaling
channels) and translated by ``CallSession`` into state transitions plus a
user notification. None of them is expected to reach the presentation layer.
"""


class CallError(Exception):
    """Base class for call errors."""

    default_detail: str = "Call error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SetupError(CallError):
    """Media source or peer link could not be initialized."""

    default_detail = "Could not set up the call"


class PeerLinkError(CallError):
    """A peer link operation was rejected."""

    default_detail = "Peer link operation failed"


class InvalidTransitionError(CallError):
    """A status change outside the transition table was attempted."""

    default_detail = "Invalid call status transition"


class SignalFormatError(CallError, ValueError):
    """An inbound signaling frame does not match the message schema."""

    default_detail = "Malformed signaling message"
