"""Signaling message schema and JSON codec.

Every message names its sender and its target so the relay can route it and
the receiving session can check it against the party it is talking to:

    {"type": "offer", "fromUserId": "alice", "targetUserId": "bob",
     "offer": {"type": "offer", "sdp": "v=0..."}}
    {"type": "answer", ..., "answer": {"type": "answer", "sdp": "v=0..."}}
    {"type": "ice-candidate", ..., "candidate": {"candidate": "candidate:...",
     "sdpMid": "0", "sdpMLineIndex": 0}}
    {"type": "call-ended", "fromUserId": "alice", "targetUserId": "bob"}
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from p2pcall.core.errors import SignalFormatError
from p2pcall.peer.base import IceCandidate, SessionDescription


class SignalType(str, Enum):
    """Signaling event kinds."""

    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "ice-candidate"
    CALL_ENDED = "call-ended"


# Payload key carried by each message type
_PAYLOAD_KEYS = {
    SignalType.OFFER: "offer",
    SignalType.ANSWER: "answer",
    SignalType.CANDIDATE: "candidate",
}


@dataclass(frozen=True)
class SignalMessage:
    """One signaling event exchanged through the relay."""

    type: SignalType
    sender: str
    target: str
    description: Optional[SessionDescription] = None
    candidate: Optional[IceCandidate] = None

    @classmethod
    def offer(cls, sender: str, target: str, description: SessionDescription) -> "SignalMessage":
        return cls(SignalType.OFFER, sender, target, description=description)

    @classmethod
    def answer(cls, sender: str, target: str, description: SessionDescription) -> "SignalMessage":
        return cls(SignalType.ANSWER, sender, target, description=description)

    @classmethod
    def ice_candidate(cls, sender: str, target: str, candidate: IceCandidate) -> "SignalMessage":
        return cls(SignalType.CANDIDATE, sender, target, candidate=candidate)

    @classmethod
    def call_ended(cls, sender: str, target: str) -> "SignalMessage":
        return cls(SignalType.CALL_ENDED, sender, target)

    def to_wire(self) -> dict[str, Any]:
        """Convert to the wire dict."""
        data: dict[str, Any] = {
            "type": self.type.value,
            "fromUserId": self.sender,
            "targetUserId": self.target,
        }
        if self.type in (SignalType.OFFER, SignalType.ANSWER) and self.description:
            data[_PAYLOAD_KEYS[self.type]] = self.description.to_dict()
        elif self.type is SignalType.CANDIDATE and self.candidate:
            data["candidate"] = self.candidate.to_dict()
        return data

    def encode(self) -> str:
        """Serialize to a JSON text frame."""
        return json.dumps(self.to_wire(), separators=(",", ":"))

    @classmethod
    def from_wire(cls, data: Any) -> "SignalMessage":
        """Parse a wire dict.

        Args:
            data: Decoded JSON object

        Returns:
            Parsed message

        Raises:
            SignalFormatError: If the frame does not match the schema
        """
        if not isinstance(data, dict):
            raise SignalFormatError("Signaling frame must be a JSON object")

        try:
            msg_type = SignalType(data.get("type"))
        except ValueError:
            raise SignalFormatError(f"Unknown signaling type: {data.get('type')!r}")

        sender = data.get("fromUserId")
        target = data.get("targetUserId")
        if not isinstance(sender, str) or not sender:
            raise SignalFormatError("Missing 'fromUserId'")
        if not isinstance(target, str) or not target:
            raise SignalFormatError("Missing 'targetUserId'")

        if msg_type in (SignalType.OFFER, SignalType.ANSWER):
            description = SessionDescription.from_dict(data.get(_PAYLOAD_KEYS[msg_type]))
            if description.type != msg_type.value:
                raise SignalFormatError(
                    f"{msg_type.value} carries a {description.type} description"
                )
            return cls(msg_type, sender, target, description=description)

        if msg_type is SignalType.CANDIDATE:
            candidate = IceCandidate.from_dict(data.get("candidate"))
            return cls(msg_type, sender, target, candidate=candidate)

        return cls(msg_type, sender, target)

    @classmethod
    def decode(cls, raw: str | bytes) -> "SignalMessage":
        """Parse a JSON text frame.

        Raises:
            SignalFormatError: If the frame is not valid JSON or not a message
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SignalFormatError(f"Invalid JSON: {e}")
        return cls.from_wire(data)
