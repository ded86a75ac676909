"""Peer link protocol and negotiation payload types."""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from p2pcall.core.errors import SignalFormatError


@dataclass(frozen=True)
class SessionDescription:
    """SDP blob plus its role in the offer/answer exchange."""

    type: str  # "offer" or "answer"
    sdp: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "sdp": self.sdp}

    @classmethod
    def from_dict(cls, data: Any) -> "SessionDescription":
        """Build from a wire dict.

        Raises:
            SignalFormatError: If fields are missing or of the wrong type
        """
        if not isinstance(data, dict):
            raise SignalFormatError("Session description must be an object")
        desc_type = data.get("type")
        sdp = data.get("sdp")
        if desc_type not in ("offer", "answer"):
            raise SignalFormatError(f"Unsupported session description type: {desc_type!r}")
        if not isinstance(sdp, str) or not sdp:
            raise SignalFormatError("Session description is missing 'sdp'")
        return cls(type=desc_type, sdp=sdp)


@dataclass(frozen=True)
class IceCandidate:
    """A network path candidate (one ``a=candidate`` line).

    Field names on the wire follow the browser ``RTCIceCandidateInit`` shape.
    """

    candidate: str
    sdp_mid: Optional[str] = None
    sdp_mline_index: Optional[int] = None

    @property
    def key(self) -> tuple[str, Optional[str], Optional[int]]:
        """Identity used to de-duplicate candidates."""
        return (self.candidate.strip(), self.sdp_mid, self.sdp_mline_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate": self.candidate,
            "sdpMid": self.sdp_mid,
            "sdpMLineIndex": self.sdp_mline_index,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "IceCandidate":
        """Build from a wire dict.

        Raises:
            SignalFormatError: If fields are missing or of the wrong type
        """
        if not isinstance(data, dict):
            raise SignalFormatError("Candidate must be an object")
        candidate = data.get("candidate")
        if not isinstance(candidate, str) or not candidate:
            raise SignalFormatError("Candidate is missing 'candidate'")
        sdp_mid = data.get("sdpMid")
        index = data.get("sdpMLineIndex")
        if sdp_mid is not None and not isinstance(sdp_mid, str):
            raise SignalFormatError("'sdpMid' must be a string")
        if index is not None and (isinstance(index, bool) or not isinstance(index, int)):
            raise SignalFormatError("'sdpMLineIndex' must be an integer")
        return cls(candidate=candidate, sdp_mid=sdp_mid, sdp_mline_index=index)


LocalCandidateCallback = Callable[[IceCandidate], None]
RemoteTrackCallback = Callable[[Any], None]


@runtime_checkable
class PeerLink(Protocol):
    """Negotiable connection primitive (WebRTC ``RTCPeerConnection`` shape).

    All coroutine methods may raise ``PeerLinkError``. ``set_remote_description``
    must be called before ``add_candidate``.
    """

    on_local_candidate: Optional[LocalCandidateCallback]
    on_remote_track: Optional[RemoteTrackCallback]

    @abstractmethod
    async def create_offer(self) -> SessionDescription:
        ...

    @abstractmethod
    async def create_answer(self) -> SessionDescription:
        ...

    @abstractmethod
    async def set_local_description(self, description: SessionDescription) -> None:
        ...

    @abstractmethod
    async def set_remote_description(self, description: SessionDescription) -> None:
        ...

    @abstractmethod
    async def add_candidate(self, candidate: IceCandidate) -> None:
        ...

    @abstractmethod
    def add_track(self, track: Any) -> None:
        """Attach a local media track before negotiation."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Discard a pending local offer so a remote offer can be applied."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


PeerLinkFactory = Callable[[], PeerLink]
