"""Peer connection primitive driven by the call session."""

__all__ = [
    "IceCandidate",
    "PeerLink",
    "PeerLinkFactory",
    "SessionDescription",
]

from p2pcall.peer.base import IceCandidate, PeerLink, PeerLinkFactory, SessionDescription
