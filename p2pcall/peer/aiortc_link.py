"""PeerLink adapter over ``aiortc.RTCPeerConnection``.

aiortc gathers ICE candidates while applying the local description and
embeds them in the SDP, so ``on_local_candidate`` is never invoked by this
adapter; candidates received from a browser peer (trickle ICE) are still
applied through ``add_candidate``.
"""

from typing import Any, Optional

import structlog
from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from p2pcall.core.constants import DEFAULT_ICE_SERVERS
from p2pcall.core.errors import PeerLinkError
from p2pcall.peer.base import (
    IceCandidate,
    LocalCandidateCallback,
    RemoteTrackCallback,
    SessionDescription,
)


def build_ice_servers(servers: Optional[list[dict[str, Any]]]) -> list[RTCIceServer]:
    """Convert config dicts into aiortc ICE server entries.

    Args:
        servers: Dicts with ``urls`` and optional ``username``/``credential``

    Returns:
        aiortc ICE servers (the public STUN server when None; an empty list
        disables STUN and TURN)
    """
    entries = DEFAULT_ICE_SERVERS if servers is None else servers
    return [
        RTCIceServer(
            urls=entry["urls"],
            username=entry.get("username"),
            credential=entry.get("credential"),
        )
        for entry in entries
    ]


class AiortcPeerLink:
    """One negotiable peer connection for one call."""

    def __init__(self, ice_servers: Optional[list[dict[str, Any]]] = None) -> None:
        """Initialize peer link.

        Args:
            ice_servers: STUN/TURN servers as config dicts
        """
        self._configuration = RTCConfiguration(iceServers=build_ice_servers(ice_servers))
        self._tracks: list[Any] = []
        self._closed = False

        self.on_local_candidate: Optional[LocalCandidateCallback] = None
        self.on_remote_track: Optional[RemoteTrackCallback] = None

        self._logger = structlog.get_logger(__name__)
        self._pc = self._create_connection()

    def _create_connection(self) -> RTCPeerConnection:
        pc = RTCPeerConnection(configuration=self._configuration)

        @pc.on("track")
        def on_track(track: Any) -> None:
            self._logger.info("Remote track arrived", kind=track.kind)
            if self.on_remote_track:
                self.on_remote_track(track)

        @pc.on("connectionstatechange")
        async def on_connection_state_change() -> None:
            self._logger.info("Peer connection state", state=pc.connectionState)

        for track in self._tracks:
            pc.addTrack(track)
        return pc

    @property
    def signaling_state(self) -> str:
        return self._pc.signalingState

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    async def create_offer(self) -> SessionDescription:
        try:
            offer = await self._pc.createOffer()
        except Exception as e:
            raise PeerLinkError(f"createOffer failed: {e}")
        return SessionDescription(type=offer.type, sdp=offer.sdp)

    async def create_answer(self) -> SessionDescription:
        try:
            answer = await self._pc.createAnswer()
        except Exception as e:
            raise PeerLinkError(f"createAnswer failed: {e}")
        return SessionDescription(type=answer.type, sdp=answer.sdp)

    async def set_local_description(self, description: SessionDescription) -> None:
        try:
            await self._pc.setLocalDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except Exception as e:
            raise PeerLinkError(f"setLocalDescription failed: {e}")

    async def set_remote_description(self, description: SessionDescription) -> None:
        try:
            await self._pc.setRemoteDescription(
                RTCSessionDescription(sdp=description.sdp, type=description.type)
            )
        except Exception as e:
            raise PeerLinkError(f"setRemoteDescription failed: {e}")

    async def add_candidate(self, candidate: IceCandidate) -> None:
        line = candidate.candidate.strip()
        if line.startswith("candidate:"):
            line = line[len("candidate:"):]
        try:
            parsed = candidate_from_sdp(line)
            parsed.sdpMid = candidate.sdp_mid
            parsed.sdpMLineIndex = candidate.sdp_mline_index
            await self._pc.addIceCandidate(parsed)
        except Exception as e:
            raise PeerLinkError(f"addIceCandidate failed: {e}")

    @property
    def local_description(self) -> Optional[SessionDescription]:
        """Current local description, including gathered candidates."""
        desc = self._pc.localDescription
        if desc is None:
            return None
        return SessionDescription(type=desc.type, sdp=desc.sdp)

    def add_track(self, track: Any) -> None:
        self._tracks.append(track)
        self._pc.addTrack(track)

    async def rollback(self) -> None:
        """Drop a pending local offer.

        aiortc has no rollback, so the connection is rebuilt with the same
        configuration and tracks; nothing has been exchanged on it yet.
        """
        if self._pc.signalingState == "stable":
            return
        self._logger.info("Rolling back local offer", signaling_state=self._pc.signalingState)
        old = self._pc
        self._pc = self._create_connection()
        try:
            await old.close()
        except Exception as e:
            self._logger.warning("Error closing rolled-back connection", error=str(e))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pc.close()
        except Exception as e:
            raise PeerLinkError(f"close failed: {e}")
        self._logger.info("Peer link closed")
