"""Tests for the aiortc-backed peer link and media source."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from p2pcall.core.errors import PeerLinkError
from p2pcall.media.aiortc_source import AiortcMediaSource, GatedAudioTrack
from p2pcall.media.tone import ToneTrack
from p2pcall.peer.aiortc_link import AiortcPeerLink, build_ice_servers
from p2pcall.peer.base import IceCandidate, PeerLink


@pytest_asyncio.fixture
async def link_pair() -> AsyncGenerator[tuple[AiortcPeerLink, AiortcPeerLink], None]:
    """Two host-only links, each sending a tone."""
    caller = AiortcPeerLink(ice_servers=[])
    callee = AiortcPeerLink(ice_servers=[])
    caller.add_track(ToneTrack(frequency=440.0))
    callee.add_track(ToneTrack(frequency=660.0))
    yield caller, callee
    await caller.close()
    await callee.close()


class TestIceServers:
    """Test config to aiortc conversion."""

    def test_default_stun(self) -> None:
        servers = build_ice_servers(None)
        assert len(servers) == 1
        assert servers[0].urls.startswith("stun:")

    def test_turn_credentials(self) -> None:
        servers = build_ice_servers([
            {"urls": "turn:turn.test:3478", "username": "u", "credential": "p"},
        ])
        assert servers[0].username == "u"
        assert servers[0].credential == "p"

    def test_empty_list_disables_servers(self) -> None:
        assert build_ice_servers([]) == []


class TestAiortcPeerLink:
    """Test negotiation between two in-process links."""

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, link_pair: tuple[AiortcPeerLink, AiortcPeerLink]) -> None:
        caller, _ = link_pair
        assert isinstance(caller, PeerLink)

    @pytest.mark.asyncio
    async def test_offer_answer_exchange(self, link_pair: tuple[AiortcPeerLink, AiortcPeerLink]) -> None:
        caller, callee = link_pair

        offer = await caller.create_offer()
        assert offer.type == "offer"
        assert "m=audio" in offer.sdp
        await caller.set_local_description(offer)
        assert caller.signaling_state == "have-local-offer"

        await callee.set_remote_description(caller.local_description)
        answer = await callee.create_answer()
        await callee.set_local_description(answer)
        await caller.set_remote_description(callee.local_description)

        assert caller.signaling_state == "stable"
        assert callee.signaling_state == "stable"

    @pytest.mark.asyncio
    async def test_rollback_restores_stable(self, link_pair: tuple[AiortcPeerLink, AiortcPeerLink]) -> None:
        caller, _ = link_pair
        await caller.set_local_description(await caller.create_offer())

        await caller.rollback()

        assert caller.signaling_state == "stable"
        offer = await caller.create_offer()
        assert "m=audio" in offer.sdp

    @pytest.mark.asyncio
    async def test_bad_candidate_rejected(self, link_pair: tuple[AiortcPeerLink, AiortcPeerLink]) -> None:
        caller, _ = link_pair
        with pytest.raises(PeerLinkError):
            await caller.add_candidate(IceCandidate("candidate:garbage", "0", 0))

    @pytest.mark.asyncio
    async def test_answer_without_offer_fails(self, link_pair: tuple[AiortcPeerLink, AiortcPeerLink]) -> None:
        _, callee = link_pair
        with pytest.raises(PeerLinkError):
            await callee.create_answer()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        link = AiortcPeerLink(ice_servers=[])
        await link.close()
        await link.close()
        assert link.connection_state == "closed"


class TestAiortcMediaSource:
    """Test capture without a device (tone fallback)."""

    @pytest.mark.asyncio
    async def test_tone_stream(self) -> None:
        stream = await AiortcMediaSource(tone_hz=500.0).acquire()
        try:
            assert len(stream.audio_tracks) == 1
            assert isinstance(stream.audio_tracks[0], GatedAudioTrack)
        finally:
            stream.stop()

    @pytest.mark.asyncio
    async def test_disabled_track_sends_silence(self) -> None:
        stream = await AiortcMediaSource().acquire()
        track = stream.audio_tracks[0]
        try:
            audible = await track.recv()
            stream.set_enabled(False)
            muted = await track.recv()
        finally:
            stream.stop()

        assert audible.to_ndarray().any()
        assert not muted.to_ndarray().any()
        assert muted.pts > audible.pts

    @pytest.mark.asyncio
    async def test_stop_ends_track(self) -> None:
        stream = await AiortcMediaSource().acquire()
        track = stream.audio_tracks[0]
        stream.stop()

        assert track.readyState == "ended"
