"""Tests for Softphone identity lifecycle over the in-memory relay."""

from dataclasses import dataclass
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from p2pcall.phone import Softphone
from p2pcall.session.state import CallStatus, NotificationKind
from p2pcall.signaling.memory import InMemoryRelay
from p2pcall.signaling.messages import SignalType
from tests.mock_peer import FakeLinkFactory, FakeMediaSource, RecordingObserver, wait_until


@dataclass
class PhoneRig:
    phone: Softphone
    links: FakeLinkFactory
    media: FakeMediaSource
    observer: RecordingObserver

    @property
    def status(self) -> CallStatus:
        return self.phone.session.status


def build_rig(relay: InMemoryRelay, name: str) -> PhoneRig:
    links = FakeLinkFactory(name)
    media = FakeMediaSource()
    observer = RecordingObserver()
    phone = Softphone(
        relay.channel,
        media,
        links,
        cooldown_s=0.05,
        on_change=observer.on_change,
        on_notify=observer.on_notify,
    )
    return PhoneRig(phone, links, media, observer)


@pytest_asyncio.fixture
async def alice(relay: InMemoryRelay) -> AsyncGenerator[PhoneRig, None]:
    rig = build_rig(relay, "alice")
    await rig.phone.login("alice")
    yield rig
    await rig.phone.logout()


@pytest_asyncio.fixture
async def bob(relay: InMemoryRelay) -> AsyncGenerator[PhoneRig, None]:
    rig = build_rig(relay, "bob")
    await rig.phone.login("bob")
    yield rig
    await rig.phone.logout()


async def connect_call(alice: PhoneRig, bob: PhoneRig) -> None:
    await alice.phone.start_call("bob")
    await wait_until(lambda: alice.status is CallStatus.IN_CALL and bob.status is CallStatus.IN_CALL)


class TestLogin:
    """Test login and logout."""

    @pytest.mark.asyncio
    async def test_login_opens_session(self, relay: InMemoryRelay, alice: PhoneRig) -> None:
        assert alice.phone.is_logged_in
        assert alice.phone.identity == "alice"
        assert relay.is_online("alice")
        assert alice.phone.session.ready
        assert alice.phone.sessions_created == 1

    @pytest.mark.asyncio
    async def test_double_login_rejected(self, alice: PhoneRig) -> None:
        with pytest.raises(RuntimeError):
            await alice.phone.login("alice")

    @pytest.mark.asyncio
    async def test_logout_releases_everything(self, relay: InMemoryRelay) -> None:
        rig = build_rig(relay, "carol")
        await rig.phone.login("carol")
        await rig.phone.logout()

        assert not rig.phone.is_logged_in
        assert not relay.is_online("carol")
        assert rig.media.tracks[0].stop_calls == 1
        assert rig.links.last.closed

    @pytest.mark.asyncio
    async def test_commands_before_login_ignored(self, relay: InMemoryRelay) -> None:
        rig = build_rig(relay, "dave")
        await rig.phone.start_call("bob")
        await rig.phone.toggle_mute()

        assert rig.phone.session is None
        assert rig.links.links == []


class TestCalls:
    """Test end-to-end calls between two softphones."""

    @pytest.mark.asyncio
    async def test_call_connects_both_sides(
        self,
        relay: InMemoryRelay,
        alice: PhoneRig,
        bob: PhoneRig
    ) -> None:
        await connect_call(alice, bob)

        assert alice.phone.session.remote_identity == "bob"
        assert bob.phone.session.remote_identity == "alice"
        assert [m.type for m in relay.delivered[:2]] == [SignalType.OFFER, SignalType.ANSWER]
        assert bob.links.last.remote.sdp == alice.links.last.local.sdp

    @pytest.mark.asyncio
    async def test_hangup_replaces_sessions(self, alice: PhoneRig, bob: PhoneRig) -> None:
        await connect_call(alice, bob)
        first_alice = alice.phone.session
        first_bob = bob.phone.session

        await alice.phone.end_call()
        await wait_until(lambda: bob.status is CallStatus.ENDED or bob.phone.session is not first_bob)
        assert NotificationKind.REMOTE_ENDED in bob.observer.notification_kinds

        await wait_until(lambda: alice.phone.sessions_created == 2 and bob.phone.sessions_created == 2)
        await alice.phone.wait_ready()
        await bob.phone.wait_ready()

        assert alice.phone.session is not first_alice
        assert first_alice.closed
        assert alice.status is CallStatus.IDLE
        assert alice.phone.session.ready
        assert alice.media.tracks[0].stop_calls == 1
        assert len(alice.links.links) == 2

    @pytest.mark.asyncio
    async def test_second_call_after_reset(self, alice: PhoneRig, bob: PhoneRig) -> None:
        await connect_call(alice, bob)
        await bob.phone.end_call()
        await wait_until(lambda: alice.phone.sessions_created == 2 and bob.phone.sessions_created == 2)

        await bob.phone.start_call("alice")
        await wait_until(lambda: alice.status is CallStatus.IN_CALL and bob.status is CallStatus.IN_CALL)

        assert alice.phone.session.remote_identity == "bob"

    @pytest.mark.asyncio
    async def test_call_offline_peer(self, alice: PhoneRig) -> None:
        await alice.phone.start_call("zoe")
        await wait_until(lambda: NotificationKind.REMOTE_ENDED in alice.observer.notification_kinds)

        assert alice.phone.session.status in (CallStatus.ENDED, CallStatus.IDLE)

    @pytest.mark.asyncio
    async def test_busy_peer_declines(self, relay: InMemoryRelay, alice: PhoneRig, bob: PhoneRig) -> None:
        await connect_call(alice, bob)
        carol = build_rig(relay, "carol")
        await carol.phone.login("carol")
        try:
            await carol.phone.start_call("bob")
            await wait_until(lambda: NotificationKind.REMOTE_ENDED in carol.observer.notification_kinds)

            assert carol.phone.session.status is not CallStatus.CALLING
            assert alice.status is CallStatus.IN_CALL
            assert bob.status is CallStatus.IN_CALL
            assert bob.phone.session.remote_identity == "alice"
            routes = [(m.type, m.sender, m.target) for m in relay.delivered]
            assert (SignalType.CALL_ENDED, "bob", "carol") in routes
        finally:
            await carol.phone.logout()

    @pytest.mark.asyncio
    async def test_logout_during_call_ends_remote(self, relay: InMemoryRelay, bob: PhoneRig) -> None:
        rig = build_rig(relay, "alice")
        await rig.phone.login("alice")
        await connect_call(rig, bob)

        await rig.phone.logout()
        await wait_until(lambda: NotificationKind.REMOTE_ENDED in bob.observer.notification_kinds)

    @pytest.mark.asyncio
    async def test_mute_reaches_track(self, alice: PhoneRig, bob: PhoneRig) -> None:
        await connect_call(alice, bob)
        await alice.phone.toggle_mute()

        assert alice.phone.session.muted
        assert alice.media.tracks[0].enabled is False


class TestFailures:
    """Test transport loss and negotiation failures."""

    @pytest.mark.asyncio
    async def test_transport_loss_ends_call(
        self,
        relay: InMemoryRelay,
        alice: PhoneRig,
        bob: PhoneRig
    ) -> None:
        await connect_call(alice, bob)
        relay.disconnect("alice")

        await wait_until(lambda: NotificationKind.TRANSPORT_LOST in alice.observer.notification_kinds)
        await wait_until(lambda: alice.phone.sessions_created == 2 or alice.status is CallStatus.ENDED)

    @pytest.mark.asyncio
    async def test_transport_loss_while_idle_notifies(self, relay: InMemoryRelay, alice: PhoneRig) -> None:
        relay.disconnect("alice")

        await wait_until(lambda: NotificationKind.TRANSPORT_LOST in alice.observer.notification_kinds)
        assert alice.status is CallStatus.IDLE

    @pytest.mark.asyncio
    async def test_negotiation_failure_replaces_session(self, relay: InMemoryRelay, bob: PhoneRig) -> None:
        rig = build_rig(relay, "alice")
        rig.links.configure = lambda link: link.fail_on.add("create_offer")
        await rig.phone.login("alice")
        try:
            await rig.phone.start_call("bob")
            await wait_until(lambda: rig.phone.sessions_created == 2)
            await rig.phone.wait_ready()

            assert rig.observer.notification_kinds == [NotificationKind.NEGOTIATION_FAILED]
            assert rig.status is CallStatus.IDLE
            assert rig.phone.session.ready
            assert bob.status is CallStatus.IDLE
        finally:
            await rig.phone.logout()
