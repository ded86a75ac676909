"""Shared test fixtures and configuration."""

from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio

from p2pcall.core.event_queue import EventQueue
from p2pcall.peer.base import IceCandidate, SessionDescription
from p2pcall.session.call_session import CallSession
from p2pcall.signaling.memory import InMemoryRelay, InMemorySignalChannel
from tests.mock_peer import FakeLinkFactory, FakeMediaSource, RecordingObserver


@pytest.fixture
def offer_sdp() -> SessionDescription:
    return SessionDescription(type="offer", sdp="v=0 remote offer")


@pytest.fixture
def answer_sdp() -> SessionDescription:
    return SessionDescription(type="answer", sdp="v=0 remote answer")


@pytest.fixture
def candidates() -> list[IceCandidate]:
    return [
        IceCandidate(f"candidate:{i} 1 udp 2122260223 192.168.1.{i} 5400{i} typ host", "0", 0)
        for i in range(1, 4)
    ]


@pytest.fixture
def relay() -> InMemoryRelay:
    return InMemoryRelay()


@pytest_asyncio.fixture
async def bob_channel(relay: InMemoryRelay) -> AsyncGenerator[InMemorySignalChannel, None]:
    """Connected channel playing the remote party."""
    channel = relay.channel("bob")
    await channel.connect()
    yield channel
    await channel.close()


@pytest_asyncio.fixture
async def alice_channel(relay: InMemoryRelay) -> AsyncGenerator[InMemorySignalChannel, None]:
    channel = relay.channel("alice")
    await channel.connect()
    yield channel
    await channel.close()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def media_source() -> FakeMediaSource:
    return FakeMediaSource()


@pytest.fixture
def link_factory() -> FakeLinkFactory:
    return FakeLinkFactory("alice")


@pytest_asyncio.fixture
async def make_session(
    alice_channel: InMemorySignalChannel,
    media_source: FakeMediaSource,
    link_factory: FakeLinkFactory,
    observer: RecordingObserver
) -> AsyncGenerator[Callable[..., Awaitable[CallSession]], None]:
    """Factory for opened sessions owned by "alice"."""
    sessions: list[CallSession] = []

    async def factory(**kwargs) -> CallSession:
        kwargs.setdefault("cooldown_s", 0.05)
        session = CallSession(
            "alice",
            alice_channel,
            media_source,
            link_factory,
            on_change=observer.on_change,
            on_notify=observer.on_notify,
            on_reset=observer.on_reset,
            **kwargs
        )
        await session.open()
        sessions.append(session)
        return session

    yield factory

    for session in sessions:
        await session.close()


@pytest_asyncio.fixture
async def session(make_session) -> CallSession:
    return await make_session()


@pytest_asyncio.fixture
async def event_queue() -> AsyncGenerator[EventQueue[int], None]:
    queue: EventQueue[int] = EventQueue()
    yield queue
    queue.close()
