"""In-process signaling relay.

Routes messages between channels living in the same event loop. Used by the
test suite and by the two-party demo; behaves like the WebSocket relay
(ordered delivery per target, sender stamped by the relay, transport loss
ends the receiver's message stream).
"""

import asyncio
from typing import AsyncIterator, Optional

import structlog

from p2pcall.signaling.base import SignalChannelBase
from p2pcall.signaling.messages import SignalMessage, SignalType

logger = structlog.get_logger(__name__)


class InMemoryRelay:
    """Relay that forwards messages between registered in-memory channels."""

    def __init__(self) -> None:
        self._channels: dict[str, "InMemorySignalChannel"] = {}
        self._delivered: list[SignalMessage] = []

    @property
    def delivered(self) -> list[SignalMessage]:
        """Every message routed so far, in routing order."""
        return list(self._delivered)

    def channel(self, identity: str) -> "InMemorySignalChannel":
        """Create a channel bound to this relay (not yet connected)."""
        return InMemorySignalChannel(identity, self)

    def is_online(self, identity: str) -> bool:
        return identity in self._channels

    def _register(self, channel: "InMemorySignalChannel") -> None:
        previous = self._channels.get(channel.identity)
        if previous is not None and previous is not channel:
            logger.warning("Identity re-registered, dropping old channel", identity=channel.identity)
            previous._lose_transport()
        self._channels[channel.identity] = channel

    def _unregister(self, channel: "InMemorySignalChannel") -> None:
        if self._channels.get(channel.identity) is channel:
            del self._channels[channel.identity]

    def _route(self, sender: "InMemorySignalChannel", message: SignalMessage) -> None:
        # The relay, not the client, is authoritative for the sender identity
        stamped = SignalMessage(
            type=message.type,
            sender=sender.identity,
            target=message.target,
            description=message.description,
            candidate=message.candidate,
        )
        target = self._channels.get(message.target)
        if target is None:
            logger.info(
                "Target offline, dropping message",
                sender=sender.identity,
                target=message.target,
                type=message.type.value
            )
            if message.type is SignalType.OFFER:
                sender._deliver(SignalMessage.call_ended(message.target, sender.identity))
            return
        self._delivered.append(stamped)
        target._deliver(stamped)

    def disconnect(self, identity: str) -> None:
        """Simulate transport loss for one identity."""
        channel = self._channels.get(identity)
        if channel is not None:
            channel._lose_transport()


class InMemorySignalChannel(SignalChannelBase):
    """Signaling channel attached to an ``InMemoryRelay``."""

    def __init__(self, identity: str, relay: InMemoryRelay) -> None:
        super().__init__(identity)
        self._relay = relay
        self._inbox: asyncio.Queue[Optional[SignalMessage]] = asyncio.Queue()
        self._sent: list[SignalMessage] = []

    @property
    def sent(self) -> list[SignalMessage]:
        """Messages sent through this channel, in send order."""
        return list(self._sent)

    async def connect(self) -> None:
        if self._connected:
            return
        self._connected = True
        self._relay._register(self)
        logger.info("In-memory signaling connected", identity=self._identity)

    async def close(self) -> None:
        if not self._connected:
            return
        self._relay._unregister(self)
        self._lose_transport()
        logger.info("In-memory signaling closed", identity=self._identity)

    async def send(self, message: SignalMessage) -> None:
        self.ensure_connected()
        self._sent.append(message)
        self._relay._route(self, message)

    async def messages(self) -> AsyncIterator[SignalMessage]:
        while True:
            message = await self._inbox.get()
            if message is None:
                break
            yield message

    def _deliver(self, message: SignalMessage) -> None:
        if self._connected:
            self._inbox.put_nowait(message)

    def _lose_transport(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._relay._unregister(self)
        self._inbox.put_nowait(None)
