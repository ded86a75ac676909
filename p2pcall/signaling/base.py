"""Base protocol for signaling channels."""

from abc import abstractmethod
from typing import AsyncIterator, Callable, Protocol, runtime_checkable

from p2pcall.signaling.messages import SignalMessage


@runtime_checkable
class SignalChannel(Protocol):
    """Ordered, bidirectional message transport to the signaling relay."""

    @property
    def identity(self) -> str:
        """Identity this channel is registered under."""
        ...

    @property
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the relay and register the identity.

        Raises:
            ConnectionError: If the relay cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel."""
        ...

    @abstractmethod
    async def send(self, message: SignalMessage) -> None:
        """Send a message to the relay.

        Raises:
            ConnectionError: If not connected
        """
        ...

    @abstractmethod
    def messages(self) -> AsyncIterator[SignalMessage]:
        """Iterate over inbound messages in send order.

        The iterator ends when the transport is lost or the channel closed.
        """
        ...


class SignalChannelBase:
    """Shared state for signaling channel implementations."""

    def __init__(self, identity: str) -> None:
        """Initialize base channel.

        Args:
            identity: Local identity used to register with the relay

        Raises:
            ValueError: If identity is empty
        """
        if not identity:
            raise ValueError("Signaling identity must not be empty")
        self._identity = identity
        self._connected = False

    @property
    def identity(self) -> str:
        """Identity this channel is registered under."""
        return self._identity

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._connected

    def ensure_connected(self) -> None:
        """Raise if the channel is not connected.

        Raises:
            ConnectionError: If not connected
        """
        if not self._connected:
            raise ConnectionError(f"Signaling channel for {self._identity} is not connected")


ChannelFactory = Callable[[str], SignalChannel]
