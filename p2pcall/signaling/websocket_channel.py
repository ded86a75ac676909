"""WebSocket signaling channel.

Connects to the relay, registers the local identity with a ``hello`` frame,
then exchanges JSON signaling frames:

1. ``connect()`` opens the socket and starts the reader task
2. ``send()`` writes one frame per message
3. ``messages()`` yields parsed inbound messages in arrival order and ends
   when the socket closes (transport loss)
"""

import asyncio
import json
from typing import AsyncIterator, Optional

import structlog
import websockets
from websockets.asyncio.client import ClientConnection

from p2pcall.core.constants import CallConstants
from p2pcall.core.errors import SignalFormatError
from p2pcall.signaling.base import SignalChannelBase
from p2pcall.signaling.messages import SignalMessage


class WebSocketSignalChannel(SignalChannelBase):
    """Signaling channel over a WebSocket connection to the relay."""

    def __init__(
        self,
        identity: str,
        url: str,
        connect_timeout: float = CallConstants.CONNECT_TIMEOUT_S
    ) -> None:
        """Initialize WebSocket channel.

        Args:
            identity: Local identity registered with the relay
            url: Relay URL (ws:// or wss://)
            connect_timeout: Seconds to wait for the socket to open
        """
        super().__init__(identity)
        self._url = url
        self._connect_timeout = connect_timeout
        self._ws: Optional[ClientConnection] = None

        self._inbox: asyncio.Queue[Optional[SignalMessage]] = asyncio.Queue()
        self._reader_task: Optional[asyncio.Task[None]] = None

        # Stats
        self._frames_sent = 0
        self._frames_received = 0
        self._frames_dropped = 0

        self._logger = structlog.get_logger(__name__).bind(identity=identity)

    async def connect(self) -> None:
        """Connect to the relay and register."""
        if self._connected:
            return

        try:
            async with asyncio.timeout(self._connect_timeout):
                self._ws = await websockets.connect(self._url, open_timeout=self._connect_timeout)
                await self._ws.send(json.dumps({"type": "hello", "userId": self._identity}))
        except Exception as e:
            self._ws = None
            raise ConnectionError(f"Failed to connect to signaling relay {self._url}: {e}")

        self._connected = True
        self._inbox = asyncio.Queue()
        self._reader_task = asyncio.create_task(
            self._reader(),
            name=f"signaling-reader-{self._identity}"
        )
        self._logger.info("Signaling connected", url=self._url)

    async def close(self) -> None:
        """Close the socket and stop the reader."""
        if self._ws is None:
            return

        self._connected = False
        ws, self._ws = self._ws, None
        try:
            await ws.close()
        except Exception as e:
            self._logger.warning("Error closing signaling socket", error=str(e))

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        self._inbox.put_nowait(None)
        self._logger.info(
            "Signaling closed",
            frames_sent=self._frames_sent,
            frames_received=self._frames_received,
            frames_dropped=self._frames_dropped
        )

    async def send(self, message: SignalMessage) -> None:
        """Send one signaling message.

        Raises:
            ConnectionError: If not connected or the socket write fails
        """
        self.ensure_connected()
        try:
            await self._ws.send(message.encode())
        except websockets.exceptions.ConnectionClosed as e:
            self._connected = False
            raise ConnectionError(f"Signaling connection closed: {e}")
        self._frames_sent += 1
        self._logger.debug("Signal sent", type=message.type.value, target=message.target)

    async def messages(self) -> AsyncIterator[SignalMessage]:
        """Iterate over inbound messages until the transport is lost."""
        while True:
            message = await self._inbox.get()
            if message is None:
                break
            yield message

    async def _reader(self) -> None:
        """Read frames from the socket and queue parsed messages."""
        try:
            async for raw in self._ws:
                try:
                    message = SignalMessage.decode(raw)
                except SignalFormatError as e:
                    self._frames_dropped += 1
                    self._logger.warning("Dropping malformed signaling frame", error=str(e))
                    continue

                self._frames_received += 1
                self._inbox.put_nowait(message)

        except asyncio.CancelledError:
            raise
        except websockets.exceptions.ConnectionClosed as e:
            self._logger.warning("Signaling connection lost", code=e.rcvd.code if e.rcvd else None)
        except Exception as e:
            self._logger.error("Signaling reader error", error=str(e), exc_info=True)
        finally:
            if self._connected:
                self._connected = False
                self._inbox.put_nowait(None)
