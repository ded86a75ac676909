"""Minimal WebSocket signaling relay.

Each client opens with ``{"type": "hello", "userId": "<identity>"}``. After
that every frame is a signaling message; the relay overwrites ``fromUserId``
with the registered identity and forwards the frame to ``targetUserId``.
Frames for each target are written in arrival order by a single connection
handler, which keeps per-pair ordering intact.
"""

import asyncio
import json
from typing import Optional

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from p2pcall.core.constants import CallConstants
from p2pcall.core.errors import SignalFormatError
from p2pcall.signaling.messages import SignalMessage, SignalType

logger = structlog.get_logger(__name__)


class RelayServer:
    """Routes signaling frames between connected identities."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = CallConstants.DEFAULT_RELAY_PORT,
        hello_timeout: float = CallConstants.CONNECT_TIMEOUT_S
    ) -> None:
        """Initialize relay.

        Args:
            host: Interface to bind
            port: TCP port (0 picks a free port)
            hello_timeout: Seconds a new client has to register
        """
        self._host = host
        self._port = port
        self._hello_timeout = hello_timeout

        self._clients: dict[str, ServerConnection] = {}
        self._server: Optional[Server] = None
        self._stop_event = asyncio.Event()

        # Stats
        self._forwarded = 0
        self._rejected = 0

    @property
    def port(self) -> int:
        """Bound port (resolved after ``start()`` when 0 was requested)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._port

    @property
    def online(self) -> set[str]:
        """Identities currently registered."""
        return set(self._clients)

    async def start(self) -> None:
        """Start listening."""
        if self._server is not None:
            return
        self._stop_event.clear()
        self._server = await websockets.serve(self._handle_client, self._host, self._port)
        logger.info("Signaling relay listening", host=self._host, port=self.port)

    async def stop(self) -> None:
        """Stop listening and drop all clients."""
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._clients.clear()
        self._stop_event.set()
        logger.info(
            "Signaling relay stopped",
            forwarded=self._forwarded,
            rejected=self._rejected
        )

    async def serve_forever(self) -> None:
        """Run until ``stop()`` is called."""
        await self.start()
        await self._stop_event.wait()

    async def _handle_client(self, ws: ServerConnection) -> None:
        identity = await self._register(ws)
        if identity is None:
            return

        try:
            async for raw in ws:
                await self._forward(identity, raw)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            if self._clients.get(identity) is ws:
                del self._clients[identity]
            logger.info("Client disconnected", identity=identity)

    async def _register(self, ws: ServerConnection) -> Optional[str]:
        try:
            async with asyncio.timeout(self._hello_timeout):
                hello = json.loads(await ws.recv())
        except (TimeoutError, json.JSONDecodeError, websockets.exceptions.ConnectionClosed) as e:
            logger.warning("Client failed to register", error=str(e))
            await ws.close(code=1008, reason="hello required")
            return None

        identity = hello.get("userId") if isinstance(hello, dict) else None
        if not isinstance(identity, str) or not identity or hello.get("type") != "hello":
            logger.warning("Invalid hello frame")
            await ws.close(code=1008, reason="hello required")
            return None

        previous = self._clients.get(identity)
        if previous is not None:
            logger.warning("Identity re-registered, closing old connection", identity=identity)
            await previous.close(code=1000, reason="replaced")
        self._clients[identity] = ws
        logger.info("Client registered", identity=identity)
        return identity

    async def _forward(self, identity: str, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
            if isinstance(data, dict):
                # The registered identity is authoritative for the sender
                data["fromUserId"] = identity
            message = SignalMessage.from_wire(data)
        except (json.JSONDecodeError, SignalFormatError) as e:
            self._rejected += 1
            logger.warning("Rejected frame", sender=identity, error=str(e))
            return

        target = self._clients.get(message.target)
        if target is None:
            logger.info(
                "Target offline",
                sender=identity,
                target=message.target,
                type=message.type.value
            )
            if message.type is SignalType.OFFER:
                # Let the caller leave CALLING instead of waiting forever
                await self._send(identity, SignalMessage.call_ended(message.target, identity))
            return

        await self._send(message.target, message)
        self._forwarded += 1

    async def _send(self, identity: str, message: SignalMessage) -> None:
        ws = self._clients.get(identity)
        if ws is None:
            return
        try:
            await ws.send(message.encode())
        except websockets.exceptions.ConnectionClosed:
            logger.info("Target went away while forwarding", target=identity)
