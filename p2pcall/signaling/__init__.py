"""Signaling relay transport.

- SignalMessage: offer / answer / ice-candidate / call-ended wire schema
- SignalChannel: protocol consumed by CallSession
- WebSocketSignalChannel: relay client over WebSockets
- InMemoryRelay: in-process relay for tests and the demo
- RelayServer: minimal WebSocket relay
"""

__all__ = [
    "SignalType",
    "SignalMessage",
    "SignalChannel",
    "SignalChannelBase",
    "ChannelFactory",
    "InMemoryRelay",
    "InMemorySignalChannel",
    "WebSocketSignalChannel",
    "RelayServer",
]

from p2pcall.signaling.messages import SignalMessage, SignalType
from p2pcall.signaling.base import ChannelFactory, SignalChannel, SignalChannelBase
from p2pcall.signaling.memory import InMemoryRelay, InMemorySignalChannel
from p2pcall.signaling.websocket_channel import WebSocketSignalChannel
from p2pcall.signaling.relay_server import RelayServer
