"""Peer-to-peer audio calls negotiated over a signaling relay."""

__version__ = "0.1.0"
