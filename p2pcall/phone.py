"""Identity lifecycle: one signaling channel, one call session at a time."""

import asyncio
from typing import Callable, Optional

import structlog

from p2pcall.core.constants import CallConstants
from p2pcall.media.base import AudioOutput, MediaSource
from p2pcall.peer.base import PeerLinkFactory
from p2pcall.session.call_session import CallSession
from p2pcall.session.state import (
    ACTIVE_STATUSES,
    CallSnapshot,
    Notification,
    NotificationKind,
)
from p2pcall.signaling.base import ChannelFactory, SignalChannel


class Softphone:
    """Logs an identity in, routes its signaling, and replaces spent sessions.

    A ``CallSession`` handles exactly one call. Once it is spent (cooldown
    elapsed, or negotiation failed) the softphone closes it and opens a fresh
    one with a new local stream and peer link.
    """

    def __init__(
        self,
        channel_factory: ChannelFactory,
        media_source: MediaSource,
        link_factory: PeerLinkFactory,
        *,
        audio_output: Optional[AudioOutput] = None,
        cooldown_s: float = CallConstants.END_COOLDOWN_S,
        default_peer: Optional[str] = None,
        on_change: Optional[Callable[[CallSnapshot], None]] = None,
        on_notify: Optional[Callable[[Notification], None]] = None
    ) -> None:
        self._channel_factory = channel_factory
        self._media_source = media_source
        self._link_factory = link_factory
        self._audio_output = audio_output
        self._cooldown_s = cooldown_s
        self._default_peer = default_peer
        self._on_change = on_change
        self._on_notify = on_notify

        self._identity: Optional[str] = None
        self._channel: Optional[SignalChannel] = None
        self._session: Optional[CallSession] = None
        self._dispatch_task: Optional[asyncio.Task[None]] = None
        self._replace_task: Optional[asyncio.Task[None]] = None
        self._ready = asyncio.Event()
        self._logging_out = False
        self._sessions_created = 0

        self._logger = structlog.get_logger(__name__)

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def session(self) -> Optional[CallSession]:
        return self._session

    @property
    def channel(self) -> Optional[SignalChannel]:
        return self._channel

    @property
    def is_logged_in(self) -> bool:
        return self._channel is not None and not self._logging_out

    @property
    def sessions_created(self) -> int:
        return self._sessions_created

    async def login(self, identity: str) -> None:
        """Connect to the relay as ``identity`` and open a call session.

        Raises:
            RuntimeError: If already logged in
            ConnectionError: If the relay cannot be reached
        """
        if self._channel is not None:
            raise RuntimeError(f"Already logged in as {self._identity}")

        channel = self._channel_factory(identity)
        await channel.connect()

        self._identity = identity
        self._channel = channel
        self._logging_out = False
        self._logger = self._logger.bind(identity=identity)

        self._session = await self._open_session()
        self._ready.set()
        self._dispatch_task = asyncio.create_task(
            self._dispatch(channel),
            name=f"softphone-dispatch-{identity}"
        )
        self._logger.info("Logged in")

    async def logout(self) -> None:
        """End any call, release the session, and close the channel."""
        if self._channel is None or self._logging_out:
            return
        self._logging_out = True

        if self._replace_task:
            await self._replace_task
            self._replace_task = None

        if self._session:
            await self._session.close()

        await self._channel.close()

        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        self._ready.clear()
        self._channel = None
        self._logger.info("Logged out")

    async def start_call(self, remote_identity: Optional[str] = None) -> None:
        session = await self._current_session()
        if session:
            await session.start_call(remote_identity)

    async def end_call(self) -> None:
        session = await self._current_session()
        if session:
            await session.end_call()

    async def toggle_mute(self) -> None:
        session = await self._current_session()
        if session:
            await session.toggle_mute()

    async def toggle_speaker(self) -> None:
        session = await self._current_session()
        if session:
            await session.toggle_speaker()

    async def wait_ready(self) -> Optional[CallSession]:
        """Wait until no session replacement is in progress."""
        return await self._current_session()

    async def _current_session(self) -> Optional[CallSession]:
        if not self.is_logged_in:
            self._logger.warning("Command ignored, not logged in")
            return None
        await self._ready.wait()
        return self._session

    async def _open_session(self) -> CallSession:
        session = CallSession(
            self._identity,
            self._channel,
            self._media_source,
            self._link_factory,
            audio_output=self._audio_output,
            cooldown_s=self._cooldown_s,
            default_remote=self._default_peer,
            on_change=self._on_change,
            on_notify=self._on_notify,
            on_reset=self._on_session_reset,
        )
        await session.open()
        self._sessions_created += 1
        return session

    def _on_session_reset(self, session: CallSession) -> None:
        # Runs inside the session's consumer task; close() must happen elsewhere
        if session is not self._session or self._logging_out:
            return
        self._ready.clear()
        self._replace_task = asyncio.create_task(
            self._replace_session(session),
            name=f"softphone-replace-{self._identity}"
        )

    async def _replace_session(self, spent: CallSession) -> None:
        try:
            await spent.close()
            if self._logging_out:
                return
            self._session = await self._open_session()
            self._logger.info("Call session replaced", sessions=self._sessions_created)
        finally:
            self._ready.set()

    async def _dispatch(self, channel: SignalChannel) -> None:
        """Forward inbound messages to the current session in arrival order."""
        async for message in channel.messages():
            await self._ready.wait()
            if self._session is not None:
                self._session.deliver(message)

        if self._logging_out:
            return

        self._logger.warning("Signaling transport lost")
        await self._ready.wait()
        session = self._session
        if session is None:
            return
        if session.status not in ACTIVE_STATUSES and self._on_notify:
            # The session only reports loss of an active call
            try:
                self._on_notify(Notification(
                    kind=NotificationKind.TRANSPORT_LOST,
                    message="Signaling connection lost"
                ))
            except Exception as e:
                self._logger.error("Notification callback failed", error=str(e))
        await session.transport_lost()
