"""Call negotiation state machine.

A ``CallSession`` drives one call between the local identity and one remote
identity. Every input (user intent, inbound signaling message, peer link
callback, transport loss, cooldown expiry) becomes a ``SessionEvent`` on a
single-consumer queue, so transitions never interleave:

- Outbound: start_call → create offer → set local description → send offer
  → CALLING; inbound answer → set remote description → IN_CALL
- Inbound: offer → set remote description → create answer → set local
  description → send answer → IN_CALL (pending candidates drained)
- Teardown: end_call / call-ended / transport loss → stop local tracks,
  close the peer link → ENDED → (cooldown) → IDLE

Ending a call cancels an in-flight negotiation; results that complete after
the session moved on are discarded by comparing the negotiation generation.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog

from p2pcall.core.candidate_queue import CandidateQueue
from p2pcall.core.constants import CallConstants
from p2pcall.core.errors import InvalidTransitionError
from p2pcall.core.event_queue import EventQueue
from p2pcall.media.base import AudioOutput, LocalStream, MediaSource, NullAudioOutput
from p2pcall.peer.base import IceCandidate, PeerLink, PeerLinkFactory, SessionDescription
from p2pcall.session.state import (
    ACTIVE_STATUSES,
    VALID_TRANSITIONS,
    CallSnapshot,
    CallStatus,
    EventKind,
    Notification,
    NotificationKind,
    SessionEvent,
)
from p2pcall.signaling.base import SignalChannel
from p2pcall.signaling.messages import SignalMessage, SignalType


class _StaleNegotiation(Exception):
    """A negotiation step completed after the session moved on."""


class CallSession:
    """Owns the call state machine for one call."""

    def __init__(
        self,
        local_identity: str,
        channel: SignalChannel,
        media_source: MediaSource,
        link_factory: PeerLinkFactory,
        *,
        audio_output: Optional[AudioOutput] = None,
        cooldown_s: float = CallConstants.END_COOLDOWN_S,
        default_remote: Optional[str] = None,
        on_change: Optional[Callable[[CallSnapshot], None]] = None,
        on_notify: Optional[Callable[[Notification], None]] = None,
        on_reset: Optional[Callable[["CallSession"], None]] = None
    ) -> None:
        """Initialize call session.

        Args:
            local_identity: Identity of this endpoint
            channel: Connected signaling channel
            media_source: Produces the local audio stream
            link_factory: Creates the session's single peer link
            audio_output: Speaker routing collaborator
            cooldown_s: Seconds spent in ENDED before returning to IDLE
            default_remote: Callee used when start_call() names none
            on_change: Called with a snapshot after every observable change
            on_notify: Called with user-visible notifications
            on_reset: Called once the session is spent (cooldown elapsed or
                negotiation failed) and should be replaced

        Raises:
            ValueError: If local_identity is empty or cooldown is negative
        """
        if not local_identity:
            raise ValueError("Local identity must not be empty")
        if cooldown_s < 0:
            raise ValueError(f"Cooldown must not be negative, got {cooldown_s}")

        self._local_identity = local_identity
        self._channel = channel
        self._media_source = media_source
        self._link_factory = link_factory
        self._audio_output: AudioOutput = audio_output or NullAudioOutput()
        self._cooldown_s = cooldown_s
        self._default_remote = default_remote

        self._on_change = on_change
        self._on_notify = on_notify
        self._on_reset = on_reset

        # Call state
        self._status = CallStatus.IDLE
        self._remote_identity: Optional[str] = None
        self._local_stream: Optional[LocalStream] = None
        self._remote_stream: Any = None
        self._link: Optional[PeerLink] = None
        self._muted = False
        self._speaker_enabled = True

        # Negotiation state
        self._pending = CandidateQueue()
        self._outbound: list[IceCandidate] = []
        self._remote_description_set = False
        self._description_sent = False
        self._generation = 0
        self._spent = False

        # Event processing
        self._queue: EventQueue[tuple[SessionEvent, asyncio.Future[None]]] = EventQueue()
        self._consumer_task: Optional[asyncio.Task[None]] = None
        self._inflight: Optional[asyncio.Task[None]] = None
        self._inflight_negotiation = False
        self._cooldown_task: Optional[asyncio.Task[None]] = None
        self._closed = False

        self._logger = structlog.get_logger(__name__).bind(local=local_identity)

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def status(self) -> CallStatus:
        return self._status

    @property
    def local_identity(self) -> str:
        return self._local_identity

    @property
    def remote_identity(self) -> Optional[str]:
        return self._remote_identity

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def speaker_enabled(self) -> bool:
        return self._speaker_enabled

    @property
    def local_stream(self) -> Optional[LocalStream]:
        return self._local_stream

    @property
    def remote_stream(self) -> Any:
        return self._remote_stream

    @property
    def pending_candidates(self) -> tuple[IceCandidate, ...]:
        return self._pending.snapshot()

    @property
    def ready(self) -> bool:
        """Local stream and peer link are available for negotiation."""
        return (
            self._local_stream is not None
            and not self._local_stream.stopped
            and self._link is not None
        )

    @property
    def spent(self) -> bool:
        """Session finished its call and must be replaced."""
        return self._spent

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> CallSnapshot:
        """Read-only view for the presentation layer."""
        return CallSnapshot(
            status=self._status,
            local_identity=self._local_identity,
            remote_identity=self._remote_identity,
            muted=self._muted,
            speaker_enabled=self._speaker_enabled,
            local_stream=self._local_stream,
            remote_stream=self._remote_stream,
            ready=self.ready,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Acquire the local stream and peer link, then start processing events.

        Setup failures are reported through ``on_notify``; the session stays
        IDLE and not ready.
        """
        if self._consumer_task is not None or self._closed:
            return

        try:
            self._local_stream = await self._media_source.acquire()
            self._link = self._link_factory()
            self._link.on_local_candidate = self._on_local_candidate
            self._link.on_remote_track = self._on_remote_track
            for track in self._local_stream.tracks:
                self._link.add_track(track)
        except Exception as e:
            self._logger.error("Call setup failed", error=str(e))
            await self._release_resources()
            self._notify(NotificationKind.SETUP_FAILED, f"Could not set up audio: {e}")

        self._consumer_task = asyncio.create_task(
            self._run(),
            name=f"call-session-{self._local_identity}"
        )
        self._logger.info("Call session opened", ready=self.ready)
        self._emit_change()

    async def close(self) -> None:
        """Tear the session down and release every resource.

        Must not be awaited from inside a session callback.
        """
        if self._closed:
            return
        self._closed = True

        if self._remote_identity and (
            self._status in ACTIVE_STATUSES
            or (self._status is CallStatus.IDLE and not self._spent)
        ):
            await self._send_quietly(
                SignalMessage.call_ended(self._local_identity, self._remote_identity)
            )

        self._generation += 1
        if self._cooldown_task:
            self._cooldown_task.cancel()
            self._cooldown_task = None

        for _, future in self._queue.close():
            if not future.done():
                future.set_result(None)

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        await self._release_resources()
        self._pending.clear()
        self._outbound.clear()
        self._logger.info("Call session closed", status=self._status.value)

    # ------------------------------------------------------------------
    # Commands (presentation layer)
    # ------------------------------------------------------------------

    async def start_call(self, remote_identity: Optional[str] = None) -> None:
        """Call ``remote_identity`` (or the configured default peer)."""
        await self.post(SessionEvent(EventKind.START_CALL, payload=remote_identity))

    async def end_call(self) -> None:
        """Hang up. Safe to call in any state."""
        await self.post(SessionEvent(EventKind.END_CALL))

    async def toggle_mute(self) -> None:
        await self.post(SessionEvent(EventKind.TOGGLE_MUTE))

    async def toggle_speaker(self) -> None:
        await self.post(SessionEvent(EventKind.TOGGLE_SPEAKER))

    # ------------------------------------------------------------------
    # Inputs from collaborators
    # ------------------------------------------------------------------

    def deliver(self, message: SignalMessage) -> asyncio.Future[None]:
        """Queue an inbound signaling message without waiting for it."""
        return self.post(SessionEvent(EventKind.SIGNAL, signal=message))

    async def handle_signal(self, message: SignalMessage) -> None:
        """Process an inbound signaling message."""
        await self.deliver(message)

    def transport_lost(self) -> asyncio.Future[None]:
        """Signal that the relay connection is gone."""
        return self.post(SessionEvent(EventKind.TRANSPORT_LOST))

    def post(self, event: SessionEvent) -> asyncio.Future[None]:
        """Queue an event for the consumer task.

        Returns:
            Future resolved once the event has been processed
        """
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if self._closed or self._consumer_task is None:
            self._logger.debug("Session not running, dropping event", kind=event.kind.name)
            future.set_result(None)
            return future

        if self._preempts(event):
            self._cancel_negotiation()

        if not self._queue.send_nowait((event, future)):
            future.set_result(None)
        return future

    def _on_local_candidate(self, candidate: IceCandidate) -> None:
        self.post(SessionEvent(EventKind.LOCAL_CANDIDATE, payload=candidate))

    def _on_remote_track(self, track: Any) -> None:
        self.post(SessionEvent(EventKind.REMOTE_TRACK, payload=track))

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        """Consume events one at a time."""
        self._logger.debug("Session event loop started")
        while True:
            event, future = await self._queue.receive()
            task = asyncio.create_task(self._dispatch(event))
            self._inflight = task
            self._inflight_negotiation = self._is_negotiation(event)
            try:
                await task
            except asyncio.CancelledError:
                if asyncio.current_task().cancelling():
                    raise
                self._logger.info("Negotiation cancelled", kind=event.kind.name)
            except Exception as e:
                self._logger.error(
                    "Unhandled error processing session event",
                    kind=event.kind.name,
                    error=str(e),
                    exc_info=True
                )
            finally:
                self._inflight = None
                self._inflight_negotiation = False
                if not future.done():
                    future.set_result(None)

    async def _dispatch(self, event: SessionEvent) -> None:
        if event.kind is EventKind.SIGNAL:
            await self._handle_signal(event.signal)
        elif event.kind is EventKind.START_CALL:
            await self._handle_start_call(event.payload)
        elif event.kind is EventKind.END_CALL:
            await self._handle_end_call()
        elif event.kind is EventKind.TOGGLE_MUTE:
            self._handle_toggle_mute()
        elif event.kind is EventKind.TOGGLE_SPEAKER:
            self._handle_toggle_speaker()
        elif event.kind is EventKind.LOCAL_CANDIDATE:
            await self._handle_local_candidate(event.payload)
        elif event.kind is EventKind.REMOTE_TRACK:
            self._handle_remote_track(event.payload)
        elif event.kind is EventKind.TRANSPORT_LOST:
            await self._handle_transport_lost()
        elif event.kind is EventKind.COOLDOWN_ELAPSED:
            self._handle_cooldown_elapsed()

    def _is_negotiation(self, event: SessionEvent) -> bool:
        if event.kind is EventKind.START_CALL:
            return True
        return (
            event.kind is EventKind.SIGNAL
            and event.signal is not None
            and event.signal.type in (SignalType.OFFER, SignalType.ANSWER)
        )

    def _preempts(self, event: SessionEvent) -> bool:
        """Whether the event ends the call and should cut a negotiation short."""
        if event.kind in (EventKind.END_CALL, EventKind.TRANSPORT_LOST):
            return True
        return (
            event.kind is EventKind.SIGNAL
            and event.signal is not None
            and event.signal.type is SignalType.CALL_ENDED
            and event.signal.sender == self._remote_identity
        )

    def _cancel_negotiation(self) -> None:
        if self._inflight is not None and self._inflight_negotiation and not self._inflight.done():
            self._generation += 1
            self._inflight.cancel()
            self._logger.info("Cancelling in-flight negotiation")

    def _ensure_current(self, generation: int) -> None:
        if generation != self._generation or self._link is None:
            raise _StaleNegotiation()

    # ------------------------------------------------------------------
    # Handlers: local intents
    # ------------------------------------------------------------------

    async def _handle_start_call(self, requested: Optional[str]) -> None:
        remote = requested or self._default_remote

        if self._spent:
            self._logger.info("Start call ignored, session already used")
            return
        if self._status is not CallStatus.IDLE:
            self._logger.info("Start call ignored", status=self._status.value)
            return
        if not self.ready:
            self._logger.warning("Cannot start call, media or peer link not ready")
            return
        if not remote:
            self._notify(NotificationKind.NO_REMOTE, "No one to call")
            return
        if remote == self._local_identity:
            self._notify(NotificationKind.NO_REMOTE, "Cannot call yourself")
            return

        self._bind_remote(remote)
        self._set_status(CallStatus.CALLING)
        generation = self._generation

        try:
            offer = await self._link.create_offer()
            self._ensure_current(generation)
            await self._link.set_local_description(offer)
            self._ensure_current(generation)
            await self._channel.send(
                SignalMessage.offer(self._local_identity, remote, self._local_description(offer))
            )
        except _StaleNegotiation:
            self._logger.info("Discarding stale offer", remote=remote)
            return
        except Exception as e:
            await self._fail_negotiation("offer", e)
            return

        self._description_sent = True
        self._logger.info("Offer sent", remote=remote)
        await self._flush_outbound()

    async def _handle_end_call(self) -> None:
        if self._status in ACTIVE_STATUSES:
            await self._terminate("local", notify_remote=True)
        elif self._status is CallStatus.IDLE and self._remote_identity and not self._spent:
            # An inbound offer was being answered when the user hung up
            await self._send_quietly(
                SignalMessage.call_ended(self._local_identity, self._remote_identity)
            )
            self._retire()
        else:
            self._logger.debug("End call ignored", status=self._status.value)

    def _handle_toggle_mute(self) -> None:
        self._muted = not self._muted
        if self._local_stream is not None:
            self._local_stream.set_enabled(not self._muted)
        self._logger.info("Mute toggled", muted=self._muted)
        self._emit_change()

    def _handle_toggle_speaker(self) -> None:
        self._speaker_enabled = not self._speaker_enabled
        try:
            self._audio_output.set_speaker_enabled(self._speaker_enabled)
        except Exception as e:
            self._logger.warning("Speaker routing failed", error=str(e))
        self._emit_change()

    # ------------------------------------------------------------------
    # Handlers: signaling
    # ------------------------------------------------------------------

    async def _handle_signal(self, message: SignalMessage) -> None:
        if message.target != self._local_identity:
            self._logger.info("Dropping misrouted signal", type=message.type.value, target=message.target)
            return

        if message.type is SignalType.OFFER:
            await self._handle_offer(message)
        elif message.type is SignalType.ANSWER:
            await self._handle_answer(message)
        elif message.type is SignalType.CANDIDATE:
            await self._handle_remote_candidate(message)
        elif message.type is SignalType.CALL_ENDED:
            await self._handle_remote_end(message)

    async def _handle_offer(self, message: SignalMessage) -> None:
        sender = message.sender

        from_remote = sender == self._remote_identity

        if self._spent or self._status is CallStatus.ENDED:
            self._logger.info("Stale offer declined", sender=sender, status=self._status.value)
            if not from_remote:
                await self._send_quietly(SignalMessage.call_ended(self._local_identity, sender))
            return
        if self._remote_identity is not None and not from_remote:
            self._logger.info("Busy, declining offer", sender=sender, remote=self._remote_identity)
            await self._send_quietly(SignalMessage.call_ended(self._local_identity, sender))
            return
        if self._status is CallStatus.IN_CALL:
            self._logger.info("Duplicate offer ignored", sender=sender)
            return
        if not self.ready:
            self._logger.warning("Cannot accept offer, media or peer link not ready", sender=sender)
            self._notify(NotificationKind.SETUP_FAILED, f"Missed call from {sender}: audio not ready")
            await self._send_quietly(SignalMessage.call_ended(self._local_identity, sender))
            return

        generation = self._generation
        if self._status is CallStatus.CALLING:
            # Glare: both ends sent an offer. The lower identity answers.
            if self._local_identity > sender:
                self._logger.info("Glare, keeping local offer", remote=sender)
                return
            self._logger.info("Glare, deferring to remote offer", remote=sender)
            try:
                await self._link.rollback()
                self._ensure_current(generation)
            except _StaleNegotiation:
                return
            except Exception as e:
                await self._fail_negotiation("rollback", e)
                return

        self._bind_remote(sender)

        try:
            await self._link.set_remote_description(message.description)
            self._ensure_current(generation)
            self._remote_description_set = True
            answer = await self._link.create_answer()
            self._ensure_current(generation)
            await self._link.set_local_description(answer)
            self._ensure_current(generation)
            await self._channel.send(
                SignalMessage.answer(self._local_identity, sender, self._local_description(answer))
            )
        except _StaleNegotiation:
            self._logger.info("Discarding stale answer", remote=sender)
            return
        except Exception as e:
            await self._fail_negotiation("answer", e)
            return

        self._description_sent = True
        self._logger.info("Answer sent", remote=sender)
        self._set_status(CallStatus.IN_CALL)
        await self._drain_pending()
        await self._flush_outbound()

    async def _handle_answer(self, message: SignalMessage) -> None:
        if self._status is not CallStatus.CALLING or message.sender != self._remote_identity:
            self._logger.info(
                "Stale answer ignored",
                sender=message.sender,
                status=self._status.value
            )
            return

        generation = self._generation
        try:
            await self._link.set_remote_description(message.description)
            self._ensure_current(generation)
        except _StaleNegotiation:
            self._logger.info("Discarding stale remote answer", remote=message.sender)
            return
        except Exception as e:
            await self._fail_negotiation("remote answer", e)
            return

        self._remote_description_set = True
        self._set_status(CallStatus.IN_CALL)
        await self._drain_pending()

    async def _handle_remote_candidate(self, message: SignalMessage) -> None:
        sender = message.sender
        candidate = message.candidate

        if self._spent or self._status is CallStatus.ENDED:
            self._logger.debug("Stale candidate ignored", sender=sender)
            return
        if self._remote_identity is not None and sender != self._remote_identity:
            self._logger.info("Candidate from third party ignored", sender=sender)
            return

        if not self._remote_description_set:
            if self._pending.push(sender, candidate):
                self._logger.debug("Candidate queued", sender=sender, pending=len(self._pending))
            return

        if self._pending.mark_applied(candidate):
            await self._apply_candidate(candidate)
        else:
            self._logger.debug("Duplicate candidate skipped", sender=sender)

    async def _handle_remote_end(self, message: SignalMessage) -> None:
        if self._remote_identity is None or message.sender != self._remote_identity:
            self._logger.info("Stale call-ended ignored", sender=message.sender)
            return

        if self._status in ACTIVE_STATUSES:
            self._notify(NotificationKind.REMOTE_ENDED, f"{message.sender} ended the call")
            await self._terminate("remote", notify_remote=False)
        elif self._status is CallStatus.IDLE and not self._spent:
            self._notify(NotificationKind.REMOTE_ENDED, f"{message.sender} hung up")
            self._retire()
        else:
            self._logger.debug("Call-ended ignored", status=self._status.value)

    async def _handle_transport_lost(self) -> None:
        if self._status in ACTIVE_STATUSES:
            self._notify(NotificationKind.TRANSPORT_LOST, "Signaling connection lost, call ended")
            await self._terminate("transport", notify_remote=False)
        elif self._status is CallStatus.IDLE and self._remote_identity and not self._spent:
            self._retire()
        else:
            self._logger.debug("Transport loss outside a call", status=self._status.value)

    # ------------------------------------------------------------------
    # Handlers: peer link callbacks and timers
    # ------------------------------------------------------------------

    async def _handle_local_candidate(self, candidate: IceCandidate) -> None:
        if self._spent or self._status is CallStatus.ENDED:
            return
        if self._remote_identity and self._description_sent:
            await self._send_candidate(candidate)
        else:
            self._outbound.append(candidate)
            self._logger.debug("Local candidate buffered", buffered=len(self._outbound))

    def _handle_remote_track(self, track: Any) -> None:
        if self._spent or self._status is CallStatus.ENDED:
            return
        self._remote_stream = track
        self._logger.info("Remote audio attached", remote=self._remote_identity)
        self._emit_change()

    def _handle_cooldown_elapsed(self) -> None:
        self._cooldown_task = None
        if self._status is not CallStatus.ENDED:
            return
        self._remote_identity = None
        self._remote_stream = None
        self._spent = True
        self._set_status(CallStatus.IDLE)
        self._fire_reset()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _local_description(self, fallback: SessionDescription) -> SessionDescription:
        # Links that gather candidates into the SDP expose the final description
        description = getattr(self._link, "local_description", None)
        return description or fallback

    def _bind_remote(self, identity: str) -> None:
        if self._remote_identity is None:
            self._remote_identity = identity
            self._logger.info("Remote identity bound", remote=identity)
            self._emit_change()

    async def _apply_candidate(self, candidate: IceCandidate) -> None:
        try:
            await self._link.add_candidate(candidate)
        except Exception as e:
            self._logger.warning("Remote candidate rejected", error=str(e))

    async def _drain_pending(self) -> None:
        candidates = self._pending.drain(self._remote_identity)
        for candidate in candidates:
            if self._link is None:
                break
            await self._apply_candidate(candidate)
        if candidates:
            self._logger.info("Pending candidates applied", count=len(candidates))

    async def _send_candidate(self, candidate: IceCandidate) -> None:
        await self._send_quietly(
            SignalMessage.ice_candidate(self._local_identity, self._remote_identity, candidate)
        )

    async def _flush_outbound(self) -> None:
        buffered, self._outbound = self._outbound, []
        for candidate in buffered:
            await self._send_candidate(candidate)

    async def _send_quietly(self, message: SignalMessage) -> None:
        try:
            await self._channel.send(message)
        except Exception as e:
            self._logger.warning("Signal not sent", type=message.type.value, error=str(e))

    async def _fail_negotiation(self, step: str, error: Exception) -> None:
        self._logger.warning("Negotiation failed", step=step, error=str(error))
        if self._remote_identity:
            await self._send_quietly(
                SignalMessage.call_ended(self._local_identity, self._remote_identity)
            )
        if self._status is CallStatus.CALLING:
            self._set_status(CallStatus.IDLE)
        self._notify(NotificationKind.NEGOTIATION_FAILED, f"Call could not be connected ({step})")
        await self._release_resources()
        self._retire()

    async def _terminate(self, reason: str, notify_remote: bool) -> None:
        """Stop local tracks, close the peer link, and enter ENDED."""
        self._generation += 1
        if notify_remote and self._remote_identity:
            await self._send_quietly(
                SignalMessage.call_ended(self._local_identity, self._remote_identity)
            )
        await self._release_resources()
        self._pending.clear()
        self._outbound.clear()
        self._logger.info("Call ended", reason=reason, remote=self._remote_identity)
        self._set_status(CallStatus.ENDED)
        self._schedule_cooldown()

    def _retire(self) -> None:
        """Mark the session spent without passing through ENDED."""
        self._generation += 1
        self._pending.clear()
        self._outbound.clear()
        self._remote_identity = None
        self._spent = True
        self._emit_change()
        self._fire_reset()

    async def _release_resources(self) -> None:
        if self._local_stream is not None:
            self._local_stream.stop()
        if self._link is not None:
            # Discarded, never reused
            link, self._link = self._link, None
            try:
                await link.close()
            except Exception as e:
                self._logger.warning("Error closing peer link", error=str(e))

    def _schedule_cooldown(self) -> None:
        async def _cooldown() -> None:
            await asyncio.sleep(self._cooldown_s)
            self.post(SessionEvent(EventKind.COOLDOWN_ELAPSED))

        self._cooldown_task = asyncio.create_task(
            _cooldown(),
            name=f"call-cooldown-{self._local_identity}"
        )

    def _set_status(self, status: CallStatus) -> None:
        if status is self._status:
            return
        if status not in VALID_TRANSITIONS[self._status]:
            raise InvalidTransitionError(f"{self._status.value} -> {status.value}")
        previous, self._status = self._status, status
        self._logger.info(
            "Call status changed",
            previous=previous.value,
            status=status.value,
            remote=self._remote_identity
        )
        self._emit_change()

    def _emit_change(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.snapshot())
        except Exception as e:
            self._logger.error("State change callback failed", error=str(e), exc_info=True)

    def _notify(self, kind: NotificationKind, message: str) -> None:
        self._logger.info("User notification", kind=kind.value, message=message)
        if self._on_notify is None:
            return
        try:
            self._on_notify(Notification(kind=kind, message=message))
        except Exception as e:
            self._logger.error("Notification callback failed", error=str(e), exc_info=True)

    def _fire_reset(self) -> None:
        if self._on_reset is None:
            return
        try:
            self._on_reset(self)
        except Exception as e:
            self._logger.error("Reset callback failed", error=str(e), exc_info=True)
