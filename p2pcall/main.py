"""Main application entry point for p2pcall."""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from p2pcall.config import Config, config
from p2pcall.media.aiortc_source import AiortcMediaSource
from p2pcall.media.base import NullAudioOutput
from p2pcall.peer.aiortc_link import AiortcPeerLink
from p2pcall.phone import Softphone
from p2pcall.session.state import CallSnapshot, CallStatus, Notification
from p2pcall.signaling.base import ChannelFactory
from p2pcall.signaling.memory import InMemoryRelay
from p2pcall.signaling.relay_server import RelayServer
from p2pcall.signaling.websocket_channel import WebSocketSignalChannel


def setup_logging(cfg: Config = config) -> None:
    """Configure structured logging, optionally with file output."""
    log_level = getattr(logging, cfg.system.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_file: Optional[Path] = None
    if cfg.system.log_dir:
        log_dir = Path(cfg.system.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"p2pcall_{timestamp}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=handlers,
        force=True
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if cfg.system.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        structlog.get_logger(__name__).info("Logging to file", path=str(log_file))


class ConsolePresenter:
    """Renders session snapshots and notifications as terminal lines."""

    def __init__(self, label: str = "") -> None:
        self._label = f"[{label}] " if label else ""
        self.last: Optional[CallSnapshot] = None

    def on_change(self, snapshot: CallSnapshot) -> None:
        previous, self.last = self.last, snapshot
        if previous is not None and (
            previous.status,
            previous.remote_identity,
            previous.muted,
            previous.speaker_enabled,
            previous.remote_stream is None,
        ) == (
            snapshot.status,
            snapshot.remote_identity,
            snapshot.muted,
            snapshot.speaker_enabled,
            snapshot.remote_stream is None,
        ):
            return
        print(f"{self._label}{self.describe(snapshot)}", flush=True)

    def on_notify(self, notification: Notification) -> None:
        print(f"{self._label}! {notification.message}", flush=True)

    @staticmethod
    def describe(snapshot: CallSnapshot) -> str:
        if snapshot.status is CallStatus.IDLE:
            line = "Ready to call" if snapshot.ready else "Not ready (no audio)"
        elif snapshot.status is CallStatus.CALLING:
            line = f"Calling {snapshot.remote_identity}..."
        elif snapshot.status is CallStatus.IN_CALL:
            line = f"In call with {snapshot.remote_identity}"
            if snapshot.remote_stream is not None:
                line += " (audio connected)"
        else:
            line = "Call ended"
        flags = []
        if snapshot.muted:
            flags.append("muted")
        if not snapshot.speaker_enabled:
            flags.append("speaker off")
        if flags:
            line += f" [{', '.join(flags)}]"
        return line


def build_softphone(
    cfg: Config,
    channel_factory: ChannelFactory,
    presenter: ConsolePresenter,
    tone_hz: Optional[float] = None
) -> Softphone:
    """Wire a softphone with aiortc media and peer links."""
    media = AiortcMediaSource(
        device=cfg.media.device,
        device_format=cfg.media.device_format,
        sample_rate=cfg.media.sample_rate,
        channels=cfg.media.channels,
        tone_hz=tone_hz or cfg.media.tone_hz,
    )
    return Softphone(
        channel_factory,
        media,
        lambda: AiortcPeerLink(ice_servers=cfg.ice.servers),
        audio_output=NullAudioOutput(),
        cooldown_s=cfg.call.end_cooldown_s,
        default_peer=cfg.call.default_peer,
        on_change=presenter.on_change,
        on_notify=presenter.on_notify,
    )


async def run_relay(cfg: Config, host: Optional[str], port: Optional[int]) -> None:
    """Run the signaling relay until interrupted."""
    relay = RelayServer(host=host or cfg.relay.host, port=port if port is not None else cfg.relay.port)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(relay.stop()))

    await relay.serve_forever()


HELP_TEXT = "Commands: call [peer], end, mute, speaker, status, quit"


async def run_softphone(cfg: Config, user: str, url: Optional[str]) -> None:
    """Interactive softphone reading commands from stdin."""
    logger = structlog.get_logger(__name__)
    presenter = ConsolePresenter()
    relay_url = url or cfg.signaling.url

    phone = build_softphone(
        cfg,
        lambda identity: WebSocketSignalChannel(identity, relay_url, cfg.signaling.connect_timeout),
        presenter,
    )
    await phone.login(user)
    print(f"Logged in as {user} via {relay_url}. {HELP_TEXT}", flush=True)

    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            parts = line.split()
            if not parts:
                continue
            command, args = parts[0].lower(), parts[1:]

            if command == "call":
                await phone.start_call(args[0] if args else None)
            elif command in ("end", "hangup"):
                await phone.end_call()
            elif command == "mute":
                await phone.toggle_mute()
            elif command == "speaker":
                await phone.toggle_speaker()
            elif command == "status":
                session = await phone.wait_ready()
                if session:
                    print(presenter.describe(session.snapshot()), flush=True)
            elif command in ("quit", "exit"):
                break
            else:
                print(HELP_TEXT, flush=True)
    finally:
        logger.info("Shutting down softphone")
        await phone.logout()


async def _wait_for_status(phone: Softphone, status: CallStatus, timeout: float) -> bool:
    try:
        async with asyncio.timeout(timeout):
            while True:
                session = await phone.wait_ready()
                if session is not None and session.status is status:
                    return True
                await asyncio.sleep(0.1)
    except TimeoutError:
        return False


async def run_demo(cfg: Config, duration: float) -> None:
    """Two softphones in one process: alice calls bob, talks, hangs up."""
    logger = structlog.get_logger(__name__)
    relay = InMemoryRelay()

    alice = build_softphone(cfg, relay.channel, ConsolePresenter("alice"), tone_hz=440.0)
    bob = build_softphone(cfg, relay.channel, ConsolePresenter("bob"), tone_hz=660.0)

    await alice.login("alice")
    await bob.login("bob")

    try:
        await alice.start_call("bob")
        connected = await _wait_for_status(alice, CallStatus.IN_CALL, cfg.signaling.connect_timeout)
        if not connected:
            logger.error("Demo call did not connect")
            return

        await asyncio.sleep(duration / 2)
        await bob.toggle_mute()
        await asyncio.sleep(duration / 2)
        await alice.end_call()

        await _wait_for_status(bob, CallStatus.ENDED, cfg.signaling.connect_timeout)
        await asyncio.sleep(cfg.call.end_cooldown_s + 0.2)
        logger.info(
            "Demo finished",
            alice_sessions=alice.sessions_created,
            bob_sessions=bob.sessions_created,
            messages=len(relay.delivered)
        )
    finally:
        await alice.logout()
        await bob.logout()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="p2pcall",
        description="Peer-to-peer audio calls negotiated over a WebSocket signaling relay"
    )
    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")
    parser.add_argument("--config", help="YAML file overlaid on environment configuration")

    subparsers = parser.add_subparsers(dest="command", required=True)

    relay = subparsers.add_parser("relay", help="Run the signaling relay")
    relay.add_argument("--host", help="Interface to bind")
    relay.add_argument("--port", type=int, help="TCP port")

    call = subparsers.add_parser("call", help="Run an interactive softphone")
    call.add_argument("--user", required=True, help="Identity to log in as")
    call.add_argument("--peer", help="Default identity to call")
    call.add_argument("--url", help="Relay URL")

    demo = subparsers.add_parser("demo", help="Two local softphones calling each other")
    demo.add_argument("--duration", type=float, default=4.0, help="Seconds to stay in the call")

    return parser


def cli(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = Config.from_yaml(args.config, base=config) if args.config else config
    if getattr(args, "peer", None):
        cfg.call.default_peer = args.peer

    # Setup logging BEFORE anything else runs
    setup_logging(cfg)
    logger = structlog.get_logger(__name__)

    if args.command == "relay":
        coro = run_relay(cfg, args.host, args.port)
    elif args.command == "call":
        coro = run_softphone(cfg, args.user, args.url)
    else:
        coro = run_demo(cfg, args.duration)

    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Shutdown complete")
        sys.exit(0)
    except Exception as e:
        logger.error("Fatal error", error=str(e), exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
