"""Application configuration.

Values come from environment variables (a ``.env`` file is loaded first when
present) and can be overlaid from a YAML file whose top-level keys mirror the
sections below::

    signaling:
      url: ws://relay.local:8765
    call:
      end_cooldown_s: 1.5
      default_peer: bob
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from dotenv import load_dotenv

from p2pcall.core.constants import AudioConstants, CallConstants, DEFAULT_ICE_SERVERS


logger = structlog.get_logger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _parse_ice_servers(raw: Optional[str]) -> list[dict[str, Any]]:
    """Parse ``ICE_SERVERS`` (comma separated URLs)."""
    if not raw:
        return [dict(entry) for entry in DEFAULT_ICE_SERVERS]
    return [{"urls": url.strip()} for url in raw.split(",") if url.strip()]


@dataclass
class SystemConfig:
    log_level: str = "INFO"
    log_format: str = "console"
    log_dir: Optional[str] = None


@dataclass
class SignalingConfig:
    """Client side of the signaling relay."""

    url: str = f"ws://localhost:{CallConstants.DEFAULT_RELAY_PORT}"
    connect_timeout: float = CallConstants.CONNECT_TIMEOUT_S


@dataclass
class RelayConfig:
    host: str = "0.0.0.0"
    port: int = CallConstants.DEFAULT_RELAY_PORT


@dataclass
class IceConfig:
    servers: list[dict[str, Any]] = field(
        default_factory=lambda: [dict(entry) for entry in DEFAULT_ICE_SERVERS]
    )


@dataclass
class MediaConfig:
    """Capture constraints and device selection.

    ``device`` is passed to ``aiortc.contrib.media.MediaPlayer``; when unset a
    generated tone is used instead of a microphone.
    """

    device: Optional[str] = None
    device_format: Optional[str] = None
    sample_rate: int = AudioConstants.SAMPLE_RATE
    channels: int = AudioConstants.CHANNELS
    tone_hz: float = AudioConstants.TONE_HZ


@dataclass
class CallConfig:
    end_cooldown_s: float = CallConstants.END_COOLDOWN_S
    default_peer: Optional[str] = None


_SECTIONS = ("system", "signaling", "relay", "ice", "media", "call")


@dataclass
class Config:
    """Top-level configuration."""

    system: SystemConfig = field(default_factory=SystemConfig)
    signaling: SignalingConfig = field(default_factory=SignalingConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    ice: IceConfig = field(default_factory=IceConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    call: CallConfig = field(default_factory=CallConfig)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Config":
        """Build configuration from environment variables.

        Args:
            dotenv_path: Optional ``.env`` file loaded before reading

        Returns:
            Config instance

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        load_dotenv(dotenv_path)

        return cls(
            system=SystemConfig(
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                log_format=os.getenv("LOG_FORMAT", "console"),
                log_dir=os.getenv("LOG_DIR") or None,
            ),
            signaling=SignalingConfig(
                url=os.getenv("SIGNALING_URL", SignalingConfig.url),
                connect_timeout=_env_float("SIGNALING_CONNECT_TIMEOUT", CallConstants.CONNECT_TIMEOUT_S),
            ),
            relay=RelayConfig(
                host=os.getenv("RELAY_HOST", RelayConfig.host),
                port=_env_int("RELAY_PORT", CallConstants.DEFAULT_RELAY_PORT),
            ),
            ice=IceConfig(servers=_parse_ice_servers(os.getenv("ICE_SERVERS"))),
            media=MediaConfig(
                device=os.getenv("MEDIA_DEVICE") or None,
                device_format=os.getenv("MEDIA_FORMAT") or None,
                sample_rate=_env_int("MEDIA_SAMPLE_RATE", AudioConstants.SAMPLE_RATE),
                channels=_env_int("MEDIA_CHANNELS", AudioConstants.CHANNELS),
                tone_hz=_env_float("MEDIA_TONE_HZ", AudioConstants.TONE_HZ),
            ),
            call=CallConfig(
                end_cooldown_s=_env_float("CALL_END_COOLDOWN_S", CallConstants.END_COOLDOWN_S),
                default_peer=os.getenv("CALL_DEFAULT_PEER") or None,
            ),
        )

    @classmethod
    def from_yaml(cls, file_path: str | Path, base: Optional["Config"] = None) -> "Config":
        """Overlay configuration from a YAML file.

        FAIL-FAST: a missing or malformed file raises instead of falling back
        to defaults.

        Args:
            file_path: Path to YAML configuration file
            base: Configuration to overlay (defaults to ``Config()``)

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If YAML file is invalid
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {file_path}")

        logger.info("Loading config from YAML", file_path=str(file_path))

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML file: {e}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("YAML file must contain a dictionary")

        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")

        result = base or cls()
        for section in _SECTIONS:
            values = data.get(section)
            if values is None:
                continue
            result = replace(result, **{section: _overlay(section, getattr(result, section), values)})

        logger.info("Config loaded successfully", sections=sorted(data))
        return result


def _overlay(section: str, current: Any, values: Any) -> Any:
    if section == "ice" and isinstance(values, list):
        values = {"servers": values}
    if not isinstance(values, dict):
        raise ValueError(f"'{section}' section must be a dictionary")

    known = {f.name for f in fields(current)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {', '.join(sorted(unknown))}")

    if section == "ice":
        servers = values.get("servers", current.servers)
        if not isinstance(servers, list) or not all(
            isinstance(entry, dict) and "urls" in entry for entry in servers
        ):
            raise ValueError("'ice.servers' must be a list of mappings with 'urls'")

    return replace(current, **values)


config = Config.from_env()
