"""Tests for configuration loading."""

from pathlib import Path

import pytest

from p2pcall.config import Config
from p2pcall.core.constants import CallConstants


class TestConfigFromEnv:
    """Test environment variable parsing."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        for name in ("SIGNALING_URL", "RELAY_PORT", "ICE_SERVERS", "CALL_END_COOLDOWN_S", "CALL_DEFAULT_PEER"):
            monkeypatch.delenv(name, raising=False)
        cfg = Config.from_env(dotenv_path=str(tmp_path / "missing.env"))

        assert cfg.relay.port == CallConstants.DEFAULT_RELAY_PORT
        assert cfg.call.end_cooldown_s == CallConstants.END_COOLDOWN_S
        assert cfg.call.default_peer is None
        assert cfg.ice.servers[0]["urls"].startswith("stun:")

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("SIGNALING_URL", "ws://relay.test:9000")
        monkeypatch.setenv("RELAY_PORT", "9000")
        monkeypatch.setenv("ICE_SERVERS", "stun:a.test:3478, stun:b.test:3478")
        monkeypatch.setenv("CALL_END_COOLDOWN_S", "0.5")
        monkeypatch.setenv("CALL_DEFAULT_PEER", "bob")
        monkeypatch.setenv("MEDIA_TONE_HZ", "523.25")

        cfg = Config.from_env(dotenv_path=str(tmp_path / "missing.env"))

        assert cfg.signaling.url == "ws://relay.test:9000"
        assert cfg.relay.port == 9000
        assert cfg.ice.servers == [{"urls": "stun:a.test:3478"}, {"urls": "stun:b.test:3478"}]
        assert cfg.call.end_cooldown_s == 0.5
        assert cfg.call.default_peer == "bob"
        assert cfg.media.tone_hz == 523.25

    def test_invalid_number(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("RELAY_PORT", "eighty")
        with pytest.raises(ValueError, match="RELAY_PORT"):
            Config.from_env(dotenv_path=str(tmp_path / "missing.env"))


class TestConfigFromYaml:
    """Test YAML overlay (fail-fast)."""

    def test_overlay(self, tmp_path: Path) -> None:
        path = tmp_path / "p2pcall.yaml"
        path.write_text(
            "signaling:\n"
            "  url: ws://relay.local:8765\n"
            "call:\n"
            "  end_cooldown_s: 1.5\n"
            "  default_peer: bob\n"
            "ice:\n"
            "  - urls: turn:turn.local:3478\n"
            "    username: u\n"
            "    credential: p\n",
            encoding="utf-8"
        )
        cfg = Config.from_yaml(path)

        assert cfg.signaling.url == "ws://relay.local:8765"
        assert cfg.call.end_cooldown_s == 1.5
        assert cfg.call.default_peer == "bob"
        assert cfg.ice.servers[0]["username"] == "u"
        # Untouched sections keep their defaults
        assert cfg.relay.port == CallConstants.DEFAULT_RELAY_PORT

    def test_overlay_keeps_base(self, tmp_path: Path) -> None:
        path = tmp_path / "p2pcall.yaml"
        path.write_text("relay:\n  port: 9100\n", encoding="utf-8")
        base = Config()
        base.call.default_peer = "carol"

        cfg = Config.from_yaml(path, base=base)
        assert cfg.relay.port == 9100
        assert cfg.call.default_peer == "carol"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("content", [
        "signaling: [unclosed",
        "- just\n- a list\n",
        "telemetry:\n  enabled: true\n",
        "call:\n  ring_timeout: 3\n",
        "call: 5\n",
        "ice:\n  servers:\n    - stun:no-mapping\n",
    ])
    def test_invalid_files(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ValueError):
            Config.from_yaml(path)
