"""Local audio capture backed by aiortc.

Captures the microphone through ``aiortc.contrib.media.MediaPlayer`` (FFmpeg
device input) or, when no device is configured, emits a test tone. Every
track handed to the call is wrapped in ``GatedAudioTrack`` so muting silences
audio at the source rather than attenuating it downstream.
"""

from typing import Optional

import structlog
from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer
from av import AudioFrame

from p2pcall.core.constants import AudioConstants
from p2pcall.core.errors import SetupError
from p2pcall.media.base import LocalStream
from p2pcall.media.tone import ToneTrack, silence_like


class GatedAudioTrack(MediaStreamTrack):
    """Relays an audio track, replacing frames with silence while disabled."""

    kind = "audio"

    def __init__(self, source: MediaStreamTrack) -> None:
        super().__init__()
        self._source = source
        self.enabled = True

    async def recv(self) -> AudioFrame:
        frame = await self._source.recv()
        if self.enabled:
            return frame
        return silence_like(frame)

    def stop(self) -> None:
        super().stop()
        self._source.stop()


class AiortcMediaSource:
    """Media source capturing one audio track per call."""

    def __init__(
        self,
        device: Optional[str] = None,
        device_format: Optional[str] = None,
        sample_rate: int = AudioConstants.SAMPLE_RATE,
        channels: int = AudioConstants.CHANNELS,
        tone_hz: float = AudioConstants.TONE_HZ
    ) -> None:
        """Initialize media source.

        Args:
            device: FFmpeg input device (e.g. "default" for pulse, ":0" for
                avfoundation); None emits a test tone instead
            device_format: FFmpeg input format (e.g. "pulse", "alsa", "avfoundation")
            sample_rate: Requested capture rate
            channels: Requested channel count
            tone_hz: Test tone frequency when no device is configured
        """
        self._device = device
        self._device_format = device_format
        self._sample_rate = sample_rate
        self._channels = channels
        self._tone_hz = tone_hz

        self._logger = structlog.get_logger(__name__)

    async def acquire(self) -> LocalStream:
        """Open the capture device (or tone) and return a new stream.

        Raises:
            SetupError: If the device cannot be opened or has no audio
        """
        if self._device is None:
            track = GatedAudioTrack(ToneTrack(frequency=self._tone_hz, sample_rate=self._sample_rate))
            self._logger.info("Using test tone as local audio", frequency=self._tone_hz)
            return LocalStream([track])

        try:
            player = MediaPlayer(
                self._device,
                format=self._device_format,
                options={
                    "sample_rate": str(self._sample_rate),
                    "channels": str(self._channels),
                }
            )
        except Exception as e:
            raise SetupError(f"Cannot open audio device {self._device!r}: {e}")

        if player.audio is None:
            raise SetupError(f"Device {self._device!r} has no audio track")

        self._logger.info(
            "Microphone opened",
            device=self._device,
            format=self._device_format,
            sample_rate=self._sample_rate
        )
        return LocalStream([GatedAudioTrack(player.audio)], source=player)
