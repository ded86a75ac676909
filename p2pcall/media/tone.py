"""Test tone generation for calls without a capture device."""

import asyncio
import fractions
import time
from typing import Optional

import numpy as np
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError
from av import AudioFrame

from p2pcall.core.constants import AudioConstants


def generate_tone(
    frequency: float,
    start_sample: int,
    num_samples: int,
    sample_rate: int = AudioConstants.SAMPLE_RATE,
    amplitude: float = AudioConstants.TONE_AMPLITUDE
) -> np.ndarray:
    """Generate a slice of a continuous sine tone.

    Args:
        frequency: Frequency in Hz
        start_sample: Index of the first sample (keeps phase across frames)
        num_samples: Number of samples to generate
        sample_rate: Sample rate in Hz
        amplitude: Peak amplitude, 0.0 to 1.0

    Returns:
        PCM16 samples as numpy array

    Raises:
        ValueError: If amplitude is outside [0, 1] or num_samples is negative
    """
    if not 0.0 <= amplitude <= 1.0:
        raise ValueError(f"Amplitude must be within [0, 1], got {amplitude}")
    if num_samples < 0:
        raise ValueError(f"Sample count must not be negative, got {num_samples}")

    t = (np.arange(num_samples) + start_sample) / sample_rate
    tone = np.sin(2 * np.pi * frequency * t) * amplitude
    return (tone * 32767).astype(np.int16)


def silence_like(frame: AudioFrame) -> AudioFrame:
    """Return a zeroed copy of an audio frame with the same timing."""
    samples = np.zeros_like(frame.to_ndarray())
    silent = AudioFrame.from_ndarray(samples, format=frame.format.name, layout=frame.layout.name)
    silent.sample_rate = frame.sample_rate
    silent.pts = frame.pts
    silent.time_base = frame.time_base
    return silent


class ToneTrack(MediaStreamTrack):
    """Audio track emitting a paced sine tone (mono PCM16, 20ms frames)."""

    kind = "audio"

    def __init__(
        self,
        frequency: float = AudioConstants.TONE_HZ,
        sample_rate: int = AudioConstants.SAMPLE_RATE,
        frame_samples: int = AudioConstants.FRAME_SAMPLES,
        amplitude: float = AudioConstants.TONE_AMPLITUDE
    ) -> None:
        super().__init__()
        self._frequency = frequency
        self._sample_rate = sample_rate
        self._frame_samples = frame_samples
        self._amplitude = amplitude

        self._start: Optional[float] = None
        self._timestamp = 0

    async def recv(self) -> AudioFrame:
        if self.readyState != "live":
            raise MediaStreamError

        if self._start is None:
            self._start = time.time()
        else:
            self._timestamp += self._frame_samples
            wait = self._start + (self._timestamp / self._sample_rate) - time.time()
            if wait > 0:
                await asyncio.sleep(wait)

        samples = generate_tone(
            self._frequency,
            self._timestamp,
            self._frame_samples,
            sample_rate=self._sample_rate,
            amplitude=self._amplitude
        )
        frame = AudioFrame.from_ndarray(samples.reshape(1, -1), format="s16", layout="mono")
        frame.pts = self._timestamp
        frame.sample_rate = self._sample_rate
        frame.time_base = fractions.Fraction(1, self._sample_rate)
        return frame
