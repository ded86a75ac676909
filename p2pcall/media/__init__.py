"""Local media capture and output routing."""

__all__ = [
    "AudioOutput",
    "ControllableTrack",
    "LocalStream",
    "MediaSource",
    "NullAudioOutput",
]

from p2pcall.media.base import AudioOutput, ControllableTrack, LocalStream, MediaSource, NullAudioOutput
