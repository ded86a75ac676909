"""Media source protocol and the local stream handle."""

from abc import abstractmethod
from typing import Any, Iterable, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class ControllableTrack(Protocol):
    """A local media track that can be silenced and stopped."""

    kind: str
    enabled: bool

    def stop(self) -> None:
        ...


class LocalStream:
    """Handle for the locally captured stream.

    Owned exclusively by one call session. ``stop()`` releases the tracks and
    is safe to call more than once; the tracks are stopped only the first time.
    """

    def __init__(self, tracks: Iterable[ControllableTrack], source: Any = None) -> None:
        """Initialize stream.

        Args:
            tracks: Tracks produced by the media source
            source: Capture object kept alive for the stream lifetime
        """
        self._tracks = list(tracks)
        self._source = source
        self._stopped = False

    @property
    def tracks(self) -> list[ControllableTrack]:
        return list(self._tracks)

    @property
    def audio_tracks(self) -> list[ControllableTrack]:
        return [track for track in self._tracks if track.kind == "audio"]

    @property
    def stopped(self) -> bool:
        return self._stopped

    def set_enabled(self, enabled: bool) -> None:
        """Enable or silence every audio track."""
        if self._stopped:
            logger.debug("Ignoring track toggle on stopped stream")
            return
        for track in self.audio_tracks:
            track.enabled = enabled

    def stop(self) -> bool:
        """Stop all tracks.

        Returns:
            True if the tracks were stopped by this call
        """
        if self._stopped:
            return False
        self._stopped = True
        for track in self._tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning("Error stopping track", kind=track.kind, error=str(e))
        logger.info("Local stream stopped", tracks=len(self._tracks))
        return True


@runtime_checkable
class MediaSource(Protocol):
    """Produces the local audio stream."""

    @abstractmethod
    async def acquire(self) -> LocalStream:
        """Capture a new local stream.

        Raises:
            SetupError: If capture is denied or no device is available
        """
        ...


@runtime_checkable
class AudioOutput(Protocol):
    """Routes received audio to an output device."""

    @abstractmethod
    def set_speaker_enabled(self, enabled: bool) -> None:
        ...


class NullAudioOutput:
    """Audio output that only records the requested routing."""

    def __init__(self) -> None:
        self.speaker_enabled = True

    def set_speaker_enabled(self, enabled: bool) -> None:
        self.speaker_enabled = enabled
        logger.info("Speaker routing requested", enabled=enabled, routed=False)
