"""Call and audio constants."""


class CallConstants:
    """Timing constants for the call lifecycle."""

    # Grace period the "call ended" screen stays up before returning to idle
    END_COOLDOWN_S = 2.0

    # Signaling relay
    CONNECT_TIMEOUT_S = 10.0
    DEFAULT_RELAY_PORT = 8765


class AudioConstants:
    """Capture constraints requested from the media source."""

    # Sample rate
    SAMPLE_RATE = 48000  # Opus native rate

    # Channels
    CHANNELS = 1

    # Frame timing
    FRAME_MS = 20
    FRAME_SAMPLES = 960  # 48000 * 20 / 1000

    # Test tone
    TONE_HZ = 440.0
    TONE_AMPLITUDE = 0.2


# Public STUN server used when no ICE servers are configured
DEFAULT_ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
]
