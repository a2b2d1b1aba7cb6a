"""
Error taxonomy for the transcription pipeline.

Audio acquisition failures are raised as exceptions by the source resolver.
Provider failures travel as ``ProviderError`` payloads on the adapter's
``error`` event. Recoverable kinds (no-speech, spurious session end) never
leave the adapter; every kind that does leave it stops listening.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of pipeline failures."""

    PERMISSION_DENIED = "permission_denied"  # fatal, no retry
    NO_AUDIO_TRACK = "no_audio_track"  # fatal for the current attempt
    DEVICE_UNAVAILABLE = "device_unavailable"  # one fallback, then fatal
    NO_SPEECH_TIMEOUT = "no_speech_timeout"  # ignored
    PROVIDER_SOCKET_ERROR = "provider_socket_error"  # surfaced, listening stops
    SPURIOUS_SESSION_END = "spurious_session_end"  # recovered by auto-restart
    RECOGNIZER_FAILURE = "recognizer_failure"  # local engine fault or restart limit, listening stops


RECOVERABLE_KINDS = frozenset({ErrorKind.NO_SPEECH_TIMEOUT, ErrorKind.SPURIOUS_SESSION_END})


class TranscriptRelayError(Exception):
    """Base exception for the package."""

    kind: ErrorKind | None = None

    def __init__(self, message: str, *, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class AudioSourceError(TranscriptRelayError):
    """Raised when an audio source cannot be acquired."""


class PermissionDenied(AudioSourceError):
    """The user or the platform refused access to the requested capture."""

    kind = ErrorKind.PERMISSION_DENIED


class NoAudioTrack(AudioSourceError):
    """A display capture was granted but carried no audio."""

    kind = ErrorKind.NO_AUDIO_TRACK


class DeviceUnavailable(AudioSourceError):
    """Neither the requested device nor the default microphone could be opened."""

    kind = ErrorKind.DEVICE_UNAVAILABLE


class ProviderError(TranscriptRelayError):
    """Error reported by a recognition provider through its ``error`` event."""

    def __init__(self, kind: ErrorKind, message: str, *, detail: str = "") -> None:
        super().__init__(message, detail=detail)
        self.kind = kind

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value!r}, message={str(self)!r})"

    @property
    def fatal(self) -> bool:
        """Whether this error ends the listening session."""
        return self.kind not in RECOVERABLE_KINDS
