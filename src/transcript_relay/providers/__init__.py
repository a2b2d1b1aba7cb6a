"""
Recognition providers.

Both providers expose the same lifecycle and events; the pipeline picks one
by name and never looks behind the ``ProviderAdapter`` surface.
"""

from transcript_relay.providers.base import PROVIDER_EVENTS, ProviderAdapter
from transcript_relay.providers.local import LocalContinuousRecognizer, RecognitionEngine, RestartPolicy
from transcript_relay.providers.remote import DEFAULT_ENDPOINT, RemoteStreamingClient
from transcript_relay.providers.whisper_engine import RecognitionResult, STTConfig, WhisperRecognitionEngine

__all__ = [
    "PROVIDER_EVENTS",
    "ProviderAdapter",
    "LocalContinuousRecognizer",
    "RecognitionEngine",
    "RestartPolicy",
    "DEFAULT_ENDPOINT",
    "RemoteStreamingClient",
    "RecognitionResult",
    "STTConfig",
    "WhisperRecognitionEngine",
]
