"""Audio acquisition subsystem.

media element / display capture / microphone -> AudioStream -> provider

``sounddevice`` is only imported when a real device is opened, so the
package stays importable without the optional voice dependencies.
"""

from transcript_relay.audio.audio_io import (
    AudioDeviceInfo,
    AudioIOConfig,
    AudioStream,
    MediaAccessError,
    MediaDevices,
    MediaElement,
    MediaTrack,
    SoundDeviceMediaDevices,
    WavFileElement,
)
from transcript_relay.audio.source_resolver import AudioSourceResolver

__all__ = [
    "AudioDeviceInfo",
    "AudioIOConfig",
    "AudioStream",
    "MediaAccessError",
    "MediaDevices",
    "MediaElement",
    "MediaTrack",
    "SoundDeviceMediaDevices",
    "WavFileElement",
    "AudioSourceResolver",
]
