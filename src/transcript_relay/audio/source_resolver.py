"""Audio source resolution.

Turns a logical source selector into a live ``AudioStream``, trying the
acquisition strategies in priority order:

1. system audio from an in-process media element of the active media mode
2. system audio from a display capture (never substituted by the microphone)
3. a specific device or the default microphone, with one unconstrained retry
"""

from __future__ import annotations

import logging

from transcript_relay.audio.audio_io import (
    AudioDeviceInfo,
    AudioStream,
    MediaAccessError,
    MediaDevices,
    MediaElement,
)
from transcript_relay.errors import DeviceUnavailable, NoAudioTrack, PermissionDenied
from transcript_relay.schemas import AudioSourceSelector, MediaMode, SourceKind

logger = logging.getLogger(__name__)

_PERMISSION_ERRORS = ("NotAllowedError", "SecurityError", "AbortError")


class AudioSourceResolver:
    def __init__(self, media_devices: MediaDevices) -> None:
        self._devices = media_devices
        self._elements: dict[str, MediaElement] = {}

    def register_media_element(self, mode: MediaMode, element: MediaElement) -> None:
        self._elements[mode] = element

    def unregister_media_element(self, mode: MediaMode) -> None:
        self._elements.pop(mode, None)

    async def enumerate_audio_inputs(self) -> list[AudioDeviceInfo]:
        return await self._devices.enumerate_audio_inputs()

    async def resolve(self, selector: AudioSourceSelector, *, media_mode: MediaMode | None = None) -> AudioStream:
        """
        Acquire a stream for the selector.

        Raises:
            PermissionDenied: capture was refused or cancelled.
            NoAudioTrack: a display capture was shared without audio.
            DeviceUnavailable: no microphone could be opened.
        """
        if selector.kind == SourceKind.SYSTEM:
            stream = self._capture_media_element(media_mode)
            if stream is not None:
                return stream
            return await self._capture_display()
        return await self._capture_device(selector.device_id)

    def _capture_media_element(self, media_mode: MediaMode | None) -> AudioStream | None:
        if media_mode is None:
            return None
        element = self._elements.get(media_mode)
        if element is None:
            return None

        stream = element.capture_stream()
        if stream is None:
            return None
        if not stream.audio_tracks:
            stream.stop()
            return None
        logger.info(f"Capturing system audio from the '{media_mode}' media element")
        return stream

    async def _capture_display(self) -> AudioStream:
        try:
            display = await self._devices.get_display_media(audio=True, video=True)
        except MediaAccessError as e:
            logger.warning(f"Display capture cancelled: {e}")
            raise PermissionDenied("Screen or tab sharing was cancelled", detail=e.name) from e

        # Video comes along with display capture; drop it so no screen permission stays held.
        for track in display.video_tracks:
            track.stop()
            display.remove_track(track)

        if not display.audio_tracks:
            display.stop()
            raise NoAudioTrack("No audio shared! Please enable sharing of tab or system audio.")
        return display

    async def _capture_device(self, device_id: str | None) -> AudioStream:
        try:
            return await self._devices.get_user_media(device_id=device_id)
        except MediaAccessError as e:
            if device_id is None or e.name in _PERMISSION_ERRORS:
                raise self._device_error(e) from e
            logger.warning(f"Failed to open device {device_id!r} ({e}); falling back to default microphone")

        try:
            return await self._devices.get_user_media(device_id=None)
        except MediaAccessError as e:
            raise self._device_error(e) from e

    @staticmethod
    def _device_error(e: MediaAccessError) -> PermissionDenied | DeviceUnavailable:
        if e.name in _PERMISSION_ERRORS:
            return PermissionDenied("Microphone access was denied", detail=e.name)
        return DeviceUnavailable("No microphone could be opened", detail=str(e))
