"""Audio capture primitives (provider-agnostic).

This module is intentionally "dumb hardware I/O": it knows nothing about
recognition providers or the conversation session.

It provides:
- media tracks and streams that deliver int16 PCM chunks to the event loop
- a sounddevice-backed implementation of the media device primitives
  (enumerate inputs, constrained device capture, loopback "display" capture)
- a WAV file media element for the in-process audio player
- WAV loading and PCM resampling helpers
"""

from __future__ import annotations

import asyncio
import logging
import wave
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)

# Input device names that usually expose what the speakers are playing.
LOOPBACK_HINTS = (
    "monitor",
    "loopback",
    "stereo mix",
    "blackhole",
    "soundflower",
    "what u hear",
    "wave out",
)


@dataclass(frozen=True)
class AudioIOConfig:
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"  # sounddevice dtype and WAV sample width
    block_ms: int = 100
    max_queued_chunks: int = 300


@dataclass(frozen=True)
class AudioDeviceInfo:
    device_id: str
    label: str
    default_sample_rate: int
    is_loopback: bool = False


class MediaAccessError(Exception):
    """Capture primitive failure, named like the platform reports it.

    Names used: NotAllowedError, AbortError, NotFoundError, NotReadableError,
    OverconstrainedError.
    """

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or name)
        self.name = name


class MediaTrack:
    """One track of a media stream. ``stop`` is idempotent."""

    def __init__(self, kind: str, label: str = "") -> None:
        self.kind = kind
        self.label = label
        self._stopped = False
        self._sink: AudioStream | None = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def attach(self, sink: "AudioStream") -> None:
        self._sink = sink

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._on_stop()
        if self._sink is not None:
            self._sink._track_ended(self)

    def _on_stop(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, label={self.label!r}, stopped={self._stopped})"


class AudioStream:
    """A live stream handle.

    Audio tracks push int16 chunks with ``put_chunk`` (event loop) or
    ``put_chunk_threadsafe`` (driver threads). ``chunks()`` yields them in
    arrival order until every audio track has stopped.
    """

    def __init__(
        self,
        tracks: list[MediaTrack] | None = None,
        *,
        sample_rate: int = 16000,
        max_queued_chunks: int = 300,
    ) -> None:
        self.sample_rate = sample_rate
        self._tracks: list[MediaTrack] = []
        self._queue: asyncio.Queue[np.ndarray | None] = asyncio.Queue(maxsize=max_queued_chunks)
        self._ended = False
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        for track in tracks or []:
            self.add_track(track)

    @property
    def tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    @property
    def audio_tracks(self) -> list[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def video_tracks(self) -> list[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    @property
    def ended(self) -> bool:
        return self._ended

    def add_track(self, track: MediaTrack) -> None:
        self._tracks.append(track)
        track.attach(self)

    def remove_track(self, track: MediaTrack) -> None:
        if track in self._tracks:
            self._tracks.remove(track)

    def stop(self) -> None:
        """Stop every track and end the chunk iterator."""
        for track in list(self._tracks):
            track.stop()
        self._end()

    def put_chunk(self, chunk: np.ndarray) -> None:
        if self._ended:
            return
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            logger.debug("Audio queue full; dropping chunk of %d samples", len(chunk))

    def put_chunk_threadsafe(self, chunk: np.ndarray) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self.put_chunk, chunk)

    async def chunks(self) -> AsyncIterator[np.ndarray]:
        while True:
            if self._ended and self._queue.empty():
                return
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    def _track_ended(self, track: MediaTrack) -> None:
        if track.kind == "audio" and all(t.stopped for t in self.audio_tracks):
            self._end()

    def _end(self) -> None:
        if self._ended:
            return
        self._ended = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Consumer is behind; it exits on the ended flag once the queue drains.
            pass


class MediaDevices(Protocol):
    async def enumerate_audio_inputs(self) -> list[AudioDeviceInfo]: ...

    async def get_display_media(self, *, audio: bool = True, video: bool = True) -> AudioStream: ...

    async def get_user_media(self, *, device_id: str | None = None) -> AudioStream: ...


class MediaElement(Protocol):
    def capture_stream(self) -> AudioStream | None: ...


def resample_pcm16(chunk: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """Linear-interpolation resample of mono int16 PCM."""
    samples = chunk.reshape(-1).astype(np.float32)
    if src_rate == dst_rate or samples.size == 0:
        return samples.astype(np.int16)
    n_out = max(1, int(round(samples.size * dst_rate / src_rate)))
    x_old = np.linspace(0.0, 1.0, num=samples.size, endpoint=False)
    x_new = np.linspace(0.0, 1.0, num=n_out, endpoint=False)
    out = np.interp(x_new, x_old, samples)
    return np.clip(out, -32768, 32767).astype(np.int16)


def read_wav(wav_path: str | Path) -> tuple[np.ndarray, int]:
    """Read a 16-bit WAV as mono int16 samples."""
    wav_path = Path(wav_path)
    with wave.open(str(wav_path), "rb") as wf:
        sr = wf.getframerate()
        n_channels = wf.getnchannels()
        sampwidth = wf.getsampwidth()
        if sampwidth != 2:
            raise ValueError(f"Only 16-bit WAV supported, got sampwidth={sampwidth}")
        frames = wf.readframes(wf.getnframes())

    audio = np.frombuffer(frames, dtype=np.int16)
    if n_channels > 1:
        audio = audio.reshape(-1, n_channels).mean(axis=1).astype(np.int16)
    return audio, sr


def _require_sounddevice():
    try:
        import sounddevice as sd  # type: ignore

        return sd
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "sounddevice is required for live capture. Install Python deps with: pip install -e '.[voice]'. "
            "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
        ) from e


class SoundDeviceTrack(MediaTrack):
    """Audio track backed by a sounddevice ``InputStream``."""

    def __init__(self, device: int | None, *, sample_rate: int, config: AudioIOConfig, label: str = "") -> None:
        super().__init__("audio", label)
        self._device = device
        self._sample_rate = sample_rate
        self._config = config
        self._stream = None

    def start(self) -> None:
        sd = _require_sounddevice()

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            if self._sink is not None:
                self._sink.put_chunk_threadsafe(indata[:, 0].copy())

        self._stream = sd.InputStream(
            device=self._device,
            samplerate=self._sample_rate,
            channels=self._config.channels,
            dtype=self._config.dtype,
            blocksize=int(self._sample_rate * self._config.block_ms / 1000),
            callback=callback,
        )
        self._stream.start()

    def _on_stop(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing input stream for {self.label!r}: {e}")


class SoundDeviceMediaDevices:
    """Media device primitives on top of PortAudio via sounddevice."""

    def __init__(self, config: AudioIOConfig | None = None) -> None:
        self._config = config or AudioIOConfig()

    @property
    def config(self) -> AudioIOConfig:
        return self._config

    async def enumerate_audio_inputs(self) -> list[AudioDeviceInfo]:
        sd = _require_sounddevice()
        devices = await asyncio.to_thread(sd.query_devices)
        inputs: list[AudioDeviceInfo] = []
        for idx, dev in enumerate(devices):
            if dev["max_input_channels"] <= 0:
                continue
            name = str(dev["name"])
            inputs.append(
                AudioDeviceInfo(
                    device_id=str(idx),
                    label=name,
                    default_sample_rate=int(dev["default_samplerate"]),
                    is_loopback=any(h in name.lower() for h in LOOPBACK_HINTS),
                )
            )
        return inputs

    async def get_user_media(self, *, device_id: str | None = None) -> AudioStream:
        if device_id is None:
            return await self._open(None, label="default")

        sd = _require_sounddevice()
        try:
            inputs = await self.enumerate_audio_inputs()
        except sd.PortAudioError as e:
            raise MediaAccessError("NotFoundError", f"Could not list input devices: {e}") from e
        match = self._match_device(inputs, device_id)
        if match is None:
            raise MediaAccessError("OverconstrainedError", f"No input device matches {device_id!r}")
        return await self._open(match, label=match.label)

    async def get_display_media(self, *, audio: bool = True, video: bool = True) -> AudioStream:
        if not audio:
            return AudioStream(sample_rate=self._config.sample_rate)
        inputs = await self.enumerate_audio_inputs()
        loopback = next((d for d in inputs if d.is_loopback), None)
        if loopback is None:
            logger.warning("No loopback/monitor input found; display capture carries no audio")
            return AudioStream(sample_rate=self._config.sample_rate)
        return await self._open(loopback, label=loopback.label)

    @staticmethod
    def _match_device(inputs: list[AudioDeviceInfo], device_id: str) -> AudioDeviceInfo | None:
        for dev in inputs:
            if dev.device_id == device_id:
                return dev
        needle = device_id.lower()
        for dev in inputs:
            if needle in dev.label.lower():
                return dev
        return None

    async def _open(self, device: AudioDeviceInfo | None, *, label: str) -> AudioStream:
        sd = _require_sounddevice()
        if device is None:
            try:
                info = await asyncio.to_thread(sd.query_devices, None, "input")
            except (sd.PortAudioError, ValueError) as e:
                raise MediaAccessError("NotFoundError", f"No default input device: {e}") from e
            sample_rate = int(info["default_samplerate"])
            index = None
        else:
            sample_rate = device.default_sample_rate
            index = int(device.device_id)

        track = SoundDeviceTrack(index, sample_rate=sample_rate, config=self._config, label=label)
        stream = AudioStream([track], sample_rate=sample_rate, max_queued_chunks=self._config.max_queued_chunks)
        try:
            await asyncio.to_thread(track.start)
        except sd.PortAudioError as e:
            stream.stop()
            raise MediaAccessError("NotReadableError", f"Could not open {label!r}: {e}") from e
        logger.info(f"Capturing {label!r} at {sample_rate}Hz")
        return stream


class WavFileTrack(MediaTrack):
    """Audio track that plays a WAV file in real time."""

    def __init__(self, audio: np.ndarray, sample_rate: int, *, block_ms: int = 100, label: str = "") -> None:
        super().__init__("audio", label)
        self._audio = audio
        self._sample_rate = sample_rate
        self._block = max(1, int(sample_rate * block_ms / 1000))
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._play())

    async def _play(self) -> None:
        pause = self._block / self._sample_rate
        for offset in range(0, len(self._audio), self._block):
            if self.stopped or self._sink is None:
                return
            self._sink.put_chunk(self._audio[offset : offset + self._block].copy())
            await asyncio.sleep(pause)
        self.stop()

    def _on_stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


class WavFileElement:
    """In-process media element for the 'audio' media mode."""

    def __init__(self, path: str | Path, *, block_ms: int = 100) -> None:
        self._path = Path(path)
        self._block_ms = block_ms

    @property
    def path(self) -> Path:
        return self._path

    def capture_stream(self) -> AudioStream | None:
        if not self._path.exists():
            logger.warning(f"Media element source {self._path} does not exist")
            return None
        audio, sr = read_wav(self._path)
        track = WavFileTrack(audio, sr, block_ms=self._block_ms, label=self._path.name)
        stream = AudioStream([track], sample_rate=sr)
        track.start()
        return stream
