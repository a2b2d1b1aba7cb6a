"""Continuous speech recognition engine (offline).

Default implementation uses `faster-whisper` if installed. The engine
mimics an always-on recognizer: it reports interim hypotheses while an
utterance is in progress, a final result once the speaker pauses, and ends
its session by itself after a stretch of silence.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from transcript_relay.audio.audio_io import AudioStream, resample_pcm16

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class STTConfig:
    model_size: str = "small"
    # Default to CPU to avoid hard crashes when CUDA/cuDNN aren't present.
    device: str = "cpu"  # cpu|cuda|auto
    compute_type: str | None = None  # e.g. int8, float16
    vad_filter: bool = True
    sample_rate: int = 16000

    # Segmentation
    speech_rms: float = 0.01  # float32 RMS above which a block counts as speech
    interim_interval_s: float = 1.0
    silence_s: float = 0.8
    max_utterance_s: float = 15.0
    no_speech_timeout_s: float = 8.0


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    is_final: bool


Transcriber = Callable[[np.ndarray, str | None], str]


def _noop(*args) -> None:  # noqa: ANN002
    pass


class WhisperRecognitionEngine:
    """faster-whisper wrapper running a continuous recognition loop."""

    def __init__(self, config: STTConfig | None = None, *, transcriber: Transcriber | None = None) -> None:
        self._config = config or STTConfig()
        self._transcriber = transcriber
        self._model = None
        self._task: asyncio.Task | None = None

        self.language: str | None = None
        self.continuous: bool = True
        self.interim_results: bool = True

        self.on_start: Callable[[], None] = _noop
        self.on_result: Callable[[Sequence[RecognitionResult]], None] = _noop
        self.on_error: Callable[[str], None] = _noop
        self.on_end: Callable[[], None] = _noop

    @property
    def config(self) -> STTConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, stream: AudioStream | None) -> None:
        if self.running:
            raise RuntimeError("recognition has already started")
        self._task = asyncio.get_running_loop().create_task(self._run(stream))

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from faster_whisper import WhisperModel  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "faster-whisper is required for local recognition. Install with: pip install -e '.[voice]'"
            ) from e

        device = self._config.device
        if device == "auto":
            # Be conservative: prefer CPU unless user explicitly requests CUDA.
            device = "cpu"

        kwargs = {}
        if self._config.compute_type:
            kwargs["compute_type"] = self._config.compute_type

        self._model = WhisperModel(self._config.model_size, device=device, **kwargs)
        return self._model

    def _transcribe_sync(self, audio: np.ndarray, language: str | None) -> str:
        if self._transcriber is not None:
            return self._transcriber(audio, language)
        model = self._load_model()
        segments, _info = model.transcribe(audio, language=language, vad_filter=self._config.vad_filter)
        return " ".join(s.text.strip() for s in segments if s.text and s.text.strip()).strip()

    async def _transcribe(self, blocks: list[np.ndarray]) -> str:
        audio = np.concatenate(blocks) if blocks else np.zeros(0, dtype=np.float32)
        return await asyncio.to_thread(self._transcribe_sync, audio, self.language)

    async def _run(self, stream: AudioStream | None) -> None:
        try:
            if stream is None:
                self.on_error("audio-capture")
                return
            self.on_start()
            await self._listen(stream)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Recognition loop failed: {e}", exc_info=True)
            self.on_error("engine-error")
        finally:
            self.on_end()

    async def _listen(self, stream: AudioStream) -> None:
        cfg = self._config
        sr = cfg.sample_rate
        silence_limit = int(cfg.silence_s * sr)
        max_utterance = int(cfg.max_utterance_s * sr)
        interim_every = int(cfg.interim_interval_s * sr)
        no_speech_limit = int(cfg.no_speech_timeout_s * sr)

        blocks: list[np.ndarray] = []
        in_utterance = False
        utterance_len = 0
        silent_run = 0
        since_interim = 0
        idle = 0

        async for chunk in stream.chunks():
            pcm = resample_pcm16(chunk, stream.sample_rate, sr)
            block = pcm.astype(np.float32) / 32768.0
            if block.size == 0:
                continue
            voiced = float(np.sqrt(np.mean(np.square(block)))) >= cfg.speech_rms

            if not in_utterance:
                if not voiced:
                    idle += block.size
                    if idle >= no_speech_limit:
                        # Session times out the way an always-on recognizer does.
                        self.on_error("no-speech")
                        return
                    continue
                in_utterance = True
                blocks, utterance_len, silent_run, since_interim, idle = [], 0, 0, 0, 0

            blocks.append(block)
            utterance_len += block.size
            since_interim += block.size
            silent_run = 0 if voiced else silent_run + block.size

            if silent_run >= silence_limit or utterance_len >= max_utterance:
                text = await self._transcribe(blocks)
                if text:
                    self.on_result([RecognitionResult(text=text, is_final=True)])
                in_utterance = False
                blocks = []
            elif self.interim_results and since_interim >= interim_every:
                since_interim = 0
                text = await self._transcribe(blocks)
                if text:
                    self.on_result([RecognitionResult(text=text, is_final=False)])

        if in_utterance and blocks:
            text = await self._transcribe(blocks)
            if text:
                self.on_result([RecognitionResult(text=text, is_final=True)])
