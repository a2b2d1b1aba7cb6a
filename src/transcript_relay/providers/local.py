"""In-process continuous recognizer provider.

The wrapped engine ends its session on its own (silence timeout) even while
listening is still wanted. The adapter restarts it on every ``end`` unless
``disconnect()`` raised the stop sentinel, so the restart decision never
depends on state read from outside the adapter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from transcript_relay.audio.audio_io import AudioStream
from transcript_relay.errors import ErrorKind, ProviderError
from transcript_relay.providers.base import ProviderAdapter
from transcript_relay.providers.whisper_engine import RecognitionResult
from transcript_relay.schemas import ConnectionState, TranscriptEvent

logger = logging.getLogger(__name__)

# Engine error codes.
FATAL_ERRORS: dict[str, ErrorKind] = {
    "not-allowed": ErrorKind.PERMISSION_DENIED,
    "service-not-allowed": ErrorKind.PERMISSION_DENIED,
    "audio-capture": ErrorKind.DEVICE_UNAVAILABLE,
}
IGNORED_ERRORS = frozenset({"no-speech", "aborted"})


class RecognitionEngine(Protocol):
    language: str | None
    continuous: bool
    interim_results: bool
    on_start: Callable[[], None]
    on_result: Callable[[Sequence[RecognitionResult]], None]
    on_error: Callable[[str], None]
    on_end: Callable[[], None]

    def start(self, stream: AudioStream | None) -> None: ...

    def stop(self) -> None: ...


@dataclass(frozen=True)
class RestartPolicy:
    # None means restart for as long as listening is requested.
    max_consecutive: int | None = None
    delay_s: float = 0.0


class LocalContinuousRecognizer(ProviderAdapter):
    """Always-on local recognition with auto-restart on spontaneous end."""

    name = "local"

    def __init__(
        self,
        engine: RecognitionEngine,
        *,
        restart_policy: RestartPolicy | None = None,
    ) -> None:
        super().__init__()
        self._engine = engine
        self._policy = restart_policy or RestartPolicy()
        self._stop_requested = True
        self._restarts = 0
        self._stream: AudioStream | None = None

    @property
    def restart_count(self) -> int:
        return self._restarts

    async def _start(
        self,
        session_id: int,
        sample_rate: int,
        language: str,
        stream: AudioStream | None,
    ) -> None:
        self._stop_requested = False
        self._restarts = 0
        self._stream = stream

        engine = self._engine
        engine.continuous = True
        engine.interim_results = True
        engine.language = None if language == "auto" else language
        engine.on_start = lambda: self._handle_start(session_id)
        engine.on_result = lambda results: self._handle_results(session_id, results)
        engine.on_error = lambda code: self._handle_error(session_id, code)
        engine.on_end = lambda: self._handle_end(session_id)

        try:
            engine.start(stream)
        except RuntimeError as e:
            self._stop_requested = True
            self._fail(session_id, ProviderError(ErrorKind.RECOGNIZER_FAILURE, f"Recognizer failed to start: {e}"))

    def _stop(self, *, graceful: bool) -> None:
        self._stop_requested = True
        try:
            self._engine.stop()
        except RuntimeError as e:
            logger.debug(f"[{self.name}] engine stop: {e}")
        return None

    def _handle_start(self, session_id: int) -> None:
        if self._state == ConnectionState.CONNECTING:
            self._opened(session_id)

    def _handle_results(self, session_id: int, results: Sequence[RecognitionResult]) -> None:
        self._restarts = 0
        interim = ""
        for result in results:
            if result.is_final:
                self._deliver(session_id, TranscriptEvent(text=result.text, is_final=True))
            else:
                interim += result.text
        if interim:
            self._deliver(session_id, TranscriptEvent(text=interim, is_final=False))

    def _handle_error(self, session_id: int, code: str) -> None:
        if not self._is_current(session_id):
            return
        if code in IGNORED_ERRORS:
            logger.debug(f"[{self.name}] ignoring recoverable engine condition '{code}'")
            return
        # Any surfaced error stops listening; the sentinel keeps a later end from restarting.
        self._stop_requested = True
        kind = FATAL_ERRORS.get(code, ErrorKind.RECOGNIZER_FAILURE)
        self._fail(session_id, ProviderError(kind, f"Speech recognition error: {code}", detail=code))

    def _handle_end(self, session_id: int) -> None:
        if self._stop_requested or not self._is_current(session_id):
            return
        if self._stream is not None and self._stream.ended:
            self._ended(session_id)
            return

        limit = self._policy.max_consecutive
        if limit is not None and self._restarts >= limit:
            self._stop_requested = True
            self._fail(
                session_id,
                ProviderError(ErrorKind.RECOGNIZER_FAILURE, f"Recognizer ended {self._restarts + 1} times in a row"),
            )
            return

        self._restarts += 1
        logger.debug(f"[{self.name}] session ended spontaneously; restart #{self._restarts}")
        loop = asyncio.get_running_loop()
        if self._policy.delay_s > 0:
            loop.call_later(self._policy.delay_s, self._restart, session_id)
        else:
            loop.call_soon(self._restart, session_id)

    def _restart(self, session_id: int) -> None:
        if self._stop_requested or not self._is_current(session_id):
            return
        try:
            self._engine.start(self._stream)
        except RuntimeError as e:
            logger.debug(f"[{self.name}] restart skipped: {e}")
