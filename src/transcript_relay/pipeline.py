"""
Transcription pipeline.

Owns the one live ``StreamSession`` (audio stream + provider + event
subscriptions) and wires provider output into the transcript consolidator
and, for final utterances, the conversation bridge:

    AudioSourceResolver -> ProviderAdapter -> TranscriptConsolidator -> ConversationBridge

All state is reachable through ``status()``; nothing is kept in module
globals.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from transcript_relay.audio.audio_io import AudioStream
from transcript_relay.audio.source_resolver import AudioSourceResolver
from transcript_relay.config import Settings, get_settings
from transcript_relay.conversation.bridge import ConversationBridge
from transcript_relay.errors import AudioSourceError, ErrorKind, ProviderError
from transcript_relay.events import Subscription
from transcript_relay.providers.base import ProviderAdapter
from transcript_relay.providers.local import LocalContinuousRecognizer
from transcript_relay.providers.remote import RemoteStreamingClient
from transcript_relay.providers.whisper_engine import STTConfig, WhisperRecognitionEngine
from transcript_relay.schemas import AudioSourceSelector, ConnectionState, MediaMode, TranscriptEvent
from transcript_relay.transcript.consolidator import TranscriptConsolidator, label_speaker

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], ProviderAdapter]


class PipelineStatus(BaseModel):
    """Snapshot of the pipeline for display."""

    listening: bool = Field(default=False, description="Whether a stream session is live")
    provider: str | None = Field(default=None, description="Name of the active or last provider")
    connection_state: ConnectionState = Field(default=ConnectionState.IDLE, description="Provider state")
    audio_source: str | None = Field(default=None, description="Selector of the active source")
    language: str | None = Field(default=None, description="Recognition language of the active session")
    session_id: int = Field(default=0, description="Pipeline session counter")
    last_error: str | None = Field(default=None, description="Message of the last surfaced error")
    error_kind: ErrorKind | None = Field(default=None, description="Kind of the last surfaced error")


@dataclass
class StreamSession:
    """One live recording: created on start, destroyed on stop or fatal error."""

    session_id: int
    provider: ProviderAdapter
    stream: AudioStream
    selector: AudioSourceSelector
    language: str
    subscriptions: list[Subscription] = field(default_factory=list)

    def release(self) -> None:
        for sub in self.subscriptions:
            sub.cancel()
        self.subscriptions = []
        self.stream.stop()


def build_provider(kind: str, settings: Settings | None = None) -> ProviderAdapter:
    """Create a provider by name from settings."""
    settings = settings or get_settings()
    if kind == "local":
        engine = WhisperRecognitionEngine(
            STTConfig(
                model_size=settings.stt_model_size,
                device=settings.stt_device,
                compute_type=settings.stt_compute_type,
            )
        )
        return LocalContinuousRecognizer(engine)
    if kind == "remote":
        if not settings.assemblyai_api_key:
            logger.warning("ASSEMBLYAI_API_KEY is not set; the streaming endpoint will reject the session")
        return RemoteStreamingClient(
            token=settings.assemblyai_api_key,
            endpoint=settings.streaming_endpoint,
            speaker_labels=settings.speaker_labels,
        )
    raise ValueError(f"Unknown provider kind: {kind!r} (expected 'local' or 'remote')")


class TranscriptionPipeline:
    def __init__(
        self,
        resolver: AudioSourceResolver,
        provider_factory: ProviderFactory = build_provider,
        *,
        consolidator: TranscriptConsolidator | None = None,
        bridge: ConversationBridge | None = None,
        sample_rate: int = 16000,
    ) -> None:
        self._resolver = resolver
        self._provider_factory = provider_factory
        self._consolidator = consolidator or TranscriptConsolidator()
        self._bridge = bridge
        self._sample_rate = sample_rate

        self._session: StreamSession | None = None
        self._session_counter = 0
        self._last_provider: ProviderAdapter | None = None
        self._last_error: str | None = None
        self._error_kind: ErrorKind | None = None

        # Remembered so switch() can change one thing at a time.
        self._selector = AudioSourceSelector()
        self._provider_kind = "remote"
        self._language = "auto"
        self._media_mode: MediaMode | None = None

    @property
    def consolidator(self) -> TranscriptConsolidator:
        return self._consolidator

    @property
    def bridge(self) -> ConversationBridge | None:
        return self._bridge

    @property
    def listening(self) -> bool:
        return self._session is not None

    def status(self) -> PipelineStatus:
        session = self._session
        provider = session.provider if session is not None else self._last_provider
        return PipelineStatus(
            listening=session is not None,
            provider=provider.name if provider is not None else None,
            connection_state=provider.state if provider is not None else ConnectionState.IDLE,
            audio_source=str(session.selector) if session is not None else None,
            language=session.language if session is not None else None,
            session_id=self._session_counter,
            last_error=self._last_error,
            error_kind=self._error_kind,
        )

    async def start(
        self,
        selector: AudioSourceSelector,
        provider_kind: str = "remote",
        language: str = "auto",
        *,
        media_mode: MediaMode | None = None,
    ) -> PipelineStatus:
        """
        Acquire the source and connect a provider to it.

        Acquisition failures are recorded on the status rather than raised;
        an unknown ``provider_kind`` raises ``ValueError``.
        """
        if self._session is not None:
            logger.warning("Pipeline already listening; stop it or use switch()")
            return self.status()

        self._selector = selector
        self._provider_kind = provider_kind
        self._language = language
        self._media_mode = media_mode
        self._last_error = None
        self._error_kind = None

        provider = self._provider_factory(provider_kind)

        try:
            stream = await self._resolver.resolve(selector, media_mode=media_mode)
        except AudioSourceError as e:
            logger.error(f"Could not acquire audio source {selector}: {e}")
            self._last_error = str(e)
            self._error_kind = e.kind
            return self.status()

        self._session_counter += 1
        session = StreamSession(
            session_id=self._session_counter,
            provider=provider,
            stream=stream,
            selector=selector,
            language=language,
        )
        session.subscriptions = [
            provider.subscribe("open", lambda: self._on_open(session)),
            provider.subscribe("transcript", lambda event: self._on_transcript(session, event)),
            provider.subscribe("error", lambda error: self._on_error(session, error)),
            provider.subscribe("close", lambda: self._on_close(session)),
        ]
        self._session = session
        self._last_provider = provider

        logger.info(f"Starting session {session.session_id}: source={selector} provider={provider.name}")
        await provider.connect(self._sample_rate, language, stream)
        return self.status()

    async def stop(self) -> PipelineStatus:
        """Stop listening and wait for the provider to reach its terminal state."""
        session = self._session
        if session is None:
            return self.status()
        self._session = None
        logger.info(f"Stopping session {session.session_id}")
        session.provider.disconnect()
        session.release()
        await session.provider.wait_closed()
        return self.status()

    async def switch(
        self,
        selector: AudioSourceSelector | None = None,
        provider_kind: str | None = None,
        language: str | None = None,
        *,
        media_mode: MediaMode | None = None,
    ) -> PipelineStatus:
        """Restart with a new source, provider or language; omitted values carry over."""
        await self.stop()
        return await self.start(
            selector or self._selector,
            provider_kind or self._provider_kind,
            language or self._language,
            media_mode=media_mode or self._media_mode,
        )

    def clear_transcript(self) -> None:
        self._consolidator.clear()
        if self._bridge is not None:
            self._bridge.clear_turns()

    def _is_live(self, session: StreamSession) -> bool:
        return self._session is session

    def _on_open(self, session: StreamSession) -> None:
        if self._is_live(session):
            logger.info(f"Listening (session {session.session_id}, provider={session.provider.name})")

    def _on_transcript(self, session: StreamSession, event: TranscriptEvent) -> None:
        if not self._is_live(session):
            logger.debug(f"Dropping transcript from stale session {session.session_id}")
            return
        speaker = label_speaker(event.speaker, session.selector)
        self._consolidator.ingest(event.text, event.is_final, language=session.language, speaker=speaker)
        if event.is_final and self._bridge is not None:
            self._bridge.forward(event.text)

    def _on_error(self, session: StreamSession, error: ProviderError) -> None:
        if not self._is_live(session):
            return
        self._last_error = str(error)
        self._error_kind = error.kind
        self._end_session(session)

    def _on_close(self, session: StreamSession) -> None:
        if not self._is_live(session):
            return
        logger.info(f"Provider closed session {session.session_id}")
        self._end_session(session)

    def _end_session(self, session: StreamSession) -> None:
        self._session = None
        session.release()
