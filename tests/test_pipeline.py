import asyncio

import pytest

from transcript_relay.audio import AudioSourceResolver, AudioStream, MediaAccessError, MediaTrack
from transcript_relay.config import Settings
from transcript_relay.conversation import SESSION_EVENTS, ConversationBridge
from transcript_relay.errors import ErrorKind
from transcript_relay.events import EventEmitter
from transcript_relay.pipeline import TranscriptionPipeline, build_provider
from transcript_relay.providers import LocalContinuousRecognizer, RecognitionResult, RemoteStreamingClient
from transcript_relay.schemas import AudioSourceSelector, ConnectionState, SourceKind, TurnRole


def _noop(*args) -> None:
    pass


class FakeEngine:
    def __init__(self) -> None:
        self.language = None
        self.continuous = False
        self.interim_results = False
        self.on_start = _noop
        self.on_result = _noop
        self.on_error = _noop
        self.on_end = _noop
        self.started_with = []
        self.stopped = False

    def start(self, stream) -> None:
        self.started_with.append(stream)

    def stop(self) -> None:
        self.stopped = True

    def final(self, text: str) -> None:
        self.on_result([RecognitionResult(text=text, is_final=True)])

    def partial(self, text: str) -> None:
        self.on_result([RecognitionResult(text=text, is_final=False)])


class FakeProviderFactory:
    def __init__(self) -> None:
        self.kinds: list[str] = []
        self.engines: list[FakeEngine] = []
        self.providers: list[LocalContinuousRecognizer] = []

    def __call__(self, kind: str) -> LocalContinuousRecognizer:
        engine = FakeEngine()
        provider = LocalContinuousRecognizer(engine)
        self.kinds.append(kind)
        self.engines.append(engine)
        self.providers.append(provider)
        return provider


class FakeMediaDevices:
    def __init__(self) -> None:
        self.mic_error: MediaAccessError | None = None
        self.streams: list[AudioStream] = []

    async def enumerate_audio_inputs(self):
        return []

    async def get_display_media(self, *, audio: bool = True, video: bool = True) -> AudioStream:
        stream = AudioStream([MediaTrack("audio", label="tab audio")])
        self.streams.append(stream)
        return stream

    async def get_user_media(self, *, device_id: str | None = None) -> AudioStream:
        if self.mic_error is not None:
            raise self.mic_error
        stream = AudioStream([MediaTrack("audio", label=device_id or "default")])
        self.streams.append(stream)
        return stream


class FakeSession:
    def __init__(self) -> None:
        self._events = EventEmitter(SESSION_EVENTS)
        self.connected = True
        self.sent: list[str] = []

    def send(self, text: str) -> None:
        self.sent.append(text)

    def send_tool_response(self, responses) -> None:
        pass

    def subscribe(self, event, handler):
        return self._events.subscribe(event, handler)

    def emit(self, event, *args) -> None:
        self._events.emit(event, *args)


MIC = AudioSourceSelector(kind=SourceKind.MICROPHONE)


def _pipeline() -> tuple[TranscriptionPipeline, FakeProviderFactory, FakeMediaDevices, FakeSession]:
    devices = FakeMediaDevices()
    factory = FakeProviderFactory()
    session = FakeSession()
    pipeline = TranscriptionPipeline(
        AudioSourceResolver(devices),
        factory,
        bridge=ConversationBridge(session),
    )
    return pipeline, factory, devices, session


@pytest.mark.asyncio
async def test_final_transcripts_are_logged_and_forwarded() -> None:
    pipeline, factory, devices, session = _pipeline()

    status = await pipeline.start(MIC, "local", "en")
    engine = factory.engines[0]
    engine.on_start()

    assert status.listening is True
    assert pipeline.status().connection_state == ConnectionState.OPEN
    assert engine.started_with == [devices.streams[0]]

    engine.partial("hello")
    assert session.sent == []

    engine.final("hello there")

    entries = pipeline.consolidator.entries
    assert len(entries) == 1
    assert entries[0].text == "hello there"
    assert entries[0].is_final is True
    assert entries[0].speaker == "You"
    assert entries[0].language == "en"
    assert entries[0].topic == "Casual"
    assert session.sent == ["hello there"]


@pytest.mark.asyncio
async def test_system_audio_lines_are_labelled_system() -> None:
    pipeline, factory, devices, session = _pipeline()

    await pipeline.start(AudioSourceSelector(kind=SourceKind.SYSTEM), "local")
    factory.engines[0].on_start()
    factory.engines[0].final("welcome to the stream")

    assert pipeline.consolidator.entries[0].speaker == "System"
    assert pipeline.status().audio_source == "system"


@pytest.mark.asyncio
async def test_provider_error_stops_session_and_keeps_logs() -> None:
    pipeline, factory, devices, session = _pipeline()
    await pipeline.start(MIC, "local")
    engine = factory.engines[0]
    engine.on_start()
    engine.final("first line")
    session.emit("turn_update", "Got it.", True)

    engine.on_error("not-allowed")

    status = pipeline.status()
    assert status.listening is False
    assert status.error_kind == ErrorKind.PERMISSION_DENIED
    assert status.last_error
    assert status.connection_state == ConnectionState.CLOSED
    assert devices.streams[0].ended is True
    assert [e.text for e in pipeline.consolidator.entries] == ["first line"]
    assert [t.role for t in pipeline.bridge.turns] == [TurnRole.USER, TurnRole.AGENT]


@pytest.mark.asyncio
async def test_acquisition_failure_is_recorded_not_raised() -> None:
    pipeline, factory, devices, session = _pipeline()
    devices.mic_error = MediaAccessError("NotAllowedError", "denied")

    status = await pipeline.start(MIC, "local")

    assert status.listening is False
    assert status.error_kind == ErrorKind.PERMISSION_DENIED
    assert "denied" in status.last_error


@pytest.mark.asyncio
async def test_stop_disconnects_and_releases_stream() -> None:
    pipeline, factory, devices, session = _pipeline()
    await pipeline.start(MIC, "local")
    engine = factory.engines[0]
    engine.on_start()
    late_result = engine.on_result

    status = await pipeline.stop()

    assert status.listening is False
    assert engine.stopped is True
    assert factory.providers[0].state == ConnectionState.CLOSED
    assert devices.streams[0].ended is True

    late_result([RecognitionResult(text="after stop", is_final=True)])
    assert pipeline.consolidator.entries == []
    assert status.last_error is None


@pytest.mark.asyncio
async def test_second_start_while_listening_is_ignored() -> None:
    pipeline, factory, devices, session = _pipeline()
    await pipeline.start(MIC, "local")
    await pipeline.start(MIC, "remote")
    assert factory.kinds == ["local"]


@pytest.mark.asyncio
async def test_switch_waits_for_old_provider_and_drops_its_events() -> None:
    pipeline, factory, devices, session = _pipeline()
    await pipeline.start(MIC, "local", "en")
    old_engine = factory.engines[0]
    old_engine.on_start()
    stale_result = old_engine.on_result

    status = await pipeline.switch(provider_kind="remote")

    assert factory.kinds == ["local", "remote"]
    assert factory.providers[0].state == ConnectionState.CLOSED
    assert status.language == "en"
    assert status.session_id == 2

    new_engine = factory.engines[1]
    new_engine.on_start()
    stale_result([RecognitionResult(text="old provider", is_final=True)])
    new_engine.final("new provider")

    assert [e.text for e in pipeline.consolidator.entries] == ["new provider"]


@pytest.mark.asyncio
async def test_clear_transcript_resets_both_logs_without_stopping() -> None:
    pipeline, factory, devices, session = _pipeline()
    await pipeline.start(MIC, "local")
    factory.engines[0].on_start()
    factory.engines[0].final("something")

    pipeline.clear_transcript()

    assert pipeline.consolidator.entries == []
    assert pipeline.bridge.turns == []
    assert pipeline.listening is True


@pytest.mark.asyncio
async def test_stream_ending_closes_session_cleanly() -> None:
    pipeline, factory, devices, session = _pipeline()
    await pipeline.start(MIC, "local")
    engine = factory.engines[0]
    engine.on_start()

    devices.streams[0].stop()
    engine.on_end()
    await asyncio.sleep(0.01)

    status = pipeline.status()
    assert status.listening is False
    assert status.last_error is None


def test_build_provider_by_kind() -> None:
    settings = Settings(assemblyai_api_key="key", transcription_provider="remote")
    assert isinstance(build_provider("remote", settings), RemoteStreamingClient)
    assert isinstance(build_provider("local", settings), LocalContinuousRecognizer)
    with pytest.raises(ValueError):
        build_provider("carrier-pigeon", settings)
