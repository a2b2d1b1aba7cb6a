import asyncio

import pytest

from transcript_relay.audio.audio_io import AudioStream
from transcript_relay.errors import ErrorKind
from transcript_relay.providers import LocalContinuousRecognizer, RecognitionResult, RestartPolicy
from transcript_relay.schemas import ConnectionState


def _noop(*args) -> None:
    pass


class FakeEngine:
    """Stands in for the recognition engine; tests fire its callbacks by hand."""

    def __init__(self, *, fail_start: bool = False) -> None:
        self.language = "unset"
        self.continuous = False
        self.interim_results = False
        self.on_start = _noop
        self.on_result = _noop
        self.on_error = _noop
        self.on_end = _noop
        self.fail_start = fail_start
        self.running = False
        self.starts = 0
        self.stops = 0

    def start(self, stream) -> None:
        if self.fail_start:
            raise RuntimeError("microphone busy")
        if self.running:
            raise RuntimeError("recognition has already started")
        self.running = True
        self.starts += 1

    def stop(self) -> None:
        self.running = False
        self.stops += 1

    def end(self) -> None:
        self.running = False
        self.on_end()


class Recorder:
    def __init__(self, provider) -> None:
        self.events: list[str] = []
        self.errors = []
        self.transcripts: list[tuple[str, bool]] = []
        provider.subscribe("open", lambda: self.events.append("open"))
        provider.subscribe("close", lambda: self.events.append("close"))
        provider.subscribe("error", self._error)
        provider.subscribe("transcript", lambda e: self.transcripts.append((e.text, e.is_final)))

    def _error(self, error) -> None:
        self.events.append("error")
        self.errors.append(error)


async def _open(provider: LocalContinuousRecognizer, engine: FakeEngine, **kwargs) -> None:
    await provider.connect(**kwargs)
    engine.on_start()


@pytest.mark.asyncio
async def test_connect_configures_engine_and_opens_on_start() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)

    await provider.connect(language="en-US")
    assert provider.state == ConnectionState.CONNECTING
    assert engine.continuous is True
    assert engine.interim_results is True
    assert engine.language == "en-US"

    engine.on_start()
    assert provider.state == ConnectionState.OPEN
    assert rec.events == ["open"]


@pytest.mark.asyncio
async def test_auto_language_leaves_engine_language_unset() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    await provider.connect(language="auto")
    assert engine.language is None


@pytest.mark.asyncio
async def test_second_connect_is_a_no_op() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    await _open(provider, engine)
    session = provider.session_id

    await provider.connect()

    assert engine.starts == 1
    assert provider.session_id == session


@pytest.mark.asyncio
async def test_results_deliver_finals_and_one_combined_interim() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)

    engine.on_result(
        [
            RecognitionResult(text="hello", is_final=True),
            RecognitionResult(text="wor", is_final=False),
            RecognitionResult(text="ld", is_final=False),
        ]
    )

    assert rec.transcripts == [("hello", True), ("world", False)]


@pytest.mark.asyncio
async def test_not_allowed_is_fatal_and_never_restarts() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)

    engine.on_error("not-allowed")
    engine.end()
    await asyncio.sleep(0.01)

    assert rec.errors[0].kind == ErrorKind.PERMISSION_DENIED
    assert provider.is_active is False
    assert provider.state == ConnectionState.CLOSED
    assert engine.starts == 1
    assert provider.restart_count == 0


@pytest.mark.asyncio
async def test_audio_capture_maps_to_device_unavailable() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)

    engine.on_error("audio-capture")

    assert rec.errors[0].kind == ErrorKind.DEVICE_UNAVAILABLE
    assert rec.errors[0].fatal is True


@pytest.mark.asyncio
async def test_unknown_engine_error_stops_listening() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)

    engine.on_error("network")

    assert rec.errors[0].kind == ErrorKind.RECOGNIZER_FAILURE
    assert provider.is_active is False


@pytest.mark.asyncio
async def test_no_speech_is_ignored_and_spontaneous_end_restarts() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)

    engine.on_error("no-speech")
    engine.end()
    await asyncio.sleep(0.01)

    assert rec.errors == []
    assert provider.state == ConnectionState.OPEN
    assert engine.starts == 2
    assert provider.restart_count == 1

    # A result resets the consecutive-restart counter.
    engine.on_result([RecognitionResult(text="back again", is_final=True)])
    assert provider.restart_count == 0


@pytest.mark.asyncio
async def test_disconnect_suppresses_restart_and_late_results() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)

    provider.disconnect()
    engine.end()
    engine.on_result([RecognitionResult(text="too late", is_final=True)])
    await asyncio.sleep(0.01)

    assert engine.stops == 1
    assert engine.starts == 1
    assert rec.transcripts == []
    assert rec.events == ["open", "close"]
    assert provider.state == ConnectionState.CLOSED

    # Idempotent.
    provider.disconnect()
    assert rec.events == ["open", "close"]


@pytest.mark.asyncio
async def test_callbacks_from_a_previous_session_are_discarded() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    await _open(provider, engine)
    stale_result = engine.on_result
    stale_error = engine.on_error

    provider.disconnect()
    await _open(provider, engine)

    stale_result([RecognitionResult(text="old words", is_final=True)])
    stale_error("not-allowed")

    assert rec.transcripts == []
    assert rec.errors == []
    assert provider.state == ConnectionState.OPEN


@pytest.mark.asyncio
async def test_restart_limit_surfaces_recognizer_failure() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine, restart_policy=RestartPolicy(max_consecutive=2))
    rec = Recorder(provider)
    await _open(provider, engine)

    for _ in range(3):
        engine.end()
        await asyncio.sleep(0.01)

    assert engine.starts == 3
    assert [e.kind for e in rec.errors] == [ErrorKind.RECOGNIZER_FAILURE]
    assert provider.is_active is False


@pytest.mark.asyncio
async def test_end_after_stream_finished_closes_instead_of_restarting() -> None:
    engine = FakeEngine()
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)
    stream = AudioStream()
    await _open(provider, engine, stream=stream)

    stream.stop()
    engine.end()
    await asyncio.sleep(0.01)

    assert engine.starts == 1
    assert rec.events == ["open", "close"]
    assert rec.errors == []


@pytest.mark.asyncio
async def test_engine_start_failure_is_reported_as_error() -> None:
    engine = FakeEngine(fail_start=True)
    provider = LocalContinuousRecognizer(engine)
    rec = Recorder(provider)

    await provider.connect()

    assert rec.events == ["error", "close"]
    assert rec.errors[0].kind == ErrorKind.RECOGNIZER_FAILURE
