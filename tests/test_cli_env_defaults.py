import pytest

from transcript_relay.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_cli_defaults_come_from_environment(monkeypatch):
    monkeypatch.setenv("TRANSCRIPTION_PROVIDER", "local")
    monkeypatch.setenv("AUDIO_SOURCE", "system")
    monkeypatch.setenv("TRANSCRIPTION_LANGUAGE", "de")
    monkeypatch.setenv("MEDIA_MODE", "audio")
    monkeypatch.setenv("AUDIO_FILE", "/tmp/clip.wav")

    from transcript_relay.main import build_parser

    args = build_parser().parse_args([])
    assert args.provider == "local"
    assert args.source == "system"
    assert args.language == "de"
    assert args.media_mode == "audio"
    assert args.audio_file == "/tmp/clip.wav"
    assert args.no_ai is False
    assert args.list_devices is False


def test_cli_flags_override_environment(monkeypatch):
    monkeypatch.setenv("TRANSCRIPTION_PROVIDER", "local")

    from transcript_relay.main import build_parser

    args = build_parser().parse_args(["--provider", "remote", "--source", "2", "--no-ai"])
    assert args.provider == "remote"
    assert args.source == "2"
    assert args.no_ai is True


def test_settings_read_api_key_case_insensitively(monkeypatch):
    monkeypatch.setenv("assemblyai_api_key", "secret")
    settings = get_settings()
    assert settings.assemblyai_api_key == "secret"
    assert settings.sample_rate == 16000
