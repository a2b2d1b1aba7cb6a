"""
Runtime settings for the transcription relay.

Values come from environment variables or a local .env file; CLI flags in
``main`` default to them.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Streaming recognition endpoint (AssemblyAI realtime)
    assemblyai_api_key: str = Field(
        default="",
        description="Token passed to the streaming recognition endpoint",
    )
    streaming_endpoint: str = Field(
        default="wss://api.assemblyai.com/v2/realtime/ws",
        description="Websocket URL of the streaming recognition endpoint",
    )
    speaker_labels: bool = Field(
        default=True,
        description="Request speaker diarization from the streaming endpoint",
    )

    # Transcription
    transcription_provider: Literal["local", "remote"] = Field(
        default="remote",
        description="Which recognition provider to drive (local whisper loop or remote socket)",
    )
    transcription_language: str = Field(
        default="auto",
        description="Language tag for recognition, or 'auto' to let the provider decide",
    )
    sample_rate: int = Field(
        default=16000,
        description="Sample rate of the audio sent to the provider",
    )
    audio_source: str = Field(
        default="default",
        description="'system', 'default' (microphone) or a device identifier",
    )
    media_mode: Literal["youtube", "zoom", "audio"] = Field(
        default="youtube",
        description="Active media integration",
    )
    audio_file: str = Field(
        default="",
        description="WAV file used as the in-process media element in 'audio' mode",
    )

    # Local recognizer (faster-whisper)
    stt_model_size: str = Field(
        default="small",
        description="faster-whisper model size for the local recognizer",
    )
    stt_device: str = Field(
        default="cpu",
        description="Device for faster-whisper (cpu|cuda|auto)",
    )
    stt_compute_type: str | None = Field(
        default=None,
        description="faster-whisper compute type (e.g. int8, float16)",
    )

    # Conversation model (Ollama CLI)
    llm_model_name: str = Field(
        default="gpt-oss:20b",
        description="Model passed to `ollama run` for the conversation session",
    )
    llm_timeout: int = Field(
        default=120,
        description="Seconds before one `ollama run` call is abandoned",
    )
    llm_max_retries: int = Field(
        default=1,
        description="Extra attempts after a failed `ollama run` call",
    )
    system_prompt: str = Field(
        default=(
            "You are Eburon, a helpful AI assistant capable of joining Zoom meetings "
            "and interacting with media."
        ),
        description="System instruction for the conversation session",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, read once."""
    return Settings()
