"""
Pydantic schemas shared across the pipeline.

Defines transcript entries, conversation turns, tool calls, source
selectors and the integration settings pushed by tool calls.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


MediaMode = Literal["youtube", "zoom", "audio"]


class ConnectionState(str, Enum):
    """Lifecycle of a provider session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    ERRORED = "errored"
    CLOSED = "closed"


class SourceKind(str, Enum):
    """Logical audio source requested by the caller."""

    SYSTEM = "system"
    DEVICE = "device"
    MICROPHONE = "microphone"


class TurnRole(str, Enum):
    """Role of the speaker in a conversation turn."""

    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class AudioSourceSelector(BaseModel):
    """Which audio source to capture."""

    kind: SourceKind = Field(default=SourceKind.MICROPHONE, description="Source kind")
    device_id: str | None = Field(default=None, description="Device identifier for DEVICE sources")

    @classmethod
    def parse(cls, value: str | None) -> "AudioSourceSelector":
        """
        Build a selector from the user-facing source string.

        ``"system"`` selects system audio, ``"default"``/``"microphone"`` (or
        nothing) the default microphone, anything else a device identifier.
        """
        raw = (value or "").strip()
        if raw.lower() == "system":
            return cls(kind=SourceKind.SYSTEM)
        if raw.lower() in ("", "default", "microphone", "mic"):
            return cls(kind=SourceKind.MICROPHONE)
        return cls(kind=SourceKind.DEVICE, device_id=raw)

    def __str__(self) -> str:
        if self.kind == SourceKind.DEVICE:
            return f"device:{self.device_id}"
        return self.kind.value


class TranscriptEvent(BaseModel):
    """A recognition result surfaced by a provider."""

    text: str = Field(..., description="Recognized text")
    is_final: bool = Field(default=False, description="Provider asserts the text will not change")
    speaker: str | None = Field(default=None, description="Diarization tag, if any")


class TranscriptEntry(BaseModel):
    """One line of the consolidated transcript log."""

    id: UUID = Field(default_factory=uuid4, description="Stable identifier of the log slot")
    text: str = Field(..., description="Transcript text")
    is_final: bool = Field(default=False, description="Whether the entry is closed")
    timestamp_display: str = Field(..., description="Local wall-clock time the entry was written")
    language: str = Field(default="auto", description="Language the provider was asked for")
    speaker: str = Field(default="", description="Speaker label")
    topic: str | None = Field(default=None, description="Topic category assigned at finalization")


class ToolCall(BaseModel):
    """A function invocation requested by the AI session."""

    id: str = Field(default_factory=lambda: uuid4().hex, description="Call identifier")
    name: str = Field(..., description="Tool name")
    args: dict[str, Any] = Field(default_factory=dict, description="Call arguments")


class ToolResponse(BaseModel):
    """The result returned to the AI session for one tool call."""

    id: str = Field(..., description="Identifier of the call being answered")
    name: str = Field(..., description="Tool name")
    response: dict[str, Any] = Field(default_factory=dict, description="Result payload")


class ConversationTurn(BaseModel):
    """A single turn of the AI conversation."""

    role: TurnRole = Field(..., description="Role of the speaker")
    text: str = Field(default="", description="Turn text")
    is_final: bool = Field(default=False, description="Whether the turn is complete")
    tool_use_request: list[ToolCall] | None = Field(default=None, description="Tool calls requested")
    tool_use_response: list[ToolResponse] | None = Field(default=None, description="Tool results returned")
    timestamp: datetime = Field(default_factory=_now_utc, description="When the turn started")


class MeetingConfig(BaseModel):
    """Video meeting the assistant should join."""

    meeting_id: str = Field(default="", description="Numeric meeting identifier")
    passcode: str = Field(default="", description="Meeting passcode")
    user_name: str = Field(default="AI Assistant", description="Display name used when joining")
    join_url: str = Field(default="", description="Join link, if one was given")
