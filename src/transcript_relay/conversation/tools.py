"""
Tool declarations and the integration settings they act on.

Tool calls coming back from the AI session are one-way pushes into
``IntegrationSettings``: the bridge updates the meeting configuration and
requests a media-mode switch, and whoever renders the integration observes
the ``changed`` event.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from transcript_relay.events import EventEmitter, Subscription
from transcript_relay.schemas import MediaMode, MeetingConfig

logger = logging.getLogger(__name__)

_MEETING_ID_RE = re.compile(r"(?:/j/|/wc/|/my/)(\d+)")
_PASSCODE_RE = re.compile(r"[?&]pwd=([^#&]+)")


class ToolDeclaration(BaseModel):
    """A function the AI session may call."""

    name: str = Field(..., description="Function name")
    description: str = Field(default="", description="What the function does")
    parameters: dict[str, Any] = Field(default_factory=dict, description="JSON-schema style parameters")
    is_enabled: bool = Field(default=True, description="Whether the tool is offered to the session")


JOIN_MEETING_TOOL = ToolDeclaration(
    name="join_meeting",
    description="Joins a Zoom meeting using the provided meeting ID and passcode.",
    parameters={
        "type": "OBJECT",
        "properties": {
            "meetingId": {"type": "STRING", "description": "The Zoom Meeting ID (numbers only)."},
            "passcode": {"type": "STRING", "description": "The passcode for the meeting."},
            "userName": {"type": "STRING", "description": "The display name to use when joining."},
        },
        "required": ["meetingId"],
    },
)

DEFAULT_TOOLS: tuple[ToolDeclaration, ...] = (JOIN_MEETING_TOOL,)


def parse_meeting_link(url: str) -> tuple[str, str]:
    """Extract (meeting_id, passcode) from a meeting join link; missing parts are empty."""
    meeting_id = ""
    passcode = ""
    id_match = _MEETING_ID_RE.search(url)
    if id_match:
        meeting_id = id_match.group(1)
    pwd_match = _PASSCODE_RE.search(url)
    if pwd_match:
        passcode = pwd_match.group(1)
    return meeting_id, passcode


class IntegrationSettings:
    """Externally visible media integration state."""

    def __init__(self, *, media_mode: MediaMode = "youtube", meeting: MeetingConfig | None = None) -> None:
        self._media_mode: MediaMode = media_mode
        self._meeting = meeting or MeetingConfig()
        self._events = EventEmitter(("changed",))

    @property
    def media_mode(self) -> MediaMode:
        return self._media_mode

    @property
    def meeting(self) -> MeetingConfig:
        return self._meeting

    def subscribe(self, handler: Callable[["IntegrationSettings"], None]) -> Subscription:
        return self._events.subscribe("changed", handler)

    def set_media_mode(self, mode: MediaMode) -> None:
        if mode == self._media_mode:
            return
        logger.info(f"Media integration switched: {self._media_mode} -> {mode}")
        self._media_mode = mode
        self._events.emit("changed", self)

    def update_meeting(self, **fields: Any) -> MeetingConfig:
        """Merge non-empty fields into the meeting config."""
        updates = {k: v for k, v in fields.items() if v not in (None, "")}
        join_url = updates.get("join_url")
        if join_url:
            meeting_id, passcode = parse_meeting_link(join_url)
            updates.setdefault("meeting_id", meeting_id or self._meeting.meeting_id)
            updates.setdefault("passcode", passcode or self._meeting.passcode)
        self._meeting = self._meeting.model_copy(update=updates)
        self._events.emit("changed", self)
        return self._meeting

    def join_meeting(self, meeting_id: str, *, passcode: str = "", user_name: str = "") -> MeetingConfig:
        """Point the integration at a meeting and switch to the meeting view."""
        meeting = self.update_meeting(meeting_id=meeting_id, passcode=passcode, user_name=user_name)
        self.set_media_mode("zoom")
        return meeting
