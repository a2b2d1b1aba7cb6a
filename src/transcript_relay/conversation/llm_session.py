"""
AI conversation session backed by the local Ollama client.

Keeps the running message history, answers each injected utterance with one
model reply, and recognises tool calls the model expresses as JSON:

    {"tool_call": {"name": "join_meeting", "args": {"meetingId": "123"}}}
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from collections.abc import Callable, Iterable
from typing import Any

from transcript_relay.conversation.session import SESSION_EVENTS
from transcript_relay.conversation.tools import DEFAULT_TOOLS, ToolDeclaration
from transcript_relay.events import EventEmitter, Subscription
from transcript_relay.models.json_repair import extract_json_object
from transcript_relay.models.llm_client import LLMClientBase, Message
from transcript_relay.schemas import ToolCall, ToolResponse

logger = logging.getLogger(__name__)

TOOL_INSTRUCTIONS = """You can call these tools:
{tools}

To call a tool, reply with JSON only, exactly in this shape:
{{"tool_call": {{"name": "<tool name>", "args": {{...}}}}}}
Otherwise reply in plain conversational text."""


def parse_tool_calls(content: str) -> list[ToolCall]:
    """Return the tool calls a model reply asks for; empty for plain text."""
    if "tool_call" not in content:
        return []
    payload = extract_json_object(content)
    if not payload:
        return []

    raw_calls = payload.get("tool_call") or payload.get("tool_calls") or []
    if isinstance(raw_calls, dict):
        raw_calls = [raw_calls]

    calls: list[ToolCall] = []
    for raw in raw_calls:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        args = raw.get("args") or raw.get("arguments") or {}
        if not isinstance(args, dict):
            args = {}
        calls.append(ToolCall(name=str(raw["name"]), args=args))
    return calls


class OllamaConversationSession:
    """Text-in, text-out AI session over ``ollama run``."""

    def __init__(
        self,
        llm_client: LLMClientBase,
        *,
        system_prompt: str = "",
        tools: Iterable[ToolDeclaration] = DEFAULT_TOOLS,
        temperature: float = 0.7,
    ) -> None:
        self._llm = llm_client
        self._tools = [tool for tool in tools if tool.is_enabled]
        self._temperature = temperature
        self._events = EventEmitter(SESSION_EVENTS)
        self._connected = False
        self._task: asyncio.Task | None = None
        self._followup = False
        self._history: list[Message] = [Message(role="system", content=self._system_text(system_prompt))]

    def _system_text(self, system_prompt: str) -> str:
        if not self._tools:
            return system_prompt
        listing = "\n".join(
            f"- {tool.name}: {tool.description} Parameters: {json.dumps(tool.parameters)}"
            for tool in self._tools
        )
        return f"{system_prompt}\n\n{TOOL_INSTRUCTIONS.format(tools=listing)}".strip()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def history(self) -> list[Message]:
        return self._history.copy()

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, event: str, handler: Callable[..., Any]) -> Subscription:
        return self._events.subscribe(event, handler)

    async def connect(self) -> None:
        if self._connected:
            return
        if shutil.which("ollama") is None:
            logger.warning("Ollama CLI not found on PATH; replies will fail until it is installed")
        self._connected = True
        logger.info("AI session open")
        self._events.emit("open")

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.info("AI session closed")
        self._events.emit("close")

    def send(self, text: str) -> None:
        if not self._connected:
            raise ConnectionError("AI session is not connected")
        self._history.append(Message(role="user", content=text))
        self._schedule()

    def send_tool_response(self, responses: list[ToolResponse]) -> None:
        if not self._connected:
            raise ConnectionError("AI session is not connected")
        for response in responses:
            self._history.append(
                Message(
                    role="tool",
                    content=json.dumps({"name": response.name, "id": response.id, "response": response.response}),
                )
            )
        self._schedule()

    def _schedule(self) -> None:
        if self.busy:
            # The running reply loop picks the new history up once it finishes.
            logger.debug("Reply already in progress; another round queued")
            self._followup = True
            return
        self._followup = False
        self._task = asyncio.get_running_loop().create_task(self._respond_loop())

    async def _respond_loop(self) -> None:
        while True:
            self._followup = False
            await self._respond()
            if not (self._connected and self._followup):
                return

    async def _respond(self) -> None:
        try:
            response = await self._llm.chat(self._history, temperature=self._temperature)
        except Exception as e:
            logger.error(f"AI reply raised: {e}", exc_info=True)
            if self._connected:
                self._events.emit("turn_complete")
            return
        if not self._connected:
            return

        if response.finish_reason == "error" or not response.content:
            logger.error(f"AI reply failed: {response.raw_response.get('error', 'empty response')}")
            self._events.emit("turn_complete")
            return

        self._history.append(Message(role="assistant", content=response.content))

        calls = parse_tool_calls(response.content)
        if calls:
            logger.info(f"AI requested tools: {[call.name for call in calls]}")
            self._events.emit("tool_call", calls)
            return

        self._events.emit("turn_update", response.content, True)
        self._events.emit("turn_complete")
