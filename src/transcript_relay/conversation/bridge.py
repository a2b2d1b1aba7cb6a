"""
Conversation bridge (glue layer).

Forwards finalized transcript text into the AI session with at most one
request in flight and at most one utterance waiting behind it, and records
every session exchange in the conversation turn log.

It intentionally does NOT interpret the conversation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from transcript_relay.conversation.session import AISession
from transcript_relay.conversation.tools import IntegrationSettings
from transcript_relay.conversation.turn_log import ConversationLog
from transcript_relay.events import Subscription
from transcript_relay.schemas import ConversationTurn, ToolCall, ToolResponse, TurnRole

logger = logging.getLogger(__name__)

ToolHandler = Callable[[ToolCall], dict[str, Any]]


class ConversationBridge:
    def __init__(
        self,
        session: AISession,
        *,
        integration: IntegrationSettings | None = None,
        log: ConversationLog | None = None,
    ) -> None:
        self._session = session
        self._integration = integration or IntegrationSettings()
        self._log = log or ConversationLog()

        self._processing = False
        self._pending: str | None = None
        self._tools: dict[str, ToolHandler] = {}
        self.register_tool("join_meeting", self._join_meeting)

        self._subscriptions: list[Subscription] = [
            session.subscribe("open", self._on_open),
            session.subscribe("close", self._on_close),
            session.subscribe("turn_update", self._on_turn_update),
            session.subscribe("turn_complete", self._on_turn_complete),
            session.subscribe("tool_call", self._on_tool_call),
        ]

    @property
    def processing(self) -> bool:
        """True while a forwarded utterance has not produced a completed response."""
        return self._processing

    @property
    def pending(self) -> str | None:
        return self._pending

    @property
    def turns(self) -> list[ConversationTurn]:
        return self._log.turns

    @property
    def integration(self) -> IntegrationSettings:
        return self._integration

    def register_tool(self, name: str, handler: ToolHandler) -> None:
        self._tools[name] = handler

    def clear_turns(self) -> None:
        self._log.clear()

    def close(self) -> None:
        """Detach from the session."""
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []

    def forward(self, text: str) -> None:
        """Forward one finalized utterance to the AI session."""
        text = (text or "").strip()
        if not text:
            return

        self._log.add_turn(TurnRole.USER, text, is_final=True)

        if not self._session.connected:
            logger.warning("AI session not connected yet; holding utterance until it opens")
            self._pending = text
            return

        if self._processing:
            if self._pending is not None:
                logger.debug(f"Replacing pending utterance: {self._pending!r} -> {text!r}")
            self._pending = text
            return

        self._send(text)

    def _send(self, text: str) -> None:
        self._processing = True
        try:
            self._session.send(text)
        except ConnectionError as e:
            logger.warning(f"AI session rejected text ({e}); holding it until the session opens")
            self._processing = False
            self._pending = text

    def _flush_pending(self) -> None:
        if self._pending is None or self._processing or not self._session.connected:
            return
        text, self._pending = self._pending, None
        self._send(text)

    def _on_open(self) -> None:
        self._flush_pending()

    def _on_close(self) -> None:
        self._processing = False

    def _on_turn_update(self, text: str, is_final: bool = False) -> None:
        last = self._log.last
        if last is None or last.role != TurnRole.AGENT or last.is_final:
            self._log.add_turn(TurnRole.AGENT, text, is_final=is_final)
        else:
            self._log.update_last_turn(text=last.text + text, is_final=is_final)

    def _on_turn_complete(self) -> None:
        last = self._log.last
        if last is not None and last.role == TurnRole.AGENT and not last.is_final:
            self._log.update_last_turn(is_final=True)
        self._processing = False
        self._flush_pending()

    def _on_tool_call(self, calls: list[ToolCall]) -> None:
        summary = ", ".join(f"{call.name}({call.args})" for call in calls)
        self._log.add_turn(TurnRole.SYSTEM, f"Tool call: {summary}", is_final=True, tool_use_request=calls)

        responses: list[ToolResponse] = []
        for call in calls:
            handler = self._tools.get(call.name)
            if handler is None:
                logger.warning(f"No handler registered for tool '{call.name}'")
                result: dict[str, Any] = {"error": f"Unknown tool: {call.name}"}
            else:
                try:
                    result = handler(call)
                except ValueError as e:
                    logger.warning(f"Tool '{call.name}' rejected its arguments: {e}")
                    result = {"error": str(e)}
                except Exception as e:
                    logger.error(f"Tool '{call.name}' failed: {e}", exc_info=True)
                    result = {"error": f"{type(e).__name__}: {e}"}
            responses.append(ToolResponse(id=call.id, name=call.name, response=result))

        self._log.update_last_turn(tool_use_response=responses)
        self._session.send_tool_response(responses)

    def _join_meeting(self, call: ToolCall) -> dict[str, Any]:
        meeting_id = str(call.args.get("meetingId") or "").strip()
        if not meeting_id:
            raise ValueError("meetingId is required")
        meeting = self._integration.join_meeting(
            meeting_id,
            passcode=str(call.args.get("passcode") or ""),
            user_name=str(call.args.get("userName") or ""),
        )
        logger.info(f"Joining meeting {meeting.meeting_id} as {meeting.user_name!r}")
        return {"result": "ok", "meetingId": meeting.meeting_id}
