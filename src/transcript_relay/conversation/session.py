"""
AI conversation session contract.

The bridge only ever talks to the session through this narrow surface:
fire-and-forget text injection, tool results, and a handful of events.
"""

from collections.abc import Callable
from typing import Any, Protocol

from transcript_relay.events import Subscription
from transcript_relay.schemas import ToolResponse

# Event payloads:
#   open()                            session is ready to accept text
#   close()                           session went away
#   turn_update(text: str, is_final)  streaming agent text delta
#   turn_complete()                   the agent finished responding
#   tool_call(calls: list[ToolCall])  the agent invoked one or more tools
SESSION_EVENTS = ("open", "close", "turn_update", "turn_complete", "tool_call")


class AISession(Protocol):
    @property
    def connected(self) -> bool: ...

    def send(self, text: str) -> None: ...

    def send_tool_response(self, responses: list[ToolResponse]) -> None: ...

    def subscribe(self, event: str, handler: Callable[..., Any]) -> Subscription: ...
