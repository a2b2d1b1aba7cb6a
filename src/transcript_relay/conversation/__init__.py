"""
Conversation module: the bridge between final transcript text and an AI session.
"""

from transcript_relay.conversation.bridge import ConversationBridge
from transcript_relay.conversation.llm_session import OllamaConversationSession, parse_tool_calls
from transcript_relay.conversation.session import SESSION_EVENTS, AISession
from transcript_relay.conversation.tools import (
    DEFAULT_TOOLS,
    JOIN_MEETING_TOOL,
    IntegrationSettings,
    ToolDeclaration,
    parse_meeting_link,
)
from transcript_relay.conversation.turn_log import ConversationLog

__all__ = [
    "ConversationBridge",
    "OllamaConversationSession",
    "parse_tool_calls",
    "SESSION_EVENTS",
    "AISession",
    "DEFAULT_TOOLS",
    "JOIN_MEETING_TOOL",
    "IntegrationSettings",
    "ToolDeclaration",
    "parse_meeting_link",
    "ConversationLog",
]
