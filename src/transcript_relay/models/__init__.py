"""
Local language model access and lenient parsing of its output.
"""

from transcript_relay.models.json_repair import extract_json_object, parse_json_loose
from transcript_relay.models.llm_client import (
    DEFAULT_OLLAMA_MODEL,
    LLMClient,
    LLMClientBase,
    LLMResponse,
    Message,
    OllamaError,
)

__all__ = [
    "LLMClient",
    "LLMClientBase",
    "LLMResponse",
    "Message",
    "OllamaError",
    "DEFAULT_OLLAMA_MODEL",
    "extract_json_object",
    "parse_json_loose",
]
