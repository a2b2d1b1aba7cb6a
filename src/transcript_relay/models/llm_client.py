"""
Local LLM access through the Ollama CLI.

The conversation is flattened into a role-tagged prompt and piped to
``ollama run <model>``; the blocking call runs in a worker thread.
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from transcript_relay.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODEL = "gpt-oss:20b"


class Message(BaseModel):
    """One entry of the prompt history."""

    role: str = Field(..., description="system, user, assistant or tool")
    content: str


class LLMResponse(BaseModel):
    """Result of a single generation."""

    content: str
    finish_reason: str = Field(default="stop", description="'stop', or 'error' when the backend failed")
    model: str = ""
    raw_response: dict[str, Any] = Field(default_factory=dict)


class OllamaError(Exception):
    """The Ollama CLI was missing, timed out or exited non-zero."""

    def __init__(self, message: str, return_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.return_code = return_code
        self.stderr = stderr


class LLMClientBase(ABC):
    """What a conversation session needs from a language model."""

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate the next assistant message.

        Backend failures are reported with ``finish_reason="error"``
        rather than raised.
        """
        ...


class LLMClient(LLMClientBase):
    """Ollama CLI client with a small retry budget."""

    def __init__(
        self,
        model: str | None = None,
        max_retries: int = 1,
        timeout: int = 120,
    ) -> None:
        self._model = model or get_settings().llm_model_name or DEFAULT_OLLAMA_MODEL
        self._max_retries = max_retries
        self._timeout = timeout
        logger.info(f"Using Ollama model {self._model}")

    @property
    def model(self) -> str:
        return self._model

    @staticmethod
    def build_prompt(messages: list[Message]) -> str:
        """Flatten messages into one role-tagged prompt ending at the assistant marker."""
        sections = [f"[{m.role.upper()}]\n{m.content.strip()}\n" for m in messages]
        return "\n".join([*sections, "[ASSISTANT]\n"])

    def _invoke(self, prompt: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["ollama", "run", self._model],
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise OllamaError("Ollama CLI not found. Please install Ollama: https://ollama.ai") from exc
        except OSError as exc:
            raise OllamaError(f"Could not run the Ollama CLI: {exc}") from exc

    def _generate_blocking(self, prompt: str) -> str:
        """Run the CLI, retrying timeouts and non-zero exits. Raises OllamaError."""
        failure = OllamaError("Ollama failed after all retries")
        for attempt in range(1, self._max_retries + 2):
            try:
                completed = self._invoke(prompt)
            except subprocess.TimeoutExpired:
                logger.warning(f"Ollama attempt {attempt} timed out after {self._timeout}s")
                failure = OllamaError(f"Ollama timed out after {self._timeout} seconds")
                continue

            if completed.returncode == 0:
                text = completed.stdout.strip()
                logger.debug(f"Ollama attempt {attempt} returned {len(text)} chars")
                return text

            detail = completed.stderr.strip() or f"exit code {completed.returncode}"
            logger.warning(f"Ollama attempt {attempt} failed: {detail}")
            failure = OllamaError(
                f"Ollama exited with code {completed.returncode}",
                return_code=completed.returncode,
                stderr=completed.stderr,
            )
        raise failure

    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> LLMResponse:
        # The CLI has no sampling flags; temperature is accepted for interface parity.
        prompt = self.build_prompt(messages)
        try:
            text = await asyncio.to_thread(self._generate_blocking, prompt)
        except OllamaError as exc:
            logger.error(f"Ollama chat failed: {exc}")
            return LLMResponse(content="", finish_reason="error", model=self._model, raw_response={"error": str(exc)})
        return LLMResponse(content=text, model=self._model, raw_response={"prompt": prompt, "response": text})
