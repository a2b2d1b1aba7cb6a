"""
Recognition provider abstraction.

Every provider shares one lifecycle::

    IDLE -[connect]-> CONNECTING -[open]-> OPEN -[disconnect|error]-> CLOSED

and one event contract: ``open``, ``close``, ``error(ProviderError)`` and
``transcript(TranscriptEvent)``. Each ``connect`` starts a new session
identity; callbacks from a superseded session are dropped here so concrete
providers only have to tag their callbacks with the identity they were
started under.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from transcript_relay.audio.audio_io import AudioStream
from transcript_relay.errors import ProviderError
from transcript_relay.events import EventEmitter, Subscription
from transcript_relay.schemas import ConnectionState, TranscriptEvent

logger = logging.getLogger(__name__)

PROVIDER_EVENTS = ("open", "close", "error", "transcript")


class ProviderAdapter(ABC):
    """Abstract base class for recognition providers."""

    name = "provider"

    def __init__(self) -> None:
        self._events = EventEmitter(PROVIDER_EVENTS)
        self._state = ConnectionState.IDLE
        self._session_id = 0
        self._closed: asyncio.Event | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session_id(self) -> int:
        """Identity of the current session; bumped on connect and on teardown."""
        return self._session_id

    @property
    def is_active(self) -> bool:
        return self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN)

    def subscribe(self, event: str, handler: Callable[..., Any]) -> Subscription:
        return self._events.subscribe(event, handler)

    async def connect(
        self,
        sample_rate: int = 16000,
        language: str = "auto",
        stream: AudioStream | None = None,
    ) -> None:
        """
        Start a session.

        Completion is signalled by exactly one of the ``open`` or ``error``
        events. Calling this while connecting or open does nothing.
        """
        if self.is_active:
            logger.debug(f"[{self.name}] connect ignored in state {self._state.value}")
            return
        if self._state in (ConnectionState.CLOSING, ConnectionState.ERRORED):
            # Previous session is still tearing down.
            await self.wait_closed()
            if self.is_active:
                return
        self._session_id += 1
        self._state = ConnectionState.CONNECTING
        self._closed = asyncio.Event()
        logger.info(f"[{self.name}] connecting (session={self._session_id}, language={language})")
        await self._start(self._session_id, sample_rate, language, stream)

    def disconnect(self) -> None:
        """Stop the session. Idempotent and safe from every state."""
        if not self.is_active:
            return
        logger.info(f"[{self.name}] disconnecting (session={self._session_id})")
        self._state = ConnectionState.CLOSING
        self._session_id += 1
        self._finish(self._stop(graceful=True))

    async def wait_closed(self) -> None:
        """Wait until the last session reached its terminal state."""
        if self._closed is None:
            return
        await self._closed.wait()

    @abstractmethod
    async def _start(
        self,
        session_id: int,
        sample_rate: int,
        language: str,
        stream: AudioStream | None,
    ) -> None:
        """Begin connecting; report through ``_opened``/``_fail``."""
        ...

    @abstractmethod
    def _stop(self, *, graceful: bool) -> Awaitable[None] | None:
        """Release session resources; may return an awaitable for async teardown."""
        ...

    def _is_current(self, session_id: int) -> bool:
        return session_id == self._session_id

    def _opened(self, session_id: int) -> bool:
        if not self._is_current(session_id) or self._state != ConnectionState.CONNECTING:
            logger.debug(f"[{self.name}] discarding stale open (session={session_id})")
            return False
        self._state = ConnectionState.OPEN
        logger.info(f"[{self.name}] open (session={session_id})")
        self._events.emit("open")
        return True

    def _deliver(self, session_id: int, event: TranscriptEvent) -> None:
        if not self._is_current(session_id) or self._state != ConnectionState.OPEN:
            logger.debug(f"[{self.name}] discarding stale transcript (session={session_id})")
            return
        self._events.emit("transcript", event)

    def _fail(self, session_id: int, error: ProviderError) -> None:
        if not self._is_current(session_id) or not self.is_active:
            logger.debug(f"[{self.name}] discarding stale error {error!r}")
            return
        logger.error(f"[{self.name}] {error.kind.value}: {error}")
        self._state = ConnectionState.ERRORED
        self._session_id += 1
        self._events.emit("error", error)
        self._finish(self._stop(graceful=False))

    def _ended(self, session_id: int) -> None:
        """The remote side ended the session without an error."""
        if not self._is_current(session_id) or not self.is_active:
            return
        logger.info(f"[{self.name}] session ended by provider (session={session_id})")
        self._state = ConnectionState.CLOSING
        self._session_id += 1
        self._finish(self._stop(graceful=False))

    def _finish(self, pending: Awaitable[None] | None) -> None:
        epoch = self._session_id
        closed = self._closed
        if pending is None:
            self._mark_closed(epoch, closed)
            return
        try:
            task = asyncio.ensure_future(pending)
        except RuntimeError:
            # No running loop (interpreter shutdown); drop the async part of teardown.
            if asyncio.iscoroutine(pending):
                pending.close()
            self._mark_closed(epoch, closed)
            return

        def _done(t: asyncio.Future) -> None:
            if not t.cancelled() and t.exception() is not None:
                logger.warning(f"[{self.name}] teardown failed: {t.exception()}")
            self._mark_closed(epoch, closed)

        task.add_done_callback(_done)

    def _mark_closed(self, epoch: int, closed: asyncio.Event | None) -> None:
        # A newer session may already own the state machine.
        if epoch == self._session_id:
            self._state = ConnectionState.CLOSED
            self._events.emit("close")
        if closed is not None:
            closed.set()
