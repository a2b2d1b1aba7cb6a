"""Explicit event subscription.

Components publish named events to handlers registered with ``subscribe``.
Each registration returns a ``Subscription`` handle whose ``cancel`` removes
exactly that handler.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class Subscription:
    """Cancellation handle for one registered handler."""

    def __init__(self, emitter: "EventEmitter", event: str, handler: Handler) -> None:
        self._emitter = emitter
        self._event = event
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._emitter._remove(self._event, self._handler)


class EventEmitter:
    """Synchronous publish/subscribe for a fixed set of event names."""

    def __init__(self, events: tuple[str, ...]) -> None:
        self._handlers: dict[str, list[Handler]] = {name: [] for name in events}

    @property
    def events(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def subscribe(self, event: str, handler: Handler) -> Subscription:
        if event not in self._handlers:
            raise ValueError(f"Unknown event '{event}', expected one of {sorted(self._handlers)}")
        self._handlers[event].append(handler)
        return Subscription(self, event, handler)

    def emit(self, event: str, *args: Any) -> None:
        # Snapshot so handlers may cancel themselves while being dispatched.
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Error in '{event}' handler {handler!r}: {e}", exc_info=True)

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()

    def _remove(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
