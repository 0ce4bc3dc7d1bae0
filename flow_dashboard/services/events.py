"""
In-process event bus.

Services publish state changes here instead of calling each other: the
credential manager announces a validated token, the selection announces
membership changes, preferences announce interval and scope changes.
Handlers may be plain functions or coroutine functions.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

CREDENTIAL_VALIDATED = "credential.validated"
CREDENTIAL_INVALIDATED = "credential.invalidated"
CREDENTIAL_REMOVED = "credential.removed"
SELECTION_CHANGED = "selection.changed"
INTERVAL_CHANGED = "preferences.interval_changed"
SCOPE_CHANGED = "preferences.scope_changed"
DISCOVERY_UPDATED = "discovery.updated"

EventHandler = Callable[[dict[str, Any]], "Awaitable[None] | None"]


class EventBus:
    """Publish/subscribe by event type."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            A callable that removes the subscription
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def emit(self, event_type: str, payload: dict[str, Any] | None = None) -> int:
        """
        Deliver an event to every handler, in subscription order.

        A failing handler is logged and skipped; emit never raises.

        Returns:
            Number of handlers that completed
        """
        payload = payload or {}
        delivered = 0

        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    exc_info=True,
                    extra={
                        "event_type": event_type,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error": str(e),
                    },
                )

        logger.debug(
            "Event published",
            extra={"event_type": event_type, "handlers": delivered},
        )
        return delivered
