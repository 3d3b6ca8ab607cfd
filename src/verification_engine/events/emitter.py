"""Async event emitter for publishing domain events.

The emitter provides:
- Handler registration with type and category filtering
- Error isolation (handler failures don't break other handlers)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, TypeVar, runtime_checkable

from verification_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)


@runtime_checkable
class AsyncEventHandler(Protocol):
    """Protocol for asynchronous event handlers."""

    async def __call__(self, event: DomainEvent) -> None:
        """Handle a domain event asynchronously."""
        ...


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: AsyncEventHandler
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_employee(event: WorkEntryApproved) -> None:
            await sender.send(event.name, event.notification_payload())

        emitter.on(WorkEntryApproved, notify_employee)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: AsyncEventHandler,
    ) -> None:
        """Register handler for specific event type(s)."""
        self._register(handler, _type_names(event_type), None)

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: AsyncEventHandler,
    ) -> None:
        """Register handler for event category(ies)."""
        cats = set(category) if isinstance(category, list) else {category}
        self._register(handler, None, cats)

    def on_all(self, handler: AsyncEventHandler) -> None:
        """Register handler for all events."""
        self._register(handler, None, None)

    def off(self, handler: AsyncEventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def _register(
        self,
        handler: AsyncEventHandler,
        event_types: set[str] | None,
        categories: set[EventCategory] | None,
    ) -> None:
        self._handlers.append(
            HandlerRegistration(handler=handler, event_types=event_types, categories=categories)
        )

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        errors: list[Exception] = []
        tasks: list[asyncio.Task[None]] = []

        for reg in self._handlers:
            if reg.event_types and event.event_type not in reg.event_types:
                continue
            if reg.categories and event.category not in reg.categories:
                continue
            tasks.append(asyncio.create_task(self._call_handler(reg.handler, event)))

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    errors.append(result)

        return errors

    async def _call_handler(
        self,
        handler: AsyncEventHandler,
        event: DomainEvent,
    ) -> None:
        """Call handler with error logging."""
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Handler %s failed for event %s",
                handler,
                event.event_type,
            )
            raise


def _type_names(event_type: type[DomainEvent] | list[type[DomainEvent]]) -> set[str]:
    if isinstance(event_type, list):
        return {t.__name__ for t in event_type}
    return {event_type.__name__}
