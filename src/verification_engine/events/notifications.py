"""Bridge from domain events to the external notification sender."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from verification_engine.events.emitter import AsyncEventEmitter
from verification_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    """Delivery collaborator (email, push, ...); formatting is its concern."""

    async def send(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class LoggingNotificationSender:
    """Default sender that only records what would be delivered."""

    async def send(self, event_name: str, payload: dict[str, Any]) -> None:
        logger.info(
            "Notification %s for employee %s",
            event_name,
            payload.get("employee_id"),
        )


class NotificationRelay:
    """Forwards work entry events to a NotificationSender.

    Failures surface through the emitter's error list and logs; they never
    reach the transition that produced the event.
    """

    def __init__(self, sender: NotificationSender):
        self.sender = sender

    def attach(self, emitter: AsyncEventEmitter) -> None:
        emitter.on_category(EventCategory.WORK_ENTRY, self)

    def detach(self, emitter: AsyncEventEmitter) -> None:
        emitter.off(self)

    async def __call__(self, event: DomainEvent) -> None:
        await self.sender.send(event.name, event.notification_payload())
