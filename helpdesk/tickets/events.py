from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .enums import Role, TicketStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StatusChangeEvent:
    """Notification emitted after a ticket changes status."""

    ticket_id: str
    ticket_number: str
    old_status: TicketStatus
    new_status: TicketStatus
    actor_id: str
    actor_role: Role | None
    occurred_at: datetime


class EventPublisher(Protocol):
    """Best-effort sink for status changes; ``publish`` must not block."""

    def publish(self, event: StatusChangeEvent) -> None:
        ...


class LoggingEventPublisher:
    """Default publisher writing events to the application log."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    def publish(self, event: StatusChangeEvent) -> None:
        self._logger.info(
            "Ticket %s status %s -> %s by %s",
            event.ticket_number,
            event.old_status.value,
            event.new_status.value,
            event.actor_id,
        )


class InMemoryEventPublisher:
    """Collects published events in order."""

    def __init__(self) -> None:
        self.events: list[StatusChangeEvent] = []

    def publish(self, event: StatusChangeEvent) -> None:
        self.events.append(event)
