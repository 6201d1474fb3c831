"""SLA windows per priority and the read-time SLA computation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Mapping

from .enums import TicketPriority, TicketStatus
from .errors import ValidationError
from .models import SlaStatus, Ticket

logger = logging.getLogger(__name__)

_ESCALATING_PRIORITIES = frozenset({TicketPriority.HIGH, TicketPriority.CRITICAL})


@dataclass(frozen=True)
class SlaWindow:
    """Maximum time from creation to first response and to resolution."""

    response: timedelta
    resolution: timedelta


DEFAULT_SLA_WINDOWS: Mapping[TicketPriority, SlaWindow] = {
    TicketPriority.CRITICAL: SlaWindow(response=timedelta(hours=1), resolution=timedelta(hours=4)),
    TicketPriority.HIGH: SlaWindow(response=timedelta(hours=2), resolution=timedelta(hours=8)),
    TicketPriority.MEDIUM: SlaWindow(response=timedelta(hours=4), resolution=timedelta(hours=24)),
    TicketPriority.LOW: SlaWindow(response=timedelta(hours=8), resolution=timedelta(hours=48)),
}


class SlaPolicy:
    """Pure mapping from priority to SLA windows.

    The table is validated once at construction: it must cover every priority
    and no response window may exceed its resolution window.
    """

    def __init__(self, windows: Mapping[TicketPriority, SlaWindow] | None = None) -> None:
        table = dict(windows if windows is not None else DEFAULT_SLA_WINDOWS)
        missing = [priority.value for priority in TicketPriority if priority not in table]
        if missing:
            raise ValidationError(f"SLA windows missing for priorities: {', '.join(missing)}", field="priority")
        for priority, window in table.items():
            if window.response > window.resolution:
                raise ValidationError(
                    f"Response window exceeds resolution window for {priority.value}", field="priority"
                )
        self._windows = table

    def window(self, priority: TicketPriority) -> SlaWindow:
        return self._windows[TicketPriority.parse(priority)]

    def due_timestamps(self, priority: TicketPriority, created_at: datetime) -> tuple[datetime, datetime]:
        window = self.window(priority)
        return created_at + window.response, created_at + window.resolution


class SlaClock:
    """Derive deadline, overdue, breach and escalation flags for a ticket."""

    @staticmethod
    def controlling_deadline(ticket: Ticket) -> datetime | None:
        if ticket.status.is_terminal:
            return None
        if ticket.first_response_at is None and ticket.status == TicketStatus.OPEN:
            return ticket.sla_response_due_at
        return ticket.sla_resolution_due_at

    @staticmethod
    def deadline_missed(ticket: Ticket, now: datetime) -> bool:
        """Whether any SLA deadline has been missed as of ``now``.

        Active tickets are measured against ``now``; terminal ones against the
        moment they left the active states, ``resolved_at`` or, for tickets
        closed without resolution, ``closed_at``.
        """

        if ticket.status.is_terminal:
            horizon = ticket.resolved_at or ticket.closed_at
        else:
            horizon = now

        if ticket.first_response_at is None:
            if horizon is not None and horizon > ticket.sla_response_due_at:
                return True
        elif ticket.first_response_at > ticket.sla_response_due_at:
            return True

        if ticket.resolved_at is not None and ticket.resolved_at > ticket.sla_resolution_due_at:
            return True
        return horizon is not None and horizon > ticket.sla_resolution_due_at

    @classmethod
    def derive_status(cls, ticket: Ticket, now: datetime) -> SlaStatus:
        deadline = cls.controlling_deadline(ticket)
        if deadline is None:
            minutes_until_due = None
            is_overdue = False
        else:
            remaining = (deadline - now) / timedelta(minutes=1)
            minutes_until_due = max(0, math.ceil(remaining))
            is_overdue = now > deadline

        breached = ticket.sla_breached or cls.deadline_missed(ticket, now)
        escalated = breached or (is_overdue and ticket.priority in _ESCALATING_PRIORITIES)
        return SlaStatus(
            minutes_until_due=minutes_until_due,
            is_overdue=is_overdue,
            sla_breached=breached,
            escalated=escalated,
        )

    @classmethod
    def observe(cls, ticket: Ticket, now: datetime) -> tuple[Ticket, SlaStatus]:
        """Derive the SLA status and apply the one-way breach latch.

        Returns the ticket unchanged unless the breach is observed for the
        first time, in which case the returned snapshot carries
        ``sla_breached=True`` and must be persisted by the caller.
        """

        status = cls.derive_status(ticket, now)
        if status.sla_breached and not ticket.sla_breached:
            logger.warning(
                "SLA breach latched for ticket %s (%s, priority %s)",
                ticket.id,
                ticket.ticket_number,
                ticket.priority.value,
            )
            ticket = replace(ticket, sla_breached=True)
        return ticket, status


_default_policy = SlaPolicy()


def due_timestamps(priority: TicketPriority, created_at: datetime) -> tuple[datetime, datetime]:
    """Deadlines under the default SLA table."""

    return _default_policy.due_timestamps(priority, created_at)
