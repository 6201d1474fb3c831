from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from .enums import TicketPriority, TicketStatus
from .models import Ticket
from .sla import SlaClock


@dataclass(slots=True, frozen=True)
class DashboardStats:
    """Aggregate SLA and workload figures over a set of tickets."""

    total_tickets: int
    tickets_by_status: Mapping[str, int]
    tickets_by_priority: Mapping[str, int]
    overdue_tickets: int
    sla_breached_tickets: int
    sla_compliance_rate: float
    average_response_time_hours: float
    average_resolution_time_hours: float
    escalated_tickets: int = 0
    generated_at: datetime | None = field(default=None)


def _average_hours(durations: list[timedelta]) -> float:
    if not durations:
        return 0.0
    total = sum(durations, timedelta())
    return total / timedelta(hours=1) / len(durations)


def summarize_tickets(tickets: Iterable[Ticket], now: datetime) -> DashboardStats:
    by_status = {status.value: 0 for status in TicketStatus}
    by_priority = {priority.value: 0 for priority in TicketPriority}
    total = overdue = breached = escalated = 0
    response_times: list[timedelta] = []
    resolution_times: list[timedelta] = []

    for ticket in tickets:
        total += 1
        by_status[ticket.status.value] += 1
        by_priority[ticket.priority.value] += 1
        sla = SlaClock.derive_status(ticket, now)
        overdue += int(sla.is_overdue)
        breached += int(sla.sla_breached)
        escalated += int(sla.escalated)
        if ticket.first_response_at is not None:
            response_times.append(ticket.first_response_at - ticket.created_at)
        if ticket.resolved_at is not None:
            resolution_times.append(ticket.resolved_at - ticket.created_at)

    compliance = 100.0 if total == 0 else (total - breached) / total * 100.0
    return DashboardStats(
        total_tickets=total,
        tickets_by_status=by_status,
        tickets_by_priority=by_priority,
        overdue_tickets=overdue,
        sla_breached_tickets=breached,
        sla_compliance_rate=compliance,
        average_response_time_hours=_average_hours(response_times),
        average_resolution_time_hours=_average_hours(resolution_times),
        escalated_tickets=escalated,
        generated_at=now,
    )


@dataclass(slots=True, frozen=True)
class AgentStats:
    """Workload and SLA figures for the tickets assigned to one agent."""

    agent_id: str
    assigned_tickets: int
    resolved_tickets: int
    overdue_tickets: int
    sla_breached_tickets: int
    sla_compliance_rate: float
    average_resolution_time_hours: float


def summarize_agent(agent_id: str, tickets: Iterable[Ticket], now: datetime) -> AgentStats:
    """Summarise the tickets assigned to ``agent_id``; others are ignored.

    RESOLVED and CLOSED tickets both count as resolved.
    """

    assigned = resolved = overdue = breached = 0
    resolution_times: list[timedelta] = []
    for ticket in tickets:
        if ticket.assigned_agent_id != agent_id:
            continue
        assigned += 1
        resolved += int(ticket.status.is_terminal)
        sla = SlaClock.derive_status(ticket, now)
        overdue += int(sla.is_overdue)
        breached += int(sla.sla_breached)
        if ticket.resolved_at is not None:
            resolution_times.append(ticket.resolved_at - ticket.created_at)

    return AgentStats(
        agent_id=agent_id,
        assigned_tickets=assigned,
        resolved_tickets=resolved,
        overdue_tickets=overdue,
        sla_breached_tickets=breached,
        sla_compliance_rate=100.0 if assigned == 0 else (assigned - breached) / assigned * 100.0,
        average_resolution_time_hours=_average_hours(resolution_times),
    )
