from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from helpdesk.tickets import (
    FixedClock,
    Identity,
    InMemoryEventPublisher,
    InMemoryTicketRepository,
    InMemoryUserDirectory,
    Role,
    Ticket,
    TicketPriority,
    TicketService,
    TicketStatus,
    due_timestamps,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def customer() -> Identity:
    return Identity("cust-a", Role.CUSTOMER)


@pytest.fixture
def other_customer() -> Identity:
    return Identity("cust-b", Role.CUSTOMER)


@pytest.fixture
def agent() -> Identity:
    return Identity("agent-1", Role.AGENT)


@pytest.fixture
def other_agent() -> Identity:
    return Identity("agent-2", Role.AGENT)


@pytest.fixture
def manager() -> Identity:
    return Identity("mgr-1", Role.MANAGER)


@pytest.fixture
def admin() -> Identity:
    return Identity("admin-1", Role.ADMIN)


@pytest.fixture
def make_ticket():
    def _make(
        *,
        priority: TicketPriority = TicketPriority.MEDIUM,
        status: TicketStatus = TicketStatus.OPEN,
        created_at: datetime = T0,
        **overrides,
    ) -> Ticket:
        response_due, resolution_due = due_timestamps(priority, created_at)
        ticket = Ticket(
            id="ticket-1",
            ticket_number="TKT-2026-000001",
            title="Printer on fire",
            description="Smoke coming out of tray 2",
            priority=priority,
            status=status,
            customer_id="cust-a",
            created_at=created_at,
            updated_at=created_at,
            sla_response_due_at=response_due,
            sla_resolution_due_at=resolution_due,
            revision=1,
        )
        return replace(ticket, **overrides) if overrides else ticket

    return _make


@pytest.fixture
def repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(
        {
            "agent-1": Role.AGENT,
            "agent-2": Role.AGENT,
            "mgr-1": Role.MANAGER,
            "cust-a": Role.CUSTOMER,
        }
    )


@pytest.fixture
def service(repository, clock, publisher, directory) -> TicketService:
    return TicketService(repository, clock=clock, publisher=publisher, directory=directory)
