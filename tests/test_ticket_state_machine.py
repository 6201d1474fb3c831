from datetime import timedelta

import pytest

from helpdesk.tickets import (
    Forbidden,
    Identity,
    InvalidTransition,
    TicketPriority,
    TicketStateMachine,
    TicketStatus,
)


@pytest.fixture
def machine() -> TicketStateMachine:
    return TicketStateMachine()


def test_every_status_reachable_from_every_other():
    for current in TicketStatus:
        for target in TicketStatus:
            assert TicketStateMachine.can_transition(current, target)


def test_unknown_target_status_is_invalid(machine, make_ticket, manager, t0):
    with pytest.raises(InvalidTransition):
        machine.apply_transition(make_ticket(), "ESCALATED", manager, t0)


def test_unassigned_agent_is_forbidden_but_manager_allowed(machine, make_ticket, agent, manager, t0):
    ticket = make_ticket(assigned_agent_id="someone-else")

    with pytest.raises(Forbidden):
        machine.apply_transition(ticket, TicketStatus.IN_PROGRESS, agent, t0)

    result = machine.apply_transition(ticket, TicketStatus.IN_PROGRESS, manager, t0)
    assert result.ticket.status == TicketStatus.IN_PROGRESS


def test_customer_cannot_change_status(machine, make_ticket, customer, t0):
    with pytest.raises(Forbidden):
        machine.apply_transition(make_ticket(), TicketStatus.CLOSED, customer, t0)


def test_same_status_is_noop(machine, make_ticket, manager, t0):
    ticket = make_ticket()

    result = machine.apply_transition(ticket, "OPEN", manager, t0 + timedelta(minutes=5))

    assert result.changed is False
    assert result.event is None
    assert result.ticket == ticket


def test_first_response_set_exactly_once(machine, make_ticket, agent, t0):
    ticket = make_ticket(assigned_agent_id=agent.actor_id)

    started = machine.apply_transition(ticket, TicketStatus.IN_PROGRESS, agent, t0 + timedelta(minutes=10)).ticket
    assert started.first_response_at == t0 + timedelta(minutes=10)

    reopened = machine.apply_transition(started, TicketStatus.OPEN, agent, t0 + timedelta(minutes=20)).ticket
    resumed = machine.apply_transition(reopened, TicketStatus.IN_PROGRESS, agent, t0 + timedelta(minutes=30)).ticket
    resolved = machine.apply_transition(resumed, TicketStatus.RESOLVED, agent, t0 + timedelta(minutes=40)).ticket

    for snapshot in (reopened, resumed, resolved):
        assert snapshot.first_response_at == t0 + timedelta(minutes=10)


def test_resolving_directly_stamps_first_response_and_resolution(machine, make_ticket, manager, t0):
    now = t0 + timedelta(hours=1)

    result = machine.apply_transition(make_ticket(), TicketStatus.RESOLVED, manager, now)

    assert result.ticket.first_response_at == now
    assert result.ticket.resolved_at == now
    assert result.sla.minutes_until_due is None


def test_reopening_resolved_ticket_clears_resolved_at(machine, make_ticket, manager, t0):
    resolved = machine.apply_transition(make_ticket(), TicketStatus.RESOLVED, manager, t0 + timedelta(hours=1)).ticket

    reopened = machine.apply_transition(resolved, TicketStatus.OPEN, manager, t0 + timedelta(hours=2)).ticket

    assert reopened.status == TicketStatus.OPEN
    assert reopened.resolved_at is None
    assert reopened.first_response_at == t0 + timedelta(hours=1)


def test_closing_then_reopening_clears_closure_timestamps(machine, make_ticket, admin, t0):
    resolved = machine.apply_transition(make_ticket(), TicketStatus.RESOLVED, admin, t0 + timedelta(hours=1)).ticket
    closed = machine.apply_transition(resolved, TicketStatus.CLOSED, admin, t0 + timedelta(hours=2)).ticket

    assert closed.resolved_at == t0 + timedelta(hours=1)
    assert closed.closed_at == t0 + timedelta(hours=2)

    reopened = machine.apply_transition(closed, TicketStatus.IN_PROGRESS, admin, t0 + timedelta(hours=3)).ticket
    assert reopened.resolved_at is None
    assert reopened.closed_at is None


def test_transition_emits_status_change_event(machine, make_ticket, manager, t0):
    now = t0 + timedelta(minutes=15)

    result = machine.apply_transition(make_ticket(), TicketStatus.IN_PROGRESS, manager, now)

    event = result.event
    assert event is not None
    assert event.old_status == TicketStatus.OPEN
    assert event.new_status == TicketStatus.IN_PROGRESS
    assert event.actor_id == manager.actor_id
    assert event.occurred_at == now


def test_late_resolution_latches_breach(machine, make_ticket, manager, t0):
    ticket = make_ticket(
        priority=TicketPriority.CRITICAL,
        status=TicketStatus.IN_PROGRESS,
        first_response_at=t0 + timedelta(minutes=5),
    )

    result = machine.apply_transition(ticket, TicketStatus.RESOLVED, manager, t0 + timedelta(hours=5))

    assert result.breach_latched is True
    assert result.ticket.sla_breached is True
    assert result.sla.sla_breached is True

    reopened = machine.apply_transition(result.ticket, TicketStatus.OPEN, manager, t0 + timedelta(hours=6))
    assert reopened.sla.sla_breached is True
    assert reopened.breach_latched is False


def test_unknown_role_cannot_transition(machine, make_ticket, t0):
    with pytest.raises(Forbidden):
        machine.apply_transition(make_ticket(), TicketStatus.CLOSED, Identity.of("x", "SUPERUSER"), t0)


def test_closing_open_ticket_after_deadlines_latches_breach(machine, make_ticket, manager, t0):
    ticket = make_ticket(priority=TicketPriority.LOW)

    result = machine.apply_transition(ticket, TicketStatus.CLOSED, manager, t0 + timedelta(hours=50))

    assert result.ticket.closed_at == t0 + timedelta(hours=50)
    assert result.ticket.sla_breached is True
    assert result.breach_latched is True
    assert result.sla.sla_breached is True
    assert result.sla.is_overdue is False


def test_closing_in_progress_ticket_after_resolution_deadline_latches_breach(machine, make_ticket, manager, t0):
    ticket = make_ticket(
        priority=TicketPriority.LOW,
        status=TicketStatus.IN_PROGRESS,
        first_response_at=t0 + timedelta(hours=1),
    )

    result = machine.apply_transition(ticket, TicketStatus.CLOSED, manager, t0 + timedelta(hours=50))

    assert result.breach_latched is True
    assert result.ticket.sla_breached is True

    reopened = machine.apply_transition(result.ticket, TicketStatus.OPEN, manager, t0 + timedelta(hours=51))
    assert reopened.ticket.closed_at is None
    assert reopened.sla.sla_breached is True


def test_closing_within_deadlines_does_not_breach(machine, make_ticket, manager, t0):
    ticket = make_ticket(
        priority=TicketPriority.LOW,
        status=TicketStatus.IN_PROGRESS,
        first_response_at=t0 + timedelta(hours=1),
    )

    result = machine.apply_transition(ticket, TicketStatus.CLOSED, manager, t0 + timedelta(hours=47))

    assert result.breach_latched is False
    assert result.ticket.sla_breached is False
