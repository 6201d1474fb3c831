from datetime import timedelta

import pytest

from helpdesk.tickets import SlaClock, SlaPolicy, SlaWindow, TicketPriority, TicketStatus, ValidationError
from helpdesk.tickets.sla import DEFAULT_SLA_WINDOWS


def test_resolution_window_never_shorter_than_response_window():
    policy = SlaPolicy()
    for priority in TicketPriority:
        window = policy.window(priority)
        assert window.resolution >= window.response


@pytest.mark.parametrize(
    ("priority", "response_hours", "resolution_hours"),
    [
        (TicketPriority.CRITICAL, 1, 4),
        (TicketPriority.HIGH, 2, 8),
        (TicketPriority.MEDIUM, 4, 24),
        (TicketPriority.LOW, 8, 48),
    ],
)
def test_due_timestamps_follow_priority_table(t0, priority, response_hours, resolution_hours):
    response_due, resolution_due = SlaPolicy().due_timestamps(priority, t0)

    assert response_due == t0 + timedelta(hours=response_hours)
    assert resolution_due == t0 + timedelta(hours=resolution_hours)


def test_policy_rejects_incomplete_table():
    windows = dict(DEFAULT_SLA_WINDOWS)
    del windows[TicketPriority.LOW]

    with pytest.raises(ValidationError) as exc:
        SlaPolicy(windows)

    assert exc.value.field == "priority"


def test_policy_rejects_response_longer_than_resolution():
    windows = dict(DEFAULT_SLA_WINDOWS)
    windows[TicketPriority.HIGH] = SlaWindow(response=timedelta(hours=9), resolution=timedelta(hours=8))

    with pytest.raises(ValidationError):
        SlaPolicy(windows)


def test_priority_parse_is_strict():
    assert TicketPriority.parse("high") is TicketPriority.HIGH
    with pytest.raises(ValidationError) as exc:
        TicketPriority.parse("URGENT")
    assert exc.value.field == "priority"


def test_ticket_rejects_unknown_priority(make_ticket):
    with pytest.raises(ValidationError):
        make_ticket(priority="URGENT")


def test_critical_ticket_open_past_response_deadline_is_breached_and_escalated(make_ticket, t0):
    ticket = make_ticket(priority=TicketPriority.CRITICAL)

    assert ticket.sla_response_due_at == t0 + timedelta(hours=1)
    assert ticket.sla_resolution_due_at == t0 + timedelta(hours=4)

    status = SlaClock.derive_status(ticket, t0 + timedelta(hours=2))

    assert status.is_overdue is True
    assert status.sla_breached is True
    assert status.escalated is True
    assert status.minutes_until_due == 0


def test_open_ticket_within_response_window(make_ticket, t0):
    ticket = make_ticket(priority=TicketPriority.CRITICAL)

    status = SlaClock.derive_status(ticket, t0 + timedelta(minutes=30))

    assert status.minutes_until_due == 30
    assert status.is_overdue is False
    assert status.sla_breached is False
    assert status.escalated is False


def test_minutes_until_due_rounds_up(make_ticket, t0):
    ticket = make_ticket(priority=TicketPriority.CRITICAL)

    status = SlaClock.derive_status(ticket, t0 + timedelta(minutes=30, seconds=10))

    assert status.minutes_until_due == 30


def test_in_progress_ticket_tracks_resolution_deadline(make_ticket, t0):
    ticket = make_ticket(
        priority=TicketPriority.CRITICAL,
        status=TicketStatus.IN_PROGRESS,
        first_response_at=t0 + timedelta(minutes=20),
    )

    status = SlaClock.derive_status(ticket, t0 + timedelta(hours=3))

    assert status.minutes_until_due == 60
    assert status.is_overdue is False
    assert status.sla_breached is False


def test_resolved_ticket_has_no_active_deadline(make_ticket, t0):
    ticket = make_ticket(
        priority=TicketPriority.HIGH,
        status=TicketStatus.RESOLVED,
        first_response_at=t0 + timedelta(minutes=10),
        resolved_at=t0 + timedelta(hours=1),
    )

    status = SlaClock.derive_status(ticket, t0 + timedelta(days=10))

    assert status.minutes_until_due is None
    assert status.is_overdue is False
    assert status.sla_breached is False
    assert status.escalated is False


def test_late_resolution_counts_as_breach(make_ticket, t0):
    ticket = make_ticket(
        priority=TicketPriority.CRITICAL,
        status=TicketStatus.RESOLVED,
        first_response_at=t0 + timedelta(minutes=10),
        resolved_at=t0 + timedelta(hours=5),
    )

    status = SlaClock.derive_status(ticket, t0 + timedelta(hours=6))

    assert status.is_overdue is False
    assert status.sla_breached is True


def test_derive_status_is_idempotent(make_ticket, t0):
    ticket = make_ticket(priority=TicketPriority.LOW)
    now = t0 + timedelta(hours=9, minutes=1)

    assert SlaClock.derive_status(ticket, now) == SlaClock.derive_status(ticket, now)
    assert ticket.sla_breached is False


def test_observe_latches_breach_once(make_ticket, t0):
    ticket = make_ticket(priority=TicketPriority.CRITICAL)

    latched, status = SlaClock.observe(ticket, t0 + timedelta(hours=2))
    assert status.sla_breached is True
    assert latched.sla_breached is True
    assert latched is not ticket

    again, _ = SlaClock.observe(latched, t0 + timedelta(hours=3))
    assert again is latched


def test_latched_breach_survives_resolution(make_ticket, t0):
    ticket = make_ticket(priority=TicketPriority.CRITICAL, sla_breached=True)
    resolved = make_ticket(
        priority=TicketPriority.CRITICAL,
        status=TicketStatus.RESOLVED,
        sla_breached=True,
        first_response_at=t0 + timedelta(minutes=5),
        resolved_at=t0 + timedelta(minutes=30),
    )

    assert SlaClock.derive_status(ticket, t0).sla_breached is True
    assert SlaClock.derive_status(resolved, t0 + timedelta(hours=1)).sla_breached is True


def test_ticket_closed_without_resolution_is_measured_at_closure(make_ticket, t0):
    late = make_ticket(
        priority=TicketPriority.HIGH,
        status=TicketStatus.CLOSED,
        first_response_at=t0 + timedelta(minutes=30),
        closed_at=t0 + timedelta(hours=9),
    )
    on_time = make_ticket(
        priority=TicketPriority.HIGH,
        status=TicketStatus.CLOSED,
        first_response_at=t0 + timedelta(minutes=30),
        closed_at=t0 + timedelta(hours=7),
    )
    unanswered = make_ticket(
        priority=TicketPriority.HIGH,
        status=TicketStatus.CLOSED,
        closed_at=t0 + timedelta(hours=3),
    )

    later = t0 + timedelta(days=3)
    assert SlaClock.derive_status(late, later).sla_breached is True
    assert SlaClock.derive_status(on_time, later).sla_breached is False
    assert SlaClock.derive_status(unanswered, later).sla_breached is True
