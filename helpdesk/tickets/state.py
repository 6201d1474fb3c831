from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from .access import AccessPolicy
from .enums import Action, TicketStatus
from .errors import InvalidTransition
from .events import StatusChangeEvent
from .models import Identity, SlaStatus, Ticket
from .sla import SlaClock

_FIRST_RESPONSE_STATES = frozenset({TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED})
_ACTIVE_STATES = frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS})


@dataclass(slots=True, frozen=True)
class TransitionResult:
    """Outcome of applying a status change to a ticket snapshot."""

    ticket: Ticket
    sla: SlaStatus
    event: StatusChangeEvent | None
    breach_latched: bool = False

    @property
    def changed(self) -> bool:
        return self.event is not None


class TicketStateMachine:
    """Validate and apply ticket lifecycle transitions.

    The workflow is intentionally permissive: every status is reachable from
    every other, including the reopen edges out of RESOLVED and CLOSED.
    Requesting the current status is a successful no-op.
    """

    _TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
        status: frozenset(other for other in TicketStatus if other != status) for status in TicketStatus
    }

    def __init__(self, policy: AccessPolicy | None = None, sla_clock: SlaClock | None = None) -> None:
        self._policy = policy or AccessPolicy()
        self._sla_clock = sla_clock or SlaClock()

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def parse_status(cls, value: Any) -> TicketStatus:
        if isinstance(value, TicketStatus):
            return value
        if isinstance(value, str):
            try:
                return TicketStatus(value.strip().upper())
            except ValueError:
                pass
        raise InvalidTransition(f"Unrecognised ticket status: {value!r}")

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        if current == new:
            return True
        return new in cls._TRANSITIONS.get(current, frozenset())

    def apply_transition(
        self,
        ticket: Ticket,
        target: TicketStatus | str,
        identity: Identity,
        now: datetime,
    ) -> TransitionResult:
        self._policy.require(identity, Action.CHANGE_STATUS, ticket)
        new_status = self.parse_status(target)
        current = ticket.status
        if not self.can_transition(current, new_status):
            raise InvalidTransition(f"Cannot transition {current.value} -> {new_status.value}")

        if new_status == current:
            observed, sla = self._sla_clock.observe(ticket, now)
            return TransitionResult(
                ticket=observed,
                sla=sla,
                event=None,
                breach_latched=observed.sla_breached and not ticket.sla_breached,
            )

        changes: dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status in _FIRST_RESPONSE_STATES and ticket.first_response_at is None:
            changes["first_response_at"] = now
        if new_status == TicketStatus.RESOLVED and ticket.resolved_at is None:
            changes["resolved_at"] = now
        if new_status == TicketStatus.CLOSED and ticket.closed_at is None:
            changes["closed_at"] = now
        if current.is_terminal and new_status in _ACTIVE_STATES:
            changes["resolved_at"] = None
            changes["closed_at"] = None

        updated, sla = self._sla_clock.observe(replace(ticket, **changes), now)
        event = StatusChangeEvent(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            old_status=current,
            new_status=new_status,
            actor_id=identity.actor_id,
            actor_role=identity.role,
            occurred_at=now,
        )
        return TransitionResult(
            ticket=updated,
            sla=sla,
            event=event,
            breach_latched=updated.sla_breached and not ticket.sla_breached,
        )
