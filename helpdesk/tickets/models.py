from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .enums import ChangeType, Role, TicketPriority, TicketStatus
from .errors import ValidationError

MAX_TITLE_LENGTH = 500


@dataclass(slots=True, frozen=True)
class Ticket:
    """Authoritative ticket record exchanged with the storage collaborator.

    Snapshots are immutable; every change produces a new instance through
    :func:`dataclasses.replace`. Derived SLA flags live in :class:`SlaStatus`
    and are never stored here, with the exception of the ``sla_breached``
    latch.
    """

    id: str
    ticket_number: str
    title: str
    description: str
    priority: TicketPriority
    status: TicketStatus
    customer_id: str
    created_at: datetime
    updated_at: datetime
    sla_response_due_at: datetime
    sla_resolution_due_at: datetime
    assigned_agent_id: str | None = None
    first_response_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    sla_breached: bool = False
    revision: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.priority, TicketPriority):
            raise ValidationError(
                f"Unrecognised priority: {self.priority!r}", field="priority", value=self.priority
            )
        if not isinstance(self.status, TicketStatus):
            raise ValidationError(f"Unrecognised status: {self.status!r}", field="status", value=self.status)
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                f"Title cannot exceed {MAX_TITLE_LENGTH} characters", field="title", value=len(self.title)
            )
        if self.sla_response_due_at > self.sla_resolution_due_at:
            raise ValidationError(
                "Response deadline cannot be after the resolution deadline",
                field="sla_response_due_at",
            )


@dataclass(slots=True, frozen=True)
class Comment:
    """Single entry of a ticket's append-only comment thread."""

    id: str
    ticket_id: str
    author_id: str
    author_role: Role
    content: str
    is_internal: bool
    created_at: datetime


@dataclass(slots=True, frozen=True)
class TicketHistoryEntry:
    """Audit entry describing a discrete change to a ticket."""

    id: str
    ticket_id: str
    change_type: ChangeType
    actor_id: str
    field_name: str
    old_value: str | None
    new_value: str | None
    created_at: datetime


@dataclass(slots=True, frozen=True)
class SlaStatus:
    """SLA flags recomputed against the current time on every read."""

    minutes_until_due: int | None
    is_overdue: bool
    sla_breached: bool
    escalated: bool


@dataclass(slots=True, frozen=True)
class TicketView:
    """A ticket snapshot together with its derived SLA state."""

    ticket: Ticket
    sla: SlaStatus
    comment_count: int = 0


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated caller; ``role`` is ``None`` when it was not recognised."""

    actor_id: str
    role: Role | None

    @classmethod
    def of(cls, actor_id: str, role: Role | str | None) -> "Identity":
        return cls(actor_id=actor_id, role=Role.parse(role))
