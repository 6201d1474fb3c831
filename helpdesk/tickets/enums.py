"""Stable enumeration tokens shared by the ticket core and its collaborators.

The string values are part of the wire contract with existing callers and must
not change.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from .errors import ValidationError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self in (TicketStatus.RESOLVED, TicketStatus.CLOSED)


class TicketPriority(str, Enum):
    """Ticket severity; drives the SLA windows."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Any) -> "TicketPriority":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise ValidationError(f"Unrecognised priority: {value!r}", field="priority", value=value)


class Role(str, Enum):
    """Roles understood by the access policy."""

    CUSTOMER = "CUSTOMER"
    AGENT = "AGENT"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: Any) -> "Role | None":
        """Return the matching role, or ``None`` for anything unrecognised."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return None
        return None


class Action(str, Enum):
    VIEW = "VIEW"
    CREATE = "CREATE"
    CHANGE_STATUS = "CHANGE_STATUS"
    ASSIGN = "ASSIGN"
    COMMENT = "COMMENT"
    VIEW_INTERNAL_COMMENTS = "VIEW_INTERNAL_COMMENTS"


class ChangeType(str, Enum):
    """Kinds of entries recorded in a ticket's history."""

    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNED = "ASSIGNED"
    SLA_BREACHED = "SLA_BREACHED"
