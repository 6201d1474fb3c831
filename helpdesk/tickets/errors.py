from __future__ import annotations

from typing import Any


class TicketServiceError(RuntimeError):
    """Base error for ticket lifecycle issues."""


class ValidationError(TicketServiceError):
    """Raised for malformed input such as an empty title or unknown priority."""

    def __init__(self, message: str, *, field: str | None = None, value: Any = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value

    @property
    def details(self) -> dict[str, Any]:
        return {"field": self.field, "message": str(self)}


class Forbidden(TicketServiceError):
    """Raised when the access policy denies an action."""

    def __init__(self, action: str, *, role: str | None = None, ticket_id: str | None = None) -> None:
        target = f" on ticket {ticket_id}" if ticket_id else ""
        super().__init__(f"Role {role or 'unknown'} may not {action}{target}")
        self.action = action
        self.role = role
        self.ticket_id = ticket_id


class InvalidTransition(TicketServiceError):
    """Raised when a status change targets an unrecognised status."""


class NotFound(TicketServiceError):
    """Raised when a referenced ticket or user does not exist."""

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class DependencyError(TicketServiceError):
    """Raised when the storage collaborator fails; the cause is chained."""


class ConcurrencyConflictError(RuntimeError):
    """Raised by repositories when a write loses an optimistic revision check."""

    def __init__(self, ticket_id: str, expected: int, actual: int | None) -> None:
        super().__init__(
            f"Ticket {ticket_id} revision mismatch: expected {expected}, found {actual}"
        )
        self.ticket_id = ticket_id
        self.expected = expected
        self.actual = actual
