from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Mapping, Protocol, Sequence

from .enums import Role
from .errors import ConcurrencyConflictError
from .models import Comment, Ticket, TicketHistoryEntry


class TicketRepository(Protocol):
    """Storage collaborator contract.

    ``save_ticket`` must apply the ticket, history entries and comments in a
    single atomic write, guarded by the ticket's ``revision``.
    """

    async def next_ticket_sequence(self) -> int:
        ...

    async def create_ticket(self, ticket: Ticket, history: Sequence[TicketHistoryEntry] = ()) -> Ticket:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_tickets(
        self, *, customer_id: str | None = None, assigned_agent_id: str | None = None
    ) -> list[Ticket]:
        ...

    async def save_ticket(
        self,
        ticket: Ticket,
        *,
        expected_revision: int,
        history: Sequence[TicketHistoryEntry] = (),
        comments: Sequence[Comment] = (),
    ) -> Ticket:
        ...

    async def add_comment(self, comment: Comment) -> Comment:
        ...

    async def list_comments(self, ticket_id: str) -> list[Comment]:
        ...

    async def count_comments(self, ticket_id: str) -> int:
        ...

    async def list_history(self, ticket_id: str) -> list[TicketHistoryEntry]:
        ...


class InMemoryTicketRepository:
    """Process-local repository used for development and tests."""

    def __init__(self) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._comments: dict[str, list[Comment]] = {}
        self._history: dict[str, list[TicketHistoryEntry]] = {}
        self._sequence = 0
        self._lock = asyncio.Lock()

    async def next_ticket_sequence(self) -> int:
        async with self._lock:
            self._sequence += 1
            return self._sequence

    async def create_ticket(self, ticket: Ticket, history: Sequence[TicketHistoryEntry] = ()) -> Ticket:
        async with self._lock:
            if ticket.id in self._tickets:
                raise ConcurrencyConflictError(ticket.id, 0, self._tickets[ticket.id].revision)
            stored = replace(ticket, revision=1)
            self._tickets[ticket.id] = stored
            self._comments[ticket.id] = []
            self._history[ticket.id] = list(history)
            return stored

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        return self._tickets.get(ticket_id)

    async def list_tickets(
        self, *, customer_id: str | None = None, assigned_agent_id: str | None = None
    ) -> list[Ticket]:
        tickets = [
            ticket
            for ticket in self._tickets.values()
            if (customer_id is None or ticket.customer_id == customer_id)
            and (assigned_agent_id is None or ticket.assigned_agent_id == assigned_agent_id)
        ]
        return sorted(tickets, key=lambda ticket: ticket.created_at, reverse=True)

    async def save_ticket(
        self,
        ticket: Ticket,
        *,
        expected_revision: int,
        history: Sequence[TicketHistoryEntry] = (),
        comments: Sequence[Comment] = (),
    ) -> Ticket:
        async with self._lock:
            current = self._tickets.get(ticket.id)
            if current is None or current.revision != expected_revision:
                raise ConcurrencyConflictError(
                    ticket.id, expected_revision, None if current is None else current.revision
                )
            stored = replace(ticket, revision=expected_revision + 1)
            self._tickets[ticket.id] = stored
            self._history[ticket.id].extend(history)
            self._comments[ticket.id].extend(comments)
            return stored

    async def add_comment(self, comment: Comment) -> Comment:
        async with self._lock:
            if comment.ticket_id not in self._tickets:
                raise KeyError(comment.ticket_id)
            self._comments[comment.ticket_id].append(comment)
            return comment

    async def list_comments(self, ticket_id: str) -> list[Comment]:
        return list(self._comments.get(ticket_id, ()))

    async def count_comments(self, ticket_id: str) -> int:
        return len(self._comments.get(ticket_id, ()))

    async def list_history(self, ticket_id: str) -> list[TicketHistoryEntry]:
        return list(self._history.get(ticket_id, ()))


class UserDirectory(Protocol):
    """Resolves user roles for assignment targets."""

    async def get_role(self, user_id: str) -> Role | None:
        ...

    async def list_users(self, role: Role | None = None) -> list[str]:
        ...


class InMemoryUserDirectory:
    def __init__(self, users: Mapping[str, Role | str] | None = None) -> None:
        self._users: dict[str, Role | None] = {
            user_id: Role.parse(role) for user_id, role in (users or {}).items()
        }

    def register(self, user_id: str, role: Role | str) -> None:
        self._users[user_id] = Role.parse(role)

    async def get_role(self, user_id: str) -> Role | None:
        return self._users.get(user_id)

    async def list_users(self, role: Role | None = None) -> list[str]:
        return sorted(user_id for user_id, user_role in self._users.items() if role is None or user_role == role)
