from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import asyncpg

from .enums import ChangeType, Role, TicketPriority, TicketStatus
from .errors import ConcurrencyConflictError
from .models import Comment, Ticket, TicketHistoryEntry

_TICKET_COLUMNS = """
    id, ticket_number, title, description, priority, status, customer_id, assigned_agent_id,
    created_at, updated_at, sla_response_due_at, sla_resolution_due_at, first_response_at,
    resolved_at, closed_at, sla_breached, revision
"""


class PostgresTicketRepository:
    """Persistence helper wrapping `tickets`, `ticket_comments` and `ticket_history`."""

    _CREATE_SEQUENCE_SQL = """
    CREATE SEQUENCE IF NOT EXISTS ticket_number_seq
    """

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id TEXT PRIMARY KEY,
        ticket_number TEXT NOT NULL UNIQUE,
        title VARCHAR(500) NOT NULL,
        description TEXT NOT NULL,
        priority TEXT NOT NULL,
        status TEXT NOT NULL,
        customer_id TEXT NOT NULL,
        assigned_agent_id TEXT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        sla_response_due_at TIMESTAMPTZ NOT NULL,
        sla_resolution_due_at TIMESTAMPTZ NOT NULL,
        first_response_at TIMESTAMPTZ NULL,
        resolved_at TIMESTAMPTZ NULL,
        closed_at TIMESTAMPTZ NULL,
        sla_breached BOOLEAN NOT NULL DEFAULT FALSE,
        revision INTEGER NOT NULL DEFAULT 1
    )
    """

    _CREATE_COMMENTS_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_comments (
        seq BIGSERIAL PRIMARY KEY,
        id TEXT NOT NULL UNIQUE,
        ticket_id TEXT NOT NULL REFERENCES tickets(id),
        author_id TEXT NOT NULL,
        author_role TEXT NOT NULL,
        content TEXT NOT NULL,
        is_internal BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL
    )
    """

    _CREATE_HISTORY_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_history (
        seq BIGSERIAL PRIMARY KEY,
        id TEXT NOT NULL UNIQUE,
        ticket_id TEXT NOT NULL REFERENCES tickets(id),
        change_type TEXT NOT NULL,
        actor_id TEXT NOT NULL,
        field_name TEXT NOT NULL,
        old_value TEXT NULL,
        new_value TEXT NULL,
        created_at TIMESTAMPTZ NOT NULL
    )
    """

    _NEXT_SEQUENCE_SQL = "SELECT nextval('ticket_number_seq')"

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets ({_TICKET_COLUMNS})
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, 1)
    RETURNING {_TICKET_COLUMNS}
    """

    _UPDATE_TICKET_SQL = f"""
    UPDATE tickets
    SET status = $3,
        assigned_agent_id = $4,
        updated_at = $5,
        first_response_at = $6,
        resolved_at = $7,
        closed_at = $8,
        sla_breached = $9,
        revision = revision + 1
    WHERE id = $1 AND revision = $2
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = $1
    """

    _SELECT_REVISION_SQL = """
    SELECT revision FROM tickets WHERE id = $1
    """

    _LIST_TICKETS_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE ($1::TEXT IS NULL OR customer_id = $1)
      AND ($2::TEXT IS NULL OR assigned_agent_id = $2)
    ORDER BY created_at DESC
    """

    _INSERT_COMMENT_SQL = """
    INSERT INTO ticket_comments (id, ticket_id, author_id, author_role, content, is_internal, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
    """

    _SELECT_COMMENTS_SQL = """
    SELECT id, ticket_id, author_id, author_role, content, is_internal, created_at
    FROM ticket_comments
    WHERE ticket_id = $1
    ORDER BY seq ASC
    """

    _COUNT_COMMENTS_SQL = """
    SELECT COUNT(*) FROM ticket_comments WHERE ticket_id = $1
    """

    _INSERT_HISTORY_SQL = """
    INSERT INTO ticket_history (id, ticket_id, change_type, actor_id, field_name, old_value, new_value, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
    """

    _SELECT_HISTORY_SQL = """
    SELECT id, ticket_id, change_type, actor_id, field_name, old_value, new_value, created_at
    FROM ticket_history
    WHERE ticket_id = $1
    ORDER BY seq ASC
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_SEQUENCE_SQL)
            await connection.execute(self._CREATE_TICKETS_SQL)
            await connection.execute(self._CREATE_COMMENTS_SQL)
            await connection.execute(self._CREATE_HISTORY_SQL)

    async def next_ticket_sequence(self) -> int:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._NEXT_SEQUENCE_SQL)
        return int(value)

    async def create_ticket(self, ticket: Ticket, history: Sequence[TicketHistoryEntry] = ()) -> Ticket:
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._INSERT_TICKET_SQL,
                    ticket.id,
                    ticket.ticket_number,
                    ticket.title,
                    ticket.description,
                    ticket.priority.value,
                    ticket.status.value,
                    ticket.customer_id,
                    ticket.assigned_agent_id,
                    ticket.created_at,
                    ticket.updated_at,
                    ticket.sla_response_due_at,
                    ticket.sla_resolution_due_at,
                    ticket.first_response_at,
                    ticket.resolved_at,
                    ticket.closed_at,
                    ticket.sla_breached,
                )
                if row is None:
                    raise RuntimeError("Failed to insert ticket")
                for entry in history:
                    await self._insert_history(connection, entry)
        return self._row_to_ticket(row)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def list_tickets(
        self, *, customer_id: str | None = None, assigned_agent_id: str | None = None
    ) -> list[Ticket]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._LIST_TICKETS_SQL, customer_id, assigned_agent_id)
        return [self._row_to_ticket(row) for row in rows]

    async def save_ticket(
        self,
        ticket: Ticket,
        *,
        expected_revision: int,
        history: Sequence[TicketHistoryEntry] = (),
        comments: Sequence[Comment] = (),
    ) -> Ticket:
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._UPDATE_TICKET_SQL,
                    ticket.id,
                    expected_revision,
                    ticket.status.value,
                    ticket.assigned_agent_id,
                    ticket.updated_at,
                    ticket.first_response_at,
                    ticket.resolved_at,
                    ticket.closed_at,
                    ticket.sla_breached,
                )
                if row is None:
                    actual = await connection.fetchval(self._SELECT_REVISION_SQL, ticket.id)
                    raise ConcurrencyConflictError(ticket.id, expected_revision, actual)
                for entry in history:
                    await self._insert_history(connection, entry)
                for comment in comments:
                    await self._insert_comment(connection, comment)
        return self._row_to_ticket(row)

    async def add_comment(self, comment: Comment) -> Comment:
        async with self._pool.acquire() as connection:
            await self._insert_comment(connection, comment)
        return comment

    async def list_comments(self, ticket_id: str) -> list[Comment]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_COMMENTS_SQL, ticket_id)
        return [self._row_to_comment(row) for row in rows]

    async def count_comments(self, ticket_id: str) -> int:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._COUNT_COMMENTS_SQL, ticket_id)
        return int(value or 0)

    async def list_history(self, ticket_id: str) -> list[TicketHistoryEntry]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_HISTORY_SQL, ticket_id)
        return [self._row_to_history(row) for row in rows]

    async def _insert_comment(self, connection: Any, comment: Comment) -> None:
        await connection.execute(
            self._INSERT_COMMENT_SQL,
            comment.id,
            comment.ticket_id,
            comment.author_id,
            comment.author_role.value,
            comment.content,
            comment.is_internal,
            comment.created_at,
        )

    async def _insert_history(self, connection: Any, entry: TicketHistoryEntry) -> None:
        await connection.execute(
            self._INSERT_HISTORY_SQL,
            entry.id,
            entry.ticket_id,
            entry.change_type.value,
            entry.actor_id,
            entry.field_name,
            entry.old_value,
            entry.new_value,
            entry.created_at,
        )

    @staticmethod
    def _row_to_ticket(row: Mapping[str, Any]) -> Ticket:
        return Ticket(
            id=str(row["id"]),
            ticket_number=str(row["ticket_number"]),
            title=str(row["title"]),
            description=str(row["description"]),
            priority=TicketPriority.parse(row["priority"]),
            status=TicketStatus(str(row["status"])),
            customer_id=str(row["customer_id"]),
            assigned_agent_id=_optional_str(row["assigned_agent_id"]),
            created_at=_ensure_datetime(row["created_at"]),
            updated_at=_ensure_datetime(row["updated_at"]),
            sla_response_due_at=_ensure_datetime(row["sla_response_due_at"]),
            sla_resolution_due_at=_ensure_datetime(row["sla_resolution_due_at"]),
            first_response_at=_optional_datetime(row["first_response_at"]),
            resolved_at=_optional_datetime(row["resolved_at"]),
            closed_at=_optional_datetime(row["closed_at"]),
            sla_breached=bool(row["sla_breached"]),
            revision=int(row["revision"]),
        )

    @staticmethod
    def _row_to_comment(row: Mapping[str, Any]) -> Comment:
        return Comment(
            id=str(row["id"]),
            ticket_id=str(row["ticket_id"]),
            author_id=str(row["author_id"]),
            author_role=Role(str(row["author_role"])),
            content=str(row["content"]),
            is_internal=bool(row["is_internal"]),
            created_at=_ensure_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_history(row: Mapping[str, Any]) -> TicketHistoryEntry:
        return TicketHistoryEntry(
            id=str(row["id"]),
            ticket_id=str(row["ticket_id"]),
            change_type=ChangeType(str(row["change_type"])),
            actor_id=str(row["actor_id"]),
            field_name=str(row["field_name"]),
            old_value=_optional_str(row["old_value"]),
            new_value=_optional_str(row["new_value"]),
            created_at=_ensure_datetime(row["created_at"]),
        )


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _optional_datetime(value: Any) -> datetime | None:
    return None if value is None else _ensure_datetime(value)


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.fromisoformat(str(value))
