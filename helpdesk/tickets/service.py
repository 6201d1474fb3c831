from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Sequence

from opentelemetry import trace

from .access import AccessPolicy, AccessScope, ScopeFilter, parse_scope_filter
from .clock import Clock, SystemClock
from .comments import CommentThread
from .enums import Action, ChangeType, Role, TicketPriority, TicketStatus
from .errors import ConcurrencyConflictError, DependencyError, Forbidden, NotFound, TicketServiceError, ValidationError
from .events import EventPublisher, LoggingEventPublisher, StatusChangeEvent
from .models import MAX_TITLE_LENGTH, Comment, Identity, Ticket, TicketHistoryEntry, TicketView
from .repository import TicketRepository, UserDirectory
from .sla import SlaClock, SlaPolicy
from .state import TicketStateMachine
from .stats import AgentStats, DashboardStats, summarize_agent, summarize_tickets

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SYSTEM_ACTOR = "system"
_RESPONDER_ROLES = frozenset({Role.AGENT, Role.MANAGER, Role.ADMIN})
_ASSIGNABLE_ROLES = frozenset({Role.AGENT, Role.MANAGER})
_DEFAULT_SCOPES = {
    Role.CUSTOMER: ScopeFilter.MY_TICKETS,
    Role.AGENT: ScopeFilter.ASSIGNED,
}


class TicketService:
    """High level orchestration for ticket lifecycle, SLA tracking and comments.

    The caller's identity is passed into every operation. The service itself
    keeps no per-ticket state; it loads a snapshot, computes the next one with
    the pure core components and hands it to the repository, which enforces
    the revision check.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        clock: Clock | None = None,
        sla_policy: SlaPolicy | None = None,
        access_policy: AccessPolicy | None = None,
        publisher: EventPublisher | None = None,
        directory: UserDirectory | None = None,
        ticket_number_prefix: str = "TKT",
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._sla_policy = sla_policy or SlaPolicy()
        self._policy = access_policy or AccessPolicy()
        self._sla_clock = SlaClock()
        self._state_machine = TicketStateMachine(self._policy, self._sla_clock)
        self._comments = CommentThread(self._policy)
        self._publisher = publisher or LoggingEventPublisher()
        self._directory = directory
        self._ticket_number_prefix = ticket_number_prefix

    @asynccontextmanager
    async def _storage(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except TicketServiceError:
            raise
        except Exception as exc:
            logger.error("Storage failure during %s: %s", operation, exc)
            raise DependencyError(f"Storage failure during {operation}: {exc}") from exc

    async def create_ticket(
        self,
        identity: Identity,
        *,
        title: str,
        description: str,
        priority: TicketPriority | str = TicketPriority.MEDIUM,
    ) -> TicketView:
        with tracer.start_as_current_span("tickets.create"):
            self._policy.require(identity, Action.CREATE)
            clean_title = _require_text(title, "title")
            if len(clean_title) > MAX_TITLE_LENGTH:
                raise ValidationError(
                    f"Title cannot exceed {MAX_TITLE_LENGTH} characters", field="title", value=len(clean_title)
                )
            clean_description = _require_text(description, "description")
            parsed_priority = TicketPriority.parse(priority)

            now = self._clock.now()
            async with self._storage("create_ticket"):
                sequence = await self._repository.next_ticket_sequence()
            response_due, resolution_due = self._sla_policy.due_timestamps(parsed_priority, now)
            ticket = Ticket(
                id=str(uuid.uuid4()),
                ticket_number=f"{self._ticket_number_prefix}-{now.year}-{sequence:06d}",
                title=clean_title,
                description=clean_description,
                priority=parsed_priority,
                status=TicketStateMachine.initial_state(),
                customer_id=identity.actor_id,
                created_at=now,
                updated_at=now,
                sla_response_due_at=response_due,
                sla_resolution_due_at=resolution_due,
            )
            self._policy.require(identity, Action.CREATE, ticket)
            history = [
                _history(ticket, ChangeType.CREATED, identity.actor_id, "general", None, "Ticket created", now)
            ]
            async with self._storage("create_ticket"):
                stored = await self._repository.create_ticket(ticket, history)

            logger.info(
                "Ticket %s created by %s with priority %s", stored.ticket_number, identity.actor_id, parsed_priority.value
            )
            return TicketView(ticket=stored, sla=self._sla_clock.derive_status(stored, now), comment_count=0)

    async def get_ticket(self, identity: Identity, ticket_id: str) -> TicketView:
        with tracer.start_as_current_span("tickets.get"):
            ticket = await self._load(ticket_id)
            self._policy.require(identity, Action.VIEW, ticket)
            return await self._view(ticket, self._clock.now())

    async def list_tickets(
        self, identity: Identity, scope: ScopeFilter | str | None = None
    ) -> list[TicketView]:
        with tracer.start_as_current_span("tickets.list"):
            if scope is None:
                scope_filter = _DEFAULT_SCOPES.get(identity.role, ScopeFilter.ALL) if identity.role else ScopeFilter.ALL
            else:
                scope_filter = parse_scope_filter(scope)
            self._policy.check_scope_filter(identity, scope_filter)

            async with self._storage("list_tickets"):
                if scope_filter == ScopeFilter.MY_TICKETS:
                    tickets = await self._repository.list_tickets(customer_id=identity.actor_id)
                elif scope_filter == ScopeFilter.ASSIGNED:
                    tickets = await self._repository.list_tickets(assigned_agent_id=identity.actor_id)
                else:
                    tickets = await self._repository.list_tickets()

            now = self._clock.now()
            return [
                await self._view(ticket, now)
                for ticket in tickets
                if self._policy.authorize(identity.role, Action.VIEW, ticket, identity.actor_id)
            ]

    async def change_status(
        self, identity: Identity, ticket_id: str, new_status: TicketStatus | str
    ) -> TicketView:
        with tracer.start_as_current_span("tickets.change_status"):
            ticket = await self._load(ticket_id)
            now = self._clock.now()
            result = self._state_machine.apply_transition(ticket, new_status, identity, now)
            if not result.changed and not result.breach_latched:
                return TicketView(ticket=ticket, sla=result.sla, comment_count=await self._count_comments(ticket))

            history: list[TicketHistoryEntry] = []
            if result.event is not None:
                history.append(
                    _history(
                        ticket,
                        ChangeType.STATUS_CHANGED,
                        identity.actor_id,
                        "status",
                        result.event.old_status.value,
                        result.event.new_status.value,
                        now,
                    )
                )
            if result.breach_latched:
                history.append(_breach_entry(ticket, now))

            stored = await self._save(ticket, result.ticket, history=history)
            if result.event is not None:
                logger.info(
                    "Ticket %s moved %s -> %s by %s",
                    ticket.ticket_number,
                    result.event.old_status.value,
                    result.event.new_status.value,
                    identity.actor_id,
                )
                self._emit(result.event)
            return TicketView(ticket=stored, sla=result.sla, comment_count=await self._count_comments(stored))

    async def assign_ticket(self, identity: Identity, ticket_id: str, agent_id: str) -> TicketView:
        with tracer.start_as_current_span("tickets.assign"):
            ticket = await self._load(ticket_id)
            self._policy.require(identity, Action.ASSIGN, ticket)
            assignee = _require_text(agent_id, "agent_id")
            if self._directory is not None:
                async with self._storage("assign_ticket"):
                    role = await self._directory.get_role(assignee)
                if role is None:
                    raise NotFound("User", assignee)
                if role not in _ASSIGNABLE_ROLES:
                    raise ValidationError("User is not an agent or manager", field="agent_id", value=assignee)

            now = self._clock.now()
            if ticket.assigned_agent_id == assignee:
                return await self._view(ticket, now)

            updated, sla = self._sla_clock.observe(replace(ticket, assigned_agent_id=assignee, updated_at=now), now)
            history = [
                _history(
                    ticket,
                    ChangeType.ASSIGNED,
                    identity.actor_id,
                    "assigned_agent",
                    ticket.assigned_agent_id,
                    assignee,
                    now,
                )
            ]
            if updated.sla_breached and not ticket.sla_breached:
                history.append(_breach_entry(ticket, now))
            stored = await self._save(ticket, updated, history=history)
            logger.info("Ticket %s assigned to %s by %s", ticket.ticket_number, assignee, identity.actor_id)
            return TicketView(ticket=stored, sla=sla, comment_count=await self._count_comments(stored))

    async def add_comment(
        self, identity: Identity, ticket_id: str, content: str, *, is_internal: bool = False
    ) -> Comment:
        with tracer.start_as_current_span("tickets.add_comment"):
            ticket = await self._load(ticket_id)
            now = self._clock.now()
            comment = self._comments.add_comment(ticket, identity, content, is_internal=is_internal, now=now)

            candidate = ticket
            if (
                not comment.is_internal
                and comment.author_role in _RESPONDER_ROLES
                and ticket.first_response_at is None
            ):
                candidate = replace(ticket, first_response_at=now, updated_at=now)
            updated, _ = self._sla_clock.observe(candidate, now)

            if updated is ticket:
                async with self._storage("add_comment"):
                    await self._repository.add_comment(comment)
            else:
                history = []
                if updated.sla_breached and not ticket.sla_breached:
                    history.append(_breach_entry(ticket, now))
                await self._save(ticket, updated, history=history, comments=[comment])
            logger.debug("Comment %s added to ticket %s", comment.id, ticket.ticket_number)
            return comment

    async def list_comments(self, identity: Identity, ticket_id: str) -> list[Comment]:
        with tracer.start_as_current_span("tickets.list_comments"):
            ticket = await self._load(ticket_id)
            async with self._storage("list_comments"):
                comments = await self._repository.list_comments(ticket.id)
            return self._comments.list_comments(ticket, comments, identity)

    async def get_history(self, identity: Identity, ticket_id: str) -> list[TicketHistoryEntry]:
        with tracer.start_as_current_span("tickets.history"):
            ticket = await self._load(ticket_id)
            self._policy.require(identity, Action.VIEW, ticket)
            async with self._storage("get_history"):
                return await self._repository.list_history(ticket.id)

    async def get_dashboard(self, identity: Identity) -> DashboardStats:
        with tracer.start_as_current_span("tickets.dashboard"):
            scope = self._staff_scope(identity, "view dashboard")
            async with self._storage("get_dashboard"):
                if scope == AccessScope.ANY:
                    tickets = await self._repository.list_tickets()
                else:
                    tickets = await self._repository.list_tickets(assigned_agent_id=identity.actor_id)
            return summarize_tickets(tickets, self._clock.now())

    async def get_agent_stats(self, identity: Identity) -> AgentStats:
        """Statistics over the tickets assigned to the caller."""

        with tracer.start_as_current_span("tickets.agent_stats"):
            self._staff_scope(identity, "view agent statistics")
            async with self._storage("get_agent_stats"):
                tickets = await self._repository.list_tickets(assigned_agent_id=identity.actor_id)
            return summarize_agent(identity.actor_id, tickets, self._clock.now())

    async def list_agent_stats(self, identity: Identity) -> list[AgentStats]:
        """Per-agent statistics for every known agent; MANAGER and ADMIN only.

        Without a user directory the agents are those holding assignments.
        """

        with tracer.start_as_current_span("tickets.list_agent_stats"):
            if self._staff_scope(identity, "view agent statistics") != AccessScope.ANY:
                raise Forbidden("view agent statistics", role=identity.role.value if identity.role else None)
            async with self._storage("list_agent_stats"):
                tickets = await self._repository.list_tickets()
                if self._directory is not None:
                    agent_ids = await self._directory.list_users(Role.AGENT)
                else:
                    agent_ids = sorted({t.assigned_agent_id for t in tickets if t.assigned_agent_id is not None})
            now = self._clock.now()
            return [summarize_agent(agent_id, tickets, now) for agent_id in agent_ids]

    def _staff_scope(self, identity: Identity, action: str) -> AccessScope:
        scope = self._policy.scope_for(identity.role, Action.VIEW)
        if scope not in (AccessScope.ANY, AccessScope.ASSIGNED):
            raise Forbidden(action, role=identity.role.value if identity.role else None)
        return scope

    async def _load(self, ticket_id: str) -> Ticket:
        async with self._storage("get_ticket"):
            ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise NotFound("Ticket", ticket_id)
        return ticket

    async def _save(
        self,
        original: Ticket,
        updated: Ticket,
        *,
        history: Sequence[TicketHistoryEntry] = (),
        comments: Sequence[Comment] = (),
    ) -> Ticket:
        async with self._storage("save_ticket"):
            return await self._repository.save_ticket(
                updated, expected_revision=original.revision, history=history, comments=comments
            )

    async def _count_comments(self, ticket: Ticket) -> int:
        async with self._storage("count_comments"):
            return await self._repository.count_comments(ticket.id)

    async def _view(self, ticket: Ticket, now: datetime) -> TicketView:
        """Derive SLA flags, writing the breach latch back when it fires.

        A write-back that loses the revision race is skipped: the concurrent
        writer holds a newer snapshot and the next read latches it. The view
        still reports the derived flags.
        """

        observed, sla = self._sla_clock.observe(ticket, now)
        if observed is not ticket:
            async with self._storage("save_ticket"):
                try:
                    observed = await self._repository.save_ticket(
                        observed, expected_revision=ticket.revision, history=[_breach_entry(ticket, now)]
                    )
                except ConcurrencyConflictError as exc:
                    logger.info("Skipping breach write-back for ticket %s: %s", ticket.id, exc)
        return TicketView(ticket=observed, sla=sla, comment_count=await self._count_comments(observed))

    def _emit(self, event: StatusChangeEvent) -> None:
        try:
            self._publisher.publish(event)
        except Exception:
            logger.warning("Dropping status change event for ticket %s", event.ticket_id, exc_info=True)


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field.replace('_', ' ').capitalize()} is required", field=field, value=value)
    return text


def _history(
    ticket: Ticket,
    change_type: ChangeType,
    actor_id: str,
    field_name: str,
    old_value: str | None,
    new_value: str | None,
    now: datetime,
) -> TicketHistoryEntry:
    return TicketHistoryEntry(
        id=str(uuid.uuid4()),
        ticket_id=ticket.id,
        change_type=change_type,
        actor_id=actor_id,
        field_name=field_name,
        old_value=old_value,
        new_value=new_value,
        created_at=now,
    )


def _breach_entry(ticket: Ticket, now: datetime) -> TicketHistoryEntry:
    return _history(ticket, ChangeType.SLA_BREACHED, SYSTEM_ACTOR, "sla_breached", "false", "true", now)
