from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from helpdesk.dependencies.auth import CurrentIdentity
from helpdesk.dependencies.tickets import TicketServiceDep
from helpdesk.tickets import errors
from helpdesk.tickets.enums import ChangeType, Role, TicketPriority, TicketStatus
from helpdesk.tickets.models import Comment, TicketHistoryEntry, TicketView

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str
    description: str
    priority: str = Field(default=TicketPriority.MEDIUM.value)


class TicketStatusChangeRequest(BaseModel):
    status: str


class TicketAssignRequest(BaseModel):
    agent_id: str


class CommentCreateRequest(BaseModel):
    content: str
    is_internal: bool = Field(default=False)


class TicketResponse(BaseModel):
    id: str
    ticket_number: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    customer_id: str
    assigned_agent_id: str | None
    created_at: datetime
    updated_at: datetime
    first_response_at: datetime | None
    resolved_at: datetime | None
    sla_response_due_at: datetime
    sla_resolution_due_at: datetime
    minutes_until_due: int | None
    is_overdue: bool
    sla_breached: bool
    escalated: bool
    comment_count: int


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    author_id: str
    author_role: Role
    content: str
    is_internal: bool
    created_at: datetime


class TicketHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    change_type: ChangeType
    actor_id: str
    field_name: str
    old_value: str | None
    new_value: str | None
    created_at: datetime


def _to_response(view: TicketView) -> TicketResponse:
    ticket = view.ticket
    return TicketResponse(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        title=ticket.title,
        description=ticket.description,
        status=ticket.status,
        priority=ticket.priority,
        customer_id=ticket.customer_id,
        assigned_agent_id=ticket.assigned_agent_id,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        first_response_at=ticket.first_response_at,
        resolved_at=ticket.resolved_at,
        sla_response_due_at=ticket.sla_response_due_at,
        sla_resolution_due_at=ticket.sla_resolution_due_at,
        minutes_until_due=view.sla.minutes_until_due,
        is_overdue=view.sla.is_overdue,
        sla_breached=view.sla.sla_breached,
        escalated=view.sla.escalated,
        comment_count=view.comment_count,
    )


def _to_comment_response(comment: Comment) -> CommentResponse:
    return CommentResponse.model_validate(comment)


def _to_history_response(entry: TicketHistoryEntry) -> TicketHistoryResponse:
    return TicketHistoryResponse.model_validate(entry)


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map ticket core errors onto HTTP status codes."""

    try:
        yield
    except errors.ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.details) from exc
    except errors.Forbidden as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except errors.NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except errors.InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except errors.DependencyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    identity: CurrentIdentity,
) -> TicketResponse:
    with translate_errors():
        view = await service.create_ticket(
            identity, title=payload.title, description=payload.description, priority=payload.priority
        )
    return _to_response(view)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    identity: CurrentIdentity,
    scope: str | None = Query(default=None, description="my-tickets, assigned or all"),
) -> list[TicketResponse]:
    with translate_errors():
        views = await service.list_tickets(identity, scope)
    return [_to_response(view) for view in views]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, identity: CurrentIdentity) -> TicketResponse:
    with translate_errors():
        view = await service.get_ticket(identity, ticket_id)
    return _to_response(view)


@router.post("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    identity: CurrentIdentity,
) -> TicketResponse:
    with translate_errors():
        view = await service.change_status(identity, ticket_id, payload.status)
    return _to_response(view)


@router.post("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    identity: CurrentIdentity,
) -> TicketResponse:
    with translate_errors():
        view = await service.assign_ticket(identity, ticket_id, payload.agent_id)
    return _to_response(view)


@router.get("/{ticket_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    ticket_id: str, service: TicketServiceDep, identity: CurrentIdentity
) -> list[CommentResponse]:
    with translate_errors():
        comments = await service.list_comments(identity, ticket_id)
    return [_to_comment_response(comment) for comment in comments]


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    service: TicketServiceDep,
    identity: CurrentIdentity,
) -> CommentResponse:
    with translate_errors():
        comment = await service.add_comment(identity, ticket_id, payload.content, is_internal=payload.is_internal)
    return _to_comment_response(comment)


@router.get("/{ticket_id}/history", response_model=list[TicketHistoryResponse])
async def get_ticket_history(
    ticket_id: str, service: TicketServiceDep, identity: CurrentIdentity
) -> list[TicketHistoryResponse]:
    with translate_errors():
        entries = await service.get_history(identity, ticket_id)
    return [_to_history_response(entry) for entry in entries]
