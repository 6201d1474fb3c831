"""Ticket lifecycle, SLA tracking and access control."""

from .access import AccessPolicy, AccessScope, ScopeFilter
from .clock import Clock, FixedClock, SystemClock
from .comments import CommentThread
from .enums import Action, ChangeType, Role, TicketPriority, TicketStatus
from .errors import (
    ConcurrencyConflictError,
    DependencyError,
    Forbidden,
    InvalidTransition,
    NotFound,
    TicketServiceError,
    ValidationError,
)
from .events import EventPublisher, InMemoryEventPublisher, LoggingEventPublisher, StatusChangeEvent
from .models import Comment, Identity, SlaStatus, Ticket, TicketHistoryEntry, TicketView
from .repository import InMemoryTicketRepository, InMemoryUserDirectory, TicketRepository, UserDirectory
from .service import TicketService
from .sla import SlaClock, SlaPolicy, SlaWindow, due_timestamps
from .state import TicketStateMachine, TransitionResult
from .stats import AgentStats, DashboardStats, summarize_agent, summarize_tickets

__all__ = [
    "AccessPolicy",
    "AccessScope",
    "AgentStats",
    "Action",
    "ChangeType",
    "Clock",
    "Comment",
    "CommentThread",
    "ConcurrencyConflictError",
    "DashboardStats",
    "DependencyError",
    "EventPublisher",
    "FixedClock",
    "Forbidden",
    "Identity",
    "InMemoryEventPublisher",
    "InMemoryTicketRepository",
    "InMemoryUserDirectory",
    "InvalidTransition",
    "LoggingEventPublisher",
    "NotFound",
    "Role",
    "ScopeFilter",
    "SlaClock",
    "SlaPolicy",
    "SlaStatus",
    "SlaWindow",
    "StatusChangeEvent",
    "SystemClock",
    "Ticket",
    "TicketHistoryEntry",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketView",
    "TransitionResult",
    "UserDirectory",
    "ValidationError",
    "due_timestamps",
    "summarize_agent",
    "summarize_tickets",
]
