from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict

from helpdesk.api.routes.tickets import translate_errors
from helpdesk.dependencies.auth import CurrentIdentity
from helpdesk.dependencies.tickets import TicketServiceDep

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DashboardStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_tickets: int
    tickets_by_status: dict[str, int]
    tickets_by_priority: dict[str, int]
    overdue_tickets: int
    sla_breached_tickets: int
    escalated_tickets: int
    sla_compliance_rate: float
    average_response_time_hours: float
    average_resolution_time_hours: float
    generated_at: datetime | None


@router.get("/stats", response_model=DashboardStatsResponse)
async def dashboard_stats(service: TicketServiceDep, identity: CurrentIdentity) -> DashboardStatsResponse:
    with translate_errors():
        stats = await service.get_dashboard(identity)
    return DashboardStatsResponse.model_validate(stats)


class AgentStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    agent_id: str
    assigned_tickets: int
    resolved_tickets: int
    overdue_tickets: int
    sla_breached_tickets: int
    sla_compliance_rate: float
    average_resolution_time_hours: float


@router.get("/agent", response_model=AgentStatsResponse)
async def agent_stats(service: TicketServiceDep, identity: CurrentIdentity) -> AgentStatsResponse:
    with translate_errors():
        stats = await service.get_agent_stats(identity)
    return AgentStatsResponse.model_validate(stats)


@router.get("/agents", response_model=list[AgentStatsResponse])
async def all_agent_stats(service: TicketServiceDep, identity: CurrentIdentity) -> list[AgentStatsResponse]:
    with translate_errors():
        stats = await service.list_agent_stats(identity)
    return [AgentStatsResponse.model_validate(entry) for entry in stats]
