from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI

from helpdesk.api.routes import dashboard, ping, tickets
from helpdesk.core.config import Settings, get_settings
from helpdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from helpdesk.dependencies.auth import parse_token_map
from helpdesk.tickets.events import LoggingEventPublisher
from helpdesk.tickets.postgres import PostgresTicketRepository
from helpdesk.tickets.repository import InMemoryTicketRepository, InMemoryUserDirectory, TicketRepository
from helpdesk.tickets.service import TicketService

logger = logging.getLogger(__name__)


def build_directory(settings: Settings) -> InMemoryUserDirectory:
    """Known users are exactly the identities configured for authentication."""

    directory = InMemoryUserDirectory()
    for identity in parse_token_map(settings.auth_tokens).values():
        if identity.role is not None:
            directory.register(identity.actor_id, identity.role)
    return directory


def build_ticket_service(settings: Settings, repository: TicketRepository) -> TicketService:
    return TicketService(
        repository,
        publisher=LoggingEventPublisher(),
        directory=build_directory(settings),
        ticket_number_prefix=settings.ticket_number_prefix,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    configure_logging(settings)
    tracer_provider = init_tracer(settings)
    app.state.tracer_provider = tracer_provider

    pool: asyncpg.Pool | None = None
    repository: TicketRepository
    if settings.storage_backend == "postgres":
        pool = await asyncpg.create_pool(
            dsn=settings.postgres_dsn,
            min_size=settings.postgres_pool_min_size,
            max_size=settings.postgres_pool_max_size,
        )
        postgres_repository = PostgresTicketRepository(pool)
        await postgres_repository.ensure_schema()
        repository = postgres_repository
    else:
        repository = InMemoryTicketRepository()

    app.state.ticket_service = build_ticket_service(settings, repository)
    logger.info("Ticket service ready (%s storage)", settings.storage_backend)
    try:
        yield
    finally:
        app.state.ticket_service = None
        if pool is not None:
            await pool.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(dashboard.router)
    return app


app = create_app()
