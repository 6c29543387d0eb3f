"""
Helpdesk SLA - Main Application
================================

SLA policy administration and breach detection for a helpdesk.

Modules:
- SLA: per-priority policies and the breach scanner

Clean Architecture Layers:
- Interfaces: FastAPI controllers, CLI
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, in-memory stores, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from helpdesk.config import Settings, get_settings
from helpdesk.infrastructure.database import (
    close_database,
    create_session_maker,
    create_tables,
    init_database,
)
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)
from helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from helpdesk.sla.application import (
    Clock,
    ISLAPolicyRepository,
    ITicketRepository,
    SLABreachScanner,
    SLAPolicyService,
)
from helpdesk.sla.infrastructure import (
    InMemorySLAPolicyRepository,
    InMemoryTicketRepository,
    SLABreachScheduler,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
    run_breach_scan,
)
from helpdesk.sla.interfaces import sla_router

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    policy_repository: Optional[ISLAPolicyRepository] = None,
    ticket_repository: Optional[ITicketRepository] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build the application.

    Repositories are created at startup from the settings unless both are
    passed in. Services are built once and shared through ``app.state``.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Build repositories (database or in-memory)
        3. Build the policy service and the breach scanner
        4. Start the breach scan scheduler

        SHUTDOWN:
        1. Stop the scheduler
        2. Close database connections
        """
        # === STARTUP ===
        setup_logging(level=settings.log_level, environment=settings.environment)
        logger.info("Starting Helpdesk SLA service", extra={
            "version": settings.app_version,
            "environment": settings.environment,
            "storage_backend": settings.storage_backend
        })

        engine = None
        policy_repo = policy_repository
        ticket_repo = ticket_repository

        if policy_repo is None or ticket_repo is None:
            if settings.storage_backend == "memory":
                policy_repo = policy_repo or InMemorySLAPolicyRepository()
                ticket_repo = ticket_repo or InMemoryTicketRepository()
            else:
                logger.info("Initializing database")
                engine = init_database(
                    settings.database_url,
                    echo=settings.debug,
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                )
                # Use Alembic migrations in production instead
                if settings.create_tables_on_startup:
                    logger.info("Creating database tables")
                    await create_tables(engine)

                session_maker = create_session_maker(engine)
                policy_repo = policy_repo or SQLAlchemySLAPolicyRepository(session_maker)
                ticket_repo = ticket_repo or SQLAlchemyTicketRepository(session_maker)

        policy_service = SLAPolicyService(policy_repo)
        breach_scanner = SLABreachScanner(policy_repo, ticket_repo, clock=clock)

        scheduler = None
        if settings.sla_scan_interval_seconds > 0:
            async def sla_breach_scan_job():
                """Background breach scan over every owner."""
                await run_breach_scan(policy_repo, breach_scanner)

            scheduler = SLABreachScheduler(
                interval_seconds=settings.sla_scan_interval_seconds,
                misfire_grace_seconds=settings.sla_scan_misfire_grace_seconds
            )
            await scheduler.start(sla_breach_scan_job)
        else:
            logger.info("SLA breach scheduler disabled")

        # Store services in app state for dependency injection
        app.state.settings = settings
        app.state.sla_policy_service = policy_service
        app.state.sla_breach_scanner = breach_scanner
        app.state.sla_scheduler = scheduler

        logger.info("Helpdesk SLA service started successfully")

        yield  # Application runs here

        # === SHUTDOWN ===
        logger.info("Shutting down Helpdesk SLA service")

        if scheduler:
            await scheduler.stop()

        if engine is not None:
            await close_database(engine)

        logger.info("Helpdesk SLA service shutdown complete")

    app = FastAPI(
        title="Helpdesk SLA API",
        description="""
    ## SLA policies and breach detection

    **Endpoints:**
    - `GET /sla-policies` - List policies (search, filters, pagination)
    - `POST /sla-policies` - Create a policy for one priority
    - `GET /sla-policies/{id}` - Get a policy
    - `PATCH /sla-policies/{id}` - Partially update a policy
    - `DELETE /sla-policies/{id}` - Delete a policy
    - `POST /sla-policies/{id}/toggle-active` - Activate or deactivate a policy
    - `GET /sla-policies/check-breaches` - Scan open tickets and flag breaches

    Every request is scoped to the owner in the `X-Owner-Id` header.

    **Rules:**
    - At most one active policy per priority
    - First response must be due before resolution
    - A ticket is flagged at most once; first-response breaches take precedence
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    # Last added runs first: the correlation id must exist before request logging
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    register_exception_handlers(app)

    # === Include Module Routers ===
    app.include_router(sla_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "storage_backend": "database",
                            "sla_scheduler": "running"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        scheduler = getattr(request.app.state, "sla_scheduler", None)
        if scheduler is None:
            scheduler_state = "disabled"
        else:
            scheduler_state = "running" if scheduler.is_running else "stopped"

        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "storage_backend": settings.storage_backend,
                "sla_scheduler": scheduler_state
            }
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Helpdesk SLA",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "sla": {
                    "prefix": "/sla-policies",
                    "endpoints": [
                        "GET /sla-policies - List policies",
                        "POST /sla-policies - Create policy",
                        "GET /sla-policies/check-breaches - Run breach scan",
                        "GET /sla-policies/{id} - Get policy",
                        "PATCH /sla-policies/{id} - Update policy",
                        "DELETE /sla-policies/{id} - Delete policy",
                        "POST /sla-policies/{id}/toggle-active - Toggle policy"
                    ]
                }
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
