"""
Tenancy Issue Service - Main Application
========================================

Issue and SLA lifecycle engine for rental properties.

Renters raise issues against a property; landlords or management agencies
acknowledge, work and resolve them against a deadline fixed when the
issue was raised.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, state machine
- Infrastructure: Database, YAML config watcher, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration
from src.config import settings

# Infrastructure
from src.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)

# Issue module
from src.issues.application import OverdueSweepService
from src.issues.infrastructure import (
    AgencyConfigManager,
    OverdueSweepScheduler,
    SQLAlchemyIssueRepository,
)
from src.issues.interfaces import issues_router

# Shared
from src.shared.api.middleware import install_middleware
from src.shared.infrastructure.logging import get_logger, log_latency, setup_logging

logger = get_logger(__name__)


async def overdue_sweep_job() -> None:
    """Background overdue sweep; one session per run. Failures are logged by APScheduler."""
    with log_latency(logger, "overdue_sweep"):
        async with get_session_context() as session:
            await OverdueSweepService(SQLAlchemyIssueRepository(session)).sweep()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load agency SLA configuration (yaml backend)
    4. Start the overdue sweep scheduler

    SHUTDOWN:
    1. Stop the scheduler
    2. Stop the config watcher
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Tenancy Issue Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    app.state.environment = settings.environment

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use Alembic in production)
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    config_manager = None
    if settings.agency_config_backend == "yaml":
        logger.info("Loading agency SLA configuration", extra={"path": str(settings.agency_config_path)})
        config_manager = AgencyConfigManager()
        config_manager.load(settings.agency_config_path)
        config_manager.start_watching()
    app.state.agency_config_manager = config_manager

    sweep_scheduler = None
    if settings.overdue_sweep_interval > 0:
        sweep_scheduler = OverdueSweepScheduler(interval_seconds=settings.overdue_sweep_interval)
        await sweep_scheduler.start(overdue_sweep_job)
    app.state.sweep_scheduler = sweep_scheduler

    logger.info("Tenancy Issue Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Tenancy Issue Service")

    if sweep_scheduler:
        await sweep_scheduler.stop()

    if config_manager:
        config_manager.stop_watching()

    await close_database()

    logger.info("Tenancy Issue Service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Tenancy Issue Service API",
    description="""
    ## Tenancy Issue & SLA Lifecycle Engine

    Renters raise issues against a property; the landlord or the managing
    agency works them through a fixed lifecycle against an SLA deadline.

    ---

    ### Lifecycle

    `open` → `acknowledged` → `in_progress` → `resolved` → `closed`

    A renter may dispute a resolution, sending it back to `acknowledged`
    or `in_progress`.

    ---

    ### Default SLA

    | Priority  | Deadline |
    |-----------|----------|
    | emergency | 4 hours  |
    | urgent    | 24 hours |
    | routine   | 72 hours |
    | low       | 7 days   |

    Agencies may override these per priority.

    ---

    ### Errors

    | Status | `error`                | Meaning                              |
    |--------|------------------------|--------------------------------------|
    | 400    | `validation_error`     | Malformed input                      |
    | 403    | `actor_not_permitted`  | Actor lacks the capability           |
    | 404    | `not_found`            | Unknown issue                        |
    | 409    | `illegal_transition`   | Move not allowed from current status |
    | 409    | `concurrency_conflict` | Issue changed since it was read      |
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

# === Custom Middleware and exception handlers (from shared) ===
install_middleware(app)

# === Include Module Routers ===
app.include_router(issues_router)


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
                        "agency_config": "database",
                        "overdue_sweep": "running"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports where agency SLA configuration comes from and whether the
    overdue sweep is running.
    """
    config_manager = getattr(request.app.state, "agency_config_manager", None)
    scheduler = getattr(request.app.state, "sweep_scheduler", None)

    if settings.agency_config_backend == "yaml":
        agency_config = f"yaml ({len(config_manager.agency_ids)} agencies)" if config_manager else "not_loaded"
    else:
        agency_config = "database"

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "agency_config": agency_config,
            "overdue_sweep": "running" if scheduler and scheduler.is_running else "stopped"
        }
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Tenancy Issue Service",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "issues": {
                "prefix": "/issues",
                "endpoints": [
                    "POST /issues - Raise an issue",
                    "GET /issues?property_id=|match_id=|agency_id= - List issues",
                    "GET /issues/{id} - Get an issue",
                    "POST /issues/{id}/transitions - Change status",
                    "POST /issues/{id}/messages - Post a message",
                    "GET /issues/{id}/messages - Read the thread",
                    "POST /issues/{id}/internal-notes - Add an internal note",
                    "POST /issues/{id}/rating - Rate the resolution",
                    "GET /issues/agencies/{agency_id}/performance - Agency SLA performance",
                    "POST /issues/sweep - Run an overdue sweep"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
