"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager
from functools import partial

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from geoscale.api.routes import dispatch, jobs
from geoscale.core import timezone  # noqa: F401
from geoscale.core.config import Settings, configure_logging
from geoscale.core.database import setup_db_session
from geoscale.uow import create_uow_factory
from geoscale.workers.dispatcher import Dispatcher
from geoscale.workers.scheduler import create_resilient_worker, run_dispatch_loop

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, initialize database session factory, wire the dispatcher,
      start the in-process dispatch trigger when DISPATCH_INTERVAL_SECONDS > 0
    - Shutdown: Stop the trigger
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    dispatcher = Dispatcher.from_settings(settings, uow_factory)

    # Store in app.state for access in routes
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.dispatcher = dispatcher

    shutdown_event = asyncio.Event()
    scheduler = None
    if settings.dispatch_interval_seconds > 0:
        scheduler = create_resilient_worker(
            partial(
                run_dispatch_loop,
                dispatcher,
                settings.dispatch_interval_seconds,
                shutdown_event,
            ),
            "dispatch_scheduler",
            shutdown_event,
        )

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        in_process_dispatch=scheduler is not None,
    )

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    if scheduler is not None:
        # Cancels the current task, including one started by a restart
        await scheduler.stop()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="GeoScale Job Queue API",
        description="Async job queue and dispatcher for page generation and WordPress publishing",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(jobs.router)
    app.include_router(dispatch.router)

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
