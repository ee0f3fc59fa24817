"""
FastAPI server for the interview session engine.

This module wires the MongoDB repositories, the text generator and the
services into the application state, schedules the scheduled-session
cleanup sweep and mounts the API routers.
"""
import contextlib
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from interview_sessions.ai.llm import TextGenerator
from interview_sessions.core.session_store import (
    CandidateProfileRepository,
    ScheduledSessionRepository,
    SessionRepository,
)
from interview_sessions.routers import scheduled_sessions, sessions
from interview_sessions.routers.dependencies import limiter, register_exception_handlers
from interview_sessions.services.content_preparer import ContentPreparer
from interview_sessions.services.conversation import ConversationController
from interview_sessions.services.scheduled_sessions import ScheduledSessionService
from interview_sessions.services.session_lifecycle import SessionLifecycleManager
from interview_sessions.utils.config import SYSTEM_NAME, get_cleanup_config, get_cors_origins, log_config
from interview_sessions.utils.db import get_database, get_mongodb_client

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def build_services(app_instance: FastAPI, database, generator: TextGenerator):
    """Create repositories and services and store them in app state."""
    session_repository = SessionRepository(database)
    scheduled_repository = ScheduledSessionRepository(database)
    profile_repository = CandidateProfileRepository(database)

    preparer = ContentPreparer(profile_repository, generator)
    lifecycle = SessionLifecycleManager(session_repository, preparer)

    app_instance.state.db = database
    app_instance.state.session_repository = session_repository
    app_instance.state.scheduled_repository = scheduled_repository
    app_instance.state.lifecycle = lifecycle
    app_instance.state.conversation = ConversationController(session_repository, lifecycle, preparer, generator)
    app_instance.state.scheduled_sessions = ScheduledSessionService(scheduled_repository)
    return session_repository, scheduled_repository


async def run_cleanup(service: ScheduledSessionService):
    """Scheduled job wrapper; a failed sweep is logged and retried on the next tick."""
    try:
        await service.cleanup_expired()
    except Exception as e:
        logger.error(f"Scheduled session cleanup failed: {e}", exc_info=True)


@contextlib.asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    This handles startup and shutdown events for the application.
    """
    log_config()
    client = get_mongodb_client()
    database = await get_database(client)

    session_repository, scheduled_repository = build_services(app_instance, database, TextGenerator())
    await session_repository.setup_indexes()
    await scheduled_repository.setup_indexes()

    # Initialize the scheduler
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_cleanup,
        "interval",
        minutes=get_cleanup_config()["interval_minutes"],
        args=[app_instance.state.scheduled_sessions],
        id="scheduled_session_cleanup",
    )
    scheduler.start()
    app_instance.state.scheduler = scheduler
    logger.info("Interview session services initialized")

    yield

    # Cleanup on shutdown
    scheduler.shutdown()
    client.close()
    logger.info("Interview session services shut down")


app = FastAPI(
    title=f"{SYSTEM_NAME} API",
    description="""
    REST API for time-boxed, token-authenticated AI interview sessions.

    ## Features

    * Session scheduling with access windows and attempt lockout
    * Interview content preparation with deterministic fallbacks
    * Interviewer conversation with a coding-exercise pause
    * Scheduled slot booking with periodic cleanup
    """,
    version=API_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Add rate limiter exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

# Add CORS middleware to allow cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router)
app.include_router(scheduled_sessions.router)


@app.get("/api/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        Status of the service and its database connection
    """
    database = getattr(request.app.state, "db", None)
    try:
        if database is None:
            raise ValueError("Database not initialized")
        await database.command("ping")
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "status": "unhealthy",
                "error": f"Service is unhealthy: {str(e)}",
                "timestamp": datetime.now().isoformat(),
            },
        )
    return {
        "success": True,
        "status": "healthy",
        "database": "connected",
        "timestamp": datetime.now().isoformat(),
        "version": API_VERSION,
    }
