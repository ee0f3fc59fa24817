"""
Shared router plumbing: rate limiter, request timing, service lookup and the
mapping of engine errors to JSON responses.
"""
import logging
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from interview_sessions.core.errors import InterviewSessionError

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)


async def log_request_time(request: Request):
    """Log request timing for HTTP endpoints."""
    request.state.start_time = datetime.now()
    yield
    process_time = (datetime.now() - request.state.start_time).total_seconds() * 1000
    logger.info(f"Request to {request.url.path} took {process_time:.2f}ms")


def _state_service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return service


def get_lifecycle(request: Request):
    """Dependency to get the session lifecycle manager from app state."""
    return _state_service(request, "lifecycle")


def get_conversation(request: Request):
    """Dependency to get the conversation controller from app state."""
    return _state_service(request, "conversation")


def get_scheduled_sessions(request: Request):
    """Dependency to get the scheduled session service from app state."""
    return _state_service(request, "scheduled_sessions")


async def interview_session_error_handler(request: Request, exc: InterviewSessionError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request body",
            "code": "validation_error",
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail, "code": "http_error"},
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "An internal server error occurred. Please try again later.", "code": "error"},
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(InterviewSessionError, interview_session_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
