"""
FastAPI router for scheduled session (slot booking) endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request

from interview_sessions.models.requests import (
    AccessByCandidateRequest,
    CompleteScheduledSessionRequest,
    CreateScheduledSessionRequest,
)
from interview_sessions.routers.dependencies import get_scheduled_sessions, limiter, log_request_time
from interview_sessions.services.scheduled_sessions import ScheduledSessionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/scheduled-sessions",
    tags=["scheduled-sessions"],
    dependencies=[Depends(log_request_time)],
)


@router.post("/create")
@limiter.limit("30/minute")
async def create_scheduled_session(
    request: Request,
    body: CreateScheduledSessionRequest,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    """Book a slot for a candidate."""
    result = await service.create(body.to_payload())
    return {"success": True, "message": "Scheduled session created successfully", **result}


@router.post("/access")
@limiter.limit("60/minute")
async def access_scheduled_session(
    request: Request,
    body: AccessByCandidateRequest,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    result = await service.access(body.candidate_id)
    return {"success": True, "message": "Session access granted", **result}


@router.get("/candidate/{candidate_id}")
@limiter.limit("60/minute")
async def get_by_candidate(
    request: Request,
    candidate_id: str,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    result = await service.get_by_candidate(candidate_id)
    return {"success": True, **result}


@router.get("/status/{candidate_id}")
@limiter.limit("120/minute")
async def scheduled_status(
    request: Request,
    candidate_id: str,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    result = await service.status(candidate_id)
    return {"success": True, **result}


@router.post("/complete")
@limiter.limit("30/minute")
async def complete_scheduled_session(
    request: Request,
    body: CompleteScheduledSessionRequest,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    result = await service.complete(body.session_id, body.candidate_id, body.completion_data)
    return {"success": True, "message": "Session completed successfully", **result}


@router.get("/list")
@limiter.limit("60/minute")
async def list_scheduled_sessions(
    request: Request,
    status: Optional[str] = None,
    candidateId: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    result = await service.list(status=status, candidate_id=candidateId, date_from=dateFrom, date_to=dateTo)
    return {"success": True, **result}


@router.put("/update/{session_id}")
@limiter.limit("30/minute")
async def update_scheduled_session(
    request: Request,
    session_id: str,
    data: Dict[str, Any] = Body(...),
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    result = await service.update(session_id, data)
    return {"success": True, "message": "Session updated successfully", **result}


@router.post("/cleanup")
@limiter.limit("10/minute")
async def cleanup_scheduled_sessions(
    request: Request,
    service: ScheduledSessionService = Depends(get_scheduled_sessions),
):
    """Run the expired-slot sweep on demand."""
    result = await service.cleanup_expired()
    return {"success": True, "message": "Cleanup completed", **result}
