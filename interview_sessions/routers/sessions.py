"""
FastAPI router for interview session endpoints.

Covers the session lifecycle (create, access, status, end, cancel,
reschedule, list) and the conversation protocol (initialize, message,
code-start, code-result).
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request

from interview_sessions.models.requests import (
    AccessByCandidateRequest,
    AccessSessionRequest,
    CodeResultRequest,
    CodeStartRequest,
    CreateSessionRequest,
    MessageRequest,
    TokenRequest,
    UpdateSessionRequest,
)
from interview_sessions.models.session import CandidateSnapshot
from interview_sessions.routers.dependencies import (
    get_conversation,
    get_lifecycle,
    limiter,
    log_request_time,
)
from interview_sessions.services.conversation import ConversationController
from interview_sessions.services.session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/sessions", tags=["sessions"], dependencies=[Depends(log_request_time)])


@router.post("/create")
@limiter.limit("30/minute")
async def create_session(
    request: Request,
    body: CreateSessionRequest,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    """Schedule a new interview session for a candidate and job."""
    window = body.access_window
    result = await lifecycle.create(
        candidate_id=body.candidate_id,
        application_id=body.application_id,
        job_id=body.job_id,
        recruiter_id=body.recruiter_id,
        snapshot=CandidateSnapshot.from_payload(body.candidate_details),
        scheduled_date=body.scheduled_date,
        scheduled_time=body.scheduled_time,
        duration=body.duration,
        time_zone=body.time_zone,
        before_grace=window.before_start if window else None,
        after_grace=window.after_end if window else None,
    )
    return {"success": True, "message": "Interview session created successfully", **result}


@router.post("/create-from-shortlisted")
@limiter.limit("30/minute")
async def create_from_shortlisted(
    request: Request,
    record: Dict[str, Any] = Body(...),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    """Create a session from a shortlisted-candidate record."""
    result = await lifecycle.create_from_shortlisted(record)
    return {"success": True, "message": "Interview session created from shortlisted candidate", **result}


@router.post("/access")
@limiter.limit("60/minute")
async def access_session(
    request: Request,
    body: AccessSessionRequest,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    """Enter a session with its id and access token."""
    result = await lifecycle.access(body.session_id, body.access_token)
    return {"success": True, "message": "Session access granted", **result}


@router.post("/access-by-candidate")
@limiter.limit("60/minute")
async def access_by_candidate(
    request: Request,
    body: AccessByCandidateRequest,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    """Enter the candidate's most recent open session."""
    result = await lifecycle.access_by_candidate(body.candidate_id)
    return {"success": True, "message": "Session access granted", **result}


@router.get("/status/{session_id}")
@limiter.limit("120/minute")
async def session_status(
    request: Request,
    session_id: str,
    token: Optional[str] = None,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    status = await lifecycle.get_status(session_id, token)
    return {"success": True, "status": status}


@router.get("/interview-data/{session_id}")
@limiter.limit("60/minute")
async def interview_data(
    request: Request,
    session_id: str,
    token: Optional[str] = None,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    result = await lifecycle.get_interview_data(session_id, token)
    return {"success": True, **result}


@router.post("/initialize-interview/{session_id}")
@limiter.limit("30/minute")
async def initialize_interview(
    request: Request,
    session_id: str,
    body: TokenRequest,
    conversation: ConversationController = Depends(get_conversation),
):
    """Start the transcript with the system prompt and welcome message."""
    result = await conversation.initialize(session_id, body.access_token)
    return {"success": True, **result}


@router.post("/message/{session_id}")
@limiter.limit("120/minute")
async def post_message(
    request: Request,
    session_id: str,
    body: MessageRequest,
    conversation: ConversationController = Depends(get_conversation),
):
    result = await conversation.post_message(session_id, body.access_token, body.message)
    return {"success": True, **result}


@router.post("/code-start/{session_id}")
@limiter.limit("30/minute")
async def code_start(
    request: Request,
    session_id: str,
    body: CodeStartRequest,
    conversation: ConversationController = Depends(get_conversation),
):
    """Open a coding exercise; the interviewer pauses until a result arrives."""
    result = await conversation.code_start(session_id, body.access_token, body.test_name, body.candidate_id)
    return {"success": True, **result}


@router.post("/code-result/{session_id}")
@limiter.limit("30/minute")
async def code_result(
    request: Request,
    session_id: str,
    body: CodeResultRequest,
    conversation: ConversationController = Depends(get_conversation),
):
    """Record a coding submission and resume the interviewer."""
    result = await conversation.code_result(
        session_id,
        body.access_token,
        language=body.language,
        passed=body.passed,
        result=body.result,
        details=body.details,
    )
    return {"success": True, **result}


@router.post("/end/{session_id}")
@limiter.limit("30/minute")
async def end_session(
    request: Request,
    session_id: str,
    body: TokenRequest,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    result = await lifecycle.end(session_id, body.access_token)
    return {"success": True, "message": "Session ended successfully", **result}


@router.delete("/cancel/{session_id}")
@limiter.limit("30/minute")
async def cancel_session(
    request: Request,
    session_id: str,
    body: TokenRequest,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    result = await lifecycle.cancel(session_id, body.access_token)
    return {"success": True, "message": "Session cancelled successfully", **result}


@router.put("/update/{session_id}")
@limiter.limit("30/minute")
async def update_session(
    request: Request,
    session_id: str,
    body: UpdateSessionRequest,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    """Reschedule a session that has not started yet."""
    result = await lifecycle.reschedule(
        session_id,
        body.access_token,
        scheduled_date=body.scheduled_date,
        scheduled_time=body.scheduled_time,
        duration=body.duration,
    )
    return {"success": True, "message": "Session updated successfully", **result}


@router.get("/list")
@limiter.limit("60/minute")
async def list_sessions(
    request: Request,
    recruiterId: Optional[str] = None,
    status: Optional[str] = None,
    candidateId: Optional[str] = None,
    date: Optional[str] = None,
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
):
    """List sessions for recruiters, ordered by scheduled start."""
    result = await lifecycle.list_sessions(
        recruiter_id=recruiterId,
        status=status,
        candidate_id=candidateId,
        day=date,
    )
    return {"success": True, **result}
