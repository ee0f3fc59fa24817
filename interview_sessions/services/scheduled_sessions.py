"""
Scheduled session service.

Scheduled sessions are lightweight slot bookings without conversation state.
They share the access gate with full sessions but their window is exactly
``[startTime, endTime]``. Expired slots are swept periodically.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from interview_sessions.ai.prompts.interview_prompts import SCHEDULED_GREETING
from interview_sessions.core.access_gate import evaluate_scheduled, generate_scheduled_session_id
from interview_sessions.core.errors import Conflict, Forbidden, Locked, NotFound, ValidationError
from interview_sessions.core.session_store import ScheduledSessionRepository
from interview_sessions.models.session import (
    InterviewConfig,
    ScheduledSession,
    ScheduledSessionMetadata,
    as_utc,
    utcnow,
)
from interview_sessions.utils.config import get_cleanup_config, get_session_config
from interview_sessions.utils.constants import OPEN_STATUSES, SessionStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "candidateName",
    "position",
    "interviewerName",
    "startTime",
    "endTime",
    "duration",
    "status",
    "interviewConfig",
    "metadata",
    "maxAccessAttempts",
}

FORWARD_TRANSITIONS = {
    SessionStatus.SCHEDULED: frozenset(
        {SessionStatus.ACTIVE, SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.EXPIRED}
    ),
    SessionStatus.ACTIVE: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.EXPIRED}),
}


def _parse_instant(value: Any, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}", {field_name: value}) from e


class ScheduledSessionService:
    """Create, admit and sweep scheduled interview slots."""

    def __init__(
        self,
        repository: ScheduledSessionRepository,
        clock: Callable[[], datetime] = utcnow,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.repository = repository
        self.clock = clock
        self.config = config or {**get_session_config(), **get_cleanup_config()}

    async def _by_candidate(self, candidate_id: str) -> ScheduledSession:
        if not candidate_id:
            raise ValidationError("Candidate ID is required")
        session = await self.repository.get_by_candidate(str(candidate_id))
        if session is None:
            raise NotFound("No scheduled session found for this candidate", {"candidateId": candidate_id})
        return session

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Book a slot for a candidate.

        Args:
            data: Slot fields: candidateId, candidateName, startTime, endTime and
                optional position, interviewerName, duration, skills,
                experienceLevel, focusAreas, allowCodeEditor, customQuestions,
                timeZone, language, recordingEnabled, notes

        Returns:
            Dictionary with the created session's public view

        Raises:
            ValidationError: Missing fields, start not before end, or end in the past
            Conflict: The candidate already holds a scheduled or active slot
        """
        missing = [k for k in ("candidateId", "candidateName", "startTime", "endTime") if not data.get(k)]
        if missing:
            raise ValidationError(
                "Missing required fields: candidateId, candidateName, startTime, endTime",
                {"missing": missing},
            )

        now = self.clock()
        start_time = _parse_instant(data["startTime"], "startTime")
        end_time = _parse_instant(data["endTime"], "endTime")
        if start_time >= end_time:
            raise ValidationError("Start time must be before end time")
        if end_time <= now:
            raise ValidationError("End time must be in the future")

        existing = await self.repository.get_by_candidate(str(data["candidateId"]))
        if existing and existing.status in OPEN_STATUSES:
            raise Conflict(
                "Candidate already has an active or scheduled session",
                {"existingSession": existing.public_view()},
            )

        try:
            session = ScheduledSession(
                session_id=generate_scheduled_session_id(),
                candidate_id=str(data["candidateId"]),
                candidate_name=data["candidateName"],
                position=data.get("position") or "Software Developer",
                interviewer_name=data.get("interviewerName") or "AI Interviewer",
                start_time=start_time,
                end_time=end_time,
                duration=data.get("duration") or self.config["duration_minutes"],
                max_access_attempts=self.config["max_login_attempts"],
                interview_config=InterviewConfig(
                    skills=data.get("skills") or [],
                    experience_level=data.get("experienceLevel") or "intermediate",
                    focus_areas=data.get("focusAreas") or ["technical", "problem-solving"],
                    allow_code_editor=data.get("allowCodeEditor") is not False,
                    custom_questions=data.get("customQuestions") or [],
                ),
                metadata=ScheduledSessionMetadata(
                    time_zone=data.get("timeZone") or "UTC",
                    language=data.get("language") or "en",
                    recording_enabled=data.get("recordingEnabled") is not False,
                    notes=data.get("notes") or "",
                ),
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as e:
            raise ValidationError("Invalid scheduled session data", {"details": e.errors(include_url=False)}) from e

        await self.repository.insert(session)
        return {"session": session.public_view()}

    async def access(self, candidate_id: str) -> Dict[str, Any]:
        """
        Admit a candidate into their scheduled slot.

        Every evaluation counts as an access attempt. A slot whose window has
        closed is persisted as expired.
        """
        session = await self._by_candidate(candidate_id)
        now = self.clock()
        attempts = await self.repository.increment_attempts(session.session_id, now)
        if attempts is None:
            raise NotFound("No scheduled session found for this candidate", {"candidateId": candidate_id})
        decision = evaluate_scheduled(session, now, attempts=attempts - 1)

        if not decision.allowed:
            session_info = {
                "candidateName": session.candidate_name,
                "position": session.position,
                "startTime": session.start_time,
                "endTime": session.end_time,
                **decision.context(),
                "accessAttempts": attempts,
            }
            if decision.expired:
                await self.repository.update_status(
                    session.session_id, SessionStatus.EXPIRED, now, from_statuses=OPEN_STATUSES
                )
                session_info["status"] = SessionStatus.EXPIRED.value
            logger.info(f"Scheduled session {session.session_id} access denied: {decision.reason}")
            if decision.locked:
                raise Locked(f"Maximum access attempts ({session.max_access_attempts}) exceeded", session_info)
            raise Forbidden(decision.message, session_info)

        status = session.status
        if session.status == SessionStatus.SCHEDULED:
            await self.repository.update_status(
                session.session_id,
                SessionStatus.ACTIVE,
                now,
                {"actualStartTime": now},
                from_statuses=[SessionStatus.SCHEDULED],
            )
            status = SessionStatus.ACTIVE.value
            logger.info(f"Scheduled session {session.session_id} started")

        config = session.interview_config
        return {
            "session": {
                "sessionId": session.session_id,
                "candidateId": session.candidate_id,
                "candidateName": session.candidate_name,
                "position": session.position,
                "interviewerName": session.interviewer_name,
                "startTime": session.start_time,
                "endTime": session.end_time,
                "duration": session.duration,
                "timeRemaining": decision.minutes_to_end,
                "skills": config.skills,
                "experienceLevel": config.experience_level,
                "focusAreas": config.focus_areas,
                "allowCodeEditor": config.allow_code_editor,
                "customQuestions": config.custom_questions,
                "recordingEnabled": session.metadata.recording_enabled,
                "language": session.metadata.language,
                "status": status,
                "accessAttempts": attempts,
                "isScheduled": True,
            },
            "initialMessage": SCHEDULED_GREETING.format(
                candidate_name=session.candidate_name,
                position=session.position,
                minutes_remaining=decision.minutes_to_end,
            ),
        }

    async def get_by_candidate(self, candidate_id: str) -> Dict[str, Any]:
        session = await self._by_candidate(candidate_id)
        view = session.public_view()
        view.update({
            "interviewerName": session.interviewer_name,
            "interviewConfig": session.interview_config.to_document(),
            "metadata": session.metadata.to_document(),
        })
        return {"session": view}

    async def status(self, candidate_id: str) -> Dict[str, Any]:
        """Report the slot's status and whether it is accessible right now."""
        session = await self._by_candidate(candidate_id)
        decision = evaluate_scheduled(session, self.clock())
        return {
            "sessionStatus": {
                "candidateId": session.candidate_id,
                "candidateName": session.candidate_name,
                "sessionId": session.session_id,
                "status": session.status,
                "startTime": session.start_time,
                "endTime": session.end_time,
                "minutesToStart": max(0, decision.minutes_to_start),
                "minutesToEnd": decision.minutes_to_end,
                "isAccessible": decision.allowed,
                "reason": decision.reason,
                "accessAttempts": session.access_attempts,
                "maxAccessAttempts": session.max_access_attempts,
            }
        }

    async def complete(
        self,
        session_id: Optional[str] = None,
        candidate_id: Optional[str] = None,
        completion_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not session_id and not candidate_id:
            raise ValidationError("Either sessionId or candidateId is required")

        if session_id:
            session = await self.repository.get(session_id)
        else:
            session = await self.repository.get_by_candidate(str(candidate_id))
        if session is None:
            raise NotFound("Session not found")

        now = self.clock()
        completed = await self.repository.update_status(
            session.session_id,
            SessionStatus.COMPLETED,
            now,
            {"actualEndTime": now, "completionData": completion_data or {}},
            from_statuses=OPEN_STATUSES,
        )
        if not completed:
            raise Forbidden(f"Cannot complete a session that is {session.status}", {"status": session.status})
        logger.info(f"Scheduled session {session.session_id} completed")
        return {"sessionId": session.session_id, "status": SessionStatus.COMPLETED.value}

    async def list(
        self,
        status: Optional[str] = None,
        candidate_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if status:
            try:
                query["status"] = SessionStatus(status).value
            except ValueError as e:
                raise ValidationError(f"Unknown status: {status}") from e
        if candidate_id:
            query["candidateId"] = candidate_id
        if date_from or date_to:
            query["startTime"] = {}
            if date_from:
                query["startTime"]["$gte"] = _parse_instant(date_from, "dateFrom")
            if date_to:
                query["startTime"]["$lte"] = _parse_instant(date_to, "dateTo")

        sessions = await self.repository.list(query)
        return {"count": len(sessions), "sessions": [s.public_view() for s in sessions]}

    async def update(self, session_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Admin update of a slot; identity and bookkeeping fields are ignored.

        Status may only move forward (scheduled to active, either open state to
        a terminal one). A terminal slot keeps its status.

        Raises:
            NotFound: No slot with this id
            ValidationError: The merged slot is invalid
            Forbidden: The requested status change is not a forward transition
            Conflict: The slot changed status while being updated
        """
        session = await self.repository.get(session_id)
        if session is None:
            raise NotFound("Session not found", {"sessionId": session_id})

        changes = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
        merged = {**session.to_document(), **changes}
        try:
            updated = ScheduledSession.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError("Invalid scheduled session data", {"details": e.errors(include_url=False)}) from e
        if as_utc(updated.start_time) >= as_utc(updated.end_time):
            raise ValidationError("Start time must be before end time")

        current = SessionStatus(session.status)
        target = SessionStatus(updated.status)
        if target != current and target not in FORWARD_TRANSITIONS.get(current, frozenset()):
            raise Forbidden(
                f"Cannot change status of a {current.value} session to {target.value}",
                {"status": current.value, "requestedStatus": target.value},
            )

        document = updated.to_document()
        fields = {k: document[k] for k in changes if k != "status"}
        written = await self.repository.update_status(
            session_id, target, self.clock(), fields, from_statuses=[current]
        )
        if not written:
            raise Conflict("Session status changed during update", {"sessionId": session_id})
        logger.info(f"Scheduled session {session_id} updated: {sorted(changes)}")
        return {"session": updated.public_view()}

    async def cleanup_expired(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Mark past-window slots as expired, then delete slots expired long enough ago.

        Returns:
            Dictionary with expiredCount and deletedCount
        """
        now = now or self.clock()
        cutoff = now - timedelta(hours=self.config["retention_hours"])
        expired = await self.repository.mark_expired(now)
        deleted = await self.repository.delete_expired_before(cutoff)
        logger.info(f"Scheduled session cleanup: {expired} expired, {deleted} deleted")
        return {"expiredCount": expired, "deletedCount": deleted}
