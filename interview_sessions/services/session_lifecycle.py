"""
Session lifecycle management for interview sessions.

This module owns the session state machine

    scheduled -> active -> completed | expired | cancelled

Every transition is a conditional update on the current status, and the
attempt counter is an atomic increment. Time-based expiry is evaluated lazily
whenever a session is touched.
"""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from interview_sessions.core.access_gate import (
    GateDecision,
    evaluate_session,
    generate_access_token,
    generate_session_id,
    mask_token,
    tokens_match,
)
from interview_sessions.core.errors import (
    Conflict,
    Forbidden,
    Locked,
    NotFound,
    Unauthorized,
    ValidationError,
)
from interview_sessions.core.session_store import SessionRepository
from interview_sessions.models.session import (
    CandidateSnapshot,
    InterviewSession,
    SessionSecurity,
    SessionWindow,
    as_utc,
    utcnow,
)
from interview_sessions.services.content_preparer import ContentPreparer
from interview_sessions.utils.config import get_session_config
from interview_sessions.utils.constants import (
    ERROR_INVALID_TOKEN,
    ERROR_SESSION_LOCKED,
    ERROR_SESSION_NOT_FOUND,
    OPEN_STATUSES,
    SessionStatus,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
_SLOT_DAY = re.compile(r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday)", re.IGNORECASE)
_SLOT_TIME = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)", re.IGNORECASE)


def resolve_time_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown time zone: {name}", {"timeZone": name}) from e


def parse_schedule(scheduled_date: str, scheduled_time: str, time_zone: str) -> datetime:
    """
    Interpret a wall-clock date and time in ``time_zone`` and return it in UTC.

    Args:
        scheduled_date: ``YYYY-MM-DD``
        scheduled_time: ``HH:MM`` (seconds optional)
        time_zone: IANA time zone name

    Returns:
        Timezone-aware UTC datetime

    Raises:
        ValidationError: If the date, time or zone cannot be parsed
    """
    zone = resolve_time_zone(time_zone)
    try:
        day = date.fromisoformat(str(scheduled_date).strip()[:10])
        clock = time.fromisoformat(str(scheduled_time).strip())
    except ValueError as e:
        raise ValidationError(
            "Invalid scheduledDate or scheduledTime",
            {"scheduledDate": scheduled_date, "scheduledTime": scheduled_time},
        ) from e
    local = datetime.combine(day, clock.replace(tzinfo=None), tzinfo=zone)
    return local.astimezone(timezone.utc)


def parse_scheduled_slot(slot: str, now: datetime, time_zone: str = "UTC") -> datetime:
    """
    Resolve a slot like ``"Monday at 10 AM"`` to the next occurrence of that weekday.

    The same weekday as today resolves to next week.

    Raises:
        ValidationError: If the slot does not name a weekday and an hour with am/pm
    """
    day_match = _SLOT_DAY.search(slot or "")
    time_match = _SLOT_TIME.search(slot or "")
    if not day_match or not time_match:
        raise ValidationError(
            'Invalid scheduled slot format. Expected format: "Monday at 10 AM"',
            {"scheduledSlot": slot},
        )

    hour = int(time_match.group(1))
    minute = int(time_match.group(2) or 0)
    meridiem = time_match.group(3).lower()
    if not 1 <= hour <= 12 or minute > 59:
        raise ValidationError("Invalid hour in scheduled slot", {"scheduledSlot": slot})
    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0

    zone = resolve_time_zone(time_zone)
    local_now = now.astimezone(zone)
    days_ahead = WEEKDAYS.index(day_match.group(1).lower()) - local_now.weekday()
    if days_ahead <= 0:
        days_ahead += 7
    target_day = local_now.date() + timedelta(days=days_ahead)
    local = datetime.combine(target_day, time(hour, minute), tzinfo=zone)
    return local.astimezone(timezone.utc)


def _require(payload: Dict[str, Any], *names: str):
    missing = [name for name in names if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})


class SessionLifecycleManager:
    """Creates, admits, ends and cancels interview sessions."""

    def __init__(
        self,
        repository: SessionRepository,
        preparer: ContentPreparer,
        clock: Callable[[], datetime] = utcnow,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.repository = repository
        self.preparer = preparer
        self.clock = clock
        self.config = config or get_session_config()

    # Loading helpers

    async def _load(self, session_id: str) -> InterviewSession:
        session = await self.repository.get(session_id)
        if session is None:
            raise NotFound(ERROR_SESSION_NOT_FOUND, {"sessionId": session_id})
        return session

    async def _load_with_token(self, session_id: str, token: Optional[str]) -> InterviewSession:
        session = await self._load(session_id)
        if not tokens_match(session.security.access_token, token):
            logger.warning(f"Invalid token {mask_token(token)} for session {session_id}")
            raise Unauthorized(ERROR_INVALID_TOKEN, {"sessionId": session_id})
        return session

    async def expire_if_past(self, session: InterviewSession, now: datetime) -> InterviewSession:
        """Persist ``expired`` when an open session's access window has closed."""
        if session.status in OPEN_STATUSES and now > session.window.access_end:
            expired = await self.repository.transition(
                session.session_id,
                OPEN_STATUSES,
                SessionStatus.EXPIRED,
                now,
                {"accessControl.isActive": False},
            )
            logger.info(f"Session {session.session_id} expired lazily")
            return expired or await self._load(session.session_id)
        return session

    async def load_for_conversation(self, session_id: str, token: Optional[str]) -> InterviewSession:
        session = await self._load_with_token(session_id, token)
        return await self.expire_if_past(session, self.clock())

    # Creation

    def _build_window(
        self,
        scheduled_date: str,
        scheduled_time: str,
        duration: Any,
        time_zone: str,
        before_grace: Any,
        after_grace: Any,
    ) -> SessionWindow:
        try:
            duration = int(duration)
            before_grace = int(before_grace)
            after_grace = int(after_grace)
        except (TypeError, ValueError) as e:
            raise ValidationError("duration and grace minutes must be integers") from e
        if duration <= 0:
            raise ValidationError("duration must be positive", {"duration": duration})
        if before_grace < 0 or after_grace < 0:
            raise ValidationError("grace minutes must not be negative")

        start = parse_schedule(scheduled_date, scheduled_time, time_zone)
        return SessionWindow(
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=duration),
            before_grace_minutes=before_grace,
            after_grace_minutes=after_grace,
            duration_minutes=duration,
            time_zone=time_zone,
        )

    async def create(
        self,
        candidate_id: str,
        application_id: str,
        job_id: str,
        recruiter_id: str,
        snapshot: CandidateSnapshot,
        scheduled_date: str,
        scheduled_time: str,
        duration: Optional[int] = None,
        time_zone: Optional[str] = None,
        before_grace: Optional[int] = None,
        after_grace: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create a scheduled session for a candidate-job pairing.

        Returns:
            Dictionary with sessionId, accessToken, sessionDetails and accessUrl

        Raises:
            ValidationError: Missing or malformed fields
            Conflict: A non-terminal session already exists for candidate and job
        """
        _require(
            {
                "candidateId": candidate_id,
                "applicationId": application_id,
                "jobId": job_id,
                "recruiterId": recruiter_id,
            },
            "candidateId", "applicationId", "jobId", "recruiterId",
        )
        if not scheduled_date or not scheduled_time:
            raise ValidationError("scheduledDate and scheduledTime are required")

        window = self._build_window(
            scheduled_date,
            scheduled_time,
            duration if duration is not None else self.config["duration_minutes"],
            time_zone or self.config["time_zone"],
            before_grace if before_grace is not None else self.config["before_grace_minutes"],
            after_grace if after_grace is not None else self.config["after_grace_minutes"],
        )

        existing = await self.repository.find_open_for_candidate_job(candidate_id, job_id)
        if existing:
            raise Conflict(
                "Active session already exists for this candidate and job",
                {"existingSessionId": existing.session_id},
            )

        now = self.clock()
        session = InterviewSession(
            session_id=generate_session_id(),
            candidate_id=str(candidate_id),
            application_id=str(application_id),
            job_id=str(job_id),
            recruiter_id=str(recruiter_id),
            candidate_snapshot=snapshot,
            window=window,
            security=SessionSecurity(
                access_token=generate_access_token(),
                max_login_attempts=self.config["max_login_attempts"],
            ),
            created_at=now,
            updated_at=now,
        )
        await self.repository.insert(session)
        logger.info(
            f"Created session {session.session_id} for candidate {candidate_id}, "
            f"window {window.access_start.isoformat()} - {window.access_end.isoformat()}"
        )

        return {
            "sessionId": session.session_id,
            "accessToken": session.security.access_token,
            "sessionDetails": {
                "scheduledStartTime": window.scheduled_start,
                "scheduledEndTime": window.scheduled_end,
                "duration": window.duration_minutes,
                "timeZone": window.time_zone,
                "accessWindow": {
                    "beforeStart": window.before_grace_minutes,
                    "afterEnd": window.after_grace_minutes,
                },
                "accessStart": window.access_start,
                "accessEnd": window.access_end,
            },
            "accessUrl": (
                f"{self.config['frontend_url']}/interview/session/"
                f"{session.session_id}?token={session.security.access_token}"
            ),
        }

    async def create_from_shortlisted(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a session from a shortlisted-candidate record.

        The schedule comes from ``call_tracking.interview_details.scheduled_slot``
        when present, otherwise from ``scheduledDate``/``scheduledTime`` or an
        ISO ``scheduledInterviewDate``.
        """
        candidate_id = record.get("candidateId") or record.get("shortlistedCandidateId")
        _require(
            {**record, "candidateId": candidate_id},
            "candidateId", "applicationId", "jobId", "recruiterId",
        )

        time_zone = record.get("timeZone") or self.config["time_zone"]
        slot = ((record.get("call_tracking") or {}).get("interview_details") or {}).get("scheduled_slot")
        if slot:
            start = parse_scheduled_slot(slot, self.clock(), time_zone).astimezone(resolve_time_zone(time_zone))
            scheduled_date, scheduled_time = start.date().isoformat(), start.strftime("%H:%M")
        elif record.get("scheduledDate") and record.get("scheduledTime"):
            scheduled_date, scheduled_time = record["scheduledDate"], record["scheduledTime"]
        elif record.get("scheduledInterviewDate"):
            try:
                start = as_utc(datetime.fromisoformat(str(record["scheduledInterviewDate"]).replace("Z", "+00:00")))
            except ValueError as e:
                raise ValidationError("Invalid scheduledInterviewDate") from e
            start = start.astimezone(resolve_time_zone(time_zone))
            scheduled_date, scheduled_time = start.date().isoformat(), start.strftime("%H:%M")
        else:
            raise ValidationError(
                "No scheduling information found. Provide call_tracking.interview_details.scheduled_slot, "
                "scheduledDate and scheduledTime, or scheduledInterviewDate"
            )

        snapshot = CandidateSnapshot.from_payload(record)
        created = await self.create(
            candidate_id=candidate_id,
            application_id=record["applicationId"],
            job_id=record["jobId"],
            recruiter_id=record["recruiterId"],
            snapshot=snapshot,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            duration=record.get("duration"),
            time_zone=time_zone,
        )
        created["candidateInfo"] = {
            "name": snapshot.name,
            "email": snapshot.email,
            "role": snapshot.role,
            "company": snapshot.company,
        }
        return created

    # Admission

    async def _gate(self, session: InterviewSession, now: datetime) -> Tuple[GateDecision, int]:
        """Count the attempt, evaluate the gate and persist expiry.

        The ceiling is checked against the count returned by the atomic
        increment, so concurrent attempts cannot share a stale value.
        Raises Forbidden or Locked when the decision denies entry.
        """
        attempts = await self.repository.increment_login_attempts(session.session_id, now)
        if attempts is None:
            raise NotFound(ERROR_SESSION_NOT_FOUND, {"sessionId": session.session_id})
        decision = evaluate_session(session, now, attempts=attempts - 1)

        if decision.expired:
            await self.repository.transition(
                session.session_id, OPEN_STATUSES, SessionStatus.EXPIRED, now, {"accessControl.isActive": False}
            )
            context = decision.context()
            context["status"] = SessionStatus.EXPIRED.value
            logger.info(f"Access to session {session.session_id} denied: window closed")
            raise Forbidden(decision.message, context)

        if decision.locked:
            logger.warning(f"Access to session {session.session_id} denied: locked ({attempts} attempts)")
            raise Locked(ERROR_SESSION_LOCKED, {**decision.context(), "attempts": attempts})

        if not decision.allowed:
            logger.info(f"Access to session {session.session_id} denied: {decision.reason}")
            raise Forbidden(decision.message, decision.context())

        return decision, attempts

    async def _admit(self, session: InterviewSession, now: datetime) -> InterviewSession:
        if session.status == SessionStatus.SCHEDULED:
            activated = await self.repository.transition(
                session.session_id,
                [SessionStatus.SCHEDULED],
                SessionStatus.ACTIVE,
                now,
                {
                    "accessControl.isActive": True,
                    "accessControl.joinedAt": now,
                    "accessControl.accessEnd": session.window.access_end,
                },
            )
            if activated:
                logger.info(f"Session {session.session_id} activated")
            session = activated or await self._load(session.session_id)

        if session.prepared_content is None:
            session = await self.ensure_prepared_content(session)
        return session

    async def ensure_prepared_content(self, session: InterviewSession) -> InterviewSession:
        """Prepare content once; a concurrent writer's content wins over ours."""
        if session.prepared_content is not None:
            return session
        content = await self.preparer.prepare(session.candidate_id, session.candidate_snapshot)
        stored = await self.repository.set_prepared_content_if_absent(session.session_id, content, self.clock())
        if not stored:
            logger.info(f"Prepared content for session {session.session_id} already present, reusing it")
        return await self._load(session.session_id)

    def _access_response(self, session: InterviewSession, now: datetime, include_token: bool) -> Dict[str, Any]:
        summary = session.summary(now)
        if include_token:
            summary["accessToken"] = session.security.access_token
        response = {
            "session": summary,
            "preparedContent": session.prepared_content.to_document() if session.prepared_content else None,
        }
        if include_token:
            response["accessUrl"] = (
                f"{self.config['frontend_url']}/interview-session?sessionId="
                f"{session.session_id}&token={session.security.access_token}"
            )
        return response

    async def access(self, session_id: str, token: str) -> Dict[str, Any]:
        """
        Admit a candidate presenting a session id and access token.

        Raises:
            ValidationError: Missing session id or token
            NotFound: Unknown session
            Forbidden: Outside the access window or terminal status
            Locked: Attempt ceiling reached
            Unauthorized: Token mismatch while attempts remain
        """
        if not session_id or not token:
            raise ValidationError("sessionId and accessToken are required")
        now = self.clock()
        session = await self._load(session_id)
        _, attempts = await self._gate(session, now)

        if not tokens_match(session.security.access_token, token):
            remaining = max(0, session.security.max_login_attempts - attempts)
            logger.warning(f"Invalid token {mask_token(token)} for session {session_id}, attempt {attempts}")
            raise Unauthorized(ERROR_INVALID_TOKEN, {"attempts": attempts, "attemptsRemaining": remaining})

        session = await self._admit(session, now)
        return self._access_response(session, now, include_token=False)

    async def access_by_candidate(self, candidate_id: str) -> Dict[str, Any]:
        """Admit a candidate by id, using their most recent open session."""
        if not candidate_id:
            raise ValidationError("candidateId is required")
        now = self.clock()
        session = await self.repository.find_latest_open_for_candidate(str(candidate_id))
        if session is None:
            raise NotFound(
                "No active interview session found for this candidate",
                {"candidateId": candidate_id},
            )
        await self._gate(session, now)
        session = await self._admit(session, now)
        return self._access_response(session, now, include_token=True)

    # Reads

    async def get_status(self, session_id: str, token: Optional[str] = None) -> Dict[str, Any]:
        """Coarse status without a token, detailed status with a valid one."""
        now = self.clock()
        session = await self._load(session_id)
        if token is not None and not tokens_match(session.security.access_token, token):
            raise Unauthorized(ERROR_INVALID_TOKEN, {"sessionId": session_id})
        session = await self.expire_if_past(session, now)

        status = {
            "sessionId": session.session_id,
            "status": session.status,
            "scheduledStartTime": session.window.scheduled_start,
            "scheduledEndTime": session.window.scheduled_end,
            "isAccessible": session.is_accessible(now),
        }
        if token is None:
            return status

        status.update({
            "candidateName": session.candidate_snapshot.name,
            "role": session.candidate_snapshot.role,
            "accessibleFrom": session.window.access_start,
            "accessibleUntil": session.window.access_end,
            "timeRemaining": session.minutes_remaining(now),
            "isActive": session.access_control.is_active,
            "joinedAt": session.access_control.joined_at,
            "totalMinutesSpent": session.access_control.total_minutes_spent,
            "attemptsRemaining": session.security.attempts_remaining,
        })
        return status

    async def get_interview_data(self, session_id: str, token: str) -> Dict[str, Any]:
        session = await self._load_with_token(session_id, token)
        session = await self.expire_if_past(session, self.clock())
        session = await self.ensure_prepared_content(session)
        return {
            "sessionId": session.session_id,
            "status": session.status,
            "preparedContent": session.prepared_content.to_document(),
        }

    async def list_sessions(
        self,
        recruiter_id: Optional[str] = None,
        status: Optional[str] = None,
        candidate_id: Optional[str] = None,
        day: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List sessions for recruiters, ordered by scheduled start."""
        query: Dict[str, Any] = {}
        if recruiter_id:
            query["recruiterId"] = recruiter_id
        if status:
            try:
                query["status"] = SessionStatus(status).value
            except ValueError as e:
                raise ValidationError(f"Unknown status: {status}") from e
        if candidate_id:
            query["candidateId"] = candidate_id
        if day:
            try:
                start = datetime.combine(date.fromisoformat(day), time(0, 0), tzinfo=timezone.utc)
            except ValueError as e:
                raise ValidationError(f"Invalid date: {day}") from e
            query["window.scheduledStart"] = {"$gte": start, "$lt": start + timedelta(days=1)}

        sessions = await self.repository.list(query)
        return {
            "count": len(sessions),
            "sessions": [
                {
                    "sessionId": s.session_id,
                    "candidateName": s.candidate_snapshot.name,
                    "candidateEmail": s.candidate_snapshot.email,
                    "role": s.candidate_snapshot.role,
                    "companyName": s.candidate_snapshot.company,
                    "scheduledStartTime": s.window.scheduled_start,
                    "scheduledEndTime": s.window.scheduled_end,
                    "status": s.status,
                    "isActive": s.access_control.is_active,
                    "totalMinutesSpent": s.access_control.total_minutes_spent,
                    "createdAt": s.created_at,
                }
                for s in sessions
            ],
        }

    # Terminal transitions

    async def end(self, session_id: str, token: str) -> Dict[str, Any]:
        """Complete a scheduled or active session and record time spent."""
        session = await self._load_with_token(session_id, token)
        now = self.clock()

        joined_at = session.access_control.joined_at
        total_minutes = 0
        if joined_at is not None:
            total_minutes = round((now - as_utc(joined_at)).total_seconds() / 60)

        completed = await self.repository.transition(
            session_id,
            OPEN_STATUSES,
            SessionStatus.COMPLETED,
            now,
            {
                "accessControl.isActive": False,
                "accessControl.leftAt": now,
                "accessControl.totalMinutesSpent": total_minutes,
            },
        )
        if completed is None:
            current = await self._load(session_id)
            raise Forbidden(
                f"Cannot end a session that is {current.status}",
                {"status": current.status},
            )

        logger.info(f"Session {session_id} completed after {total_minutes} minutes")
        return {
            "summary": {
                "sessionId": completed.session_id,
                "candidateName": completed.candidate_snapshot.name,
                "status": completed.status,
                "duration": completed.window.duration_minutes,
                "totalMinutesSpent": total_minutes,
                "startedAt": joined_at,
                "endedAt": now,
            }
        }

    async def cancel(self, session_id: str, token: str) -> Dict[str, Any]:
        session = await self._load_with_token(session_id, token)
        now = self.clock()
        cancelled = await self.repository.transition(
            session_id,
            OPEN_STATUSES,
            SessionStatus.CANCELLED,
            now,
            {"accessControl.isActive": False},
        )
        if cancelled is None:
            current = await self._load(session_id)
            raise Forbidden(
                f"Cannot cancel a session that is {current.status}",
                {"status": current.status},
            )
        logger.info(f"Session {session.session_id} cancelled")
        return {"sessionId": session_id, "status": cancelled.status}

    async def reschedule(
        self,
        session_id: str,
        token: str,
        scheduled_date: Optional[str] = None,
        scheduled_time: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Move the window of a session that has not started yet."""
        session = await self._load_with_token(session_id, token)
        if session.status != SessionStatus.SCHEDULED:
            raise Forbidden("Can only update scheduled sessions", {"status": session.status})

        window = session.window
        if scheduled_date and scheduled_time:
            window = self._build_window(
                scheduled_date,
                scheduled_time,
                duration or window.duration_minutes,
                window.time_zone,
                window.before_grace_minutes,
                window.after_grace_minutes,
            )
        elif duration is not None:
            local_start = as_utc(window.scheduled_start).astimezone(resolve_time_zone(window.time_zone))
            window = self._build_window(
                local_start.date().isoformat(),
                local_start.strftime("%H:%M"),
                duration,
                window.time_zone,
                window.before_grace_minutes,
                window.after_grace_minutes,
            )

        updated = await self.repository.update_fields(
            session_id,
            {"window": window.to_document()},
            self.clock(),
            expected_statuses=[SessionStatus.SCHEDULED],
        )
        if not updated:
            raise Forbidden("Can only update scheduled sessions")

        logger.info(f"Session {session_id} rescheduled to {window.scheduled_start.isoformat()}")
        return {
            "sessionDetails": {
                "sessionId": session_id,
                "scheduledStartTime": window.scheduled_start,
                "scheduledEndTime": window.scheduled_end,
                "duration": window.duration_minutes,
                "accessStart": window.access_start,
                "accessEnd": window.access_end,
            }
        }
