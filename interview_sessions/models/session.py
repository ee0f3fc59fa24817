"""
Session data models for the interview session engine.

This module defines the Pydantic models for the persisted interview session
document, its scheduled-slot counterpart and the prepared interview content.
Documents are stored with camelCase keys; Python code uses snake_case
attributes.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from interview_sessions.utils.constants import (
    DataSource,
    MessageRole,
    SessionStatus,
    TERMINAL_STATUSES,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from storage as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ceil_minutes(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / 60)


class DocumentModel(BaseModel):
    """Base for models that round-trip through MongoDB."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True
        validate_default = True

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CandidateSnapshot(DocumentModel):
    """Candidate details captured when the session is created."""
    name: str = Field(..., description="Candidate full name")
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    tech_stack: List[str] = Field(default_factory=list)
    experience: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CandidateSnapshot":
        """Accept both the short and the legacy long field names."""
        return cls(
            name=payload.get("name") or payload.get("candidateName") or "",
            email=payload.get("email") or payload.get("candidateEmail"),
            phone=payload.get("phone") or payload.get("phoneNumber"),
            company=payload.get("company") or payload.get("companyName"),
            role=payload.get("role"),
            tech_stack=payload.get("techStack") or payload.get("tech_stack") or [],
            experience=payload.get("experience"),
        )


class SessionWindow(DocumentModel):
    scheduled_start: datetime
    scheduled_end: datetime
    before_grace_minutes: int = 15
    after_grace_minutes: int = 15
    duration_minutes: int = 60
    time_zone: str = "UTC"

    @property
    def access_start(self) -> datetime:
        return as_utc(self.scheduled_start) - timedelta(minutes=self.before_grace_minutes)

    @property
    def access_end(self) -> datetime:
        return as_utc(self.scheduled_end) + timedelta(minutes=self.after_grace_minutes)

    def contains(self, now: datetime) -> bool:
        return self.access_start <= now <= self.access_end


class SessionSecurity(DocumentModel):
    access_token: str
    login_attempts: int = Field(default=0, ge=0)
    max_login_attempts: int = Field(default=3, gt=0)
    last_attempt_at: Optional[datetime] = None

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_login_attempts - self.login_attempts)


class AccessControl(DocumentModel):
    is_active: bool = False
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    access_end: Optional[datetime] = None
    total_minutes_spent: Optional[int] = None


class ConversationMessage(DocumentModel):
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class CodingTestRecord(DocumentModel):
    test_name: str
    started_at: datetime = Field(default_factory=utcnow)
    submitted_at: Optional[datetime] = None
    passed: Optional[bool] = None
    result_summary: Optional[str] = None
    language: Optional[str] = None
    abandoned: bool = False

    @property
    def is_open(self) -> bool:
        return self.submitted_at is None


class ConversationState(DocumentModel):
    messages: List[ConversationMessage] = Field(default_factory=list)
    awaiting_coding_submission: bool = False
    coding_test_records: List[CodingTestRecord] = Field(default_factory=list)
    questions_asked: int = 0
    answers_received: int = 0
    coding_tests_completed: int = 0
    started_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None

    def open_record_index(self) -> Optional[int]:
        for index in range(len(self.coding_test_records) - 1, -1, -1):
            if self.coding_test_records[index].is_open:
                return index
        return None


class CodingTask(DocumentModel):
    """A coding exercise in the shape the live editor consumes."""
    id: str
    title: str
    description: str
    language_hints: List[str] = Field(default_factory=list)
    example_input_output: Optional[Any] = None
    tests: List[str] = Field(default_factory=list)


class PreparedContent(DocumentModel):
    questions: List[str] = Field(default_factory=list)
    coding_tasks: List[CodingTask] = Field(default_factory=list)
    system_prompt: str = ""
    data_source: DataSource = DataSource.FALLBACK
    candidate_profile: Dict[str, Any] = Field(default_factory=dict)
    prepared_at: datetime = Field(default_factory=utcnow)


class InterviewSession(DocumentModel):
    """The primary session document, one per candidate-job pairing."""
    session_id: str
    candidate_id: str
    application_id: str
    job_id: str
    recruiter_id: str
    candidate_snapshot: CandidateSnapshot
    window: SessionWindow
    status: SessionStatus = SessionStatus.SCHEDULED
    security: SessionSecurity
    access_control: AccessControl = Field(default_factory=AccessControl)
    conversation: ConversationState = Field(default_factory=ConversationState)
    prepared_content: Optional[PreparedContent] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_accessible(self, now: datetime) -> bool:
        return self.window.contains(now) and self.status in (SessionStatus.SCHEDULED, SessionStatus.ACTIVE)

    def minutes_remaining(self, now: datetime) -> int:
        return max(0, ceil_minutes(self.window.access_end - now))

    def summary(self, now: datetime) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "candidateName": self.candidate_snapshot.name,
            "role": self.candidate_snapshot.role,
            "companyName": self.candidate_snapshot.company,
            "scheduledStartTime": self.window.scheduled_start,
            "scheduledEndTime": self.window.scheduled_end,
            "duration": self.window.duration_minutes,
            "status": self.status,
            "minutesRemaining": self.minutes_remaining(now),
        }


class InterviewConfig(DocumentModel):
    skills: List[str] = Field(default_factory=list)
    experience_level: str = "intermediate"
    focus_areas: List[str] = Field(default_factory=lambda: ["technical", "problem-solving"])
    allow_code_editor: bool = True
    custom_questions: List[str] = Field(default_factory=list)


class ScheduledSessionMetadata(DocumentModel):
    time_zone: str = "UTC"
    language: str = "en"
    recording_enabled: bool = True
    notes: str = ""


class ScheduledSession(DocumentModel):
    """Lightweight slot booking without conversation state."""
    session_id: str
    candidate_id: str
    candidate_name: str
    position: str = "Software Developer"
    interviewer_name: str = "AI Interviewer"
    start_time: datetime
    end_time: datetime
    duration: int = 60
    status: SessionStatus = SessionStatus.SCHEDULED
    access_attempts: int = Field(default=0, ge=0)
    max_access_attempts: int = Field(default=3, gt=0)
    interview_config: InterviewConfig = Field(default_factory=InterviewConfig)
    metadata: ScheduledSessionMetadata = Field(default_factory=ScheduledSessionMetadata)
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    completion_data: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def public_view(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "candidateId": self.candidate_id,
            "candidateName": self.candidate_name,
            "position": self.position,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "status": self.status,
            "accessAttempts": self.access_attempts,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
