"""
Request models for the session API endpoints.

Wire names are camelCase; Python attributes are snake_case.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AccessWindowRequest(ApiModel):
    before_start: int = Field(default=15, ge=0, description="Minutes before the start the session opens")
    after_end: int = Field(default=15, ge=0, description="Minutes after the end the session stays open")


class CreateSessionRequest(ApiModel):
    """Request to schedule a new interview session."""
    candidate_id: Optional[str] = None
    application_id: Optional[str] = None
    job_id: Optional[str] = None
    recruiter_id: Optional[str] = None
    candidate_details: Dict[str, Any] = Field(default_factory=dict)
    scheduled_date: Optional[str] = Field(None, description="YYYY-MM-DD in timeZone")
    scheduled_time: Optional[str] = Field(None, description="HH:MM in timeZone")
    duration: Optional[int] = None
    time_zone: Optional[str] = None
    access_window: Optional[AccessWindowRequest] = None

    class Config:
        json_schema_extra = {
            "example": {
                "candidateId": "c-101",
                "applicationId": "a-202",
                "jobId": "j-303",
                "recruiterId": "r-404",
                "candidateDetails": {"name": "Ada Lovelace", "role": "Backend Engineer", "techStack": ["python"]},
                "scheduledDate": "2025-03-14",
                "scheduledTime": "14:00",
                "duration": 60,
                "timeZone": "UTC",
            }
        }


class AccessSessionRequest(ApiModel):
    session_id: Optional[str] = None
    access_token: Optional[str] = None


class AccessByCandidateRequest(ApiModel):
    candidate_id: Optional[str] = None


class TokenRequest(ApiModel):
    access_token: Optional[str] = None


class MessageRequest(ApiModel):
    message: Optional[str] = None
    access_token: Optional[str] = None


class CodeStartRequest(ApiModel):
    access_token: Optional[str] = None
    test_name: Optional[str] = None
    candidate_id: Optional[str] = None


class CodeResultRequest(ApiModel):
    access_token: Optional[str] = None
    language: Optional[str] = None
    passed: bool = False
    result: Optional[str] = None
    details: Optional[Any] = None


class UpdateSessionRequest(ApiModel):
    access_token: Optional[str] = None
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    duration: Optional[int] = None


class CreateScheduledSessionRequest(ApiModel):
    """Request to book a scheduled slot."""
    candidate_id: Optional[str] = None
    candidate_name: Optional[str] = None
    position: Optional[str] = None
    interviewer_name: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[int] = None
    skills: Optional[List[str]] = None
    experience_level: Optional[str] = None
    focus_areas: Optional[List[str]] = None
    allow_code_editor: Optional[bool] = None
    custom_questions: Optional[List[str]] = None
    time_zone: Optional[str] = None
    language: Optional[str] = None
    recording_enabled: Optional[bool] = None
    notes: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CompleteScheduledSessionRequest(ApiModel):
    session_id: Optional[str] = None
    candidate_id: Optional[str] = None
    completion_data: Optional[Dict[str, Any]] = None
