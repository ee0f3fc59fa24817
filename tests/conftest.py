"""
Shared fixtures: in-memory repositories mirroring the MongoDB repository
interface, a settable clock and a mocked text generator.
"""
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from interview_sessions.ai.llm import TextGenerator
from interview_sessions.core.errors import GenerationError
from interview_sessions.models.session import (
    CandidateSnapshot,
    InterviewSession,
    ScheduledSession,
)
from interview_sessions.services.content_preparer import ContentPreparer
from interview_sessions.services.conversation import ConversationController
from interview_sessions.services.scheduled_sessions import ScheduledSessionService
from interview_sessions.services.session_lifecycle import SessionLifecycleManager
from interview_sessions.utils.constants import SessionStatus


def _values(statuses) -> List[str]:
    return [SessionStatus(s).value for s in statuses]


def get_path(document: Dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def set_path(document: Dict[str, Any], path: str, value: Any):
    parts = path.split(".")
    target = document
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        value = get_path(document, key)
        if isinstance(condition, dict):
            for op, operand in condition.items():
                if op == "$in" and value not in operand:
                    return False
                if op == "$gte" and not (value is not None and value >= operand):
                    return False
                if op == "$lte" and not (value is not None and value <= operand):
                    return False
                if op == "$lt" and not (value is not None and value < operand):
                    return False
        elif value != condition:
            return False
    return True


class FakeClock:
    """Callable clock whose time tests set explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, day: Optional[int] = None):
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0, day=day or self.now.day)


class FakeSessionRepository:
    """In-memory stand-in for SessionRepository with the same update semantics."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.prepared_writes = 0

    def _model(self, document):
        return InterviewSession.model_validate(copy.deepcopy(document)) if document else None

    def raw(self, session_id: str) -> Dict[str, Any]:
        return self.documents[session_id]

    async def setup_indexes(self):
        return None

    async def insert(self, session: InterviewSession) -> InterviewSession:
        self.documents[session.session_id] = session.to_document()
        return session

    async def get(self, session_id: str) -> Optional[InterviewSession]:
        return self._model(self.documents.get(session_id))

    async def find_open_for_candidate_job(self, candidate_id, job_id):
        for document in self.documents.values():
            if matches(document, {"candidateId": candidate_id, "jobId": job_id,
                                  "status": {"$in": ["scheduled", "active"]}}):
                return self._model(document)
        return None

    async def find_latest_open_for_candidate(self, candidate_id):
        candidates = [
            d for d in self.documents.values()
            if matches(d, {"candidateId": candidate_id, "status": {"$in": ["scheduled", "active"]}})
        ]
        if not candidates:
            return None
        return self._model(max(candidates, key=lambda d: d["window"]["scheduledStart"]))

    async def list(self, query):
        found = [d for d in self.documents.values() if matches(d, query)]
        found.sort(key=lambda d: d["window"]["scheduledStart"])
        return [self._model(d) for d in found]

    async def increment_login_attempts(self, session_id, now):
        document = self.documents.get(session_id)
        if document is None:
            return None
        document["security"]["loginAttempts"] += 1
        document["security"]["lastAttemptAt"] = now
        return document["security"]["loginAttempts"]

    async def transition(self, session_id, from_statuses, to_status, now, set_fields=None):
        document = self.documents.get(session_id)
        if document is None or document["status"] not in _values(from_statuses):
            return None
        document["status"] = SessionStatus(to_status).value
        document["updatedAt"] = now
        for path, value in (set_fields or {}).items():
            set_path(document, path, value)
        return self._model(document)

    async def set_prepared_content_if_absent(self, session_id, content, now):
        document = self.documents[session_id]
        if document.get("preparedContent") is not None:
            return False
        document["preparedContent"] = content.to_document()
        self.prepared_writes += 1
        return True

    async def update_fields(self, session_id, set_fields, now, expected_statuses=None):
        document = self.documents.get(session_id)
        if document is None:
            return False
        if expected_statuses is not None and document["status"] not in _values(expected_statuses):
            return False
        for path, value in set_fields.items():
            set_path(document, path, copy.deepcopy(value))
        document["updatedAt"] = now
        return True

    async def append_messages(self, session_id, messages, now, set_fields=None, inc_fields=None):
        document = self.documents.get(session_id)
        if document is None:
            return False
        document["conversation"]["messages"].extend(m.to_document() for m in messages)
        document["conversation"]["lastMessageAt"] = now
        for path, value in (set_fields or {}).items():
            set_path(document, path, value)
        for path, amount in (inc_fields or {}).items():
            set_path(document, path, (get_path(document, path) or 0) + amount)
        return True

    async def close_open_coding_records(self, session_id, fields, now):
        closed = 0
        for record in self.documents[session_id]["conversation"]["codingTestRecords"]:
            if record.get("submittedAt") is None:
                record.update(fields)
                closed += 1
        return closed

    async def open_coding_record(self, session_id, record, announcement, now):
        conversation = self.documents[session_id]["conversation"]
        conversation["codingTestRecords"].append(record.to_document())
        conversation["messages"].append(announcement.to_document())
        conversation["awaitingCodingSubmission"] = True
        conversation["lastMessageAt"] = now
        return True


class FakeScheduledSessionRepository:
    """In-memory stand-in for ScheduledSessionRepository."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    def _model(self, document):
        return ScheduledSession.model_validate(copy.deepcopy(document)) if document else None

    async def setup_indexes(self):
        return None

    async def insert(self, session):
        self.documents[session.session_id] = session.to_document()
        return session

    async def get(self, session_id):
        return self._model(self.documents.get(session_id))

    async def get_by_candidate(self, candidate_id):
        found = [d for d in self.documents.values() if d["candidateId"] == candidate_id]
        if not found:
            return None
        return self._model(max(found, key=lambda d: d["createdAt"]))

    async def increment_attempts(self, session_id, now):
        document = self.documents.get(session_id)
        if document is None:
            return None
        document["accessAttempts"] += 1
        document["updatedAt"] = now
        return document["accessAttempts"]

    async def update_status(self, session_id, status, now, extra=None, from_statuses=None):
        document = self.documents.get(session_id)
        if document is None:
            return False
        if from_statuses is not None and document["status"] not in _values(from_statuses):
            return False
        document.update(copy.deepcopy(extra or {}))
        document["status"] = SessionStatus(status).value
        document["updatedAt"] = now
        return True

    async def list(self, query):
        found = [d for d in self.documents.values() if matches(d, query)]
        found.sort(key=lambda d: d["startTime"])
        return [self._model(d) for d in found]

    async def mark_expired(self, now):
        count = 0
        for document in self.documents.values():
            if document["endTime"] < now and document["status"] in ("scheduled", "active"):
                document["status"] = "expired"
                document["updatedAt"] = now
                count += 1
        return count

    async def delete_expired_before(self, cutoff):
        doomed = [
            sid for sid, d in self.documents.items()
            if d["status"] == "expired" and d["updatedAt"] < cutoff
        ]
        for sid in doomed:
            del self.documents[sid]
        return len(doomed)


class FakeProfileRepository:
    """In-memory stand-in for CandidateProfileRepository."""

    def __init__(self):
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.tasks: Dict[str, List[Dict[str, Any]]] = {}
        self.saved: List[str] = []

    async def get_profile(self, candidate_id):
        profile = self.profiles.get(str(candidate_id))
        return copy.deepcopy(profile) if profile else None

    async def get_stored_tasks(self, candidate_id):
        return copy.deepcopy(self.tasks.get(str(candidate_id))) or None

    async def save_tasks(self, candidate_id, tasks, now):
        self.tasks[str(candidate_id)] = copy.deepcopy(tasks)
        self.saved.append(str(candidate_id))


@pytest.fixture
def clock():
    """Clock starting at 2025-03-14 12:00 UTC."""
    return FakeClock(datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_repository():
    return FakeSessionRepository()


@pytest.fixture
def scheduled_repository():
    return FakeScheduledSessionRepository()


@pytest.fixture
def profile_repository():
    return FakeProfileRepository()


@pytest.fixture
def failing_generator():
    """Generator whose every call fails."""
    generator = Mock(spec=TextGenerator)
    generator.generate = AsyncMock(side_effect=GenerationError("model unavailable"))
    return generator


@pytest.fixture
def generator():
    """Generator that answers every call with a fixed reply."""
    generator = Mock(spec=TextGenerator)
    generator.generate = AsyncMock(return_value="That's interesting. Can you tell me more?")
    return generator


@pytest.fixture
def session_config():
    return {
        "duration_minutes": 60,
        "before_grace_minutes": 15,
        "after_grace_minutes": 15,
        "max_login_attempts": 3,
        "time_zone": "UTC",
        "context_window_messages": 10,
        "result_summary_max_len": 400,
        "frontend_url": "http://localhost:5173",
        "interval_minutes": 10,
        "retention_hours": 24,
    }


@pytest.fixture
def preparer(profile_repository, failing_generator, clock):
    return ContentPreparer(profile_repository, failing_generator, clock=clock)


@pytest.fixture
def lifecycle(session_repository, preparer, clock, session_config):
    return SessionLifecycleManager(session_repository, preparer, clock=clock, config=session_config)


@pytest.fixture
def conversation(session_repository, lifecycle, preparer, generator, clock, session_config):
    return ConversationController(
        session_repository, lifecycle, preparer, generator, clock=clock, config=session_config
    )


@pytest.fixture
def scheduled_service(scheduled_repository, clock, session_config):
    return ScheduledSessionService(scheduled_repository, clock=clock, config=session_config)


@pytest.fixture
def snapshot():
    return CandidateSnapshot(
        name="Ada Lovelace",
        email="ada@example.com",
        company="Analytical Engines",
        role="Backend Engineer",
        tech_stack=["python", "mongodb"],
        experience="5 years",
    )


@pytest.fixture
def create_session(lifecycle, snapshot):
    """Factory creating a session for C1/J1 at 14:00-15:00 UTC on the clock's day."""
    async def _create(candidate_id="C1", job_id="J1", scheduled_time="14:00", **kwargs):
        return await lifecycle.create(
            candidate_id=candidate_id,
            application_id="A1",
            job_id=job_id,
            recruiter_id="R1",
            snapshot=snapshot,
            scheduled_date="2025-03-14",
            scheduled_time=scheduled_time,
            **kwargs,
        )
    return _create
