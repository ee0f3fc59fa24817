"""
Tests for the scheduled session (slot booking) service.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from interview_sessions.core.errors import Conflict, Forbidden, Locked, NotFound, ValidationError

UTC = timezone.utc


def slot(candidate_id="C1", start="2025-03-14T13:00:00Z", end="2025-03-14T14:00:00Z", **extra):
    return {
        "candidateId": candidate_id,
        "candidateName": "Ada Lovelace",
        "position": "Backend Engineer",
        "startTime": start,
        "endTime": end,
        **extra,
    }


class TestCreate:
    """Slot booking."""

    @pytest.mark.asyncio
    async def test_create_slot(self, scheduled_service, scheduled_repository):
        result = await scheduled_service.create(slot(skills=["python"], allowCodeEditor=False))

        session = result["session"]
        assert session["status"] == "scheduled"
        assert session["startTime"] == datetime(2025, 3, 14, 13, 0, tzinfo=UTC)
        stored = scheduled_repository.documents[session["sessionId"]]
        assert stored["interviewConfig"]["skills"] == ["python"]
        assert stored["interviewConfig"]["allowCodeEditor"] is False
        assert stored["maxAccessAttempts"] == 3

    @pytest.mark.asyncio
    async def test_missing_fields(self, scheduled_service):
        with pytest.raises(ValidationError) as exc_info:
            await scheduled_service.create({"candidateId": "C1"})
        assert "candidateName" in exc_info.value.context["missing"]

    @pytest.mark.asyncio
    async def test_start_must_precede_end(self, scheduled_service):
        with pytest.raises(ValidationError):
            await scheduled_service.create(slot(start="2025-03-14T14:00:00Z", end="2025-03-14T13:00:00Z"))

    @pytest.mark.asyncio
    async def test_end_in_past_rejected(self, scheduled_service):
        with pytest.raises(ValidationError):
            await scheduled_service.create(slot(start="2025-03-14T09:00:00Z", end="2025-03-14T10:00:00Z"))

    @pytest.mark.asyncio
    async def test_invalid_instant(self, scheduled_service):
        with pytest.raises(ValidationError):
            await scheduled_service.create(slot(start="tomorrow"))

    @pytest.mark.asyncio
    async def test_open_slot_conflicts(self, scheduled_service):
        await scheduled_service.create(slot())

        with pytest.raises(Conflict):
            await scheduled_service.create(slot(start="2025-03-15T13:00:00Z", end="2025-03-15T14:00:00Z"))


class TestAccess:
    """Entry into a slot."""

    @pytest.mark.asyncio
    async def test_access_inside_window_activates(self, scheduled_service, scheduled_repository, clock):
        created = await scheduled_service.create(slot())
        clock.set(13, 30)

        result = await scheduled_service.access("C1")

        assert result["session"]["status"] == "active"
        assert result["session"]["timeRemaining"] == 30
        assert result["session"]["accessAttempts"] == 1
        assert "30 minutes remaining" in result["initialMessage"]
        stored = scheduled_repository.documents[created["session"]["sessionId"]]
        assert stored["status"] == "active"
        assert stored["actualStartTime"] == clock.now

    @pytest.mark.asyncio
    async def test_slot_has_no_grace_period(self, scheduled_service, clock):
        await scheduled_service.create(slot())
        clock.set(12, 59)

        with pytest.raises(Forbidden) as exc_info:
            await scheduled_service.access("C1")

        assert exc_info.value.context["minutesToStart"] == 1
        assert exc_info.value.context["accessAttempts"] == 1

    @pytest.mark.asyncio
    async def test_access_after_end_expires(self, scheduled_service, scheduled_repository, clock):
        created = await scheduled_service.create(slot())
        clock.set(14, 1)

        with pytest.raises(Forbidden) as exc_info:
            await scheduled_service.access("C1")

        assert exc_info.value.context["status"] == "expired"
        assert scheduled_repository.documents[created["session"]["sessionId"]]["status"] == "expired"

    @pytest.mark.asyncio
    async def test_denied_attempts_count_towards_lock(self, scheduled_service, clock):
        await scheduled_service.create(slot())
        for _ in range(3):
            with pytest.raises(Forbidden):
                await scheduled_service.access("C1")

        clock.set(13, 30)
        with pytest.raises(Locked) as exc_info:
            await scheduled_service.access("C1")

        assert exc_info.value.context["accessAttempts"] == 4

    @pytest.mark.asyncio
    async def test_concurrent_access_stops_at_ceiling(self, scheduled_service, scheduled_repository, clock):
        await scheduled_service.create(slot())
        clock.set(13, 30)
        original_get = scheduled_repository.get_by_candidate

        async def yielding_get(candidate_id):
            session = await original_get(candidate_id)
            await asyncio.sleep(0)
            return session

        scheduled_repository.get_by_candidate = yielding_get
        outcomes = await asyncio.gather(*(scheduled_service.access("C1") for _ in range(5)), return_exceptions=True)

        assert sum(isinstance(o, dict) for o in outcomes) == 3
        assert sum(isinstance(o, Locked) for o in outcomes) == 2

    @pytest.mark.asyncio
    async def test_unknown_candidate(self, scheduled_service):
        with pytest.raises(NotFound):
            await scheduled_service.access("nobody")


class TestReadsAndUpdates:
    """Status, completion, listing and admin updates."""

    @pytest.mark.asyncio
    async def test_status_reports_accessibility(self, scheduled_service):
        await scheduled_service.create(slot())

        status = (await scheduled_service.status("C1"))["sessionStatus"]

        assert status["isAccessible"] is False
        assert status["reason"] == "not_yet_open"
        assert status["minutesToStart"] == 60
        assert status["accessAttempts"] == 0

    @pytest.mark.asyncio
    async def test_complete_by_candidate(self, scheduled_service, clock):
        await scheduled_service.create(slot())
        clock.set(13, 30)
        await scheduled_service.access("C1")

        result = await scheduled_service.complete(candidate_id="C1", completion_data={"score": 7})

        assert result["status"] == "completed"
        with pytest.raises(Forbidden):
            await scheduled_service.complete(candidate_id="C1")

    @pytest.mark.asyncio
    async def test_complete_requires_identifier(self, scheduled_service):
        with pytest.raises(ValidationError):
            await scheduled_service.complete()

    @pytest.mark.asyncio
    async def test_list_filters_by_date_range(self, scheduled_service):
        await scheduled_service.create(slot("C1"))
        await scheduled_service.create(slot("C2", start="2025-03-16T09:00:00Z", end="2025-03-16T10:00:00Z"))

        assert (await scheduled_service.list())["count"] == 2
        later = await scheduled_service.list(date_from="2025-03-15T00:00:00Z")
        assert [s["candidateId"] for s in later["sessions"]] == ["C2"]
        assert (await scheduled_service.list(status="scheduled", candidate_id="C1"))["count"] == 1

    @pytest.mark.asyncio
    async def test_update_changes_allowed_fields_only(self, scheduled_service, scheduled_repository):
        created = await scheduled_service.create(slot())
        session_id = created["session"]["sessionId"]

        result = await scheduled_service.update(session_id, {"position": "Staff Engineer", "accessAttempts": 99})

        assert result["session"]["position"] == "Staff Engineer"
        assert scheduled_repository.documents[session_id]["position"] == "Staff Engineer"
        assert scheduled_repository.documents[session_id]["accessAttempts"] == 0

    @pytest.mark.asyncio
    async def test_update_rejects_inverted_window(self, scheduled_service):
        created = await scheduled_service.create(slot())

        with pytest.raises(ValidationError):
            await scheduled_service.update(created["session"]["sessionId"], {"startTime": "2025-03-14T15:00:00Z"})

    @pytest.mark.asyncio
    async def test_update_moves_status_forward(self, scheduled_service, scheduled_repository):
        created = await scheduled_service.create(slot())
        session_id = created["session"]["sessionId"]

        result = await scheduled_service.update(session_id, {"status": "cancelled"})

        assert result["session"]["status"] == "cancelled"
        assert scheduled_repository.documents[session_id]["status"] == "cancelled"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["scheduled", "active", "expired"])
    async def test_update_cannot_reopen_completed_slot(self, scheduled_service, scheduled_repository, target):
        created = await scheduled_service.create(slot())
        session_id = created["session"]["sessionId"]
        await scheduled_service.complete(session_id=session_id)

        with pytest.raises(Forbidden) as exc_info:
            await scheduled_service.update(session_id, {"status": target})

        assert exc_info.value.context["status"] == "completed"
        assert scheduled_repository.documents[session_id]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_update_cannot_move_active_back_to_scheduled(self, scheduled_service, scheduled_repository, clock):
        created = await scheduled_service.create(slot())
        session_id = created["session"]["sessionId"]
        clock.set(13, 30)
        await scheduled_service.access("C1")

        with pytest.raises(Forbidden):
            await scheduled_service.update(session_id, {"status": "scheduled"})

        assert scheduled_repository.documents[session_id]["status"] == "active"

    @pytest.mark.asyncio
    async def test_terminal_slot_fields_still_editable(self, scheduled_service, scheduled_repository):
        created = await scheduled_service.create(slot())
        session_id = created["session"]["sessionId"]
        await scheduled_service.complete(session_id=session_id)

        await scheduled_service.update(session_id, {"position": "Staff Engineer", "status": "completed"})

        assert scheduled_repository.documents[session_id]["position"] == "Staff Engineer"
        assert scheduled_repository.documents[session_id]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_update_conflicts_when_status_changed_underneath(self, scheduled_service, scheduled_repository):
        created = await scheduled_service.create(slot())
        session_id = created["session"]["sessionId"]
        stale = await scheduled_repository.get(session_id)
        await scheduled_service.complete(session_id=session_id)

        async def stale_get(sid):
            return stale

        scheduled_repository.get = stale_get
        with pytest.raises(Conflict):
            await scheduled_service.update(session_id, {"status": "active"})

        assert scheduled_repository.documents[session_id]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_update_unknown_session(self, scheduled_service):
        with pytest.raises(NotFound):
            await scheduled_service.update("session_missing", {"position": "x"})


class TestCleanup:
    """Periodic sweep of past-window slots."""

    @pytest.mark.asyncio
    async def test_cleanup_expires_then_deletes(self, scheduled_service, scheduled_repository, clock):
        await scheduled_service.create(slot())
        clock.set(15, 0)

        first = await scheduled_service.cleanup_expired()
        assert first == {"expiredCount": 1, "deletedCount": 0}

        second = await scheduled_service.cleanup_expired(clock.now + timedelta(hours=25))
        assert second == {"expiredCount": 0, "deletedCount": 1}
        assert scheduled_repository.documents == {}

    @pytest.mark.asyncio
    async def test_cleanup_leaves_future_slots(self, scheduled_service, scheduled_repository):
        await scheduled_service.create(slot())

        assert await scheduled_service.cleanup_expired() == {"expiredCount": 0, "deletedCount": 0}
        assert len(scheduled_repository.documents) == 1
