"""
MongoDB repositories for interview sessions, scheduled slots and candidate profiles.

Every mutation is a single-document update so correctness relies on MongoDB's
per-document atomicity: counters use ``$inc``, state transitions filter on the
current status, prepared content is written only when absent.
"""
import functools
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pymongo
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from interview_sessions.core.errors import ExternalServiceFailure
from interview_sessions.models.session import (
    CodingTestRecord,
    ConversationMessage,
    InterviewSession,
    PreparedContent,
    ScheduledSession,
)
from interview_sessions.utils.config import get_db_config
from interview_sessions.utils.constants import OPEN_STATUSES, SessionStatus

logger = logging.getLogger(__name__)

OPEN_STATUS_VALUES = [s.value for s in OPEN_STATUSES]


def storage_call(func):
    """Translate driver errors into ExternalServiceFailure."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            logger.error(f"Storage error in {func.__name__}: {e}")
            raise ExternalServiceFailure("Storage service unavailable", {"operation": func.__name__}) from e
    return wrapper


def _status_values(statuses: Iterable[Any]) -> List[str]:
    return [SessionStatus(s).value for s in statuses]


class SessionRepository:
    """Persistence for the primary interview session document."""

    def __init__(self, database: AsyncIOMotorDatabase, collection_name: Optional[str] = None):
        self.db = database
        self.collection: AsyncIOMotorCollection = database[
            collection_name or get_db_config()["sessions_collection"]
        ]

    async def setup_indexes(self):
        """Set up database indexes for the access paths used by the engine."""
        try:
            await self.collection.create_index("sessionId", unique=True)
            await self.collection.create_index([("candidateId", 1), ("window.scheduledStart", -1)])
            await self.collection.create_index([("candidateId", 1), ("jobId", 1), ("status", 1)])
            await self.collection.create_index([("status", 1), ("window.scheduledStart", 1)])
            await self.collection.create_index("recruiterId")
            logger.info("Interview session indexes created successfully")
        except PyMongoError as e:
            logger.warning(f"Index creation warning (may already exist): {e}")

    @staticmethod
    def _to_model(document: Optional[Dict[str, Any]]) -> Optional[InterviewSession]:
        if not document:
            return None
        return InterviewSession.model_validate(document)

    @storage_call
    async def insert(self, session: InterviewSession) -> InterviewSession:
        await self.collection.insert_one(session.to_document())
        logger.info(f"Inserted interview session {session.session_id} for candidate {session.candidate_id}")
        return session

    @storage_call
    async def get(self, session_id: str) -> Optional[InterviewSession]:
        return self._to_model(await self.collection.find_one({"sessionId": session_id}))

    @storage_call
    async def find_open_for_candidate_job(self, candidate_id: str, job_id: str) -> Optional[InterviewSession]:
        document = await self.collection.find_one({
            "candidateId": candidate_id,
            "jobId": job_id,
            "status": {"$in": OPEN_STATUS_VALUES},
        })
        return self._to_model(document)

    @storage_call
    async def find_latest_open_for_candidate(self, candidate_id: str) -> Optional[InterviewSession]:
        document = await self.collection.find_one(
            {"candidateId": candidate_id, "status": {"$in": OPEN_STATUS_VALUES}},
            sort=[("window.scheduledStart", pymongo.DESCENDING)],
        )
        return self._to_model(document)

    @storage_call
    async def list(self, query: Dict[str, Any]) -> List[InterviewSession]:
        cursor = self.collection.find(query).sort("window.scheduledStart", pymongo.ASCENDING)
        return [InterviewSession.model_validate(doc) async for doc in cursor]

    @storage_call
    async def increment_login_attempts(self, session_id: str, now: datetime) -> Optional[int]:
        """Atomically bump the attempt counter and return the new value."""
        document = await self.collection.find_one_and_update(
            {"sessionId": session_id},
            {
                "$inc": {"security.loginAttempts": 1},
                "$set": {"security.lastAttemptAt": now, "updatedAt": now},
            },
            projection={"security.loginAttempts": 1},
            return_document=ReturnDocument.AFTER,
        )
        if not document:
            return None
        return document["security"]["loginAttempts"]

    @storage_call
    async def transition(
        self,
        session_id: str,
        from_statuses: Iterable[Any],
        to_status: SessionStatus,
        now: datetime,
        set_fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[InterviewSession]:
        """Conditionally move a session between states.

        Returns the updated session, or None when the session was not in one
        of ``from_statuses`` (someone else already transitioned it).
        """
        update = {"status": SessionStatus(to_status).value, "updatedAt": now}
        update.update(set_fields or {})
        document = await self.collection.find_one_and_update(
            {"sessionId": session_id, "status": {"$in": _status_values(from_statuses)}},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if document:
            logger.info(f"Session {session_id} transitioned to {update['status']}")
        return self._to_model(document)

    @storage_call
    async def set_prepared_content_if_absent(
        self, session_id: str, content: PreparedContent, now: datetime
    ) -> bool:
        result = await self.collection.update_one(
            {"sessionId": session_id, "preparedContent": None},
            {"$set": {"preparedContent": content.to_document(), "updatedAt": now}},
        )
        return result.modified_count > 0

    @storage_call
    async def update_fields(
        self,
        session_id: str,
        set_fields: Dict[str, Any],
        now: datetime,
        expected_statuses: Optional[Iterable[Any]] = None,
    ) -> bool:
        query: Dict[str, Any] = {"sessionId": session_id}
        if expected_statuses is not None:
            query["status"] = {"$in": _status_values(expected_statuses)}
        fields = dict(set_fields)
        fields["updatedAt"] = now
        result = await self.collection.update_one(query, {"$set": fields})
        return result.matched_count > 0

    @storage_call
    async def append_messages(
        self,
        session_id: str,
        messages: List[ConversationMessage],
        now: datetime,
        set_fields: Optional[Dict[str, Any]] = None,
        inc_fields: Optional[Dict[str, int]] = None,
    ) -> bool:
        fields = {"conversation.lastMessageAt": now, "updatedAt": now}
        fields.update(set_fields or {})
        update: Dict[str, Any] = {
            "$push": {"conversation.messages": {"$each": [m.to_document() for m in messages]}},
            "$set": fields,
        }
        if inc_fields:
            update["$inc"] = inc_fields
        result = await self.collection.update_one({"sessionId": session_id}, update)
        return result.matched_count > 0

    @storage_call
    async def close_open_coding_records(self, session_id: str, fields: Dict[str, Any], now: datetime) -> int:
        """Set ``fields`` on every coding record still lacking a submission time."""
        update = {f"conversation.codingTestRecords.$[open].{key}": value for key, value in fields.items()}
        update["updatedAt"] = now
        result = await self.collection.update_one(
            {"sessionId": session_id},
            {"$set": update},
            array_filters=[{"open.submittedAt": None}],
        )
        return result.modified_count

    @storage_call
    async def open_coding_record(
        self,
        session_id: str,
        record: CodingTestRecord,
        announcement: ConversationMessage,
        now: datetime,
    ) -> bool:
        result = await self.collection.update_one(
            {"sessionId": session_id},
            {
                "$push": {
                    "conversation.codingTestRecords": record.to_document(),
                    "conversation.messages": announcement.to_document(),
                },
                "$set": {
                    "conversation.awaitingCodingSubmission": True,
                    "conversation.lastMessageAt": now,
                    "updatedAt": now,
                },
            },
        )
        return result.matched_count > 0


class ScheduledSessionRepository:
    """Persistence for lightweight scheduled slots."""

    def __init__(self, database: AsyncIOMotorDatabase, collection_name: Optional[str] = None):
        self.db = database
        self.collection: AsyncIOMotorCollection = database[
            collection_name or get_db_config()["scheduled_collection"]
        ]

    async def setup_indexes(self):
        try:
            await self.collection.create_index("sessionId", unique=True)
            await self.collection.create_index("candidateId")
            await self.collection.create_index("startTime")
            await self.collection.create_index("endTime")
            await self.collection.create_index([("status", 1), ("updatedAt", 1)])
            logger.info("Scheduled session indexes created successfully")
        except PyMongoError as e:
            logger.warning(f"Index creation warning (may already exist): {e}")

    @staticmethod
    def _to_model(document: Optional[Dict[str, Any]]) -> Optional[ScheduledSession]:
        if not document:
            return None
        return ScheduledSession.model_validate(document)

    @storage_call
    async def insert(self, session: ScheduledSession) -> ScheduledSession:
        await self.collection.insert_one(session.to_document())
        logger.info(f"Created scheduled session {session.session_id} for candidate {session.candidate_id}")
        return session

    @storage_call
    async def get(self, session_id: str) -> Optional[ScheduledSession]:
        return self._to_model(await self.collection.find_one({"sessionId": session_id}))

    @storage_call
    async def get_by_candidate(self, candidate_id: str) -> Optional[ScheduledSession]:
        document = await self.collection.find_one(
            {"candidateId": candidate_id},
            sort=[("createdAt", pymongo.DESCENDING)],
        )
        return self._to_model(document)

    @storage_call
    async def increment_attempts(self, session_id: str, now: datetime) -> Optional[int]:
        document = await self.collection.find_one_and_update(
            {"sessionId": session_id},
            {"$inc": {"accessAttempts": 1}, "$set": {"updatedAt": now}},
            projection={"accessAttempts": 1},
            return_document=ReturnDocument.AFTER,
        )
        if not document:
            return None
        return document["accessAttempts"]

    @storage_call
    async def update_status(
        self,
        session_id: str,
        status: SessionStatus,
        now: datetime,
        extra: Optional[Dict[str, Any]] = None,
        from_statuses: Optional[Iterable[Any]] = None,
    ) -> bool:
        query: Dict[str, Any] = {"sessionId": session_id}
        if from_statuses is not None:
            query["status"] = {"$in": _status_values(from_statuses)}
        fields = dict(extra or {})
        fields.update({"status": SessionStatus(status).value, "updatedAt": now})
        result = await self.collection.update_one(query, {"$set": fields})
        return result.matched_count > 0

    @storage_call
    async def list(self, query: Dict[str, Any]) -> List[ScheduledSession]:
        cursor = self.collection.find(query).sort("startTime", pymongo.ASCENDING)
        return [ScheduledSession.model_validate(doc) async for doc in cursor]

    @storage_call
    async def mark_expired(self, now: datetime) -> int:
        result = await self.collection.update_many(
            {"endTime": {"$lt": now}, "status": {"$in": OPEN_STATUS_VALUES}},
            {"$set": {"status": SessionStatus.EXPIRED.value, "updatedAt": now}},
        )
        return result.modified_count

    @storage_call
    async def delete_expired_before(self, cutoff: datetime) -> int:
        result = await self.collection.delete_many(
            {"status": SessionStatus.EXPIRED.value, "updatedAt": {"$lt": cutoff}}
        )
        return result.deleted_count


class CandidateProfileRepository:
    """Read access to candidate profiles and the persisted coding-task store."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        candidates_collection: Optional[str] = None,
        code_questions_collection: Optional[str] = None,
    ):
        db_config = get_db_config()
        self.candidates: AsyncIOMotorCollection = database[
            candidates_collection or db_config["candidates_collection"]
        ]
        self.code_questions: AsyncIOMotorCollection = database[
            code_questions_collection or db_config["code_questions_collection"]
        ]

    @storage_call
    async def get_profile(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        document = await self.candidates.find_one({"candidateId": str(candidate_id)})
        if not document:
            return None
        document.pop("_id", None)
        return document

    @storage_call
    async def get_stored_tasks(self, candidate_id: str) -> Optional[List[Dict[str, Any]]]:
        document = await self.code_questions.find_one({"candidateId": str(candidate_id)})
        if document and document.get("tasks"):
            return document["tasks"]
        return None

    @storage_call
    async def save_tasks(self, candidate_id: str, tasks: List[Dict[str, Any]], now: datetime) -> None:
        await self.code_questions.update_one(
            {"candidateId": str(candidate_id)},
            {"$set": {"candidateId": str(candidate_id), "tasks": tasks, "updatedAt": now}},
            upsert=True,
        )
