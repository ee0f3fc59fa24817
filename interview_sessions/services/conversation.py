"""
Conversation controller for interview sessions.

The transcript is an append-only list on the session document. While a
coding exercise is open (``awaitingCodingSubmission``) candidate messages are
recorded but the interviewer stays silent; a code result clears the pause and
the interviewer resumes by evaluating the submission.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from interview_sessions.ai.llm import TextGenerator
from interview_sessions.ai.prompts.interview_prompts import (
    CODING_PAUSE_ANNOUNCEMENT,
    format_code_submission,
    format_system_prompt,
    format_welcome_message,
)
from interview_sessions.core.errors import Forbidden, GenerationError, ValidationError
from interview_sessions.core.session_store import SessionRepository
from interview_sessions.models.session import (
    CodingTestRecord,
    ConversationMessage,
    ConversationState,
    InterviewSession,
    utcnow,
)
from interview_sessions.services.content_preparer import ContentPreparer, snapshot_profile
from interview_sessions.services.session_lifecycle import SessionLifecycleManager
from interview_sessions.utils.config import get_session_config
from interview_sessions.utils.constants import (
    ERROR_SESSION_NOT_ACTIVE,
    FALLBACK_REPLY,
    MessageRole,
    OPEN_STATUSES,
    PAUSE_NOTICE,
    REPLY_MAX_TOKENS,
    REPLY_TEMPERATURE,
    SessionStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TEST_NAME = "coding-exercise"


class ConversationController:
    """Drives the interviewer conversation and the coding pause protocol."""

    def __init__(
        self,
        repository: SessionRepository,
        lifecycle: SessionLifecycleManager,
        preparer: ContentPreparer,
        generator: TextGenerator,
        clock: Callable[[], datetime] = utcnow,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.repository = repository
        self.lifecycle = lifecycle
        self.preparer = preparer
        self.generator = generator
        self.clock = clock
        self.config = config or get_session_config()

    @staticmethod
    def _require_active(session: InterviewSession):
        if session.status != SessionStatus.ACTIVE:
            raise Forbidden(ERROR_SESSION_NOT_ACTIVE, {"status": session.status})

    def _message(self, role: MessageRole, content: str) -> ConversationMessage:
        return ConversationMessage(role=role, content=content, timestamp=self.clock())

    def _system_prompt(self, session: InterviewSession) -> str:
        if session.prepared_content and session.prepared_content.system_prompt:
            return session.prepared_content.system_prompt
        return format_system_prompt(snapshot_profile(session.candidate_snapshot), [])

    def build_context(self, session: InterviewSession, history: List[ConversationMessage]) -> List[Dict[str, str]]:
        """System prompt followed by the most recent non-system messages."""
        window = self.config["context_window_messages"]
        recent = [m for m in history if m.role != MessageRole.SYSTEM][-window:]
        context = [{"role": MessageRole.SYSTEM.value, "content": self._system_prompt(session)}]
        context.extend({"role": m.role, "content": m.content} for m in recent)
        return context

    async def generate_reply(
        self,
        session: InterviewSession,
        history: Optional[List[ConversationMessage]] = None,
    ) -> Dict[str, Any]:
        """
        Ask the model for the interviewer's next turn and append it to the transcript.

        Args:
            session: Session being driven
            history: Transcript to build the context from; defaults to the stored one

        Returns:
            Dictionary with the reply text and whether the fixed fallback was used
        """
        history = session.conversation.messages if history is None else history
        fallback = False
        try:
            reply = await self.generator.generate(
                self.build_context(session, history),
                temperature=REPLY_TEMPERATURE,
                max_tokens=REPLY_MAX_TOKENS,
            )
        except GenerationError as e:
            logger.warning(f"Reply generation failed for session {session.session_id}: {e}")
            reply = FALLBACK_REPLY
            fallback = True

        assistant_message = self._message(MessageRole.ASSISTANT, reply)
        await self.repository.append_messages(
            session.session_id,
            [assistant_message],
            self.clock(),
            inc_fields={"conversation.questionsAsked": 1},
        )
        return {
            "message": reply,
            "fallback": fallback,
            "timestamp": assistant_message.timestamp,
            "messageCount": len(history) + 1,
        }

    async def initialize(self, session_id: str, token: str) -> Dict[str, Any]:
        """Start the transcript with the system prompt and the welcome message."""
        session = await self.lifecycle.load_for_conversation(session_id, token)
        if session.status not in OPEN_STATUSES:
            raise Forbidden(ERROR_SESSION_NOT_ACTIVE, {"status": session.status})
        session = await self.lifecycle.ensure_prepared_content(session)

        now = self.clock()
        snapshot = session.candidate_snapshot
        welcome = format_welcome_message(snapshot.name, snapshot.role, snapshot.company)
        conversation = ConversationState(
            messages=[
                self._message(MessageRole.SYSTEM, session.prepared_content.system_prompt),
                self._message(MessageRole.ASSISTANT, welcome),
            ],
            questions_asked=1,
            started_at=now,
            last_message_at=now,
        )
        updated = await self.repository.update_fields(
            session_id,
            {"conversation": conversation.to_document()},
            now,
            expected_statuses=OPEN_STATUSES,
        )
        if not updated:
            raise Forbidden(ERROR_SESSION_NOT_ACTIVE)

        logger.info(f"Initialized conversation for session {session_id}")
        return {
            "initialMessage": welcome,
            "preparedContent": session.prepared_content.to_document(),
            "conversationLength": len(conversation.messages),
        }

    async def post_message(self, session_id: str, token: str, text: str) -> Dict[str, Any]:
        """
        Record a candidate message and produce the interviewer's reply.

        While a coding exercise is open the message is recorded and the fixed
        pause notice is returned instead of a reply.
        """
        if not text or not text.strip():
            raise ValidationError("message and accessToken are required")
        session = await self.lifecycle.load_for_conversation(session_id, token)
        self._require_active(session)

        user_message = self._message(MessageRole.USER, text)
        await self.repository.append_messages(
            session_id,
            [user_message],
            self.clock(),
            inc_fields={"conversation.answersReceived": 1},
        )

        if session.conversation.awaiting_coding_submission:
            logger.info(f"Session {session_id} is paused for coding, withholding reply")
            return {
                "message": PAUSE_NOTICE,
                "paused": True,
                "messageCount": len(session.conversation.messages) + 1,
            }

        reply = await self.generate_reply(session, session.conversation.messages + [user_message])
        reply["paused"] = False
        return reply

    async def code_start(
        self,
        session_id: str,
        token: str,
        test_name: Optional[str] = None,
        candidate_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Open a coding exercise and pause the interviewer.

        A record left open by an earlier start is closed as abandoned first,
        so at most one record is open at a time.
        """
        session = await self.lifecycle.load_for_conversation(session_id, token)
        self._require_active(session)
        now = self.clock()
        test_name = test_name or DEFAULT_TEST_NAME

        abandoned = await self.repository.close_open_coding_records(
            session_id,
            {"submittedAt": now, "passed": False, "abandoned": True},
            now,
        )
        if abandoned:
            logger.info(f"Abandoned {abandoned} open coding record(s) on session {session_id}")

        announcement = self._message(MessageRole.ASSISTANT, CODING_PAUSE_ANNOUNCEMENT.format(test_name=test_name))
        await self.repository.open_coding_record(
            session_id,
            CodingTestRecord(test_name=test_name, started_at=now),
            announcement,
            now,
        )

        if session.prepared_content:
            profile_hint = session.prepared_content.candidate_profile
        else:
            profile_hint = snapshot_profile(session.candidate_snapshot)
        tasks = await self.preparer.coding_tasks_for(candidate_id or session.candidate_id, profile_hint)

        logger.info(f"Coding exercise '{test_name}' started on session {session_id}")
        return {
            "paused": True,
            "testName": test_name,
            "message": announcement.content,
            "abandonedPrevious": bool(abandoned),
            "codingTasks": [task.to_document() for task in tasks],
        }

    async def code_result(
        self,
        session_id: str,
        token: str,
        language: Optional[str],
        passed: bool,
        result: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Close the open exercise, resume the interviewer and return its evaluation."""
        session = await self.lifecycle.load_for_conversation(session_id, token)
        self._require_active(session)
        now = self.clock()

        summary = (result or "")[: self.config["result_summary_max_len"]]
        closed = await self.repository.close_open_coding_records(
            session_id,
            {"submittedAt": now, "passed": bool(passed), "language": language, "resultSummary": summary},
            now,
        )
        if not closed:
            logger.warning(f"Code result on session {session_id} without an open coding record")

        submission = self._message(MessageRole.USER, format_code_submission(language, passed, summary, details))
        await self.repository.append_messages(
            session_id,
            [submission],
            now,
            set_fields={"conversation.awaitingCodingSubmission": False},
            inc_fields={"conversation.codingTestsCompleted": 1},
        )

        reply = await self.generate_reply(session, session.conversation.messages + [submission])
        reply["paused"] = False
        reply["passed"] = bool(passed)
        return reply
