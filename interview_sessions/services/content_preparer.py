"""
Content preparation for interview sessions.

Assembles the question list, coding tasks and interviewer system prompt for a
candidate. Each piece comes from an ordered chain of named strategies; a
strategy returns a value or None, and the first value wins. ``prepare`` never
raises: when something unexpected happens the fixed built-in content is used
and the result is tagged ``fallback_error``.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from interview_sessions.ai.llm import TextGenerator, parse_json_array
from interview_sessions.ai.prompts.interview_prompts import (
    format_question_generation_messages,
    format_system_prompt,
    format_task_generation_messages,
)
from interview_sessions.core.errors import ExternalServiceFailure
from interview_sessions.core.session_store import CandidateProfileRepository
from interview_sessions.models.session import CandidateSnapshot, CodingTask, PreparedContent, utcnow
from interview_sessions.utils.constants import (
    DataSource,
    MAX_GENERATED_QUESTIONS,
    MAX_GENERATED_TASKS,
    MIN_GENERATED_QUESTIONS,
    QUESTION_MAX_TOKENS,
    QUESTION_TEMPERATURE,
    TASK_MAX_TOKENS,
    TASK_TEMPERATURE,
)
from interview_sessions.utils.profiling import timed_coroutine

logger = logging.getLogger(__name__)

BUILTIN_QUESTIONS = [
    "Tell me about a project you built that you are most proud of and what you learned from it.",
    "Explain your typical approach to debugging a production issue.",
    "Write a function to reverse a string and explain its time complexity.",
    "How would you design a simple REST API for a todo app? Describe endpoints and data models.",
    "What are the differences between SQL and NoSQL databases and when to use each?",
    "Explain the event loop in JavaScript and how asynchronous code executes.",
]

BUILTIN_TASK = {
    "id": "sum-array",
    "title": "Sum of Array",
    "description": "Write a function `sumArray(arr)` that returns the sum of numeric elements in the array.",
    "languageHints": ["javascript", "python"],
    "exampleInputOutput": {"input": "[1,2,3]", "output": "6"},
    "tests": ["sumArray([1,2,3]) === 6", "sumArray([-1,1]) === 0"],
}

STORED_TASKS = "stored_tasks"


def builtin_questions() -> List[str]:
    return list(BUILTIN_QUESTIONS)


def builtin_tasks() -> List[CodingTask]:
    return [CodingTask.model_validate(BUILTIN_TASK)]


def snapshot_profile(snapshot: CandidateSnapshot) -> Dict[str, Any]:
    """Derive a minimal candidate profile from the session's snapshot."""
    return {
        "candidateName": snapshot.name,
        "position": snapshot.role,
        "skills": list(snapshot.tech_stack),
        "experience": snapshot.experience,
    }


def convert_assessment(profile: Dict[str, Any]) -> Optional[List[CodingTask]]:
    """
    Convert a structured coding assessment on the profile into coding tasks.

    Args:
        profile: Stored candidate profile

    Returns:
        One task per assessment question, or None when the profile has no assessment
    """
    assessment = profile.get("codingAssessment") or {}
    questions = assessment.get("questions")
    if not isinstance(questions, list) or not questions:
        return None

    tasks = []
    for index, question in enumerate(questions):
        question_id = question.get("id")
        sample_tests = question.get("sampleTests") or []
        hidden_tests = question.get("hiddenTests") or []

        tests = [
            f"{question_id or index}-sample: input={json.dumps(t.get('input'))} expected={json.dumps(t.get('expected'))}"
            for t in sample_tests
        ]
        tests.extend(
            f"{question_id or 'hidden'}-hidden: input={json.dumps(t.get('input'))} expected={json.dumps(t.get('expected'))}"
            for t in hidden_tests
        )

        example = None
        if sample_tests:
            example = {"input": sample_tests[0].get("input"), "output": sample_tests[0].get("expected")}

        description = ""
        if question.get("prompt"):
            description = question["prompt"] + "\n\n"
        description += question.get("signature") or ""

        title = question.get("title") or ""
        if question.get("language"):
            hints = [question["language"]]
        else:
            hints = list(question.get("languageHints") or [])

        tasks.append(CodingTask(
            id=question_id or "_".join(title.lower().split()),
            title=title or question_id or "Coding Task",
            description=description,
            language_hints=hints,
            example_input_output=example,
            tests=tests,
        ))
    return tasks


@dataclass
class Strategy:
    name: str
    run: Callable[..., Awaitable[Optional[Any]]]


@dataclass
class ChainResult:
    name: str
    value: Any
    failures: List[str] = field(default_factory=list)


async def run_chain(strategies: List[Strategy], *args) -> ChainResult:
    """
    Try strategies in order and return the first non-empty result.

    A strategy that raises is logged and recorded as a failure, then the next
    one is tried. The last strategy of every chain must always produce a value.
    """
    failures = []
    for strategy in strategies:
        try:
            value = await strategy.run(*args)
        except Exception as e:
            logger.warning(f"Strategy '{strategy.name}' failed: {e}")
            failures.append(strategy.name)
            continue
        if value:
            logger.info(f"Strategy '{strategy.name}' produced a result")
            return ChainResult(name=strategy.name, value=value, failures=failures)
        logger.debug(f"Strategy '{strategy.name}' had no result")
    raise RuntimeError("Strategy chain exhausted without a result")


class ContentPreparer:
    """Builds PreparedContent for a candidate through ordered fallback chains."""

    def __init__(
        self,
        profiles: CandidateProfileRepository,
        generator: TextGenerator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.profiles = profiles
        self.generator = generator
        self.clock = clock

        self.question_chain = [
            Strategy("profile_custom_questions", self._profile_custom_questions),
            Strategy("generated_questions", self._generated_questions),
            Strategy("builtin_questions", self._builtin_questions),
        ]
        self.task_chain = [
            Strategy(STORED_TASKS, self._stored_tasks),
            Strategy("converted_assessment", self._converted_assessment),
            Strategy("generated_tasks", self._generated_tasks),
            Strategy("builtin_task", self._builtin_task),
        ]

    # Question strategies

    async def _profile_custom_questions(self, candidate_id: str, profile: Dict[str, Any]) -> Optional[List[str]]:
        custom = profile.get("customQuestions")
        if isinstance(custom, list):
            questions = [q for q in custom if isinstance(q, str) and q.strip()]
            return questions or None
        return None

    async def _generated_questions(self, candidate_id: str, profile: Dict[str, Any]) -> Optional[List[str]]:
        text = await self.generator.generate(
            format_question_generation_messages(profile),
            temperature=QUESTION_TEMPERATURE,
            max_tokens=QUESTION_MAX_TOKENS,
        )
        parsed = parse_json_array(text)
        if parsed is None:
            return None
        questions = [q.strip() for q in parsed if isinstance(q, str) and q.strip()]
        if len(questions) < MIN_GENERATED_QUESTIONS:
            logger.warning(f"Generated only {len(questions)} usable questions, discarding")
            return None
        return questions[:MAX_GENERATED_QUESTIONS]

    async def _builtin_questions(self, candidate_id: str, profile: Dict[str, Any]) -> List[str]:
        return builtin_questions()

    # Coding-task strategies

    async def _stored_tasks(self, candidate_id: str, profile: Dict[str, Any]) -> Optional[List[CodingTask]]:
        stored = await self.profiles.get_stored_tasks(candidate_id)
        if not stored:
            return None
        return [CodingTask.model_validate(task) for task in stored]

    async def _converted_assessment(self, candidate_id: str, profile: Dict[str, Any]) -> Optional[List[CodingTask]]:
        return convert_assessment(profile)

    async def _generated_tasks(self, candidate_id: str, profile: Dict[str, Any]) -> Optional[List[CodingTask]]:
        text = await self.generator.generate(
            format_task_generation_messages(profile),
            temperature=TASK_TEMPERATURE,
            max_tokens=TASK_MAX_TOKENS,
        )
        parsed = parse_json_array(text)
        if not parsed:
            return None
        tasks = []
        for item in parsed[:MAX_GENERATED_TASKS]:
            if not isinstance(item, dict):
                continue
            try:
                tasks.append(CodingTask.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"Discarding malformed generated task: {e.error_count()} errors")
        return tasks or None

    async def _builtin_task(self, candidate_id: str, profile: Dict[str, Any]) -> List[CodingTask]:
        return builtin_tasks()

    async def _save_tasks(self, candidate_id: str, tasks: List[CodingTask]):
        try:
            await self.profiles.save_tasks(candidate_id, [t.to_document() for t in tasks], self.clock())
            logger.info(f"Saved {len(tasks)} coding tasks for candidate {candidate_id}")
        except ExternalServiceFailure as e:
            logger.warning(f"Failed to save coding tasks for candidate {candidate_id}: {e}")

    async def _resolve_tasks(self, candidate_id: str, profile: Dict[str, Any]) -> ChainResult:
        result = await run_chain(self.task_chain, candidate_id, profile)
        if result.name != STORED_TASKS:
            await self._save_tasks(candidate_id, result.value)
        return result

    async def coding_tasks_for(self, candidate_id: str, profile_hint: Optional[Dict[str, Any]] = None) -> List[CodingTask]:
        """
        Resolve coding tasks for a candidate using the task chain alone.

        Args:
            candidate_id: Candidate whose task store is consulted
            profile_hint: Profile to use when the candidate has no stored profile

        Returns:
            A non-empty list of coding tasks
        """
        try:
            profile = await self.profiles.get_profile(candidate_id)
            if profile is None:
                profile = profile_hint or {}
            result = await self._resolve_tasks(candidate_id, profile)
            return result.value
        except Exception as e:
            logger.error(f"Error resolving coding tasks for candidate {candidate_id}: {e}", exc_info=True)
            return builtin_tasks()

    @timed_coroutine()
    async def prepare(self, candidate_id: str, fallback_snapshot: CandidateSnapshot) -> PreparedContent:
        """
        Prepare questions, coding tasks and the system prompt for a candidate.

        Args:
            candidate_id: Candidate to prepare content for
            fallback_snapshot: Session snapshot used when no stored profile exists

        Returns:
            PreparedContent; never raises
        """
        logger.info(f"Preparing interview content for candidate {candidate_id}")
        try:
            profile = await self.profiles.get_profile(candidate_id)
            if profile is not None:
                data_source = DataSource.DATABASE
                logger.info(f"Loaded stored profile for candidate {candidate_id}")
            else:
                profile = snapshot_profile(fallback_snapshot)
                data_source = DataSource.FALLBACK
                logger.info(f"No stored profile for candidate {candidate_id}, using session snapshot")

            questions = await run_chain(self.question_chain, candidate_id, profile)
            tasks = await self._resolve_tasks(candidate_id, profile)

            if questions.failures or tasks.failures:
                data_source = DataSource.FALLBACK_ERROR

            content = PreparedContent(
                questions=questions.value,
                coding_tasks=tasks.value,
                system_prompt=format_system_prompt(profile, questions.value),
                data_source=data_source,
                candidate_profile=profile,
                prepared_at=self.clock(),
            )
        except Exception as e:
            logger.error(f"Error preparing interview content for candidate {candidate_id}: {e}", exc_info=True)
            profile = snapshot_profile(fallback_snapshot)
            questions = builtin_questions()
            content = PreparedContent(
                questions=questions,
                coding_tasks=builtin_tasks(),
                system_prompt=format_system_prompt(profile, questions),
                data_source=DataSource.FALLBACK_ERROR,
                candidate_profile=profile,
                prepared_at=self.clock(),
            )

        logger.info(
            f"Prepared content for candidate {candidate_id}: {len(content.questions)} questions, "
            f"{len(content.coding_tasks)} coding tasks, source={content.data_source}"
        )
        return content
