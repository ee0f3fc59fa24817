"""
Tests for the content preparer and its strategy chains.
"""
import json
from unittest.mock import AsyncMock, Mock

import pytest

from interview_sessions.ai.llm import TextGenerator
from interview_sessions.core.errors import ExternalServiceFailure, GenerationError
from interview_sessions.services.content_preparer import (
    BUILTIN_QUESTIONS,
    ContentPreparer,
    Strategy,
    convert_assessment,
    run_chain,
)

GENERATED_QUESTIONS = [f"Generated question {i}?" for i in range(1, 9)]

ASSESSMENT_PROFILE = {
    "candidateId": "C1",
    "candidateName": "Ada Lovelace",
    "position": "Backend Engineer",
    "skills": ["python"],
    "codingAssessment": {
        "questions": [
            {
                "id": "two-sum",
                "title": "Two Sum",
                "prompt": "Return indices of two numbers adding up to target.",
                "signature": "def two_sum(nums, target):",
                "language": "python",
                "sampleTests": [{"input": [[2, 7, 11], 9], "expected": [0, 1]}],
                "hiddenTests": [{"input": [[3, 3], 6], "expected": [0, 1]}],
            }
        ]
    },
}


def generator_returning(*responses):
    generator = Mock(spec=TextGenerator)
    generator.generate = AsyncMock(side_effect=list(responses))
    return generator


class TestRunChain:
    """Ordered fallback chains."""

    @pytest.mark.asyncio
    async def test_first_value_wins(self):
        async def empty(*args):
            return None

        async def value(*args):
            return ["x"]

        result = await run_chain([Strategy("empty", empty), Strategy("value", value)])

        assert result.name == "value"
        assert result.value == ["x"]
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_failures_are_recorded_and_skipped(self):
        async def boom(*args):
            raise GenerationError("down")

        async def value(*args):
            return ["x"]

        result = await run_chain([Strategy("boom", boom), Strategy("value", value)])

        assert result.name == "value"
        assert result.failures == ["boom"]

    @pytest.mark.asyncio
    async def test_exhausted_chain_raises(self):
        async def empty(*args):
            return []

        with pytest.raises(RuntimeError):
            await run_chain([Strategy("empty", empty)])


class TestConvertAssessment:
    """Structured assessment conversion."""

    def test_converts_tests_and_example(self):
        tasks = convert_assessment(ASSESSMENT_PROFILE)

        assert len(tasks) == 1
        task = tasks[0]
        assert task.id == "two-sum"
        assert task.language_hints == ["python"]
        assert task.description.startswith("Return indices")
        assert task.description.endswith("def two_sum(nums, target):")
        assert task.tests == [
            f"two-sum-sample: input={json.dumps([[2, 7, 11], 9])} expected={json.dumps([0, 1])}",
            f"two-sum-hidden: input={json.dumps([[3, 3], 6])} expected={json.dumps([0, 1])}",
        ]
        assert task.example_input_output == {"input": [[2, 7, 11], 9], "output": [0, 1]}

    def test_missing_id_derives_from_title(self):
        tasks = convert_assessment({"codingAssessment": {"questions": [{"title": "Reverse Words"}]}})
        assert tasks[0].id == "reverse_words"

    @pytest.mark.parametrize("profile", [{}, {"codingAssessment": {}}, {"codingAssessment": {"questions": []}}])
    def test_no_assessment(self, profile):
        assert convert_assessment(profile) is None


class TestPrepare:
    """Full preparation."""

    @pytest.mark.asyncio
    async def test_no_profile_and_failed_generation_uses_builtins(self, preparer, snapshot, profile_repository):
        content = await preparer.prepare("C1", snapshot)

        assert content.data_source == "fallback_error"
        assert content.questions == BUILTIN_QUESTIONS
        assert [t.id for t in content.coding_tasks] == ["sum-array"]
        assert "Ada Lovelace" in content.system_prompt
        assert content.candidate_profile["candidateName"] == "Ada Lovelace"
        assert profile_repository.saved == ["C1"]

    @pytest.mark.asyncio
    async def test_no_profile_with_generation_is_fallback(self, profile_repository, snapshot, clock):
        tasks = [{"id": "t1", "title": "FizzBuzz", "description": "Classic.", "tests": ["fizz(3) == 'Fizz'"]}]
        generator = generator_returning(json.dumps(GENERATED_QUESTIONS), "```json\n" + json.dumps(tasks) + "\n```")
        preparer = ContentPreparer(profile_repository, generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert content.data_source == "fallback"
        assert content.questions == GENERATED_QUESTIONS
        assert content.coding_tasks[0].title == "FizzBuzz"
        assert "1. Generated question 1?" in content.system_prompt

    @pytest.mark.asyncio
    async def test_stored_profile_custom_questions_and_assessment(self, profile_repository, failing_generator, snapshot, clock):
        profile_repository.profiles["C1"] = {**ASSESSMENT_PROFILE, "customQuestions": ["Why Python?", "  "]}
        preparer = ContentPreparer(profile_repository, failing_generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert content.data_source == "database"
        assert content.questions == ["Why Python?"]
        assert content.coding_tasks[0].id == "two-sum"
        failing_generator.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_too_few_generated_questions_are_discarded(self, profile_repository, snapshot, clock):
        generator = generator_returning(json.dumps(["Only one?", "And two?"]), GenerationError("down"))
        preparer = ContentPreparer(profile_repository, generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert content.questions == BUILTIN_QUESTIONS
        assert content.data_source == "fallback_error"

    @pytest.mark.asyncio
    async def test_generated_questions_are_capped(self, profile_repository, snapshot, clock):
        many = [f"Q{i}?" for i in range(15)]
        generator = generator_returning(json.dumps(many), "not json")
        preparer = ContentPreparer(profile_repository, generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert len(content.questions) == 10
        assert content.data_source == "fallback"
        assert content.coding_tasks[0].id == "sum-array"

    @pytest.mark.asyncio
    async def test_stored_tasks_are_not_written_back(self, profile_repository, failing_generator, snapshot, clock):
        profile_repository.tasks["C1"] = [{"id": "stored", "title": "Stored", "description": "From the store."}]
        preparer = ContentPreparer(profile_repository, failing_generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert content.coding_tasks[0].id == "stored"
        assert profile_repository.saved == []

    @pytest.mark.asyncio
    async def test_save_failure_does_not_break_preparation(self, profile_repository, failing_generator, snapshot, clock):
        profile_repository.save_tasks = AsyncMock(side_effect=ExternalServiceFailure("down"))
        preparer = ContentPreparer(profile_repository, failing_generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert content.coding_tasks[0].id == "sum-array"

    @pytest.mark.asyncio
    async def test_storage_outage_degrades_to_builtins(self, profile_repository, failing_generator, snapshot, clock):
        profile_repository.get_profile = AsyncMock(side_effect=ExternalServiceFailure("down"))
        preparer = ContentPreparer(profile_repository, failing_generator, clock=clock)

        content = await preparer.prepare("C1", snapshot)

        assert content.data_source == "fallback_error"
        assert content.questions == BUILTIN_QUESTIONS


class TestCodingTasksFor:
    """Task resolution on its own, used when a coding exercise starts."""

    @pytest.mark.asyncio
    async def test_uses_profile_hint_without_stored_profile(self, preparer):
        hint = {"codingAssessment": ASSESSMENT_PROFILE["codingAssessment"]}

        tasks = await preparer.coding_tasks_for("C9", hint)

        assert tasks[0].id == "two-sum"

    @pytest.mark.asyncio
    async def test_never_raises(self, profile_repository, failing_generator, clock):
        profile_repository.get_profile = AsyncMock(side_effect=ExternalServiceFailure("down"))
        preparer = ContentPreparer(profile_repository, failing_generator, clock=clock)

        tasks = await preparer.coding_tasks_for("C1")

        assert [t.id for t in tasks] == ["sum-array"]
