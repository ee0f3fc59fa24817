"""
Tests for the text-generation wrapper and model-output parsing.
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from interview_sessions.ai.llm import TextGenerator, parse_json_array, to_langchain_messages
from interview_sessions.core.errors import GenerationError

MESSAGES = [
    {"role": "system", "content": "You are an interviewer."},
    {"role": "assistant", "content": "Tell me about yourself."},
    {"role": "user", "content": "I write Python."},
]


class TestParseJsonArray:
    """Extracting JSON arrays from model output."""

    def test_plain_array(self):
        assert parse_json_array('["a", "b"]') == ["a", "b"]

    def test_fenced_array(self):
        assert parse_json_array('```json\n["a", "b"]\n```') == ["a", "b"]

    def test_bare_fence(self):
        assert parse_json_array('```\n[{"id": "x"}]\n```') == [{"id": "x"}]

    @pytest.mark.parametrize("text", [None, "", "Here are your questions", '{"questions": []}'])
    def test_not_an_array(self, text):
        assert parse_json_array(text) is None


class TestTextGenerator:
    """One request/response call with a bounded timeout."""

    @pytest.fixture
    def chat_model(self):
        model = Mock()
        model.ainvoke = AsyncMock(return_value=AIMessage(content="  Great answer.  "))
        return model

    def test_message_conversion(self):
        converted = to_langchain_messages(MESSAGES)
        assert [type(m) for m in converted] == [SystemMessage, AIMessage, HumanMessage]

    @pytest.mark.asyncio
    async def test_generate_returns_stripped_text(self, chat_model):
        generator = TextGenerator(model="test-model", timeout=5, chat_model=chat_model)

        reply = await generator.generate(MESSAGES, temperature=0.7, max_tokens=100)

        assert reply == "Great answer."
        sent = chat_model.ainvoke.call_args.args[0]
        assert isinstance(sent[0], SystemMessage)

    @pytest.mark.asyncio
    async def test_list_content_is_joined(self, chat_model):
        chat_model.ainvoke.return_value = AIMessage(content=["Part one. ", {"type": "text", "text": "Part two."}])
        generator = TextGenerator(model="test-model", timeout=5, chat_model=chat_model)

        assert await generator.generate(MESSAGES, 0.7, 100) == "Part one. Part two."

    @pytest.mark.asyncio
    async def test_empty_output_is_an_error(self, chat_model):
        chat_model.ainvoke.return_value = AIMessage(content="   ")
        generator = TextGenerator(model="test-model", timeout=5, chat_model=chat_model)

        with pytest.raises(GenerationError):
            await generator.generate(MESSAGES, 0.7, 100)

    @pytest.mark.asyncio
    async def test_transport_failure_is_an_error(self, chat_model):
        chat_model.ainvoke.side_effect = ConnectionError("unreachable")
        generator = TextGenerator(model="test-model", timeout=5, chat_model=chat_model)

        with pytest.raises(GenerationError):
            await generator.generate(MESSAGES, 0.7, 100)

    @pytest.mark.asyncio
    async def test_timeout_is_an_error(self, chat_model):
        async def slow(messages):
            await asyncio.sleep(1)
            return AIMessage(content="late")

        chat_model.ainvoke = slow
        generator = TextGenerator(model="test-model", timeout=0.01, chat_model=chat_model)

        with pytest.raises(GenerationError, match="timed out"):
            await generator.generate(MESSAGES, 0.7, 100)
