"""
Text-generation capability used by the content preparer and the conversation
controller.

Wraps a LangChain chat model behind one request/response call with a bounded
timeout. Any failure (transport error, timeout, empty output) surfaces as
``GenerationError`` so callers can fall back to fixed content.
"""
import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from interview_sessions.core.errors import GenerationError
from interview_sessions.utils.config import get_llm_config
from interview_sessions.utils.profiling import timer

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*|\s*```")


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    """Convert ``{role, content}`` dictionaries into LangChain message objects."""
    converted: List[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


def parse_json_array(text: Optional[str]) -> Optional[List[Any]]:
    """
    Parse a JSON array out of model output.

    Args:
        text: Raw model output, possibly wrapped in markdown code fences

    Returns:
        The decoded list, or None when the text is not a JSON array
    """
    if not text:
        return None
    cleaned = _FENCE_PATTERN.sub("", text.strip()).strip()
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Failed to parse model output as JSON array")
        return None
    if not isinstance(value, list):
        return None
    return value


class TextGenerator:
    """Single request/response access to the chat model."""

    def __init__(self, model: Optional[str] = None, timeout: Optional[float] = None, chat_model=None):
        llm_config = get_llm_config()
        self.model = model or llm_config["model"]
        self.timeout = timeout or llm_config["timeout"]
        self.api_key = llm_config["api_key"]
        # Injected model is used as-is; otherwise one client is built per temperature
        self._chat_model = chat_model
        self._clients: Dict[tuple, Any] = {}

    def _client(self, temperature: float, max_tokens: int):
        if self._chat_model is not None:
            return self._chat_model
        key = (temperature, max_tokens)
        if key not in self._clients:
            kwargs = {
                "model": self.model,
                "temperature": temperature,
                "max_output_tokens": max_tokens,
            }
            if self.api_key:
                kwargs["google_api_key"] = self.api_key
            self._clients[key] = ChatGoogleGenerativeAI(**kwargs)
        return self._clients[key]

    async def generate(self, messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> str:
        """
        Run one generation call.

        Args:
            messages: Conversation as ``{role, content}`` dictionaries
            temperature: Sampling temperature
            max_tokens: Output token ceiling

        Returns:
            The stripped response text

        Raises:
            GenerationError: On failure, timeout or empty output
        """
        try:
            client = self._client(temperature, max_tokens)
            with timer("text_generation", logging.INFO):
                response = await asyncio.wait_for(
                    client.ainvoke(to_langchain_messages(messages)),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError as e:
            logger.error(f"Text generation timed out after {self.timeout} seconds")
            raise GenerationError("Text generation timed out") from e
        except Exception as e:
            logger.error(f"Error during text generation: {e}")
            raise GenerationError(str(e)) from e

        content = getattr(response, "content", response)
        if isinstance(content, list):
            content = "".join(part if isinstance(part, str) else part.get("text", "") for part in content)
        if not isinstance(content, str) or not content.strip():
            raise GenerationError("Text generation returned no content")
        return content.strip()
