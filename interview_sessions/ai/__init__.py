"""
AI components for the {SYSTEM_NAME} platform.

This package contains the text-generation wrapper and the prompt templates.
"""

from interview_sessions.ai.prompts.interview_prompts import (
    INTERVIEW_SYSTEM_PROMPT,
    QUESTION_GENERATION_PROMPT,
    TASK_GENERATION_PROMPT,
)

__all__ = [
    'INTERVIEW_SYSTEM_PROMPT',
    'QUESTION_GENERATION_PROMPT',
    'TASK_GENERATION_PROMPT',
]
