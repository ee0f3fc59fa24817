"""
Constants used throughout the interview session engine.
"""
from enum import Enum


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.EXPIRED, SessionStatus.CANCELLED})
OPEN_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.ACTIVE})


class DataSource(str, Enum):
    """Provenance of prepared interview content."""
    DATABASE = "database"
    FALLBACK = "fallback"
    FALLBACK_ERROR = "fallback_error"


class MessageRole(str, Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


# Generation parameters
QUESTION_TEMPERATURE = 0.5
QUESTION_MAX_TOKENS = 800
TASK_TEMPERATURE = 0.6
TASK_MAX_TOKENS = 1200
REPLY_TEMPERATURE = 0.7
REPLY_MAX_TOKENS = 500

MIN_GENERATED_QUESTIONS = 6
MAX_GENERATED_QUESTIONS = 10
MAX_GENERATED_TASKS = 3

# Fixed conversation texts
PAUSE_NOTICE = (
    "The interviewer is paused while you work on the coding exercise. "
    "Submit your solution and the interview will continue."
)
FALLBACK_REPLY = (
    "I apologize, but I'm having trouble processing your response right now. "
    "Could you please repeat your answer?"
)

# Error messages
ERROR_SESSION_NOT_FOUND = "Session not found"
ERROR_INVALID_TOKEN = "Invalid access token"
ERROR_SESSION_LOCKED = "Session locked due to too many failed attempts"
ERROR_SESSION_NOT_ACTIVE = "Session is not active"
