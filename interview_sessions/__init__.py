"""
{SYSTEM_NAME} Package.

This package provides the session lifecycle engine for AI-driven technical
interviews: access windows, token gating, content preparation and the
interviewer conversation.
"""

from interview_sessions.utils.config import SYSTEM_NAME

__version__ = "0.1.0"
