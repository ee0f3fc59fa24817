"""
FastAPI routers for the {SYSTEM_NAME} platform.

This module contains FastAPI routers for organizing API endpoints
into logical groups.
"""

from . import scheduled_sessions, sessions

__all__ = ["scheduled_sessions", "sessions"]
