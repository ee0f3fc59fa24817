"""
Configuration module for {SYSTEM_NAME}.

This module provides configuration settings and utilities for the interview
session engine. Every value can be overridden through the environment or a
.env file at the project root.
"""
import os
import logging
from typing import Dict, Any, List
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# --- System Configuration ---
SYSTEM_NAME = os.getenv("SYSTEM_NAME", "AI Interview Sessions")

# MongoDB configuration
MONGODB_URI = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DATABASE = os.environ.get("MONGODB_DATABASE", "ai_interviewer")
MONGODB_SESSIONS_COLLECTION = os.environ.get("MONGODB_SESSIONS_COLLECTION", "interview_sessions")
MONGODB_SCHEDULED_COLLECTION = os.environ.get("MONGODB_SCHEDULED_COLLECTION", "scheduled_sessions")
MONGODB_CANDIDATES_COLLECTION = os.environ.get("MONGODB_CANDIDATES_COLLECTION", "candidates")
MONGODB_CODE_QUESTIONS_COLLECTION = os.environ.get("MONGODB_CODE_QUESTIONS_COLLECTION", "code_questions")
MONGODB_SERVER_SELECTION_TIMEOUT_MS = int(os.environ.get("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "5000"))

# LLM configuration
GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "")
LLM_MODEL = os.environ.get("LLM_MODEL", "gemini-1.5-flash")
LLM_TEMPERATURE = float(os.environ.get("LLM_TEMPERATURE", "0.7"))
LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "30.0"))

# Session configuration
DEFAULT_DURATION_MINUTES = int(os.environ.get("DEFAULT_DURATION_MINUTES", "60"))
DEFAULT_BEFORE_GRACE_MINUTES = int(os.environ.get("DEFAULT_BEFORE_GRACE_MINUTES", "15"))
DEFAULT_AFTER_GRACE_MINUTES = int(os.environ.get("DEFAULT_AFTER_GRACE_MINUTES", "15"))
DEFAULT_MAX_LOGIN_ATTEMPTS = int(os.environ.get("DEFAULT_MAX_LOGIN_ATTEMPTS", "3"))
DEFAULT_TIME_ZONE = os.environ.get("DEFAULT_TIME_ZONE", "UTC")

# Conversation configuration
CONTEXT_WINDOW_MESSAGES = int(os.environ.get("CONTEXT_WINDOW_MESSAGES", "10"))
RESULT_SUMMARY_MAX_LEN = int(os.environ.get("RESULT_SUMMARY_MAX_LEN", "400"))

# Scheduled session sweep
CLEANUP_INTERVAL_MINUTES = int(os.environ.get("CLEANUP_INTERVAL_MINUTES", "10"))
EXPIRED_RETENTION_HOURS = int(os.environ.get("EXPIRED_RETENTION_HOURS", "24"))

# HTTP surface
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]


def get_db_config() -> Dict[str, Any]:
    """
    Get MongoDB configuration.

    Returns:
        Dictionary with MongoDB configuration
    """
    return {
        "uri": MONGODB_URI,
        "database": MONGODB_DATABASE,
        "sessions_collection": MONGODB_SESSIONS_COLLECTION,
        "scheduled_collection": MONGODB_SCHEDULED_COLLECTION,
        "candidates_collection": MONGODB_CANDIDATES_COLLECTION,
        "code_questions_collection": MONGODB_CODE_QUESTIONS_COLLECTION,
        "options": {
            "serverSelectionTimeoutMS": MONGODB_SERVER_SELECTION_TIMEOUT_MS,
        },
    }


def get_llm_config() -> Dict[str, Any]:
    """
    Get LLM configuration.

    Returns:
        Dictionary with LLM configuration
    """
    return {
        "model": LLM_MODEL,
        "temperature": LLM_TEMPERATURE,
        "timeout": LLM_TIMEOUT_SECONDS,
        "api_key": GOOGLE_API_KEY,
    }


def get_session_config() -> Dict[str, Any]:
    """
    Get session window and security defaults.

    Returns:
        Dictionary with session configuration
    """
    return {
        "duration_minutes": DEFAULT_DURATION_MINUTES,
        "before_grace_minutes": DEFAULT_BEFORE_GRACE_MINUTES,
        "after_grace_minutes": DEFAULT_AFTER_GRACE_MINUTES,
        "max_login_attempts": DEFAULT_MAX_LOGIN_ATTEMPTS,
        "time_zone": DEFAULT_TIME_ZONE,
        "context_window_messages": CONTEXT_WINDOW_MESSAGES,
        "result_summary_max_len": RESULT_SUMMARY_MAX_LEN,
        "frontend_url": FRONTEND_URL,
    }


def get_cleanup_config() -> Dict[str, Any]:
    """Get configuration for the scheduled-session cleanup sweep."""
    return {
        "interval_minutes": CLEANUP_INTERVAL_MINUTES,
        "retention_hours": EXPIRED_RETENTION_HOURS,
    }


def get_cors_origins() -> List[str]:
    return list(CORS_ORIGINS)


def log_config():
    """Log current configuration values (excluding sensitive information)."""
    logger.info("Current configuration:")
    logger.info(f"- MongoDB Database: {MONGODB_DATABASE}")
    logger.info(f"- Sessions Collection: {MONGODB_SESSIONS_COLLECTION}")
    logger.info(f"- Scheduled Sessions Collection: {MONGODB_SCHEDULED_COLLECTION}")
    logger.info(f"- Candidates Collection: {MONGODB_CANDIDATES_COLLECTION}")
    logger.info(f"- Code Questions Collection: {MONGODB_CODE_QUESTIONS_COLLECTION}")
    logger.info(f"- LLM Model: {LLM_MODEL}")
    logger.info(f"- LLM Temperature: {LLM_TEMPERATURE}")
    logger.info(f"- LLM Timeout: {LLM_TIMEOUT_SECONDS} seconds")
    logger.info(f"- Access Window Grace: {DEFAULT_BEFORE_GRACE_MINUTES}/{DEFAULT_AFTER_GRACE_MINUTES} minutes")
    logger.info(f"- Max Login Attempts: {DEFAULT_MAX_LOGIN_ATTEMPTS}")
    logger.info(f"- Cleanup Interval: {CLEANUP_INTERVAL_MINUTES} minutes")
    logger.info(f"- Google API Key: {'Configured' if GOOGLE_API_KEY else 'Not configured'}")
