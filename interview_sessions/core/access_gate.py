"""
Access gate for interview sessions.

``evaluate`` is the single place where window, status and attempt-ceiling
rules are decided. It is a pure function of its inputs; persisting the
outcome (expiring a session, bumping the attempt counter) is the caller's job.
"""
import hmac
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from interview_sessions.models.session import (
    InterviewSession,
    ScheduledSession,
    as_utc,
    ceil_minutes,
)
from interview_sessions.utils.constants import SessionStatus, TERMINAL_STATUSES

REASON_ALLOWED = "allowed"
REASON_NOT_YET_OPEN = "not_yet_open"
REASON_WINDOW_CLOSED = "window_closed"
REASON_LOCKED = "locked"

_STATUS_MESSAGES = {
    SessionStatus.CANCELLED.value: "Session has been cancelled",
    SessionStatus.COMPLETED.value: "Session has already been completed",
    SessionStatus.EXPIRED.value: "Session has expired",
}


def minutes_until(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end``, rounded up."""
    return ceil_minutes(as_utc(end) - as_utc(start))


@dataclass
class GateDecision:
    allowed: bool
    reason: str
    minutes_to_start: int = 0
    minutes_to_end: int = 0
    access_start: Optional[datetime] = None
    access_end: Optional[datetime] = None
    status: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self.reason == REASON_LOCKED

    @property
    def expired(self) -> bool:
        return self.reason == REASON_WINDOW_CLOSED

    @property
    def message(self) -> str:
        if self.allowed:
            return "Session is active and accessible"
        if self.reason in _STATUS_MESSAGES:
            return _STATUS_MESSAGES[self.reason]
        if self.reason == REASON_NOT_YET_OPEN:
            return "Interview session not yet accessible"
        if self.reason == REASON_WINDOW_CLOSED:
            return "Interview session has expired"
        return "Session locked due to too many failed attempts"

    def context(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "accessibleFrom": self.access_start,
            "accessibleUntil": self.access_end,
            "minutesToStart": self.minutes_to_start,
            "minutesToEnd": self.minutes_to_end,
        }


def evaluate(
    status: str,
    access_start: datetime,
    access_end: datetime,
    attempts: int,
    max_attempts: int,
    now: datetime,
) -> GateDecision:
    """Decide whether an entry attempt made at ``now`` is admitted.

    Checks run in a fixed order: terminal status, not-yet-open, window
    closed, attempt ceiling. Token comparison is not part of this function
    and must only happen once it returns ``allowed``.
    """
    access_start = as_utc(access_start)
    access_end = as_utc(access_end)
    status = SessionStatus(status).value
    common = dict(access_start=access_start, access_end=access_end, status=status)

    if status in {s.value for s in TERMINAL_STATUSES}:
        return GateDecision(allowed=False, reason=status, **common)

    if now < access_start:
        return GateDecision(
            allowed=False,
            reason=REASON_NOT_YET_OPEN,
            minutes_to_start=minutes_until(now, access_start),
            minutes_to_end=minutes_until(now, access_end),
            **common,
        )

    if now > access_end:
        return GateDecision(allowed=False, reason=REASON_WINDOW_CLOSED, **common)

    minutes_to_end = max(0, minutes_until(now, access_end))
    if attempts >= max_attempts:
        return GateDecision(allowed=False, reason=REASON_LOCKED, minutes_to_end=minutes_to_end, **common)

    return GateDecision(allowed=True, reason=REASON_ALLOWED, minutes_to_end=minutes_to_end, **common)


def evaluate_session(session: InterviewSession, now: datetime, attempts: Optional[int] = None) -> GateDecision:
    """Evaluate a stored session; ``attempts`` overrides the count read with it."""
    return evaluate(
        status=session.status,
        access_start=session.window.access_start,
        access_end=session.window.access_end,
        attempts=session.security.login_attempts if attempts is None else attempts,
        max_attempts=session.security.max_login_attempts,
        now=now,
    )


def evaluate_scheduled(session: ScheduledSession, now: datetime, attempts: Optional[int] = None) -> GateDecision:
    # Scheduled slots have no grace period around their bounds
    return evaluate(
        status=session.status,
        access_start=session.start_time,
        access_end=session.end_time,
        attempts=session.access_attempts if attempts is None else attempts,
        max_attempts=session.max_access_attempts,
        now=now,
    )


def tokens_match(expected: Optional[str], supplied: Optional[str]) -> bool:
    """Constant-time token comparison."""
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def generate_access_token() -> str:
    """256-bit hex token."""
    return secrets.token_hex(32)


def generate_session_id() -> str:
    return f"interview_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def generate_scheduled_session_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def mask_token(token: Optional[str]) -> str:
    if not token:
        return "<none>"
    return f"{token[:4]}…{len(token)}"
