"""waiting -> active -> completed, forward only.

Callers hold ``session.lock``; ``advance`` is the compare-and-set every
transition goes through, so only one racer can complete a session.
"""
from __future__ import annotations

import logging

from .models import STATUS_ORDER, Session

logger = logging.getLogger(__name__)


def status_rank(status: str) -> int:
    return STATUS_ORDER.index(status)


def advance(session: Session, expected: str, target: str) -> bool:
    if session.status != expected:
        return False
    if status_rank(target) != status_rank(expected) + 1:
        return False
    session.status = target  # type: ignore[assignment]
    return True


def start(session: Session, now_ms: int) -> bool:
    if not advance(session, "waiting", "active"):
        return False
    session.started_at_ms = now_ms
    session.completes_at_ms = now_ms + session.time_limit_sec * 1000
    session.next_seq()
    logger.info("session %s active until %s", session.room_code, session.completes_at_ms)
    return True


def complete(session: Session, reason: str, winner_id: str | None, now_ms: int) -> bool:
    if not advance(session, "active", "completed"):
        return False
    assert session.completion_reason is None
    session.completion_reason = reason  # type: ignore[assignment]
    session.winner_id = winner_id
    session.ended_at_ms = now_ms
    session.paused_remaining_ms = None
    session.next_seq()
    logger.info(
        "session %s completed: %s, winner %s",
        session.room_code,
        reason,
        winner_id or "none (draw)",
    )
    return True


def remaining_ms(session: Session, now_ms: int) -> int:
    if session.status != "active":
        return 0
    if session.paused_remaining_ms is not None:
        return session.paused_remaining_ms
    if session.completes_at_ms is None:
        return 0
    return max(0, session.completes_at_ms - now_ms)
