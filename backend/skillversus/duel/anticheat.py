"""Violation accounting for active duels.

Callers hold ``session.lock``.
"""
from __future__ import annotations

import logging
from collections import Counter

from .arbiter import Verdict
from .errors import InvalidState
from .models import VIOLATION_TYPES, Participant, Session, Violation
from .tracker import require_participant

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 200


def record_violation(
    session: Session,
    user_id: str,
    violation_type: str,
    now_ms: int,
    message: str = "",
    client_timestamp: str | None = None,
    duration_ms: int | None = None,
    focus_grace_ms: int = 3000,
) -> Violation | None:
    """Appends a violation, or returns None for a transient focus loss."""
    if session.status != "active":
        raise InvalidState(f"room {session.room_code} is {session.status}")
    participant = require_participant(session, user_id)
    if violation_type not in VIOLATION_TYPES:
        raise InvalidState(f"unknown violation type {violation_type!r}")

    # Focus loss only counts once the blur outlasted the grace period.
    if violation_type == "FOCUS_LOST" and (duration_ms is None or duration_ms < focus_grace_ms):
        logger.debug(
            "ignoring FOCUS_LOST from %s in %s (%sms)", user_id, session.room_code, duration_ms
        )
        return None

    violation = Violation(
        type=violation_type,
        timestamp_ms=now_ms,
        seq=session.next_seq(),
        message=(message or "")[:MAX_MESSAGE_LENGTH],
        client_timestamp=client_timestamp,
    )
    participant.violations.append(violation)
    logger.info(
        "violation %s by %s in %s (#%d)",
        violation_type,
        user_id,
        session.room_code,
        len(participant.violations),
    )
    return violation


def violation_counts(participant: Participant) -> dict[str, int]:
    counts = Counter(v.type for v in participant.violations)
    return {t: counts.get(t, 0) for t in VIOLATION_TYPES}


def forfeit_verdict(session: Session, user_id: str, limit: int) -> Verdict | None:
    """Anti-cheat verdict once a participant reaches ``limit`` violations.

    A limit of 0 keeps violations informational only.
    """
    if limit <= 0 or session.status != "active":
        return None
    participant = require_participant(session, user_id)
    if len(participant.violations) < limit:
        return None
    opponent = session.opponent_of(user_id)
    return Verdict(reason="anti-cheat", winner_id=opponent.user_id if opponent else None)
