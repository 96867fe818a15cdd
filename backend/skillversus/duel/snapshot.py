from __future__ import annotations

from . import machine
from .anticheat import violation_counts
from .arbiter import progress_pct
from .models import CodingContent, Participant, Session, TypingContent


def content_public_state(session: Session) -> dict:
    content = session.content
    if isinstance(content, TypingContent):
        return {
            "text": content.text,
            "words": list(content.words),
            "totalWords": content.total_words,
            "category": content.category,
            "difficulty": content.difficulty,
        }
    if isinstance(content, CodingContent):
        return {
            "problemId": content.problem_id,
            "title": content.title,
            "totalTests": content.total_tests,
        }
    return {}


def participant_public_state(session: Session, p: Participant, include_violations: bool = False) -> dict:
    d: dict = {
        "userId": p.user_id,
        "username": p.username,
        "isReady": p.is_ready,
        "connected": p.connected,
        "progress": progress_pct(session, p),
        "finished": p.finished_seq is not None,
        "finishedAtMs": p.finished_at_ms,
        "violationCount": len(p.violations),
        "violationCounts": violation_counts(p),
    }
    if session.duel_type == "typing":
        d["typingProgress"] = {
            "currentWordIndex": p.current_word_index,
            "wpm": p.wpm,
            "accuracy": p.accuracy,
        }
    else:
        result = p.last_submission_result
        d["lastSubmissionResult"] = (
            {
                "passedCount": result.passed,
                "totalCount": result.total,
                "language": result.language,
                "submittedAtMs": result.submitted_at_ms,
            }
            if result
            else None
        )
        d["submissions"] = p.submissions
    if include_violations:
        d["violations"] = [
            {
                "type": v.type,
                "timestampMs": v.timestamp_ms,
                "clientTimestamp": v.client_timestamp,
                "message": v.message,
                "seq": v.seq,
            }
            for v in p.violations
        ]
    return d


def session_public_state(session: Session, now_ms: int, include_violations: bool = False) -> dict:
    """Full copy of the session; nothing in it aliases engine state."""
    with session.lock:
        return {
            "roomCode": session.room_code,
            "duelType": session.duel_type,
            "status": session.status,
            "virtual": session.virtual,
            "hostId": session.host_id,
            "seq": session.seq,
            "timeLimitSec": session.time_limit_sec,
            "createdAtMs": session.created_at_ms,
            "startedAtMs": session.started_at_ms,
            "completesAtMs": session.completes_at_ms,
            "endedAtMs": session.ended_at_ms,
            "remainingMs": machine.remaining_ms(session, now_ms),
            "paused": session.paused_remaining_ms is not None,
            "completionReason": session.completion_reason,
            "winnerId": session.winner_id,
            "content": content_public_state(session),
            "participants": [
                participant_public_state(session, p, include_violations=include_violations)
                for p in session.participants
            ],
        }
