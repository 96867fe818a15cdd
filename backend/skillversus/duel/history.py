from __future__ import annotations

from collections import deque
from threading import RLock

from .models import CodingContent, Session, TypingContent

XP_WIN = 50
XP_LOSS = 10
XP_DRAW = 20


def xp_award(session: Session, user_id: str) -> int:
    if session.winner_id is None:
        return XP_DRAW
    return XP_WIN if session.winner_id == user_id else XP_LOSS


def build_record(session: Session) -> dict:
    """Result record for a completed session. Caller holds ``session.lock``."""
    started = session.started_at_ms or session.created_at_ms
    ended = session.ended_at_ms or started

    participants = []
    for p in session.participants:
        entry: dict = {
            "userId": p.user_id,
            "username": p.username,
            "isWinner": session.winner_id == p.user_id,
            "xp": xp_award(session, p.user_id),
            "violationCount": len(p.violations),
        }
        if isinstance(session.content, TypingContent):
            entry["typingStats"] = {
                "wpm": p.wpm,
                "accuracy": p.accuracy,
                "wordsCompleted": p.current_word_index,
                "finishedAtMs": p.finished_at_ms,
                "totalTimeSec": (
                    round((p.finished_at_ms - started) / 1000, 3) if p.finished_at_ms else None
                ),
            }
        else:
            result = p.last_submission_result
            entry["submissionResult"] = (
                {
                    "passedCount": result.passed,
                    "totalCount": result.total,
                    "submittedAtMs": result.submitted_at_ms,
                }
                if result
                else None
            )
        participants.append(entry)

    record: dict = {
        "roomCode": session.room_code,
        "duelType": session.duel_type,
        "virtual": session.virtual,
        "participants": participants,
        "winnerId": session.winner_id,
        "completionReason": session.completion_reason,
        "startTimeMs": started,
        "endTimeMs": ended,
        "durationSec": max(0, ended - started) // 1000,
    }
    if isinstance(session.content, TypingContent):
        record["typingContent"] = {
            "category": session.content.category,
            "totalWords": session.content.total_words,
        }
    elif isinstance(session.content, CodingContent):
        record["problem"] = {"id": session.content.problem_id, "title": session.content.title}
    return record


class HistoryStore:
    """In-memory finished-duel log, newest first per user."""

    def __init__(self, limit_per_user: int = 100, max_records: int = 10_000):
        self.limit_per_user = limit_per_user
        self._lock = RLock()
        # Oldest records fall off once the store is full.
        self._records: deque[dict] = deque(maxlen=max_records)

    def add(self, record: dict) -> None:
        with self._lock:
            self._records.append(record)

    def for_user(self, user_id: str, limit: int | None = None) -> list[dict]:
        with self._lock:
            rows = [
                r
                for r in reversed(self._records)
                if any(p["userId"] == user_id for p in r["participants"])
            ]
        return rows[: limit or self.limit_per_user]

    def totals(self, user_id: str) -> dict:
        with self._lock:
            rows = self.for_user(user_id, limit=len(self._records) or 1)
        wins = sum(1 for r in rows if r["winnerId"] == user_id)
        xp = sum(p["xp"] for r in rows for p in r["participants"] if p["userId"] == user_id)
        return {"userId": user_id, "totalDuels": len(rows), "wins": wins, "xp": xp}
