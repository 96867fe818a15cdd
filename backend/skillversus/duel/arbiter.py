"""Progress validation and win arbitration.

Callers hold ``session.lock``. Win order is decided by the per-session
receipt sequence (``Participant.finished_seq``), never by client clocks.
"""
from __future__ import annotations

from dataclasses import dataclass

from . import typing_stats
from .errors import InvalidState
from .models import CodingContent, Participant, Session, SubmissionResult, TypingContent
from .tracker import require_participant


@dataclass(frozen=True)
class Verdict:
    reason: str
    winner_id: str | None


def _require_active(session: Session) -> None:
    if session.status != "active":
        raise InvalidState(f"room {session.room_code} is {session.status}")


def _mark_finished(participant: Participant, seq: int, now_ms: int) -> None:
    if participant.finished_seq is None:
        participant.finished_seq = seq
        participant.finished_at_ms = now_ms


def typing_finished(participant: Participant, content: TypingContent) -> bool:
    return (
        participant.current_word_index == content.total_words
        and participant.error_chars == 0
    )


def submit_typing_progress(session: Session, user_id: str, typed_text: str, now_ms: int) -> Participant:
    _require_active(session)
    participant = require_participant(session, user_id)
    content = session.content
    if not isinstance(content, TypingContent):
        raise InvalidState("not a typing duel")
    if participant.finished_seq is not None:
        return participant

    seq = session.next_seq()
    delta = typing_stats.diff_attempt(content.words, participant.typed_text, typed_text)

    participant.typed_text = typed_text
    participant.typed_chars += delta.new_chars
    participant.error_chars += delta.new_errors
    participant.current_word_index = delta.word_index
    participant.accuracy = typing_stats.accuracy(participant.typed_chars, participant.error_chars)
    participant.wpm = typing_stats.words_per_minute(
        delta.word_index, now_ms - (session.started_at_ms or now_ms)
    )

    if typing_finished(participant, content):
        _mark_finished(participant, seq, now_ms)
    return participant


def restart_typing(session: Session, user_id: str) -> Participant:
    _require_active(session)
    participant = require_participant(session, user_id)
    if participant.finished_seq is not None:
        raise InvalidState("typing already completed")
    if participant.error_chars == 0:
        raise InvalidState("restart is only allowed below 100% accuracy")

    session.next_seq()
    participant.typed_text = ""
    participant.typed_chars = 0
    participant.error_chars = 0
    participant.current_word_index = 0
    participant.accuracy = 100.0
    participant.wpm = 0
    return participant


def submit_code_result(
    session: Session,
    user_id: str,
    passed: int,
    total: int,
    now_ms: int,
    language: str = "",
) -> Participant:
    _require_active(session)
    participant = require_participant(session, user_id)
    if not isinstance(session.content, CodingContent):
        raise InvalidState("not a coding duel")
    if total < 0 or passed < 0 or passed > total:
        raise InvalidState("malformed submission result")
    if session.content.total_tests > 0 and total != session.content.total_tests:
        raise InvalidState(
            f"result covers {total} tests, problem has {session.content.total_tests}"
        )

    seq = session.next_seq()
    result = SubmissionResult(passed=passed, total=total, language=language, submitted_at_ms=now_ms)
    participant.last_submission_result = result
    participant.best_passed = max(participant.best_passed, passed)
    participant.submissions += 1

    if result.all_passed:
        _mark_finished(participant, seq, now_ms)
    return participant


def score(session: Session, participant: Participant) -> float:
    if session.duel_type == "typing":
        return typing_stats.typing_score(participant.current_word_index, participant.accuracy)
    return float(participant.best_passed)


def progress_pct(session: Session, participant: Participant) -> float:
    content = session.content
    if isinstance(content, TypingContent):
        if content.total_words == 0:
            return 0.0
        return round(participant.current_word_index / content.total_words * 100, 2)
    total = content.total_tests if content.total_tests > 0 else None
    if total is None and participant.last_submission_result is not None:
        total = participant.last_submission_result.total
    if not total:
        return 0.0
    return round(participant.best_passed / total * 100, 2)


def resolve_completion(session: Session) -> Verdict | None:
    """First participant to meet the completion condition wins."""
    if session.status != "active":
        return None
    finished = [p for p in session.participants if p.finished_seq is not None]
    if not finished:
        return None
    first = min(finished, key=lambda p: p.finished_seq)
    reason = "completion" if session.virtual else "correct-submission"
    return Verdict(reason=reason, winner_id=first.user_id)


def resolve_timeout(session: Session) -> Verdict | None:
    """Verdict once the time limit has elapsed."""
    if session.status != "active":
        return None
    verdict = resolve_completion(session)
    if verdict is not None:
        return verdict

    scored = sorted(
        ((score(session, p), p) for p in session.participants),
        key=lambda item: item[0],
        reverse=True,
    )
    if not scored or scored[0][0] <= 0:
        return Verdict(reason="best-score", winner_id=None)
    if len(scored) > 1 and scored[0][0] == scored[1][0]:
        return Verdict(reason="best-score", winner_id=None)
    return Verdict(reason="best-score", winner_id=scored[0][1].user_id)
