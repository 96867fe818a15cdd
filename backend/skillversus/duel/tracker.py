"""Join, ready and connection transitions for the participant slots.

All functions expect the caller to hold ``session.lock``.
"""
from __future__ import annotations

from .errors import InvalidState, SessionFull, UnknownParticipant
from .models import MAX_PARTICIPANTS, Participant, Session


def _check_slots(session: Session) -> None:
    assert len(session.participants) <= MAX_PARTICIPANTS, (
        f"session {session.room_code} holds {len(session.participants)} participants"
    )


def require_participant(session: Session, user_id: str) -> Participant:
    participant = session.participant(user_id)
    if participant is None:
        raise UnknownParticipant(f"{user_id} is not in room {session.room_code}")
    return participant


def join(session: Session, user_id: str, username: str = "") -> tuple[Participant, bool]:
    """Returns (participant, rejoined).

    A user already holding a slot gets that slot back with progress and
    violations intact.
    """
    existing = session.participant(user_id)
    if existing is not None:
        existing.connected = True
        if username:
            existing.username = username
        return existing, True

    if session.status != "waiting":
        raise InvalidState("duel already started")
    if len(session.participants) >= session.capacity:
        raise SessionFull("room is full")

    participant = Participant(user_id=user_id, username=username, joined_seq=session.next_seq())
    session.participants.append(participant)
    _check_slots(session)
    return participant, False


def leave_waiting(session: Session, user_id: str) -> bool:
    """Frees the slot of a participant leaving before the duel starts."""
    if session.status != "waiting":
        return False
    participant = require_participant(session, user_id)
    session.participants.remove(participant)
    for p in session.participants:
        p.is_ready = False
    if session.host_id == user_id and session.participants:
        session.host_id = session.participants[0].user_id
    return True


def all_ready(session: Session) -> bool:
    return (
        len(session.participants) == session.capacity
        and all(p.is_ready for p in session.participants)
    )


def set_ready(session: Session, user_id: str, ready: bool) -> bool:
    """Returns True when every slot is filled and ready."""
    if session.status != "waiting":
        raise InvalidState("ready state can only change while waiting")
    participant = require_participant(session, user_id)
    participant.is_ready = bool(ready)
    session.next_seq()
    return all_ready(session)


def toggle_ready(session: Session, user_id: str) -> bool:
    participant = require_participant(session, user_id)
    return set_ready(session, user_id, not participant.is_ready)


def disconnect(session: Session, user_id: str) -> Participant:
    participant = require_participant(session, user_id)
    participant.connected = False
    return participant


def anyone_disconnected(session: Session) -> bool:
    return any(not p.connected for p in session.participants)
