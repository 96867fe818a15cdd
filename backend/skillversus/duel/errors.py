from __future__ import annotations


class DuelError(Exception):
    """Base class for errors returned to the calling transport."""

    code = "duel_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class SessionNotFound(DuelError):
    code = "session_not_found"


class SessionFull(DuelError):
    code = "session_full"


class InvalidState(DuelError):
    code = "invalid_state"


class UnknownParticipant(DuelError):
    code = "unknown_participant"


class CapacityExceeded(DuelError):
    code = "capacity_exceeded"
