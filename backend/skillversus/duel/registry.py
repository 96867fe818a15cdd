from __future__ import annotations

import logging
import secrets
import string
import time
from threading import RLock

from .errors import CapacityExceeded, SessionNotFound
from .models import Content, Session

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_room_code(code: str | None) -> str:
    return (code or "").strip().upper()


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


class SessionRegistry:
    """Owns every live session, keyed by room code."""

    def __init__(self, max_sessions: int = 1000, code_factory=generate_room_code):
        self.max_sessions = max_sessions
        self._code_factory = code_factory
        self._lock = RLock()
        self._sessions: dict[str, Session] = {}

    def create(
        self,
        duel_type: str,
        content: Content,
        time_limit_sec: int,
        created_at_ms: int,
        host_id: str = "",
        virtual: bool = False,
    ) -> Session:
        with self._lock:
            if self.max_sessions and len(self._sessions) >= self.max_sessions:
                raise CapacityExceeded(f"session limit {self.max_sessions} reached")

            code = normalize_room_code(self._code_factory())
            while code in self._sessions:
                code = normalize_room_code(self._code_factory())

            session = Session(
                room_code=code,
                duel_type=duel_type,  # type: ignore[arg-type]
                content=content,
                time_limit_sec=time_limit_sec,
                created_at_ms=created_at_ms,
                host_id=host_id,
                virtual=virtual,
            )
            self._sessions[code] = session
            logger.info("session %s created (%s, limit %ss)", code, duel_type, time_limit_sec)
            return session

    def get(self, code: str | None) -> Session:
        with self._lock:
            session = self._sessions.get(normalize_room_code(code))
        if session is None or session.destroyed:
            raise SessionNotFound(f"room {normalize_room_code(code) or '?'} not found")
        return session

    def destroy(self, code: str) -> bool:
        key = normalize_room_code(code)
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            return False
        with session.lock:
            session.destroyed = True
        logger.info("session %s destroyed", key)
        return True

    def list(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, code: str) -> bool:
        with self._lock:
            return normalize_room_code(code) in self._sessions
