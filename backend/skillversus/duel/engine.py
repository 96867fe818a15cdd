"""Server-authoritative duel sessions.

``DuelEngine`` is the single entry point the transport calls for every
inbound event. Each call mutates one session under that session's lock and
queues outbound notifications, which are delivered through ``notify`` after
the lock is released. Timers (ready delay, deadline, idle and retention
clean-up) run through a ``Scheduler`` and re-validate themselves under the
lock before acting.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from . import anticheat, arbiter, machine, tracker
from .arbiter import Verdict
from .errors import InvalidState, SessionNotFound
from .history import HistoryStore, build_record
from .models import DUEL_TYPES, CodingContent, Content, Session, TypingContent
from .registry import SessionRegistry, now_ms
from .scheduler import Scheduler, ThreadScheduler
from .snapshot import participant_public_state, session_public_state
from .texts import pick_text

logger = logging.getLogger(__name__)

Notify = Callable[[str, str, dict], None]
Outbox = list[tuple[str, str, dict]]

TIMER_START = "start"
TIMER_DEADLINE = "deadline"
TIMER_IDLE = "idle"
TIMER_RETENTION = "retention"

MAX_CHAT_LENGTH = 500


@dataclass
class EngineConfig:
    max_sessions: int = 1000
    ready_delay_sec: float = 2.0
    idle_waiting_sec: int = 600
    completed_retention_sec: int = 300
    default_time_limit_min: int = 30
    pause_on_disconnect: bool = False
    focus_grace_ms: int = 3000
    violation_limit: int = 0
    chat_history_limit: int = 200
    history_limit: int = 10_000

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "EngineConfig":
        return cls(
            max_sessions=int(config.get("MAX_SESSIONS", cls.max_sessions)),
            ready_delay_sec=float(config.get("READY_DELAY_SEC", cls.ready_delay_sec)),
            idle_waiting_sec=int(config.get("IDLE_WAITING_SEC", cls.idle_waiting_sec)),
            completed_retention_sec=int(
                config.get("COMPLETED_RETENTION_SEC", cls.completed_retention_sec)
            ),
            default_time_limit_min=int(
                config.get("DEFAULT_TIME_LIMIT_MIN", cls.default_time_limit_min)
            ),
            pause_on_disconnect=bool(config.get("PAUSE_ON_DISCONNECT", cls.pause_on_disconnect)),
            focus_grace_ms=int(config.get("FOCUS_GRACE_MS", cls.focus_grace_ms)),
            violation_limit=int(config.get("VIOLATION_LIMIT", cls.violation_limit)),
            chat_history_limit=int(config.get("CHAT_HISTORY_LIMIT", cls.chat_history_limit)),
            history_limit=int(config.get("HISTORY_LIMIT", cls.history_limit)),
        )


class _Timer:
    handle: Any = None


def _noop_notify(event: str, room_code: str, payload: dict) -> None:
    return None


class DuelEngine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        scheduler: Scheduler | None = None,
        notify: Notify | None = None,
        clock: Callable[[], int] = now_ms,
        registry: SessionRegistry | None = None,
        history: HistoryStore | None = None,
    ):
        self.config = config or EngineConfig()
        self.scheduler = scheduler or ThreadScheduler()
        self.notify = notify or _noop_notify
        self.clock = clock
        self.registry = registry or SessionRegistry(max_sessions=self.config.max_sessions)
        self.history = history or HistoryStore(max_records=self.config.history_limit)

    # -- plumbing -------------------------------------------------------

    def _flush(self, outbox: Outbox) -> None:
        for event, room_code, payload in outbox:
            try:
                self.notify(event, room_code, payload)
            except Exception:
                logger.exception("failed to deliver %s for %s", event, room_code)

    def _queue_state(self, outbox: Outbox, session: Session) -> None:
        outbox.append(
            ("duel-state", session.room_code, session_public_state(session, self.clock()))
        )

    def _live(self, room_code: str) -> Session:
        return self.registry.get(room_code)

    @staticmethod
    def _ensure_not_destroyed(session: Session) -> None:
        if session.destroyed:
            raise SessionNotFound(f"room {session.room_code} not found")

    def _schedule(
        self,
        session: Session,
        name: str,
        delay_sec: float,
        fn: Callable[[Session, Outbox], None],
    ) -> None:
        self._cancel(session, name)
        entry = _Timer()

        def _fire() -> None:
            outbox: Outbox = []
            with session.lock:
                if session.destroyed or session.timers.get(name) is not entry:
                    logger.debug("stale %s timer for %s", name, session.room_code)
                    return
                del session.timers[name]
                fn(session, outbox)
            self._flush(outbox)

        session.timers[name] = entry
        entry.handle = self.scheduler.call_later(delay_sec, _fire)

    @staticmethod
    def _cancel(session: Session, name: str) -> bool:
        entry = session.timers.pop(name, None)
        if entry is None:
            return False
        if entry.handle is not None:
            entry.handle.cancel()
        return True

    def _cancel_all(self, session: Session) -> None:
        for name in list(session.timers):
            self._cancel(session, name)

    # -- session registry -----------------------------------------------

    def create_session(
        self,
        duel_type: str,
        host_id: str = "",
        username: str = "",
        time_limit_min: int | None = None,
        content: Content | None = None,
        difficulty: str | None = None,
        virtual: bool = False,
    ) -> Session:
        if duel_type not in DUEL_TYPES:
            raise InvalidState(f"unknown duel type {duel_type!r}")
        if duel_type == "typing":
            if content is None:
                content = pick_text(difficulty)
            elif not isinstance(content, TypingContent):
                raise InvalidState("typing duels need a typing text")
        elif not isinstance(content, CodingContent):
            raise InvalidState("coding duels need a problem")

        minutes = time_limit_min or self.config.default_time_limit_min
        session = self.registry.create(
            duel_type,
            content,
            time_limit_sec=int(minutes * 60),
            created_at_ms=self.clock(),
            host_id=host_id,
            virtual=virtual,
        )

        outbox: Outbox = []
        with session.lock:
            if host_id:
                tracker.join(session, host_id, username)
            self._schedule(session, TIMER_IDLE, self.config.idle_waiting_sec, self._on_idle)
            self._queue_state(outbox, session)
        self._flush(outbox)
        return session

    def get_snapshot(self, room_code: str, include_violations: bool = False) -> dict:
        session = self._live(room_code)
        return session_public_state(session, self.clock(), include_violations=include_violations)

    def list_snapshots(self, status: str | None = None, include_violations: bool = False) -> list[dict]:
        now = self.clock()
        rows = []
        for session in self.registry.list():
            if status and session.status != status:
                continue
            rows.append(session_public_state(session, now, include_violations=include_violations))
        return rows

    def sessions_for_user(self, user_id: str) -> list[Session]:
        found = []
        for session in self.registry.list():
            with session.lock:
                if session.participant(user_id) is not None:
                    found.append(session)
        return found

    def destroy_session(self, room_code: str, reason: str = "destroyed") -> bool:
        try:
            session = self._live(room_code)
        except SessionNotFound:
            return False
        outbox: Outbox = []
        with session.lock:
            self._destroy_locked(session, reason, outbox)
        self._flush(outbox)
        return True

    def _destroy_locked(self, session: Session, reason: str, outbox: Outbox) -> None:
        self._cancel_all(session)
        if self.registry.destroy(session.room_code):
            outbox.append(("duel-destroyed", session.room_code, {"roomCode": session.room_code, "reason": reason}))

    def _on_idle(self, session: Session, outbox: Outbox) -> None:
        if session.status != "waiting":
            return
        logger.info("session %s idle in waiting, destroying", session.room_code)
        self._destroy_locked(session, "idle", outbox)

    def _on_retention(self, session: Session, outbox: Outbox) -> None:
        self._destroy_locked(session, "expired", outbox)

    # -- participants ---------------------------------------------------

    def join(self, room_code: str, user_id: str, username: str = "") -> tuple[Session, bool]:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            participant, rejoined = tracker.join(session, user_id, username)

            # A full duel no longer idles; virtual sessions wait for an explicit start.
            if not session.virtual and len(session.participants) >= session.capacity:
                self._cancel(session, TIMER_IDLE)
            if rejoined:
                self._maybe_resume(session, outbox)

            outbox.append(
                (
                    "participant-joined",
                    session.room_code,
                    {
                        "roomCode": session.room_code,
                        "rejoined": rejoined,
                        "participant": participant_public_state(session, participant),
                        "room": session_public_state(session, self.clock()),
                    },
                )
            )
            self._queue_state(outbox, session)
        self._flush(outbox)
        return session, rejoined

    def set_ready(self, room_code: str, user_id: str, ready: bool) -> bool:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            both_ready = tracker.set_ready(session, user_id, ready)
            self._after_ready_change(session, user_id, both_ready, outbox)
        self._flush(outbox)
        return both_ready

    def toggle_ready(self, room_code: str, user_id: str) -> bool:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            both_ready = tracker.toggle_ready(session, user_id)
            self._after_ready_change(session, user_id, both_ready, outbox)
        self._flush(outbox)
        return both_ready

    def _after_ready_change(self, session: Session, user_id: str, both_ready: bool, outbox: Outbox) -> None:
        participant = session.participant(user_id)
        outbox.append(
            (
                "participant-ready-changed",
                session.room_code,
                {"roomCode": session.room_code, "userId": user_id, "isReady": participant.is_ready},
            )
        )
        if both_ready:
            delay = self.config.ready_delay_sec
            self._schedule(session, TIMER_START, delay, self._on_ready_delay)
            outbox.append(
                (
                    "duel-starting",
                    session.room_code,
                    {"roomCode": session.room_code, "startsAtMs": self.clock() + int(delay * 1000)},
                )
            )
        elif self._cancel(session, TIMER_START):
            logger.debug("pending start of %s cancelled by %s", session.room_code, user_id)
            outbox.append(("duel-start-cancelled", session.room_code, {"roomCode": session.room_code}))
        self._queue_state(outbox, session)

    def _on_ready_delay(self, session: Session, outbox: Outbox) -> None:
        if not tracker.all_ready(session):
            return
        self._start_locked(session, outbox)

    def start_virtual(self, room_code: str, user_id: str) -> Session:
        """Explicit clock start for a solo virtual session."""
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            tracker.require_participant(session, user_id)
            if not session.virtual:
                raise InvalidState("only virtual sessions start without a ready check")
            if session.status != "waiting":
                raise InvalidState(f"room {session.room_code} is {session.status}")
            self._start_locked(session, outbox)
        self._flush(outbox)
        return session

    def _start_locked(self, session: Session, outbox: Outbox) -> None:
        now = self.clock()
        if not machine.start(session, now):
            return
        self._cancel(session, TIMER_IDLE)
        self._cancel(session, TIMER_START)
        self._schedule(session, TIMER_DEADLINE, session.time_limit_sec, self._on_deadline)
        outbox.append(
            (
                "duel-started",
                session.room_code,
                {
                    "roomCode": session.room_code,
                    "startedAtMs": session.started_at_ms,
                    "completesAtMs": session.completes_at_ms,
                    "timeLimitSec": session.time_limit_sec,
                },
            )
        )
        self._queue_state(outbox, session)

    def disconnect(self, room_code: str, user_id: str) -> None:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            self._disconnect_locked(session, user_id, outbox)
        self._flush(outbox)

    def _disconnect_locked(self, session: Session, user_id: str, outbox: Outbox) -> None:
        tracker.disconnect(session, user_id)
        if session.status == "waiting" and not any(p.connected for p in session.participants):
            # Everyone offline while waiting: reclaim after the idle window.
            self._schedule(session, TIMER_IDLE, self.config.idle_waiting_sec, self._on_idle)
        if (
            self.config.pause_on_disconnect
            and session.status == "active"
            and session.paused_remaining_ms is None
        ):
            session.paused_remaining_ms = machine.remaining_ms(session, self.clock())
            self._cancel(session, TIMER_DEADLINE)
            logger.info("session %s paused with %sms left", session.room_code, session.paused_remaining_ms)
        outbox.append(
            ("participant-disconnected", session.room_code, {"roomCode": session.room_code, "userId": user_id})
        )
        self._queue_state(outbox, session)

    def disconnect_user(self, user_id: str) -> list[str]:
        codes = []
        for session in self.sessions_for_user(user_id):
            if session.status == "completed":
                continue
            try:
                self.disconnect(session.room_code, user_id)
            except SessionNotFound:
                continue
            codes.append(session.room_code)
        return codes

    def _maybe_resume(self, session: Session, outbox: Outbox) -> None:
        if session.status != "active" or session.paused_remaining_ms is None:
            return
        if tracker.anyone_disconnected(session):
            return
        remaining = session.paused_remaining_ms
        session.paused_remaining_ms = None
        session.completes_at_ms = self.clock() + remaining
        self._schedule(session, TIMER_DEADLINE, remaining / 1000, self._on_deadline)
        logger.info("session %s resumed with %sms left", session.room_code, remaining)

    def leave(self, room_code: str, user_id: str) -> None:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            if session.status != "waiting":
                self._disconnect_locked(session, user_id, outbox)
            else:
                tracker.leave_waiting(session, user_id)
                self._cancel(session, TIMER_START)
                outbox.append(("participant-left", session.room_code, {"roomCode": session.room_code, "userId": user_id}))
                if not session.participants:
                    self._destroy_locked(session, "empty", outbox)
                else:
                    self._schedule(session, TIMER_IDLE, self.config.idle_waiting_sec, self._on_idle)
                    self._queue_state(outbox, session)
        self._flush(outbox)

    # -- progress -------------------------------------------------------

    def submit_typing_progress(self, room_code: str, user_id: str, typed_text: str) -> dict:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            participant = arbiter.submit_typing_progress(session, user_id, typed_text, self.clock())
            view = participant_public_state(session, participant)
            outbox.append(("typing-progress", session.room_code, {"roomCode": session.room_code, **view}))
            self._resolve(session, arbiter.resolve_completion(session), outbox)
            self._queue_state(outbox, session)
        self._flush(outbox)
        return view

    def typing_completion(self, room_code: str, user_id: str) -> dict:
        """Server verdict for a client that believes it finished."""
        session = self._live(room_code)
        with session.lock:
            self._ensure_not_destroyed(session)
            participant = tracker.require_participant(session, user_id)
            view = participant_public_state(session, participant)
            view["status"] = session.status
            view["winnerId"] = session.winner_id
            return view

    def restart_typing(self, room_code: str, user_id: str) -> dict:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            participant = arbiter.restart_typing(session, user_id)
            view = participant_public_state(session, participant)
            outbox.append(("typing-progress", session.room_code, {"roomCode": session.room_code, **view}))
            self._queue_state(outbox, session)
        self._flush(outbox)
        return view

    def submit_code_result(
        self,
        room_code: str,
        user_id: str,
        passed: int,
        total: int,
        language: str = "",
    ) -> dict:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            participant = arbiter.submit_code_result(
                session, user_id, passed, total, self.clock(), language=language
            )
            view = participant_public_state(session, participant)
            outbox.append(
                ("participant-submitted", session.room_code, {"roomCode": session.room_code, **view})
            )
            self._resolve(session, arbiter.resolve_completion(session), outbox)
            self._queue_state(outbox, session)
        self._flush(outbox)
        return view

    def _on_deadline(self, session: Session, outbox: Outbox) -> None:
        verdict = arbiter.resolve_timeout(session)
        if self._resolve(session, verdict, outbox):
            self._queue_state(outbox, session)

    def _resolve(self, session: Session, verdict: Verdict | None, outbox: Outbox) -> bool:
        if verdict is None:
            return False
        if not machine.complete(session, verdict.reason, verdict.winner_id, self.clock()):
            return False
        record = build_record(session)
        self.history.add(record)
        outbox.append(("duel-finished", session.room_code, record))
        self._schedule(session, TIMER_RETENTION, self.config.completed_retention_sec, self._on_retention)
        return True

    # -- anti-cheat -----------------------------------------------------

    def record_violation(
        self,
        room_code: str,
        user_id: str,
        violation_type: str,
        message: str = "",
        client_timestamp: str | None = None,
        duration_ms: int | None = None,
    ) -> dict | None:
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            violation = anticheat.record_violation(
                session,
                user_id,
                violation_type,
                self.clock(),
                message=message,
                client_timestamp=client_timestamp,
                duration_ms=duration_ms,
                focus_grace_ms=self.config.focus_grace_ms,
            )
            if violation is None:
                return None
            participant = session.participant(user_id)
            payload = {
                "roomCode": session.room_code,
                "userId": user_id,
                "type": violation.type,
                "timestampMs": violation.timestamp_ms,
                "violationCount": len(participant.violations),
            }
            outbox.append(("violation-recorded", session.room_code, payload))
            verdict = anticheat.forfeit_verdict(session, user_id, self.config.violation_limit)
            self._resolve(session, verdict, outbox)
            self._queue_state(outbox, session)
        self._flush(outbox)
        return payload

    # -- results and chat -----------------------------------------------

    def acknowledge_results(self, room_code: str, user_id: str) -> bool:
        """Returns True when the acknowledgement released the session."""
        session = self._live(room_code)
        outbox: Outbox = []
        released = False
        with session.lock:
            self._ensure_not_destroyed(session)
            participant = tracker.require_participant(session, user_id)
            if session.status != "completed":
                raise InvalidState("results are not available yet")
            participant.acknowledged = True
            if all(p.acknowledged for p in session.participants):
                self._destroy_locked(session, "acknowledged", outbox)
                released = True
        self._flush(outbox)
        return released

    def send_chat(self, room_code: str, user_id: str, message: str) -> dict:
        text = (message or "").strip()
        if not text or len(text) > MAX_CHAT_LENGTH:
            raise InvalidState("chat message must be 1-500 characters")
        session = self._live(room_code)
        outbox: Outbox = []
        with session.lock:
            self._ensure_not_destroyed(session)
            participant = tracker.require_participant(session, user_id)
            msg = {
                "roomCode": session.room_code,
                "userId": user_id,
                "username": participant.username,
                "message": text,
                "timestampMs": self.clock(),
            }
            session.chat_history.append(msg)
            limit = self.config.chat_history_limit
            if len(session.chat_history) > limit:
                session.chat_history = session.chat_history[-limit:]
            outbox.append(("chat-message", session.room_code, msg))
        self._flush(outbox)
        return msg
