from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room
from pydantic import BaseModel, ValidationError

from ..duel.engine import DuelEngine
from ..duel.errors import DuelError, InvalidState
from ..duel.models import CodingContent
from ..duel.snapshot import session_public_state
from .events import (
    AuthenticatePayload,
    ChatPayload,
    CreateDuelPayload,
    RoomPayload,
    SubmitCodePayload,
    TypingProgressPayload,
    ViolationPayload,
)

logger = logging.getLogger(__name__)


def register_socketio_handlers(socketio: SocketIO, engine: DuelEngine) -> None:
    # socket id -> {"userId", "username"}
    users: dict[str, dict[str, str]] = {}
    users_lock = RLock()

    def _fail(code: str, message: str | None = None) -> dict:
        emit("error", {"code": code, "message": message or code})
        return {"ok": False, "error": code}

    def _current_user() -> dict[str, str] | None:
        with users_lock:
            return users.get(request.sid)

    def _dispatch(
        model: type[BaseModel],
        data: Any,
        action: Callable[[dict[str, str], Any], dict | None],
    ) -> dict:
        user = _current_user()
        if user is None:
            return _fail("not_authenticated", "authenticate first")

        try:
            payload = model.model_validate(data or {})
        except ValidationError as exc:
            logger.debug("rejected %s from %s: %s", model.__name__, request.sid, exc)
            return _fail("invalid_payload", "invalid payload")

        try:
            result = action(user, payload)
        except DuelError as exc:
            logger.debug("%s for %s: %s", exc.code, user["userId"], exc.message)
            return _fail(exc.code, exc.message)

        return {"ok": True, **(result or {})}

    @socketio.on("authenticate")
    def authenticate(data):
        try:
            payload = AuthenticatePayload.model_validate(data or {})
        except ValidationError:
            return _fail("invalid_payload", "invalid payload")

        user = {"userId": payload.userId, "username": payload.username or payload.userId}
        with users_lock:
            users[request.sid] = user

        # Rejoin the socket rooms of sessions this user already belongs to.
        for session in engine.sessions_for_user(payload.userId):
            join_room(session.room_code)

        emit("authenticated", {"success": True, **user})
        return {"ok": True, **user}

    @socketio.on("create-duel")
    def create_duel(data):
        def _create(user, payload: CreateDuelPayload):
            content = None
            if payload.problem is not None:
                content = CodingContent(
                    problem_id=payload.problem.id,
                    title=payload.problem.title,
                    total_tests=payload.problem.totalTests,
                )
            session = engine.create_session(
                payload.duelType,
                host_id=user["userId"],
                username=user["username"],
                time_limit_min=payload.timeLimit,
                content=content,
                difficulty=payload.difficulty,
                virtual=payload.virtual,
            )
            join_room(session.room_code)
            room = session_public_state(session, engine.clock())
            emit("duel-created", {"room": room})
            return {"roomCode": session.room_code}

        return _dispatch(CreateDuelPayload, data, _create)

    @socketio.on("join-duel")
    def join_duel(data):
        def _join(user, payload: RoomPayload):
            session, rejoined = engine.join(payload.roomCode, user["userId"], user["username"])
            join_room(session.room_code)
            emit(
                "chat-history",
                {"roomCode": session.room_code, "messages": list(session.chat_history)},
                to=request.sid,
            )
            return {"roomCode": session.room_code, "rejoined": rejoined}

        return _dispatch(RoomPayload, data, _join)

    @socketio.on("toggle-ready")
    def toggle_ready(data):
        def _toggle(user, payload: RoomPayload):
            both_ready = engine.toggle_ready(payload.roomCode, user["userId"])
            return {"allReady": both_ready}

        return _dispatch(RoomPayload, data, _toggle)

    @socketio.on("start-virtual")
    def start_virtual(data):
        def _start(user, payload: RoomPayload):
            engine.start_virtual(payload.roomCode, user["userId"])
            return {}

        return _dispatch(RoomPayload, data, _start)

    @socketio.on("typing-progress")
    def typing_progress(data):
        def _progress(user, payload: TypingProgressPayload):
            view = engine.submit_typing_progress(payload.roomCode, user["userId"], payload.typedText)
            return {"progress": view}

        return _dispatch(TypingProgressPayload, data, _progress)

    @socketio.on("typing-completion")
    def typing_completion(data):
        # Client-side numbers are ignored; the server state is the verdict.
        def _completion(user, payload: RoomPayload):
            return {"result": engine.typing_completion(payload.roomCode, user["userId"])}

        return _dispatch(RoomPayload, data, _completion)

    @socketio.on("restart-typing")
    def restart_typing(data):
        def _restart(user, payload: RoomPayload):
            return {"progress": engine.restart_typing(payload.roomCode, user["userId"])}

        return _dispatch(RoomPayload, data, _restart)

    @socketio.on("submit-code")
    def submit_code(data):
        def _submit(user, payload: SubmitCodePayload):
            view = engine.submit_code_result(
                payload.roomCode,
                user["userId"],
                passed=payload.result.passedCount,
                total=payload.result.totalCount,
                language=payload.language,
            )
            return {"progress": view}

        return _dispatch(SubmitCodePayload, data, _submit)

    @socketio.on("anti-cheat-violation")
    def anti_cheat_violation(data):
        def _violation(user, payload: ViolationPayload):
            try:
                recorded = engine.record_violation(
                    payload.roomCode,
                    user["userId"],
                    payload.violationType,
                    message=payload.message,
                    client_timestamp=payload.timestamp,
                    duration_ms=payload.durationMs,
                )
            except InvalidState:
                # Late events from clients tearing down are dropped quietly.
                return {"ignored": True}
            return {"ignored": recorded is None}

        return _dispatch(ViolationPayload, data, _violation)

    @socketio.on("send-message")
    def send_message(data):
        def _chat(user, payload: ChatPayload):
            engine.send_chat(payload.roomCode, user["userId"], payload.message)
            return {}

        return _dispatch(ChatPayload, data, _chat)

    @socketio.on("acknowledge-results")
    def acknowledge_results(data):
        def _ack(user, payload: RoomPayload):
            released = engine.acknowledge_results(payload.roomCode, user["userId"])
            leave_room(payload.roomCode)
            return {"released": released}

        return _dispatch(RoomPayload, data, _ack)

    @socketio.on("leave-duel")
    def leave_duel(data):
        def _leave(user, payload: RoomPayload):
            engine.leave(payload.roomCode, user["userId"])
            leave_room(payload.roomCode)
            return {}

        return _dispatch(RoomPayload, data, _leave)

    @socketio.on("disconnect")
    def on_disconnect(*args):
        with users_lock:
            user = users.pop(request.sid, None)
            still_connected = user is not None and any(
                u["userId"] == user["userId"] for u in users.values()
            )
        if user is None or still_connected:
            return
        codes = engine.disconnect_user(user["userId"])
        if codes:
            logger.info("%s disconnected from %s", user["userId"], ", ".join(codes))
