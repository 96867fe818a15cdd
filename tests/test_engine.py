import threading

import pytest

from skillversus.duel.engine import DuelEngine, EngineConfig
from skillversus.duel.errors import InvalidState, SessionNotFound, UnknownParticipant
from skillversus.duel.history import HistoryStore
from skillversus.duel.scheduler import ThreadScheduler


def _names(events):
    return [name for name, _, _ in events]


def test_engine_config_from_flask_style_mapping():
    config = EngineConfig.from_mapping(
        {"READY_DELAY_SEC": "0.5", "VIOLATION_LIMIT": "4", "PAUSE_ON_DISCONNECT": True}
    )
    assert config.ready_delay_sec == 0.5
    assert config.violation_limit == 4
    assert config.pause_on_disconnect is True
    assert config.max_sessions == 1000


def test_create_session_defaults(engine):
    session = engine.create_session("typing", host_id="alice")
    assert session.time_limit_sec == 30 * 60
    assert session.content.total_words > 0

    with pytest.raises(InvalidState):
        engine.create_session("coding", host_id="alice")
    with pytest.raises(InvalidState):
        engine.create_session("chess", host_id="alice")


def test_second_participant_cancels_idle_timer(engine, corpus, scheduler):
    session = engine.create_session("typing", host_id="alice", content=corpus)
    assert len(scheduler.active()) == 1

    engine.join(session.room_code, "bob")
    assert scheduler.active() == []

    scheduler.advance(engine.config.idle_waiting_sec + 60)
    assert engine.get_snapshot(session.room_code)["status"] == "waiting"


def test_completed_session_is_retained_then_destroyed(engine, typing_duel, events):
    session = typing_duel()
    engine.submit_typing_progress(session.room_code, "alice", "the quick brown ")

    engine.scheduler.advance(engine.config.completed_retention_sec - 1)
    assert engine.get_snapshot(session.room_code)["status"] == "completed"

    engine.scheduler.advance(1)
    with pytest.raises(SessionNotFound):
        engine.get_snapshot(session.room_code)
    assert ("duel-destroyed", session.room_code, {"roomCode": session.room_code, "reason": "expired"}) in events


def test_all_acknowledgements_release_the_session(engine, typing_duel):
    session = typing_duel()
    with pytest.raises(InvalidState):
        engine.acknowledge_results(session.room_code, "alice")

    engine.submit_typing_progress(session.room_code, "bob", "the quick brown ")
    assert engine.acknowledge_results(session.room_code, "alice") is False
    assert engine.acknowledge_results(session.room_code, "bob") is True
    assert session.destroyed is True
    assert engine.scheduler.active() == []
    with pytest.raises(SessionNotFound):
        engine.acknowledge_results(session.room_code, "bob")


def test_duel_finished_record_and_history(engine, typing_duel, events):
    session = typing_duel()
    engine.record_violation(session.room_code, "bob", "TAB_SWITCH")
    engine.submit_typing_progress(session.room_code, "bob", "the ")
    engine.submit_typing_progress(session.room_code, "alice", "the quick brown ")

    record = next(payload for name, _, payload in events if name == "duel-finished")
    assert record["roomCode"] == session.room_code
    assert record["winnerId"] == "alice"
    assert record["completionReason"] == "correct-submission"
    by_user = {p["userId"]: p for p in record["participants"]}
    assert by_user["alice"]["isWinner"] is True
    assert by_user["alice"]["xp"] == 50
    assert by_user["bob"]["xp"] == 10
    assert by_user["bob"]["violationCount"] == 1
    assert by_user["bob"]["typingStats"]["wordsCompleted"] == 1
    assert record["typingContent"]["totalWords"] == 3

    assert engine.history.for_user("bob")[0]["roomCode"] == session.room_code
    totals = engine.history.totals("alice")
    assert totals == {"userId": "alice", "totalDuels": 1, "wins": 1, "xp": 50}


def test_draw_awards_draw_xp(engine, coding_duel):
    session = coding_duel()
    engine.scheduler.advance(session.time_limit_sec)
    record = engine.history.for_user("alice")[0]
    assert record["winnerId"] is None
    assert [p["xp"] for p in record["participants"]] == [20, 20]
    assert record["problem"] == {"id": "p-1", "title": "Two Sum"}


def test_snapshot_does_not_alias_engine_state(engine, typing_duel):
    session = typing_duel()
    engine.record_violation(session.room_code, "alice", "TAB_SWITCH")
    snap = engine.get_snapshot(session.room_code, include_violations=True)

    snap["participants"][0]["typingProgress"]["currentWordIndex"] = 99
    snap["participants"][0]["violations"].clear()
    snap["content"]["words"].append("extra")
    snap["participants"].pop()

    assert session.participant("alice").current_word_index == 0
    assert len(session.participant("alice").violations) == 1
    assert session.content.total_words == 3
    assert len(session.participants) == 2


def test_snapshot_hides_violation_details_by_default(engine, typing_duel):
    session = typing_duel()
    engine.record_violation(session.room_code, "alice", "DEV_TOOLS_ATTEMPT")
    alice = engine.get_snapshot(session.room_code)["participants"][0]
    assert "violations" not in alice
    assert alice["violationCount"] == 1
    assert alice["violationCounts"]["DEV_TOOLS_ATTEMPT"] == 1


def test_list_snapshots_filters_by_status(engine, corpus, typing_duel):
    waiting = engine.create_session("typing", host_id="carol", content=corpus)
    active = typing_duel()
    assert [s["roomCode"] for s in engine.list_snapshots("waiting")] == [waiting.room_code]
    assert [s["roomCode"] for s in engine.list_snapshots("active")] == [active.room_code]
    assert len(engine.list_snapshots()) == 2


def test_leave_during_play_only_disconnects(engine, typing_duel):
    session = typing_duel()
    engine.leave(session.room_code, "bob")
    bob = session.participant("bob")
    assert bob is not None
    assert bob.connected is False
    assert session.status == "active"


def test_disconnect_user_covers_every_open_session(engine, corpus, typing_duel):
    first = typing_duel()
    second = engine.create_session("typing", host_id="alice", content=corpus)
    finished = typing_duel()
    engine.submit_typing_progress(finished.room_code, "bob", "the quick brown ")

    codes = engine.disconnect_user("alice")
    assert sorted(codes) == sorted([first.room_code, second.room_code])
    assert first.participant("alice").connected is False
    assert finished.participant("alice").connected is True


def test_typing_completion_reports_server_verdict(engine, typing_duel):
    session = typing_duel()
    engine.submit_typing_progress(session.room_code, "bob", "the quick brown ")
    result = engine.typing_completion(session.room_code, "alice")
    assert result["status"] == "completed"
    assert result["winnerId"] == "bob"
    assert result["finished"] is False


def test_chat_history_is_capped(make_engine, corpus, events):
    engine = make_engine(chat_history_limit=3)
    session = engine.create_session("typing", host_id="alice", username="Alice", content=corpus)
    for i in range(5):
        engine.send_chat(session.room_code, "alice", f"  m{i} ")

    assert [m["message"] for m in session.chat_history] == ["m2", "m3", "m4"]
    assert session.chat_history[-1]["username"] == "Alice"
    assert _names(events).count("chat-message") == 5


def test_chat_validation(engine, corpus):
    session = engine.create_session("typing", host_id="alice", content=corpus)
    with pytest.raises(InvalidState):
        engine.send_chat(session.room_code, "alice", "   ")
    with pytest.raises(InvalidState):
        engine.send_chat(session.room_code, "alice", "x" * 501)
    with pytest.raises(UnknownParticipant):
        engine.send_chat(session.room_code, "mallory", "hi")


def test_notification_failures_do_not_break_the_engine(clock, scheduler, corpus):
    def _broken(event, room, payload):
        raise RuntimeError("socket gone")

    engine = DuelEngine(scheduler=scheduler, notify=_broken, clock=clock)
    session = engine.create_session("typing", host_id="alice", content=corpus)
    engine.join(session.room_code, "bob")
    assert len(session.participants) == 2


def test_thread_scheduler_runs_and_cancels():
    scheduler = ThreadScheduler()
    fired = threading.Event()
    skipped = threading.Event()

    scheduler.call_later(0.01, fired.set)
    handle = scheduler.call_later(0.2, skipped.set)
    handle.cancel()

    assert fired.wait(2)
    assert not skipped.wait(0.4)


def test_abandoned_full_waiting_room_is_reclaimed(engine, corpus, scheduler, events):
    session = engine.create_session("typing", host_id="alice", content=corpus)
    engine.join(session.room_code, "bob")
    engine.disconnect(session.room_code, "alice")
    assert scheduler.active() == []

    engine.disconnect(session.room_code, "bob")
    scheduler.advance(engine.config.idle_waiting_sec)

    assert session.room_code not in engine.registry
    assert ("duel-destroyed", session.room_code, {"roomCode": session.room_code, "reason": "idle"}) in events


def test_rejoin_keeps_a_full_waiting_room_alive(engine, corpus, scheduler):
    session = engine.create_session("typing", host_id="alice", content=corpus)
    engine.join(session.room_code, "bob")
    engine.disconnect(session.room_code, "alice")
    engine.disconnect(session.room_code, "bob")

    scheduler.advance(engine.config.idle_waiting_sec - 1)
    engine.join(session.room_code, "alice")
    scheduler.advance(engine.config.idle_waiting_sec * 10)

    assert engine.get_snapshot(session.room_code)["status"] == "waiting"


def test_history_store_drops_oldest_records():
    store = HistoryStore(max_records=2)
    for code in ("AAAAAA", "BBBBBB", "CCCCCC"):
        store.add({"roomCode": code, "winnerId": "alice", "participants": [{"userId": "alice", "xp": 50}]})

    assert [r["roomCode"] for r in store.for_user("alice")] == ["CCCCCC", "BBBBBB"]
    assert store.totals("alice") == {"userId": "alice", "totalDuels": 2, "wins": 2, "xp": 100}


def test_leave_during_play_follows_disconnect_policy(make_engine, corpus, events):
    engine = make_engine(pause_on_disconnect=True)
    session = engine.create_session("typing", host_id="alice", content=corpus, time_limit_min=1)
    engine.join(session.room_code, "bob")
    engine.set_ready(session.room_code, "alice", True)
    engine.set_ready(session.room_code, "bob", True)
    engine.scheduler.advance(engine.config.ready_delay_sec)

    engine.leave(session.room_code, "bob")

    assert session.paused_remaining_ms == 60_000
    assert ("participant-disconnected", session.room_code, {"roomCode": session.room_code, "userId": "bob"}) in events
    engine.scheduler.advance(120)
    assert session.status == "active"
