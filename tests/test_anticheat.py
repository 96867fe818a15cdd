import pytest

from skillversus.duel.anticheat import violation_counts
from skillversus.duel.errors import InvalidState, UnknownParticipant


def test_violation_is_appended_with_server_time(engine, typing_duel, clock):
    session = typing_duel()
    payload = engine.record_violation(
        session.room_code,
        "bob",
        "TAB_SWITCH",
        message="Switched tabs",
        client_timestamp="2020-01-01T00:00:00Z",
    )
    bob = session.participant("bob")
    assert payload["violationCount"] == 1
    assert len(bob.violations) == 1
    violation = bob.violations[0]
    assert violation.type == "TAB_SWITCH"
    assert violation.timestamp_ms == clock.now
    assert violation.client_timestamp == "2020-01-01T00:00:00Z"


def test_violations_keep_receipt_order(engine, typing_duel):
    session = typing_duel()
    for kind in ("FULLSCREEN_EXIT", "KEYBOARD_SHORTCUT", "DEV_TOOLS_ATTEMPT"):
        engine.record_violation(session.room_code, "alice", kind)
    alice = session.participant("alice")
    assert [v.type for v in alice.violations] == ["FULLSCREEN_EXIT", "KEYBOARD_SHORTCUT", "DEV_TOOLS_ATTEMPT"]
    seqs = [v.seq for v in alice.violations]
    assert seqs == sorted(seqs)
    assert violation_counts(alice)["KEYBOARD_SHORTCUT"] == 1
    assert violation_counts(alice)["TAB_SWITCH"] == 0


def test_short_focus_loss_is_not_a_violation(engine, typing_duel):
    session = typing_duel()
    assert engine.record_violation(session.room_code, "bob", "FOCUS_LOST", duration_ms=1200) is None
    assert engine.record_violation(session.room_code, "bob", "FOCUS_LOST") is None
    assert session.participant("bob").violations == []

    recorded = engine.record_violation(session.room_code, "bob", "FOCUS_LOST", duration_ms=3500)
    assert recorded["type"] == "FOCUS_LOST"
    assert len(session.participant("bob").violations) == 1


def test_violations_outside_active_play_are_rejected(engine, corpus, typing_duel):
    waiting = engine.create_session("typing", host_id="alice", content=corpus)
    with pytest.raises(InvalidState):
        engine.record_violation(waiting.room_code, "alice", "TAB_SWITCH")

    finished = typing_duel()
    engine.submit_typing_progress(finished.room_code, "alice", "the quick brown ")
    with pytest.raises(InvalidState):
        engine.record_violation(finished.room_code, "bob", "TAB_SWITCH")


def test_unknown_participant_and_type(engine, typing_duel):
    session = typing_duel()
    with pytest.raises(UnknownParticipant):
        engine.record_violation(session.room_code, "mallory", "TAB_SWITCH")
    with pytest.raises(InvalidState):
        engine.record_violation(session.room_code, "bob", "SCREENSHOT")


def test_violations_are_informational_by_default(engine, typing_duel):
    session = typing_duel()
    for _ in range(20):
        engine.record_violation(session.room_code, "bob", "TAB_SWITCH")
    assert session.status == "active"
    assert len(session.participant("bob").violations) == 20


def test_violation_limit_forfeits_the_duel(make_engine, corpus):
    engine = make_engine(violation_limit=2)
    session = engine.create_session("typing", host_id="alice", content=corpus)
    engine.join(session.room_code, "bob")
    engine.set_ready(session.room_code, "alice", True)
    engine.set_ready(session.room_code, "bob", True)
    engine.scheduler.advance(engine.config.ready_delay_sec)

    engine.record_violation(session.room_code, "bob", "TAB_SWITCH")
    assert session.status == "active"
    engine.record_violation(session.room_code, "bob", "FULLSCREEN_EXIT")

    assert session.status == "completed"
    assert session.completion_reason == "anti-cheat"
    assert session.winner_id == "alice"
