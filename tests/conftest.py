from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from skillversus.duel.engine import DuelEngine, EngineConfig
from skillversus.duel.models import CodingContent, TypingContent


class FakeClock:
    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@dataclass
class _Pending:
    due_ms: int
    fn: object
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Runs timers when the shared fake clock is advanced past them."""

    clock: FakeClock
    pending: list[_Pending] = field(default_factory=list)

    def call_later(self, delay_sec, fn):
        item = _Pending(due_ms=self.clock.now + int(delay_sec * 1000), fn=fn)
        self.pending.append(item)
        return item

    def advance(self, seconds: float) -> None:
        target = self.clock.now + int(seconds * 1000)
        while True:
            due = [p for p in self.pending if not p.cancelled and p.due_ms <= target]
            if not due:
                break
            item = min(due, key=lambda p: p.due_ms)
            self.pending.remove(item)
            self.clock.now = max(self.clock.now, item.due_ms)
            item.fn()
        self.clock.now = target

    def active(self) -> list[_Pending]:
        return [p for p in self.pending if not p.cancelled]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def events():
    return []


@pytest.fixture
def make_engine(clock, scheduler, events):
    def _make(**overrides) -> DuelEngine:
        return DuelEngine(
            config=EngineConfig(**overrides),
            scheduler=scheduler,
            notify=lambda event, room, payload: events.append((event, room, payload)),
            clock=clock,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def corpus():
    return TypingContent.from_text("the quick brown", category="test", difficulty="easy")


@pytest.fixture
def problem():
    return CodingContent(problem_id="p-1", title="Two Sum", total_tests=5)


@pytest.fixture
def typing_duel(engine, corpus):
    """Active typing duel between alice (host) and bob."""

    def _start(**kwargs):
        session = engine.create_session("typing", host_id="alice", username="Alice", content=corpus, **kwargs)
        engine.join(session.room_code, "bob", "Bob")
        engine.set_ready(session.room_code, "alice", True)
        engine.set_ready(session.room_code, "bob", True)
        engine.scheduler.advance(engine.config.ready_delay_sec)
        assert session.status == "active"
        return session

    return _start


@pytest.fixture
def coding_duel(engine, problem):
    def _start(**kwargs):
        session = engine.create_session("coding", host_id="alice", username="Alice", content=problem, **kwargs)
        engine.join(session.room_code, "bob", "Bob")
        engine.set_ready(session.room_code, "alice", True)
        engine.set_ready(session.room_code, "bob", True)
        engine.scheduler.advance(engine.config.ready_delay_sec)
        assert session.status == "active"
        return session

    return _start
