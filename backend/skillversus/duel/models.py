from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Literal, Union


DuelType = Literal["coding", "typing"]
SessionStatus = Literal["waiting", "active", "completed"]
CompletionReason = Literal["correct-submission", "best-score", "completion", "anti-cheat"]
ViolationType = Literal[
    "FULLSCREEN_EXIT",
    "TAB_SWITCH",
    "FOCUS_LOST",
    "KEYBOARD_SHORTCUT",
    "DEV_TOOLS_ATTEMPT",
]

DUEL_TYPES: tuple[str, ...] = ("coding", "typing")
STATUS_ORDER: tuple[str, ...] = ("waiting", "active", "completed")
VIOLATION_TYPES: tuple[str, ...] = (
    "FULLSCREEN_EXIT",
    "TAB_SWITCH",
    "FOCUS_LOST",
    "KEYBOARD_SHORTCUT",
    "DEV_TOOLS_ATTEMPT",
)

MAX_PARTICIPANTS = 2


@dataclass(frozen=True)
class TypingContent:
    text: str
    words: tuple[str, ...]
    category: str = ""
    difficulty: str = ""

    @property
    def total_words(self) -> int:
        return len(self.words)

    @classmethod
    def from_text(cls, text: str, category: str = "", difficulty: str = "") -> "TypingContent":
        words = tuple(w for w in text.split() if w)
        return cls(text=" ".join(words), words=words, category=category, difficulty=difficulty)


@dataclass(frozen=True)
class CodingContent:
    problem_id: str
    title: str = ""
    total_tests: int = 0


Content = Union[TypingContent, CodingContent]


@dataclass(frozen=True)
class Violation:
    type: str
    timestamp_ms: int
    seq: int
    message: str = ""
    client_timestamp: str | None = None


@dataclass
class SubmissionResult:
    passed: int
    total: int
    language: str = ""
    submitted_at_ms: int = 0

    @property
    def all_passed(self) -> bool:
        return self.total > 0 and self.passed == self.total


@dataclass
class Participant:
    user_id: str
    username: str = ""
    joined_seq: int = 0
    is_ready: bool = False
    connected: bool = True
    acknowledged: bool = False
    # Typing progress
    current_word_index: int = 0
    wpm: int = 0
    accuracy: float = 100.0
    typed_text: str = ""
    typed_chars: int = 0
    error_chars: int = 0
    # Coding progress
    last_submission_result: SubmissionResult | None = None
    best_passed: int = 0
    submissions: int = 0
    # Set once the participant meets the completion condition.
    finished_seq: int | None = None
    finished_at_ms: int | None = None
    violations: list[Violation] = field(default_factory=list)


@dataclass
class Session:
    room_code: str
    duel_type: DuelType
    content: Content
    time_limit_sec: int
    created_at_ms: int
    host_id: str = ""
    virtual: bool = False
    status: SessionStatus = "waiting"
    participants: list[Participant] = field(default_factory=list)
    started_at_ms: int | None = None
    completes_at_ms: int | None = None
    ended_at_ms: int | None = None
    completion_reason: CompletionReason | None = None
    winner_id: str | None = None
    seq: int = 0
    # Remaining deadline while paused by a disconnect.
    paused_remaining_ms: int | None = None
    chat_history: list[dict] = field(default_factory=list)
    destroyed: bool = False
    # Pending timers by name; owned by the engine.
    timers: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)

    @property
    def capacity(self) -> int:
        return 1 if self.virtual else MAX_PARTICIPANTS

    def next_seq(self) -> int:
        self.seq += 1
        return self.seq

    def participant(self, user_id: str) -> Participant | None:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def opponent_of(self, user_id: str) -> Participant | None:
        for p in self.participants:
            if p.user_id != user_id:
                return p
        return None
