"""Server-side typing metrics.

Clients send the cumulative text of their current attempt; word index,
accuracy and WPM are always derived here from the canonical word list.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class TypingDelta:
    word_index: int
    new_chars: int
    new_errors: int


def expected_stream(words: Sequence[str]) -> str:
    # Every word, including the last, may be followed by a space.
    return "".join(w + " " for w in words)


def common_prefix_len(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


def completed_words(words: Sequence[str], typed_text: str) -> int:
    total = len(words)
    tokens = typed_text.split(" ")
    finished, trailing = tokens[:-1], tokens[-1]

    index = 0
    for token in finished:
        if index >= total or token != words[index]:
            break
        index += 1

    # The last word counts without a trailing space.
    if index == len(finished) and index == total - 1 and trailing == words[-1]:
        index = total
    return index


def diff_attempt(words: Sequence[str], previous_text: str, typed_text: str) -> TypingDelta:
    expected = expected_stream(words)
    start = common_prefix_len(previous_text, typed_text)

    new_chars = 0
    new_errors = 0
    for i in range(start, len(typed_text)):
        new_chars += 1
        if i >= len(expected) or typed_text[i] != expected[i]:
            new_errors += 1

    return TypingDelta(
        word_index=completed_words(words, typed_text),
        new_chars=new_chars,
        new_errors=new_errors,
    )


def accuracy(typed_chars: int, error_chars: int) -> float:
    if typed_chars <= 0:
        return 100.0
    value = round(min(100.0, max(0.0, (typed_chars - error_chars) / typed_chars * 100)), 2)
    # Any recorded mistake keeps the figure below 100.
    if error_chars > 0:
        value = min(value, 99.99)
    return value


def words_per_minute(words_done: int, elapsed_ms: int) -> int:
    if elapsed_ms <= 0:
        return 0
    return round(words_done / (elapsed_ms / 60_000))


def typing_score(word_index: int, accuracy_pct: float) -> float:
    """Words completed scaled by accuracy."""
    return word_index * accuracy_pct / 100
