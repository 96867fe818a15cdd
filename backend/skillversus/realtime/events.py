"""Inbound Socket.IO payloads, validated with pydantic."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RoomPayload(_Payload):
    roomCode: str = Field(..., min_length=1, max_length=16)

    @field_validator("roomCode")
    @classmethod
    def normalize_room_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v.isalnum():
            raise ValueError("roomCode must be alphanumeric")
        return v


class AuthenticatePayload(_Payload):
    userId: str = Field(..., min_length=1, max_length=64)
    username: str = Field("", max_length=32)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if "<" in v or ">" in v:
            raise ValueError("username contains HTML")
        if any(ord(ch) < 32 for ch in v):
            raise ValueError("username contains control characters")
        return v


class ProblemPayload(_Payload):
    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field("", max_length=200)
    totalTests: int = Field(0, ge=0, le=1000)


class CreateDuelPayload(_Payload):
    duelType: Literal["coding", "typing"]
    timeLimit: Optional[int] = Field(None, ge=1, le=120, description="Minutes")
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    problem: Optional[ProblemPayload] = None
    virtual: bool = False

    @model_validator(mode="after")
    def coding_needs_problem(self) -> "CreateDuelPayload":
        if self.duelType == "coding" and self.problem is None:
            raise ValueError("coding duels need a problem")
        return self


class TypingProgressPayload(RoomPayload):
    typedText: str = Field("", max_length=5000)

    @field_validator("typedText", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return v if isinstance(v, str) else ""


class SubmissionResultPayload(_Payload):
    passedCount: int = Field(..., ge=0, le=1000)
    totalCount: int = Field(..., ge=0, le=1000)

    @model_validator(mode="after")
    def passed_within_total(self) -> "SubmissionResultPayload":
        if self.passedCount > self.totalCount:
            raise ValueError("passedCount exceeds totalCount")
        return self


class SubmitCodePayload(RoomPayload):
    code: str = Field("", max_length=100_000)
    language: str = Field("", max_length=32)
    result: SubmissionResultPayload


class ViolationPayload(RoomPayload):
    violationType: Literal[
        "FULLSCREEN_EXIT",
        "TAB_SWITCH",
        "FOCUS_LOST",
        "KEYBOARD_SHORTCUT",
        "DEV_TOOLS_ATTEMPT",
    ]
    message: str = Field("", max_length=500)
    timestamp: Optional[str] = Field(None, max_length=64)
    durationMs: Optional[int] = Field(None, ge=0)

    @field_validator("timestamp", mode="before")
    @classmethod
    def stringify_timestamp(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class ChatPayload(RoomPayload):
    message: str = Field(..., min_length=1, max_length=500)
