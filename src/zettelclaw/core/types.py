"""Shared types and data structures for the zettelclaw hook."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, StrEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant"]

HOOK_STATE_VERSION = 1

__all__ = [
    "ConversationSource",
    "DispatchMode",
    "DispatchRequest",
    "DispatchResult",
    "ExtractResult",
    "HOOK_STATE_VERSION",
    "HookEvent",
    "JournalSnapshot",
    "ResetResult",
    "Role",
    "SessionTurns",
    "SweepCursor",
    "SweepRunResult",
    "SweepState",
    "TranscriptCandidate",
    "Turn",
    "utc_now",
]


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class ConversationSource(StrEnum):
    """Which path produced a dispatch."""

    RESET = "reset"
    SWEEP = "sweep"


class DispatchMode(Enum):
    """How long to wait on the agent dispatcher."""

    FIRE_AND_FORGET = "fire_and_forget"
    EXPECT_FINAL = "expect_final"


@dataclass(frozen=True)
class Turn:
    """One conversational message."""

    role: Role
    content: str


@dataclass(frozen=True)
class TranscriptCandidate:
    """A transcript file found by the locator. Recomputed every pass."""

    path: Path
    mtime: float


@dataclass(frozen=True)
class SessionTurns:
    """Recent turns of the active session plus the file they came from."""

    turns: list[Turn] = field(default_factory=list)
    source_file: Path | None = None


class SweepCursor(BaseModel):
    """Persisted bookmark for one transcript file.

    ``hash`` is always the fingerprint of exactly the first ``offset`` turns.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    offset: int = Field(ge=0)
    hash: str = Field(min_length=1)
    mtime: float = 0.0
    updated_at: datetime = Field(alias="updatedAt")

    @field_validator("updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class SweepState(BaseModel):
    """The full persisted sweep document."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = HOOK_STATE_VERSION
    last_sweep_at: datetime | None = Field(default=None, alias="lastSweepAt")
    files: dict[str, SweepCursor] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """JSON-ready document with the persisted camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class JournalSnapshot:
    """Today's journal note as seen at dispatch time."""

    journal_path: Path
    journal_filename: str
    content: str = ""


@dataclass(frozen=True)
class DispatchRequest:
    """Everything the dispatcher needs for one vault update. Never persisted."""

    conversation: str
    source: ConversationSource
    timestamp: datetime
    vault_path: Path
    notes_directory: Path
    journal: JournalSnapshot
    session_id: str | None = None
    transcript_path: Path | None = None


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatcher invocation."""

    success: bool
    message: str = ""


@dataclass(frozen=True)
class ExtractResult:
    """Outcome of turning a list of turns into a dispatch."""

    success: bool
    dispatched: bool
    message: str | None = None


@dataclass(frozen=True)
class ResetResult:
    """Outcome of the reset path."""

    message: str | None = None
    state_changed: bool = False


@dataclass(frozen=True)
class SweepRunResult:
    """Outcome of one sweep pass."""

    ran: bool = False
    processed_files: int = 0
    dispatched_tasks: int = 0
    failed_files: int = 0
    state_changed: bool = False


class HookEvent(BaseModel):
    """Inbound event from the agent runtime.

    ``messages`` is the output channel: status lines appended here are shown
    to the user after the hook returns.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = ""
    action: str = ""
    session_key: str = Field(default="", alias="sessionKey")
    timestamp: datetime = Field(default_factory=utc_now)
    messages: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return utc_now()
        else:
            return utc_now()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @field_validator("type", "action", "session_key", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("context", mode="before")
    @classmethod
    def _context(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def cfg(self) -> dict[str, Any]:
        """Runtime config carried on the event (empty if absent)."""
        cfg = self.context.get("cfg")
        return cfg if isinstance(cfg, dict) else {}

    @property
    def session_id(self) -> str | None:
        """Session id from the event context, if any."""
        value = self.context.get("sessionId")
        if isinstance(value, str) and value:
            return value
        return None
