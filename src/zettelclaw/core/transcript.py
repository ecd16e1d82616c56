"""Reading conversation turns out of session transcripts.

A transcript is newline-delimited JSON. Producers disagree on shape, so each
record is classified into one of a small set of recognized layouts:

* ``DIRECT``: role and content sit on the record itself, e.g.
  ``{"role": "user", "content": "hi"}``.
* ``ENVELOPED``: the pair is nested under an envelope key such as
  ``message`` or ``payload``, e.g.
  ``{"type": "message", "message": {"role": "assistant", "content": [...]}}``.
* ``UNRECOGNIZED``: anything else (tool events, metadata, headers). Skipped.

Reading is pure: a bad line or an unreadable file yields fewer turns, never
an exception.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

from zettelclaw.core.types import HookEvent, Role, SessionTurns, Turn

logger = logging.getLogger(__name__)

ROLE_KEYS = ("role", "speaker", "author")
CONTENT_KEYS = ("content", "text", "message", "output", "value")
ENVELOPE_KEYS = ("message", "payload", "data", "entry", "event")

# Deepest envelope nesting searched for a role/content pair
MAX_ENVELOPE_DEPTH = 3

_ROLE_SYNONYMS: dict[str, Role] = {
    "user": "user",
    "human": "user",
    "assistant": "assistant",
    "ai": "assistant",
    "model": "assistant",
}


class RecordShape(Enum):
    """Recognized transcript record layouts."""

    DIRECT = "direct"
    ENVELOPED = "enveloped"
    UNRECOGNIZED = "unrecognized"


class ClassifiedRecord(NamedTuple):
    """A record's shape and, when recognized, the turn it carries."""

    shape: RecordShape
    turn: Turn | None = None


def normalize_role(value: Any) -> Role | None:
    """Map a producer's role label onto ``user``/``assistant``."""
    if not isinstance(value, str):
        return None
    return _ROLE_SYNONYMS.get(value.strip().lower())


def content_to_text(value: Any) -> str:
    """Flatten strings, lists and ``text``/``content``/``value`` objects."""
    if isinstance(value, str):
        return value.strip()

    if isinstance(value, list):
        parts = [content_to_text(item) for item in value]
        return "\n".join(part for part in parts if part).strip()

    if not isinstance(value, dict):
        return ""

    direct_text = value.get("text")
    if isinstance(direct_text, str) and direct_text.strip():
        return direct_text.strip()

    for key in ("content", "value"):
        if key in value:
            nested = content_to_text(value[key])
            if nested:
                return nested

    return ""


def _first_present(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _direct_turn(record: dict[str, Any]) -> Turn | None:
    role = normalize_role(_first_present(record, ROLE_KEYS))
    if role is None:
        return None
    content = content_to_text(_first_present(record, CONTENT_KEYS))
    if not content:
        return None
    return Turn(role=role, content=content)


def classify_record(record: Any) -> ClassifiedRecord:
    """Classify one parsed transcript record.

    Envelopes are searched breadth-first in ``ENVELOPE_KEYS`` order, at most
    ``MAX_ENVELOPE_DEPTH`` levels below the record.
    """
    if not isinstance(record, dict):
        return ClassifiedRecord(RecordShape.UNRECOGNIZED)

    turn = _direct_turn(record)
    if turn is not None:
        return ClassifiedRecord(RecordShape.DIRECT, turn)

    level = [record]
    for _ in range(MAX_ENVELOPE_DEPTH):
        next_level: list[dict[str, Any]] = []
        for container in level:
            for key in ENVELOPE_KEYS:
                nested = container.get(key)
                if not isinstance(nested, dict):
                    continue
                turn = _direct_turn(nested)
                if turn is not None:
                    return ClassifiedRecord(RecordShape.ENVELOPED, turn)
                next_level.append(nested)
        if not next_level:
            break
        level = next_level

    return ClassifiedRecord(RecordShape.UNRECOGNIZED)


def extract_turn(record: Any) -> Turn | None:
    """Return the turn carried by ``record`` or ``None``."""
    return classify_record(record).turn


def parse_transcript_lines(lines: list[str]) -> list[Turn]:
    """Parse transcript lines into turns, skipping anything unusable."""
    turns: list[Turn] = []
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        turn = extract_turn(record)
        if turn is not None:
            turns.append(turn)
    return turns


def read_session_turns(path: Path | str) -> list[Turn]:
    """All turns of a transcript in file order. Empty if unreadable."""
    try:
        raw = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read transcript %s: %s", path, exc)
        return []
    return parse_transcript_lines(raw.split("\n"))


def resolve_session_file(event: HookEvent) -> Path | None:
    """The active session's transcript, known from the event context."""
    session_file = event.context.get("sessionFile")
    if isinstance(session_file, str) and session_file.strip():
        return Path(session_file.strip()).resolve()

    workspace_dir = event.context.get("workspaceDir")
    if isinstance(workspace_dir, str) and workspace_dir.strip():
        session_id = event.session_id or event.session_key
        if session_id:
            return (
                Path(workspace_dir.strip()).expanduser() / "sessions" / f"{session_id}.jsonl"
            ).resolve()

    return None


def find_reset_files(session_file: Path) -> list[Path]:
    """``<name>.reset.*`` siblings of a transcript, newest first."""
    prefix = f"{session_file.name}.reset."
    found: list[tuple[float, Path]] = []
    try:
        for entry in session_file.parent.iterdir():
            if not entry.name.startswith(prefix):
                continue
            try:
                if entry.is_file():
                    found.append((entry.stat().st_mtime, entry))
            except OSError:
                continue
    except OSError:
        return []

    found.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in found]


def read_recent_session_messages(event: HookEvent, max_messages: int) -> SessionTurns:
    """Last ``max_messages`` turns of the active session.

    A reset can rotate the live transcript away, so the primary file and its
    reset siblings are tried in turn. The first with a complete exchange (two
    or more turns) wins; otherwise the longest partial read is used.
    """
    session_file = resolve_session_file(event)
    if session_file is None:
        return SessionTurns()

    fallback = SessionTurns()
    for candidate in [session_file, *find_reset_files(session_file)]:
        turns = read_session_turns(candidate)
        if len(turns) >= 2:
            return SessionTurns(turns=turns[-max_messages:], source_file=candidate)
        if len(turns) > len(fallback.turns):
            fallback = SessionTurns(turns=turns, source_file=candidate)

    return SessionTurns(
        turns=fallback.turns[-max_messages:], source_file=fallback.source_file
    )
