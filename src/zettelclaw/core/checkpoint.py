"""Durable sweep state: per-transcript cursors and the last sweep time.

The state document is read once and written at most once per hook
invocation. Corrupt or missing state degrades to an empty state, which
means "reprocess everything" rather than a crash.
"""

import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

from filelock import FileLock
from pydantic import ValidationError

from zettelclaw.core.config import LOCK_TIMEOUT_SECONDS, as_record
from zettelclaw.core.types import (
    HOOK_STATE_VERSION,
    SweepCursor,
    SweepState,
    Turn,
    utc_now,
)

# Maximum number of cursors kept on save (most recently updated win)
MAX_SWEEP_STATE_ENTRIES = 4_000

_FIELD_SEPARATOR = b"\x00"

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

logger = logging.getLogger(__name__)


def create_empty_sweep_state() -> SweepState:
    """A state with no cursors and no previous sweep."""
    return SweepState(version=HOOK_STATE_VERSION)


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_sweep_state(state_path: Path | str) -> SweepState:
    """Load persisted state; any failure yields an empty state.

    Individual malformed cursors are dropped rather than discarding the
    whole document.
    """
    path = Path(state_path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return create_empty_sweep_state()
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable sweep state %s: %s", path, exc)
        return create_empty_sweep_state()

    document = as_record(raw)
    files: dict[str, SweepCursor] = {}
    for file_path, raw_cursor in as_record(document.get("files")).items():
        cursor = as_record(raw_cursor)
        try:
            files[file_path] = SweepCursor.model_validate(
                {
                    "offset": cursor.get("offset", 0),
                    "hash": cursor.get("hash", ""),
                    "mtime": cursor.get("mtime", 0.0),
                    "updatedAt": cursor.get("updatedAt") or _EPOCH,
                }
            )
        except ValidationError:
            logger.debug("Dropping malformed cursor for %s", file_path)

    return SweepState(
        version=HOOK_STATE_VERSION,
        last_sweep_at=_parse_timestamp(document.get("lastSweepAt")),
        files=files,
    )


def prune_sweep_state(state: SweepState, max_entries: int = MAX_SWEEP_STATE_ENTRIES) -> None:
    """Keep only the ``max_entries`` most recently updated cursors."""
    if len(state.files) <= max_entries:
        return
    ordered = sorted(
        state.files.items(), key=lambda item: item[1].updated_at, reverse=True
    )
    state.files = dict(ordered[:max_entries])


def save_sweep_state(
    state_path: Path | str,
    state: SweepState,
    max_entries: int = MAX_SWEEP_STATE_ENTRIES,
) -> None:
    """Prune, then write the state atomically (temp file + rename)."""
    path = Path(state_path)
    prune_sweep_state(state, max_entries)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path_str = tempfile.mkstemp(
        prefix=f".{path.name}-", suffix=".tmp", dir=str(path.parent)
    )
    temp_path = Path(temp_path_str)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(state.to_document(), handle, indent=2)
            handle.write("\n")
        temp_path.replace(path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def hash_turns(turns: Sequence[Turn]) -> str:
    """Order-sensitive SHA-256 fingerprint over ``(role, content)`` pairs.

    Every field is followed by a NUL separator so that shifting characters
    between role and content, or between turns, changes the digest.
    """
    digest = hashlib.sha256()
    for turn in turns:
        digest.update(turn.role.encode("utf-8"))
        digest.update(_FIELD_SEPARATOR)
        digest.update(turn.content.encode("utf-8"))
        digest.update(_FIELD_SEPARATOR)
    return digest.hexdigest()


def verified_offset(previous: SweepCursor | None, turns: Sequence[Turn]) -> int:
    """How many leading turns are already accounted for.

    The stored offset only counts if the current file's first ``offset``
    turns still fingerprint to the stored hash; truncation, rotation or
    rewrites fall back to 0.
    """
    if previous is None or previous.offset <= 0 or previous.offset > len(turns):
        return 0
    if hash_turns(turns[: previous.offset]) != previous.hash:
        return 0
    return previous.offset


def update_sweep_cursor(
    state: SweepState,
    transcript_path: Path | str,
    turns: Sequence[Turn],
    mtime: float,
    now: datetime,
) -> bool:
    """Record that ``turns`` of a transcript have been handled.

    Returns True only when the stored cursor actually changed. A longer
    cursor already written at ``now`` (by the reset path in the same run)
    is left alone. Cursors stamped in the future are replaced.
    """
    key = str(transcript_path)
    cursor = SweepCursor(
        offset=len(turns),
        hash=hash_turns(turns),
        mtime=mtime,
        updated_at=now,
    )

    previous = state.files.get(key)
    if previous is not None:
        if previous.updated_at == now and previous.offset > cursor.offset:
            return False
        if (
            previous.offset == cursor.offset
            and previous.hash == cursor.hash
            and previous.mtime == cursor.mtime
            and previous.updated_at == cursor.updated_at
        ):
            return False

    state.files[key] = cursor
    return True


def should_run_sweep(
    state: SweepState, interval_minutes: int, now: datetime | None = None
) -> bool:
    """Interval gate: run if never swept or the interval has elapsed."""
    if state.last_sweep_at is None:
        return True
    now = now or utc_now()
    return now - state.last_sweep_at >= timedelta(minutes=interval_minutes)


@contextmanager
def state_lock(
    state_path: Path | str, timeout: float = LOCK_TIMEOUT_SECONDS
) -> Iterator[None]:
    """Advisory lock serializing the load-mutate-save cycle across processes.

    Raises ``filelock.Timeout`` if another invocation holds it too long.
    """
    path = Path(state_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(path.with_suffix(path.suffix + ".lock"), timeout=timeout)
    with lock:
        yield
