"""Background backfill of session transcripts into the vault.

A sweep runs at most once per ``sweepEveryMinutes``. It examines up to
``sweepMaxFiles`` changed transcripts, oldest first, and dispatches any
turns not yet covered by the file's cursor. Unsent turns are never marked
as processed: an oversized backlog goes out in consecutive chunks and the
cursor only advances past chunks that were dispatched successfully.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from zettelclaw.core.checkpoint import should_run_sweep, update_sweep_cursor, verified_offset
from zettelclaw.core.config import HookConfig
from zettelclaw.core.dispatch import VaultDispatcher, dispatch_vault_update_from_turns
from zettelclaw.core.locator import collect_transcript_candidates, resolve_session_directories
from zettelclaw.core.transcript import read_session_turns
from zettelclaw.core.types import (
    ConversationSource,
    DispatchMode,
    HookEvent,
    SweepRunResult,
    SweepState,
    TranscriptCandidate,
    Turn,
    utc_now,
)

logger = logging.getLogger(__name__)

# Fewer pending turns than this is not a complete exchange
MIN_PENDING_TURNS = 2

# Stored in place of the file mtime while a file is only partially sent, so
# the unchanged-mtime skip cannot hide the remainder.
PARTIAL_MTIME = 0.0

# Dispatches one file may use per pass; the rest resumes next pass
MAX_CHUNKS_PER_FILE = 5


def chunk_pending_turns(start: int, total: int, size: int) -> list[tuple[int, int]]:
    """Split ``[start, total)`` into consecutive ranges of at most ``size``.

    A lone trailing turn borrows one from the chunk before it, so no chunk
    after the first is smaller than MIN_PENDING_TURNS.
    """
    chunks = [(lo, min(lo + size, total)) for lo in range(start, total, size)]
    if len(chunks) > 1 and chunks[-1][1] - chunks[-1][0] < MIN_PENDING_TURNS:
        lo, hi = chunks[-2][0], chunks[-1][1]
        split = hi - MIN_PENDING_TURNS
        chunks[-2:] = [(lo, split), (split, hi)]
    return chunks


@dataclass
class _FileOutcome:
    dispatched: int = 0
    failed: bool = False
    state_changed: bool = False


async def _sweep_file(
    candidate: TranscriptCandidate,
    turns: Sequence[Turn],
    start: int,
    *,
    state: SweepState,
    dispatcher: VaultDispatcher,
    chunk_size: int,
    vault_path: Path,
    notes_directory: Path,
    now: datetime,
) -> _FileOutcome:
    outcome = _FileOutcome()
    timestamp = datetime.fromtimestamp(candidate.mtime, tz=timezone.utc)

    chunks = chunk_pending_turns(start, len(turns), chunk_size)
    if len(chunks) > MAX_CHUNKS_PER_FILE:
        logger.debug(
            "Sweep deferring %d chunks of %s to the next pass",
            len(chunks) - MAX_CHUNKS_PER_FILE,
            candidate.path,
        )
    for lo, hi in chunks[:MAX_CHUNKS_PER_FILE]:
        extraction = await dispatch_vault_update_from_turns(
            dispatcher,
            turns[lo:hi],
            timestamp=timestamp,
            vault_path=vault_path,
            notes_directory=notes_directory,
            source=ConversationSource.SWEEP,
            mode=DispatchMode.FIRE_AND_FORGET,
            transcript_path=candidate.path,
        )
        if not extraction.success:
            logger.warning(
                "Sweep dispatch failed for %s at turn %d: %s",
                candidate.path,
                lo,
                extraction.message,
            )
            outcome.failed = True
            return outcome

        if extraction.dispatched:
            outcome.dispatched += 1
        mtime = candidate.mtime if hi == len(turns) else PARTIAL_MTIME
        if update_sweep_cursor(state, candidate.path, turns[:hi], mtime, now):
            outcome.state_changed = True

    return outcome


async def run_transcript_sweep(
    event: HookEvent,
    cfg: Any,
    hook_config: HookConfig,
    vault_path: Path,
    notes_directory: Path,
    state: SweepState,
    dispatcher: VaultDispatcher,
    now: datetime | None = None,
) -> SweepRunResult:
    """
    Run one gated, budgeted sweep pass and mutate ``state`` in memory.

    Args:
        event: Triggering hook event (used to discover session directories)
        cfg: Runtime config
        hook_config: Parsed hook options
        vault_path: Vault root
        notes_directory: Vault notes folder
        state: Loaded sweep state, updated in place
        dispatcher: Dispatcher for vault update tasks
        now: Current time (defaults to utc_now())

    Returns:
        SweepRunResult; ``ran`` is False when the sweep is disabled or the
        interval has not elapsed
    """
    now = now or utc_now()
    if not hook_config.sweep_enabled or not should_run_sweep(
        state, hook_config.sweep_every_minutes, now
    ):
        logger.debug("Sweep skipped: disabled or interval not elapsed")
        return SweepRunResult()

    state_changed = False
    processed_files = 0
    dispatched_tasks = 0
    failed_files = 0

    session_dirs = resolve_session_directories(event, cfg)
    candidates = collect_transcript_candidates(
        session_dirs, hook_config.sweep_stale_minutes, now
    )
    logger.debug(
        "Sweep found %d candidates in %d session dirs", len(candidates), len(session_dirs)
    )

    examined = 0
    for candidate in candidates:
        key = str(candidate.path)
        previous = state.files.get(key)
        if previous is not None and previous.mtime == candidate.mtime:
            continue

        if examined >= hook_config.sweep_max_files:
            break
        examined += 1

        turns = read_session_turns(candidate.path)
        start = verified_offset(previous, turns)
        if len(turns) - start < MIN_PENDING_TURNS:
            if update_sweep_cursor(state, key, turns, candidate.mtime, now):
                state_changed = True
            continue

        outcome = await _sweep_file(
            candidate,
            turns,
            start,
            state=state,
            dispatcher=dispatcher,
            chunk_size=hook_config.sweep_messages,
            vault_path=vault_path,
            notes_directory=notes_directory,
            now=now,
        )
        state_changed = state_changed or outcome.state_changed
        dispatched_tasks += outcome.dispatched
        if outcome.failed:
            failed_files += 1
        else:
            processed_files += 1

    if failed_files == 0 and state.last_sweep_at != now:
        state.last_sweep_at = now
        state_changed = True

    return SweepRunResult(
        ran=True,
        processed_files=processed_files,
        dispatched_tasks=dispatched_tasks,
        failed_files=failed_files,
        state_changed=state_changed,
    )
