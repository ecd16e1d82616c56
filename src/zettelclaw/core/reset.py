"""Immediate vault update when the user starts a fresh session."""

import logging
from datetime import datetime
from pathlib import Path

from zettelclaw.core.checkpoint import update_sweep_cursor
from zettelclaw.core.config import HookConfig
from zettelclaw.core.dispatch import (
    NO_INSIGHTS_MESSAGE,
    VaultDispatcher,
    dispatch_vault_update_from_turns,
)
from zettelclaw.core.transcript import read_recent_session_messages, read_session_turns
from zettelclaw.core.types import (
    ConversationSource,
    DispatchMode,
    HookEvent,
    ResetResult,
    SweepState,
    utc_now,
)

logger = logging.getLogger(__name__)

STATUS_PREFIX = "🦞"

_RESET_ACTIONS = ("new", "reset")


def is_reset_event(event: HookEvent) -> bool:
    """True for ``/new`` and ``/reset`` commands in either event encoding."""
    event_type = event.type.lower()
    action = event.action.lower()
    if event_type in {f"command:{name}" for name in _RESET_ACTIONS}:
        return True
    return event_type == "command" and action in _RESET_ACTIONS


def is_isolated_session(session_key: str) -> bool:
    """Sandboxed/ephemeral sessions are never written to the vault."""
    normalized = session_key.lower()
    return (
        normalized == "isolated"
        or normalized.endswith(":isolated")
        or ":isolated:" in normalized
    )


def status_line(message: str) -> str:
    """Format a user-visible status line."""
    return f"{STATUS_PREFIX} {message}"


async def process_reset_event_session(
    event: HookEvent,
    hook_config: HookConfig,
    vault_path: Path,
    notes_directory: Path,
    state: SweepState,
    dispatcher: VaultDispatcher,
    now: datetime | None = None,
) -> ResetResult:
    """
    Dispatch the recent window of the active session.

    On success the session file's cursor is moved to its full current
    length, so a later sweep does not send the same turns again.

    Returns:
        ResetResult with the status line to show and whether state changed
    """
    now = now or utc_now()
    session = read_recent_session_messages(event, hook_config.messages)
    if not session.turns:
        return ResetResult(message=status_line(NO_INSIGHTS_MESSAGE))

    mode = DispatchMode.EXPECT_FINAL if hook_config.expect_final else DispatchMode.FIRE_AND_FORGET
    extraction = await dispatch_vault_update_from_turns(
        dispatcher,
        session.turns,
        timestamp=event.timestamp,
        vault_path=vault_path,
        notes_directory=notes_directory,
        source=ConversationSource.RESET,
        mode=mode,
        session_id=event.session_id,
        transcript_path=session.source_file,
    )

    if not extraction.success:
        return ResetResult(
            message=status_line(extraction.message or "Could not dispatch vault update task")
        )

    state_changed = False
    if session.source_file is not None:
        try:
            mtime = session.source_file.stat().st_mtime
        except OSError as exc:
            logger.warning(
                "Could not stat %s after reset dispatch: %s", session.source_file, exc
            )
        else:
            all_turns = read_session_turns(session.source_file)
            state_changed = update_sweep_cursor(
                state, session.source_file, all_turns, mtime, now
            )

    fallback = (
        "Vault update completed"
        if mode == DispatchMode.EXPECT_FINAL
        else "Vault update task dispatched"
    )
    return ResetResult(
        message=status_line(extraction.message or fallback),
        state_changed=state_changed,
    )
