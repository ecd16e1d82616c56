"""Hook entry point: one call per inbound agent runtime event.

``handle_event`` never raises. Problems become logged warnings and status
lines appended to ``event.messages``.
"""

import logging
from datetime import datetime
from pathlib import Path

from filelock import Timeout

from zettelclaw.core.checkpoint import load_sweep_state, save_sweep_state, state_lock
from zettelclaw.core.config import HookConfig, resolve_hook_state_path
from zettelclaw.core.dispatch import VaultDispatcher, get_dispatcher
from zettelclaw.core.reset import (
    is_isolated_session,
    is_reset_event,
    process_reset_event_session,
    status_line,
)
from zettelclaw.core.sweep import run_transcript_sweep
from zettelclaw.core.types import HookEvent, SweepRunResult, utc_now
from zettelclaw.vault.layout import resolve_notes_directory, resolve_vault_path

logger = logging.getLogger(__name__)


def summarize_sweep(result: SweepRunResult) -> list[str]:
    """Status lines describing a sweep pass."""
    lines: list[str] = []
    if result.ran and result.processed_files > 0:
        suffix = (
            f", dispatched {result.dispatched_tasks} vault update tasks"
            if result.dispatched_tasks > 0
            else ""
        )
        lines.append(
            status_line(f"Sweep backfilled {result.processed_files} session files{suffix}")
        )
    if result.failed_files > 0:
        lines.append(
            status_line(f"Sweep skipped {result.failed_files} files due to dispatch errors")
        )
    return lines


async def _process(
    event: HookEvent,
    hook_config: HookConfig,
    vault_path: Path,
    notes_directory: Path,
    state_path: Path,
    dispatcher: VaultDispatcher,
    now: datetime,
) -> None:
    state = load_sweep_state(state_path)
    state_changed = False

    if is_reset_event(event) and not is_isolated_session(event.session_key):
        reset_result = await process_reset_event_session(
            event, hook_config, vault_path, notes_directory, state, dispatcher, now
        )
        if reset_result.message:
            event.messages.append(reset_result.message)
        state_changed = state_changed or reset_result.state_changed

    sweep_result = await run_transcript_sweep(
        event,
        event.cfg,
        hook_config,
        vault_path,
        notes_directory,
        state,
        dispatcher,
        now,
    )
    state_changed = state_changed or sweep_result.state_changed
    event.messages.extend(summarize_sweep(sweep_result))

    if state_changed:
        try:
            save_sweep_state(state_path, state)
        except OSError as exc:
            logger.warning("Could not persist sweep state: %s", exc)


async def handle_event(
    event: HookEvent,
    dispatcher: VaultDispatcher | None = None,
    state_path: Path | None = None,
    now: datetime | None = None,
) -> None:
    """
    Run the reset path (for reset events) and the background sweep.

    Args:
        event: Inbound event; status lines are appended to ``event.messages``
        dispatcher: Dispatcher override (defaults to one built from hook options)
        state_path: Sweep state location (defaults to the runtime state dir)
        now: Current time (defaults to utc_now())
    """
    try:
        cfg = event.cfg
        hook_config = HookConfig.from_runtime_config(cfg)

        vault_path = resolve_vault_path(cfg, hook_config)
        if vault_path is None:
            message = "No vault path found; skipping vault update dispatch."
            logger.warning(message)
            event.messages.append(status_line(message))
            return

        notes_directory = resolve_notes_directory(vault_path)
        if notes_directory is None:
            message = f"No Notes folder found in vault: {vault_path}"
            logger.warning(message)
            event.messages.append(status_line(message))
            return

        state_path = state_path or resolve_hook_state_path()
        dispatcher = dispatcher or get_dispatcher(hook_config)
        try:
            with state_lock(state_path):
                await _process(
                    event,
                    hook_config,
                    vault_path,
                    notes_directory,
                    state_path,
                    dispatcher,
                    now or utc_now(),
                )
        except Timeout:
            message = "Another zettelclaw hook run is in progress; skipped this event."
            logger.warning(message)
            event.messages.append(status_line(message))
    except Exception as exc:
        logger.warning("Unexpected error: %s", exc, exc_info=True)
        event.messages.append(status_line(f"Hook failed: {exc}"))
