"""Handing conversation excerpts to the external agent dispatcher.

The dispatcher is the ``openclaw`` CLI: ``openclaw system event --text ...``
queues an agent task that reads the transcript and updates the vault. This
module builds the bounded instruction text, runs the command with a timeout
and classifies the outcome. It never raises for dispatcher problems.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from zettelclaw.core.config import OPENCLAW_BIN, HookConfig
from zettelclaw.core.prompt import load_hook_prompt
from zettelclaw.core.types import (
    ConversationSource,
    DispatchMode,
    DispatchRequest,
    DispatchResult,
    ExtractResult,
    Turn,
)
from zettelclaw.vault.daily import read_journal_snapshot

logger = logging.getLogger(__name__)

MAX_TRANSCRIPT_CHARS = 24_000
MAX_JOURNAL_CHARS = 8_000

# Process timeouts (seconds)
EVENT_TIMEOUT_SECONDS = 60.0
FINAL_TIMEOUT_SECONDS = 180.0

# Timeout the dispatcher applies to the agent run itself (milliseconds)
AGENT_TIMEOUT_MS = 120_000

NO_INSIGHTS_MESSAGE = "No extractable insights from this session"


@dataclass(frozen=True)
class CommandResult:
    """Raw outcome of a dispatcher process."""

    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: str | None = None


def build_conversation_transcript(turns: Sequence[Turn]) -> str:
    """Render turns as ``User:``/``Assistant:`` paragraphs."""
    return "\n\n".join(
        f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.content}"
        for turn in turns
    ).strip()


def truncate_for_prompt(value: str, max_chars: int, label: str) -> str:
    """Cut ``value`` to ``max_chars`` and say how much was omitted."""
    if len(value) <= max_chars:
        return value
    omitted = len(value) - max_chars
    return f"{value[:max_chars]}\n\n[{label} truncated: omitted {omitted} chars]"


def build_event_text(prompt: str, request: DispatchRequest, model: str | None) -> str:
    """Instruction template plus the auto-injected hook context."""
    transcript = truncate_for_prompt(
        request.conversation.strip(), MAX_TRANSCRIPT_CHARS, "transcript"
    )
    journal_content = (
        truncate_for_prompt(request.journal.content, MAX_JOURNAL_CHARS, "journal")
        if request.journal.content.strip()
        else "(journal note does not exist yet)"
    )

    lines = [
        prompt.strip(),
        "",
        "## Hook Context (Auto-Injected)",
        "- Trigger: zettelclaw hook",
        f"- Source: {request.source.value}",
        f"- Session timestamp: {request.timestamp.isoformat()}",
        f"- Vault path: {request.vault_path}",
        f"- Notes directory: {request.notes_directory}",
    ]
    if model:
        lines.append(f"- Preferred model for subagents: {model}")
    if request.session_id:
        lines.append(f"- Session id: {request.session_id}")
    if request.transcript_path:
        lines.append(f"- Transcript file: {request.transcript_path}")
    lines += [
        "",
        "### Conversation Transcript",
        "```text",
        transcript or "(empty transcript)",
        "```",
        "",
        "### Current Journal Entry",
        f"Filename: {request.journal.journal_filename}",
        f"Path: {request.journal.journal_path}",
        "",
        "```markdown",
        journal_content,
        "```",
    ]
    return "\n".join(lines)


def _fallback_message(mode: DispatchMode) -> str:
    if mode == DispatchMode.EXPECT_FINAL:
        return "Vault update completed."
    return "Vault update task dispatched."


def parse_event_result_message(stdout: str, mode: DispatchMode) -> str:
    """Best-effort human-readable status from dispatcher output."""
    trimmed = stdout.strip()
    if not trimmed:
        return _fallback_message(mode)

    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, dict):
        for key in ("status", "message"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        event_id = parsed.get("id")
        if isinstance(event_id, str) and event_id.strip():
            return f"{_fallback_message(mode)[:-1]} (event {event_id.strip()})."

    for line in trimmed.splitlines():
        if line.strip():
            return line.strip()

    return _fallback_message(mode)


class VaultDispatcher:
    """Runs the agent dispatcher command for vault update requests."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        model: str | None = None,
        prompt: str | None = None,
        event_timeout: float = EVENT_TIMEOUT_SECONDS,
        final_timeout: float = FINAL_TIMEOUT_SECONDS,
    ):
        """
        Initialize dispatcher.

        Args:
            command: Executable plus leading args (defaults to OPENCLAW_BIN)
            model: Preferred model passed along in the hook context
            prompt: Instruction template (defaults to load_hook_prompt())
            event_timeout: Process timeout for fire-and-forget dispatches
            final_timeout: Process timeout for wait-for-completion dispatches
        """
        self.command = list(command) if command else [OPENCLAW_BIN]
        self.model = model.strip() if model and model.strip() else None
        self._prompt = prompt
        self.event_timeout = event_timeout
        self.final_timeout = final_timeout

    @property
    def prompt(self) -> str:
        """Instruction template, loaded on first use."""
        if self._prompt is None:
            self._prompt = load_hook_prompt()
        return self._prompt

    def timeout_for(self, mode: DispatchMode) -> float:
        """Process timeout for a dispatch mode."""
        if mode == DispatchMode.EXPECT_FINAL:
            return self.final_timeout
        return self.event_timeout

    def build_args(self, event_text: str, mode: DispatchMode) -> list[str]:
        """Full dispatcher command line."""
        args = [
            *self.command,
            "system",
            "event",
            "--text",
            event_text,
            "--mode",
            "now",
            "--json",
            "--timeout",
            str(AGENT_TIMEOUT_MS),
        ]
        if mode == DispatchMode.EXPECT_FINAL:
            args.append("--expect-final")
        return args

    async def _run_command(self, args: list[str], timeout: float) -> CommandResult:
        """Run a command, killing it if it outlives ``timeout``."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(returncode=None, error=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            return CommandResult(returncode=proc.returncode, timed_out=True)

        return CommandResult(
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def dispatch(
        self,
        request: DispatchRequest,
        mode: DispatchMode = DispatchMode.FIRE_AND_FORGET,
    ) -> DispatchResult:
        """
        Send one vault update request to the dispatcher.

        Args:
            request: Conversation excerpt plus vault context
            mode: Fire-and-forget or wait for the agent to finish

        Returns:
            DispatchResult; unreachable dispatcher, timeout and non-zero exit
            are all ``success=False`` with a descriptive message
        """
        event_text = build_event_text(self.prompt, request, self.model)
        timeout = self.timeout_for(mode)
        result = await self._run_command(self.build_args(event_text, mode), timeout)

        if result.error is not None:
            message = f"OpenClaw system event failed: {result.error}"
            logger.warning(message)
            return DispatchResult(success=False, message=message)

        if result.timed_out:
            message = f"OpenClaw system event timed out after {timeout:g}s"
            logger.warning(message)
            return DispatchResult(success=False, message=message)

        if result.returncode != 0:
            detail = result.stderr.strip() or f"openclaw exited with code {result.returncode}"
            message = f"OpenClaw system event failed: {detail}"
            logger.warning(message)
            return DispatchResult(success=False, message=message)

        return DispatchResult(
            success=True, message=parse_event_result_message(result.stdout, mode)
        )


async def dispatch_vault_update_from_turns(
    dispatcher: VaultDispatcher,
    turns: Sequence[Turn],
    *,
    timestamp: datetime,
    vault_path: Path,
    notes_directory: Path,
    source: ConversationSource,
    mode: DispatchMode = DispatchMode.FIRE_AND_FORGET,
    session_id: str | None = None,
    transcript_path: Path | None = None,
) -> ExtractResult:
    """Build a request from ``turns`` and dispatch it.

    Empty input is a successful no-op with ``dispatched=False``.
    """
    transcript = build_conversation_transcript(turns)
    if not transcript:
        return ExtractResult(success=True, dispatched=False, message=NO_INSIGHTS_MESSAGE)

    request = DispatchRequest(
        conversation=transcript,
        source=source,
        timestamp=timestamp,
        vault_path=vault_path,
        notes_directory=notes_directory,
        journal=read_journal_snapshot(vault_path, timestamp),
        session_id=session_id,
        transcript_path=transcript_path,
    )
    outcome = await dispatcher.dispatch(request, mode)

    if not outcome.success:
        return ExtractResult(
            success=False,
            dispatched=False,
            message=outcome.message or "Could not dispatch vault update task",
        )
    return ExtractResult(success=True, dispatched=True, message=outcome.message or None)


def get_dispatcher(hook_config: HookConfig) -> VaultDispatcher:
    """Dispatcher configured from hook options."""
    return VaultDispatcher(model=hook_config.model)
