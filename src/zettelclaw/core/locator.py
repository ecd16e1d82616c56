"""Finding transcript files that a sweep should look at."""

import logging
import re
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from zettelclaw.core.config import as_record, expand_home, resolve_state_dir
from zettelclaw.core.types import HookEvent, TranscriptCandidate, utc_now

logger = logging.getLogger(__name__)

# session.jsonl, or a rotated session.jsonl.reset.<stamp>
_TRANSCRIPT_NAME = re.compile(r"\.jsonl(?:\.reset\..+)?$")

RESET_MARKER = ".reset."


def is_transcript_filename(name: str) -> bool:
    """True for primary transcripts and their reset variants."""
    return _TRANSCRIPT_NAME.search(name) is not None


def is_reset_variant(name: str) -> bool:
    """Reset variants are closed files and never considered in-flight."""
    return RESET_MARKER in name


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_workspace_dir(cfg: Any, event_workspace_dir: Any = None) -> Path:
    """Workspace from the event, then the runtime config, then the state dir."""
    explicit = _text(event_workspace_dir)
    if explicit:
        return expand_home(explicit)

    cfg_record = as_record(cfg)
    direct = _text(cfg_record.get("workspace"))
    if direct:
        return expand_home(direct)

    defaults = as_record(as_record(cfg_record.get("agents")).get("defaults"))
    from_defaults = _text(defaults.get("workspace"))
    if from_defaults:
        return expand_home(from_defaults)

    return resolve_state_dir() / "workspace"


def _entry_session_dir(entry: Any) -> Path | None:
    session_file = _text(as_record(entry).get("sessionFile"))
    if session_file is None:
        return None
    return Path(session_file).resolve().parent


def resolve_session_directories(event: HookEvent, cfg: Any) -> list[Path]:
    """Existing directories that may hold transcripts, sorted by path."""
    context = event.context
    candidates: list[Path] = []

    context_session_file = _text(context.get("sessionFile"))
    if context_session_file:
        candidates.append(Path(context_session_file).resolve().parent)

    for key in ("sessionEntry", "previousSessionEntry"):
        entry_dir = _entry_session_dir(context.get(key))
        if entry_dir is not None:
            candidates.append(entry_dir)

    workspace_dir = resolve_workspace_dir(cfg, context.get("workspaceDir"))
    candidates.append(workspace_dir / "sessions")
    candidates.append(resolve_state_dir() / "workspace" / "sessions")

    existing = {path for path in candidates if path.is_dir()}
    return sorted(existing, key=str)


def collect_transcript_candidates(
    session_dirs: Iterable[Path],
    stale_minutes: int,
    now: datetime | None = None,
) -> list[TranscriptCandidate]:
    """Transcripts worth sweeping, oldest-modified first.

    Primary transcripts modified within ``stale_minutes`` are still being
    written and are left for a later pass. A file reachable through several
    session directories is reported once, at its resolved path.
    """
    now = now or utc_now()
    stale_cutoff = (now - timedelta(minutes=stale_minutes)).timestamp()
    candidates: dict[Path, TranscriptCandidate] = {}

    for session_dir in session_dirs:
        try:
            entries = list(Path(session_dir).iterdir())
        except OSError as exc:
            logger.debug("Skipping unlistable session dir %s: %s", session_dir, exc)
            continue

        for entry in entries:
            if not is_transcript_filename(entry.name):
                continue
            try:
                if not entry.is_file():
                    continue
                transcript_path = entry.resolve()
                mtime = transcript_path.stat().st_mtime
            except OSError:
                continue

            if not is_reset_variant(entry.name) and mtime > stale_cutoff:
                continue

            existing = candidates.get(transcript_path)
            if existing is None or mtime > existing.mtime:
                candidates[transcript_path] = TranscriptCandidate(
                    path=transcript_path, mtime=mtime
                )

    return sorted(candidates.values(), key=lambda candidate: candidate.mtime)
