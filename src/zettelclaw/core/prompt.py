"""Instruction template loading for vault update dispatches."""

import logging
from functools import lru_cache
from pathlib import Path

from zettelclaw.core.config import PROMPT_FILE

logger = logging.getLogger(__name__)

DEFAULT_HOOK_PROMPT = """You are the zettelclaw vault agent. A conversation just ended or was
backfilled by the transcript sweep. Update the Obsidian vault described in the
hook context below.

- Append a concise entry to the current journal note (Done, Decisions, Open,
  Notes sections; omit empty sections; bullet points; use [[wikilinks]]).
- Create atomic notes in the notes directory only for reusable ideas that
  stand on their own. Most conversations produce none.
- Never overwrite an existing note. Never modify files outside the vault.
- The transcript may overlap with one you already processed; skip anything
  the journal already records."""


@lru_cache(maxsize=4)
def _read_prompt_file(path: str) -> str | None:
    try:
        content = Path(path).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning("Could not load hook prompt %s: %s", path, exc)
        return None
    if not content:
        logger.warning("Hook prompt file is empty: %s", path)
        return None
    return content


def load_hook_prompt(prompt_file: str | None = None) -> str:
    """
    Load the dispatch instruction template.

    Args:
        prompt_file: Path to a template file (defaults to ZETTELCLAW_PROMPT_FILE)

    Returns:
        Template text, or the built-in default if no usable file is configured
    """
    file_path = prompt_file or PROMPT_FILE
    if file_path:
        content = _read_prompt_file(file_path)
        if content:
            return content
    return DEFAULT_HOOK_PROMPT
