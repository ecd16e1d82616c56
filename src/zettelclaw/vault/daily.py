"""Daily journal notes used as working context for vault updates."""

import logging
from datetime import date, datetime
from pathlib import Path

from zettelclaw.core.types import JournalSnapshot
from zettelclaw.vault.layout import get_journal_template_paths, resolve_journal_directory

logger = logging.getLogger(__name__)

DEFAULT_JOURNAL_TEMPLATE = """---
type: journal
tags: [journals]
created: {{DATE}}
updated: {{DATE}}
---
"""

_DATE_PLACEHOLDERS = (
    "{{DATE}}",
    "{{CREATED_DATE}}",
    "{{UPDATED_DATE}}",
    '<% tp.date.now("YYYY-MM-DD") %>',
)


def format_date(target: date | datetime) -> str:
    """ISO date stamp used for journal filenames."""
    if isinstance(target, datetime):
        target = target.date()
    return target.isoformat()


def render_journal_template(template: str, date_stamp: str) -> str:
    """Fill date placeholders and ensure a trailing newline."""
    rendered = template
    for placeholder in _DATE_PLACEHOLDERS:
        rendered = rendered.replace(placeholder, date_stamp)
    return rendered if rendered.endswith("\n") else f"{rendered}\n"


def load_journal_template(vault_path: Path, date_stamp: str) -> str:
    """The vault's journal template, or the built-in one."""
    for template_path in get_journal_template_paths(vault_path):
        try:
            template = template_path.read_text(encoding="utf-8")
        except OSError:
            continue
        if template.strip():
            return render_journal_template(template, date_stamp)
    return render_journal_template(DEFAULT_JOURNAL_TEMPLATE, date_stamp)


def ensure_journal_exists(vault_path: Path, journal_path: Path, date_stamp: str) -> str:
    """
    Read a journal note, creating it from the template if it is missing.

    The journal folder itself is never created. Creation is exclusive, so a
    note written concurrently by someone else is read rather than replaced.

    Returns:
        Current note content

    Raises:
        OSError: If the note cannot be read or created
    """
    try:
        return journal_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        pass

    if not journal_path.parent.is_dir():
        return ""

    template = load_journal_template(vault_path, date_stamp)
    try:
        with open(journal_path, "x", encoding="utf-8") as handle:
            handle.write(template)
        return template
    except FileExistsError:
        return journal_path.read_text(encoding="utf-8")


def read_journal_snapshot(vault_path: Path, timestamp: datetime) -> JournalSnapshot:
    """Journal note for ``timestamp``'s date, empty on any failure."""
    journal_dir = resolve_journal_directory(vault_path)
    date_stamp = format_date(timestamp)
    journal_filename = f"{date_stamp}.md"
    journal_path = journal_dir / journal_filename

    try:
        content = ensure_journal_exists(vault_path, journal_path, date_stamp)
    except OSError as exc:
        logger.warning("Could not read journal %s: %s", journal_path, exc)
        content = ""

    return JournalSnapshot(
        journal_path=journal_path,
        journal_filename=journal_filename,
        content=content,
    )
