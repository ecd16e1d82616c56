"""Obsidian vault lookup and journal notes.

The vault is where vault update tasks write: atomic notes in the notes
folder and a running daily journal. The hook only reads from it, except
for creating today's journal note from the vault's template.
"""

from zettelclaw.vault.daily import read_journal_snapshot
from zettelclaw.vault.layout import (
    find_vault_path,
    resolve_journal_directory,
    resolve_notes_directory,
    resolve_vault_path,
)

__all__ = [
    "find_vault_path",
    "read_journal_snapshot",
    "resolve_journal_directory",
    "resolve_notes_directory",
    "resolve_vault_path",
]
