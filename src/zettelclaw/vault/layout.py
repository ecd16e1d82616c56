"""Vault discovery and folder layout helpers.

The hook never scaffolds a vault. It only locates an existing Obsidian vault
and the folders inside it that notes and journal entries live in.
"""

import logging
from pathlib import Path
from typing import Any

from zettelclaw.core.config import HookConfig, as_record, expand_home

logger = logging.getLogger(__name__)

# Marker directory that identifies an Obsidian vault
VAULT_MARKER = ".obsidian"

NOTES_FOLDER_CANDIDATES = ("01 Notes", "Notes")

JOURNAL_FOLDER_CANDIDATES = (
    "03 Journal",
    "02 Journal",
    "03 Daily",
    "02 Daily",
    "Journal",
    "Daily",
)

JOURNAL_TEMPLATE_CANDIDATES = (
    Path("04 Templates") / "journal.md",
    Path("Templates") / "journal.md",
)

FALLBACK_VAULT_CANDIDATES = (
    "~/zettelclaw",
    "~/obsidian",
    "~/Documents/obsidian",
    "~/Documents/Obsidian",
)


def has_obsidian_vault(path: Path) -> bool:
    """True if ``path`` contains the vault marker directory."""
    return (path / VAULT_MARKER).exists()


def find_vault_path(candidate: str | Path) -> Path | None:
    """Locate a vault at, directly under, or one level below ``candidate``."""
    resolved = expand_home(str(candidate))

    if has_obsidian_vault(resolved):
        return resolved

    nested = resolved / "vault"
    if has_obsidian_vault(nested):
        return nested

    try:
        children = sorted(
            (child for child in resolved.iterdir() if child.is_dir()),
            key=lambda child: child.name,
        )
    except OSError:
        return None

    for child in children:
        if has_obsidian_vault(child):
            return child

    return None


def read_extra_paths(cfg: Any) -> list[Any]:
    """Memory search paths from the runtime config (direct, then agent defaults)."""
    cfg_record = as_record(cfg)
    direct = as_record(cfg_record.get("memorySearch")).get("extraPaths")
    defaults = as_record(as_record(cfg_record.get("agents")).get("defaults"))
    from_defaults = as_record(defaults.get("memorySearch")).get("extraPaths")

    paths: list[Any] = []
    for value in (direct, from_defaults):
        if isinstance(value, list):
            paths.extend(value)
    return paths


def resolve_vault_path(cfg: Any, hook_config: HookConfig) -> Path | None:
    """
    Resolve the vault this hook writes into.

    Order: the explicit ``vaultPath`` option (trusted even without a marker),
    memory search paths from the runtime config, then well-known locations.

    Args:
        cfg: Runtime config from the event
        hook_config: Parsed hook options

    Returns:
        Vault root, or None if nothing was found
    """
    if hook_config.vault_path:
        explicit = expand_home(hook_config.vault_path)
        return find_vault_path(explicit) or explicit

    for candidate in read_extra_paths(cfg):
        if not isinstance(candidate, str) or not candidate.strip():
            continue
        found = find_vault_path(candidate.strip())
        if found is not None:
            return found

    for candidate in FALLBACK_VAULT_CANDIDATES:
        found = find_vault_path(candidate)
        if found is not None:
            return found

    return None


def resolve_notes_directory(vault_path: Path) -> Path | None:
    """First existing notes folder, or None."""
    for folder in NOTES_FOLDER_CANDIDATES:
        candidate = vault_path / folder
        if candidate.exists():
            return candidate
    return None


def resolve_journal_directory(vault_path: Path) -> Path:
    """First existing journal folder, defaulting to the preferred name."""
    for folder in JOURNAL_FOLDER_CANDIDATES:
        candidate = vault_path / folder
        if candidate.exists():
            return candidate
    return vault_path / JOURNAL_FOLDER_CANDIDATES[0]


def get_journal_template_paths(vault_path: Path) -> list[Path]:
    """Template files consulted when creating a journal note."""
    return [vault_path / relative for relative in JOURNAL_TEMPLATE_CANDIDATES]
