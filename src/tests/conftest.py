"""Shared test fixtures and configuration."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from zettelclaw.core.dispatch import VaultDispatcher
from zettelclaw.core.types import DispatchResult, HookEvent

# Fixed clock for sweep/checkpoint tests
NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def state_dir(tmp_path, monkeypatch):
    """Point the runtime state dir at a temp directory for every test."""
    path = tmp_path / "openclaw"
    monkeypatch.setenv("OPENCLAW_STATE_DIR", str(path))
    return path


@pytest.fixture
def now():
    """The fixed current time used by sweep tests."""
    return NOW


@pytest.fixture
def state_file(tmp_path):
    """Location for a sweep state document."""
    return tmp_path / "state" / "state.json"


@pytest.fixture
def vault(tmp_path):
    """An Obsidian vault with notes and journal folders."""
    root = tmp_path / "vault"
    (root / ".obsidian").mkdir(parents=True)
    (root / "01 Notes").mkdir()
    (root / "03 Journal").mkdir()
    return root


@pytest.fixture
def workspace(tmp_path):
    """Agent workspace with an empty sessions directory."""
    root = tmp_path / "workspace"
    (root / "sessions").mkdir(parents=True)
    return root


@pytest.fixture
def sessions_dir(workspace):
    """The workspace's sessions directory."""
    return workspace / "sessions"


def make_records(count: int, prefix: str = "turn") -> list[dict]:
    """Alternating user/assistant records."""
    return [
        {
            "type": "message",
            "message": {
                "role": "user" if index % 2 == 0 else "assistant",
                "content": f"{prefix} {index}",
            },
        }
        for index in range(count)
    ]


@pytest.fixture
def records():
    """Factory for alternating user/assistant records."""
    return make_records


@pytest.fixture
def write_transcript():
    """Factory writing JSONL transcripts with a controlled mtime."""

    def _write_transcript(
        path: Path,
        records: list[dict] | int,
        *,
        age_minutes: float | None = 120,
        append: bool = False,
        prefix: str = "turn",
    ) -> Path:
        if isinstance(records, int):
            records = make_records(records, prefix)
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = "".join(json.dumps(record) + "\n" for record in records)
        with open(path, "a" if append else "w", encoding="utf-8") as handle:
            handle.write(lines)
        if age_minutes is not None:
            stamp = (NOW - timedelta(minutes=age_minutes)).timestamp()
            os.utime(path, (stamp, stamp))
        return path

    return _write_transcript


@pytest.fixture
def runtime_cfg(vault, workspace):
    """Runtime config pointing the hook at the temp vault and workspace."""

    def _runtime_cfg(**options) -> dict:
        entry = {"vaultPath": str(vault), **options}
        return {
            "workspace": str(workspace),
            "hooks": {"internal": {"entries": {"zettelclaw": entry}}},
        }

    return _runtime_cfg


@pytest.fixture
def make_event(runtime_cfg):
    """Factory for hook events."""

    def _make_event(
        event_type: str = "command:new",
        *,
        action: str = "",
        session_key: str = "agent:main:main",
        context: dict | None = None,
        **options,
    ) -> HookEvent:
        event_context = {"cfg": runtime_cfg(**options)}
        event_context.update(context or {})
        return HookEvent(
            type=event_type,
            action=action,
            session_key=session_key,
            timestamp=NOW,
            context=event_context,
        )

    return _make_event


@pytest.fixture
def mock_dispatcher():
    """A dispatcher whose dispatch() always succeeds."""
    dispatcher = MagicMock(spec=VaultDispatcher)
    dispatcher.dispatch = AsyncMock(
        return_value=DispatchResult(success=True, message="queued")
    )
    return dispatcher
