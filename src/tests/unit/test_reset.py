"""Tests for zettelclaw.core.reset module."""

import pytest

from zettelclaw.core.checkpoint import create_empty_sweep_state, hash_turns
from zettelclaw.core.config import HookConfig
from zettelclaw.core.reset import (
    is_isolated_session,
    is_reset_event,
    process_reset_event_session,
    status_line,
)
from zettelclaw.core.transcript import read_session_turns
from zettelclaw.core.types import (
    ConversationSource,
    DispatchMode,
    DispatchResult,
    HookEvent,
)


@pytest.fixture
def reset(make_event, vault, mock_dispatcher, now):
    """Run the reset path for a session file with hook options applied."""

    async def _reset(state, session_file, **options):
        event = make_event(
            "command:new",
            context={"sessionFile": str(session_file), "sessionId": "sess-1"},
            **options,
        )
        hook_config = HookConfig.from_runtime_config(event.cfg)
        return await process_reset_event_session(
            event, hook_config, vault, vault / "01 Notes", state, mock_dispatcher, now
        )

    return _reset


class TestEventRecognition:
    """Tests for reset event and isolated session detection."""

    @pytest.mark.parametrize(
        "event_type,action,expected",
        [
            ("command:new", "", True),
            ("command:reset", "", True),
            ("COMMAND:NEW", "", True),
            ("command", "new", True),
            ("command", "reset", True),
            ("command", "stop", False),
            ("command:stop", "", False),
            ("message:received", "new", False),
            ("", "", False),
        ],
    )
    def test_is_reset_event(self, event_type, action, expected):
        """Only /new and /reset commands are reset events."""
        event = HookEvent(type=event_type, action=action)

        assert is_reset_event(event) is expected

    @pytest.mark.parametrize(
        "session_key,expected",
        [
            ("isolated", True),
            ("agent:main:isolated", True),
            ("agent:isolated:cron", True),
            ("agent:main:main", False),
            ("isolated-test", False),
            ("", False),
        ],
    )
    def test_is_isolated_session(self, session_key, expected):
        """Isolated session keys are recognized by segment."""
        assert is_isolated_session(session_key) is expected

    def test_status_line(self):
        """Status lines carry the lobster prefix."""
        assert status_line("done") == "🦞 done"


class TestProcessResetEventSession:
    """Tests for process_reset_event_session."""

    @pytest.mark.asyncio
    async def test_dispatches_recent_turns(
        self, reset, sessions_dir, write_transcript, mock_dispatcher
    ):
        """The last `messages` turns are dispatched with reset context."""
        path = write_transcript(sessions_dir / "sess-1.jsonl", 30, age_minutes=1)
        state = create_empty_sweep_state()

        result = await reset(state, path, messages=10)

        assert result.message == "🦞 queued"
        assert result.state_changed is True
        request, mode = mock_dispatcher.dispatch.call_args.args
        assert mode == DispatchMode.FIRE_AND_FORGET
        assert request.source == ConversationSource.RESET
        assert request.session_id == "sess-1"
        assert request.transcript_path == path.resolve()
        assert request.conversation.count("\n\n") + 1 == 10
        assert request.conversation.startswith("User: turn 20")

    @pytest.mark.asyncio
    async def test_checkpoints_whole_file(
        self, reset, sessions_dir, write_transcript, now
    ):
        """After a reset dispatch the cursor covers every turn of the file."""
        path = write_transcript(sessions_dir / "sess-1.jsonl", 30, age_minutes=1)
        state = create_empty_sweep_state()

        await reset(state, path, messages=10)

        cursor = state.files[str(path.resolve())]
        assert cursor.offset == 30
        assert cursor.hash == hash_turns(read_session_turns(path))
        assert cursor.mtime == path.stat().st_mtime
        assert cursor.updated_at == now

    @pytest.mark.asyncio
    async def test_expect_final(self, reset, sessions_dir, write_transcript, mock_dispatcher):
        """expectFinal waits for the agent run."""
        path = write_transcript(sessions_dir / "sess-1.jsonl", 4)
        mock_dispatcher.dispatch.return_value = DispatchResult(success=True)

        result = await reset(create_empty_sweep_state(), path, expectFinal=True)

        assert mock_dispatcher.dispatch.call_args.args[1] == DispatchMode.EXPECT_FINAL
        assert result.message == "🦞 Vault update completed"

    @pytest.mark.asyncio
    async def test_fire_and_forget_fallback_message(
        self, reset, sessions_dir, write_transcript, mock_dispatcher
    ):
        """An empty success message falls back to the dispatched text."""
        path = write_transcript(sessions_dir / "sess-1.jsonl", 4)
        mock_dispatcher.dispatch.return_value = DispatchResult(success=True)

        result = await reset(create_empty_sweep_state(), path)

        assert result.message == "🦞 Vault update task dispatched"

    @pytest.mark.asyncio
    async def test_no_turns(self, reset, sessions_dir, mock_dispatcher):
        """An empty session reports no insights and dispatches nothing."""
        path = sessions_dir / "sess-1.jsonl"
        path.write_text('{"type": "session"}\n')
        state = create_empty_sweep_state()

        result = await reset(state, path)

        assert result.message == "🦞 No extractable insights from this session"
        assert result.state_changed is False
        assert state.files == {}
        mock_dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispatch_failure(
        self, reset, sessions_dir, write_transcript, mock_dispatcher
    ):
        """A failed dispatch is reported and leaves the cursor untouched."""
        path = write_transcript(sessions_dir / "sess-1.jsonl", 4)
        mock_dispatcher.dispatch.return_value = DispatchResult(
            success=False, message="OpenClaw system event failed: offline"
        )
        state = create_empty_sweep_state()

        result = await reset(state, path)

        assert result.message == "🦞 OpenClaw system event failed: offline"
        assert result.state_changed is False
        assert state.files == {}

    @pytest.mark.asyncio
    async def test_uses_rotated_transcript(
        self, reset, sessions_dir, write_transcript, mock_dispatcher
    ):
        """A session rotated away on reset is read from its reset sibling."""
        path = sessions_dir / "sess-1.jsonl"
        rotated = write_transcript(sessions_dir / "sess-1.jsonl.reset.1", 6)
        state = create_empty_sweep_state()

        result = await reset(state, path)

        assert result.state_changed is True
        assert str(rotated.resolve()) in state.files
        assert mock_dispatcher.dispatch.call_args.args[0].transcript_path == rotated.resolve()
