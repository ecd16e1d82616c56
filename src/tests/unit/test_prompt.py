"""Tests for zettelclaw.core.prompt module."""

import pytest

import zettelclaw.core.prompt as prompt
from zettelclaw.core.prompt import DEFAULT_HOOK_PROMPT, load_hook_prompt


@pytest.fixture(autouse=True)
def clear_prompt_cache():
    """Prompt files are cached per path; start each test clean."""
    prompt._read_prompt_file.cache_clear()
    yield
    prompt._read_prompt_file.cache_clear()


class TestLoadHookPrompt:
    """Tests for load_hook_prompt."""

    def test_default_prompt(self, monkeypatch):
        """Without a prompt file the built-in template is used."""
        monkeypatch.setattr(prompt, "PROMPT_FILE", "")

        assert load_hook_prompt() == DEFAULT_HOOK_PROMPT

    def test_prompt_file(self, tmp_path):
        """A prompt file overrides the default."""
        path = tmp_path / "prompt.md"
        path.write_text("  Custom instructions  \n")

        assert load_hook_prompt(str(path)) == "Custom instructions"

    def test_env_configured_prompt_file(self, tmp_path, monkeypatch):
        """ZETTELCLAW_PROMPT_FILE is honored."""
        path = tmp_path / "prompt.md"
        path.write_text("From env")
        monkeypatch.setattr(prompt, "PROMPT_FILE", str(path))

        assert load_hook_prompt() == "From env"

    def test_missing_file_falls_back(self, tmp_path, caplog):
        """An unreadable prompt file falls back with a warning."""
        assert load_hook_prompt(str(tmp_path / "missing.md")) == DEFAULT_HOOK_PROMPT
        assert "Could not load hook prompt" in caplog.text

    def test_empty_file_falls_back(self, tmp_path):
        """An empty prompt file falls back to the default."""
        path = tmp_path / "empty.md"
        path.write_text("   \n")

        assert load_hook_prompt(str(path)) == DEFAULT_HOOK_PROMPT
