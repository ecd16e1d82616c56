"""Configuration management for the zettelclaw hook.

Process-level settings come from the environment (optionally a ``.env``
file). Per-hook options come from the runtime config carried on each event
and are validated into :class:`HookConfig`.
"""

import logging
import math
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("%s=%r is not an integer, using %s", key, value, default)
        return default


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


def expand_home(path: str) -> Path:
    """Expand a leading ``~`` and return an absolute path."""
    return Path(path).expanduser().resolve()


def resolve_state_dir() -> Path:
    """Runtime state directory (``OPENCLAW_STATE_DIR`` or ``~/.openclaw``)."""
    env_path = (get_env("OPENCLAW_STATE_DIR") or "").strip()
    if env_path:
        return expand_home(env_path)
    return Path.home() / ".openclaw"


def resolve_hook_state_path() -> Path:
    """Location of the persisted sweep state document."""
    return resolve_state_dir() / "hooks" / "zettelclaw" / "state.json"


# Dispatcher executable
OPENCLAW_BIN = get_env("OPENCLAW_BIN", "openclaw") or "openclaw"

# Optional instruction template override
PROMPT_FILE = get_env("ZETTELCLAW_PROMPT_FILE", "")

# Seconds to wait for the state lock held by a concurrent invocation
LOCK_TIMEOUT_SECONDS = get_env_int("ZETTELCLAW_LOCK_TIMEOUT", 10)

# Logging
LOG_LEVEL = get_env("LOG_LEVEL", "INFO") or "INFO"

# Hook option defaults
DEFAULT_SWEEP_INTERVAL_MINUTES = 1_440
DEFAULT_SWEEP_MESSAGES = 120
DEFAULT_SWEEP_MAX_FILES = 40
DEFAULT_SWEEP_STALE_MINUTES = 30
DEFAULT_RESET_MESSAGES = 20


class ConfigError(Exception):
    """Raised when a runtime config file cannot be read."""

    pass


def setup_logging() -> logging.Logger:
    """Configure and return logger."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    )
    return logging.getLogger("zettelclaw")


def _clamp_int(value: Any, default: int, minimum: int, maximum: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return default
        return min(maximum, max(minimum, math.floor(value)))
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return min(maximum, max(minimum, parsed))
    return default


def _parse_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == "true":
            return True
        if normalized == "false":
            return False
    return default


# (field name, default, minimum, maximum)
_INT_BOUNDS: dict[str, tuple[int, int, int]] = {
    "sweep_every_minutes": (DEFAULT_SWEEP_INTERVAL_MINUTES, 5, 1_440),
    "sweep_messages": (DEFAULT_SWEEP_MESSAGES, 10, 400),
    "sweep_max_files": (DEFAULT_SWEEP_MAX_FILES, 1, 500),
    "sweep_stale_minutes": (DEFAULT_SWEEP_STALE_MINUTES, 5, 10_080),
    "messages": (DEFAULT_RESET_MESSAGES, 1, 200),
}

_BOOL_DEFAULTS: dict[str, bool] = {
    "sweep_enabled": True,
    "expect_final": False,
}


class HookConfig(BaseModel):
    """Options from ``hooks.internal.entries.zettelclaw`` in the runtime config.

    Unknown keys are ignored and out-of-range or malformed values fall back
    to their defaults or bounds, so building one never fails.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    sweep_enabled: bool = Field(default=True, alias="sweepEnabled")
    sweep_every_minutes: int = Field(
        default=DEFAULT_SWEEP_INTERVAL_MINUTES, alias="sweepEveryMinutes"
    )
    sweep_messages: int = Field(default=DEFAULT_SWEEP_MESSAGES, alias="sweepMessages")
    sweep_max_files: int = Field(default=DEFAULT_SWEEP_MAX_FILES, alias="sweepMaxFiles")
    sweep_stale_minutes: int = Field(
        default=DEFAULT_SWEEP_STALE_MINUTES, alias="sweepStaleMinutes"
    )
    messages: int = DEFAULT_RESET_MESSAGES
    expect_final: bool = Field(default=False, alias="expectFinal")
    model: str | None = None
    vault_path: str | None = Field(default=None, alias="vaultPath")

    @field_validator(*_INT_BOUNDS, mode="before")
    @classmethod
    def _bounded_int(cls, value: Any, info) -> int:
        default, minimum, maximum = _INT_BOUNDS[info.field_name]
        return _clamp_int(value, default, minimum, maximum)

    @field_validator(*_BOOL_DEFAULTS, mode="before")
    @classmethod
    def _lenient_bool(cls, value: Any, info) -> bool:
        return _parse_bool(value, _BOOL_DEFAULTS[info.field_name])

    @field_validator("model", "vault_path", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None

    @classmethod
    def from_runtime_config(cls, cfg: Any) -> "HookConfig":
        """Extract and validate the zettelclaw entry of a runtime config."""
        entries = as_record(
            as_record(as_record(as_record(cfg).get("hooks")).get("internal")).get(
                "entries"
            )
        )
        return cls.model_validate(as_record(entries.get("zettelclaw")))


def load_runtime_config(config_file: Path | str) -> dict[str, Any]:
    """Load a runtime config file (YAML, or JSON as its subset).

    Returns:
        Config mapping; empty if the file is empty

    Raises:
        ConfigError: If the file is missing, unreadable, invalid or not a mapping
    """
    path = Path(config_file).expanduser()
    logger.debug(f"Loading runtime config from {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {path}: {e}")
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Runtime config must be a mapping: {path}")
    return raw


def as_record(value: Any) -> dict[str, Any]:
    """Return ``value`` if it is a mapping, else an empty dict."""
    if isinstance(value, dict):
        return value
    return {}
