"""zettelclaw hook engine - transcript sweep and checkpointing."""

from typing import TYPE_CHECKING

from zettelclaw.core.types import (
    ConversationSource,
    DispatchMode,
    HookEvent,
    SweepCursor,
    SweepState,
    Turn,
)

if TYPE_CHECKING:
    from zettelclaw.core.dispatch import VaultDispatcher
    from zettelclaw.core.handler import handle_event

__all__ = [
    # Entry point
    "handle_event",
    # Dispatch
    "VaultDispatcher",
    # Types
    "ConversationSource",
    "DispatchMode",
    "HookEvent",
    "SweepCursor",
    "SweepState",
    "Turn",
]


def __getattr__(name: str):
    if name == "handle_event":
        from zettelclaw.core.handler import handle_event

        return handle_event
    if name == "VaultDispatcher":
        from zettelclaw.core.dispatch import VaultDispatcher

        return VaultDispatcher
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
