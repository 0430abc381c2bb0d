"""ccui engine — live update coordinator for the Claude Code UI backend."""
from .config import ChannelConfig, CoordinatorConfig
from .lifecycle import ChannelState
from .protection import SessionProtectionRegistry
from .session_ids import (
    RealSessionId,
    SessionId,
    TemporarySessionId,
    new_temporary_id,
    parse_session_id,
)
from .errors import (
    ChannelClosedError,
    ChannelError,
    ConfigError,
    CoordinatorError,
    InvalidTransitionError,
    MalformedMessageError,
    ProjectsFetchError,
)

__all__ = [
    # Composition root (lazy import to avoid circular deps)
    "Coordinator",
    # Channel (lazy import)
    "ChannelConnection",
    "ChannelSupervisor",
    "MessageRouter",
    # Config
    "ChannelConfig",
    "CoordinatorConfig",
    "ChannelState",
    # YAML config (lazy import)
    "load_yaml_config",
    "resolve_config",
    # Protection
    "SessionProtectionRegistry",
    # Reconciliation (lazy import)
    "ReconcileDecision",
    "UpdateReconciler",
    "changed_file_targets",
    # Session ids
    "RealSessionId",
    "SessionId",
    "TemporarySessionId",
    "new_temporary_id",
    "parse_session_id",
    # Errors
    "ChannelClosedError",
    "ChannelError",
    "ConfigError",
    "CoordinatorError",
    "InvalidTransitionError",
    "MalformedMessageError",
    "ProjectsFetchError",
]


def __getattr__(name: str):
    if name == "Coordinator":
        from .coordinator import Coordinator
        return Coordinator
    if name == "ChannelConnection":
        from .channel import ChannelConnection
        return ChannelConnection
    if name == "ChannelSupervisor":
        from .channel import ChannelSupervisor
        return ChannelSupervisor
    if name == "MessageRouter":
        from .message_router import MessageRouter
        return MessageRouter
    if name in ("ReconcileDecision", "UpdateReconciler", "changed_file_targets"):
        from . import reconciler
        return getattr(reconciler, name)
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "resolve_config":
        from .yaml_config import resolve_config
        return resolve_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
