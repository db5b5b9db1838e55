"""rolling-context: bounded conversation context with rolling summary compaction."""

from .config import load_config
from .manager import ConversationManager
from .types import (
    AssembledContext,
    CompactionReport,
    CompletionError,
    ConfigError,
    ConversationConfig,
    InvariantViolation,
    Message,
    Role,
    RollingContextConfig,
    RollingContextError,
    StorageError,
    ThreadNotFoundError,
    ThreadState,
    ThreadView,
)

__version__ = "0.1.0"

__all__ = [
    "ConversationManager",
    "load_config",
    "AssembledContext",
    "CompactionReport",
    "CompletionError",
    "ConfigError",
    "ConversationConfig",
    "InvariantViolation",
    "Message",
    "Role",
    "RollingContextConfig",
    "RollingContextError",
    "StorageError",
    "ThreadNotFoundError",
    "ThreadState",
    "ThreadView",
]
