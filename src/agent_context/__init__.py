"""
agent-context

Context assembly for conversational agents: append-only per-user memory logs
with patch events, and token-budgeted rendering of memories, conversation
history and custom emojis into a system/user message pair.
"""

from .config import AppConfig, ContextConfig, MemoryStoreConfig, WorkspaceConfig, load_config
from .context import ContextAssembler, PromptCache, apply_clear_command
from .exceptions import (
    ConfigError,
    ContextSystemError,
    MemoryNotFoundError,
    PromptLoadError,
    StorageError,
    WorkspaceBoundaryError,
    WorkspaceFileNotFoundError,
)
from .memory import MemoryLogStore
from .models import (
    AssembledContext,
    AssembledSpontaneousContext,
    Attachment,
    FormattedContext,
    Importance,
    MemoryFact,
    MemoryPatch,
    NormalizedEvent,
    PlatformEmoji,
    PlatformMessage,
    ResolvedMemory,
    Visibility,
    WorkspaceInfo,
)
from .token_counter import TokenCounter
from .workspace import MemoryFileType, WorkspaceManager

__all__ = [
    # Config
    "AppConfig",
    "ContextConfig",
    "MemoryStoreConfig",
    "WorkspaceConfig",
    "load_config",
    # Models
    "AssembledContext",
    "AssembledSpontaneousContext",
    "Attachment",
    "FormattedContext",
    "Importance",
    "MemoryFact",
    "MemoryPatch",
    "NormalizedEvent",
    "PlatformEmoji",
    "PlatformMessage",
    "ResolvedMemory",
    "Visibility",
    "WorkspaceInfo",
    # Exceptions
    "ConfigError",
    "ContextSystemError",
    "MemoryNotFoundError",
    "PromptLoadError",
    "StorageError",
    "WorkspaceBoundaryError",
    "WorkspaceFileNotFoundError",
    # Components
    "ContextAssembler",
    "MemoryFileType",
    "MemoryLogStore",
    "PromptCache",
    "TokenCounter",
    "WorkspaceManager",
    "apply_clear_command",
]
