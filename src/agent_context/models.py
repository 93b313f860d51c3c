"""Core data models for memories, platform messages and assembled context."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with fixed microsecond precision.

    The fixed width keeps lexical order identical to chronological order, which
    is what patch folding sorts on.
    """
    return _utcnow().isoformat(timespec="microseconds")


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Importance(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class MemoryEventKind(str, Enum):
    FACT = "fact"
    PATCH = "patch"


# ---------------------------------------------------------------------------
# Memory log events
# ---------------------------------------------------------------------------


class MemoryFact(BaseModel):
    """A memory record, appended once and never rewritten."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    created_at: str = Field(default_factory=utc_timestamp)
    kind: Literal["fact"] = "fact"
    enabled: bool = True
    visibility: Visibility = Visibility.PUBLIC
    importance: Importance = Importance.NORMAL
    content: str


class MemoryPatch(BaseModel):
    """A sparse correction of a prior fact, referenced by ``target_id``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    created_at: str = Field(default_factory=utc_timestamp)
    kind: Literal["patch"] = "patch"
    target_id: str
    enabled: bool | None = None
    visibility: Visibility | None = None
    importance: Importance | None = None


MemoryLogEvent = Annotated[Union[MemoryFact, MemoryPatch], Field(discriminator="kind")]


class ResolvedMemory(BaseModel):
    """Current view of a fact after all of its patches were applied."""

    model_config = ConfigDict(frozen=True)

    id: str
    enabled: bool
    visibility: Visibility
    importance: Importance
    content: str
    created_at: str
    last_modified_at: str


class MemoryStatCategory(BaseModel):
    """Counts for a single memory log."""

    total: int = 0
    enabled: int = 0
    disabled: int = 0
    high_importance: int = 0
    normal_importance: int = 0


class MemoryStats(BaseModel):
    """Memory statistics for a workspace."""

    public: MemoryStatCategory
    private: MemoryStatCategory | None = None
    summary: MemoryStatCategory


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


class WorkspaceInfo(BaseModel):
    """Per-user storage scope holding the public and private memory logs."""

    key: str
    platform: str
    user_id: str
    path: str
    is_dm: bool = False
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Platform data
# ---------------------------------------------------------------------------


class Attachment(BaseModel):
    """A file attached to a platform message."""

    filename: str
    mime_type: str
    url: str
    size: int | None = None
    id: str | None = None
    width: int | None = None
    height: int | None = None
    is_image: bool = False


class PlatformMessage(BaseModel):
    """A chat message as returned by a platform adapter."""

    message_id: str
    user_id: str
    username: str
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    is_bot: bool = False
    attachments: list[Attachment] | None = None


class PlatformEmoji(BaseModel):
    """A custom emoji the agent may embed in text or use as a reaction."""

    name: str
    animated: bool = False
    platform_id: str | None = None
    category: str | None = None
    use_in_text: str
    use_as_reaction: str
    aliases: list[str] | None = None


class NormalizedEvent(BaseModel):
    """The incoming message that triggered an interaction."""

    platform: str
    channel_id: str
    user_id: str
    message_id: str
    content: str
    username: str | None = None
    is_dm: bool = False
    guild_id: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    attachments: list[Attachment] | None = None


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class AssembledContext(BaseModel):
    """Unbudgeted snapshot of everything gathered for one interaction."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str
    important_memories: list[ResolvedMemory] = Field(default_factory=list)
    recent_messages: list[PlatformMessage] = Field(default_factory=list)
    related_messages: list[PlatformMessage] | None = None
    available_emojis: list[PlatformEmoji] | None = None
    trigger_message: PlatformMessage
    estimated_tokens: int = 0
    assembled_at: datetime = Field(default_factory=_utcnow)


class AssembledSpontaneousContext(BaseModel):
    """Snapshot for an unprompted post; there is no trigger message."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str
    important_memories: list[ResolvedMemory] = Field(default_factory=list)
    recent_messages: list[PlatformMessage] = Field(default_factory=list)
    available_emojis: list[PlatformEmoji] | None = None
    recent_messages_fetched: bool = False
    estimated_tokens: int = 0


class FormattedContext(BaseModel):
    """Final budget-packed payload handed to the agent."""

    model_config = ConfigDict(frozen=True)

    system_message: str
    user_message: str
    estimated_tokens: int
