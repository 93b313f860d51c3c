"""
Shared test fixtures and fake platform adapters
"""

from datetime import datetime, timedelta, timezone

import pytest

from agent_context.config import ContextConfig, MemoryStoreConfig, WorkspaceConfig
from agent_context.context import ContextAssembler
from agent_context.memory import MemoryLogStore
from agent_context.models import NormalizedEvent, PlatformEmoji, PlatformMessage
from agent_context.workspace import WorkspaceManager

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_message(
    index: int,
    content: str | None = None,
    is_bot: bool = False,
    username: str | None = None,
) -> PlatformMessage:
    """Synthetic message; ``index`` orders messages chronologically"""
    return PlatformMessage(
        message_id=f"msg-{index}",
        user_id=f"user-{index % 3}",
        username=username or f"user{index % 3}",
        content=content if content is not None else f"message number {index}",
        timestamp=BASE_TIME + timedelta(minutes=index),
        is_bot=is_bot,
    )


def make_event(
    content: str = "hello there",
    is_dm: bool = False,
    guild_id: str = "guild-1",
    **kwargs,
) -> NormalizedEvent:
    return NormalizedEvent(
        platform=kwargs.pop("platform", "discord"),
        channel_id=kwargs.pop("channel_id", "channel-1"),
        user_id=kwargs.pop("user_id", "user-42"),
        message_id=kwargs.pop("message_id", "trigger-1"),
        content=content,
        is_dm=is_dm,
        guild_id=guild_id,
        **kwargs,
    )


def make_emoji(name: str, category: str | None = None) -> PlatformEmoji:
    return PlatformEmoji(
        name=name,
        category=category,
        use_in_text=f":{name}:",
        use_as_reaction=f":{name}:",
    )


class RecentOnlyFetcher:
    """Platform adapter without related search or emoji support"""

    def __init__(self, messages: list[PlatformMessage] | None = None):
        self.messages = messages or []
        self.calls: list[tuple[str, int]] = []

    async def fetch_recent_messages(self, channel_id: str, limit: int) -> list[PlatformMessage]:
        self.calls.append((channel_id, limit))
        return self.messages[-limit:] if limit else []


class FullFetcher(RecentOnlyFetcher):
    """Platform adapter with every optional capability"""

    def __init__(
        self,
        messages: list[PlatformMessage] | None = None,
        related: list[PlatformMessage] | None = None,
        emojis: list[PlatformEmoji] | None = None,
    ):
        super().__init__(messages)
        self.related = related or []
        self.emojis = emojis or []
        self.search_calls: list[tuple[str, str, str, int]] = []

    async def search_related_messages(
        self, guild_id: str, channel_id: str, query: str, limit: int
    ) -> list[PlatformMessage]:
        self.search_calls.append((guild_id, channel_id, query, limit))
        return self.related[:limit]

    async def fetch_emojis(self) -> list[PlatformEmoji]:
        return self.emojis


class FailingFetcher(RecentOnlyFetcher):
    """Platform adapter whose optional capabilities always fail"""

    async def search_related_messages(
        self, guild_id: str, channel_id: str, query: str, limit: int
    ) -> list[PlatformMessage]:
        raise RuntimeError("search backend unavailable")

    async def fetch_emojis(self) -> list[PlatformEmoji]:
        raise RuntimeError("emoji endpoint timed out")


@pytest.fixture
def workspace_manager(tmp_path):
    return WorkspaceManager(WorkspaceConfig(repo_path=str(tmp_path), workspaces_dir="workspaces"))


@pytest.fixture
async def workspace(workspace_manager):
    """Guild (non-DM) workspace"""
    return await workspace_manager.get_or_create_workspace(make_event(is_dm=False))


@pytest.fixture
async def dm_workspace(workspace_manager):
    """The same user's workspace seen from a DM"""
    return await workspace_manager.get_or_create_workspace(make_event(is_dm=True, guild_id=""))


@pytest.fixture
def memory_store(workspace_manager):
    return MemoryLogStore(workspace_manager, MemoryStoreConfig(search_limit=20, max_chars=4000))


@pytest.fixture
def system_prompt_path(tmp_path):
    prompt_dir = tmp_path / "prompts"
    prompt_dir.mkdir()
    path = prompt_dir / "system.md"
    path.write_text("You are a helpful bot.\n", encoding="utf-8")
    return path


@pytest.fixture
def context_config(system_prompt_path):
    return ContextConfig(
        recent_message_limit=20,
        token_limit=8000,
        system_prompt_path=str(system_prompt_path),
    )


@pytest.fixture
def assembler(memory_store, context_config):
    return ContextAssembler(memory_store, context_config)
