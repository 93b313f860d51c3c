"""
Append-only memory log storage

Each workspace holds two logs, one per visibility. Records are only ever
appended; corrections are written as patch events and folded on read.
"""

from __future__ import annotations

import random
import string
import time

from loguru import logger

from ..config import MemoryStoreConfig
from ..exceptions import MemoryNotFoundError, WorkspaceFileNotFoundError
from ..models import (
    Importance,
    MemoryFact,
    MemoryPatch,
    MemoryStatCategory,
    MemoryStats,
    ResolvedMemory,
    Visibility,
    WorkspaceInfo,
)
from ..utils.text_search import search_multiple_keywords
from ..workspace import MemoryFileType, WorkspaceManager
from .log import parse_event, resolve_log

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_memory_id() -> str:
    """``mem_{base36 milliseconds}_{6 random base36 characters}``"""
    timestamp = _to_base36(time.time_ns() // 1_000_000)
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"mem_{timestamp}_{suffix}"


def _searchable_files(workspace: WorkspaceInfo) -> list[MemoryFileType]:
    # Private facts are only reachable from a DM
    if workspace.is_dm:
        return [MemoryFileType.PUBLIC, MemoryFileType.PRIVATE]
    return [MemoryFileType.PUBLIC]


class MemoryLogStore:
    """
    Durable per-workspace memory facts

    Access is expected to be serialized per workspace by the caller; appends
    are single writes and never read-modify-write.
    """

    def __init__(
        self,
        workspace_manager: WorkspaceManager,
        config: MemoryStoreConfig | None = None,
    ):
        self._workspaces = workspace_manager
        self._config = config or MemoryStoreConfig()

    async def _append_event(
        self,
        workspace: WorkspaceInfo,
        file_type: MemoryFileType,
        event: MemoryFact | MemoryPatch,
    ) -> None:
        line = event.model_dump_json(exclude_none=True) + "\n"
        await self._workspaces.append_file(workspace, file_type.value, line)

    async def load_memories(
        self, workspace: WorkspaceInfo, file_type: MemoryFileType
    ) -> list[ResolvedMemory]:
        """Resolve every fact of one log. A missing log holds no memories."""
        try:
            content = await self._workspaces.read_file(workspace, file_type.value)
        except WorkspaceFileNotFoundError:
            return []
        return resolve_log(content)

    async def add_fact(
        self,
        workspace: WorkspaceInfo,
        content: str,
        visibility: Visibility = Visibility.PUBLIC,
        importance: Importance = Importance.NORMAL,
    ) -> MemoryFact:
        """
        Append a new fact

        Args:
            workspace: Target workspace
            content: Memory text
            visibility: Selects the log the fact is written to
            importance: ``high`` facts are loaded into every context

        Returns:
            The appended fact
        """
        fact = MemoryFact(
            id=generate_memory_id(),
            enabled=True,
            visibility=visibility,
            importance=importance,
            content=content,
        )
        await self._append_event(
            workspace, MemoryFileType.for_visibility(fact.visibility), fact
        )

        logger.info(
            f"Memory added: {workspace.key} {fact.id} "
            f"(importance={fact.importance.value}, visibility={fact.visibility.value})"
        )
        return fact

    async def _locate(
        self, workspace: WorkspaceInfo, memory_id: str
    ) -> tuple[ResolvedMemory, MemoryFileType] | None:
        for file_type in _searchable_files(workspace):
            for memory in await self.load_memories(workspace, file_type):
                if memory.id == memory_id:
                    return memory, file_type
        return None

    async def find_by_id(
        self, workspace: WorkspaceInfo, memory_id: str
    ) -> ResolvedMemory | None:
        """Current state of a fact, searching the logs visible from the workspace"""
        located = await self._locate(workspace, memory_id)
        return located[0] if located else None

    async def patch_fact(
        self,
        workspace: WorkspaceInfo,
        target_id: str,
        enabled: bool | None = None,
        visibility: Visibility | None = None,
        importance: Importance | None = None,
    ) -> MemoryPatch:
        """
        Append a patch for an existing fact

        The patch goes to the log the fact was originally written to, which
        does not change when its visibility is patched later.

        Raises:
            MemoryNotFoundError: No visible fact has ``target_id``
        """
        located = await self._locate(workspace, target_id)
        if located is None:
            raise MemoryNotFoundError(target_id, workspace.key)
        _, file_type = located

        patch = MemoryPatch(
            id=generate_memory_id(),
            target_id=target_id,
            enabled=enabled,
            visibility=visibility,
            importance=importance,
        )
        await self._append_event(workspace, file_type, patch)

        changes = patch.model_dump(
            include={"enabled", "visibility", "importance"}, exclude_none=True
        )
        logger.info(f"Memory patched: {workspace.key} {target_id} {changes}")
        return patch

    async def disable_fact(self, workspace: WorkspaceInfo, memory_id: str) -> MemoryPatch:
        return await self.patch_fact(workspace, memory_id, enabled=False)

    async def get_important_memories(
        self, workspace: WorkspaceInfo
    ) -> list[ResolvedMemory]:
        """
        Enabled high-importance facts, oldest first

        DM context: public and private logs. Otherwise: public log only.
        """
        important: list[ResolvedMemory] = []
        for file_type in _searchable_files(workspace):
            important.extend(
                m
                for m in await self.load_memories(workspace, file_type)
                if m.enabled and m.importance == Importance.HIGH
            )
        return sorted(important, key=lambda m: m.created_at)

    async def search_facts(
        self,
        workspace: WorkspaceInfo,
        keywords: list[str],
        max_results: int | None = None,
        max_chars: int | None = None,
    ) -> list[ResolvedMemory]:
        """
        Keyword search over the visible logs

        Matching lines are re-resolved to their current state, so a fact that
        matched textually but has since been disabled is not returned.
        """
        if max_results is None:
            max_results = self._config.search_limit
        if max_chars is None:
            max_chars = self._config.max_chars

        results: list[ResolvedMemory] = []
        seen_ids: set[str] = set()

        for file_type in _searchable_files(workspace):
            path = self._workspaces.get_memory_file_path(workspace, file_type)
            matches = await search_multiple_keywords(
                path,
                keywords,
                max_results=max_results,
                max_chars=max_chars,
                case_insensitive=True,
            )
            if not matches:
                continue

            current = {m.id: m for m in await self.load_memories(workspace, file_type)}
            for match in matches:
                try:
                    event = parse_event(match.content)
                except ValueError:
                    continue
                if not isinstance(event, MemoryFact) or event.id in seen_ids:
                    continue
                seen_ids.add(event.id)
                memory = current.get(event.id)
                if memory is not None and memory.enabled:
                    results.append(memory)

        logger.debug(
            f"Memory search in {workspace.key} for {keywords}: {len(results)} result(s)"
        )
        return results[:max_results]

    async def get_stats(self, workspace: WorkspaceInfo) -> MemoryStats:
        """Fact counts per log; the private log is only counted in a DM"""
        public = _count(await self.load_memories(workspace, MemoryFileType.PUBLIC))
        private = None
        if workspace.is_dm:
            private = _count(await self.load_memories(workspace, MemoryFileType.PRIVATE))

        categories = [public] if private is None else [public, private]
        summary = MemoryStatCategory(
            total=sum(c.total for c in categories),
            enabled=sum(c.enabled for c in categories),
            disabled=sum(c.disabled for c in categories),
            high_importance=sum(c.high_importance for c in categories),
            normal_importance=sum(c.normal_importance for c in categories),
        )
        return MemoryStats(public=public, private=private, summary=summary)


def _count(memories: list[ResolvedMemory]) -> MemoryStatCategory:
    enabled = sum(1 for m in memories if m.enabled)
    high = sum(1 for m in memories if m.importance == Importance.HIGH)
    return MemoryStatCategory(
        total=len(memories),
        enabled=enabled,
        disabled=len(memories) - enabled,
        high_importance=high,
        normal_importance=len(memories) - high,
    )
