"""Tests for MemoryLogStore."""

import json
import re
from pathlib import Path

import pytest

from agent_context.exceptions import MemoryNotFoundError
from agent_context.memory import MemoryLogStore, generate_memory_id
from agent_context.models import Importance, MemoryFact, MemoryPatch, Visibility
from agent_context.workspace import MemoryFileType


def read_lines(workspace, file_type: MemoryFileType) -> list[dict]:
    content = (Path(workspace.path) / file_type.value).read_text(encoding="utf-8")
    return [json.loads(line) for line in content.splitlines() if line.strip()]


def test_generated_ids_are_unique_and_well_formed():
    ids = {generate_memory_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(re.fullmatch(r"mem_[0-9a-z]+_[0-9a-z]{6}", i) for i in ids)


class TestAddFact:
    @pytest.mark.asyncio
    async def test_appends_one_line_to_public_log(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "Likes green tea")

        assert isinstance(fact, MemoryFact)
        assert fact.visibility == Visibility.PUBLIC
        assert fact.importance == Importance.NORMAL
        lines = read_lines(workspace, MemoryFileType.PUBLIC)
        assert len(lines) == 1
        assert lines[0]["id"] == fact.id
        assert lines[0]["kind"] == "fact"
        assert lines[0]["content"] == "Likes green tea"
        assert read_lines(workspace, MemoryFileType.PRIVATE) == []

    @pytest.mark.asyncio
    async def test_private_fact_goes_to_private_log(self, memory_store, dm_workspace):
        await memory_store.add_fact(dm_workspace, "Secret birthday", visibility=Visibility.PRIVATE)
        assert read_lines(dm_workspace, MemoryFileType.PUBLIC) == []
        assert len(read_lines(dm_workspace, MemoryFileType.PRIVATE)) == 1

    @pytest.mark.asyncio
    async def test_appends_never_rewrite(self, memory_store, workspace):
        first = await memory_store.add_fact(workspace, "one")
        await memory_store.add_fact(workspace, "two")
        lines = read_lines(workspace, MemoryFileType.PUBLIC)
        assert [line["content"] for line in lines] == ["one", "two"]
        assert lines[0]["id"] == first.id

    @pytest.mark.asyncio
    async def test_round_trip_through_important_memories(self, memory_store, workspace):
        content = "Prefers to be called Sam, not Samuel 🙂"
        fact = await memory_store.add_fact(workspace, content, importance=Importance.HIGH)

        [memory] = await memory_store.get_important_memories(workspace)
        assert memory.id == fact.id
        assert memory.content == content


class TestPatchFact:
    @pytest.mark.asyncio
    async def test_patch_is_appended_not_merged(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "Lives in Seoul")
        patch = await memory_store.patch_fact(workspace, fact.id, importance=Importance.HIGH)

        assert isinstance(patch, MemoryPatch)
        lines = read_lines(workspace, MemoryFileType.PUBLIC)
        assert len(lines) == 2
        assert lines[0]["importance"] == "normal"
        assert lines[1] == {
            "id": patch.id,
            "created_at": patch.created_at,
            "kind": "patch",
            "target_id": fact.id,
            "importance": "high",
        }

    @pytest.mark.asyncio
    async def test_unknown_id_raises_not_found(self, memory_store, workspace):
        with pytest.raises(MemoryNotFoundError) as exc_info:
            await memory_store.patch_fact(workspace, "mem_nope_000000", enabled=False)
        assert exc_info.value.memory_id == "mem_nope_000000"
        assert read_lines(workspace, MemoryFileType.PUBLIC) == []

    @pytest.mark.asyncio
    async def test_private_fact_not_patchable_outside_dm(
        self, memory_store, workspace, dm_workspace
    ):
        fact = await memory_store.add_fact(dm_workspace, "private", visibility=Visibility.PRIVATE)
        with pytest.raises(MemoryNotFoundError):
            await memory_store.patch_fact(workspace, fact.id, enabled=False)

    @pytest.mark.asyncio
    async def test_patch_goes_to_the_log_of_the_original_fact(self, memory_store, dm_workspace):
        fact = await memory_store.add_fact(
            dm_workspace, "moves later", importance=Importance.HIGH
        )
        # Visibility changes, but the fact still lives in the public log
        await memory_store.patch_fact(dm_workspace, fact.id, visibility=Visibility.PRIVATE)
        await memory_store.patch_fact(dm_workspace, fact.id, enabled=False)

        public_lines = read_lines(dm_workspace, MemoryFileType.PUBLIC)
        assert [line["kind"] for line in public_lines] == ["fact", "patch", "patch"]
        assert read_lines(dm_workspace, MemoryFileType.PRIVATE) == []

        memory = await memory_store.find_by_id(dm_workspace, fact.id)
        assert memory.visibility == Visibility.PRIVATE
        assert memory.enabled is False

    @pytest.mark.asyncio
    async def test_disable_fact(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "temporary", importance=Importance.HIGH)
        await memory_store.disable_fact(workspace, fact.id)

        assert await memory_store.get_important_memories(workspace) == []
        memory = await memory_store.find_by_id(workspace, fact.id)
        assert memory.enabled is False
        assert memory.last_modified_at > memory.created_at


class TestImportantMemories:
    @pytest.mark.asyncio
    async def test_only_enabled_high_importance(self, memory_store, workspace):
        await memory_store.add_fact(workspace, "normal one")
        high = await memory_store.add_fact(workspace, "high one", importance=Importance.HIGH)
        disabled = await memory_store.add_fact(workspace, "disabled", importance=Importance.HIGH)
        await memory_store.disable_fact(workspace, disabled.id)

        memories = await memory_store.get_important_memories(workspace)
        assert [m.id for m in memories] == [high.id]

    @pytest.mark.asyncio
    async def test_private_facts_hidden_outside_dm(self, memory_store, workspace, dm_workspace):
        await memory_store.add_fact(
            dm_workspace, "private high", visibility=Visibility.PRIVATE, importance=Importance.HIGH
        )
        public = await memory_store.add_fact(workspace, "public high", importance=Importance.HIGH)

        guild_view = await memory_store.get_important_memories(workspace)
        assert [m.id for m in guild_view] == [public.id]
        assert all(m.visibility == Visibility.PUBLIC for m in guild_view)

        dm_view = await memory_store.get_important_memories(dm_workspace)
        assert {m.content for m in dm_view} == {"private high", "public high"}

    @pytest.mark.asyncio
    async def test_sorted_oldest_first_across_logs(self, memory_store, dm_workspace):
        first = await memory_store.add_fact(
            dm_workspace, "first", visibility=Visibility.PRIVATE, importance=Importance.HIGH
        )
        second = await memory_store.add_fact(dm_workspace, "second", importance=Importance.HIGH)
        third = await memory_store.add_fact(
            dm_workspace, "third", visibility=Visibility.PRIVATE, importance=Importance.HIGH
        )

        memories = await memory_store.get_important_memories(dm_workspace)
        assert [m.id for m in memories] == [first.id, second.id, third.id]

    @pytest.mark.asyncio
    async def test_missing_log_files_mean_no_memories(self, memory_store, workspace):
        for file_type in MemoryFileType:
            (Path(workspace.path) / file_type.value).unlink()
        assert await memory_store.get_important_memories(workspace) == []

    @pytest.mark.asyncio
    async def test_corrupted_line_does_not_hide_other_facts(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "survives", importance=Importance.HIGH)
        with open(Path(workspace.path) / MemoryFileType.PUBLIC.value, "a", encoding="utf-8") as f:
            f.write('{"id": "mem_broken", "kind": "fa\n')

        memories = await memory_store.get_important_memories(workspace)
        assert [m.id for m in memories] == [fact.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "garbage",
        [b'{"id":"x","kind":"fact","content":"\xff\xfe broken"}\n', b"\xc3\n"],
    )
    async def test_undecodable_bytes_do_not_hide_other_facts(
        self, memory_store, workspace, garbage
    ):
        fact = await memory_store.add_fact(workspace, "survives", importance=Importance.HIGH)
        with open(Path(workspace.path) / MemoryFileType.PUBLIC.value, "ab") as f:
            f.write(garbage)

        memories = await memory_store.get_important_memories(workspace)
        assert [m.id for m in memories] == [fact.id]
        results = await memory_store.search_facts(workspace, ["survives"])
        assert [m.id for m in results] == [fact.id]

    @pytest.mark.asyncio
    async def test_deeply_nested_line_does_not_hide_other_facts(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "survives", importance=Importance.HIGH)
        with open(Path(workspace.path) / MemoryFileType.PUBLIC.value, "a", encoding="utf-8") as f:
            f.write("[" * 100_000 + "\n")

        memories = await memory_store.get_important_memories(workspace)
        assert [m.id for m in memories] == [fact.id]


class TestSearchFacts:
    @pytest.mark.asyncio
    async def test_case_insensitive_or_match(self, memory_store, workspace):
        tea = await memory_store.add_fact(workspace, "Drinks Green Tea every morning")
        cat = await memory_store.add_fact(workspace, "Has a cat named Miso")
        await memory_store.add_fact(workspace, "Works as a nurse")

        results = await memory_store.search_facts(workspace, ["tea", "CAT"])
        assert [m.id for m in results] == [tea.id, cat.id]

    @pytest.mark.asyncio
    async def test_disabled_facts_are_filtered(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "Plays the violin")
        await memory_store.disable_fact(workspace, fact.id)
        assert await memory_store.search_facts(workspace, ["violin"]) == []

    @pytest.mark.asyncio
    async def test_results_reflect_patched_state(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "Enjoys hiking")
        await memory_store.patch_fact(workspace, fact.id, importance=Importance.HIGH)

        [memory] = await memory_store.search_facts(workspace, ["hiking"])
        assert memory.importance == Importance.HIGH

    @pytest.mark.asyncio
    async def test_deduplicates_ids(self, memory_store, workspace):
        fact = await memory_store.add_fact(workspace, "tea tea tea")
        results = await memory_store.search_facts(workspace, ["tea", "TEA"])
        assert [m.id for m in results] == [fact.id]

    @pytest.mark.asyncio
    async def test_private_log_searched_only_in_dm(self, memory_store, workspace, dm_workspace):
        await memory_store.add_fact(dm_workspace, "private tea", visibility=Visibility.PRIVATE)
        assert await memory_store.search_facts(workspace, ["tea"]) == []
        assert len(await memory_store.search_facts(dm_workspace, ["tea"])) == 1

    @pytest.mark.asyncio
    async def test_max_results(self, memory_store, workspace):
        for i in range(5):
            await memory_store.add_fact(workspace, f"tea fact {i}")
        results = await memory_store.search_facts(workspace, ["tea"], max_results=2)
        assert [m.content for m in results] == ["tea fact 0", "tea fact 1"]

    @pytest.mark.asyncio
    async def test_zero_max_results_returns_nothing(self, memory_store, workspace):
        await memory_store.add_fact(workspace, "tea fact")
        assert await memory_store.search_facts(workspace, ["tea"], max_results=0) == []

    @pytest.mark.asyncio
    async def test_no_keywords(self, memory_store, workspace):
        await memory_store.add_fact(workspace, "anything")
        assert await memory_store.search_facts(workspace, []) == []


class TestStats:
    @pytest.mark.asyncio
    async def test_counts_per_log(self, memory_store, dm_workspace, workspace):
        a = await memory_store.add_fact(dm_workspace, "a", importance=Importance.HIGH)
        await memory_store.add_fact(dm_workspace, "b")
        await memory_store.add_fact(dm_workspace, "c", visibility=Visibility.PRIVATE)
        await memory_store.disable_fact(dm_workspace, a.id)

        stats = await memory_store.get_stats(dm_workspace)
        assert stats.public.total == 2
        assert stats.public.enabled == 1
        assert stats.public.disabled == 1
        assert stats.public.high_importance == 1
        assert stats.private.total == 1
        assert stats.summary.total == 3
        assert stats.summary.normal_importance == 2

        guild_stats = await memory_store.get_stats(workspace)
        assert guild_stats.private is None
        assert guild_stats.summary.total == 2


@pytest.mark.asyncio
async def test_store_works_with_default_config(workspace_manager, workspace):
    store = MemoryLogStore(workspace_manager)
    await store.add_fact(workspace, "default config fact")
    assert len(await store.search_facts(workspace, ["default"])) == 1
