"""Parsing and folding of append-only memory logs.

A log is a sequence of JSON lines, each either a fact or a patch. Facts are
never rewritten; the current state of a fact is obtained by folding every
patch that targets it, oldest first.
"""

from __future__ import annotations

import json
from collections import defaultdict

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ..models import MemoryFact, MemoryLogEvent, MemoryPatch, ResolvedMemory

_event_adapter: TypeAdapter[MemoryFact | MemoryPatch] = TypeAdapter(MemoryLogEvent)


def parse_event(line: str) -> MemoryFact | MemoryPatch:
    """Parse a single log line.

    Raises:
        ValueError: The line is not valid JSON or not a known event.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    except RecursionError as e:
        raise ValueError("invalid JSON: nested too deeply") from e
    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        raise ValueError(f"not a memory event: {e.error_count()} validation error(s)") from e


def parse_memory_log(content: str) -> list[MemoryFact | MemoryPatch]:
    """Parse log content line by line, skipping lines that do not parse."""
    events: list[MemoryFact | MemoryPatch] = []
    for line_number, line in enumerate(content.splitlines(), 1):
        if not line.strip():
            continue
        try:
            events.append(parse_event(line))
        except ValueError as e:
            logger.warning(
                f"Skipping malformed memory log line {line_number}: {e} "
                f"(line: {line[:100]!r})"
            )
    return events


def apply_patch(memory: ResolvedMemory, patch: MemoryPatch) -> ResolvedMemory:
    """Return ``memory`` with the fields the patch defines replaced."""
    update: dict = {"last_modified_at": patch.created_at}
    if patch.enabled is not None:
        update["enabled"] = patch.enabled
    if patch.visibility is not None:
        update["visibility"] = patch.visibility
    if patch.importance is not None:
        update["importance"] = patch.importance
    return memory.model_copy(update=update)


def resolve_memories(events: list[MemoryFact | MemoryPatch]) -> list[ResolvedMemory]:
    """Fold facts and patches into the current memory state.

    Patches for the same fact are applied in ascending ``created_at`` order, so
    the result does not depend on the order lines appear in the file. Patches
    whose target is not among ``events`` are dropped.
    """
    memories: dict[str, ResolvedMemory] = {}
    patches: dict[str, list[MemoryPatch]] = defaultdict(list)

    for event in events:
        if isinstance(event, MemoryFact):
            memories[event.id] = ResolvedMemory(
                id=event.id,
                enabled=event.enabled,
                visibility=event.visibility,
                importance=event.importance,
                content=event.content,
                created_at=event.created_at,
                last_modified_at=event.created_at,
            )
        else:
            patches[event.target_id].append(event)

    for target_id, target_patches in patches.items():
        memory = memories.get(target_id)
        if memory is None:
            logger.debug(
                f"Ignoring {len(target_patches)} patch(es) for unknown memory {target_id}"
            )
            continue
        for patch in sorted(target_patches, key=lambda p: p.created_at):
            memory = apply_patch(memory, patch)
        memories[target_id] = memory

    return list(memories.values())


def resolve_log(content: str) -> list[ResolvedMemory]:
    """Parse and resolve a whole log file."""
    return resolve_memories(parse_memory_log(content))
