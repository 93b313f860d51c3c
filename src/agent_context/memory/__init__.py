"""
Memory logs

- log: pure parsing and folding of fact/patch events
- store: per-workspace append-only storage
"""

from .log import apply_patch, parse_event, parse_memory_log, resolve_log, resolve_memories
from .store import MemoryLogStore, generate_memory_id

__all__ = [
    "MemoryLogStore",
    "apply_patch",
    "generate_memory_id",
    "parse_event",
    "parse_memory_log",
    "resolve_log",
    "resolve_memories",
]
