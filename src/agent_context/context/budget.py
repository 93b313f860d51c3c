"""Greedy newest-first selection under a token budget."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


@dataclass
class BudgetSelection(Generic[T]):
    """Items kept by :func:`select_newest_within_budget`, in original order."""

    items: list[T] = field(default_factory=list)
    tokens_used: int = 0

    @property
    def count(self) -> int:
        return len(self.items)


def select_newest_within_budget(
    items: Sequence[T],
    costs: Sequence[int],
    budget: int,
    overhead: int = 0,
) -> BudgetSelection[T]:
    """Keep the newest items whose running cost fits the budget.

    ``items`` are ordered oldest to newest. Walking back from the newest item,
    each item is kept whole while ``overhead`` plus the cost of the kept items
    stays within ``budget``. The walk stops at the first item that would
    overflow; it and everything older are dropped, so the result is always a
    contiguous suffix of ``items``.

    ``tokens_used`` includes ``overhead`` only when at least one item is kept.
    """
    if len(items) != len(costs):
        raise ValueError("items and costs must have the same length")

    used = overhead
    start = len(items)
    for i in range(len(items) - 1, -1, -1):
        if used + costs[i] > budget:
            break
        used += costs[i]
        start = i

    if start == len(items):
        return BudgetSelection()
    return BudgetSelection(items=list(items[start:]), tokens_used=used)
