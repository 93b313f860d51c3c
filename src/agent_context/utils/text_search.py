"""Line-oriented keyword search over text files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger


@dataclass(frozen=True)
class SearchMatch:
    line_number: int
    content: str


async def search_multiple_keywords(
    file_path: str | Path,
    keywords: list[str],
    max_results: int | None = None,
    max_chars: int | None = None,
    case_insensitive: bool = True,
) -> list[SearchMatch]:
    """Return lines that contain any of the keywords.

    Args:
        file_path: File to scan. A missing file yields no matches.
        keywords: Keywords combined with OR. Blank keywords are ignored.
        max_results: Stop after this many matching lines.
        max_chars: Stop once the matched lines add up to this many characters.
            The line that crosses the limit is still returned whole.
        case_insensitive: Compare case-insensitively.

    Returns:
        Matching lines in file order, 1-based line numbers.
    """
    needles = [k for k in (kw.strip() for kw in keywords) if k]
    if not needles:
        return []
    if case_insensitive:
        needles = [k.lower() for k in needles]

    try:
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        logger.debug(f"Search target does not exist: {file_path}")
        return []

    matches: list[SearchMatch] = []
    total_chars = 0
    for line_number, line in enumerate(lines, 1):
        haystack = line.lower() if case_insensitive else line
        if not any(needle in haystack for needle in needles):
            continue
        matches.append(SearchMatch(line_number=line_number, content=line))
        total_chars += len(line)
        if max_results is not None and len(matches) >= max_results:
            break
        if max_chars is not None and total_chars >= max_chars:
            break

    return matches
