"""System prompt loading and memoization."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Awaitable, Callable

from loguru import logger

from ..config import load_text_file_with_guess_encoding
from ..exceptions import PromptLoadError

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def _load_prompt_fragments(prompt_dir: Path, exclude_name: str) -> dict[str, str]:
    """Map ``name`` to the trimmed content of each sibling ``name.md`` file."""
    fragments: dict[str, str] = {}
    try:
        entries = sorted(prompt_dir.iterdir())
    except OSError as e:
        logger.warning(f"Failed to scan prompt directory {prompt_dir}: {e}")
        return fragments

    for entry in entries:
        if not entry.is_file() or entry.suffix != ".md" or entry.name == exclude_name:
            continue
        try:
            text = load_text_file_with_guess_encoding(entry)
        except OSError as e:
            logger.warning(f"Failed to read prompt fragment {entry.name}: {e}")
            continue
        if text is not None:
            fragments[entry.stem] = text.strip()
    return fragments


def _replace_placeholders(content: str, fragments: dict[str, str]) -> str:
    def replacer(match: re.Match) -> str:
        key = match.group(1)
        if key in fragments:
            return fragments[key]
        logger.warning(
            f"Prompt placeholder {match.group(0)} has no matching fragment file {key}.md"
        )
        return match.group(0)

    return _PLACEHOLDER.sub(replacer, content)


async def load_system_prompt(path: str | Path) -> str:
    """
    Read the system prompt file

    ``{{name}}`` placeholders are replaced with the content of ``name.md`` in
    the same directory; placeholders without a fragment are kept verbatim.

    Raises:
        PromptLoadError: The file is missing or cannot be decoded
    """
    path = Path(path)
    try:
        content = load_text_file_with_guess_encoding(path)
    except FileNotFoundError as e:
        raise PromptLoadError(f"System prompt file not found: {path}", path=str(path)) from e
    except OSError as e:
        raise PromptLoadError(f"Failed to read system prompt: {e}", path=str(path)) from e
    if content is None:
        raise PromptLoadError(f"Failed to decode system prompt: {path}", path=str(path))

    fragments = _load_prompt_fragments(path.parent, path.name)
    return _replace_placeholders(content, fragments).strip()


class PromptCache:
    """
    Lazily loaded system prompt

    Loaded once on first :meth:`get` and kept until :meth:`invalidate`, for
    example after a configuration hot reload.
    """

    def __init__(
        self,
        path: str | Path,
        loader: Callable[[str | Path], Awaitable[str]] = load_system_prompt,
    ):
        self._path = path
        self._loader = loader
        self._text: str | None = None

    @property
    def is_loaded(self) -> bool:
        return self._text is not None

    async def get(self) -> str:
        if self._text is None:
            self._text = await self._loader(self._path)
            logger.debug(f"System prompt loaded from {self._path} ({len(self._text)} chars)")
        return self._text

    def invalidate(self) -> None:
        self._text = None
