"""
Per-user workspace directories

Storage layout:
    {repo_path}/{workspaces_dir}/
    └── {platform}/
        └── {user_id}/
            ├── memory.public.jsonl
            └── memory.private.jsonl

Memory is per user, not per channel: the same workspace serves DM and
non-DM interactions, so both logs always exist.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from loguru import logger

from .config import WorkspaceConfig
from .exceptions import StorageError, WorkspaceBoundaryError, WorkspaceFileNotFoundError
from .models import NormalizedEvent, Visibility, WorkspaceInfo


class MemoryFileType(str, Enum):
    PUBLIC = "memory.public.jsonl"
    PRIVATE = "memory.private.jsonl"

    @classmethod
    def for_visibility(cls, visibility: Visibility) -> "MemoryFileType":
        return cls.PRIVATE if visibility == Visibility.PRIVATE else cls.PUBLIC


def sanitize_path_component(name: str) -> str:
    """Make a string safe to use as a single path component"""
    safe_name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "_", name)
    safe_name = safe_name.replace(" ", "_")
    # "." and ".." would address the parent directories
    if safe_name.strip(".") == "":
        safe_name = safe_name.replace(".", "_") or "_"
    if len(safe_name) > 200:
        safe_name = safe_name[:200]
    return safe_name


def _ensure_within(path: Path, boundary: Path) -> None:
    if path != boundary and boundary not in path.parents:
        raise WorkspaceBoundaryError(str(path), str(boundary))


class WorkspaceManager:
    """Creates workspaces and performs file access bounded to them"""

    def __init__(self, config: WorkspaceConfig):
        self._repo_path = Path(config.repo_path).resolve()
        self._workspaces_root = (self._repo_path / config.workspaces_dir).resolve()
        logger.info(f"WorkspaceManager initialized at {self._workspaces_root}")

    @property
    def workspaces_root(self) -> Path:
        return self._workspaces_root

    def compute_workspace_key(self, platform: str, user_id: str) -> str:
        """Workspace key in the form ``{platform}/{user_id}``"""
        return f"{sanitize_path_component(platform)}/{sanitize_path_component(user_id)}"

    def get_workspace_path(self, workspace_key: str) -> Path:
        path = (self._workspaces_root / workspace_key).resolve()
        _ensure_within(path, self._workspaces_root)
        return path

    async def get_or_create_workspace(self, event: NormalizedEvent) -> WorkspaceInfo:
        """Return the workspace of the event's author, creating it on first use"""
        key = self.compute_workspace_key(event.platform, event.user_id)
        path = self.get_workspace_path(key)

        if not path.exists():
            logger.info(f"Creating new workspace: {key}")
            path.mkdir(parents=True, exist_ok=True)
            created_at = datetime.now(timezone.utc)
        else:
            created_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

        self._initialize_workspace_files(path)

        return WorkspaceInfo(
            key=key,
            platform=event.platform,
            user_id=event.user_id,
            path=str(path),
            is_dm=event.is_dm,
            created_at=created_at,
        )

    def _initialize_workspace_files(self, workspace_path: Path) -> None:
        # Both logs are created even outside DMs; a later DM reuses the workspace
        for file_type in MemoryFileType:
            memory_path = workspace_path / file_type.value
            if not memory_path.exists():
                memory_path.touch()

    def get_memory_file_path(
        self, workspace: WorkspaceInfo, file_type: MemoryFileType
    ) -> Path:
        return Path(workspace.path) / file_type.value

    def _resolve_in_workspace(self, workspace: WorkspaceInfo, relative_path: str) -> Path:
        root = Path(workspace.path).resolve()
        path = (root / relative_path).resolve()
        _ensure_within(path, root)
        return path

    async def read_file(self, workspace: WorkspaceInfo, relative_path: str) -> str:
        """
        Read a file inside the workspace

        Undecodable bytes are replaced with U+FFFD so that a partially
        written line cannot make the rest of the file unreadable.

        Raises:
            WorkspaceFileNotFoundError: The file does not exist yet
            WorkspaceBoundaryError: The path escapes the workspace
        """
        path = self._resolve_in_workspace(workspace, relative_path)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                return f.read()
        except FileNotFoundError as e:
            raise WorkspaceFileNotFoundError(relative_path, workspace.key) from e

    async def append_file(
        self, workspace: WorkspaceInfo, relative_path: str, content: str
    ) -> None:
        """Append to a file inside the workspace, creating it if absent"""
        path = self._resolve_in_workspace(workspace, relative_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise StorageError(f"Failed to append to {relative_path}: {e}", path=str(path)) from e

    async def list_workspaces(self, platform: str | None = None) -> list[str]:
        """List workspace keys, optionally for a single platform"""
        if not self._workspaces_root.exists():
            return []

        workspaces = []
        for platform_dir in sorted(self._workspaces_root.iterdir()):
            if not platform_dir.is_dir():
                continue
            if platform and platform_dir.name != platform:
                continue
            for user_dir in sorted(platform_dir.iterdir()):
                if user_dir.is_dir():
                    workspaces.append(f"{platform_dir.name}/{user_dir.name}")
        return workspaces
