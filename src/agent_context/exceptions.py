"""
Exception classes for the context system.

Only configuration and lookup failures surface to callers; parse errors and
collaborator failures are recovered where they happen.
"""


class ContextSystemError(Exception):
    """Base exception for the context system"""

    pass


class MemoryNotFoundError(ContextSystemError):
    """A referenced memory id does not resolve to any fact"""

    def __init__(self, memory_id: str, workspace_key: str):
        self.memory_id = memory_id
        self.workspace_key = workspace_key
        super().__init__(f"Memory not found: {memory_id} (workspace {workspace_key})")


class WorkspaceFileNotFoundError(ContextSystemError):
    """A workspace file has not been created yet"""

    def __init__(self, relative_path: str, workspace_key: str):
        self.relative_path = relative_path
        self.workspace_key = workspace_key
        super().__init__(f"File not found: {relative_path} (workspace {workspace_key})")


class WorkspaceBoundaryError(ContextSystemError):
    """A path resolves outside of its workspace root"""

    def __init__(self, path: str, boundary: str):
        self.path = path
        self.boundary = boundary
        super().__init__(f"Path escapes workspace boundary: {path} (boundary {boundary})")


class StorageError(ContextSystemError):
    """Storage error"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class PromptLoadError(ContextSystemError):
    """The system prompt file could not be read"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class ConfigError(ContextSystemError):
    """Configuration error"""

    pass
