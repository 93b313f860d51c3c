"""Configuration models and YAML loading."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import chardet
import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import ConfigError


class ContextConfig(BaseModel):
    """Context assembly configuration."""

    recent_message_limit: int = Field(50, ge=0)
    related_message_limit: int = Field(10, ge=0)
    token_limit: int = Field(8000, gt=0)
    system_prompt_path: str = "prompts/system.md"


class MemoryStoreConfig(BaseModel):
    """Memory search limits."""

    search_limit: int = Field(20, gt=0)
    max_chars: int = Field(4000, gt=0)


class WorkspaceConfig(BaseModel):
    """Workspace storage paths."""

    repo_path: str = "."
    workspaces_dir: str = "workspaces"

    @model_validator(mode="after")
    def _validate_paths(self) -> "WorkspaceConfig":
        normalized = os.path.normpath(self.workspaces_dir)
        parts = normalized.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValueError(
                f"workspaces_dir must not contain '..' components: "
                f"{self.workspaces_dir!r}"
            )
        self.workspaces_dir = normalized
        return self


class AppConfig(BaseModel):
    """Top-level configuration."""

    context: ContextConfig = Field(default_factory=ContextConfig)
    memory: MemoryStoreConfig = Field(default_factory=MemoryStoreConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)


def load_text_file_with_guess_encoding(file_path: str | Path) -> str | None:
    """
    Load a text file with guessed encoding.

    Parameters:
    - file_path: The path to the text file.

    Returns:
    - The content of the text file or None if it could not be decoded.
    """
    encodings = ["utf-8", "utf-8-sig", "cp949", "gbk", "ascii"]

    for encoding in encodings:
        try:
            with open(file_path, "r", encoding=encoding) as file:
                return file.read()
        except UnicodeDecodeError:
            continue
    # If common encodings fail, try chardet to guess the encoding
    with open(file_path, "rb") as file:
        raw_data = file.read()
    detected = chardet.detect(raw_data)
    if detected["encoding"]:
        try:
            return raw_data.decode(detected["encoding"])
        except (UnicodeDecodeError, LookupError) as e:
            logger.error(f"Error decoding {file_path} as {detected['encoding']}: {e}")
    return None


def read_yaml(config_path: str | Path) -> dict[str, Any]:
    """
    Read a YAML configuration file with environment variable substitution.

    ``${NAME}`` is replaced with the value of the environment variable NAME;
    unknown variables are left as they are.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ConfigError: If the file cannot be decoded or parsed.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    content = load_text_file_with_guess_encoding(config_path)
    if content is None:
        raise ConfigError(f"Failed to read configuration file: {config_path}")

    pattern = re.compile(r"\$\{(\w+)\}")

    def replacer(match):
        env_var = match.group(1)
        return os.getenv(env_var, match.group(0))

    content = pattern.sub(replacer, content)

    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.critical(f"Error parsing YAML file: {e}")
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e


def _format_validation_error(error: ValidationError) -> str:
    error_messages = []
    for err in error.errors():
        location = " -> ".join(str(loc) for loc in err["loc"])
        if err["type"] == "missing":
            error_messages.append(f"  - '{location}': required field is missing")
        else:
            error_messages.append(
                f"  - '{location}': {err['msg']} (input: {err.get('input', 'N/A')})"
            )
    return "\n".join(error_messages)


def validate_config(config_data: dict[str, Any]) -> AppConfig:
    """Validate raw configuration data against :class:`AppConfig`."""
    try:
        return AppConfig(**config_data)
    except ValidationError as e:
        formatted_errors = _format_validation_error(e)
        logger.critical(f"Configuration validation failed:\n{formatted_errors}")
        raise ConfigError(f"Invalid configuration:\n{formatted_errors}") from e


def load_config(config_path: str | Path) -> AppConfig:
    """Read and validate a YAML configuration file."""
    return validate_config(read_yaml(config_path))
