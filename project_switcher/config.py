"""Configuration loading.

Reads `~/.config/project/config.toml` (or `$XDG_CONFIG_HOME/project/config.toml`),
which lists the root directories to scan for projects:

    max_depth = 6

    [[root_dirs]]
    path = "~/dev"
    prefix = "w-"
"""

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from project_switcher.constants import CONFIG_FILE, DEFAULT_MAX_DEPTH


class ConfigError(Exception):
    """Raised when the config file is missing, unreadable or invalid."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class RootDir(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    path: str
    prefix: str = ""

    @field_validator("path")
    @classmethod
    def _expand_path(cls, value: str) -> str:
        value = expand_user(value)
        return value.rstrip(os.sep) or os.sep


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    root_dirs: list[RootDir] = []
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0)


def expand_user(path: str) -> str:
    """Replace a leading `~` with the current user's home directory."""
    return os.path.expanduser(path)


def load_config(path: Path | None = None) -> ProjectConfig:
    path = path or CONFIG_FILE
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(path, "config file not found")
    except OSError as e:
        raise ConfigError(path, f"could not read config file: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(path, f"invalid TOML: {e}") from e

    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(path, f"invalid config: {e}") from e
