import os

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PathRecord(BaseModel):
    """One discoverable project: its directory and the tmux session it maps to."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    full_path: str = Field(validation_alias=AliasChoices("full_path", "FullPath"))
    session_name: str = Field(validation_alias=AliasChoices("session_name", "SessionName"))


def derive_session_name(root_path: str, prefix: str, full_path: str) -> str:
    """Session name for a project found under a configured root.

    The root is stripped from the front of the path, leading separators are
    trimmed and the root's prefix is prepended. A project sitting directly at
    the root falls back to the root's base name.
    """
    remainder = full_path
    if remainder.startswith(root_path):
        remainder = remainder[len(root_path):]
    remainder = remainder.lstrip(os.sep)
    if not remainder:
        remainder = os.path.basename(root_path.rstrip(os.sep))
    return f"{prefix}{remainder}"
