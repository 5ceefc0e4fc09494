from pathlib import Path


def make_project(path: Path) -> Path:
    """Create a directory that looks like a git checkout."""
    (path / ".git").mkdir(parents=True)
    return path
