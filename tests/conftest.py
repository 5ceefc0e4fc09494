from pathlib import Path

import pytest

from project_switcher.config import RootDir
import project_switcher.services.tmux as _tmux_mod
from tests.helpers import make_project


@pytest.fixture(autouse=True)
def _reset_tmux_server():
    """Reset the cached tmux server between tests."""
    _tmux_mod._server = None
    yield
    _tmux_mod._server = None


@pytest.fixture()
def dev_root(tmp_path: Path) -> RootDir:
    """A root with a few projects, one nested project and one plain directory."""
    root = tmp_path / "dev"
    make_project(root / "alpha")
    make_project(root / "teamA" / "svc")
    make_project(root / "teamA" / "web")
    make_project(root / "alpha" / "vendor" / "inner")
    (root / "notes" / "drafts").mkdir(parents=True)
    return RootDir(path=str(root), prefix="w-")
