import os
from pathlib import Path

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config") / "project"
CACHE_DIR = Path(os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache") / "project"

CONFIG_FILE = CONFIG_DIR / "config.toml"
CACHE_FILE = CACHE_DIR / "cache.json"

VCS_MARKER = ".git"
DEFAULT_MAX_DEPTH = 6

PICKER_HEADER = "Choose project"
POLL_INTERVAL_MS = 200
