"""Project discovery under the configured root directories.

One daemon thread walks each root. Newly found projects go into the shared
`ProjectIndex` (the dedup oracle) and are appended to a `CandidateList`,
which the picker polls while the walks are still running.
"""

import logging
import os
import queue
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from project_switcher.config import RootDir
from project_switcher.constants import DEFAULT_MAX_DEPTH, VCS_MARKER
from project_switcher.models import PathRecord, derive_session_name
from project_switcher.services.index import ProjectIndex

logger = logging.getLogger(__name__)


class ScanError(Exception):
    """Raised when walking a root fails part-way through."""

    def __init__(self, root: RootDir, cause: OSError) -> None:
        self.root = root
        self.cause = cause
        super().__init__(f"Scanning {root.path} failed: {cause}")


class CandidateList:
    """Append-only, thread-safe sequence of records shown in the picker."""

    def __init__(self, records: Iterable[PathRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._items: list[PathRecord] = list(records)

    def append(self, record: PathRecord) -> None:
        with self._lock:
            self._items.append(record)

    def snapshot(self) -> list[PathRecord]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __getitem__(self, index: int) -> PathRecord:
        with self._lock:
            return self._items[index]


def is_project(path: str) -> bool:
    return os.path.isdir(os.path.join(path, VCS_MARKER))


def iter_projects(root_path: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Iterator[str]:
    """Yield project directories under `root_path`, depth-first in name order.

    A project is terminal: nothing beneath it is visited. Symlinked
    directories are not followed. Raises OSError if a directory cannot be
    listed.
    """
    stack = [(root_path, 0)]
    while stack:
        path, depth = stack.pop()
        if is_project(path):
            yield path
            continue
        if depth >= max_depth:
            continue
        with os.scandir(path) as it:
            subdirs = sorted(
                entry.path
                for entry in it
                if entry.name != VCS_MARKER and entry.is_dir(follow_symlinks=False)
            )
        stack.extend((sub, depth + 1) for sub in reversed(subdirs))


def scan_root(
    root: RootDir,
    index: ProjectIndex,
    sink: CandidateList,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> int:
    """Walk one root, recording new projects. Returns how many were new.

    Raises ScanError on a filesystem error; anything found before the
    error stays recorded.
    """
    found = 0
    try:
        for path in iter_projects(root.path, max_depth):
            record = PathRecord(full_path=path, session_name=derive_session_name(root.path, root.prefix, path))
            if index.add(record):
                sink.append(record)
                found += 1
                logger.info(
                    "Discovered project %s as %s",
                    path, record.session_name,
                    extra={"path": path, "session": record.session_name},
                )
    except OSError as e:
        raise ScanError(root, e) from e
    return found


@dataclass
class ScanResult:
    root: RootDir
    found: int = 0
    error: ScanError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ScanGroup:
    """Runs `scan_root` for every root concurrently and collects the outcomes.

    Threads are daemons and are never cancelled: if the process exits first,
    unfinished walks simply stop.
    """

    def __init__(
        self,
        roots: Iterable[RootDir],
        index: ProjectIndex,
        sink: CandidateList,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.roots = list(roots)
        self._index = index
        self._sink = sink
        self._max_depth = max_depth
        self._threads: list[threading.Thread] = []
        self._done: queue.Queue[ScanResult] = queue.Queue()
        self._results: list[ScanResult] = []
        self._reported = 0

    def start(self) -> "ScanGroup":
        for root in self.roots:
            thread = threading.Thread(target=self._run, args=(root,), name=f"scan:{root.path}", daemon=True)
            self._threads.append(thread)
            thread.start()
        return self

    def _run(self, root: RootDir) -> None:
        logger.debug("Scanning root %s", root.path, extra={"root": root.path})
        result = ScanResult(root=root)
        try:
            result.found = scan_root(root, self._index, self._sink, self._max_depth)
        except ScanError as e:
            result.error = e
        finally:
            self._done.put(result)
        logger.debug(
            "Finished scanning root %s, %d new",
            root.path, result.found,
            extra={"root": root.path, "found": result.found},
        )

    def results(self) -> list[ScanResult]:
        """Results of every scan that has finished so far, without blocking."""
        while True:
            try:
                self._results.append(self._done.get_nowait())
            except queue.Empty:
                return list(self._results)

    def join(self, timeout: float | None = None) -> list[ScanResult]:
        for thread in self._threads:
            thread.join(timeout)
        return self.results()

    @property
    def finished(self) -> bool:
        return len(self.results()) == len(self.roots)

    def errors(self) -> list[ScanError]:
        return [r.error for r in self.results() if r.error is not None]

    def new_errors(self) -> list[ScanError]:
        """Errors not returned by an earlier call, so each failure is reported once."""
        errors = self.errors()
        fresh = errors[self._reported:]
        self._reported = len(errors)
        return fresh
