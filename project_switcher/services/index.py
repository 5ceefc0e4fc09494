import fcntl
import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from project_switcher.models import PathRecord

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for failures reading or writing the project cache."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class StoreReadError(StoreError):
    pass


class StoreFormatError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class CacheFile(BaseModel):
    """On-disk shape of the project cache."""

    model_config = ConfigDict(extra="ignore")

    paths: list[PathRecord] = Field(default_factory=list)


class ProjectIndex:
    """Deduplicated set of known projects, backed by a JSON file.

    Scanner threads call `add` concurrently; membership test and insertion
    happen under one lock so a path is never recorded twice.
    """

    def __init__(self, store_path: Path, records: Iterable[PathRecord] = ()) -> None:
        self.store_path = store_path
        self._lock = threading.Lock()
        # dict keeps insertion order, so snapshots are stable within a run
        self._records: dict[PathRecord, None] = dict.fromkeys(records)

    @classmethod
    def load(cls, store_path: Path, clear: bool = False) -> "ProjectIndex":
        """Read the cache at `store_path`.

        A missing file yields an empty index. With `clear` the file is not
        read at all, which also recovers from a corrupt cache.
        """
        if clear:
            logger.debug("Clearing project cache %s", store_path, extra={"path": str(store_path)})
            return cls(store_path)
        if not store_path.exists():
            return cls(store_path)

        lock_file = store_path.with_suffix(".lock")
        try:
            with open(lock_file, "a") as lf:
                fcntl.flock(lf, fcntl.LOCK_SH)
                try:
                    raw = store_path.read_text()
                finally:
                    fcntl.flock(lf, fcntl.LOCK_UN)
        except OSError as e:
            raise StoreReadError(store_path, f"could not read cache file: {e}") from e

        try:
            cache = CacheFile.model_validate_json(raw)
        except ValidationError as e:
            raise StoreFormatError(store_path, f"could not read cache content: {e}") from e
        return cls(store_path, cache.paths)

    def add(self, record: PathRecord) -> bool:
        """Insert `record` unless already known. Returns True if it was new."""
        with self._lock:
            if record in self._records:
                return False
            self._records[record] = None
            return True

    def contains(self, record: PathRecord) -> bool:
        with self._lock:
            return record in self._records

    def snapshot(self) -> list[PathRecord]:
        with self._lock:
            return list(self._records)

    def prune_missing(self) -> int:
        """Drop records whose directory no longer exists. Returns the number removed."""
        with self._lock:
            stale = [r for r in self._records if not os.path.isdir(r.full_path)]
            for record in stale:
                del self._records[record]
        for record in stale:
            logger.debug("Pruned vanished project %s", record.full_path, extra={"path": record.full_path})
        return len(stale)

    def persist(self) -> None:
        """Write the full set to the store, replacing the previous file atomically."""
        payload = CacheFile(paths=self.snapshot()).model_dump_json(indent=2)
        lock_file = self.store_path.with_suffix(".lock")
        tmp = self.store_path.with_suffix(".tmp")
        try:
            self.store_path.parent.mkdir(parents=True, exist_ok=True)
            with open(lock_file, "a") as lf:
                fcntl.flock(lf, fcntl.LOCK_EX)
                try:
                    tmp.write_text(payload)
                    tmp.chmod(0o600)
                    tmp.replace(self.store_path)
                finally:
                    fcntl.flock(lf, fcntl.LOCK_UN)
        except OSError as e:
            raise StoreWriteError(self.store_path, f"could not write cache file: {e}") from e
        logger.debug(
            "Persisted %d projects to %s",
            len(self), self.store_path,
            extra={"path": str(self.store_path), "count": len(self)},
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
