"""
Change ledger: pending local changes waiting to be applied remotely
"""
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..utils.paths import path_depth


class ChangeKind(Enum):
    ADD = "add"
    ADD_DIRECTORY = "addDir"
    MODIFY = "change"
    DELETE_FILE = "unlink"
    DELETE_DIRECTORY = "unlinkDir"

    @property
    def is_delete(self) -> bool:
        return self in (ChangeKind.DELETE_FILE, ChangeKind.DELETE_DIRECTORY)


@dataclass(frozen=True)
class PendingChange:
    path: str
    kind: ChangeKind
    seq: int


@dataclass
class Batches:
    """Ledger entries split into the three ordered phases of a sync pass."""
    deletions: list[PendingChange] = field(default_factory=list)
    add_directories: list[PendingChange] = field(default_factory=list)
    uploads: list[PendingChange] = field(default_factory=list)

    def __len__(self):
        return len(self.deletions) + len(self.add_directories) + len(self.uploads)


class ChangeLedger:
    """
    Map of relative key -> latest pending change.

    The watcher records, the reconciler resolves. Each record gets a fresh
    sequence number; ``resolve`` only drops an entry whose sequence number is
    unchanged, so a change recorded while its path was being transferred stays
    queued for the next pass.
    """

    def __init__(self):
        self._entries: dict[str, PendingChange] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def record(self, path: str, kind: ChangeKind) -> PendingChange:
        if not path:
            raise ValueError("ledger keys must not be empty")
        if "\\" in path:
            raise ValueError(f"ledger keys must use forward slashes: {path!r}")
        with self._lock:
            self._seq += 1
            change = PendingChange(path, kind, self._seq)
            self._entries[path] = change
            return change

    def resolve(self, change: PendingChange) -> bool:
        """Remove *change* if it is still the latest entry for its path."""
        with self._lock:
            current = self._entries.get(change.path)
            if current is not None and current.seq == change.seq:
                del self._entries[change.path]
                return True
            return False

    def clear(self):
        with self._lock:
            self._entries.clear()

    def get(self, path: str) -> Optional[ChangeKind]:
        with self._lock:
            change = self._entries.get(path)
        return change.kind if change else None

    def snapshot(self) -> list[PendingChange]:
        with self._lock:
            return list(self._entries.values())

    @property
    def version(self) -> int:
        """Bumped by every record; lets callers detect new work."""
        with self._lock:
            return self._seq

    def partition(self) -> Batches:
        """
        Split the current entries into ordered batches:
        deletions deepest first, directory creations shallowest first, uploads.
        """
        batches = Batches()
        for change in self.snapshot():
            if change.kind.is_delete:
                batches.deletions.append(change)
            elif change.kind is ChangeKind.ADD_DIRECTORY:
                batches.add_directories.append(change)
            else:
                batches.uploads.append(change)
        batches.deletions.sort(key=lambda c: (-path_depth(c.path), -len(c.path), c.path))
        batches.add_directories.sort(key=lambda c: (path_depth(c.path), len(c.path), c.path))
        batches.uploads.sort(key=lambda c: c.path)
        return batches

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __bool__(self):
        return len(self) > 0

    def __contains__(self, path):
        with self._lock:
            return path in self._entries
