"""
Local filesystem watcher: watchdog events -> change ledger entries
"""
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..operations.scanner import list_local
from ..state.ledger import ChangeKind, ChangeLedger
from ..utils.ignore_patterns import is_ignored, load_ignore_patterns
from ..utils.logging import vlog, warn
from ..utils.paths import relative_key


class LedgerEventHandler(FileSystemEventHandler):
    """
    Records every relevant filesystem event under *root* into the ledger,
    then calls *trigger* so a sync pass can pick it up.
    """

    def __init__(self, root: Path, ledger: ChangeLedger,
                 trigger: Optional[Callable[[], None]] = None,
                 patterns: Optional[list] = None):
        self.root = Path(root)
        self.ledger = ledger
        self.trigger = trigger
        self.patterns = load_ignore_patterns(self.root) if patterns is None else patterns

    def _key(self, path) -> Optional[str]:
        if isinstance(path, bytes):
            path = path.decode("utf-8", errors="surrogateescape")
        rel = relative_key(self.root, path)
        if not rel or rel.startswith("../") or rel == "..":
            return None
        if is_ignored(rel, self.patterns):
            return None
        return rel

    def _record(self, rel: str, kind: ChangeKind):
        self.ledger.record(rel, kind)
        vlog(f"[watch] {kind.value} {rel}")

    def _fire(self):
        if self.trigger is not None:
            self.trigger()

    def on_created(self, event):
        rel = self._key(event.src_path)
        if rel is None:
            return
        self._record(rel, ChangeKind.ADD_DIRECTORY if event.is_directory else ChangeKind.ADD)
        self._fire()

    def on_modified(self, event):
        # directory mtimes change whenever a child does; nothing to upload
        if event.is_directory:
            return
        rel = self._key(event.src_path)
        if rel is None:
            return
        self._record(rel, ChangeKind.MODIFY)
        self._fire()

    def on_deleted(self, event):
        rel = self._key(event.src_path)
        if rel is None:
            return
        self._record(rel, ChangeKind.DELETE_DIRECTORY if event.is_directory else ChangeKind.DELETE_FILE)
        self._fire()

    def on_moved(self, event):
        src = self._key(event.src_path)
        dest = self._key(event.dest_path)
        if src is not None:
            self._record(src, ChangeKind.DELETE_DIRECTORY if event.is_directory else ChangeKind.DELETE_FILE)
        if dest is not None:
            if event.is_directory:
                self._record(dest, ChangeKind.ADD_DIRECTORY)
                # children arrive with the directory, not as separate creations
                for rel, entry in list_local(self.root / dest, self.patterns).items():
                    self._record(f"{dest}/{rel}",
                                 ChangeKind.ADD_DIRECTORY if entry.is_dir else ChangeKind.ADD)
            else:
                self._record(dest, ChangeKind.ADD)
        if src is not None or dest is not None:
            self._fire()


def start_watcher(root: Path, handler: LedgerEventHandler,
                  observer_factory: Callable = Observer):
    """Schedule *handler* recursively on *root* and start observing."""
    observer = observer_factory()
    observer.schedule(handler, str(root), recursive=True)
    observer.start()
    vlog(f"[watch] watching {root}")
    return observer


def stop_watcher(observer, timeout: float = 10):
    """Stop an observer started by start_watcher; safe on a half-started one."""
    if observer is None:
        return
    try:
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=timeout)
    except RuntimeError as exc:
        warn(f"[watch] observer did not stop cleanly: {exc}")
