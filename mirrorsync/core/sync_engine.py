"""
Sync engine - initial full-tree diff and incremental sync passes
"""
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ..errors import is_not_found
from ..operations.delete import delete_remote
from ..operations.scanner import list_local, list_remote
from ..operations.transfer import ensure_remote_dir, upload_file
from ..state.ledger import ChangeLedger, PendingChange
from ..utils.file_utils import local_is_newer
from ..utils.ignore_patterns import is_ignored, load_ignore_patterns
from ..utils.logging import log, vlog, warn
from ..utils.paths import path_depth, remote_join, to_local


@dataclass
class SyncReport:
    """What one initial diff or sync pass did."""
    deleted: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    uploaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def operations(self) -> int:
        return len(self.deleted) + len(self.created) + len(self.uploaded)

    def summary(self) -> str:
        return (f"deleted={len(self.deleted)}  created={len(self.created)}  "
                f"uploaded={len(self.uploaded)}  skipped={len(self.skipped)}  "
                f"failed={len(self.failed)}")


class ConnectionLost(ConnectionError):
    """The remote session died part-way through a diff or pass."""

    def __init__(self, message: str, transport=None):
        super().__init__(message)
        self.transport = transport


def _deepest_first(rel: str):
    return -path_depth(rel), -len(rel), rel


def _shallowest_first(rel: str):
    return path_depth(rel), len(rel), rel


class Reconciler:
    """
    Converges the remote tree with the local one.

    ``initial_diff`` compares the whole trees once; ``sync_pass`` applies the
    change ledger. Both borrow the transport from the shared RemoteSession.
    Failures on a single entry are logged and never abort the batch.
    """

    def __init__(self, session, ledger: ChangeLedger, config_loader: Callable,
                 local_root: Optional[Path] = None,
                 on_pending: Optional[Callable[[], None]] = None):
        self.session = session
        self.ledger = ledger
        self.config_loader = config_loader
        self.local_root = Path(local_root) if local_root is not None else None
        self.on_pending = on_pending
        self._pass_lock = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._pass_lock.locked()

    def _root(self, cfg) -> Path:
        return self.local_root if self.local_root is not None else Path(cfg.local_root)

    def _item_failed(self, report: SyncReport, transport, rel: str, exc: Exception):
        warn(f"  [FAIL] {rel}: {exc}")
        report.failed.append((rel, exc))
        if not transport.is_active():
            raise ConnectionLost(f"connection lost while processing {rel}: {exc}",
                                 transport) from exc

    # ── initial diff ────────────────────────────────────────────────────────

    def initial_diff(self) -> SyncReport:
        cfg = self.config_loader()
        root = self._root(cfg)
        base = cfg.remote_path
        patterns = load_ignore_patterns(root)
        transport = self.session.acquire()

        log(f"[diff] ensuring remote base {base}")
        ensure_remote_dir(transport, base)

        log("[scan] listing remote tree …")
        remote = {rel: e for rel, e in list_remote(transport, base).items()
                  if not is_ignored(rel, patterns)}
        log("[scan] listing local tree …")
        local = list_local(root, patterns)
        log(f"[scan] {len(local)} local / {len(remote)} remote entries")

        report = SyncReport()
        # a file on one side and a directory on the other: drop it remotely, then recreate
        mismatched = {rel for rel in local
                      if rel in remote and local[rel].is_dir != remote[rel].is_dir}

        # ── 1. remote-only entries, children before parents ─────────────────
        remote_only = sorted((rel for rel in remote if rel not in local or rel in mismatched),
                             key=_deepest_first)
        for rel in remote_only:
            try:
                delete_remote(transport, remote_join(base, rel), rel)
            except Exception as exc:
                self._item_failed(report, transport, rel, exc)
                continue
            report.deleted.append(rel)

        # ── 2. local-only directories, parents before children ──────────────
        new_dirs = sorted((rel for rel, e in local.items()
                           if e.is_dir and (rel not in remote or rel in mismatched)),
                          key=_shallowest_first)
        for rel in new_dirs:
            try:
                ensure_remote_dir(transport, remote_join(base, rel))
                log(f"  [MKDIR ✓] {rel}")
            except Exception as exc:
                self._item_failed(report, transport, rel, exc)
                continue
            report.created.append(rel)

        # ── 3. files: new locally, or newer locally ─────────────────────────
        for rel in sorted(local):
            entry = local[rel]
            if entry.is_dir:
                continue
            if rel in remote and rel not in mismatched:
                if not local_is_newer(entry.mtime, remote[rel].mtime):
                    vlog(f"  [SKIP] {rel}")
                    continue
            try:
                sent = upload_file(transport, root / to_local(rel),
                                   remote_join(base, rel), cfg.max_upload_size)
            except Exception as exc:
                self._item_failed(report, transport, rel, exc)
                continue
            (report.uploaded if sent else report.skipped).append(rel)

        log(f"[diff] done: {report.summary()}")
        return report

    # ── incremental pass ────────────────────────────────────────────────────

    def sync_pass(self) -> Optional[SyncReport]:
        """
        Apply the ledger once. Returns None without doing anything if another
        pass is already running; that pass reads the live ledger, so the
        trigger is not lost.
        """
        if not self._pass_lock.acquire(blocking=False):
            vlog("[sync] pass already running; trigger coalesced")
            return None
        try:
            return self._run_pass()
        finally:
            self._pass_lock.release()
            if self.ledger and self.on_pending is not None:
                self.on_pending()

    def _run_pass(self) -> SyncReport:
        report = SyncReport()
        if not self.ledger:
            return report

        cfg = self.config_loader()
        root = self._root(cfg)
        base = cfg.remote_path
        transport = self.session.acquire()

        batches = self.ledger.partition()
        log(f"[sync] pending: delete={len(batches.deletions)}  "
            f"mkdir={len(batches.add_directories)}  upload={len(batches.uploads)}")

        # ── 1. deletions (files and directories), deepest first ─────────────
        for change in batches.deletions:
            try:
                delete_remote(transport, remote_join(base, change.path), change.path)
            except Exception as exc:
                self._item_failed(report, transport, change.path, exc)
                continue
            self.ledger.resolve(change)
            report.deleted.append(change.path)

        # ── 2. directory creation, shallowest first ─────────────────────────
        for change in batches.add_directories:
            try:
                ensure_remote_dir(transport, remote_join(base, change.path))
                log(f"  [MKDIR ✓] {change.path}")
            except Exception as exc:
                self._item_failed(report, transport, change.path, exc)
                continue
            self.ledger.resolve(change)
            report.created.append(change.path)

        # ── 3. uploads ──────────────────────────────────────────────────────
        for change in batches.uploads:
            try:
                sent = self._upload(transport, root, base, change, cfg.max_upload_size)
            except Exception as exc:
                self._item_failed(report, transport, change.path, exc)
                continue
            self.ledger.resolve(change)
            if sent is None:
                continue
            (report.uploaded if sent else report.skipped).append(change.path)

        log(f"[sync] pass done: {report.summary()}")
        return report

    def _upload(self, transport, root: Path, base: str, change: PendingChange,
                max_upload_size: int) -> Optional[bool]:
        """
        Upload one ledger entry. Returns True when sent, False when skipped for
        size and None when the local file no longer exists.
        """
        local_path = root / to_local(change.path)
        if not local_path.is_file():
            vlog(f"  [GONE] {change.path} no longer exists locally")
            return None
        remote_path = remote_join(base, change.path)
        try:
            return upload_file(transport, local_path, remote_path, max_upload_size)
        except Exception as exc:
            if not is_not_found(exc):
                raise
        # parent directory is missing remotely; create it and try once more
        parent = change.path.rpartition("/")[0]
        ensure_remote_dir(transport, remote_join(base, parent))
        return upload_file(transport, local_path, remote_path, max_upload_size)
