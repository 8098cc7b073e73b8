"""
Sync orchestrator - lifecycle state machine, sync worker and recovery loop
"""
import threading
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from watchdog.observers import Observer

from .. import config as _cfg
from ..errors import RECOVERABLE, ErrorCode, MirrorSyncError, classify_error
from ..state.ledger import ChangeLedger
from ..ui import ConsoleUI
from ..utils.logging import log, vlog, warn
from ..utils.paths import to_remote
from .ssh_manager import RemoteSession, SFTPTransport
from .sync_engine import Reconciler, SyncReport
from .watcher import LedgerEventHandler, start_watcher, stop_watcher


class SyncState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"


# Settings the operator is asked to correct for each failure class
RECOVERY_FIELDS = {
    ErrorCode.HOST_CONNECTION_FAILED: ("host",),
    ErrorCode.AUTH_FAILED: ("user", "password"),
    ErrorCode.CONNECTION_TIMEOUT: ("port",),
    ErrorCode.PERMISSION_DENIED: ("remote_path",),
}

PROMPTS = {
    "host": "SFTP host name",
    "port": "SFTP port",
    "user": "SFTP user name",
    "password": "SFTP password",
    "remote_path": "Remote base path",
    "interval": "Sync interval (seconds)",
    "max_upload_size": "Maximum upload size (bytes)",
}

WORKER_JOIN_TIMEOUT = 5


def describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class SyncOrchestrator:
    """
    Owns the ledger, the remote session, the watcher and the sync worker for
    one local root, and moves between IDLE, STARTING and RUNNING.

    Every public method reports failures through the UI instead of raising,
    so nothing here can take the host process down.
    """

    def __init__(self, store: "_cfg.ConfigStore", ui: Optional[ConsoleUI] = None,
                 transport_factory: Callable = SFTPTransport,
                 observer_factory: Callable = Observer):
        self.store = store
        self.ui = ui or ConsoleUI()
        self.state = SyncState.IDLE
        self.ledger = ChangeLedger()
        self.session = RemoteSession(store.load, transport_factory)
        self.reconciler = Reconciler(self.session, self.ledger, store.load,
                                     on_pending=self._on_pending)
        self._observer_factory = observer_factory
        self._observer = None
        self._worker: Optional[threading.Thread] = None
        self._worker_stop: Optional[threading.Event] = None
        self._wake = threading.Event()
        self._lifecycle = threading.Lock()
        self._pass_version = 0
        self._generation = 0  # bumped on every teardown
        self._unsubscribe = store.subscribe(self.on_config_changed)

    def _set_state(self, state: SyncState):
        self.state = state
        self.ui.set_state(state)

    # ── lifecycle ───────────────────────────────────────────────────────────

    def start(self) -> bool:
        """Initial diff, then watch. Returns True once RUNNING."""
        with self._lifecycle:
            if self.state is not SyncState.IDLE:
                self.ui.info("Sync is already running.")
                return False

            try:
                cfg = self.store.load()
            except MirrorSyncError as exc:
                self.ui.error(exc.code, exc.detail)
                self.configure()
                return False
            missing = cfg.missing_fields()
            if missing:
                self.ui.error(ErrorCode.INCOMPLETE_SETTINGS, "missing: " + ", ".join(missing))
                self.configure()
                return False
            root = Path(cfg.local_root)
            if not root.is_dir():
                self.ui.error(ErrorCode.WORKSPACE_MISSING, str(root))
                return False

            self._set_state(SyncState.STARTING)
            try:
                self.with_recovery(self.reconciler.initial_diff)
                self._attach(root)
            except Exception as exc:
                self._teardown()
                code = classify_error(exc)
                detail = describe(exc) if code is ErrorCode.UNKNOWN else f"{code.value}: {describe(exc)}"
                self.ui.error(ErrorCode.SYNC_START_FAILED, detail)
                self._set_state(SyncState.IDLE)
                return False

            self._set_state(SyncState.RUNNING)
            log(f"[sync] mirroring {root} → {cfg.target}")
            return True

    def stop(self):
        """Stop watching, drop the session and forget pending changes."""
        with self._lifecycle:
            self._teardown()
            if self.state is not SyncState.IDLE:
                self._set_state(SyncState.IDLE)

    def restart(self) -> bool:
        self.stop()
        if self.start():
            return True
        self.ui.error(ErrorCode.SYNC_RESTART_FAILED)
        return False

    def close(self):
        self.stop()
        self._unsubscribe()

    def _attach(self, root: Path):
        handler = LedgerEventHandler(root, self.ledger, trigger=self.request_sync)
        self._observer = start_watcher(root, handler, self._observer_factory)
        self._wake.clear()
        self._worker_stop = threading.Event()
        self._worker = threading.Thread(target=self._run_worker, args=(self._worker_stop,),
                                        name="mirrorsync-worker", daemon=True)
        self._worker.start()

    def _teardown(self):
        self._generation += 1
        if self._worker_stop is not None:
            self._worker_stop.set()
        self._wake.set()
        stop_watcher(self._observer)
        self._observer = None
        self.session.release()
        self.ledger.clear()
        worker, self._worker, self._worker_stop = self._worker, None, None
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=WORKER_JOIN_TIMEOUT)
            if worker.is_alive():
                vlog("[sync] worker still finishing an in-flight pass")

    # ── sync worker ─────────────────────────────────────────────────────────

    def _interval(self) -> float:
        try:
            return max(0.1, float(self.store.load().interval))
        except Exception:
            return float(_cfg.DEFAULT_INTERVAL)

    def _run_worker(self, stop: threading.Event):
        while not stop.is_set():
            self._wake.wait(timeout=self._interval())
            if stop.is_set():
                break
            self._wake.clear()
            if self.ledger:
                self.sync_now()

    def request_sync(self):
        """Ask the worker for a pass as soon as possible."""
        self._wake.set()

    def _on_pending(self):
        """
        Called after a pass that left entries behind. Entries recorded while
        the pass ran go out right away; entries that only failed are retried
        on the next interval tick, so a persistent failure cannot spin the
        worker.
        """
        if self.ledger.version != self._pass_version:
            self.request_sync()

    def sync_now(self) -> Optional[SyncReport]:
        """Run one sync pass; failures are reported and the ledger kept."""
        generation = self._generation
        self._pass_version = self.ledger.version
        try:
            return self.with_recovery(self.reconciler.sync_pass, generation)
        except Exception as exc:
            if generation != self._generation:
                log(f"[sync] pass interrupted by stop: {describe(exc)}")
                return None
            self.session.release(getattr(exc, "transport", None))
            self.ui.error(ErrorCode.SYNC_ERROR, describe(exc))
            return None

    # ── configuration ───────────────────────────────────────────────────────

    def on_config_changed(self):
        """Restart while running; test the connection while idle."""
        try:
            self.store.load()
        except MirrorSyncError as exc:
            # keep whatever is running until the file parses again
            self.ui.error(exc.code, exc.detail)
            return
        if self.state is SyncState.RUNNING:
            log("[config] settings changed; restarting sync")
            self.restart()
        elif self.state is SyncState.IDLE:
            self.test_connection()

    def test_connection(self) -> bool:
        try:
            cfg = self.store.load()
        except MirrorSyncError as exc:
            self.ui.error(exc.code, exc.detail)
            return False
        missing = cfg.missing_fields()
        if missing:
            self.ui.error(ErrorCode.INCOMPLETE_SETTINGS, "missing: " + ", ".join(missing))
            return False
        self.session.release()
        try:
            self.session.acquire()
        except Exception as exc:
            self.ui.error(classify_error(exc), describe(exc))
            return False
        finally:
            self.session.release()
        self.ui.info(f"Connection to {cfg.host} succeeded.")
        return True

    def configure(self) -> bool:
        """
        Interactive configuration entry. Saves and notifies on success;
        returns False if the operator cancels any prompt.
        """
        try:
            cfg = self.store.load()
        except MirrorSyncError:
            cfg = _cfg.SyncConfig(local_root=self.store.path.parent.resolve())
        fields = ["host", "port", "user", "password", "remote_path", "interval", "max_upload_size"]
        if cfg.key_path:
            fields.remove("password")
        for name in fields:
            value = self._ask_field(cfg, name)
            if value is None:
                self.ui.info("Configuration cancelled.")
                return False
            setattr(cfg, name, value)
        try:
            self.store.save(cfg)
        except MirrorSyncError as exc:
            self.ui.error(exc.code, exc.detail)
            return False
        self.ui.info(f"Settings saved to {self.store.path}")
        return True

    def _ask_field(self, cfg, name: str):
        prompt = PROMPTS[name]
        current = getattr(cfg, name)
        if name == "password":
            return self.ui.ask(prompt, secret=True)
        if name in ("port", "interval", "max_upload_size"):
            while True:
                raw = self.ui.ask(prompt, str(current))
                if raw is None:
                    return None
                try:
                    if name == "port":
                        return _cfg.parse_port(raw)
                    value = float(raw) if name == "interval" else int(raw)
                    if value <= 0:
                        raise ValueError(raw)
                    return value
                except MirrorSyncError as exc:
                    self.ui.error(exc.code, exc.detail)
                except ValueError:
                    self.ui.error(ErrorCode.INCOMPLETE_SETTINGS, f"{prompt} must be a positive number")
        value = self.ui.ask(prompt, current or None)
        if value is not None and name == "remote_path":
            value = str(PurePosixPath(to_remote(value)))
        return value

    # ── recovery ────────────────────────────────────────────────────────────

    def with_recovery(self, operation: Callable, generation: Optional[int] = None):
        """
        Run *operation*; on a connection-class failure ask the operator for
        the matching setting, persist it and retry with a fresh session.
        Gives up (re-raising the failure) when the operator declines or after
        ``max_retries`` corrections. With *generation*, a failure raised after
        the sync was stopped or restarted is re-raised untouched.
        """
        corrections = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                if generation is not None and generation != self._generation:
                    raise
                code = classify_error(exc)
                if code not in RECOVERABLE:
                    raise
                self.session.release(getattr(exc, "transport", None))
                self.ui.error(code, describe(exc))
                limit = self.store.load().max_retries
                if limit and corrections >= limit:
                    warn(f"[recovery] giving up after {corrections} correction(s)")
                    raise
                if not self._prompt_correction(code):
                    raise
                corrections += 1
                log("[recovery] settings updated; retrying")

    def _prompt_correction(self, code: ErrorCode) -> bool:
        cfg = self.store.load()
        for name in RECOVERY_FIELDS[code]:
            value = self._ask_field(cfg, name)
            if value is None:
                return False
            setattr(cfg, name, value)
        # the retry below already uses the new values; no restart wanted
        self.store.save(cfg, notify=False)
        return True
