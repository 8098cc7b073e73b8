"""
Configuration for mirrorsync

Settings live in a YAML project file (.mirrorsync, searched upward from the
working directory) layered over the global defaults file. They are read fresh
on every load so that edits take effect on the next sync pass.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

import yaml

from .errors import ErrorCode, MirrorSyncError

# ══════════════════════════════════════════════════════════════════════════════
#  DEFAULTS
# ══════════════════════════════════════════════════════════════════════════════

PROJECT_FILE = ".mirrorsync"
IGNORE_FILE = ".syncignore"

DEFAULT_PORT = 22
DEFAULT_REMOTE_PATH = "/"
DEFAULT_INTERVAL = 10  # seconds between idle sync checks
DEFAULT_MAX_UPLOAD_SIZE = 20 * 1024 * 1024  # 20 MB
DEFAULT_MAX_RETRIES = 3  # recovery prompts per failure; 0 = unbounded

# Connect-level retry settings (socket time-outs only)
RETRY_MAX = 3
RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt

CONNECT_TIMEOUT = 20
KEEPALIVE_INTERVAL = 30


class InvalidPortError(MirrorSyncError):
    def __init__(self, value):
        super().__init__(ErrorCode.INVALID_PORT, repr(value))
        self.value = value


def parse_port(value) -> int:
    """Parse and range-check a TCP port."""
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidPortError(value) from None
    if not 0 < port < 65536:
        raise InvalidPortError(value)
    return port


@dataclass
class SyncConfig:
    host: str = ""
    port: int = DEFAULT_PORT
    user: str = ""
    password: Optional[str] = None
    key_path: Optional[str] = None
    remote_path: str = DEFAULT_REMOTE_PATH
    local_root: Path = field(default_factory=Path.cwd)
    interval: float = DEFAULT_INTERVAL
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES

    def missing_fields(self) -> list[str]:
        """Names of required settings that are empty."""
        missing = [name for name in ("host", "user", "remote_path") if not getattr(self, name)]
        if not self.password and not self.key_path:
            missing.append("password")
        return missing

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}:{self.port}:{self.remote_path}"

    @classmethod
    def from_profile(cls, profile: dict, base_dir: Optional[Path] = None) -> "SyncConfig":
        """
        Build a config from a flat profile dict.
        Supports keys: server, port, user, password, ssh_key, local_root,
                       remote_root, base_remote (prepended to remote_root if it
                       is relative), interval, max_upload_size, max_retries.
        """
        cfg = cls()
        if "server" in profile:
            cfg.host = str(profile["server"] or "")
        if "port" in profile:
            cfg.port = parse_port(profile["port"])
        if "user" in profile:
            cfg.user = str(profile["user"] or "")
        elif "username" in profile:
            cfg.user = str(profile["username"] or "")
        if profile.get("password"):
            cfg.password = str(profile["password"])
        if profile.get("ssh_key"):
            cfg.key_path = str(Path(str(profile["ssh_key"])).expanduser())
        if "local_root" in profile:
            root = Path(str(profile["local_root"])).expanduser()
            if not root.is_absolute() and base_dir is not None:
                root = base_dir / root
            cfg.local_root = root.resolve()
        elif base_dir is not None:
            cfg.local_root = Path(base_dir).resolve()
        if profile.get("remote_root"):
            rr = str(profile["remote_root"])
            base = str(profile.get("base_remote", "") or "").rstrip("/")
            if base and not rr.startswith("/"):
                rr = f"{base}/{rr}"
            cfg.remote_path = str(PurePosixPath(rr))
        if "interval" in profile:
            cfg.interval = float(profile["interval"])
        if "max_upload_size" in profile:
            cfg.max_upload_size = int(profile["max_upload_size"])
        if "max_retries" in profile:
            cfg.max_retries = int(profile["max_retries"])
        return cfg

    def to_profile(self) -> dict:
        """Inverse of from_profile (without the profile name)."""
        profile = {
            "server": self.host,
            "port": self.port,
            "user": self.user,
            "local_root": Path(self.local_root).as_posix(),
            "remote_root": self.remote_path,
            "interval": self.interval,
            "max_upload_size": self.max_upload_size,
            "max_retries": self.max_retries,
        }
        if self.password:
            profile["password"] = self.password
        if self.key_path:
            profile["ssh_key"] = self.key_path
        return profile


# ══════════════════════════════════════════════════════════════════════════════
#  GLOBAL CONFIG FILE  ── $XDG_CONFIG_HOME/mirrorsync/config.yaml
# ══════════════════════════════════════════════════════════════════════════════

def get_global_config_dir() -> Path:
    """Return the global config directory for mirrorsync."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "mirrorsync"
    if os.name == "nt":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "mirrorsync"
    return Path.home() / ".config" / "mirrorsync"


def load_global_config() -> dict:
    """Load global config from the mirrorsync config directory."""
    cfg_path = get_global_config_dir() / "config.yaml"
    if not cfg_path.is_file():
        return {}
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}


# ══════════════════════════════════════════════════════════════════════════════
#  PROJECT CONFIG FILE  ── .mirrorsync (searched upward)
# ══════════════════════════════════════════════════════════════════════════════

def find_project_file(start: Optional[Path] = None) -> Optional[Path]:
    """
    Search upward from *start* (default: cwd) for a .mirrorsync YAML file.
    Returns the Path if found, or None if no .mirrorsync exists in any parent.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / PROJECT_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_project_file(path: Path) -> dict:
    """Parse a .mirrorsync YAML file and return its contents as a dict."""
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_profile(data: dict, profile_name: str = "default") -> dict:
    """
    Extract a named profile from a .mirrorsync or config.yaml data dict.
    Falls back to the first profile if the named one is not found.
    Returns a flat profile dict merged with top-level defaults.
    """
    defaults = data.get("defaults", {}) or {}
    profiles = data.get("profiles", []) or []
    if not profiles:
        return defaults.copy()
    profile = next((p for p in profiles if p.get("name") == profile_name), None)
    if profile is None:
        profile = profiles[0]
    merged = defaults.copy()
    merged.update(profile)
    return merged


# ══════════════════════════════════════════════════════════════════════════════
#  STORE  ── load / save / change notification
# ══════════════════════════════════════════════════════════════════════════════

class ConfigStore:
    """
    Configuration store backed by one profile of a .mirrorsync file.

    ``load()`` never caches. ``save()`` rewrites only the selected profile and
    notifies subscribers unless told not to; ``poll()`` notices edits made to
    the file by other programs.
    """

    def __init__(self, path: Path, profile: str = "default"):
        self.path = Path(path)
        self.profile = profile
        self._listeners: list[Callable[[], None]] = []
        self._mtime = self._file_mtime()

    def _file_mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def _read(self) -> dict:
        if not self.path.is_file():
            return {}
        try:
            data = load_project_file(self.path)
        except (OSError, yaml.YAMLError) as exc:
            raise MirrorSyncError(ErrorCode.INCOMPLETE_SETTINGS,
                                  f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise MirrorSyncError(ErrorCode.INCOMPLETE_SETTINGS,
                                  f"{self.path} does not contain a mapping")
        return data

    def load(self) -> SyncConfig:
        """
        Resolve the profile into a SyncConfig. Any unreadable file or
        unconvertible value raises MirrorSyncError (InvalidPortError for the port).
        """
        try:
            global_defaults = load_global_config().get("defaults", {}) or {}
            merged = dict(global_defaults)
            merged.update(get_profile(self._read(), self.profile))
            return SyncConfig.from_profile(merged, base_dir=self.path.parent)
        except MirrorSyncError:
            raise
        except (AttributeError, TypeError, ValueError) as exc:
            raise MirrorSyncError(ErrorCode.INCOMPLETE_SETTINGS,
                                  f"bad value in {self.path}: {exc}") from exc

    def save(self, cfg: SyncConfig, notify: bool = True):
        data = self._read()
        profiles = data.get("profiles") or []
        entry = next((p for p in profiles if p.get("name") == self.profile), None)
        if entry is None:
            entry = {"name": self.profile}
            profiles.append(entry)
        entry.update(cfg.to_profile())
        # an absolute remote_root is written, so a base prefix no longer applies
        entry.pop("base_remote", None)
        data["profiles"] = profiles
        with self.path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, default_flow_style=False)
        self._mtime = self._file_mtime()
        if notify:
            self._notify()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def poll(self) -> bool:
        """Notify subscribers if the file changed on disk since the last look."""
        mtime = self._file_mtime()
        if mtime == self._mtime:
            return False
        self._mtime = mtime
        self._notify()
        return True

    def _notify(self):
        for listener in list(self._listeners):
            listener()
