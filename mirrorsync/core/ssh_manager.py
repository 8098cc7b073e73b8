"""
SFTP transport (paramiko) and the process-wide remote session
"""
import os
import posixpath
import socket
import stat
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from .. import config as _cfg
from ..utils.logging import log, vlog
from ..utils.retry import retried


@dataclass(frozen=True)
class RemoteEntry:
    name: str
    is_dir: bool
    mtime: float
    size: int = 0


def _entry(name: str, attrs: paramiko.SFTPAttributes) -> RemoteEntry:
    return RemoteEntry(
        name=name,
        is_dir=stat.S_ISDIR(attrs.st_mode or 0),
        mtime=float(attrs.st_mtime or 0),
        size=int(attrs.st_size or 0),
    )


class SFTPTransport:
    """
    Wraps paramiko SSHClient + SFTPClient behind the small set of primitives
    the sync engine needs: mkdir, stat, readdir, upload, unlink, rmdir.
    Sends SSH keep-alives to reduce mid-transfer drops.
    """

    def __init__(self):
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    # ── connection ─────────────────────────────────────────────────────────

    @retried(retry_on=(socket.timeout,))
    def connect(self, host: str, port: int, user: str,
                password: Optional[str] = None, key_path: Optional[str] = None):
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kw: dict = dict(hostname=host, port=port, username=user,
                        timeout=_cfg.CONNECT_TIMEOUT, banner_timeout=30, auth_timeout=30)
        if key_path:
            kw["key_filename"] = key_path
        if password:
            kw["password"] = password
        try:
            client.connect(**kw)
            # Keep-alive: send a NOP every 30s
            client.get_transport().set_keepalive(_cfg.KEEPALIVE_INTERVAL)
            sftp = client.open_sftp()
        except Exception:
            client.close()
            raise
        self._ssh = client
        self._sftp = sftp

    def is_active(self) -> bool:
        try:
            return bool(self._ssh and self._sftp and self._ssh.get_transport().is_active())
        except Exception:
            return False

    def close(self):
        try:
            if self._sftp:
                self._sftp.close()
        except Exception:
            pass
        try:
            if self._ssh:
                self._ssh.close()
        except Exception:
            pass
        self._ssh = None
        self._sftp = None

    def _client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise ConnectionError("SFTP session is closed")
        return self._sftp

    # ── sftp ops ────────────────────────────────────────────────────────────

    def mkdir(self, path: str):
        self._client().mkdir(path)

    def stat(self, path: str) -> RemoteEntry:
        return _entry(posixpath.basename(path.rstrip("/")), self._client().stat(path))

    def readdir(self, path: str) -> list[RemoteEntry]:
        return [_entry(a.filename, a) for a in self._client().listdir_attr(path)]

    def upload(self, local: str, remote: str):
        """Upload a file and stamp the remote copy with the local mtime."""
        sftp = self._client()
        sftp.put(local, remote)
        st = os.stat(local)
        sftp.utime(remote, (st.st_atime, st.st_mtime))

    def unlink(self, path: str):
        self._client().remove(path)

    def rmdir(self, path: str):
        self._client().rmdir(path)


class RemoteSession:
    """
    Owns at most one live transport for the whole process.

    ``acquire()`` hands out the open transport or establishes a new one from
    freshly loaded settings. Establishment runs under a lock, so a second
    caller waits for the first connection instead of opening its own.
    """

    def __init__(self, config_loader: Callable[[], "_cfg.SyncConfig"],
                 transport_factory: Callable[[], SFTPTransport] = SFTPTransport):
        self._config_loader = config_loader
        self._factory = transport_factory
        self._transport = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    def acquire(self):
        with self._lock:
            if self._transport is not None:
                if self._transport.is_active():
                    return self._transport
                vlog("[SSH] cached session is dead; reconnecting")
                self._transport.close()
                self._transport = None

            cfg = self._config_loader()
            log(f"[SSH] connecting to {cfg.user}@{cfg.host}:{cfg.port} …")
            transport = self._factory()
            try:
                transport.connect(cfg.host, cfg.port, cfg.user, cfg.password, cfg.key_path)
            except Exception:
                transport.close()
                raise
            self._transport = transport
            log("[SSH] connected ✓")
            return transport

    def release(self, transport=None):
        """
        Close the open transport. When *transport* is given, only close it if
        it is still the one in use; a newer session is left alone.
        """
        with self._lock:
            if self._transport is None:
                return
            if transport is not None and transport is not self._transport:
                vlog("[SSH] stale transport released; current session kept")
                return
            self._transport.close()
            self._transport = None
        log("[SSH] disconnected.")
