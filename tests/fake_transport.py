"""
In-memory stand-in for SFTPTransport used by the tests.

Keeps a dict of absolute POSIX paths -> entries and records every mutating
call in ``ops`` as (op, path) tuples so tests can assert on order and count.
"""
import errno
import os
import posixpath

from mirrorsync.core.ssh_manager import RemoteEntry


class FakeTransport:
    instances = []

    def __init__(self, connect_error=None):
        self.dirs = {"/": 0.0}
        self.files = {}  # path -> (mtime, size)
        self.ops = []
        self.connected = False
        self.closed = False
        self.connect_error = connect_error
        self.connect_args = None
        self.fail_paths = {}  # path -> exception raised by any op on it
        FakeTransport.instances.append(self)

    # ── helpers for tests ─────────────────────────────────────────────────

    def add_dir(self, path, mtime=0.0):
        parent = posixpath.dirname(path)
        if parent and parent not in self.dirs:
            self.add_dir(parent, mtime)
        self.dirs[path] = mtime

    def add_file(self, path, mtime=0.0, size=1):
        self.add_dir(posixpath.dirname(path))
        self.files[path] = (mtime, size)

    def op_names(self, kind):
        return [p for op, p in self.ops if op == kind]

    def _check(self, path):
        if path in self.fail_paths:
            raise self.fail_paths[path]

    @staticmethod
    def _missing(path):
        return FileNotFoundError(errno.ENOENT, "No such file", path)

    # ── transport API ─────────────────────────────────────────────────────

    def connect(self, host, port, user, password=None, key_path=None):
        self.connect_args = (host, port, user, password, key_path)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def is_active(self):
        return self.connected and not self.closed

    def close(self):
        self.closed = True

    def _require(self):
        if not self.is_active():
            raise ConnectionError("not connected")

    def stat(self, path):
        self._require()
        self._check(path)
        if path in self.dirs:
            return RemoteEntry(posixpath.basename(path), True, self.dirs[path])
        if path in self.files:
            mtime, size = self.files[path]
            return RemoteEntry(posixpath.basename(path), False, mtime, size)
        raise self._missing(path)

    def readdir(self, path):
        self._require()
        self._check(path)
        if path not in self.dirs:
            raise self._missing(path)
        prefix = path.rstrip("/") + "/"
        out = []
        for d, mtime in self.dirs.items():
            if d != path and d.startswith(prefix) and "/" not in d[len(prefix):]:
                out.append(RemoteEntry(d[len(prefix):], True, mtime))
        for f, (mtime, size) in self.files.items():
            if f.startswith(prefix) and "/" not in f[len(prefix):]:
                out.append(RemoteEntry(f[len(prefix):], False, mtime, size))
        return out

    def mkdir(self, path):
        self._require()
        self._check(path)
        if posixpath.dirname(path) not in self.dirs:
            raise self._missing(path)
        self.ops.append(("mkdir", path))
        self.dirs[path] = 0.0

    def upload(self, local, remote):
        self._require()
        self._check(remote)
        if posixpath.dirname(remote) not in self.dirs:
            raise self._missing(remote)
        st = os.stat(local)
        self.ops.append(("upload", remote))
        self.files[remote] = (float(int(st.st_mtime)), st.st_size)

    def unlink(self, path):
        self._require()
        self._check(path)
        if path not in self.files:
            raise self._missing(path)
        self.ops.append(("unlink", path))
        del self.files[path]

    def rmdir(self, path):
        self._require()
        self._check(path)
        if path not in self.dirs:
            raise self._missing(path)
        prefix = path.rstrip("/") + "/"
        if any(p.startswith(prefix) for p in list(self.dirs) + list(self.files)):
            raise OSError(errno.ENOTEMPTY, "Directory not empty", path)
        self.ops.append(("rmdir", path))
        del self.dirs[path]


class FakeSession:
    """RemoteSession look-alike that always hands out one transport."""

    def __init__(self, transport):
        self.transport = transport
        self.acquired = 0
        self.released = 0

    def acquire(self):
        self.acquired += 1
        if not self.transport.connected:
            self.transport.connect("host", 22, "user")
        self.transport.closed = False
        return self.transport

    def release(self, transport=None):
        self.released += 1
        self.transport.closed = True
