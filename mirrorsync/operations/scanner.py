"""
Tree listing (local and remote)
"""
import os
from dataclasses import dataclass
from pathlib import Path

from ..errors import AccessError, is_permission_error
from ..utils.ignore_patterns import is_excluded_name, is_ignored
from ..utils.logging import vlog
from ..utils.paths import remote_join


@dataclass(frozen=True)
class LocalEntry:
    is_dir: bool
    mtime: float
    size: int = 0


def list_remote(transport, base: str) -> dict:
    """
    Recursively list the remote tree under *base*.
    Returns {rel_posix: RemoteEntry} for files and directories alike.
    Any stat/readdir failure raises AccessError tagged with the failing path.
    """
    result = {}
    try:
        transport.stat(base)
    except Exception as exc:
        raise AccessError(base, is_permission_error(exc), exc) from exc

    stack = [""]
    while stack:
        rel_dir = stack.pop()
        abs_dir = remote_join(base, rel_dir)
        try:
            entries = transport.readdir(abs_dir)
        except Exception as exc:
            raise AccessError(abs_dir, is_permission_error(exc), exc) from exc
        for entry in entries:
            if entry.name in (".", ".."):
                continue
            rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            result[rel] = entry
            if entry.is_dir:
                stack.append(rel)
    return result


def list_local(root: Path, patterns: list) -> dict[str, LocalEntry]:
    """
    Returns {rel_posix: LocalEntry} for every file and directory under *root*,
    skipping hidden entries, build/dependency directories and ignored paths.
    An entry whose stat fails is treated as absent.
    """
    result: dict[str, LocalEntry] = {}
    root = Path(root)
    stack = [(root, "")]
    while stack:
        abs_dir, rel_dir = stack.pop()
        try:
            names = sorted(os.listdir(abs_dir))
        except OSError as exc:
            vlog(f"  [scan] cannot read {abs_dir}: {exc}")
            continue
        for name in names:
            if is_excluded_name(name):
                continue
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if is_ignored(rel, patterns):
                continue
            path = abs_dir / name
            try:
                st = path.stat()
            except OSError:
                continue
            is_dir = path.is_dir()
            result[rel] = LocalEntry(is_dir=is_dir, mtime=st.st_mtime,
                                    size=0 if is_dir else st.st_size)
            if is_dir:
                stack.append((path, rel))
    return result
