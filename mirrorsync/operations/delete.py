"""
Delete operations (remote files and directory trees)
"""
from ..errors import is_not_found
from ..utils.logging import log
from ..utils.paths import remote_join


def remove_remote(transport, remote_path: str):
    """
    Delete a remote file or directory. Directories are emptied recursively,
    children first. A path that is already gone counts as deleted.
    """
    try:
        entry = transport.stat(remote_path)
    except Exception as exc:
        if is_not_found(exc):
            return
        raise

    if not entry.is_dir:
        _quiet_missing(transport.unlink, remote_path)
        return

    # explicit stack: (path, children_done)
    stack = [(remote_path, False)]
    while stack:
        path, children_done = stack.pop()
        if children_done:
            _quiet_missing(transport.rmdir, path)
            continue
        stack.append((path, True))
        try:
            children = transport.readdir(path)
        except Exception as exc:
            if is_not_found(exc):
                stack.pop()
                continue
            raise
        for child in children:
            if child.name in (".", ".."):
                continue
            child_path = remote_join(path, child.name)
            if child.is_dir:
                stack.append((child_path, False))
            else:
                _quiet_missing(transport.unlink, child_path)


def _quiet_missing(op, path: str):
    try:
        op(path)
    except Exception as exc:
        if not is_not_found(exc):
            raise


def delete_remote(transport, remote_path: str, rel: str):
    """Delete one ledger entry remotely and log it."""
    remove_remote(transport, remote_path)
    log(f"  [DEL-REMOTE ✓] {rel}")
