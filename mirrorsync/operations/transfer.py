"""
Transfer operations (remote directory creation and file upload)
"""
from pathlib import Path, PurePosixPath

from ..errors import AccessError, is_not_found, is_permission_error
from ..utils.logging import log, warn


def ensure_remote_dir(transport, path: str):
    """
    Create *path* and any missing parents on the remote, like ``mkdir -p``.
    Each segment is stat'ed from the root down and created only when it does
    not exist; any other stat failure raises AccessError.
    """
    posix = PurePosixPath(path)
    current = PurePosixPath(posix.anchor) if posix.anchor else PurePosixPath()
    for part in posix.parts[1:] if posix.anchor else posix.parts:
        current = current / part
        target = str(current)
        try:
            transport.stat(target)
            continue
        except Exception as exc:
            if not is_not_found(exc):
                raise AccessError(target, is_permission_error(exc), exc) from exc
        try:
            transport.mkdir(target)
        except Exception as exc:
            raise AccessError(target, is_permission_error(exc), exc) from exc


def exceeds_limit(local_path: Path, max_upload_size: int) -> bool:
    """True if the file is larger than the configured upload limit."""
    return max_upload_size > 0 and local_path.stat().st_size > max_upload_size


def upload_file(transport, local_path: Path, remote_path: str, max_upload_size: int) -> bool:
    """
    Upload one file. Returns False, without transferring anything, when the
    file is bigger than *max_upload_size*; raises on transfer failure.
    """
    if exceeds_limit(local_path, max_upload_size):
        size_kb = local_path.stat().st_size // 1024
        warn(f"  [SKIP-SIZE] {local_path} ({size_kb} KB) exceeds the "
             f"{max_upload_size // 1024} KB upload limit")
        return False
    transport.upload(str(local_path), remote_path)
    log(f"  [PUSH ✓] {remote_path}")
    return True
