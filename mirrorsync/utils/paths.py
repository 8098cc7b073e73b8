"""
Path normalisation between the local separator and the remote (POSIX) one.

Every component keys its entries by a *relative key*: a forward-slash path
relative to either the local root or the remote base path.
"""
import os
from pathlib import Path, PurePosixPath
from typing import Union


def to_remote(path: str) -> str:
    """Convert a local-style path to forward-slash form."""
    return path.replace("\\", "/").replace(os.sep, "/")


def to_local(path: str) -> str:
    """Convert a forward-slash path to the local separator."""
    return path.replace("/", os.sep)


def remote_join(base: str, rel: str) -> str:
    """Join a relative key onto a remote base path."""
    if not rel:
        return str(PurePosixPath(base))
    return str(PurePosixPath(base) / rel)


def relative_key(root: Union[str, Path], path: Union[str, Path]) -> str:
    """
    Canonical relative key of *path* under *root*.
    Returns "" when *path* is the root itself.
    """
    rel = os.path.relpath(os.fspath(path), os.fspath(root))
    if rel == os.curdir:
        return ""
    return to_remote(rel)


def path_depth(rel: str) -> int:
    """Number of segments in a relative key."""
    return len([p for p in rel.split("/") if p])
