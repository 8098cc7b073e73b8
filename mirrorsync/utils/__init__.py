"""Utilities (logging, retry, patterns, paths, file utilities)"""
from .logging import log, vlog, warn, set_verbose
from .retry import retried
from .ignore_patterns import load_ignore_patterns, is_ignored
from .paths import to_remote, to_local, remote_join, relative_key
from .file_utils import local_is_newer

__all__ = [
    "log", "vlog", "warn", "set_verbose",
    "retried",
    "load_ignore_patterns", "is_ignored",
    "to_remote", "to_local", "remote_join", "relative_key",
    "local_is_newer",
]
