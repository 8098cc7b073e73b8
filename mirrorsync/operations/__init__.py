"""Operations (scan, transfer, delete)"""
from .scanner import LocalEntry, list_remote, list_local
from .transfer import ensure_remote_dir, upload_file, exceeds_limit
from .delete import remove_remote, delete_remote

__all__ = [
    "LocalEntry", "list_remote", "list_local",
    "ensure_remote_dir", "upload_file", "exceeds_limit",
    "remove_remote", "delete_remote",
]
