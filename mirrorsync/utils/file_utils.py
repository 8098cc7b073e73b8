"""
File utilities (mtime comparison)
"""


def local_is_newer(local_mtime: float, remote_mtime: float) -> bool:
    """
    True if the local copy is strictly newer than the remote one.
    SFTP carries whole seconds, so both sides are truncated first.
    """
    return int(local_mtime) > int(remote_mtime)
