"""
Error taxonomy, exception types and failure classification
"""
import errno
import socket
from enum import Enum
from typing import Optional

import paramiko


class ErrorCode(Enum):
    INCOMPLETE_SETTINGS = "incompleteSettings"
    INVALID_PORT = "invalidPort"
    WORKSPACE_MISSING = "workspaceMissing"
    HOST_CONNECTION_FAILED = "hostConnectionFailed"
    AUTH_FAILED = "authFailed"
    CONNECTION_TIMEOUT = "connectionTimeout"
    PERMISSION_DENIED = "permissionDenied"
    SYNC_START_FAILED = "syncStartFailed"
    SYNC_RESTART_FAILED = "syncRestartFailed"
    SYNC_ERROR = "syncError"
    UNKNOWN = "unknown"


MESSAGES = {
    ErrorCode.INCOMPLETE_SETTINGS: "SFTP settings are incomplete. Please check the configuration.",
    ErrorCode.INVALID_PORT: "Invalid port number.",
    ErrorCode.WORKSPACE_MISSING: "The local workspace directory does not exist.",
    ErrorCode.HOST_CONNECTION_FAILED: "Could not connect to the host.",
    ErrorCode.AUTH_FAILED: "User name or password is incorrect.",
    ErrorCode.CONNECTION_TIMEOUT: "The connection timed out.",
    ErrorCode.PERMISSION_DENIED: "Permission denied on the remote path.",
    ErrorCode.SYNC_START_FAILED: "Failed to start sync.",
    ErrorCode.SYNC_RESTART_FAILED: "Failed to restart sync.",
    ErrorCode.SYNC_ERROR: "A sync error occurred.",
    ErrorCode.UNKNOWN: "An unknown error occurred.",
}

# Failures the recovery loop can fix by asking for a corrected setting
RECOVERABLE = frozenset({
    ErrorCode.HOST_CONNECTION_FAILED,
    ErrorCode.AUTH_FAILED,
    ErrorCode.CONNECTION_TIMEOUT,
    ErrorCode.PERMISSION_DENIED,
})


def format_message(code: ErrorCode, detail: Optional[str] = None) -> str:
    msg = MESSAGES[code]
    return f"{msg} {detail}" if detail else msg


class MirrorSyncError(Exception):
    """Base error carrying an ErrorCode."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None):
        super().__init__(format_message(code, detail))
        self.code = code
        self.detail = detail


class IncompleteSettingsError(MirrorSyncError):
    def __init__(self, missing: list[str]):
        super().__init__(ErrorCode.INCOMPLETE_SETTINGS, "missing: " + ", ".join(missing))
        self.missing = missing


class AccessError(MirrorSyncError):
    """A remote stat/readdir/mkdir failed on *path*."""

    def __init__(self, path: str, is_permission: bool, cause: Optional[BaseException] = None):
        code = ErrorCode.PERMISSION_DENIED if is_permission else ErrorCode.UNKNOWN
        super().__init__(code, f"{path}: {cause}" if cause else path)
        self.path = path
        self.is_permission = is_permission
        self.cause = cause


def is_not_found(exc: BaseException) -> bool:
    """True if *exc* means the remote entry does not exist."""
    if isinstance(exc, FileNotFoundError):
        return True
    if isinstance(exc, OSError) and exc.errno == errno.ENOENT:
        return True
    return "No such file" in str(exc)


def is_permission_error(exc: BaseException) -> bool:
    if isinstance(exc, PermissionError):
        return True
    if isinstance(exc, OSError) and exc.errno in (errno.EACCES, errno.EPERM):
        return True
    return "Permission denied" in str(exc)


_HOST_MARKERS = ("getaddrinfo", "Name or service not known", "nodename nor servname",
                 "Connection refused", "Unable to connect", "No route to host")
_AUTH_MARKERS = ("Authentication failed", "No such user",
                 "All configured authentication methods failed")


def classify_error(exc: BaseException) -> ErrorCode:
    """Map a failure to the error taxonomy by inspecting its type, then its text."""
    if isinstance(exc, MirrorSyncError):
        if isinstance(exc, AccessError) and exc.cause is not None and not exc.is_permission:
            return classify_error(exc.cause)
        return exc.code
    if isinstance(exc, paramiko.AuthenticationException):
        return ErrorCode.AUTH_FAILED
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return ErrorCode.CONNECTION_TIMEOUT
    if isinstance(exc, (socket.gaierror, ConnectionError,
                        paramiko.ssh_exception.NoValidConnectionsError)):
        return ErrorCode.HOST_CONNECTION_FAILED
    if is_permission_error(exc):
        return ErrorCode.PERMISSION_DENIED

    text = str(exc)
    if any(m in text for m in _AUTH_MARKERS):
        return ErrorCode.AUTH_FAILED
    if any(m in text for m in _HOST_MARKERS):
        return ErrorCode.HOST_CONNECTION_FAILED
    if "timed out" in text.lower():
        return ErrorCode.CONNECTION_TIMEOUT
    return ErrorCode.UNKNOWN
