"""Exception types raised by treesync.

Stream-fatal errors (AuthRevokedError, StreamCancelledError) end the
subscription that raised them. Everything else is raised at the call site
that triggered it.
"""

from typing import Any


class TreeSyncError(Exception):
    """Base exception for all treesync errors."""


class AuthRevokedError(TreeSyncError):
    """The server revoked the credentials of an open event stream."""

    def __init__(self, message: str = "Stream authentication was revoked by the server"):
        super().__init__(message)


class StreamCancelledError(TreeSyncError):
    """The server cancelled an event stream (e.g. security rules changed)."""


class PatchOnMissingValueError(TreeSyncError):
    """A patch was applied to a value that is not known locally."""

    def __init__(self, key: str | None = None):
        self.key = key
        if key is None:
            message = "Cannot apply a patch to a missing value"
        else:
            message = f"Cannot apply a patch to missing value for key '{key}'"
        super().__init__(message)


class PreconditionFailedError(TreeSyncError):
    """A conditional write or delete lost a race against another writer.

    Raised when the remote value changed since the etag was issued.
    The remote value is left untouched.
    """

    def __init__(self, path: str, etag: str | None = None):
        self.path = path
        self.etag = etag
        super().__init__(f"Precondition failed for '{path}' (etag {etag!r} is stale)")


class MissingETagError(TreeSyncError):
    """An etag was requested from the server but none was returned."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Server did not return an ETag header for '{path}'")


class TransactionAlreadyCommittedError(TreeSyncError):
    """A single-commit transaction was committed twice."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Transaction for '{key}' has already been committed")


class OfflineError(TreeSyncError):
    """A mutating replica operation was refused because the device is offline."""

    def __init__(self):
        super().__init__("The operation cannot be executed - device is offline")


class MirrorWriteError(TreeSyncError):
    """Writing to the local mirror failed after the remote mutation succeeded.

    The remote state is not rolled back. ``remote_result`` holds whatever the
    remote operation returned.
    """

    def __init__(self, message: str, remote_result: Any = None):
        self.remote_result = remote_result
        super().__init__(message)


class RemoteRequestError(TreeSyncError):
    """The remote store answered with an HTTP error status."""

    def __init__(self, status_code: int, message: str, path: str | None = None):
        self.status_code = status_code
        self.message = message
        self.path = path
        super().__init__(f"HTTP {status_code}: {message}")
