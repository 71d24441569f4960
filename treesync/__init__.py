"""treesync - client library for a remote tree-structured key-value store.

Typed CRUD over HTTP, single-key optimistic transactions, translated change
streams, and local replicas that stay synchronized with the remote tree.
"""

from .errors import (
    AuthRevokedError,
    MirrorWriteError,
    MissingETagError,
    OfflineError,
    PatchOnMissingValueError,
    PreconditionFailedError,
    RemoteRequestError,
    StreamCancelledError,
    TransactionAlreadyCommittedError,
    TreeSyncError,
)
from .replica import MemoryMirror, ReloadStrategy, ReplicaSynchronizer, SqliteMirror
from .rest import Filter, RestApi
from .store import Store, StoreCodec, json_codec

__version__ = "0.1.0"

__all__ = [
    "AuthRevokedError",
    "MirrorWriteError",
    "MissingETagError",
    "OfflineError",
    "PatchOnMissingValueError",
    "PreconditionFailedError",
    "RemoteRequestError",
    "StreamCancelledError",
    "TransactionAlreadyCommittedError",
    "TreeSyncError",
    "MemoryMirror",
    "ReloadStrategy",
    "ReplicaSynchronizer",
    "SqliteMirror",
    "Filter",
    "RestApi",
    "Store",
    "StoreCodec",
    "json_codec",
]
