"""Local replicas of remote stores.

Provides a synchronizer that keeps a mirror in step with a remote store for
offline-tolerant reads, plus in-memory and SQLite mirror backends.
"""

from .mirror import MemoryMirror, MirrorStorage, SqliteMirror
from .subscription import Subscription, auto_renew
from .synchronizer import ReloadStrategy, ReplicaSynchronizer

__all__ = [
    "MemoryMirror",
    "MirrorStorage",
    "SqliteMirror",
    "Subscription",
    "auto_renew",
    "ReloadStrategy",
    "ReplicaSynchronizer",
]
