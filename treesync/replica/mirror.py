"""Local key-value storage backing a replica.

A mirror is an ordered key -> value map. Reads are synchronous and served
from local state; writes are coroutines so a synchronizer can either await
them or let them run in the background.
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, Iterable, TypeVar

from ..store.codec import StoreCodec

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MirrorStorage(ABC, Generic[T]):
    """Abstract ordered key-value surface used by the replica synchronizer."""

    @abstractmethod
    def get(self, key: str, default: T | None = None) -> T | None:
        """Return the value stored for ``key``, or ``default``."""
        pass

    @abstractmethod
    def contains_key(self, key: str) -> bool:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """All keys in ascending order."""
        pass

    def values(self) -> list[T]:
        return [self.get(key) for key in self.keys()]

    def items(self) -> list[tuple[str, T]]:
        return [(key, self.get(key)) for key in self.keys()]

    def values_between(
        self,
        start_key: str | None = None,
        end_key: str | None = None,
    ) -> list[T]:
        """Values whose keys lie in [start_key, end_key] (bounds optional)."""
        return [
            value
            for key, value in self.items()
            if (start_key is None or key >= start_key)
            and (end_key is None or key <= end_key)
        ]

    def __len__(self) -> int:
        return len(self.keys())

    @abstractmethod
    async def put(self, key: str, value: T) -> None:
        pass

    async def put_all(self, entries: dict[str, T]) -> None:
        for key, value in entries.items():
            await self.put(key, value)

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    async def delete_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            await self.delete(key)

    @abstractmethod
    async def clear(self) -> int:
        """Remove all entries and return how many were removed."""
        pass

    async def close(self) -> None:
        pass


class MemoryMirror(MirrorStorage[T]):
    """Mirror kept in a plain dict. Contents are lost on exit."""

    def __init__(self, initial: dict[str, T] | None = None):
        self._data: dict[str, T] = dict(initial or {})

    def get(self, key: str, default: T | None = None) -> T | None:
        return self._data.get(key, default)

    def contains_key(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> list[str]:
        return sorted(self._data)

    def __len__(self) -> int:
        return len(self._data)

    async def put(self, key: str, value: T) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count


# Schema for persisted mirrors. Several mirrors can share one database file,
# each under its own name.
MIRROR_SCHEMA = """
CREATE TABLE IF NOT EXISTS mirror_entries (
    mirror TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (mirror, key)
);
"""


class SqliteMirror(MirrorStorage[T]):
    """Mirror persisted in a SQLite database.

    Values are stored as the JSON encoding of ``codec.to_payload(value)``
    and decoded with ``codec.from_payload`` on read.
    """

    def __init__(self, db_path: str | Path, name: str, codec: StoreCodec[T]):
        """Initialize the mirror.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests).
            name: Mirror name, separating mirrors that share a database.
            codec: Codec of the mirrored store's value type.
        """
        self.db_path = Path(db_path).expanduser() if db_path != ":memory:" else db_path
        self.name = name
        self.codec = codec
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(MIRROR_SCHEMA)
        self._conn.commit()

        logger.info(f"SqliteMirror '{self.name}' connected to {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info(f"SqliteMirror '{self.name}' closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    def _decode(self, raw: str) -> T:
        return self.codec.from_payload(json.loads(raw))

    def _encode(self, value: T) -> str:
        return json.dumps(self.codec.to_payload(value))

    def get(self, key: str, default: T | None = None) -> T | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT value FROM mirror_entries WHERE mirror = ? AND key = ?",
            (self.name, key),
        ).fetchone()
        return self._decode(row["value"]) if row else default

    def contains_key(self, key: str) -> bool:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT 1 FROM mirror_entries WHERE mirror = ? AND key = ?",
            (self.name, key),
        ).fetchone()
        return row is not None

    def keys(self) -> list[str]:
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT key FROM mirror_entries WHERE mirror = ? ORDER BY key ASC",
            (self.name,),
        )
        return [row["key"] for row in cursor]

    def items(self) -> list[tuple[str, T]]:
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT key, value FROM mirror_entries WHERE mirror = ? ORDER BY key ASC",
            (self.name,),
        )
        return [(row["key"], self._decode(row["value"])) for row in cursor]

    def values(self) -> list[T]:
        return [value for _, value in self.items()]

    def __len__(self) -> int:
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT COUNT(*) FROM mirror_entries WHERE mirror = ?", (self.name,)
        )
        return cursor.fetchone()[0]

    async def put(self, key: str, value: T) -> None:
        await self.put_all({key: value})

    async def put_all(self, entries: dict[str, T]) -> None:
        if not entries:
            return

        conn = self._ensure_connected()
        now = datetime.now().isoformat()
        conn.executemany(
            """
            INSERT INTO mirror_entries (mirror, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (mirror, key) DO UPDATE
            SET value = excluded.value, updated_at = excluded.updated_at
            """,
            [(self.name, key, self._encode(value), now) for key, value in entries.items()],
        )
        conn.commit()

    async def delete(self, key: str) -> None:
        await self.delete_all([key])

    async def delete_all(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return

        conn = self._ensure_connected()
        conn.executemany(
            "DELETE FROM mirror_entries WHERE mirror = ? AND key = ?",
            [(self.name, key) for key in keys],
        )
        conn.commit()

    async def clear(self) -> int:
        conn = self._ensure_connected()
        cursor = conn.execute("DELETE FROM mirror_entries WHERE mirror = ?", (self.name,))
        conn.commit()

        deleted = cursor.rowcount
        logger.debug(f"Cleared {deleted} entries from mirror '{self.name}'")
        return deleted

    def get_stats(self) -> dict[str, Any]:
        """Get mirror statistics."""
        stats: dict[str, Any] = {"name": self.name, "entries": len(self)}
        if isinstance(self.db_path, Path) and self.db_path.exists():
            stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)
        return stats
