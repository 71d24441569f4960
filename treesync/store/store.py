"""Typed access to the entries below one path of the remote tree."""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Generic, TypeVar

from ..errors import MissingETagError
from ..rest import DbResponse, Filter, RestApi
from .codec import StoreCodec
from .events import DataEvent, StoreEvent
from .transaction import Transaction, TransactionCallback, run_transaction
from .translator import StoreEventTranslator, decode_all

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Versioned(Generic[T]):
    """A value together with the etag the server issued for it."""

    value: T
    etag: str


class Store(Generic[T]):
    """A collection of typed entries stored below a fixed path.

    Each direct child of the store's path is one entry, addressed by its key.
    Values are converted with the store's codec.
    """

    def __init__(self, api: RestApi, sub_paths: list[str], codec: StoreCodec[T]):
        """Initialize the store.

        Args:
            api: REST client for the remote database.
            sub_paths: Path segments from the database root to this store.
            codec: Conversion functions for the store's value type.
        """
        for segment in sub_paths:
            _check_segment(segment)
        self.api = api
        self.sub_paths = list(sub_paths)
        self.codec = codec
        self._translator = StoreEventTranslator(self)

    @property
    def path(self) -> str:
        return "/".join(self.sub_paths)

    def entry_path(self, key: str | None = None) -> str:
        """Path of the entry ``key``, or of the store itself if key is None."""
        if key is None:
            return self.path
        _check_segment(key)
        return "/".join([*self.sub_paths, key])

    def sub_store(self, path: str, codec: StoreCodec[U]) -> "Store[U]":
        """Create a store for the entries below ``path`` inside this store."""
        return Store(self.api, [*self.sub_paths, path], codec)

    def __repr__(self) -> str:
        return f"Store(path={self.path!r})"

    # ==================== Reads ====================

    async def keys(self) -> list[str]:
        """List the keys of all entries."""
        response = await self.api.get(self.path, shallow=True)
        return list((response.data or {}).keys())

    async def all(self) -> dict[str, T]:
        """Read all entries."""
        response = await self.api.get(self.path)
        return decode_all(response.data, self.codec.from_payload)

    async def all_versioned(self) -> Versioned[dict[str, T]]:
        """Read all entries together with the etag of the whole subtree."""
        response = await self.api.get(self.path, etag=True)
        etag = _require_etag(response, self.path)
        return Versioned(decode_all(response.data, self.codec.from_payload), etag)

    async def read(self, key: str) -> T | None:
        """Read one entry. Missing entries decode from a None payload."""
        response = await self.api.get(self.entry_path(key))
        return self.codec.from_payload(response.data)

    async def read_versioned(self, key: str) -> Versioned[T | None]:
        """Read one entry together with its etag."""
        path = self.entry_path(key)
        response = await self.api.get(path, etag=True)
        return Versioned(self.codec.from_payload(response.data), _require_etag(response, path))

    async def query(self, filter: Filter) -> dict[str, T]:
        """Read the entries matching ``filter``."""
        response = await self.api.get(self.path, filter=filter)
        return decode_all(response.data, self.codec.from_payload)

    async def query_keys(self, filter: Filter) -> list[str]:
        """List the keys of the entries matching ``filter``."""
        response = await self.api.get(self.path, filter=filter, shallow=True)
        return list((response.data or {}).keys())

    # ==================== Writes ====================

    async def write(
        self,
        key: str,
        value: T,
        silent: bool = False,
        etag: str | None = None,
    ) -> T | None:
        """Create or replace one entry.

        Args:
            key: Entry key.
            value: New value.
            silent: Don't ask the server to echo the written value.
            etag: Only write if the remote entry still has this etag.

        Returns:
            The value as stored by the server, or None when silent.
        """
        response = await self.api.put(
            self.codec.to_payload(value),
            path=self.entry_path(key),
            silent=silent,
            if_match=etag,
        )
        return None if silent else self.codec.from_payload(response.data)

    async def write_versioned(
        self,
        key: str,
        value: T,
        etag: str | None = None,
    ) -> Versioned[T]:
        """Create or replace one entry and return the new etag."""
        path = self.entry_path(key)
        response = await self.api.put(
            self.codec.to_payload(value),
            path=path,
            etag=True,
            if_match=etag,
        )
        return Versioned(self.codec.from_payload(response.data), _require_etag(response, path))

    async def create(self, value: T) -> str:
        """Store ``value`` under a server-generated key and return that key."""
        response = await self.api.post(self.codec.to_payload(value), path=self.path)
        return response.data["name"]

    async def update(
        self,
        key: str,
        fields: dict[str, Any],
        silent: bool = False,
    ) -> T | None:
        """Update some fields of one entry.

        Returns:
            The patched fields as echoed by the server, decoded, or None when
            silent.
        """
        response = await self.api.patch(fields, path=self.entry_path(key), silent=silent)
        return None if silent else self.codec.from_payload(response.data)

    async def delete(
        self,
        key: str,
        silent: bool = False,
        etag: str | None = None,
    ) -> T | None:
        """Delete one entry.

        Args:
            key: Entry key.
            silent: Don't ask the server for a response body.
            etag: Only delete if the remote entry still has this etag.
        """
        response = await self.api.delete(self.entry_path(key), silent=silent, if_match=etag)
        return None if silent else self.codec.from_payload(response.data)

    async def delete_versioned(self, key: str, etag: str | None = None) -> str:
        """Delete one entry and return the etag of the now empty entry."""
        path = self.entry_path(key)
        response = await self.api.delete(path, silent=True, etag=True, if_match=etag)
        return _require_etag(response, path)

    # ==================== Transactions ====================

    async def transaction(self, key: str, silent: bool = False) -> Transaction[T]:
        """Start a transaction on one entry.

        Reads the entry with its etag. The returned handle exposes the value
        and commits an update or delete guarded by that etag.

        Raises:
            MissingETagError: If the server returned no etag.
        """
        path = self.entry_path(key)
        response = await self.api.get(path, etag=True)
        etag = _require_etag(response, path)
        logger.debug(f"Started transaction on '{path}' (etag {etag})")
        return Transaction(
            store=self,
            key=key,
            value=self.codec.from_payload(response.data),
            etag=etag,
            silent=silent,
        )

    async def run_transaction(self, key: str, callback: TransactionCallback) -> T | None:
        """Read, transform and conditionally write one entry.

        ``callback`` receives the current value and returns Update, Delete or
        Abort. Returns the committed value for Update, otherwise None.

        Raises:
            PreconditionFailedError: If another writer committed first.
        """
        transaction = await self.transaction(key)
        return await run_transaction(transaction, callback)

    # ==================== Streams ====================

    def stream_all(self) -> AsyncIterator[StoreEvent[T]]:
        """Stream changes of all entries."""
        return self._translator.translate(self.api.stream(self.path))

    def stream_keys(self) -> AsyncIterator[DataEvent[str]]:
        """Stream changes of the key set."""
        return self._translator.translate_keys(self.api.stream(self.path, shallow=True))

    def stream_entry(self, key: str) -> AsyncIterator[DataEvent[T]]:
        """Stream the value of one entry."""
        return self._translator.translate_value(self.api.stream(self.entry_path(key)))

    def stream_query(self, filter: Filter) -> AsyncIterator[StoreEvent[T]]:
        """Stream changes of the entries matching ``filter``."""
        return self._translator.translate(self.api.stream(self.path, filter=filter))

    def stream_query_keys(self, filter: Filter) -> AsyncIterator[DataEvent[str]]:
        """Stream changes of the key set of the entries matching ``filter``."""
        return self._translator.translate_keys(
            self.api.stream(self.path, shallow=True, filter=filter)
        )


def _check_segment(segment: str) -> None:
    if not segment or "/" in segment:
        raise ValueError(f"Invalid path segment: {segment!r}")


def _require_etag(response: DbResponse, path: str) -> str:
    if response.etag is None:
        raise MissingETagError(path)
    return response.etag
