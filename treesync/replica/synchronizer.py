"""Local replica of a remote store.

The synchronizer owns a mirror and keeps it in step with a remote store,
either by bulk reloads or by applying the store's translated event stream.
Reads are served locally; every mutation goes to the remote store first and
is then mirrored. A failed mirror write never rolls back the remote write.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterator, TypeVar

from ..errors import MirrorWriteError, OfflineError, PatchOnMissingValueError
from ..rest import Filter
from ..store import (
    Abort,
    Delete,
    StoreDelete,
    StoreEvent,
    StoreInvalid,
    StorePatch,
    StorePut,
    StoreReset,
    Update,
)
from ..store.store import Store
from ..store.transaction import TransactionCallback
from .mirror import MirrorStorage
from .subscription import ErrorCallback, Subscription, auto_renew

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnlineCheck = Callable[[], bool | Awaitable[bool]]
FilterCallback = Callable[[], Filter | None | Awaitable[Filter | None]]


class ReloadStrategy(Enum):
    """How fetched entries are merged into the mirror on reload."""

    CLEAR = "clear"  # wipe, then insert everything
    COMPARE_KEY = "compare_key"  # write everything, drop missing keys
    COMPARE_VALUE = "compare_value"  # like COMPARE_KEY, but skip unchanged values


class ReplicaSynchronizer(Generic[T]):
    """Keeps a local mirror synchronized with a remote store.

    Supports:
    - Reload: bulk fetch and reconcile with a ReloadStrategy
    - Streaming: apply the store's change events as they arrive
    - Passthrough writes: remote first, then mirrored locally
    - Local reads: served from the mirror only
    """

    def __init__(
        self,
        store: Store[T],
        mirror: MirrorStorage[T],
        reload_strategy: ReloadStrategy = ReloadStrategy.COMPARE_KEY,
        await_mirror_writes: bool = False,
        is_online: OnlineCheck | None = None,
        on_mirror_error: ErrorCallback | None = None,
    ):
        """Initialize the synchronizer.

        Args:
            store: Remote store to mirror.
            mirror: Local storage, exclusively owned by this synchronizer.
            reload_strategy: Reconciliation used by reload() and reset events.
            await_mirror_writes: Await each mirror write before returning.
                If False, writes run in the background and failures are
                only reported to ``on_mirror_error`` and the log.
            is_online: Predicate checked before every remote mutation.
            on_mirror_error: Called with background mirror write failures.
        """
        self.store = store
        self.mirror = mirror
        self.reload_strategy = reload_strategy
        self.await_mirror_writes = await_mirror_writes
        self._is_online = is_online
        self._on_mirror_error = on_mirror_error
        self._pending: set[asyncio.Task] = set()
        self._last_write: asyncio.Task | None = None

    # ==================== Online check & mirror writes ====================

    async def is_online(self) -> bool:
        if self._is_online is None:
            return True
        result = self._is_online()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _check_online(self) -> None:
        if not await self.is_online():
            logger.debug(f"Refusing operation on '{self.store.path}': offline")
            raise OfflineError()

    async def _mirror_write(self, write: Awaitable[Any], remote_result: Any = None) -> None:
        """Run a mirror write according to the await policy."""
        if self.await_mirror_writes:
            try:
                await write
            except Exception as e:
                raise MirrorWriteError(f"Mirror write failed: {e}", remote_result) from e
            return

        task = asyncio.ensure_future(self._after(self._last_write, write))
        self._last_write = task
        self._pending.add(task)
        task.add_done_callback(self._write_done)

    async def _after(self, previous: asyncio.Task | None, write: Awaitable[Any]) -> None:
        # Background writes land in the order they were issued.
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        await write

    def _write_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(f"Background mirror write failed: {error}")
        if self._on_mirror_error is not None:
            self._on_mirror_error(error)

    async def flush(self) -> None:
        """Wait for all background mirror writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==================== Reload ====================

    async def reload(self, filter: Filter | None = None) -> None:
        """Fetch the remote entries and reconcile the mirror with them.

        Raises:
            OfflineError: If the online check fails.
        """
        await self._check_online()
        if filter is not None:
            entries = await self.store.query(filter)
        else:
            entries = (await self.store.all_versioned()).value
        logger.info(f"Reloaded {len(entries)} entries from '{self.store.path}'")
        await self._reset(entries)

    async def _reset(self, entries: dict[str, T]) -> None:
        await self.flush()
        match self.reload_strategy:
            case ReloadStrategy.CLEAR:
                await self._mirror_write(self._clear_and_put(entries))
            case ReloadStrategy.COMPARE_KEY:
                deleted = set(self.mirror.keys()) - set(entries)
                await self._mirror_write(self._put_and_delete(dict(entries), deleted))
            case ReloadStrategy.COMPARE_VALUE:
                deleted = set(self.mirror.keys()) - set(entries)
                changed = {
                    key: value
                    for key, value in entries.items()
                    if not self.mirror.contains_key(key) or self.mirror.get(key) != value
                }
                await self._mirror_write(self._put_and_delete(changed, deleted))

    async def _clear_and_put(self, entries: dict[str, T]) -> None:
        await self.mirror.clear()
        await self.mirror.put_all(entries)

    async def _put_and_delete(self, entries: dict[str, T], deleted: set[str]) -> None:
        await self.mirror.put_all(entries)
        await self.mirror.delete_all(sorted(deleted))

    # ==================== Events ====================

    async def apply_event(self, event: StoreEvent[T]) -> None:
        """Fold one translated store event into the mirror.

        Raises:
            PatchOnMissingValueError: If a patch targets a key not in the mirror.
        """
        match event:
            case StoreReset(data=data):
                await self._reset(data)
            case StorePut(key=key, value=value):
                await self._mirror_write(self.mirror.put(key, value))
            case StoreDelete(key=key):
                await self._mirror_write(self.mirror.delete(key))
            case StorePatch(key=key, patch=patch):
                await self.flush()
                current = self.mirror.get(key)
                if current is None:
                    raise PatchOnMissingValueError(key)
                await self._mirror_write(self.mirror.put(key, patch.apply(current)))
            case StoreInvalid(reason=reason):
                logger.warning(f"Ignoring invalid event on '{self.store.path}': {reason}")
            case _:
                raise TypeError(f"Unsupported store event: {event!r}")

    def _stream_handler(self, on_error: ErrorCallback | None):
        """Event handler for subscriptions.

        A patch of an unmirrored key only fails that event: it is reported to
        ``on_error`` (or logged) and the stream keeps being applied.
        """

        async def handle(event: StoreEvent[T]) -> None:
            try:
                await self.apply_event(event)
            except PatchOnMissingValueError as e:
                logger.warning(f"Skipping event on '{self.store.path}': {e}")
                if on_error is not None:
                    on_error(e)

        return handle

    async def stream(
        self,
        filter: Filter | None = None,
        clear_cache: bool = True,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Apply the store's change stream to the mirror in the background.

        Args:
            filter: Only stream entries matching this filter.
            clear_cache: Clear the mirror before subscribing.
            on_error: Called with the error that ends the stream, and with
                patches of unmirrored keys, which are skipped.
        """
        if clear_cache:
            await self.clear()
        events = self.store.stream_query(filter) if filter else self.store.stream_all()
        logger.info(f"Streaming '{self.store.path}' into mirror")
        return Subscription(events, self._stream_handler(on_error), on_error)

    async def stream_renewed(
        self,
        on_renew_filter: FilterCallback | None = None,
        clear_cache: bool = True,
        on_error: ErrorCallback | None = None,
        renew_delay: float = 0.0,
    ) -> Subscription:
        """Like stream(), but re-opens the stream when it ends or auth is revoked.

        ``on_renew_filter`` is evaluated for every (re)connection.
        """
        if clear_cache:
            await self.clear()

        async def open_stream():
            filter = None
            if on_renew_filter is not None:
                filter = on_renew_filter()
                if inspect.isawaitable(filter):
                    filter = await filter
            if filter is not None:
                return self.store.stream_query(filter)
            return self.store.stream_all()

        logger.info(f"Streaming '{self.store.path}' into mirror (auto renew)")
        return Subscription(
            auto_renew(open_stream, renew_delay),
            self._stream_handler(on_error),
            on_error,
        )

    # ==================== Remote passthroughs ====================

    async def fetch(self, key: str) -> T | None:
        """Read one entry from the remote store and mirror it."""
        await self._check_online()
        value = await self.store.read(key)
        if value is None:
            await self._mirror_write(self.mirror.delete(key), value)
        else:
            await self._mirror_write(self.mirror.put(key, value), value)
        return value

    async def put(self, key: str, value: T) -> T | None:
        """Write one entry remotely, then mirror what the server stored."""
        await self._check_online()
        saved = await self.store.write(key, value)
        await self._mirror_write(self.mirror.put(key, saved), saved)
        return saved

    async def patch(self, key: str, fields: dict[str, Any]) -> T | None:
        """Update fields of one entry remotely, then mirror the patched value.

        The server only echoes the patched fields, so the mirrored value is
        the current mirrored value with the fields applied. Entries that are
        not mirrored are refused before the remote store is contacted.

        Raises:
            PatchOnMissingValueError: If the entry is not in the mirror.
        """
        await self._check_online()
        await self.flush()
        current = self.mirror.get(key)
        if current is None:
            raise PatchOnMissingValueError(key)
        await self.store.update(key, fields, silent=True)
        patched = self.store.codec.apply_patch(current, fields)
        await self._mirror_write(self.mirror.put(key, patched), patched)
        return patched

    async def delete(self, key: str) -> None:
        """Delete one entry remotely, then from the mirror."""
        await self._check_online()
        await self.store.delete(key, silent=True)
        await self._mirror_write(self.mirror.delete(key))

    async def add(self, value: T) -> str:
        """Create an entry under a server-generated key and mirror it."""
        await self._check_online()
        key = await self.store.create(value)
        await self._mirror_write(self.mirror.put(key, value), key)
        return key

    async def transaction(self, key: str, callback: TransactionCallback) -> T | None:
        """Run a remote transaction and mirror its committed outcome.

        Raises:
            OfflineError: If the online check fails.
            PreconditionFailedError: If another writer committed first.
        """
        await self._check_online()
        transaction = await self.store.transaction(key)

        outcome = callback(transaction.value)
        if inspect.isawaitable(outcome):
            outcome = await outcome

        match outcome:
            case Update(value=value):
                result = await transaction.commit_update(value)
                await self._mirror_write(self.mirror.put(key, result), result)
                return result
            case Delete():
                await transaction.commit_delete()
                await self._mirror_write(self.mirror.delete(key))
                return None
            case Abort():
                return None
            case _:
                raise TypeError(f"Unsupported transaction outcome: {outcome!r}")

    # ==================== Local reads ====================

    def get(self, key: str, default: T | None = None) -> T | None:
        return self.mirror.get(key, default)

    def contains_key(self, key: str) -> bool:
        return self.mirror.contains_key(key)

    def keys(self) -> list[str]:
        return self.mirror.keys()

    def values(self) -> list[T]:
        return self.mirror.values()

    def items(self) -> list[tuple[str, T]]:
        return self.mirror.items()

    def values_between(
        self,
        start_key: str | None = None,
        end_key: str | None = None,
    ) -> list[T]:
        return self.mirror.values_between(start_key, end_key)

    def to_dict(self) -> dict[str, T]:
        return dict(self.mirror.items())

    @property
    def is_empty(self) -> bool:
        return len(self.mirror) == 0

    def __len__(self) -> int:
        return len(self.mirror)

    def __iter__(self) -> Iterator[str]:
        return iter(self.mirror.keys())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.mirror.contains_key(key)

    # ==================== Local housekeeping ====================

    async def clear(self) -> int:
        """Clear the mirror without touching the remote store."""
        await self.flush()
        return await self.mirror.clear()

    async def close(self) -> None:
        """Flush pending writes and close the mirror."""
        await self.flush()
        await self.mirror.close()
