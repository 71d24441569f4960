"""Single-key optimistic-concurrency transactions.

A transaction reads a value together with its etag, lets the caller decide
what to do with it, and commits the decision as a conditional write guarded
by that etag. If another writer committed in between, the server rejects the
write and PreconditionFailedError is raised. Nothing is retried here.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, TypeVar, Union

from ..errors import TransactionAlreadyCommittedError

if TYPE_CHECKING:
    from .store import Store

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Update(Generic[T]):
    """Commit ``value`` as the new remote value."""

    value: T


@dataclass(frozen=True)
class Delete:
    """Commit a deletion of the remote value."""


@dataclass(frozen=True)
class Abort:
    """Leave the remote value untouched."""


TransactionOutcome = Union[Update[T], Delete, Abort]

TransactionCallback = Callable[[T | None], Union[TransactionOutcome, Awaitable[TransactionOutcome]]]


class Transaction(Generic[T]):
    """An open transaction on one key. Can be committed exactly once."""

    def __init__(
        self,
        store: "Store[T]",
        key: str,
        value: T | None,
        etag: str,
        silent: bool = False,
    ):
        self.store = store
        self.key = key
        self.value = value
        self.etag = etag
        self.silent = silent
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    def _begin_commit(self) -> None:
        if self._committed:
            raise TransactionAlreadyCommittedError(self.key)
        self._committed = True

    async def commit_update(self, value: T) -> T | None:
        """Write ``value`` if the remote value is unchanged since the read.

        Returns:
            The value echoed by the server, or None for silent transactions.

        Raises:
            PreconditionFailedError: If the remote value changed meanwhile.
            TransactionAlreadyCommittedError: If already committed.
        """
        self._begin_commit()
        response = await self.store.api.put(
            self.store.codec.to_payload(value),
            path=self.store.entry_path(self.key),
            silent=self.silent,
            if_match=self.etag,
        )
        logger.debug(f"Committed update of '{self.key}' (etag {self.etag})")
        return None if self.silent else self.store.codec.from_payload(response.data)

    async def commit_delete(self) -> None:
        """Delete the entry if the remote value is unchanged since the read.

        Raises:
            PreconditionFailedError: If the remote value changed meanwhile.
            TransactionAlreadyCommittedError: If already committed.
        """
        self._begin_commit()
        await self.store.api.delete(
            path=self.store.entry_path(self.key),
            silent=True,
            if_match=self.etag,
        )
        logger.debug(f"Committed delete of '{self.key}' (etag {self.etag})")

    def __repr__(self) -> str:
        return f"Transaction(key={self.key!r}, etag={self.etag!r}, committed={self._committed})"


async def run_transaction(
    transaction: Transaction[T],
    callback: TransactionCallback,
) -> T | None:
    """Drive an open transaction with a caller-supplied transform.

    The callback receives the current value and returns an Update, Delete or
    Abort outcome (directly or as an awaitable).

    Returns:
        The committed value for Update, None for Delete and Abort.
    """
    outcome = callback(transaction.value)
    if inspect.isawaitable(outcome):
        outcome = await outcome

    match outcome:
        case Update(value=value):
            result = await transaction.commit_update(value)
            return value if result is None else result
        case Delete():
            await transaction.commit_delete()
            return None
        case Abort():
            logger.debug(f"Transaction on '{transaction.key}' aborted")
            return None
        case _:
            raise TypeError(f"Unsupported transaction outcome: {outcome!r}")
