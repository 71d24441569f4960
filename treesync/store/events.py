"""Typed change events produced from a store's event stream.

StoreEvent covers a store's whole address space (all keys below its path);
DataEvent is the single-value analogue used when observing one entry or the
key set of a subtree. Both are closed unions of frozen dataclasses meant to be
consumed with ``match``.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from ..errors import PatchOnMissingValueError

if TYPE_CHECKING:
    from .store import Store

T = TypeVar("T")


def _freeze(value: Any) -> Any:
    """Hashable view of a JSON-like value."""
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


class PatchSet(Generic[T]):
    """A deferred partial update bound to the store that can apply it.

    Holds the raw field map from a patch notification and a reference to the
    originating store, whose codec knows how to fold the fields into a value.
    """

    __slots__ = ("store", "data")

    def __init__(self, store: "Store[T]", data: dict[str, Any]):
        self.store = store
        self.data = data

    def apply(self, value: T | None) -> T:
        """Apply the patch to ``value`` and return the patched value.

        Raises:
            PatchOnMissingValueError: If ``value`` is None.
        """
        if value is None:
            raise PatchOnMissingValueError()
        return self.store.codec.apply_patch(value, self.data)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, PatchSet):
            return NotImplemented
        return self.store is other.store and self.data == other.data

    def __hash__(self) -> int:
        return hash((id(self.store), _freeze(self.data)))

    def __repr__(self) -> str:
        return f"PatchSet({self.data!r})"


# ==================== Store events ====================


@dataclass(frozen=True)
class StoreReset(Generic[T]):
    """The whole subtree was replaced."""

    data: dict[str, T]


@dataclass(frozen=True)
class StorePut(Generic[T]):
    """One entry was created or replaced."""

    key: str
    value: T


@dataclass(frozen=True)
class StoreDelete:
    """One entry was removed."""

    key: str


@dataclass(frozen=True)
class StorePatch(Generic[T]):
    """One entry was partially updated."""

    key: str
    patch: PatchSet[T]


@dataclass(frozen=True)
class StoreInvalid:
    """A notification that could not be interpreted. Not fatal."""

    reason: str


StoreEvent = Union[StoreReset[T], StorePut[T], StoreDelete, StorePatch[T], StoreInvalid]


# ==================== Data events ====================


@dataclass(frozen=True)
class DataClear:
    """The observed value was removed."""


@dataclass(frozen=True)
class DataValue(Generic[T]):
    """The observed value changed."""

    value: T


@dataclass(frozen=True)
class DataInvalid:
    """A notification that could not be interpreted. Not fatal."""

    reason: str


DataEvent = Union[DataClear, DataValue[T], DataInvalid]
