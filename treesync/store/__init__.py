"""Typed stores over the remote tree.

Provides CRUD access to the entries below a path, single-key transactions,
and translation of the raw event stream into typed change events.
"""

from .codec import StoreCodec, json_codec, patch_json
from .events import (
    DataClear,
    DataEvent,
    DataInvalid,
    DataValue,
    PatchSet,
    StoreDelete,
    StoreEvent,
    StoreInvalid,
    StorePatch,
    StorePut,
    StoreReset,
)
from .store import Store, Versioned
from .transaction import Abort, Delete, Transaction, TransactionOutcome, Update
from .translator import StoreEventTranslator

__all__ = [
    "StoreCodec",
    "json_codec",
    "patch_json",
    "DataClear",
    "DataEvent",
    "DataInvalid",
    "DataValue",
    "PatchSet",
    "StoreDelete",
    "StoreEvent",
    "StoreInvalid",
    "StorePatch",
    "StorePut",
    "StoreReset",
    "Store",
    "Versioned",
    "Abort",
    "Delete",
    "Transaction",
    "TransactionOutcome",
    "Update",
    "StoreEventTranslator",
]
