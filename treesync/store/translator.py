"""Translation of raw stream notifications into typed store events.

The server reports every change below a subscribed path as a ``put`` or
``patch`` of some relative path. A store only owns the entries one level
below its own path, so anything deeper is reported as invalid rather than
interpreted.

All translations are async generators: they pull one wire event, emit
exactly one typed event for it, and only then pull the next one.
"""

import re
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Generic, TypeVar

from ..errors import AuthRevokedError, PatchOnMissingValueError
from ..rest.models import StreamEvent, StreamEventKind
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

if TYPE_CHECKING:
    from .store import Store

T = TypeVar("T")

ROOT_PATH = "/"
SUB_PATH_PATTERN = re.compile(r"^/([^/]+)$")


def path_too_deep_message(path: str) -> str:
    return f'Skipping stream event with path "{path}", path is too deep'


def unknown_event_message(event: StreamEvent) -> str:
    return f'Received unknown server event "{event.name}" with data: {event.data}'


def match_key(path: str) -> str | None:
    """Return the single key segment of ``path``, or None if it has another depth."""
    match = SUB_PATH_PATTERN.match(path)
    return match.group(1) if match else None


def decode_all(payload: Any, from_payload) -> dict[str, Any]:
    """Decode every child of a subtree payload. None decodes to an empty dict."""
    if not payload:
        return {}
    return {key: from_payload(value) for key, value in payload.items()}


@asynccontextmanager
async def closing_source(events: AsyncIterator[StreamEvent]):
    """Close the wire stream once translation stops, however it stops."""
    try:
        yield events
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


class StoreEventTranslator(Generic[T]):
    """Turns a store's raw stream into StoreEvents or DataEvents."""

    def __init__(self, store: "Store[T]"):
        self.store = store

    @property
    def codec(self):
        return self.store.codec

    def translate_one(self, event: StreamEvent) -> StoreEvent[T]:
        """Translate a single wire event of a subtree stream.

        Raises:
            AuthRevokedError: If the event signals revoked credentials.
        """
        if event.kind is StreamEventKind.PUT:
            if event.path == ROOT_PATH:
                return StoreReset(decode_all(event.data, self.codec.from_payload))
            key = match_key(event.path)
            if key is None:
                return StoreInvalid(path_too_deep_message(event.path))
            if event.data is None:
                return StoreDelete(key)
            return StorePut(key, self.codec.from_payload(event.data))

        if event.kind is StreamEventKind.PATCH:
            key = match_key(event.path)
            if key is None:
                return StoreInvalid(path_too_deep_message(event.path))
            return StorePatch(key, PatchSet(self.store, event.data or {}))

        if event.kind is StreamEventKind.AUTH_REVOKED:
            raise AuthRevokedError()

        return StoreInvalid(unknown_event_message(event))

    async def translate(
        self, events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[StoreEvent[T]]:
        """Translate a subtree stream into StoreEvents."""
        async with closing_source(events):
            async for event in events:
                yield self.translate_one(event)

    async def translate_keys(
        self, events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[DataEvent[str]]:
        """Translate a shallow subtree stream into key notifications.

        A root put clears the key set; a put or patch of one entry reports
        that entry's key.
        """
        async with closing_source(events):
            async for event in events:
                if event.kind is StreamEventKind.AUTH_REVOKED:
                    raise AuthRevokedError()

                if event.kind is StreamEventKind.UNKNOWN:
                    yield DataInvalid(unknown_event_message(event))
                elif event.kind is StreamEventKind.PUT and event.path == ROOT_PATH:
                    yield DataClear()
                else:
                    key = match_key(event.path)
                    if key is None:
                        yield DataInvalid(path_too_deep_message(event.path))
                    else:
                        yield DataValue(key)

    async def translate_value(
        self, events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[DataEvent[T]]:
        """Translate the stream of a single entry into value notifications.

        Keeps the last known value so root patches can be folded into it.

        Raises:
            PatchOnMissingValueError: If a patch arrives before any value.
            AuthRevokedError: If the event signals revoked credentials.
        """
        current: T | None = None

        async with closing_source(events):
            async for event in events:
                if event.kind is StreamEventKind.AUTH_REVOKED:
                    raise AuthRevokedError()

                if event.kind is StreamEventKind.UNKNOWN:
                    yield DataInvalid(unknown_event_message(event))
                    continue

                if event.path != ROOT_PATH:
                    yield DataInvalid(path_too_deep_message(event.path))
                    continue

                if event.kind is StreamEventKind.PUT:
                    if event.data is None:
                        current = None
                        yield DataClear()
                    else:
                        current = self.codec.from_payload(event.data)
                        yield DataValue(current)
                else:
                    if current is None:
                        raise PatchOnMissingValueError()
                    current = self.codec.apply_patch(current, event.data or {})
                    yield DataValue(current)
