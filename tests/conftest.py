"""Shared fixtures: an in-memory stand-in for the remote tree store."""

import asyncio
import copy
import hashlib
import json
from typing import Any

import pytest

from treesync.errors import PreconditionFailedError
from treesync.rest import DbResponse, StreamEvent
from treesync.store import Store, StoreCodec, json_codec, patch_json


def etag_of(value: Any) -> str:
    """Content etag: changes exactly when the value changes."""
    return hashlib.sha1(json.dumps(value, sort_keys=True).encode()).hexdigest()


class FakeRestApi:
    """In-memory tree implementing the RestApi surface used by stores.

    Streams are scripted: ``script_stream(path, events)`` queues one stream
    per call; each call to ``stream`` consumes the next script for the path.
    A script entry that is an exception is raised instead of yielded.
    """

    def __init__(self, data: dict[str, Any] | None = None):
        self.root: dict[str, Any] = copy.deepcopy(data or {})
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.omit_etag = False
        self._scripts: dict[str, list[list[Any]]] = {}
        self._keys = 0

    # ---- tree helpers ----

    def _segments(self, path: str) -> list[str]:
        return [s for s in path.split("/") if s]

    def value_at(self, path: str) -> Any:
        node: Any = self.root
        for segment in self._segments(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node) if node != {} else None

    def set_value(self, path: str, value: Any) -> None:
        segments = self._segments(path)
        if not segments:
            self.root = copy.deepcopy(value) if isinstance(value, dict) else {}
            return
        node = self.root
        for segment in segments[:-1]:
            node = node.setdefault(segment, {})
        if value is None:
            node.pop(segments[-1], None)
        else:
            node[segments[-1]] = copy.deepcopy(value)

    def _check(self, path: str, if_match: str | None) -> None:
        if if_match is not None and etag_of(self.value_at(path)) != if_match:
            raise PreconditionFailedError(path, if_match)

    def _etag(self, path: str, wanted: bool) -> str | None:
        if not wanted or self.omit_etag:
            return None
        return etag_of(self.value_at(path))

    # ---- RestApi surface ----

    async def get(self, path, shallow=False, filter=None, etag=False):
        self.calls.append(("get", path, {"shallow": shallow, "filter": filter, "etag": etag}))
        value = self.value_at(path)
        if shallow and isinstance(value, dict):
            value = {key: True for key in value}
        return DbResponse(value, self._etag(path, etag))

    async def put(self, data, path, silent=False, etag=False, if_match=None):
        self.calls.append(("put", path, {"silent": silent, "if_match": if_match}))
        self._check(path, if_match)
        self.set_value(path, data)
        return DbResponse(None if silent else self.value_at(path), self._etag(path, etag))

    async def post(self, data, path, etag=False):
        self.calls.append(("post", path, {}))
        self._keys += 1
        key = f"-generated{self._keys}"
        self.set_value(f"{path}/{key}", data)
        return DbResponse({"name": key})

    async def patch(self, fields, path, silent=False):
        self.calls.append(("patch", path, {"silent": silent}))
        self.set_value(path, patch_json(self.value_at(path), fields))
        return DbResponse(None if silent else fields)

    async def delete(self, path, silent=False, etag=False, if_match=None):
        self.calls.append(("delete", path, {"silent": silent, "if_match": if_match}))
        self._check(path, if_match)
        self.set_value(path, None)
        return DbResponse(None, self._etag(path, etag))

    def script_stream(self, path: str, events: list[Any]) -> None:
        self._scripts.setdefault(path, []).append(list(events))

    async def stream(self, path, shallow=False, filter=None):
        self.calls.append(("stream", path, {"shallow": shallow, "filter": filter}))
        scripts = self._scripts.get(path, [])
        if not scripts:
            # Unscripted streams stay open without events, like an idle server.
            await asyncio.Event().wait()
        for event in scripts.pop(0):
            if isinstance(event, Exception):
                raise event
            yield event

    def mutations(self) -> list[tuple[str, str, dict[str, Any]]]:
        return [call for call in self.calls if call[0] in ("put", "post", "patch", "delete")]


async def stream_of(*events: StreamEvent):
    """Async iterator over the given wire events."""
    for event in events:
        yield event


@pytest.fixture
def api():
    """Create an empty fake remote."""
    return FakeRestApi()


@pytest.fixture
def store(api):
    """Create a JSON store at /items."""
    return Store(api, ["items"], json_codec())


@pytest.fixture
def counter_codec():
    """Codec for int values patched with a 'delta' field."""
    return StoreCodec(
        from_payload=lambda payload: payload,
        to_payload=lambda value: value,
        apply_patch=lambda value, fields: value + fields.get("delta", 0),
    )
