"""Wire-level types exchanged with the remote store."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass
class DbResponse:
    """Decoded body of a REST response plus its optional ETag header."""

    data: Any = None
    etag: str | None = None


class StreamEventKind(Enum):
    """Kind of a server-sent stream event."""

    PUT = "put"
    PATCH = "patch"
    AUTH_REVOKED = "auth_revoked"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StreamEvent:
    """A single path-scoped change notification from the server.

    ``path`` is slash-delimited and relative to the subscribed root ("/" is
    the root itself). For UNKNOWN events ``name`` carries the raw event name
    and ``data`` the raw, undecoded data line.
    """

    kind: StreamEventKind
    path: str = "/"
    data: Any = None
    name: str | None = None

    @classmethod
    def put(cls, path: str, data: Any) -> "StreamEvent":
        return cls(StreamEventKind.PUT, path, data)

    @classmethod
    def patch(cls, path: str, data: Any) -> "StreamEvent":
        return cls(StreamEventKind.PATCH, path, data)

    @classmethod
    def auth_revoked(cls) -> "StreamEvent":
        return cls(StreamEventKind.AUTH_REVOKED)

    @classmethod
    def unknown(cls, name: str, data: Any) -> "StreamEvent":
        return cls(StreamEventKind.UNKNOWN, data=data, name=name)
