"""Parser for the server-sent event stream of a subscribed path."""

import json
import logging

from ..errors import StreamCancelledError
from .models import StreamEvent

logger = logging.getLogger(__name__)


class SseParser:
    """Incremental line parser turning SSE frames into StreamEvents.

    Feed it one line at a time (without the trailing newline). A blank line
    terminates a frame; ``feed_line`` then returns the decoded event, or None
    when the frame carries nothing for the caller (keep-alives, comments).
    """

    def __init__(self):
        self._event: str | None = None
        self._data: list[str] = []

    def feed_line(self, line: str) -> StreamEvent | None:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        # id/retry are not used by the store protocol

        return None

    def _dispatch(self) -> StreamEvent | None:
        name = self._event
        raw = "\n".join(self._data)
        self._event = None
        self._data = []

        if name is None:
            return None

        if name == "keep-alive":
            return None
        if name == "cancel":
            raise StreamCancelledError(f"Stream cancelled by server: {raw}")
        if name == "auth_revoked":
            return StreamEvent.auth_revoked()
        if name in ("put", "patch"):
            return self._decode_change(name, raw)

        return StreamEvent.unknown(name, raw)

    def _decode_change(self, name: str, raw: str) -> StreamEvent:
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Malformed data for '{name}' event: {raw}")
            return StreamEvent.unknown(name, raw)

        if not isinstance(body, dict) or not isinstance(body.get("path"), str):
            return StreamEvent.unknown(name, raw)

        if name == "put":
            return StreamEvent.put(body["path"], body.get("data"))
        return StreamEvent.patch(body["path"], body.get("data"))
