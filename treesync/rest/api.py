"""HTTP client for the remote tree store.

Wraps the store's REST surface: every node of the tree is addressable as
``<database_url>/<path>.json`` and supports GET/PUT/POST/PATCH/DELETE plus a
server-sent event stream. Failed requests are not retried.
"""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from ..errors import PreconditionFailedError, RemoteRequestError
from .filter import Filter
from .models import DbResponse, StreamEvent
from .sse import SseParser

logger = logging.getLogger(__name__)

ETAG_REQUEST_HEADER = "X-Firebase-ETag"
ETAG_RESPONSE_HEADER = "ETag"
IF_MATCH_HEADER = "if-match"


class RestApi:
    """Async REST client for a tree-structured key-value store."""

    def __init__(
        self,
        database_url: str,
        auth: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the REST client.

        Args:
            database_url: Base URL of the database (e.g., "https://db.example.com").
            auth: Optional auth token, sent as the ``auth`` query parameter.
            timeout: Request timeout in seconds. Streams have no read timeout.
            transport: Optional httpx transport (used by tests).
        """
        self.database_url = database_url.rstrip("/")
        self.auth = auth
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def set_auth(self, auth: str | None) -> None:
        """Replace the auth token used for subsequent requests and streams."""
        self.auth = auth
        logger.debug("Auth token updated")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.database_url,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RestApi":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def get(
        self,
        path: str,
        shallow: bool = False,
        filter: Filter | None = None,
        etag: bool = False,
    ) -> DbResponse:
        """Read the value at ``path``.

        Args:
            path: Slash-delimited path below the database root.
            shallow: Only return the child keys (values become ``true``).
            filter: Optional query filter.
            etag: Request a version token for the value.
        """
        params = self._params(shallow=shallow, filter=filter)
        headers = self._headers(etag=etag)
        return await self._request("GET", path, params=params, headers=headers)

    async def put(
        self,
        data: Any,
        path: str,
        silent: bool = False,
        etag: bool = False,
        if_match: str | None = None,
    ) -> DbResponse:
        """Replace the value at ``path``.

        When ``if_match`` is given the write only succeeds if the remote
        value still carries that etag.
        """
        params = self._params(silent=silent)
        headers = self._headers(etag=etag, if_match=if_match)
        return await self._request(
            "PUT", path, params=params, headers=headers, body=data
        )

    async def post(self, data: Any, path: str, etag: bool = False) -> DbResponse:
        """Append ``data`` under a server-generated key.

        The response body is ``{"name": <generated key>}``.
        """
        headers = self._headers(etag=etag)
        return await self._request(
            "POST", path, params=self._params(), headers=headers, body=data
        )

    async def patch(
        self,
        fields: dict[str, Any],
        path: str,
        silent: bool = False,
    ) -> DbResponse:
        """Update the given child fields of the value at ``path``."""
        params = self._params(silent=silent)
        return await self._request("PATCH", path, params=params, body=fields)

    async def delete(
        self,
        path: str,
        silent: bool = False,
        etag: bool = False,
        if_match: str | None = None,
    ) -> DbResponse:
        """Delete the value at ``path``."""
        params = self._params(silent=silent)
        headers = self._headers(etag=etag, if_match=if_match)
        return await self._request("DELETE", path, params=params, headers=headers)

    async def stream(
        self,
        path: str,
        shallow: bool = False,
        filter: Filter | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Open a server-sent event stream on ``path``.

        Yields StreamEvents in arrival order. The connection is held open
        until the consumer stops iterating or the server ends the stream.
        Keep-alive frames are dropped; a server ``cancel`` raises
        StreamCancelledError.
        """
        client = await self._get_client()
        params = self._params(shallow=shallow, filter=filter)
        url = self._url(path)

        logger.debug(f"Opening stream on {url}")

        async with client.stream(
            "GET",
            url,
            params=params,
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(self.timeout, read=None),
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                self._raise_for_status(response, path)

            parser = SseParser()
            async for line in response.aiter_lines():
                event = parser.feed_line(line.rstrip("\r"))
                if event is not None:
                    yield event

        logger.debug(f"Stream on {url} closed by server")

    # ==================== Internals ====================

    def _url(self, path: str) -> str:
        path = path.strip("/")
        return f"/{path}.json"

    def _params(
        self,
        shallow: bool = False,
        silent: bool = False,
        filter: Filter | None = None,
    ) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.auth:
            params["auth"] = self.auth
        if shallow:
            params["shallow"] = "true"
        if silent:
            params["print"] = "silent"
        if filter is not None:
            params.update(filter.to_params())
        return params

    def _headers(self, etag: bool = False, if_match: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if etag:
            headers[ETAG_REQUEST_HEADER] = "true"
        if if_match is not None:
            headers[IF_MATCH_HEADER] = if_match
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> DbResponse:
        client = await self._get_client()
        content = json.dumps(body) if method in ("PUT", "POST", "PATCH") else None

        response = await client.request(
            method,
            self._url(path),
            params=params,
            headers=headers,
            content=content,
        )

        if response.status_code >= 400:
            self._raise_for_status(response, path, (headers or {}).get(IF_MATCH_HEADER))

        data = response.json() if response.content else None
        return DbResponse(data=data, etag=response.headers.get(ETAG_RESPONSE_HEADER))

    def _raise_for_status(
        self,
        response: httpx.Response,
        path: str,
        if_match: str | None = None,
    ) -> None:
        if response.status_code == 412:
            raise PreconditionFailedError(path, if_match)

        try:
            message = response.json().get("error", response.text)
        except (ValueError, AttributeError):
            message = response.text

        logger.warning(f"Request on '{path}' failed: HTTP {response.status_code}")
        raise RemoteRequestError(response.status_code, message, path)
