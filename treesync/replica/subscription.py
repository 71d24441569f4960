"""Background consumption of translated event streams."""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from ..errors import AuthRevokedError

logger = logging.getLogger(__name__)

E = TypeVar("E")

StreamFactory = Callable[[], AsyncIterator[E] | Awaitable[AsyncIterator[E]]]
ErrorCallback = Callable[[Exception], Any]


async def auto_renew(
    factory: StreamFactory,
    renew_delay: float = 0.0,
) -> AsyncIterator[E]:
    """Re-open a stream whenever it ends or its auth is revoked.

    ``factory`` is called for every (re)connection and may refresh
    credentials or filters before returning the new stream. Any other error
    ends the renewed stream.
    """
    while True:
        stream = factory()
        if inspect.isawaitable(stream):
            stream = await stream

        try:
            async for event in stream:
                yield event
            logger.info("Stream ended, renewing")
        except AuthRevokedError:
            logger.info("Stream auth revoked, renewing")

        await asyncio.sleep(renew_delay)


class Subscription:
    """Handle for a stream being consumed in a background task.

    Each event is passed to ``handler`` and fully handled before the next
    one is pulled. Cancelling waits for the event currently being handled.
    """

    def __init__(
        self,
        events: AsyncIterator[E],
        handler: Callable[[E], Awaitable[None]],
        on_error: ErrorCallback | None = None,
    ):
        self._events = events
        self._handler = handler
        self._on_error = on_error
        self._handling = False
        self._stopping = False
        self._error: Exception | None = None
        self._task = asyncio.create_task(self._run())

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def error(self) -> Exception | None:
        """The error that ended the subscription, if any."""
        return self._error

    async def _run(self) -> None:
        try:
            async for event in self._events:
                self._handling = True
                try:
                    await self._handler(event)
                finally:
                    self._handling = False
                if self._stopping:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error = e
            if self._on_error is not None:
                self._on_error(e)
            else:
                logger.error(f"Subscription ended with error: {e}", exc_info=True)
        finally:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()

    async def wait(self) -> None:
        """Wait until the stream ends or the subscription is cancelled."""
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def cancel(self) -> None:
        """Stop consuming. The event in flight is handled to completion."""
        if self._task.done():
            return

        self._stopping = True
        if not self._handling:
            self._task.cancel()

        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.debug("Subscription cancelled")
