import asyncio
import contextlib
import logging
from typing import Any, Optional, Union

from .models import Page
from .pager import ResultPager

logger = logging.getLogger(__name__)

StreamItem = Union[Page, Exception]

_CLOSED = object()


class PageStream:
    """
    Delivers the pages of a query as they arrive.

    The pager runs in its own task and hands pages over through a small
    bounded queue. A failure is delivered as the last item before close.
    """

    def __init__(self, pager: ResultPager, maxsize: int = 1):
        self._pager = pager
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=maxsize)
        self._task: Optional["asyncio.Task[None]"] = None
        self._closed = False

    @property
    def pager(self) -> ResultPager:
        return self._pager

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        try:
            async for page in self._pager.pages():
                if self._closed:
                    break
                await self._queue.put(page)
        except Exception as e:
            logger.debug("page stream terminated by %r", e)
            if self._closed:
                return
            await self._queue.put(e)
        if not self._closed:
            await self._queue.put(_CLOSED)

    async def receive(self) -> Optional[StreamItem]:
        """
        Returns the next page or the terminal error, or None once closed.
        """
        if self._closed:
            return None
        self.start()
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            return None
        if isinstance(item, Exception):
            self._closed = True
        return item

    def __aiter__(self) -> "PageStream":
        self.start()
        return self

    async def __anext__(self) -> Page:
        item = await self.receive()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        """
        Cancels the pager and stops the producer task.
        """
        self._closed = True
        self._pager.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            # Unblock a put that raced with the cancellation.
            while not self._queue.empty():
                self._queue.get_nowait()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def __aenter__(self) -> "PageStream":
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
