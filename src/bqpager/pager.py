import asyncio
import logging
from typing import AsyncIterator, List, Optional, TYPE_CHECKING

from .errors import QueryCancelled, TransportError
from .models import JobReference, Page, Row, Schema

if TYPE_CHECKING:
    from .client import Client
    from .query import Query

logger = logging.getLogger(__name__)

POLL_TICK = 0.005  # 5ms
MAX_POLL_TICK = 1.0  # 1s


class ResultPager:
    """
    Walks the pages of one logical query, strictly in continuation order.

    A pager is single-use. It owns the job reference and page token of its
    query, and nothing is shared between pagers.
    """

    def __init__(self, client: "Client", query: "Query"):
        self._client = client
        self._query = query
        self._cancelled = asyncio.Event()
        self._started = False
        self.job_reference: Optional[JobReference] = None
        self.page_token: Optional[str] = None
        self.delivered = 0
        self.total_rows: Optional[int] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """
        Stops the poll loop before its next round trip.
        """
        if not self._cancelled.is_set():
            logger.info("cancelling pager for job %s", self._job_id())
            self._cancelled.set()

    def _job_id(self) -> Optional[str]:
        return self.job_reference.job_id if self.job_reference else None

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise QueryCancelled(f"Query cancelled after {self.delivered} rows (job {self._job_id()})")

    async def _sleep(self, tick: float) -> None:
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({waiter}, timeout=tick)
        finally:
            waiter.cancel()

    def _accept(self, resp: dict) -> Page:
        page = Page.from_response(resp)

        # Pages that omit reference fields keep the previous ones.
        if page.job_reference is not None:
            self.job_reference = page.job_reference
        if page.page_token is not None:
            self.page_token = page.page_token

        if page.complete:
            self.delivered += len(page.rows)
            self.total_rows = page.total_rows

        logger.debug(
            "page for job %s: complete=%s rows=%d delivered=%d total=%s",
            self._job_id(), page.complete, len(page.rows), self.delivered, self.total_rows,
        )
        return page

    async def _submit(self) -> Page:
        query = self._query
        if query.job_config is not None:
            ref = await self._client.insert_job(
                query.text, query.job_config, query.project_id, query.dataset_id
            )
            self.job_reference = ref
            logger.debug("inserted job %s into %s", ref.job_id, query.job_config.destination_table)
            resp = await self._client.get_query_results(ref, None, query.page_size)
        else:
            logger.debug("submitting inline query with page size %d", query.page_size)
            resp = await self._client.submit_query(
                query.text, query.page_size, query.project_id, query.dataset_id
            )
        return self._accept(resp)

    def _exhausted(self, page: Page) -> bool:
        return page.complete and self.delivered >= page.total_rows

    async def pages(self) -> AsyncIterator[Page]:
        """
        Yields every completed page until the reported total is delivered.
        """
        if self._started:
            raise RuntimeError("ResultPager can only be iterated once")
        self._started = True

        self._check_cancelled()
        page = await self._submit()
        if page.complete:
            yield page
        if self._exhausted(page):
            logger.debug("job %s finished in a single page", self._job_id())
            return

        tick = POLL_TICK
        progressed = page.complete
        while True:
            if progressed:
                tick = POLL_TICK
            else:
                await self._sleep(tick)
                tick = min(tick * 2, MAX_POLL_TICK)
            self._check_cancelled()

            if self.job_reference is None:
                raise TransportError("Query response carried no job reference to page over")
            prior_token = self.page_token
            resp = await self._client.get_query_results(
                self.job_reference, prior_token, self._query.page_size
            )
            page = self._accept(resp)
            if page.complete:
                yield page
            if self._exhausted(page):
                logger.debug("job %s exhausted after %d rows", self._job_id(), self.delivered)
                return
            # A page with no rows and no new token is polled like an unfinished job.
            progressed = page.complete and (bool(page.rows) or self.page_token != prior_token)

    async def collect(self) -> Page:
        """
        Accumulates every page into one terminal page.
        """
        schema: Schema = []
        rows: List[Row] = []
        async for page in self.pages():
            if page.schema:
                schema = page.schema
            rows.extend(page.rows)

        return Page(
            schema=schema,
            rows=rows,
            complete=True,
            total_rows=self.total_rows or 0,
            job_reference=self.job_reference,
        )
