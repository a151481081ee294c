import asyncio
import logging
from typing import List, Dict, Any, TYPE_CHECKING
from .errors import InsertFailure

if TYPE_CHECKING:
    from .client import Client

logger = logging.getLogger(__name__)


class RowCable:
    """
    A cable for streaming rows (dictionaries) into a BigQuery table.
    """

    def __init__(self, client: "Client", table: str, batch_size: int = 500):
        self._client = client
        self._table = table
        self._batch_size = batch_size
        self._buffer: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def append(self, row: Dict[str, Any]) -> None:
        """
        Append a row to the buffer. Auto-flushes if batch size is reached.
        """
        async with self._lock:
            self._buffer.append(row)
            if len(self._buffer) >= self._batch_size:
                await self._flush_unsafe()

    async def flush(self) -> None:
        """
        Flush any remaining rows in the buffer.
        """
        async with self._lock:
            if self._buffer:
                await self._flush_unsafe()

    async def _flush_unsafe(self) -> None:
        # The buffer survives a transport failure.
        errors = await self._client.insert_rows(self._table, self._buffer)
        batch, self._buffer = self._buffer, []
        if errors:
            logger.warning("%d of %d rows rejected by %s", len(errors), len(batch), self._table)
            raise InsertFailure(self._table, errors)
        logger.debug("inserted %d rows into %s", len(batch), self._table)
