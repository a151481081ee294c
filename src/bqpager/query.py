from typing import Any, MutableSequence, Optional, Type, TypeVar, TYPE_CHECKING

from .decoder import decode_into
from .models import DEFAULT_PAGE_SIZE, JobConfiguration, Page
from .pager import ResultPager
from .stream import PageStream

if TYPE_CHECKING:
    from .client import Client

T = TypeVar("T")


class Query:
    """
    Represents a query to be executed against the client's dataset.

    Without a job configuration the query runs inline; with one it is
    submitted as a job that writes into a destination table.
    """

    def __init__(
        self,
        client: "Client",
        text: str,
        job_config: Optional[JobConfiguration] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._client = client
        self.text = text
        self.job_config = job_config
        self.page_size = page_size
        self.project_id = client.project_id
        self.dataset_id = client.dataset_id
        self._submitted = False

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_submitted", False):
            raise AttributeError(f"cannot set {name!r}: query has already been submitted")
        super().__setattr__(name, value)

    @property
    def submitted(self) -> bool:
        return self._submitted

    def submit(self) -> ResultPager:
        """
        Freezes the query and returns a fresh pager over its results.
        """
        if not self._submitted:
            object.__setattr__(self, "_submitted", True)
        return ResultPager(self._client, self)

    async def fetch_all(self) -> Page:
        """
        Runs the query and accumulates every page into one.
        """
        return await self.submit().collect()

    async def execute(self, dest: MutableSequence[T], record_type: Type[T]) -> MutableSequence[T]:
        """
        Runs the query, waits for every page and decodes the rows into dest.
        """
        page = await self.fetch_all()
        if not page.schema and not page.rows:
            dest[:] = []
            return dest
        return decode_into(page.schema, page.rows, dest, record_type)

    def stream(self, maxsize: int = 1) -> PageStream:
        """
        Runs the query in the background, delivering raw pages as they arrive.
        """
        return PageStream(self.submit(), maxsize=maxsize)
