from typing import Any, Dict, List, Optional

from bqpager import JobReference
from bqpager.errors import TransportError


def make_response(
    rows: List[List[Optional[str]]],
    total: int,
    complete: bool = True,
    job_id: Optional[str] = "job-123",
    page_token: Optional[str] = None,
    fields: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """Builds a getQueryResults / jobs.query style response body."""
    resp: Dict[str, Any] = {"jobComplete": complete}
    if job_id:
        resp["jobReference"] = {"projectId": "proj", "jobId": job_id}
    if not complete:
        return resp
    resp["schema"] = {"fields": fields or [{"name": "n", "type": "INTEGER"}]}
    resp["totalRows"] = str(total)
    resp["rows"] = [{"f": [{"v": v} for v in row]} for row in rows]
    if page_token:
        resp["pageToken"] = page_token
    return resp


def int_rows(start: int, stop: int) -> List[List[Optional[str]]]:
    return [[str(i)] for i in range(start, stop)]


class FakeClient:
    """Stands in for bqpager.Client, replaying canned responses in order."""

    def __init__(self, first: Dict[str, Any], pages: Optional[List[Any]] = None):
        self.project_id = "proj"
        self.dataset_id = "ds"
        self._first = first
        self._pages = list(pages or [])
        self.calls: List[tuple] = []

    async def submit_query(self, query, max_results, project_id=None, dataset_id=None):
        self.calls.append(("submit_query", query, max_results, project_id, dataset_id))
        return self._first

    async def insert_job(self, query, config, project_id=None, dataset_id=None):
        self.calls.append(("insert_job", query, config.destination_table))
        return JobReference("proj", "job-ins")

    async def get_query_results(self, job_reference, page_token=None, max_results=None):
        self.calls.append(("get_query_results", job_reference.job_id, page_token, max_results))
        if not self._pages:
            raise TransportError("no more canned pages")
        item = self._pages.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def fetch_calls(self):
        return [c for c in self.calls if c[0] == "get_query_results"]
