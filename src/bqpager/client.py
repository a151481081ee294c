import asyncio
import logging
import httpx
import google.auth.transport.requests
from google.oauth2 import service_account
from typing import Optional, Any, List, Dict, Tuple, Union

from .errors import BigQueryError, NotInitialized, QueryError, TransportError
from .cable import RowCable
from .models import DEFAULT_PAGE_SIZE, JobReference, JobConfiguration, Page, Row
from .query import Query

logger = logging.getLogger(__name__)

BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
BIGQUERY_SCOPE = "https://www.googleapis.com/auth/bigquery"


def get_private_key_by_pem(pem_path: str) -> bytes:
    """
    Reads a service account private key from a PEM file.
    """
    with open(pem_path, "rb") as handle:
        return handle.read()


class Client:
    """
    BigQuery client driving the v2 REST query API.
    """

    def __init__(
        self,
        email: Optional[str] = None,
        private_key: Optional[Union[bytes, str]] = None,
        subject: Optional[str] = None,
        token: Optional[str] = None,
        base_url: str = BASE_URL,
        location: Optional[str] = None,
        use_legacy_sql: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.email = email
        self.private_key = private_key
        self.subject = subject
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.location = location
        self.use_legacy_sql = use_legacy_sql
        self.timeout = timeout
        self.project_id: Optional[str] = None
        self.dataset_id: Optional[str] = None
        self._transport = transport
        self._credentials: Any = None
        self._client: Optional[httpx.AsyncClient] = None

    def dataset(self, project_id: str, dataset_id: str) -> "Client":
        """
        Sets the default dataset that queries run against.
        """
        self.project_id = project_id
        self.dataset_id = dataset_id
        return self

    async def connect(self) -> None:
        """
        Initialize the HTTP client.
        """
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    async def close(self) -> None:
        """
        Close the HTTP client.
        """
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_credentials(self) -> Any:
        key = self.private_key
        if isinstance(key, bytes):
            key = key.decode("utf-8")
        info = {
            "client_email": self.email,
            "private_key": key,
            "token_uri": GOOGLE_TOKEN_URL,
        }
        return service_account.Credentials.from_service_account_info(
            info, scopes=[BIGQUERY_SCOPE], subject=self.subject or None
        )

    def _refresh_credentials(self) -> str:
        if self._credentials is None:
            self._credentials = self._build_credentials()
        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token

    async def _auth_headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        if not (self.email and self.private_key):
            raise NotInitialized("Not initialized: no token or service account credentials")
        token = await asyncio.to_thread(self._refresh_credentials)
        return {"Authorization": f"Bearer {token}"}

    def _dataset_ref(
        self, project_id: Optional[str] = None, dataset_id: Optional[str] = None
    ) -> Tuple[str, str]:
        project_id = project_id or self.project_id
        dataset_id = dataset_id or self.dataset_id
        if not (project_id and dataset_id):
            raise NotInitialized("Not initialized: call dataset(project_id, dataset_id) first")
        return project_id, dataset_id

    async def _send(self, action: str, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        headers = await self._auth_headers()
        if not self._client:
            await self.connect()
        assert self._client is not None

        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("%s failed with status %s", action, e.response.status_code)
            raise TransportError(f"{action} failed: {e.response.text}") from e
        except httpx.HTTPError as e:
            logger.error("network error during %s: %s", action, e)
            raise TransportError(f"Network error during {action}: {e}") from e
        except ValueError as e:
            logger.error("invalid response body during %s: %s", action, e)
            raise TransportError(f"Invalid response body during {action}: {e}") from e

    async def submit_query(
        self,
        query: str,
        max_results: int,
        project_id: Optional[str] = None,
        dataset_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Runs a query inline. Rows come back immediately, up to max_results.
        """
        project_id, dataset_id = self._dataset_ref(project_id, dataset_id)
        payload = {
            "kind": "bigquery#queryRequest",
            "query": query,
            "maxResults": max_results,
            "useLegacySql": self.use_legacy_sql,
            "defaultDataset": {"projectId": project_id, "datasetId": dataset_id},
        }
        if self.location:
            payload["location"] = self.location
        return await self._send(
            "query submission", "POST", f"/projects/{project_id}/queries", json=payload
        )

    async def get_query_results(
        self,
        job_reference: JobReference,
        page_token: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Fetches one page of results for a query job.
        """
        params: Dict[str, Any] = {}
        if page_token:
            params["pageToken"] = page_token
        if max_results is not None:
            params["maxResults"] = max_results
        location = job_reference.location or self.location
        if location:
            params["location"] = location
        return await self._send(
            "fetch query results",
            "GET",
            f"/projects/{job_reference.project_id}/queries/{job_reference.job_id}",
            params=params,
        )

    async def insert_job(
        self,
        query: str,
        config: JobConfiguration,
        project_id: Optional[str] = None,
        dataset_id: Optional[str] = None,
    ) -> JobReference:
        """
        Submits a query job that materializes into a destination table.
        """
        project_id, dataset_id = self._dataset_ref(project_id, dataset_id)
        payload = config.to_dict(query, project_id, dataset_id, self.use_legacy_sql)
        if self.location:
            payload["jobReference"] = {"projectId": project_id, "location": self.location}

        resp = await self._send("job insert", "POST", f"/projects/{project_id}/jobs", json=payload)

        error = (resp.get("status") or {}).get("errorResult")
        if error:
            raise QueryError(f"Job insert failed: {error.get('message', error)}")
        ref = JobReference.from_dict(resp.get("jobReference"))
        if ref is None:
            raise TransportError("Job insert response carried no job reference")
        return ref

    async def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Streams rows into a table and returns the per-row insert errors.
        """
        project_id, dataset_id = self._dataset_ref()
        payload = {
            "kind": "bigquery#tableDataInsertAllRequest",
            "rows": [{"json": row} for row in rows],
        }
        resp = await self._send(
            "row insert",
            "POST",
            f"/projects/{project_id}/datasets/{dataset_id}/tables/{table}/insertAll",
            json=payload,
        )
        return resp.get("insertErrors") or []

    def query(
        self,
        text: str,
        job_config: Optional[JobConfiguration] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Query:
        """
        Create a new query against the bound dataset.
        """
        self._dataset_ref()
        return Query(self, text, job_config=job_config, page_size=page_size)

    async def sync_query(self, text: str, max_results: int) -> List[Row]:
        """
        Runs a query with a single inline call and returns at most
        max_results raw rows. No further pages are fetched.
        """
        resp = await self.submit_query(text, max_results)
        page = Page.from_response(resp)
        return page.rows[:max_results]

    async def count(self, table: str) -> int:
        """
        Loads the row count of a table, or 0 if it cannot be determined.
        """
        if self.use_legacy_sql:
            text = f"SELECT COUNT(*) FROM [{table}]"
        else:
            text = f"SELECT COUNT(*) FROM `{table}`"
        try:
            rows = await self.sync_query(text, 1)
        except BigQueryError as e:
            logger.warning("count of %s failed: %s", table, e)
            return 0
        if not (rows and rows[0] and rows[0][0] is not None):
            return 0
        try:
            return int(rows[0][0])
        except ValueError:
            logger.warning("count of %s returned a non-integer cell %r", table, rows[0][0])
            return 0

    def create_row_cable(self, table: str, batch_size: int = 500) -> RowCable:
        """
        Create a cable for streaming rows into a table.
        """
        return RowCable(self, table, batch_size)

    async def __aenter__(self) -> "Client":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
