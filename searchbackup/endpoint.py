"""
Search Service Endpoint

Async client for one index on one search service. Queries and counts go
through the azure-search-documents SDK; index definitions and bulk uploads
use the REST API directly through aiohttp so the JSON can be read and sent
verbatim.

Every failure, whether the service answered with an error status or the
request never completed, surfaces as RemoteOperationError.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.search.documents.aio import SearchClient
from azure.search.documents.indexes.aio import SearchIndexClient

from .config import DEFAULT_API_VERSION, IndexHandle
from .exceptions import RemoteOperationError

MATCH_ALL = "*"

# Connection resets, DNS failures and timeouts
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)
SDK_ERRORS = (AzureError,) + TRANSPORT_ERRORS


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__


class SearchEndpoint:
    """
    Wraps the read and write operations the transfer pipeline needs from a
    single index: paged search, total count, index definition get/create/delete
    and bulk document upload.

    Clients are created lazily on first use and released by close(); the
    endpoint can also be used as an async context manager.
    """

    def __init__(
        self,
        handle: IndexHandle,
        api_version: str = DEFAULT_API_VERSION,
        timeout_seconds: Optional[float] = None,
    ):
        self.handle = handle
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self.logger = logging.getLogger(__name__)

        self._credential = AzureKeyCredential(handle.api_key)
        self._search_client: Optional[SearchClient] = None
        self._index_client: Optional[SearchIndexClient] = None
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def index_name(self) -> str:
        return self.handle.index_name

    def __repr__(self) -> str:
        return f"SearchEndpoint({self.handle.endpoint!r}, {self.index_name!r})"

    async def __aenter__(self) -> "SearchEndpoint":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _get_search_client(self) -> SearchClient:
        if self._search_client is None:
            self._search_client = SearchClient(
                endpoint=self.handle.endpoint,
                index_name=self.index_name,
                credential=self._credential,
            )
        return self._search_client

    def _get_index_client(self) -> SearchIndexClient:
        if self._index_client is None:
            self._index_client = SearchIndexClient(
                endpoint=self.handle.endpoint,
                credential=self._credential,
            )
        return self._index_client

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(
                headers={
                    "api-key": self.handle.api_key,
                    "Content-Type": "application/json",
                },
                timeout=timeout,
            )
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.handle.endpoint}{path}"

    @property
    def _params(self) -> Dict[str, str]:
        return {"api-version": self.api_version}

    def _sdk_error(self, action: str, error: Exception) -> RemoteOperationError:
        if isinstance(error, HttpResponseError):
            return RemoteOperationError(action, error.status_code, error.message)
        return RemoteOperationError(action, details=_describe(error))

    async def _send(self, method: str, path: str, action: str, data: Optional[str] = None) -> str:
        """Send one REST request and return the body of a 2xx response"""
        session = self._get_session()
        try:
            async with session.request(method, self._url(path), params=self._params, data=data) as response:
                status = response.status
                body = await response.text()
        except TRANSPORT_ERRORS as e:
            raise RemoteOperationError(action, details=_describe(e)) from e

        if not 200 <= status < 300:
            raise RemoteOperationError(action, status, body)
        return body

    async def search(self, skip: int, top: int) -> List[Dict[str, Any]]:
        """
        Fetch one page of documents matching everything.

        Args:
            skip: Number of documents to skip
            top: Maximum number of documents to return

        Returns:
            List of raw result documents, annotations included
        """
        client = self._get_search_client()
        try:
            results = await client.search(
                search_text=MATCH_ALL,
                search_mode="all",
                skip=skip,
                top=top,
            )
            return [dict(document) async for document in results]
        except SDK_ERRORS as e:
            raise self._sdk_error(f"Search on {self.index_name} failed", e) from e

    async def count_documents(self) -> int:
        """Total number of documents, from a match-all query that returns no bodies"""
        client = self._get_search_client()
        try:
            results = await client.search(
                search_text=MATCH_ALL,
                search_mode="all",
                include_total_count=True,
                top=0,
            )
            count = await results.get_count()
        except SDK_ERRORS as e:
            raise self._sdk_error(f"Count on {self.index_name} failed", e) from e

        if count is None:
            raise RemoteOperationError(f"Service did not return a count for {self.index_name}")
        return int(count)

    async def get_index_definition(self) -> str:
        """Raw JSON index definition exactly as the service returns it"""
        return await self._send(
            "GET", f"/indexes/{self.index_name}", f"Reading index definition of {self.index_name} failed"
        )

    async def create_index(self, schema_json: str) -> None:
        """Create an index from a JSON definition; the name comes from the definition"""
        await self._send("POST", "/indexes", f"Creating index {self.index_name} failed", data=schema_json)

    async def delete_index(self) -> bool:
        """
        Delete the index if it exists.

        Returns:
            True if an index was deleted, False if there was none
        """
        client = self._get_index_client()
        try:
            await client.delete_index(self.index_name)
        except ResourceNotFoundError:
            return False
        except SDK_ERRORS as e:
            raise self._sdk_error(f"Deleting index {self.index_name} failed", e) from e
        return True

    async def index_documents(self, envelope_json: str) -> None:
        """Submit a {"value": [...]} envelope as one bulk request; a 207 multi-status counts as accepted"""
        await self._send(
            "POST",
            f"/indexes/{self.index_name}/docs/index",
            f"Uploading documents to {self.index_name} failed",
            data=envelope_json,
        )

    async def close(self):
        if self._search_client is not None:
            await self._search_client.close()
            self._search_client = None
        if self._index_client is not None:
            await self._index_client.close()
            self._index_client = None
        if self._session is not None:
            await self._session.close()
            self._session = None


def create_search_endpoint(
    handle: Optional[IndexHandle],
    api_version: str = DEFAULT_API_VERSION,
) -> Optional[SearchEndpoint]:
    """Create an endpoint for a configured side of the transfer, or None"""
    if handle is None:
        return None
    return SearchEndpoint(handle, api_version=api_version)
