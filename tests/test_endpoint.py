import json
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import test_utils, web
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError, ServiceRequestError

from conftest import make_documents, make_schema
from searchbackup.config import IndexHandle
from searchbackup.endpoint import SearchEndpoint, create_search_endpoint
from searchbackup.exceptions import RemoteOperationError

API_VERSION = "2024-07-01"


class FakeSearchService:
    """REST side of a search service, served by aiohttp"""

    def __init__(self):
        self.schemas = {"hotels": json.dumps(make_schema("hotels"), indent=2)}
        self.requests: List[Dict[str, Any]] = []
        self.create_status = 201
        self.upload_status = 200
        self.upload_body = '{"value": []}'

    def _record(self, request: web.Request, body: Optional[str] = None):
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "api-version": request.query.get("api-version"),
            "api-key": request.headers.get("api-key"),
            "body": body,
        })

    async def get_index(self, request: web.Request) -> web.Response:
        self._record(request)
        name = request.match_info["name"]
        if name not in self.schemas:
            return web.Response(status=404, text='{"error": {"message": "No index with the name"}}')
        return web.Response(status=200, text=self.schemas[name], content_type="application/json")

    async def create_index(self, request: web.Request) -> web.Response:
        body = await request.text()
        self._record(request, body)
        if self.create_status >= 300:
            return web.Response(status=self.create_status, text='{"error": {"message": "Invalid field type"}}')
        return web.Response(status=self.create_status, text=body, content_type="application/json")

    async def index_documents(self, request: web.Request) -> web.Response:
        body = await request.text()
        self._record(request, body)
        return web.Response(status=self.upload_status, text=self.upload_body, content_type="application/json")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/indexes/{name}", self.get_index)
        app.router.add_post("/indexes", self.create_index)
        app.router.add_post("/indexes/{name}/docs/index", self.index_documents)
        return app


class FakeResults:
    def __init__(self, documents, count):
        self.documents = documents
        self.count = count

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self.documents:
            yield document

    async def get_count(self):
        return self.count


class FakeSearchClient:
    """Stands in for the SDK's async SearchClient and SearchIndexClient"""

    def __init__(self, documents=None, count=None, error: Optional[Exception] = None):
        self.documents = documents or []
        self.count = count
        self.error = error
        self.search_calls: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.closed = False

    async def search(self, **kwargs):
        self.search_calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return FakeResults(self.documents, self.count)

    async def delete_index(self, name):
        if self.error is not None:
            raise self.error
        self.deleted.append(name)

    async def close(self):
        self.closed = True


def http_error(status_code: int, message: str) -> HttpResponseError:
    error = HttpResponseError(message=message)
    error.status_code = status_code
    return error


@pytest.fixture
async def service():
    fake = FakeSearchService()
    server = test_utils.TestServer(fake.app())
    await server.start_server()
    fake.url = str(server.make_url("/"))
    yield fake
    await server.close()


@pytest.fixture
async def endpoint(service):
    endpoint = SearchEndpoint(IndexHandle(service.url, "secret-key", "hotels"), api_version=API_VERSION)
    yield endpoint
    await endpoint.close()


def sdk_endpoint(client: FakeSearchClient) -> SearchEndpoint:
    endpoint = SearchEndpoint(IndexHandle("svc", "secret-key", "hotels"), api_version=API_VERSION)
    endpoint._search_client = client
    endpoint._index_client = client
    return endpoint


class TestRestCalls:
    async def test_get_index_definition_returns_raw_body(self, service, endpoint):
        assert await endpoint.get_index_definition() == service.schemas["hotels"]

        request = service.requests[0]
        assert (request["method"], request["path"]) == ("GET", "/indexes/hotels")
        assert request["api-version"] == API_VERSION
        assert request["api-key"] == "secret-key"

    async def test_missing_index_definition(self, service):
        endpoint = SearchEndpoint(IndexHandle(service.url, "secret-key", "motels"))
        try:
            with pytest.raises(RemoteOperationError) as excinfo:
                await endpoint.get_index_definition()
        finally:
            await endpoint.close()

        assert excinfo.value.status_code == 404
        assert "No index with the name" in excinfo.value.details

    async def test_create_index_posts_schema_verbatim(self, service, endpoint):
        schema = json.dumps(make_schema("hotels-copy"))

        await endpoint.create_index(schema)

        request = service.requests[0]
        assert (request["method"], request["path"]) == ("POST", "/indexes")
        assert request["api-version"] == API_VERSION
        assert request["body"] == schema

    async def test_create_index_rejected(self, service, endpoint):
        service.create_status = 400

        with pytest.raises(RemoteOperationError) as excinfo:
            await endpoint.create_index("{}")

        assert excinfo.value.status_code == 400
        assert "Invalid field type" in str(excinfo.value)

    @pytest.mark.parametrize("status", [200, 201, 207])
    async def test_upload_accepts_any_success_status(self, service, endpoint, status):
        service.upload_status = status
        envelope = json.dumps({"value": make_documents(2)})

        await endpoint.index_documents(envelope)

        request = service.requests[0]
        assert request["path"] == "/indexes/hotels/docs/index"
        assert request["body"] == envelope

    async def test_upload_rejected_carries_body(self, service, endpoint):
        service.upload_status = 400
        service.upload_body = '{"error": {"message": "The request is invalid"}}'

        with pytest.raises(RemoteOperationError) as excinfo:
            await endpoint.index_documents('{"value": []}')

        assert excinfo.value.status_code == 400
        assert excinfo.value.details == service.upload_body

    async def test_unreachable_service(self):
        server = test_utils.TestServer(web.Application())
        await server.start_server()
        url = str(server.make_url("/"))
        await server.close()

        endpoint = SearchEndpoint(IndexHandle(url, "secret-key", "hotels"))
        try:
            with pytest.raises(RemoteOperationError) as excinfo:
                await endpoint.index_documents('{"value": []}')
        finally:
            await endpoint.close()

        assert excinfo.value.status_code is None
        assert excinfo.value.details


class TestSdkCalls:
    async def test_search_page(self):
        client = FakeSearchClient(documents=[{"HotelId": "1", "@search.score": 1.0}])
        endpoint = sdk_endpoint(client)

        assert await endpoint.search(skip=500, top=500) == [{"HotelId": "1", "@search.score": 1.0}]
        assert client.search_calls == [
            {"search_text": "*", "search_mode": "all", "skip": 500, "top": 500}
        ]

    async def test_count_requests_no_documents(self):
        client = FakeSearchClient(count=1200)
        endpoint = sdk_endpoint(client)

        assert await endpoint.count_documents() == 1200
        assert client.search_calls[0]["top"] == 0
        assert client.search_calls[0]["include_total_count"] is True

    async def test_missing_count(self):
        with pytest.raises(RemoteOperationError):
            await sdk_endpoint(FakeSearchClient(count=None)).count_documents()

    async def test_search_error_keeps_status(self):
        endpoint = sdk_endpoint(FakeSearchClient(error=http_error(403, "Forbidden")))

        with pytest.raises(RemoteOperationError) as excinfo:
            await endpoint.search(skip=0, top=10)

        assert excinfo.value.status_code == 403
        assert excinfo.value.details == "Forbidden"

    @pytest.mark.parametrize(
        "error", [ServiceRequestError("Connection reset by peer"), ConnectionResetError(104, "reset")]
    )
    async def test_transport_errors_are_wrapped(self, error):
        endpoint = sdk_endpoint(FakeSearchClient(error=error))

        with pytest.raises(RemoteOperationError) as excinfo:
            await endpoint.count_documents()

        assert excinfo.value.__cause__ is error
        assert type(error).__name__ in excinfo.value.details

    async def test_delete_index(self):
        client = FakeSearchClient()

        assert await sdk_endpoint(client).delete_index() is True
        assert client.deleted == ["hotels"]

    async def test_delete_missing_index(self):
        endpoint = sdk_endpoint(FakeSearchClient(error=ResourceNotFoundError("No index with the name")))
        assert await endpoint.delete_index() is False

    async def test_delete_failure(self):
        endpoint = sdk_endpoint(FakeSearchClient(error=http_error(403, "Forbidden")))

        with pytest.raises(RemoteOperationError) as excinfo:
            await endpoint.delete_index()
        assert excinfo.value.status_code == 403

    async def test_close_releases_clients(self):
        client = FakeSearchClient()
        endpoint = sdk_endpoint(client)

        await endpoint.close()

        assert client.closed
        assert endpoint._search_client is None


def test_public_cloud_endpoint():
    endpoint = create_search_endpoint(IndexHandle("contoso", "key", "hotels"))
    assert repr(endpoint) == "SearchEndpoint('https://contoso.search.windows.net', 'hotels')"
    assert create_search_endpoint(None) is None
