import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from searchbackup.config import IndexHandle, TransferConfig
from searchbackup.exceptions import RemoteOperationError


class FakeEndpoint:
    """In-memory stand-in for SearchEndpoint"""

    def __init__(
        self,
        index_name: str,
        documents: Optional[List[Dict[str, Any]]] = None,
        schema: Optional[Dict[str, Any]] = None,
    ):
        self.index_name = index_name
        self.documents = list(documents or [])
        self.schema_text = json.dumps(schema if schema is not None else make_schema(index_name), indent=2)
        self.exists = True

        self.calls: List[str] = []
        self.created_schemas: List[str] = []
        self.uploaded: List[str] = []

        self.fail_search_skips = set()
        self.fail_count = False
        self.fail_schema = False
        self.reject_create = False
        self.reject_upload = False
        self.drop_upload_connection = False
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, skip: int, top: int) -> List[Dict[str, Any]]:
        self.calls.append("search")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if skip in self.fail_search_skips:
                raise RemoteOperationError("search failed", 503)
            page = self.documents[skip:skip + top]
            return [dict(doc, **{"@search.score": 1.0}) for doc in page]
        finally:
            self.in_flight -= 1

    async def count_documents(self) -> int:
        self.calls.append("count")
        if self.fail_count:
            raise RemoteOperationError("count failed", 503)
        return len(self.documents)

    async def get_index_definition(self) -> str:
        self.calls.append("get_index")
        if self.fail_schema:
            raise RemoteOperationError("forbidden", 403, "Access denied")
        return self.schema_text

    async def create_index(self, schema_json: str) -> None:
        self.calls.append("create_index")
        if self.reject_create:
            raise RemoteOperationError("create failed", 400, "Invalid field type")
        self.created_schemas.append(schema_json)
        self.exists = True

    async def delete_index(self) -> bool:
        self.calls.append("delete_index")
        existed = self.exists
        self.exists = False
        self.documents = []
        return existed

    async def index_documents(self, envelope_json: str) -> None:
        self.calls.append("index_documents")
        if self.reject_upload:
            raise RemoteOperationError("upload failed", 400, "The request is invalid")
        if self.drop_upload_connection:
            raise RemoteOperationError("upload failed", details="ClientOSError: Connection reset by peer")
        self.uploaded.append(envelope_json)
        self.documents.extend(json.loads(envelope_json)["value"])

    async def close(self):
        self.calls.append("close")


def make_schema(index_name: str) -> Dict[str, Any]:
    return {
        "@odata.context": "https://example.search.windows.net/$metadata#indexes/$entity",
        "@odata.etag": "\"0x8DC1\"",
        "name": index_name,
        "fields": [
            {"name": "HotelId", "type": "Edm.String", "key": True},
            {"name": "HotelName", "type": "Edm.String", "searchable": True},
            {"name": "Location", "type": "Edm.GeographyPoint"},
        ],
        "scoringProfiles": [],
        "similarity": {"@odata.type": "#Microsoft.Azure.Search.BM25Similarity"},
    }


def make_documents(count: int, start: int = 0) -> List[Dict[str, Any]]:
    return [
        {"HotelId": str(i), "HotelName": f"Hotel {i}", "Rating": i % 5}
        for i in range(start, start + count)
    ]


@pytest.fixture
def backup_dir(tmp_path):
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def make_config(backup_dir):
    def factory(source: bool = True, target: bool = True, **kwargs) -> TransferConfig:
        kwargs.setdefault("indexing_delay_seconds", 0)
        return TransferConfig(
            backup_directory=backup_dir,
            source=IndexHandle("source-svc", "source-key", "hotels") if source else None,
            target=IndexHandle("target-svc", "target-key", "hotels-restored") if target else None,
            **kwargs,
        )

    return factory
