"""
Remote document store speaking the HTTP Data API protocol.

Every operation is one ``POST {DATA_API_URL}/action/<action>`` carrying:

    {
        "dataSource": "<cluster>",
        "database": "<database>",
        "collection": "<collection>",
        "filter" | "document" | "update" | "sort" | "pipeline": ...
    }

with the ``apiKey`` header and ``Content-Type: application/ejson``.
Datetimes travel as extended JSON (see core.documents.codec). Document ids
are generated client-side so every adapter hands out the same id shape.

Failure mapping:
    - duplicate key responses (E11000) -> DuplicateKeyError
    - any other HTTP or transport failure -> ExternalServiceError

Indexes are managed on the server; create_index only records declarations.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import httpx

from core.documents.base import DocumentStore, DuplicateKeyError, UpdateResult
from core.documents.codec import decode_document, encode_document
from core.documents.query import normalize_sort
from core.exceptions import ExternalServiceError
from core.helpers import new_object_id

if TYPE_CHECKING:
    from typing import Any

DUPLICATE_KEY_MARKERS = ("E11000", "duplicate key")


class DataApiDocumentStore(DocumentStore):
    """
    Adapter for a remote HTTP data-access facade.

    A fresh ``httpx.AsyncClient`` is opened per request, so one store
    instance can be shared by callers running on different event loops.

    Args:
        base_url: Endpoint root, e.g. ``https://data.example.com/endpoint/data/v1``
        api_key: Value of the ``apiKey`` header
        data_source: Cluster / data source name
        database: Database name
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    backend_name = "data_api"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        data_source: str,
        database: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._logger = logging.getLogger(self.__class__.__name__)
        self._base_url = base_url.rstrip("/")
        self._data_source = data_source
        self._database = database
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "apiKey": api_key,
            "Content-Type": "application/ejson",
            "Accept": "application/json",
        }

    async def _action(self, action: str, collection: str, **payload: Any) -> dict:
        body = {
            "dataSource": self._data_source,
            "database": self._database,
            "collection": collection,
            **encode_document(payload),
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.post(f"/action/{action}", content=json.dumps(body))
        except httpx.HTTPError as exc:
            self._logger.error(f"Data API {action} on {collection} failed: {exc}")
            raise ExternalServiceError(
                "Document store request failed",
                error_code="DATA_API_UNAVAILABLE",
                details={"action": action, "collection": collection},
            ) from exc

        if response.is_error:
            text = response.text
            if any(marker in text for marker in DUPLICATE_KEY_MARKERS):
                raise DuplicateKeyError(
                    f"Duplicate key in {collection}",
                    details={"collection": collection},
                )
            self._logger.error(
                f"Data API {action} on {collection} returned {response.status_code}: {text[:500]}"
            )
            raise ExternalServiceError(
                "Document store request failed",
                error_code="DATA_API_ERROR",
                details={"action": action, "collection": collection, "status": response.status_code},
            )
        return decode_document(response.json())

    async def insert_one(self, collection: str, document: dict) -> str:
        document = {"_id": new_object_id(), **document}
        result = await self._action("insertOne", collection, document=document)
        return result.get("insertedId", document["_id"])

    async def find(
        self,
        collection: str,
        criteria: dict[str, Any] | None = None,
        *,
        sort=None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict]:
        payload: dict[str, Any] = {"filter": criteria or {}}
        if sort:
            payload["sort"] = dict(normalize_sort(sort))
        if skip:
            payload["skip"] = skip
        if limit:
            payload["limit"] = limit
        result = await self._action("find", collection, **payload)
        return result.get("documents") or []

    async def find_one(self, collection: str, criteria: dict[str, Any] | None = None, *, sort=None) -> dict | None:
        if sort:
            return await super().find_one(collection, criteria, sort=sort)
        result = await self._action("findOne", collection, filter=criteria or {})
        return result.get("document")

    async def update_one(self, collection: str, criteria: dict, update: dict) -> UpdateResult:
        result = await self._action("updateOne", collection, filter=criteria, update=update)
        return UpdateResult(
            matched=result.get("matchedCount", 0),
            modified=result.get("modifiedCount", 0),
        )

    async def update_many(self, collection: str, criteria: dict, update: dict) -> UpdateResult:
        result = await self._action("updateMany", collection, filter=criteria, update=update)
        return UpdateResult(
            matched=result.get("matchedCount", 0),
            modified=result.get("modifiedCount", 0),
        )

    async def delete_one(self, collection: str, criteria: dict) -> int:
        result = await self._action("deleteOne", collection, filter=criteria)
        return result.get("deletedCount", 0)

    async def delete_many(self, collection: str, criteria: dict) -> int:
        result = await self._action("deleteMany", collection, filter=criteria)
        return result.get("deletedCount", 0)

    async def count(self, collection: str, criteria: dict[str, Any] | None = None) -> int:
        pipeline = [{"$match": criteria or {}}, {"$count": "total"}]
        result = await self._action("aggregate", collection, pipeline=pipeline)
        documents = result.get("documents") or []
        return documents[0].get("total", 0) if documents else 0
