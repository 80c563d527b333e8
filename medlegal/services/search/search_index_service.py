"""Full-text and vector search over analyzed documents (Azure AI Search REST)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from medlegal.core.config import settings
from medlegal.core.exceptions import SearchIndexError, UnavailableError
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

SEARCH_SELECT_FIELDS = "id,fileName,documentType,caseId,uploadDate,summary,tags"


def build_index_schema(name: str, dimensions: int) -> Dict[str, Any]:
    """Index definition with text fields, two vector fields and a filename boost."""
    vector_field = {
        "type": "Collection(Edm.Single)",
        "searchable": True,
        "retrievable": False,
        "dimensions": dimensions,
        "vectorSearchProfile": "vector-profile",
    }
    return {
        "name": name,
        "fields": [
            {"name": "id", "type": "Edm.String", "key": True, "filterable": True},
            {"name": "fileName", "type": "Edm.String", "searchable": True, "filterable": True, "sortable": True},
            {"name": "content", "type": "Edm.String", "searchable": True, "analyzer": "en.microsoft"},
            {"name": "documentType", "type": "Edm.String", "filterable": True, "facetable": True},
            {"name": "caseId", "type": "Edm.String", "filterable": True},
            {"name": "uploadDate", "type": "Edm.DateTimeOffset", "filterable": True, "sortable": True},
            {"name": "summary", "type": "Edm.String", "searchable": True},
            {"name": "tags", "type": "Collection(Edm.String)", "searchable": True, "filterable": True, "facetable": True},
            {"name": "contentVector", **vector_field},
            {"name": "summaryVector", **vector_field},
        ],
        "vectorSearch": {
            "algorithms": [
                {
                    "name": "hnsw-config",
                    "kind": "hnsw",
                    "hnswParameters": {"m": 4, "efConstruction": 400, "efSearch": 500, "metric": "cosine"},
                }
            ],
            "profiles": [{"name": "vector-profile", "algorithm": "hnsw-config"}],
        },
        "scoringProfiles": [
            {"name": "boost-filename", "text": {"weights": {"fileName": 2.0, "summary": 1.5, "content": 1.0}}}
        ],
    }


def _escape_filter_value(value: str) -> str:
    return value.replace("'", "''")


class SearchIndexService:
    """Upserts and queries document records in the search index.

    Documents are keyed by document id so repeated indexing overwrites.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        api_version: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: int = 30,
    ):
        azure = settings.azure
        self.endpoint = (endpoint if endpoint is not None else azure.search_endpoint).rstrip("/")
        self.api_key = api_key if api_key is not None else azure.search_key
        self.index_name = index_name or azure.search_index_name
        self.api_version = api_version or azure.search_api_version
        self.dimensions = dimensions or azure.vector_dimensions
        self.timeout = timeout
        self._index_ready = False

        if not self.is_available():
            LOGGER.warning("Azure AI Search not configured, search indexing disabled")

    def is_available(self) -> bool:
        return bool(self.endpoint and self.api_key)

    def _require_available(self) -> None:
        if not self.is_available():
            raise UnavailableError("Azure AI Search is not configured", stage="search_index")

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        headers = {"api-key": self.api_key, "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, url, params={"api-version": self.api_version}, headers=headers, json=payload
                )
        except httpx.HTTPError as e:
            raise SearchIndexError(f"Search request to {path} failed: {e}", original_error=e) from e

        if response.status_code >= 400:
            LOGGER.warning(
                "Search API error",
                extra={"path": path, "status_code": response.status_code, "error_body": response.text[:500]}
            )
            raise SearchIndexError(f"Search API error {response.status_code}: {response.text[:300]}")

        if response.status_code == 204 or not response.content:
            return {}

        try:
            body = response.json()
        except ValueError as e:
            raise SearchIndexError(f"Search API returned a non-JSON body for {path}", original_error=e) from e
        if not isinstance(body, dict):
            raise SearchIndexError(f"Search API returned an unexpected body for {path}")
        return body

    async def ensure_index(self) -> None:
        """Create or update the index definition once per process."""
        self._require_available()
        if self._index_ready:
            return

        schema = build_index_schema(self.index_name, self.dimensions)
        await self._request("PUT", f"/indexes/{self.index_name}", schema)
        self._index_ready = True
        LOGGER.info("Search index ready", extra={"index": self.index_name})

    async def index_document(
        self,
        document_id: str,
        file_name: str,
        content: str,
        case_id: Optional[str] = None,
        document_type: Optional[str] = None,
        upload_date: Optional[datetime] = None,
        summary: Optional[str] = None,
        tags: Optional[List[str]] = None,
        content_vector: Optional[List[float]] = None,
        summary_vector: Optional[List[float]] = None,
    ) -> None:
        """Upsert one document record keyed by ``document_id``.

        Vector fields are sent only when present, so documents indexed
        without embeddings stay searchable by text.

        Raises:
            UnavailableError: If search is not configured
            SearchIndexError: If the upsert is rejected
        """
        await self.ensure_index()

        record: Dict[str, Any] = {
            "@search.action": "mergeOrUpload",
            "id": document_id,
            "fileName": file_name,
            "content": content[: settings.pipeline.search_content_max_chars],
            "documentType": document_type,
            "caseId": case_id,
            "uploadDate": upload_date.isoformat() if upload_date else None,
            "summary": summary,
            "tags": tags or [],
        }
        if content_vector:
            record["contentVector"] = content_vector
        if summary_vector:
            record["summaryVector"] = summary_vector

        body = await self._request("POST", f"/indexes/{self.index_name}/docs/index", {"value": [record]})

        failed = [item for item in body.get("value", []) if not item.get("status", True)]
        if failed:
            raise SearchIndexError(f"Index upsert rejected: {failed[0].get('errorMessage', 'unknown error')}")

        LOGGER.info(
            "Document indexed",
            extra={"document_id": document_id, "has_vector": bool(content_vector)}
        )

    async def search(
        self,
        query: str,
        case_id: Optional[str] = None,
        top: int = 10,
        vector: Optional[List[float]] = None,
    ) -> List[Dict[str, Any]]:
        """Text search, or hybrid text + vector search when ``vector`` is given.

        Raises:
            UnavailableError: If search is not configured
            SearchIndexError: If the query fails
        """
        self._require_available()

        payload: Dict[str, Any] = {
            "search": query or "*",
            "top": top,
            "select": SEARCH_SELECT_FIELDS,
            "highlight": "content",
            "scoringProfile": "boost-filename",
        }
        if case_id:
            payload["filter"] = f"caseId eq '{_escape_filter_value(case_id)}'"
        if vector:
            payload["vectorQueries"] = [
                {"kind": "vector", "vector": vector, "fields": "contentVector", "k": top}
            ]

        body = await self._request("POST", f"/indexes/{self.index_name}/docs/search", payload)

        try:
            return [
                {
                    "id": hit.get("id"),
                    "file_name": hit.get("fileName"),
                    "document_type": hit.get("documentType"),
                    "case_id": hit.get("caseId"),
                    "summary": hit.get("summary"),
                    "score": hit.get("@search.score"),
                    "highlights": (hit.get("@search.highlights") or {}).get("content"),
                }
                for hit in body.get("value", [])
            ]
        except (AttributeError, TypeError) as e:
            raise SearchIndexError(f"Malformed search response: {e}", original_error=e) from e

