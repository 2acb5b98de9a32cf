"""Algolia REST client for the product search index."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import httpx
import structlog

from src.core.config import Settings, get_settings
from src.core.errors import ExternalServiceError
from src.integrations.http import request_json

logger = structlog.get_logger(__name__)

BATCH_SIZE = 1000


def _chunks(records: List[Dict[str, Any]], size: int) -> Iterable[List[Dict[str, Any]]]:
    for start in range(0, len(records), size):
        yield records[start : start + size]


class SearchIndexClient:
    """Writes product records to, and queries, a single Algolia index."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.Client] = None) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=30.0)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.algolia_app_id and self.settings.algolia_admin_key)

    def _url(self, suffix: str) -> str:
        return f"https://{self.settings.algolia_app_id}.algolia.net/1/indexes/{self.settings.algolia_index_name}/{suffix}"

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Algolia-Application-Id": self.settings.algolia_app_id,
            "X-Algolia-API-Key": self.settings.algolia_admin_key,
        }

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise ExternalServiceError("Algolia", "Search index is not configured")

    def save_objects(self, records: List[Dict[str, Any]], batch_size: int = BATCH_SIZE) -> int:
        """Upsert records by objectID. Returns the number of batches sent."""
        self._require_enabled()
        batches = 0
        for chunk in _chunks(records, batch_size):
            payload = {"requests": [{"action": "updateObject", "body": record} for record in chunk]}
            request_json(self._client, "Algolia", "POST", self._url("batch"), json=payload, headers=self._headers())
            batches += 1
            logger.info("search_batch_uploaded", batch=batches, size=len(chunk))
        return batches

    def search(self, query: str, page: int = 0, hits_per_page: int = 20, filters: Optional[str] = None) -> Dict[str, Any]:
        self._require_enabled()
        payload: Dict[str, Any] = {"query": query, "page": page, "hitsPerPage": hits_per_page}
        if filters:
            payload["filters"] = filters
        return request_json(self._client, "Algolia", "POST", self._url("query"), json=payload, headers=self._headers())

    def close(self) -> None:
        self._client.close()
