"""Sanity content API client (GROQ queries over HTTP)."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
import structlog

from src.core.config import Settings, get_settings
from src.core.errors import ExternalServiceError
from src.integrations.http import request_json

logger = structlog.get_logger(__name__)

PRODUCTS_QUERY = """*[_type == "product" && !(_id in path("drafts.**"))] {
  _id,
  name,
  "slug": slug.current,
  description,
  sku,
  basePrice,
  compareAtPrice,
  isActive,
  isFeatured,
  isNew,
  "images": images[].asset->url,
  "category": category->{
    _id,
    name,
    "slug": slug.current,
    description,
    sortOrder
  },
  "variants": variants[] {
    _key,
    name,
    sku,
    size,
    color,
    price,
    compareAtPrice,
    stock,
    isActive
  },
  "sourceData": sourceData {
    supplierProductId,
    supplierUrl,
    supplierSku,
    supplierId,
    supplierName,
    supplierStoreUrl,
    originalPrice,
    originalCurrency,
    sourceStatus
  },
  "variantMapping": variantMapping[] {
    localVariantSku,
    supplierSku
  }
}"""


class CMSClient:
    """Read-only client for the Sanity HTTP query API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.Client] = None) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=30.0)

    @property
    def base_url(self) -> str:
        s = self.settings
        return f"https://{s.sanity_project_id}.api.sanity.io/v{s.sanity_api_version}/data/query/{s.sanity_dataset}"

    def fetch(self, groq: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Run a GROQ query and return its `result`."""
        if not self.settings.sanity_project_id:
            raise ExternalServiceError("Sanity", "Sanity is not configured")

        query_params: Dict[str, str] = {"query": groq}
        for key, value in (params or {}).items():
            # GROQ parameters are passed as $name=<json>
            query_params[f"${key}"] = json.dumps(value)

        headers = {}
        if self.settings.sanity_api_token:
            headers["Authorization"] = f"Bearer {self.settings.sanity_api_token}"

        body = request_json(self._client, "Sanity", "GET", self.base_url, params=query_params, headers=headers)
        return (body or {}).get("result")

    def fetch_products(self) -> List[Dict[str, Any]]:
        products = self.fetch(PRODUCTS_QUERY) or []
        logger.info("cms_products_fetched", count=len(products))
        return products

    def close(self) -> None:
        self._client.close()
