"""Product search, proxied to the hosted search index."""

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_search_client
from src.api.schemas import SearchResponse
from src.integrations.search_index import SearchIndexClient

router = APIRouter(tags=["Search"])


@router.get("/search", response_model=SearchResponse, summary="Search products")
def search_products(
    q: str = Query(default="", max_length=200),
    page: int = Query(default=0, ge=0),
    hits_per_page: int = Query(default=20, ge=1, le=100),
    search: SearchIndexClient = Depends(get_search_client),
):
    """Only active products are returned."""
    result = search.search(q, page=page, hits_per_page=hits_per_page, filters="isActive:true") or {}
    return {
        "hits": result.get("hits", []),
        "nb_hits": result.get("nbHits", 0),
        "page": result.get("page", page),
        "nb_pages": result.get("nbPages", 0),
    }
