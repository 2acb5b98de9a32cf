"""Public catalog routes: products and categories."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.api.schemas import (
    CategoryDetailResponse,
    CategoryResponse,
    CategoryWithCount,
    ProductDetailResponse,
    ProductListResponse,
    ProductSummary,
)
from src.db.session import get_db
from src.services import catalog

router = APIRouter(tags=["Catalog"])


@router.get("/products", response_model=ProductListResponse, summary="List products")
def list_products(
    category: Optional[str] = Query(default=None, description="Category slug"),
    q: Optional[str] = Query(default=None, max_length=200),
    featured: Optional[bool] = None,
    in_stock: Optional[bool] = None,
    sort: str = Query(default="newest", description="newest | price_asc | price_desc | name"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=24, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return catalog.list_products(
        db,
        category_slug=category,
        q=q,
        featured=featured,
        in_stock=in_stock,
        sort=sort,
        page=page,
        page_size=page_size,
    )


@router.get("/products/{slug}", response_model=ProductDetailResponse, summary="Product detail with variant stock")
def get_product(slug: str, db: Session = Depends(get_db)):
    return catalog.get_product(db, slug)


@router.get("/products/{slug}/related", response_model=List[ProductSummary], summary="Related products")
def related_products(slug: str, limit: int = Query(default=4, ge=1, le=12), db: Session = Depends(get_db)):
    return catalog.related_products(db, slug, limit=limit)


@router.get("/categories", response_model=List[CategoryWithCount], summary="List categories")
def list_categories(db: Session = Depends(get_db)):
    return [
        CategoryWithCount(**CategoryResponse.model_validate(row["category"]).model_dump(), product_count=row["product_count"])
        for row in catalog.list_categories(db)
    ]


@router.get("/categories/{slug}", response_model=CategoryDetailResponse, summary="Category with its products")
def get_category(slug: str, db: Session = Depends(get_db)):
    return catalog.get_category(db, slug)
