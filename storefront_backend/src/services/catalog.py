"""Read-side catalog queries: products, variants with stock, categories."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import Session

from src.core.errors import BadRequestError, NotFoundError
from src.db.models import Category, Inventory, Product, Variant

SORTS = {
    "newest": Product.created_at.desc(),
    "price_asc": Product.base_price_cents.asc(),
    "price_desc": Product.base_price_cents.desc(),
    "name": Product.name.asc(),
}


def _in_stock_clause():
    return exists().where(
        and_(
            Variant.product_id == Product.id,
            Variant.is_active.is_(True),
            Inventory.variant_id == Variant.id,
            Inventory.available > 0,
        )
    )


def list_products(
    db: Session,
    *,
    category_slug: Optional[str] = None,
    q: Optional[str] = None,
    featured: Optional[bool] = None,
    in_stock: Optional[bool] = None,
    sort: str = "newest",
    page: int = 1,
    page_size: int = 24,
) -> Dict[str, Any]:
    if sort not in SORTS:
        raise BadRequestError(f"Unknown sort: {sort}")

    conditions = [Product.is_active.is_(True)]
    if category_slug:
        conditions.append(Product.category.has(Category.slug == category_slug))
    if q:
        pattern = f"%{q.lower()}%"
        conditions.append(or_(func.lower(Product.name).like(pattern), func.lower(Product.description).like(pattern)))
    if featured is not None:
        conditions.append(Product.is_featured.is_(featured))
    if in_stock:
        conditions.append(_in_stock_clause())

    total = db.execute(select(func.count()).select_from(Product).where(*conditions)).scalar_one()
    products = list(
        db.execute(
            select(Product)
            .where(*conditions)
            .order_by(SORTS[sort], Product.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars()
    )
    return {"products": products, "total": total, "page": page, "page_size": page_size}


def variant_view(variant: Variant) -> Dict[str, Any]:
    inventory = variant.inventory
    available = inventory.available if inventory else 0
    threshold = inventory.low_stock_threshold if inventory else 0
    return {
        "id": variant.id,
        "name": variant.name,
        "sku": variant.sku,
        "size": variant.size,
        "color": variant.color,
        "price_cents": variant.price_cents,
        "compare_at_price_cents": variant.compare_at_price_cents,
        "available": available,
        "in_stock": available > 0,
        "low_stock": 0 < available <= threshold,
    }


def _active_product(db: Session, slug: str) -> Product:
    product = db.execute(
        select(Product).where(Product.slug == slug, Product.is_active.is_(True))
    ).scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product")
    return product


def get_product(db: Session, slug: str) -> Dict[str, Any]:
    product = _active_product(db, slug)
    variants = [variant_view(v) for v in product.variants if v.is_active]
    return {"product": product, "variants": variants, "in_stock": any(v["in_stock"] for v in variants)}


def related_products(db: Session, slug: str, limit: int = 4) -> List[Product]:
    product = _active_product(db, slug)
    if product.category_id is None:
        return []
    return list(
        db.execute(
            select(Product)
            .where(
                Product.category_id == product.category_id,
                Product.id != product.id,
                Product.is_active.is_(True),
            )
            .order_by(Product.is_featured.desc(), Product.created_at.desc())
            .limit(limit)
        ).scalars()
    )


def list_categories(db: Session) -> List[Dict[str, Any]]:
    counts = (
        select(Product.category_id, func.count(Product.id).label("product_count"))
        .where(Product.is_active.is_(True))
        .group_by(Product.category_id)
        .subquery()
    )
    rows = db.execute(
        select(Category, func.coalesce(counts.c.product_count, 0))
        .outerjoin(counts, counts.c.category_id == Category.id)
        .where(Category.is_active.is_(True))
        .order_by(Category.sort_order, Category.name)
    ).all()
    return [{"category": category, "product_count": count} for category, count in rows]


def get_category(db: Session, slug: str) -> Dict[str, Any]:
    category = db.execute(
        select(Category).where(Category.slug == slug, Category.is_active.is_(True))
    ).scalar_one_or_none()
    if category is None:
        raise NotFoundError("Category")
    products = [p for p in category.products if p.is_active]
    return {"category": category, "products": products}
