"""
Catalog synchronisation jobs.

`sync_cms_to_db` mirrors the CMS catalog into the relational tables (the CMS
stays the source of truth), and `index_products` pushes the active catalog to
the hosted search index.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.base import as_utc, utcnow
from src.db.models import Category, Product, ProductSource, SourceStatus, Supplier, Variant
from src.integrations.cms import CMSClient
from src.integrations.search_index import BATCH_SIZE, SearchIndexClient
from src.services.inventory import set_stock

logger = structlog.get_logger(__name__)


def _upsert_category(db: Session, doc: Dict[str, Any]) -> Category:
    category = db.execute(select(Category).where(Category.cms_id == doc["_id"])).scalar_one_or_none()
    if category is None:
        category = Category(cms_id=doc["_id"])
        db.add(category)
    category.name = doc.get("name") or doc["slug"]
    category.slug = doc["slug"]
    category.description = doc.get("description")
    category.sort_order = doc.get("sortOrder") or 0
    category.is_active = True
    return category


def _sync_variants(db: Session, product: Product, docs: List[Dict[str, Any]]) -> int:
    """Upsert variants by CMS key; variants no longer in the CMS are deactivated, not deleted."""
    existing = {v.cms_key: v for v in product.variants if v.cms_key}
    seen = set()
    for position, doc in enumerate(docs):
        key = doc["_key"]
        seen.add(key)
        variant = existing.get(key)
        if variant is None:
            variant = Variant(cms_key=key)
            product.variants.append(variant)
        variant.name = doc.get("name") or product.name
        variant.sku = doc.get("sku") or f"{product.sku or product.slug}-{key}"
        variant.size = doc.get("size")
        variant.color = doc.get("color")
        variant.price_cents = doc.get("price") or product.base_price_cents
        variant.compare_at_price_cents = doc.get("compareAtPrice")
        variant.sort_order = position
        variant.is_active = doc.get("isActive", True) is not False
        set_stock(db, variant, int(doc.get("stock") or 0))

    deactivated = 0
    for key, variant in existing.items():
        if key not in seen and variant.is_active:
            variant.is_active = False
            deactivated += 1
    return deactivated


def _upsert_supplier(db: Session, source: Dict[str, Any]) -> Supplier:
    store_id = str(source["supplierId"])
    supplier = db.execute(select(Supplier).where(Supplier.external_store_id == store_id)).scalar_one_or_none()
    if supplier is None:
        supplier = Supplier(
            external_store_id=store_id,
            name=source.get("supplierName") or f"Supplier {store_id}",
            store_url=source.get("supplierStoreUrl"),
        )
        db.add(supplier)
        logger.info("supplier_created", external_store_id=store_id)
    return supplier


def _source_status(value: Optional[str]) -> str:
    try:
        return SourceStatus((value or SourceStatus.ACTIVE.value).upper()).value
    except ValueError:
        return SourceStatus.ACTIVE.value


def _upsert_source(db: Session, product: Product, doc: Dict[str, Any]) -> Optional[ProductSource]:
    source = doc.get("sourceData") or {}
    if not source.get("supplierId") or not source.get("supplierProductId"):
        return None

    supplier = _upsert_supplier(db, source)
    row = db.execute(select(ProductSource).where(ProductSource.cms_product_id == doc["_id"])).scalar_one_or_none()
    if row is None:
        row = ProductSource(cms_product_id=doc["_id"])
        db.add(row)

    mapping = {
        entry["localVariantSku"]: entry["supplierSku"]
        for entry in doc.get("variantMapping") or []
        if entry.get("localVariantSku") and entry.get("supplierSku")
    }
    row.product = product
    row.product_slug = product.slug
    row.supplier = supplier
    row.supplier_product_id = str(source["supplierProductId"])
    row.supplier_url = source.get("supplierUrl") or ""
    row.supplier_sku = source.get("supplierSku")
    row.original_price_cents = int(source.get("originalPrice") or 0)
    row.original_currency = (source.get("originalCurrency") or "USD").upper()
    row.source_status = _source_status(source.get("sourceStatus"))
    row.variant_mapping = mapping or None
    row.last_synced_at = utcnow()
    return row


# PUBLIC_INTERFACE
def sync_cms_to_db(db: Session, cms: CMSClient) -> Dict[str, int]:
    """
    Mirror every published CMS product into the database.

    Categories and products are matched on their CMS document id, variants on
    their array key. Stock from the CMS replaces on-hand quantity; current
    reservations are kept. Commits once at the end.

    Returns:
        Counts of products, categories, variants, sources and deactivated variants.
    """
    docs = cms.fetch_products()
    counts = {"products": 0, "categories": 0, "variants": 0, "sources": 0, "deactivated_variants": 0}
    categories: Dict[str, Category] = {}

    for doc in docs:
        if not doc.get("slug"):
            logger.warning("cms_product_skipped", cms_id=doc.get("_id"), reason="missing slug")
            continue

        category = None
        category_doc = doc.get("category")
        if category_doc and category_doc.get("slug"):
            category = categories.get(category_doc["_id"])
            if category is None:
                category = _upsert_category(db, category_doc)
                categories[category_doc["_id"]] = category
                counts["categories"] += 1

        product = db.execute(select(Product).where(Product.cms_id == doc["_id"])).scalar_one_or_none()
        if product is None:
            product = Product(cms_id=doc["_id"])
            db.add(product)
        product.name = doc.get("name") or doc["slug"]
        product.slug = doc["slug"]
        product.description = doc.get("description") if isinstance(doc.get("description"), str) else None
        product.sku = doc.get("sku")
        product.base_price_cents = int(doc.get("basePrice") or 0)
        product.compare_at_price_cents = doc.get("compareAtPrice")
        product.images = [url for url in doc.get("images") or [] if url]
        product.category = category
        product.is_active = doc.get("isActive", True) is not False
        product.is_featured = bool(doc.get("isFeatured"))
        product.is_new = bool(doc.get("isNew"))
        db.flush()

        variant_docs = doc.get("variants") or []
        counts["deactivated_variants"] += _sync_variants(db, product, variant_docs)
        counts["variants"] += len(variant_docs)
        if _upsert_source(db, product, doc) is not None:
            counts["sources"] += 1
        counts["products"] += 1
        logger.debug("cms_product_synced", slug=product.slug, variants=len(variant_docs))

    db.commit()
    logger.info("cms_sync_completed", **counts)
    return counts


def search_record(product: Product) -> Dict[str, Any]:
    """Flatten a product into the document stored in the search index."""
    variants = [v for v in product.variants if v.is_active]
    category = product.category
    return {
        "objectID": str(product.id),
        "name": product.name,
        "slug": product.slug,
        "description": product.description or "",
        "basePrice": product.base_price_cents,
        "compareAtPrice": product.compare_at_price_cents,
        "image": (product.images or [None])[0],
        "category": category.name if category else None,
        "categoryId": str(category.id) if category else None,
        "categorySlug": category.slug if category else None,
        "colors": sorted({v.color for v in variants if v.color}),
        "sizes": sorted({v.size for v in variants if v.size}),
        "inStock": any(v.inventory is not None and v.inventory.available > 0 for v in variants),
        "isActive": product.is_active,
        "isFeatured": product.is_featured,
        "isNew": product.is_new,
        "updatedAt": int(as_utc(product.updated_at).timestamp() * 1000),
    }


# PUBLIC_INTERFACE
def index_products(db: Session, search: SearchIndexClient, batch_size: int = BATCH_SIZE) -> Dict[str, int]:
    """Upload every active product to the search index. Returns record and batch counts."""
    products = list(db.execute(select(Product).where(Product.is_active.is_(True)).order_by(Product.slug)).scalars())
    records = [search_record(product) for product in products]
    batches = search.save_objects(records, batch_size=batch_size) if records else 0
    logger.info("products_indexed", records=len(records), batches=batches)
    return {"records": len(records), "batches": batches}
