"""
Tests for CMS sync, search indexing and the operational CLI.
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from typer.testing import CliRunner

from src.core.errors import ExternalServiceError
from src.db.models import Category, Inventory, Product, ProductSource, Supplier, Variant
from src.scripts import cli
from src.services.sync import index_products, search_record, sync_cms_to_db


def _cms_product(**overrides) -> dict:
    doc = {
        "_id": "prod-linen-shirt",
        "name": "Linen Shirt",
        "slug": "linen-shirt",
        "description": "Breathable summer shirt",
        "sku": "LS",
        "basePrice": 4500,
        "isActive": True,
        "isFeatured": True,
        "images": ["https://cdn.example.com/ls-1.jpg", None],
        "category": {"_id": "cat-tops", "name": "Tops", "slug": "tops", "sortOrder": 2},
        "variants": [
            {"_key": "v1", "name": "S / White", "sku": "LS-S-WHT", "size": "S", "color": "White", "stock": 4},
            {"_key": "v2", "name": "M / Blue", "sku": "LS-M-BLU", "size": "M", "color": "Blue", "price": 4800, "stock": 0},
        ],
        "sourceData": {
            "supplierId": 7001,
            "supplierName": "Acme Supply",
            "supplierProductId": "100200300",
            "supplierUrl": "https://supplier.example.com/item/100200300",
            "originalPrice": 1200,
            "sourceStatus": "active",
        },
        "variantMapping": [{"localVariantSku": "LS-S-WHT", "supplierSku": "SUP-S-WHITE"}],
    }
    doc.update(overrides)
    return doc


def _cms(*docs) -> MagicMock:
    cms = MagicMock(name="CMSClient")
    cms.fetch_products.return_value = list(docs)
    return cms


class TestSyncCmsToDb:
    """Test suite for sync_cms_to_db."""

    @pytest.mark.unit
    def test_creates_catalog_rows(self, db) -> None:
        counts = sync_cms_to_db(db, _cms(_cms_product()))

        assert counts == {"products": 1, "categories": 1, "variants": 2, "sources": 1, "deactivated_variants": 0}
        product = db.execute(select(Product).where(Product.cms_id == "prod-linen-shirt")).scalar_one()
        assert product.category.slug == "tops"
        assert product.images == ["https://cdn.example.com/ls-1.jpg"]
        assert [(v.sku, v.price_cents, v.inventory.available) for v in product.variants] == [
            ("LS-S-WHT", 4500, 4),
            ("LS-M-BLU", 4800, 0),
        ]

        source = db.execute(select(ProductSource)).scalar_one()
        assert source.supplier.name == "Acme Supply"
        assert source.variant_mapping == {"LS-S-WHT": "SUP-S-WHITE"}
        assert source.original_price_cents == 1200

    @pytest.mark.unit
    def test_resync_updates_and_deactivates(self, db) -> None:
        sync_cms_to_db(db, _cms(_cms_product()))
        variant = db.execute(select(Variant).where(Variant.sku == "LS-S-WHT")).scalar_one()
        variant.inventory.reserved_quantity = 1
        variant.inventory.available = 3
        db.commit()

        updated = _cms_product(
            name="Linen Shirt II",
            variants=[{"_key": "v1", "name": "S / White", "sku": "LS-S-WHT", "size": "S", "color": "White", "stock": 10}],
        )
        counts = sync_cms_to_db(db, _cms(updated))

        assert counts["deactivated_variants"] == 1
        assert db.execute(select(Product.name)).scalar_one() == "Linen Shirt II"
        assert db.execute(select(Variant.is_active).where(Variant.sku == "LS-M-BLU")).scalar_one() is False
        inventory = db.execute(select(Inventory).where(Inventory.variant_id == variant.id)).scalar_one()
        assert (inventory.quantity, inventory.reserved_quantity, inventory.available) == (10, 1, 9)
        assert len(db.execute(select(Supplier)).scalars().all()) == 1
        assert len(db.execute(select(Category)).scalars().all()) == 1

    @pytest.mark.unit
    def test_documents_without_slug_are_skipped(self, db) -> None:
        counts = sync_cms_to_db(db, _cms(_cms_product(slug=None)))
        assert counts["products"] == 0

    @pytest.mark.unit
    def test_products_without_source_have_no_supplier(self, db) -> None:
        counts = sync_cms_to_db(db, _cms(_cms_product(sourceData=None, variantMapping=None)))
        assert counts["sources"] == 0
        assert db.execute(select(ProductSource)).first() is None


class TestSearchIndexing:
    """Test suite for search_record and index_products."""

    @pytest.mark.unit
    def test_search_record(self, db) -> None:
        sync_cms_to_db(db, _cms(_cms_product()))
        product = db.execute(select(Product)).scalar_one()

        record = search_record(product)

        assert record["objectID"] == str(product.id)
        assert record["categorySlug"] == "tops"
        assert record["colors"] == ["Blue", "White"]
        assert record["sizes"] == ["M", "S"]
        assert record["inStock"] is True
        assert record["image"] == "https://cdn.example.com/ls-1.jpg"
        assert isinstance(record["updatedAt"], int)

    @pytest.mark.unit
    def test_index_only_active_products(self, db, search_client) -> None:
        sync_cms_to_db(
            db,
            _cms(
                _cms_product(),
                _cms_product(_id="prod-old", slug="old-shirt", sku="OLD", isActive=False, sourceData=None, variants=[]),
            ),
        )
        search_client.save_objects.return_value = 1

        assert index_products(db, search_client, batch_size=500) == {"records": 1, "batches": 1}
        records = search_client.save_objects.call_args.args[0]
        assert [r["slug"] for r in records] == ["linen-shirt"]
        assert search_client.save_objects.call_args.kwargs == {"batch_size": 500}

    @pytest.mark.unit
    def test_empty_catalog_sends_nothing(self, db, search_client) -> None:
        assert index_products(db, search_client) == {"records": 0, "batches": 0}
        search_client.save_objects.assert_not_called()


class TestCli:
    """Test suite for the storefront CLI."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        return CliRunner()

    @pytest.mark.unit
    def test_sync_cms_prints_counts(self, runner, mocker) -> None:
        mocker.patch.object(cli, "CMSClient")
        session = mocker.patch.object(cli, "SessionLocal").return_value
        mocker.patch.object(cli, "sync_cms_to_db", return_value={"products": 3, "deactivated_variants": 1})

        result = runner.invoke(cli.app, ["sync-cms"])

        assert result.exit_code == 0
        assert "Sync complete." in result.output
        assert "deactivated variants" in result.output
        session.close.assert_called_once()

    @pytest.mark.unit
    def test_sync_cms_failure_exits_1(self, runner, mocker) -> None:
        mocker.patch.object(cli, "CMSClient")
        session = mocker.patch.object(cli, "SessionLocal").return_value
        mocker.patch.object(cli, "sync_cms_to_db", side_effect=ExternalServiceError("Sanity", "Sanity is not configured"))

        result = runner.invoke(cli.app, ["sync-cms"])

        assert result.exit_code == 1
        assert "Sanity is not configured" in result.output
        session.rollback.assert_called_once()

    @pytest.mark.unit
    def test_index_requires_configuration(self, runner, mocker) -> None:
        mocker.patch.object(cli, "SearchIndexClient").return_value.enabled = False

        result = runner.invoke(cli.app, ["index-products"])

        assert result.exit_code == 1
        assert "not configured" in result.output

    @pytest.mark.unit
    def test_index_passes_batch_size(self, runner, mocker) -> None:
        mocker.patch.object(cli, "SearchIndexClient").return_value.enabled = True
        mocker.patch.object(cli, "SessionLocal")
        index = mocker.patch.object(cli, "index_products", return_value={"records": 12, "batches": 3})

        result = runner.invoke(cli.app, ["index-products", "--batch-size", "5"])

        assert result.exit_code == 0
        assert index.call_args.kwargs == {"batch_size": 5}

    @pytest.mark.unit
    def test_validate_env(self, runner, mocker) -> None:
        mocker.patch.object(cli, "db_healthcheck", return_value=True)
        assert runner.invoke(cli.app, ["validate-env"]).exit_code == 0

        mocker.patch.object(cli, "db_healthcheck", return_value=False)
        result = runner.invoke(cli.app, ["validate-env"])
        assert result.exit_code == 1
        assert "Missing required configuration" in result.output
