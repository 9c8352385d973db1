"""
Unit tests for background tasks and the EDI parser.

Run: pytest tests/unit/test_tasks_service.py -v
"""

from datetime import datetime, timezone

import pytest

from models.batch import BatchStatus, BatchSubmission
from parsers.edi_parser import grams_to_unit, parse_edi_product, parse_edi_products, to_weight_unit
from tests.factories import SUPPLIER_ID, batch_payload, simple_products, supplier_row


CACHE_TIMESTAMP = "2024-05-01T00:00:00Z"


def edi_product(handle: str = "tee", **overrides) -> dict:
    product = {
        "handle": handle,
        "title": "Tee",
        "body_html": "<p>Soft</p>",
        "vendor": "Acme",
        "status": "active",
        "option1_name": "Size",
        "tags": "summer, cotton ,",
        "images": [
            {"src": "https://cdn.test/2.jpg", "position": 2},
            {"src": "https://cdn.test/1.jpg", "position": 1},
        ],
        "variants": [{
            "sku": f"{handle}-S",
            "option1_value": "S",
            "price": "10.00",
            "compare_at_price": "",
            "inventory_qty": 4,
            "inventory_policy": "deny",
            "grams": 500,
            "weight_unit": "kg",
            "barcode": "0123",
        }],
    }
    product.update(overrides)
    return product


class FakeProductCache:
    """Stands in for integrations.supplier_product_cache."""

    def __init__(self, supplier=None, products=None):
        self.supplier = supplier
        self.products = products or []
        self.calls: list[tuple[str, str]] = []

    def get_supplier(self, code: str):
        self.calls.append(("supplier", code))
        return self.supplier

    def get_products(self, code: str):
        self.calls.append(("products", code))
        return self.products


def spc_supplier_row(platform: str = "edi", **config) -> dict:
    settings = {"immutableVariantKey": True, "hasPricing": True, "hasInventory": True, "spcSyncEnabled": True}
    return supplier_row(platform=platform, productsSyncSettings=settings, **config)


def use_cache(app_services, cache: FakeProductCache) -> FakeProductCache:
    app_services.tasks.product_cache = cache
    return cache


# ===================
# PENDING BATCHES
# ===================

class TestProcessPendingBatches:

    def test_processes_pending_batches(self, app_services):
        app_services.db.seed("suppliers", [supplier_row(productsSyncSettings={
            "immutableVariantKey": True, "hasPricing": True, "hasInventory": True, "asyncMode": True
        })])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        ids = []
        for day in (2, 1):
            submission = BatchSubmission.model_validate(batch_payload(
                simple_products(2), batch_date=datetime(2024, 3, day, tzinfo=timezone.utc)
            ))
            ids.append(app_services.processor.preprocess(supplier, submission).batch_id)

        results = app_services.tasks.process_pending_batches()

        assert results == {ids[0]: BatchStatus.SUCCESS, ids[1]: BatchStatus.SUCCESS}
        assert app_services.batches.get_pending_batches() == []

    def test_failing_batch_does_not_stop_the_run(self, app_services):
        app_services.db.seed("batches", [{
            "supplier_id": "33333333-3333-3333-3333-333333333333",
            "type": "SUPPLIED_PRODUCT",
            "status": "PENDING",
            "name": "orphan",
            "date": "2024-03-01T00:00:00+00:00",
        }])
        app_services.db.seed("suppliers", [supplier_row()])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        submission = BatchSubmission.model_validate(batch_payload(simple_products(1)))
        batch_id = app_services.processor.preprocess(supplier, submission).batch_id

        results = app_services.tasks.process_pending_batches()

        assert results[batch_id] == BatchStatus.SUCCESS
        assert list(results.values()).count(BatchStatus.ERROR) == 1

    def test_nothing_pending(self, app_services):
        assert app_services.tasks.process_pending_batches() == {}


# ===================
# SUPPLIER PRODUCT CACHE SYNC
# ===================

class TestSupplierProductCacheSync:

    def test_imports_newer_catalog(self, app_services):
        app_services.db.seed("suppliers", [spc_supplier_row()])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        cache = use_cache(app_services, FakeProductCache(
            supplier={"productCacheSync": {"latestSyncTimestamp": CACHE_TIMESTAMP}},
            products=[edi_product("tee"), edi_product("cap")]
        ))

        batch_id = app_services.tasks.supplier_product_cache_sync(supplier)

        assert cache.calls == [("supplier", "acme-goods"), ("products", "acme-goods")]
        row = app_services.db.get("batches", batch_id)
        assert row["status"] == "SUCCESS"
        assert row["name"] == "productBatch-2024-05-01T00:00:00+00:00"
        assert {r["product_id"] for r in app_services.db.rows("supplied_products")} == {"tee", "cap"}
        config = app_services.db.get("suppliers", SUPPLIER_ID)["config"]
        assert config["latestProductsSyncTimeStamp"] == "2024-05-01T00:00:00+00:00"

    def test_disabled(self, app_services):
        supplier_data = supplier_row(platform="edi")
        app_services.db.seed("suppliers", [supplier_data])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        cache = use_cache(app_services, FakeProductCache())

        assert app_services.tasks.supplier_product_cache_sync(supplier) is None
        assert cache.calls == []

    @pytest.mark.parametrize("cache_supplier", [None, {}, {"productCacheSync": {}}])
    def test_cache_has_nothing(self, app_services, cache_supplier):
        app_services.db.seed("suppliers", [spc_supplier_row()])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        use_cache(app_services, FakeProductCache(supplier=cache_supplier))

        assert app_services.tasks.supplier_product_cache_sync(supplier) is None
        assert app_services.db.rows("batches") == []

    def test_already_up_to_date(self, app_services):
        app_services.db.seed("suppliers", [spc_supplier_row(latestProductsSyncTimeStamp="2024-05-01T00:00:00+00:00")])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        cache = use_cache(app_services, FakeProductCache(
            supplier={"productCacheSync": {"latestSyncTimestamp": CACHE_TIMESTAMP}},
            products=[edi_product()]
        ))

        assert app_services.tasks.supplier_product_cache_sync(supplier) is None
        assert ("products", "acme-goods") not in cache.calls

    def test_unsupported_platform(self, app_services):
        app_services.db.seed("suppliers", [spc_supplier_row(platform="shopify")])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        use_cache(app_services, FakeProductCache(
            supplier={"productCacheSync": {"latestSyncTimestamp": CACHE_TIMESTAMP}}
        ))

        assert app_services.tasks.supplier_product_cache_sync(supplier) is None
        assert app_services.db.rows("batches") == []

    def test_rejected_batch_is_returned(self, app_services):
        app_services.db.seed("suppliers", [spc_supplier_row()])
        supplier = app_services.suppliers.require_supplier(SUPPLIER_ID)
        use_cache(app_services, FakeProductCache(
            supplier={"productCacheSync": {"latestSyncTimestamp": CACHE_TIMESTAMP}},
            products=[edi_product("tee"), edi_product("tee"), edi_product(None)]
        ))

        batch_id = app_services.tasks.supplier_product_cache_sync(supplier)

        assert app_services.db.get("batches", batch_id)["status"] == "ERROR"
        assert app_services.db.rows("supplied_products") == []


# ===================
# EDI PARSER
# ===================

class TestEdiParser:

    @pytest.mark.parametrize("unit,expected", [
        ("g", "GRAM"),
        ("kg", "KILOGRAM"),
        ("oz", "OUNCE"),
        ("lb", "POUND"),
        ("stone", "stone"),
        (None, None),
    ])
    def test_weight_units(self, unit, expected):
        assert to_weight_unit(unit) == expected

    def test_grams_conversion(self):
        assert grams_to_unit(500, "KILOGRAM") == pytest.approx(0.5)
        assert grams_to_unit(1000, "POUND") == pytest.approx(2.20462)
        assert grams_to_unit(10, None) == 10

    def test_product_mapping(self):
        product = parse_edi_product(edi_product())

        assert product.product_key == "tee"
        assert product.active is True
        assert product.brand_name == "Acme"
        assert product.options == ["Size"]
        assert product.tags == ["summer", "cotton"]
        assert [image.url for image in product.images] == ["https://cdn.test/1.jpg", "https://cdn.test/2.jpg"]

    def test_variant_mapping(self):
        variant = parse_edi_product(edi_product()).variants[0]

        assert variant.variant_key == "tee-S"
        assert variant.options == {"Size": "S"}
        assert variant.name == "S"
        assert variant.price.amount == 10.0
        assert variant.price.currency == "USD"
        assert variant.compare_to_price.amount is None
        assert variant.stock.quantity == 4
        assert variant.stock.unlimited is False
        assert variant.barcode.code_type == "UNKNOWN"
        assert variant.shipping_measurements.weight.unit == "KILOGRAM"
        assert variant.shipping_measurements.weight.value == pytest.approx(0.5)

    def test_unlimited_inventory_and_inactive_product(self):
        raw = edi_product(status="draft")
        raw["variants"][0]["inventory_policy"] = "continue"

        product = parse_edi_product(raw)

        assert product.active is False
        assert product.variants[0].stock.unlimited is True

    def test_submission(self):
        timestamp = datetime(2024, 5, 1, tzinfo=timezone.utc)

        submission = parse_edi_products([edi_product("a"), edi_product("b")], timestamp)

        assert submission.batch.batch_name == "productBatch-2024-05-01T00:00:00+00:00"
        assert submission.batch.batch_date == timestamp
        assert [product.product_key for product in submission.products] == ["a", "b"]
