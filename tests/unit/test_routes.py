"""
API tests for the product, inventory and admin routes.

Run: pytest tests/unit/test_routes.py -v
"""

import pytest

from config import settings
from integrations.supplier_product_cache import SupplierProductCacheError
from tests.factories import (
    SUPPLIER_ID,
    batch_payload,
    product_payload,
    simple_products,
    supplied_product_row,
    supplied_variant_row,
    supplier_row,
)


HEADERS = {"X-Supplier-Id": SUPPLIER_ID}
ADMIN_HEADERS = {"X-Admin-Key": "admin-secret"}


def seed_supplier(app_services, **sync_settings) -> dict:
    settings_row = {"immutableVariantKey": True, "hasPricing": True, "hasInventory": True, **sync_settings}
    return app_services.db.seed("suppliers", [supplier_row(productsSyncSettings=settings_row)])[0]


@pytest.fixture
def supplier(app_services):
    return seed_supplier(app_services)


# ===================
# AUTHENTICATION
# ===================

class TestAuthentication:

    def test_supplier_header_required(self, test_client, supplier):
        response = test_client.get("/api/products/batches")

        assert response.status_code == 422

    def test_unknown_supplier(self, test_client, supplier):
        response = test_client.get(
            "/api/products/batches",
            headers={"X-Supplier-Id": "99999999-9999-9999-9999-999999999999"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SUPPLIER_NOT_FOUND"

    def test_api_key_enforced_when_configured(self, test_client, supplier, monkeypatch):
        monkeypatch.setattr(settings, "api_key", "supplier-secret")

        rejected = test_client.get("/api/products/batches", headers={**HEADERS, "X-API-Key": "wrong"})
        accepted = test_client.get("/api/products/batches", headers={**HEADERS, "X-API-Key": "supplier-secret"})

        assert rejected.status_code == 401
        assert rejected.json()["error"]["code"] == "UNAUTHORIZED"
        assert accepted.status_code == 200

    def test_admin_key_required(self, test_client):
        assert test_client.post("/api/admin/batches/process-pending").status_code == 401
        assert test_client.post(
            "/api/admin/batches/process-pending", headers={"X-Admin-Key": "nope"}
        ).status_code == 401

    def test_admin_disabled_without_key(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "admin_api_key", None)

        response = test_client.post("/api/admin/batches/process-pending", headers=ADMIN_HEADERS)

        assert response.status_code == 401


# ===================
# PRODUCT BATCHES
# ===================

class TestBatchSubmission:

    def test_processed_batch(self, test_client, supplier):
        response = test_client.put("/api/products/batch", json=batch_payload(simple_products(2)), headers=HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "SUCCESS"
        assert body["batchName"] == "nightly"
        assert body["productsImportedCount"] == 2
        assert body["productsImported"][0] == {"productKey": "P0", "variants": [{"variantKey": "P0-v1"}]}

    def test_rejected_by_validation(self, test_client, supplier):
        payload = batch_payload([product_payload(None), product_payload(None), *simple_products(1)])

        response = test_client.put("/api/products/batch", json=payload, headers=HEADERS)

        assert response.status_code == 422
        body = response.json()
        assert body["status"] == "ERROR"
        assert body["customData"]["message"] == "Too many errors in batch, could not process"
        assert body["productsNotImported"][0] == {
            "productKey": None,
            "refId": 0,
            "reason": "missing a productKey",
            "variants": None,
        }

    def test_rejected_after_matching(self, test_client, supplier):
        products = [product_payload(f"NP{index}", [
            {"variantKey": f"NP{index}-1", "options": {"Size": "M"}, "stock": {"quantity": 1}}
        ]) for index in range(3)]

        response = test_client.put("/api/products/batch", json=batch_payload(products), headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["customData"]["message"] == (
            "Failed because of too many errors found in batch, changes were not persisted."
        )

    def test_malformed_variant_is_reported_per_product(self, test_client, app_services, supplier):
        products = simple_products(5)
        products[0]["variants"][0]["price"]["amount"] = "not-a-number"

        response = test_client.put("/api/products/batch", json=batch_payload(products), headers=HEADERS)

        assert response.status_code == 201
        body = response.json()
        assert body["productsImportedCount"] == 4
        assert body["productsNotImportedCount"] == 1
        rejected = body["productsNotImported"][0]
        assert rejected["productKey"] == "P0"
        assert rejected["variants"][0]["reason"].startswith("price.amount: ")

        stored = app_services.db.get("batches", body["id"])
        assert stored["content"]["products"][0]["variants"][0]["price"]["amount"] == "not-a-number"

    def test_async_mode(self, test_client, app_services):
        seed_supplier(app_services, asyncMode=True)

        response = test_client.put("/api/products/batch", json=batch_payload(simple_products(2)), headers=HEADERS)

        assert response.status_code == 202
        assert response.json()["status"] == "PENDING"
        assert app_services.db.get("batches", response.json()["id"])["status"] == "PENDING"

    def test_stale_batch(self, test_client, app_services, supplier):
        app_services.db.seed("batches", [{
            "supplier_id": SUPPLIER_ID,
            "type": "SUPPLIED_PRODUCT",
            "status": "SUCCESS",
            "name": "newer",
            "date": "2024-06-01T00:00:00+00:00",
        }])

        response = test_client.put("/api/products/batch", json=batch_payload(simple_products(2)), headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "STALE_BATCH"

    def test_missing_sync_settings(self, test_client, app_services):
        app_services.db.seed("suppliers", [supplier_row(productsSyncSettings=None)])

        response = test_client.put("/api/products/batch", json=batch_payload(simple_products(2)), headers=HEADERS)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_SYNC_SETTINGS"

    def test_malformed_body(self, test_client, supplier):
        response = test_client.put("/api/products/batch", json={"products": []}, headers=HEADERS)

        assert response.status_code == 422


class TestBatchLookup:

    def test_list_batches(self, test_client, supplier):
        for name in ("first", "second"):
            test_client.put(
                "/api/products/batch",
                json=batch_payload(simple_products(1), batch_name=name),
                headers=HEADERS
            )

        response = test_client.get("/api/products/batches", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"]["totalCount"] == 2
        assert len(body["batches"]) == 2

    def test_list_batches_paginated(self, test_client, supplier):
        for name in ("first", "second"):
            test_client.put(
                "/api/products/batch",
                json=batch_payload(simple_products(1), batch_name=name),
                headers=HEADERS
            )

        response = test_client.get(
            "/api/products/batches",
            params={"page_size": 1, "batch_name": "SEC"},
            headers=HEADERS
        )

        body = response.json()
        assert body["pagination"] == {"pageIndex": 0, "pageSize": 1, "totalCount": 1, "totalPages": 1}
        assert body["batches"][0]["batchName"] == "second"

    def test_get_batch_and_status(self, test_client, supplier):
        created = test_client.put(
            "/api/products/batch", json=batch_payload(simple_products(1)), headers=HEADERS
        ).json()

        batch = test_client.get(f"/api/products/batches/{created['id']}", headers=HEADERS)
        status = test_client.get(f"/api/products/batches/{created['id']}/status", headers=HEADERS)

        assert batch.status_code == 200
        assert batch.json()["productsImportedCount"] == 1
        assert status.json() == {"status": "SUCCESS"}

    def test_other_suppliers_batch_is_not_found(self, test_client, app_services, supplier):
        other = app_services.db.seed("batches", [{
            "supplier_id": "22222222-2222-2222-2222-222222222222",
            "type": "SUPPLIED_PRODUCT",
            "status": "SUCCESS",
            "name": "theirs",
            "date": "2024-03-01T00:00:00+00:00",
        }])[0]

        response = test_client.get(f"/api/products/batches/{other['id']}", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BATCH_NOT_FOUND"


# ===================
# INVENTORY
# ===================

class TestInventoryAdjustment:

    @pytest.fixture
    def variant(self, app_services, supplier):
        product = app_services.db.seed("supplied_products", [supplied_product_row("A")])[0]
        return app_services.db.seed("supplied_product_variants", [supplied_variant_row(product, "K")])[0]

    def test_applied(self, test_client, app_services, variant):
        response = test_client.post(
            "/api/inventory/adjustment", json=[{"variantKey": "K", "quantity": 3}], headers=HEADERS
        )

        assert response.status_code == 204
        assert app_services.db.get("supplied_product_variants", variant["id"])["inventory_quantity"] == 3

    def test_malformed_request(self, test_client, variant):
        response = test_client.post("/api/inventory/adjustment", json=[{"quantity": 3}], headers=HEADERS)

        assert response.status_code == 400
        assert response.json() == {
            "errors": [{"path": 0, "message": "Must pass a valid value for either variantKey or sku"}]
        }

    def test_unresolved_item(self, test_client, app_services, variant):
        response = test_client.post(
            "/api/inventory/adjustment",
            json=[{"variantKey": "K", "quantity": 3}, {"sku": "NOPE", "quantity": 1}],
            headers=HEADERS
        )

        assert response.status_code == 422
        assert response.json()["errors"] == [{"path": 1, "message": "No variant found with sku value of NOPE"}]
        assert app_services.db.get("supplied_product_variants", variant["id"])["inventory_quantity"] == 5


# ===================
# ADMIN
# ===================

class TestAdmin:

    def test_process_pending(self, test_client, app_services):
        seed_supplier(app_services, asyncMode=True)
        accepted = test_client.put(
            "/api/products/batch", json=batch_payload(simple_products(1)), headers=HEADERS
        ).json()

        response = test_client.post("/api/admin/batches/process-pending", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "results": {accepted["id"]: "SUCCESS"}}

    def test_process_one_batch(self, test_client, app_services):
        seed_supplier(app_services, asyncMode=True)
        accepted = test_client.put(
            "/api/products/batch", json=batch_payload(simple_products(1)), headers=HEADERS
        ).json()

        response = test_client.post(f"/api/admin/batches/{accepted['id']}/process", headers=ADMIN_HEADERS)
        again = test_client.post(f"/api/admin/batches/{accepted['id']}/process", headers=ADMIN_HEADERS)

        assert response.status_code == 202
        assert response.json() == {"success": True, "status": "SUCCESS"}
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "BATCH_NOT_PENDING"

    def test_process_unknown_batch(self, test_client):
        response = test_client.post("/api/admin/batches/missing/process", headers=ADMIN_HEADERS)

        assert response.status_code == 404

    def test_process_batch_of_other_type(self, test_client, app_services, supplier):
        batch = app_services.db.seed("batches", [{
            "supplier_id": SUPPLIER_ID,
            "type": "ORDER",
            "status": "PENDING",
            "name": "orders",
            "date": "2024-03-01T00:00:00+00:00",
        }])[0]

        response = test_client.post(f"/api/admin/batches/{batch['id']}/process", headers=ADMIN_HEADERS)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_BATCH_TYPE"

    def test_product_cache_sync_skipped(self, test_client, app_services, supplier):
        response = test_client.post(
            f"/api/admin/suppliers/{SUPPLIER_ID}/product-cache-sync", headers=ADMIN_HEADERS
        )

        assert response.status_code == 202
        assert response.json() == {"success": True, "batchId": None}

    def test_product_cache_unavailable(self, test_client, app_services):
        seed_supplier(app_services, spcSyncEnabled=True)

        class UnavailableCache:
            def get_supplier(self, code):
                raise SupplierProductCacheError("connection refused")

        app_services.tasks.product_cache = UnavailableCache()

        response = test_client.post(
            f"/api/admin/suppliers/{SUPPLIER_ID}/product-cache-sync", headers=ADMIN_HEADERS
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SUPPLIER_PRODUCT_CACHE_ERROR"
