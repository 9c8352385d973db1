"""
Shared test fixtures.

Persistence is replaced by FakeSupabaseClient, a small stateful in-memory
stand-in for the Supabase query builder. Outbound messages are captured
by RecordingPublisher and sent synchronously.
"""

import os
import sys
from pathlib import Path

# Add project directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are loaded at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-key")

import copy
import re
from concurrent.futures import Executor, Future
from datetime import datetime, timezone
from enum import Enum
from types import SimpleNamespace
from typing import Any, Callable, Optional
from uuid import uuid4

import pytest

from config import settings


# ===================
# FAKE SUPABASE CLIENT
# ===================

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _comparable(value: Any) -> Any:
    """Timestamps compare as datetimes, everything else as is."""
    value = _plain(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


class FakeResponse:
    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable query against one in-memory table."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self.client = client
        self.table = table
        self._operation = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._single = False
        self._maybe_single = False
        self._count: Optional[str] = None

    # Operations

    def select(self, *columns, count: Optional[str] = None):
        self._operation = "select"
        self._count = count
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._operation = "update"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None, **kwargs):
        self._operation = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        return self

    def delete(self):
        self._operation = "delete"
        return self

    # Filters

    def eq(self, column: str, value):
        self._filters.append(lambda row: _plain(row.get(column)) == _plain(value))
        return self

    def neq(self, column: str, value):
        self._filters.append(lambda row: _plain(row.get(column)) != _plain(value))
        return self

    def in_(self, column: str, values):
        allowed = {_plain(value) for value in values}
        self._filters.append(lambda row: _plain(row.get(column)) in allowed)
        return self

    def _compare(self, column: str, value, op: Callable[[Any, Any], bool]):
        def check(row: dict) -> bool:
            current = row.get(column)
            if current is None:
                return False
            return op(_comparable(current), _comparable(value))
        self._filters.append(check)
        return self

    def gt(self, column: str, value):
        return self._compare(column, value, lambda a, b: a > b)

    def gte(self, column: str, value):
        return self._compare(column, value, lambda a, b: a >= b)

    def lt(self, column: str, value):
        return self._compare(column, value, lambda a, b: a < b)

    def lte(self, column: str, value):
        return self._compare(column, value, lambda a, b: a <= b)

    def ilike(self, column: str, pattern: str):
        regex = re.compile(
            "^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$",
            re.IGNORECASE | re.DOTALL
        )
        self._filters.append(lambda row: isinstance(row.get(column), str) and bool(regex.match(row[column])))
        return self

    # Modifiers

    def order(self, column: str, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def single(self):
        self._single = True
        return self

    def maybe_single(self):
        self._maybe_single = True
        return self

    # Execution

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self._filters)

    def execute(self) -> FakeResponse:
        self.client.check_failure(self.table, self._operation)
        rows = self.client.rows(self.table)

        if self._operation == "select":
            return self._execute_select(rows)

        if self._operation == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self.client.insert_row(self.table, row) for row in payload]
            return FakeResponse(copy.deepcopy(inserted))

        if self._operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    row["updated_at"] = _now()
                    updated.append(row)
            return FakeResponse(copy.deepcopy(updated))

        if self._operation == "upsert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            keys = (self._on_conflict or "id").split(",")
            written = []
            for incoming in payload:
                existing = next(
                    (row for row in rows if all(row.get(key) == incoming.get(key) for key in keys)),
                    None
                )
                if existing is None:
                    written.append(self.client.insert_row(self.table, incoming))
                else:
                    existing.update(copy.deepcopy(incoming))
                    existing["updated_at"] = _now()
                    written.append(existing)
            return FakeResponse(copy.deepcopy(written))

        if self._operation == "delete":
            removed = [row for row in rows if self._matches(row)]
            self.client.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse(copy.deepcopy(removed))

        raise ValueError(f"Unsupported operation {self._operation}")

    def _execute_select(self, rows: list[dict]) -> FakeResponse:
        selected = [copy.deepcopy(row) for row in rows if self._matches(row)]
        count = len(selected) if self._count == "exact" else None

        for column, desc in reversed(self._order):
            selected.sort(
                key=lambda row: (row.get(column) is None, _comparable(row.get(column))),
                reverse=desc
            )

        if self._range is not None:
            start, end = self._range
            selected = selected[start:end + 1]
        if self._limit is not None:
            selected = selected[:self._limit]

        if self._single:
            if len(selected) != 1:
                raise Exception(f"Expected a single row from {self.table}, got {len(selected)}")
            return FakeResponse(selected[0], count)
        if self._maybe_single:
            return FakeResponse(selected[0] if selected else None, count)

        return FakeResponse(selected, count)


class FakeRpc:
    def __init__(self, client: "FakeSupabaseClient", name: str, params: dict):
        self.client = client
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        self.client.check_failure("rpc", self.name)
        function = self.client.functions.get(self.name)
        if function is None:
            raise Exception(f"Unknown function {self.name}")

        # Functions run on a copy and are committed only if they succeed
        snapshot = copy.deepcopy(self.client.tables)
        try:
            data = function(self.client, copy.deepcopy(self.params))
        except Exception:
            self.client.tables = snapshot
            raise
        self.client.rpc_calls.append((self.name, copy.deepcopy(self.params)))
        return FakeResponse(data)


def apply_inventory_adjustments(client: "FakeSupabaseClient", params: dict) -> None:
    """In-memory version of the apply_inventory_adjustments SQL function."""
    for table, key in (
        ("supplied_product_variants", "variant_updates"),
        ("product_variants", "product_variant_updates"),
    ):
        for update in params.get(key) or []:
            row = next((row for row in client.rows(table) if row["id"] == update["id"]), None)
            if row is None:
                raise Exception(f"{table} row {update['id']} not found")
            row.update(update["data"])
            row["updated_at"] = _now()


class FakeSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        def test_something(fake_db):
            fake_db.seed("suppliers", [{"id": "s-1", "name": "Acme", "config": {}}])
            fake_db.fail("product_variants", "update")  # next updates raise
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.functions = {"apply_inventory_adjustments": apply_inventory_adjustments}
        self.rpc_calls: list[tuple[str, dict]] = []
        self._failures: dict[tuple[str, str], Exception] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[dict] = None) -> FakeRpc:
        return FakeRpc(self, name, params or {})

    # Test helpers

    def rows(self, table: str) -> list[dict]:
        return self.tables.setdefault(table, [])

    def seed(self, table: str, rows: list[dict]) -> list[dict]:
        return [self.insert_row(table, row) for row in rows]

    def insert_row(self, table: str, row: dict) -> dict:
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid4()))
        stored.setdefault("created_at", _now())
        stored.setdefault("updated_at", _now())
        self.rows(table).append(stored)
        return stored

    def get(self, table: str, row_id: str) -> Optional[dict]:
        return next((row for row in self.rows(table) if row["id"] == row_id), None)

    def where(self, table: str, **filters) -> list[dict]:
        return [
            row for row in self.rows(table)
            if all(_plain(row.get(key)) == _plain(value) for key, value in filters.items())
        ]

    def fail(self, table: str, operation: str, error: Optional[Exception] = None) -> None:
        self._failures[(table, operation)] = error or Exception(f"{operation} on {table} failed")

    def check_failure(self, table: str, operation: str) -> None:
        error = self._failures.get((table, operation))
        if error is not None:
            raise error


# ===================
# NOTIFICATIONS
# ===================

class ImmediateExecutor(Executor):
    """Runs submitted work inline; futures are done when returned."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class RecordingPublisher:
    """Publisher that records (queue_url, body, group_id) of every send."""

    def __init__(self):
        self.sent: list[tuple[Optional[str], dict, str]] = []
        self.error: Optional[Exception] = None

    def __call__(self, queue_url: Optional[str], body: dict, group_id: str) -> bool:
        if self.error is not None:
            raise self.error
        self.sent.append((queue_url, body, group_id))
        return True

    def of_type(self, message_type: str) -> list[dict]:
        return [body for _, body, _ in self.sent if body["type"] == message_type]


# ===================
# FIXTURES
# ===================

@pytest.fixture
def fake_db() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def platform(monkeypatch):
    """
    Switch the marketplace platform.

    Usage:
        def test_something(platform):
            platform("MERCHANT_API")
    """
    def set_platform(name: str) -> None:
        monkeypatch.setattr(settings, "marketplace_platform", name)
    return set_platform


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    """Known settings for every test."""
    monkeypatch.setattr(settings, "marketplace_platform", "SHOPIFY")
    monkeypatch.setattr(settings, "api_key", None)
    monkeypatch.setattr(settings, "admin_api_key", "admin-secret")
    monkeypatch.setattr(settings, "batch_admission_threshold", 60.0)
    monkeypatch.setattr(settings, "unlimited_stock_quantity", 1000)
    monkeypatch.setattr(settings, "generated_sku_prefix", "CS-")
    monkeypatch.setattr(settings, "sqs_pusher_url", "https://sqs.test/pusher.fifo")
    monkeypatch.setattr(settings, "sqs_inventory_pusher_url", "https://sqs.test/inventory.fifo")
    monkeypatch.setattr(settings, "client_id", "test-client")


@pytest.fixture
def app_services(fake_db, publisher):
    """
    Every service wired to the fake database and recording publisher.

    Usage:
        def test_something(app_services):
            app_services.processor.preprocess(...)
    """
    from services.batch_service import BatchService
    from services.supplier_service import SupplierService
    from services.supplied_product_service import SuppliedProductService
    from services.imported_product_service import ImportedProductService
    from services.notification_service import NotificationService
    from services.supplied_product_sync_service import SuppliedProductSyncService
    from services.product_batch_processor import ProductBatchProcessor
    from services.inventory_adjustment_service import InventoryAdjustmentService
    from services.tasks_service import TasksService

    batches = BatchService(db=fake_db)
    suppliers = SupplierService(db=fake_db)
    supplied_products = SuppliedProductService(db=fake_db)
    imported_products = ImportedProductService(db=fake_db)
    notifications = NotificationService(publisher=publisher, executor=ImmediateExecutor())
    sync = SuppliedProductSyncService(supplied_products, imported_products, notifications)
    processor = ProductBatchProcessor(batches, suppliers, supplied_products, sync)
    adjustments = InventoryAdjustmentService(fake_db, supplied_products, imported_products)
    tasks = TasksService(batches, suppliers, processor, product_cache=SimpleNamespace())

    return SimpleNamespace(
        db=fake_db,
        publisher=publisher,
        batches=batches,
        suppliers=suppliers,
        supplied_products=supplied_products,
        imported_products=imported_products,
        notifications=notifications,
        sync=sync,
        processor=processor,
        adjustments=adjustments,
        tasks=tasks,
    )


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(app_services, monkeypatch):
    """
    FastAPI test client whose service singletons use the fake database.

    Usage:
        def test_endpoint(test_client, app_services):
            response = test_client.get("/api/products/batches", headers={"X-Supplier-Id": ...})
    """
    from fastapi.testclient import TestClient
    import services.batch_service
    import services.supplier_service
    import services.supplied_product_service
    import services.imported_product_service
    import services.notification_service
    import services.supplied_product_sync_service
    import services.product_batch_processor
    import services.inventory_adjustment_service
    import services.tasks_service
    from main import app

    monkeypatch.setattr(services.batch_service, "_batch_service", app_services.batches)
    monkeypatch.setattr(services.supplier_service, "_supplier_service", app_services.suppliers)
    monkeypatch.setattr(services.supplied_product_service, "_supplied_product_service", app_services.supplied_products)
    monkeypatch.setattr(services.imported_product_service, "_imported_product_service", app_services.imported_products)
    monkeypatch.setattr(services.notification_service, "_notification_service", app_services.notifications)
    monkeypatch.setattr(services.supplied_product_sync_service, "_sync_service", app_services.sync)
    monkeypatch.setattr(services.product_batch_processor, "_processor", app_services.processor)
    monkeypatch.setattr(services.inventory_adjustment_service, "_inventory_adjustment_service", app_services.adjustments)
    monkeypatch.setattr(services.tasks_service, "_tasks_service", app_services.tasks)

    return TestClient(app)
