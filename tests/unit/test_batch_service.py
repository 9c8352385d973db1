"""
Unit tests for BatchService.

Run: pytest tests/unit/test_batch_service.py -v
"""

from datetime import datetime, timezone

import pytest

from models.batch import BatchQuery, BatchStatus, BatchSubmission
from exceptions import BatchNotFoundError, DatabaseError
from tests.factories import SUPPLIER_ID, batch_payload, simple_products


OTHER_SUPPLIER_ID = "22222222-2222-2222-2222-222222222222"


def batch_row(name: str, date: str, status: str = "SUCCESS", supplier_id: str = SUPPLIER_ID, **overrides) -> dict:
    row = {
        "supplier_id": supplier_id,
        "type": "SUPPLIED_PRODUCT",
        "status": status,
        "name": name,
        "date": date,
        "run_date": date,
    }
    row.update(overrides)
    return row


@pytest.fixture
def seeded(app_services):
    return app_services.db.seed("batches", [
        batch_row("nightly-1", "2024-03-01T00:00:00+00:00"),
        batch_row("nightly-2", "2024-03-02T00:00:00+00:00", status="ERROR"),
        batch_row("manual", "2024-03-03T00:00:00+00:00", status="PENDING"),
        batch_row("nightly-other", "2024-03-04T00:00:00+00:00", supplier_id=OTHER_SUPPLIER_ID),
    ])


class TestCreateAndUpdate:

    def test_create_batch(self, app_services):
        submission = BatchSubmission.model_validate(batch_payload(simple_products(2))).with_ref_ids()

        batch = app_services.batches.create_batch(SUPPLIER_ID, submission)

        assert batch.status == BatchStatus.PENDING
        assert batch.name == "nightly"
        assert batch.date == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert batch.submission.products[1].product_key == "P1"

    def test_update_only_given_fields(self, app_services, seeded):
        batch_id = seeded[2]["id"]

        app_services.batches.update_batch(batch_id, status=BatchStatus.PROCESSING)

        row = app_services.db.get("batches", batch_id)
        assert row["status"] == "PROCESSING"
        assert row["run_date"] == "2024-03-03T00:00:00+00:00"
        assert "result" not in row

    def test_update_unknown_batch(self, app_services):
        with pytest.raises(BatchNotFoundError):
            app_services.batches.update_batch("missing", status=BatchStatus.ERROR)

    def test_update_failure(self, app_services, seeded):
        app_services.db.fail("batches", "update")

        with pytest.raises(DatabaseError):
            app_services.batches.update_batch(seeded[0]["id"], status=BatchStatus.ERROR)


class TestReads:

    def test_get_batch_is_scoped_to_supplier(self, app_services, seeded):
        other_id = seeded[3]["id"]

        assert app_services.batches.get_batch(other_id, SUPPLIER_ID) is None
        assert app_services.batches.get_batch(other_id).supplier_id == OTHER_SUPPLIER_ID

    def test_require_batch(self, app_services, seeded):
        with pytest.raises(BatchNotFoundError):
            app_services.batches.require_batch(seeded[3]["id"], SUPPLIER_ID)

    def test_list_newest_first(self, app_services, seeded):
        batches, total = app_services.batches.list_batches(BatchQuery(), SUPPLIER_ID)

        assert total == 3
        assert [batch.name for batch in batches] == ["manual", "nightly-2", "nightly-1"]

    def test_list_filters(self, app_services, seeded):
        query = BatchQuery(
            batch_name="NIGHTLY",
            batch_run_earliest=datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        )

        batches, total = app_services.batches.list_batches(query, SUPPLIER_ID)

        assert total == 1
        assert batches[0].name == "nightly-2"

    def test_list_status_filter(self, app_services, seeded):
        batches, _ = app_services.batches.list_batches(BatchQuery(status=BatchStatus.PENDING), SUPPLIER_ID)

        assert [batch.name for batch in batches] == ["manual"]

    def test_list_pagination(self, app_services, seeded):
        batches, total = app_services.batches.list_batches(BatchQuery(page_index=1, page_size=2), SUPPLIER_ID)

        assert total == 3
        assert [batch.name for batch in batches] == ["nightly-1"]

    def test_pending_batches_oldest_first(self, app_services, seeded):
        app_services.db.seed("batches", [batch_row("early", "2024-02-01T00:00:00+00:00", status="PENDING")])

        pending = app_services.batches.get_pending_batches()

        assert [batch.name for batch in pending] == ["early", "manual"]


class TestIsLatestBatch:

    def test_newer_success_exists(self, app_services, seeded):
        assert app_services.batches.is_latest_batch(
            datetime(2024, 2, 28, tzinfo=timezone.utc), SUPPLIER_ID
        ) is False

    def test_only_success_batches_count(self, app_services, seeded):
        # nightly-2 (ERROR) and manual (PENDING) are newer but not successful
        assert app_services.batches.is_latest_batch(
            datetime(2024, 3, 1, 6, tzinfo=timezone.utc), SUPPLIER_ID
        ) is True

    def test_other_suppliers_are_ignored(self, app_services, seeded):
        assert app_services.batches.is_latest_batch(
            datetime(2024, 3, 2, tzinfo=timezone.utc), SUPPLIER_ID
        ) is True
