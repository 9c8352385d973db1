"""
Batch persistence.

Batches are stored in the batches table with the submission snapshot in
content and the BatchResult snapshot in result.
"""

from typing import Any, Optional
from datetime import datetime
import structlog

from config import get_supabase_client
from models.batch import (
    BATCH_TYPE,
    BatchQuery,
    BatchRecord,
    BatchStatus,
    BatchSubmission,
)
from exceptions import BatchNotFoundError, DatabaseError

logger = structlog.get_logger(__name__)


class BatchService:
    """
    Batch persistence.

    Handles creation, status updates, listing and the latest-batch check.
    """

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "batches"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_batch(self, batch_id: str, supplier_id: Optional[str] = None) -> Optional[BatchRecord]:
        """
        Get a batch, optionally restricted to its owning supplier.

        Args:
            batch_id: Batch UUID
            supplier_id: Owning supplier UUID (None for admin lookups)

        Returns:
            BatchRecord or None if not found
        """
        logger.debug("getting_batch", batch_id=batch_id, supplier_id=supplier_id)

        try:
            query = self.db.table(self.table).select("*").eq("id", batch_id)
            if supplier_id is not None:
                query = query.eq("supplier_id", supplier_id)

            result = query.execute()

            if not result.data:
                return None

            return BatchRecord(**result.data[0])

        except Exception as e:
            logger.error("get_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("select", str(e))

    def require_batch(self, batch_id: str, supplier_id: str) -> BatchRecord:
        """Get a batch or raise BatchNotFoundError."""
        batch = self.get_batch(batch_id, supplier_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def list_batches(self, query: BatchQuery, supplier_id: str) -> tuple[list[BatchRecord], int]:
        """
        List a supplier's product batches.

        Args:
            query: Filters and pagination
            supplier_id: Owning supplier UUID

        Returns:
            (batches, total_count)
        """
        logger.info(
            "listing_batches",
            supplier_id=supplier_id,
            page_index=query.page_index,
            page_size=query.page_size
        )

        try:
            db_query = (
                self.db.table(self.table)
                .select("*", count="exact")
                .eq("type", BATCH_TYPE)
                .eq("supplier_id", supplier_id)
            )

            if query.batch_name:
                db_query = db_query.ilike("name", f"%{query.batch_name}%")

            if query.status:
                db_query = db_query.eq("status", query.status.value)

            if query.batch_run_earliest:
                db_query = db_query.gte("run_date", query.batch_run_earliest.isoformat())

            if query.batch_run_latest:
                db_query = db_query.lte("run_date", query.batch_run_latest.isoformat())

            offset = query.page_index * query.page_size
            result = (
                db_query
                .order("date", desc=True)
                .range(offset, offset + query.page_size - 1)
                .execute()
            )

            batches = [BatchRecord(**row) for row in result.data]
            total = result.count or 0

            logger.info("batches_listed", count=len(batches), total=total)
            return batches, total

        except Exception as e:
            logger.error("list_batches_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_pending_batches(self) -> list[BatchRecord]:
        """Get every PENDING product batch, oldest submission first."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("status", BatchStatus.PENDING.value)
                .eq("type", BATCH_TYPE)
                .order("date")
                .execute()
            )

            return [BatchRecord(**row) for row in result.data]

        except Exception as e:
            logger.error("get_pending_batches_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def is_latest_batch(self, batch_date: datetime, supplier_id: str) -> bool:
        """
        Check that no SUCCESS batch with a newer date exists for the supplier.

        Args:
            batch_date: Submission date of the batch being processed
            supplier_id: Supplier UUID

        Returns:
            True if the batch is the latest
        """
        try:
            result = (
                self.db.table(self.table)
                .select("id")
                .eq("supplier_id", supplier_id)
                .eq("status", BatchStatus.SUCCESS.value)
                .gt("date", batch_date.isoformat())
                .limit(1)
                .execute()
            )

            return not result.data

        except Exception as e:
            logger.error("is_latest_batch_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create_batch(self, supplier_id: str, submission: BatchSubmission) -> BatchRecord:
        """
        Persist a submission as a PENDING batch.

        Args:
            supplier_id: Submitting supplier UUID
            submission: Submission with ref ids assigned

        Returns:
            Created BatchRecord
        """
        logger.info(
            "creating_batch",
            supplier_id=supplier_id,
            batch_name=submission.batch.batch_name,
            products=len(submission.products)
        )

        try:
            data = {
                "supplier_id": supplier_id,
                "type": BATCH_TYPE,
                "status": BatchStatus.PENDING.value,
                "name": submission.batch.batch_name,
                "date": submission.batch.batch_date.isoformat(),
                "content": submission.to_wire(),
            }

            result = self.db.table(self.table).insert(data).execute()

            batch = BatchRecord(**result.data[0])
            logger.info("batch_created", batch_id=batch.id)
            return batch

        except Exception as e:
            logger.error("create_batch_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("insert", str(e))

    def update_batch(
        self,
        batch_id: str,
        status: Optional[BatchStatus] = None,
        result: Optional[dict[str, Any]] = None,
        run_date: Optional[datetime] = None
    ) -> BatchRecord:
        """
        Update status, result snapshot and/or run date.

        Only the arguments given are written.
        """
        data: dict[str, Any] = {}
        if status is not None:
            data["status"] = status.value
        if result is not None:
            data["result"] = result
        if run_date is not None:
            data["run_date"] = run_date.isoformat()

        logger.info(
            "updating_batch",
            batch_id=batch_id,
            status=data.get("status"),
            fields=list(data.keys())
        )

        try:
            response = (
                self.db.table(self.table)
                .update(data)
                .eq("id", batch_id)
                .execute()
            )

            if not response.data:
                raise BatchNotFoundError(batch_id)

            return BatchRecord(**response.data[0])

        except BatchNotFoundError:
            raise
        except Exception as e:
            logger.error("update_batch_failed", batch_id=batch_id, error=str(e))
            raise DatabaseError("update", str(e))


# Singleton instance
_batch_service: Optional[BatchService] = None


def get_batch_service() -> BatchService:
    """Get or create BatchService instance."""
    global _batch_service
    if _batch_service is None:
        _batch_service = BatchService()
    return _batch_service
