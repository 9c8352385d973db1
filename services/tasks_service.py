"""
Background tasks.

    process_pending_batches(): continuation for batches accepted in async mode
    supplier_product_cache_sync(): import a supplier's catalog from the
        supplier product cache when it holds newer data than we do
"""

from datetime import datetime
from typing import Optional
import structlog

from integrations import supplier_product_cache
from models.batch import BatchStatus, BatchSubmission, as_utc
from models.supplier import Supplier
from parsers.edi_parser import parse_edi_products
from services.batch_service import BatchService, get_batch_service
from services.supplier_service import SupplierService, get_supplier_service
from services.product_batch_processor import ProductBatchProcessor, get_product_batch_processor
from exceptions import AppError

logger = structlog.get_logger(__name__)


class TasksService:
    """Scheduled and admin-triggered batch work."""

    def __init__(
        self,
        batches: Optional[BatchService] = None,
        suppliers: Optional[SupplierService] = None,
        processor: Optional[ProductBatchProcessor] = None,
        product_cache=None
    ):
        self.batches = batches or get_batch_service()
        self.suppliers = suppliers or get_supplier_service()
        self.processor = processor or get_product_batch_processor()
        self.product_cache = product_cache or supplier_product_cache

    # ===================
    # PENDING BATCHES
    # ===================

    def process_pending_batches(self) -> dict[str, BatchStatus]:
        """
        Process every PENDING product batch, oldest first.

        A failing batch never stops the run.

        Returns:
            Map of batch id -> final status
        """
        pending = self.batches.get_pending_batches()
        results = {}

        logger.info("pending_batches_found", count=len(pending))

        for batch in pending:
            try:
                supplier = self.suppliers.require_supplier(batch.supplier_id)
                result = self.processor.process(batch.id, supplier)
                results[batch.id] = result.status

            except AppError as e:
                logger.warning(
                    "pending_batch_failed",
                    batch_id=batch.id,
                    supplier_id=batch.supplier_id,
                    error=e.message
                )
                results[batch.id] = BatchStatus.ERROR

        return results

    # ===================
    # SUPPLIER PRODUCT CACHE
    # ===================

    def supplier_product_cache_sync(self, supplier: Supplier) -> Optional[str]:
        """
        Import the supplier's catalog from the supplier product cache.

        Skipped when the supplier is not enabled for cache sync, unknown to
        the cache, the cache has never synced, or our data is already as
        recent. Only EDI suppliers are mapped.

        Returns:
            Batch id if a batch was created, None if skipped
        """
        if not supplier.config.sync_settings.spc_sync_enabled:
            logger.debug("spc_sync_disabled", supplier_id=supplier.id)
            return None

        cache_supplier = self.product_cache.get_supplier(supplier.code)
        if not cache_supplier:
            logger.info("spc_supplier_not_found", supplier_id=supplier.id, supplier_code=supplier.code)
            return None

        latest = (cache_supplier.get("productCacheSync") or {}).get("latestSyncTimestamp")
        if not latest:
            logger.info("spc_not_synced_yet", supplier_id=supplier.id)
            return None

        cache_timestamp = as_utc(datetime.fromisoformat(latest.replace("Z", "+00:00")))
        our_timestamp = as_utc(supplier.config.latest_products_sync_time_stamp)

        if our_timestamp and our_timestamp >= cache_timestamp:
            logger.info("spc_up_to_date", supplier_id=supplier.id, latest=latest)
            return None

        submission = self._map_products(supplier, cache_timestamp)
        if submission is None:
            logger.info("spc_platform_not_supported", supplier_id=supplier.id, platform=supplier.platform)
            return None

        preprocessed = self.processor.preprocess(supplier, submission)

        if not preprocessed.valid:
            logger.info(
                "spc_batch_rejected",
                supplier_id=supplier.id,
                batch_id=preprocessed.batch_id,
                errors=len(preprocessed.batch_result.products_not_imported)
            )
            return preprocessed.batch_id

        if preprocessed.is_async:
            logger.info("spc_batch_queued", supplier_id=supplier.id, batch_id=preprocessed.batch_id)
            return preprocessed.batch_id

        try:
            result = self.processor.process(preprocessed.batch_id, supplier, preprocessed.batch_result)
            logger.info(
                "spc_batch_processed",
                supplier_id=supplier.id,
                batch_id=preprocessed.batch_id,
                status=result.status.value
            )
        except AppError as e:
            logger.warning("spc_batch_failed", supplier_id=supplier.id, batch_id=preprocessed.batch_id, error=e.message)

        return preprocessed.batch_id

    def _map_products(self, supplier: Supplier, sync_timestamp: datetime) -> Optional[BatchSubmission]:
        platform = (supplier.platform or "").lower()

        if platform == "edi":
            products = self.product_cache.get_products(supplier.code)
            return parse_edi_products(products, sync_timestamp)

        return None


# Singleton instance
_tasks_service: Optional[TasksService] = None


def get_tasks_service() -> TasksService:
    """Get or create TasksService instance."""
    global _tasks_service
    if _tasks_service is None:
        _tasks_service = TasksService()
    return _tasks_service
