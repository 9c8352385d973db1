"""
Product batch reconciliation.

Two phases:
    preprocess() stores the submission as a PENDING batch and runs the
    structural validation / first admission gate.
    process() reconciles the batch against the canonical supplied products
    and finalizes it as SUCCESS or ERROR.

A batch is processed at most once: anything not PENDING is returned as is.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from pydantic import ValidationError
import structlog

from config import settings
from models.batch import (
    BatchProduct,
    BatchRecord,
    BatchResult,
    BatchStatus,
    BatchSubmission,
    BatchVariant,
    BatchVariantPayload,
    ImportedProductKey,
    ImportedVariantKey,
    ProductError,
    VariantError,
)
from models.supplier import ReconciliationStrategy, Supplier
from models.supplied_product import (
    InventoryPolicy,
    RecordState,
    SuppliedProductInput,
    SuppliedVariantInput,
)
from services.batch_validator import is_batch_valid, validate_batch
from services.variant_matching import MatchKind, classify_variant, find_candidates
from services.batch_service import BatchService, get_batch_service
from services.supplier_service import SupplierService, get_supplier_service
from services.supplied_product_service import SuppliedProductService, get_supplied_product_service
from services.supplied_product_sync_service import (
    SuppliedProductSyncService,
    get_supplied_product_sync_service,
)
from exceptions import (
    AppError,
    BatchNotFoundError,
    MissingSyncSettingsError,
    StaleBatchError,
    UnsupportedStrategyError,
)
from utils.locks import supplier_lock

logger = structlog.get_logger(__name__)


PREPROCESS_REJECTED_MESSAGE = "Too many errors in batch, could not process"
RECONCILIATION_REJECTED_MESSAGE = "Failed because of too many errors found in batch, changes were not persisted."
VARIANT_ERRORS_REASON = "errors occurred with variants"


@dataclass
class PreprocessResult:
    valid: bool
    is_async: bool
    batch_id: str
    batch_result: BatchResult


@dataclass
class ReconciliationResult:
    status: BatchStatus
    imported_products: list[ImportedProductKey] = field(default_factory=list)
    errors: list[ProductError] = field(default_factory=list)
    conflicts: list[dict] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def describe_schema_errors(error: ValidationError) -> str:
    """Field errors of a variant as "field: message" pairs."""
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def has_different_currency(variant: BatchVariant, currency: str) -> bool:
    """True if any money field of the variant carries a currency other than `currency`."""
    expected = currency.lower()
    for money in (variant.price, variant.wholesale_price, variant.compare_to_price):
        if money and money.currency and money.currency.lower() != expected:
            return True
    return False


class ProductBatchProcessor:
    """
    Batch reconciliation orchestration.

    Handles batch lifecycle, the immutable-variant-key strategy and the
    hand-off of accepted products to the sync service.
    """

    def __init__(
        self,
        batches: Optional[BatchService] = None,
        suppliers: Optional[SupplierService] = None,
        supplied_products: Optional[SuppliedProductService] = None,
        sync: Optional[SuppliedProductSyncService] = None
    ):
        self.batches = batches or get_batch_service()
        self.suppliers = suppliers or get_supplier_service()
        self.supplied_products = supplied_products or get_supplied_product_service()
        self.sync = sync or get_supplied_product_sync_service()

    # ===================
    # PREPROCESS
    # ===================

    def preprocess(self, supplier: Supplier, submission: BatchSubmission) -> PreprocessResult:
        """
        Persist the submission and run structural validation.

        Args:
            supplier: Submitting supplier
            submission: Raw batch submission

        Returns:
            PreprocessResult; valid=False means the batch is already ERROR
        """
        submission = submission.with_ref_ids()
        batch = self.batches.create_batch(supplier.id, submission)

        batch_result = BatchResult(
            id=batch.id,
            batch_name=submission.batch.batch_name,
            batch_date=submission.batch.batch_date,
            status=BatchStatus.PENDING,
        )

        validation = validate_batch(submission.products, settings.batch_admission_threshold)
        batch_result.products_not_imported.extend(validation.errors)

        logger.info(
            "batch_preprocessed",
            batch_id=batch.id,
            supplier_id=supplier.id,
            products=len(submission.products),
            valid_products=len(validation.valid_products),
            admitted=validation.is_batch_valid
        )

        if not validation.is_batch_valid:
            run_date = _utcnow()
            batch_result.status = BatchStatus.ERROR
            batch_result.batch_run_date = run_date
            batch_result.custom_data["message"] = PREPROCESS_REJECTED_MESSAGE

            self.batches.update_batch(
                batch.id,
                status=BatchStatus.ERROR,
                result=batch_result.to_wire(),
                run_date=run_date
            )

            logger.warning("batch_rejected_by_validation", batch_id=batch.id, errors=len(validation.errors))
            return PreprocessResult(valid=False, is_async=False, batch_id=batch.id, batch_result=batch_result)

        return PreprocessResult(
            valid=True,
            is_async=supplier.config.sync_settings.async_mode,
            batch_id=batch.id,
            batch_result=batch_result
        )

    # ===================
    # PROCESS
    # ===================

    def process(
        self,
        batch_id: str,
        supplier: Supplier,
        partial_result: Optional[BatchResult] = None
    ) -> BatchResult:
        """
        Reconcile a PENDING batch.

        Runs under the supplier's lock. Unexpected failures end the batch
        in ERROR with the exception message in custom_data.

        Args:
            batch_id: Batch UUID
            supplier: Owning supplier
            partial_result: Result from preprocess(), if run in the same request

        Returns:
            Final BatchResult

        Raises:
            BatchNotFoundError: Unknown batch for this supplier
            StaleBatchError: A newer batch already succeeded
            MissingSyncSettingsError: Supplier has no strategy configured
            UnsupportedStrategyError: Supplier uses the product-key strategy
        """
        with supplier_lock(supplier.id):
            batch = self.batches.get_batch(batch_id, supplier.id)
            if batch is None:
                raise BatchNotFoundError(batch_id)

            if batch.status != BatchStatus.PENDING:
                logger.info("batch_already_processed", batch_id=batch_id, status=batch.status.value)
                return BatchResult.from_record(batch)

            if partial_result is not None:
                result = partial_result.model_copy(deep=True)
            else:
                result = BatchResult(
                    id=batch.id,
                    batch_name=batch.name,
                    batch_date=batch.date,
                    status=batch.status,
                )

            try:
                return self._process(batch, supplier, result, include_validation_errors=partial_result is None)
            except (StaleBatchError, MissingSyncSettingsError, UnsupportedStrategyError):
                raise
            except Exception as e:
                logger.error(
                    "batch_processing_failed",
                    batch_id=batch.id,
                    supplier_id=supplier.id,
                    error=str(e),
                    error_type=type(e).__name__
                )
                message = e.message if isinstance(e, AppError) else str(e)
                result.status = BatchStatus.ERROR
                result.custom_data["message"] = f"Internal Error: {message}"
                self._finalize(batch.id, result)
                return result

    def _process(
        self,
        batch: BatchRecord,
        supplier: Supplier,
        result: BatchResult,
        include_validation_errors: bool
    ) -> BatchResult:
        submission = batch.submission
        submitted = submission.products if submission else []
        validation = validate_batch(submitted, settings.batch_admission_threshold)
        if include_validation_errors:
            result.products_not_imported.extend(validation.errors)

        run_date = _utcnow()
        self.batches.update_batch(batch.id, status=BatchStatus.PROCESSING, run_date=run_date)
        result.status = BatchStatus.PROCESSING
        result.batch_run_date = run_date

        logger.info(
            "batch_processing_started",
            batch_id=batch.id,
            supplier_id=supplier.id,
            products=len(validation.valid_products)
        )

        if not self.batches.is_latest_batch(batch.date, supplier.id):
            error = StaleBatchError(batch.id, batch.date.isoformat())
            logger.warning("stale_batch_rejected", batch_id=batch.id, supplier_id=supplier.id)
            self._fail(batch.id, result, error.message)
            raise error

        strategy = supplier.config.sync_settings.strategy if supplier.config.products_sync_settings else None

        if strategy == ReconciliationStrategy.IMMUTABLE_VARIANT_KEY:
            outcome = self.reconcile_variant_keys(validation.valid_products, supplier, run_date)
        elif strategy == ReconciliationStrategy.IMMUTABLE_PRODUCT_KEY:
            try:
                outcome = self.reconcile_product_keys(validation.valid_products, supplier)
            except UnsupportedStrategyError as e:
                self._fail(batch.id, result, e.message)
                raise
        else:
            error = MissingSyncSettingsError(supplier.id)
            self._fail(batch.id, result, error.message)
            raise error

        result.products_imported.extend(outcome.imported_products)
        result.products_not_imported.extend(outcome.errors)
        result.products_imported_count = len(result.products_imported)
        result.products_not_imported_count = len(result.products_not_imported)
        result.status = outcome.status

        if outcome.conflicts:
            result.custom_data["conflicts"] = outcome.conflicts

        if result.status == BatchStatus.ERROR:
            result.custom_data["message"] = RECONCILIATION_REJECTED_MESSAGE

        self._finalize(batch.id, result)

        if result.status == BatchStatus.SUCCESS:
            self.suppliers.advance_sync_timestamp(supplier, batch.date)

        logger.info(
            "batch_processing_completed",
            batch_id=batch.id,
            status=result.status.value,
            imported=result.products_imported_count,
            not_imported=result.products_not_imported_count
        )
        return result

    def _fail(self, batch_id: str, result: BatchResult, message: str) -> None:
        result.status = BatchStatus.ERROR
        result.custom_data["message"] = message
        self._finalize(batch_id, result)

    def _finalize(self, batch_id: str, result: BatchResult) -> None:
        self.batches.update_batch(batch_id, status=result.status, result=result.to_wire())

    # ===================
    # STRATEGIES
    # ===================

    def reconcile_variant_keys(
        self,
        products: list[BatchProduct],
        supplier: Supplier,
        batch_timestamp: datetime
    ) -> ReconciliationResult:
        """
        Immutable-variant-key reconciliation.

        Every incoming variant is validated against the supplier's sync
        settings and classified against the canonical variants. A product
        with any rejected variant is dropped as a whole. If fewer than the
        admission threshold of products survive, nothing is written.
        """
        existing = self.supplied_products.get_by_supplier(supplier.id)
        existing_by_key = {product.product_id: product for product in existing}
        existing_variants = [variant for product in existing for variant in product.variants]

        # productKey -> canonical product being built in this pass
        to_upsert: dict[str, SuppliedProductInput] = {}
        errors: dict[str, ProductError] = {}
        conflicts: list[dict] = []

        for product in products:
            to_upsert[product.product_key] = SuppliedProductInput.from_batch(product)

            for payload in product.variants:
                try:
                    variant = payload.to_variant()
                except ValidationError as e:
                    self._add_variant_error(errors, product, payload, describe_schema_errors(e))
                    continue

                cleaned, reasons = self.validate_variant_additional(variant, product, supplier)
                if reasons:
                    self._add_variant_error(errors, product, variant, "; ".join(reasons))
                    continue

                incoming = SuppliedVariantInput.from_batch(product, cleaned)
                candidates = find_candidates(incoming, existing_variants)
                outcome = classify_variant(incoming, candidates, existing_by_key.get(product.product_key))

                if outcome.kind == MatchKind.DUPLICATE:
                    logger.warning(
                        "duplicate_canonical_variant_match",
                        supplier_id=supplier.id,
                        product_key=product.product_key,
                        variant_key=variant.variant_key,
                        matches=len(candidates)
                    )
                    self._add_variant_error(errors, product, variant, outcome.reason)
                    continue

                if outcome.kind == MatchKind.CONFLICT:
                    logger.warning(
                        "variant_option_conflict",
                        supplier_id=supplier.id,
                        product_key=product.product_key,
                        variant_key=variant.variant_key,
                        conflicting_variant_key=outcome.sibling.variant_id
                    )
                    conflicts.append({
                        "productKey": product.product_key,
                        "variantKey": variant.variant_key,
                        "conflictingVariantKey": outcome.sibling.variant_id,
                        "conflictingProductKey": outcome.sibling.product_id,
                    })

                to_upsert[product.product_key].variants.append(incoming)

        for product_key in errors:
            to_upsert.pop(product_key, None)

        for supplied_product in to_upsert.values():
            supplied_product.checked_on = batch_timestamp
            for supplied_variant in supplied_product.variants:
                supplied_variant.checked_on = batch_timestamp

        result = ReconciliationResult(
            status=BatchStatus.PROCESSING,
            errors=list(errors.values()),
            conflicts=conflicts
        )

        if not is_batch_valid(len(products), len(to_upsert), settings.batch_admission_threshold):
            logger.warning(
                "batch_rejected_after_matching",
                supplier_id=supplier.id,
                products=len(products),
                accepted=len(to_upsert)
            )
            result.status = BatchStatus.ERROR
            return result

        self.upsert_supplied_products(list(to_upsert.values()), supplier, batch_timestamp)

        result.imported_products = [
            ImportedProductKey(
                product_key=supplied_product.product_id,
                variants=[
                    ImportedVariantKey(variant_key=supplied_variant.variant_id)
                    for supplied_variant in supplied_product.variants
                ]
            )
            for supplied_product in to_upsert.values()
        ]
        result.status = BatchStatus.SUCCESS
        return result

    def reconcile_product_keys(self, products: list[BatchProduct], supplier: Supplier) -> ReconciliationResult:
        """Immutable-product-key reconciliation. Not available yet."""
        raise UnsupportedStrategyError(ReconciliationStrategy.IMMUTABLE_PRODUCT_KEY.value)

    @staticmethod
    def _add_variant_error(
        errors: dict[str, ProductError],
        product: BatchProduct,
        variant: BatchVariantPayload,
        reason: str
    ) -> None:
        error = errors.get(product.product_key)
        if error is None:
            error = ProductError(
                product_key=product.product_key,
                ref_id=product.ref_id,
                reason=VARIANT_ERRORS_REASON,
                variants=[]
            )
            errors[product.product_key] = error
        error.variants.append(VariantError(
            variant_key=variant.variant_key,
            ref_id=variant.ref_id,
            reason=reason
        ))

    def validate_variant_additional(
        self,
        variant: BatchVariant,
        product: BatchProduct,
        supplier: Supplier
    ) -> tuple[Optional[BatchVariant], list[str]]:
        """
        Validate a variant against the supplier's sync settings.

        Fields the supplier is not configured to send are stripped.

        Returns:
            (cleaned variant, []) if valid, (None, reasons) otherwise
        """
        sync_settings = supplier.config.sync_settings
        reasons = []
        stripped = {}

        if sync_settings.has_pricing and (variant.price is None or variant.price.amount is None):
            reasons.append("hasPricing flag is set for this supplier but variant is missing a price value")
        elif not sync_settings.has_pricing:
            stripped["price"] = None

        if sync_settings.has_inventory and variant.stock is None:
            reasons.append("hasInventory flag is set for this supplier but variant is missing a stock value")
        elif not sync_settings.has_inventory:
            stripped["stock"] = None

        if sync_settings.has_wholesale_pricing and (
            variant.wholesale_price is None or variant.wholesale_price.amount is None
        ):
            reasons.append(
                "hasWholesalePricing flag is set for this supplier but variant is missing a wholesalePrice value"
            )
        elif not sync_settings.has_wholesale_pricing:
            stripped["wholesale_price"] = None

        cleaned = variant.model_copy(update=stripped)

        if supplier.config.currency and has_different_currency(cleaned, supplier.config.currency):
            reasons.append("currency supplier configuration does not match the currency sent")

        product_options = product.options or []
        variant_options = variant.options or {}

        if not product_options and variant_options:
            reasons.append("variant includes options but product has no options")

        invalid = [name for name in variant_options if name not in product_options]
        if invalid:
            reasons.append(f"variant includes options that are not found in product: {','.join(invalid)}")

        missing = [name for name in product_options if name not in variant_options]
        if missing:
            reasons.append(f"variant is missing the following options found in product: {','.join(missing)}")

        if reasons:
            return None, reasons
        return cleaned, []

    # ===================
    # CANONICAL WRITE
    # ===================

    def upsert_supplied_products(
        self,
        products: list[SuppliedProductInput],
        supplier: Supplier,
        batch_timestamp: datetime
    ) -> list[str]:
        """
        Normalize disabled records and hand them to the sync service.

        A DISABLED product disables all its variants; a DISABLED variant
        has zero tracked stock.
        """
        normalized = []
        for product in products:
            product = product.model_copy(deep=True)
            product_disabled = product.state == RecordState.DISABLED

            for variant in product.variants:
                if product_disabled:
                    variant.state = RecordState.DISABLED
                if variant.state == RecordState.DISABLED:
                    variant.inventory_quantity = 0
                    variant.inventory_policy = InventoryPolicy.DENY

            normalized.append(product)

        return self.sync.upsert_all(normalized, supplier, batch_timestamp)


# Singleton instance
_processor: Optional[ProductBatchProcessor] = None


def get_product_batch_processor() -> ProductBatchProcessor:
    """Get or create ProductBatchProcessor instance."""
    global _processor
    if _processor is None:
        _processor = ProductBatchProcessor()
    return _processor
