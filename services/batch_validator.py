"""
Structural validation of a submitted product batch.

Pure functions, no I/O. Every submitted product ends up either in
valid_products or in exactly one ProductError.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional

from models.batch import BatchProduct, ProductError, VariantError


DEFAULT_ADMISSION_THRESHOLD = 60.0
MAX_PRODUCT_OPTIONS = 3


@dataclass
class BatchValidationResult:
    valid_products: list[BatchProduct] = field(default_factory=list)
    errors: list[ProductError] = field(default_factory=list)
    is_batch_valid: bool = True


def validate_batch(
    products: list[BatchProduct],
    threshold: float = DEFAULT_ADMISSION_THRESHOLD
) -> BatchValidationResult:
    """
    Validate a batch of products.

    Steps, in order:
        1. Drop products with a missing productKey or any missing variantKey
        2. Drop every copy of a repeated productKey, then every product
           involved in a variantKey shared across the batch
        3. Per-product structural checks (options, variant keys, option tuples)
        4. Admission ratio against the full submission

    Args:
        products: Products with ref ids assigned
        threshold: Minimum percentage of valid products

    Returns:
        BatchValidationResult
    """
    result = BatchValidationResult()

    non_null_products, null_errors = _filter_null_keys(products)
    result.errors.extend(null_errors)

    unique_products, unique_errors = _filter_duplicate_keys(non_null_products)
    result.errors.extend(unique_errors)

    for product in unique_products:
        error = validate_product(product)
        if error:
            result.errors.append(error)
            continue
        result.valid_products.append(product)

    result.is_batch_valid = is_batch_valid(len(products), len(result.valid_products), threshold)
    return result


def is_batch_valid(total: int, valid: int, threshold: float = DEFAULT_ADMISSION_THRESHOLD) -> bool:
    """Admission ratio check. An empty batch is never admitted."""
    if total == 0:
        return False
    return (valid / total) * 100 >= threshold


def _filter_null_keys(products: list[BatchProduct]) -> tuple[list[BatchProduct], list[ProductError]]:
    valid = []
    errors = []

    for product in products:
        if not product.product_key:
            errors.append(ProductError(
                product_key=product.product_key,
                ref_id=product.ref_id,
                reason="missing a productKey"
            ))
            continue

        variant_errors = [
            VariantError(variant_key=variant.variant_key, ref_id=variant.ref_id, reason="missing a variantKey")
            for variant in product.variants
            if not variant.variant_key
        ]
        if variant_errors:
            errors.append(ProductError(
                product_key=product.product_key,
                ref_id=product.ref_id,
                reason="has variants with missing variantKey",
                variants=variant_errors
            ))
            continue

        valid.append(product)

    return valid, errors


def _filter_duplicate_keys(products: list[BatchProduct]) -> tuple[list[BatchProduct], list[ProductError]]:
    errors = []

    by_product_key: dict[str, list[BatchProduct]] = defaultdict(list)
    for product in products:
        by_product_key[product.product_key].append(product)

    unique: dict[str, BatchProduct] = {}
    for product_key, group in by_product_key.items():
        if len(group) > 1:
            for duplicate in group:
                errors.append(ProductError(
                    product_key=duplicate.product_key,
                    ref_id=duplicate.ref_id,
                    reason="batch contains duplicates of this productKey"
                ))
            continue
        unique[product_key] = group[0]

    by_variant_key = defaultdict(list)
    for product in unique.values():
        for variant in product.variants:
            by_variant_key[variant.variant_key].append((product, variant))

    # productKey -> error, in the order the duplicates are found
    variant_key_errors: dict[str, ProductError] = {}
    for variant_key, occurrences in by_variant_key.items():
        if len(occurrences) < 2:
            continue
        for product, variant in occurrences:
            error = variant_key_errors.get(product.product_key)
            if error is None:
                error = ProductError(
                    product_key=product.product_key,
                    ref_id=product.ref_id,
                    reason="Product contains variants with duplicate variantKey values",
                    variants=[]
                )
                variant_key_errors[product.product_key] = error
            error.variants.append(VariantError(
                variant_key=variant.variant_key,
                ref_id=variant.ref_id,
                reason="batch contains duplicates of this variantKey"
            ))

    errors.extend(variant_key_errors.values())
    survivors = [
        product for key, product in unique.items()
        if key not in variant_key_errors
    ]
    return survivors, errors


def validate_product(product: BatchProduct) -> Optional[ProductError]:
    """
    Structural checks on a single product.

    Returns:
        ProductError with the reasons joined by '; ', or None if valid
    """
    reasons = []
    options = product.options or []

    if len(set(options)) != len(options):
        reasons.append("Product has duplicate options")

    if len(options) > MAX_PRODUCT_OPTIONS:
        reasons.append(f"Product has more than {MAX_PRODUCT_OPTIONS} options")

    variant_keys = [variant.variant_key for variant in product.variants]
    if len(set(variant_keys)) != len(variant_keys):
        reasons.append("Product contains variants with duplicate variantKey")

    option_tuples = [normalize_options(variant.options) for variant in product.variants]
    if len(set(option_tuples)) != len(option_tuples):
        reasons.append("Product contains variants with duplicate options")

    if not reasons:
        return None

    return ProductError(
        product_key=product.product_key,
        ref_id=product.ref_id,
        reason="; ".join(reasons),
        variants=[]
    )


def normalize_options(options: Any) -> frozenset:
    """
    Option map as a hashable, lowercase-valued set for comparison.

    Anything other than a map compares as no options; the variant is
    rejected later when it is parsed.
    """
    if not isinstance(options, dict):
        return frozenset()
    return frozenset(
        (name, value.lower() if isinstance(value, str) else repr(value))
        for name, value in options.items()
    )
