"""
Variant classification for the immutable-variant-key strategy.

The variantKey is the stable identity of a variant; the productKey may
change between batches. classify_variant() turns one incoming variant and
what is known about it canonically into a tagged MatchOutcome so the
processor never branches on raw lookups.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from models.supplied_product import (
    RecordState,
    SuppliedProductRecord,
    SuppliedVariantInput,
    SuppliedVariantRecord,
)


DUPLICATE_MATCH_REASON = "found duplicate entries in suppliedProductVariant with this variant key"


class MatchKind(str, Enum):
    CREATE = "CREATE"
    TOUCH = "TOUCH"
    UPDATE_IN_PLACE = "UPDATE_IN_PLACE"
    CONFLICT = "CONFLICT"
    DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class MatchOutcome:
    """
    Result of classifying one incoming variant.

    Attributes:
        kind: Classification
        matched: Canonical variant found by variantKey, if any
        sibling: Canonical variant of the target product sharing the
            incoming option tuple, if one was involved in the decision
        reason: Error message for rejected outcomes
    """
    kind: MatchKind
    matched: Optional[SuppliedVariantRecord] = None
    sibling: Optional[SuppliedVariantRecord] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.kind != MatchKind.DUPLICATE


def is_equal_on_shared_keys(left: dict[str, Any], right: dict[str, Any]) -> bool:
    """True if both dicts agree on every key they have in common."""
    shared = left.keys() & right.keys()
    return all(left[key] == right[key] for key in shared)


def find_candidates(
    incoming: SuppliedVariantInput,
    existing_variants: list[SuppliedVariantRecord]
) -> list[SuppliedVariantRecord]:
    """
    Canonical variants the incoming variant may correspond to.

    The (variantKey, productKey) tuple is tried first. When it finds
    nothing, enabled variants with the same variantKey under another
    productKey of the supplier are returned as cross-product candidates.
    """
    same_key = [v for v in existing_variants if v.variant_id == incoming.variant_id]

    primary = [v for v in same_key if v.product_id == incoming.product_id]
    if primary:
        return primary

    return [
        v for v in same_key
        if v.product_id != incoming.product_id and v.state == RecordState.ENABLED
    ]


def classify_variant(
    incoming: SuppliedVariantInput,
    candidates: list[SuppliedVariantRecord],
    target_product: Optional[SuppliedProductRecord]
) -> MatchOutcome:
    """
    Decide what to do with one incoming variant.

    Args:
        incoming: Mapped incoming variant
        candidates: Result of find_candidates()
        target_product: Canonical product for the incoming productKey, if any

    Returns:
        MatchOutcome
    """
    if len(candidates) > 1:
        return MatchOutcome(kind=MatchKind.DUPLICATE, reason=DUPLICATE_MATCH_REASON)

    siblings = [
        v for v in (target_product.variants if target_product else [])
        if v.state == RecordState.ENABLED
    ]

    if not candidates:
        if target_product is None:
            return MatchOutcome(kind=MatchKind.CREATE)

        # New key on a known product: an option match means the supplier re-keyed it
        sibling = find_option_sibling(incoming, siblings)
        if sibling:
            return MatchOutcome(kind=MatchKind.UPDATE_IN_PLACE, sibling=sibling)
        return MatchOutcome(kind=MatchKind.CREATE)

    matched = candidates[0]
    others = [v for v in siblings if v.id != matched.id]

    if matched.product_id == incoming.product_id:
        existing = matched.model_dump(mode="json")
        if is_equal_on_shared_keys(existing, incoming.comparable()):
            return MatchOutcome(kind=MatchKind.TOUCH, matched=matched)

        if same_options(incoming, matched):
            return MatchOutcome(kind=MatchKind.UPDATE_IN_PLACE, matched=matched)

        sibling = find_option_sibling(incoming, others)
        if sibling:
            return MatchOutcome(kind=MatchKind.CONFLICT, matched=matched, sibling=sibling)
        return MatchOutcome(kind=MatchKind.UPDATE_IN_PLACE, matched=matched)

    # Cross-product move
    if same_options(incoming, matched):
        return MatchOutcome(kind=MatchKind.UPDATE_IN_PLACE, matched=matched)

    sibling = find_option_sibling(incoming, others)
    if sibling:
        return MatchOutcome(kind=MatchKind.CONFLICT, matched=matched, sibling=sibling)
    return MatchOutcome(kind=MatchKind.UPDATE_IN_PLACE, matched=matched)


def _fold(value: Optional[str]) -> Optional[str]:
    return value.lower() if isinstance(value, str) else value


def same_options(left: SuppliedVariantInput, right: SuppliedVariantInput) -> bool:
    """Option tuples equal, case-insensitive."""
    return all(
        _fold(a) == _fold(b)
        for a, b in zip(left.option_values, right.option_values)
    )


def find_option_sibling(
    incoming: SuppliedVariantInput,
    siblings: list[SuppliedVariantRecord]
) -> Optional[SuppliedVariantRecord]:
    """
    First sibling whose options match the incoming variant.

    An empty option on the sibling matches anything.
    """
    for sibling in siblings:
        if all(
            not theirs or _fold(theirs) == _fold(ours)
            for theirs, ours in zip(sibling.option_values, incoming.option_values)
        ):
            return sibling
    return None
