"""Rule resolver — walks the scope waterfall for one line item.

Given a calculation context, the resolver builds one candidate scope per
scope kind, in priority order:

    1. seller+product
    2. product
    3. seller+product_type
    4. seller+product_category
    5. seller
    6. product_type
    7. product_category
    8. site

and returns the first candidate that has an active, non-deleted rule.
All eight keys are fetched in one batched store lookup; priority is then
applied client-side. No match yields None and the caller decides between
a configured default rate and no commission.

Empty context fields are queried as the empty sentinel, exactly as given.
A candidate whose ids contain the storage delimiter cannot exist in the
store and is skipped.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from splitsettle.commission.store import RuleStore
from splitsettle.models.commission import (
    CommissionCalculationContext,
    CommissionRule,
    CommissionScope,
    ProductCategoryScope,
    ProductScope,
    ProductTypeScope,
    SellerProductCategoryScope,
    SellerProductScope,
    SellerProductTypeScope,
    SellerScope,
    SiteScope,
    encode_scope,
)

logger = logging.getLogger(__name__)


def candidate_scopes(ctx: CommissionCalculationContext) -> List[CommissionScope]:
    """The eight candidate scopes for ``ctx``, highest priority first."""
    return [
        SellerProductScope(ctx.seller_id, ctx.product_id),
        ProductScope(ctx.product_id),
        SellerProductTypeScope(ctx.seller_id, ctx.product_type_id),
        SellerProductCategoryScope(ctx.seller_id, ctx.product_category_id),
        SellerScope(ctx.seller_id),
        ProductTypeScope(ctx.product_type_id),
        ProductCategoryScope(ctx.product_category_id),
        SiteScope(),
    ]


class RuleResolver:
    """Selects the single applicable commission rule for a line item.

    Usage:
        resolver = RuleResolver(store)
        rule = resolver.resolve(CommissionCalculationContext(
            product_id="prod_1", product_type_id="", product_category_id="pcat_1",
            seller_id="sel_1",
        ))
    """

    def __init__(self, store: RuleStore) -> None:
        self._store = store

    def resolve(self, ctx: CommissionCalculationContext) -> Optional[CommissionRule]:
        candidates = [s for s in candidate_scopes(ctx) if s.encodable]
        found = self._store.find_active_many(candidates)

        for scope in candidates:
            rule = found.get(encode_scope(scope))
            if rule is not None:
                logger.info(
                    "Commission rule resolved",
                    extra={
                        "rule_id": rule.id,
                        "reference": rule.reference,
                        "reference_id": rule.reference_id,
                        "seller_id": ctx.seller_id,
                        "product_id": ctx.product_id,
                    },
                )
                return rule

        logger.info(
            "No commission rule for context",
            extra={"seller_id": ctx.seller_id, "product_id": ctx.product_id},
        )
        return None
