"""Admin listing of commission rules with human-readable scope names.

Each rule's scope is resolved to display names through a
ReferenceDirectory (sellers, products, product types, categories), one
batched lookup per entity kind. Composite scopes render as
``"<seller name> + <other name>"``. An id with no known name falls back
to the raw id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Set, Tuple, runtime_checkable

from splitsettle.commission.store import RuleStore
from splitsettle.currency import from_smallest_unit
from splitsettle.models.commission import (
    CommissionRule,
    CommissionScope,
    PriceSet,
    ProductCategoryScope,
    ProductScope,
    ProductTypeScope,
    RateType,
    SellerProductCategoryScope,
    SellerProductScope,
    SellerProductTypeScope,
    SellerScope,
)

SELLER = "seller"
PRODUCT = "product"
PRODUCT_TYPE = "product_type"
PRODUCT_CATEGORY = "product_category"


@runtime_checkable
class ReferenceDirectory(Protocol):
    """Looks up display names for referenced entities."""

    def names(self, entity: str, ids: Set[str]) -> Dict[str, str]:
        """Map each known id of ``entity`` to its display name."""
        ...


class DictReferenceDirectory:
    """ReferenceDirectory backed by preloaded dictionaries."""

    def __init__(self, entries: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self._entries = entries or {}

    def names(self, entity: str, ids: Set[str]) -> Dict[str, str]:
        known = self._entries.get(entity, {})
        return {i: known[i] for i in ids if i in known}


def _scope_refs(scope: CommissionScope) -> List[Tuple[str, str]]:
    """(entity, id) pairs named by a scope, in display order."""
    if isinstance(scope, SellerProductScope):
        return [(SELLER, scope.seller_id), (PRODUCT, scope.product_id)]
    if isinstance(scope, SellerProductTypeScope):
        return [(SELLER, scope.seller_id), (PRODUCT_TYPE, scope.product_type_id)]
    if isinstance(scope, SellerProductCategoryScope):
        return [(SELLER, scope.seller_id), (PRODUCT_CATEGORY, scope.product_category_id)]
    if isinstance(scope, SellerScope):
        return [(SELLER, scope.seller_id)]
    if isinstance(scope, ProductScope):
        return [(PRODUCT, scope.product_id)]
    if isinstance(scope, ProductTypeScope):
        return [(PRODUCT_TYPE, scope.product_type_id)]
    if isinstance(scope, ProductCategoryScope):
        return [(PRODUCT_CATEGORY, scope.product_category_id)]
    return []


@dataclass(frozen=True)
class CommissionRuleAggregate:
    """Flattened rule + rate + display name for admin screens."""
    id: str
    name: str
    type: str
    reference: str
    reference_id: str
    include_tax: bool
    is_active: bool
    ref_value: str
    percentage_rate: Optional[Decimal]
    fee_value: str
    price_set_id: Optional[str] = None
    price_set: Dict[str, int] = field(default_factory=dict)
    min_price_set_id: Optional[str] = None
    min_price_set: Dict[str, int] = field(default_factory=dict)
    max_price_set_id: Optional[str] = None
    max_price_set: Dict[str, int] = field(default_factory=dict)


def _format_prices(prices: Dict[str, int]) -> str:
    return ", ".join(
        f"{from_smallest_unit(amount, code)} {code.upper()}"
        for code, amount in sorted(prices.items())
    )


class CommissionRuleLister:
    """Lists rules for admin display.

    Usage:
        lister = CommissionRuleLister(store, directory)
        rules, count = lister.list_rules(reference="seller", take=20)
    """

    def __init__(self, store: RuleStore, directory: ReferenceDirectory) -> None:
        self._store = store
        self._directory = directory

    def list_rules(
        self,
        reference: Optional[str] = None,
        reference_id: Optional[str] = None,
        ids: Optional[List[str]] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> Tuple[List[CommissionRuleAggregate], int]:
        rules, count = self._store.list_rules(
            reference=reference,
            reference_id=reference_id,
            ids=ids,
            skip=skip,
            take=take,
        )
        names = self._lookup_names(rules)
        return [self._aggregate(r, names) for r in rules], count

    def _lookup_names(self, rules: List[CommissionRule]) -> Dict[Tuple[str, str], str]:
        wanted: Dict[str, Set[str]] = {}
        for rule in rules:
            for entity, ref_id in _scope_refs(rule.scope):
                wanted.setdefault(entity, set()).add(ref_id)

        names: Dict[Tuple[str, str], str] = {}
        for entity, ids in wanted.items():
            for ref_id, name in self._directory.names(entity, ids).items():
                names[(entity, ref_id)] = name
        return names

    def _aggregate(
        self,
        rule: CommissionRule,
        names: Dict[Tuple[str, str], str],
    ) -> CommissionRuleAggregate:
        ref_value = " + ".join(
            names.get((entity, ref_id), ref_id)
            for entity, ref_id in _scope_refs(rule.scope)
        )
        rate = rule.rate
        price_set = self._prices(rate.price_set_id)
        if rate.type == RateType.PERCENTAGE:
            fee_value = f"{rate.percentage_rate}%"
        else:
            fee_value = _format_prices(price_set)

        return CommissionRuleAggregate(
            id=rule.id,
            name=rule.name,
            type=rate.type.value,
            reference=rule.reference,
            reference_id=rule.reference_id,
            include_tax=rate.include_tax,
            is_active=rule.is_active,
            ref_value=ref_value,
            percentage_rate=rate.percentage_rate,
            fee_value=fee_value,
            price_set_id=rate.price_set_id,
            price_set=price_set,
            min_price_set_id=rate.min_price_set_id,
            min_price_set=self._prices(rate.min_price_set_id),
            max_price_set_id=rate.max_price_set_id,
            max_price_set=self._prices(rate.max_price_set_id),
        )

    def _prices(self, price_set_id: Optional[str]) -> Dict[str, int]:
        if price_set_id is None:
            return {}
        price_set: PriceSet = self._store.get_price_set(price_set_id)
        return dict(price_set.prices)
