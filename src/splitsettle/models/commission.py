"""Commission models — rates, rules, scopes, lines and calculation context.

A commission rule binds a rate to exactly one scope. Scopes form a closed
set, listed here in resolution priority order (highest first):

    seller+product           a vendor's override for one product
    product                  one product, any vendor
    seller+product_type      a vendor's override for a product type
    seller+product_category  a vendor's override for a category
    seller                   vendor default
    product_type             product type default
    product_category         category default
    site                     global default (reference_id == "")

Scopes are tagged dataclass variants. The ``(reference, reference_id)``
string pair exists only at the storage edge: ``encode_scope`` and
``decode_scope`` are the single crossing point. Composite ids are joined
with ``+``, seller id first, and an id that itself contains ``+`` can
never be encoded.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Dict, Optional, Tuple, Type

from splitsettle.errors import ConfigurationError

SCOPE_DELIMITER = "+"


class ScopeKind(str, enum.Enum):
    """Rule scope kinds. Definition order is resolution priority."""
    SELLER_PRODUCT = "seller+product"
    PRODUCT = "product"
    SELLER_PRODUCT_TYPE = "seller+product_type"
    SELLER_PRODUCT_CATEGORY = "seller+product_category"
    SELLER = "seller"
    PRODUCT_TYPE = "product_type"
    PRODUCT_CATEGORY = "product_category"
    SITE = "site"


SCOPE_PRIORITY: Tuple[ScopeKind, ...] = tuple(ScopeKind)


class RateType(str, enum.Enum):
    """How a commission rate expresses its fee."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class CommissionScope:
    """Base for the scope variants. Never instantiated directly."""

    kind: ClassVar[ScopeKind]

    def parts(self) -> Tuple[str, ...]:
        raise NotImplementedError

    @property
    def encodable(self) -> bool:
        """False if any id component contains the storage delimiter."""
        return all(SCOPE_DELIMITER not in p for p in self.parts())

    @property
    def reference_id(self) -> str:
        """Storage encoding of this scope's ids."""
        if not self.encodable:
            raise ConfigurationError(
                f"Cannot encode {self.kind.value} scope: an id contains "
                f"{SCOPE_DELIMITER!r} ({self.parts()})"
            )
        return SCOPE_DELIMITER.join(self.parts())


@dataclass(frozen=True)
class SellerProductScope(CommissionScope):
    seller_id: str
    product_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.SELLER_PRODUCT

    def parts(self) -> Tuple[str, ...]:
        return (self.seller_id, self.product_id)


@dataclass(frozen=True)
class ProductScope(CommissionScope):
    product_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.PRODUCT

    def parts(self) -> Tuple[str, ...]:
        return (self.product_id,)


@dataclass(frozen=True)
class SellerProductTypeScope(CommissionScope):
    seller_id: str
    product_type_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.SELLER_PRODUCT_TYPE

    def parts(self) -> Tuple[str, ...]:
        return (self.seller_id, self.product_type_id)


@dataclass(frozen=True)
class SellerProductCategoryScope(CommissionScope):
    seller_id: str
    product_category_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.SELLER_PRODUCT_CATEGORY

    def parts(self) -> Tuple[str, ...]:
        return (self.seller_id, self.product_category_id)


@dataclass(frozen=True)
class SellerScope(CommissionScope):
    seller_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.SELLER

    def parts(self) -> Tuple[str, ...]:
        return (self.seller_id,)


@dataclass(frozen=True)
class ProductTypeScope(CommissionScope):
    product_type_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.PRODUCT_TYPE

    def parts(self) -> Tuple[str, ...]:
        return (self.product_type_id,)


@dataclass(frozen=True)
class ProductCategoryScope(CommissionScope):
    product_category_id: str
    kind: ClassVar[ScopeKind] = ScopeKind.PRODUCT_CATEGORY

    def parts(self) -> Tuple[str, ...]:
        return (self.product_category_id,)


@dataclass(frozen=True)
class SiteScope(CommissionScope):
    kind: ClassVar[ScopeKind] = ScopeKind.SITE

    def parts(self) -> Tuple[str, ...]:
        return ("",)


_SCOPE_TYPES: Dict[ScopeKind, Type[CommissionScope]] = {
    ScopeKind.SELLER_PRODUCT: SellerProductScope,
    ScopeKind.PRODUCT: ProductScope,
    ScopeKind.SELLER_PRODUCT_TYPE: SellerProductTypeScope,
    ScopeKind.SELLER_PRODUCT_CATEGORY: SellerProductCategoryScope,
    ScopeKind.SELLER: SellerScope,
    ScopeKind.PRODUCT_TYPE: ProductTypeScope,
    ScopeKind.PRODUCT_CATEGORY: ProductCategoryScope,
    ScopeKind.SITE: SiteScope,
}


def encode_scope(scope: CommissionScope) -> Tuple[str, str]:
    """Scope -> ``(reference, reference_id)`` storage pair."""
    return scope.kind.value, scope.reference_id


def decode_scope(reference: str, reference_id: str) -> CommissionScope:
    """``(reference, reference_id)`` storage pair -> scope variant.

    Raises ConfigurationError for an unknown reference or an id that does
    not split into the variant's component count.
    """
    try:
        kind = ScopeKind(reference)
    except ValueError:
        raise ConfigurationError(f"Unknown commission reference: {reference!r}") from None

    if kind == ScopeKind.SITE:
        if reference_id != "":
            raise ConfigurationError(
                f"Site scope must have an empty reference_id, got {reference_id!r}"
            )
        return SiteScope()

    parts = reference_id.split(SCOPE_DELIMITER)
    scope_type = _SCOPE_TYPES[kind]
    expected = 2 if SCOPE_DELIMITER in kind.value else 1
    if len(parts) != expected:
        raise ConfigurationError(
            f"Reference id {reference_id!r} does not match {kind.value} "
            f"({expected} component(s) expected)"
        )
    return scope_type(*parts)


@dataclass(frozen=True)
class CommissionRate:
    """Rate attached to a rule.

    Percentage rates carry ``percentage_rate`` in [0, 100]. Fixed rates
    express their amount through ``price_set_id``. The min/max price sets
    bound a percentage fee when present.
    """
    id: str
    type: RateType
    percentage_rate: Optional[Decimal] = None
    include_tax: bool = False
    price_set_id: Optional[str] = None
    min_price_set_id: Optional[str] = None
    max_price_set_id: Optional[str] = None

    def validate(self) -> None:
        """Raise ConfigurationError if the rate's shape is invalid."""
        if self.type == RateType.PERCENTAGE:
            if self.percentage_rate is None:
                raise ConfigurationError(
                    f"Rate {self.id}: percentage rate requires percentage_rate"
                )
            if not (Decimal("0") <= Decimal(self.percentage_rate) <= Decimal("100")):
                raise ConfigurationError(
                    f"Rate {self.id}: percentage_rate {self.percentage_rate} "
                    f"outside [0, 100]"
                )
        elif self.type == RateType.FIXED:
            if not self.price_set_id:
                raise ConfigurationError(
                    f"Rate {self.id}: fixed rate requires price_set_id"
                )


@dataclass
class CommissionRule:
    """A rate bound to one scope.

    Mutable: admin paths toggle ``is_active`` and soft-delete by setting
    ``deleted_utc``. Only active, non-deleted rules are eligible.
    """
    id: str
    name: str
    scope: CommissionScope
    rate: CommissionRate
    is_active: bool = True
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None
    deleted_utc: Optional[datetime] = None

    @property
    def reference(self) -> str:
        return self.scope.kind.value

    @property
    def reference_id(self) -> str:
        return self.scope.reference_id

    @property
    def is_eligible(self) -> bool:
        return self.is_active and self.deleted_utc is None


@dataclass(frozen=True)
class CommissionLine:
    """Commission charged on one order line item (legacy path). Immutable."""
    id: str
    item_line_id: str
    rule_id: str
    currency_code: str
    value: int
    created_utc: Optional[datetime] = None


@dataclass(frozen=True)
class CommissionCalculationContext:
    """Resolution key for one line item. Empty string means "no value"."""
    product_id: str
    product_type_id: str
    product_category_id: str
    seller_id: str

    def __post_init__(self) -> None:
        for name in ("product_id", "product_type_id", "product_category_id", "seller_id"):
            if not isinstance(getattr(self, name), str):
                raise ConfigurationError(
                    f"CommissionCalculationContext.{name} must be a string "
                    f"(use '' for no value)"
                )


@dataclass(frozen=True)
class PriceSet:
    """Per-currency thresholds referenced by a rate, in minor units."""
    price_set_id: str
    prices: Dict[str, int] = field(default_factory=dict)

    def amount_for(self, currency_code: str) -> Optional[int]:
        return self.prices.get(currency_code.lower())


@dataclass(frozen=True)
class LinePrice:
    """Price of one order line in minor units."""
    subtotal: int
    tax_total: int = 0

    def base(self, include_tax: bool) -> int:
        return self.subtotal + self.tax_total if include_tax else self.subtotal
