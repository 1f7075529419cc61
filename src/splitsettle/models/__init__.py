"""Core data models for splitsettle."""

from splitsettle.models.commission import (
    CommissionCalculationContext,
    CommissionLine,
    CommissionRate,
    CommissionRule,
    CommissionScope,
    LinePrice,
    PriceSet,
    ProductCategoryScope,
    ProductScope,
    ProductTypeScope,
    RateType,
    ScopeKind,
    SellerProductCategoryScope,
    SellerProductScope,
    SellerProductTypeScope,
    SellerScope,
    SiteScope,
    decode_scope,
    encode_scope,
)
from splitsettle.models.payment import (
    FeeMode,
    PlatformFee,
    SplitOrderPayment,
    SplitPaymentStatus,
    WebhookAction,
)

__all__ = [
    "CommissionCalculationContext",
    "CommissionLine",
    "CommissionRate",
    "CommissionRule",
    "CommissionScope",
    "LinePrice",
    "PriceSet",
    "ProductCategoryScope",
    "ProductScope",
    "ProductTypeScope",
    "RateType",
    "ScopeKind",
    "SellerProductCategoryScope",
    "SellerProductScope",
    "SellerProductTypeScope",
    "SellerScope",
    "SiteScope",
    "decode_scope",
    "encode_scope",
    "FeeMode",
    "PlatformFee",
    "SplitOrderPayment",
    "SplitPaymentStatus",
    "WebhookAction",
]
