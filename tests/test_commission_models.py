"""Tests for commission scope variants, their storage encoding and rates."""

from decimal import Decimal

import pytest

from splitsettle.errors import ConfigurationError
from splitsettle.models.commission import (
    SCOPE_PRIORITY,
    CommissionCalculationContext,
    CommissionRate,
    LinePrice,
    PriceSet,
    ProductCategoryScope,
    ProductScope,
    RateType,
    ScopeKind,
    SellerProductScope,
    SellerProductTypeScope,
    SellerScope,
    SiteScope,
    decode_scope,
    encode_scope,
)


class TestScopePriority:
    def test_priority_order(self) -> None:
        assert [k.value for k in SCOPE_PRIORITY] == [
            "seller+product",
            "product",
            "seller+product_type",
            "seller+product_category",
            "seller",
            "product_type",
            "product_category",
            "site",
        ]


class TestScopeEncoding:
    def test_composite_scope_joins_seller_first(self) -> None:
        assert encode_scope(SellerProductScope("sel_1", "prod_1")) == (
            "seller+product", "sel_1+prod_1",
        )

    def test_single_scope(self) -> None:
        assert encode_scope(SellerScope("sel_1")) == ("seller", "sel_1")

    def test_site_scope_has_empty_reference_id(self) -> None:
        assert encode_scope(SiteScope()) == ("site", "")

    def test_decode_composite(self) -> None:
        scope = decode_scope("seller+product_type", "sel_1+ptyp_1")
        assert scope == SellerProductTypeScope("sel_1", "ptyp_1")
        assert scope.kind == ScopeKind.SELLER_PRODUCT_TYPE

    def test_decode_site(self) -> None:
        assert decode_scope("site", "") == SiteScope()

    def test_decode_rejects_site_with_id(self) -> None:
        with pytest.raises(ConfigurationError, match="empty reference_id"):
            decode_scope("site", "x")

    def test_decode_rejects_unknown_reference(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown commission reference"):
            decode_scope("region", "eu")

    def test_decode_rejects_wrong_component_count(self) -> None:
        with pytest.raises(ConfigurationError, match="component"):
            decode_scope("seller+product", "sel_1")
        with pytest.raises(ConfigurationError, match="component"):
            decode_scope("product", "a+b")

    def test_id_containing_delimiter_is_not_encodable(self) -> None:
        scope = ProductScope("bad+id")
        assert not scope.encodable
        with pytest.raises(ConfigurationError, match="Cannot encode"):
            encode_scope(scope)

    def test_empty_category_is_encodable(self) -> None:
        assert encode_scope(ProductCategoryScope("")) == ("product_category", "")


class TestCommissionRate:
    def test_percentage_requires_rate(self) -> None:
        rate = CommissionRate(id="r1", type=RateType.PERCENTAGE)
        with pytest.raises(ConfigurationError, match="requires percentage_rate"):
            rate.validate()

    def test_percentage_out_of_range(self) -> None:
        rate = CommissionRate(id="r1", type=RateType.PERCENTAGE, percentage_rate=Decimal("101"))
        with pytest.raises(ConfigurationError, match="outside"):
            rate.validate()

    def test_fixed_requires_price_set(self) -> None:
        rate = CommissionRate(id="r1", type=RateType.FIXED)
        with pytest.raises(ConfigurationError, match="price_set_id"):
            rate.validate()

    def test_valid_rates(self) -> None:
        CommissionRate(id="r1", type=RateType.PERCENTAGE, percentage_rate=Decimal("10")).validate()
        CommissionRate(id="r2", type=RateType.FIXED, price_set_id="ps_1").validate()


class TestCalculationContext:
    def test_rejects_none_fields(self) -> None:
        with pytest.raises(ConfigurationError, match="must be a string"):
            CommissionCalculationContext(
                product_id="prod_1",
                product_type_id=None,  # type: ignore[arg-type]
                product_category_id="",
                seller_id="sel_1",
            )


class TestPricing:
    def test_price_set_lookup_is_case_insensitive(self) -> None:
        assert PriceSet("ps_1", {"usd": 50}).amount_for("USD") == 50
        assert PriceSet("ps_1", {"usd": 50}).amount_for("eur") is None

    def test_line_price_base(self) -> None:
        price = LinePrice(subtotal=10000, tax_total=700)
        assert price.base(include_tax=False) == 10000
        assert price.base(include_tax=True) == 10700
