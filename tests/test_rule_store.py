"""Tests for the commission rule store — uniqueness, soft delete, listing."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from splitsettle.commission.store import RuleStore
from splitsettle.errors import ConfigurationError, NotFoundError
from splitsettle.models.commission import (
    CommissionRate,
    PriceSet,
    ProductScope,
    RateType,
    SellerProductScope,
    SellerScope,
    SiteScope,
)


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _pct(rate: str = "10", rate_id: str = "rate_1") -> CommissionRate:
    return CommissionRate(id=rate_id, type=RateType.PERCENTAGE, percentage_rate=Decimal(rate))


class TestPriceSets:
    def test_add_normalizes_currency_codes(self) -> None:
        store = RuleStore()
        store.add_price_set(PriceSet("ps_1", {"USD": 50}))
        assert store.get_price_set("ps_1").prices == {"usd": 50}

    def test_unknown_price_set(self) -> None:
        with pytest.raises(NotFoundError):
            RuleStore().get_price_set("missing")


class TestCreateRule:
    def test_create_and_find(self) -> None:
        store = RuleStore()
        rule = store.create_rule("Vendor", SellerScope("sel_1"), _pct(), now=_now())
        assert rule.reference == "seller"
        assert rule.reference_id == "sel_1"
        assert store.find_active(SellerScope("sel_1")) is rule

    def test_scope_key_is_unique(self) -> None:
        store = RuleStore()
        store.create_rule("A", SellerScope("sel_1"), _pct())
        with pytest.raises(ConfigurationError, match="already exists"):
            store.create_rule("B", SellerScope("sel_1"), _pct("5"))

    def test_rejects_invalid_rate(self) -> None:
        store = RuleStore()
        bad = CommissionRate(id="r", type=RateType.PERCENTAGE, percentage_rate=Decimal("-1"))
        with pytest.raises(ConfigurationError):
            store.create_rule("Bad", SiteScope(), bad)

    def test_rejects_unknown_price_set(self) -> None:
        store = RuleStore()
        fixed = CommissionRate(id="r", type=RateType.FIXED, price_set_id="ps_missing")
        with pytest.raises(ConfigurationError, match="unknown price set"):
            store.create_rule("Fixed", SiteScope(), fixed)

    def test_rejects_unencodable_scope(self) -> None:
        store = RuleStore()
        with pytest.raises(ConfigurationError, match="Cannot encode"):
            store.create_rule("Bad", ProductScope("a+b"), _pct())


class TestEligibility:
    def test_inactive_rule_is_not_found(self) -> None:
        store = RuleStore()
        store.create_rule("Off", SellerScope("sel_1"), _pct(), is_active=False)
        assert store.find_active(SellerScope("sel_1")) is None

    def test_deactivate_via_update(self) -> None:
        store = RuleStore()
        rule = store.create_rule("On", SellerScope("sel_1"), _pct())
        store.update_rule(rule.id, is_active=False)
        assert store.find_active(SellerScope("sel_1")) is None

    def test_soft_delete_frees_scope_key(self) -> None:
        store = RuleStore()
        old = store.create_rule("Old", SellerScope("sel_1"), _pct())
        deleted = store.delete_rule(old.id, now=_now())
        assert deleted.deleted_utc == _now()
        assert store.get_rule(old.id).deleted_utc is not None
        new = store.create_rule("New", SellerScope("sel_1"), _pct("5", "rate_2"))
        assert store.find_active(SellerScope("sel_1")) is new

    def test_update_deleted_rule_fails(self) -> None:
        store = RuleStore()
        rule = store.create_rule("R", SiteScope(), _pct())
        store.delete_rule(rule.id)
        with pytest.raises(NotFoundError):
            store.update_rule(rule.id, name="Renamed")

    def test_find_active_many_returns_only_matches(self) -> None:
        store = RuleStore()
        store.create_rule("Seller", SellerScope("sel_1"), _pct())
        found = store.find_active_many([
            SellerProductScope("sel_1", "prod_1"),
            SellerScope("sel_1"),
            SiteScope(),
        ])
        assert list(found) == [("seller", "sel_1")]


class TestListing:
    def _store(self) -> RuleStore:
        store = RuleStore()
        base = _now()
        store.create_rule("Site", SiteScope(), _pct(), rule_id="r_site", now=base)
        store.create_rule(
            "Seller 1", SellerScope("sel_1"), _pct(),
            rule_id="r_s1", now=base + timedelta(minutes=1),
        )
        store.create_rule(
            "Seller 2", SellerScope("sel_2"), _pct(),
            rule_id="r_s2", now=base + timedelta(minutes=2),
        )
        return store

    def test_filter_by_reference(self) -> None:
        rules, total = self._store().list_rules(reference="seller")
        assert total == 2
        assert [r.id for r in rules] == ["r_s1", "r_s2"]

    def test_pagination_reports_total(self) -> None:
        rules, total = self._store().list_rules(skip=1, take=1)
        assert total == 3
        assert [r.id for r in rules] == ["r_s1"]

    def test_deleted_rules_hidden_by_default(self) -> None:
        store = self._store()
        store.delete_rule("r_s2")
        _, total = store.list_rules()
        assert total == 2
        _, total = store.list_rules(include_deleted=True)
        assert total == 3

    def test_filter_by_ids(self) -> None:
        rules, _ = self._store().list_rules(ids=["r_site", "r_s2"])
        assert {r.id for r in rules} == {"r_site", "r_s2"}
