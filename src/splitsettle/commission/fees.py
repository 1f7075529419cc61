"""Fee calculator — turns a rate or a pre-computed fee into minor units.

Two paths coexist:

Rate-based (legacy, per line item):
    base = subtotal + tax_total   if rate.include_tax
           subtotal               otherwise
    percentage: fee = round_half_up(base × percentage_rate / 100),
                then clamped to the rate's min/max price sets when they
                carry an amount for the currency
    fixed:      fee = amount of rate.price_set_id for the currency

Pre-computed (current, per order):
    The checkout context supplies a PlatformFee (amount + mode). When its
    amount is > 0 it takes precedence and no rule-based line is ever
    produced for the order, so an order is never charged twice.

Fee mode does not change the fee amount. It decides where the fee is
collected: ON_TOP goes to the gateway as an application fee, INCLUDED
stays in the ledger and comes out of the payout.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Tuple

from splitsettle.commission.store import RuleStore
from splitsettle.currency import round_half_up
from splitsettle.errors import ConfigurationError
from splitsettle.models.commission import (
    CommissionRate,
    CommissionRule,
    LinePrice,
    RateType,
)
from splitsettle.models.payment import PlatformFee


def percentage_fee(base: int, percentage_rate: Decimal) -> int:
    """``base × rate / 100`` rounded half-up to a whole minor unit."""
    return round_half_up(Decimal(base) * Decimal(percentage_rate) / Decimal("100"))


def uses_precomputed_fee(platform_fee: Optional[PlatformFee]) -> bool:
    """True when the order's fee came from checkout and rules must be skipped."""
    return platform_fee is not None and platform_fee.is_set


class FeeCalculator:
    """Computes commission amounts for line items.

    Usage:
        calculator = FeeCalculator(store, default_percentage_rate=Decimal("10"))
        fee = calculator.rule_fee(rule, LinePrice(subtotal=10000), "usd")
    """

    def __init__(
        self,
        store: RuleStore,
        default_percentage_rate: Optional[Decimal] = None,
    ) -> None:
        self._store = store
        self._default_rate = default_percentage_rate

    def rate_fee(self, rate: CommissionRate, price: LinePrice, currency_code: str) -> int:
        """Fee for one line under ``rate``. Raises ConfigurationError on a bad rate."""
        rate.validate()
        base = price.base(rate.include_tax)

        if rate.type == RateType.FIXED:
            amount = self._store.get_price_set(rate.price_set_id).amount_for(currency_code)
            if amount is None:
                raise ConfigurationError(
                    f"Rate {rate.id}: price set {rate.price_set_id} has no "
                    f"amount for {currency_code}"
                )
            return amount

        fee = percentage_fee(base, rate.percentage_rate)
        floor = self._bound(rate.min_price_set_id, currency_code)
        ceiling = self._bound(rate.max_price_set_id, currency_code)
        if floor is not None:
            fee = max(fee, floor)
        if ceiling is not None:
            fee = min(fee, ceiling)
        return fee

    def rule_fee(
        self,
        rule: Optional[CommissionRule],
        price: LinePrice,
        currency_code: str,
    ) -> Optional[int]:
        """Fee for one line under a resolved rule.

        With no rule, falls back to the default percentage rate if one is
        configured; returns None when the line carries no commission.
        """
        if rule is not None:
            return self.rate_fee(rule.rate, price, currency_code)
        if self._default_rate is None:
            return None
        return percentage_fee(price.subtotal, self._default_rate)

    def order_fee(
        self,
        platform_fee: Optional[PlatformFee],
        lines: Iterable[Tuple[Optional[CommissionRule], LinePrice]],
        currency_code: str,
    ) -> int:
        """Platform take for one seller order.

        A pre-computed fee wins outright; otherwise the rule fees of the
        order's lines are summed, lines without commission counting zero.
        """
        if uses_precomputed_fee(platform_fee):
            return platform_fee.amount
        total = 0
        for rule, price in lines:
            fee = self.rule_fee(rule, price, currency_code)
            if fee is not None:
                total += fee
        return total

    def _bound(self, price_set_id: Optional[str], currency_code: str) -> Optional[int]:
        if price_set_id is None:
            return None
        return self._store.get_price_set(price_set_id).amount_for(currency_code)
