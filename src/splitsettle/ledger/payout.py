"""Seller payout calculation.

    payout = captured_amount - refunded_amount - platform_fee

The platform fee is subtracted here and nowhere else, whatever its mode.
The result is not clamped: a negative payout means the seller owes the
platform (for example, a fully refunded order whose fee was not
reclaimed) and is surfaced to the caller as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from splitsettle.ledger.split_payment import SplitPaymentLedger
from splitsettle.models.payment import FeeMode, SplitOrderPayment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayoutBreakdown:
    """Itemized payout for one order."""
    payment_id: str
    order_id: str
    currency_code: str
    captured_amount: int
    refunded_amount: int
    platform_fee: int
    platform_fee_mode: Optional[FeeMode]
    payout: int


class PayoutCalculator:
    """Computes what the seller of an order is owed.

    Usage:
        calc = PayoutCalculator(ledger)
        amount = calc.calculate_payout_for_order("order_1")
    """

    def __init__(self, ledger: SplitPaymentLedger) -> None:
        self._ledger = ledger

    @staticmethod
    def payout(payment: SplitOrderPayment) -> int:
        return payment.captured_amount - payment.refunded_amount - payment.platform_fee

    def breakdown(self, payment: SplitOrderPayment) -> PayoutBreakdown:
        return PayoutBreakdown(
            payment_id=payment.id,
            order_id=payment.order_id,
            currency_code=payment.currency_code,
            captured_amount=payment.captured_amount,
            refunded_amount=payment.refunded_amount,
            platform_fee=payment.platform_fee,
            platform_fee_mode=payment.platform_fee_mode,
            payout=self.payout(payment),
        )

    def calculate_payout_for_order(self, order_id: str) -> int:
        """Raises NotFoundError if the order has no split payment."""
        payment = self._ledger.get_by_order(order_id)
        amount = self.payout(payment)
        if amount < 0:
            logger.warning(
                "Negative seller payout",
                extra={"order_id": order_id, "payment_id": payment.id, "payout": amount},
            )
        return amount
