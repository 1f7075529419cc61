"""Tests for seller payout calculation."""

import pytest

from splitsettle.errors import NotFoundError
from splitsettle.ledger.payout import PayoutCalculator
from splitsettle.ledger.split_payment import SplitPaymentLedger
from splitsettle.models.payment import NO_PLATFORM_FEE, FeeMode, PlatformFee


def _captured_ledger(fee: PlatformFee = PlatformFee(1000, FeeMode.ON_TOP)) -> SplitPaymentLedger:
    ledger = SplitPaymentLedger()
    ledger.create("order_1", "usd", "paycol_1", fee, payment_id="sp_1")
    ledger.authorize("sp_1", 10000)
    ledger.capture("sp_1", 10000)
    return ledger


class TestPayout:
    def test_fee_subtracted_once(self) -> None:
        ledger = _captured_ledger()
        assert PayoutCalculator(ledger).calculate_payout_for_order("order_1") == 9000

    def test_included_fee_subtracted_the_same_way(self) -> None:
        ledger = _captured_ledger(PlatformFee(1000, FeeMode.INCLUDED))
        assert PayoutCalculator(ledger).calculate_payout_for_order("order_1") == 9000

    def test_partial_refund_reduces_payout(self) -> None:
        ledger = _captured_ledger()
        ledger.refund("sp_1", 2500)
        assert PayoutCalculator(ledger).calculate_payout_for_order("order_1") == 6500

    def test_full_refund_goes_negative(self, caplog: pytest.LogCaptureFixture) -> None:
        ledger = _captured_ledger()
        ledger.refund("sp_1", 10000)
        with caplog.at_level("WARNING", logger="splitsettle.ledger.payout"):
            payout = PayoutCalculator(ledger).calculate_payout_for_order("order_1")
        assert payout == -1000
        assert any("Negative seller payout" in r.getMessage() for r in caplog.records)

    def test_no_fee(self) -> None:
        ledger = _captured_ledger(NO_PLATFORM_FEE)
        assert PayoutCalculator(ledger).calculate_payout_for_order("order_1") == 10000

    def test_uncaptured_payment_pays_nothing(self) -> None:
        ledger = SplitPaymentLedger()
        ledger.create("order_1", "usd", "paycol_1")
        assert PayoutCalculator(ledger).calculate_payout_for_order("order_1") == 0

    def test_unknown_order(self) -> None:
        with pytest.raises(NotFoundError):
            PayoutCalculator(SplitPaymentLedger()).calculate_payout_for_order("order_x")

    def test_breakdown(self) -> None:
        ledger = _captured_ledger()
        ledger.refund("sp_1", 2500)
        breakdown = PayoutCalculator(ledger).breakdown(ledger.get("sp_1"))
        assert breakdown.captured_amount == 10000
        assert breakdown.refunded_amount == 2500
        assert breakdown.platform_fee == 1000
        assert breakdown.platform_fee_mode == FeeMode.ON_TOP
        assert breakdown.payout == 6500
