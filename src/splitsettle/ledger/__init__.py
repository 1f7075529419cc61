"""Split payment ledger and payout calculation."""

from splitsettle.ledger.payout import PayoutBreakdown, PayoutCalculator
from splitsettle.ledger.split_payment import RefundOutcome, SplitPaymentLedger

__all__ = [
    "PayoutBreakdown",
    "PayoutCalculator",
    "RefundOutcome",
    "SplitPaymentLedger",
]
