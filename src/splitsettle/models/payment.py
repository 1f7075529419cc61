"""Split-payment models — per-order payment record and fee modes.

One SplitOrderPayment exists per seller order in a checkout. It is the
financial record of what the gateway authorized, captured and refunded
for that order, plus the platform fee the order carries. Rows are
created at checkout and never deleted.

All amounts are integers in the smallest currency unit. ``captured_amount``
is the gross amount charged to the customer (application fee included);
the platform fee is subtracted exactly once, in the payout calculator.

Amount invariants (enforced by the ledger before any write):
- 0 <= captured_amount <= authorized_amount
- 0 <= refunded_amount <= captured_amount
- platform_fee >= 0
- platform_fee_mode is set whenever platform_fee > 0

State machine:
    PENDING → AUTHORIZED → CAPTURED → PARTIALLY_REFUNDED* → REFUNDED
    CAPTURED → REFUNDED                 (single full refund)
    PENDING | AUTHORIZED → FAILED → AUTHORIZED   (a failed attempt can be retried)
    PENDING | AUTHORIZED | FAILED → CANCELED     (terminal; hold released)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from splitsettle.errors import ConfigurationError, InvariantViolation


class FeeMode(str, enum.Enum):
    """How the platform fee relates to the customer's charge.

    ON_TOP: the fee was added to the price the customer pays and is
        collected by the gateway as an application fee.
    INCLUDED: the customer pays the nominal price; the fee lives only in
        the ledger and is deducted from the seller's payout.
    """
    ON_TOP = "on_top"
    INCLUDED = "included"


class SplitPaymentStatus(str, enum.Enum):
    """Lifecycle state of a split order payment."""
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    FAILED = "failed"
    CANCELED = "canceled"


class WebhookAction(str, enum.Enum):
    """Ledger-relevant meaning of a gateway event."""
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    CANCELED = "canceled"
    IGNORED = "ignored"


SPLIT_PAYMENT_TRANSITIONS: Dict[SplitPaymentStatus, frozenset] = {
    SplitPaymentStatus.PENDING: frozenset({
        SplitPaymentStatus.AUTHORIZED,
        SplitPaymentStatus.FAILED,
        SplitPaymentStatus.CANCELED,
    }),
    SplitPaymentStatus.AUTHORIZED: frozenset({
        SplitPaymentStatus.CAPTURED,
        SplitPaymentStatus.FAILED,
        SplitPaymentStatus.CANCELED,
    }),
    SplitPaymentStatus.CAPTURED: frozenset({
        SplitPaymentStatus.PARTIALLY_REFUNDED,
        SplitPaymentStatus.REFUNDED,
    }),
    SplitPaymentStatus.PARTIALLY_REFUNDED: frozenset({
        SplitPaymentStatus.PARTIALLY_REFUNDED,
        SplitPaymentStatus.REFUNDED,
    }),
    SplitPaymentStatus.REFUNDED: frozenset(),
    SplitPaymentStatus.FAILED: frozenset({
        SplitPaymentStatus.AUTHORIZED,
        SplitPaymentStatus.CANCELED,
    }),
    SplitPaymentStatus.CANCELED: frozenset(),
}


@dataclass(frozen=True)
class PlatformFee:
    """Pre-computed platform fee supplied by the checkout context."""
    amount: int
    mode: Optional[FeeMode] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ConfigurationError(f"Platform fee cannot be negative: {self.amount}")
        if self.amount > 0 and self.mode is None:
            raise ConfigurationError("Platform fee mode is required when a fee is set")

    @property
    def is_set(self) -> bool:
        return self.amount > 0


NO_PLATFORM_FEE = PlatformFee(amount=0)


@dataclass
class SplitOrderPayment:
    """Payment record for one seller order.

    Mutable — the ledger is the only writer. ``transition_to`` validates
    against SPLIT_PAYMENT_TRANSITIONS; ``check_invariants`` validates the
    amounts. The ledger calls both on a copy before committing it.
    """
    id: str
    order_id: str
    currency_code: str
    payment_collection_id: str
    status: SplitPaymentStatus = SplitPaymentStatus.PENDING
    authorized_amount: int = 0
    captured_amount: int = 0
    refunded_amount: int = 0
    platform_fee: int = 0
    platform_fee_mode: Optional[FeeMode] = None
    intent_id: Optional[str] = None
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def refundable_amount(self) -> int:
        return self.captured_amount - self.refunded_amount

    def transition_to(self, new_status: SplitPaymentStatus) -> None:
        """Move to a new status, rejecting anything not in the transition map."""
        allowed = SPLIT_PAYMENT_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvariantViolation(
                f"Invalid split payment transition for {self.id}: "
                f"{self.status.value} → {new_status.value}. "
                f"Allowed: {', '.join(sorted(s.value for s in allowed)) or 'none'}"
            )
        self.status = new_status

    def check_invariants(self) -> None:
        """Raise InvariantViolation if any amount invariant is broken."""
        if not 0 <= self.captured_amount <= self.authorized_amount:
            raise InvariantViolation(
                f"{self.id}: captured_amount ({self.captured_amount}) must be in "
                f"[0, authorized_amount ({self.authorized_amount})]"
            )
        if not 0 <= self.refunded_amount <= self.captured_amount:
            raise InvariantViolation(
                f"{self.id}: refunded_amount ({self.refunded_amount}) must be in "
                f"[0, captured_amount ({self.captured_amount})]"
            )
        if self.platform_fee < 0:
            raise InvariantViolation(f"{self.id}: platform_fee cannot be negative")
        if self.platform_fee > 0 and self.platform_fee_mode is None:
            raise InvariantViolation(
                f"{self.id}: platform_fee_mode must be set when platform_fee > 0"
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status.value,
            "currency_code": self.currency_code,
            "authorized_amount": self.authorized_amount,
            "captured_amount": self.captured_amount,
            "refunded_amount": self.refunded_amount,
            "platform_fee": self.platform_fee,
            "platform_fee_mode": (
                self.platform_fee_mode.value if self.platform_fee_mode else None
            ),
            "payment_collection_id": self.payment_collection_id,
            "intent_id": self.intent_id,
        }
