"""Settlement service — facade over commission, ledger and gateway.

This is the primary interface for the checkout and order workflows.
It wires the subsystems together:
- Commission rules (store, waterfall resolver, fee calculator, lines)
- Split payment ledger (one payment record per seller order)
- Settlement adapter (payment intents on the card gateway)
- Payout calculation

Amounts supplied by the checkout collaborator are in major units and
are converted to minor units exactly once, in ``open_checkout``. Every
other amount in and out of this service is in minor units.

Errors propagate as typed SettlementError subclasses. Ledger and
configuration errors are raised before the gateway is called. A gateway
failure during a refund leaves the ledger untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from splitsettle.commission.fees import FeeCalculator
from splitsettle.commission.lines import CommissionLineRecorder, OrderLineItem
from splitsettle.commission.listing import (
    CommissionRuleAggregate,
    CommissionRuleLister,
    DictReferenceDirectory,
    ReferenceDirectory,
)
from splitsettle.commission.resolver import RuleResolver
from splitsettle.commission.store import RuleStore
from splitsettle.config import SettlementConfig
from splitsettle.currency import Amount, to_smallest_unit
from splitsettle.errors import (
    ConfigurationError,
    InvariantViolation,
    NotFoundError,
    SettlementError,
)
from splitsettle.ledger.payout import PayoutCalculator
from splitsettle.ledger.split_payment import RefundOutcome, SplitPaymentLedger
from splitsettle.models.commission import CommissionLine
from splitsettle.models.payment import (
    FeeMode,
    PlatformFee,
    SplitOrderPayment,
    SplitPaymentStatus,
    WebhookAction,
)
from splitsettle.persistence.event_log import EventLog
from splitsettle.settlement.adapter import SettlementAdapter
from splitsettle.settlement.card_gateway import CardGatewayClient
from splitsettle.settlement.gateway import CaptureMode, SettlementGateway, WebhookResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a batch service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutSession:
    """What the storefront needs after a seller order's payment is opened."""
    payment_id: str
    order_id: str
    intent_id: str
    amount: int
    currency_code: str
    platform_fee: int
    platform_fee_mode: Optional[FeeMode]
    capture_mode: CaptureMode


class SettlementService:
    """Unified settlement engine facade.

    Usage:
        config = SettlementConfig.from_config_dir(Path("config"))
        service = SettlementService(config, CardGatewayClient(config.gateway))

        session = service.open_checkout(
            order_id="order_1", seller_id="sel_1", payment_collection_id="paycol_1",
            amount=Decimal("110.00"), currency_code="usd",
            platform_fee=Decimal("10.00"), platform_fee_mode="on_top",
            destination="acct_sel_1",
        )
        service.reconcile_webhook(event_payload)
        service.handle_order_set_placed(["order_1"])
        service.calculate_payout_for_order("order_1")   # 10000
        service.refund_split_payment(session.payment_id, 11000)
    """

    def __init__(
        self,
        config: SettlementConfig,
        gateway: SettlementGateway,
        rule_store: Optional[RuleStore] = None,
        event_log: Optional[EventLog] = None,
        directory: Optional[ReferenceDirectory] = None,
    ) -> None:
        self._config = config
        self._event_log = event_log

        self._rules = rule_store or RuleStore()
        self._resolver = RuleResolver(self._rules)
        default_rate = config.default_percentage_rate if config.apply_default_rate else None
        self._fees = FeeCalculator(self._rules, default_percentage_rate=default_rate)
        self._lines = CommissionLineRecorder(self._resolver, self._fees, event_log=event_log)
        self._lister = CommissionRuleLister(self._rules, directory or DictReferenceDirectory())

        self._ledger = SplitPaymentLedger(event_log=event_log)
        self._payouts = PayoutCalculator(self._ledger)
        self._adapter = SettlementAdapter(gateway, platform_label=config.gateway.platform_label)

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Path,
        event_log: Optional[EventLog] = None,
    ) -> SettlementService:
        """Build a service talking to the configured HTTP gateway."""
        config = SettlementConfig.from_config_dir(config_dir)
        return cls(config, CardGatewayClient(config.gateway), event_log=event_log)

    @property
    def rules(self) -> RuleStore:
        return self._rules

    @property
    def resolver(self) -> RuleResolver:
        return self._resolver

    @property
    def ledger(self) -> SplitPaymentLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def open_checkout(
        self,
        order_id: str,
        seller_id: str,
        payment_collection_id: str,
        amount: Amount,
        currency_code: str,
        platform_fee: Amount = 0,
        platform_fee_mode: Optional[str] = None,
        destination: Optional[str] = None,
        requires_approval: bool = False,
        now: Optional[datetime] = None,
    ) -> CheckoutSession:
        """Open the split payment for one seller order and create its intent.

        ``amount`` is the total the customer is charged, fee included when
        the fee is charged on top. ``requires_approval`` places a hold
        (manual capture) instead of charging immediately.
        """
        try:
            existing = self._ledger.get_by_order(order_id)
        except NotFoundError:
            existing = None
        if existing is not None:
            raise InvariantViolation(
                f"Order {order_id} already has split payment {existing.id}"
            )

        currency = currency_code.lower()
        amount_minor = to_smallest_unit(amount, currency)
        fee_minor = to_smallest_unit(platform_fee, currency)
        if amount_minor <= 0:
            raise InvariantViolation(f"Order {order_id}: amount must be positive")
        if fee_minor > amount_minor:
            raise InvariantViolation(
                f"Order {order_id}: platform fee {fee_minor} exceeds amount {amount_minor}"
            )
        mode: Optional[FeeMode] = None
        if fee_minor > 0:
            try:
                mode = FeeMode(platform_fee_mode) if platform_fee_mode else self._config.default_fee_mode
            except ValueError as exc:
                raise ConfigurationError(f"Unknown platform fee mode: {platform_fee_mode}") from exc
        fee = PlatformFee(amount=fee_minor, mode=mode)
        capture_mode = CaptureMode.MANUAL if requires_approval else CaptureMode.AUTOMATIC

        intent_id = self._adapter.initiate(
            amount_minor,
            currency,
            destination=destination,
            fee=fee,
            capture_mode=capture_mode,
            metadata={"order_id": order_id, "seller_id": seller_id},
        )

        payment = self._ledger.create(
            order_id=order_id,
            currency_code=currency,
            payment_collection_id=payment_collection_id,
            platform_fee=fee,
            metadata={"seller_id": seller_id},
            now=now,
        )
        self._ledger.attach_intent(payment.id, intent_id, now=now)

        logger.info(
            "Checkout opened",
            extra={
                "order_id": order_id,
                "payment_id": payment.id,
                "intent_id": intent_id,
                "amount": amount_minor,
                "platform_fee": fee_minor,
            },
        )
        return CheckoutSession(
            payment_id=payment.id,
            order_id=order_id,
            intent_id=intent_id,
            amount=amount_minor,
            currency_code=currency,
            platform_fee=fee_minor,
            platform_fee_mode=mode,
            capture_mode=capture_mode,
        )

    # ------------------------------------------------------------------
    # Gateway events
    # ------------------------------------------------------------------

    def reconcile_webhook(
        self,
        payload: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> WebhookResult:
        """Apply a gateway event to the ledger.

        Ignored events touch nothing. Raises NotFoundError when the event
        names an intent no split payment is bound to.
        """
        result = self._adapter.webhook(payload)
        if result.action == WebhookAction.IGNORED:
            return result
        self._ledger.apply_gateway_event(
            result.intent_id,
            result.event_type,
            result.action,
            result.amount,
            now=now,
        )
        return result

    # ------------------------------------------------------------------
    # Order placement and capture
    # ------------------------------------------------------------------

    def handle_order_set_placed(
        self,
        order_ids: Iterable[str],
        requires_approval: bool = False,
        order_items: Optional[Mapping[str, Sequence[OrderLineItem]]] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Settle every seller order of a placed order set.

        Records legacy commission lines for orders that carry items and no
        platform fee, then captures authorized payments unless approval is
        required. Orders are independent: one failure does not stop the
        others and is reported in ``errors``.
        """
        errors: List[str] = []
        outcome: Dict[str, str] = {}
        items_by_order = order_items or {}

        for order_id in order_ids:
            try:
                payment = self._ledger.get_by_order(order_id)
                if order_id in items_by_order:
                    self.record_commission_lines(order_id, items_by_order[order_id], now=now)
                if requires_approval:
                    outcome[order_id] = "awaiting_approval"
                    continue
                if payment.status == SplitPaymentStatus.AUTHORIZED:
                    payment = self.approve_and_capture(payment.id, now=now)
                outcome[order_id] = payment.status.value
            except SettlementError as exc:
                logger.error(
                    "Order settlement failed",
                    extra={"order_id": order_id, "error": str(exc)},
                )
                errors.append(f"{order_id}: {exc}")

        return ServiceResult(success=not errors, errors=errors, data={"orders": outcome})

    def approve_and_capture(
        self,
        payment_id: str,
        now: Optional[datetime] = None,
    ) -> SplitOrderPayment:
        """Capture a held payment on the gateway and record it.

        If the authorization webhook has not arrived yet, or the last
        recorded attempt failed, the captured amount authorizes the
        payment first.
        """
        with self._ledger.locked(payment_id) as payment:
            if payment.intent_id is None:
                raise InvariantViolation(f"{payment_id} has no payment intent")
            if payment.status in (SplitPaymentStatus.CAPTURED,
                                  SplitPaymentStatus.PARTIALLY_REFUNDED,
                                  SplitPaymentStatus.REFUNDED):
                return payment
            if payment.status == SplitPaymentStatus.CANCELED:
                raise InvariantViolation(f"{payment_id} was canceled and cannot be captured")

            captured = self._adapter.capture(payment.intent_id)
            if payment.status in (SplitPaymentStatus.PENDING, SplitPaymentStatus.FAILED):
                self._ledger.authorize(payment_id, captured, now=now)
            return self._ledger.capture(payment_id, captured, now=now)

    def decline_and_cancel(
        self,
        payment_id: str,
        now: Optional[datetime] = None,
    ) -> SplitOrderPayment:
        """Decline a held payment: void its intent and mark it CANCELED.

        Idempotent. Captured payments are refunded, never canceled. A
        gateway failure leaves the ledger untouched.
        """
        with self._ledger.locked(payment_id) as payment:
            if payment.status == SplitPaymentStatus.CANCELED:
                return payment
            if payment.status in (SplitPaymentStatus.CAPTURED,
                                  SplitPaymentStatus.PARTIALLY_REFUNDED,
                                  SplitPaymentStatus.REFUNDED):
                raise InvariantViolation(
                    f"{payment_id} is {payment.status.value}; refund it instead"
                )
            if payment.intent_id is not None:
                self._adapter.cancel(payment.intent_id)
            canceled = self._ledger.cancel(payment_id, now=now)

        logger.info(
            "Held payment declined",
            extra={"payment_id": payment_id, "order_id": canceled.order_id},
        )
        return canceled

    def update_checkout_amount(
        self,
        payment_id: str,
        amount: int,
    ) -> Dict[str, Any]:
        """Change the amount of a payment's intent after the cart total changed.

        ``amount`` is in minor units. Only payments the customer has not yet
        paid (PENDING or FAILED) can change. Returns the gateway intent.
        """
        with self._ledger.locked(payment_id) as payment:
            if payment.intent_id is None:
                raise InvariantViolation(f"{payment_id} has no payment intent")
            if payment.status not in (SplitPaymentStatus.PENDING, SplitPaymentStatus.FAILED):
                raise InvariantViolation(
                    f"{payment_id}: cannot change the amount of a "
                    f"{payment.status.value} payment"
                )
            if amount <= 0 or amount < payment.platform_fee:
                raise InvariantViolation(
                    f"{payment_id}: amount {amount} must be positive and cover "
                    f"the platform fee {payment.platform_fee}"
                )
            intent = self._adapter.update(payment.intent_id, amount)

        logger.info(
            "Checkout amount updated",
            extra={"payment_id": payment_id, "amount": amount},
        )
        return intent

    # ------------------------------------------------------------------
    # Refunds and payouts
    # ------------------------------------------------------------------

    def refund_split_payment(
        self,
        payment_id: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> RefundOutcome:
        """Refund ``amount`` minor units of a captured payment.

        The platform fee is reclaimed from the gateway only when this
        refund brings the refunded total up to the captured amount.
        """
        with self._ledger.locked(payment_id) as payment:
            preview = self._ledger.preview_refund(payment_id, amount)
            if payment.intent_id is None:
                raise InvariantViolation(f"{payment_id} has no payment intent")
            self._adapter.refund(payment.intent_id, amount, reclaim_fee=preview.is_full_refund)
            return self._ledger.refund(payment_id, amount, now=now)

    def calculate_payout_for_order(self, order_id: str) -> int:
        return self._payouts.calculate_payout_for_order(order_id)

    def gateway_status(self, payment_id: str) -> SplitPaymentStatus:
        """Ledger status the gateway currently reports for a payment's intent."""
        payment = self._ledger.get(payment_id)
        if payment.intent_id is None:
            return SplitPaymentStatus.PENDING
        return self._adapter.payment_status(payment.intent_id)

    # ------------------------------------------------------------------
    # Commission
    # ------------------------------------------------------------------

    def record_commission_lines(
        self,
        order_id: str,
        items: Sequence[OrderLineItem],
        now: Optional[datetime] = None,
    ) -> List[CommissionLine]:
        """Record legacy commission lines; skipped when the order has a platform fee."""
        payment = self._ledger.get_by_order(order_id)
        seller_id = payment.metadata.get("seller_id", "")
        fee = PlatformFee(amount=payment.platform_fee, mode=payment.platform_fee_mode)
        return self._lines.record_for_order(
            order_id,
            seller_id,
            payment.currency_code,
            items,
            platform_fee=fee,
            now=now,
        )

    def order_commission(self, order_id: str, items: Sequence[OrderLineItem]) -> int:
        """Platform take for an order: its platform fee, else the sum of rule fees."""
        payment = self._ledger.get_by_order(order_id)
        seller_id = payment.metadata.get("seller_id", "")
        fee = PlatformFee(amount=payment.platform_fee, mode=payment.platform_fee_mode)
        lines = [(self._resolver.resolve(item.context(seller_id)), item.price) for item in items]
        return self._fees.order_fee(fee, lines, payment.currency_code)

    def commission_lines(self, item_line_ids: Iterable[str]) -> List[CommissionLine]:
        return self._lines.lines_for_items(item_line_ids)

    def list_commission_rules(
        self,
        reference: Optional[str] = None,
        reference_id: Optional[str] = None,
        ids: Optional[List[str]] = None,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> Tuple[List[CommissionRuleAggregate], int]:
        return self._lister.list_rules(
            reference=reference,
            reference_id=reference_id,
            ids=ids,
            skip=skip,
            take=take,
        )
