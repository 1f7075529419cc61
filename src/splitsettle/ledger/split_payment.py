"""Split payment ledger — the only writer of SplitOrderPayment rows.

Every transition is computed on a copy of the current row, checked
against the transition map and the amount invariants, and only then
committed. A rejected call raises and leaves the stored row untouched.

Transitions:
    authorize(amount)   PENDING | FAILED → AUTHORIZED
    capture(amount)     AUTHORIZED → CAPTURED, amount <= authorized_amount
    refund(amount)      CAPTURED | PARTIALLY_REFUNDED → PARTIALLY_REFUNDED | REFUNDED,
                        amount <= captured_amount - refunded_amount
    mark_failed()       PENDING | AUTHORIZED → FAILED
    cancel()            PENDING | AUTHORIZED | FAILED → CANCELED

Replays are no-ops: authorizing an already-authorized payment, or
capturing an already-captured one, with the same amount returns the row
unchanged. Gateway events are additionally deduplicated on
``(intent_id, event_type)``; the keys are held per payment. A payment that
recovers from FAILED forgets the failure events it saw, so a later
failure of the retried attempt still applies.

Serialization: each payment id has its own re-entrant lock. Callers that
must hold a payment across a gateway call and the following ledger write
(refunds) use ``locked(payment_id)``.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from splitsettle.errors import InvariantViolation, NotFoundError
from splitsettle.models.payment import (
    NO_PLATFORM_FEE,
    PlatformFee,
    SplitOrderPayment,
    SplitPaymentStatus,
    WebhookAction,
)
from splitsettle.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)

_CAPTURED_STATES = frozenset({
    SplitPaymentStatus.CAPTURED,
    SplitPaymentStatus.PARTIALLY_REFUNDED,
    SplitPaymentStatus.REFUNDED,
})


@dataclass(frozen=True)
class RefundOutcome:
    """Result of a refund computation.

    ``is_full_refund`` is True when this refund brings the refunded total
    up to the captured amount. Only full refunds reclaim the platform fee.
    """
    payment_id: str
    amount: int
    refunded_total: int
    is_full_refund: bool


class SplitPaymentLedger:
    """Per-order payment records with enforced amount invariants.

    Usage:
        ledger = SplitPaymentLedger()
        payment = ledger.create("order_1", "usd", "paycol_1",
                                PlatformFee(1000, FeeMode.ON_TOP))
        ledger.authorize(payment.id, 10000)
        ledger.capture(payment.id, 10000)
        outcome = ledger.refund(payment.id, 2500)
    """

    def __init__(self, event_log: Optional[EventLog] = None) -> None:
        self._event_log = event_log
        self._payments: Dict[str, SplitOrderPayment] = {}
        self._by_order: Dict[str, str] = {}
        self._by_intent: Dict[str, str] = {}
        self._applied_events: Dict[str, Dict[Tuple[str, str], WebhookAction]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    def create(
        self,
        order_id: str,
        currency_code: str,
        payment_collection_id: str,
        platform_fee: PlatformFee = NO_PLATFORM_FEE,
        payment_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> SplitOrderPayment:
        """Create the PENDING payment row for one seller order."""
        if now is None:
            now = datetime.now(timezone.utc)
        if payment_id is None:
            payment_id = f"sp_ord_pay_{uuid4().hex[:12]}"

        payment = SplitOrderPayment(
            id=payment_id,
            order_id=order_id,
            currency_code=currency_code.lower(),
            payment_collection_id=payment_collection_id,
            platform_fee=platform_fee.amount,
            platform_fee_mode=platform_fee.mode,
            created_utc=now,
            updated_utc=now,
            metadata=dict(metadata or {}),
        )
        payment.check_invariants()

        with self._registry_lock:
            if payment_id in self._payments:
                raise InvariantViolation(f"Split payment ID already exists: {payment_id}")
            if order_id in self._by_order:
                raise InvariantViolation(
                    f"Order {order_id} already has split payment {self._by_order[order_id]}"
                )
            self._payments[payment_id] = payment
            self._by_order[order_id] = payment_id
            self._locks[payment_id] = threading.RLock()
            self._applied_events[payment_id] = {}

        self._record(EventKind.SPLIT_PAYMENT_CREATED, payment, now)
        return payment

    def get(self, payment_id: str) -> SplitOrderPayment:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise NotFoundError(f"Unknown split payment: {payment_id}")
        return payment

    def get_by_order(self, order_id: str) -> SplitOrderPayment:
        payment_id = self._by_order.get(order_id)
        if payment_id is None:
            raise NotFoundError(f"No split payment for order: {order_id}")
        return self._payments[payment_id]

    def get_by_intent(self, intent_id: str) -> SplitOrderPayment:
        payment_id = self._by_intent.get(intent_id)
        if payment_id is None:
            raise NotFoundError(f"No split payment for intent: {intent_id}")
        return self._payments[payment_id]

    def list_by_collection(self, payment_collection_id: str) -> List[SplitOrderPayment]:
        return [
            p for p in self._payments.values()
            if p.payment_collection_id == payment_collection_id
        ]

    @contextmanager
    def locked(self, payment_id: str) -> Iterator[SplitOrderPayment]:
        """Hold the payment's lock; yields the current row."""
        self.get(payment_id)
        lock = self._locks[payment_id]
        with lock:
            yield self._payments[payment_id]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def attach_intent(
        self,
        payment_id: str,
        intent_id: str,
        now: Optional[datetime] = None,
    ) -> SplitOrderPayment:
        """Bind the gateway intent that funds this payment. Idempotent.

        The ownership check and the intent index write happen together
        under the registry lock, so one intent can never fund two rows.
        """
        def mutate(p: SplitOrderPayment) -> bool:
            if p.intent_id == intent_id:
                return False
            if p.intent_id is not None:
                raise InvariantViolation(
                    f"{p.id} is already bound to intent {p.intent_id}"
                )
            with self._registry_lock:
                owner = self._by_intent.get(intent_id)
                if owner is not None and owner != p.id:
                    raise InvariantViolation(f"Intent {intent_id} already funds {owner}")
                self._by_intent[intent_id] = p.id
            p.intent_id = intent_id
            return True

        return self._apply(payment_id, mutate, EventKind.SPLIT_PAYMENT_INTENT_ATTACHED, now)

    def authorize(
        self,
        payment_id: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> SplitOrderPayment:
        """Record the authorized amount. Only valid from PENDING."""
        return self._apply(
            payment_id,
            lambda p: self._authorize(p, amount),
            EventKind.SPLIT_PAYMENT_AUTHORIZED,
            now,
        )

    def capture(
        self,
        payment_id: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> SplitOrderPayment:
        """Record the captured amount. Replaying the same capture is a no-op."""
        return self._apply(
            payment_id,
            lambda p: self._capture(p, amount),
            EventKind.SPLIT_PAYMENT_CAPTURED,
            now,
        )

    def preview_refund(self, payment_id: str, amount: int) -> RefundOutcome:
        """Validate a refund and classify it, without writing anything."""
        candidate = replace(self.get(payment_id))
        return self._refund(candidate, amount)

    def refund(
        self,
        payment_id: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> RefundOutcome:
        """Add ``amount`` to the refunded total and classify full vs partial."""
        outcome: List[RefundOutcome] = []

        def mutate(p: SplitOrderPayment) -> bool:
            outcome.append(self._refund(p, amount))
            return True

        self._apply(payment_id, mutate, EventKind.SPLIT_PAYMENT_REFUNDED, now)
        return outcome[0]

    def mark_failed(self, payment_id: str, now: Optional[datetime] = None) -> SplitOrderPayment:
        """Record a failed payment attempt. Idempotent.

        FAILED is not final: the customer may retry on the same intent, and
        a later authorization moves the payment back to AUTHORIZED.
        """
        def mutate(p: SplitOrderPayment) -> bool:
            if p.status == SplitPaymentStatus.FAILED:
                return False
            p.transition_to(SplitPaymentStatus.FAILED)
            return True

        return self._apply(payment_id, mutate, EventKind.SPLIT_PAYMENT_FAILED, now)

    def cancel(self, payment_id: str, now: Optional[datetime] = None) -> SplitOrderPayment:
        """Void a payment that was never captured. Idempotent; CANCELED is final."""
        def mutate(p: SplitOrderPayment) -> bool:
            if p.status == SplitPaymentStatus.CANCELED:
                return False
            if p.status in _CAPTURED_STATES:
                raise InvariantViolation(
                    f"{p.id}: cannot cancel a payment in status {p.status.value}"
                )
            p.transition_to(SplitPaymentStatus.CANCELED)
            return True

        return self._apply(payment_id, mutate, EventKind.SPLIT_PAYMENT_CANCELED, now)

    def applied_events(self, payment_id: str) -> List[str]:
        """Event types already applied to this payment, sorted."""
        self.get(payment_id)
        return sorted(event_type for _, event_type in self._applied_events[payment_id])

    def apply_gateway_event(
        self,
        intent_id: str,
        event_type: str,
        action: WebhookAction,
        amount: int,
        now: Optional[datetime] = None,
    ) -> Optional[SplitOrderPayment]:
        """Apply a reconciled gateway event to the payment funded by ``intent_id``.

        Deduplicated on ``(intent_id, event_type)``. Out-of-order events are
        tolerated: a capture for a pending or failed payment authorizes it
        first, and an authorization arriving after capture or cancellation
        is stale and skipped. A failure never overrides a capture. Returns
        None for IGNORED actions.
        """
        if action == WebhookAction.IGNORED:
            return None

        payment = self.get_by_intent(intent_id)
        key = (intent_id, event_type)

        def mutate(p: SplitOrderPayment) -> bool:
            if key in self._applied_events[p.id]:
                logger.info(
                    "Duplicate gateway event skipped",
                    extra={"intent_id": intent_id, "event_type": event_type},
                )
                return False
            if action == WebhookAction.AUTHORIZED:
                if p.status in _CAPTURED_STATES or p.status == SplitPaymentStatus.CANCELED:
                    logger.warning(
                        "Stale authorization event skipped",
                        extra={"payment_id": p.id, "status": p.status.value},
                    )
                    return False
                return self._authorize(p, amount)
            if action == WebhookAction.CAPTURED:
                changed = False
                if p.status in (SplitPaymentStatus.PENDING, SplitPaymentStatus.FAILED):
                    changed = self._authorize(p, amount)
                return self._capture(p, amount) or changed
            if action in (WebhookAction.FAILED, WebhookAction.CANCELED):
                target = (
                    SplitPaymentStatus.FAILED if action == WebhookAction.FAILED
                    else SplitPaymentStatus.CANCELED
                )
                if p.status in _CAPTURED_STATES or p.status in (
                    target, SplitPaymentStatus.CANCELED,
                ):
                    return False
                p.transition_to(target)
                return True
            return False

        with self.locked(payment.id):
            was_failed = self.get(payment.id).status == SplitPaymentStatus.FAILED
            updated = self._apply(
                payment.id, mutate, EventKind.GATEWAY_EVENT_APPLIED, now,
                extra={"event_type": event_type, "action": action.value},
            )
            seen = self._applied_events[payment.id]
            if was_failed and updated.status != SplitPaymentStatus.FAILED:
                for applied_key, applied_action in list(seen.items()):
                    if applied_action == WebhookAction.FAILED:
                        del seen[applied_key]
            seen[key] = action
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _authorize(p: SplitOrderPayment, amount: int) -> bool:
        if amount <= 0:
            raise InvariantViolation(f"{p.id}: authorized amount must be positive, got {amount}")
        if p.status == SplitPaymentStatus.AUTHORIZED and p.authorized_amount == amount:
            return False
        if p.status not in (SplitPaymentStatus.PENDING, SplitPaymentStatus.FAILED):
            raise InvariantViolation(
                f"{p.id}: authorize is only valid from pending or failed "
                f"(status {p.status.value})"
            )
        p.transition_to(SplitPaymentStatus.AUTHORIZED)
        p.authorized_amount = amount
        return True

    @staticmethod
    def _capture(p: SplitOrderPayment, amount: int) -> bool:
        if amount <= 0:
            raise InvariantViolation(f"{p.id}: captured amount must be positive, got {amount}")
        if p.status in _CAPTURED_STATES:
            if p.captured_amount == amount:
                return False
            raise InvariantViolation(
                f"{p.id}: already captured {p.captured_amount}, cannot capture {amount}"
            )
        if amount > p.authorized_amount:
            raise InvariantViolation(
                f"{p.id}: capture amount {amount} exceeds authorized "
                f"amount {p.authorized_amount}"
            )
        p.transition_to(SplitPaymentStatus.CAPTURED)
        p.captured_amount = amount
        return True

    @staticmethod
    def _refund(p: SplitOrderPayment, amount: int) -> RefundOutcome:
        if amount <= 0:
            raise InvariantViolation(f"{p.id}: refund amount must be positive, got {amount}")
        if p.status not in (SplitPaymentStatus.CAPTURED, SplitPaymentStatus.PARTIALLY_REFUNDED):
            raise InvariantViolation(
                f"{p.id}: cannot refund a payment in status {p.status.value}"
            )
        if amount > p.refundable_amount:
            raise InvariantViolation(
                f"{p.id}: refund amount {amount} exceeds refundable balance "
                f"{p.refundable_amount}"
            )
        is_full = p.refunded_amount + amount >= p.captured_amount
        p.transition_to(
            SplitPaymentStatus.REFUNDED if is_full else SplitPaymentStatus.PARTIALLY_REFUNDED
        )
        p.refunded_amount += amount
        return RefundOutcome(
            payment_id=p.id,
            amount=amount,
            refunded_total=p.refunded_amount,
            is_full_refund=is_full,
        )

    def _apply(
        self,
        payment_id: str,
        mutate: Callable[[SplitOrderPayment], bool],
        kind: EventKind,
        now: Optional[datetime],
        extra: Optional[dict] = None,
    ) -> SplitOrderPayment:
        """Run ``mutate`` on a copy under the payment's lock; commit if valid."""
        with self.locked(payment_id) as current:
            candidate = replace(current)
            changed = mutate(candidate)
            if not changed:
                return current
            if now is None:
                now = datetime.now(timezone.utc)
            candidate.updated_utc = now
            candidate.check_invariants()
            self._payments[payment_id] = candidate

        logger.info(
            "Split payment updated",
            extra={"payment_id": payment_id, "event": kind.value, "status": candidate.status.value},
        )
        self._record(kind, candidate, now, extra)
        return candidate

    def _record(
        self,
        kind: EventKind,
        payment: SplitOrderPayment,
        now: datetime,
        extra: Optional[dict] = None,
    ) -> None:
        if self._event_log is None:
            return
        payload = {"payment_id": payment.id, **payment.to_dict(), **(extra or {})}
        payload.pop("id")
        self._event_log.append(EventRecord.create(
            event_id=f"evt_{uuid4().hex[:16]}",
            event_kind=kind,
            actor_id="system",
            payload=payload,
            timestamp_utc=now,
        ))
