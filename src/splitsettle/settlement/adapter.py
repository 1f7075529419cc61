"""Settlement adapter — what the engine asks of, and reads from, the gateway.

Outbound:
    initiate  create an intent; route to a destination with the platform
              fee as application fee when the fee is charged on top
    capture   capture an authorized intent; an intent that already
              succeeded counts as captured
    refund    refund part or all of a captured intent; only full refunds
              return the application fee
    cancel    void an uncaptured intent; an intent that is already
              canceled counts as canceled
    update    change an uncaptured intent's amount, re-sending the
              application fee for on-top fees on connected accounts

Inbound:
    webhook   read a gateway event into a WebhookResult. Never raises:
              unrecognized or malformed events resolve to IGNORED.

Event mapping:
    payment_intent.amount_capturable_updated  → AUTHORIZED (amount_capturable)
    payment_intent.succeeded                  → CAPTURED   (amount_received)
    payment_intent.payment_failed             → FAILED     (amount)
    payment_intent.canceled                   → CANCELED   (amount)
    anything else                             → IGNORED

Signature verification happens before the payload reaches this module.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from splitsettle.errors import GatewayAuthorizationError
from splitsettle.models.payment import (
    NO_PLATFORM_FEE,
    FeeMode,
    PlatformFee,
    SplitPaymentStatus,
    WebhookAction,
)
from splitsettle.settlement.gateway import (
    IGNORED,
    UNEXPECTED_STATE,
    CaptureMode,
    IntentStatus,
    PaymentIntentRequest,
    SettlementGateway,
    WebhookResult,
    ledger_status_for,
)

logger = logging.getLogger(__name__)

EVENT_AUTHORIZED = "payment_intent.amount_capturable_updated"
EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"
EVENT_CANCELED = "payment_intent.canceled"

_EVENT_ACTIONS: Dict[str, tuple] = {
    EVENT_AUTHORIZED: (WebhookAction.AUTHORIZED, "amount_capturable"),
    EVENT_SUCCEEDED: (WebhookAction.CAPTURED, "amount_received"),
    EVENT_FAILED: (WebhookAction.FAILED, "amount"),
    EVENT_CANCELED: (WebhookAction.CANCELED, "amount"),
}

PAYMENT_MODE_CONNECT = "connect"
PAYMENT_MODE_PLATFORM = "platform"


class SettlementAdapter:
    """Gateway-facing half of the settlement engine.

    Usage:
        adapter = SettlementAdapter(CardGatewayClient(config.gateway), "splitsettle")
        intent_id = adapter.initiate(11000, "usd", destination="acct_1",
                                     fee=PlatformFee(1000, FeeMode.ON_TOP))
        result = adapter.webhook(event_payload)
    """

    def __init__(self, gateway: SettlementGateway, platform_label: str = "") -> None:
        if not isinstance(gateway, SettlementGateway):
            raise TypeError(f"{type(gateway).__name__} does not implement SettlementGateway")
        self._gateway = gateway
        self._platform_label = platform_label

    def initiate(
        self,
        amount: int,
        currency: str,
        destination: Optional[str] = None,
        fee: PlatformFee = NO_PLATFORM_FEE,
        capture_mode: CaptureMode = CaptureMode.AUTOMATIC,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Create a payment intent and return its id.

        The platform fee becomes an application fee only when the intent
        is routed to a destination account and the fee was charged on
        top. An included fee is tracked in the ledger and never sent.
        """
        application_fee = None
        if destination is not None and fee.is_set and fee.mode == FeeMode.ON_TOP:
            application_fee = fee.amount

        tags = dict(metadata or {})
        tags.update({
            "payment_mode": PAYMENT_MODE_CONNECT if destination else PAYMENT_MODE_PLATFORM,
            "platform_fee": str(fee.amount),
            "platform_fee_mode": fee.mode.value if fee.mode else "",
            "requires_approval": "true" if capture_mode == CaptureMode.MANUAL else "false",
        })
        if self._platform_label:
            tags["platform"] = self._platform_label

        request = PaymentIntentRequest(
            amount=amount,
            currency=currency.lower(),
            capture_mode=capture_mode,
            destination=destination,
            application_fee=application_fee,
            metadata=tags,
        )
        intent = self._gateway.create_intent(request)
        logger.info(
            "Payment intent created",
            extra={
                "intent_id": intent["id"],
                "amount": amount,
                "currency": request.currency,
                "application_fee": application_fee,
                "capture_mode": capture_mode.value,
            },
        )
        return intent["id"]

    def capture(self, intent_id: str) -> int:
        """Capture an intent and return the amount received."""
        try:
            intent = self._gateway.capture_intent(intent_id)
        except GatewayAuthorizationError as exc:
            current = exc.intent or {}
            if exc.code == UNEXPECTED_STATE and current.get("status") == IntentStatus.SUCCEEDED.value:
                logger.info("Intent already captured", extra={"intent_id": intent_id})
                return int(current.get("amount_received") or current.get("amount") or 0)
            raise
        return int(intent.get("amount_received") or intent.get("amount") or 0)

    def refund(self, intent_id: str, amount: int, reclaim_fee: bool) -> Dict[str, Any]:
        """Refund ``amount``; ``reclaim_fee`` returns the application fee too."""
        refund = self._gateway.create_refund(intent_id, amount, refund_application_fee=reclaim_fee)
        logger.info(
            "Refund created",
            extra={"intent_id": intent_id, "amount": amount, "reclaim_fee": reclaim_fee},
        )
        return refund

    def cancel(self, intent_id: str) -> SplitPaymentStatus:
        """Void an intent and return the resulting ledger status."""
        try:
            intent = self._gateway.cancel_intent(intent_id)
        except GatewayAuthorizationError as exc:
            current = exc.intent or {}
            if exc.code == UNEXPECTED_STATE and current.get("status") == IntentStatus.CANCELED.value:
                logger.info("Intent already canceled", extra={"intent_id": intent_id})
                return SplitPaymentStatus.CANCELED
            raise
        logger.info("Payment intent canceled", extra={"intent_id": intent_id})
        return ledger_status_for(str(intent.get("status", "")))

    def update(self, intent_id: str, amount: int) -> Dict[str, Any]:
        """Change the intent amount. Returns the intent; unchanged amounts send nothing.

        The platform fee and its mode are read back from the intent's own
        metadata, so the application fee follows the same rule as in
        ``initiate``.
        """
        if amount <= 0:
            raise ValueError(f"Intent amount must be positive, got {amount}")
        intent = self._gateway.retrieve_intent(intent_id)
        if int(intent.get("amount") or 0) == amount:
            return intent

        tags = intent.get("metadata") or {}
        application_fee = None
        fee = int(tags.get("platform_fee") or 0)
        if (
            tags.get("payment_mode") == PAYMENT_MODE_CONNECT
            and tags.get("platform_fee_mode") == FeeMode.ON_TOP.value
            and fee > 0
        ):
            application_fee = fee

        updated = self._gateway.update_intent(intent_id, amount, application_fee=application_fee)
        logger.info(
            "Payment intent updated",
            extra={
                "intent_id": intent_id,
                "amount": amount,
                "application_fee": application_fee,
            },
        )
        return updated

    def payment_status(self, intent_id: str) -> SplitPaymentStatus:
        intent = self._gateway.retrieve_intent(intent_id)
        return ledger_status_for(str(intent.get("status", "")))

    def webhook(self, payload: Mapping[str, Any]) -> WebhookResult:
        """Read a gateway event. Never raises."""
        try:
            event_type = str(payload.get("type", ""))
            action, amount_field = _EVENT_ACTIONS.get(event_type, (WebhookAction.IGNORED, None))
            intent = payload.get("data", {}).get("object", {})
            intent_id = intent.get("id")
            if action == WebhookAction.IGNORED or not intent_id:
                return WebhookResult(
                    action=WebhookAction.IGNORED,
                    intent_id=intent_id,
                    event_type=event_type,
                )
            amount = int(intent.get(amount_field) or 0)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Malformed gateway event ignored", extra={"error": str(exc)})
            return IGNORED

        return WebhookResult(
            action=action,
            intent_id=str(intent_id),
            amount=amount,
            event_type=event_type,
        )
