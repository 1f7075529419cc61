"""Settlement gateway contract.

The adapter and the ledger never talk to a card processor directly;
they talk to this Protocol. A gateway speaks in payment intents: an
intent is created for an amount, optionally routed to a destination
account with an application fee retained by the platform, then captured
(automatically or on demand) and possibly refunded.

All amounts crossing this boundary are integers in the smallest currency
unit. Intent objects are returned as plain dicts carrying at least
``id``, ``status``, ``amount``, ``amount_received``, ``amount_capturable``
and ``currency``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from splitsettle.models.payment import SplitPaymentStatus, WebhookAction


class CaptureMode(str, enum.Enum):
    """When funds move after authorization."""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class IntentStatus(str, enum.Enum):
    """Gateway-side payment intent states."""
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


INTENT_STATUS_TO_LEDGER: Dict[str, SplitPaymentStatus] = {
    IntentStatus.REQUIRES_PAYMENT_METHOD.value: SplitPaymentStatus.PENDING,
    IntentStatus.REQUIRES_CONFIRMATION.value: SplitPaymentStatus.PENDING,
    IntentStatus.REQUIRES_ACTION.value: SplitPaymentStatus.PENDING,
    IntentStatus.PROCESSING.value: SplitPaymentStatus.PENDING,
    IntentStatus.REQUIRES_CAPTURE.value: SplitPaymentStatus.AUTHORIZED,
    IntentStatus.SUCCEEDED.value: SplitPaymentStatus.CAPTURED,
    IntentStatus.CANCELED.value: SplitPaymentStatus.CANCELED,
}


def ledger_status_for(intent_status: str) -> SplitPaymentStatus:
    """Map a gateway intent status to a ledger status. Unknown → PENDING."""
    return INTENT_STATUS_TO_LEDGER.get(intent_status, SplitPaymentStatus.PENDING)


@dataclass(frozen=True)
class PaymentIntentRequest:
    """Parameters for creating a payment intent.

    ``application_fee`` is only meaningful together with ``destination``;
    the adapter never builds a request with a fee and no destination.
    """
    amount: int
    currency: str
    capture_mode: CaptureMode = CaptureMode.AUTOMATIC
    destination: Optional[str] = None
    application_fee: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Intent amount must be positive, got {self.amount}")
        if self.application_fee is not None and self.destination is None:
            raise ValueError("An application fee requires a destination account")


@dataclass(frozen=True)
class WebhookResult:
    """Ledger-relevant reading of one gateway event."""
    action: WebhookAction
    intent_id: Optional[str] = None
    amount: int = 0
    event_type: str = ""


IGNORED = WebhookResult(action=WebhookAction.IGNORED)

UNEXPECTED_STATE = "payment_intent_unexpected_state"


@runtime_checkable
class SettlementGateway(Protocol):
    """Abstract contract for card gateway implementations.

    Implementations raise GatewayError subclasses for every failure:
    GatewayAuthorizationError for rejected requests, GatewayNotFoundError
    for unknown intents and GatewayUnavailableError for timeouts,
    connection failures, rate limits and server-side errors.

    ``capture_intent`` raises GatewayAuthorizationError with code
    ``payment_intent_unexpected_state`` and the current intent attached
    as ``error.intent`` when the intent is not capturable.
    """

    def create_intent(self, request: PaymentIntentRequest) -> Dict[str, Any]:
        """Create a payment intent and return the intent object."""
        ...

    def retrieve_intent(self, intent_id: str) -> Dict[str, Any]:
        """Return the current intent object."""
        ...

    def capture_intent(self, intent_id: str) -> Dict[str, Any]:
        """Capture an authorized intent and return the updated intent object."""
        ...

    def create_refund(
        self,
        intent_id: str,
        amount: int,
        refund_application_fee: bool,
    ) -> Dict[str, Any]:
        """Refund ``amount`` of the intent and return the refund object."""
        ...

    def cancel_intent(self, intent_id: str) -> Dict[str, Any]:
        """Void an uncaptured intent, releasing any hold on the card."""
        ...

    def update_intent(
        self,
        intent_id: str,
        amount: int,
        application_fee: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Change the intent amount, and the application fee when given."""
        ...
