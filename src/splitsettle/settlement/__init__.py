"""Gateway contract, HTTP client and settlement adapter."""

from splitsettle.settlement.adapter import SettlementAdapter
from splitsettle.settlement.card_gateway import CardGatewayClient
from splitsettle.settlement.gateway import (
    CaptureMode,
    PaymentIntentRequest,
    SettlementGateway,
    WebhookResult,
)

__all__ = [
    "CaptureMode",
    "CardGatewayClient",
    "PaymentIntentRequest",
    "SettlementAdapter",
    "SettlementGateway",
    "WebhookResult",
]
