"""splitsettle — marketplace commission and split-payment settlement engine."""

from splitsettle.config import SettlementConfig
from splitsettle.service import CheckoutSession, ServiceResult, SettlementService

__all__ = [
    "CheckoutSession",
    "ServiceResult",
    "SettlementConfig",
    "SettlementService",
]
