"""Error taxonomy for the settlement engine.

Four families, distinguished by what the caller can do about them:

    ConfigurationError   a commission rule or rate has an invalid shape
    NotFoundError        a referenced rule or payment does not exist
    InvariantViolation   a ledger operation would break an amount invariant
    GatewayError         the external card gateway failed

Invariant violations and configuration errors are raised before any
state is touched. Gateway errors carry a ``retryable`` flag for the
orchestration layer; the engine itself never retries.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SettlementError(Exception):
    """Base class for every error raised by splitsettle."""


class ConfigurationError(SettlementError):
    """A commission rule, rate or parameter file has an invalid shape."""


class NotFoundError(SettlementError):
    """A referenced record does not exist. Never retryable."""


class InvariantViolation(SettlementError):
    """A ledger operation would break an amount or state invariant.

    Always a caller or data bug. The ledger is left unchanged.
    """


class GatewayError(SettlementError):
    """The external settlement gateway rejected or failed a call."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        intent: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.intent = intent


class GatewayAuthorizationError(GatewayError):
    """Credentials, card or request parameters were rejected.

    Caller-correctable; retrying the same request will fail again.
    """


class GatewayNotFoundError(GatewayError):
    """The gateway has no record of the referenced intent or charge."""


class GatewayUnavailableError(GatewayError):
    """Timeout, connection failure, rate limit or gateway-side 5xx."""

    retryable = True
