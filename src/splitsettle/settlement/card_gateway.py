"""HTTP client for a Stripe-compatible card gateway.

Implements the SettlementGateway Protocol over the gateway's REST API:
form-encoded requests, bearer-token authentication, JSON responses.
Every failure surfaces as a GatewayError subclass:

    400 / 401 / 402 / 403        GatewayAuthorizationError
    404                          GatewayNotFoundError
    408 / 429 / 5xx              GatewayUnavailableError (retryable)
    timeout / connection error   GatewayUnavailableError (retryable)

The client performs exactly one HTTP call per method and never retries.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from splitsettle.config import GatewayConfig
from splitsettle.errors import (
    ConfigurationError,
    GatewayAuthorizationError,
    GatewayError,
    GatewayNotFoundError,
    GatewayUnavailableError,
)
from splitsettle.settlement.gateway import CaptureMode, PaymentIntentRequest

logger = logging.getLogger(__name__)


def encode_intent_request(request: PaymentIntentRequest) -> List[Tuple[str, str]]:
    """Flatten an intent request into gateway form fields."""
    fields: List[Tuple[str, str]] = [
        ("amount", str(request.amount)),
        ("currency", request.currency.lower()),
        ("capture_method", request.capture_mode.value),
    ]
    if request.capture_mode == CaptureMode.MANUAL:
        fields.append(("payment_method_options[card][capture_method]", "manual"))
    if request.destination is not None:
        fields.append(("transfer_data[destination]", request.destination))
        if request.application_fee is not None:
            fields.append(("application_fee_amount", str(request.application_fee)))
    for key, value in sorted(request.metadata.items()):
        fields.append((f"metadata[{key}]", str(value)))
    return fields


def _error_for(status: int, body: Dict[str, Any]) -> GatewayError:
    error = body.get("error") or {}
    message = error.get("message") or f"HTTP {status}"
    code = error.get("code")
    intent = error.get("payment_intent")
    if status == 404:
        return GatewayNotFoundError(message, code=code, status=status)
    if status in (408, 429) or status >= 500:
        return GatewayUnavailableError(message, code=code, status=status)
    return GatewayAuthorizationError(message, code=code, status=status, intent=intent)


class CardGatewayClient:
    """requests-based SettlementGateway implementation.

    Usage:
        config = SettlementConfig.from_config_dir(Path("config"))
        client = CardGatewayClient(config.gateway)
        intent = client.create_intent(PaymentIntentRequest(amount=11000, currency="usd"))
    """

    def __init__(
        self,
        config: GatewayConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not config.api_key:
            raise ConfigurationError("Gateway API key is not set")
        self._config = config
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {config.api_key}"})

    def create_intent(self, request: PaymentIntentRequest) -> Dict[str, Any]:
        return self._request("POST", "/payment_intents", data=encode_intent_request(request))

    def retrieve_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payment_intents/{intent_id}")

    def capture_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/payment_intents/{intent_id}/capture")

    def create_refund(
        self,
        intent_id: str,
        amount: int,
        refund_application_fee: bool,
    ) -> Dict[str, Any]:
        data = [
            ("payment_intent", intent_id),
            ("amount", str(amount)),
            ("refund_application_fee", "true" if refund_application_fee else "false"),
        ]
        return self._request("POST", "/refunds", data=data)

    def cancel_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/payment_intents/{intent_id}/cancel")

    def update_intent(
        self,
        intent_id: str,
        amount: int,
        application_fee: Optional[int] = None,
    ) -> Dict[str, Any]:
        data = [("amount", str(amount))]
        if application_fee is not None:
            data.append(("application_fee_amount", str(application_fee)))
        return self._request("POST", f"/payment_intents/{intent_id}", data=data)

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[List[Tuple[str, str]]] = None,
    ) -> Dict[str, Any]:
        url = f"{self._config.base_url}{path}"
        try:
            response = self._session.request(
                method, url, data=data, timeout=self._config.timeout_seconds,
            )
        except requests.Timeout as exc:
            logger.warning("Gateway timeout", extra={"method": method, "path": path})
            raise GatewayUnavailableError(f"Gateway timed out: {method} {path}") from exc
        except requests.RequestException as exc:
            logger.warning("Gateway connection failed", extra={"method": method, "path": path})
            raise GatewayUnavailableError(f"Gateway unreachable: {exc}") from exc

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        if 200 <= response.status_code < 300:
            return body

        error = _error_for(response.status_code, body)
        logger.error(
            "Gateway request failed",
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "code": error.code,
            },
        )
        raise error
