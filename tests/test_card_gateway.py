"""Tests for the HTTP card gateway client — request encoding and error mapping."""

from typing import Any, Dict, Optional
from unittest import mock

import pytest
import requests

from splitsettle.config import GatewayConfig
from splitsettle.errors import (
    ConfigurationError,
    GatewayAuthorizationError,
    GatewayNotFoundError,
    GatewayUnavailableError,
)
from splitsettle.settlement.card_gateway import CardGatewayClient, encode_intent_request
from splitsettle.settlement.gateway import CaptureMode, PaymentIntentRequest, SettlementGateway


def _config(api_key: str = "sk_test_123") -> GatewayConfig:
    return GatewayConfig(
        base_url="https://gateway.test/v1",
        timeout_seconds=5,
        platform_label="splitsettle",
        api_key=api_key,
    )


def _response(status: int, body: Optional[Dict[str, Any]] = None) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status
    response.content = b"{}" if body is not None else b""
    response.json.return_value = body or {}
    return response


def _client(response: Any = None, side_effect: Any = None) -> tuple:
    session = mock.Mock()
    session.headers = {}
    session.request.return_value = response
    session.request.side_effect = side_effect
    return CardGatewayClient(_config(), session=session), session


class TestConstruction:
    def test_requires_api_key(self) -> None:
        with pytest.raises(ConfigurationError, match="API key"):
            CardGatewayClient(_config(api_key=""))

    def test_sets_bearer_header(self) -> None:
        client, session = _client()
        assert session.headers["Authorization"] == "Bearer sk_test_123"
        assert isinstance(client, SettlementGateway)


class TestEncoding:
    def test_connect_intent_fields(self) -> None:
        fields = dict(encode_intent_request(PaymentIntentRequest(
            amount=11000,
            currency="USD",
            capture_mode=CaptureMode.MANUAL,
            destination="acct_1",
            application_fee=1000,
            metadata={"seller_id": "sel_1"},
        )))
        assert fields["amount"] == "11000"
        assert fields["currency"] == "usd"
        assert fields["capture_method"] == "manual"
        assert fields["payment_method_options[card][capture_method]"] == "manual"
        assert fields["transfer_data[destination]"] == "acct_1"
        assert fields["application_fee_amount"] == "1000"
        assert fields["metadata[seller_id]"] == "sel_1"

    def test_platform_intent_has_no_transfer(self) -> None:
        fields = dict(encode_intent_request(PaymentIntentRequest(amount=500, currency="usd")))
        assert "transfer_data[destination]" not in fields
        assert "application_fee_amount" not in fields
        assert "payment_method_options[card][capture_method]" not in fields

    def test_fee_without_destination_rejected(self) -> None:
        with pytest.raises(ValueError, match="destination"):
            PaymentIntentRequest(amount=500, currency="usd", application_fee=50)


class TestRequests:
    def test_create_intent_posts_form(self) -> None:
        client, session = _client(_response(200, {"id": "pi_1", "status": "requires_payment_method"}))
        intent = client.create_intent(PaymentIntentRequest(amount=500, currency="usd"))
        assert intent["id"] == "pi_1"
        method, url = session.request.call_args.args
        assert method == "POST"
        assert url == "https://gateway.test/v1/payment_intents"
        assert session.request.call_args.kwargs["timeout"] == 5

    def test_capture_path(self) -> None:
        client, session = _client(_response(200, {"id": "pi_1", "status": "succeeded"}))
        client.capture_intent("pi_1")
        assert session.request.call_args.args[1].endswith("/payment_intents/pi_1/capture")

    def test_refund_fields(self) -> None:
        client, session = _client(_response(200, {"id": "re_1"}))
        client.create_refund("pi_1", 2500, refund_application_fee=True)
        data = dict(session.request.call_args.kwargs["data"])
        assert data == {
            "payment_intent": "pi_1",
            "amount": "2500",
            "refund_application_fee": "true",
        }

    def test_cancel_path(self) -> None:
        client, session = _client(_response(200, {"id": "pi_1", "status": "canceled"}))
        assert client.cancel_intent("pi_1")["status"] == "canceled"
        method, url = session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/payment_intents/pi_1/cancel")

    def test_update_sends_amount_and_fee(self) -> None:
        client, session = _client(_response(200, {"id": "pi_1", "amount": 13000}))
        client.update_intent("pi_1", 13000, application_fee=1000)
        assert session.request.call_args.args[1].endswith("/payment_intents/pi_1")
        assert dict(session.request.call_args.kwargs["data"]) == {
            "amount": "13000",
            "application_fee_amount": "1000",
        }

    def test_update_without_fee(self) -> None:
        client, session = _client(_response(200, {"id": "pi_1", "amount": 9000}))
        client.update_intent("pi_1", 9000)
        assert session.request.call_args.kwargs["data"] == [("amount", "9000")]


class TestErrorMapping:
    @pytest.mark.parametrize("status", [400, 401, 402, 403])
    def test_rejections_are_authorization_errors(self, status: int) -> None:
        client, _ = _client(_response(status, {"error": {"message": "nope", "code": "card_declined"}}))
        with pytest.raises(GatewayAuthorizationError) as info:
            client.retrieve_intent("pi_1")
        assert info.value.status == status
        assert info.value.code == "card_declined"
        assert not info.value.retryable

    def test_unexpected_state_carries_intent(self) -> None:
        body = {"error": {
            "code": "payment_intent_unexpected_state",
            "message": "already succeeded",
            "payment_intent": {"id": "pi_1", "status": "succeeded", "amount_received": 500},
        }}
        client, _ = _client(_response(400, body))
        with pytest.raises(GatewayAuthorizationError) as info:
            client.capture_intent("pi_1")
        assert info.value.intent["status"] == "succeeded"

    def test_404_is_not_found(self) -> None:
        client, _ = _client(_response(404, {"error": {"message": "No such payment_intent"}}))
        with pytest.raises(GatewayNotFoundError) as info:
            client.retrieve_intent("pi_missing")
        assert not info.value.retryable

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_server_errors_are_retryable(self, status: int) -> None:
        client, _ = _client(_response(status))
        with pytest.raises(GatewayUnavailableError) as info:
            client.retrieve_intent("pi_1")
        assert info.value.retryable
        assert str(info.value) == f"HTTP {status}"

    def test_timeout_is_retryable(self) -> None:
        client, _ = _client(side_effect=requests.Timeout("read timed out"))
        with pytest.raises(GatewayUnavailableError, match="timed out") as info:
            client.retrieve_intent("pi_1")
        assert info.value.retryable
        assert isinstance(info.value.__cause__, requests.Timeout)

    def test_connection_error_is_retryable(self) -> None:
        client, _ = _client(side_effect=requests.ConnectionError("refused"))
        with pytest.raises(GatewayUnavailableError, match="unreachable"):
            client.retrieve_intent("pi_1")
