"""Tests for the YuKassa provider.

Covers:
- Construction and config
- Structural webhook validation and the source allow-list
- Notification normalization (status mapping, kopeck conversion)
- Payment creation and lookup (requests mocked)
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from paycore.services.payment import (
    ConfigurationError,
    NormalizationError,
    PaymentProviderError,
    PaymentResult,
    UnhandledStatusError,
)
from paycore.services.payment.yukassa_provider import YuKassaProvider, to_minor_units

PAYMENT_ID = "2d5f8c6e-000f-5000-9000-1b68e7b15f3f"


def _provider(**overrides):
    params = {
        "shop_id": "123456",
        "secret_key": "test_yukassa_secret",
        "api_url": "https://api.yookassa.test/v3",
        "app_base_url": "http://localhost:3000",
    }
    params.update(overrides)
    return YuKassaProvider(**params)


def _notification(event="payment.succeeded", status="succeeded", paid=True,
                  value="123.45", currency="RUB", metadata=None, type_="notification"):
    return {
        "type": type_,
        "event": event,
        "object": {
            "id": PAYMENT_ID,
            "status": status,
            "paid": paid,
            "amount": {"value": value, "currency": currency},
            "metadata": {"order_id": "order456", "user_id": "user123"}
            if metadata is None else metadata,
        },
    }


def _response(status_code=200, payload=None, reason="OK"):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.reason = reason
    resp.json.return_value = payload or {}
    return resp


class TestConstruction:

    def test_missing_credentials_raise(self, monkeypatch):
        monkeypatch.delenv("YUKASSA_SHOP_ID", raising=False)
        monkeypatch.delenv("YUKASSA_SECRET_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="YuKassa credentials not configured"):
            YuKassaProvider(shop_id="123456")

    def test_default_api_url(self):
        provider = _provider(api_url=None)
        assert provider.api_url == "https://api.yookassa.ru/v3"

    def test_from_config(self):
        provider = YuKassaProvider.from_config({
            "YUKASSA_SHOP_ID": "777",
            "YUKASSA_SECRET_KEY": "live_secret",
            "YUKASSA_API_URL": "https://api.yookassa.test/v3/",
            "YUKASSA_ALLOWED_NETWORKS": ["185.71.76.0/27"],
            "PAYMENT_HTTP_TIMEOUT": 3,
        })
        assert provider.shop_id == "777"
        assert provider.api_url == "https://api.yookassa.test/v3"
        assert provider.timeout == 3
        assert len(provider.allowed_networks) == 1


class TestVerifyWebhook:

    def test_well_formed_notification_accepted(self):
        payload = json.dumps(_notification())
        assert _provider().verify_webhook(payload, "") is True

    def test_signature_ignored(self):
        payload = json.dumps(_notification())
        assert _provider().verify_webhook(payload, "anything") is True

    @pytest.mark.parametrize("missing", ["type", "event", "object"])
    def test_missing_field_rejected(self, missing):
        body = _notification()
        del body[missing]
        assert _provider().verify_webhook(json.dumps(body), "") is False

    def test_invalid_json_rejected(self):
        assert _provider().verify_webhook("{not json", "") is False

    def test_non_object_rejected(self):
        assert _provider().verify_webhook("[]", "") is False


class TestTrustedSource:

    def test_no_allow_list_trusts_everyone(self, caplog):
        assert _provider().is_trusted_source("203.0.113.9") is True
        assert "not configured" in caplog.text

    def test_address_inside_network(self):
        provider = _provider(allowed_networks=["185.71.76.0/27", "77.75.156.11"])
        assert provider.is_trusted_source("185.71.76.5") is True
        assert provider.is_trusted_source("77.75.156.11") is True

    def test_address_outside_network(self):
        provider = _provider(allowed_networks=["185.71.76.0/27"])
        assert provider.is_trusted_source("203.0.113.9") is False

    def test_unparseable_address(self):
        provider = _provider(allowed_networks=["185.71.76.0/27"])
        assert provider.is_trusted_source(None) is False
        assert provider.is_trusted_source("not-an-ip") is False


class TestProcessWebhook:

    def test_succeeded_paid(self):
        result = _provider().process_webhook(json.dumps(_notification()))
        assert result == PaymentResult(
            order_id="order456",
            status="completed",
            amount=12345,
            currency="RUB",
            external_id=PAYMENT_ID,
        )

    def test_canceled(self):
        result = _provider().process_webhook(
            _notification(event="payment.canceled", status="canceled", paid=False)
        )
        assert result.status == PaymentResult.FAILED

    def test_succeeded_but_not_paid_is_not_final(self):
        with pytest.raises(UnhandledStatusError):
            _provider().process_webhook(_notification(paid=False))

    def test_waiting_for_capture_is_not_final(self):
        with pytest.raises(UnhandledStatusError,
                           match="Unhandled payment status: waiting_for_capture"):
            _provider().process_webhook(_notification(
                event="payment.waiting_for_capture",
                status="waiting_for_capture",
                paid=True,
            ))

    def test_unsupported_type(self):
        with pytest.raises(NormalizationError, match="Unsupported webhook type: event"):
            _provider().process_webhook(_notification(type_="event"))

    def test_unsupported_event(self):
        with pytest.raises(NormalizationError,
                           match="Unsupported webhook event: refund.succeeded"):
            _provider().process_webhook(_notification(event="refund.succeeded"))

    def test_missing_order_id(self):
        with pytest.raises(NormalizationError,
                           match="Order ID not found in webhook metadata"):
            _provider().process_webhook(_notification(metadata={}))

    def test_currency_kept_verbatim(self):
        result = _provider().process_webhook(_notification(currency="rub"))
        assert result.currency == "rub"

    def test_invalid_amount(self):
        with pytest.raises(NormalizationError, match="Invalid payment amount"):
            _provider().process_webhook(_notification(value="abc"))


class TestMinorUnits:

    @pytest.mark.parametrize("value,expected", [
        ("123.45", 12345),
        ("10.00", 1000),
        ("0.005", 1),
        ("0.004", 0),
        ("1", 100),
    ])
    def test_conversion(self, value, expected):
        assert to_minor_units(value) == expected

    @pytest.mark.parametrize("value", [None, "", "NaN", "Infinity"])
    def test_invalid(self, value):
        with pytest.raises(NormalizationError):
            to_minor_units(value)


class TestCreateSession:

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_creates_payment(self, mock_request):
        mock_request.return_value = _response(payload={
            "id": PAYMENT_ID,
            "status": "pending",
            "confirmation": {
                "type": "redirect",
                "confirmation_url": "https://yoomoney.ru/checkout/payments/v2/contract?orderId=x",
            },
            "expires_at": "2026-10-20T12:00:00.000Z",
        })

        session = _provider().create_session(
            1000, "RUB", "user123", "order456", service_id="full_pythagorean",
        )

        assert session.id == PAYMENT_ID
        assert session.url.startswith("https://yoomoney.ru/checkout/")
        assert session.expires_at == datetime(2026, 10, 20, 12, 0, tzinfo=timezone.utc)

        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://api.yookassa.test/v3/payments")
        assert kwargs["auth"] == ("123456", "test_yukassa_secret")
        assert kwargs["timeout"] == 10
        assert len(kwargs["headers"]["Idempotence-Key"]) == 64

        body = kwargs["json"]
        assert body["amount"] == {"value": "10.00", "currency": "RUB"}
        assert body["capture"] is True
        assert body["confirmation"]["type"] == "redirect"
        assert body["confirmation"]["return_url"].startswith(
            "http://localhost:3000/ru/payment/success?orderId=order456"
        )
        assert body["metadata"] == {
            "order_id": "order456",
            "user_id": "user123",
            "service_id": "full_pythagorean",
        }
        assert "order456" in body["description"]

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_missing_expiry_is_none(self, mock_request):
        mock_request.return_value = _response(payload={
            "id": PAYMENT_ID,
            "confirmation": {"confirmation_url": "https://yoomoney.ru/checkout/x"},
        })

        session = _provider().create_session(12345, "RUB", "user123", "order456")

        assert session.expires_at is None
        assert mock_request.call_args.kwargs["json"]["amount"]["value"] == "123.45"

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_api_error_description(self, mock_request):
        mock_request.return_value = _response(
            status_code=400,
            reason="Bad Request",
            payload={"type": "error", "description": "Invalid shop_id"},
        )

        with pytest.raises(PaymentProviderError, match="YuKassa API error: Invalid shop_id"):
            _provider().create_session(1000, "RUB", "user123", "order456")

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_api_error_without_body(self, mock_request):
        resp = _response(status_code=502, reason="Bad Gateway")
        resp.json.side_effect = ValueError("no json")
        mock_request.return_value = resp

        with pytest.raises(PaymentProviderError, match="YuKassa API error: Bad Gateway"):
            _provider().create_session(1000, "RUB", "user123", "order456")

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_network_error(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("Connection refused")

        with pytest.raises(PaymentProviderError,
                           match="Failed to create YuKassa payment session"):
            _provider().create_session(1000, "RUB", "user123", "order456")


class TestFetchPaymentResult:

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_succeeded_payment(self, mock_request):
        mock_request.return_value = _response(payload=_notification()["object"])

        result = _provider().fetch_payment_result(PAYMENT_ID)

        assert result.status == PaymentResult.COMPLETED
        assert result.amount == 12345
        args, _ = mock_request.call_args
        assert args == ("GET", f"https://api.yookassa.test/v3/payments/{PAYMENT_ID}")

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_pending_payment_is_not_final(self, mock_request):
        mock_request.return_value = _response(
            payload=_notification(status="pending", paid=False)["object"]
        )

        assert _provider().fetch_payment_result(PAYMENT_ID) is None

    @patch("paycore.services.payment.yukassa_provider.requests.request")
    def test_lookup_failure_propagates(self, mock_request):
        mock_request.side_effect = requests.Timeout("timed out")

        with pytest.raises(PaymentProviderError):
            _provider().fetch_payment_result(PAYMENT_ID)
