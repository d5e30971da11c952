"""YuKassa provider - redirect payments for Russian users.

Responsible for:
- Creating payments via POST {api_url}/payments (Basic auth,
  Idempotence-Key header, capture=true)
- Structural validation of incoming notifications
- Normalizing payment.* notifications into PaymentResult

YuKassa does NOT sign notifications. verify_webhook() only checks the shape
of the body; trust has to come from where the request came from. Configure
YUKASSA_ALLOWED_NETWORKS with the published ranges from
https://yookassa.ru/developers/using-api/webhooks so is_trusted_source()
can enforce it. Until that is set, anyone who can reach the endpoint can
forge a notification.
"""

import hashlib
import ipaddress
import logging
import os
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import requests

from paycore.services.payment.base import PaymentProvider, PaymentResult, PaymentSession
from paycore.services.payment.errors import (
    ConfigurationError,
    NormalizationError,
    PaymentProviderError,
    UnhandledStatusError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.yookassa.ru/v3"

SUPPORTED_EVENTS = (
    "payment.succeeded",
    "payment.canceled",
    "payment.waiting_for_capture",
)


def _parse_expiry(value):
    """YuKassa timestamps are ISO-8601 UTC, e.g. 2024-01-01T12:00:00.000Z."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_minor_units(value):
    """Convert a decimal major-unit string ("123.45") to integer minor units.

    Rounds half away from zero, so "0.005" -> 1.
    """
    try:
        amount = Decimal(str(value)) * 100
    except (InvalidOperation, TypeError) as e:
        raise NormalizationError(f"Invalid payment amount: {value!r}") from e
    if not amount.is_finite():
        raise NormalizationError(f"Invalid payment amount: {value!r}")
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class YuKassaProvider(PaymentProvider):
    name = "yukassa"
    signature_header = "X-Signature"
    signature_required = False

    def __init__(self, shop_id=None, secret_key=None, api_url=None, app_base_url=None,
                 allowed_networks=None, default_locale="ru", timeout=10):
        super().__init__(app_base_url, default_locale=default_locale, timeout=timeout)
        self.shop_id = shop_id or os.environ.get("YUKASSA_SHOP_ID", "")
        self.secret_key = secret_key or os.environ.get("YUKASSA_SECRET_KEY", "")
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.allowed_networks = [
            ipaddress.ip_network(net, strict=False) for net in (allowed_networks or [])
        ]

        if not self.shop_id or not self.secret_key:
            raise ConfigurationError("YuKassa credentials not configured")

    @classmethod
    def from_config(cls, config=None):
        """Build from a config mapping (e.g. app.config); missing keys fall
        back to the environment."""
        config = config or {}
        return cls(
            shop_id=config.get("YUKASSA_SHOP_ID"),
            secret_key=config.get("YUKASSA_SECRET_KEY"),
            api_url=config.get("YUKASSA_API_URL"),
            app_base_url=config.get("APP_BASE_URL"),
            allowed_networks=config.get("YUKASSA_ALLOWED_NETWORKS"),
            default_locale=config.get("DEFAULT_LOCALE", "ru"),
            timeout=config.get("PAYMENT_HTTP_TIMEOUT", 10),
        )

    # ──────────────────────────────────────────────
    # Payments API
    # ──────────────────────────────────────────────

    def create_session(self, amount, currency, user_id, order_id,
                       service_id=None, locale=None):
        """Create a YuKassa payment with redirect confirmation.

        amount is in kopecks (1000 = 10.00 RUB); YuKassa wants a decimal
        string in major units.

        Raises PaymentProviderError on API or network failures.
        """
        locale = locale or self.default_locale
        amount_value = f"{Decimal(amount) / 100:.2f}"

        # Keyed on order + time: a retried click creates a new payment,
        # a network-level resend of this request does not.
        idempotence_key = hashlib.sha256(
            f"{order_id}-{int(time.time() * 1000)}".encode("utf-8")
        ).hexdigest()

        metadata = {"order_id": order_id, "user_id": user_id}
        if service_id:
            metadata["service_id"] = service_id

        body = {
            "amount": {"value": amount_value, "currency": currency},
            "confirmation": {
                "type": "redirect",
                "return_url": self.success_url(
                    locale, order_id, service_id, f"{amount_value} {currency}"
                ),
            },
            "capture": True,
            "description": f"Оплата заказа {order_id}",
            "metadata": metadata,
        }

        data = self._request(
            "POST",
            "/payments",
            json=body,
            headers={"Idempotence-Key": idempotence_key},
            action="create YuKassa payment session",
        )

        return PaymentSession(
            id=data["id"],
            url=data["confirmation"]["confirmation_url"],
            expires_at=_parse_expiry(data.get("expires_at")),
        )

    def fetch_payment_event(self, external_id):
        """GET the payment and wrap it as a payment.<status> notification."""
        payment = self._request(
            "GET",
            f"/payments/{external_id}",
            action="get YuKassa payment info",
        )
        if payment.get("status") == "pending":
            raise UnhandledStatusError("Unhandled payment status: pending")
        return {
            "type": "notification",
            "event": f"payment.{payment.get('status')}",
            "object": payment,
        }

    def _request(self, method, path, action, **kwargs):
        try:
            resp = requests.request(
                method,
                f"{self.api_url}{path}",
                auth=(self.shop_id, self.secret_key),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.error(f"YuKassa request failed ({action}): {e}")
            raise PaymentProviderError(f"Failed to {action}: {e}") from e

        if not resp.ok:
            try:
                description = resp.json().get("description")
            except ValueError:
                description = None
            message = description or resp.reason
            logger.error(f"YuKassa API error ({action}): {resp.status_code} {message}")
            raise PaymentProviderError(f"YuKassa API error: {message}")

        return resp.json()

    # ──────────────────────────────────────────────
    # Webhooks
    # ──────────────────────────────────────────────

    def is_trusted_source(self, remote_addr):
        """Check the caller's address against YUKASSA_ALLOWED_NETWORKS."""
        if not self.allowed_networks:
            logger.warning(
                "YuKassa webhook IP verification not configured "
                "(YUKASSA_ALLOWED_NETWORKS is empty)"
            )
            return True

        try:
            addr = ipaddress.ip_address(remote_addr or "")
        except ValueError:
            logger.warning(f"YuKassa webhook from unparseable address {remote_addr!r}")
            return False

        return any(addr in net for net in self.allowed_networks)

    def verify_webhook(self, payload, signature):
        """Structural check only - see module docstring.

        signature is ignored; YuKassa sends none.
        """
        try:
            data = self.decode_payload(payload)
        except NormalizationError:
            return False

        if not data.get("type") or not data.get("event") or not data.get("object"):
            return False

        return True

    def process_webhook(self, payload):
        """Map a payment.* notification to a PaymentResult.

        succeeded + paid -> completed
        canceled         -> failed
        pending / waiting_for_capture raise UnhandledStatusError.
        """
        data = self.decode_payload(payload)

        if data.get("type") != "notification":
            raise NormalizationError(f"Unsupported webhook type: {data.get('type')}")

        event = data.get("event")
        if event not in SUPPORTED_EVENTS:
            raise NormalizationError(f"Unsupported webhook event: {event}")

        payment = data.get("object") or {}
        order_id = (payment.get("metadata") or {}).get("order_id")

        if not order_id:
            raise NormalizationError("Order ID not found in webhook metadata")

        payment_status = payment.get("status")
        if payment_status == "succeeded" and payment.get("paid"):
            status = PaymentResult.COMPLETED
        elif payment_status == "canceled":
            status = PaymentResult.FAILED
        else:
            raise UnhandledStatusError(f"Unhandled payment status: {payment_status}")

        amount = payment.get("amount") or {}

        return PaymentResult(
            order_id=order_id,
            status=status,
            amount=to_minor_units(amount.get("value")),
            currency=amount.get("currency"),
            external_id=payment.get("id"),
        )
