"""Stripe provider - Checkout Sessions and signed webhooks.

Responsible for:
- Creating one-off Checkout Sessions (mode=payment) for an order
- Verifying the Stripe-Signature header (HMAC-SHA256 over "{t}.{raw_body}",
  5 minute replay window, constant-time compare)
- Normalizing checkout.session.* events into PaymentResult

API docs: https://stripe.com/docs/api/checkout/sessions
"""

import logging
import os
from datetime import datetime, timezone

import stripe

from paycore.services.payment.base import PaymentProvider, PaymentResult, PaymentSession
from paycore.services.payment.errors import (
    ConfigurationError,
    NormalizationError,
    PaymentProviderError,
    UnhandledStatusError,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 300  # seconds

PAID_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)
FAILED_EVENTS = (
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
)
SUPPORTED_EVENTS = PAID_EVENTS + FAILED_EVENTS


class StripeProvider(PaymentProvider):
    name = "stripe"
    signature_header = "Stripe-Signature"
    signature_required = True

    def __init__(self, secret_key=None, webhook_secret=None, app_base_url=None,
                 tolerance=DEFAULT_TOLERANCE, product_name="Premium Features",
                 default_locale="ru", timeout=10):
        super().__init__(app_base_url, default_locale=default_locale, timeout=timeout)
        self.secret_key = secret_key or os.environ.get("STRIPE_SECRET_KEY", "")
        self.webhook_secret = webhook_secret or os.environ.get("STRIPE_WEBHOOK_SECRET", "")
        self.tolerance = tolerance
        self.product_name = product_name

        if not self.secret_key:
            raise ConfigurationError("Stripe secret key not configured")

        # The SDK skips the timestamp check entirely for a zero tolerance
        if not self.tolerance or self.tolerance <= 0:
            raise ConfigurationError(
                f"Stripe webhook tolerance must be positive, got {tolerance!r}"
            )

        if not self.webhook_secret:
            logger.warning(
                "Stripe webhook secret not configured - webhook verification will fail"
            )

    @classmethod
    def from_config(cls, config=None):
        """Build from a config mapping (e.g. app.config); missing keys fall
        back to the environment."""
        config = config or {}
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            app_base_url=config.get("APP_BASE_URL"),
            tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", DEFAULT_TOLERANCE),
            product_name=config.get("STRIPE_PRODUCT_NAME", "Premium Features"),
            default_locale=config.get("DEFAULT_LOCALE", "ru"),
            timeout=config.get("PAYMENT_HTTP_TIMEOUT", 10),
        )

    # ──────────────────────────────────────────────
    # Checkout Sessions
    # ──────────────────────────────────────────────

    def create_session(self, amount, currency, user_id, order_id,
                       service_id=None, locale=None):
        """Create a Checkout Session for a single line item.

        amount is in minor units (1000 = $10.00). order_id / user_id /
        service_id go into session metadata so the webhook can be traced
        back to the order.

        Raises PaymentProviderError on API or network failures.
        """
        locale = locale or self.default_locale
        amount_label = f"{amount / 100:.2f} {currency.upper()}"

        metadata = {"order_id": order_id, "user_id": user_id}
        if service_id:
            metadata["service_id"] = service_id

        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                success_url=self.success_url(locale, order_id, service_id, amount_label),
                cancel_url=self.cancel_url(locale),
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "unit_amount": amount,
                            "product_data": {"name": self.product_name},
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata,
            )
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe unreachable creating session for order {order_id}: {e}")
            raise PaymentProviderError(
                f"Failed to create Stripe payment session: {e}"
            ) from e
        except stripe.StripeError as e:
            logger.error(f"Stripe createSession error for order {order_id}: {e}")
            raise PaymentProviderError(
                f"Stripe API error: {e.user_message or e}"
            ) from e

        return PaymentSession(
            id=session.id,
            url=session.url,
            # Stripe reports expiry as Unix seconds
            expires_at=datetime.fromtimestamp(session.expires_at, tz=timezone.utc),
        )

    def fetch_payment_event(self, external_id):
        """Retrieve a Checkout Session and wrap it as the matching
        checkout.session.* event."""
        try:
            session = stripe.checkout.Session.retrieve(
                external_id, api_key=self.secret_key
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe session lookup failed for {external_id}: {e}")
            raise PaymentProviderError(
                f"Failed to get Stripe session info: {e.user_message or e}"
            ) from e

        session_status = session.get("status")
        if session_status == "complete":
            event_type = "checkout.session.completed"
        elif session_status == "expired":
            event_type = "checkout.session.expired"
        else:
            raise UnhandledStatusError(
                f"Unhandled payment status: {session.get('payment_status')} "
                f"for session status {session_status}"
            )

        return {"type": event_type, "data": {"object": session}}

    # ──────────────────────────────────────────────
    # Webhooks
    # ──────────────────────────────────────────────

    def verify_webhook(self, payload, signature):
        """Verify the Stripe-Signature header against the raw request body.

        payload must be the exact bytes/text Stripe sent. A parsed object is
        refused: re-serializing it would not reproduce the signed bytes.
        Never raises; any failure is logged and reported as False.
        """
        if not self.webhook_secret:
            logger.error("Stripe webhook secret not configured")
            return False

        if not signature:
            logger.error("Stripe signature header missing")
            return False

        if not isinstance(payload, (str, bytes, bytearray)):
            logger.error("Stripe webhook verification needs the raw request body")
            return False

        try:
            stripe.WebhookSignature.verify_header(
                payload, signature, self.webhook_secret, tolerance=self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature rejected: {e}")
            return False
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed Stripe-Signature header: {e}")
            return False

        return True

    def process_webhook(self, payload):
        """Map a verified checkout.session.* event to a PaymentResult.

        completed / async_payment_succeeded with payment_status=paid -> completed
        async_payment_failed / expired                               -> failed
        anything else raises; intermediate states are never reported as final.
        """
        event = self.decode_payload(payload)
        event_type = event.get("type")

        if event_type not in SUPPORTED_EVENTS:
            raise NormalizationError(f"Unsupported webhook event type: {event_type}")

        session = (event.get("data") or {}).get("object") or {}
        order_id = (session.get("metadata") or {}).get("order_id")

        if not order_id:
            raise NormalizationError("Order ID not found in webhook metadata")

        payment_status = session.get("payment_status")
        if event_type in PAID_EVENTS and payment_status == "paid":
            status = PaymentResult.COMPLETED
        elif event_type in FAILED_EVENTS:
            status = PaymentResult.FAILED
        else:
            # e.g. completed with payment_status=unpaid: async method still settling
            raise UnhandledStatusError(
                f"Unhandled payment status: {payment_status} for event {event_type}"
            )

        return PaymentResult(
            order_id=order_id,
            status=status,
            amount=session.get("amount_total") or 0,  # already minor units
            currency=session.get("currency") or "usd",
            external_id=session.get("id"),
        )
