"""Provider-independent payment types and the provider interface.

Every provider implements the same three capabilities:

- create_session:  start a redirect-based checkout, return PaymentSession
- verify_webhook:  decide whether an inbound webhook can be trusted
- process_webhook: map a verified webhook body to a PaymentResult

New providers subclass PaymentProvider and are registered in
paycore.services.payment.factory. Nothing else needs to change.
"""

import abc
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from paycore.services.payment.errors import NormalizationError, UnhandledStatusError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    id: str
    url: str
    expires_at: Optional[datetime]


@dataclass(frozen=True)
class PaymentResult:
    COMPLETED = "completed"
    FAILED = "failed"

    order_id: str
    status: str  # completed | failed
    amount: int  # minor units
    currency: str  # verbatim from the provider, case not normalized
    external_id: Optional[str] = None


class PaymentProvider(abc.ABC):
    """Strategy interface for a payment provider."""

    name = None
    # Header carrying the webhook signature, and whether it must be present
    signature_header = None
    signature_required = False

    def __init__(self, app_base_url=None, default_locale="ru", timeout=10):
        app_base_url = (
            app_base_url
            or os.environ.get("APP_BASE_URL")
            or os.environ.get("NEXT_PUBLIC_BASE_URL")
            or "http://localhost:3000"
        )
        self.app_base_url = app_base_url.rstrip("/")
        self.default_locale = default_locale
        self.timeout = timeout

    @abc.abstractmethod
    def create_session(self, amount, currency, user_id, order_id,
                       service_id=None, locale=None) -> PaymentSession:
        raise NotImplementedError

    @abc.abstractmethod
    def verify_webhook(self, payload, signature) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def process_webhook(self, payload) -> PaymentResult:
        raise NotImplementedError

    @abc.abstractmethod
    def fetch_payment_event(self, external_id) -> dict:
        """Fetch the provider's current state for a session/payment,
        shaped like one of its own webhook bodies."""
        raise NotImplementedError

    def fetch_payment_result(self, external_id):
        """Ask the provider for the outcome of a session/payment.

        Returns a PaymentResult once the provider reports a final state,
        or None while it is still in progress.
        Raises PaymentProviderError on API failures.
        """
        try:
            event = self.fetch_payment_event(external_id)
            return self.process_webhook(event)
        except UnhandledStatusError as e:
            logger.info(f"{self.name} payment {external_id} not final yet: {e}")
            return None

    def is_trusted_source(self, remote_addr):
        """Transport-level provenance check. Providers that sign their
        webhooks don't need one."""
        return True

    # ── helpers ──

    def success_url(self, locale, order_id, service_id, amount_label):
        query = urlencode({
            "orderId": order_id,
            "serviceId": service_id or "",
            "amount": amount_label,
        })
        return f"{self.app_base_url}/{locale}/payment/success?{query}"

    def cancel_url(self, locale):
        return f"{self.app_base_url}/{locale}/payment/cancel"

    @staticmethod
    def decode_payload(payload):
        """Decode a raw JSON body; mappings are passed through unchanged."""
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise NormalizationError(f"Webhook body is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise NormalizationError("Webhook body must be a JSON object")
        return payload
