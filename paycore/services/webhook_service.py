"""Webhook service - provider-independent webhook handling.

One inbound delivery moves through:

    RECEIVED -> SIGNATURE_CHECKED -> NORMALIZED -> ORDER_LOOKED_UP -> RECONCILED
                                                                   \\-> REJECTED

Status codes are part of the contract with the providers, which retry on
5xx and give up on 4xx:

    401  trust failures (untrusted source, missing/invalid signature)
    400  order not found
    500  normalization or storage failures (provider retries; reconciliation
         is idempotent so the retry is safe)
    200  reconciled, or already reconciled earlier

Only fixed messages are returned; details are logged.
"""

import logging

from paycore.extensions import db
from paycore.models.order import Order
from paycore.services.order_service import reconcile_order
from paycore.services.payment import ReferentialError, TrustError

logger = logging.getLogger(__name__)

INTERNAL_ERROR = (500, {"success": False, "error": "Internal server error"})


def _check_trust(provider, raw_body, signature, remote_addr):
    """Raise TrustError unless the delivery can be trusted."""
    if not provider.is_trusted_source(remote_addr):
        raise TrustError("Untrusted webhook source")

    if provider.signature_required and not signature:
        raise TrustError("Missing signature header")

    # Verify against the raw body, before anything is parsed
    if not provider.verify_webhook(raw_body, signature or ""):
        raise TrustError("Invalid webhook signature")


def _load_order(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        raise ReferentialError("Order not found")
    return order


def handle_webhook(provider, raw_body, signature, remote_addr=None):
    """Verify, normalize and reconcile one webhook delivery.

    raw_body must be the request body exactly as received.
    Returns (status_code, body_dict).
    """
    try:
        _check_trust(provider, raw_body, signature, remote_addr)
    except TrustError as e:
        logger.warning(
            f"{provider.name} webhook rejected: {e} (remote_addr={remote_addr})"
        )
        return 401, {"success": False, "error": str(e)}

    try:
        result = provider.process_webhook(raw_body)
    except Exception as e:
        logger.error(f"{provider.name} webhook normalization failed: {e}", exc_info=True)
        return INTERNAL_ERROR

    try:
        order = _load_order(result.order_id)
    except ReferentialError as e:
        logger.error(
            f"{provider.name} webhook: order {result.order_id} not found "
            f"(external_id={result.external_id})"
        )
        return 400, {"success": False, "error": str(e)}

    try:
        mutated = reconcile_order(order, result)
    except Exception as e:
        logger.error(
            f"{provider.name} webhook reconciliation failed for order "
            f"{result.order_id}: {e}",
            exc_info=True,
        )
        return INTERNAL_ERROR

    if not mutated:
        return 200, {"success": True, "message": "Order already processed"}

    logger.info(f"{provider.name} webhook processed for order {result.order_id}")
    return 200, {"success": True, "message": "Webhook processed successfully"}
