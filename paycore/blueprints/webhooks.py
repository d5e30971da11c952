"""Webhooks blueprint - /api/webhooks/*

Receives payment provider webhooks. CSRF-exempt.
Raw body is required for Stripe signature verification.

Routes:
- POST /api/webhooks/stripe   - Stripe-Signature header required
- POST /api/webhooks/yukassa  - unsigned; see yukassa_provider for the trust gap
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from paycore.services.payment import get_provider
from paycore.services.payment.factory import REGION_OTHER, REGION_RU
from paycore.services.webhook_service import handle_webhook

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


def _dispatch(region):
    """Hand the raw request to the shared webhook state machine.

    A provider that cannot be built (missing credentials) is a deploy
    problem, answered with 500 so the provider keeps retrying.
    """
    try:
        provider = get_provider(region, current_app.config)
    except Exception as e:
        logger.error(f"Payment provider unavailable for region {region}: {e}")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    payload = request.get_data(as_text=True)
    signature = request.headers.get(provider.signature_header, "")

    status_code, body = handle_webhook(
        provider, payload, signature, remote_addr=request.remote_addr
    )
    return jsonify(body), status_code


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    """Receive Stripe checkout.session.* events."""
    return _dispatch(REGION_OTHER)


@webhooks_bp.route("/yukassa", methods=["POST"])
def yukassa_webhook():
    """Receive YuKassa payment.* notifications."""
    return _dispatch(REGION_RU)
