"""Payments blueprint - /api/payments/*, /api/purchases

Routes:
- POST /api/payments/create             - create PENDING order + provider session
- GET  /api/payments/<order_id>/status  - order status, polls provider while pending
- GET  /api/purchases                   - current user's purchases
"""

import logging

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user, login_required

from paycore.extensions import db, limiter
from paycore.models.order import Order, Purchase
from paycore.services import order_service
from paycore.services.payment import PaymentProviderError

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api")


def _isoformat(value):
    return value.isoformat() if value else None


def _validate_create(data):
    """Return a list of {field, message} problems with a create request."""
    errors = []

    amount = data.get("amount")
    # bool is an int subclass; reject it explicitly
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        errors.append({"field": "amount", "message": "Amount must be a positive integer"})

    currency = data.get("currency")
    if not isinstance(currency, str) or len(currency) != 3:
        errors.append({
            "field": "currency",
            "message": "Currency must be 3 characters (ISO 4217)",
        })

    country_code = data.get("countryCode")
    if not isinstance(country_code, str) or len(country_code) != 2:
        errors.append({
            "field": "countryCode",
            "message": "Country code must be 2 characters (ISO 3166-1 alpha-2)",
        })

    service_id = data.get("serviceId")
    if not isinstance(service_id, str) or not service_id.strip():
        errors.append({"field": "serviceId", "message": "Service ID is required"})

    return errors


# ──────────────────────────────────────────────
# POST /api/payments/create
# ──────────────────────────────────────────────

@payments_bp.route("/payments/create", methods=["POST"])
@limiter.limit("10 per hour")
@login_required
def create_payment():
    """Start a payment for the logged-in user.

    Expects: { amount, currency, countryCode, serviceId }
    amount is in minor units (kopecks / cents).
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request"}), 400

    errors = _validate_create(data)
    if errors:
        return jsonify({
            "success": False,
            "error": "Validation error",
            "details": errors,
        }), 400

    accept_language = request.headers.get("Accept-Language", "")
    locale = "en" if accept_language.startswith("en") else "ru"

    try:
        order, session = order_service.create_payment(
            user_id=current_user.id,
            amount=data["amount"],
            currency=data["currency"],
            country_code=data["countryCode"],
            service_id=data["serviceId"].strip(),
            locale=locale,
            app_config=current_app.config,
        )
    except PaymentProviderError as e:
        logger.error(f"Payment creation error: {e}")
        return jsonify({
            "success": False,
            "error": "Payment provider error",
            "message": "Unable to create payment session. Please try again later.",
        }), 503
    except Exception as e:
        logger.error(f"Create payment error: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "order": {
            "id": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "status": order.status,
            "paymentProvider": order.payment_provider,
            "createdAt": _isoformat(order.created_at),
        },
        "paymentUrl": session.url,
        "expiresAt": _isoformat(session.expires_at),
    }), 201


# ──────────────────────────────────────────────
# GET /api/payments/<order_id>/status - polled by the success page
# ──────────────────────────────────────────────

@payments_bp.route("/payments/<order_id>/status")
@login_required
def payment_status(order_id):
    """Return the order's status.

    If the webhook hasn't arrived yet, ask the provider directly and
    reconcile ourselves - works even without webhooks.
    """
    order = Order.query.filter_by(id=order_id, user_id=current_user.id).first()
    if order is None:
        abort(404)

    if order.status == Order.STATUS_PENDING:
        try:
            order_service.sync_order_from_provider(order, current_app.config)
        except Exception as e:
            logger.warning(f"Failed to sync order {order_id} from provider: {e}")

    return jsonify({
        "success": True,
        "order": {
            "id": order.id,
            "status": order.status,
            "externalId": order.external_id,
        },
    })


# ──────────────────────────────────────────────
# GET /api/purchases
# ──────────────────────────────────────────────

@payments_bp.route("/purchases")
@login_required
def list_purchases():
    """List the logged-in user's purchases, newest first."""
    purchases = (
        Purchase.query
        .filter_by(user_id=current_user.id)
        .order_by(Purchase.created_at.desc())
        .all()
    )

    return jsonify({
        "success": True,
        "purchases": [
            {
                "id": p.id,
                "userId": p.user_id,
                "serviceId": p.service_id,
                "orderId": p.order_id,
                "createdAt": _isoformat(p.created_at),
                "expiresAt": _isoformat(p.expires_at),
            }
            for p in purchases
        ],
    })
