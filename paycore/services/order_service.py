"""Order service - order creation and idempotent reconciliation.

Responsible for:
- Creating a PENDING order plus a provider payment session
- Applying a PaymentResult to an order exactly once (reconcile_order)
- Polling a provider for pending orders whose webhook never arrived
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError

from paycore.extensions import db
from paycore.models.order import Order, Purchase
from paycore.services.payment import (
    PaymentResult,
    PersistenceError,
    create_provider,
    get_provider,
    get_provider_type,
    get_region_from_country_code,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Payment creation
# ──────────────────────────────────────────────

def create_payment(user_id, amount, currency, country_code, service_id,
                   locale=None, app_config=None):
    """Create a PENDING order and a payment session with the region's provider.

    The session id is stored on the order as external_id so status polling
    can find it later.

    Returns (order, session).
    Raises ConfigurationError if the provider is not configured and
    PaymentProviderError if the provider rejects the session.
    """
    region = get_region_from_country_code(country_code)
    provider = get_provider(region, app_config)

    order = Order(
        user_id=user_id,
        amount=amount,
        currency=currency,
        status=Order.STATUS_PENDING,
        payment_provider=get_provider_type(region),
        service_id=service_id,
    )
    db.session.add(order)
    db.session.commit()

    session = provider.create_session(
        amount,
        currency,
        user_id,
        order.id,
        service_id=service_id,
        locale=locale,
    )

    order.external_id = session.id
    db.session.commit()

    logger.info(
        f"Payment session {session.id} created for order {order.id} "
        f"via {order.payment_provider}"
    )
    return order, session


# ──────────────────────────────────────────────
# Reconciliation
# ──────────────────────────────────────────────

def _target_status(result):
    if result.status == PaymentResult.COMPLETED:
        return Order.STATUS_COMPLETED
    return Order.STATUS_FAILED


def reconcile_order(order, result):
    """Apply a PaymentResult to an order. Safe under redelivery.

    - COMPLETED orders are never touched again.
    - Otherwise a conditional UPDATE (status != COMPLETED) writes the new
      status, external_id and updated_at; if a concurrent delivery
      completed the order first the UPDATE matches no row and nothing else
      happens.
    - A move to COMPLETED creates the Purchase in the same transaction.

    Returns True if the order was mutated, False if it was already processed.
    Raises PersistenceError on storage failures (transaction rolled back).
    """
    target = _target_status(result)

    if order.status == Order.STATUS_COMPLETED:
        logger.info(
            f"Order {order.id} already processed (status={order.status}, "
            f"incoming={result.status})"
        )
        return False

    order_id = order.id
    user_id = order.user_id
    service_id = order.service_id

    try:
        updated = (
            Order.query
            .filter(
                Order.id == order_id,
                Order.status != Order.STATUS_COMPLETED,
            )
            .update(
                {
                    "status": target,
                    "external_id": result.external_id,
                    "updated_at": datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )

        if not updated:
            db.session.rollback()
            logger.info(f"Order {order_id} was reconciled by a concurrent delivery")
            return False

        if target == Order.STATUS_COMPLETED and service_id:
            db.session.add(Purchase(
                user_id=user_id,
                service_id=service_id,
                order_id=order_id,
            ))

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Failed to reconcile order {order_id}: {e}") from e

    db.session.refresh(order)

    if target == Order.STATUS_COMPLETED and service_id:
        logger.info(
            f"Purchase created: user={user_id} service={service_id} order={order_id}"
        )
    logger.info(
        f"Order {order_id} -> {target} (external_id={result.external_id}, "
        f"amount={result.amount} {result.currency})"
    )
    return True


# ──────────────────────────────────────────────
# Provider polling
# ──────────────────────────────────────────────

def sync_order_from_provider(order, app_config=None):
    """Ask the order's provider for the payment outcome and reconcile.

    Used when the webhook is late or lost. Only PENDING orders with an
    external_id are looked up.

    Returns True if the order was mutated.
    Raises PaymentProviderError / ConfigurationError / PersistenceError.
    """
    if order.status != Order.STATUS_PENDING or not order.external_id:
        return False

    provider = create_provider(order.payment_provider, app_config)
    result = provider.fetch_payment_result(order.external_id)
    if result is None:
        return False

    if result.order_id != order.id:
        logger.warning(
            f"Provider payment {order.external_id} belongs to order "
            f"{result.order_id}, not {order.id}; skipping"
        )
        return False

    return reconcile_order(order, result)


def sync_pending_orders(older_than_minutes=15, app_config=None):
    """Reconcile stale PENDING orders from their providers.

    Returns (checked, updated). Failures for a single order are logged and
    do not stop the run.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
    orders = (
        Order.query
        .filter(
            Order.status == Order.STATUS_PENDING,
            Order.external_id.isnot(None),
            Order.created_at <= cutoff,
        )
        .order_by(Order.created_at)
        .all()
    )

    updated = 0
    for order in orders:
        try:
            if sync_order_from_provider(order, app_config):
                updated += 1
        except Exception as e:
            logger.error(f"Failed to sync order {order.id}: {e}", exc_info=True)

    return len(orders), updated
