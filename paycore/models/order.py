"""Order and purchase models.

- Order: one checkout attempt. Created PENDING by the payment endpoint,
  moved to COMPLETED / FAILED by provider webhooks.
- Purchase: entitlement to a service, created once when an order carrying
  a service_id completes. purchases.order_id is unique, so a second
  purchase for the same order cannot be written even under a race.
"""

import uuid

from paycore.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    STATUS_PENDING = "PENDING"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_FAILED = "FAILED"

    STATUSES = [STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    amount = db.Column(db.Integer, nullable=False)  # minor units (cents/kopecks)
    currency = db.Column(db.String(3), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default=STATUS_PENDING
    )  # PENDING | COMPLETED | FAILED
    payment_provider = db.Column(db.String(20), nullable=False)  # stripe | yukassa
    external_id = db.Column(
        db.String(255), nullable=True, index=True
    )  # e.g. "cs_test_..." or YuKassa payment uuid
    service_id = db.Column(db.String(100), nullable=True)  # e.g. "full_pythagorean"
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="orders")
    purchase = db.relationship("Purchase", back_populates="order", uselist=False)

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"


class Purchase(db.Model):
    __tablename__ = "purchases"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    service_id = db.Column(db.String(100), nullable=False)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id"), unique=True, nullable=False
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    expires_at = db.Column(
        db.DateTime(timezone=True), nullable=True
    )  # None = lifetime access

    # --- Relationships ---
    user = db.relationship("User", back_populates="purchases")
    order = db.relationship("Order", back_populates="purchase")

    def __repr__(self):
        return f"<Purchase {self.service_id} for order {self.order_id}>"
