from __future__ import annotations

from ..extensions import db
from seatclock.time_utils import to_utc_z

CHECKOUT_STATUS_PENDING = "pending"
CHECKOUT_STATUS_COMPLETED = "completed"

class Checkout(db.Model):
    """
    Revenue record for one finalized session.

    WHY: This row is the source of truth for what the guest paid. It is
    committed before the POS provider is called.

    LIFECYCLE: pending -> completed. A checkout stays pending while its POS
    registration is in flight. Only status, pos_receipt_id and
    completed_at change after insert.

    session_id is a plain value: the session row is deleted at checkout.
    """
    __tablename__ = "checkouts"
    __table_args__ = (
        db.UniqueConstraint("session_id", name="uq_checkouts_session"),
        db.Index("ix_checkouts_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, nullable=False)

    # All amounts in minor currency units, tax-inclusive
    total_amount = db.Column(db.Integer, nullable=False)
    subtotal_amount = db.Column(db.Integer, nullable=False)
    tax_amount = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    charge_amount = db.Column(db.Integer, nullable=False)
    order_amount = db.Column(db.Integer, nullable=False)
    nomination_fee = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=CHECKOUT_STATUS_PENDING, index=True)
    pos_receipt_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "session_id": self.session_id,
            "total_amount": self.total_amount,
            "subtotal_amount": self.subtotal_amount,
            "tax_amount": self.tax_amount,
            "tax_rate_bps": self.tax_rate_bps,
            "charge_amount": self.charge_amount,
            "order_amount": self.order_amount,
            "nomination_fee": self.nomination_fee,
            "status": self.status,
            "pos_receipt_id": self.pos_receipt_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }

class CheckoutHistory(db.Model):
    """
    Denormalized reporting copy of a checkout.

    Names (table, seat type) are copied, not referenced, so later renames
    do not rewrite history. Rows outlive the session and its orders.
    """
    __tablename__ = "checkout_history"
    __table_args__ = (
        db.Index("ix_checkout_history_store_checkout_at", "store_id", "checkout_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    checkout_id = db.Column(db.Integer, db.ForeignKey("checkouts.id"), nullable=True, index=True)
    session_id = db.Column(db.Integer, nullable=False)

    table_name = db.Column(db.String(64), nullable=True)
    seat_type_name = db.Column(db.String(120), nullable=True)

    checkout_at = db.Column(db.DateTime(timezone=True), nullable=False)
    billing_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stay_minutes = db.Column(db.Integer, nullable=False, default=0)

    total_amount = db.Column(db.Integer, nullable=False)
    subtotal_amount = db.Column(db.Integer, nullable=False)
    tax_amount = db.Column(db.Integer, nullable=False)
    charge_amount = db.Column(db.Integer, nullable=False)
    order_amount = db.Column(db.Integer, nullable=False)
    nomination_fee = db.Column(db.Integer, nullable=False, default=0)

    guest_count = db.Column(db.Integer, nullable=False, default=1)
    is_new_customer = db.Column(db.Boolean, nullable=False, default=False)

    order_items = db.relationship("CheckoutOrderItem", backref="history", lazy=True, order_by="CheckoutOrderItem.id")
    nominations = db.relationship("CheckoutNomination", backref="history", lazy=True, order_by="CheckoutNomination.id")

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "history_id": self.id,
            "store_id": self.store_id,
            "checkout_id": self.checkout_id,
            "session_id": self.session_id,
            "table_name": self.table_name,
            "seat_type_name": self.seat_type_name,
            "checkout_at": to_utc_z(self.checkout_at),
            "billing_started_at": to_utc_z(self.billing_started_at),
            "stay_minutes": self.stay_minutes,
            "total_amount": self.total_amount,
            "subtotal_amount": self.subtotal_amount,
            "tax_amount": self.tax_amount,
            "charge_amount": self.charge_amount,
            "order_amount": self.order_amount,
            "nomination_fee": self.nomination_fee,
            "guest_count": self.guest_count,
            "is_new_customer": self.is_new_customer,
        }
        if include_lines:
            data["order_items"] = [item.to_dict() for item in self.order_items]
            data["nominations"] = [nom.to_dict() for nom in self.nominations]
        return data

class CheckoutOrderItem(db.Model):
    """Archived order line, including the treated cast's name at checkout time."""
    __tablename__ = "checkout_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    history_id = db.Column(db.Integer, db.ForeignKey("checkout_history.id"), nullable=False, index=True)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)

    target_cast_id = db.Column(db.Integer, nullable=True, index=True)
    target_cast_name = db.Column(db.String(120), nullable=True)
    ordered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "history_id": self.history_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price": self.price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
            "target_cast_id": self.target_cast_id,
            "target_cast_name": self.target_cast_name,
            "ordered_at": to_utc_z(self.ordered_at),
        }

class CheckoutNomination(db.Model):
    """Archived nomination; cast_name is resolved when the checkout is archived."""
    __tablename__ = "checkout_nominations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    history_id = db.Column(db.Integer, db.ForeignKey("checkout_history.id"), nullable=False, index=True)

    cast_id = db.Column(db.Integer, nullable=False, index=True)
    cast_name = db.Column(db.String(120), nullable=True)
    fee = db.Column(db.Integer, nullable=False, default=0)
    nominated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "history_id": self.history_id,
            "cast_id": self.cast_id,
            "cast_name": self.cast_name,
            "fee": self.fee,
            "nominated_at": to_utc_z(self.nominated_at),
        }
