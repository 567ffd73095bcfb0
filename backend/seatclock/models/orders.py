from __future__ import annotations

from ..extensions import db
from seatclock.time_utils import to_utc_z

ORDER_STATUS_NEW = "new"
ORDER_STATUS_ACK = "ack"
ORDER_STATUS_PREP = "prep"
ORDER_STATUS_SERVED = "served"
ORDER_STATUS_CLOSED = "closed"
ORDER_STATUS_CANCEL = "cancel"

TERMINAL_ORDER_STATUSES = (ORDER_STATUS_CLOSED, ORDER_STATUS_CANCEL)

class Order(db.Model):
    """
    Food/drink order placed during a session.

    STATUS FLOW: new -> ack -> prep -> served -> closed, or cancel.
    closed and cancel are terminal. The billing engine only reads orders and
    moves the ones it bills to closed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_session_status", "session_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_NEW, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def total_amount(self) -> int:
        return sum(item.line_total for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "session_id": self.session_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "total_amount": self.total_amount,
        }

class OrderItem(db.Model):
    """
    Order line. price is a snapshot of the menu price at order time.

    target_cast_id marks a "treat": the item was bought for that cast member.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # External product code (POS product ids are numeric strings; local menus may not be)
    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    target_cast_id = db.Column(db.Integer, db.ForeignKey("casts.id"), nullable=True, index=True)

    target_cast = db.relationship("Cast")

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price": self.price,
            "quantity": self.quantity,
            "target_cast_id": self.target_cast_id,
            "line_total": self.line_total,
        }
