# Overview: Order placement and status transitions consumed by checkout.

"""
Order Service

WHY: Checkout bills every order that is still live for a session and then
closes them. The status machine lives here so that billing can trust
"not closed, not cancelled" to mean "not yet billed".

STATUS FLOW:
    new -> ack -> prep -> served -> closed
    new/ack/prep/served -> cancel
"""

from __future__ import annotations

from ..models import Order, OrderItem, Cast, TableSession
from ..models.orders import (
    ORDER_STATUS_NEW,
    ORDER_STATUS_ACK,
    ORDER_STATUS_PREP,
    ORDER_STATUS_SERVED,
    ORDER_STATUS_CLOSED,
    ORDER_STATUS_CANCEL,
    TERMINAL_ORDER_STATUSES,
)
from seatclock.time_utils import utcnow
from .concurrency import lock_for_update
from .errors import CastNotFound, ConflictError, OrderNotFound, SessionNotFound, ValidationError

ALLOWED_TRANSITIONS = {
    ORDER_STATUS_NEW: {ORDER_STATUS_ACK, ORDER_STATUS_CANCEL},
    ORDER_STATUS_ACK: {ORDER_STATUS_PREP, ORDER_STATUS_CANCEL},
    ORDER_STATUS_PREP: {ORDER_STATUS_SERVED, ORDER_STATUS_CANCEL},
    ORDER_STATUS_SERVED: {ORDER_STATUS_CLOSED, ORDER_STATUS_CANCEL},
    ORDER_STATUS_CLOSED: set(),
    ORDER_STATUS_CANCEL: set(),
}


class OrderService:
    def __init__(self, session, *, clock=utcnow):
        self._session = session
        self._clock = clock

    def place_order(self, session_id: int, items: list[dict]) -> Order:
        """
        Place an order for a session.

        items: [{"product_id", "product_name", "price", "quantity",
                 "target_cast_id" (optional)}]
        """
        table_session = self._session.get(TableSession, session_id)
        if table_session is None:
            raise SessionNotFound(session_id)
        if not items:
            raise ValidationError("Order must contain at least one item")

        order = Order(
            store_id=table_session.store_id,
            session_id=session_id,
            status=ORDER_STATUS_NEW,
            created_at=self._clock(),
        )
        for raw in items:
            order.items.append(self._build_item(raw, table_session.store_id))

        self._session.add(order)
        self._session.commit()
        return order

    def set_status(self, order_id: int, status: str) -> Order:
        order = lock_for_update(self._session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFound(order_id)
        if status not in ALLOWED_TRANSITIONS:
            raise ValidationError(f"Unknown order status: {status}")
        if status not in ALLOWED_TRANSITIONS[order.status]:
            raise ConflictError(f"Cannot move order {order_id} from {order.status} to {status}")

        order.status = status
        self._session.commit()
        return order

    def open_orders(self, session_id: int) -> list[Order]:
        """Orders still billable for a session (status not closed or cancel), oldest first."""
        return (
            self._session.query(Order)
            .filter(Order.session_id == session_id)
            .filter(Order.status.notin_(TERMINAL_ORDER_STATUSES))
            .order_by(Order.created_at, Order.id)
            .all()
        )

    def close_orders(self, order_ids: list[int]) -> int:
        """
        Mark orders closed. Does not commit; checkout owns the transaction.

        Returns the number of rows updated.
        """
        if not order_ids:
            return 0
        return (
            self._session.query(Order)
            .filter(Order.id.in_(order_ids))
            .filter(Order.status.notin_(TERMINAL_ORDER_STATUSES))
            .update({Order.status: ORDER_STATUS_CLOSED}, synchronize_session="fetch")
        )

    def _build_item(self, raw: dict, store_id: int) -> OrderItem:
        product_id = raw.get("product_id")
        product_name = raw.get("product_name")
        price = raw.get("price")
        quantity = raw.get("quantity", 1)
        target_cast_id = raw.get("target_cast_id")

        if not product_id or not product_name:
            raise ValidationError("product_id and product_name required")
        if not isinstance(price, int) or isinstance(price, bool) or price < 0:
            raise ValidationError("price must be a non-negative integer")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError("quantity must be a positive integer")

        if target_cast_id is not None:
            cast = self._session.get(Cast, target_cast_id)
            if cast is None or cast.store_id != store_id:
                raise CastNotFound(target_cast_id)

        return OrderItem(
            product_id=str(product_id),
            product_name=product_name,
            price=price,
            quantity=quantity,
            target_cast_id=target_cast_id,
        )
