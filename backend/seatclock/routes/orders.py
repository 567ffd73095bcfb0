# Overview: Flask API route for order status transitions.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services.errors import BillingError
from ..services.order_service import OrderService

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.patch("/<int:order_id>/status")
def set_order_status_route(order_id: int):
    """Body: {"status": "ack" | "prep" | "served" | "closed" | "cancel"}"""
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400
        order = OrderService(db.session).set_status(order_id, status)
        return jsonify({"order": order.to_dict()}), 200
    except BillingError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
