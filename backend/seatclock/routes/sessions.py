# Overview: Flask API routes for seating, the billing clock, table moves and nominations.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services.charge_service import ChargeAccumulator
from ..services.errors import BillingError, ValidationError
from ..services.nomination_service import NominationService
from ..services.order_service import OrderService
from ..services.session_service import SessionController
from seatclock.time_utils import utcnow

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api")


def _int_field(data: dict, name: str, *, required: bool = False, default=None):
    value = data.get(name, default)
    if value is None:
        if required:
            raise ValidationError(f"{name} required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


@sessions_bp.post("/tables/<int:table_id>/sessions")
def seat_party_route(table_id: int):
    """
    Seat a party at a free table.

    Body: {"guest_count": 2, "is_new_customer": false, "selected_cast_id": null}
    """
    try:
        data = request.get_json(silent=True) or {}
        table_session = SessionController(db.session).seat(
            table_id,
            guest_count=_int_field(data, "guest_count", default=1),
            is_new_customer=bool(data.get("is_new_customer", False)),
            selected_cast_id=_int_field(data, "selected_cast_id"),
        )
        return jsonify({"session": table_session.to_dict()}), 201
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to seat party")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/sessions/<int:session_id>")
def get_session_route(session_id: int):
    try:
        table_session = SessionController(db.session).get(session_id)
        return jsonify({"session": table_session.to_dict()}), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/sessions/<int:session_id>/start")
def start_charge_route(session_id: int):
    try:
        table_session = SessionController(db.session).start_charge(session_id)
        return jsonify({"session": table_session.to_dict()}), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to start charge")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/sessions/<int:session_id>/pause")
def pause_route(session_id: int):
    try:
        table_session = SessionController(db.session).pause(session_id)
        return jsonify({"session": table_session.to_dict()}), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to pause session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/sessions/<int:session_id>/resume")
def resume_route(session_id: int):
    try:
        table_session = SessionController(db.session).resume(session_id)
        return jsonify({"session": table_session.to_dict()}), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to resume session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/sessions/<int:session_id>/move")
def move_route(session_id: int):
    """
    Move a running session to another table.

    Body: {"target_table_id": 7, "calculate_only": false}
    calculate_only returns the charge the move would close out, writing nothing.
    """
    try:
        data = request.get_json(silent=True) or {}
        controller = SessionController(db.session)

        if data.get("calculate_only"):
            preview = controller.preview_move(session_id)
            return jsonify({
                "calculate_only": True,
                "previous_charge": preview.amount,
                "full_unit_charge": preview.full_unit_charge,
                "partial_unit_charge": preview.partial_unit_charge,
                "elapsed_minutes": preview.elapsed_minutes,
                "time_unit_minutes": preview.time_unit_minutes,
            }), 200

        target_table_id = _int_field(data, "target_table_id", required=True)
        result = controller.move(session_id, target_table_id)
        return jsonify(result.to_dict()), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to move session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/sessions/<int:session_id>/charge")
def charge_route(session_id: int):
    try:
        table_session = SessionController(db.session).get(session_id)
        breakdown = ChargeAccumulator(db.session).breakdown(table_session, utcnow())
        return jsonify({"session_id": session_id, **breakdown.to_dict()}), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute charge")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/sessions/<int:session_id>/nominations")
def list_nominations_route(session_id: int):
    try:
        nominations = NominationService(db.session).list_for_session(session_id)
        return jsonify({"nominations": nominations}), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list nominations")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/sessions/<int:session_id>/nominations")
def add_nomination_route(session_id: int):
    """Body: {"cast_id": 3, "nomination_fee": 3000 (optional)}"""
    try:
        data = request.get_json(silent=True) or {}
        nomination = NominationService(db.session).add(
            session_id,
            _int_field(data, "cast_id", required=True),
            _int_field(data, "nomination_fee"),
        )
        return jsonify({"nomination": nomination.to_dict()}), 201
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add nomination")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/sessions/<int:session_id>/orders")
def place_order_route(session_id: int):
    """Body: {"items": [{"product_id", "product_name", "price", "quantity", "target_cast_id"}]}"""
    try:
        data = request.get_json(silent=True) or {}
        items = data.get("items")
        if not isinstance(items, list):
            return jsonify({"error": "items must be a list"}), 400
        order = OrderService(db.session).place_order(session_id, items)
        return jsonify({"order": order.to_dict()}), 201
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500
