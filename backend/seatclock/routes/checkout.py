# Overview: Flask API routes for checkout and archived checkout history.

import httpx
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..pos import PosClient, PosSyncService
from ..services.archive_service import checkout_history
from ..services.checkout_service import CheckoutOrchestrator
from ..services.errors import BillingError, ValidationError
from seatclock.time_utils import parse_iso_datetime

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


def _orchestrator(pos_sync) -> CheckoutOrchestrator:
    config = current_app.config
    return CheckoutOrchestrator(
        db.session,
        pos_sync=pos_sync,
        default_tax_rate_bps=config["DEFAULT_TAX_RATE_BPS"],
        archive_batch_size=config["ARCHIVE_BATCH_SIZE"],
    )


@checkout_bp.post("/checkout/<int:session_id>")
def checkout_route(session_id: int):
    """
    Finalize a session: bill it, record the checkout, free the table.

    Returns the receipt breakdown. POS and archival problems appear under
    "warnings" and never fail the request.
    """
    config = current_app.config
    try:
        with httpx.Client(
            timeout=config["POS_TIMEOUT_SECONDS"],
            transport=config.get("POS_TRANSPORT"),
        ) as http:
            pos_sync = PosSyncService(PosClient(sandbox=config["POS_SANDBOX"], http=http))
            result = _orchestrator(pos_sync).checkout(session_id)
        return jsonify(result.to_dict()), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to checkout session")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.get("/checkouts/history")
def checkout_history_route():
    """
    Archived checkouts for a store.

    Query: store_id (required), start, end (ISO-8601, end exclusive),
    lines=1 to include order items and nominations.
    """
    try:
        store_id = request.args.get("store_id", type=int)
        if not store_id:
            raise ValidationError("store_id required")
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 datetimes")

        include_lines = request.args.get("lines", "1") not in ("0", "false")
        rows = checkout_history(db.session, store_id, start, end)
        return jsonify({
            "history": [row.to_dict(include_lines=include_lines) for row in rows],
        }), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load checkout history")
        return jsonify({"error": "Internal server error"}), 500
