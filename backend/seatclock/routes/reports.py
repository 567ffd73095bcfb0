# Overview: Flask API routes for reports built from archived checkouts.

from datetime import date

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import report_service
from ..services.errors import BillingError, ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _store_id() -> int:
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        raise ValidationError("store_id is required")
    return store_id


def _date_arg(name: str) -> date | None:
    value = (request.args.get(name) or "").strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")


def _int_arg(name: str, default: int | None = None) -> int | None:
    value = request.args.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _respond(build, label: str):
    try:
        return jsonify(build()), 200
    except BillingError as e:
        return jsonify({"error": str(e)}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build %s report", label)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/cast-sales")
def cast_sales_report():
    return _respond(lambda: report_service.cast_sales(
        db.session,
        store_id=_store_id(),
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
        cast_id=_int_arg("cast_id"),
    ), "cast sales")


@reports_bp.get("/treated-drinks")
def treated_drinks_report():
    return _respond(lambda: report_service.treated_drinks(
        db.session,
        store_id=_store_id(),
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
        cast_id=_int_arg("cast_id"),
    ), "treated drinks")


@reports_bp.get("/daily-summary")
def daily_summary_report():
    return _respond(lambda: report_service.daily_summary(
        db.session,
        store_id=_store_id(),
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
        seat_type_name=request.args.get("seat_type") or None,
    ), "daily summary")


@reports_bp.get("/hourly-sales")
def hourly_sales_report():
    return _respond(lambda: report_service.hourly_sales(
        db.session,
        store_id=_store_id(),
        day=_date_arg("date"),
        interval_minutes=_int_arg("interval", 60),
        start_hour=_int_arg("start_hour", 0),
        end_hour=_int_arg("end_hour", 24),
    ), "hourly sales")


@reports_bp.get("/menu-sales")
def menu_sales_report():
    return _respond(lambda: report_service.menu_sales(
        db.session,
        store_id=_store_id(),
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
    ), "menu sales")
