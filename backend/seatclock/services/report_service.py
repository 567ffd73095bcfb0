# Overview: Reporting read models over the archived checkout tables.

"""
Checkout reports

All reports read only the archival tables (checkout_history,
checkout_order_items, checkout_nominations), so they keep working after
sessions, orders and casts are gone. Names come from the archived
snapshot first and the live Cast row second.

Date filters are store-local calendar days, inclusive on both ends.
"""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import func

from ..models import Cast, CheckoutHistory, CheckoutNomination, CheckoutOrderItem, Store
from seatclock.time_utils import local_day_start, to_local
from .archive_service import checkout_history
from .errors import NotFoundError, ValidationError

HOURLY_INTERVALS = (30, 60)
UNNAMED_CAST = "Cast"


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def _resolve_store(session, store_id: int) -> Store:
    store = session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def _day_bounds(store: Store, start_date: date | None, end_date: date | None):
    if start_date and end_date and end_date < start_date:
        raise ReportError("end_date must not be before start_date")
    start = local_day_start(start_date, store.timezone) if start_date else None
    end = local_day_start(end_date + timedelta(days=1), store.timezone) if end_date else None
    return start, end


def _within(query, start, end):
    if start is not None:
        query = query.filter(CheckoutHistory.checkout_at >= start)
    if end is not None:
        query = query.filter(CheckoutHistory.checkout_at < end)
    return query


def _local_date(dt, store: Store) -> str:
    return to_local(dt, store.timezone).date().isoformat()


def _round_div(numerator: int, denominator: int) -> int:
    """Integer division rounding halves up; 0 for an empty denominator."""
    if denominator <= 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def _percent(part: int, whole: int) -> float:
    return round(part * 100 / whole, 1) if whole else 0.0


def _window(start_date: date | None, end_date: date | None) -> dict:
    return {
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
    }


def cast_sales(
    session,
    *,
    store_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    cast_id: int | None = None,
) -> dict:
    """
    Per-cast nomination and treated-drink totals with a per-day breakdown.

    Every cast of the store is listed, including casts with no sales.
    Sorted by total sales, highest first.
    """
    store = _resolve_store(session, store_id)

    casts = session.query(Cast).filter(Cast.store_id == store.id)
    if cast_id is not None:
        casts = casts.filter(Cast.id == cast_id)

    rows = {
        cast.id: {
            "cast_id": cast.id,
            "cast_name": cast.display_name or UNNAMED_CAST,
            "nomination_count": 0,
            "total_nomination_fee": 0,
            "treated_drink_count": 0,
            "treated_drink_sales": 0,
            "total_sales": 0,
            "daily": {},
        }
        for cast in casts.order_by(Cast.id).all()
    }

    start, end = _day_bounds(store, start_date, end_date)
    days = {h.id: _local_date(h.checkout_at, store) for h in checkout_history(session, store.id, start, end)}

    def _daily(row, history_id):
        day = days[history_id]
        return row["daily"].setdefault(day, {
            "date": day,
            "nomination_count": 0,
            "total_nomination_fee": 0,
            "treated_drink_count": 0,
            "treated_drink_sales": 0,
        })

    if days:
        history_ids = list(days)
        nominations = (
            session.query(CheckoutNomination)
            .filter(CheckoutNomination.history_id.in_(history_ids))
            .all()
        )
        for nomination in nominations:
            row = rows.get(nomination.cast_id)
            if row is None:
                continue
            daily = _daily(row, nomination.history_id)
            row["nomination_count"] += 1
            row["total_nomination_fee"] += nomination.fee
            row["total_sales"] += nomination.fee
            daily["nomination_count"] += 1
            daily["total_nomination_fee"] += nomination.fee

        treated = (
            session.query(CheckoutOrderItem)
            .filter(
                CheckoutOrderItem.history_id.in_(history_ids),
                CheckoutOrderItem.target_cast_id.isnot(None),
            )
            .all()
        )
        for item in treated:
            row = rows.get(item.target_cast_id)
            if row is None:
                continue
            daily = _daily(row, item.history_id)
            row["treated_drink_count"] += item.quantity
            row["treated_drink_sales"] += item.subtotal
            row["total_sales"] += item.subtotal
            daily["treated_drink_count"] += item.quantity
            daily["treated_drink_sales"] += item.subtotal

    data = sorted(rows.values(), key=lambda r: (-r["total_sales"], r["cast_id"]))
    for row in data:
        row["daily"] = sorted(row["daily"].values(), key=lambda d: d["date"])

    return {
        "store_id": store.id,
        **_window(start_date, end_date),
        "rows": data,
        "summary": {
            "total_nominations": sum(r["nomination_count"] for r in data),
            "total_nomination_fee": sum(r["total_nomination_fee"] for r in data),
            "total_treated_drinks": sum(r["treated_drink_count"] for r in data),
            "total_treated_drink_sales": sum(r["treated_drink_sales"] for r in data),
            "total_sales": sum(r["total_sales"] for r in data),
        },
    }


def treated_drinks(
    session,
    *,
    store_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    cast_id: int | None = None,
) -> dict:
    """Drinks guests bought for casts, grouped by cast then product."""
    store = _resolve_store(session, store_id)
    start, end = _day_bounds(store, start_date, end_date)

    query = (
        session.query(
            CheckoutOrderItem.target_cast_id.label("cast_id"),
            CheckoutOrderItem.product_id.label("product_id"),
            func.max(CheckoutOrderItem.product_name).label("product_name"),
            func.max(CheckoutOrderItem.target_cast_name).label("cast_name"),
            func.coalesce(func.sum(CheckoutOrderItem.quantity), 0).label("quantity"),
            func.coalesce(func.sum(CheckoutOrderItem.subtotal), 0).label("total_sales"),
        )
        .join(CheckoutHistory, CheckoutHistory.id == CheckoutOrderItem.history_id)
        .filter(
            CheckoutHistory.store_id == store.id,
            CheckoutOrderItem.target_cast_id.isnot(None),
        )
    )
    query = _within(query, start, end)
    if cast_id is not None:
        query = query.filter(CheckoutOrderItem.target_cast_id == cast_id)

    lines = query.group_by(CheckoutOrderItem.target_cast_id, CheckoutOrderItem.product_id).all()

    live_names = dict(
        session.query(Cast.id, Cast.display_name).filter(Cast.store_id == store.id).all()
    )

    casts: dict[int, dict] = {}
    for line in lines:
        cast = casts.setdefault(line.cast_id, {
            "cast_id": line.cast_id,
            "cast_name": line.cast_name or live_names.get(line.cast_id) or UNNAMED_CAST,
            "total_quantity": 0,
            "total_sales": 0,
            "drinks": [],
        })
        cast["drinks"].append({
            "product_id": line.product_id,
            "product_name": line.product_name,
            "quantity": int(line.quantity),
            "total_sales": int(line.total_sales),
        })
        cast["total_quantity"] += int(line.quantity)
        cast["total_sales"] += int(line.total_sales)

    data = sorted(casts.values(), key=lambda c: (-c["total_sales"], c["cast_id"]))
    for cast in data:
        cast["drinks"].sort(key=lambda d: (-d["total_sales"], d["product_id"]))

    return {
        "store_id": store.id,
        **_window(start_date, end_date),
        "rows": data,
        "summary": {
            "total_quantity": sum(c["total_quantity"] for c in data),
            "total_sales": sum(c["total_sales"] for c in data),
        },
    }


def daily_summary(
    session,
    *,
    store_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    seat_type_name: str | None = None,
) -> dict:
    """
    Per store-local day: sales, guests, visits, stay time and new-customer
    share. Averages are rounded half up to whole units.
    """
    store = _resolve_store(session, store_id)
    start, end = _day_bounds(store, start_date, end_date)
    histories = checkout_history(session, store.id, start, end)
    if seat_type_name:
        histories = [h for h in histories if h.seat_type_name == seat_type_name]

    days: dict[str, dict] = {}
    for history in histories:
        day = _local_date(history.checkout_at, store)
        row = days.setdefault(day, {
            "date": day,
            "total_sales": 0,
            "total_guests": 0,
            "visit_count": 0,
            "new_customer_visits": 0,
            "total_stay_minutes": 0,
        })
        row["total_sales"] += history.total_amount
        row["total_guests"] += history.guest_count
        row["visit_count"] += 1
        row["new_customer_visits"] += 1 if history.is_new_customer else 0
        row["total_stay_minutes"] += history.stay_minutes

    data = sorted(days.values(), key=lambda d: d["date"])
    for row in data:
        row["average_sales_per_guest"] = _round_div(row["total_sales"], row["total_guests"])
        row["average_stay_minutes"] = _round_div(row["total_stay_minutes"], row["visit_count"])
        row["new_customer_percent"] = _percent(row["new_customer_visits"], row["visit_count"])

    total_sales = sum(d["total_sales"] for d in data)
    total_guests = sum(d["total_guests"] for d in data)
    total_visits = sum(d["visit_count"] for d in data)
    new_visits = sum(d["new_customer_visits"] for d in data)
    total_stay = sum(d["total_stay_minutes"] for d in data)

    return {
        "store_id": store.id,
        **_window(start_date, end_date),
        "rows": data,
        "summary": {
            "total_sales": total_sales,
            "total_guests": total_guests,
            "total_visits": total_visits,
            "new_customer_visits": new_visits,
            "average_sales_per_guest": _round_div(total_sales, total_guests),
            "average_stay_minutes": _round_div(total_stay, total_visits),
            "new_customer_percent": _percent(new_visits, total_visits),
        },
    }


def _slot_label(start_minute: int, interval_minutes: int) -> str:
    end_minute = start_minute + interval_minutes
    return (
        f"{start_minute // 60:02d}:{start_minute % 60:02d}-"
        f"{end_minute // 60:02d}:{end_minute % 60:02d}"
    )


def hourly_sales(
    session,
    *,
    store_id: int,
    day: date | None = None,
    interval_minutes: int = 60,
    start_hour: int = 0,
    end_hour: int = 24,
) -> dict:
    """
    Sales by store-local time slot. Without a day, all archived checkouts
    are folded onto one 24h clock.
    """
    if interval_minutes not in HOURLY_INTERVALS:
        raise ReportError("interval must be 30 or 60 minutes")
    if not 0 <= start_hour < end_hour <= 24:
        raise ReportError("hours must satisfy 0 <= start_hour < end_hour <= 24")

    store = _resolve_store(session, store_id)
    start, end = _day_bounds(store, day, day)
    histories = checkout_history(session, store.id, start, end)

    slots = {
        minute: {
            "time_slot": _slot_label(minute, interval_minutes),
            "sales_amount": 0,
            "transaction_count": 0,
            "nomination_count": 0,
        }
        for minute in range(start_hour * 60, end_hour * 60, interval_minutes)
    }

    nomination_counts = {}
    if histories:
        nomination_counts = dict(
            session.query(CheckoutNomination.history_id, func.count(CheckoutNomination.id))
            .filter(CheckoutNomination.history_id.in_([h.id for h in histories]))
            .group_by(CheckoutNomination.history_id)
            .all()
        )

    for history in histories:
        local = to_local(history.checkout_at, store.timezone)
        minute_of_day = local.hour * 60 + local.minute
        slot = slots.get(minute_of_day - minute_of_day % interval_minutes)
        if slot is None:
            continue
        slot["sales_amount"] += history.total_amount
        slot["transaction_count"] += 1
        slot["nomination_count"] += nomination_counts.get(history.id, 0)

    data = [slots[minute] for minute in sorted(slots)]
    return {
        "store_id": store.id,
        "date": day.isoformat() if day else None,
        "interval_minutes": interval_minutes,
        "rows": data,
        "summary": {
            "total_sales": sum(s["sales_amount"] for s in data),
            "total_transactions": sum(s["transaction_count"] for s in data),
            "total_nominations": sum(s["nomination_count"] for s in data),
        },
    }


def menu_sales(
    session,
    *,
    store_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """Quantity and sales per archived product, with each product's share of sales."""
    store = _resolve_store(session, store_id)
    start, end = _day_bounds(store, start_date, end_date)

    query = (
        session.query(
            CheckoutOrderItem.product_id.label("product_id"),
            CheckoutOrderItem.product_name.label("product_name"),
            func.coalesce(func.sum(CheckoutOrderItem.quantity), 0).label("quantity"),
            func.coalesce(func.sum(CheckoutOrderItem.subtotal), 0).label("total_sales"),
        )
        .join(CheckoutHistory, CheckoutHistory.id == CheckoutOrderItem.history_id)
        .filter(CheckoutHistory.store_id == store.id)
    )
    lines = _within(query, start, end).group_by(
        CheckoutOrderItem.product_id, CheckoutOrderItem.product_name
    ).all()

    total_sales = sum(int(line.total_sales) for line in lines)
    data = sorted(
        (
            {
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": int(line.quantity),
                "total_sales": int(line.total_sales),
                "percentage": _percent(int(line.total_sales), total_sales),
            }
            for line in lines
        ),
        key=lambda r: (-r["total_sales"], r["product_id"], r["product_name"]),
    )

    return {
        "store_id": store.id,
        **_window(start_date, end_date),
        "rows": data,
        "summary": {
            "total_sales": total_sales,
            "total_quantity": sum(r["quantity"] for r in data),
        },
    }
