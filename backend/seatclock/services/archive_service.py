# Overview: Copies finalized checkout facts into the reporting tables.

"""
Archival Recorder

WHY: Reporting needs checkout facts after the session, its orders and its
ledger are gone. Archival is a convenience copy: the Checkout row is the
revenue record, so nothing here may fail a checkout.

BATCHING:
- Order item and nomination rows are written in savepoint batches of at
  most ARCHIVE_BATCH_SIZE rows.
- A batch that fails is retried row by row, so one malformed row costs
  only itself.

Nothing here commits; the caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import Cast, CheckoutHistory, CheckoutNomination, CheckoutOrderItem
from seatclock.time_utils import whole_minutes
from .errors import ArchivalError

MAX_BATCH_SIZE = 50


@dataclass
class ArchiveOutcome:
    history: CheckoutHistory
    written_rows: int = 0
    failed_rows: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_rows


def stay_minutes(checkout_at: datetime, billing_started_at: datetime | None) -> int:
    if billing_started_at is None:
        return 0
    return whole_minutes(checkout_at - billing_started_at)


class ArchiveRecorder:
    def __init__(self, session, *, batch_size: int = MAX_BATCH_SIZE):
        self._session = session
        self._batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))

    def record(self, facts, checkout_id: int | None = None) -> ArchiveOutcome:
        """
        Write one CheckoutHistory row plus its order item and nomination rows.

        Raises ArchivalError if the history row itself cannot be written.
        Row-level failures are reported on the returned outcome.
        """
        history = CheckoutHistory(
            store_id=facts.store_id,
            checkout_id=checkout_id,
            session_id=facts.session_id,
            table_name=facts.table_name,
            seat_type_name=facts.seat_type_name,
            checkout_at=facts.checkout_at,
            billing_started_at=facts.billing_started_at,
            stay_minutes=stay_minutes(facts.checkout_at, facts.billing_started_at),
            total_amount=facts.total_amount,
            subtotal_amount=facts.tax.subtotal,
            tax_amount=facts.tax.tax,
            charge_amount=facts.charge_amount,
            order_amount=facts.order_amount,
            nomination_fee=facts.nomination_fee,
            guest_count=facts.guest_count,
            is_new_customer=facts.is_new_customer,
        )
        nested = self._session.begin_nested()
        try:
            self._session.add(history)
            self._session.flush()
            nested.commit()
        except SQLAlchemyError as exc:
            nested.rollback()
            raise ArchivalError(
                f"Could not archive checkout for session {facts.session_id}: {exc}"
            ) from exc

        cast_names = self._cast_names(
            [item.target_cast_id for item in facts.order_items if item.target_cast_id is not None]
            + [nomination.cast_id for nomination in facts.nominations]
        )

        item_rows = [
            {
                "history_id": history.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "price": item.price,
                "quantity": item.quantity,
                "subtotal": item.line_total,
                "target_cast_id": item.target_cast_id,
                "target_cast_name": cast_names.get(item.target_cast_id),
                "ordered_at": item.ordered_at,
            }
            for item in facts.order_items
        ]
        nomination_rows = [
            {
                "history_id": history.id,
                "cast_id": nomination.cast_id,
                "cast_name": cast_names.get(nomination.cast_id),
                "fee": nomination.fee,
                "nominated_at": nomination.nominated_at,
            }
            for nomination in facts.nominations
        ]

        outcome = ArchiveOutcome(history=history)
        self._write_rows(CheckoutOrderItem, item_rows, outcome)
        self._write_rows(CheckoutNomination, nomination_rows, outcome)
        return outcome

    def _cast_names(self, cast_ids: list[int]) -> dict[int, str]:
        ids = set(cast_ids)
        if not ids:
            return {}
        rows = self._session.query(Cast.id, Cast.display_name).filter(Cast.id.in_(ids)).all()
        return {cast_id: name for cast_id, name in rows}

    def _write_rows(self, model, rows: list[dict], outcome: ArchiveOutcome) -> None:
        for start in range(0, len(rows), self._batch_size):
            batch = rows[start:start + self._batch_size]

            nested = self._session.begin_nested()
            try:
                self._session.add_all([model(**row) for row in batch])
                self._session.flush()
                nested.commit()
                outcome.written_rows += len(batch)
                continue
            except SQLAlchemyError:
                nested.rollback()
                current_app.logger.warning(
                    "Archival batch of %d %s rows failed for history_id=%s; retrying row by row",
                    len(batch),
                    model.__tablename__,
                    outcome.history.id,
                )

            for row in batch:
                nested = self._session.begin_nested()
                try:
                    self._session.add(model(**row))
                    self._session.flush()
                    nested.commit()
                    outcome.written_rows += 1
                except SQLAlchemyError as exc:
                    nested.rollback()
                    current_app.logger.warning(
                        "Archival row dropped from %s for history_id=%s: %s",
                        model.__tablename__,
                        outcome.history.id,
                        exc,
                    )
                    outcome.failed_rows.append(f"{model.__tablename__}: {exc.__class__.__name__}")


def checkout_history(session, store_id: int, start: datetime | None = None, end: datetime | None = None) -> list[CheckoutHistory]:
    """Archived checkouts for a store, newest first, within [start, end)."""
    query = session.query(CheckoutHistory).filter(CheckoutHistory.store_id == store_id)
    if start is not None:
        query = query.filter(CheckoutHistory.checkout_at >= start)
    if end is not None:
        query = query.filter(CheckoutHistory.checkout_at < end)
    return query.order_by(CheckoutHistory.checkout_at.desc(), CheckoutHistory.id.desc()).all()
