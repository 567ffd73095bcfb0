# Overview: Checkout orchestration: bill, persist, sync, close, archive, free the table.

"""
Checkout Orchestrator

WHY: Checkout turns a live session into the permanent revenue record.
Revenue-critical steps abort the whole checkout; best-effort steps
(POS sync, order closure, archival) can only add warnings.

FLOW:
  transaction 1 (revenue record, one commit)
    1. lease    lock the session row and bump version_id (compare-and-swap)
    2. bill     orders + seat charge + nomination fees, inclusive tax split
    3. persist  Checkout row, status pending
    4. pos      build the POS registration (reads the integration row)
    5. orders   close the billed orders                (savepoint)
    6. archive  CheckoutHistory + lines                (savepoints)
    7. finish   delete the session and commit; completed unless POS is due
  outside any transaction
    8. send     provider call; holds no datastore lock
  transaction 2 (short)
    9. complete status completed with the receipt id, if one came back

Each step returns a StepResult. Only a fatal result aborts; a second
checkout of the same session finds no session and fails with
SessionNotFound. A Checkout left pending means the POS outcome was
never recorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import Cast, Checkout, SeatType, Store, Table, TableSession
from ..models.checkouts import CHECKOUT_STATUS_COMPLETED, CHECKOUT_STATUS_PENDING
from seatclock.time_utils import utcnow, to_utc_z
from .archive_service import ArchiveRecorder
from .charge_service import ChargeAccumulator, SeatChargeLedger
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    ArchivalError,
    BillingError,
    CheckoutPersistenceError,
    OrderStatusUpdateError,
    PosSyncError,
    SessionNotFound,
)
from .nomination_service import NominationFee, NominationService
from .order_service import OrderService
from .tax_service import TaxSplit, resolve_tax_rate_bps, split_inclusive_tax

STEP_OK = "ok"
STEP_WARN = "warn"
STEP_FATAL = "fatal"


@dataclass(frozen=True)
class StepResult:
    step: str
    status: str
    value: Any = None
    error: Exception | None = None

    @classmethod
    def ok(cls, step: str, value: Any = None) -> "StepResult":
        return cls(step, STEP_OK, value=value)

    @classmethod
    def warn(cls, step: str, error: Exception, value: Any = None) -> "StepResult":
        return cls(step, STEP_WARN, value=value, error=error)

    @classmethod
    def fatal(cls, step: str, error: Exception) -> "StepResult":
        return cls(step, STEP_FATAL, error=error)

    @property
    def is_fatal(self) -> bool:
        return self.status == STEP_FATAL


@dataclass(frozen=True)
class BilledItem:
    order_id: int
    product_id: str
    product_name: str
    price: int
    quantity: int
    target_cast_id: int | None
    ordered_at: datetime | None

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


@dataclass
class CheckoutFacts:
    """Everything computed for a checkout, shared by persistence, POS and archival."""
    session_id: int
    store_id: int
    table_id: int
    table_name: str | None
    seat_type_name: str | None
    store_timezone: str | None
    guest_count: int
    is_new_customer: bool
    checkout_at: datetime
    billing_started_at: datetime | None
    order_items: list[BilledItem]
    order_ids: list[int]
    order_amount: int
    charge_amount: int
    nominations: list[NominationFee]
    nomination_fee: int
    total_amount: int
    tax: TaxSplit
    cast_names: dict[int, str] = field(default_factory=dict)


@dataclass
class CheckoutResult:
    checkout: Checkout
    facts: CheckoutFacts
    warnings: list[StepResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        facts = self.facts
        return {
            "checkoutId": self.checkout.id,
            "sessionId": facts.session_id,
            "status": self.checkout.status,
            "posReceiptId": self.checkout.pos_receipt_id,
            "totalAmount": facts.total_amount,
            "subtotalAmount": facts.tax.subtotal,
            "taxAmount": facts.tax.tax,
            "taxRatePercent": facts.tax.rate_percent,
            "chargeAmount": facts.charge_amount,
            "orderAmount": facts.order_amount,
            "nominationFee": facts.nomination_fee,
            "nominations": [
                {
                    "castId": n.cast_id,
                    "castName": facts.cast_names.get(n.cast_id),
                    "fee": n.fee,
                    "nominatedAt": to_utc_z(n.nominated_at),
                }
                for n in facts.nominations
            ],
            "guestCount": facts.guest_count,
            "checkoutAt": to_utc_z(facts.checkout_at),
            "warnings": [
                {"step": w.step, "error": str(w.error)} for w in self.warnings
            ],
        }


class CheckoutOrchestrator:
    """
    session: SQLAlchemy session handle
    clock: callable returning UTC-naive "now"
    pos_sync: PosSyncService, or None to skip provider registration
    """

    def __init__(
        self,
        session,
        *,
        clock=utcnow,
        pos_sync=None,
        default_tax_rate_bps: int = 1000,
        archive_batch_size: int = 50,
    ):
        self._session = session
        self._clock = clock
        self._pos_sync = pos_sync
        self._default_tax_rate_bps = default_tax_rate_bps
        self._ledger = SeatChargeLedger(session)
        self._accumulator = ChargeAccumulator(session, self._ledger)
        self._orders = OrderService(session, clock=clock)
        self._nominations = NominationService(session, clock=clock)
        self._archive = ArchiveRecorder(session, batch_size=archive_batch_size)

    def checkout(self, session_id: int) -> CheckoutResult:
        leased = self._lease(session_id)
        if leased.is_fatal:
            self._abort(leased)
        table_session = leased.value

        billed = self._bill(table_session, self._clock())
        if billed.is_fatal:
            self._abort(billed)
        facts = billed.value

        persisted = self._persist(facts)
        if persisted.is_fatal:
            self._abort(persisted)
        checkout = persisted.value

        prepared = self._prepare_pos(table_session.store, facts)
        closed = self._close_orders(facts)
        archived = self._record_archive(facts, checkout)
        warnings = [r for r in (prepared, closed, archived) if r.status == STEP_WARN]

        pending = prepared.value
        checkout_id = checkout.id
        finished = self._finish(table_session, checkout, completed=pending is None)
        if finished.is_fatal:
            self._abort(finished)

        if pending is not None:
            sent = self._send_pos(pending, facts)
            if sent.status == STEP_WARN:
                warnings.append(sent)
            completed = self._complete(checkout, checkout_id, sent.value)
            if completed.status == STEP_WARN:
                warnings.append(completed)

        for warning in warnings:
            current_app.logger.warning(
                "Checkout %s for session %s completed with %s warning: %s",
                checkout_id,
                facts.session_id,
                warning.step,
                warning.error,
            )
        return CheckoutResult(checkout=checkout, facts=facts, warnings=warnings)

    # -------------------------------------------------------------------------
    # Revenue-critical steps
    # -------------------------------------------------------------------------

    def _lease(self, session_id: int) -> StepResult:
        """
        Take the exclusive lease: lock the row, then compare-and-swap
        version_id. A concurrent winner makes the swap match zero rows,
        after which the session is gone.
        """
        def _acquire():
            table_session = lock_for_update(
                self._session.query(TableSession).filter_by(id=session_id)
            ).populate_existing().first()
            if table_session is None:
                raise SessionNotFound(session_id)

            version = table_session.version_id
            swapped = (
                self._session.query(TableSession)
                .filter_by(id=session_id, version_id=version)
                .update({TableSession.version_id: version + 1}, synchronize_session=False)
            )
            if swapped != 1:
                raise SessionNotFound(session_id)
            self._session.refresh(table_session)
            return table_session

        try:
            return StepResult.ok("lease", run_with_retry(self._session, _acquire))
        except BillingError as e:
            return StepResult.fatal("lease", e)

    def _bill(self, table_session: TableSession, now: datetime) -> StepResult:
        try:
            return StepResult.ok("bill", self._compute_facts(table_session, now))
        except BillingError as e:
            return StepResult.fatal("bill", e)

    def _compute_facts(self, table_session: TableSession, now: datetime) -> CheckoutFacts:
        store = self._session.get(Store, table_session.store_id)
        table = self._session.get(Table, table_session.table_id)
        seat_type = self._session.get(SeatType, table.seat_type_id) if table else None

        orders = self._orders.open_orders(table_session.id)
        items = [
            BilledItem(
                order_id=order.id,
                product_id=item.product_id,
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
                target_cast_id=item.target_cast_id,
                ordered_at=order.created_at,
            )
            for order in orders
            for item in order.items
        ]
        order_amount = sum(item.line_total for item in items)

        charge_amount = self._accumulator.current_charge(table_session, now)

        nominations = self._nominations.billable_fees(table_session)
        nomination_fee = sum(n.fee for n in nominations)

        total = order_amount + charge_amount + nomination_fee
        tax = split_inclusive_tax(total, resolve_tax_rate_bps(store, self._default_tax_rate_bps))

        billing_started_at = (
            self._ledger.first_billed_at(table_session.id)
            or table_session.charge_started_at
            or table_session.start_at
        )

        return CheckoutFacts(
            session_id=table_session.id,
            store_id=table_session.store_id,
            table_id=table_session.table_id,
            table_name=table.name if table else None,
            seat_type_name=seat_type.display_name if seat_type else None,
            store_timezone=store.timezone if store else None,
            guest_count=table_session.guest_count,
            is_new_customer=table_session.is_new_customer,
            checkout_at=now,
            billing_started_at=billing_started_at,
            order_items=items,
            order_ids=[order.id for order in orders],
            order_amount=order_amount,
            charge_amount=charge_amount,
            nominations=nominations,
            nomination_fee=nomination_fee,
            total_amount=total,
            tax=tax,
            cast_names=self._cast_names(nominations),
        )

    def _persist(self, facts: CheckoutFacts) -> StepResult:
        checkout = Checkout(
            store_id=facts.store_id,
            session_id=facts.session_id,
            total_amount=facts.total_amount,
            subtotal_amount=facts.tax.subtotal,
            tax_amount=facts.tax.tax,
            tax_rate_bps=facts.tax.rate_bps,
            charge_amount=facts.charge_amount,
            order_amount=facts.order_amount,
            nomination_fee=facts.nomination_fee,
            status=CHECKOUT_STATUS_PENDING,
            created_at=facts.checkout_at,
        )
        try:
            self._session.add(checkout)
            self._session.flush()
        except SQLAlchemyError as e:
            return StepResult.fatal(
                "persist",
                CheckoutPersistenceError(f"Could not record checkout for session {facts.session_id}: {e}"),
            )
        return StepResult.ok("persist", checkout)

    def _finish(self, table_session: TableSession, checkout: Checkout, *, completed: bool) -> StepResult:
        """
        Free the table and commit the revenue record. Ledger, nominations and
        orders go with the session. With POS still due the checkout stays
        pending until _complete records the provider outcome.
        """
        try:
            if completed:
                checkout.status = CHECKOUT_STATUS_COMPLETED
                checkout.completed_at = self._clock()
            self._session.delete(table_session)
            self._session.commit()
        except SQLAlchemyError as e:
            return StepResult.fatal(
                "finish",
                CheckoutPersistenceError(f"Could not finalize checkout for session {table_session.id}: {e}"),
            )
        return StepResult.ok("finish")

    def _abort(self, result: StepResult) -> None:
        self._session.rollback()
        current_app.logger.warning("Checkout aborted at %s: %s", result.step, result.error)
        raise result.error

    # -------------------------------------------------------------------------
    # Best-effort steps
    # -------------------------------------------------------------------------

    def _prepare_pos(self, store: Store, facts: CheckoutFacts) -> StepResult:
        """Build the provider registration; value is None when nothing will be sent."""
        if self._pos_sync is None or store is None or not store.pos_enabled:
            return StepResult.ok("pos")
        try:
            return StepResult.ok("pos", self._pos_sync.prepare(store, facts))
        except PosSyncError as e:
            return StepResult.warn("pos", e)
        except Exception as e:
            return StepResult.warn("pos", PosSyncError(f"POS registration could not be built: {e!r}"))

    def _send_pos(self, pending, facts: CheckoutFacts) -> StepResult:
        """Runs with no open transaction; value is the receipt id or None."""
        try:
            return StepResult.ok("pos", self._pos_sync.send(pending, facts))
        except PosSyncError as e:
            return StepResult.warn("pos", e)
        except Exception as e:
            return StepResult.warn("pos", PosSyncError(f"POS registration failed: {e!r}"))

    def _complete(self, checkout: Checkout, checkout_id: int, receipt_id: str | None) -> StepResult:
        try:
            checkout.status = CHECKOUT_STATUS_COMPLETED
            checkout.pos_receipt_id = receipt_id
            checkout.completed_at = self._clock()
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            return StepResult.warn(
                "complete",
                CheckoutPersistenceError(f"Checkout {checkout_id} left pending (receipt {receipt_id}): {e}"),
            )
        return StepResult.ok("complete")

    def _close_orders(self, facts: CheckoutFacts) -> StepResult:
        nested = self._session.begin_nested()
        try:
            closed = self._orders.close_orders(facts.order_ids)
            nested.commit()
        except SQLAlchemyError as e:
            nested.rollback()
            return StepResult.warn(
                "orders",
                OrderStatusUpdateError(f"Could not close orders {facts.order_ids}: {e}"),
            )
        return StepResult.ok("orders", closed)

    def _record_archive(self, facts: CheckoutFacts, checkout: Checkout) -> StepResult:
        try:
            outcome = self._archive.record(facts, checkout_id=checkout.id)
        except ArchivalError as e:
            return StepResult.warn("archive", e)
        if not outcome.complete:
            return StepResult.warn(
                "archive",
                ArchivalError(f"{len(outcome.failed_rows)} archival rows dropped"),
                value=outcome,
            )
        return StepResult.ok("archive", outcome)

    def _cast_names(self, nominations: list[NominationFee]) -> dict[int, str]:
        ids = {n.cast_id for n in nominations}
        if not ids:
            return {}
        rows = self._session.query(Cast.id, Cast.display_name).filter(Cast.id.in_(ids)).all()
        return {cast_id: name for cast_id, name in rows}
