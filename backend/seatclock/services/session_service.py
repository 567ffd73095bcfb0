# Overview: Billing clock controller: seating, start/pause/resume, table moves.

"""
Session Clock Controller

WHY: Every change to a session's billing clock either appends to the seat
charge ledger or changes how the open interval accrues. Those writes must
land together or not at all.

STATE MACHINE:
    NOT_STARTED --start--> RUNNING --pause--> PAUSED --resume--> RUNNING
    RUNNING --move--> RUNNING (new table, new open interval)
    any --checkout--> (session deleted)

DESIGN PRINCIPLES:
- One transaction per transition; ledger rows are appended before the
  session row is mutated, and both commit together.
- The session row is locked (SELECT ... FOR UPDATE where supported) and
  its version_id is checked on write, so racing transitions on the same
  session serialize or retry.
- Table occupancy is re-validated inside the move transaction, and a
  unique constraint on sessions.table_id backs it at the datastore.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from ..models import Cast, SeatType, Table, TableSession
from ..models.sessions import CLOCK_NOT_STARTED, CLOCK_PAUSED, CLOCK_RUNNING
from seatclock.time_utils import utcnow
from .charge_service import ChargeAccumulator, OpenIntervalCharge, SeatChargeLedger
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    BillingError,
    CastNotFound,
    ClockStateError,
    SessionNotFound,
    TableNotFound,
    TableOccupiedError,
    ValidationError,
)

# Move-charge events are stamped just before the new open interval
MOVE_CHARGE_OFFSET = timedelta(milliseconds=1)


@dataclass(frozen=True)
class MoveResult:
    session: TableSession
    from_table_id: int
    to_table_id: int
    closed_interval: OpenIntervalCharge

    @property
    def applied_charge(self) -> int:
        return self.closed_interval.amount

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "from_table_id": self.from_table_id,
            "to_table_id": self.to_table_id,
            "previous_charge": self.closed_interval.amount,
            "applied_charge": self.applied_charge,
            "full_unit_charge": self.closed_interval.full_unit_charge,
            "partial_unit_charge": self.closed_interval.partial_unit_charge,
            "time_unit_minutes": self.closed_interval.time_unit_minutes,
        }


class SessionController:
    """
    Applies billing clock transitions for table sessions.

    session: SQLAlchemy session handle (request-scoped)
    clock: callable returning UTC-naive "now"
    """

    def __init__(self, session, *, clock=utcnow):
        self._session = session
        self._clock = clock
        self._ledger = SeatChargeLedger(session)
        self._accumulator = ChargeAccumulator(session, self._ledger)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, session_id: int) -> TableSession:
        table_session = self._session.get(TableSession, session_id)
        if table_session is None:
            raise SessionNotFound(session_id)
        return table_session

    def session_for_table(self, table_id: int) -> TableSession | None:
        return self._session.query(TableSession).filter_by(table_id=table_id).first()

    def open_sessions(self, store_id: int | None = None) -> list[TableSession]:
        query = self._session.query(TableSession)
        if store_id is not None:
            query = query.filter_by(store_id=store_id)
        return query.order_by(TableSession.start_at).all()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def seat(
        self,
        table_id: int,
        *,
        guest_count: int = 1,
        is_new_customer: bool = False,
        selected_cast_id: int | None = None,
    ) -> TableSession:
        """Open a session on a free table. The billing clock starts NOT_STARTED."""
        if guest_count is None or guest_count < 1:
            raise ValidationError("guest_count must be at least 1")

        def _op():
            table = lock_for_update(self._session.query(Table).filter_by(id=table_id)).first()
            if table is None:
                raise TableNotFound(table_id)

            if self.session_for_table(table_id) is not None:
                raise TableOccupiedError(table_id)

            if selected_cast_id is not None:
                cast = self._session.get(Cast, selected_cast_id)
                if cast is None or cast.store_id != table.store_id:
                    raise CastNotFound(selected_cast_id)

            table_session = TableSession(
                store_id=table.store_id,
                table_id=table.id,
                start_at=self._clock(),
                guest_count=guest_count,
                is_new_customer=bool(is_new_customer),
                selected_cast_id=selected_cast_id,
                charge_paused_ms=0,
            )
            self._session.add(table_session)
            self._flush_occupancy(table_id)
            self._session.commit()
            return table_session

        return self._transaction(_op)

    def start_charge(self, session_id: int) -> TableSession:
        """NOT_STARTED -> RUNNING: open the first ledger interval at the table's rate."""
        def _op():
            table_session = self._lock_session(session_id)
            self._require_state(table_session, CLOCK_NOT_STARTED, "start")

            now = self._clock()
            seat_type = self._seat_type_for_table(table_session.table_id)
            self._ledger.append_open_interval(
                session_id=table_session.id,
                seat_type=seat_type,
                changed_at=now,
            )
            table_session.charge_started_at = now
            table_session.charge_paused_at = None
            table_session.charge_paused_ms = 0
            self._session.commit()
            return table_session

        return self._transaction(_op)

    def pause(self, session_id: int) -> TableSession:
        """RUNNING -> PAUSED. No ledger event: the open interval stops accruing."""
        def _op():
            table_session = self._lock_session(session_id)
            self._require_state(table_session, CLOCK_RUNNING, "pause")

            table_session.charge_paused_at = self._clock()
            self._session.commit()
            return table_session

        return self._transaction(_op)

    def resume(self, session_id: int) -> TableSession:
        """
        PAUSED -> RUNNING.

        The open interval keeps its original start; the paused span is added
        to charge_paused_ms so it is excluded before unit rounding.
        """
        def _op():
            table_session = self._lock_session(session_id)
            self._require_state(table_session, CLOCK_PAUSED, "resume")

            now = self._clock()
            paused_for = max(now - table_session.charge_paused_at, timedelta(0))
            table_session.charge_paused_ms = (
                (table_session.charge_paused_ms or 0) + paused_for // timedelta(milliseconds=1)
            )
            table_session.charge_paused_at = None
            self._session.commit()
            return table_session

        return self._transaction(_op)

    def preview_move(self, session_id: int) -> OpenIntervalCharge:
        """What a move right now would close out for the source table. Writes nothing."""
        table_session = self.get(session_id)
        self._require_state(table_session, CLOCK_RUNNING, "move")
        return self._accumulator.open_interval(table_session, self._clock())

    def move(self, session_id: int, target_table_id: int) -> MoveResult:
        """
        Move a RUNNING session to another table.

        Closes the source table's open interval into a move-charge event
        (stamped 1ms before now), opens a new interval at the destination
        rate, and resets the display clock. All in one transaction.
        """
        def _op():
            table_session = self._lock_session(session_id)
            self._require_state(table_session, CLOCK_RUNNING, "move")

            source_table_id = table_session.table_id
            if target_table_id == source_table_id:
                raise ValidationError("Session is already at that table")

            target = lock_for_update(self._session.query(Table).filter_by(id=target_table_id)).first()
            if target is None:
                raise TableNotFound(target_table_id)
            if target.store_id != table_session.store_id:
                raise ValidationError("Cannot move to a table in a different store")
            if self.session_for_table(target_table_id) is not None:
                raise TableOccupiedError(target_table_id)

            destination_seat_type = self._session.get(SeatType, target.seat_type_id)
            if destination_seat_type is None:
                raise ValidationError(f"Table {target_table_id} has no seat type")

            now = self._clock()
            closed = self._accumulator.open_interval(table_session, now)

            if closed.amount > 0:
                source_table = self._session.get(Table, source_table_id)
                self._ledger.append_move_charge(
                    session_id=table_session.id,
                    seat_type_id=closed.seat_type_id or source_table.seat_type_id,
                    amount=closed.amount,
                    changed_at=now - MOVE_CHARGE_OFFSET,
                )
            self._ledger.append_open_interval(
                session_id=table_session.id,
                seat_type=destination_seat_type,
                changed_at=now,
            )

            table_session.table_id = target_table_id
            table_session.charge_started_at = now
            table_session.charge_paused_at = None
            table_session.charge_paused_ms = 0
            self._flush_occupancy(target_table_id)
            self._session.commit()

            return MoveResult(
                session=table_session,
                from_table_id=source_table_id,
                to_table_id=target_table_id,
                closed_interval=closed,
            )

        return self._transaction(_op)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _transaction(self, op):
        """Run op with retry; any abort leaves no partial writes behind."""
        try:
            return run_with_retry(self._session, op)
        except BillingError:
            self._session.rollback()
            raise
        except IntegrityError:
            self._session.rollback()
            raise

    def _lock_session(self, session_id: int) -> TableSession:
        table_session = lock_for_update(
            self._session.query(TableSession).filter_by(id=session_id)
        ).populate_existing().first()
        if table_session is None:
            raise SessionNotFound(session_id)
        return table_session

    def _require_state(self, table_session: TableSession, expected: str, action: str) -> None:
        state = table_session.clock_state
        if state != expected:
            raise ClockStateError(
                f"Cannot {action} session {table_session.id}: clock is {state}, expected {expected}"
            )

    def _seat_type_for_table(self, table_id: int) -> SeatType:
        table = self._session.get(Table, table_id)
        if table is None:
            raise TableNotFound(table_id)
        seat_type = self._session.get(SeatType, table.seat_type_id)
        if seat_type is None:
            raise ValidationError(f"Table {table_id} has no seat type")
        return seat_type

    def _flush_occupancy(self, table_id: int) -> None:
        """Write pending changes, then confirm the table holds exactly one session."""
        try:
            self._session.flush()
        except IntegrityError:
            self._session.rollback()
            raise TableOccupiedError(table_id)
        occupants = self._session.query(TableSession).filter_by(table_id=table_id).count()
        if occupants > 1:
            raise TableOccupiedError(table_id)
