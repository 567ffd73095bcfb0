# Overview: Seat charge ledger and charge accumulator.

"""
Seat Charge Ledger & Accumulator

WHY: Table charge is the revenue-critical number at checkout, and it is
polled constantly before that (table board, pre-checkout display). It must
be derived from the append-only ledger plus "as of", never stored.

LEDGER INVARIANTS:
- Events for a session are totally ordered by changed_at (id breaks ties).
- The latest is_table_move_charge=False event opens the accruing interval.
- is_table_move_charge=True events are closed intervals; their
  price_snapshot is an amount and is summed verbatim, never recomputed.

ACCUMULATION RULE (per open interval):
- end = charge_paused_at if paused, else as_of
- billable = max(0, end - opened_at - charge_paused_ms)
- billable is floored to whole minutes
- under 1 minute -> exactly one unit (minimum charge)
- otherwise      -> ceil(minutes / time unit) units
- integer arithmetic only, never floats
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func

from ..models import SeatChargeEvent, SeatType, TableSession
from .errors import TableChargeComputationError

ONE_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True)
class OpenIntervalCharge:
    """Charge for the currently accruing interval."""
    seat_type_id: int | None
    unit_price: int
    time_unit_minutes: int
    opened_at: datetime | None
    billable: timedelta
    full_units: int
    partial_units: int

    @property
    def units(self) -> int:
        return self.full_units + self.partial_units

    @property
    def full_unit_charge(self) -> int:
        return self.full_units * self.unit_price

    @property
    def partial_unit_charge(self) -> int:
        return self.partial_units * self.unit_price

    @property
    def amount(self) -> int:
        return self.units * self.unit_price

    @property
    def elapsed_minutes(self) -> int:
        return int(self.billable.total_seconds()) // 60


NO_OPEN_INTERVAL = OpenIntervalCharge(
    seat_type_id=None,
    unit_price=0,
    time_unit_minutes=0,
    opened_at=None,
    billable=timedelta(0),
    full_units=0,
    partial_units=0,
)


@dataclass(frozen=True)
class ChargeBreakdown:
    move_charge: int
    open_interval: OpenIntervalCharge
    clock_state: str

    @property
    def table_charge(self) -> int:
        return self.open_interval.amount

    @property
    def charge_amount(self) -> int:
        return self.move_charge + self.open_interval.amount

    def to_dict(self) -> dict:
        return {
            "charge_amount": self.charge_amount,
            "table_charge": self.table_charge,
            "move_charge": self.move_charge,
            "clock_state": self.clock_state,
            "elapsed_minutes": self.open_interval.elapsed_minutes,
            "units": self.open_interval.units,
            "time_unit_minutes": self.open_interval.time_unit_minutes,
            "unit_price": self.open_interval.unit_price,
        }


def split_units(billable: timedelta, time_unit_minutes: int) -> tuple[int, int]:
    """
    Split billable time into (full units, partial units).

    Billable time counts in whole minutes (seconds are dropped). partial
    is 0 or 1: an unfinished unit is charged as a whole unit. Below one
    minute the minimum charge applies: (0, 1).

    Table moves close out with this same rule, so 30m30s on a 30 minute
    unit closes as one unit, exactly what a checkout at that instant
    would bill. Fractional minutes are never rounded up on a move.
    """
    if time_unit_minutes <= 0:
        raise TableChargeComputationError(f"Invalid time unit: {time_unit_minutes} minutes")
    minutes = max(billable, timedelta(0)) // ONE_MINUTE
    if minutes < 1:
        return 0, 1
    full_units, remainder = divmod(minutes, time_unit_minutes)
    return full_units, (1 if remainder else 0)


def billable_units(billable: timedelta, time_unit_minutes: int) -> int:
    full_units, partial_units = split_units(billable, time_unit_minutes)
    return full_units + partial_units


class SeatChargeLedger:
    """Append-only access to seat charge events. Never updates or deletes."""

    def __init__(self, session):
        self._session = session

    def events(self, session_id: int) -> list[SeatChargeEvent]:
        return (
            self._session.query(SeatChargeEvent)
            .filter_by(session_id=session_id)
            .order_by(SeatChargeEvent.changed_at, SeatChargeEvent.id)
            .all()
        )

    def open_event(self, session_id: int) -> SeatChargeEvent | None:
        return (
            self._session.query(SeatChargeEvent)
            .filter_by(session_id=session_id, is_table_move_charge=False)
            .order_by(SeatChargeEvent.changed_at.desc(), SeatChargeEvent.id.desc())
            .first()
        )

    def closed_interval_total(self, session_id: int) -> int:
        total = (
            self._session.query(func.coalesce(func.sum(SeatChargeEvent.price_snapshot), 0))
            .filter_by(session_id=session_id, is_table_move_charge=True)
            .scalar()
        )
        return int(total or 0)

    def first_billed_at(self, session_id: int) -> datetime | None:
        """When billing originally began, regardless of later table moves."""
        return (
            self._session.query(func.min(SeatChargeEvent.changed_at))
            .filter_by(session_id=session_id, is_table_move_charge=False)
            .scalar()
        )

    def append_open_interval(self, *, session_id: int, seat_type: SeatType, changed_at: datetime) -> SeatChargeEvent:
        event = SeatChargeEvent(
            session_id=session_id,
            seat_type_id=seat_type.id,
            price_snapshot=seat_type.price_per_unit,
            changed_at=changed_at,
            is_table_move_charge=False,
        )
        self._session.add(event)
        self._session.flush()
        return event

    def append_move_charge(
        self, *, session_id: int, seat_type_id: int, amount: int, changed_at: datetime
    ) -> SeatChargeEvent:
        event = SeatChargeEvent(
            session_id=session_id,
            seat_type_id=seat_type_id,
            price_snapshot=amount,
            changed_at=changed_at,
            is_table_move_charge=True,
        )
        self._session.add(event)
        self._session.flush()
        return event


class ChargeAccumulator:
    """
    Computes what a session owes for its seat time as of a given instant.

    Read-only: the same ledger state and as_of always give the same answer.
    """

    def __init__(self, session, ledger: SeatChargeLedger | None = None):
        self._session = session
        self._ledger = ledger or SeatChargeLedger(session)

    def open_interval(self, table_session: TableSession, as_of: datetime) -> OpenIntervalCharge:
        event = self._ledger.open_event(table_session.id)
        if event is None:
            return NO_OPEN_INTERVAL

        seat_type = self._session.get(SeatType, event.seat_type_id)
        if seat_type is None:
            raise TableChargeComputationError(
                f"Seat type {event.seat_type_id} for session {table_session.id} not found"
            )
        if event.price_snapshot < 0:
            raise TableChargeComputationError(
                f"Negative price snapshot on seat event {event.id}"
            )

        end = table_session.charge_paused_at or as_of
        paused = timedelta(milliseconds=table_session.charge_paused_ms or 0)
        billable = max(end - event.changed_at - paused, timedelta(0))
        full_units, partial_units = split_units(billable, seat_type.time_unit_minutes)

        return OpenIntervalCharge(
            seat_type_id=seat_type.id,
            unit_price=event.price_snapshot,
            time_unit_minutes=seat_type.time_unit_minutes,
            opened_at=event.changed_at,
            billable=billable,
            full_units=full_units,
            partial_units=partial_units,
        )

    def breakdown(self, table_session: TableSession, as_of: datetime) -> ChargeBreakdown:
        return ChargeBreakdown(
            move_charge=self._ledger.closed_interval_total(table_session.id),
            open_interval=self.open_interval(table_session, as_of),
            clock_state=table_session.clock_state,
        )

    def current_charge(self, table_session: TableSession, as_of: datetime) -> int:
        return self.breakdown(table_session, as_of).charge_amount
