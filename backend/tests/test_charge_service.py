from datetime import timedelta

import pytest

from seatclock.models import SeatChargeEvent
from seatclock.models.sessions import CLOCK_NOT_STARTED, CLOCK_PAUSED, CLOCK_RUNNING
from seatclock.services.charge_service import ChargeAccumulator, SeatChargeLedger, split_units
from seatclock.services.errors import TableChargeComputationError
from seatclock.services.session_service import SessionController


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (timedelta(0), (0, 1)),
        (timedelta(seconds=59), (0, 1)),
        (timedelta(minutes=1), (0, 1)),
        (timedelta(minutes=30), (1, 0)),
        (timedelta(minutes=30, seconds=59), (1, 0)),
        (timedelta(minutes=31), (1, 1)),
        (timedelta(minutes=95), (3, 1)),
    ],
)
def test_split_units(elapsed, expected):
    assert split_units(elapsed, 30) == expected


def test_split_units_rejects_non_positive_unit():
    with pytest.raises(TableChargeComputationError):
        split_units(timedelta(minutes=10), 0)


def _running_session(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id, guest_count=2)
    controller.start_charge(table_session.id)
    return controller, table_session


def test_not_started_session_owes_nothing(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    clock.advance(minutes=45)

    breakdown = ChargeAccumulator(db_session).breakdown(table_session, clock())
    assert table_session.clock_state == CLOCK_NOT_STARTED
    assert breakdown.charge_amount == 0
    assert breakdown.to_dict()["units"] == 0


def test_minimum_charge_within_first_minute(db_session, venue, clock):
    _, table_session = _running_session(db_session, venue, clock)
    clock.advance(seconds=20)

    assert ChargeAccumulator(db_session).current_charge(table_session, clock()) == 1000


def test_rounding_up_to_time_unit(db_session, venue, clock):
    _, table_session = _running_session(db_session, venue, clock)
    accumulator = ChargeAccumulator(db_session)

    clock.advance(minutes=30)
    assert accumulator.current_charge(table_session, clock()) == 1000

    clock.advance(minutes=1)
    assert accumulator.current_charge(table_session, clock()) == 2000


def test_guest_count_does_not_multiply_seat_charge(db_session, venue, clock):
    _, table_session = _running_session(db_session, venue, clock)
    clock.advance(minutes=95)

    assert table_session.guest_count == 2
    assert ChargeAccumulator(db_session).current_charge(table_session, clock()) == 4000


def test_paused_time_is_excluded(db_session, venue, clock):
    controller, table_session = _running_session(db_session, venue, clock)
    accumulator = ChargeAccumulator(db_session)

    clock.advance(minutes=20)
    controller.pause(table_session.id)
    clock.advance(minutes=40)
    controller.resume(table_session.id)
    clock.advance(minutes=10)

    assert table_session.clock_state == CLOCK_RUNNING
    assert table_session.charge_paused_ms == 40 * 60 * 1000
    assert accumulator.current_charge(table_session, clock()) == 1000


def test_charge_frozen_while_paused(db_session, venue, clock):
    controller, table_session = _running_session(db_session, venue, clock)
    accumulator = ChargeAccumulator(db_session)

    clock.advance(minutes=35)
    controller.pause(table_session.id)
    at_pause = accumulator.current_charge(table_session, clock())
    clock.advance(hours=3)

    assert table_session.clock_state == CLOCK_PAUSED
    assert at_pause == 2000
    assert accumulator.current_charge(table_session, clock()) == at_pause


def test_accumulator_is_idempotent(db_session, venue, clock):
    _, table_session = _running_session(db_session, venue, clock)
    clock.advance(minutes=47)
    accumulator = ChargeAccumulator(db_session)

    first = accumulator.breakdown(table_session, clock())
    second = accumulator.breakdown(table_session, clock())

    assert first == second
    assert db_session.query(SeatChargeEvent).filter_by(session_id=table_session.id).count() == 1


def test_price_change_does_not_touch_open_interval(db_session, venue, clock):
    _, table_session = _running_session(db_session, venue, clock)
    venue["standard"].price_per_unit = 5000
    db_session.commit()
    clock.advance(minutes=10)

    assert ChargeAccumulator(db_session).current_charge(table_session, clock()) == 1000


def test_move_charges_are_summed_verbatim(db_session, venue, clock):
    controller, table_session = _running_session(db_session, venue, clock)
    clock.advance(minutes=45)
    controller.move(table_session.id, venue["v1"].id)
    clock.advance(minutes=61)

    breakdown = ChargeAccumulator(db_session).breakdown(table_session, clock())
    assert breakdown.move_charge == 2000
    assert breakdown.table_charge == 4000
    assert breakdown.charge_amount == 6000


def test_ledger_first_billed_at_survives_moves(db_session, venue, clock):
    controller, table_session = _running_session(db_session, venue, clock)
    started = table_session.charge_started_at
    clock.advance(minutes=15)
    controller.move(table_session.id, venue["t2"].id)

    ledger = SeatChargeLedger(db_session)
    assert ledger.first_billed_at(table_session.id) == started
    assert table_session.charge_started_at == clock()
