import pytest

from seatclock.models import SeatChargeEvent, TableSession
from seatclock.models.sessions import CLOCK_NOT_STARTED, CLOCK_PAUSED, CLOCK_RUNNING
from seatclock.services.charge_service import ChargeAccumulator
from seatclock.services.errors import (
    CastNotFound,
    ClockStateError,
    SessionNotFound,
    TableNotFound,
    TableOccupiedError,
    ValidationError,
)
from seatclock.services.session_service import MOVE_CHARGE_OFFSET, SessionController


def _events(db_session, session_id):
    return (
        db_session.query(SeatChargeEvent)
        .filter_by(session_id=session_id)
        .order_by(SeatChargeEvent.changed_at, SeatChargeEvent.id)
        .all()
    )


def test_seat_opens_not_started_session(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id, guest_count=3, is_new_customer=True)

    assert table_session.clock_state == CLOCK_NOT_STARTED
    assert table_session.start_at == clock()
    assert table_session.guest_count == 3
    assert table_session.is_new_customer is True
    assert _events(db_session, table_session.id) == []


def test_seat_rejects_occupied_table(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    controller.seat(venue["t1"].id)

    with pytest.raises(TableOccupiedError):
        controller.seat(venue["t1"].id)
    assert db_session.query(TableSession).count() == 1


def test_seat_validates_input(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)

    with pytest.raises(TableNotFound):
        controller.seat(99999)
    with pytest.raises(ValidationError):
        controller.seat(venue["t1"].id, guest_count=0)
    with pytest.raises(CastNotFound):
        controller.seat(venue["t1"].id, selected_cast_id=99999)


def test_start_appends_first_ledger_event(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    clock.advance(minutes=5)
    controller.start_charge(table_session.id)

    events = _events(db_session, table_session.id)
    assert table_session.clock_state == CLOCK_RUNNING
    assert table_session.charge_started_at == clock()
    assert len(events) == 1
    assert events[0].is_table_move_charge is False
    assert events[0].price_snapshot == 1000
    assert events[0].seat_type_id == venue["standard"].id
    assert events[0].changed_at == clock()


def test_invalid_transitions_raise_clock_state_error(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)

    with pytest.raises(ClockStateError):
        controller.pause(table_session.id)
    with pytest.raises(ClockStateError):
        controller.resume(table_session.id)
    with pytest.raises(ClockStateError):
        controller.move(table_session.id, venue["t2"].id)

    controller.start_charge(table_session.id)
    with pytest.raises(ClockStateError):
        controller.start_charge(table_session.id)
    with pytest.raises(ClockStateError):
        controller.resume(table_session.id)

    controller.pause(table_session.id)
    assert table_session.clock_state == CLOCK_PAUSED
    with pytest.raises(ClockStateError):
        controller.pause(table_session.id)
    with pytest.raises(ClockStateError):
        controller.move(table_session.id, venue["t2"].id)


def test_pause_and_resume_do_not_append_events(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=10)
    controller.pause(table_session.id)
    clock.advance(minutes=5)
    controller.resume(table_session.id)

    assert len(_events(db_session, table_session.id)) == 1
    assert table_session.charge_paused_at is None


def test_unknown_session(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    with pytest.raises(SessionNotFound):
        controller.start_charge(424242)
    with pytest.raises(SessionNotFound):
        controller.get(424242)


def test_move_closes_source_interval_and_opens_destination(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=45)
    move_at = clock()

    result = controller.move(table_session.id, venue["v1"].id)

    events = _events(db_session, table_session.id)
    assert [e.is_table_move_charge for e in events] == [False, True, False]
    move_event, open_event = events[1], events[2]
    assert move_event.price_snapshot == 2000
    assert move_event.seat_type_id == venue["standard"].id
    assert move_event.changed_at == move_at - MOVE_CHARGE_OFFSET
    assert open_event.seat_type_id == venue["vip"].id
    assert open_event.price_snapshot == 2000
    assert open_event.changed_at == move_at

    assert table_session.table_id == venue["v1"].id
    assert table_session.charge_started_at == move_at
    assert result.applied_charge == 2000
    assert result.closed_interval.full_unit_charge == 1000
    assert result.closed_interval.partial_unit_charge == 1000
    assert result.to_dict()["from_table_id"] == venue["t1"].id


def test_move_conserves_source_charge(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    accumulator = ChargeAccumulator(db_session)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=47)

    before = accumulator.current_charge(table_session, clock())
    controller.move(table_session.id, venue["t2"].id)
    after = accumulator.breakdown(table_session, clock())

    assert after.move_charge == before
    # the destination interval starts at its minimum unit
    assert after.table_charge == 1000
    assert after.charge_amount == before + 1000


def test_move_after_pause_excludes_paused_span(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=20)
    controller.pause(table_session.id)
    clock.advance(minutes=60)
    controller.resume(table_session.id)
    clock.advance(minutes=5)

    result = controller.move(table_session.id, venue["t2"].id)

    assert result.applied_charge == 1000
    assert table_session.charge_paused_ms == 0


def test_move_rejects_occupied_destination(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    mover = controller.seat(venue["t1"].id)
    controller.seat(venue["t2"].id)
    controller.start_charge(mover.id)
    clock.advance(minutes=10)

    with pytest.raises(TableOccupiedError):
        controller.move(mover.id, venue["t2"].id)

    assert len(_events(db_session, mover.id)) == 1
    assert controller.get(mover.id).table_id == venue["t1"].id


def test_move_rejects_same_table_and_missing_table(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)

    with pytest.raises(ValidationError):
        controller.move(table_session.id, venue["t1"].id)
    with pytest.raises(TableNotFound):
        controller.move(table_session.id, 99999)


def test_preview_move_writes_nothing(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=31)

    preview = controller.preview_move(table_session.id)

    assert preview.amount == 2000
    assert preview.full_unit_charge == 1000
    assert preview.partial_unit_charge == 1000
    assert len(_events(db_session, table_session.id)) == 1
    assert table_session.table_id == venue["t1"].id


def test_open_sessions_by_store(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    controller.seat(venue["t1"].id)
    clock.advance(minutes=1)
    controller.seat(venue["v1"].id)

    sessions = controller.open_sessions(venue["store"].id)
    assert [s.table_id for s in sessions] == [venue["t1"].id, venue["v1"].id]
    assert controller.open_sessions(venue["store"].id + 1000) == []


def test_move_close_out_drops_partial_minute_like_checkout(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    accumulator = ChargeAccumulator(db_session)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=30, seconds=30)

    before = accumulator.current_charge(table_session, clock())
    result = controller.move(table_session.id, venue["t2"].id)

    assert before == 1000
    assert result.applied_charge == 1000
    assert result.closed_interval.full_units == 1
    assert result.closed_interval.partial_units == 0
