from datetime import timedelta

from seatclock.models import Cast, SeatType, Store, Table
from seatclock.services.archive_service import ArchiveRecorder
from seatclock.services.session_service import SessionController

from test_archive_service import _checkout, _facts
from conftest import T0


def test_venue_setup_commands(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["venue", "create-store", "--name", "Ginza", "--code", "GNZ",
                                 "--timezone", "Asia/Tokyo", "--tax-rate", "8.25"])
    assert "PASS Created store" in result.output
    store = db_session.query(Store).filter_by(code="GNZ").one()
    assert store.tax_rate_bps == 825

    result = runner.invoke(args=["venue", "create-seat-type", "--store-id", str(store.id),
                                 "--name", "Counter", "--price", "1500", "--unit-minutes", "20"])
    assert "PASS Created seat type" in result.output
    seat_type = db_session.query(SeatType).filter_by(store_id=store.id).one()
    assert (seat_type.price_per_unit, seat_type.time_unit_minutes) == (1500, 20)

    result = runner.invoke(args=["venue", "create-table", "--store-id", str(store.id),
                                 "--name", "C1", "--seat-type-id", str(seat_type.id)])
    assert "PASS Created table" in result.output
    result = runner.invoke(args=["venue", "create-table", "--store-id", str(store.id),
                                 "--name", "C1", "--seat-type-id", str(seat_type.id)])
    assert "FAIL" in result.output
    assert db_session.query(Table).filter_by(store_id=store.id).count() == 1

    result = runner.invoke(args=["venue", "create-cast", "--store-id", str(store.id), "--name", "Mio", "--fee", "2500"])
    assert "PASS Created cast" in result.output
    assert db_session.query(Cast).filter_by(store_id=store.id).one().nomination_fee == 2500

    result = runner.invoke(args=["venue", "create-store", "--name", "Bad", "--tax-rate", "8.125"])
    assert result.exit_code != 0


def test_list_open_sessions(app, db_session, venue, clock):
    runner = app.test_cli_runner()
    assert "No open sessions." in runner.invoke(args=["sessions", "list-open"]).output

    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id, guest_count=4)
    controller.start_charge(table_session.id)

    result = runner.invoke(args=["sessions", "list-open", "--store-id", str(venue["store"].id)])
    assert "T1" in result.output
    assert "RUNNING" in result.output


def test_checkout_history_command(app, db_session, venue):
    facts = _facts(venue, [], checkout_at=T0 + timedelta(minutes=30))
    _checkout(db_session, facts)
    ArchiveRecorder(db_session).record(facts)
    db_session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["checkouts", "history", "--store-id", str(venue["store"].id)])
    assert "1 checkouts" in result.output

    empty = runner.invoke(args=["checkouts", "history", "--store-id", str(venue["store"].id),
                                "--start", "2030-01-01T00:00:00Z"])
    assert "No checkouts found." in empty.output
