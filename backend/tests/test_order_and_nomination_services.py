import pytest

from seatclock.models.orders import ORDER_STATUS_CANCEL, ORDER_STATUS_CLOSED
from seatclock.services.errors import (
    CastNotFound,
    ConflictError,
    OrderNotFound,
    SessionNotFound,
    ValidationError,
)
from seatclock.services.nomination_service import NominationService
from seatclock.services.order_service import OrderService
from seatclock.services.session_service import SessionController


@pytest.fixture
def seated(db_session, venue, clock):
    return SessionController(db_session, clock=clock).seat(venue["t1"].id)


def test_place_order_snapshots_items(db_session, venue, clock, seated):
    order = OrderService(db_session, clock=clock).place_order(seated.id, [
        {"product_id": 10001, "product_name": "Highball", "price": 800, "quantity": 3},
    ])

    assert order.status == "new"
    assert order.items[0].product_id == "10001"
    assert order.total_amount == 2400


@pytest.mark.parametrize(
    "items",
    [
        [],
        [{"product_name": "x", "price": 1}],
        [{"product_id": "1", "product_name": "x", "price": -1}],
        [{"product_id": "1", "product_name": "x", "price": 100, "quantity": 0}],
        [{"product_id": "1", "product_name": "x", "price": "100"}],
    ],
)
def test_place_order_validation(db_session, venue, clock, seated, items):
    with pytest.raises(ValidationError):
        OrderService(db_session, clock=clock).place_order(seated.id, items)


def test_place_order_unknown_session_or_cast(db_session, venue, clock, seated):
    orders = OrderService(db_session, clock=clock)
    with pytest.raises(SessionNotFound):
        orders.place_order(99999, [{"product_id": "1", "product_name": "x", "price": 1}])
    with pytest.raises(CastNotFound):
        orders.place_order(seated.id, [{"product_id": "1", "product_name": "x", "price": 1, "target_cast_id": 99999}])


def test_status_machine(db_session, venue, clock, seated):
    orders = OrderService(db_session, clock=clock)
    order = orders.place_order(seated.id, [{"product_id": "1", "product_name": "Tea", "price": 500}])

    with pytest.raises(ConflictError):
        orders.set_status(order.id, "served")
    for status in ("ack", "prep", "served", ORDER_STATUS_CLOSED):
        assert orders.set_status(order.id, status).status == status
    with pytest.raises(ConflictError):
        orders.set_status(order.id, ORDER_STATUS_CANCEL)
    with pytest.raises(ValidationError):
        orders.set_status(order.id, "eaten")
    with pytest.raises(OrderNotFound):
        orders.set_status(99999, "ack")


def test_open_orders_and_close(db_session, venue, clock, seated):
    orders = OrderService(db_session, clock=clock)
    first = orders.place_order(seated.id, [{"product_id": "1", "product_name": "Tea", "price": 500}])
    second = orders.place_order(seated.id, [{"product_id": "2", "product_name": "Beer", "price": 700}])
    orders.set_status(second.id, ORDER_STATUS_CANCEL)

    assert [o.id for o in orders.open_orders(seated.id)] == [first.id]
    assert orders.close_orders([first.id, second.id]) == 1
    db_session.commit()
    assert orders.open_orders(seated.id) == []
    assert orders.close_orders([]) == 0


def test_nomination_fee_snapshot(db_session, venue, clock, seated):
    nominations = NominationService(db_session, clock=clock)
    nomination = nominations.add(seated.id, venue["aoi"].id)

    venue["aoi"].nomination_fee = 9999
    db_session.commit()

    assert nomination.nomination_fee == 3000
    fees = nominations.billable_fees(seated)
    assert [f.fee for f in fees] == [3000]


def test_nomination_explicit_fee_and_listing(db_session, venue, clock, seated):
    nominations = NominationService(db_session, clock=clock)
    nominations.add(seated.id, venue["aoi"].id, nomination_fee=1200)
    clock.advance(minutes=3)
    nominations.add(seated.id, venue["rin"].id)

    listed = nominations.list_for_session(seated.id)
    assert [(n["display_name"], n["nomination_fee"]) for n in listed] == [("Rin", 2000), ("Aoi", 1200)]


def test_nomination_rejects_unknown_or_inactive_cast(db_session, venue, clock, seated):
    nominations = NominationService(db_session, clock=clock)
    venue["rin"].is_active = False
    db_session.commit()

    with pytest.raises(CastNotFound):
        nominations.add(seated.id, venue["rin"].id)
    with pytest.raises(CastNotFound):
        nominations.add(seated.id, 99999)
    with pytest.raises(SessionNotFound):
        nominations.add(99999, venue["aoi"].id)
    with pytest.raises(ValidationError):
        nominations.add(seated.id, venue["aoi"].id, nomination_fee=-5)


def test_legacy_fee_is_single_and_optional(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    with_cast = controller.seat(venue["t1"].id, selected_cast_id=venue["aoi"].id)
    without_cast = controller.seat(venue["t2"].id)
    nominations = NominationService(db_session, clock=clock)

    fees = nominations.billable_fees(with_cast)
    assert [(f.cast_id, f.fee, f.legacy) for f in fees] == [(venue["aoi"].id, 3000, True)]
    assert nominations.billable_fees(without_cast) == []
