import json

import httpx
import pytest

from seatclock.models import (
    Checkout,
    CheckoutHistory,
    CheckoutNomination,
    CheckoutOrderItem,
    Order,
    PosIntegration,
    SeatChargeEvent,
    TableSession,
)
from seatclock.models.checkouts import CHECKOUT_STATUS_COMPLETED, CHECKOUT_STATUS_PENDING
from seatclock.models.orders import ORDER_STATUS_CANCEL, ORDER_STATUS_CLOSED
from seatclock.pos import PosClient, PosSyncService
from seatclock.services import archive_service
from seatclock.services.checkout_service import CheckoutOrchestrator
from seatclock.services.errors import ArchivalError, PosSyncError, SessionNotFound, TableChargeComputationError
from seatclock.services.nomination_service import NominationService
from seatclock.services.order_service import OrderService
from seatclock.services.session_service import SessionController

from conftest import T0


def _orchestrator(db_session, clock, pos_sync=None):
    return CheckoutOrchestrator(db_session, clock=clock, pos_sync=pos_sync, default_tax_rate_bps=1000)


def _pos_sync(handler):
    client = PosClient(sandbox=True, http=httpx.Client(transport=httpx.MockTransport(handler)))
    return PosSyncService(client, id_factory=lambda: "1234567890")


@pytest.fixture
def worked_example(db_session, venue, clock):
    """Standard seat from T0, orders worth 2500, one 3000 nomination, checkout at T0+95min."""
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id, guest_count=2, is_new_customer=True)
    controller.start_charge(table_session.id)

    orders = OrderService(db_session, clock=clock)
    clock.advance(minutes=5)
    orders.place_order(table_session.id, [
        {"product_id": "10001", "product_name": "Highball", "price": 800, "quantity": 2},
        {"product_id": "wine-house", "product_name": "House wine", "price": 900, "quantity": 1,
         "target_cast_id": venue["aoi"].id},
    ])
    clock.advance(minutes=1)
    NominationService(db_session, clock=clock).add(table_session.id, venue["aoi"].id)

    clock.advance(minutes=89)
    return table_session.id


def test_worked_example_totals(db_session, venue, clock, worked_example):
    result = _orchestrator(db_session, clock).checkout(worked_example)
    data = result.to_dict()

    assert data["chargeAmount"] == 4000
    assert data["orderAmount"] == 2500
    assert data["nominationFee"] == 3000
    assert data["totalAmount"] == 9500
    assert data["subtotalAmount"] == 8636
    assert data["taxAmount"] == 864
    assert data["taxRatePercent"] == 10.0
    assert data["guestCount"] == 2
    assert data["nominations"] == [
        {"castId": venue["aoi"].id, "castName": "Aoi", "fee": 3000, "nominatedAt": "2026-10-19T19:06:00Z"},
    ]
    assert data["warnings"] == []

    checkout = db_session.get(Checkout, data["checkoutId"])
    assert checkout.status == CHECKOUT_STATUS_COMPLETED
    assert checkout.pos_receipt_id is None
    assert checkout.total_amount == 9500
    assert checkout.tax_rate_bps == 1000


def test_checkout_frees_table_and_removes_session_state(db_session, venue, clock, worked_example):
    _orchestrator(db_session, clock).checkout(worked_example)

    assert db_session.get(TableSession, worked_example) is None
    assert db_session.query(SeatChargeEvent).filter_by(session_id=worked_example).count() == 0
    assert db_session.query(Order).filter_by(session_id=worked_example).count() == 0

    reseated = SessionController(db_session, clock=clock).seat(venue["t1"].id)
    assert reseated.table_id == venue["t1"].id


def test_second_checkout_finds_no_session(db_session, venue, clock, worked_example):
    orchestrator = _orchestrator(db_session, clock)
    orchestrator.checkout(worked_example)

    with pytest.raises(SessionNotFound):
        orchestrator.checkout(worked_example)
    assert db_session.query(Checkout).filter_by(session_id=worked_example).count() == 1


def test_checkout_is_archived(db_session, venue, clock, worked_example):
    result = _orchestrator(db_session, clock).checkout(worked_example)

    history = db_session.query(CheckoutHistory).filter_by(checkout_id=result.checkout.id).one()
    assert history.session_id == worked_example
    assert history.table_name == "T1"
    assert history.seat_type_name == "Standard"
    assert history.stay_minutes == 95
    assert history.billing_started_at == T0
    assert history.total_amount == 9500
    assert history.subtotal_amount == 8636
    assert history.is_new_customer is True

    items = db_session.query(CheckoutOrderItem).filter_by(history_id=history.id).order_by(CheckoutOrderItem.id).all()
    assert [(i.product_name, i.subtotal, i.target_cast_name) for i in items] == [
        ("Highball", 1600, None),
        ("House wine", 900, "Aoi"),
    ]
    assert items[0].ordered_at == T0.replace(minute=5)

    nominations = db_session.query(CheckoutNomination).filter_by(history_id=history.id).all()
    assert [(n.cast_name, n.fee) for n in nominations] == [("Aoi", 3000)]


def test_closed_and_cancelled_orders_are_not_billed(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    orders = OrderService(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)

    billed = orders.place_order(table_session.id, [{"product_id": "1", "product_name": "Tea", "price": 500}])
    cancelled = orders.place_order(table_session.id, [{"product_id": "2", "product_name": "Beer", "price": 700}])
    orders.set_status(cancelled.id, ORDER_STATUS_CANCEL)
    settled = orders.place_order(table_session.id, [{"product_id": "3", "product_name": "Sake", "price": 900}])
    for status in ("ack", "prep", "served", ORDER_STATUS_CLOSED):
        orders.set_status(settled.id, status)

    result = _orchestrator(db_session, clock).checkout(table_session.id)

    assert billed.id in result.facts.order_ids
    assert result.facts.order_amount == 500
    assert result.facts.charge_amount == 0


def test_legacy_selected_cast_fee_applies_without_nominations(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id, selected_cast_id=venue["rin"].id)

    result = _orchestrator(db_session, clock).checkout(table_session.id)

    assert result.facts.nomination_fee == 2000
    assert len(result.facts.nominations) == 1
    assert result.facts.nominations[0].legacy is True


def test_nomination_rows_take_precedence_over_legacy_cast(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id, selected_cast_id=venue["rin"].id)
    nominations = NominationService(db_session, clock=clock)
    nominations.add(table_session.id, venue["aoi"].id)
    nominations.add(table_session.id, venue["aoi"].id, nomination_fee=1500)

    result = _orchestrator(db_session, clock).checkout(table_session.id)

    assert result.facts.nomination_fee == 4500
    assert [n.cast_id for n in result.facts.nominations] == [venue["aoi"].id, venue["aoi"].id]


def test_paused_session_bills_up_to_pause(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=25)
    controller.pause(table_session.id)
    clock.advance(hours=2)

    result = _orchestrator(db_session, clock).checkout(table_session.id)
    assert result.facts.charge_amount == 1000


def test_stay_minutes_ignore_move_clock_reset(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=40)
    controller.move(table_session.id, venue["v1"].id)
    clock.advance(minutes=20)

    result = _orchestrator(db_session, clock).checkout(table_session.id)
    history = db_session.query(CheckoutHistory).filter_by(checkout_id=result.checkout.id).one()

    assert result.facts.charge_amount == 2000 + 2000
    assert history.stay_minutes == 60
    assert history.table_name == "V1"
    assert history.seat_type_name == "VIP"


def test_charge_computation_failure_aborts_without_writes(db_session, venue, clock):
    controller = SessionController(db_session, clock=clock)
    table_session = controller.seat(venue["t1"].id)
    controller.start_charge(table_session.id)
    clock.advance(minutes=10)
    db_session.add(SeatChargeEvent(
        session_id=table_session.id,
        seat_type_id=venue["standard"].id,
        price_snapshot=-1,
        changed_at=clock(),
        is_table_move_charge=False,
    ))
    db_session.commit()
    clock.advance(minutes=10)

    with pytest.raises(TableChargeComputationError):
        _orchestrator(db_session, clock).checkout(table_session.id)

    assert db_session.query(Checkout).count() == 0
    assert db_session.get(TableSession, table_session.id) is not None


def test_pos_success_records_receipt(db_session, venue, clock, worked_example):
    store = venue["store"]
    store.pos_enabled = True
    db_session.add(PosIntegration(store_id=store.id, auth_mode="oauth", contract_id="sb", access_token="tok"))
    db_session.commit()

    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"transactionHeadId": "5501"})

    result = _orchestrator(db_session, clock, _pos_sync(handler)).checkout(worked_example)

    assert result.checkout.pos_receipt_id == "5501"
    assert result.warnings == []
    assert len(requests) == 1


def test_pos_failure_does_not_fail_checkout(db_session, venue, clock, worked_example):
    store = venue["store"]
    store.pos_enabled = True
    db_session.add(PosIntegration(store_id=store.id, auth_mode="oauth", contract_id="sb", access_token="tok"))
    db_session.commit()

    result = _orchestrator(
        db_session, clock, _pos_sync(lambda request: httpx.Response(503, text="maintenance"))
    ).checkout(worked_example)

    checkout = db_session.get(Checkout, result.checkout.id)
    assert checkout.status == CHECKOUT_STATUS_COMPLETED
    assert checkout.pos_receipt_id is None
    assert [w.step for w in result.warnings] == ["pos"]
    assert db_session.query(CheckoutHistory).filter_by(checkout_id=checkout.id).count() == 1
    assert db_session.get(TableSession, worked_example) is None


def test_pos_skipped_when_store_disabled(db_session, venue, clock, worked_example):
    def handler(request):
        raise AssertionError("provider must not be called")

    result = _orchestrator(db_session, clock, _pos_sync(handler)).checkout(worked_example)
    assert result.checkout.pos_receipt_id is None
    assert result.warnings == []


def test_archival_failure_does_not_fail_checkout(db_session, venue, clock, worked_example, monkeypatch):
    def broken_record(self, facts, checkout_id=None):
        raise ArchivalError("reporting store unavailable")

    monkeypatch.setattr(archive_service.ArchiveRecorder, "record", broken_record)

    result = _orchestrator(db_session, clock).checkout(worked_example)

    assert result.checkout.status == CHECKOUT_STATUS_COMPLETED
    assert [w.step for w in result.warnings] == ["archive"]
    assert db_session.query(CheckoutHistory).count() == 0
    assert db_session.get(TableSession, worked_example) is None


def _enable_pos(db_session, store, **store_fields):
    store.pos_enabled = True
    for name, value in store_fields.items():
        setattr(store, name, value)
    db_session.add(PosIntegration(store_id=store.id, auth_mode="oauth", contract_id="sb", access_token="tok"))
    db_session.commit()


def test_malformed_store_timezone_still_registers(db_session, venue, clock, worked_example):
    _enable_pos(db_session, venue["store"], timezone="Asia/Tokyo/")
    payloads = []

    def handler(request):
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"transactionHeadId": "5502"})

    result = _orchestrator(db_session, clock, _pos_sync(handler)).checkout(worked_example)

    checkout = db_session.get(Checkout, result.checkout.id)
    assert checkout.status == CHECKOUT_STATUS_COMPLETED
    assert checkout.pos_receipt_id == "5502"
    assert payloads[0]["terminalTranDateTime"] == "2026-10-19T20:35:00+00:00"
    assert db_session.get(TableSession, worked_example) is None


def test_unexpected_provider_exception_does_not_fail_checkout(db_session, venue, clock, worked_example):
    _enable_pos(db_session, venue["store"])

    def handler(request):
        raise RuntimeError("socket closed mid-request")

    result = _orchestrator(db_session, clock, _pos_sync(handler)).checkout(worked_example)

    checkout = db_session.get(Checkout, result.checkout.id)
    assert checkout.status == CHECKOUT_STATUS_COMPLETED
    assert checkout.pos_receipt_id is None
    assert [w.step for w in result.warnings] == ["pos"]
    assert isinstance(result.warnings[0].error, PosSyncError)
    assert "socket closed" in str(result.warnings[0].error)
    assert db_session.query(CheckoutHistory).filter_by(checkout_id=checkout.id).count() == 1
    assert db_session.get(TableSession, worked_example) is None


def test_unexpected_build_error_does_not_fail_checkout(db_session, venue, clock, worked_example, monkeypatch):
    _enable_pos(db_session, venue["store"])

    def broken_build(self, integration, facts):
        raise KeyError("provider_store_id")

    monkeypatch.setattr(PosSyncService, "build_transaction", broken_build)

    def handler(request):
        raise AssertionError("provider must not be called")

    result = _orchestrator(db_session, clock, _pos_sync(handler)).checkout(worked_example)

    assert result.checkout.status == CHECKOUT_STATUS_COMPLETED
    assert result.checkout.pos_receipt_id is None
    assert [w.step for w in result.warnings] == ["pos"]


def test_checkout_is_committed_before_provider_call(db_session, venue, clock, worked_example):
    _enable_pos(db_session, venue["store"])
    observed = {}

    def handler(request):
        observed["in_transaction"] = db_session().in_transaction()
        observed["status"] = db_session.query(Checkout.status).filter_by(session_id=worked_example).scalar()
        observed["session_open"] = db_session.get(TableSession, worked_example) is not None
        return httpx.Response(200, json={"transactionHeadId": "5503"})

    result = _orchestrator(db_session, clock, _pos_sync(handler)).checkout(worked_example)

    assert observed == {"in_transaction": False, "status": CHECKOUT_STATUS_PENDING, "session_open": False}
    assert result.checkout.status == CHECKOUT_STATUS_COMPLETED
    assert result.checkout.pos_receipt_id == "5503"
    assert result.checkout.completed_at is not None
