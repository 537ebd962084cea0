"""Races exercised with real threads, one session each, against a file-backed SQLite DB."""

import threading
from decimal import Decimal

import pytest

from haulage.core.errors import InsufficientBalance, InvalidState
from haulage.models.booking import ASSIGNED_STATES, Booking, BookingStatus, PaymentStatus
from haulage.models.carrier import Carrier
from haulage.models.wallet import WithdrawalRequest
from haulage.services import booking_service, payment_service, wallet_service

from conftest import REQUESTER, FakeGateway


def _run_together(n, target):
    barrier = threading.Barrier(n)
    outcomes = [None] * n

    def _worker(i):
        barrier.wait()
        try:
            outcomes[i] = ("ok", target(i))
        except Exception as exc:  # collected and asserted on below
            outcomes[i] = ("err", exc)

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_exactly_one_carrier_wins_the_booking(db, session_factory, maps, relay, make_carrier, confirmed_booking):
    carriers = [make_carrier() for _ in range(6)]
    booking = confirmed_booking()
    assert booking.status == BookingStatus.CONFIRMED

    def _accept(i):
        session = session_factory()
        try:
            return booking_service.accept_booking(session, maps, relay, carriers[i].id, booking.id)
        finally:
            session.close()

    outcomes = _run_together(len(carriers), _accept)

    wins = [o for o in outcomes if o[0] == "ok"]
    losses = [o for o in outcomes if o[0] == "err"]
    assert len(wins) == 1
    assert len(losses) == len(carriers) - 1
    assert all(isinstance(exc, InvalidState) for _, exc in losses)

    check = session_factory()
    try:
        b = check.get(Booking, booking.id)
        assert b.status == BookingStatus.DRIVER_ASSIGNED
        busy = check.query(Carrier).filter(Carrier.is_on_trip == True).all()
        assert [c.id for c in busy] == [b.carrier_id]
        assert check.query(Carrier).filter(Carrier.is_available == True).count() == len(carriers) - 1
    finally:
        check.close()


def test_concurrent_debits_never_overdraw(db, session_factory):
    wallet_service.credit(db, "carrier-x", Decimal("500"))

    def _debit(i):
        session = session_factory()
        try:
            return wallet_service.debit(session, "carrier-x", Decimal("500"))
        finally:
            session.close()

    outcomes = _run_together(2, _debit)

    assert [o[0] for o in outcomes].count("ok") == 1
    errors = [exc for kind, exc in outcomes if kind == "err"]
    assert len(errors) == 1 and isinstance(errors[0], InsufficientBalance)
    assert wallet_service.get_balance(db, "carrier-x") == Decimal("0")


def test_concurrent_withdrawals_hold_at_most_the_balance(db, session_factory):
    wallet_service.credit(db, "carrier-y", Decimal("1000"))
    wallet_service.set_bank_details(
        db, "carrier-y",
        bank_name="State Bank", bank_account_number="1234567890", ifsc_code="SBIN0000001", identity_linked=True,
    )

    def _withdraw(i):
        session = session_factory()
        try:
            return wallet_service.request_withdrawal(session, "carrier-y", Decimal("300")).id
        finally:
            session.close()

    outcomes = _run_together(5, _withdraw)

    assert [o[0] for o in outcomes].count("ok") == 3
    assert wallet_service.get_balance(db, "carrier-y") == Decimal("100")
    assert db.query(WithdrawalRequest).filter(WithdrawalRequest.carrier_id == "carrier-y").count() == 3


class _GatewayWithRefundHook(FakeGateway):
    """Runs ``during_refund`` while the refund call is in flight."""

    def __init__(self, during_refund):
        super().__init__()
        self.during_refund = during_refund

    def refund(self, **kwargs):
        self.during_refund()
        return super().refund(**kwargs)


def _paid_online(db, gateway, relay, selected_booking):
    b = selected_booking()
    booking_service.payment_preview(db, REQUESTER)
    order = payment_service.initiate_payment(db, gateway, REQUESTER)
    return payment_service.verify_payment(
        db, gateway, relay, REQUESTER,
        order_id=order["orderId"], payment_id="pay_042", signature=gateway.sign(order["orderId"], "pay_042"),
    )


def _in_own_session(session_factory, fn):
    def _run():
        session = session_factory()
        try:
            fn(session)
        finally:
            session.close()
    return _run


def test_carrier_accepting_during_refund_is_released(db, session_factory, maps, relay, make_carrier, selected_booking):
    carrier_id = make_carrier().id
    booking_id = {}

    def _accept(session):
        booking_service.accept_booking(session, maps, relay, carrier_id, booking_id["id"])

    gw = _GatewayWithRefundHook(_in_own_session(session_factory, _accept))
    b = _paid_online(db, gw, relay, selected_booking)
    booking_id["id"] = b.id
    assert b.carrier_id is None

    b = booking_service.cancel(db, gw, relay, REQUESTER, b.id)

    assert b.status == BookingStatus.CANCELLED
    assert b.carrier_id is None
    assert b.payment_status == PaymentStatus.REFUND_INITIATED
    assert len(gw.refunds) == 1
    carrier = db.get(Carrier, carrier_id)
    db.refresh(carrier)
    assert carrier.is_on_trip is False
    assert carrier.is_available is True
    assert ("carrier", carrier_id) in [e[:2] for e in relay.named("booking:cancelled")]


def test_trip_started_during_refund_keeps_the_trip(db, session_factory, maps, relay, make_carrier, selected_booking):
    carrier_id = make_carrier().id
    booking_id = {}

    def _accept_and_start(session):
        booking_service.accept_booking(session, maps, relay, carrier_id, booking_id["id"])
        booking_service.start_trip(session, relay, carrier_id, booking_id["id"])

    gw = _GatewayWithRefundHook(_in_own_session(session_factory, _accept_and_start))
    b = _paid_online(db, gw, relay, selected_booking)
    booking_id["id"] = b.id

    with pytest.raises(InvalidState):
        booking_service.cancel(db, gw, relay, REQUESTER, b.id)

    db.refresh(b)
    assert b.status == BookingStatus.TRIP_STARTED
    assert b.carrier_id == carrier_id
    # the gateway accepted the refund, so its record stays
    assert b.payment_status == PaymentStatus.REFUND_INITIATED
    assert b.gateway_refund_id == gw.refunds[0]["id"]
    assert len(gw.refunds) == 1
    carrier = db.get(Carrier, carrier_id)
    db.refresh(carrier)
    assert carrier.is_on_trip is True


def test_cancel_racing_accept_never_strands_the_carrier(db, session_factory, maps, gateway, relay, make_carrier, confirmed_booking):
    carrier_id = make_carrier().id
    booking_id = confirmed_booking().id

    def _race(i):
        session = session_factory()
        try:
            if i == 0:
                return booking_service.cancel(session, gateway, relay, REQUESTER, booking_id).status
            return booking_service.accept_booking(session, maps, relay, carrier_id, booking_id)
        finally:
            session.close()

    outcomes = _run_together(2, _race)

    assert outcomes[0] == ("ok", BookingStatus.CANCELLED)
    assert outcomes[1][0] == "ok" or isinstance(outcomes[1][1], InvalidState)

    check = session_factory()
    try:
        b = check.get(Booking, booking_id)
        assert b.status == BookingStatus.CANCELLED
        assert (b.carrier_id is not None) == (b.status in ASSIGNED_STATES)
        carrier = check.get(Carrier, carrier_id)
        assert carrier.is_on_trip is False
        assert carrier.is_available is True
    finally:
        check.close()
