import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from haulage.core.config import settings
from haulage.core.errors import InvalidState, NotFound, SignatureInvalid
from haulage.models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from haulage.services import dispatch_service
from haulage.services.audit_service import log_audit
from haulage.services.fare_model import to_minor_units
from haulage.services.razorpay_client import signature_matches
from haulage.services.relay import Relay

logger = logging.getLogger(__name__)


def latest_booking(db: Session, requester_id: str, statuses, booking_id: str | None = None) -> Booking | None:
    """Requester's most recent booking in one of ``statuses`` (or that exact booking when an id is given)."""
    stmt = select(Booking).where(Booking.requester_id == requester_id, Booking.status.in_(list(statuses)))
    if booking_id:
        stmt = stmt.where(Booking.id == booking_id)
    return db.execute(stmt.order_by(Booking.created_at.desc()).limit(1)).scalar_one_or_none()


def initiate_payment(db: Session, gateway, requester_id: str, booking_id: str | None = None) -> dict:
    booking = latest_booking(db, requester_id, [BookingStatus.PAYMENT_PREVIEW], booking_id)
    if not booking:
        raise NotFound("No booking awaiting payment")
    if booking.payable_amount is None:
        raise InvalidState("Payable amount has not been computed")

    amount_minor = to_minor_units(booking.payable_amount)
    # gateway call first: a failure leaves the booking in PAYMENT_PREVIEW
    order = gateway.create_order(amount_minor=amount_minor, currency=settings.CURRENCY, receipt=booking.booking_ref)

    booking.gateway_order_id = order["id"]
    booking.payment_method = PaymentMethod.ONLINE
    booking.payment_status = PaymentStatus.CREATED
    booking.transition(BookingStatus.PAYMENT_INITIATED)
    log_audit(db, requester_id, "payment.order_created", "booking", booking.id, {
        "orderId": order["id"], "amountMinor": amount_minor,
    })
    db.commit()
    logger.info("order %s created for booking %s", order["id"], booking.booking_ref,
                extra={"booking_id": booking.id, "order_id": order["id"]})

    return {
        "bookingId": booking.id,
        "bookingRef": booking.booking_ref,
        "orderId": order["id"],
        "amount": amount_minor,
        "currency": settings.CURRENCY,
        "keyId": gateway.key_id,
    }


def verify_payment(db: Session, gateway, relay: Relay, requester_id: str, *, order_id: str, payment_id: str, signature: str) -> Booking:
    booking = db.execute(
        select(Booking).where(Booking.gateway_order_id == order_id, Booking.requester_id == requester_id)
    ).scalar_one_or_none()
    if not booking:
        raise NotFound("Booking not found for this order")
    if booking.status != BookingStatus.PAYMENT_INITIATED:
        raise InvalidState(f"Booking {booking.booking_ref} is not awaiting payment verification")

    if not signature_matches(gateway.key_secret, order_id, payment_id, signature):
        booking.payment_status = PaymentStatus.FAILED
        booking.transition(BookingStatus.PAYMENT_FAILED)
        log_audit(db, requester_id, "payment.signature_invalid", "booking", booking.id, {
            "orderId": order_id, "paymentId": payment_id,
        })
        db.commit()
        logger.warning("signature mismatch for order %s", order_id, extra={"booking_id": booking.id, "order_id": order_id})
        raise SignatureInvalid("Payment signature verification failed")

    booking.gateway_payment_id = payment_id
    booking.gateway_signature = signature
    booking.payment_status = PaymentStatus.SUCCESS
    booking.transition(BookingStatus.CONFIRMED)
    log_audit(db, requester_id, "payment.verified", "booking", booking.id, {
        "orderId": order_id, "paymentId": payment_id, "amount": booking.payable_amount,
    })
    db.commit()
    db.refresh(booking)

    dispatch_service.dispatch_confirmed(db, relay, booking)
    db.refresh(booking)
    return booking


def confirm_cash(db: Session, relay: Relay, requester_id: str, booking_id: str | None = None) -> Booking:
    booking = latest_booking(db, requester_id, [BookingStatus.PAYMENT_PREVIEW], booking_id)
    if not booking:
        raise NotFound("No booking awaiting payment")

    booking.payment_method = PaymentMethod.CASH
    booking.payment_status = PaymentStatus.PENDING
    booking.transition(BookingStatus.CONFIRMED)
    log_audit(db, requester_id, "payment.cash_selected", "booking", booking.id, {"amount": booking.payable_amount})
    db.commit()
    db.refresh(booking)

    dispatch_service.dispatch_confirmed(db, relay, booking)
    db.refresh(booking)
    return booking


def refund_booking(db: Session, gateway, booking: Booking, actor_id: str) -> bool:
    """Refund the full payable amount of a paid online booking. Does not commit.

    Returns False when nothing was captured online. Gateway errors propagate
    before the booking is touched.
    """
    if booking.payment_method != PaymentMethod.ONLINE or booking.payment_status != PaymentStatus.SUCCESS:
        return False

    amount_minor = to_minor_units(booking.payable_amount)
    ack = gateway.refund(payment_id=booking.gateway_payment_id, amount_minor=amount_minor)

    booking.gateway_refund_id = ack.get("id")
    booking.payment_status = PaymentStatus.REFUND_INITIATED
    log_audit(db, actor_id, "payment.refund_initiated", "booking", booking.id, {
        "paymentId": booking.gateway_payment_id, "refundId": booking.gateway_refund_id,
        "amountMinor": amount_minor, "at": datetime.now(timezone.utc),
    })
    logger.info("refund %s initiated for booking %s", booking.gateway_refund_id, booking.booking_ref,
                extra={"booking_id": booking.id})
    return True
