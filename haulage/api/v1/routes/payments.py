from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from haulage.api.deps import Principal, get_gateway, get_relay, require_roles
from haulage.db.session import get_db
from haulage.schemas.booking import BookingOut
from haulage.schemas.payments import InitiatePaymentIn, OrderOut, VerifyPaymentIn
from haulage.services import payment_service

router = APIRouter(prefix="/payments", tags=["payments"])

customer = require_roles("customer")


@router.post("/initiate", response_model=OrderOut)
def initiate(body: InitiatePaymentIn, db: Session = Depends(get_db), gateway=Depends(get_gateway),
             me: Principal = Depends(customer)):
    return payment_service.initiate_payment(db, gateway, me.id, body.bookingId)


@router.post("/verify", response_model=BookingOut)
def verify(body: VerifyPaymentIn, db: Session = Depends(get_db), gateway=Depends(get_gateway),
           relay=Depends(get_relay), me: Principal = Depends(customer)):
    b = payment_service.verify_payment(
        db, gateway, relay, me.id, order_id=body.orderId, payment_id=body.paymentId, signature=body.signature,
    )
    return BookingOut.from_booking(b)


@router.post("/cash", response_model=BookingOut)
def confirm_cash(body: InitiatePaymentIn, db: Session = Depends(get_db), relay=Depends(get_relay),
                 me: Principal = Depends(customer)):
    return BookingOut.from_booking(payment_service.confirm_cash(db, relay, me.id, body.bookingId))
