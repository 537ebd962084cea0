from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from haulage.api.deps import Principal, get_maps, get_relay, require_roles
from haulage.db.session import get_db
from haulage.schemas.booking import BookingOut, SettlementOut
from haulage.schemas.carrier import AcceptOut, CarrierOut, CarrierStatusIn, LocationIn
from haulage.schemas.wallet import BankDetailsIn, WithdrawalIn
from haulage.services import booking_service, carrier_registry, dispatch_service, wallet_service

router = APIRouter(prefix="/carrier", tags=["carrier"])

carrier = require_roles("carrier")


@router.get("/profile", response_model=CarrierOut)
def profile(db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return CarrierOut.from_carrier(carrier_registry.get_carrier(db, me.id))


@router.patch("/status", response_model=CarrierOut)
def set_status(body: CarrierStatusIn, db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return CarrierOut.from_carrier(carrier_registry.set_online(db, me.id, body.isOnline))


@router.post("/logout", response_model=CarrierOut)
def logout(db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return CarrierOut.from_carrier(carrier_registry.set_online(db, me.id, False))


@router.post("/location")
def location(body: LocationIn, db: Session = Depends(get_db), maps=Depends(get_maps), relay=Depends(get_relay),
             me: Principal = Depends(carrier)):
    return carrier_registry.report_location(db, maps, relay, me.id, body.lat, body.lng)


@router.get("/booking-requests", response_model=list[BookingOut])
def booking_requests(db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return [BookingOut.from_booking(b) for b in dispatch_service.pending_requests(db, me.id)]


@router.post("/bookings/{booking_id}/accept", response_model=AcceptOut)
def accept(booking_id: str, db: Session = Depends(get_db), maps=Depends(get_maps), relay=Depends(get_relay),
           me: Principal = Depends(carrier)):
    return booking_service.accept_booking(db, maps, relay, me.id, booking_id)


@router.post("/bookings/{booking_id}/reject")
def reject(booking_id: str, db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    booking_service.reject_booking(db, me.id, booking_id)
    return {"ok": True}


@router.post("/bookings/{booking_id}/start", response_model=BookingOut)
def start(booking_id: str, db: Session = Depends(get_db), relay=Depends(get_relay), me: Principal = Depends(carrier)):
    return BookingOut.from_booking(booking_service.start_trip(db, relay, me.id, booking_id))


@router.post("/bookings/{booking_id}/complete", response_model=SettlementOut)
def complete(booking_id: str, db: Session = Depends(get_db), maps=Depends(get_maps), relay=Depends(get_relay),
             me: Principal = Depends(carrier)):
    return SettlementOut.from_booking(booking_service.complete_trip(db, maps, relay, me.id, booking_id))


@router.post("/bookings/{booking_id}/close", response_model=BookingOut)
def close(booking_id: str, db: Session = Depends(get_db), relay=Depends(get_relay), me: Principal = Depends(carrier)):
    return BookingOut.from_booking(booking_service.close_trip(db, relay, me.id, booking_id))


@router.get("/trips/history")
def trips(page: int = 1, limit: int = 10, db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return booking_service.trip_history(db, me.id, page, limit)


# ---- wallet ----

@router.get("/wallet")
def wallet(db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return wallet_service.wallet_summary(db, me.id)


@router.get("/earnings")
def earnings(db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return wallet_service.earnings_summary(db, me.id)


@router.post("/bank-details")
def bank_details(body: BankDetailsIn, db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    w = wallet_service.set_bank_details(
        db, me.id,
        bank_name=body.bankName,
        bank_account_number=body.bankAccountNumber,
        ifsc_code=body.ifscCode,
        account_holder_name=body.accountHolderName,
        identity_linked=body.identityLinked,
    )
    return {
        "bankName": w.bank_name,
        "bankAccountNumber": w.bank_account_number,
        "ifscCode": w.ifsc_code,
        "identityLinked": w.identity_linked,
    }


@router.post("/withdrawals")
def request_withdrawal(body: WithdrawalIn, db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    w = wallet_service.request_withdrawal(db, me.id, body.amount)
    return {"requestId": w.id, "amount": w.amount, "status": w.status,
            "walletBalance": wallet_service.get_balance(db, me.id)}


@router.get("/withdrawals")
def withdrawals(db: Session = Depends(get_db), me: Principal = Depends(carrier)):
    return wallet_service.withdrawal_history(db, me.id)
