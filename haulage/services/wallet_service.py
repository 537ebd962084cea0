"""Carrier wallet ledger.

Balance changes are single UPDATE statements evaluated by the database, so a
credit never overwrites a concurrent debit and a debit can never take the
balance below zero.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from haulage.core.errors import InsufficientBalance, InvalidState, NotFound, PayoutNotConfigured
from haulage.models.booking import Booking, BookingStatus
from haulage.models.wallet import Wallet, WithdrawalRequest, WithdrawalStatus
from haulage.services.audit_service import log_audit
from haulage.services.fare_model import to_money

logger = logging.getLogger(__name__)

SETTLED_STATES = (BookingStatus.TRIP_COMPLETED, BookingStatus.COMPLETED)


def ensure_wallet(db: Session, carrier_id: str) -> Wallet:
    wallet = db.get(Wallet, carrier_id)
    if not wallet:
        wallet = Wallet(carrier_id=carrier_id, balance=Decimal("0"), identity_linked=False)
        db.add(wallet)
        db.flush()
    return wallet


def get_balance(db: Session, carrier_id: str) -> Decimal:
    balance = db.execute(select(Wallet.balance).where(Wallet.carrier_id == carrier_id)).scalar_one_or_none()
    return to_money(balance or 0)


def credit(db: Session, carrier_id: str, amount, commit: bool = True) -> None:
    amount = to_money(amount)
    if amount < 0:
        raise ValueError("credit amount must be >= 0")
    ensure_wallet(db, carrier_id)
    db.execute(
        update(Wallet)
        .where(Wallet.carrier_id == carrier_id)
        .values(balance=Wallet.balance + amount)
        .execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()
    logger.info("credited %s to carrier %s", amount, carrier_id, extra={"carrier_id": carrier_id})


def debit(db: Session, carrier_id: str, amount, commit: bool = True) -> None:
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")
    result = db.execute(
        update(Wallet)
        .where(Wallet.carrier_id == carrier_id, Wallet.balance >= amount)
        .values(balance=Wallet.balance - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InsufficientBalance("Insufficient balance")
    if commit:
        db.commit()


def set_bank_details(
    db: Session,
    carrier_id: str,
    *,
    bank_name: str,
    bank_account_number: str,
    ifsc_code: str,
    account_holder_name: str | None = None,
    identity_linked: bool = False,
) -> Wallet:
    wallet = ensure_wallet(db, carrier_id)
    wallet.bank_name = bank_name
    wallet.bank_account_number = bank_account_number
    wallet.ifsc_code = ifsc_code.upper()
    wallet.account_holder_name = account_holder_name
    wallet.identity_linked = identity_linked
    db.commit()
    db.refresh(wallet)
    return wallet


def request_withdrawal(db: Session, carrier_id: str, amount) -> WithdrawalRequest:
    wallet = db.get(Wallet, carrier_id)
    if not wallet or not wallet.payout_configured:
        raise PayoutNotConfigured("Add bank details and link identity before withdrawal")
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")

    debit(db, carrier_id, amount, commit=False)
    withdrawal = WithdrawalRequest(
        id=str(uuid.uuid4()),
        carrier_id=carrier_id,
        amount=amount,
        status=WithdrawalStatus.PENDING,
    )
    db.add(withdrawal)
    db.commit()
    db.refresh(withdrawal)
    logger.info("withdrawal %s of %s requested", withdrawal.id, amount, extra={"carrier_id": carrier_id})
    return withdrawal


def _withdrawal_out(w: WithdrawalRequest) -> dict:
    return {
        "id": w.id,
        "carrierId": w.carrier_id,
        "amount": to_money(w.amount),
        "status": w.status,
        "requestedAt": w.created_at,
        "resolvedAt": w.resolved_at,
    }


def withdrawal_history(db: Session, carrier_id: str) -> list[dict]:
    rows = db.execute(
        select(WithdrawalRequest)
        .where(WithdrawalRequest.carrier_id == carrier_id)
        .order_by(WithdrawalRequest.created_at.desc())
    ).scalars()
    return [_withdrawal_out(w) for w in rows]


def list_withdrawals(db: Session, status: str | None = None) -> list[dict]:
    stmt = select(WithdrawalRequest).order_by(WithdrawalRequest.created_at.asc())
    if status:
        stmt = stmt.where(WithdrawalRequest.status == status)
    return [_withdrawal_out(w) for w in db.execute(stmt).scalars()]


def wallet_summary(db: Session, carrier_id: str) -> dict:
    completed = db.execute(
        select(func.count(Booking.id)).where(Booking.carrier_id == carrier_id, Booking.status.in_(SETTLED_STATES))
    ).scalar_one()
    wallet = db.get(Wallet, carrier_id)
    return {
        "walletBalance": get_balance(db, carrier_id),
        "completedTripsCount": completed,
        "payoutConfigured": bool(wallet and wallet.payout_configured),
    }


def earnings_summary(db: Session, carrier_id: str) -> dict:
    trips = list(db.execute(
        select(Booking).where(Booking.carrier_id == carrier_id, Booking.status.in_(SETTLED_STATES))
    ).scalars())

    total = Decimal("0")
    by_month: dict[str, Decimal] = {}
    for trip in trips:
        if trip.carrier_earning is None:
            continue
        total += trip.carrier_earning
        if trip.fare_finalized_at:
            key = trip.fare_finalized_at.strftime("%Y-%m")
            by_month[key] = by_month.get(key, Decimal("0")) + trip.carrier_earning

    return {
        "carrierId": carrier_id,
        "totalEarnings": to_money(total),
        "tripsCount": len(trips),
        "walletBalance": get_balance(db, carrier_id),
        "monthEarnings": {k: to_money(v) for k, v in sorted(by_month.items())},
        "withdrawalHistory": withdrawal_history(db, carrier_id),
    }


def resolve_withdrawal(db: Session, actor_id: str, withdrawal_id: str, approve: bool) -> WithdrawalRequest:
    """Approve, or reject and return the held amount to the wallet."""
    withdrawal = db.get(WithdrawalRequest, withdrawal_id)
    if not withdrawal:
        raise NotFound("Withdrawal request not found")

    new_status = WithdrawalStatus.APPROVED if approve else WithdrawalStatus.REJECTED
    now = datetime.now(timezone.utc)
    result = db.execute(
        update(WithdrawalRequest)
        .where(WithdrawalRequest.id == withdrawal_id, WithdrawalRequest.status == WithdrawalStatus.PENDING)
        .values(status=new_status, resolved_by=actor_id, resolved_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidState("Withdrawal request is already resolved")

    if not approve:
        credit(db, withdrawal.carrier_id, withdrawal.amount, commit=False)
    log_audit(db, actor_id, f"withdrawal.{new_status.lower()}", "withdrawal", withdrawal_id, {
        "carrierId": withdrawal.carrier_id, "amount": withdrawal.amount,
    })
    db.commit()
    db.refresh(withdrawal)
    return withdrawal
