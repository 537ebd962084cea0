from sqlalchemy import String, DateTime, Boolean, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from decimal import Decimal
from haulage.db.session import Base


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
    )

    carrier_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    bank_name: Mapped[str] = mapped_column(String(120), nullable=True)
    bank_account_number: Mapped[str] = mapped_column(String(34), nullable=True)
    account_holder_name: Mapped[str] = mapped_column(String(200), nullable=True)
    ifsc_code: Mapped[str] = mapped_column(String(11), nullable=True)
    identity_linked: Mapped[bool] = mapped_column(Boolean, default=False)  # Aadhaar linkage

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def payout_configured(self) -> bool:
        return bool(self.bank_account_number) and bool(self.identity_linked)


class WithdrawalStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class WithdrawalRequest(Base):
    __tablename__ = "withdrawal_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    carrier_id: Mapped[str] = mapped_column(String(36), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[str] = mapped_column(String(12), default=WithdrawalStatus.PENDING, index=True)

    resolved_by: Mapped[str] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
