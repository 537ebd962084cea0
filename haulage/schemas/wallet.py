from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class BankDetailsIn(BaseModel):
    bankName: str = Field(min_length=1)
    bankAccountNumber: str = Field(min_length=6, max_length=34)
    ifscCode: str = Field(min_length=11, max_length=11)
    accountHolderName: Optional[str] = None
    identityLinked: bool = False


class WithdrawalIn(BaseModel):
    amount: Decimal


class WithdrawalResolveIn(BaseModel):
    approve: bool
