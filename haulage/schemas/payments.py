from typing import Optional

from pydantic import BaseModel, Field


class InitiatePaymentIn(BaseModel):
    # If omitted, the requester's latest previewed booking is used.
    bookingId: Optional[str] = None


class VerifyPaymentIn(BaseModel):
    orderId: str = Field(min_length=1)
    paymentId: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class OrderOut(BaseModel):
    bookingId: str
    bookingRef: str
    orderId: str
    amount: int  # paise
    currency: str = "INR"
    keyId: str = ""
