# app/schemas/payment.py
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal

from app.models.enums import PaymentStatus, PaymentMethod

class PaymentCreate(BaseModel):
    order_id: int

class Payment(BaseModel):
    id: int
    order_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    wallet_transaction_id: Optional[int] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class PaymentResult(BaseModel):
    payment: Payment
    redirect_url: Optional[str] = None # Only for gateway payments
    message: str

class SSLCommerzCallback(BaseModel):
    """
    Form fields posted by SSLCommerz to the success/fail/cancel redirects and the IPN.
    Only the fields the handlers read are declared; the rest are kept as extras.
    """
    tran_id: Optional[str] = None
    val_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    bank_tran_id: Optional[str] = None
    error: Optional[str] = None

    class Config:
        extra = "allow"

class CallbackAck(BaseModel):
    status: str
    message: str
    transaction_id: Optional[str] = None
