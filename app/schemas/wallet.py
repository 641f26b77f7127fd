from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from app.models.enums import WalletTransactionType, WalletTransactionStatus

class WalletTransaction(BaseModel):
    id: int
    wallet_id: int
    order_id: Optional[int] = None
    subscription_id: Optional[int] = None
    amount: Decimal
    transaction_type: WalletTransactionType
    transaction_status: WalletTransactionStatus
    reference: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class Wallet(BaseModel):
    id: int
    customer_id: int
    balance: Decimal
    locked_balance: Decimal
    available_balance: Decimal

    class Config:
        from_attributes = True

class WalletWithTransactions(Wallet):
    transactions: List[WalletTransaction] = []

class DepositCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)

class DepositInitResponse(BaseModel):
    transaction: WalletTransaction
    redirect_url: str
