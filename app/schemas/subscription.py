from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from app.models.enums import SubscriptionStatus, PaymentMethod

class SubscriptionPlanCreate(BaseModel):
    name: str = Field(..., max_length=255)
    product_id: int
    price: Decimal = Field(..., gt=0)
    frequency: str = Field(..., max_length=20) # WEEKLY or MONTHLY
    is_active: bool = True

class SubscriptionPlan(SubscriptionPlanCreate):
    id: int

    class Config:
        from_attributes = True

class SubscriptionCreate(BaseModel):
    plan_id: int
    payment_method: PaymentMethod
    shipping_address: Optional[str] = Field(default=None, max_length=512)

class Subscription(BaseModel):
    id: int
    customer_id: int
    plan_id: int
    status: SubscriptionStatus
    payment_method: PaymentMethod
    plan_price: Decimal
    shipping_address: Optional[str] = None
    start_date: datetime
    renewal_date: datetime
    next_delivery_date: Optional[date] = None

    class Config:
        from_attributes = True

class RenewalReport(BaseModel):
    processed: int = 0
    renewed: int = 0
    paused: int = 0
    failed: int = 0
