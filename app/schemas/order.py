from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from app.models.enums import OrderStatus, PaymentStatus, PaymentMethod

class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0) # Number of packages

class OrderCreate(BaseModel):
    """
    Schema for data provided by the customer at checkout.
    Prices and package sizes are read from the products, never from the client.
    """
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod
    shipping_address: Optional[str] = Field(default=None, max_length=512)

class OrderUpdate(BaseModel):
    """
    Schema for an admin status change. Runs through the order state machine.
    """
    status: OrderStatus

class OrderItem(BaseModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    package_size: int
    subtotal: Decimal

    class Config:
        from_attributes = True

class OrderTracking(BaseModel):
    id: int
    order_id: int
    status: OrderStatus
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class Order(BaseModel): # Full schema for returning order data to the client
    id: int
    customer_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    shipping_address: Optional[str] = None
    is_subscription: bool
    is_preorder: bool
    created_at: datetime
    updated_at: datetime

    items: List[OrderItem] = []

    class Config:
        from_attributes = True
